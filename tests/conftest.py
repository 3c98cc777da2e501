"""Common test fixtures for the mdvault MCP server."""

from pathlib import Path

import pytest

from mdvault_mcp.config import VaultConfig
from mdvault_mcp.services.document_service import DocumentService
from mdvault_mcp.services.link_service import LinkService
from mdvault_mcp.services.tag_service import TagService
from mdvault_mcp.storage.vault_storage import VaultStorage

VAULT_FILES = {
    "index.md": (
        "---\n"
        "title: Home\n"
        "tags: [hub, project]\n"
        "---\n"
        "# Home\n"
        "\n"
        "Start with [[project-a]] and [[notes/projects/project-b|the other one]].\n"
        "See also [[todo#Today]] and ![[attachment.png]].\n"
        "Broken: [[does-not-exist]]\n"
    ),
    "todo.md": (
        "# Todo\n"
        "\n"
        "## Today\n"
        "\n"
        "- [ ] review [[project-a]] #urgent\n"
        "\n"
        "## Later\n"
        "\n"
        "- [ ] tidy up #someday\n"
    ),
    "plain.md": "Just some text without structure.\n",
    "notes/daily/2024-01-15.md": (
        "---\n"
        "tags:\n"
        "  - daily\n"
        "  - project/frontend\n"
        "---\n"
        "Worked on [[Project-A]] today.\n"
        "\n"
        "Then [[project-a#Goals]] again. #project/frontend\n"
    ),
    "notes/projects/project-a.md": (
        "---\n"
        "title: Project A\n"
        "status: active\n"
        "tags: [project]\n"
        "---\n"
        "# Project A\n"
        "\n"
        "## Goals\n"
        "\n"
        "Ship it. #projectx\n"
        "\n"
        "## Notes\n"
        "\n"
        "Related to [[project-b]].\n"
    ),
    "notes/projects/project-b.md": (
        "# Project B\n"
        "\n"
        "Sibling of [[project-a]].\n"
    ),
    ".obsidian/workspace.md": "[[project-a]] #ignored\n",
}


def build_vault(root: Path) -> Path:
    """Write the sample vault under ``root``."""
    for relative, content in VAULT_FILES.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8", newline="")
    attachment = root / "attachments" / "attachment.png"
    attachment.parent.mkdir(parents=True, exist_ok=True)
    attachment.write_bytes(b"\x89PNG\r\n")
    return root


@pytest.fixture
def vault_dir(tmp_path):
    """Create a sample vault in a temporary directory."""
    return build_vault(tmp_path / "vault")


@pytest.fixture
def vault_config(vault_dir, tmp_path):
    """Configuration pointing at the sample vault."""
    return VaultConfig(
        vaults={"test": vault_dir},
        log_dir=tmp_path / "logs",
        transport="stdio",
        max_read_lines=500,
    )


@pytest.fixture
def storage(vault_config):
    return VaultStorage(vault_config)


@pytest.fixture
def document_service(storage):
    return DocumentService(storage=storage)


@pytest.fixture
def link_service(storage):
    return LinkService(storage=storage)


@pytest.fixture
def tag_service(storage):
    return TagService(storage=storage)

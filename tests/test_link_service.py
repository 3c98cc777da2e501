"""Tests for wikilink resolution and backlinks."""
import pytest

from mdvault_mcp.config import VaultConfig
from mdvault_mcp.exceptions import DocumentNotFoundError
from mdvault_mcp.services.link_service import LinkService
from mdvault_mcp.storage.vault_storage import VaultStorage


class TestResolve:
    """Tests for resolving wikilinks to documents."""

    def test_resolve_by_name(self, link_service):
        result = link_service.resolve_wikilink("[[project-a]]")
        assert result == {
            "link": "[[project-a]]",
            "resolved": True,
            "targetPath": "/test/notes/projects/project-a.md",
            "targetExists": True,
            "heading": None,
            "blockRef": None,
            "displayText": None,
        }

    def test_resolve_is_case_insensitive(self, link_service):
        resolved = link_service.resolve("[[PROJECT-A]]")
        assert resolved.target_path == "/test/notes/projects/project-a.md"

    def test_resolve_by_path_with_parts(self, link_service):
        resolved = link_service.resolve("[[notes/projects/project-b#Intro^x1|B]]")
        assert resolved.target_path == "/test/notes/projects/project-b.md"
        assert resolved.heading == "Intro"
        assert resolved.block_ref == "x1"
        assert resolved.display_text == "B"

    def test_resolve_with_md_extension(self, link_service):
        resolved = link_service.resolve("[[todo.md]]")
        assert resolved.target_path == "/test/todo.md"

    def test_resolve_partial_path(self, link_service):
        resolved = link_service.resolve("[[projects/project-b]]")
        assert resolved.target_path == "/test/notes/projects/project-b.md"

    def test_resolve_attachment_drops_heading(self, link_service):
        resolved = link_service.resolve("![[attachment.png#section]]")
        assert resolved.target_path == "/test/attachments/attachment.png"
        assert resolved.target_exists
        assert resolved.heading is None

    def test_resolution_miss(self, link_service):
        result = link_service.resolve_wikilink("[[does-not-exist#Heading]]")
        assert result["resolved"] is False
        assert result["targetPath"] is None
        assert result["targetExists"] is False
        assert result["heading"] == "Heading"

    def test_resolve_relative_to_source(self, link_service):
        resolved = link_service.resolve(
            "[[../daily/2024-01-15]]", source_path="/test/notes/projects/project-a.md"
        )
        assert resolved.target_path == "/test/notes/daily/2024-01-15.md"

    def test_relative_link_without_source_misses(self, link_service):
        assert link_service.resolve("[[../daily/2024-01-15]]").target_path is None

    def test_same_document_heading_link(self, link_service):
        resolved = link_service.resolve("[[#Today]]", source_path="/test/todo.md")
        assert resolved.target_path == "/test/todo.md"
        assert resolved.heading == "Today"

    def test_resolution_is_idempotent(self, link_service):
        first = link_service.resolve_wikilink("[[Project-A#Goals|goals]]")
        second = link_service.resolve_wikilink("[[Project-A#Goals|goals]]")
        assert first == second

    def test_first_vault_wins(self, vault_dir, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        (other / "project-a.md").write_text("# Other A", encoding="utf-8")
        (other / "only-here.md").write_text("# Only", encoding="utf-8")
        service = LinkService(VaultStorage(VaultConfig(vaults={"test": vault_dir, "other": other})))
        assert service.resolve("[[project-a]]").target_path == "/test/notes/projects/project-a.md"
        assert service.resolve("[[only-here]]").target_path == "/other/only-here.md"


class TestExtractWikilinks:
    """Tests for listing the wikilinks of a document."""

    def test_extract_and_resolve(self, link_service):
        result = link_service.extract_wikilinks("/test/index.md")
        assert result["path"] == "/test/index.md"
        assert [link["raw"] for link in result["links"]] == [
            "[[project-a]]",
            "[[notes/projects/project-b|the other one]]",
            "[[todo#Today]]",
            "![[attachment.png]]",
            "[[does-not-exist]]",
        ]
        assert result["unresolvedCount"] == 1
        first = result["links"][0]
        assert (first["line"], first["column"], first["isEmbed"]) == (7, 12, False)
        assert first["resolved"]["targetPath"] == "/test/notes/projects/project-a.md"
        assert result["links"][3]["isEmbed"] is True

    def test_extract_without_resolving(self, link_service):
        result = link_service.extract_wikilinks("/test/index.md", resolve=False)
        assert "resolved" not in result["links"][0]
        assert result["unresolvedCount"] == 0

    def test_extract_without_embeds(self, link_service):
        result = link_service.extract_wikilinks("/test/index.md", include_embeds=False)
        assert len(result["links"]) == 4

    def test_extract_missing_document(self, link_service):
        with pytest.raises(DocumentNotFoundError):
            link_service.extract_wikilinks("/test/missing.md")


class TestBacklinks:
    """Tests for backlink discovery."""

    def test_backlinks_by_name_and_path(self, link_service):
        result = link_service.get_backlinks("/test/notes/projects/project-a.md")
        assert result["targetPath"] == "/test/notes/projects/project-a.md"
        assert result["totalCount"] == 5
        sources = [b["sourcePath"] for b in result["backlinks"]]
        assert sources == [
            "/test/notes/daily/2024-01-15.md",
            "/test/index.md",
            "/test/todo.md",
            "/test/notes/projects/project-b.md",
        ]

    def test_backlink_details(self, link_service):
        result = link_service.get_backlinks("/test/notes/projects/project-a.md")
        daily = result["backlinks"][0]
        assert daily["sourceTitle"] == "2024-01-15"
        assert daily["matches"] == [
            {"line": 6, "linkText": "[[Project-A]]"},
            {"line": 8, "linkText": "[[project-a#Goals]]"},
        ]
        index = result["backlinks"][1]
        assert index["sourceTitle"] == "Home"

    def test_backlinks_with_context(self, link_service):
        result = link_service.get_backlinks(
            "/test/notes/projects/project-b.md", include_context=True, context_lines=1
        )
        sources = {b["sourcePath"]: b for b in result["backlinks"]}
        assert set(sources) == {"/test/index.md", "/test/notes/projects/project-a.md"}
        match = sources["/test/index.md"]["matches"][0]
        assert match["line"] == 7
        assert match["context"] == (
            "\n"
            "Start with [[project-a]] and [[notes/projects/project-b|the other one]].\n"
            "See also [[todo#Today]] and ![[attachment.png]]."
        )

    def test_self_links_are_excluded(self, link_service, vault_dir):
        (vault_dir / "plain.md").write_text("See [[plain]] and [[todo]]")
        result = link_service.get_backlinks("/test/plain.md")
        assert result["totalCount"] == 0

    def test_backlinks_to_attachment(self, link_service):
        result = link_service.get_backlinks("/test/attachments/attachment.png")
        assert [b["sourcePath"] for b in result["backlinks"]] == ["/test/index.md"]

    def test_ignored_directories_are_not_scanned(self, link_service):
        result = link_service.get_backlinks("/test/notes/projects/project-a.md")
        assert not any(".obsidian" in b["sourcePath"] for b in result["backlinks"])

    def test_unreadable_document_is_skipped(self, link_service, vault_dir):
        (vault_dir / "binary.md").write_bytes(b"\xff\xfe[[project-a]]\xff")
        result = link_service.get_backlinks("/test/notes/projects/project-a.md")
        assert result["totalCount"] == 5

    def test_total_count_counts_every_link(self, link_service, vault_dir):
        (vault_dir / "hub.md").write_text("[[todo]]\n[[todo#Today]] and [[todo|again]]\n")
        result = link_service.get_backlinks("/test/todo.md")
        by_source = {b["sourcePath"]: len(b["matches"]) for b in result["backlinks"]}
        assert by_source == {"/test/hub.md": 3, "/test/index.md": 1}
        assert result["totalCount"] == 4
        assert result["backlinks"][0]["sourcePath"] == "/test/hub.md"

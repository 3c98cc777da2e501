"""Configuration module for the mdvault MCP server."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from mdvault_mcp import __version__
from mdvault_mcp.exceptions import ConfigurationError, ErrorCode

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, shared by every checkout
_USER_ENV = Path.home() / ".mdvault" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

DEFAULT_IGNORED_DIRS = [".obsidian", ".trash", "node_modules", ".git"]
TRANSPORTS = ("stdio", "sse")


def parse_vault_list(value: Optional[str]) -> Dict[str, Path]:
    """Parse ``name=path`` pairs separated by ``;`` or ``,``.

    Entries without a ``=`` or with an empty name are ignored.
    """
    vaults: Dict[str, Path] = {}
    if not value:
        return vaults
    for entry in re.split(r"[;,]", value):
        name, sep, path = entry.partition("=")
        name, path = name.strip(), path.strip()
        if not sep or not name or not path:
            continue
        vaults[name] = Path(path).expanduser()
    return vaults


def load_vaults_file(path: Union[str, Path]) -> Dict[str, Path]:
    """Read vault roots from a JSON file shaped like ``{"paths": {name: path}}``.

    Relative roots are resolved against the directory holding the file.
    """
    config_path = Path(path).expanduser()
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(
            f"Config file not found: {config_path}",
            config_key="config_file",
            code=ErrorCode.CONFIG_MISSING,
        )
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Config file is not valid JSON: {e}", config_key="config_file"
        )

    paths = data.get("paths") if isinstance(data, dict) else None
    if not isinstance(paths, dict):
        raise ConfigurationError(
            "Config file must contain a 'paths' object", config_key="paths"
        )

    vaults: Dict[str, Path] = {}
    for name, root in paths.items():
        root_path = Path(str(root)).expanduser()
        if not root_path.is_absolute():
            root_path = config_path.parent / root_path
        vaults[str(name)] = root_path
    return vaults


def _vaults_from_env() -> Dict[str, Path]:
    config_file = os.getenv("MDVAULT_CONFIG_FILE")
    if config_file:
        return load_vaults_file(config_file)
    return parse_vault_list(os.getenv("MDVAULT_VAULTS"))


def _ignored_dirs_from_env() -> List[str]:
    raw = os.getenv("MDVAULT_IGNORED_DIRS")
    if raw is None:
        return list(DEFAULT_IGNORED_DIRS)
    return [d.strip() for d in raw.split(",") if d.strip()]


class VaultConfig(BaseModel):
    """Configuration for the vault server."""

    # Vault roots keyed by the name used as the first virtual path segment
    vaults: Dict[str, Path] = Field(default_factory=_vaults_from_env)
    # Directory names never descended into when enumerating documents
    ignored_dirs: List[str] = Field(default_factory=_ignored_dirs_from_env)
    # read_file truncates longer documents (0 disables truncation)
    max_read_lines: int = Field(
        default_factory=lambda: int(os.getenv("MDVAULT_MAX_READ_LINES", "500"))
    )
    # Transport configuration
    transport: str = Field(
        default_factory=lambda: os.getenv("MDVAULT_TRANSPORT", "stdio").lower()
    )
    port: int = Field(
        default_factory=lambda: int(os.getenv("MDVAULT_PORT", "8000"))
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("MDVAULT_SERVER_NAME", "mdvault-mcp"))
    server_version: str = Field(default=__version__)
    # Logging configuration
    log_level: str = Field(
        default_factory=lambda: os.getenv("MDVAULT_LOG_LEVEL", "INFO").upper()
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("MDVAULT_LOG_DIR"))
            if os.getenv("MDVAULT_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_settings(self) -> "VaultConfig":
        """Reject settings the server cannot run with."""
        if self.max_read_lines < 0:
            raise ValueError("max_read_lines must be >= 0")
        if self.transport not in TRANSPORTS:
            raise ValueError(
                f"Invalid transport mode: {self.transport}. Must be one of {', '.join(TRANSPORTS)}"
            )
        return self

    def get_vault_root(self, name: str) -> Optional[Path]:
        """Get the absolute root directory of a vault, or None if not configured."""
        root = self.vaults.get(name)
        if root is None:
            return None
        return root.resolve()

    def require_vaults(self) -> None:
        """Ensure at least one vault is configured and every root exists."""
        if not self.vaults:
            raise ConfigurationError(
                "No vaults configured. Set MDVAULT_VAULTS or MDVAULT_CONFIG_FILE.",
                config_key="vaults",
                code=ErrorCode.CONFIG_MISSING,
            )
        for name, root in self.vaults.items():
            if not root.is_dir():
                raise ConfigurationError(
                    f'Configured vault "{name}" does not exist: {root}',
                    config_key="vaults",
                )


# Create a global config instance
config = VaultConfig()

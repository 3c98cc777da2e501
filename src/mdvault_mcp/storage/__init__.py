"""Storage layer for the mdvault MCP server.

``VaultStorage`` owns file access; the other modules are pure text
scanners that operate on document content.
"""

from mdvault_mcp.storage.vault_storage import VaultStorage

__all__ = [
    "VaultStorage",
]

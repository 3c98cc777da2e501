"""
mdvault MCP - Markdown vault access as an MCP server.
This package implements a Model Context Protocol (MCP) server that exposes one
or more directories of Markdown notes ("vaults") to clients, with structural
reads by section, frontmatter editing, wikilink and backlink queries, tag
search and ETag-guarded patching.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("mdvault-mcp")
except PackageNotFoundError:
    __version__ = "0.3.0"

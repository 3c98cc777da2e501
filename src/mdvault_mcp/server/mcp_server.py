"""MCP server implementation for Markdown vaults."""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from mdvault_mcp.config import VaultConfig, config as default_config
from mdvault_mcp.exceptions import VaultError
from mdvault_mcp.models.schema import ConflictResult
from mdvault_mcp.observability import metrics, timed_operation
from mdvault_mcp.services.document_service import DocumentService
from mdvault_mcp.services.link_service import LinkService
from mdvault_mcp.services.tag_service import TagService
from mdvault_mcp.storage.vault_storage import VaultStorage

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 10_000_000  # 10 MB


def _validate_content_length(content: Optional[str]) -> None:
    """Validate input string lengths at the MCP boundary."""
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValueError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters"
        )


def _to_json(result: Any) -> str:
    if isinstance(result, ConflictResult):
        result = result.to_dict()
    return json.dumps(result, indent=2, ensure_ascii=False, default=str)


class VaultMcpServer:
    """MCP server exposing document, link and tag tools over the vaults."""

    def __init__(self, vault_config: Optional[VaultConfig] = None):
        self.config = vault_config or default_config
        self.mcp = FastMCP(self.config.server_name, port=self.config.port)
        # Services share one storage so they see the same vault roots
        self.storage = VaultStorage(self.config)
        self.document_service = DocumentService(storage=self.storage)
        self.link_service = LinkService(storage=self.storage)
        self.tag_service = TagService(storage=self.storage)
        self.initialize()
        self._register_tools()

    def initialize(self) -> None:
        """Initialize services."""
        logger.info(
            f"Vault MCP server initialized with vaults: {', '.join(self.storage.vault_names) or '(none)'}"
        )

    def format_error_response(self, error: Exception, op: Optional[Dict[str, Any]] = None) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred
            op: Metrics record of the running tool call; the error is noted
                there so the call counts as failed

        Returns:
            JSON error payload with appropriate level of detail
        """
        # Generate a unique error ID for traceability in logs
        error_id = str(uuid.uuid4())[:8]
        if op is not None:
            op["error"] = f"{type(error).__name__}: {error}"

        if isinstance(error, VaultError):
            # Structured domain errors carry their own safe message and suggestion
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return _to_json(error.to_dict())
        elif isinstance(error, ValueError):
            # Covers pydantic validation errors; details stay in the log
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return _to_json({"error": "Invalid input", "ref": error_id})
        elif isinstance(error, (IOError, OSError)):
            # File system errors - don't expose paths or detailed error messages
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return _to_json({"error": "A file system error occurred", "ref": error_id})
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return _to_json({"error": "An unexpected error occurred", "ref": error_id})

    def _register_tools(self) -> None:
        """Register MCP tools."""

        # =====================================================================
        # Whole-document tools
        # =====================================================================

        @self.mcp.tool(name="list_vaults")
        def list_vaults() -> str:
            """List the configured vaults and their root directories.

            Every other tool addresses documents as /<vault>/<relative path>.
            """
            with timed_operation("list_vaults") as op:
                try:
                    vaults = [
                        {"name": name, "path": str(root)}
                        for name, root in self.storage.iter_vaults()
                    ]
                    op["vault_count"] = len(vaults)
                    return _to_json({"vaults": vaults})
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="read_file")
        def read_file(path: str, max_lines: Optional[int] = None) -> str:
            """Read a Markdown document with its version token (etag).

            Long documents are truncated; use get_sections and read_section
            to navigate them, or pass max_lines=0 to read everything.

            Args:
                path: Virtual path, e.g. /notes/projects/plan.md
                max_lines: Truncate after this many lines (default from config, 0 = no limit)
            """
            with timed_operation("read_file", path=path) as op:
                try:
                    result = self.document_service.read_file(path, max_lines=max_lines)
                    op["truncated"] = result.get("truncated", False)
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="read_file_partial")
        def read_file_partial(path: str, start: int, end: Optional[int] = None) -> str:
            """Read a range of lines from a document.

            Args:
                path: Virtual path of the document
                start: First line to return (1-indexed)
                end: Last line to return, inclusive (default: end of file)
            """
            with timed_operation("read_file_partial", path=path, start=start, end=end) as op:
                try:
                    return _to_json(
                        self.document_service.read_file_partial(path, start, end)
                    )
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="create_file")
        def create_file(path: str, content: str) -> str:
            """Create a new document. Fails if the file already exists.

            Args:
                path: Virtual path of the new document
                content: Full document text
            """
            with timed_operation("create_file", path=path) as op:
                try:
                    _validate_content_length(content)
                    return _to_json(self.document_service.create_file(path, content))
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="update_file")
        def update_file(path: str, content: str, expected_etag: Optional[str] = None) -> str:
            """Replace the full text of an existing document.

            Args:
                path: Virtual path of the document
                content: New document text
                expected_etag: Etag from the last read; the update is refused
                    with a conflict if the document changed since then
            """
            with timed_operation("update_file", path=path) as op:
                try:
                    _validate_content_length(content)
                    result = self.document_service.update_file(path, content, expected_etag)
                    op["conflict"] = isinstance(result, ConflictResult)
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="append_file")
        def append_file(
            path: str,
            content: str,
            create_if_missing: bool = False,
            ensure_newline: bool = True,
            separator: Optional[str] = None,
        ) -> str:
            """Append text to the end of a document.

            Args:
                path: Virtual path of the document
                content: Text to append
                create_if_missing: Create the document if it does not exist
                ensure_newline: Start on a new line if the file does not end with one
                separator: Text inserted before the appended content (e.g. "\\n---\\n")
            """
            with timed_operation("append_file", path=path) as op:
                try:
                    _validate_content_length(content)
                    return _to_json(self.document_service.append_file(
                        path,
                        content,
                        create_if_missing=create_if_missing,
                        ensure_newline=ensure_newline,
                        separator=separator,
                    ))
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="prepend_file")
        def prepend_file(
            path: str,
            content: str,
            after_frontmatter: bool = True,
            create_if_missing: bool = False,
            ensure_newline: bool = True,
        ) -> str:
            """Insert text at the start of a document.

            Args:
                path: Virtual path of the document
                content: Text to insert
                after_frontmatter: Insert below the frontmatter block when present
                create_if_missing: Create the document if it does not exist
                ensure_newline: End the inserted text with a newline
            """
            with timed_operation("prepend_file", path=path) as op:
                try:
                    _validate_content_length(content)
                    return _to_json(self.document_service.prepend_file(
                        path,
                        content,
                        after_frontmatter=after_frontmatter,
                        create_if_missing=create_if_missing,
                        ensure_newline=ensure_newline,
                    ))
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="get_file_metadata")
        def get_file_metadata(path: str) -> str:
            """Summarize a document (size, lines, tags, links, sections) without its content.

            Args:
                path: Virtual path of the document
            """
            with timed_operation("get_file_metadata", path=path) as op:
                try:
                    result = self.document_service.get_file_metadata(path)
                    op["exists"] = result["exists"]
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        # =====================================================================
        # Structure tools
        # =====================================================================

        @self.mcp.tool(name="get_sections")
        def get_sections(path: str) -> str:
            """List the heading hierarchy of a document with line ranges.

            Args:
                path: Virtual path of the document
            """
            with timed_operation("get_sections", path=path) as op:
                try:
                    result = self.document_service.get_sections(path)
                    op["root_sections"] = len(result["sections"])
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="read_section")
        def read_section(
            path: str,
            heading: str,
            include_children: bool = True,
            include_heading: bool = True,
        ) -> str:
            """Read one section of a document by its heading.

            Args:
                path: Virtual path of the document
                heading: Full heading line as listed by get_sections (e.g. "## Notes"),
                    or "frontmatter" for the frontmatter block
                include_children: Include nested subsections
                include_heading: Include the heading line itself
            """
            with timed_operation("read_section", path=path, heading=heading[:40]) as op:
                try:
                    result = self.document_service.read_section(
                        path,
                        heading,
                        include_children=include_children,
                        include_heading=include_heading,
                    )
                    op["found"] = "error" not in result
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="get_frontmatter")
        def get_frontmatter(path: str) -> str:
            """Read a document's frontmatter as structured data.

            Args:
                path: Virtual path of the document
            """
            with timed_operation("get_frontmatter", path=path) as op:
                try:
                    return _to_json(self.document_service.get_frontmatter(path))
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="update_frontmatter")
        def update_frontmatter(
            path: str,
            updates: Dict[str, Any],
            remove: Optional[List[str]] = None,
            expected_etag: Optional[str] = None,
        ) -> str:
            """Merge keys into a document's frontmatter.

            Keys not mentioned are left untouched.

            Args:
                path: Virtual path of the document
                updates: Keys to set or overwrite
                remove: Keys to delete
                expected_etag: Etag from the last read for conflict detection
            """
            with timed_operation("update_frontmatter", path=path) as op:
                try:
                    result = self.document_service.update_frontmatter(
                        path, updates, remove=remove, expected_etag=expected_etag
                    )
                    op["conflict"] = isinstance(result, ConflictResult)
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="patch_file")
        def patch_file(
            path: str,
            patches: List[Dict[str, Any]],
            expected_etag: Optional[str] = None,
        ) -> str:
            """Apply a list of edits to a document, in order.

            Each patch has a "type" and the fields that type needs:
                - replace_lines: startLine, endLine, content
                - insert_after: line (0 = start of file), content
                - delete_lines: startLine, endLine
                - replace_first / replace_all: search, replace (literal text)
                - replace_regex: pattern, replace, flags (default "g")
            Each patch sees the text produced by the ones before it; patches
            missing required fields are skipped and counted in patchesSkipped.

            Args:
                path: Virtual path of the document
                patches: Patch operations
                expected_etag: Etag from the last read for conflict detection
            """
            with timed_operation("patch_file", path=path, patch_count=len(patches)) as op:
                try:
                    result = self.document_service.patch_file(path, patches, expected_etag)
                    op["conflict"] = isinstance(result, ConflictResult)
                    if not op["conflict"]:
                        op["patches_skipped"] = result["patchesSkipped"]
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        # =====================================================================
        # Link tools
        # =====================================================================

        @self.mcp.tool(name="resolve_wikilink")
        def resolve_wikilink(link: str, source_path: Optional[str] = None) -> str:
            """Resolve a [[wikilink]] to a document path.

            Args:
                link: The wikilink, e.g. "[[Project Plan#Goals|goals]]"
                source_path: Virtual path of the linking document, for relative links
            """
            with timed_operation("resolve_wikilink", link=link[:40]) as op:
                try:
                    result = self.link_service.resolve_wikilink(link, source_path)
                    op["resolved"] = result["resolved"]
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="extract_wikilinks")
        def extract_wikilinks(
            path: str, resolve: bool = True, include_embeds: bool = True
        ) -> str:
            """List the wikilinks in a document with their positions.

            Args:
                path: Virtual path of the document
                resolve: Resolve each link to a target document
                include_embeds: Include ![[embeds]]
            """
            with timed_operation("extract_wikilinks", path=path) as op:
                try:
                    result = self.link_service.extract_wikilinks(
                        path, resolve=resolve, include_embeds=include_embeds
                    )
                    op["link_count"] = len(result["links"])
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="get_backlinks")
        def get_backlinks(
            path: str, include_context: bool = False, context_lines: int = 1
        ) -> str:
            """Find documents that link to the given document.

            Args:
                path: Virtual path of the target document
                include_context: Include surrounding lines for each link
                context_lines: Lines of context on each side
            """
            with timed_operation("get_backlinks", path=path) as op:
                try:
                    result = self.link_service.get_backlinks(
                        path, include_context=include_context, context_lines=context_lines
                    )
                    op["result_count"] = result["totalCount"]
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        # =====================================================================
        # Tag tools
        # =====================================================================

        @self.mcp.tool(name="search_by_tag")
        def search_by_tag(
            tags: List[str],
            match: str = "any",
            path: Optional[str] = None,
            location: str = "both",
        ) -> str:
            """Find documents by tag. Searching "project" also finds "project/frontend".

            Args:
                tags: Tags to search for, with or without "#"
                match: "any" or "all"
                path: Limit the search to a virtual directory or file
                location: "frontmatter", "body" or "both"
            """
            with timed_operation("search_by_tag", tags=",".join(tags)[:40]) as op:
                try:
                    result = self.tag_service.search_by_tag(
                        tags, match=match, path=path, location=location
                    )
                    op["result_count"] = result["totalMatches"]
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        @self.mcp.tool(name="list_all_tags")
        def list_all_tags(path: Optional[str] = None, min_count: int = 1) -> str:
            """List every tag in use with its occurrence count.

            Args:
                path: Limit the scan to a virtual directory or file
                min_count: Omit tags used fewer times than this
            """
            with timed_operation("list_all_tags", path=path) as op:
                try:
                    result = self.tag_service.list_all_tags(path=path, min_count=min_count)
                    op["tag_count"] = result["totalTags"]
                    return _to_json(result)
                except Exception as e:
                    return self.format_error_response(e, op)

        # =====================================================================
        # Server tools
        # =====================================================================

        @self.mcp.tool(name="server_metrics")
        def server_metrics(include_operations: bool = False) -> str:
            """Report server uptime, operation counts and error rates.

            Args:
                include_operations: Include per-operation statistics
            """
            try:
                result: Dict[str, Any] = {"summary": metrics.summary()}
                if include_operations:
                    result["operations"] = metrics.report()
                return _to_json(result)
            except Exception as e:
                return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server on the configured transport."""
        logger.info(f"Serving over {self.config.transport}")
        self.mcp.run(transport=self.config.transport)

"""Service layer for reading and editing vault documents."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from mdvault_mcp.config import VaultConfig
from mdvault_mcp.exceptions import (
    DocumentExistsError,
    DocumentNotFoundError,
    ValidationError,
)
from mdvault_mcp.models.schema import (
    FRONTMATTER_SECTION,
    ConflictResult,
    DocumentRef,
    PatchOperation,
)
from mdvault_mcp.storage.frontmatter import (
    find_frontmatter_block,
    render_document,
    split_frontmatter,
)
from mdvault_mcp.storage.patch import apply_patches
from mdvault_mcp.storage.section_parser import (
    extract_section,
    find_section,
    parse_sections,
)
from mdvault_mcp.storage.tags import extract_tags
from mdvault_mcp.storage.vault_storage import VaultStorage
from mdvault_mcp.storage.wikilinks import extract_wikilinks
from mdvault_mcp.utils import compute_etag

logger = logging.getLogger(__name__)

# Documents longer than this are flagged as large in metadata
LARGE_FILE_LINES = 200

SECTIONS_HINT = "Use get_sections to see available headings in this file."


class DocumentService:
    """Service for reading, writing and structurally editing documents.

    Every call re-reads the document; nothing is cached between calls.
    Mutations that derive new text from the stored text re-check the
    version token right before writing and report a conflict instead of
    overwriting a concurrent change.
    """

    def __init__(
        self,
        storage: Optional[VaultStorage] = None,
        vault_config: Optional[VaultConfig] = None,
    ):
        self.storage = storage or VaultStorage(vault_config)
        self.config = self.storage.config

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, path: str) -> Tuple[DocumentRef, str]:
        ref = self.storage.resolve(path)
        return ref, self.storage.read(ref)

    @staticmethod
    def _check_etag(
        ref: DocumentRef, content: str, expected_etag: Optional[str]
    ) -> Optional[ConflictResult]:
        if not expected_etag:
            return None
        current_etag = compute_etag(content)
        if current_etag == expected_etag:
            return None
        logger.info(
            f"Conflict on {ref.virtual_path}: expected {expected_etag}, found {current_etag}"
        )
        return ConflictResult(
            path=ref.virtual_path,
            expected_etag=expected_etag,
            current_etag=current_etag,
            current_content=content,
        )

    def _write_from(
        self,
        ref: DocumentRef,
        base: str,
        new_content: str,
        expected_etag: Optional[str] = None,
    ) -> Optional[ConflictResult]:
        """Write text derived from ``base`` unless the document moved on."""
        current = self.storage.compare_and_write(ref, new_content, compute_etag(base))
        if current is None:
            return None
        logger.warning(f"{ref.virtual_path} changed while it was being edited; write refused")
        return ConflictResult(
            path=ref.virtual_path,
            expected_etag=expected_etag or compute_etag(base),
            current_etag=compute_etag(current),
            current_content=current,
        )

    # =========================================================================
    # Whole-document operations
    # =========================================================================

    def read_file(self, path: str, max_lines: Optional[int] = None) -> Dict[str, Any]:
        """Read a document, truncating it after ``max_lines`` lines (0 = never)."""
        ref, content = self._load(path)
        etag = compute_etag(content)
        if max_lines is None:
            max_lines = self.config.max_read_lines

        lines = content.split("\n")
        total_lines = len(lines)
        if max_lines > 0 and total_lines > max_lines:
            return {
                "path": ref.virtual_path,
                "content": "\n".join(lines[:max_lines]),
                "etag": etag,
                "truncated": True,
                "linesReturned": max_lines,
                "totalLines": total_lines,
                "message": (
                    f"File truncated at {max_lines} lines ({total_lines} total). "
                    "Use get_sections to see file structure, read_section to read "
                    "specific sections, or read_file with max_lines=0 for the full file."
                ),
            }
        return {"path": ref.virtual_path, "content": content, "etag": etag}

    def read_file_partial(
        self, path: str, start: int, end: Optional[int] = None
    ) -> Dict[str, Any]:
        """Read a 1-indexed, inclusive line window of a document."""
        if start < 1:
            raise ValidationError("start must be >= 1", field="start", value=start)
        if end is not None and end < start:
            raise ValidationError("end must be >= start", field="end", value=end)

        ref, content = self._load(path)
        lines = content.split("\n")
        actual_end = min(end if end is not None else len(lines), len(lines))
        return {
            "path": ref.virtual_path,
            "content": "\n".join(lines[start - 1:actual_end]),
            "start": start,
            "end": actual_end,
            "totalLines": len(lines),
            "etag": compute_etag(content),
        }

    def create_file(self, path: str, content: str) -> Dict[str, Any]:
        """Create a new document; parent directories are created as needed."""
        ref = self.storage.resolve(path)
        if ref.full_path.exists():
            raise DocumentExistsError(ref.virtual_path)
        self.storage.write(ref, content)
        logger.info(f"Created {ref.virtual_path}")
        return {
            "success": True,
            "path": ref.virtual_path,
            "etag": compute_etag(content),
            "message": "File created successfully",
        }

    def update_file(
        self, path: str, content: str, expected_etag: Optional[str] = None
    ) -> Union[Dict[str, Any], ConflictResult]:
        """Replace a document's full text.

        Returns:
            The success payload, or a ConflictResult when ``expected_etag``
            no longer matches the stored text.
        """
        ref = self.storage.resolve(path)
        if not self.storage.exists(ref):
            raise DocumentNotFoundError(
                ref.virtual_path, suggestion="Use create_file to create new files."
            )

        if expected_etag:
            current = self.storage.read(ref)
            conflict = self._check_etag(ref, current, expected_etag)
            if conflict:
                return conflict
            conflict = self._write_from(ref, current, content, expected_etag)
            if conflict:
                return conflict
        else:
            self.storage.write(ref, content)

        return {
            "success": True,
            "path": ref.virtual_path,
            "etag": compute_etag(content),
            "message": "File updated successfully",
        }

    def append_file(
        self,
        path: str,
        content: str,
        create_if_missing: bool = False,
        ensure_newline: bool = True,
        separator: Optional[str] = None,
    ) -> Union[Dict[str, Any], ConflictResult]:
        """Append text to the end of a document."""
        ref = self.storage.resolve(path)
        created = False
        if not self.storage.exists(ref):
            if not create_if_missing:
                raise DocumentNotFoundError(
                    ref.virtual_path,
                    suggestion="Set create_if_missing to true to create it.",
                )
            new_content = content
            self.storage.write(ref, new_content)
            created = True
        else:
            existing = self.storage.read(ref)
            addition = (separator or "") + content
            if ensure_newline and existing and not existing.endswith("\n"):
                addition = "\n" + addition
            new_content = existing + addition
            conflict = self._write_from(ref, existing, new_content)
            if conflict:
                return conflict

        return {
            "success": True,
            "path": ref.virtual_path,
            "created": created,
            "bytesAppended": len(content.encode("utf-8")),
            "newSize": len(new_content.encode("utf-8")),
            "etag": compute_etag(new_content),
        }

    def prepend_file(
        self,
        path: str,
        content: str,
        after_frontmatter: bool = True,
        create_if_missing: bool = False,
        ensure_newline: bool = True,
    ) -> Union[Dict[str, Any], ConflictResult]:
        """Insert text at the start of a document, below its frontmatter by default."""
        ref = self.storage.resolve(path)
        created = False
        if not self.storage.exists(ref):
            if not create_if_missing:
                raise DocumentNotFoundError(
                    ref.virtual_path,
                    suggestion="Set create_if_missing to true to create it.",
                )
            new_content = content
            self.storage.write(ref, new_content)
            created = True
        else:
            existing = self.storage.read(ref)
            lines = existing.split("\n")
            block = find_frontmatter_block(lines) if after_frontmatter else None
            if block:
                head = "\n".join(lines[:block.end_line]) + "\n"
                rest = "\n".join(lines[block.end_line:])
            else:
                head, rest = "", existing

            addition = content
            if ensure_newline and not addition.endswith("\n"):
                addition += "\n"
            new_content = head + addition + rest
            conflict = self._write_from(ref, existing, new_content)
            if conflict:
                return conflict

        return {
            "success": True,
            "path": ref.virtual_path,
            "created": created,
            "bytesPrepended": len(content.encode("utf-8")),
            "newSize": len(new_content.encode("utf-8")),
            "etag": compute_etag(new_content),
        }

    def get_file_metadata(self, path: str) -> Dict[str, Any]:
        """Summarize a document without returning its content."""
        ref = self.storage.resolve(path)
        if not ref.full_path.exists():
            return {"path": ref.virtual_path, "exists": False}

        stat = ref.full_path.stat()
        result: Dict[str, Any] = {
            "path": ref.virtual_path,
            "exists": True,
            "type": "file" if ref.full_path.is_file() else "directory",
            "size": stat.st_size,
            "modified": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
        }
        if not ref.full_path.is_file():
            return result

        content = self.storage.read(ref)
        line_count = len(content.split("\n"))
        tags: List[str] = []
        for occurrence in extract_tags(content):
            if occurrence.tag not in tags:
                tags.append(occurrence.tag)

        result.update({
            "lineCount": line_count,
            "hasFrontmatter": split_frontmatter(content).has_frontmatter,
            "tags": tags,
            "linkCount": len(extract_wikilinks(content)),
            "sectionCount": len(parse_sections(content).sections),
            "largeFile": line_count > LARGE_FILE_LINES,
            "etag": compute_etag(content),
        })
        return result

    # =========================================================================
    # Sections
    # =========================================================================

    def get_sections(self, path: str) -> Dict[str, Any]:
        """List a document's heading structure (no content)."""
        ref, content = self._load(path)
        parsed = parse_sections(content)
        return {
            "path": ref.virtual_path,
            "totalLines": parsed.total_lines,
            "frontmatter": parsed.frontmatter.to_dict() if parsed.frontmatter else None,
            "sections": [section.to_dict() for section in parsed.sections],
        }

    def read_section(
        self,
        path: str,
        heading: str,
        include_children: bool = True,
        include_heading: bool = True,
    ) -> Dict[str, Any]:
        """Read one section by its full heading line.

        The heading ``"frontmatter"`` addresses the frontmatter block. A
        missing heading or frontmatter is reported as an ``error`` payload,
        not raised.
        """
        ref, content = self._load(path)
        etag = compute_etag(content)
        lines = content.split("\n")

        if heading == FRONTMATTER_SECTION:
            block = find_frontmatter_block(lines)
            if block is None:
                return {
                    "error": "No frontmatter found in file",
                    "suggestion": "Use update_frontmatter to add frontmatter to this file.",
                }
            return {
                "path": ref.virtual_path,
                "heading": FRONTMATTER_SECTION,
                "startLine": block.start_line,
                "endLine": block.end_line,
                "lineCount": block.end_line - block.start_line + 1,
                "content": "\n".join(lines[block.start_line - 1:block.end_line]),
                "etag": etag,
            }

        section = find_section(parse_sections(content).sections, heading)
        if section is None:
            return {
                "error": f"Heading '{heading}' not found in file",
                "suggestion": SECTIONS_HINT,
            }

        piece = extract_section(lines, section, include_children, include_heading)
        return {
            "path": ref.virtual_path,
            "heading": heading,
            "startLine": piece.start_line,
            "endLine": piece.end_line,
            "lineCount": piece.line_count,
            "content": piece.content,
            "etag": etag,
        }

    # =========================================================================
    # Frontmatter
    # =========================================================================

    def get_frontmatter(self, path: str) -> Dict[str, Any]:
        ref, content = self._load(path)
        doc = split_frontmatter(content)
        return {
            "path": ref.virtual_path,
            "hasFrontmatter": doc.has_frontmatter,
            "frontmatter": doc.data,
            "raw": doc.raw,
            "etag": compute_etag(content),
        }

    def update_frontmatter(
        self,
        path: str,
        updates: Dict[str, Any],
        remove: Optional[Sequence[str]] = None,
        expected_etag: Optional[str] = None,
    ) -> Union[Dict[str, Any], ConflictResult]:
        """Merge ``updates`` into the frontmatter and delete the ``remove`` keys.

        Keys not mentioned keep their values. A document without
        frontmatter gains a new block above its existing text.
        """
        ref, content = self._load(path)
        conflict = self._check_etag(ref, content, expected_etag)
        if conflict:
            return conflict

        doc = split_frontmatter(content)
        merged: Dict[str, Any] = dict(doc.data or {})
        merged.update(updates or {})
        for key in remove or []:
            merged.pop(key, None)

        new_content = render_document(merged, doc.body)
        conflict = self._write_from(ref, content, new_content, expected_etag)
        if conflict:
            return conflict

        return {
            "success": True,
            "path": ref.virtual_path,
            "frontmatter": merged,
            "etag": compute_etag(new_content),
        }

    # =========================================================================
    # Patching
    # =========================================================================

    def patch_file(
        self,
        path: str,
        patches: Sequence[Union[PatchOperation, Dict[str, Any]]],
        expected_etag: Optional[str] = None,
    ) -> Union[Dict[str, Any], ConflictResult]:
        """Apply patch operations in order and persist the result.

        Raises:
            pydantic.ValidationError: If an operation has an unknown type.
            PatchError: If a regex does not compile; nothing is written.
        """
        operations = [
            p if isinstance(p, PatchOperation) else PatchOperation.model_validate(p)
            for p in patches
        ]
        ref, content = self._load(path)
        conflict = self._check_etag(ref, content, expected_etag)
        if conflict:
            return conflict

        result = apply_patches(content, operations)
        if result.content != content:
            conflict = self._write_from(ref, content, result.content, expected_etag)
            if conflict:
                return conflict

        logger.info(
            f"Patched {ref.virtual_path}: {result.patches_applied} applied, "
            f"{result.patches_skipped} skipped"
        )
        return {
            "success": True,
            "path": ref.virtual_path,
            "patchesApplied": result.patches_applied,
            "patchesSkipped": result.patches_skipped,
            "linesAffected": result.lines_affected,
            "etag": compute_etag(result.content),
        }

"""Data models for the mdvault MCP server.

Parsed structures are plain dataclasses rebuilt on every request; their
``to_dict`` methods produce the camelCase JSON shapes returned to clients.
Patch operations arrive from clients and are validated with pydantic.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

# Sentinel heading that addresses the frontmatter block as a section
FRONTMATTER_SECTION = "frontmatter"

CONFLICT_MESSAGE = "File has been modified since last read"


@dataclass(frozen=True)
class FrontmatterBlock:
    """Line range of a frontmatter block, delimiters included (1-indexed, inclusive)."""

    start_line: int
    end_line: int

    def to_dict(self) -> Dict[str, int]:
        return {"startLine": self.start_line, "endLine": self.end_line}


@dataclass
class FrontmatterDocument:
    """A document split into its frontmatter block and body.

    Attributes:
        has_frontmatter: True when the first line is ``---`` and a closing
            ``---`` line follows.
        data: Parsed mapping, or None without frontmatter.
        raw: Text between the delimiters, or None without frontmatter.
        block: Line range of the block, or None without frontmatter.
        body: Everything after the closing delimiter line (the whole text
            when there is no frontmatter).
    """

    has_frontmatter: bool
    data: Optional[Dict[str, Any]]
    raw: Optional[str]
    block: Optional[FrontmatterBlock]
    body: str


@dataclass
class Section:
    """A heading-demarcated region of a document.

    ``heading`` is the full heading line (``"## Notes"``); the region before
    the first heading has ``heading=None`` and ``level=0``.
    """

    heading: Optional[str]
    level: int
    start_line: int
    end_line: int
    children: List["Section"] = field(default_factory=list)

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "heading": self.heading,
            "level": self.level,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "lineCount": self.line_count,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class ParsedSections:
    """Result of parsing a document's heading structure."""

    frontmatter: Optional[FrontmatterBlock]
    sections: List[Section]
    total_lines: int


@dataclass(frozen=True)
class WikilinkTarget:
    """The parts of a ``[[target#heading^block|alias]]`` token."""

    target_name: str
    heading: Optional[str] = None
    block_ref: Optional[str] = None
    display_text: Optional[str] = None
    is_embed: bool = False


@dataclass(frozen=True)
class WikilinkToken:
    """A wikilink found in a document (line and column are 1-indexed)."""

    raw: str
    line: int
    column: int
    target: WikilinkTarget

    @property
    def is_embed(self) -> bool:
        return self.target.is_embed


@dataclass(frozen=True)
class ResolvedLink:
    """Outcome of resolving a wikilink against the configured vaults."""

    target_path: Optional[str]
    target_exists: bool
    heading: Optional[str] = None
    block_ref: Optional[str] = None
    display_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetPath": self.target_path,
            "targetExists": self.target_exists,
            "heading": self.heading,
            "blockRef": self.block_ref,
            "displayText": self.display_text,
        }


@dataclass
class BacklinkMatch:
    """One link to the target found on a source line."""

    line: int
    link_text: str
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"line": self.line, "linkText": self.link_text}
        if self.context is not None:
            result["context"] = self.context
        return result


@dataclass
class BacklinkSource:
    """All links to the target from a single source document."""

    source_path: str
    source_title: str
    matches: List[BacklinkMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourcePath": self.source_path,
            "sourceTitle": self.source_title,
            "matches": [m.to_dict() for m in self.matches],
        }


TagLocation = Literal["frontmatter", "body"]


@dataclass(frozen=True)
class TagOccurrence:
    """A normalized tag and where it was found.

    ``line`` is the 1-indexed document line for body tags, None for
    frontmatter tags.
    """

    tag: str
    location: TagLocation
    line: Optional[int] = None


class PatchType(str, Enum):
    """Kinds of text mutation a patch operation can perform."""

    REPLACE_LINES = "replace_lines"
    INSERT_AFTER = "insert_after"
    DELETE_LINES = "delete_lines"
    REPLACE_FIRST = "replace_first"
    REPLACE_ALL = "replace_all"
    REPLACE_REGEX = "replace_regex"


class PatchOperation(BaseModel):
    """A single scripted edit.

    Which fields are required depends on ``type``; an operation missing
    them is skipped by the patch engine rather than rejected here.
    """

    type: PatchType = Field(..., description="Kind of edit")
    start_line: Optional[int] = Field(
        default=None, alias="startLine", description="First line of the range (1-indexed)"
    )
    end_line: Optional[int] = Field(
        default=None, alias="endLine", description="Last line of the range (inclusive)"
    )
    line: Optional[int] = Field(
        default=None, description="Insert after this line (0 inserts at the start)"
    )
    content: Optional[str] = Field(default=None, description="Replacement or inserted text")
    search: Optional[str] = Field(default=None, description="Literal text to find")
    replace: Optional[str] = Field(default=None, description="Replacement text")
    pattern: Optional[str] = Field(default=None, description="Regular expression")
    flags: Optional[str] = Field(default=None, description="Regex flags (default 'g')")

    model_config = {"populate_by_name": True, "extra": "ignore"}


@dataclass
class PatchResult:
    """Text produced by applying a patch list, with counters."""

    content: str
    patches_applied: int = 0
    lines_affected: int = 0
    patches_skipped: int = 0


@dataclass
class ConflictResult:
    """Response indicating the document changed since the caller read it.

    Attributes:
        path: Virtual path of the document.
        expected_etag: The version token the caller supplied.
        current_etag: The version token of the stored text.
        current_content: The stored text, so the caller can re-synchronize.
        message: Human-readable description of the conflict.
    """

    path: str
    expected_etag: str
    current_etag: str
    current_content: Optional[str] = None
    message: str = CONFLICT_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "error": "Conflict detected",
            "message": self.message,
            "path": self.path,
            "currentEtag": self.current_etag,
            "expectedEtag": self.expected_etag,
        }
        if self.current_content is not None:
            result["currentContent"] = self.current_content
        return result


@dataclass(frozen=True)
class DocumentRef:
    """A document location: vault name, vault-relative path and filesystem path."""

    vault: str
    relative_path: str
    full_path: Path

    @property
    def virtual_path(self) -> str:
        if not self.relative_path:
            return f"/{self.vault}"
        return f"/{self.vault}/{self.relative_path}"

    @property
    def stem(self) -> str:
        return PurePosixPath(self.relative_path).stem if self.relative_path else self.vault

    @property
    def is_markdown(self) -> bool:
        return self.relative_path.lower().endswith(".md")

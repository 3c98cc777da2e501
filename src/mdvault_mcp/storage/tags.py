"""Tag extraction.

Tags come from the frontmatter ``tags`` key and from ``#tag`` tokens in
the body. They are normalized to lowercase without the leading ``#``;
``/`` separates hierarchy levels, so ``project/frontend`` sits under
``project``.
"""
import re
from typing import Any, List, Mapping, Optional

from mdvault_mcp.models.schema import TagOccurrence
from mdvault_mcp.storage.frontmatter import split_frontmatter
from mdvault_mcp.storage.section_parser import iter_body_lines

# Must not be preceded by non-whitespace, so URL fragments and "C#" are skipped
INLINE_TAG_RE = re.compile(r"(?<!\S)#([\w\-/]+)")

LOCATIONS = ("frontmatter", "body", "both")


def normalize_tag(tag: Any) -> str:
    return str(tag).strip().strip("\"'").lstrip("#").lower()


def tag_matches(search: str, tag: str) -> bool:
    """True when ``tag`` equals ``search`` or is nested under it."""
    search = normalize_tag(search)
    tag = normalize_tag(tag)
    return tag == search or tag.startswith(search + "/")


def frontmatter_tags(data: Optional[Mapping[str, Any]]) -> List[str]:
    """Read tags from a parsed frontmatter mapping.

    ``tags`` may be a list (inline or block form) or a single string
    separated by commas or whitespace.
    """
    if not data:
        return []
    value = data.get("tags")
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [item for item in value if item is not None and not isinstance(item, (dict, list))]
    elif isinstance(value, Mapping):
        return []
    else:
        items = re.split(r"[,\s]+", str(value))
    tags = [normalize_tag(item) for item in items]
    return [tag for tag in tags if tag]


def extract_tags(content: str, location: str = "both") -> List[TagOccurrence]:
    """Collect every tag occurrence in a document.

    Args:
        content: Full document text.
        location: ``"frontmatter"``, ``"body"`` or ``"both"``.

    Returns:
        Occurrences in document order, frontmatter tags first. Body tags
        carry their 1-indexed line; the frontmatter block and fenced code
        are never scanned for inline tags.
    """
    doc = split_frontmatter(content)
    occurrences: List[TagOccurrence] = []

    if location in ("frontmatter", "both"):
        occurrences.extend(
            TagOccurrence(tag=tag, location="frontmatter")
            for tag in frontmatter_tags(doc.data)
        )

    if location in ("body", "both"):
        lines = content.split("\n")
        start = doc.block.end_line if doc.block else 0
        for index in iter_body_lines(lines, start):
            for match in INLINE_TAG_RE.finditer(lines[index]):
                tag = normalize_tag(match.group(1))
                if tag:
                    occurrences.append(TagOccurrence(tag=tag, location="body", line=index + 1))

    return occurrences

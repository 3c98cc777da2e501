"""Heading structure of Markdown documents.

A single forward pass over the lines finds ATX headings while skipping
the frontmatter block, fenced code blocks and blockquotes. The flat list
of regions is then folded into a tree by heading level.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from mdvault_mcp.models.schema import ParsedSections, Section
from mdvault_mcp.storage.frontmatter import find_frontmatter_block

FENCE_RE = re.compile(r"^(`{3,}|~{3,})")
HEADING_RE = re.compile(r"^(#{1,6})\s+")


@dataclass
class SectionSlice:
    """A line window cut out of a document for one section."""

    start_line: int
    end_line: int
    content: str

    @property
    def line_count(self) -> int:
        return max(0, self.end_line - self.start_line + 1)


def iter_body_lines(lines: List[str], start: int = 0) -> Iterable[int]:
    """Yield indexes of lines outside fenced code blocks.

    Fence delimiter lines are never yielded.
    """
    in_fence = False
    for index in range(start, len(lines)):
        if FENCE_RE.match(lines[index]):
            in_fence = not in_fence
            continue
        if not in_fence:
            yield index


def parse_sections(content: str) -> ParsedSections:
    """Parse a document into its heading hierarchy.

    Args:
        content: Full document text.

    Returns:
        ParsedSections with the frontmatter block (if any), the root
        sections and the total line count.
    """
    lines = content.split("\n")
    total_lines = len(lines)

    frontmatter = find_frontmatter_block(lines)
    content_start = frontmatter.end_line + 1 if frontmatter else 1

    headings = []
    for index in iter_body_lines(lines, content_start - 1):
        line = lines[index]
        if line.startswith(">"):
            continue
        match = HEADING_RE.match(line)
        if match:
            headings.append((line.rstrip("\r"), len(match.group(1)), index + 1))

    flat: List[Section] = []
    if headings and headings[0][2] > content_start:
        flat.append(Section(
            heading=None,
            level=0,
            start_line=content_start,
            end_line=headings[0][2] - 1,
        ))

    for i, (text, level, line_number) in enumerate(headings):
        end_line = headings[i + 1][2] - 1 if i + 1 < len(headings) else total_lines
        flat.append(Section(heading=text, level=level, start_line=line_number, end_line=end_line))

    return ParsedSections(
        frontmatter=frontmatter,
        sections=_build_tree(flat),
        total_lines=total_lines,
    )


def _build_tree(flat: List[Section]) -> List[Section]:
    roots: List[Section] = []
    stack: List[Section] = []

    for section in flat:
        if section.heading is None:
            roots.append(section)
            continue

        while stack and stack[-1].level >= section.level:
            stack.pop()

        if stack:
            stack[-1].children.append(section)
        else:
            roots.append(section)
        stack.append(section)

    _extend_to_children(roots)
    return roots


def _extend_to_children(sections: List[Section]) -> None:
    """Grow each parent's range to cover its last child, bottom-up."""
    for section in sections:
        if section.children:
            _extend_to_children(section.children)
            section.end_line = max(section.end_line, section.children[-1].end_line)


def find_section(sections: List[Section], heading: str) -> Optional[Section]:
    """Find the first section whose heading line equals ``heading``.

    The search is depth-first in document order, so with duplicate
    headings the earliest one wins.
    """
    for section in sections:
        if section.heading == heading:
            return section
        found = find_section(section.children, heading)
        if found is not None:
            return found
    return None


def extract_section(
    lines: List[str],
    section: Section,
    include_children: bool = True,
    include_heading: bool = True,
) -> SectionSlice:
    """Cut a section's lines out of a document.

    Args:
        lines: The document split on newlines.
        section: The section to extract.
        include_children: When False, stop before the first child heading.
        include_heading: When False, start on the line after the heading.
    """
    start_line = section.start_line
    end_line = section.end_line
    if not include_children and section.children:
        end_line = section.children[0].start_line - 1
    if not include_heading:
        start_line += 1

    start_line = max(start_line, 1)
    end_line = min(end_line, len(lines))
    return SectionSlice(
        start_line=start_line,
        end_line=end_line,
        content="\n".join(lines[start_line - 1:end_line]),
    )

"""Frontmatter parsing and serialization.

Reads the ``---`` delimited block at the top of a document into a plain
mapping and writes a mapping back as text, both through PyYAML. The
loader only recognises ``true``/``false``, ``null``/``~`` and plain
decimal numbers implicitly, so dates, times and words like ``yes`` stay
strings. A block that is not valid YAML is retried one top-level entry at
a time; an entry that still fails keeps its same-line value as a raw
scalar, and only entries with nothing readable are dropped. A `` #`` inside
a same-line value is part of the value, not a comment.

The dumper shares the loader's resolvers, so everything it writes reads
back to an equal mapping.
"""
import logging
import re
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import yaml

from mdvault_mcp.models.schema import FrontmatterBlock, FrontmatterDocument

logger = logging.getLogger(__name__)

DELIMITER = "---"

_BOOL_RE = re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$")
_NULL_RE = re.compile(r"^(?:~|null|Null|NULL|)$")
_INT_RE = re.compile(r"^-?[0-9]+$")
_FLOAT_RE = re.compile(r"^-?[0-9]+\.[0-9]+$")

_IMPLICIT_RESOLVERS = (
    ("tag:yaml.org,2002:bool", _BOOL_RE, list("tTfF")),
    ("tag:yaml.org,2002:null", _NULL_RE, list("~nN") + [""]),
    ("tag:yaml.org,2002:int", _INT_RE, list("-0123456789")),
    ("tag:yaml.org,2002:float", _FLOAT_RE, list("-0123456789")),
)

# A top-level "key: value" line with the value on the same line
_INLINE_ENTRY_RE = re.compile(r"^([^\s#'\"\-\[\{?][^:]*?):[ \t]+(\S.*?)\s*$")
# "#" that YAML would read as the start of a comment
_COMMENT_HASH_RE = re.compile(r"(?:^|\s)#")


class _FrontmatterLoader(yaml.SafeLoader):
    """SafeLoader with the narrower implicit typing used for note metadata."""

    yaml_implicit_resolvers: Dict[Any, list] = {}


class _FrontmatterDumper(yaml.SafeDumper):
    """SafeDumper that indents block lists and prefers double quotes."""

    yaml_implicit_resolvers: Dict[Any, list] = {}

    def increase_indent(self, flow=False, indentless=False):
        return super().increase_indent(flow, False)

    def choose_scalar_style(self):
        style = super().choose_scalar_style()
        return '"' if style == "'" else style


for _tag, _pattern, _first in _IMPLICIT_RESOLVERS:
    for _cls in (_FrontmatterLoader, _FrontmatterDumper):
        _cls.add_implicit_resolver(_tag, _pattern, _first)


def _construct_int(loader: yaml.SafeLoader, node: yaml.Node) -> int:
    # Decimal only, so 007 is 7 rather than an octal literal
    return int(loader.construct_scalar(node))


def _represent_sequence(dumper: yaml.SafeDumper, data) -> yaml.Node:
    # Lists of scalars stay inline: tags: [a, b]
    flow = all(not isinstance(item, (dict, list, tuple)) for item in data)
    return dumper.represent_sequence("tag:yaml.org,2002:seq", data, flow_style=flow)


def _represent_float(dumper: yaml.SafeDumper, value: float) -> yaml.Node:
    if value != value or value in (float("inf"), float("-inf")):
        return dumper.represent_str(repr(value))
    text = repr(value)
    if not _FLOAT_RE.match(text):
        text = format(Decimal(text), "f")
        if "." not in text:
            text += ".0"
    return dumper.represent_scalar("tag:yaml.org,2002:float", text)


_FrontmatterLoader.add_constructor("tag:yaml.org,2002:int", _construct_int)
_FrontmatterDumper.add_representer(list, _represent_sequence)
_FrontmatterDumper.add_representer(tuple, _represent_sequence)
_FrontmatterDumper.add_representer(float, _represent_float)


def split_frontmatter(content: str) -> FrontmatterDocument:
    """Separate the frontmatter block from the body.

    The block exists only when the first line is exactly ``---`` and a
    later line is exactly ``---`` (a trailing ``\\r`` is tolerated on both).

    Args:
        content: Full document text.

    Returns:
        A FrontmatterDocument; without a block, ``body`` is the whole text.
    """
    lines = content.split("\n")
    block = find_frontmatter_block(lines)
    if block is None:
        return FrontmatterDocument(False, None, None, None, content)

    raw = "\n".join(lines[1:block.end_line - 1])
    return FrontmatterDocument(
        has_frontmatter=True,
        data=parse_frontmatter(raw),
        raw=raw,
        block=block,
        body="\n".join(lines[block.end_line:]),
    )


def find_frontmatter_block(lines: List[str]) -> Optional[FrontmatterBlock]:
    """Locate the frontmatter delimiters in a document split on newlines."""
    if not lines or lines[0].rstrip("\r") != DELIMITER:
        return None
    for index in range(1, len(lines)):
        if lines[index].rstrip("\r") == DELIMITER:
            return FrontmatterBlock(start_line=1, end_line=index + 1)
    return None


def parse_frontmatter(raw: str) -> Dict[str, Any]:
    """Parse the text between the frontmatter delimiters into a mapping."""
    try:
        data = yaml.load(raw, Loader=_FrontmatterLoader)
    except yaml.YAMLError as e:
        logger.debug(f"Frontmatter is not valid YAML, parsing entries one by one: {e}")
        data = _parse_entries(raw)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.debug(f"Dropping frontmatter that is not a mapping: {type(data).__name__}")
        return {}
    _restore_hash_values(raw, data)
    return data


def _parse_entries(raw: str) -> Dict[str, Any]:
    """Load each top-level entry on its own.

    An entry YAML rejects keeps its key when the value sits on the key's
    line (``description: Note: important``); that value is read as a raw
    scalar. Anything else that fails is dropped.
    """
    chunks: List[List[str]] = []
    for line in raw.split("\n"):
        starts_entry = line[:1] not in ("", " ", "\t", "#", "-")
        if starts_entry or not chunks:
            chunks.append([])
        chunks[-1].append(line)

    result: Dict[str, Any] = {}
    for chunk in chunks:
        text = "\n".join(chunk)
        try:
            data = yaml.load(text, Loader=_FrontmatterLoader)
        except yaml.YAMLError:
            match = _INLINE_ENTRY_RE.match(chunk[0].rstrip("\r"))
            if match is None:
                logger.debug(f"Dropping unparseable frontmatter entry: {text!r}")
                continue
            if any(line.strip() for line in chunk[1:]):
                logger.debug(f"Dropping continuation lines of frontmatter entry: {text!r}")
            result[match.group(1).strip()] = _parse_inline_value(match.group(2))
            continue
        if isinstance(data, dict):
            result.update(data)
        elif data is not None:
            logger.debug(f"Dropping unparseable frontmatter entry: {text!r}")
    return result


def _restore_hash_values(raw: str, data: Dict[str, Any]) -> None:
    """Re-read top-level values that YAML cut short at `` #``.

    ``title: Meeting #3`` and ``tags: #project, #idea`` are note values,
    not comments, so the whole text after the colon is kept.
    """
    for line in raw.split("\n"):
        match = _INLINE_ENTRY_RE.match(line.rstrip("\r"))
        if match is None:
            continue
        key, value = match.group(1).strip(), match.group(2)
        if value[0] in "\"'[{|>&*!" or not _COMMENT_HASH_RE.search(value):
            continue
        if key in data and isinstance(data[key], (dict, list)):
            continue
        data[key] = _parse_scalar(value)


def _parse_inline_value(text: str) -> Any:
    """Read a same-line value: a bracketed list or a single scalar."""
    text = text.strip()
    if text.startswith("[") and text.endswith("]"):
        inner = text[1:-1].strip()
        return [_parse_scalar(item) for item in inner.split(",")] if inner else []
    return _parse_scalar(text)


def _parse_scalar(text: str) -> Any:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    if _BOOL_RE.match(text):
        return text.lower() == "true"
    if _NULL_RE.match(text):
        return None
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    return text


def serialize_frontmatter(data: Mapping[str, Any]) -> str:
    """Serialize a mapping into frontmatter text (without delimiters).

    Returns an empty string for an empty mapping, otherwise one or more
    lines each ending in a newline.
    """
    if not data:
        return ""
    return yaml.dump(
        dict(data),
        Dumper=_FrontmatterDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=float("inf"),
    )


def render_document(data: Mapping[str, Any], body: str) -> str:
    """Join a frontmatter mapping and a body into a full document."""
    return f"{DELIMITER}\n{serialize_frontmatter(data)}{DELIMITER}\n{body}"


def frontmatter_title(doc: FrontmatterDocument) -> Optional[str]:
    """Return the frontmatter ``title`` when it is a non-empty scalar."""
    if not doc.data:
        return None
    title = doc.data.get("title")
    if title is None or isinstance(title, (dict, list)):
        return None
    title = str(title).strip()
    return title or None

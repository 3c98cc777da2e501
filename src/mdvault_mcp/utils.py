"""Utility functions for the mdvault MCP server."""
import hashlib
import re
from typing import Callable, Tuple

from mdvault_mcp.exceptions import PatchError

# Letters accepted in JavaScript-style regex flags and their re equivalents.
# "g" (global) and "u"/"y"/"d" carry no re flag; "g" only controls the count.
_JS_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}

_JS_NAMED_GROUP = re.compile(r"\(\?<(?![=!])")
_JS_NAMED_BACKREF = re.compile(r"\\k<(\w+)>")
_JS_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|<(\w+)>|\d{1,2})")


def compute_etag(content: str) -> str:
    """Compute the version token of a document.

    The token is the first 16 hex characters of the SHA-256 digest of the
    UTF-8 encoded text. It detects concurrent modification; it is not an
    integrity check.

    Args:
        content: The full raw text of the document.

    Returns:
        A 16 character lowercase hex string.

    Example:
        >>> compute_etag("hello")
        '2cf24dba5fb0a30e'
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


def compile_js_regex(pattern: str, flags: str = "g") -> Tuple[re.Pattern, bool]:
    """Compile a JavaScript-style pattern and flag string.

    Named groups written as ``(?<name>...)`` and ``\\k<name>`` back
    references are rewritten to their re spelling. Unknown flag letters
    are ignored.

    Returns:
        The compiled pattern and whether every match should be replaced.

    Raises:
        PatchError: If the pattern does not compile.
    """
    re_flags = 0
    for letter in flags:
        re_flags |= _JS_FLAGS.get(letter, 0)

    translated = _JS_NAMED_GROUP.sub("(?P<", pattern)
    translated = _JS_NAMED_BACKREF.sub(r"(?P=\1)", translated)
    try:
        compiled = re.compile(translated, re_flags)
    except re.error as e:
        raise PatchError(f"Invalid regular expression /{pattern}/: {e}", patch_type="replace_regex")
    return compiled, "g" in flags


def js_replacement(template: str) -> Callable[[re.Match], str]:
    """Build a re.sub callback that expands a JavaScript replacement string.

    Supports ``$$``, ``$&``, ``$1``..``$99`` and ``$<name>``. A reference to a
    group the pattern does not have is kept literally, and backslashes are
    never special.
    """

    def expand(match: re.Match) -> str:
        group_count = len(match.groups())
        named = match.re.groupindex

        def substitute(token: re.Match) -> str:
            body = token.group(1)
            if body == "$":
                return "$"
            if body == "&":
                return match.group(0)
            if token.group(2) is not None:
                name = token.group(2)
                if name in named:
                    return match.group(name) or ""
                return token.group(0)
            # Two digits win only when that group exists
            if len(body) == 2 and 0 < int(body) <= group_count:
                return match.group(int(body)) or ""
            first = int(body[0])
            if 0 < first <= group_count:
                return (match.group(first) or "") + body[1:]
            return token.group(0)

        return _JS_REPLACEMENT_TOKEN.sub(substitute, template)

    return expand

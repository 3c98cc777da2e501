"""Scripted text mutations.

Operations run in the order given, each against the text produced by the
ones before it. An operation missing a field its kind requires is skipped
and counted in ``patches_skipped``; the rest of the batch still runs.
"""
import logging
from typing import Callable, Dict, Optional, Sequence, Tuple

from mdvault_mcp.exceptions import PatchError
from mdvault_mcp.models.schema import PatchOperation, PatchResult, PatchType
from mdvault_mcp.utils import compile_js_regex, js_replacement

logger = logging.getLogger(__name__)

# (new content, applied, lines affected), or None when the operation is skipped
_Outcome = Optional[Tuple[str, bool, int]]


def _replace_lines(content: str, op: PatchOperation) -> _Outcome:
    if not op.start_line or op.start_line < 1 or not op.end_line or op.content is None:
        return None
    lines = content.split("\n")
    start = op.start_line - 1
    lines[start:op.end_line] = op.content.split("\n")
    return "\n".join(lines), True, max(0, op.end_line - start)


def _insert_after(content: str, op: PatchOperation) -> _Outcome:
    if op.line is None or op.line < 0 or op.content is None:
        return None
    lines = content.split("\n")
    new_lines = op.content.split("\n")
    lines[op.line:op.line] = new_lines
    return "\n".join(lines), True, len(new_lines)


def _delete_lines(content: str, op: PatchOperation) -> _Outcome:
    if not op.start_line or op.start_line < 1 or not op.end_line:
        return None
    lines = content.split("\n")
    start = op.start_line - 1
    deleted = len(lines[start:op.end_line])
    del lines[start:op.end_line]
    return "\n".join(lines), True, deleted


def _replace_first(content: str, op: PatchOperation) -> _Outcome:
    if not op.search or op.replace is None:
        return None
    index = content.find(op.search)
    if index == -1:
        return content, False, 0
    content = content[:index] + op.replace + content[index + len(op.search):]
    return content, True, 1


def _replace_all(content: str, op: PatchOperation) -> _Outcome:
    if not op.search or op.replace is None:
        return None
    count = content.count(op.search)
    if not count:
        return content, False, 0
    return content.replace(op.search, op.replace), True, count


def _replace_regex(content: str, op: PatchOperation) -> _Outcome:
    if not op.pattern or op.replace is None:
        return None
    pattern, replace_every = compile_js_regex(op.pattern, op.flags or "g")
    content, count = pattern.subn(
        js_replacement(op.replace), content, count=0 if replace_every else 1
    )
    return content, count > 0, count


_HANDLERS: Dict[PatchType, Callable[[str, PatchOperation], _Outcome]] = {
    PatchType.REPLACE_LINES: _replace_lines,
    PatchType.INSERT_AFTER: _insert_after,
    PatchType.DELETE_LINES: _delete_lines,
    PatchType.REPLACE_FIRST: _replace_first,
    PatchType.REPLACE_ALL: _replace_all,
    PatchType.REPLACE_REGEX: _replace_regex,
}


def apply_patches(content: str, operations: Sequence[PatchOperation]) -> PatchResult:
    """Apply operations sequentially to ``content``.

    Args:
        content: The document text to start from.
        operations: Patch operations in the order they must run.

    Returns:
        PatchResult with the final text and counters. Literal and regex
        replacements that find nothing leave the text alone and are not
        counted as applied.

    Raises:
        PatchError: If a regex pattern does not compile. Nothing from the
            batch should be persisted in that case.
    """
    result = PatchResult(content=content)
    for index, op in enumerate(operations):
        try:
            outcome = _HANDLERS[op.type](result.content, op)
        except PatchError as e:
            raise PatchError(e.message, index=index, patch_type=op.type.value) from e

        if outcome is None:
            logger.debug(f"Skipping patch {index} ({op.type.value}): missing required fields")
            result.patches_skipped += 1
            continue

        result.content, applied, affected = outcome
        if applied:
            result.patches_applied += 1
            result.lines_affected += affected
    return result

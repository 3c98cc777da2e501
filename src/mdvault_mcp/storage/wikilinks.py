"""Wikilink token grammar.

A token looks like ``[[target#heading^block|alias]]``; a leading ``!``
marks an embed. Only parsing and scanning live here; resolving a target
against the vaults is done by the link service.
"""
import re
from typing import Iterator, List

from mdvault_mcp.models.schema import WikilinkTarget, WikilinkToken

WIKILINK_RE = re.compile(r"(!?\[\[([^\]]+)\]\])")
# Same as WIKILINK_RE but never matches an embed
LINK_ONLY_RE = re.compile(r"(?<!!)\[\[([^\]]+)\]\]")


def parse_wikilink(text: str) -> WikilinkTarget:
    """Split a wikilink into its parts.

    Accepts the token with or without ``!`` and the surrounding brackets.
    Empty parts come back as None.

    Example:
        >>> parse_wikilink("![[notes/a#Intro^b1|see]]")
        WikilinkTarget(target_name='notes/a', heading='Intro', block_ref='b1', display_text='see', is_embed=True)
    """
    link = text.strip()
    is_embed = link.startswith("!")
    if is_embed:
        link = link[1:]
    if link.startswith("[["):
        link = link[2:]
    if link.endswith("]]"):
        link = link[:-2]

    display_text = None
    if "|" in link:
        link, display_text = link.split("|", 1)

    heading = None
    if "#" in link:
        link, heading = link.split("#", 1)

    block_ref = None
    if heading is not None and "^" in heading:
        heading, block_ref = heading.split("^", 1)
    elif "^" in link:
        link, block_ref = link.split("^", 1)

    return WikilinkTarget(
        target_name=link.strip(),
        heading=heading or None,
        block_ref=block_ref or None,
        display_text=display_text or None,
        is_embed=is_embed,
    )


def iter_wikilinks(content: str, include_embeds: bool = True) -> Iterator[WikilinkToken]:
    """Yield every wikilink in a document with 1-indexed line and column."""
    pattern = WIKILINK_RE if include_embeds else LINK_ONLY_RE
    for line_index, line in enumerate(content.split("\n")):
        for match in pattern.finditer(line):
            raw = match.group(0)
            yield WikilinkToken(
                raw=raw,
                line=line_index + 1,
                column=match.start() + 1,
                target=parse_wikilink(raw),
            )


def extract_wikilinks(content: str, include_embeds: bool = True) -> List[WikilinkToken]:
    return list(iter_wikilinks(content, include_embeds))

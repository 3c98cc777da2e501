"""Wikilink resolution and backlink discovery."""

import logging
import posixpath
import re
from typing import Any, Dict, List, Optional, Tuple

from mdvault_mcp.config import VaultConfig
from mdvault_mcp.exceptions import InvalidPathError, VaultError
from mdvault_mcp.models.schema import (
    BacklinkMatch,
    BacklinkSource,
    DocumentRef,
    ResolvedLink,
)
from mdvault_mcp.storage.frontmatter import frontmatter_title, split_frontmatter
from mdvault_mcp.storage.vault_storage import VaultStorage
from mdvault_mcp.storage.wikilinks import iter_wikilinks, parse_wikilink

logger = logging.getLogger(__name__)


class LinkService:
    """Resolves wikilinks to documents and finds who links to a document.

    Resolution tries, vault by vault in configuration order:

    1. the target relative to the linking document's directory,
    2. the target as a path from the vault root,
    3. any Markdown document whose path ends with the target
       (case-insensitive, shortest walk order first),
    4. any non-Markdown attachment with that file name.

    Nothing is cached; every call walks the vaults again.
    """

    def __init__(
        self,
        storage: Optional[VaultStorage] = None,
        vault_config: Optional[VaultConfig] = None,
    ):
        self.storage = storage or VaultStorage(vault_config)

    # =========================================================================
    # Resolution
    # =========================================================================

    def _lookup(self, vault: str, relative: str) -> Optional[DocumentRef]:
        try:
            ref = self.storage.resolve(f"/{vault}/{relative}")
        except InvalidPathError:
            return None
        return ref if self.storage.exists(ref) else None

    def _lookup_exact(self, vault: str, relative: str) -> Optional[DocumentRef]:
        if not relative or relative == ".":
            return None
        if not relative.lower().endswith(".md"):
            ref = self._lookup(vault, relative + ".md")
            if ref:
                return ref
        if posixpath.splitext(relative)[1]:
            return self._lookup(vault, relative)
        return None

    def _resolve_in_vault(
        self, vault: str, name: str, source: Optional[DocumentRef]
    ) -> Tuple[Optional[DocumentRef], bool]:
        """Find ``name`` in one vault.

        Returns:
            ``(ref, is_attachment)``; ``ref`` is None on a miss.
        """
        if source is not None and source.vault == vault:
            base = posixpath.dirname(source.relative_path)
            if base:
                ref = self._lookup_exact(vault, posixpath.normpath(posixpath.join(base, name)))
                if ref:
                    return ref, not ref.is_markdown

        ref = self._lookup_exact(vault, name)
        if ref:
            return ref, not ref.is_markdown

        wanted = name.lower()
        if wanted.endswith(".md"):
            wanted = wanted[:-3]
        for candidate in self.storage.iter_documents(vault):
            path = candidate.relative_path[:-3].lower()
            if path == wanted or path.endswith("/" + wanted):
                return candidate, False

        if not name.lower().endswith(".md"):
            wanted = name.lower()
            for candidate in self.storage.iter_documents(vault, markdown_only=False):
                if candidate.is_markdown:
                    continue
                path = candidate.relative_path.lower()
                if path == wanted or path.endswith("/" + wanted):
                    return candidate, True

        return None, False

    def resolve(self, link: str, source_path: Optional[str] = None) -> ResolvedLink:
        """Resolve a wikilink token to a document.

        Args:
            link: The token, with or without ``!`` and brackets.
            source_path: Virtual path of the linking document, enabling
                links relative to its directory and ``[[#Heading]]`` links
                to the document itself.

        Returns:
            ResolvedLink; ``target_path`` is None when nothing matched.
            Links resolved to an attachment drop their heading and block.
        """
        target = parse_wikilink(link)
        source = self.storage.resolve(source_path) if source_path else None
        name = target.target_name.lstrip("/")

        if not name:
            if source is not None and self.storage.exists(source):
                return ResolvedLink(
                    target_path=source.virtual_path,
                    target_exists=True,
                    heading=target.heading,
                    block_ref=target.block_ref,
                    display_text=target.display_text,
                )
        else:
            for vault in self.storage.vault_names:
                ref, is_attachment = self._resolve_in_vault(vault, name, source)
                if ref is None:
                    continue
                return ResolvedLink(
                    target_path=ref.virtual_path,
                    target_exists=True,
                    heading=None if is_attachment else target.heading,
                    block_ref=None if is_attachment else target.block_ref,
                    display_text=target.display_text,
                )

        logger.debug(f"Unresolved wikilink: {link}")
        return ResolvedLink(
            target_path=None,
            target_exists=False,
            heading=target.heading,
            block_ref=target.block_ref,
            display_text=target.display_text,
        )

    def resolve_wikilink(self, link: str, source_path: Optional[str] = None) -> Dict[str, Any]:
        resolved = self.resolve(link, source_path)
        return {"link": link, "resolved": resolved.target_exists, **resolved.to_dict()}

    def extract_wikilinks(
        self, path: str, resolve: bool = True, include_embeds: bool = True
    ) -> Dict[str, Any]:
        """List every wikilink in a document, optionally resolving each one."""
        ref = self.storage.resolve(path)
        content = self.storage.read(ref)

        links: List[Dict[str, Any]] = []
        unresolved = 0
        # Repeated tokens in one document resolve the same way
        seen: Dict[str, ResolvedLink] = {}
        for token in iter_wikilinks(content, include_embeds=include_embeds):
            item: Dict[str, Any] = {
                "raw": token.raw,
                "line": token.line,
                "column": token.column,
                "isEmbed": token.is_embed,
            }
            if resolve:
                key = token.raw.lstrip("!")
                if key not in seen:
                    seen[key] = self.resolve(token.raw, source_path=ref.virtual_path)
                resolved = seen[key]
                item["resolved"] = resolved.to_dict()
                if not resolved.target_exists:
                    unresolved += 1
            links.append(item)

        return {"path": ref.virtual_path, "links": links, "unresolvedCount": unresolved}

    # =========================================================================
    # Backlinks
    # =========================================================================

    @staticmethod
    def _backlink_pattern(target: DocumentRef) -> re.Pattern:
        """Match links to ``target`` by vault path or by bare name.

        Heading and alias suffixes are allowed; embeds match too since
        ``![[x]]`` contains ``[[x]]``.
        """
        if target.is_markdown:
            path_form = target.relative_path[:-3]
            name_form = target.stem
            suffix = r"(?:\.md)?"
        else:
            path_form = target.relative_path
            name_form = posixpath.basename(target.relative_path)
            suffix = ""

        forms = [path_form]
        if name_form.lower() != path_form.lower():
            forms.append(name_form)
        alternatives = "|".join(re.escape(form) for form in forms)
        return re.compile(
            rf"\[\[(?:{alternatives}){suffix}(#[^\]|]*)?(\|[^\]]*)?\]\]",
            re.IGNORECASE,
        )

    def get_backlinks(
        self, path: str, include_context: bool = False, context_lines: int = 1
    ) -> Dict[str, Any]:
        """Find documents in any vault that link to ``path``.

        Args:
            path: Virtual path of the target document.
            include_context: Attach the surrounding lines to each match.
            context_lines: Lines of context on each side of the match.

        Returns:
            ``{targetPath, backlinks, totalCount}`` with sources ordered by
            how many links they contain, most first. ``totalCount`` counts
            every matching link, not every source.
        """
        target = self.storage.resolve(path)
        pattern = self._backlink_pattern(target)
        context_lines = max(0, context_lines)

        backlinks: List[BacklinkSource] = []
        for ref in self.storage.iter_documents():
            if ref.full_path == target.full_path:
                continue
            try:
                content = self.storage.read(ref)
            except VaultError as e:
                logger.warning(f"Skipping unreadable document {ref.virtual_path}: {e}")
                continue

            lines = content.split("\n")
            matches: List[BacklinkMatch] = []
            for index, line in enumerate(lines):
                for match in pattern.finditer(line):
                    context = None
                    if include_context:
                        start = max(0, index - context_lines)
                        end = min(len(lines), index + context_lines + 1)
                        context = "\n".join(lines[start:end])
                    matches.append(BacklinkMatch(
                        line=index + 1, link_text=match.group(0), context=context
                    ))

            if matches:
                title = frontmatter_title(split_frontmatter(content)) or ref.stem
                backlinks.append(BacklinkSource(
                    source_path=ref.virtual_path, source_title=title, matches=matches
                ))

        backlinks.sort(key=lambda source: len(source.matches), reverse=True)
        return {
            "targetPath": target.virtual_path,
            "backlinks": [source.to_dict() for source in backlinks],
            "totalCount": sum(len(source.matches) for source in backlinks),
        }

"""Tag search and tag inventory across the vaults."""

import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from mdvault_mcp.config import VaultConfig
from mdvault_mcp.exceptions import ValidationError, VaultError
from mdvault_mcp.models.schema import DocumentRef
from mdvault_mcp.storage.frontmatter import frontmatter_title, split_frontmatter
from mdvault_mcp.storage.tags import LOCATIONS, extract_tags, normalize_tag, tag_matches
from mdvault_mcp.storage.vault_storage import VaultStorage

logger = logging.getLogger(__name__)

MATCH_MODES = ("any", "all")


class TagService:
    """Searches documents by tag and counts tag usage.

    Searching for a tag also finds its nested tags: ``project`` matches
    ``project/frontend``.
    """

    def __init__(
        self,
        storage: Optional[VaultStorage] = None,
        vault_config: Optional[VaultConfig] = None,
    ):
        self.storage = storage or VaultStorage(vault_config)

    def _iter_contents(self, path: Optional[str]) -> Iterator[Tuple[DocumentRef, str]]:
        for ref in self.storage.iter_scope(path):
            try:
                yield ref, self.storage.read(ref)
            except VaultError as e:
                logger.warning(f"Skipping unreadable document {ref.virtual_path}: {e}")

    def search_by_tag(
        self,
        tags: Sequence[str],
        match: str = "any",
        path: Optional[str] = None,
        location: str = "both",
    ) -> Dict[str, Any]:
        """Find documents carrying the given tags.

        Args:
            tags: Tags to look for, with or without ``#``.
            match: ``"any"`` needs one search tag to hit, ``"all"`` needs every one.
            path: Restrict the scan to a virtual directory or file.
            location: ``"frontmatter"``, ``"body"`` or ``"both"``.

        Returns:
            Matching documents, those with the most matched tags first.
        """
        if match not in MATCH_MODES:
            raise ValidationError(
                f"match must be one of {', '.join(MATCH_MODES)}", field="match", value=match
            )
        if location not in LOCATIONS:
            raise ValidationError(
                f"location must be one of {', '.join(LOCATIONS)}",
                field="location",
                value=location,
            )
        search = [normalize_tag(tag) for tag in tags]
        search = [tag for tag in search if tag]
        if not search:
            raise ValidationError("At least one tag is required", field="tags", value=list(tags))

        results: List[Dict[str, Any]] = []
        for ref, content in self._iter_contents(path):
            matched: List[str] = []
            locations: List[Dict[str, Any]] = []
            for occurrence in extract_tags(content, location):
                if occurrence.tag in matched:
                    continue
                if not any(tag_matches(s, occurrence.tag) for s in search):
                    continue
                matched.append(occurrence.tag)
                entry: Dict[str, Any] = {"tag": occurrence.tag, "location": occurrence.location}
                if occurrence.line is not None:
                    entry["line"] = occurrence.line
                locations.append(entry)

            if not matched:
                continue
            if match == "all" and not all(
                any(tag_matches(s, tag) for tag in matched) for s in search
            ):
                continue

            results.append({
                "path": ref.virtual_path,
                "title": frontmatter_title(split_frontmatter(content)) or ref.stem,
                "matchedTags": matched,
                "tagLocations": locations,
            })

        results.sort(key=lambda r: len(r["matchedTags"]), reverse=True)
        return {
            "tags": search,
            "match": match,
            "results": results,
            "totalMatches": len(results),
        }

    def list_all_tags(self, path: Optional[str] = None, min_count: int = 1) -> Dict[str, Any]:
        """Count every tag occurrence, most used first.

        Each occurrence counts, so a tag in both the frontmatter and the
        body of one document counts twice.
        """
        counts: Dict[str, int] = {}
        for _, content in self._iter_contents(path):
            for occurrence in extract_tags(content):
                counts[occurrence.tag] = counts.get(occurrence.tag, 0) + 1

        tags: List[Dict[str, Any]] = []
        for tag, count in counts.items():
            if count < min_count:
                continue
            entry: Dict[str, Any] = {"tag": tag, "count": count}
            if "/" in tag.strip("/"):
                entry["nestedUnder"] = tag.split("/", 1)[0]
            tags.append(entry)

        tags.sort(key=lambda t: t["count"], reverse=True)
        return {"tags": tags, "totalTags": len(tags)}

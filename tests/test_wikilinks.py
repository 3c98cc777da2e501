"""Tests for wikilink token parsing and scanning."""
import pytest

from mdvault_mcp.models.schema import WikilinkTarget
from mdvault_mcp.storage.wikilinks import extract_wikilinks, iter_wikilinks, parse_wikilink


class TestParseWikilink:
    """Tests for splitting a wikilink into its parts."""

    @pytest.mark.parametrize("text, expected", [
        ("[[Note]]", WikilinkTarget("Note")),
        ("[[Note|Alias]]", WikilinkTarget("Note", display_text="Alias")),
        ("[[Note#Heading]]", WikilinkTarget("Note", heading="Heading")),
        ("[[folder/Note#Heading|Alias]]",
         WikilinkTarget("folder/Note", heading="Heading", display_text="Alias")),
        ("[[Note^block1]]", WikilinkTarget("Note", block_ref="block1")),
        ("[[Note#Heading^block1]]",
         WikilinkTarget("Note", heading="Heading", block_ref="block1")),
        ("[[Note#^block1]]", WikilinkTarget("Note", block_ref="block1")),
        ("![[image.png]]", WikilinkTarget("image.png", is_embed=True)),
        ("[[#Local heading]]", WikilinkTarget("", heading="Local heading")),
        ("Note|Alias", WikilinkTarget("Note", display_text="Alias")),
    ])
    def test_parts(self, text, expected):
        assert parse_wikilink(text) == expected

    def test_alias_may_contain_hash(self):
        """Everything after the pipe is display text."""
        target = parse_wikilink("[[Note|Chapter #2]]")
        assert target.target_name == "Note"
        assert target.heading is None
        assert target.display_text == "Chapter #2"

    def test_whitespace_around_target(self):
        assert parse_wikilink("  [[ Note ]]  ").target_name == "Note"


class TestIterWikilinks:
    """Tests for finding wikilinks in a document."""

    def test_positions_are_one_indexed(self):
        tokens = extract_wikilinks("Start with [[a]].\n\n  [[b|B]] and ![[c.png]]")
        assert [(t.raw, t.line, t.column) for t in tokens] == [
            ("[[a]]", 1, 12),
            ("[[b|B]]", 3, 3),
            ("![[c.png]]", 3, 15),
        ]

    def test_embed_flag(self):
        tokens = extract_wikilinks("[[a]] ![[b]]")
        assert [t.is_embed for t in tokens] == [False, True]

    def test_exclude_embeds(self):
        tokens = list(iter_wikilinks("[[a]] ![[b]] [[c]]", include_embeds=False))
        assert [t.target.target_name for t in tokens] == ["a", "c"]

    def test_unterminated_link_is_ignored(self):
        assert extract_wikilinks("[[broken and [single] brackets") == []

    def test_multiple_links_on_one_line(self):
        tokens = extract_wikilinks("[[a]][[b]]")
        assert [t.raw for t in tokens] == ["[[a]]", "[[b]]"]
        assert [t.column for t in tokens] == [1, 6]

"""Tests for tag extraction and matching."""
from mdvault_mcp.storage.tags import (
    extract_tags,
    frontmatter_tags,
    normalize_tag,
    tag_matches,
)


class TestTagMatching:
    """Tests for hierarchical tag matching."""

    def test_exact_and_nested(self):
        assert tag_matches("project", "project")
        assert tag_matches("project", "project/frontend")
        assert tag_matches("#Project", "project/frontend/ui")

    def test_prefix_is_not_a_parent(self):
        assert not tag_matches("project", "projectx")
        assert not tag_matches("project/frontend", "project")

    def test_normalize(self):
        assert normalize_tag("#Daily") == "daily"
        assert normalize_tag(" 'quoted' ") == "quoted"


class TestFrontmatterTags:
    """Tests for reading tags from parsed frontmatter."""

    def test_list(self):
        assert frontmatter_tags({"tags": ["A", "#b", None]}) == ["a", "b"]

    def test_string(self):
        assert frontmatter_tags({"tags": "one, two three"}) == ["one", "two", "three"]

    def test_missing_or_unusable(self):
        assert frontmatter_tags(None) == []
        assert frontmatter_tags({}) == []
        assert frontmatter_tags({"tags": {"a": 1}}) == []


class TestExtractTags:
    """Tests for collecting tag occurrences from a document."""

    CONTENT = (
        "---\n"
        "tags: [alpha, project/frontend]\n"
        "---\n"
        "# Heading is not a tag\n"
        "Body with #beta and #Project/Backend.\n"
        "Not tags: C# and http://example.com/#anchor\n"
        "```\n"
        "#inside-code\n"
        "```\n"
        "#gamma at line start"
    )

    def test_both_locations(self):
        occurrences = extract_tags(self.CONTENT)
        assert [(o.tag, o.location, o.line) for o in occurrences] == [
            ("alpha", "frontmatter", None),
            ("project/frontend", "frontmatter", None),
            ("beta", "body", 5),
            ("project/backend", "body", 5),
            ("gamma", "body", 10),
        ]

    def test_frontmatter_only(self):
        tags = [o.tag for o in extract_tags(self.CONTENT, "frontmatter")]
        assert tags == ["alpha", "project/frontend"]

    def test_body_only(self):
        tags = [o.tag for o in extract_tags(self.CONTENT, "body")]
        assert tags == ["beta", "project/backend", "gamma"]

    def test_frontmatter_block_is_not_scanned_for_inline_tags(self):
        content = "---\nnote: see #hidden\n---\ntext"
        assert extract_tags(content) == []


    def test_hash_prefixed_string_line(self):
        occurrences = extract_tags("---\ntags: #project, #idea\n---\nbody\n", "frontmatter")
        assert [o.tag for o in occurrences] == ["project", "idea"]
    def test_document_without_frontmatter(self):
        occurrences = extract_tags("#first line\nsecond #second")
        assert [(o.tag, o.line) for o in occurrences] == [("first", 1), ("second", 2)]

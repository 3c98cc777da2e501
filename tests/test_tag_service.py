"""Tests for the TagService class."""
import pytest

from mdvault_mcp.exceptions import DocumentNotFoundError, ValidationError


class TestSearchByTag:
    """Tests for search_by_tag."""

    def test_parent_tag_matches_nested(self, tag_service):
        """Searching a parent tag finds nested tags but not lookalike prefixes."""
        result = tag_service.search_by_tag(["project"])
        paths = [r["path"] for r in result["results"]]
        assert paths == [
            "/test/index.md",
            "/test/notes/daily/2024-01-15.md",
            "/test/notes/projects/project-a.md",
        ]
        assert result["totalMatches"] == 3
        project_a = result["results"][2]
        assert project_a["matchedTags"] == ["project"]
        assert project_a["title"] == "Project A"

    def test_matched_tags_are_deduplicated(self, tag_service):
        result = tag_service.search_by_tag(["project/frontend"])
        (daily,) = result["results"]
        assert daily["matchedTags"] == ["project/frontend"]
        assert daily["tagLocations"] == [
            {"tag": "project/frontend", "location": "frontmatter"},
        ]

    def test_match_all(self, tag_service):
        result = tag_service.search_by_tag(["project", "daily"], match="all")
        assert [r["path"] for r in result["results"]] == ["/test/notes/daily/2024-01-15.md"]

    def test_match_any_orders_by_matched_count(self, tag_service):
        result = tag_service.search_by_tag(["project", "daily"], match="any")
        assert result["results"][0]["path"] == "/test/notes/daily/2024-01-15.md"
        assert result["results"][0]["matchedTags"] == ["daily", "project/frontend"]
        assert result["totalMatches"] == 3

    def test_body_location(self, tag_service):
        result = tag_service.search_by_tag(["project"], location="body")
        (daily,) = result["results"]
        assert daily["tagLocations"] == [
            {"tag": "project/frontend", "location": "body", "line": 8},
        ]

    def test_frontmatter_location(self, tag_service):
        result = tag_service.search_by_tag(["urgent"], location="frontmatter")
        assert result["results"] == []

    def test_scope_path(self, tag_service):
        result = tag_service.search_by_tag(["project"], path="/test/notes/projects")
        assert [r["path"] for r in result["results"]] == ["/test/notes/projects/project-a.md"]

    def test_hash_and_case_are_ignored(self, tag_service):
        result = tag_service.search_by_tag(["#URGENT"])
        assert [r["path"] for r in result["results"]] == ["/test/todo.md"]
        assert result["results"][0]["title"] == "todo"

    def test_invalid_arguments(self, tag_service):
        with pytest.raises(ValidationError):
            tag_service.search_by_tag(["x"], match="some")
        with pytest.raises(ValidationError):
            tag_service.search_by_tag(["x"], location="title")
        with pytest.raises(ValidationError):
            tag_service.search_by_tag(["#", " "])

    def test_missing_scope(self, tag_service):
        with pytest.raises(DocumentNotFoundError):
            tag_service.search_by_tag(["x"], path="/test/nowhere")

    def test_unreadable_document_is_skipped(self, tag_service, vault_dir):
        (vault_dir / "broken.md").write_bytes(b"#project \xff\xfe")
        result = tag_service.search_by_tag(["project"])
        assert result["totalMatches"] == 3


class TestListAllTags:
    """Tests for list_all_tags."""

    def test_counts_and_order(self, tag_service):
        result = tag_service.list_all_tags()
        assert result["tags"] == [
            {"tag": "project", "count": 2},
            {"tag": "project/frontend", "count": 2, "nestedUnder": "project"},
            {"tag": "hub", "count": 1},
            {"tag": "urgent", "count": 1},
            {"tag": "someday", "count": 1},
            {"tag": "daily", "count": 1},
            {"tag": "projectx", "count": 1},
        ]
        assert result["totalTags"] == 7

    def test_min_count(self, tag_service):
        result = tag_service.list_all_tags(min_count=2)
        assert [t["tag"] for t in result["tags"]] == ["project", "project/frontend"]

    def test_scope_path(self, tag_service):
        result = tag_service.list_all_tags(path="/test/todo.md")
        assert [t["tag"] for t in result["tags"]] == ["urgent", "someday"]

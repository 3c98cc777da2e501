"""Tests for the observability module.

Tests for metrics collection, logging configuration, and error sanitization.
"""
import json
import logging
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from mdvault_mcp.observability import (
    ROOT_LOGGER_NAME,
    MetricsCollector,
    _sanitize_error_message,
    configure_logging,
    timed_operation,
)


class TestErrorMessageSanitization:
    """Tests for error message sanitization."""

    def test_sanitize_none_returns_none(self):
        assert _sanitize_error_message(None) is None

    def test_sanitize_removes_home_directory(self):
        """Home directory paths should be replaced with ~."""
        home = str(Path.home())
        result = _sanitize_error_message(f"{home}/vault/secret.md: Permission denied")
        assert home not in result
        assert result.startswith("~")
        assert "vault/secret.md" in result

    def test_sanitize_collapses_whitespace(self):
        assert _sanitize_error_message("  Line 1\nLine 2\r\n   Line 3  ") == "Line 1 Line 2 Line 3"

    def test_sanitize_truncates_long_messages(self):
        result = _sanitize_error_message("a" * 300)
        assert len(result) == 200
        assert result.endswith("...")

    def test_sanitize_custom_max_length(self):
        result = _sanitize_error_message("a" * 100, max_length=50)
        assert len(result) == 50


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_file(self, tmp_path):
        return tmp_path / "metrics.json"

    @pytest.fixture
    def collector(self, metrics_file):
        return MetricsCollector(metrics_file=metrics_file, save_every=0)

    def test_record_outcomes(self, collector):
        collector.record("patch_file", 100.0)
        collector.record("patch_file", 300.0, "conflict")
        collector.record("patch_file", 200.0, "error", error="Heading missing")
        collector.record("patch_file", 50.0, patches_skipped=2)

        stats = collector.report()["patch_file"]
        assert stats["calls"] == 4
        assert (stats["ok"], stats["conflict"], stats["error"]) == (2, 1, 1)
        assert stats["patches_skipped"] == 2
        assert stats["avg_ms"] == 162.5
        assert stats["max_ms"] == 300.0
        assert stats["last_error"] == "Heading missing"
        assert stats["last_error_at"] is not None

    def test_error_message_is_sanitized(self, collector):
        home = str(Path.home())
        collector.record("read_file", 1.0, "error", error=f"{home}/notes/a.md locked")
        assert home not in collector.report()["read_file"]["last_error"]

    def test_save_and_load(self, metrics_file):
        first = MetricsCollector(metrics_file=metrics_file, save_every=0)
        first.record("get_backlinks", 100.0)
        first.record("search_by_tag", 200.0, "error", error="Error")
        assert first.save()

        with open(metrics_file) as f:
            data = json.load(f)
        assert set(data["tools"]) == {"get_backlinks", "search_by_tag"}

        second = MetricsCollector(metrics_file=metrics_file, save_every=0)
        stats = second.report()
        assert stats["get_backlinks"]["calls"] == 1
        assert stats["search_by_tag"]["error"] == 1
        assert second.summary()["started_at"] == first.summary()["started_at"]

    def test_periodic_save(self, metrics_file):
        collector = MetricsCollector(metrics_file=metrics_file, save_every=2)
        collector.record("read_file", 1.0)
        assert not metrics_file.exists()
        collector.record("read_file", 1.0)
        assert metrics_file.exists()

    def test_unreadable_metrics_file_is_ignored(self, metrics_file):
        metrics_file.write_text("{broken")
        assert MetricsCollector(metrics_file=metrics_file, save_every=0).report() == {}

        metrics_file.write_text(json.dumps({"started_at": "x", "tools": {}}))
        assert MetricsCollector(metrics_file=metrics_file, save_every=0).report() == {}

    def test_summary(self, collector):
        collector.record("update_file", 100.0, "conflict")
        collector.record("read_file", 200.0, "error", error="Error")
        collector.record("read_file", 200.0)
        collector.record("read_file", 200.0)

        summary = collector.summary()
        assert summary["calls"] == 4
        assert (summary["ok"], summary["conflict"], summary["error"]) == (2, 1, 1)
        assert summary["error_rate"] == 0.25
        assert summary["tools"] == ["read_file", "update_file"]


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    @pytest.fixture
    def collector(self, tmp_path):
        collector = MetricsCollector(metrics_file=tmp_path / "m.json", save_every=0)
        with patch("mdvault_mcp.observability.metrics", collector):
            yield collector

    def test_records_success(self, collector):
        with timed_operation("read_file", path="/v/a.md") as op:
            time.sleep(0.01)
            op["truncated"] = False

        stats = collector.report()["read_file"]
        assert stats["ok"] == 1
        assert stats["avg_ms"] >= 10

    def test_records_conflict_and_skips(self, collector):
        with timed_operation("patch_file") as op:
            op["conflict"] = False
            op["patches_skipped"] = 3
        with timed_operation("patch_file") as op:
            op["conflict"] = True

        stats = collector.report()["patch_file"]
        assert (stats["ok"], stats["conflict"]) == (1, 1)
        assert stats["patches_skipped"] == 3

    def test_error_noted_by_caller(self, collector):
        with timed_operation("read_file") as op:
            op["error"] = "DocumentNotFoundError: File does not exist"

        stats = collector.report()["read_file"]
        assert stats["error"] == 1
        assert stats["last_error"] == "DocumentNotFoundError: File does not exist"

    def test_records_escaping_exception(self, collector):
        with pytest.raises(ValueError):
            with timed_operation("patch_file"):
                raise ValueError("Bad patch")

        stats = collector.report()["patch_file"]
        assert stats["error"] == 1
        assert "Bad patch" in stats["last_error"]


class TestConfigureLogging:
    """Tests for configure_logging function."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        handlers = list(logger.handlers)
        level = logger.level
        yield
        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()
        logger.handlers = handlers
        logger.setLevel(level)

    def test_creates_directory_and_returns_path(self, tmp_path):
        log_dir = tmp_path / "logs"
        assert configure_logging(log_dir=log_dir, console=False) == log_dir
        assert log_dir.is_dir()

    def test_sets_level(self, tmp_path):
        configure_logging(log_dir=tmp_path / "logs", level=logging.DEBUG, console=False)
        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.DEBUG

    def test_writes_package_logs_to_file(self, tmp_path):
        log_dir = tmp_path / "logs"
        configure_logging(log_dir=log_dir, console=False)
        logging.getLogger("mdvault_mcp.services.link_service").warning("scan skipped a file")
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()
        assert "scan skipped a file" in (log_dir / "mdvault.log").read_text()

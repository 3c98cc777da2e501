"""Logging setup and per-tool metrics for the mdvault MCP server.

Every tool call runs inside ``timed_operation``, which times it and files
it under one outcome: ``ok``, ``conflict`` (an etag mismatch was returned
to the client) or ``error``. Patch calls also add up the patch operations
they skipped. Totals live in memory and are written to a JSON file every
few hundred calls and at shutdown.
"""
import json
import logging
import os
import re
import tempfile
import time
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "mdvault_mcp"

DEFAULT_LOG_DIR = Path.home() / ".mdvault" / "logs"
DEFAULT_METRICS_FILE = Path.home() / ".mdvault" / "metrics.json"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

OUTCOMES = ("ok", "conflict", "error")


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    console: bool = True,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> Path:
    """Send the package's log records to ``<log_dir>/mdvault.log``.

    The file rotates at ``max_bytes``. With ``console`` set, records also
    go to stderr; stdout is left alone because the stdio transport owns it.

    Returns:
        The log directory.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)

    handlers: List[logging.Handler] = [
        RotatingFileHandler(
            log_path / "mdvault.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    package_logger.info(f"Logging to {log_path / 'mdvault.log'}")
    return log_path


def _sanitize_error_message(message: Optional[str], max_length: int = 200) -> Optional[str]:
    """Shorten an error message before it is stored in the metrics file.

    Vault roots usually sit under the home directory, so that prefix is
    written as ``~``. Whitespace runs become one space.
    """
    if message is None:
        return None
    home = str(Path.home())
    if home and home != "/":
        message = message.replace(home, "~")
    message = re.sub(r"\s+", " ", message).strip()
    if len(message) > max_length:
        message = message[: max_length - 3] + "..."
    return message


@dataclass
class ToolStats:
    """Running totals for one tool."""

    calls: int = 0
    outcomes: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(OUTCOMES, 0))
    patches_skipped: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[str] = None

    def report(self) -> Dict[str, Any]:
        return {
            "calls": self.calls,
            **{outcome: self.outcomes.get(outcome, 0) for outcome in OUTCOMES},
            "patches_skipped": self.patches_skipped,
            "avg_ms": round(self.total_ms / self.calls, 2) if self.calls else 0.0,
            "max_ms": round(self.max_ms, 2),
            "last_error": self.last_error,
            "last_error_at": self.last_error_at,
        }


class MetricsCollector:
    """Thread-safe per-tool totals, persisted as JSON.

    Args:
        metrics_file: Where totals are saved. Defaults to ~/.mdvault/metrics.json
        save_every: Save after this many calls (0 saves only on request)
    """

    def __init__(
        self,
        metrics_file: Optional[Union[str, Path]] = None,
        save_every: int = 200,
    ):
        self._lock = Lock()
        self._tools: Dict[str, ToolStats] = {}
        self._started = datetime.now(timezone.utc)
        self._metrics_file = Path(metrics_file) if metrics_file else DEFAULT_METRICS_FILE
        self._save_every = save_every
        self._unsaved = 0
        self._load()

    def record(
        self,
        tool: str,
        duration_ms: float,
        outcome: str = "ok",
        error: Optional[str] = None,
        patches_skipped: int = 0,
    ) -> None:
        """Add one call of ``tool`` to the totals."""
        with self._lock:
            stats = self._tools.setdefault(tool, ToolStats())
            stats.calls += 1
            stats.outcomes[outcome] = stats.outcomes.get(outcome, 0) + 1
            stats.patches_skipped += patches_skipped
            stats.total_ms += duration_ms
            stats.max_ms = max(stats.max_ms, duration_ms)
            if outcome == "error":
                stats.last_error = _sanitize_error_message(error)
                stats.last_error_at = datetime.now(timezone.utc).isoformat()

            self._unsaved += 1
            if self._save_every and self._unsaved >= self._save_every:
                self._save_locked()

    def report(self) -> Dict[str, Dict[str, Any]]:
        """Per-tool totals keyed by tool name."""
        with self._lock:
            return {tool: stats.report() for tool, stats in self._tools.items()}

    def summary(self) -> Dict[str, Any]:
        """Totals across all tools since the collector started."""
        with self._lock:
            calls = sum(stats.calls for stats in self._tools.values())
            by_outcome = {
                outcome: sum(stats.outcomes.get(outcome, 0) for stats in self._tools.values())
                for outcome in OUTCOMES
            }
            return {
                "started_at": self._started.isoformat(),
                "uptime_seconds": round(
                    (datetime.now(timezone.utc) - self._started).total_seconds(), 1
                ),
                "calls": calls,
                **by_outcome,
                "error_rate": round(by_outcome["error"] / calls, 4) if calls else 0.0,
                "tools": sorted(self._tools),
            }

    def save(self) -> bool:
        """Write the totals to the metrics file; False if that failed."""
        with self._lock:
            return self._save_locked()

    def _save_locked(self) -> bool:
        data = {
            "started_at": self._started.isoformat(),
            "tools": {tool: asdict(stats) for tool, stats in self._tools.items()},
        }
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=".metrics.", suffix=".tmp", dir=self._metrics_file.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_name, self._metrics_file)
        except OSError as e:
            logger.error(f"Failed to save metrics to {self._metrics_file}: {e}")
            return False
        self._unsaved = 0
        return True

    def _load(self) -> None:
        if not self._metrics_file.exists():
            return
        try:
            with open(self._metrics_file, encoding="utf-8") as f:
                data = json.load(f)
            started = datetime.fromisoformat(data["started_at"])
            tools = {tool: ToolStats(**stats) for tool, stats in data["tools"].items()}
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable metrics file {self._metrics_file}: {e}")
            return
        self._started = started
        self._tools = tools
        logger.debug(f"Loaded metrics for {len(tools)} tools from {self._metrics_file}")


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time one tool call and record its outcome.

    The caller fills in the yielded dict: ``conflict`` when a conflict was
    returned, ``error`` with the message of an error that was turned into
    a response, and ``patches_skipped``. Any other keys only appear in the
    debug log. An exception leaving the block is recorded as an error.

    Example:
        with timed_operation("update_file", path=path) as op:
            result = service.update_file(path, content, etag)
            op["conflict"] = isinstance(result, ConflictResult)
    """
    call_id = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    logger.debug(
        f"[{call_id}] {operation} started "
        + ", ".join(f"{key}={value}" for key, value in context.items())
    )
    started = time.perf_counter()
    try:
        yield details
    except Exception as e:
        details["error"] = str(e)
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        error = details.pop("error", None)
        if error is not None:
            outcome = "error"
        elif details.pop("conflict", False):
            outcome = "conflict"
        else:
            outcome = "ok"
        metrics.record(
            operation,
            elapsed_ms,
            outcome,
            error=error,
            patches_skipped=details.pop("patches_skipped", 0),
        )
        logger.debug(f"[{call_id}] {operation} {outcome} in {elapsed_ms:.1f}ms {details}")

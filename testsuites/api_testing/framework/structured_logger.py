"""
================================================================================
Structured Logger
================================================================================

Leveled logging for API test runs, built on Loguru sinks.

Every emitted entry goes to two sinks:
    - Console: "[HH:MM:SS] [LEVEL] message" plus pretty-printed data
      (error/warn on stderr, info/debug on stdout)
    - File: one JSON object per line, appended

Request and response payloads are sanitized before they are logged.
A logger is an explicit, injectable instance; several can coexist because
each one only receives records bound to its own id.

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import json
import sys
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, TextIO
from uuid import uuid4

from loguru import logger

from .sanitizer import sanitize_body, sanitize_headers


DEFAULT_LOG_FILE = "reports/test-execution.log"

# Format for framework diagnostics that are not bound to a StructuredLogger
FRAMEWORK_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"
)


class LogLevel(str, Enum):
    """Log levels, ordered from least to most verbose."""

    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"

    @property
    def severity(self) -> int:
        return _LEVEL_ORDER.index(self)

    @property
    def loguru_name(self) -> str:
        return _LOGURU_LEVELS[self]

    @classmethod
    def parse(cls, value: Any) -> "LogLevel":
        """Parse a level name case-insensitively; unknown names mean INFO."""
        if isinstance(value, LogLevel):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.INFO


_LEVEL_ORDER = (LogLevel.ERROR, LogLevel.WARN, LogLevel.INFO, LogLevel.DEBUG)

_LOGURU_LEVELS = {
    LogLevel.ERROR: "ERROR",
    LogLevel.WARN: "WARNING",
    LogLevel.INFO: "INFO",
    LogLevel.DEBUG: "DEBUG",
}


def _utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class LogEntry:
    """A single log record as written to the file sink."""

    timestamp: str
    level: LogLevel
    message: str
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        entry = {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "message": self.message,
        }
        if self.data is not None:
            entry["data"] = self.data
        return entry

    def to_json(self) -> str:
        """Serialize to a single line of JSON."""
        try:
            return json.dumps(self.to_dict(), ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            fallback = dict(self.to_dict(), data=repr(self.data))
            return json.dumps(fallback, ensure_ascii=False)

    def console_line(self) -> str:
        clock = self.timestamp[11:19]
        line = f"[{clock}] [{self.level.value.upper()}] {self.message}"
        if self.data is not None:
            try:
                rendered = json.dumps(self.data, indent=2, ensure_ascii=False, default=str)
            except (TypeError, ValueError):
                rendered = repr(self.data)
            line = f"{line}\n{rendered}"
        return line


def is_structured_record(record: Dict[str, Any]) -> bool:
    """True for records emitted through a StructuredLogger."""
    return "structured_logger_id" in record["extra"]


def setup_framework_logging(level: str = "INFO", sink: Optional[TextIO] = None) -> int:
    """
    Replace Loguru handlers with one console handler for framework diagnostics.

    StructuredLogger records are skipped there; they have their own sinks.
    Call once per process, before any StructuredLogger is created.

    Returns:
        Id of the added handler
    """
    logger.remove()
    return logger.add(
        sink or sys.stderr,
        level=level.upper(),
        format=FRAMEWORK_LOG_FORMAT,
        filter=lambda record: not is_structured_record(record),
    )


class StructuredLogger:
    """
    Structured, leveled logger with console and JSON-lines file sinks.

    Usage:
        >>> log = StructuredLogger(level="debug", log_file="reports/run.log")
        >>> log.info("Created user", {"id": "u1"})
        >>> log.log_request("POST", url, headers, body)
    """

    def __init__(
        self,
        level: Any = LogLevel.INFO,
        log_file: Any = DEFAULT_LOG_FILE,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        """
        Initialize logger and register its Loguru handlers.

        Args:
            level: Minimum verbosity (error, warn, info, debug)
            log_file: Path of the append-only JSON-lines file
            stdout: Stream for info/debug console lines
            stderr: Stream for error/warn console lines
        """
        self.level = LogLevel.parse(level)
        self.log_file = Path(log_file)
        self._id = uuid4().hex
        self._file_lock = threading.Lock()
        self._ensure_log_directory()

        self._logger = logger.bind(structured_logger_id=self._id)
        self._handler_ids = [
            logger.add(
                stdout or sys.stdout,
                level="DEBUG",
                format="<level>{extra[console_line]}</level>",
                filter=self._console_filter(LogLevel.INFO, LogLevel.DEBUG),
            ),
            logger.add(
                stderr or sys.stderr,
                level="DEBUG",
                format="<level>{extra[console_line]}</level>",
                filter=self._console_filter(LogLevel.ERROR, LogLevel.WARN),
            ),
            logger.add(
                self._write_to_file,
                level="DEBUG",
                format="{message}",
                filter=self._file_filter,
                catch=False,
            ),
        ]

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "StructuredLogger":
        """Build a logger from a Settings object."""
        return cls(level=settings.log_level, log_file=settings.log_file, **kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def error(self, message: str, data: Any = None) -> None:
        self._log(LogLevel.ERROR, message, data)

    def warn(self, message: str, data: Any = None) -> None:
        self._log(LogLevel.WARN, message, data)

    def info(self, message: str, data: Any = None) -> None:
        self._log(LogLevel.INFO, message, data)

    def debug(self, message: str, data: Any = None) -> None:
        self._log(LogLevel.DEBUG, message, data)

    def log_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, Any]] = None,
        body: Any = None,
    ) -> None:
        """Log outgoing request details with sensitive values masked."""
        self.info(f"API Request: {method} {url}", {
            "headers": sanitize_headers(headers),
            "body": sanitize_body(body),
        })

    def log_response(
        self,
        status: int,
        url: str,
        headers: Optional[Dict[str, Any]] = None,
        body: Any = None,
    ) -> None:
        """Log a received response with sensitive values masked."""
        self.info(f"API Response: {status} {url}", {
            "headers": sanitize_headers(headers),
            "body": sanitize_body(body),
        })

    def log_test(
        self,
        test_name: str,
        status: str,
        duration_ms: Optional[float] = None,
    ) -> None:
        """Log a test lifecycle event (started, passed, failed)."""
        message = f"Test {status}: {test_name}"
        data = {"duration": f"{duration_ms:.0f}ms"} if duration_ms else None
        if status == "failed":
            self.error(message, data)
        else:
            self.info(message, data)

    def should_log(self, level: Any) -> bool:
        """True when a message at this level passes the configured threshold."""
        return LogLevel.parse(level).severity <= self.level.severity

    def close(self) -> None:
        """Detach this logger's handlers."""
        for handler_id in self._handler_ids:
            try:
                logger.remove(handler_id)
            except ValueError:
                pass
        self._handler_ids = []

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _log(self, level: LogLevel, message: str, data: Any = None, to_file: bool = True) -> None:
        if not self.should_log(level):
            return

        entry = LogEntry(
            timestamp=_utc_timestamp(),
            level=level,
            message=str(message),
            data=data,
        )
        self._logger.bind(
            entry=entry,
            console_line=entry.console_line(),
            to_file=to_file,
        ).log(level.loguru_name, entry.message)

    def _console_filter(self, *levels: LogLevel):
        def _filter(record: Dict[str, Any]) -> bool:
            extra = record["extra"]
            if extra.get("structured_logger_id") != self._id:
                return False
            entry = extra.get("entry")
            return entry is not None and entry.level in levels
        return _filter

    def _file_filter(self, record: Dict[str, Any]) -> bool:
        extra = record["extra"]
        return (
            extra.get("structured_logger_id") == self._id
            and extra.get("to_file", False)
        )

    def _write_to_file(self, message: Any) -> None:
        entry: LogEntry = message.record["extra"]["entry"]
        line = entry.to_json() + "\n"
        try:
            # One write per entry keeps lines whole across concurrent callers
            with self._file_lock:
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as e:
            self._log(
                LogLevel.ERROR,
                f"Failed to write to log file: {self.log_file}",
                {"error": str(e)},
                to_file=False,
            )

    def _ensure_log_directory(self) -> None:
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create log directory {self.log_file.parent}: {e}")


__all__ = [
    "LogEntry",
    "LogLevel",
    "StructuredLogger",
]

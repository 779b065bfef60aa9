"""JSONL logging for observability."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    chat_id: str | None = None
    message_id: str | None = None
    event_id: int | None = None
    duration_ms: float | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured logs in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "argus.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".argus" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        chat_id: str | None = None,
        message_id: str | None = None,
        event_id: int | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            chat_id=chat_id,
            message_id=message_id,
            event_id=event_id,
            duration_ms=duration_ms,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_ingestion(
        self,
        message_id: str,
        *,
        chat_id: str | None = None,
        events_created: int = 0,
        events_updated: int = 0,
        triggers_created: int = 0,
        duration_ms: float | None = None,
    ) -> None:
        """Log the outcome of extracting events from one message."""
        self.log(
            "message_ingested",
            chat_id=chat_id,
            message_id=message_id,
            duration_ms=duration_ms,
            events_created=events_created,
            events_updated=events_updated,
            triggers_created=triggers_created,
        )

    def log_action(
        self,
        action: str,
        event_id: int,
        *,
        pending: bool = False,
        chat_id: str | None = None,
        message_id: str | None = None,
    ) -> None:
        """Log an applied (or proposed) action on an existing event."""
        self.log(
            "action_pending" if pending else "action_applied",
            chat_id=chat_id,
            message_id=message_id,
            event_id=event_id,
            action=action,
        )

    def log_context_check(
        self,
        url: str,
        *,
        matched: bool,
        candidates: int,
        confidence: float,
        duration_ms: float | None = None,
    ) -> None:
        """Log a browsing context check."""
        self.log(
            "context_check",
            duration_ms=duration_ms,
            url=url,
            matched=matched,
            candidates=candidates,
            confidence=confidence,
        )


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger

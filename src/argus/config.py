"""Runtime configuration.

Values come from the environment (a .env file is loaded by the entry
point). Policy thresholds have defaults and are validated on creation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MODEL = "llama-3.1-70b-versatile"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ArgusConfig:
    """Configuration for the event memory pipeline.

    Attributes:
        model: Groq model used for every model call.
        db_path: SQLite database file (default ~/.argus/argus.db).
        log_dir: JSONL log directory (default ~/.argus/logs).
        hot_window_days: Maximum event age eligible for context matching.
        process_own_messages: Whether messages the user sent are ingested.
        skip_group_messages: Whether group chat messages are skipped.
        action_confidence: Minimum confidence to apply a detected action.
        extraction_confidence: Minimum confidence to keep an extracted event.
        context_messages: Prior messages passed to the model as context.
        active_events_limit: Size of the per-message active-event snapshot.
        dedup_window_hours: How far back duplicate titles are searched.
        conflict_window_minutes: Half-width of the time-conflict window.
        default_snooze_minutes: Snooze length when none was given.
        max_prompt_events: Events densely encoded into a prompt.
        recent_turns: Chat turns kept verbatim before compression.
    """

    model: str = DEFAULT_MODEL
    db_path: Path | None = None
    log_dir: Path | None = None
    hot_window_days: int = 90
    process_own_messages: bool = True
    skip_group_messages: bool = False
    action_confidence: float = 0.6
    extraction_confidence: float = 0.65
    context_messages: int = 5
    active_events_limit: int = 20
    dedup_window_hours: int = 48
    conflict_window_minutes: int = 60
    default_snooze_minutes: int = 30
    max_prompt_events: int = 60
    recent_turns: int = 6

    def __post_init__(self) -> None:
        """Validate config and set defaults."""
        if self.db_path is None:
            self.db_path = Path.home() / ".argus" / "argus.db"
        if self.log_dir is None:
            self.log_dir = Path.home() / ".argus" / "logs"

        for name in ("action_confidence", "extraction_confidence"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ValueError(f"{name} must be between 0 and 1")
        for name in (
            "hot_window_days",
            "context_messages",
            "active_events_limit",
            "dedup_window_hours",
            "conflict_window_minutes",
            "default_snooze_minutes",
            "max_prompt_events",
            "recent_turns",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")


def config_from_env() -> ArgusConfig:
    """Load configuration from environment variables."""
    db_path = os.getenv("ARGUS_DB_PATH")
    log_dir = os.getenv("ARGUS_LOG_DIR")
    return ArgusConfig(
        model=os.getenv("GROQ_MODEL", DEFAULT_MODEL),
        db_path=Path(db_path).expanduser() if db_path else None,
        log_dir=Path(log_dir).expanduser() if log_dir else None,
        hot_window_days=int(os.getenv("ARGUS_HOT_WINDOW_DAYS", "90")),
        process_own_messages=_env_bool("ARGUS_PROCESS_OWN_MESSAGES", True),
        skip_group_messages=_env_bool("ARGUS_SKIP_GROUP_MESSAGES", False),
    )

"""Event time parsing and the stale-date heuristic."""

from __future__ import annotations

import logging
import time
from datetime import datetime

logger = logging.getLogger(__name__)

WEEK = 7 * 24 * 3600
STALE_GRACE = 3600


def parse_time(value: str | int | float | None) -> int | None:
    """Parse a model-supplied time into unix seconds.

    Accepts ISO 8601 strings (a trailing 'Z' means UTC; no offset means
    local time) and raw unix seconds. Anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else None

    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return int(text) or None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f"Invalid event time from model: {value!r}")
        return None
    seconds = int(parsed.timestamp())
    return seconds if seconds > 0 else None


def push_forward(event_time: int, now: int | None = None) -> int:
    """Move a stale time forward in whole weeks until it is in the future.

    Times up to an hour in the past are left alone. Older ones are assumed
    to be a weekly occurrence the model anchored to a past date.
    """
    current = int(time.time()) if now is None else now
    if event_time >= current - STALE_GRACE:
        return event_time
    shifted = event_time
    while shifted < current:
        shifted += WEEK
    logger.warning(
        f"Past date {datetime.fromtimestamp(event_time).isoformat()} moved forward "
        f"to {datetime.fromtimestamp(shifted).isoformat()}"
    )
    return shifted


def normalize_event_time(value: str | int | float | None, now: int | None = None) -> int | None:
    """Parse a time and apply the stale-date heuristic."""
    parsed = parse_time(value)
    if parsed is None:
        return None
    return push_forward(parsed, now)

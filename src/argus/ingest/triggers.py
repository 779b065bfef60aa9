"""Trigger materialization for stored events."""

from __future__ import annotations

import time
from datetime import datetime

from ..memory.models import TIME_TRIGGER_OFFSETS, Trigger, TriggerType
from ..memory.store import EventStore
from .vocab import interest_keywords


def create_time_triggers(
    store: EventStore, event_id: int, event_time: int, now: int | None = None
) -> int:
    """Create the 24h/1h/15m reminders whose fire time is still ahead.

    Returns:
        Number of triggers created (0-3).
    """
    current = int(time.time()) if now is None else now
    created = 0
    for trigger_type, offset in TIME_TRIGGER_OFFSETS:
        fire_at = event_time - offset
        if fire_at <= current:
            continue
        store.insert_trigger(
            Trigger(
                event_id=event_id,
                trigger_type=trigger_type.value,
                trigger_value=datetime.fromtimestamp(fire_at).astimezone().isoformat(),
            ),
            now=current,
        )
        created += 1
    return created


def materialize_triggers(
    store: EventStore,
    event_id: int,
    *,
    event_time: int | None,
    location: str | None,
    context_url: str | None,
    keywords: list[str],
    now: int | None = None,
) -> int:
    """Create every trigger a new event qualifies for.

    Time triggers for a known time, one url trigger for a location (or,
    without one, the resolved context tag), and up to three keyword
    triggers for keywords touching the interest vocabulary.

    Returns:
        Total number of triggers created.
    """
    current = int(time.time()) if now is None else now
    created = 0

    if event_time:
        created += create_time_triggers(store, event_id, event_time, current)

    url_value = (location or context_url or "").strip().lower()
    if url_value:
        store.insert_trigger(
            Trigger(event_id=event_id, trigger_type=TriggerType.URL.value, trigger_value=url_value),
            now=current,
        )
        created += 1

    for keyword in interest_keywords(keywords):
        store.insert_trigger(
            Trigger(event_id=event_id, trigger_type=TriggerType.KEYWORD.value, trigger_value=keyword),
            now=current,
        )
        created += 1

    return created

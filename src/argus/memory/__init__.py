"""Memory module for persistent event storage."""

from .models import (
    ACTIVE_STATUSES,
    Contact,
    EdgeRelation,
    Event,
    EventEdge,
    EventStatus,
    EventType,
    Message,
    PendingAction,
    Trigger,
    TriggerType,
)
from .store import EventStore

__all__ = [
    "ACTIVE_STATUSES",
    "Contact",
    "EdgeRelation",
    "Event",
    "EventEdge",
    "EventStatus",
    "EventStore",
    "EventType",
    "Message",
    "PendingAction",
    "Trigger",
    "TriggerType",
]

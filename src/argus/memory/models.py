"""Data models for the event memory."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(Enum):
    """Kinds of events the extractor recognizes."""

    MEETING = "meeting"
    DEADLINE = "deadline"
    REMINDER = "reminder"
    TRAVEL = "travel"
    TASK = "task"
    SUBSCRIPTION = "subscription"
    RECOMMENDATION = "recommendation"
    OTHER = "other"

    @classmethod
    def normalize(cls, value: str | None) -> str:
        """Map a model-supplied type to a known value, falling back to 'other'."""
        value = (value or "").strip().lower()
        if value in {t.value for t in cls}:
            return value
        return cls.OTHER.value


class EventStatus(Enum):
    """Stored lifecycle states of an event.

    'expired' is never stored; it is derived at read time.
    """

    DISCOVERED = "discovered"
    SCHEDULED = "scheduled"
    SNOOZED = "snoozed"
    REMINDED = "reminded"
    COMPLETED = "completed"
    IGNORED = "ignored"


ACTIVE_STATUSES = (
    EventStatus.DISCOVERED.value,
    EventStatus.SCHEDULED.value,
    EventStatus.SNOOZED.value,
    EventStatus.REMINDED.value,
)

TERMINAL_STATUSES = (EventStatus.COMPLETED.value, EventStatus.IGNORED.value)

EXPIRED = "expired"


class TriggerType(Enum):
    """Delivery conditions for re-surfacing an event."""

    TIME_24H = "time_24h"
    TIME_1H = "time_1h"
    TIME_15M = "time_15m"
    URL = "url"
    KEYWORD = "keyword"


TIME_TRIGGER_OFFSETS: tuple[tuple[TriggerType, int], ...] = (
    (TriggerType.TIME_24H, 24 * 60 * 60),
    (TriggerType.TIME_1H, 60 * 60),
    (TriggerType.TIME_15M, 15 * 60),
)


class EdgeRelation(Enum):
    """Relationships detected between two events."""

    CANCELS = "cancels"
    UPDATES = "updates"
    CONFLICTS = "conflicts"
    RELATED = "related"
    SAME_TOPIC = "same_topic"


def clamp_confidence(value: Any) -> float:
    """Coerce a confidence value into [0, 1]; unparseable values become 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(0.0, min(1.0, number))


def normalize_keywords(keywords: list[str] | str | None) -> str:
    """Lowercase, dedupe and comma-join keywords, keeping first-seen order."""
    if not keywords:
        return ""
    if isinstance(keywords, str):
        keywords = keywords.split(",")
    seen: list[str] = []
    for keyword in keywords:
        kw = str(keyword).strip().lower()
        if kw and kw not in seen:
            seen.append(kw)
    return ",".join(seen)


def split_keywords(keywords: str | None) -> list[str]:
    """Split a serialized keyword string back into a list."""
    if not keywords:
        return []
    return [k.strip() for k in keywords.split(",") if k.strip()]


@dataclass(frozen=True)
class Message:
    """A raw chat message as received.

    Attributes:
        id: Transport message id.
        chat_id: Conversation identifier.
        sender: 'self' for own messages, otherwise the sender's handle.
        content: Text content.
        timestamp: Unix seconds when the message was sent.
    """

    id: str
    chat_id: str
    sender: str
    content: str
    timestamp: int


@dataclass(frozen=True)
class Contact:
    """A message sender seen at least once."""

    id: str
    name: str | None = None
    first_seen: int = 0
    last_seen: int = 0
    message_count: int = 0


@dataclass(frozen=True)
class Event:
    """A structured memory unit extracted from a message.

    Attributes:
        title: Short human-readable title.
        event_type: One of EventType values (unknown values are kept as-is).
        id: Database ID, None for new events.
        message_id: Source message, if any.
        description: Longer free text.
        event_time: Unix seconds of the event, if known.
        location: Place or service associated with the event.
        participants: Ordered list of names.
        keywords: Comma-joined lowercase keywords.
        confidence: Extraction confidence in [0, 1].
        status: One of EventStatus values.
        context_url: Canonical context tag matched against browsing.
        sender_name: Display name of whoever sent the source message.
        created_at: Unix seconds when stored.
        snoozed_until: Unix seconds when a snoozed event re-arms.
    """

    title: str
    event_type: str = EventType.OTHER.value
    id: int | None = None
    message_id: str | None = None
    description: str | None = None
    event_time: int | None = None
    location: str | None = None
    participants: list[str] = field(default_factory=list)
    keywords: str = ""
    confidence: float = 0.0
    status: str = EventStatus.DISCOVERED.value
    context_url: str | None = None
    sender_name: str | None = None
    created_at: int | None = None
    snoozed_until: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))

    def is_expired(self, now: int) -> bool:
        """True when the event time has passed and the event is still open."""
        return (
            self.event_time is not None
            and self.event_time < now
            and self.status not in TERMINAL_STATUSES
        )

    def display_status(self, now: int) -> str:
        """Stored status, or 'expired' when the event time has passed."""
        return EXPIRED if self.is_expired(now) else self.status

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "id": self.id,
            "message_id": self.message_id,
            "event_type": self.event_type,
            "title": self.title,
            "description": self.description,
            "event_time": self.event_time,
            "location": self.location,
            "participants": json.dumps(self.participants),
            "keywords": self.keywords,
            "confidence": self.confidence,
            "status": self.status,
            "context_url": self.context_url,
            "sender_name": self.sender_name,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Trigger:
    """A scheduled delivery condition owned by one event."""

    event_id: int
    trigger_type: str
    trigger_value: str
    id: int | None = None
    is_fired: bool = False
    created_at: int | None = None


@dataclass(frozen=True)
class PendingAction:
    """A proposed modification awaiting user confirmation.

    Never persisted: the caller resubmits the whole value to confirm it.

    Attributes:
        target_event_id: Event the changes apply to.
        target_event_title: Title at the time of the proposal.
        changes: Field name to proposed value.
        description: Human-readable summary of the changes.
        action: Always 'modify' today.
    """

    target_event_id: int
    target_event_title: str
    changes: dict[str, Any]
    description: str
    action: str = "modify"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "targetEventId": self.target_event_id,
            "targetEventTitle": self.target_event_title,
            "changes": dict(self.changes),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingAction:
        """Rebuild a pending action from a resubmitted payload."""
        return cls(
            target_event_id=int(data["targetEventId"]),
            target_event_title=str(data.get("targetEventTitle", "")),
            changes=dict(data.get("changes") or {}),
            description=str(data.get("description", "")),
            action=str(data.get("action", "modify")),
        )


@dataclass(frozen=True)
class EventEdge:
    """A derived relationship between two events. Never persisted."""

    source_id: int
    target_id: int
    relation: EdgeRelation

    def __str__(self) -> str:
        return f"#{self.source_id}→#{self.target_id}({self.relation.value})"

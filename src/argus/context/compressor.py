"""Context compression for language-model prompts.

Events are ranked by how much signal they carry right now, the best ones
are serialized one per line in a dense pipe-delimited form, and pairwise
relationships are appended as a trailing hint. Long chat histories are
folded into a short memory packet while the latest turns stay verbatim.

Dense line format (field order is relied upon by the prompts)::

    #ID|TYP|STATUS|"Title"|time|location|sender|keywords
"""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..memory.models import EdgeRelation, Event, EventEdge, EventStatus, EventType

DEFAULT_MAX_EVENTS = 60
DEFAULT_RECENT_TURNS = 6
MAX_EDGES_IN_PROMPT = 10

HOUR = 3600
DAY = 86400

TYPE_CODES: dict[str, str] = {
    EventType.MEETING.value: "MTG",
    EventType.DEADLINE.value: "DLN",
    EventType.REMINDER.value: "RMD",
    EventType.TRAVEL.value: "TRV",
    EventType.TASK.value: "TSK",
    EventType.SUBSCRIPTION.value: "SUB",
    EventType.RECOMMENDATION.value: "REC",
    EventType.OTHER.value: "OTH",
}
UNKNOWN_TYPE_CODE = "OTH"

STATUS_GLYPHS: dict[str, str] = {
    EventStatus.DISCOVERED.value: "🆕",
    EventStatus.SCHEDULED.value: "⏰",
    EventStatus.COMPLETED.value: "✅",
    EventStatus.IGNORED.value: "🚫",
    EventStatus.SNOOZED.value: "💤",
    EventStatus.REMINDED.value: "🔔",
    "expired": "⌛",
}
UNKNOWN_STATUS_GLYPH = "❓"

NO_TIME = "—"
NO_LOCATION = "—"
NO_SENDER = "?"
PAST_MARKER = " [PAST]"

CANCEL_TERMS = ("cancel", "unsubscribe")

KEY_FACT_PATTERN = re.compile(
    r"\b(event|meeting|reminder|deadline|scheduled|cancel|done|recommend|gift"
    r"|travel|subscription|tomorrow|today|next week)\b",
    re.IGNORECASE,
)
EVENT_REF_PATTERN = re.compile(r"#\d+")
SENTENCE_SPLIT = re.compile(r"[.!]\s+")


@dataclass(frozen=True)
class RankedEvent:
    """An event paired with its signal priority (0-10)."""

    event: Event
    priority: int


@dataclass
class CompressedContext:
    """Dense event block ready for a prompt.

    Attributes:
        events: The dense text block, relationships line included.
        event_count: How many events made it into the block.
        token_estimate: Rough token count (chars / 4).
        edges: Every relationship detected among the selected events.
        compression_ratio: Verbose size divided by dense size.
    """

    events: str
    event_count: int
    token_estimate: int
    edges: list[EventEdge] = field(default_factory=list)
    compression_ratio: float = 1.0

    @property
    def reduction(self) -> float:
        """Share of characters saved versus the verbose form."""
        if self.compression_ratio <= 0:
            return 0.0
        return 1 - 1 / self.compression_ratio


@dataclass
class ChatMemoryResult:
    """Chat history split into verbatim recent turns and a memory packet."""

    recent_history: list[dict[str, Any]]
    memory_packet: str | None


def signal_priority(event: Event, now: int) -> int:
    """Score how relevant an event is right now, clamped to [0, 10]."""
    priority = 5

    if event.event_time:
        hours_until = (event.event_time - now) / HOUR
        if 0 < hours_until <= 2:
            priority += 4
        elif 0 < hours_until <= 24:
            priority += 3
        elif 0 < hours_until <= 168:
            priority += 2
        elif 168 < hours_until <= 720:
            priority += 1
        elif hours_until < 0:
            priority -= 2

    if event.status in (EventStatus.COMPLETED.value, EventStatus.IGNORED.value):
        priority -= 3
    elif event.status in (EventStatus.SCHEDULED.value, EventStatus.SNOOZED.value):
        priority += 1

    if event.context_url:
        priority += 1

    if event.created_at:
        days_old = (now - event.created_at) / DAY
        if days_old > 30:
            priority -= 1
        if days_old > 90:
            priority -= 2

    if event.event_type == EventType.RECOMMENDATION.value and event.context_url:
        priority += 1

    return max(0, min(10, priority))


def filter_by_signal(events: list[Event], now: int | None = None) -> list[RankedEvent]:
    """Rank events by signal, highest first; ties keep input order."""
    current = int(time.time()) if now is None else now
    ranked = [RankedEvent(event=e, priority=signal_priority(e, current)) for e in events]
    return sorted(ranked, key=lambda r: r.priority, reverse=True)


def format_event_time(event_time: int, now: int | None = None, mark_past: bool = True) -> str:
    """Format like 'Mon, Jan 5 3:04 PM', with a past marker when due."""
    moment = datetime.fromtimestamp(event_time)
    hour = moment.hour % 12 or 12
    text = f"{moment:%a}, {moment:%b} {moment.day} {hour}:{moment:%M} {moment:%p}"
    current = int(time.time()) if now is None else now
    if mark_past and event_time < current:
        text += PAST_MARKER
    return text


def _field(value: str) -> str:
    """Keep a value on one line and free of the delimiter."""
    return value.replace("|", "/").replace("\r", " ").replace("\n", " ")


def encode_event(event: Event, now: int | None = None) -> str:
    """Serialize one event as a dense 8-field line."""
    parts = [
        f"#{event.id}",
        TYPE_CODES.get(event.event_type, UNKNOWN_TYPE_CODE),
        STATUS_GLYPHS.get(event.status, UNKNOWN_STATUS_GLYPH),
        f'"{_field(event.title)}"',
        format_event_time(event.event_time, now) if event.event_time else NO_TIME,
        _field(event.location) if event.location else NO_LOCATION,
        _field(event.sender_name) if event.sender_name else NO_SENDER,
        _field(event.keywords),
    ]
    return "|".join(parts)


def verbose_event_line(event: Event, now: int | None = None) -> str:
    """The long-hand form the dense encoding is measured against."""
    when = format_event_time(event.event_time, now) if event.event_time else "none"
    line = (
        f'[{event.status}] ID#{event.id} | "{event.title}" | type: {event.event_type}'
        f" | time: {when} | location: {event.location or 'none'}"
        f" | status: {event.status} | sender: {event.sender_name or 'unknown'}"
        f" | keywords: {event.keywords}"
    )
    if event.description:
        line += f" | desc: {event.description}"
    return line


def _keyword_set(event: Event) -> set[str]:
    return {
        k.strip()
        for k in event.keywords.lower().split(",")
        if len(k.strip()) > 2
    }


def _mentions_cancel(title: str) -> bool:
    lowered = title.lower()
    return any(term in lowered for term in CANCEL_TERMS)


def detect_event_edges(events: list[Event]) -> list[EventEdge]:
    """Find pairwise relationships among events.

    Two or more shared keywords relate a pair: exactly two is 'related',
    more is 'same_topic', and a subscription paired with a cancel/unsubscribe
    title becomes 'cancels'. Independently, events 1s to 1h apart conflict.
    """
    edges: list[EventEdge] = []
    if len(events) < 2:
        return edges

    keyword_sets = [_keyword_set(e) for e in events]

    for i, a in enumerate(events):
        for j in range(i + 1, len(events)):
            b = events[j]
            if a.id is None or b.id is None:
                continue

            overlap = keyword_sets[i] & keyword_sets[j]
            if len(overlap) >= 2:
                a_sub = a.event_type == EventType.SUBSCRIPTION.value
                b_sub = b.event_type == EventType.SUBSCRIPTION.value
                if (a_sub and _mentions_cancel(b.title)) or (b_sub and _mentions_cancel(a.title)):
                    relation = EdgeRelation.CANCELS
                elif len(overlap) >= 3:
                    relation = EdgeRelation.SAME_TOPIC
                else:
                    relation = EdgeRelation.RELATED
                edges.append(EventEdge(a.id, b.id, relation))

            if a.event_time and b.event_time:
                diff = abs(a.event_time - b.event_time)
                if 0 < diff <= HOUR:
                    edges.append(EventEdge(a.id, b.id, EdgeRelation.CONFLICTS))

    return edges


def compress_events_for_prompt(
    events: list[Event],
    max_events: int = DEFAULT_MAX_EVENTS,
    now: int | None = None,
) -> CompressedContext:
    """Rank, select and densely encode events for a prompt."""
    if not events:
        return CompressedContext(
            events="No events stored yet.",
            event_count=0,
            token_estimate=5,
        )

    current = int(time.time()) if now is None else now
    original_size = sum(len(verbose_event_line(e, current)) for e in events)

    selected = [r.event for r in filter_by_signal(events, current)[:max_events]]
    compressed = "\n".join(encode_event(e, current) for e in selected)

    edges = detect_event_edges(selected)
    edge_suffix = ""
    if edges:
        edge_suffix = "\nRelationships: " + ", ".join(
            str(edge) for edge in edges[:MAX_EDGES_IN_PROMPT]
        )

    return CompressedContext(
        events=compressed + edge_suffix,
        event_count=len(selected),
        token_estimate=math.ceil((len(compressed) + len(edge_suffix)) / 4),
        edges=edges,
        compression_ratio=original_size / len(compressed) if compressed else 1.0,
    )


def compress_events_light(events: list[Event]) -> str:
    """One short line per event for small prompts; no ranking."""
    lines = []
    for e in events:
        code = TYPE_CODES.get(e.event_type, UNKNOWN_TYPE_CODE)
        when = format_event_time(e.event_time, mark_past=False) if e.event_time else "no date"
        lines.append(
            f'  [#{e.id}] {code} "{e.title}" | {when} | {e.location or NO_LOCATION}'
            f" | kw: {e.keywords} | from: {e.sender_name or NO_SENDER}"
        )
    return "\n".join(lines)


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "…" if len(text) > limit else text


def compress_chat_history(
    history: list[dict[str, Any]],
    max_recent_turns: int = DEFAULT_RECENT_TURNS,
) -> ChatMemoryResult:
    """Fold older chat turns into a memory packet.

    Args:
        history: Turns as {"role": ..., "content": ...}, oldest first.
        max_recent_turns: How many trailing turns to keep verbatim.

    Returns:
        ChatMemoryResult; memory_packet is None when nothing was folded.
    """
    if len(history) <= max_recent_turns:
        return ChatMemoryResult(recent_history=list(history), memory_packet=None)

    older = history[: len(history) - max_recent_turns]
    recent = history[len(history) - max_recent_turns :]

    user_queries: list[str] = []
    key_facts: list[str] = []
    event_refs: list[str] = []

    for turn in older:
        content = str(turn.get("content") or "").strip()
        if len(content) < 5:
            continue

        if turn.get("role") == "user":
            user_queries.append(_truncate(content, 100))
            continue

        sentences = [s for s in SENTENCE_SPLIT.split(content) if len(s) > 15]
        for sentence in sentences[:3]:
            if KEY_FACT_PATTERN.search(sentence):
                key_facts.append(_truncate(sentence, 120))
        event_refs.extend(EVENT_REF_PATTERN.findall(content))

    parts = [f"[Prior conversation: {len(older)} turns compressed]"]
    if user_queries:
        parts.append("User asked: " + " → ".join(user_queries[-5:]))
    if key_facts:
        parts.append("Key facts: " + " | ".join(key_facts[-5:]))
    if event_refs:
        unique_refs = list(dict.fromkeys(event_refs))[:10]
        parts.append("Events discussed: " + ", ".join(unique_refs))

    return ChatMemoryResult(recent_history=recent, memory_packet="\n".join(parts))

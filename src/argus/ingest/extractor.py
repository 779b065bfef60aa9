"""Event extraction and upsert.

Candidates proposed by the model go through one policy per candidate:
confidence gate, then update / merge into an existing event, or create
(with duplicate suppression, time normalization, context tagging,
conflict annotation and trigger materialization).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..memory.models import Event, EventStatus, Message, normalize_keywords, split_keywords
from ..memory.store import EventStore
from .timeparse import normalize_event_time
from .triggers import create_time_triggers, materialize_triggers
from .vocab import resolve_context_tag

if TYPE_CHECKING:
    from ..config import ArgusConfig
    from ..llm import ArgusLLM, ExtractedEvent

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTION_CONFIDENCE = 0.65


@dataclass(frozen=True)
class ConflictInfo:
    """A scheduled event close in time to a newly created one."""

    id: int
    title: str
    event_time: int | None


@dataclass
class ProcessedEvent:
    """An event the extractor created or changed.

    Attributes:
        event: The event as stored after the change.
        outcome: 'created', 'updated' or 'merged'.
        conflicts: Scheduled events within the conflict window (creates only).
    """

    event: Event
    outcome: str
    conflicts: list[ConflictInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self.event.to_dict()
        data["outcome"] = self.outcome
        if self.conflicts:
            data["conflicts"] = [
                {"id": c.id, "title": c.title, "event_time": c.event_time}
                for c in self.conflicts
            ]
        return data


@dataclass
class ExtractionResult:
    """What extraction did for one message."""

    events_created: int = 0
    events_updated: int = 0
    triggers_created: int = 0
    events: list[ProcessedEvent] = field(default_factory=list)


class EventExtractor:
    """Turns a message into stored events."""

    def __init__(
        self,
        store: EventStore,
        llm: ArgusLLM,
        config: ArgusConfig | None = None,
    ) -> None:
        self.store = store
        self.llm = llm
        self.min_confidence = (
            config.extraction_confidence if config else DEFAULT_EXTRACTION_CONFIDENCE
        )
        self.dedup_window_hours = config.dedup_window_hours if config else 48
        self.conflict_window_minutes = config.conflict_window_minutes if config else 60

    async def extract(
        self,
        message: Message,
        context: list[str],
        active_events: list[Event],
        sender_name: str | None = None,
        now: int | None = None,
    ) -> ExtractionResult:
        """Ask the model for candidates and upsert them.

        Collaborator errors propagate; the caller decides how to report them.
        """
        current = int(time.time()) if now is None else now
        candidates = await self.llm.extract_events(
            message.content,
            context,
            datetime.fromtimestamp(current).astimezone().isoformat(),
            active_events,
            message.timestamp,
        )
        return self.apply_candidates(candidates, message, sender_name, current)

    def apply_candidates(
        self,
        candidates: list[ExtractedEvent],
        message: Message | None,
        sender_name: str | None = None,
        now: int | None = None,
    ) -> ExtractionResult:
        """Run the upsert policy over model candidates, in order."""
        current = int(time.time()) if now is None else now
        result = ExtractionResult()

        for candidate in candidates:
            if candidate.confidence < self.min_confidence:
                logger.info(
                    f"Skipping low-confidence event {candidate.title!r} ({candidate.confidence})"
                )
                continue

            if candidate.event_action in ("update", "merge") and candidate.target_event_id:
                target = self.store.get_event(candidate.target_event_id)
                if target is not None:
                    processed, triggers = self._change_existing(candidate, target, current)
                    if processed is not None:
                        result.events.append(processed)
                        result.events_updated += 1
                        result.triggers_created += triggers
                    continue
                logger.warning(
                    f"{candidate.event_action} target #{candidate.target_event_id} "
                    f"not found; treating {candidate.title!r} as new"
                )

            created = self._create(candidate, message, sender_name, current)
            if created is not None:
                processed, triggers = created
                result.events.append(processed)
                result.events_created += 1
                result.triggers_created += triggers

        return result

    def _change_existing(
        self, candidate: ExtractedEvent, target: Event, now: int
    ) -> tuple[ProcessedEvent | None, int]:
        assert target.id is not None
        fields: dict[str, Any] = {}

        if candidate.event_action == "update":
            if candidate.title:
                fields["title"] = candidate.title
            if candidate.description:
                fields["description"] = candidate.description
            if candidate.location:
                fields["location"] = candidate.location
            if candidate.event_time:
                event_time = normalize_event_time(candidate.event_time, now)
                if event_time is not None:
                    fields["event_time"] = event_time
            if candidate.keywords:
                fields["keywords"] = normalize_keywords(candidate.keywords)
            if candidate.participants:
                fields["participants"] = list(candidate.participants)
        else:
            if candidate.description:
                existing = (target.description or "").strip()
                fields["description"] = (
                    f"{existing}. {candidate.description}" if existing else candidate.description
                )
            if candidate.participants:
                merged = list(target.participants)
                for name in candidate.participants:
                    if name not in merged:
                        merged.append(name)
                fields["participants"] = merged

        if not fields or not self.store.update_event(target.id, fields):
            return None, 0

        triggers = 0
        new_time = fields.get("event_time")
        if new_time and new_time != target.event_time:
            self.store.delete_time_triggers(target.id)
            triggers = create_time_triggers(self.store, target.id, new_time, now)

        logger.info(
            f"Event #{target.id} {candidate.event_action}d: [{', '.join(fields)}]"
        )
        updated = self.store.get_event(target.id) or target
        outcome = "updated" if candidate.event_action == "update" else "merged"
        return ProcessedEvent(event=updated, outcome=outcome), triggers

    def _create(
        self,
        candidate: ExtractedEvent,
        message: Message | None,
        sender_name: str | None,
        now: int,
    ) -> tuple[ProcessedEvent, int] | None:
        duplicate = self.store.find_duplicate_event(
            candidate.title, self.dedup_window_hours, now
        )
        if duplicate is not None:
            logger.info(
                f"Skipping duplicate event {candidate.title!r} "
                f"(matches #{duplicate.id} {duplicate.title!r})"
            )
            return None

        event_time = normalize_event_time(candidate.event_time, now)
        keywords = normalize_keywords(candidate.keywords)

        tag = resolve_context_tag(
            candidate.type,
            candidate.title,
            candidate.description,
            candidate.location,
            split_keywords(keywords),
        )
        context_url = tag[1] if tag else None
        if tag:
            logger.info(f"Context tag {context_url!r} ({tag[0]}) for {candidate.title!r}")
        status = EventStatus.SCHEDULED if context_url else EventStatus.DISCOVERED

        event = Event(
            message_id=message.id if message else None,
            event_type=candidate.type,
            title=candidate.title,
            description=candidate.description,
            event_time=event_time,
            location=candidate.location,
            participants=list(candidate.participants),
            keywords=keywords,
            confidence=candidate.confidence,
            status=status.value,
            context_url=context_url,
            sender_name=sender_name,
            created_at=now,
        )
        event_id = self.store.insert_event(event)
        stored = self.store.get_event(event_id) or event

        conflicts: list[ConflictInfo] = []
        if event_time:
            conflicts = [
                ConflictInfo(id=e.id, title=e.title, event_time=e.event_time)
                for e in self.store.check_event_conflicts(
                    event_time, self.conflict_window_minutes
                )
                if e.id is not None and e.id != event_id
            ]
            if conflicts:
                logger.warning(
                    f"Event {candidate.title!r} conflicts with {len(conflicts)} event(s)"
                )

        triggers = materialize_triggers(
            self.store,
            event_id,
            event_time=event_time,
            location=candidate.location,
            context_url=context_url,
            keywords=split_keywords(keywords),
            now=now,
        )
        return ProcessedEvent(event=stored, outcome="created", conflicts=conflicts), triggers

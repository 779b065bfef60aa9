"""Message intake: parse, store, route to an action or to extraction."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..memory.models import Contact, Message, PendingAction
from ..memory.store import EventStore
from .actions import ActionResult, ActionRouter
from .extractor import EventExtractor, ProcessedEvent

if TYPE_CHECKING:
    from ..config import ArgusConfig
    from ..llm import ArgusLLM
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)

SELF_SENDER = "self"
GROUP_SUFFIX = "@g.us"


@dataclass(frozen=True)
class InboundMessage:
    """A text message as delivered by the chat transport."""

    id: str
    chat_id: str
    sender: str
    content: str | None
    timestamp: int | None
    sender_name: str | None = None
    from_me: bool = False
    is_group: bool = False


@dataclass
class IngestionResult:
    """Outcome of processing one inbound message."""

    message_id: str
    events_created: int = 0
    events_updated: int = 0
    triggers_created: int = 0
    skipped: bool = False
    skip_reason: str | None = None
    events: list[ProcessedEvent] = field(default_factory=list)
    action_performed: ActionResult | None = None
    pending_action: PendingAction | None = None
    error: str | None = None

    @property
    def conflicts(self) -> list[dict[str, Any]]:
        """Created events that collide in time with scheduled ones."""
        return [
            {
                "event_id": processed.event.id,
                "conflicts_with": [
                    {"id": c.id, "title": c.title, "event_time": c.event_time}
                    for c in processed.conflicts
                ],
            }
            for processed in self.events
            if processed.conflicts
        ]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "messageId": self.message_id,
            "eventsCreated": self.events_created,
            "eventsUpdated": self.events_updated,
            "triggersCreated": self.triggers_created,
            "skipped": self.skipped,
        }
        if self.skip_reason:
            data["skipReason"] = self.skip_reason
        if self.events:
            data["events"] = [e.to_dict() for e in self.events]
        if self.conflicts:
            data["conflicts"] = self.conflicts
        if self.action_performed:
            data["actionPerformed"] = self.action_performed.to_dict()
        if self.pending_action:
            data["pendingAction"] = self.pending_action.to_dict()
        if self.error:
            data["error"] = self.error
        return data


def _parse_timestamp(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_webhook(payload: dict[str, Any]) -> InboundMessage:
    """Map a chat webhook payload to an InboundMessage.

    Accepts either the full payload (``{"data": {...}}``) or its ``data``
    object: ``{key: {remoteJid, fromMe, id}, pushName, message:
    {conversation | extendedTextMessage: {text}}, messageTimestamp}``.
    Missing content or timestamp is left as None for the pipeline to skip.
    """
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    key = data.get("key") or {}
    chat_id = str(key.get("remoteJid") or "")
    from_me = bool(key.get("fromMe", False))

    message = data.get("message") or {}
    content = message.get("conversation")
    if not content:
        extended = message.get("extendedTextMessage") or {}
        content = extended.get("text")

    return InboundMessage(
        id=str(key.get("id") or ""),
        chat_id=chat_id,
        sender=SELF_SENDER if from_me else chat_id.split("@")[0],
        content=content or None,
        timestamp=_parse_timestamp(data.get("messageTimestamp")),
        sender_name=data.get("pushName") or None,
        from_me=from_me,
        is_group=GROUP_SUFFIX in chat_id,
    )


class IngestionPipeline:
    """Processes inbound messages one at a time, to completion.

    Example:
        pipeline = IngestionPipeline(store, llm, config)
        result = await pipeline.process_webhook(payload)
        if result.pending_action:
            ...  # ask the user to confirm
    """

    def __init__(
        self,
        store: EventStore,
        llm: ArgusLLM,
        config: ArgusConfig | None = None,
        json_logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.llm = llm
        self.config = config
        self.json_logger = json_logger
        self.router = ActionRouter(store, llm, config, json_logger)
        self.extractor = EventExtractor(store, llm, config)

        self.process_own_messages = config.process_own_messages if config else True
        self.skip_group_messages = config.skip_group_messages if config else False
        self.context_messages = config.context_messages if config else 5
        self.active_events_limit = config.active_events_limit if config else 20

    async def process_webhook(
        self, payload: dict[str, Any], now: int | None = None
    ) -> IngestionResult:
        """Parse a webhook payload and process it."""
        return await self.process(parse_webhook(payload), now)

    def _skip(self, inbound: InboundMessage, reason: str) -> IngestionResult:
        logger.info(f"Skipping message {inbound.id}: {reason}")
        if self.json_logger:
            self.json_logger.log(
                "message_skipped",
                chat_id=inbound.chat_id,
                message_id=inbound.id,
                reason=reason,
            )
        return IngestionResult(message_id=inbound.id, skipped=True, skip_reason=reason)

    async def process(
        self, inbound: InboundMessage, now: int | None = None
    ) -> IngestionResult:
        """Run one message through intake, action routing and extraction.

        The raw message is stored before any model call. Failures after
        that point are logged and reported on the result, not raised.
        """
        if not inbound.content or not inbound.content.strip():
            return self._skip(inbound, "no_content")
        if inbound.timestamp is None:
            return self._skip(inbound, "invalid_timestamp")
        if inbound.from_me and not self.process_own_messages:
            return self._skip(inbound, "own_message")
        if inbound.is_group and self.skip_group_messages:
            return self._skip(inbound, "group_message")

        current = int(time.time()) if now is None else now
        message = Message(
            id=inbound.id,
            chat_id=inbound.chat_id,
            sender=inbound.sender,
            content=inbound.content,
            timestamp=inbound.timestamp,
        )
        self.store.insert_message(message)
        self.store.upsert_contact(
            Contact(
                id=inbound.sender,
                name=inbound.sender_name,
                first_seen=inbound.timestamp,
                last_seen=inbound.timestamp,
                message_count=1,
            )
        )

        if not self.llm.classify(message.content):
            return self._skip(inbound, "trivial_message")

        start = time.perf_counter()
        try:
            return await self._route(message, inbound.sender_name, current, start)
        except Exception as e:
            logger.exception(f"Failed to process message {message.id}")
            if self.json_logger:
                self.json_logger.log(
                    "pipeline_error",
                    chat_id=message.chat_id,
                    message_id=message.id,
                    error=str(e),
                )
            return IngestionResult(message_id=message.id, error=str(e))

    async def _route(
        self, message: Message, sender_name: str | None, now: int, start: float
    ) -> IngestionResult:
        recent = self.store.get_recent_messages(message.chat_id, self.context_messages)
        context = [m.content for m in recent if m.id != message.id]

        # Fresh snapshot per message; never reused across messages.
        active_events = self.store.get_active_events(self.active_events_limit)

        outcome = await self.router.route(message, context, active_events, now)
        if isinstance(outcome, PendingAction):
            return IngestionResult(message_id=message.id, pending_action=outcome)
        if isinstance(outcome, ActionResult):
            return IngestionResult(message_id=message.id, action_performed=outcome)

        extraction = await self.extractor.extract(
            message, context, active_events, sender_name, now
        )
        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"Message {message.id}: {extraction.events_created} created, "
            f"{extraction.events_updated} updated, "
            f"{extraction.triggers_created} triggers"
        )
        if self.json_logger:
            for processed in extraction.events:
                self.json_logger.log(
                    "event_created" if processed.outcome == "created" else "event_updated",
                    chat_id=message.chat_id,
                    message_id=message.id,
                    event_id=processed.event.id,
                    title=processed.event.title,
                    outcome=processed.outcome,
                )
            self.json_logger.log_ingestion(
                message.id,
                chat_id=message.chat_id,
                events_created=extraction.events_created,
                events_updated=extraction.events_updated,
                triggers_created=extraction.triggers_created,
                duration_ms=duration_ms,
            )

        return IngestionResult(
            message_id=message.id,
            events_created=extraction.events_created,
            events_updated=extraction.events_updated,
            triggers_created=extraction.triggers_created,
            events=extraction.events,
        )

    async def import_messages(
        self, records: list[dict[str, Any]], now: int | None = None
    ) -> dict[str, int]:
        """Store and process a batch of exported chat messages.

        Each record is ``{content, sender, chat_id, timestamp}`` (an ``id``
        is optional). Records are processed in order; one failing record
        does not stop the batch.

        Returns:
            ``{"total": ..., "processed": ..., "events": ...}``
        """
        processed = 0
        events = 0
        for index, record in enumerate(records):
            timestamp = _parse_timestamp(record.get("timestamp"))
            sender = str(record.get("sender") or SELF_SENDER)
            chat_id = str(record.get("chat_id") or "import")
            inbound = InboundMessage(
                id=str(record.get("id") or f"import-{chat_id}-{timestamp}-{index}"),
                chat_id=chat_id,
                sender=sender,
                content=record.get("content"),
                timestamp=timestamp,
                sender_name=record.get("sender_name") or None,
                from_me=sender == SELF_SENDER,
                is_group=GROUP_SUFFIX in chat_id,
            )
            result = await self.process(inbound, now)
            if result.skipped or result.error:
                continue
            processed += 1
            events += result.events_created

        logger.info(f"Imported {len(records)} messages: {processed} processed, {events} events")
        return {"total": len(records), "processed": processed, "events": events}

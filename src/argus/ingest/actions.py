"""Action classification and routing.

A message like "cancel it" or "done" acts on an event that already
exists. Status changes are applied right away; field rewrites (modify)
are only proposed and come back as a PendingAction for the user to
confirm.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..memory.models import Event, Message, PendingAction
from ..memory.store import EventStore
from .timeparse import normalize_event_time
from .triggers import create_time_triggers

if TYPE_CHECKING:
    from ..config import ArgusConfig
    from ..llm import ActionDetection, ArgusLLM
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)

DEFAULT_ACTION_CONFIDENCE = 0.6
DEFAULT_SNOOZE_MINUTES = 30


@dataclass
class ActionResult:
    """An action that was applied to an existing event."""

    action: str
    target_event_id: int | None
    target_event_title: str | None
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "targetEventId": self.target_event_id,
            "targetEventTitle": self.target_event_title,
            "message": self.message,
        }


def is_actionable(detection: ActionDetection, threshold: float = DEFAULT_ACTION_CONFIDENCE) -> bool:
    """True when a detection is confident enough to act on."""
    return (
        detection.is_action
        and detection.confidence >= threshold
        and detection.action != "none"
    )


def snooze_duration_text(minutes: int) -> str:
    """Human-readable snooze length."""
    if minutes >= 10080:
        return "next week"
    if minutes >= 1440:
        return "tomorrow"
    if minutes >= 60:
        return f"{math.floor(minutes / 60 + 0.5)} hours"
    return f"{minutes} minutes"


def format_change_time(event_time: int) -> str:
    moment = datetime.fromtimestamp(event_time)
    hour = moment.hour % 12 or 12
    return f"{moment:%A}, {moment:%b} {moment.day} {hour}:{moment:%M} {moment:%p}"


def describe_changes(changes: dict[str, Any]) -> str:
    """Summarize proposed changes, e.g. 'title → "X", location → "Y"'."""
    parts = []
    if changes.get("title"):
        parts.append(f'title → "{changes["title"]}"')
    if changes.get("event_time"):
        parts.append(f"time → {format_change_time(changes['event_time'])}")
    if changes.get("location"):
        parts.append(f'location → "{changes["location"]}"')
    if changes.get("description"):
        parts.append("description updated")
    return ", ".join(parts) if parts else "no changes specified"


def build_pending_action(
    target: Event, detection: ActionDetection, now: int | None = None
) -> PendingAction:
    """Turn a modify request into a proposal; nothing is written."""
    changes: dict[str, Any] = {}
    if detection.new_time:
        event_time = normalize_event_time(detection.new_time, now)
        if event_time is not None:
            changes["event_time"] = event_time
    if detection.new_title:
        changes["title"] = detection.new_title
    if detection.new_location:
        changes["location"] = detection.new_location
    if detection.new_description:
        changes["description"] = detection.new_description

    assert target.id is not None
    return PendingAction(
        target_event_id=target.id,
        target_event_title=target.title,
        changes=changes,
        description=describe_changes(changes),
    )


def confirm_pending_action(
    store: EventStore, pending: PendingAction, now: int | None = None
) -> bool:
    """Apply a resubmitted PendingAction.

    A new event time replaces all of the event's time triggers.

    Returns:
        True if the target event existed and was updated.
    """
    if not pending.changes:
        return False
    if not store.update_event(pending.target_event_id, pending.changes):
        logger.warning(f"Pending action target #{pending.target_event_id} is gone")
        return False

    event_time = pending.changes.get("event_time")
    if event_time:
        store.delete_time_triggers(pending.target_event_id)
        create_time_triggers(store, pending.target_event_id, int(event_time), now)
    logger.info(
        f"Confirmed changes to event #{pending.target_event_id}: {pending.description}"
    )
    return True


class ActionRouter:
    """Decides whether a message mutates an existing event, and does it."""

    def __init__(
        self,
        store: EventStore,
        llm: ArgusLLM,
        config: ArgusConfig | None = None,
        json_logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.llm = llm
        self.threshold = config.action_confidence if config else DEFAULT_ACTION_CONFIDENCE
        self.default_snooze = (
            config.default_snooze_minutes if config else DEFAULT_SNOOZE_MINUTES
        )
        self.json_logger = json_logger

    async def route(
        self,
        message: Message,
        context: list[str],
        active_events: list[Event],
        now: int | None = None,
    ) -> ActionResult | PendingAction | None:
        """Classify a message and apply the action it asks for.

        Args:
            message: The incoming message.
            context: Up to five prior messages of the same chat.
            active_events: Fresh snapshot of open events, newest first.
            now: Current unix time (for snoozes and time normalization).

        Returns:
            ActionResult when a status change was applied, PendingAction for
            a modify request, or None when the message is not an action (or
            no target could be resolved) and extraction should run.
        """
        detection = await self.llm.detect_action(
            message.content, context, active_events, message.timestamp
        )
        if not is_actionable(detection, self.threshold):
            return None

        logger.info(
            f"Detected action {detection.action!r} on {detection.target_description!r} "
            f"(confidence {detection.confidence:.2f})"
        )

        target = self.resolve_target(detection, active_events)
        if target is None or target.id is None:
            logger.info("No target event for action; falling through to extraction")
            return None

        if detection.action == "modify":
            pending = build_pending_action(target, detection, now)
            logger.info(
                f"Modify proposed for event #{target.id} {target.title!r}: "
                f"{pending.description} (awaiting confirmation)"
            )
            if self.json_logger:
                self.json_logger.log_action(
                    "modify",
                    target.id,
                    pending=True,
                    chat_id=message.chat_id,
                    message_id=message.id,
                )
            return pending

        result = self._apply(detection, target, now)
        if self.json_logger:
            self.json_logger.log_action(
                detection.action,
                target.id,
                chat_id=message.chat_id,
                message_id=message.id,
            )
        return result

    def resolve_target(
        self, detection: ActionDetection, active_events: list[Event]
    ) -> Event | None:
        """Best keyword match, else the most recently active event."""
        if detection.target_keywords:
            matches = self.store.find_active_events_by_keywords(detection.target_keywords)
            if matches:
                return matches[0]
        return active_events[0] if active_events else None

    def _apply(self, detection: ActionDetection, target: Event, now: int | None) -> ActionResult:
        assert target.id is not None
        event_id = target.id
        action = detection.action

        if action in ("cancel", "delete"):
            self.store.delete_event(event_id)
            message = f'Deleted: "{target.title}"'
        elif action == "complete":
            self.store.complete_event(event_id)
            message = f'Completed: "{target.title}"'
        elif action == "ignore":
            self.store.ignore_event(event_id)
            message = f"Ignored: \"{target.title}\" - won't remind again"
        elif action in ("snooze", "postpone"):
            minutes = detection.snooze_minutes or self.default_snooze
            self.store.snooze_event(event_id, minutes, int(time.time()) if now is None else now)
            message = f'Snoozed: "{target.title}" → will remind {snooze_duration_text(minutes)}'
        else:
            message = f"Unknown action: {action}"

        logger.info(f"Event #{event_id}: {message}")
        return ActionResult(
            action=action,
            target_event_id=event_id,
            target_event_title=target.title,
            message=message,
        )

"""Language-model collaborator backed by Groq.

Transport errors from the Groq SDK propagate to the caller. Malformed
model output never does: it is normalized to a safe default (no action,
no events, nothing relevant) and logged.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from groq import AsyncGroq

from ..context.compressor import (
    compress_chat_history,
    compress_events_for_prompt,
    compress_events_light,
)
from ..memory.models import Event, EventType, clamp_confidence
from .prompts import (
    ANSWER_PROMPT,
    DETECT_ACTION_PROMPT,
    EXTRACT_EVENTS_PROMPT,
    SYSTEM_PROMPT,
    VALIDATE_RELEVANCE_PROMPT,
)

if TYPE_CHECKING:
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.1-70b-versatile"

ACTIONS = frozenset(
    {"cancel", "delete", "complete", "ignore", "snooze", "postpone", "modify", "none"}
)
EVENT_ACTIONS = frozenset({"create", "update", "merge"})

NOISE_WORDS = frozenset(
    {
        "ok", "okay", "k", "kk", "lol", "lmao", "haha", "hahaha", "hehe",
        "hmm", "hm", "yes", "no", "ya", "yep", "nope", "thanks", "thx",
        "ty", "cool", "nice", "sure", "hi", "hello", "bye", "gn",
    }
)


@dataclass
class ActionDetection:
    """What the model thinks a message wants done to an existing event."""

    is_action: bool = False
    action: str = "none"
    confidence: float = 0.0
    target_description: str = ""
    target_keywords: list[str] = field(default_factory=list)
    snooze_minutes: int | None = None
    new_time: str | None = None
    new_title: str | None = None
    new_location: str | None = None
    new_description: str | None = None


@dataclass
class ExtractedEvent:
    """A candidate event proposed by the model."""

    title: str
    type: str = EventType.OTHER.value
    description: str | None = None
    event_time: str | None = None
    location: str | None = None
    participants: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    confidence: float = 0.0
    event_action: str = "create"
    target_event_id: int | None = None


@dataclass
class RelevanceResult:
    """Indexes of candidates the model judged relevant."""

    relevant: list[int] = field(default_factory=list)
    confidence: float = 0.0


def strip_code_fence(content: str) -> str:
    """Remove a surrounding markdown code block, if any."""
    text = content.strip()
    if not text.startswith("```"):
        return text
    lines = [line for line in text.split("\n") if not line.startswith("```")]
    return "\n".join(lines)


def parse_json_object(content: str) -> dict[str, Any] | None:
    """Parse a model reply into a JSON object, or None if it isn't one."""
    try:
        data = json.loads(strip_code_fence(content))
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse model response: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning("Model response is not a JSON object")
        return None
    return data


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none"):
        return None
    return text


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and value.strip().lower() == "true"


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _positive_int(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _iso(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp).isoformat()


class ArgusLLM:
    """The model-facing operations the memory pipeline relies on.

    Example:
        from groq import AsyncGroq
        from argus.llm import ArgusLLM

        llm = ArgusLLM(AsyncGroq(api_key="..."), model="llama-3.1-70b-versatile")
        detection = await llm.detect_action(text, context, events, timestamp)
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = DEFAULT_MODEL,
        max_prompt_events: int = 60,
        json_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the collaborator.

        Args:
            client: The AsyncGroq client instance to wrap.
            model: The model to use for completions.
            max_prompt_events: Cap on events densely encoded into prompts.
            json_logger: Optional structured log for compression stats.
        """
        self._client = client
        self._model = model
        self.max_prompt_events = max_prompt_events
        self.json_logger = json_logger

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model

    async def complete(self, prompt: str, system: str | None = SYSTEM_PROMPT) -> str:
        """Complete a prompt and return the text response."""
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=0.1,  # Low temperature for consistent extraction
        )
        return response.choices[0].message.content or ""

    def classify(self, text: str) -> bool:
        """Cheap noise pre-filter: True if the message is worth a model call."""
        stripped = (text or "").strip()
        if len(stripped) < 3:
            return False
        if not re.search(r"\w", stripped):
            return False  # emoji / punctuation only
        words = re.sub(r"[^\w\s?]", "", stripped.lower()).split()
        return not (words and all(w in NOISE_WORDS for w in words))

    async def detect_action(
        self,
        text: str,
        context: list[str],
        active_events: list[Event],
        timestamp: int,
    ) -> ActionDetection:
        """Ask whether a message acts on one of the active events."""
        prompt = DETECT_ACTION_PROMPT.format(
            timestamp=_iso(timestamp),
            events=compress_events_light(active_events) or "  (none)",
            context="\n".join(f"- {c}" for c in context) or "(none)",
            message=text,
        )
        data = parse_json_object(await self.complete(prompt))
        if data is None:
            return ActionDetection()

        action = str(data.get("action") or "none").strip().lower()
        if action not in ACTIONS:
            logger.warning(f"Unknown action from model: {action!r}")
            action = "none"

        return ActionDetection(
            is_action=_flag(data.get("isAction")),
            action=action,
            confidence=clamp_confidence(data.get("confidence", 0)),
            target_description=str(data.get("targetDescription") or ""),
            target_keywords=[k.lower() for k in _str_list(data.get("targetKeywords"))],
            snooze_minutes=_positive_int(data.get("snoozeMinutes")),
            new_time=_optional_str(data.get("newTime")),
            new_title=_optional_str(data.get("newTitle")),
            new_location=_optional_str(data.get("newLocation")),
            new_description=_optional_str(data.get("newDescription")),
        )

    async def extract_events(
        self,
        text: str,
        context: list[str],
        now_iso: str,
        existing_events: list[Event],
        timestamp: int,
    ) -> list[ExtractedEvent]:
        """Ask for zero or more candidate events in a message."""
        compressed = compress_events_for_prompt(existing_events, self.max_prompt_events)
        if existing_events:
            logger.info(
                f"Prompt events: {compressed.event_count} encoded, "
                f"ratio {compressed.compression_ratio:.2f} "
                f"({compressed.reduction:.0%} smaller)"
            )
            if self.json_logger:
                self.json_logger.log(
                    "prompt_compressed",
                    events=compressed.event_count,
                    token_estimate=compressed.token_estimate,
                    compression_ratio=round(compressed.compression_ratio, 3),
                )
        prompt = EXTRACT_EVENTS_PROMPT.format(
            now=now_iso,
            timestamp=_iso(timestamp),
            events=compressed.events,
            context="\n".join(f"- {c}" for c in context) or "(none)",
            message=text,
        )
        data = parse_json_object(await self.complete(prompt))
        if data is None:
            return []
        items = data.get("events")
        if not isinstance(items, list):
            logger.warning("Invalid response structure: missing 'events' list")
            return []

        events = []
        for item in items:
            candidate = self._to_extracted_event(item)
            if candidate is None:
                logger.warning(f"Skipping invalid event item: {item}")
                continue
            events.append(candidate)
        return events

    async def validate_relevance(
        self, url: str, title: str, candidates: list[Event]
    ) -> RelevanceResult:
        """Ask which candidate events matter for the page being browsed."""
        if not candidates:
            return RelevanceResult()
        listing = "\n".join(
            f"[{i}] {e.event_type}: \"{e.title}\""
            f" | {e.description or ''} | location: {e.location or '-'}"
            f" | keywords: {e.keywords}"
            for i, e in enumerate(candidates)
        )
        prompt = VALIDATE_RELEVANCE_PROMPT.format(
            url=url, title=title or "(none)", candidates=listing
        )
        data = parse_json_object(await self.complete(prompt))
        if data is None:
            return RelevanceResult()

        relevant: list[int] = []
        raw = data.get("relevant")
        for value in raw if isinstance(raw, list) else []:
            try:
                index = int(value)
            except (TypeError, ValueError):
                continue
            if 0 <= index < len(candidates) and index not in relevant:
                relevant.append(index)
        return RelevanceResult(
            relevant=relevant,
            confidence=clamp_confidence(data.get("confidence", 0)),
        )

    async def answer(
        self,
        question: str,
        history: list[dict[str, Any]],
        events: list[Event],
        recent_turns: int = 6,
    ) -> str:
        """Answer a free-form question about stored events."""
        compressed = compress_events_for_prompt(events, self.max_prompt_events)
        memory = compress_chat_history(history, recent_turns)

        messages: list[dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend(
            {"role": turn["role"], "content": turn["content"]}
            for turn in memory.recent_history
        )
        messages.append(
            {
                "role": "user",
                "content": ANSWER_PROMPT.format(
                    events=compressed.events,
                    memory=f"{memory.memory_packet}\n" if memory.memory_packet else "",
                    question=question,
                ),
            }
        )
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
        )
        return response.choices[0].message.content or ""

    def _to_extracted_event(self, item: Any) -> ExtractedEvent | None:
        if not isinstance(item, dict):
            return None
        title = _optional_str(item.get("title"))
        if not title:
            return None

        event_action = str(item.get("event_action") or "create").strip().lower()
        if event_action not in EVENT_ACTIONS:
            event_action = "create"

        return ExtractedEvent(
            title=title,
            type=EventType.normalize(item.get("type")),
            description=_optional_str(item.get("description")),
            event_time=_optional_str(item.get("event_time")),
            location=_optional_str(item.get("location")),
            participants=_str_list(item.get("participants")),
            keywords=[k.lower() for k in _str_list(item.get("keywords"))],
            confidence=clamp_confidence(item.get("confidence", 0)),
            event_action=event_action,
            target_event_id=_positive_int(item.get("target_event_id")),
        )

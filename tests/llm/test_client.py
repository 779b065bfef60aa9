"""Tests for ArgusLLM."""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from argus.llm import ArgusLLM, parse_json_object
from argus.llm.client import strip_code_fence
from argus.memory import Event


@pytest.fixture
def mock_client() -> AsyncMock:
    """Create a mock Groq client."""
    return AsyncMock()


@pytest.fixture
def llm(mock_client: AsyncMock) -> ArgusLLM:
    return ArgusLLM(mock_client)


def make_response(content: str) -> Mock:
    """Create a mock LLM response."""
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message.content = content
    return response


def reply_with(mock_client: AsyncMock, data) -> None:
    content = data if isinstance(data, str) else json.dumps(data)
    mock_client.chat.completions.create = AsyncMock(return_value=make_response(content))


def sent_prompt(mock_client: AsyncMock) -> str:
    call_args = mock_client.chat.completions.create.call_args
    return call_args.kwargs["messages"][-1]["content"]


class TestArgusLLMInit:
    """Tests for ArgusLLM initialization."""

    def test_default_model(self, mock_client: AsyncMock):
        assert ArgusLLM(mock_client).model == "llama-3.1-70b-versatile"

    def test_custom_model(self, mock_client: AsyncMock):
        assert ArgusLLM(mock_client, model="custom-model").model == "custom-model"


class TestJsonParsing:
    """Tests for model reply parsing."""

    def test_strips_code_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_parses_fenced_object(self):
        assert parse_json_object('```\n{"a": 1}\n```') == {"a": 1}

    def test_invalid_json_is_none(self):
        assert parse_json_object("not json") is None

    def test_non_object_is_none(self):
        assert parse_json_object("[1, 2]") is None


class TestClassify:
    """Tests for the noise pre-filter."""

    @pytest.mark.parametrize("text", ["", "  ", "ok", "lol", "👍👍", "!!!", "ok thanks", "Haha"])
    def test_noise_is_skipped(self, llm: ArgusLLM, text: str):
        assert llm.classify(text) is False

    @pytest.mark.parametrize(
        "text",
        ["done", "cancel it", "meeting tomorrow at 5", "buy lipstick for sis birthday"],
    )
    def test_content_is_kept(self, llm: ArgusLLM, text: str):
        assert llm.classify(text) is True


class TestDetectAction:
    """Tests for action detection."""

    @pytest.mark.asyncio
    async def test_parses_action(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(
            mock_client,
            {
                "isAction": True,
                "action": "Snooze",
                "confidence": 0.85,
                "targetDescription": "the gym reminder",
                "targetKeywords": ["Gym"],
                "snoozeMinutes": 60,
            },
        )
        events = [Event(id=3, title="Gym", event_type="reminder", keywords="gym")]

        detection = await llm.detect_action("remind me later about gym", [], events, 1_750_000_000)

        assert detection.is_action
        assert detection.action == "snooze"
        assert detection.confidence == 0.85
        assert detection.target_keywords == ["gym"]
        assert detection.snooze_minutes == 60
        assert "[#3]" in sent_prompt(mock_client)

    @pytest.mark.asyncio
    async def test_uses_low_temperature(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(mock_client, {"isAction": False, "action": "none"})
        await llm.detect_action("hello there", [], [], 1_750_000_000)
        assert mock_client.chat.completions.create.call_args.kwargs["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_invalid_json_means_no_action(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(mock_client, "I think they want to cancel")
        detection = await llm.detect_action("cancel it", [], [], 1_750_000_000)
        assert not detection.is_action
        assert detection.action == "none"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "flag,expected",
        [("false", False), ("False", False), ("yes", False), ("TRUE", True), (1, False)],
    )
    async def test_string_is_action_flag(
        self, llm: ArgusLLM, mock_client: AsyncMock, flag, expected: bool
    ):
        reply_with(mock_client, {"isAction": flag, "action": "cancel", "confidence": 0.9})
        detection = await llm.detect_action("cancel it", [], [], 1_750_000_000)
        assert detection.is_action is expected

    @pytest.mark.asyncio
    async def test_unknown_action_becomes_none(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(mock_client, {"isAction": True, "action": "explode", "confidence": 0.9})
        detection = await llm.detect_action("boom", [], [], 1_750_000_000)
        assert detection.action == "none"

    @pytest.mark.asyncio
    async def test_confidence_clamped(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(mock_client, {"isAction": True, "action": "complete", "confidence": 7})
        detection = await llm.detect_action("done", [], [], 1_750_000_000)
        assert detection.confidence == 1.0

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self, llm: ArgusLLM, mock_client: AsyncMock):
        mock_client.chat.completions.create = AsyncMock(side_effect=RuntimeError("down"))
        with pytest.raises(RuntimeError, match="down"):
            await llm.detect_action("cancel it", [], [], 1_750_000_000)


class TestExtractEvents:
    """Tests for event extraction."""

    @pytest.mark.asyncio
    async def test_parses_candidates(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(
            mock_client,
            {
                "events": [
                    {
                        "type": "Travel",
                        "title": "Goa trip",
                        "event_time": "2025-07-01T10:00:00",
                        "location": "Goa",
                        "participants": ["Rahul", None],
                        "keywords": ["Goa", "Trip"],
                        "confidence": 0.9,
                    },
                    {
                        "type": "meeting",
                        "title": "Standup",
                        "confidence": 0.8,
                        "event_action": "update",
                        "target_event_id": "7",
                    },
                ]
            },
        )

        events = await llm.extract_events("goa trip next month", [], "now", [], 1_750_000_000)

        assert len(events) == 2
        trip, standup = events
        assert trip.type == "travel"
        assert trip.participants == ["Rahul"]
        assert trip.keywords == ["goa", "trip"]
        assert trip.event_action == "create"
        assert standup.event_action == "update"
        assert standup.target_event_id == 7

    @pytest.mark.asyncio
    async def test_skips_items_without_title(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(mock_client, {"events": [{"type": "task"}, "junk", {"title": "Pay rent"}]})
        events = await llm.extract_events("pay rent", [], "now", [], 1_750_000_000)
        assert [e.title for e in events] == ["Pay rent"]
        assert events[0].type == "other"

    @pytest.mark.asyncio
    async def test_missing_events_list(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(mock_client, {"items": []})
        assert await llm.extract_events("x y z", [], "now", [], 1_750_000_000) == []

    @pytest.mark.asyncio
    async def test_existing_events_densely_encoded(
        self, llm: ArgusLLM, mock_client: AsyncMock
    ):
        reply_with(mock_client, {"events": []})
        existing = [Event(id=5, title="Dentist", event_type="reminder", keywords="teeth")]
        await llm.extract_events("hmm dentist", [], "now", existing, 1_750_000_000)
        assert '#5|RMD|' in sent_prompt(mock_client)

    @pytest.mark.asyncio
    async def test_logs_compression(self, mock_client: AsyncMock):
        json_logger = Mock()
        llm = ArgusLLM(mock_client, json_logger=json_logger)
        reply_with(mock_client, {"events": []})
        existing = [Event(id=1, title="Dentist", keywords="teeth")]

        await llm.extract_events("text here", [], "now", existing, 1_750_000_000)

        json_logger.log.assert_called_once()
        assert json_logger.log.call_args.args[0] == "prompt_compressed"


class TestValidateRelevance:
    """Tests for relevance validation."""

    @pytest.mark.asyncio
    async def test_no_candidates_skips_model(self, llm: ArgusLLM, mock_client: AsyncMock):
        mock_client.chat.completions.create = AsyncMock()
        result = await llm.validate_relevance("https://netflix.com", "", [])
        assert result.relevant == []
        mock_client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_filters_bad_indexes(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(mock_client, {"relevant": [1, 1, 9, "x", 0], "confidence": 0.7})
        candidates = [Event(id=1, title="A"), Event(id=2, title="B")]

        result = await llm.validate_relevance("https://netflix.com", "Netflix", candidates)

        assert result.relevant == [1, 0]
        assert result.confidence == 0.7


class TestAnswer:
    """Tests for question answering."""

    @pytest.mark.asyncio
    async def test_includes_memory_packet(self, llm: ArgusLLM, mock_client: AsyncMock):
        reply_with(mock_client, "You have a dentist appointment.")
        history = [
            {"role": "user" if i % 2 == 0 else "assistant", "content": f"turn number {i}"}
            for i in range(10)
        ]

        answer = await llm.answer("what's next?", history, [], recent_turns=6)

        assert answer == "You have a dentist appointment."
        messages = mock_client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0]["role"] == "system"
        assert len(messages) == 1 + 6 + 1
        assert "Prior conversation: 4 turns compressed" in messages[-1]["content"]

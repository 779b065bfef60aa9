"""Tests for Telegram bot."""

from pathlib import Path

import pytest

from argus import logging as argus_logging
from argus.config import ArgusConfig
from argus.context.matcher import ContextCheckResult
from argus.ingest.actions import ActionResult
from argus.ingest.extractor import ConflictInfo, ProcessedEvent
from argus.ingest.pipeline import IngestionResult
from argus.logging import JSONLLogger
from argus.memory import Event, PendingAction
from argus.telegram.bot import (
    MAX_MESSAGE_LENGTH,
    format_context_result,
    format_event,
    format_event_list,
    format_ingestion_reply,
    truncate_message,
)

NOW = 1_750_000_000
DAY = 86400


class TestTruncateMessage:
    def test_short_message_unchanged(self):
        text = "Short message"
        assert truncate_message(text) == text

    def test_long_message_truncated(self):
        result = truncate_message("x" * 5000)
        assert len(result) <= MAX_MESSAGE_LENGTH
        assert "truncated" in result

    def test_exact_length_unchanged(self):
        text = "x" * MAX_MESSAGE_LENGTH
        assert truncate_message(text) == text


class TestFormatEvent:
    def test_includes_location_and_status(self):
        event = Event(id=4, title="Goa trip", location="Goa", status="scheduled")
        assert format_event(event, NOW) == "#4 Goa trip · 📍 Goa [scheduled]"

    def test_past_open_event_shows_expired(self):
        event = Event(id=5, title="Dentist", event_time=NOW - DAY, status="scheduled")
        assert format_event(event, NOW).endswith("[expired]")

    def test_empty_list(self):
        assert format_event_list([], NOW) == "No events found."

    def test_list_one_line_per_event(self):
        events = [Event(id=1, title="A"), Event(id=2, title="B")]
        assert len(format_event_list(events, NOW).split("\n")) == 2


class TestFormatIngestionReply:
    """Tests for replies to ingested messages."""

    def test_nothing_happened(self):
        assert format_ingestion_reply(IngestionResult(message_id="m1"), NOW) is None

    def test_error(self):
        result = IngestionResult(message_id="m1", error="rate limited")
        assert format_ingestion_reply(result, NOW) == "❌ Error: rate limited"

    def test_pending_asks_for_confirmation(self):
        pending = PendingAction(3, "Standup", {"title": "Sync"}, 'title → "Sync"')
        reply = format_ingestion_reply(
            IngestionResult(message_id="m1", pending_action=pending), NOW
        )
        assert '"Standup"' in reply
        assert "/confirm" in reply

    def test_action_performed(self):
        action = ActionResult("cancel", 3, "Gym", 'Deleted: "Gym"')
        reply = format_ingestion_reply(
            IngestionResult(message_id="m1", action_performed=action), NOW
        )
        assert reply == '✅ Deleted: "Gym"'

    def test_created_with_conflict(self):
        processed = ProcessedEvent(
            event=Event(id=7, title="Client call", status="discovered"),
            outcome="created",
            conflicts=[ConflictInfo(id=2, title="Dentist", event_time=NOW)],
        )
        reply = format_ingestion_reply(
            IngestionResult(message_id="m1", events_created=1, events=[processed]), NOW
        )
        lines = reply.split("\n")
        assert lines[0] == "📌 #7 Client call [discovered]"
        assert "Conflicts with #2 Dentist" in lines[1]

    def test_updated_icon(self):
        processed = ProcessedEvent(event=Event(id=7, title="Standup"), outcome="updated")
        reply = format_ingestion_reply(
            IngestionResult(message_id="m1", events_updated=1, events=[processed]), NOW
        )
        assert reply.startswith("✏️")


class TestFormatContextResult:
    def test_no_match_lists_keywords(self):
        result = ContextCheckResult(matched=False, keywords=["netflix", "streaming"])
        assert format_context_result(result, NOW) == (
            "Nothing relevant here (keywords: netflix, streaming)."
        )

    def test_match(self):
        result = ContextCheckResult(
            matched=True, events=[Event(id=1, title="Cancel Netflix")], confidence=0.9
        )
        text = format_context_result(result, NOW)
        assert text.startswith("🔔 1 relevant event(s) (90% sure):")
        assert "#1 Cancel Netflix" in text


class TestTelegramBot:
    @pytest.fixture(autouse=True)
    def isolated_logger(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(argus_logging, "_logger", JSONLLogger(log_dir=tmp_path / "logs"))

    def test_requires_token(self, monkeypatch):
        from argus.telegram import TelegramBot

        monkeypatch.delenv("TELEGRAM_TOKEN", raising=False)
        with pytest.raises(ValueError, match="TELEGRAM_TOKEN"):
            TelegramBot(token=None)

    def test_creates_with_token(self, monkeypatch, tmp_path: Path):
        from argus.telegram import TelegramBot

        monkeypatch.setenv("GROQ_API_KEY", "test-key")
        bot = TelegramBot(
            token="test-token",
            config=ArgusConfig(db_path=tmp_path / "bot.db", log_dir=tmp_path / "logs"),
        )
        try:
            assert bot.token == "test-token"
            assert bot.pipeline is not None
            assert bot.store.get_active_events() == []
        finally:
            bot.store.close()

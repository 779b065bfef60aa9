"""Tests for memory models."""

import json

from argus.memory import EdgeRelation, Event, EventEdge, EventType, PendingAction
from argus.memory.models import clamp_confidence, normalize_keywords, split_keywords

NOW = 1_750_000_000


class TestEventType:
    """Tests for EventType normalization."""

    def test_known_type_kept(self):
        assert EventType.normalize("Meeting") == "meeting"

    def test_unknown_type_falls_back(self):
        assert EventType.normalize("party") == "other"

    def test_none_falls_back(self):
        assert EventType.normalize(None) == "other"


class TestClampConfidence:
    """Tests for confidence clamping."""

    def test_within_range_unchanged(self):
        assert clamp_confidence(0.7) == 0.7

    def test_above_one_clamped(self):
        assert clamp_confidence(1.5) == 1.0

    def test_negative_clamped(self):
        assert clamp_confidence(-0.2) == 0.0

    def test_string_number_parsed(self):
        assert clamp_confidence("0.8") == 0.8

    def test_garbage_is_zero(self):
        assert clamp_confidence("high") == 0.0
        assert clamp_confidence(None) == 0.0

    def test_nan_is_zero(self):
        assert clamp_confidence(float("nan")) == 0.0

    def test_event_clamps_on_creation(self):
        event = Event(title="Trip", confidence=3)
        assert event.confidence == 1.0


class TestKeywords:
    """Tests for keyword serialization."""

    def test_normalize_lowercases_and_dedupes(self):
        assert normalize_keywords(["Goa", "trip", "goa", " Beach "]) == "goa,trip,beach"

    def test_normalize_accepts_string(self):
        assert normalize_keywords("A, b,a") == "a,b"

    def test_normalize_empty(self):
        assert normalize_keywords(None) == ""
        assert normalize_keywords([]) == ""

    def test_split(self):
        assert split_keywords("goa, trip,,beach") == ["goa", "trip", "beach"]
        assert split_keywords("") == []


class TestEventStatus:
    """Tests for derived expiry."""

    def test_past_open_event_is_expired(self):
        event = Event(title="Call", event_time=NOW - 10, status="scheduled")
        assert event.is_expired(NOW)
        assert event.display_status(NOW) == "expired"

    def test_completed_event_never_expires(self):
        event = Event(title="Call", event_time=NOW - 10, status="completed")
        assert not event.is_expired(NOW)
        assert event.display_status(NOW) == "completed"

    def test_event_without_time_never_expires(self):
        event = Event(title="Read book")
        assert event.display_status(NOW) == "discovered"

    def test_to_dict_serializes_participants(self):
        event = Event(title="Dinner", participants=["Rahul", "Priya"])
        data = event.to_dict()
        assert json.loads(data["participants"]) == ["Rahul", "Priya"]
        assert data["title"] == "Dinner"


class TestPendingAction:
    """Tests for PendingAction payloads."""

    def test_round_trip_through_payload(self):
        pending = PendingAction(
            target_event_id=4,
            target_event_title="Standup",
            changes={"location": "Room 2"},
            description='location → "Room 2"',
        )
        payload = json.loads(json.dumps(pending.to_dict()))
        assert payload["targetEventId"] == 4
        assert PendingAction.from_dict(payload) == pending


class TestEventEdge:
    def test_str(self):
        edge = EventEdge(1, 2, EdgeRelation.CONFLICTS)
        assert str(edge) == "#1→#2(conflicts)"

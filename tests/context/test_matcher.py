"""Tests for browsing context matching."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from argus.context.matcher import (
    URL_RULES,
    ContextMatcher,
    extract_context_from_url,
    extract_url_keywords,
)
from argus.llm import RelevanceResult
from argus.memory import Event, EventStore

NOW = 1_750_000_000
DAY = 86400


@pytest.fixture
def store(tmp_path: Path) -> EventStore:
    store = EventStore(tmp_path / "matcher.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def llm() -> Mock:
    llm = Mock()
    llm.validate_relevance = AsyncMock(return_value=RelevanceResult())
    return llm


@pytest.fixture
def matcher(store: EventStore, llm: Mock) -> ContextMatcher:
    return ContextMatcher(store, llm)


class TestExtractUrlKeywords:
    def test_filters_short_and_numeric(self):
        assert extract_url_keywords("/in/goa-beach_2024/ab/12345") == ["goa", "beach"]

    def test_decodes_and_lowercases(self):
        assert extract_url_keywords("/search/New%20Delhi") == ["search", "new delhi"]

    def test_caps_at_five(self):
        assert len(extract_url_keywords("/aaa/bbb/ccc/ddd/eee/fff/ggg")) == 5

    def test_empty(self):
        assert extract_url_keywords("") == []


class TestExtractContextFromUrl:
    """Tests for the ordered URL rule table."""

    def test_netflix(self):
        context = extract_context_from_url("https://www.netflix.com/browse")
        assert context.activity == "streaming"
        assert context.keywords == ["netflix", "subscription", "streaming", "browse"]

    def test_bare_domain(self):
        context = extract_context_from_url("netflix.com")
        assert context.keywords == ["netflix", "subscription", "streaming"]

    def test_amazon_search_before_generic_amazon(self):
        context = extract_context_from_url("https://www.amazon.in/s?k=running+shoes&ref=nb")
        assert context.activity == "shopping_search"
        assert context.keywords[0] == "running shoes"

    def test_amazon_product_before_generic_amazon(self):
        context = extract_context_from_url("https://www.amazon.com/dp/B08N5WRWNW")
        assert context.activity == "shopping_product"

    def test_generic_amazon(self):
        context = extract_context_from_url("https://www.amazon.in/")
        assert context.activity == "shopping"
        assert "gift" in context.keywords

    def test_makemytrip_path(self):
        context = extract_context_from_url("https://www.makemytrip.com/flights/goa-trip")
        assert context.activity == "travel_booking"
        assert context.keywords[:2] == ["goa", "trip"]

    def test_policybazaar(self):
        context = extract_context_from_url("https://www.policybazaar.com/health-insurance/")
        assert context.activity == "insurance"
        assert context.keywords[:2] == ["health", "insurance"]

    def test_fallback_uses_title(self):
        context = extract_context_from_url(
            "https://example.org/", "Planning a Weekend in Goa"
        )
        assert context.activity == "browsing"
        assert context.keywords == ["planning", "weekend"]

    def test_specific_rules_precede_generic_ones(self):
        activities = [rule.activity for rule in URL_RULES]
        assert activities.index("shopping_search") < activities.index("shopping")
        assert activities.index("shopping_product") < activities.index("shopping")


class TestContextMatcher:
    """Tests for the cascading match."""

    @pytest.mark.asyncio
    async def test_no_keywords_no_lookup(self, matcher: ContextMatcher, llm: Mock):
        result = await matcher.match("https://example.org/", now=NOW)
        assert not result.matched
        assert result.confidence == 0
        llm.validate_relevance.assert_not_called()

    @pytest.mark.asyncio
    async def test_netflix_scenario(
        self, matcher: ContextMatcher, store: EventStore, llm: Mock
    ):
        event_id = store.insert_event(
            Event(
                title="Cancel Netflix after season ends",
                event_type="subscription",
                keywords="netflix,subscription",
                context_url="netflix",
                status="scheduled",
                created_at=NOW - DAY,
            )
        )
        llm.validate_relevance.return_value = RelevanceResult(relevant=[0], confidence=0.9)

        result = await matcher.match("netflix.com", now=NOW)

        assert result.matched
        assert [e.id for e in result.events] == [event_id]
        assert result.confidence == 0.9
        candidates = llm.validate_relevance.call_args.args[2]
        assert [e.id for e in candidates] == [event_id]

    @pytest.mark.asyncio
    async def test_location_first_keyword_wins(
        self, matcher: ContextMatcher, store: EventStore
    ):
        goa = store.insert_event(Event(title="Beach trip", location="Goa", created_at=NOW))
        store.insert_event(Event(title="Hotel", location="Trip hotel", created_at=NOW))

        candidates = matcher.find_candidates(["goa", "trip"], now=NOW)

        assert [e.id for e in candidates] == [goa]

    @pytest.mark.asyncio
    async def test_full_text_fallback(self, matcher: ContextMatcher, store: EventStore):
        event_id = store.insert_event(
            Event(title="Try the sushi place", keywords="sushi,food", created_at=NOW)
        )
        candidates = matcher.find_candidates(["sushi"], now=NOW)
        assert [e.id for e in candidates] == [event_id]

    @pytest.mark.asyncio
    async def test_hot_window(self, matcher: ContextMatcher, store: EventStore, llm: Mock):
        store.insert_event(
            Event(title="Old", context_url="netflix", created_at=NOW - 100 * DAY)
        )
        result = await matcher.match("https://netflix.com", hot_window_days=90, now=NOW)
        assert not result.matched
        llm.validate_relevance.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_validation_forwards_confidence(
        self, matcher: ContextMatcher, store: EventStore, llm: Mock
    ):
        store.insert_event(Event(title="Show", context_url="netflix", created_at=NOW))
        llm.validate_relevance.return_value = RelevanceResult(relevant=[], confidence=0.3)

        result = await matcher.match("https://netflix.com", now=NOW)

        assert not result.matched
        assert result.events == []
        assert result.confidence == 0.3

    @pytest.mark.asyncio
    async def test_logs_context_check(self, store: EventStore, llm: Mock):
        json_logger = Mock()
        matcher = ContextMatcher(store, llm, json_logger)
        await matcher.match("https://netflix.com", now=NOW)
        json_logger.log_context_check.assert_called_once()
        assert json_logger.log_context_check.call_args.kwargs["matched"] is False


class TestQuickMatch:
    def test_skips_model(self, matcher: ContextMatcher, store: EventStore, llm: Mock):
        event_id = store.insert_event(
            Event(title="Netflix plan", keywords="netflix", created_at=NOW)
        )
        assert [e.id for e in matcher.quick_match("https://netflix.com", now=NOW)] == [event_id]
        llm.validate_relevance.assert_not_called()

    def test_no_keywords(self, matcher: ContextMatcher):
        assert matcher.quick_match("https://example.org/") == []

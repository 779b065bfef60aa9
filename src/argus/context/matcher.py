"""Browsing context matching.

Maps a visited URL to stored events in three steps: deterministic
keyword extraction from the URL, a cascading store lookup (location
first, then full-text), and model validation of the candidates.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, unquote_plus, urlparse

from ..memory.models import Event
from ..memory.store import EventStore

if TYPE_CHECKING:
    from ..llm import ArgusLLM
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)

MAX_PATH_KEYWORDS = 5
MAX_TITLE_KEYWORDS = 5
CANDIDATE_LIMIT = 10
QUICK_KEYWORDS = 3
QUICK_LIMIT = 5
DEFAULT_HOT_WINDOW_DAYS = 90
FALLBACK_ACTIVITY = "browsing"

_PATH_SPLIT = re.compile(r"[/\-_?&=]+")


def extract_url_keywords(path: str | None) -> list[str]:
    """Tokenize a URL path: decoded, lowercased, longer than 2, not numeric."""
    if not path:
        return []
    tokens = [t for t in _PATH_SPLIT.split(path) if len(t) > 2 and not t.isdigit()]
    return [unquote(t).lower() for t in tokens][:MAX_PATH_KEYWORDS]


def _fixed(*keywords: str) -> Callable[[re.Match[str]], list[str]]:
    return lambda _: list(keywords)


def _path_group(group: int) -> Callable[[re.Match[str]], list[str]]:
    return lambda m: extract_url_keywords(m.group(group))


def _query_group(group: int) -> Callable[[re.Match[str]], list[str]]:
    return lambda m: [unquote_plus(m.group(group))]


@dataclass(frozen=True)
class UrlRule:
    """One row of the URL table: pattern, activity label, keyword extractor."""

    pattern: re.Pattern[str]
    activity: str
    keywords: Callable[[re.Match[str]], list[str]]


def _rule(pattern: str, activity: str, keywords: Callable[[re.Match[str]], list[str]]) -> UrlRule:
    return UrlRule(re.compile(pattern, re.IGNORECASE), activity, keywords)


# First match wins: specific rules must stay above generic domain rules.
URL_RULES: tuple[UrlRule, ...] = (
    # Travel
    _rule(r"makemytrip\.com.*/(flights?|hotels?|trains?)/?(.*)$", "travel_booking", _path_group(2)),
    _rule(r"goibibo\.com.*/(flights?|hotels?)/?(.*)$", "travel_booking", _path_group(2)),
    _rule(r"booking\.com.*/(.*)$", "hotel_booking", _path_group(1)),
    _rule(r"airbnb\.(com|co\.in).*/(.*)$", "accommodation", _path_group(2)),
    _rule(r"skyscanner\.(com|co\.in).*/(.*)$", "flight_search", _path_group(2)),
    _rule(r"tripadvisor\.(com|in).*/(.*)$", "travel_research", _path_group(2)),
    # Shopping
    _rule(r"amazon\.(com|in).*/s\?.*k=([^&]+)", "shopping_search", _query_group(2)),
    _rule(r"amazon\.(com|in).*/dp/\w+", "shopping_product", _fixed()),
    _rule(r"amazon\.(com|in)", "shopping", _fixed("amazon", "shopping", "gift", "buy")),
    _rule(r"flipkart\.com.*/search\?q=([^&]+)", "shopping_search", _query_group(1)),
    _rule(r"flipkart\.com", "shopping", _fixed("flipkart", "shopping", "gift", "buy")),
    _rule(r"myntra\.com.*/(.*)$", "fashion_shopping", _path_group(1)),
    _rule(
        r"myntra\.com",
        "fashion_shopping",
        _fixed("myntra", "fashion", "shoes", "sneakers", "clothes", "gift"),
    ),
    _rule(
        r"nykaa\.com",
        "beauty_shopping",
        _fixed("nykaa", "beauty", "makeup", "cosmetics", "skincare", "gift"),
    ),
    _rule(r"ajio\.com", "fashion_shopping", _fixed("ajio", "fashion", "clothes", "shoes", "gift")),
    _rule(
        r"tatacliq\.com",
        "shopping",
        _fixed("tatacliq", "shopping", "electronics", "fashion", "gift"),
    ),
    # Subscriptions
    _rule(r"netflix\.com", "streaming", _fixed("netflix", "subscription", "streaming")),
    _rule(r"spotify\.com", "music", _fixed("spotify", "subscription", "music")),
    _rule(r"primevideo\.com", "streaming", _fixed("prime", "amazon", "subscription")),
    _rule(r"hotstar\.com|disney\+", "streaming", _fixed("hotstar", "disney", "subscription")),
    _rule(r"canva\.com", "design", _fixed("canva", "design", "subscription")),
    # Finance
    _rule(
        r"policybazaar\.com.*/(car|bike|health|life)",
        "insurance",
        lambda m: [m.group(1).lower(), "insurance"],
    ),
    _rule(r"bankbazaar\.com", "finance", _fixed("loan", "credit", "bank")),
    # Productivity
    _rule(r"calendar\.google\.com", "calendar", _fixed("meeting", "event", "schedule")),
    _rule(r"outlook\.(com|office)", "email", _fixed("email", "meeting")),
)


@dataclass(frozen=True)
class UrlContext:
    """Activity label and keywords read off a URL."""

    activity: str
    keywords: list[str]


@dataclass
class ContextCheckResult:
    """Outcome of a context check."""

    matched: bool
    events: list[Event] = field(default_factory=list)
    confidence: float = 0.0
    activity: str | None = None
    keywords: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matched": self.matched,
            "events": [e.to_dict() for e in self.events],
            "confidence": self.confidence,
        }


def _url_path(url: str) -> str:
    if "://" not in url:
        url = f"https://{url}"
    return urlparse(url).path


def _unique(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def extract_context_from_url(url: str, title: str | None = None) -> UrlContext:
    """Read an activity label and keywords off a URL.

    The first matching rule supplies the activity and its keywords, joined
    with the generic path tokens. Without a rule match the page title's
    longer words stand in.
    """
    path_keywords = extract_url_keywords(_url_path(url))

    for rule in URL_RULES:
        match = rule.pattern.search(url)
        if match:
            return UrlContext(
                activity=rule.activity,
                keywords=_unique([*rule.keywords(match), *path_keywords]),
            )

    title_keywords = (
        [w for w in title.lower().split() if len(w) > 3][:MAX_TITLE_KEYWORDS] if title else []
    )
    return UrlContext(
        activity=FALLBACK_ACTIVITY,
        keywords=_unique([*path_keywords, *title_keywords]),
    )


class ContextMatcher:
    """Finds stored events relevant to the page the user is on."""

    def __init__(
        self,
        store: EventStore,
        llm: ArgusLLM,
        json_logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.llm = llm
        self.json_logger = json_logger

    def find_candidates(
        self,
        keywords: list[str],
        hot_window_days: int = DEFAULT_HOT_WINDOW_DAYS,
        now: int | None = None,
    ) -> list[Event]:
        """Location lookup per keyword (first hit wins), else full-text search."""
        for keyword in keywords:
            candidates = self.store.search_events_by_location(
                keyword, hot_window_days, CANDIDATE_LIMIT, now
            )
            if candidates:
                logger.debug(f"Location hit for {keyword!r}: {len(candidates)} events")
                return candidates
        return self.store.search_events_by_keywords(
            keywords, hot_window_days, CANDIDATE_LIMIT, now
        )

    async def match(
        self,
        url: str,
        title: str | None = None,
        hot_window_days: int = DEFAULT_HOT_WINDOW_DAYS,
        now: int | None = None,
    ) -> ContextCheckResult:
        """Match a URL against stored events, validated by the model."""
        start = time.perf_counter()
        context = extract_context_from_url(url, title)
        if not context.keywords:
            result = ContextCheckResult(matched=False, activity=context.activity)
            return self._finish(url, result, 0, start)

        logger.info(f"Context check {url}: keywords {', '.join(context.keywords)}")
        candidates = self.find_candidates(context.keywords, hot_window_days, now)
        if not candidates:
            logger.info("No candidate events")
            result = ContextCheckResult(
                matched=False, activity=context.activity, keywords=context.keywords
            )
            return self._finish(url, result, 0, start)

        validation = await self.llm.validate_relevance(url, title or "", candidates)
        events = [candidates[i] for i in validation.relevant if 0 <= i < len(candidates)]
        result = ContextCheckResult(
            matched=bool(events),
            events=events,
            confidence=validation.confidence,
            activity=context.activity,
            keywords=context.keywords,
        )
        logger.info(f"Matched {len(events)} of {len(candidates)} candidates")
        return self._finish(url, result, len(candidates), start)

    def quick_match(self, url: str, now: int | None = None) -> list[Event]:
        """Unvalidated lookup for real-time checks; never calls the model."""
        keywords = extract_context_from_url(url).keywords
        if not keywords:
            return []
        return self.store.search_events_by_keywords(
            keywords[:QUICK_KEYWORDS], DEFAULT_HOT_WINDOW_DAYS, QUICK_LIMIT, now
        )

    def _finish(
        self, url: str, result: ContextCheckResult, candidates: int, start: float
    ) -> ContextCheckResult:
        if self.json_logger:
            self.json_logger.log_context_check(
                url,
                matched=result.matched,
                candidates=candidates,
                confidence=result.confidence,
                duration_ms=(time.perf_counter() - start) * 1000,
            )
        return result

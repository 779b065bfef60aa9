"""Keyword tables that map event text to context tags and triggers.

These are plain data so they can be tuned and tested without the model.
Buckets are tried in the order of CONTEXT_TAG_BUCKETS; the first hit wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..memory.models import EventType

SERVICE_NAMES = (
    "netflix", "hotstar", "amazon", "prime", "disney", "spotify",
    "youtube", "hulu", "hbo", "zee5", "sonyliv", "jiocinema",
    "canva", "figma", "notion", "slack", "zoom",
    "gym", "domain", "hosting", "hostinger", "aws", "azure", "vercel", "heroku",
)

TRAVEL_DESTINATIONS = (
    "goa", "mumbai", "delhi", "bangalore", "chennai", "kolkata", "hyderabad",
    "jaipur", "udaipur", "kerala", "manali", "shimla", "ladakh", "kashmir",
    "thailand", "bali", "singapore", "dubai", "maldives", "europe",
)

BEAUTY_TERMS = (
    "makeup", "beauty", "cosmetic", "skincare", "lipstick", "foundation",
    "perfume", "fragrance", "nykaa",
)
BEAUTY_TAG = "nykaa"

FASHION_TERMS = (
    "sneakers", "shoes", "clothes", "dress", "fashion", "shirt", "jeans",
    "kurta", "saree", "myntra", "nike", "adidas", "puma",
)
FASHION_TAG = "myntra"

GIFT_TERMS = ("gift", "birthday", "anniversary", "present")
GIFT_TAG = "amazon"

LOCATION_PLACES = ("goa", "mumbai", "delhi", "bangalore", "chennai", "kolkata")

# Keyword triggers are only created for keywords touching these interests.
INTEREST_KEYWORDS = (
    "travel", "flight", "hotel", "buy", "gift", "birthday",
    "meeting", "deadline", "dinner", "lunch", "coffee",
)

MAX_KEYWORD_TRIGGERS = 3


@dataclass(frozen=True)
class TagBucket:
    """One ordered rule: if any term matches, resolve to a tag.

    Attributes:
        name: Bucket label, for logs.
        terms: Terms searched for at word starts.
        tag: Fixed tag to resolve to; None means the matched term itself.
        event_types: Restrict the bucket to these types (None = any type).
        location_only: Search only the location field.
    """

    name: str
    terms: tuple[str, ...]
    tag: str | None = None
    event_types: tuple[str, ...] | None = None
    location_only: bool = False

    def match(self, event_type: str, text: str, location: str) -> str | None:
        if self.event_types is not None and event_type not in self.event_types:
            return None
        haystack = location if self.location_only else text
        for term in self.terms:
            if contains_term(haystack, term):
                return self.tag or term
        return None


CONTEXT_TAG_BUCKETS: tuple[TagBucket, ...] = (
    TagBucket("service", SERVICE_NAMES),
    TagBucket(
        "travel",
        TRAVEL_DESTINATIONS,
        event_types=(EventType.TRAVEL.value, EventType.RECOMMENDATION.value),
    ),
    TagBucket("beauty", BEAUTY_TERMS, tag=BEAUTY_TAG),
    TagBucket("fashion", FASHION_TERMS, tag=FASHION_TAG),
    TagBucket("gift", GIFT_TERMS, tag=GIFT_TAG),
    TagBucket("location", LOCATION_PLACES, location_only=True),
)


def contains_term(text: str, term: str) -> bool:
    """True if `term` starts a word in `text` ('cosmetic' hits 'cosmetics')."""
    return re.search(rf"\b{re.escape(term)}", text) is not None


def resolve_context_tag(
    event_type: str,
    title: str,
    description: str | None = None,
    location: str | None = None,
    keywords: list[str] | None = None,
) -> tuple[str, str] | None:
    """Find the context tag for an event.

    Returns:
        (bucket name, tag) for the first matching bucket, or None.
    """
    text = " ".join(
        [location or "", " ".join(keywords or []), title, description or ""]
    ).lower()
    place = (location or "").lower()
    for bucket in CONTEXT_TAG_BUCKETS:
        tag = bucket.match(event_type, text, place)
        if tag:
            return bucket.name, tag
    return None


def interest_keywords(keywords: list[str]) -> list[str]:
    """Keywords worth a keyword trigger, lowercased, at most three."""
    picked: list[str] = []
    for keyword in keywords:
        kw = keyword.strip().lower()
        if kw and kw not in picked and any(i in kw for i in INTEREST_KEYWORDS):
            picked.append(kw)
    return picked[:MAX_KEYWORD_TRIGGERS]

"""
Search & ranking over an in-memory corpus.

Pipeline: filter (AND of every specified filter) -> rank -> paginate,
with facets computed over the full filtered set and similarity-ranked
suggestions when a non-empty query finds nothing.

Ranking with a query puts items whose own text matches ahead of items
that only match through a quoted post; each bucket is sorted on its own.
Malformed filter input (bad dates, negative offsets, unknown enum
values) is clamped or matches nothing, never raises.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from traitctl import features
from traitctl.config import SearchConfig
from traitctl.similarity import similarity_score
from traitctl.types import ContentItem

logger = logging.getLogger(__name__)

SORT_KEYS = ("newest", "likes", "replies")
TIME_BUCKETS = ("midnight", "morning", "lunch")
TIME_PATTERNS = ("topOfHour", "buzzerBeater", "elevenEleven", "duplicities")

# camelCase aliases accepted by SearchFilters.from_dict
_ALIASES = {
    "isQuote": "is_quote",
    "hasImage": "has_image",
    "hasLink": "has_link",
    "dateFrom": "date_from",
    "dateTo": "date_to",
    "oneWord": "one_word",
    "minLikes": "min_likes",
    "minReplies": "min_replies",
    "sortBy": "sort_by",
    "timeBucket": "time_bucket",
    "timePattern": "time_pattern",
}


# ---------------------------------------------------------------------------
# Request / response types
# ---------------------------------------------------------------------------


@dataclass
class SearchFilters:
    """Search request. ``None`` means "filter not specified"."""

    q: Optional[str] = None
    offset: int = 0
    limit: Optional[int] = None
    is_quote: Optional[bool] = None
    has_image: Optional[bool] = None
    has_link: Optional[bool] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    emojis: List[str] = field(default_factory=list)
    one_word: bool = False
    longform: bool = False
    min_likes: Optional[int] = None
    min_replies: Optional[int] = None
    sort_by: str = "newest"
    time_bucket: Optional[str] = None
    time_pattern: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> SearchFilters:
        """Build filters from snake_case or camelCase keys; unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        data: Dict[str, Any] = {}
        for key, value in d.items():
            name = _ALIASES.get(key, key)
            if name in known and value is not None:
                data[name] = value
        if "emojis" in data:
            data["emojis"] = [str(e) for e in data["emojis"]]
        return cls(**data)

    def without_query(self) -> SearchFilters:
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        d["q"] = None
        return SearchFilters(**d)


@dataclass
class EmojiCount:
    emoji: str
    count: int


@dataclass
class Facets:
    top_emojis: List[EmojiCount] = field(default_factory=list)
    quotes: int = 0
    images: int = 0
    links: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "top_emojis": [{"emoji": e.emoji, "count": e.count} for e in self.top_emojis],
            "counts": {"quotes": self.quotes, "images": self.images, "links": self.links},
        }


@dataclass
class Suggestion:
    item: ContentItem
    score: float


@dataclass
class SearchResponse:
    results: List[ContentItem]
    total: int
    facets: Facets
    suggestions: Optional[List[Suggestion]] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "results": [i.to_dict() for i in self.results],
            "total": self.total,
            "facets": self.facets.to_dict(),
        }
        if self.suggestions is not None:
            d["suggestions"] = [
                {"item": s.item.to_dict(), "score": round(s.score, 4)}
                for s in self.suggestions
            ]
        return d


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _query(filters: SearchFilters) -> str:
    return (filters.q or "").strip()


def _bound(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    dt = features.parse_timestamp(value)
    if dt is None:
        logger.debug("Ignoring unparsable %s bound %r", name, value)
    return dt


def _bucket_ok(bucket: str, hour24: int) -> bool:
    if bucket == "midnight":
        return hour24 == 0
    if bucket == "morning":
        return 6 <= hour24 <= 10
    if bucket == "lunch":
        return hour24 == 12
    return False


def _pattern_ok(pattern: str, clock: features.LocalTime) -> bool:
    if pattern == "topOfHour":
        return clock.minute == 0
    if pattern == "buzzerBeater":
        return clock.minute == 59
    if pattern == "elevenEleven":
        return clock.hour12 == 11 and clock.minute == 11
    if pattern == "duplicities":
        return 1 <= clock.hour12 <= 5 and clock.minute == clock.hour12 * 11
    return False


class _FilterPlan:
    """Filters normalized once per request, then applied per item."""

    def __init__(self, filters: SearchFilters, config: SearchConfig):
        self.filters = filters
        self.q_lower = _query(filters).lower()
        self.date_from = _bound(filters.date_from, "date_from")
        self.date_to = _bound(filters.date_to, "date_to")
        self.emojis = set(filters.emojis or ())
        self.long_form_chars = config.long_form_chars
        self.tz_name = config.timezone

    def __call__(self, item: ContentItem) -> bool:
        f = self.filters

        if self.q_lower:
            if not (
                features.includes_in_own_text(item, self.q_lower)
                or features.includes_in_embedded_text(item, self.q_lower)
            ):
                return False

        if f.is_quote is not None and features.is_quote(item) != f.is_quote:
            return False
        if f.has_image is not None and features.has_image(item) != f.has_image:
            return False
        if f.has_link is not None and features.has_link(item) != f.has_link:
            return False

        if self.date_from is not None or self.date_to is not None:
            ts = features.parse_timestamp(item.timestamp)
            if ts is None:
                return False
            if self.date_from is not None and ts < self.date_from:
                return False
            if self.date_to is not None and ts > self.date_to:
                return False

        if self.emojis:
            if not any(e in self.emojis for e in features.own_emojis(item)):
                return False

        text = item.text or ""
        if f.one_word and len(text.split()) != 1:
            return False
        if f.longform and len(text) < self.long_form_chars:
            return False

        if f.min_likes is not None and item.likes < f.min_likes:
            return False
        if f.min_replies is not None and item.reply_count < f.min_replies:
            return False

        if f.time_bucket or f.time_pattern:
            clock = features.local_time_parts(item.timestamp, self.tz_name)
            if clock is None:
                return False
            if f.time_bucket and not _bucket_ok(f.time_bucket, clock.hour24):
                return False
            if f.time_pattern and not _pattern_ok(f.time_pattern, clock):
                return False

        return True


def matches(
    item: ContentItem, filters: SearchFilters, config: Optional[SearchConfig] = None,
) -> bool:
    """True if item passes every specified filter."""
    return _FilterPlan(filters, config or SearchConfig())(item)


def apply_filters(
    items: Sequence[ContentItem],
    filters: SearchFilters,
    config: Optional[SearchConfig] = None,
) -> List[ContentItem]:
    plan = _FilterPlan(filters, config or SearchConfig())
    return [item for item in items if plan(item)]


# ---------------------------------------------------------------------------
# Ranking, facets, suggestions
# ---------------------------------------------------------------------------


def _sort_key(sort_by: str) -> Callable[[ContentItem], float]:
    if sort_by == "likes":
        return lambda item: item.likes
    if sort_by == "replies":
        return lambda item: item.reply_count
    if sort_by != "newest":
        logger.debug("Unknown sort_by %r, using newest", sort_by)
    return lambda item: features.timestamp_epoch(item.timestamp)


def rank(items: List[ContentItem], filters: SearchFilters) -> List[ContentItem]:
    """Order filtered items: direct text matches first when there is a query."""
    key = _sort_key(filters.sort_by or "newest")
    q_lower = _query(filters).lower()
    if not q_lower:
        return sorted(items, key=key, reverse=True)
    direct: List[ContentItem] = []
    embedded: List[ContentItem] = []
    for item in items:
        if (
            not features.includes_in_own_text(item, q_lower)
            and features.includes_in_embedded_text(item, q_lower)
        ):
            embedded.append(item)
        else:
            direct.append(item)
    return sorted(direct, key=key, reverse=True) + sorted(embedded, key=key, reverse=True)


def paginate(items: List[ContentItem], offset: int, limit: Optional[int]) -> List[ContentItem]:
    total = len(items)
    offset = max(0, offset or 0)
    if limit is None:
        limit = total
    limit = max(0, min(total - offset, limit))
    return items[offset:offset + limit]


def compute_facets(items: Sequence[ContentItem], top_n: int = 10) -> Facets:
    emoji_counts: Counter = Counter()
    facets = Facets()
    for item in items:
        if features.is_quote(item):
            facets.quotes += 1
        if features.has_image(item):
            facets.images += 1
        if features.has_link(item):
            facets.links += 1
        emoji_counts.update(features.own_emojis(item))
    # most_common keeps first-seen order among equal counts
    facets.top_emojis = [EmojiCount(e, c) for e, c in emoji_counts.most_common(top_n)]
    return facets


def suggest(
    items: Sequence[ContentItem],
    filters: SearchFilters,
    config: Optional[SearchConfig] = None,
) -> Optional[List[Suggestion]]:
    """Closest items to the query among those passing every other filter."""
    cfg = config or SearchConfig()
    q = _query(filters)
    scored: List[Suggestion] = []
    for item in apply_filters(items, filters.without_query(), config):
        score = similarity_score(
            q, features.combined_text(item),
            word_weight=cfg.word_weight, trigram_weight=cfg.trigram_weight,
        )
        if score > 0:
            scored.append(Suggestion(item=item, score=score))
    scored.sort(key=lambda sug: sug.score, reverse=True)
    return scored[:cfg.max_suggestions] or None


def search(
    items: Sequence[ContentItem],
    filters: SearchFilters,
    config: Optional[SearchConfig] = None,
) -> SearchResponse:
    """Filter, rank, paginate; facets over the full filtered set.

    Args:
        items: The corpus, in dataset order.
        filters: The request.
        config: Optional ``SearchConfig``; compiled defaults when omitted.
    """
    cfg = config or SearchConfig()
    ranked = rank(apply_filters(items, filters, config), filters)
    total = len(ranked)
    response = SearchResponse(
        results=paginate(ranked, filters.offset, filters.limit),
        total=total,
        facets=compute_facets(ranked, cfg.top_emojis),
    )
    if _query(filters) and total == 0:
        response.suggestions = suggest(items, filters, config)
    logger.debug("Search q=%r: %d results", filters.q, total)
    return response

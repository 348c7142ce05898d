"""
Structural features of content items.

Shared by search filters, facets, the sampler and the expression helpers:
quote/image/link detection, pictographic emoji extraction, timestamp
parsing and fixed-timezone clock parts.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from traitctl.types import (
    ContentItem,
    LinkEmbed,
    QuotedItemEmbed,
    QuotedItemRef,
)

logger = logging.getLogger(__name__)

# Civil timezone for every time-of-day computation (DST-aware, never UTC)
DEFAULT_TIMEZONE = "America/Los_Angeles"

_IMAGE_URL_RE = re.compile(
    r"(\.png$|\.jpg$|\.jpeg$|\.gif$|\.webp$|imagedelivery\.net)", re.IGNORECASE
)
_URL_IN_TEXT_RE = re.compile(r"https?://", re.IGNORECASE)

# Extended_Pictographic code points (stdlib re has no \p{...} classes)
_PICTOGRAPHIC_RE = re.compile(
    "["
    "©®‼⁉™ℹ↔-↙↩↪"
    "⌚⌛⌨⎈⏏⏩-⏳⏸-⏺Ⓜ"
    "▪▫▶◀◻-◾☀-★☇-☒"
    "☔-⚅⚐-✅✈-✒✔✖✝✡"
    "✨✳✴❄❇❌❎❓-❕❗"
    "❣-❧➕-➗➡➰➿⤴⤵"
    "⬅-⬇⬛⬜⭐⭕〰〽㊗㊙"
    "\U0001f000-\U0001f0ff\U0001f10d-\U0001f10f\U0001f12f"
    "\U0001f16c-\U0001f171\U0001f17e\U0001f17f\U0001f18e"
    "\U0001f191-\U0001f19a\U0001f1ad-\U0001f1e5\U0001f201-\U0001f20f"
    "\U0001f21a\U0001f22f\U0001f232-\U0001f23a\U0001f23c-\U0001f23f"
    "\U0001f249-\U0001f3fa\U0001f400-\U0001f53d\U0001f546-\U0001f64f"
    "\U0001f680-\U0001f6ff\U0001f774-\U0001f77f\U0001f7d5-\U0001f7ff"
    "\U0001f80c-\U0001f80f\U0001f848-\U0001f84f\U0001f85a-\U0001f85f"
    "\U0001f888-\U0001f88f\U0001f8ae-\U0001f8ff\U0001f90c-\U0001f93a"
    "\U0001f93c-\U0001f945\U0001f947-\U0001faff\U0001fc00-\U0001fffd"
    "]"
)


# ---------------------------------------------------------------------------
# Embed structure
# ---------------------------------------------------------------------------


def is_image_url(url: str) -> bool:
    """Return True if the URL looks like an image (extension or image CDN)."""
    return bool(_IMAGE_URL_RE.search(url or ""))


def has_url_in_text(text: Optional[str]) -> bool:
    """Return True if text contains an http(s) URL."""
    return bool(_URL_IN_TEXT_RE.search(text or ""))


def is_quote(item: ContentItem) -> bool:
    """An item is a quote if it embeds another post, inline or by hash."""
    return any(isinstance(e, (QuotedItemEmbed, QuotedItemRef)) for e in item.embeds)


def _embed_urls(item: ContentItem) -> List[str]:
    """URLs of top-level URL embeds plus those one level into quoted items."""
    urls: List[str] = []
    for e in item.embeds:
        if isinstance(e, LinkEmbed):
            urls.append(e.url)
        elif isinstance(e, QuotedItemEmbed):
            for inner in e.quoted_item.embeds:
                if isinstance(inner, LinkEmbed):
                    urls.append(inner.url)
    return urls


def has_image(item: ContentItem) -> bool:
    """Return True if any top-level or quoted URL embed is an image."""
    return any(is_image_url(u) for u in _embed_urls(item))


def has_link(item: ContentItem) -> bool:
    """URL in own text, a URL embed, or the same one level into quoted items."""
    if has_url_in_text(item.text):
        return True
    for e in item.embeds:
        if isinstance(e, LinkEmbed):
            return True
        if isinstance(e, QuotedItemEmbed):
            if has_url_in_text(e.quoted_item.text):
                return True
            if any(isinstance(inner, LinkEmbed) for inner in e.quoted_item.embeds):
                return True
    return False


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def extract_emojis(text: Optional[str]) -> List[str]:
    """All pictographic emoji characters of text, in order (with repeats)."""
    if not text:
        return []
    return _PICTOGRAPHIC_RE.findall(text)


def own_emojis(item: ContentItem) -> List[str]:
    """Emoji from the item's own text only (never embedded text)."""
    return extract_emojis(item.text)


def combined_text(item: ContentItem) -> str:
    """Own text followed by every directly quoted item's text."""
    acc = item.text or ""
    for quoted in item.quoted_items:
        acc += " " + (quoted.text or "")
    return acc


def includes_in_own_text(item: ContentItem, q_lower: str) -> bool:
    if not q_lower:
        return False
    return q_lower in (item.text or "").lower()


def includes_in_embedded_text(item: ContentItem, q_lower: str) -> bool:
    if not q_lower:
        return False
    return any(q_lower in (quoted.text or "").lower() for quoted in item.quoted_items)


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LocalTime:
    """Clock parts of a timestamp in the civil timezone."""

    hour24: int
    hour12: int
    minute: int
    weekday: int  # Monday=0


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC.

    Returns None for missing or unparsable input; never raises.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def timestamp_epoch(value: Optional[str]) -> float:
    """Epoch seconds of a timestamp; unparsable maps to 0."""
    dt = parse_timestamp(value)
    return dt.timestamp() if dt is not None else 0.0


@lru_cache(maxsize=16)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def local_time_parts(
    value: Optional[str], tz_name: str = DEFAULT_TIMEZONE,
) -> Optional[LocalTime]:
    """Clock parts of a timestamp in ``tz_name``; None if unparsable."""
    dt = parse_timestamp(value)
    if dt is None:
        return None
    try:
        local = dt.astimezone(_zone(tz_name))
    except (ZoneInfoNotFoundError, ValueError, OverflowError) as exc:
        logger.warning("Cannot convert %r to %s: %s", value, tz_name, exc)
        return None
    h = local.hour
    return LocalTime(
        hour24=h,
        hour12=((h + 11) % 12) + 1,
        minute=local.minute,
        weekday=local.weekday(),
    )

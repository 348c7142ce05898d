"""
Default trait pack, seeded when storage holds no registry (or an empty one).
"""

from __future__ import annotations

from typing import List, Tuple

from traitctl.types import TraitDefinition, TraitsRegistry, _now_iso

# (name, description, code)
_DEFAULTS: List[Tuple[str, str, str]] = [
    (
        "Welcome",
        "Welcomes a new user and mentions them",
        r'lambda item: matches(r"\bwelcome\b", item.text, "i") and matches(r"@\w+", item.text)',
    ),
    (
        "Humorous",
        "Has a lol, haha, or lmao",
        r'lambda item: matches(r"\b(lol|haha|lmao)\b", item.text, "i")',
    ),
    (
        "Emoji",
        "Contains an emoji",
        "lambda item: has_emoji(item.text)",
    ),
    (
        "Wtf",
        'Contains "wtf"',
        r'lambda item: matches(r"\bwtf\b", item.text, "i")',
    ),
    (
        "Mentioner",
        "Mentions a user",
        r'lambda item: matches(r"@\w+", item.text)',
    ),
    (
        "TIL",
        "Post is about something learned (TIL)",
        'lambda item: "TIL" in item.text',
    ),
    (
        "One Word",
        "Post is a single word",
        "lambda item: len(words(item.text)) == 1",
    ),
    (
        "Longform",
        "100 words or more",
        "lambda item: len(words(item.text)) >= 100",
    ),
    (
        "11:11 club",
        "Timestamp at 11:11 America/Los_Angeles",
        "lambda item: local_hour(item.timestamp) == 11 and local_minute(item.timestamp) == 11",
    ),
    (
        "1:11, 2:22, 3:33, 4:44, 5:55",
        "Hour/minute duplicate digits (LA time) like 1:11, 2:22, ... 5:55",
        "lambda item: 1 <= local_hour(item.timestamp) <= 5"
        " and local_minute(item.timestamp) == local_hour(item.timestamp) * 11",
    ),
    (
        "Breakfast club",
        "Timestamp between 7:00am and 10:30am America/Los_Angeles",
        "lambda item: 420 <= local_hour(item.timestamp) * 60"
        " + local_minute(item.timestamp) <= 630",
    ),
    (
        "Midnight",
        "Timestamp between 12:00am and 12:59am America/Los_Angeles",
        "lambda item: local_hour(item.timestamp) == 0",
    ),
    (
        "Buzzer Beater",
        "Timestamp with minute 59 America/Los_Angeles",
        "lambda item: local_minute(item.timestamp) == 59",
    ),
    (
        "Web surfer",
        "Contains a URL",
        r'lambda item: matches(r"https?://\S+", item.text)'
        " or any(is_link(e) for e in item.embeds)",
    ),
    (
        "Questioner",
        "Contains a question mark",
        'lambda item: "?" in item.text',
    ),
    (
        "Liked",
        "100+ likes",
        "lambda item: coalesce(item.reactions.likes_count, 0) >= 100",
    ),
    (
        "Viral",
        "1000+ likes",
        "lambda item: coalesce(item.reactions.likes_count, 0) >= 1000",
    ),
    (
        "Reply'd guy",
        "10+ replies",
        "lambda item: coalesce(item.replies.count, 0) >= 10",
    ),
    (
        "Thought provoking",
        "100+ replies",
        "lambda item: coalesce(item.replies.count, 0) >= 100",
    ),
    (
        "gm",
        'Contains "gm"',
        r'lambda item: matches(r"\bgm\b", item.text, "i")',
    ),
    (
        "Quote",
        "Contains an embedded post",
        "lambda item: any(is_quote(e) for e in item.embeds)",
    ),
    (
        "Music",
        "Links to Spotify or Apple Music",
        r'lambda item: matches(r"https?://\S*\b(open\.spotify\.com|music\.apple\.com)\b",'
        r' item.text, "i") or any(is_link(e) and matches(r"open\.spotify\.com|music\.apple\.com",'
        r' e.url, "i") for e in item.embeds)',
    ),
]


def default_traits() -> TraitsRegistry:
    """A fresh registry holding the default pack, all enabled."""
    now = _now_iso()
    return {
        name: TraitDefinition(code=code, description=description, created_at=now, enabled=True)
        for name, description, code in _DEFAULTS
    }

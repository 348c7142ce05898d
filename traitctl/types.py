"""
Content & Trait Data Model

Defines content items (posts), the embed tagged union, trait definitions,
and the stable identity key used by the trait index.  Content items are
immutable once parsed; the dataset is read-only for a whole session.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union


def _now_iso() -> str:
    """Current UTC time as ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _opt_str(value: Any) -> Optional[str]:
    """Coerce a loosely-typed JSON value to str, keeping None."""
    if value is None:
        return None
    return str(value)


def _opt_int(value: Any) -> Optional[int]:
    """Coerce a loosely-typed JSON count to int; garbage becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Embeds (tagged union: exactly three variants)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LinkEmbed:
    """A plain URL attached to a post."""

    url: str


@dataclass(frozen=True)
class QuotedItemRef:
    """A quoted post known only by its hash."""

    quoted_item_hash: str


@dataclass(frozen=True)
class EmbeddedItem:
    """A quoted post carried inline. Its embeds are interpreted one level deep."""

    text: Optional[str] = None
    timestamp: Optional[str] = None
    embeds: Tuple["Embed", ...] = ()


@dataclass(frozen=True)
class QuotedItemEmbed:
    """A quoted post carried inline."""

    quoted_item: EmbeddedItem


Embed = Union[LinkEmbed, QuotedItemRef, QuotedItemEmbed]


def _parse_embed(raw: Any, *, nested: bool = False) -> Optional[Embed]:
    """Discriminate one raw embed dict into its variant.

    Accepts both naming schemes seen in datasets: ``quotedItemHash`` /
    ``cast_id_hash`` for references and ``quotedItem`` / ``cast`` for
    inline quotes.  Inside an embedded item (``nested=True``) an inline
    quote is reduced to a reference, or dropped when it has no hash.
    """
    if not isinstance(raw, dict):
        return None
    if "url" in raw and raw["url"] is not None:
        return LinkEmbed(url=str(raw["url"]))
    for key in ("quotedItemHash", "quoted_item_hash", "cast_id_hash"):
        if raw.get(key) is not None:
            return QuotedItemRef(quoted_item_hash=str(raw[key]))
    for key in ("quotedItem", "quoted_item", "cast"):
        inner = raw.get(key)
        if isinstance(inner, dict):
            if nested:
                ref = inner.get("hash") or inner.get("id")
                return QuotedItemRef(quoted_item_hash=str(ref)) if ref else None
            return QuotedItemEmbed(quoted_item=EmbeddedItem(
                text=_opt_str(inner.get("text")),
                timestamp=_opt_str(inner.get("timestamp")),
                embeds=_parse_embeds(inner.get("embeds"), nested=True),
            ))
    return None


def _parse_embeds(raw: Any, *, nested: bool = False) -> Tuple[Embed, ...]:
    """Parse an embed list, dropping unknown shapes."""
    if not isinstance(raw, list):
        return ()
    out = []
    for e in raw:
        parsed = _parse_embed(e, nested=nested)
        if parsed is not None:
            out.append(parsed)
    return tuple(out)


def _embed_to_dict(embed: Embed) -> Dict[str, Any]:
    if isinstance(embed, LinkEmbed):
        return {"url": embed.url}
    if isinstance(embed, QuotedItemRef):
        return {"quotedItemHash": embed.quoted_item_hash}
    q = embed.quoted_item
    return {"quotedItem": {
        "text": q.text,
        "timestamp": q.timestamp,
        "embeds": [_embed_to_dict(e) for e in q.embeds],
    }}


# ---------------------------------------------------------------------------
# Content item
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Reactions:
    likes_count: Optional[int] = None
    recasts_count: Optional[int] = None


@dataclass(frozen=True)
class Replies:
    count: Optional[int] = None


@dataclass(frozen=True)
class ContentItem:
    """
    One post of the corpus.

    Every field is optional.  ``author_id`` / ``author_username`` are kept
    for display but are never exposed to trait predicates (see sanitize.py).
    """

    id: Optional[str] = None
    text: Optional[str] = None
    timestamp: Optional[str] = None
    reactions: Optional[Reactions] = None
    replies: Optional[Replies] = None
    embeds: Tuple[Embed, ...] = ()
    parent_hash: Optional[str] = None
    parent_author_id: Optional[int] = None
    author_id: Optional[int] = None
    author_username: Optional[str] = None

    @property
    def likes(self) -> int:
        """Like count, missing treated as 0."""
        if self.reactions is None or self.reactions.likes_count is None:
            return 0
        return self.reactions.likes_count

    @property
    def reply_count(self) -> int:
        """Reply count, missing treated as 0."""
        if self.replies is None or self.replies.count is None:
            return 0
        return self.replies.count

    @property
    def quoted_items(self) -> List[EmbeddedItem]:
        """Inline quoted items, in embed order."""
        return [e.quoted_item for e in self.embeds if isinstance(e, QuotedItemEmbed)]

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> ContentItem:
        """Build an item from a raw dataset record, tolerating missing fields."""
        reactions = d.get("reactions")
        replies = d.get("replies")
        parent_author = d.get("parent_author")
        author = d.get("author")

        parent_author_id = d.get("parentAuthorId", d.get("parent_author_id"))
        if parent_author_id is None and isinstance(parent_author, dict):
            parent_author_id = parent_author.get("fid")

        return cls(
            id=_opt_str(d.get("id", d.get("hash"))),
            text=_opt_str(d.get("text")),
            timestamp=_opt_str(d.get("timestamp")),
            reactions=Reactions(
                likes_count=_opt_int(reactions.get("likes_count")),
                recasts_count=_opt_int(reactions.get("recasts_count")),
            ) if isinstance(reactions, dict) else None,
            replies=Replies(
                count=_opt_int(replies.get("count")),
            ) if isinstance(replies, dict) else None,
            embeds=_parse_embeds(d.get("embeds")),
            parent_hash=_opt_str(d.get("parentHash", d.get("parent_hash"))),
            parent_author_id=_opt_int(parent_author_id),
            author_id=_opt_int(author.get("fid")) if isinstance(author, dict) else None,
            author_username=(
                _opt_str(author.get("username")) if isinstance(author, dict) else None
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict (camelCase dataset schema)."""
        d: Dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "timestamp": self.timestamp,
        }
        if self.reactions is not None:
            d["reactions"] = asdict(self.reactions)
        if self.replies is not None:
            d["replies"] = asdict(self.replies)
        if self.embeds:
            d["embeds"] = [_embed_to_dict(e) for e in self.embeds]
        d["parentHash"] = self.parent_hash
        d["parentAuthorId"] = self.parent_author_id
        if self.author_id is not None or self.author_username is not None:
            d["author"] = {"fid": self.author_id, "username": self.author_username}
        return d


def stable_key(item: ContentItem) -> str:
    """Index key: ``id`` when present, else ``timestamp|text``.

    Deterministic but not guaranteed unique: two distinct posts sharing
    timestamp and text (and lacking an id) collide.
    """
    if item.id:
        return item.id
    return f"{item.timestamp or ''}|{item.text or ''}"


# ---------------------------------------------------------------------------
# Traits
# ---------------------------------------------------------------------------

_FALSE_STRINGS = ("false", "0", "no", "off")


def _parse_enabled(value: Any) -> bool:
    """Stored ``enabled`` flag; missing or unrecognized values mean enabled."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return True


@dataclass
class TraitDefinition:
    """A named boolean rule. ``description`` is never evaluated."""

    code: str = ""
    description: str = ""
    created_at: str = field(default_factory=_now_iso)
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> TraitDefinition:
        """Deserialize, filtering to known fields. ``enabled`` defaults to True."""
        known = set(cls.__dataclass_fields__.keys())
        data = {k: v for k, v in d.items() if k in known}
        if "enabled" in data:
            data["enabled"] = _parse_enabled(data["enabled"])
        return cls(**data)


TraitsRegistry = Dict[str, TraitDefinition]
TraitIndex = Dict[str, List[str]]

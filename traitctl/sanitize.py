"""
Item sanitizer — the only view of an item a trait predicate ever sees.

Builds a fresh, allow-listed nested dict per call.  Author identity and
any field not listed here are unreachable from trait code; mutating the
view cannot touch the original item.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from traitctl.types import (
    ContentItem,
    Embed,
    LinkEmbed,
    QuotedItemEmbed,
    QuotedItemRef,
)


def _embed_view(embed: Embed, depth: int) -> Optional[Dict[str, Any]]:
    if isinstance(embed, LinkEmbed):
        return {"url": embed.url}
    if isinstance(embed, QuotedItemRef):
        return {"quoted_item_hash": embed.quoted_item_hash}
    if isinstance(embed, QuotedItemEmbed):
        if depth > 0:
            return None
        quoted = embed.quoted_item
        return {"quoted_item": {
            "text": quoted.text,
            "timestamp": quoted.timestamp,
            "embeds": _embeds_view(quoted.embeds, depth + 1),
        }}
    return None


def _embeds_view(embeds: Tuple[Embed, ...], depth: int) -> List[Dict[str, Any]]:
    out = []
    for embed in embeds:
        view = _embed_view(embed, depth)
        if view is not None:
            out.append(view)
    return out


def sanitize(item: ContentItem) -> Dict[str, Any]:
    """Project an item onto the predicate-visible fields."""
    reactions = item.reactions
    replies = item.replies
    return {
        "id": item.id,
        "text": item.text,
        "timestamp": item.timestamp,
        "reactions": {
            "likes_count": reactions.likes_count,
            "recasts_count": reactions.recasts_count,
        } if reactions is not None else None,
        "replies": {"count": replies.count} if replies is not None else None,
        "embeds": _embeds_view(item.embeds, 0) if item.embeds else None,
        "parent_hash": item.parent_hash,
        "parent_author_id": item.parent_author_id,
    }

"""
Weighted sampling without replacement.

Each item's weight favours engagement, media and trait richness:

    w = 1 + ln(1+likes)*0.5 + ln(1+replies)*0.3
          + 1.0 [image] + 0.5 [link] + 0.3 [quote]
          + min(5, enabled matching traits)*0.4

Draws re-normalize over the remaining pool after every pick.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from traitctl import features
from traitctl.config import SamplerConfig
from traitctl.index import enabled_traits_for
from traitctl.types import ContentItem, TraitIndex, TraitsRegistry, stable_key

logger = logging.getLogger(__name__)


@dataclass
class WeightedItem:
    item: ContentItem
    key: str
    weight: float


def compute_weight(
    item: ContentItem,
    key: str,
    index: TraitIndex,
    registry: TraitsRegistry,
    config: Optional[SamplerConfig] = None,
) -> float:
    cfg = config or SamplerConfig()
    weight = 1.0
    if item.likes > 0:
        weight += math.log1p(item.likes) * cfg.likes_factor
    if item.reply_count > 0:
        weight += math.log1p(item.reply_count) * cfg.replies_factor
    if features.has_image(item):
        weight += cfg.image_bonus
    if features.has_link(item):
        weight += cfg.link_bonus
    if features.is_quote(item):
        weight += cfg.quote_bonus
    n_traits = len(enabled_traits_for(key, index, registry))
    if n_traits > 0:
        weight += min(cfg.trait_cap, n_traits) * cfg.trait_factor
    return weight


def build_pool(
    items: Sequence[ContentItem],
    index: TraitIndex,
    registry: TraitsRegistry,
    config: Optional[SamplerConfig] = None,
) -> List[WeightedItem]:
    pool = []
    for item in items:
        key = stable_key(item)
        pool.append(WeightedItem(
            item=item, key=key,
            weight=compute_weight(item, key, index, registry, config),
        ))
    return pool


def sample_weighted(
    pool: Sequence[WeightedItem],
    k: int = 3,
    rng: Optional[random.Random] = None,
) -> List[WeightedItem]:
    """Draw up to ``k`` distinct entries, proportionally to weight.

    Negative weights count as zero.  When the remaining total weight is
    not positive the pick is uniform.
    """
    rng = rng or random.Random()
    remaining = list(pool)
    picked: List[WeightedItem] = []
    while len(picked) < k and remaining:
        total = sum(max(0.0, w.weight) for w in remaining)
        if total <= 0:
            picked.append(remaining.pop(rng.randrange(len(remaining))))
            continue
        r = rng.random() * total
        chosen = len(remaining) - 1
        for j, w in enumerate(remaining):
            r -= max(0.0, w.weight)
            if r <= 0:
                chosen = j
                break
        picked.append(remaining.pop(chosen))
    return picked


def sample(
    items: Sequence[ContentItem],
    index: TraitIndex,
    registry: TraitsRegistry,
    k: int = 3,
    rng: Optional[random.Random] = None,
    config: Optional[SamplerConfig] = None,
) -> List[ContentItem]:
    """Up to ``k`` distinct items; empty for an empty corpus."""
    pool = build_pool(items, index, registry, config)
    picks = sample_weighted(pool, k=k, rng=rng)
    logger.debug("Sampled %d of %d items", len(picks), len(pool))
    return [w.item for w in picks]

"""
Trait statistics: per-trait counts and the distribution of items by how
many enabled traits they carry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Union

from traitctl.types import TraitIndex, TraitsRegistry

BucketKey = Union[int, str]

BUCKETS = (0, 1, 2, "3+")


def _empty_distribution() -> Dict[BucketKey, int]:
    return {b: 0 for b in BUCKETS}


@dataclass
class TraitStatistics:
    """Counts over enabled traits only."""

    counts_by_trait: Dict[str, int] = field(default_factory=dict)
    distribution: Dict[BucketKey, int] = field(default_factory=_empty_distribution)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counts_by_trait": dict(self.counts_by_trait),
            "distribution": {str(k): v for k, v in self.distribution.items()},
        }


def aggregate(index: TraitIndex, registry: TraitsRegistry) -> TraitStatistics:
    enabled = {name for name, t in registry.items() if t.enabled}
    counts = {name: 0 for name, t in registry.items() if t.enabled}
    distribution = _empty_distribution()
    for names in index.values():
        hits = [n for n in names if n in enabled]
        for n in hits:
            counts[n] += 1
        bucket: BucketKey = len(hits) if len(hits) < 3 else "3+"
        distribution[bucket] += 1
    return TraitStatistics(counts_by_trait=counts, distribution=distribution)


def percent_by_trait(stats: TraitStatistics, total_items: int) -> Dict[str, float]:
    """Share of the dataset carrying each enabled trait, in percent."""
    if total_items <= 0:
        return {}
    return {
        name: round(100.0 * count / total_items, 1)
        for name, count in stats.counts_by_trait.items()
    }

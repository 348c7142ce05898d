"""
Trait index builder.

The index maps each item's stable key to the names of the traits it
satisfies.  Disabled traits are indexed too; readers filter by
``enabled`` at read time, so toggling never requires a rebuild.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, Iterable, List, Sequence

from traitctl.sandbox import compile_predicate
from traitctl.sanitize import sanitize
from traitctl.types import ContentItem, TraitIndex, TraitsRegistry, stable_key

logger = logging.getLogger(__name__)


def rebuild_all(items: Sequence[ContentItem], registry: TraitsRegistry) -> TraitIndex:
    """Evaluate every trait over every item.

    Each trait is compiled once and each item sanitized once.  Every item
    gets an entry, possibly empty.  Trait names within an entry follow
    registry order.
    """
    t0 = time.monotonic()
    predicates = [(name, compile_predicate(t.code)) for name, t in registry.items()]
    index: TraitIndex = {}
    for item in items:
        view = sanitize(item)
        index[stable_key(item)] = [name for name, pred in predicates if pred(view)]
    logger.debug(
        "Rebuilt trait index: %d items x %d traits in %.1f ms",
        len(items), len(predicates), (time.monotonic() - t0) * 1000,
    )
    return index


def apply_one(
    items: Sequence[ContentItem],
    trait_name: str,
    code: str,
    prior_index: TraitIndex,
) -> TraitIndex:
    """Re-evaluate a single trait, leaving every other name untouched.

    Returns a new index; ``prior_index`` is not modified.
    """
    t0 = time.monotonic()
    predicate = compile_predicate(code)
    index: TraitIndex = {k: list(v) for k, v in prior_index.items()}
    hits = 0
    for item in items:
        key = stable_key(item)
        names = index.setdefault(key, [])
        matched = predicate(sanitize(item))
        present = trait_name in names
        if matched:
            hits += 1
            if not present:
                names.append(trait_name)
        elif present:
            names[:] = [n for n in names if n != trait_name]
    logger.debug(
        "Applied trait %r: %d/%d items in %.1f ms",
        trait_name, hits, len(items), (time.monotonic() - t0) * 1000,
    )
    return index


def remove_trait(index: TraitIndex, name: str) -> TraitIndex:
    """Copy of index with ``name`` pruned from every entry."""
    return {k: [n for n in v if n != name] for k, v in index.items()}


def enabled_traits_for(key: str, index: TraitIndex, registry: TraitsRegistry) -> List[str]:
    """Matching trait names for a key, restricted to enabled traits."""
    out = []
    for name in index.get(key, ()):
        trait = registry.get(name)
        if trait is not None and trait.enabled:
            out.append(name)
    return out


def filter_by_traits(
    items: Sequence[ContentItem],
    index: TraitIndex,
    registry: TraitsRegistry,
    selected: Iterable[str],
) -> List[ContentItem]:
    """Keep items carrying every enabled selected trait.

    Selections naming unknown or disabled traits are ignored; with no
    enabled selection the items are returned unchanged.
    """
    active = [
        name for name in dict.fromkeys(selected)
        if name in registry and registry[name].enabled
    ]
    if not active:
        return list(items)
    out = []
    for item in items:
        names = set(index.get(stable_key(item), ()))
        if all(name in names for name in active):
            out.append(item)
    return out


"""
Content-addressed signatures for cache invalidation.

A persisted trait index is valid only while both the dataset signature and
the traits signature it was stored with still match.

The dataset signature samples the first and last ``sample`` items plus the
count; a change confined to the middle of a long dataset with the same
length is not detected.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, List, Sequence

from traitctl.types import ContentItem, TraitsRegistry

DEFAULT_SAMPLE = 10


def stable_stringify(value: Any) -> str:
    """Canonical JSON: sorted keys, compact separators, UTF-8 kept as is."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def digest(text: str) -> str:
    """SHA-256 hex digest of text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _sample_key(item: ContentItem) -> Dict[str, Any]:
    k = item.id or f"{item.timestamp or ''}|{(item.text or '')[:16]}"
    return {"k": k, "t": item.timestamp}


def dataset_signature(items: Sequence[ContentItem], sample: int = DEFAULT_SAMPLE) -> str:
    n = len(items)
    first: List[Dict[str, Any]] = [_sample_key(i) for i in items[:sample]]
    last: List[Dict[str, Any]] = (
        [_sample_key(i) for i in items[-sample:]] if sample > 0 else []
    )
    return digest(stable_stringify({"n": n, "first": first, "last": last}))


def traits_signature(registry: TraitsRegistry) -> str:
    """Digest over each trait's code and enabled flag, independent of order.

    Descriptions and creation times do not participate.
    """
    payload = {
        name: {"code": registry[name].code, "enabled": registry[name].enabled}
        for name in sorted(registry)
    }
    return digest(stable_stringify(payload))

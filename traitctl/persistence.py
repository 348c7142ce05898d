"""
Versioned persistence of the trait registry and the trait index record.

Both payloads are JSON strings in the key-value store:

    traits_v1       {"version": 1, "traits": {name: TraitDefinition}}
    trait_index_v1  {"version": 1, "dataset_signature": ..., "traits_signature": ...,
                     "index": {key: [name, ...]}}

Reads treat anything unexpected (unknown version, malformed JSON, wrong
shape, signature mismatch) as a cache miss.  Writes never raise.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol, Sequence

from traitctl.signature import dataset_signature, traits_signature
from traitctl.types import ContentItem, TraitDefinition, TraitIndex, TraitsRegistry

logger = logging.getLogger(__name__)

TRAITS_KEY = "traits_v1"
INDEX_KEY = "trait_index_v1"
RECORD_VERSION = 1


class KeyValue(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> bool: ...


def _read_json(store: KeyValue, key: str) -> Optional[Dict[str, Any]]:
    raw = store.get(key)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        logger.info("Ignoring malformed %s payload: %s", key, exc)
        return None
    if not isinstance(data, dict) or data.get("version") != RECORD_VERSION:
        logger.info("Ignoring %s payload with unknown version or shape", key)
        return None
    return data


def _write_json(store: KeyValue, key: str, payload: Dict[str, Any]) -> bool:
    try:
        ok = store.set(key, json.dumps(payload, ensure_ascii=False))
    except Exception as exc:
        logger.warning("Persisting %s failed: %s", key, exc)
        return False
    if not ok:
        logger.warning("Persisting %s failed; continuing in memory", key)
    return bool(ok)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def load_registry(store: KeyValue) -> Optional[TraitsRegistry]:
    """Stored registry, or None when absent or unreadable."""
    data = _read_json(store, TRAITS_KEY)
    if data is None:
        return None
    traits = data.get("traits")
    if not isinstance(traits, dict):
        return None
    registry: TraitsRegistry = {}
    for name, raw in traits.items():
        if not isinstance(raw, dict):
            logger.info("Skipping malformed stored trait %r", name)
            continue
        if not isinstance(raw.get("code", ""), str):
            logger.info("Skipping stored trait %r: code is not text", name)
            continue
        try:
            registry[str(name)] = TraitDefinition.from_dict(raw)
        except TypeError as exc:
            logger.info("Skipping malformed stored trait %r: %s", name, exc)
    return registry


def save_registry(store: KeyValue, registry: TraitsRegistry) -> bool:
    payload = {
        "version": RECORD_VERSION,
        "traits": {name: t.to_dict() for name, t in registry.items()},
    }
    return _write_json(store, TRAITS_KEY, payload)


# ---------------------------------------------------------------------------
# Index record
# ---------------------------------------------------------------------------


def _valid_index(index: Any) -> bool:
    if not isinstance(index, dict):
        return False
    for key, names in index.items():
        if not isinstance(key, str) or not isinstance(names, list):
            return False
        if not all(isinstance(n, str) for n in names):
            return False
    return True


def load_index(
    store: KeyValue,
    items: Sequence[ContentItem],
    registry: TraitsRegistry,
) -> Optional[TraitIndex]:
    """Cached index if its signatures match the current inputs, else None."""
    data = _read_json(store, INDEX_KEY)
    if data is None:
        return None
    index = data.get("index")
    if not _valid_index(index):
        logger.info("Ignoring trait index record with wrong shape")
        return None
    if data.get("dataset_signature") != dataset_signature(items):
        logger.info("Trait index cache miss: dataset changed")
        return None
    if data.get("traits_signature") != traits_signature(registry):
        logger.info("Trait index cache miss: traits changed")
        return None
    logger.debug("Trait index cache hit (%d entries)", len(index))
    return {key: list(dict.fromkeys(names)) for key, names in index.items()}


def save_index(
    store: KeyValue,
    index: TraitIndex,
    items: Sequence[ContentItem],
    registry: TraitsRegistry,
) -> bool:
    payload = {
        "version": RECORD_VERSION,
        "dataset_signature": dataset_signature(items),
        "traits_signature": traits_signature(registry),
        "index": index,
    }
    return _write_json(store, INDEX_KEY, payload)

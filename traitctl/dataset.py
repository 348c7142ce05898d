"""
Dataset loading: JSON or JSONL files of post records into ContentItems.

Accepted shapes:
    [ {...}, {...} ]                 JSON list
    {"casts": [...]} / {"items": [...]}
    one JSON object per line         JSONL
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Union

from traitctl.types import ContentItem

logger = logging.getLogger(__name__)


class DatasetError(ValueError):
    """Raised when a dataset file cannot be read or has an unknown shape."""

    pass


def parse_items(records: Iterable[Any]) -> List[ContentItem]:
    """Convert raw records; non-object records are skipped with a warning."""
    items: List[ContentItem] = []
    skipped = 0
    for record in records:
        if not isinstance(record, dict):
            skipped += 1
            continue
        items.append(ContentItem.from_dict(record))
    if skipped:
        logger.warning("Skipped %d non-object record(s)", skipped)
    return items


def _records(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("casts", "items"):
            if isinstance(data.get(key), list):
                return data[key]
    raise DatasetError("Expected a JSON list or an object with a 'casts' or 'items' list")


def _parse_jsonl(text: str, path: Path) -> List[Any]:
    records = []
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as exc:
            raise DatasetError(f"{path}:{lineno}: invalid JSON line: {exc.msg}") from exc
    return records


def load_items(path: Union[str, Path]) -> List[ContentItem]:
    """Load a dataset file.

    Raises:
        DatasetError: If the file is unreadable, not JSON/JSONL, or of
            an unrecognized shape.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DatasetError(f"Cannot read dataset {p}: {exc}") from exc

    if p.suffix.lower() in (".jsonl", ".ndjson"):
        records = _parse_jsonl(text, p)
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            records = _parse_jsonl(text, p)
        else:
            records = _records(data)

    items = parse_items(records)
    logger.info("Loaded %d items from %s", len(items), p)
    return items

"""
Predicate compiler & sandbox.

Turns trait source text into a ``Predicate`` that maps a sanitized item
view to a boolean.  Compilation never raises: broken code becomes an
always-false predicate.  Evaluation never raises: a fault on one item
means "no match" for that item only.

Compiled predicates are memoized by exact source text for the lifetime
of the process.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from traitctl.expr import (
    EvaluationError,
    Expression,
    ExpressionError,
    compile_expression,
)
from traitctl.sanitize import sanitize
from traitctl.types import ContentItem

logger = logging.getLogger(__name__)

Predicate = Callable[[Dict[str, Any]], bool]

_PREDICATE_CACHE: Dict[str, Predicate] = {}


def _never(view: Dict[str, Any]) -> bool:
    return False


def _wrap(expression: Expression) -> Predicate:
    def predicate(view: Dict[str, Any]) -> bool:
        try:
            return bool(expression.evaluate(view))
        except EvaluationError as exc:
            logger.debug("Trait evaluation fault on %r: %s", view.get("id"), exc)
            return False

    predicate.expression = expression  # type: ignore[attr-defined]
    return predicate


def compile_predicate(code: str) -> Predicate:
    """Compile trait code to a predicate, memoized by source text.

    Code that fails to compile is logged once and cached as an
    always-false predicate. Non-string code never compiles.
    """
    if not isinstance(code, str):
        return _never
    cached = _PREDICATE_CACHE.get(code)
    if cached is not None:
        return cached
    try:
        predicate = _wrap(compile_expression(code))
    except ExpressionError as exc:
        logger.info("Trait code does not compile: %s", exc)
        predicate = _never
    _PREDICATE_CACHE[code] = predicate
    return predicate


def check_code(code: str) -> Optional[str]:
    """Return the compile error message for code, or None if it compiles."""
    if not isinstance(code, str):
        return "Trait code must be a string"
    try:
        compile_expression(code)
    except ExpressionError as exc:
        return str(exc)
    return None


def execute_predicate(code: str, item: ContentItem) -> bool:
    """Compile code, sanitize item, and evaluate. Never raises."""
    return compile_predicate(code)(sanitize(item))


def clear_predicate_cache() -> None:
    _PREDICATE_CACHE.clear()


def cache_size() -> int:
    return len(_PREDICATE_CACHE)

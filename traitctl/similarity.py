"""
Stdlib text similarity for zero-result search suggestions.

Two complementary set-overlap measures:
- **Word Jaccard**: lower-cased alphanumeric word tokens (length > 1).
- **Trigram Jaccard**: overlapping 3-character windows of the
  lower-cased, whitespace-collapsed string (typo tolerant).

Combined via weighted sum (0.6 / 0.4 by default) to rank near misses
when a full-text query finds nothing.
"""

from __future__ import annotations

import re
from typing import AbstractSet, List, Set

# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

# Anything that is not a letter, digit or whitespace ("_" counts as punctuation)
_NON_WORD_RE = re.compile(r"[^\w\s]|_")

# Collapse runs of whitespace
_WS_RE = re.compile(r"\s+")


def word_tokens(text: str) -> List[str]:
    """Lower-cased alphanumeric tokens longer than one character.

    Punctuation is replaced by spaces before splitting, so
    ``"event-sourcing"`` yields ``["event", "sourcing"]``.
    """
    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) > 1]


def trigrams(text: str) -> List[str]:
    """Overlapping 3-character windows of the normalized string.

    Strings shorter than 3 characters yield themselves as the single
    gram, or nothing when empty.
    """
    s = _WS_RE.sub(" ", text.lower()).strip()
    if len(s) < 3:
        return [s] if s else []
    return [s[i:i + 3] for i in range(len(s) - 2)]


# ---------------------------------------------------------------------------
# Similarity measures
# ---------------------------------------------------------------------------


def jaccard(a: AbstractSet, b: AbstractSet) -> float:
    """Set Jaccard similarity J(A, B) = |A ∩ B| / |A ∪ B|.

    Unlike vacuous-similarity conventions, two empty sets score 0.0:
    an empty query must never look like a perfect match.
    """
    if not a and not b:
        return 0.0
    inter = len(a & b)
    union = len(a) + len(b) - inter
    return inter / union if union else 0.0


def similarity_score(
    query: str,
    text: str,
    *,
    word_weight: float = 0.6,
    trigram_weight: float = 0.4,
) -> float:
    """Combined suggestion score between a query and a candidate text.

        score = w_word * J(words(q), words(t)) + w_tri * J(tri(q), tri(t))

    Args:
        query: The search query as typed.
        text: Candidate text (own text plus quoted text).
        word_weight: Weight for the word component (default 0.6).
        trigram_weight: Weight for the trigram component (default 0.4).

    Returns:
        Float in [0.0, word_weight + trigram_weight]; 0.0 if either side is empty.

    Raises:
        ValueError: If a weight is negative.
    """
    if word_weight < 0 or trigram_weight < 0:
        raise ValueError("Weights must be non-negative")
    if not query or not text:
        return 0.0

    q_words: Set[str] = set(word_tokens(query))
    t_words: Set[str] = set(word_tokens(text))
    q_tri: Set[str] = set(trigrams(query))
    t_tri: Set[str] = set(trigrams(text))

    return word_weight * jaccard(q_words, t_words) + trigram_weight * jaccard(q_tri, t_tri)

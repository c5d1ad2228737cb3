"""Scoring primitives for line-item matching.

Text similarity uses rapidfuzz's token-set ratio, which ignores word order
and repeated tokens: identical descriptions score 1.0 and descriptions with
no shared vocabulary score close to 0.
"""

import re
from decimal import Decimal

from rapidfuzz import fuzz

SIGNATURE_STOPWORDS = frozenset({"the", "and", "for", "ltd", "limited", "inc", "corp"})
SIGNATURE_WORDS = 3

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    return _WHITESPACE.sub(" ", _NON_WORD.sub(" ", text.lower())).strip()


def text_similarity(a: str, b: str) -> float:
    """Similarity of two descriptions in [0, 1]."""
    left, right = normalize_text(a), normalize_text(b)
    if not left or not right:
        return 0.0
    return fuzz.token_set_ratio(left, right) / 100


def amount_proximity(a: Decimal | float, b: Decimal | float, tolerance: float) -> float:
    """Closeness of two amounts in [0, 1].

    1.0 at an exact match, falling linearly to 0 when the relative
    difference |a - b| / max(a, b) reaches tolerance.
    """
    left, right = float(a), float(b)
    largest = max(abs(left), abs(right))
    if largest == 0:
        return 1.0
    relative_diff = abs(left - right) / largest
    return min(max(1.0 - relative_diff / tolerance, 0.0), 1.0)


def composite_score(
    text_score: float,
    amount_score: float,
    text_weight: float,
    amount_weight: float,
) -> float:
    """Weighted blend of text and amount scores with weights normalized to sum 1."""
    total_weight = text_weight + amount_weight
    if total_weight <= 0:
        text_weight = amount_weight = total_weight = 1.0
    return (text_weight * text_score + amount_weight * amount_score) / total_weight


def description_signature(text: str) -> str:
    """Pattern key for a description or supplier name.

    First three meaningful words (longer than two characters, not a
    stopword), lowercased with punctuation removed.

    Example:
        >>> description_signature("Concrete pour - 50m3 for the slab")
        'concrete pour 50m3'
    """
    words = _WHITESPACE.split(_NON_WORD.sub(" ", text.lower()))
    meaningful = [w for w in words if len(w) > 2 and w not in SIGNATURE_STOPWORDS]
    return " ".join(meaningful[:SIGNATURE_WORDS])

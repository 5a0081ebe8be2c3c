"""
String comparison helpers used for cross-document matching
"""
import re
from typing import Optional

from rapidfuzz.distance import Levenshtein

def normalize(value: Optional[str]) -> str:
    """Lower-case and trim; None becomes an empty string"""
    return (value or "").strip().lower()

def string_similarity(a: str, b: str) -> float:
    """
    Normalized Levenshtein similarity: 1 - distance / max(len(a), len(b)).

    Identical strings score 1.0, and an empty side scores 0.0.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a, b)

def digits_only(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")

"""
Common utility functions and helpers.
"""
from typing import Iterable, List
import re
import string


_PUNCTUATION_RE = re.compile(f"[{re.escape(string.punctuation)}¿¡“”‘’«»…]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_question(text: str) -> str:
    """
    Normalize a question for comparison.

    Lowercases, strips punctuation and collapses whitespace runs to a
    single space.

    Args:
        text: Raw question text

    Returns:
        Normalized text
    """
    text = text.lower()
    text = _PUNCTUATION_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def dedupe_questions(candidates: Iterable[str]) -> List[str]:
    """
    Remove duplicate questions, comparing normalized forms.

    The first spelling of each question is kept, in input order.  Entries
    that normalize to an empty string are dropped.
    """
    seen = set()
    unique: List[str] = []
    for candidate in candidates:
        norm = normalize_question(candidate)
        if not norm or norm in seen:
            continue
        seen.add(norm)
        unique.append(candidate)
    return unique


def levenshtein_distance(a: str, b: str) -> int:
    """
    Edit distance (insertions, deletions, substitutions) between two strings.

    Args:
        a: First string
        b: Second string

    Returns:
        Number of single-character edits turning *a* into *b*
    """
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,          # deletion
                current[j - 1] + 1,       # insertion
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """
    Normalized similarity ``1 - distance / max(len(a), len(b))``.

    Returns 1.0 for two empty strings.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


def truncate_text(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix

"""Text similarity used by fuzzy item matching."""

from __future__ import annotations


def _word_set(text: str | None) -> frozenset[str]:
    return frozenset((text or "").lower().split())


def token_set_similarity(a: str | None, b: str | None) -> float:
    """Jaccard index of the lower-cased, whitespace-split word sets.

    Bounded in [0, 1] and symmetric.  Two empty strings score 0.0.
    """
    words_a = _word_set(a)
    words_b = _word_set(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def search_phrase(description: str | None, words: int) -> str:
    """The leading ``words`` words of a description, used as catalog search text."""
    return " ".join((description or "").split()[:words])

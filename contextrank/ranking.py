"""Relatedness ranking by cosine similarity."""

from __future__ import annotations

import math
from typing import List, Sequence

from .models import EmbeddedItem, Embedding, ScoredItem


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity between two vectors.

    Accumulates the dot product and both squared magnitudes in a single
    pass, so inputs need not be L2-normalised.

    Returns a value in ``[-1, 1]``, or ``NaN`` when either vector has zero
    magnitude.  Vectors of different dimensions raise ``ValueError``.
    """
    if len(vec_a) != len(vec_b):
        raise ValueError(
            f"Embedding dimensions differ: {len(vec_a)} != {len(vec_b)}"
        )
    dot = 0.0
    mag_a = 0.0
    mag_b = 0.0
    for a, b in zip(vec_a, vec_b):
        dot += a * b
        mag_a += a * a
        mag_b += b * b
    denominator = math.sqrt(mag_a) * math.sqrt(mag_b)
    if denominator == 0.0:
        return math.nan
    return dot / denominator


def _sort_key(scored: ScoredItem):
    # Non-finite scores go last; sorted() keeps ties in corpus order.
    if math.isfinite(scored.score):
        return (0, -scored.score)
    return (1, 0.0)


def rank(
    query: Embedding,
    corpus: Sequence[EmbeddedItem],
    top_n: int,
) -> List[ScoredItem]:
    """Return the *top_n* corpus entries most similar to *query*, best first."""
    if top_n < 0:
        raise ValueError(f"top_n must be >= 0, got {top_n}")

    scored = [
        ScoredItem(
            item=entry.item,
            embedding=entry.embedding,
            score=cosine_similarity(entry.embedding, query),
        )
        for entry in corpus
    ]
    scored.sort(key=_sort_key)
    return scored[:top_n]

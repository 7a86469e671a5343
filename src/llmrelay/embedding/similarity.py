# src/llmrelay/embedding/similarity.py
"""
Vector similarity functions for embedding search.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from ..exceptions import DimensionMismatchError
from ..models import SimilarityResult

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Raises:
        DimensionMismatchError: If the vectors differ in length.

    Returns:
        A value in ``[-1.0, 1.0]``; ``0.0`` when either vector has zero magnitude.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    dot_product = sum(x * y for x, y in zip(a, b))
    sum_sq_a = sum(x * x for x in a)
    sum_sq_b = sum(x * x for x in b)

    if sum_sq_a == 0 or sum_sq_b == 0:
        return 0.0

    # A single sqrt keeps cosine(v, v) exactly 1.0.
    similarity = dot_product / math.sqrt(sum_sq_a * sum_sq_b)
    return max(-1.0, min(1.0, similarity))


def find_most_similar(
    query: Sequence[float],
    candidates: Sequence[Sequence[float]],
    top_k: int = 10,
) -> list[SimilarityResult]:
    """
    Ranks ``candidates`` by cosine similarity to ``query``.

    Candidates whose dimension differs from the query are skipped. Results
    are sorted by similarity, highest first, cut to ``top_k`` and keep the
    candidate's position in the input list.
    """
    results: list[SimilarityResult] = []
    for index, candidate in enumerate(candidates):
        try:
            similarity = cosine_similarity(query, candidate)
        except DimensionMismatchError as e:
            logger.debug(f"Skipping candidate {index}: {e}")
            continue
        results.append(SimilarityResult(index=index, similarity=similarity, embedding=list(candidate)))

    results.sort(key=lambda result: result.similarity, reverse=True)
    return results[:max(top_k, 0)]


__all__ = ["cosine_similarity", "find_most_similar"]

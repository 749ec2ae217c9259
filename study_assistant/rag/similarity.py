"""Cosine similarity scoring and ranking of passages against a query."""
import math
from typing import List, Sequence, TypeVar, Callable, Tuple, Union

import numpy as np

Vector = Union[Sequence[float], np.ndarray]
T = TypeVar("T")


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity ``dot(a, b) / (|a| * |b|)``.

    Both vectors are expected to have the same length. The result lies in
    [-1, 1] for well-formed input and is NaN when either vector is all zeros.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)

    with np.errstate(divide="ignore", invalid="ignore"):
        score = np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b))

    return float(score)


def _sort_key(scored: Tuple[float, object]) -> float:
    score = scored[0]
    # NaN ranks below every real score
    return math.inf if math.isnan(score) else -score


def rank(
    query_vector: Vector,
    candidates: Sequence[T],
    vector_of: Callable[[T], Vector],
) -> List[Tuple[float, T]]:
    """Score every candidate against the query, best first.

    Args:
        query_vector: Embedded query
        candidates: Items to score, in storage order
        vector_of: Returns the vector of a candidate

    Returns:
        (score, candidate) pairs sorted by descending score. NaN scores come
        last and equal scores keep their storage order.
    """
    scored = [
        (cosine_similarity(query_vector, vector_of(candidate)), candidate)
        for candidate in candidates
    ]
    scored.sort(key=_sort_key)
    return scored

"""Cosine-similarity ranking over stored record embeddings.

Brute force: every candidate is scored, O(N·d) per query, which is fine for a
personal knowledge base of a few thousand records. Anything implementing the
``SimilarityRanker`` protocol (e.g. an HNSW-backed index) can replace
``BruteForceRanker`` without touching callers.

Degenerate inputs never raise: zero-norm vectors, length mismatches and
unparseable stored embeddings all score 0.0 and stay in the batch.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Vector = Sequence[float]


@dataclass(frozen=True)
class Candidate(Generic[T]):
    """A stored vector (raw list or JSON text) plus the payload it belongs to."""

    id: object
    vector: Vector | str | None
    payload: T


@dataclass(frozen=True)
class RankedResult(Generic[T]):
    payload: T
    similarity: float


class SimilarityRanker(Protocol):
    def rank(
        self, query: Vector, candidates: Iterable[Candidate[T]], k: int
    ) -> list[RankedResult[T]]: ...


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Return dot(a, b) / (|a|·|b|), or 0.0 when undefined.

    Undefined covers zero-norm vectors, vectors of different length, and
    non-finite results.
    """
    if len(a) != len(b) or not a:
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    sim = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    return sim if math.isfinite(sim) else 0.0


def parse_vector(raw: Vector | str | None) -> list[float] | None:
    """Decode a stored embedding. Returns None when it is not a numeric list."""
    if raw is None:
        return None
    try:
        values = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(values, (list, tuple)):
            return None
        return [float(v) for v in values]
    except (ValueError, TypeError):
        return None


class BruteForceRanker:
    """Score every candidate against the query and keep the best *k*."""

    def rank(
        self, query: Vector, candidates: Iterable[Candidate[T]], k: int
    ) -> list[RankedResult[T]]:
        """Return at most *k* results, best first.

        Ties keep candidate order (``sorted`` is stable), so identical inputs
        always produce identical output.
        """
        if k <= 0:
            return []
        scored: list[RankedResult[T]] = []
        for candidate in candidates:
            vector = parse_vector(candidate.vector)
            if vector is None:
                logger.warning(
                    "Unparseable embedding for record %s; scoring it 0.", candidate.id
                )
                similarity = 0.0
            else:
                similarity = cosine_similarity(query, vector)
            scored.append(RankedResult(payload=candidate.payload, similarity=similarity))
        return sorted(scored, key=lambda r: r.similarity, reverse=True)[:k]

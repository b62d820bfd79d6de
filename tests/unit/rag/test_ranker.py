"""Tests for cosine-similarity ranking."""

from __future__ import annotations

import json
import math

import pytest

from clipmind.rag.ranker import BruteForceRanker, Candidate, cosine_similarity, parse_vector


def _candidates(*vectors):
    return [Candidate(id=i, vector=v, payload=f"rec-{i}") for i, v in enumerate(vectors)]


# ------------------------------------------------------------------
# cosine_similarity
# ------------------------------------------------------------------


def test_cosine_is_symmetric():
    a, b = [0.3, 0.7, 0.1], [0.9, 0.2, 0.4]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_identical_vectors_is_one():
    assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)


def test_cosine_orthogonal_is_zero():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_cosine_zero_vector_scores_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


def test_cosine_length_mismatch_scores_zero():
    assert cosine_similarity([1.0, 0.0, 0.0], [1.0, 0.0]) == 0.0


def test_cosine_non_finite_scores_zero():
    assert cosine_similarity([math.inf, 1.0], [1.0, 1.0]) == 0.0


# ------------------------------------------------------------------
# parse_vector
# ------------------------------------------------------------------


def test_parse_vector_json_text():
    assert parse_vector(json.dumps([1, 2.5])) == [1.0, 2.5]


def test_parse_vector_rejects_garbage():
    assert parse_vector("not json") is None
    assert parse_vector('{"a": 1}') is None
    assert parse_vector('["x", "y"]') is None
    assert parse_vector(None) is None


# ------------------------------------------------------------------
# BruteForceRanker
# ------------------------------------------------------------------


def test_rank_orders_by_similarity():
    ranker = BruteForceRanker()
    results = ranker.rank([0.9, 0.1], _candidates([0.0, 1.0], [1.0, 0.0]), k=10)
    assert [r.payload for r in results] == ["rec-1", "rec-0"]
    assert results[0].similarity > results[1].similarity


def test_rank_bounded_by_k_and_sorted():
    ranker = BruteForceRanker()
    vectors = [[1.0, i / 10] for i in range(20)]
    results = ranker.rank([1.0, 0.0], _candidates(*vectors), k=5)
    assert len(results) == 5
    sims = [r.similarity for r in results]
    assert sims == sorted(sims, reverse=True)


def test_rank_k_zero_returns_empty():
    assert BruteForceRanker().rank([1.0, 0.0], _candidates([1.0, 0.0]), k=0) == []


def test_rank_empty_candidates():
    assert BruteForceRanker().rank([1.0, 0.0], [], k=10) == []


def test_rank_degenerate_candidates_stay_in_batch():
    ranker = BruteForceRanker()
    candidates = _candidates(
        json.dumps([1.0, 0.0]),
        "corrupt",
        [0.0, 0.0],
        [1.0, 0.0, 0.0],
    )
    results = ranker.rank([1.0, 0.0], candidates, k=10)
    assert len(results) == 4
    assert results[0].payload == "rec-0"
    assert all(r.similarity == 0.0 for r in results[1:])


def test_rank_ties_keep_candidate_order():
    ranker = BruteForceRanker()
    results = ranker.rank([1.0, 0.0], _candidates([2.0, 0.0], [1.0, 0.0], [3.0, 0.0]), k=3)
    assert [r.payload for r in results] == ["rec-0", "rec-1", "rec-2"]


def test_rank_logs_unparseable_vectors(caplog):
    with caplog.at_level("WARNING", logger="clipmind.rag.ranker"):
        BruteForceRanker().rank([1.0], _candidates("{bad"), k=1)
    assert "Unparseable embedding" in caplog.text

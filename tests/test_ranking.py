"""Tests for scoring functions and bounded top-k selection."""

from __future__ import annotations

import math
import random

import pytest

from docsift.index.inverted import build_index
from docsift.models import Chunk
from docsift.retrieval.matcher import Matcher
from docsift.retrieval.ranking import (
    Candidate,
    PhraseBoost,
    Ranker,
    ScoringContext,
    get_scoring_function,
    inverse_document_frequency,
    term_frequency,
)


def _chunk(document_id: str, index: int, text: str) -> Chunk:
    return Chunk(document_id=document_id, index=index, start=0, end=len(text), text=text)


def test_rank_orders_by_score_then_location():
    matches = {
        ("b.txt", 0): frozenset({"x", "y"}),
        ("a.txt", 1): frozenset({"x"}),
        ("a.txt", 0): frozenset({"y"}),
        ("c.txt", 0): frozenset({"x", "y", "z"}),
    }
    ranked = Ranker().rank(matches, 10)
    assert [(c.location, c.score) for c in ranked] == [
        (("c.txt", 0), 3.0),
        (("b.txt", 0), 2.0),
        (("a.txt", 0), 1.0),
        (("a.txt", 1), 1.0),
    ]


def test_rank_tie_break_keeps_lexically_smallest():
    matches = {(f"doc{i}.txt", 0): frozenset({"x"}) for i in range(5)}
    ranked = Ranker().rank(matches, 2)
    assert [c.document_id for c in ranked] == ["doc0.txt", "doc1.txt"]


def test_rank_zero_k_and_empty_matches():
    assert Ranker().rank({("a.txt", 0): frozenset({"x"})}, 0) == []
    assert Ranker().rank({}, 5) == []


def test_rank_k_larger_than_candidates_returns_all():
    matches = {("a.txt", 0): frozenset({"x"}), ("b.txt", 0): frozenset({"x", "y"})}
    assert len(Ranker().rank(matches, 50)) == 2


def test_rank_negative_k_raises():
    with pytest.raises(ValueError):
        Ranker().rank({("a.txt", 0): frozenset({"x"})}, -1)


def test_rank_matches_full_sort():
    rng = random.Random(7)
    vocabulary = ["alpha", "beta", "gamma", "delta", "eps"]
    matches = {
        (f"doc{rng.randint(0, 30)}.txt", rng.randint(0, 4)): frozenset(rng.sample(vocabulary, rng.randint(1, 5)))
        for _ in range(120)
    }
    expected = sorted(matches.items(), key=lambda item: (-len(item[1]), item[0]))
    for k in (1, 3, 10, len(matches)):
        ranked = Ranker().rank(matches, k)
        assert [c.location for c in ranked] == [location for location, _ in expected[:k]]


def test_rank_is_deterministic():
    matches = {(f"doc{i}.txt", i % 3): frozenset({"x"} if i % 2 else {"x", "y"}) for i in range(20)}
    first = Ranker().rank(matches, 7)
    assert Ranker().rank(dict(reversed(list(matches.items()))), 7) == first


def test_distinct_documents_keeps_best_chunk_per_document():
    matches = {
        ("a.txt", 0): frozenset({"x"}),
        ("a.txt", 1): frozenset({"x", "y"}),
        ("b.txt", 0): frozenset({"x"}),
    }
    ranked = Ranker().rank(matches, 5, distinct_documents=True)
    assert [c.location for c in ranked] == [("a.txt", 1), ("b.txt", 0)]


def test_term_frequency_counts_occurrences():
    chunks = [_chunk("a.txt", 0, "due due due total"), _chunk("b.txt", 0, "due total")]
    index = build_index(chunks)
    matches = Matcher().match(index, "due total")
    context = ScoringContext(index=index, query_terms=("due", "total"))
    ranked = Ranker(term_frequency).rank(matches, 2, context=context)
    assert [(c.document_id, c.score) for c in ranked] == [("a.txt", 4.0), ("b.txt", 2.0)]


def test_inverse_document_frequency_prefers_rare_terms():
    chunks = [_chunk("a.txt", 0, "common rare"), _chunk("b.txt", 0, "common")]
    index = build_index(chunks)
    context = ScoringContext(index=index, query_terms=("common", "rare"))
    rare = inverse_document_frequency(Candidate("x.txt", 0, frozenset({"rare"})), context)
    common = inverse_document_frequency(Candidate("x.txt", 0, frozenset({"common"})), context)
    assert rare == pytest.approx(math.log(3.0))
    assert common == pytest.approx(math.log(2.0))


def test_phrase_boost_rewards_adjacent_terms():
    chunks = [_chunk("a.txt", 0, "total due now"), _chunk("b.txt", 0, "due total now")]
    index = build_index(chunks)
    context = ScoringContext(
        index=index,
        query_terms=("total", "due"),
        chunks={chunk.key: chunk for chunk in chunks},
    )
    matches = Matcher().match(index, "total due")
    ranked = Ranker(PhraseBoost(weight=0.5)).rank(matches, 2, context=context)
    assert [(c.document_id, c.score) for c in ranked] == [("a.txt", 2.5), ("b.txt", 2.0)]


def test_phrase_boost_rejects_negative_weight():
    with pytest.raises(ValueError):
        PhraseBoost(weight=-1.0)


def test_get_scoring_function():
    assert get_scoring_function("frequency") is term_frequency
    assert isinstance(get_scoring_function("distinct", phrase_boost_weight=1.0), PhraseBoost)
    with pytest.raises(ValueError):
        get_scoring_function("bm42")


def test_negative_scores_are_clamped():
    ranked = Ranker(lambda candidate, context: -5.0).rank({("a.txt", 0): frozenset({"x"})}, 1)
    assert ranked[0].score == 0.0

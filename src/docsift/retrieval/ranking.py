"""Scoring functions and bounded top-k selection."""

from __future__ import annotations

import heapq
import math
from dataclasses import dataclass, field
from functools import cached_property, total_ordering
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from docsift.index.inverted import InvertedIndex
from docsift.models import Chunk, ChunkKey
from docsift.retrieval.matcher import QueryAutomaton


@dataclass(frozen=True)
class Candidate:
    """A matched chunk awaiting a score."""

    document_id: str
    chunk_index: int
    terms: frozenset[str]

    @property
    def location(self) -> ChunkKey:
        return (self.document_id, self.chunk_index)


@dataclass(frozen=True)
class RankedCandidate:
    document_id: str
    chunk_index: int
    score: float
    terms: frozenset[str]

    @property
    def location(self) -> ChunkKey:
        return (self.document_id, self.chunk_index)


@dataclass(frozen=True)
class ScoringContext:
    """Query-scoped data that scoring functions may consult."""

    index: InvertedIndex
    query_terms: tuple[str, ...] = ()
    chunks: Mapping[ChunkKey, Chunk] = field(default_factory=dict)

    @cached_property
    def phrase_automaton(self) -> QueryAutomaton:
        return QueryAutomaton.for_phrases(self.query_terms)


ScoringFunction = Callable[[Candidate, Optional[ScoringContext]], float]


def distinct_terms(candidate: Candidate, context: ScoringContext | None = None) -> float:
    """Number of distinct query terms in the chunk."""

    return float(len(candidate.terms))


def term_frequency(candidate: Candidate, context: ScoringContext | None = None) -> float:
    """Total occurrences of the matched terms in the chunk."""

    if context is None:
        return distinct_terms(candidate)
    return float(sum(context.index.frequency(term, candidate.location) for term in candidate.terms))


def inverse_document_frequency(candidate: Candidate, context: ScoringContext | None = None) -> float:
    """Matched terms weighted so that terms found in fewer chunks count more."""

    if context is None:
        return distinct_terms(candidate)
    total = context.index.chunk_count
    score = 0.0
    for term in candidate.terms:
        frequency = max(context.index.document_frequency(term), 1)
        score += math.log(1.0 + total / frequency)
    return score


class PhraseBoost:
    """Adds ``weight`` for every adjacent query-term pair found as a phrase in the chunk."""

    def __init__(self, base: ScoringFunction = distinct_terms, weight: float = 1.0) -> None:
        if weight < 0:
            raise ValueError("Phrase boost weight must not be negative")
        self._base = base
        self._weight = weight

    def __call__(self, candidate: Candidate, context: ScoringContext | None = None) -> float:
        score = self._base(candidate, context)
        if context is None or not self._weight or len(candidate.terms) < 2:
            return score
        chunk = context.chunks.get(candidate.location)
        if chunk is None:
            return score
        phrases = context.phrase_automaton.scan_phrases(chunk.text)
        return score + self._weight * len(phrases)


SCORING_FUNCTIONS: Mapping[str, ScoringFunction] = {
    "distinct": distinct_terms,
    "frequency": term_frequency,
    "idf": inverse_document_frequency,
}


def get_scoring_function(name: str, *, phrase_boost_weight: float = 0.0) -> ScoringFunction:
    try:
        scorer = SCORING_FUNCTIONS[name]
    except KeyError as exc:
        raise ValueError(f"Unknown scoring function '{name}'") from exc
    if phrase_boost_weight:
        return PhraseBoost(scorer, phrase_boost_weight)
    return scorer


@total_ordering
class _Reversed:
    """Inverts the ordering of a tie-break key so the heap evicts the lexically largest first."""

    __slots__ = ("value",)

    def __init__(self, value: ChunkKey) -> None:
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _Reversed):
            return NotImplemented
        return self.value == other.value

    def __lt__(self, other: "_Reversed") -> bool:
        return other.value < self.value


class Ranker:
    """Selects the k best-scoring candidates with a bounded min-heap.

    Results are ordered by score descending, then by ``(document_id,
    chunk_index)`` ascending, so identical input always ranks identically.
    """

    def __init__(self, scorer: ScoringFunction = distinct_terms) -> None:
        self._scorer = scorer

    def rank(
        self,
        matches: Mapping[ChunkKey, frozenset[str]],
        k: int,
        *,
        context: ScoringContext | None = None,
        distinct_documents: bool = False,
    ) -> List[RankedCandidate]:
        if k < 0:
            raise ValueError("k must not be negative")
        if k == 0 or not matches:
            return []
        candidates: Iterable[RankedCandidate] = self._score_all(matches, context)
        if distinct_documents:
            candidates = _best_per_document(candidates)

        heap: List[tuple[float, _Reversed, RankedCandidate]] = []
        for candidate in candidates:
            entry = (candidate.score, _Reversed(candidate.location), candidate)
            if len(heap) < k:
                heapq.heappush(heap, entry)
            elif entry[:2] > heap[0][:2]:
                heapq.heapreplace(heap, entry)
        return [candidate for _, _, candidate in sorted(heap, key=lambda e: e[:2], reverse=True)]

    def _score_all(
        self,
        matches: Mapping[ChunkKey, frozenset[str]],
        context: ScoringContext | None,
    ) -> Iterator[RankedCandidate]:
        for (document_id, chunk_index), terms in matches.items():
            candidate = Candidate(document_id=document_id, chunk_index=chunk_index, terms=terms)
            score = max(float(self._scorer(candidate, context)), 0.0)
            yield RankedCandidate(document_id=document_id, chunk_index=chunk_index, score=score, terms=terms)


def _best_per_document(candidates: Iterable[RankedCandidate]) -> List[RankedCandidate]:
    best: Dict[str, RankedCandidate] = {}
    for candidate in candidates:
        current = best.get(candidate.document_id)
        if current is None or (candidate.score, _Reversed(candidate.location)) > (
            current.score,
            _Reversed(current.location),
        ):
            best[candidate.document_id] = candidate
    return list(best.values())

"""Query matching against the inverted index and, as a fallback, raw chunk text."""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import Dict, Iterable, Mapping, Sequence

import ahocorasick

from docsift.index.inverted import InvertedIndex
from docsift.index.terms import is_term_char, query_terms, tokenize
from docsift.models import Chunk, ChunkKey

Matches = Mapping[ChunkKey, frozenset[str]]


class QueryAutomaton:
    """Aho-Corasick automaton over a fixed set of patterns.

    Built once per query, it finds every pattern in a text in a single pass.
    Only whole-term occurrences count: a hit must not be preceded or followed
    by an alphanumeric character.
    """

    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns = tuple(dict.fromkeys(p for p in patterns if p))
        self._automaton: ahocorasick.Automaton | None = None
        if self._patterns:
            automaton = ahocorasick.Automaton()
            for pattern in self._patterns:
                automaton.add_word(pattern, pattern)
            automaton.make_automaton()
            self._automaton = automaton

    @classmethod
    def for_terms(cls, terms: Sequence[str]) -> "QueryAutomaton":
        return cls(terms)

    @classmethod
    def for_phrases(cls, terms: Sequence[str]) -> "QueryAutomaton":
        """Patterns for every adjacent pair of query terms."""

        return cls(f"{left} {right}" for left, right in zip(terms, terms[1:]))

    @property
    def patterns(self) -> tuple[str, ...]:
        return self._patterns

    def __bool__(self) -> bool:
        return self._automaton is not None

    def scan(self, text: str) -> Counter[str]:
        """Count whole-term occurrences of each pattern in ``text`` (case-insensitive)."""

        found: Counter[str] = Counter()
        if self._automaton is None or not text:
            return found
        haystack = text.lower()
        for end, pattern in self._automaton.iter(haystack):
            start = end - len(pattern) + 1
            if _is_boundary(haystack, start - 1) and _is_boundary(haystack, end + 1):
                found[pattern] += 1
        return found

    def scan_phrases(self, text: str) -> frozenset[str]:
        """Phrase patterns present in ``text`` once it is reduced to its term sequence."""

        return frozenset(self.scan(" ".join(tokenize(text))))


def _is_boundary(haystack: str, position: int) -> bool:
    return position < 0 or position >= len(haystack) or not is_term_char(haystack[position])


class Matcher:
    """Finds, for every chunk touched by a query, the distinct query terms it contains."""

    def match(self, index: InvertedIndex, query: str) -> Dict[ChunkKey, frozenset[str]]:
        return self.match_terms(index, query_terms(query))

    def match_terms(self, index: InvertedIndex, terms: Sequence[str]) -> Dict[ChunkKey, frozenset[str]]:
        found: defaultdict[ChunkKey, set[str]] = defaultdict(set)
        for term in dict.fromkeys(terms):
            for location in index.locations(term):
                found[location].add(term)
        return {location: frozenset(hits) for location, hits in found.items()}

    def scan(self, chunks: Iterable[Chunk], query: str) -> Dict[ChunkKey, frozenset[str]]:
        """Match ``query`` against raw chunk text without an index.

        The engine indexes every chunk before publishing, so it never needs
        this path; it serves callers holding chunks that were never indexed.
        """

        automaton = QueryAutomaton.for_terms(query_terms(query))
        if not automaton:
            return {}
        found: Dict[ChunkKey, frozenset[str]] = {}
        for chunk in chunks:
            hits = automaton.scan(chunk.text)
            if hits:
                found[chunk.key] = frozenset(hits)
        return found

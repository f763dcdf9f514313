"""Inverted index over chunk text."""

from __future__ import annotations

from collections import Counter
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping

from docsift.index.terms import tokenize
from docsift.models import Chunk, ChunkKey, Posting


class InvertedIndex:
    """Immutable term -> postings mapping for one set of chunks.

    Postings are unique per ``(document_id, chunk_index)``; a term is present
    only while at least one posting references it.
    """

    __slots__ = ("_table", "_chunk_count")

    def __init__(self, table: Mapping[str, Mapping[ChunkKey, int]], chunk_count: int) -> None:
        self._table: Dict[str, Dict[ChunkKey, int]] = {
            term: dict(locations) for term, locations in table.items() if locations
        }
        self._chunk_count = chunk_count

    @property
    def chunk_count(self) -> int:
        return self._chunk_count

    def postings(self, term: str) -> frozenset[Posting]:
        locations = self._table.get(term)
        if not locations:
            return frozenset()
        return frozenset(
            Posting(document_id=document_id, chunk_index=chunk_index, frequency=frequency)
            for (document_id, chunk_index), frequency in locations.items()
        )

    def locations(self, term: str) -> Mapping[ChunkKey, int]:
        """Chunk locations of ``term`` mapped to the term's frequency there."""

        return MappingProxyType(self._table.get(term, {}))

    def frequency(self, term: str, location: ChunkKey) -> int:
        return self._table.get(term, {}).get(location, 0)

    def document_frequency(self, term: str) -> int:
        """Number of chunks containing ``term``."""

        return len(self._table.get(term, ()))

    def terms(self) -> frozenset[str]:
        return frozenset(self._table)

    def __contains__(self, term: object) -> bool:
        return term in self._table

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InvertedIndex):
            return NotImplemented
        return self._chunk_count == other._chunk_count and self._table == other._table

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"InvertedIndex(terms={len(self._table)}, chunks={self._chunk_count})"


class Indexer:
    """Builds an InvertedIndex in a single pass over chunk text."""

    def build(self, chunks: Iterable[Chunk]) -> InvertedIndex:
        table: Dict[str, Dict[ChunkKey, int]] = {}
        seen: set[ChunkKey] = set()
        for chunk in chunks:
            seen.add(chunk.key)
            for term, frequency in Counter(tokenize(chunk.text)).items():
                locations = table.setdefault(term, {})
                locations[chunk.key] = locations.get(chunk.key, 0) + frequency
        return InvertedIndex(table, chunk_count=len(seen))


def build_index(chunks: Iterable[Chunk]) -> InvertedIndex:
    """Convenience helper for tests and ad-hoc indexing."""

    return Indexer().build(chunks)

"""Shared domain models used across the docsift pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Tuple

ChunkKey = Tuple[str, int]


class Category(str, Enum):
    """Closed set of corpus categories; each maps to one corpus sub-directory."""

    INVOICES = "invoices"
    CONTRACTS = "contracts"
    SUPPORT = "support"
    KNOWLEDGE = "knowledge"

    @property
    def directory(self) -> str:
        return _DIRECTORIES[self]

    @classmethod
    def parse(cls, value: "Category | str | None") -> "Category":
        """Resolve a category from its value, member name or directory name.

        ``None`` and blank strings resolve to ``INVOICES``.
        """

        if isinstance(value, Category):
            return value
        key = (value or "").strip().lower()
        if not key:
            return cls.INVOICES
        for member in cls:
            if key in (member.value, member.name.lower(), member.directory):
                return member
        raise ValueError(f"Unknown category: {value!r}")


_DIRECTORIES: Mapping[Category, str] = {
    Category.INVOICES: "invoices",
    Category.CONTRACTS: "employment-contracts",
    Category.SUPPORT: "customer-support",
    Category.KNOWLEDGE: "knowledge-base",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Document:
    """A corpus file, read once and cached for the lifetime of a corpus snapshot."""

    document_id: str
    category: Category
    source_path: str
    text: str
    content_hash: str
    loaded_at: datetime = field(default_factory=_utcnow)

    @property
    def size(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class Chunk:
    """Contiguous slice ``text[start:end]`` of a document."""

    document_id: str
    index: int
    start: int
    end: int
    text: str

    @property
    def key(self) -> ChunkKey:
        return (self.document_id, self.index)


@dataclass(frozen=True)
class Posting:
    """Occurrence record of a term inside one chunk."""

    document_id: str
    chunk_index: int
    frequency: int

    @property
    def location(self) -> ChunkKey:
        return (self.document_id, self.chunk_index)


@dataclass(frozen=True)
class RetrievedChunk:
    """Chunk returned by retrieval with its query-scoped score."""

    chunk: Chunk
    category: Category
    score: float
    matched_terms: frozenset[str] = frozenset()

    @property
    def document_id(self) -> str:
        return self.chunk.document_id

    @property
    def text(self) -> str:
        return self.chunk.text

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.chunk.document_id,
            "category": self.category.value,
            "chunk_index": self.chunk.index,
            "chunk_text": self.chunk.text,
            "score": self.score,
            "matched_terms": sorted(self.matched_terms),
        }


@dataclass(frozen=True)
class Answer:
    """Answer text produced by the caller's generator, with the chunks it was grounded on."""

    text: str
    citations: tuple[RetrievedChunk, ...]
    query_id: str
    corpus_version: int
    latency_ms: float

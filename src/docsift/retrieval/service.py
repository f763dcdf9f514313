"""Retrieval orchestration: corpus snapshots, query matching, ranking and memoization."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Sequence

from docsift.cache.response import CacheKey, ResponseCache
from docsift.config import Settings, get_settings
from docsift.corpus.chunking import Chunker, ChunkingConfig
from docsift.corpus.store import ContentStore, CorpusLoadError
from docsift.index.inverted import Indexer, InvertedIndex
from docsift.index.terms import query_terms
from docsift.metrics.observability import PipelineMetrics, TimedSection, get_logger
from docsift.models import Category, Chunk, ChunkKey, RetrievedChunk
from docsift.retrieval.matcher import Matcher
from docsift.retrieval.ranking import Ranker, ScoringContext, get_scoring_function


class IndexNotReady(RuntimeError):
    """Raised when a query arrives before the first successful corpus load."""

    retryable = True


@dataclass(frozen=True)
class RetrievalConfig:
    """Configuration for retrieval."""

    default_top_k: int = 5
    max_top_k: int | None = 50
    scoring: str = "distinct"
    phrase_boost_weight: float = 0.0
    distinct_documents: bool = False


@dataclass(frozen=True)
class CorpusSnapshot:
    """Everything one corpus load produced. Never mutated after publication."""

    version: int
    root: Path
    store: ContentStore
    chunks: Mapping[Category, Mapping[ChunkKey, Chunk]]
    indexes: Mapping[Category, InvertedIndex]
    loaded_at: datetime

    @property
    def document_count(self) -> int:
        return self.store.count()

    @property
    def chunk_count(self) -> int:
        return sum(len(chunks) for chunks in self.chunks.values())


@dataclass(frozen=True)
class CorpusHandle:
    """Caller-facing token for one published corpus version."""

    version: int
    root: Path
    loaded_at: datetime
    document_count: int
    chunk_count: int
    snapshot: CorpusSnapshot = field(repr=False, compare=False)


class RetrievalEngine:
    """Keyword retrieval over an immutable, atomically swapped corpus snapshot.

    Readers never lock: they read the published snapshot reference once and
    work on it. ``load_corpus`` builds a complete replacement off to the side
    and publishes it with a single reference swap, so a failed reload leaves
    the previous snapshot serving queries.
    """

    def __init__(
        self,
        config: RetrievalConfig | None = None,
        *,
        chunker: Chunker | None = None,
        indexer: Indexer | None = None,
        matcher: Matcher | None = None,
        ranker: Ranker | None = None,
        cache: ResponseCache | None = None,
        store_factory: Callable[[], ContentStore] | None = None,
    ) -> None:
        self._config = config or RetrievalConfig()
        self._chunker = chunker or Chunker()
        self._indexer = indexer or Indexer()
        self._matcher = matcher or Matcher()
        self._ranker = ranker or Ranker(
            get_scoring_function(self._config.scoring, phrase_boost_weight=self._config.phrase_boost_weight)
        )
        self._cache = cache if cache is not None else ResponseCache()
        self._store_factory = store_factory or ContentStore
        self._reload_lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._snapshot: CorpusSnapshot | None = None
        self._handle: CorpusHandle | None = None
        self._version = 0
        self._logger = get_logger("retrieval")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetrievalEngine":
        settings = settings or get_settings()
        extensions = settings.file_extensions_tuple
        return cls(
            RetrievalConfig(
                default_top_k=settings.default_top_k,
                max_top_k=settings.max_top_k,
                scoring=settings.scoring,
                phrase_boost_weight=settings.phrase_boost_weight,
                distinct_documents=settings.distinct_documents,
            ),
            chunker=Chunker(
                ChunkingConfig(
                    max_tokens=settings.chunk_max_tokens,
                    overlap_tokens=settings.chunk_overlap_tokens,
                )
            ),
            cache=ResponseCache(max_entries=settings.cache_max_entries),
            store_factory=lambda: ContentStore(extensions=extensions, encoding=settings.encoding),
        )

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None

    def current_handle(self) -> CorpusHandle:
        handle = self._handle
        if handle is None:
            raise IndexNotReady("No corpus has been loaded yet")
        return handle

    def load_corpus(self, root: Path | str) -> CorpusHandle:
        """Load, chunk and index every category under ``root`` and publish the result."""

        root = Path(root)
        with self._reload_lock:
            if not root.is_dir():
                self._logger.error("corpus.load.failed", root=str(root), detail="not a directory")
                raise CorpusLoadError(f"Corpus root is not a directory: {root}")

            version = self._version + 1
            with TimedSection() as timer:
                try:
                    snapshot = self._build_snapshot(root, version)
                except CorpusLoadError:
                    raise
                except OSError as exc:
                    self._logger.error("corpus.load.failed", root=str(root), detail=str(exc))
                    raise CorpusLoadError(f"Failed to load corpus from {root}: {exc}") from exc

            handle = CorpusHandle(
                version=version,
                root=root,
                loaded_at=snapshot.loaded_at,
                document_count=snapshot.document_count,
                chunk_count=snapshot.chunk_count,
                snapshot=snapshot,
            )
            with self._publish_lock:
                self._snapshot = snapshot
                self._handle = handle
                self._version = version
            purged = self._cache.invalidate(version)

        PipelineMetrics.observe_corpus_load(
            timer.duration,
            handle.chunk_count,
            ((category.value, len(snapshot.store.documents(category))) for category in Category),
        )
        self._logger.info(
            "corpus.load.complete",
            root=str(root),
            version=version,
            document_count=handle.document_count,
            chunk_count=handle.chunk_count,
            cache_purged=purged,
            duration_seconds=timer.duration,
        )
        return handle

    def retrieve(
        self,
        query: str,
        category: Category | str | None = None,
        k: int | None = None,
        *,
        handle: CorpusHandle | None = None,
    ) -> List[RetrievedChunk]:
        """Return up to ``k`` chunks of ``category`` ranked by relevance to ``query``.

        An empty list is the valid "no match" outcome. Raises ``IndexNotReady``
        when no corpus is published and no handle is given.
        """

        snapshot = handle.snapshot if handle is not None else self._snapshot
        if snapshot is None:
            raise IndexNotReady("No corpus has been loaded yet")
        category = Category.parse(category)
        limit = self.resolve_top_k(k)
        terms = query_terms(query)
        if not terms or limit == 0:
            self._logger.info("retrieval.empty", category=category.value, version=snapshot.version, top_k=limit)
            return []

        key = CacheKey(query=" ".join(terms), category=category.value, version=snapshot.version, k=limit)
        results = self._cache.get_or_compute(key, lambda: self._search(snapshot, category, terms, limit))
        return list(results)

    def resolve_top_k(self, k: int | None) -> int:
        limit = self._config.default_top_k if k is None else k
        if limit < 0:
            raise ValueError("k must not be negative")
        if self._config.max_top_k:
            limit = min(limit, self._config.max_top_k)
        return limit

    def _search(
        self,
        snapshot: CorpusSnapshot,
        category: Category,
        terms: Sequence[str],
        limit: int,
    ) -> tuple[RetrievedChunk, ...]:
        with TimedSection() as timer:
            index = snapshot.indexes[category]
            chunks = snapshot.chunks[category]
            matches = self._matcher.match_terms(index, terms)
            context = ScoringContext(index=index, query_terms=tuple(terms), chunks=chunks)
            ranked = self._ranker.rank(
                matches,
                limit,
                context=context,
                distinct_documents=self._config.distinct_documents,
            )
            results = tuple(
                RetrievedChunk(
                    chunk=chunks[candidate.location],
                    category=category,
                    score=candidate.score,
                    matched_terms=candidate.terms,
                )
                for candidate in ranked
            )
        PipelineMetrics.observe_retrieval(timer.duration, len(results))
        self._logger.info(
            "retrieval.complete",
            category=category.value,
            version=snapshot.version,
            term_count=len(terms),
            candidate_count=len(matches),
            chunk_count=len(results),
            duration_seconds=timer.duration,
            top_k=limit,
        )
        return results

    def _build_snapshot(self, root: Path, version: int) -> CorpusSnapshot:
        store = self._store_factory()
        chunks: Dict[Category, Mapping[ChunkKey, Chunk]] = {}
        indexes: Dict[Category, InvertedIndex] = {}
        for category in Category:
            documents = store.load(root, category)
            category_chunks = {chunk.key: chunk for chunk in self._chunker.chunk_all(documents)}
            chunks[category] = MappingProxyType(category_chunks)
            indexes[category] = self._indexer.build(category_chunks.values())
        return CorpusSnapshot(
            version=version,
            root=root,
            store=store,
            chunks=MappingProxyType(chunks),
            indexes=MappingProxyType(indexes),
            loaded_at=datetime.now(timezone.utc),
        )


@lru_cache(maxsize=1)
def get_engine() -> RetrievalEngine:
    """Process-wide engine configured from ``get_settings()``."""

    return RetrievalEngine.from_settings(get_settings())


def load_corpus(root: Path | str | None = None) -> CorpusHandle:
    return get_engine().load_corpus(root if root is not None else get_settings().corpus_root)


def retrieve(
    handle: CorpusHandle | None,
    query: str,
    category: Category | str | None = None,
    k: int | None = None,
) -> List[RetrievedChunk]:
    return get_engine().retrieve(query, category, k, handle=handle)

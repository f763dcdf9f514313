"""Observability helpers for docsift."""

from __future__ import annotations

import logging
import time
from typing import Iterable

import structlog
from prometheus_client import Counter, Gauge, Histogram

_logger_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def get_logger(name: str = "docsift") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    corpus_load_latency = Histogram(
        "docsift_corpus_load_duration_seconds",
        "Time spent loading, chunking and indexing the corpus.",
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
    )
    corpus_chunks = Histogram(
        "docsift_corpus_chunk_count",
        "Chunks produced per corpus load.",
        buckets=(0, 10, 50, 100, 500, 1000, 5000),
    )
    corpus_documents = Gauge(
        "docsift_corpus_document_count",
        "Documents in the published corpus, per category.",
        ["category"],
    )
    corpus_skipped = Counter(
        "docsift_corpus_skipped_documents_total",
        "Documents skipped because they could not be read.",
    )
    retrieval_latency = Histogram(
        "docsift_retrieval_duration_seconds",
        "Time spent matching and ranking chunks.",
        buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
    )
    retrieved_chunk_count = Histogram(
        "docsift_retrieved_chunk_count",
        "Number of chunks returned by retrieval.",
        buckets=(0, 1, 2, 3, 5, 8, 13),
    )
    cache_requests = Counter(
        "docsift_response_cache_requests_total",
        "Response cache lookups by outcome.",
        ["outcome"],
    )
    generation_latency = Histogram(
        "docsift_generation_duration_seconds",
        "Time spent in the caller-supplied generation backend.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 30.0),
    )

    @classmethod
    def observe_corpus_load(cls, duration_seconds: float, chunk_count: int, documents: Iterable[tuple[str, int]]) -> None:
        cls.corpus_load_latency.observe(duration_seconds)
        cls.corpus_chunks.observe(chunk_count)
        for category, count in documents:
            cls.corpus_documents.labels(category=category).set(count)

    @classmethod
    def observe_skipped_document(cls) -> None:
        cls.corpus_skipped.inc()

    @classmethod
    def observe_retrieval(cls, duration_seconds: float, chunk_count: int) -> None:
        cls.retrieval_latency.observe(duration_seconds)
        cls.retrieved_chunk_count.observe(chunk_count)

    @classmethod
    def observe_cache(cls, outcome: str) -> None:
        cls.cache_requests.labels(outcome=outcome).inc()

    @classmethod
    def observe_generation(cls, duration_seconds: float) -> None:
        cls.generation_latency.observe(duration_seconds)


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback=None) -> None:
        self._callback = callback
        self._start = 0.0
        self.duration = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self.duration = time.perf_counter() - self._start
        if self._callback is not None:
            self._callback(self.duration)


__all__ = [
    "PipelineMetrics",
    "TimedSection",
    "configure_logging",
    "get_logger",
]

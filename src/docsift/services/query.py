"""Query orchestration: retrieval, prompt context and memoized generation."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Sequence
from uuid import NAMESPACE_URL, uuid5

from docsift.cache.response import CacheKey
from docsift.config import Settings, get_settings
from docsift.metrics.observability import PipelineMetrics, get_logger
from docsift.models import Answer, Category, RetrievedChunk
from docsift.retrieval.service import CorpusHandle, RetrievalEngine
from docsift.services.generation import (
    NO_CONTEXT_ANSWER,
    GenerationBackend,
    GenerationConfig,
    GenerationTimeout,
    TemplateGenerator,
)


@dataclass(frozen=True)
class PromptBuilderConfig:
    """Configuration for prompt construction."""

    citation_prefix: str = "["
    citation_suffix: str = "]"
    max_chars: int | None = None


class PromptBuilder:
    """Builds the context block handed to the generation backend."""

    def __init__(self, config: PromptBuilderConfig | None = None) -> None:
        self._config = config or PromptBuilderConfig()

    def build_context(self, citations: Sequence[RetrievedChunk]) -> str:
        if not citations:
            return ""
        blocks = []
        used = 0
        for index, citation in enumerate(citations, start=1):
            prefix = f"{self._config.citation_prefix}{index}{self._config.citation_suffix}"
            block = f"{prefix} --- {citation.document_id} ---\n{citation.text.strip()}"
            if self._config.max_chars is not None and blocks and used + len(block) > self._config.max_chars:
                break
            blocks.append(block)
            used += len(block) + 2
        return "\n\n".join(blocks)


class QueryService:
    """Retrieves context for a question and memoizes the generated answer.

    The answer is cached under the question as asked (case and spacing aside)
    and the corpus version it was grounded on, so a reload never serves an
    answer built from the previous corpus. Retrieval results are shared more
    widely, by normalised query terms.
    """

    def __init__(
        self,
        engine: RetrievalEngine,
        generator: GenerationBackend | None = None,
        prompt_builder: PromptBuilder | None = None,
        config: GenerationConfig | None = None,
    ) -> None:
        self._engine = engine
        self._generator = generator or TemplateGenerator()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._config = config or GenerationConfig()
        self._executor_lock = threading.Lock()
        self._executor = self._new_executor()
        self._stalled: set[Future] = set()
        self._logger = get_logger("query")

    @classmethod
    def from_settings(
        cls,
        engine: RetrievalEngine,
        generator: GenerationBackend | None = None,
        settings: Settings | None = None,
    ) -> "QueryService":
        settings = settings or get_settings()
        return cls(engine, generator, config=GenerationConfig(timeout_seconds=settings.generation_timeout_seconds))

    def answer(
        self,
        question: str,
        category: Category | str | None = None,
        *,
        top_k: int | None = None,
        handle: CorpusHandle | None = None,
    ) -> Answer:
        start = time.perf_counter()
        handle = handle or self._engine.current_handle()
        category = Category.parse(category)
        citations = tuple(self._engine.retrieve(question, category, top_k, handle=handle))
        query_id = uuid5(NAMESPACE_URL, question).hex

        if citations:
            key = CacheKey(
                query=_question_key(question),
                category=category.value,
                version=handle.version,
                k=self._engine.resolve_top_k(top_k),
                namespace="answer",
            )
            text = self._engine.cache.get_or_compute(key, lambda: self._generate(question, citations))
        else:
            text = NO_CONTEXT_ANSWER
        latency_ms = (time.perf_counter() - start) * 1000
        self._logger.info(
            "query.complete",
            query_id=query_id,
            category=category.value,
            version=handle.version,
            citation_count=len(citations),
            latency_ms=latency_ms,
        )
        return Answer(
            text=text,
            citations=citations,
            query_id=query_id,
            corpus_version=handle.version,
            latency_ms=latency_ms,
        )

    def close(self) -> None:
        with self._executor_lock:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "QueryService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self._config.max_workers,
            thread_name_prefix="docsift-generate",
        )

    def _generate(self, question: str, citations: Sequence[RetrievedChunk]) -> str:
        context = self._prompt_builder.build_context(citations)
        generation_start = time.perf_counter()
        with self._executor_lock:
            future = self._executor.submit(
                self._generator.generate,
                question=question,
                context=context,
                citations=citations,
            )
        try:
            text = future.result(timeout=self._config.timeout_seconds)
        except FutureTimeout as exc:
            if not future.cancel():
                self._mark_stalled(future)
            self._logger.error("generation.timeout", timeout_seconds=self._config.timeout_seconds)
            raise GenerationTimeout(
                f"Generation exceeded {self._config.timeout_seconds:.1f}s"
            ) from exc
        generation_duration = time.perf_counter() - generation_start
        PipelineMetrics.observe_generation(generation_duration)
        self._logger.info(
            "generation.complete",
            duration_seconds=generation_duration,
            citation_count=len(citations),
        )
        return text

    def _mark_stalled(self, future: Future) -> None:
        """Track a timed-out generation that is still running.

        Once every worker is held by such a generation the pool is replaced, so
        later questions are not queued behind backends that never return.
        """

        with self._executor_lock:
            self._stalled.add(future)
            if len(self._stalled) < self._config.max_workers:
                stalled = None
            else:
                stalled = self._executor
                self._executor = self._new_executor()
                self._stalled = set()
        future.add_done_callback(self._release_stalled)
        if stalled is not None:
            self._logger.warning("generation.pool_saturated", max_workers=self._config.max_workers)
            stalled.shutdown(wait=False, cancel_futures=True)

    def _release_stalled(self, future: Future) -> None:
        with self._executor_lock:
            self._stalled.discard(future)


def _question_key(question: str) -> str:
    """Case and whitespace insensitive form of the literal question."""

    return " ".join(question.casefold().split())

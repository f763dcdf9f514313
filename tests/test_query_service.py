from __future__ import annotations

import threading
from pathlib import Path

import pytest

from docsift.retrieval.service import IndexNotReady, RetrievalEngine
from docsift.services.generation import NO_CONTEXT_ANSWER, GenerationConfig, GenerationTimeout, TemplateGenerator
from docsift.services.query import PromptBuilder, PromptBuilderConfig, QueryService


class CountingGenerator:
    def __init__(self) -> None:
        self.calls = 0
        self.contexts: list[str] = []

    def generate(self, *, question, context, citations) -> str:
        self.calls += 1
        self.contexts.append(context)
        return f"answer to {question} from {len(citations)} chunks"


class BlockingGenerator:
    def __init__(self) -> None:
        self.release = threading.Event()

    def generate(self, *, question, context, citations) -> str:
        self.release.wait(timeout=5)
        return "late"


def test_answer_is_memoized_per_corpus_version(corpus_root: Path):
    engine = RetrievalEngine()
    engine.load_corpus(corpus_root)
    generator = CountingGenerator()

    with QueryService(engine, generator) as service:
        first = service.answer("What is the total due for Acme?", "invoices")
        second = service.answer("  what is the TOTAL due for acme? ", "invoices")
        assert generator.calls == 1
        assert first.text == second.text
        assert first.citations[0].document_id == "invoice_1.txt"
        assert "--- invoice_1.txt ---" in generator.contexts[0]

        engine.load_corpus(corpus_root)
        third = service.answer("What is the total due for Acme?", "invoices")
        assert generator.calls == 2
        assert third.corpus_version == first.corpus_version + 1


def test_no_context_answer_skips_generation(corpus_root: Path):
    engine = RetrievalEngine()
    engine.load_corpus(corpus_root)
    generator = CountingGenerator()

    with QueryService(engine, generator) as service:
        answer = service.answer("quantum entanglement", "knowledge")

    assert answer.text == NO_CONTEXT_ANSWER
    assert answer.citations == ()
    assert generator.calls == 0


def test_generation_timeout_is_raised_and_not_cached(corpus_root: Path):
    engine = RetrievalEngine()
    engine.load_corpus(corpus_root)
    generator = BlockingGenerator()
    service = QueryService(engine, generator, config=GenerationConfig(timeout_seconds=0.05))

    try:
        with pytest.raises(GenerationTimeout):
            service.answer("total due", "invoices")
        assert len(engine.cache) == 1
    finally:
        generator.release.set()
        service.close()


def test_answer_before_load_raises():
    with QueryService(RetrievalEngine()) as service:
        with pytest.raises(IndexNotReady):
            service.answer("anything")


def test_template_generator_lists_sources(corpus_root: Path):
    engine = RetrievalEngine()
    engine.load_corpus(corpus_root)
    with QueryService(engine, TemplateGenerator()) as service:
        answer = service.answer("notice period", "contracts")
    assert "[1] contract_alice.txt (chunk 0)" in answer.text


def test_prompt_builder_respects_max_chars(corpus_root: Path):
    engine = RetrievalEngine()
    engine.load_corpus(corpus_root)
    citations = engine.retrieve("invoice total", "invoices")
    builder = PromptBuilder(PromptBuilderConfig(max_chars=80))

    context = builder.build_context(citations)

    assert context.startswith("[1] --- ")
    assert "[2]" not in context
    assert PromptBuilder().build_context([]) == ""


def test_questions_with_different_wording_are_answered_separately(corpus_root: Path):
    engine = RetrievalEngine()
    engine.load_corpus(corpus_root)
    generator = CountingGenerator()

    with QueryService(engine, generator) as service:
        when = service.answer("When is the total due for Acme?", "invoices")
        why = service.answer("Why is the total due for Acme?", "invoices")

    assert generator.calls == 2
    assert when.text == "answer to When is the total due for Acme? from 2 chunks"
    assert why.text == "answer to Why is the total due for Acme? from 2 chunks"
    assert when.citations == why.citations
    assert engine.cache.hits == 1


def test_hung_generations_do_not_block_later_questions(corpus_root: Path):
    class HangOnceGenerator:
        def __init__(self) -> None:
            self.release = threading.Event()
            self.calls = 0

        def generate(self, *, question, context, citations) -> str:
            self.calls += 1
            if self.calls == 1:
                self.release.wait(timeout=5)
            return f"answer to {question}"

    engine = RetrievalEngine()
    engine.load_corpus(corpus_root)
    generator = HangOnceGenerator()
    service = QueryService(engine, generator, config=GenerationConfig(timeout_seconds=0.2, max_workers=1))

    try:
        with pytest.raises(GenerationTimeout):
            service.answer("total due", "invoices")
        answer = service.answer("notice period", "contracts")
        assert answer.text == "answer to notice period"
    finally:
        generator.release.set()
        service.close()

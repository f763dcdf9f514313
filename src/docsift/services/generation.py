"""Generation backends consumed by the query service.

The language-model call itself belongs to the caller; docsift only defines
the seam and ships a deterministic backend for tests and offline use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from docsift.models import RetrievedChunk

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    timeout_seconds: float = 60.0
    max_workers: int = 4


class GenerationBackend(Protocol):
    """Protocol describing generation behaviour."""

    def generate(self, *, question: str, context: str, citations: Sequence[RetrievedChunk]) -> str:
        """Return a grounded answer for the supplied question and context."""


class GenerationTimeout(TimeoutError):
    """Raised when a generation backend exceeds its time budget."""


NO_CONTEXT_ANSWER = "I do not have enough relevant context to answer that question."


class TemplateGenerator:
    """Simple deterministic generator used for tests and offline environments."""

    def generate(self, *, question: str, context: str, citations: Sequence[RetrievedChunk]) -> str:
        if not citations:
            return NO_CONTEXT_ANSWER
        summary = citations[0].text.strip()
        sources = "\n".join(
            f"[{index + 1}] {c.document_id} (chunk {c.chunk.index})" for index, c in enumerate(citations)
        )
        LOGGER.debug("Template answer built from %d citations", len(citations))
        return (
            f"Summary: {summary}\n\n"
            f"Answer: Based on the provided documents, here is the best match for your question '{question}'.\n"
            f"Sources:\n{sources}"
        )

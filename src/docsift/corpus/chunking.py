"""Paragraph-first chunking with overlapping, sentence-aware token windows."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Sequence, Tuple

from docsift.models import Chunk, Document

_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
_TOKEN = re.compile(r"\S+")
_SENTENCE_END = re.compile(r"[.!?][\"')\]]*$")

Span = Tuple[int, int]


@dataclass(frozen=True)
class ChunkingConfig:
    """Window sizes are counted in whitespace-delimited tokens."""

    max_tokens: int = 500
    overlap_tokens: int = 50


class Chunker:
    """Split documents into chunks whose spans tile the whole text.

    Paragraphs (separated by a blank line) become one chunk each. A paragraph
    longer than ``max_tokens`` is cut into windows sharing ``overlap_tokens``
    tokens, so a match that straddles a window boundary is still fully inside
    one of the windows.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self._config = config or ChunkingConfig()
        if self._config.max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")
        if self._config.overlap_tokens < 0:
            raise ValueError("overlap_tokens must not be negative")
        if self._config.overlap_tokens >= self._config.max_tokens:
            raise ValueError("overlap_tokens must be smaller than max_tokens")

    @property
    def config(self) -> ChunkingConfig:
        return self._config

    def chunk(self, document: Document) -> List[Chunk]:
        text = document.text
        if not text:
            return []
        spans: List[Span] = []
        for start, end in _paragraph_spans(text):
            spans.extend(self._windows(text, start, end))
        return [
            Chunk(document_id=document.document_id, index=index, start=start, end=end, text=text[start:end])
            for index, (start, end) in enumerate(spans)
        ]

    def chunk_all(self, documents: Iterable[Document]) -> List[Chunk]:
        chunks: List[Chunk] = []
        for document in sorted(documents, key=lambda doc: doc.document_id):
            chunks.extend(self.chunk(document))
        return chunks

    def _windows(self, text: str, start: int, end: int) -> Iterator[Span]:
        tokens = [(m.start(), m.end()) for m in _TOKEN.finditer(text, start, end)]
        max_tokens = self._config.max_tokens
        if len(tokens) <= max_tokens:
            yield start, end
            return

        first = 0
        window_start = start
        while True:
            if first + max_tokens >= len(tokens):
                yield window_start, end
                return
            cut = self._sentence_cut(text, tokens, first, first + max_tokens)
            yield window_start, tokens[cut][0]
            first = max(cut - self._config.overlap_tokens, first + 1)
            window_start = tokens[first][0]

    @staticmethod
    def _sentence_cut(text: str, tokens: Sequence[Span], first: int, last: int) -> int:
        """Exclusive token index to end the window at; prefers a sentence end in the second half."""

        floor = first + (last - first) // 2
        for position in range(last - 1, floor - 1, -1):
            token_start, token_end = tokens[position]
            if _SENTENCE_END.search(text, token_start, token_end):
                return position + 1
        return last


def _paragraph_spans(text: str) -> Iterator[Span]:
    start = 0
    for match in _PARAGRAPH_BREAK.finditer(text):
        if not text[start : match.start()].strip():
            continue
        yield start, match.end()
        start = match.end()
    if start < len(text):
        yield start, len(text)


def reassemble(chunks: Iterable[Chunk]) -> str:
    """Concatenate chunks in order, dropping the text shared by overlapping windows."""

    parts: List[str] = []
    position = 0
    for chunk in sorted(chunks, key=lambda c: (c.start, c.end)):
        if chunk.end <= position:
            continue
        parts.append(chunk.text[max(position - chunk.start, 0) :])
        position = chunk.end
    return "".join(parts)

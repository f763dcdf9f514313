"""Corpus loading and chunking."""

from .chunking import Chunker, ChunkingConfig, reassemble
from .store import ContentStore, CorpusLoadError, DocumentLoadError

__all__ = [
    "Chunker",
    "ChunkingConfig",
    "ContentStore",
    "CorpusLoadError",
    "DocumentLoadError",
    "reassemble",
]

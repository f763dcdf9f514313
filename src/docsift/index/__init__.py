"""Term extraction and inverted indexing."""

from .inverted import Indexer, InvertedIndex, build_index
from .terms import STOP_WORDS, normalize_query, query_terms, tokenize

__all__ = [
    "Indexer",
    "InvertedIndex",
    "STOP_WORDS",
    "build_index",
    "normalize_query",
    "query_terms",
    "tokenize",
]

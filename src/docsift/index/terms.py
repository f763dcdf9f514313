"""Term extraction shared by indexing and query matching."""

from __future__ import annotations

import re
from typing import List

_TERM = re.compile(r"[^\W_]+")

STOP_WORDS = frozenset(
    {
        "a", "about", "all", "an", "and", "any", "are", "as", "at", "be", "been", "but", "by",
        "can", "could", "did", "do", "does", "for", "from", "had", "has", "have", "he", "her",
        "here", "his", "how", "i", "if", "in", "into", "is", "it", "its", "me", "my", "of", "on",
        "or", "our", "please", "she", "should", "so", "that", "the", "their", "them", "there",
        "these", "they", "this", "those", "to", "us", "was", "we", "were", "what", "when", "where",
        "which", "who", "whom", "why", "will", "with", "would", "you", "your",
    }
)


def tokenize(text: str | None) -> List[str]:
    """Lower-case ``text`` and split it on non-alphanumeric boundaries, dropping stop words."""

    if not text:
        return []
    return [term for term in _TERM.findall(text.lower()) if term not in STOP_WORDS]


def query_terms(query: str | None) -> tuple[str, ...]:
    """Distinct terms of ``query`` in first-seen order."""

    return tuple(dict.fromkeys(tokenize(query)))


def normalize_query(query: str | None) -> str:
    return " ".join(query_terms(query))


def is_term_char(char: str) -> bool:
    return _TERM.match(char) is not None

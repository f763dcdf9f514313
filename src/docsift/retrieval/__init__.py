"""Retrieval components."""

from .matcher import Matcher, QueryAutomaton
from .ranking import (
    Candidate,
    PhraseBoost,
    RankedCandidate,
    Ranker,
    ScoringContext,
    distinct_terms,
    get_scoring_function,
    inverse_document_frequency,
    term_frequency,
)
from .service import (
    CorpusHandle,
    IndexNotReady,
    RetrievalConfig,
    RetrievalEngine,
    get_engine,
    load_corpus,
    retrieve,
)

__all__ = [
    "Candidate",
    "CorpusHandle",
    "IndexNotReady",
    "Matcher",
    "PhraseBoost",
    "QueryAutomaton",
    "RankedCandidate",
    "Ranker",
    "RetrievalConfig",
    "RetrievalEngine",
    "ScoringContext",
    "distinct_terms",
    "get_engine",
    "get_scoring_function",
    "inverse_document_frequency",
    "load_corpus",
    "retrieve",
    "term_frequency",
]

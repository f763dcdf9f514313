"""Runtime configuration for the docsift engine."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_EXTENSIONS: tuple[str, ...] = (".txt", ".md")


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="docsift_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"
    corpus_root: Path = Path("./data")

    # Corpus loading
    file_extensions: tuple[str, ...] | str = _DEFAULT_EXTENSIONS
    encoding: str = "utf-8"

    # Chunking (whitespace tokens)
    chunk_max_tokens: int = 500
    chunk_overlap_tokens: int = 50

    # Ranking
    default_top_k: int = 5
    max_top_k: int = 50
    scoring: Literal["distinct", "frequency", "idf"] = "distinct"
    phrase_boost_weight: float = 0.0
    distinct_documents: bool = False

    # Response cache; 0 disables the LRU bound
    cache_max_entries: int = 1024

    # Downstream generation budget, enforced by QueryService
    generation_timeout_seconds: float = 60.0

    evaluation_min_recall: float = 0.5
    evaluation_min_mrr: float = 0.5

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def file_extensions_tuple(self) -> tuple[str, ...]:
        value = self.file_extensions
        if isinstance(value, str):
            value = tuple(p.strip() for p in value.split(",") if p.strip())
        normalized = tuple(ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in value)
        return normalized or _DEFAULT_EXTENSIONS


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()

"""Memoization of retrieval results and answers, scoped to a corpus version."""

from __future__ import annotations

import threading
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, Generic, TypeVar

from docsift.metrics.observability import PipelineMetrics, get_logger

T = TypeVar("T")


@dataclass(frozen=True)
class CacheKey:
    """Identity of one memoized computation."""

    query: str
    category: str
    version: int
    k: int = 0
    namespace: str = "retrieval"


class ResponseCache(Generic[T]):
    """Thread-safe cache with a singleflight guarantee.

    Concurrent misses on the same key share one computation: the first caller
    computes, later callers block on its future. Failed computations are
    re-raised to every waiter and never stored. Entries whose corpus version is
    older than the last ``invalidate`` call are purged and never stored again.
    """

    _logger = get_logger("cache")

    def __init__(self, max_entries: int = 1024) -> None:
        if max_entries < 0:
            raise ValueError("max_entries must not be negative")
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: OrderedDict[CacheKey, T] = OrderedDict()
        self._inflight: Dict[CacheKey, Future] = {}
        self._min_version = 0
        self.hits = 0
        self.misses = 0
        self.joins = 0

    def get_or_compute(self, key: CacheKey, compute: Callable[[], T]) -> T:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self.hits += 1
                value = self._entries[key]
                outcome = "hit"
            else:
                future = self._inflight.get(key)
                if future is None:
                    future = Future()
                    self._inflight[key] = future
                    self.misses += 1
                    outcome = "miss"
                else:
                    self.joins += 1
                    outcome = "join"
        PipelineMetrics.observe_cache(outcome)

        if outcome == "hit":
            self._logger.debug("cache.hit", namespace=key.namespace, version=key.version)
            return value
        if outcome == "join":
            self._logger.debug("cache.join", namespace=key.namespace, version=key.version)
            return future.result()

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(exc)
            raise
        with self._lock:
            self._inflight.pop(key, None)
            if key.version >= self._min_version:
                self._store(key, value)
        future.set_result(value)
        return value

    def invalidate(self, version: int) -> int:
        """Drop every entry older than ``version``; returns the number purged."""

        with self._lock:
            self._min_version = max(self._min_version, version)
            stale = [key for key in self._entries if key.version < self._min_version]
            for key in stale:
                del self._entries[key]
        if stale:
            self._logger.info("cache.invalidated", version=version, purged=len(stale))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _store(self, key: CacheKey, value: T) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        if self._max_entries:
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

"""Tests for the singleflight response cache."""

from __future__ import annotations

import threading
import time

import pytest

from docsift.cache.response import CacheKey, ResponseCache


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.005)


def test_hit_after_miss():
    cache: ResponseCache[str] = ResponseCache()
    key = CacheKey(query="total due", category="invoices", version=1, k=5)
    calls = []

    def compute() -> str:
        calls.append(1)
        return "value"

    assert cache.get_or_compute(key, compute) == "value"
    assert cache.get_or_compute(key, compute) == "value"
    assert len(calls) == 1
    assert (cache.misses, cache.hits) == (1, 1)
    assert key in cache


def test_keys_differ_by_k_and_namespace():
    cache: ResponseCache[str] = ResponseCache()
    base = CacheKey(query="q", category="invoices", version=1, k=1)
    cache.get_or_compute(base, lambda: "one")
    assert cache.get_or_compute(CacheKey("q", "invoices", 1, k=2), lambda: "two") == "two"
    assert cache.get_or_compute(CacheKey("q", "invoices", 1, k=1, namespace="answer"), lambda: "answer") == "answer"
    assert len(cache) == 3


def test_concurrent_misses_compute_once():
    cache: ResponseCache[int] = ResponseCache()
    key = CacheKey(query="q", category="invoices", version=1)
    release = threading.Event()
    calls = []

    def compute() -> int:
        calls.append(1)
        release.wait(timeout=5)
        return 42

    results: list[int] = []
    threads = [threading.Thread(target=lambda: results.append(cache.get_or_compute(key, compute))) for _ in range(8)]
    for thread in threads:
        thread.start()
    _wait_for(lambda: cache.joins == 7)
    release.set()
    for thread in threads:
        thread.join(timeout=5)

    assert results == [42] * 8
    assert len(calls) == 1


def test_failed_computation_is_shared_and_not_cached():
    cache: ResponseCache[int] = ResponseCache()
    key = CacheKey(query="q", category="invoices", version=1)
    release = threading.Event()

    def explode() -> int:
        release.wait(timeout=5)
        raise RuntimeError("boom")

    errors: list[BaseException] = []

    def worker() -> None:
        try:
            cache.get_or_compute(key, explode)
        except RuntimeError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(3)]
    for thread in threads:
        thread.start()
    _wait_for(lambda: cache.joins == 2)
    release.set()
    for thread in threads:
        thread.join(timeout=5)

    assert len(errors) == 3
    assert key not in cache
    assert cache.get_or_compute(key, lambda: 7) == 7


def test_invalidate_purges_older_versions():
    cache: ResponseCache[str] = ResponseCache()
    old = CacheKey(query="q", category="invoices", version=1)
    new = CacheKey(query="q", category="invoices", version=2)
    cache.get_or_compute(old, lambda: "old")
    cache.get_or_compute(new, lambda: "new")

    assert cache.invalidate(2) == 1
    assert old not in cache
    assert new in cache


def test_stale_result_is_not_stored_after_invalidate():
    cache: ResponseCache[str] = ResponseCache()
    stale = CacheKey(query="q", category="invoices", version=1)

    def compute() -> str:
        cache.invalidate(2)
        return "stale"

    assert cache.get_or_compute(stale, compute) == "stale"
    assert stale not in cache


def test_lru_eviction():
    cache: ResponseCache[str] = ResponseCache(max_entries=2)
    a, b, c = (CacheKey(query=name, category="invoices", version=1) for name in "abc")
    cache.get_or_compute(a, lambda: "a")
    cache.get_or_compute(b, lambda: "b")
    cache.get_or_compute(a, lambda: "unused")
    cache.get_or_compute(c, lambda: "c")

    assert a in cache
    assert b not in cache
    assert c in cache


def test_negative_capacity_rejected():
    with pytest.raises(ValueError):
        ResponseCache(max_entries=-1)

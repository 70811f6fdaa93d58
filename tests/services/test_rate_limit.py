# tests/services/test_rate_limit.py
"""Tests for the per-source admission limiter."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import redis

from replied.core.settings import Settings
from replied.services.rate_limit import (
    KEY_PREFIX,
    AdmissionLimiter,
    MemoryCounterStore,
    RedisCounterStore,
    build_limiter,
)


class BrokenCounterStore:
    def hit(self, key: str, window_seconds: int) -> int:
        raise redis.ConnectionError("connection refused")

    def close(self) -> None:
        return None


def test_fixed_window_admits_limit_then_denies(limiter: AdmissionLimiter, clock) -> None:
    for _ in range(5):
        assert limiter.admit("203.0.113.7")
    clock.advance(599)
    assert not limiter.admit("203.0.113.7")


def test_window_reopens_after_expiry(limiter: AdmissionLimiter, clock) -> None:
    for _ in range(6):
        limiter.admit("203.0.113.7")
    clock.advance(601)
    assert limiter.admit("203.0.113.7")


def test_denied_attempts_do_not_extend_window(limiter: AdmissionLimiter, clock) -> None:
    for _ in range(5):
        limiter.admit("k")
    for _ in range(10):
        clock.advance(50)
        assert not limiter.admit("k")
    clock.advance(100)
    assert limiter.admit("k")


def test_sources_are_counted_independently(limiter: AdmissionLimiter) -> None:
    for _ in range(5):
        assert limiter.admit("a")
    assert not limiter.admit("a")
    assert limiter.admit("b")


def test_no_store_fails_open() -> None:
    limiter = AdmissionLimiter(None)
    assert not limiter.enabled
    assert all(limiter.admit("k") for _ in range(50))


def test_store_error_fails_open() -> None:
    limiter = AdmissionLimiter(BrokenCounterStore(), limit=1)
    assert limiter.admit("k")
    assert limiter.admit("k")


def test_redis_store_sets_window_once_then_increments(mocker) -> None:
    client = mocker.MagicMock()
    pipe = client.pipeline.return_value
    pipe.execute.return_value = [True, 3]

    store = RedisCounterStore(client)
    assert store.hit("ratelimit:send:k", 600) == 3

    client.pipeline.assert_called_once_with(transaction=True)
    pipe.set.assert_called_once_with("ratelimit:send:k", 0, ex=600, nx=True)
    pipe.incr.assert_called_once_with("ratelimit:send:k")


def test_limiter_prefixes_keys(mocker) -> None:
    store = mocker.MagicMock()
    store.hit.return_value = 1
    AdmissionLimiter(store, window_seconds=600).admit("198.51.100.1")
    store.hit.assert_called_once_with(f"{KEY_PREFIX}198.51.100.1", 600)


def test_limit_boundary_uses_counter_value(mocker) -> None:
    store = mocker.MagicMock()
    limiter = AdmissionLimiter(store, limit=5)
    store.hit.return_value = 5
    assert limiter.admit("k")
    store.hit.return_value = 6
    assert not limiter.admit("k")


@pytest.mark.parametrize(
    ("redis_url", "enabled"),
    [(None, False), ("", False), ("memory://", True)],
)
def test_build_limiter_from_settings(redis_url: str | None, enabled: bool) -> None:
    limiter = build_limiter(Settings(REDIS_URL=redis_url, RATE_LIMIT_MAX_MESSAGES=3))
    assert limiter.enabled is enabled
    assert limiter.limit == 3


def test_build_limiter_uses_redis_for_redis_urls(mocker) -> None:
    from_url = mocker.patch("replied.services.rate_limit.redis.from_url")
    limiter = build_limiter(Settings(REDIS_URL="redis://cache:6379/0"))
    from_url.assert_called_once_with("redis://cache:6379/0")
    assert limiter.enabled


def test_memory_store_close_forgets_windows() -> None:
    store = MemoryCounterStore(clock=lambda: 0.0)
    store.hit("k", 60)
    store.close()
    assert store.hit("k", 60) == 1


def test_concurrent_burst_is_counted_atomically(limiter: AdmissionLimiter) -> None:
    workers = 50
    barrier = threading.Barrier(workers)

    def attempt() -> bool:
        barrier.wait()
        return limiter.admit("203.0.113.7")

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda _: attempt(), range(workers)))

    assert results.count(True) == 5


def test_memory_store_drops_expired_windows(clock) -> None:
    store = MemoryCounterStore(clock=clock)
    for key in ("a", "b", "c"):
        store.hit(key, 600)
    assert len(store) == 3

    clock.advance(601)
    assert store.hit("d", 600) == 1
    assert len(store) == 1

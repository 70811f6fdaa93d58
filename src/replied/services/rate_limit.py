"""Per-source admission limiting for message submissions."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from threading import Lock
from typing import Final, Protocol

import redis

from replied.core.settings import Settings

logger = logging.getLogger(__name__)

MEMORY_STORE_URL: Final[str] = "memory://"
KEY_PREFIX: Final[str] = "ratelimit:send:"


class CounterStore(Protocol):
    """Atomic windowed counter.

    ``hit`` increments the counter for ``key`` and returns the new value. The
    expiry is set only by the increment that creates the window, so a burst
    of concurrent hits cannot restart it.
    """

    def hit(self, key: str, window_seconds: int) -> int: ...

    def close(self) -> None: ...


class RedisCounterStore:
    """Counter store backed by Redis."""

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> RedisCounterStore:
        return cls(redis.from_url(url))  # type: ignore[no-untyped-call]

    def hit(self, key: str, window_seconds: int) -> int:
        # SET NX creates the window with its TTL exactly once; INCR keeps the
        # TTL. MULTI/EXEC makes the pair atomic.
        pipe = self._redis.pipeline(transaction=True)
        pipe.set(key, 0, ex=int(window_seconds), nx=True)
        pipe.incr(key)
        _, count = pipe.execute()
        return int(count)

    def close(self) -> None:
        self._redis.close()


class MemoryCounterStore:
    """In-process counter store for tests and single-worker development."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, list[float]] = {}
        self._lock = Lock()
        self._next_sweep = float("-inf")

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _sweep(self, now: float, window_seconds: int) -> None:
        # At most once per window; caller holds the lock.
        if now < self._next_sweep:
            return
        expired = [key for key, entry in self._windows.items() if entry[1] <= now]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + window_seconds

    def hit(self, key: str, window_seconds: int) -> int:
        now = self._clock()
        with self._lock:
            self._sweep(now, window_seconds)
            entry = self._windows.get(key)
            if entry is None or entry[1] <= now:
                entry = [0, now + window_seconds]
                self._windows[key] = entry
            entry[0] += 1
            return int(entry[0])

    def close(self) -> None:
        with self._lock:
            self._windows.clear()


class AdmissionLimiter:
    """Fixed-window limiter keyed by source (normally the client IP).

    The limiter is a defense-in-depth layer: without a store, or when the
    store errors, every request is admitted.
    """

    def __init__(
        self,
        store: CounterStore | None,
        *,
        limit: int = 5,
        window_seconds: int = 600,
    ) -> None:
        self._store = store
        self.limit = limit
        self.window_seconds = window_seconds
        if store is None:
            logger.warning("Rate limiting disabled: no counter store configured")

    @property
    def enabled(self) -> bool:
        return self._store is not None

    def admit(self, source_key: str) -> bool:
        """Return True if ``source_key`` may submit another message."""
        if self._store is None:
            return True
        try:
            count = self._store.hit(f"{KEY_PREFIX}{source_key}", self.window_seconds)
        except (redis.RedisError, OSError) as exc:
            logger.warning("Rate limiter unavailable, admitting request: %s", exc)
            return True
        return count <= self.limit

    def close(self) -> None:
        if self._store is not None:
            self._store.close()


def build_limiter(config: Settings) -> AdmissionLimiter:
    """Create the limiter described by the settings."""
    store: CounterStore | None = None
    if config.redis_url == MEMORY_STORE_URL:
        logger.warning("Using in-process rate limit counters (not shared between workers)")
        store = MemoryCounterStore()
    elif config.redis_url:
        try:
            store = RedisCounterStore.from_url(config.redis_url)
            logger.info("Using Redis for rate limiting")
        except ValueError as exc:
            logger.warning("Invalid REDIS_URL, rate limiting disabled: %s", exc)
    return AdmissionLimiter(
        store,
        limit=config.rate_limit_max_messages,
        window_seconds=config.rate_limit_window_seconds,
    )

# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""TTL memoization with stale fallback for ledger reads.

One Cache value is shared by every reader in the process. Entries are only
mutated between suspension points, so no locking is needed under asyncio.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from protocol import is_retryable

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    timestamp: float
    ttl: float


class Cache:
    """Key -> value memoizer with per-entry TTL and an injected clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """Initialize an empty cache.

        Args:
            clock: Returns the current time in seconds. Inject a fake in tests.
        """
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0
        self.stale_hits = 0
        self.evictions = 0

    def get(self, key: str) -> Any | None:
        """Peek at a fresh value without computing. None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None or self.clock() - entry.timestamp >= entry.ttl:
            return None
        return entry.value

    async def get_or_compute(self, key: str, ttl: float,
                             compute: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value if younger than ttl, else await compute().

        Args:
            key: Cache key
            ttl: Time-to-live in seconds for this entry
            compute: Zero-argument coroutine function producing a fresh value

        Returns:
            Fresh or cached value. If compute fails transiently and an expired
            value exists, that stale value is returned instead of the error.
        """
        entry = self._entries.get(key)
        if entry is not None and self.clock() - entry.timestamp < ttl:
            self.hits += 1
            logger.debug("cache hit: %s", key)
            return entry.value

        pending = self._pending.get(key)
        if pending is not None:
            logger.debug("cache join in-flight: %s", key)
            return await asyncio.shield(pending)

        self.misses += 1
        logger.debug("cache miss: %s", key)
        fut = asyncio.get_running_loop().create_future()
        # Mark exceptions retrieved even when nobody joined this compute
        fut.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._pending[key] = fut

        try:
            value = await compute()
        except Exception as e:
            # Ownership is lost if the key was invalidated while computing
            owned = self._release(key, fut)
            if owned and entry is not None and is_retryable(e):
                self.stale_hits += 1
                logger.warning("serving stale %s after transient failure: %s", key, e)
                fut.set_result(entry.value)
                return entry.value
            if owned:
                self._evict_entry(key)
            fut.set_exception(e)
            raise
        except BaseException:
            self._release(key, fut)
            fut.cancel()
            raise

        if self._release(key, fut):
            self._entries[key] = CacheEntry(value=value, timestamp=self.clock(), ttl=ttl)
        fut.set_result(value)
        return value

    def _release(self, key: str, fut: asyncio.Future) -> bool:
        if self._pending.get(key) is fut:
            del self._pending[key]
            return True
        return False

    def _evict_entry(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self.evictions += 1

    def invalidate(self, key: str) -> None:
        """Drop one key. A compute in flight for it will not be stored."""
        self._evict_entry(key)
        self._pending.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        for key in [k for k in self._entries if k.startswith(prefix)]:
            self._evict_entry(key)
        for key in [k for k in self._pending if k.startswith(prefix)]:
            del self._pending[key]

    def invalidate_all(self) -> None:
        self.evictions += len(self._entries)
        self._entries.clear()
        self._pending.clear()

    def stats(self) -> dict:
        """Get cache statistics."""
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "stale_hits": self.stale_hits,
            "evictions": self.evictions,
            "hit_rate": self.hits / total if total else 0,
        }

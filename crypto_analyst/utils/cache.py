"""Per-run in-memory cache for provider responses.

One entry per exact request URL for the lifetime of a pipeline run.
Concurrent requests for the same uncached URL are coalesced: the first
caller performs the load, later callers block on its in-flight future.
Failed loads are never stored.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable

from crypto_analyst.utils.logger import setup_logger

logger = setup_logger("cache")


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    fetched_at: float = field(default_factory=time.time)


class RequestCache:
    """URL-keyed cache with in-flight request coalescing."""

    def __init__(self):
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, Future] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.coalesced = 0

    def get(self, key: str) -> Any | None:
        """Return the cached value for *key*, or None."""
        with self._lock:
            entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def entry(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value for *key*, calling *loader* at most once.

        The lock only guards the bookkeeping maps; *loader* always runs
        outside it. Exceptions from *loader* propagate to the owner and to
        every coalesced waiter, and leave nothing behind in the cache.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self.hits += 1
                logger.debug("Cache hit: %s", key)
                return entry.value
            pending = self._inflight.get(key)
            if pending is None:
                pending = Future()
                self._inflight[key] = pending
                owner = True
                self.misses += 1
            else:
                owner = False
                self.coalesced += 1

        if not owner:
            logger.debug("Waiting on in-flight request: %s", key)
            return pending.result()

        try:
            value = loader()
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
            pending.set_exception(exc)
            raise

        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value)
            self._inflight.pop(key, None)
        pending.set_result(value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "coalesced": self.coalesced,
            }

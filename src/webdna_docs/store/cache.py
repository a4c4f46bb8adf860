"""Read-through query cache with per-operation time-to-live."""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from webdna_docs.config import CacheConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class CacheEntry:
    value: Any
    captured_at: float


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


def cache_key(operation: str, args: dict[str, Any]) -> str:
    """Deterministic signature of an operation name plus normalized arguments."""
    payload = json.dumps(args, sort_keys=True, default=str, separators=(",", ":"))
    return f"{operation}:{hashlib.md5(payload.encode('utf-8')).hexdigest()}"


class QueryCache:
    """In-process cache keyed by query signature.

    An entry is stale once `now - captured_at >= ttl` for its operation. A TTL
    of zero disables caching for that operation. Entries are kept for the
    life of the process unless `max_entries` is set, in which case the least
    recently used entry is evicted when the bound is exceeded.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CacheConfig()
        self._ttls = self.config.ttl_map()
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def ttl_for(self, operation: str) -> float:
        return self._ttls.get(operation, self.config.default_ttl_seconds)

    async def get_or_load(
        self,
        operation: str,
        args: dict[str, Any],
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        ttl = self.ttl_for(operation)
        if ttl <= 0:
            return await loader()

        key = cache_key(operation, args)
        entry = self._entries.get(key)
        now = self._clock()
        if entry is not None and now - entry.captured_at < ttl:
            self.stats.hits += 1
            self._entries.move_to_end(key)
            logger.debug("Cache hit for %s", key)
            return copy.deepcopy(entry.value)

        self.stats.misses += 1
        value = await loader()
        self._entries[key] = CacheEntry(value=copy.deepcopy(value), captured_at=self._clock())
        self._entries.move_to_end(key)
        self._evict_overflow()
        return value

    def summary(self) -> dict[str, float | int]:
        return {
            "entries": len(self._entries),
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "evictions": self.stats.evictions,
            "hit_rate": round(self.stats.hit_rate, 4),
        }

    def _evict_overflow(self) -> None:
        limit = self.config.max_entries
        if limit is None:
            return
        while len(self._entries) > limit:
            evicted_key, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            logger.debug("Evicted cache entry %s", evicted_key)

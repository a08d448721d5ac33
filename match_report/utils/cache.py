"""In-memory TTL cache for upstream API JSON responses."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from ..logging import logger

# Endpoint-specific TTLs (seconds). Live data expires quickly, reference data
# lives for days.
ENDPOINT_TTL_SECONDS: dict[str, float] = {
    "/fixtures": 2 * 60,
    "/fixtures/statistics": 5 * 60,
    "/fixtures/events": 2 * 60,
    "/fixtures/lineups": 10 * 60,
    "/injuries": 60 * 60,
    "/standings": 30 * 60,
    "/fixtures/headtohead": 24 * 60 * 60,
    "/leagues": 7 * 24 * 60 * 60,
    "/teams": 7 * 24 * 60 * 60,
    "/timezone": 30 * 24 * 60 * 60,
}

DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_MAX_ENTRIES = 1000


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    expires_at: float


def build_cache_key(endpoint: str, params: Mapping[str, Any] | None) -> str:
    """Build an order-independent key: ``/path?a=1&b=2``.

    ``None`` values are dropped so ``{"season": None}`` and ``{}`` share a key,
    matching how the params are sent on the wire.
    """
    items = sorted((k, v) for k, v in (params or {}).items() if v is not None)
    query = "&".join(f"{key}={value}" for key, value in items)
    return f"{endpoint}?{query}"


class APICache:
    """TTL cache for API JSON responses, keyed by endpoint + params.

    Expired entries are evicted lazily on read and in bulk by ``cleanup()``
    (run periodically by ``run_sweeper``). Failures are never cached. The
    entry cap is a memory guard, not an LRU policy.
    """

    def __init__(
        self,
        *,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_table: Mapping[str, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_entries = max(1, max_entries)
        self.ttl_table = dict(ENDPOINT_TTL_SECONDS if ttl_table is None else ttl_table)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def ttl_for(self, endpoint: str, ttl: float | None = None) -> float:
        """Explicit TTL > endpoint table > global default."""
        if ttl is not None:
            return ttl
        return self.ttl_table.get(endpoint, self.default_ttl)

    def get(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any | None:
        key = build_cache_key(endpoint, params)
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("api_cache_miss", key=key)
            return None

        if self._clock() > entry.expires_at:
            self._entries.pop(key, None)
            logger.debug("api_cache_expired", key=key)
            return None

        logger.debug("api_cache_hit", key=key)
        return entry.data

    def set(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None,
        data: Any,
        ttl: float | None = None,
    ) -> None:
        key = build_cache_key(endpoint, params)
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._make_room()
        effective_ttl = self.ttl_for(endpoint, ttl)
        self._entries[key] = CacheEntry(data=data, expires_at=self._clock() + effective_ttl)
        logger.debug("api_cache_saved", key=key, ttl_seconds=effective_ttl)

    def delete(self, endpoint: str, params: Mapping[str, Any] | None = None) -> bool:
        return self._entries.pop(build_cache_key(endpoint, params), None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("api_cache_cleanup", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def _make_room(self) -> None:
        if self.cleanup():
            return
        soonest = min(self._entries, key=lambda key: self._entries[key].expires_at)
        del self._entries[soonest]
        logger.info("api_cache_evicted", key=soonest, max_entries=self.max_entries)

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._entries), "entries": list(self._entries)}

    def __len__(self) -> int:
        return len(self._entries)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep expired entries forever; cancel the task to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.cleanup()

"""Process-local lineup cache backed by ``cachetools.TTLCache``.

Holds resolved ``LineupSuggestionResult`` objects keyed by venue and date.
Entries expire after ``ttl`` seconds so a festival whose setlists are
still being filled in on setlist.fm is re-fetched within the hour.  Hit
and miss counts are kept for the health endpoint.
"""

from __future__ import annotations

from typing import Any

import structlog
from cachetools import TTLCache

from src.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """TTL cache for one process.

    Parameters
    ----------
    max_size:
        Number of venue/date entries kept before the oldest is evicted.
    ttl:
        Seconds an entry stays valid.
    """

    def __init__(self, max_size: int = 1000, ttl: int = 3600) -> None:
        self._ttl = ttl
        self._entries: TTLCache[str, Any] = TTLCache(maxsize=max_size, ttl=ttl)
        self._hits = 0
        self._misses = 0

    @property
    def ttl(self) -> int:
        return self._ttl

    async def get(self, key: str) -> Any | None:
        value = self._entries.get(key)
        if value is None:
            self._misses += 1
        else:
            self._hits += 1
        logger.debug("lineup_cache_lookup", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: Any) -> None:
        # None means "missing" to get(); storing it would only count misses.
        if value is None:
            return
        self._entries[key] = value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry and reset the counters."""
        dropped = len(self._entries)
        self._entries.clear()
        self._hits = self._misses = 0
        logger.info("lineup_cache_cleared", dropped=dropped)

    def stats(self) -> dict[str, int]:
        """Size and hit/miss counts, as reported by ``/health``."""
        return {
            "size": len(self._entries),
            "max_size": int(self._entries.maxsize),
            "ttl_s": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
        }

    def __len__(self) -> int:
        return len(self._entries)

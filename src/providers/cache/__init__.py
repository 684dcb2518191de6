"""Cache providers.

In-memory TTL cache used by the lineup resolver so that repeated lookups of
the same venue and date (e.g. re-opening a concert edit screen) do not hit
the rate-limited setlist source again.

MemoryCacheProvider is a dict-based cache, fast but not shared across
processes.  For multi-worker deployments, swap in a Redis adapter
implementing ICacheProvider without changing the resolver.
"""

from src.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]

"""Abstract base class for cache service providers.

The lineup resolver caches successful setlist lookups so that re-opening a
concert edit screen does not hit the rate-limited setlist source again.
Implementations may be in-process (``MemoryCacheProvider``) or shared
(e.g. Redis) without touching the resolver.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ICacheProvider(ABC):
    """Contract for key-value cache services.

    All operations are async so network-backed stores do not block the
    event loop.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value stored under *key*, or ``None`` if missing/expired."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store *value* under *key* for the provider's configured TTL."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*; a no-op if it is absent."""

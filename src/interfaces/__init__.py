"""Public interface definitions for the engine's storage and external capabilities.

Every external service the engine talks to is accessed exclusively through
the abstract base classes defined in this package.  Concrete adapters
implement these interfaces and are injected at startup in ``src/main.py``,
so unit tests can swap any of them for a stub without real API calls.

CONCRETE PROVIDER MAP:
    Interface          →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    IEntityStore       →  SQLiteEntityStore
    IMediaClassifier   →  AnthropicMediaClassifier
    ISetlistProvider   →  SetlistFmProvider
    ICacheProvider     →  MemoryCacheProvider

Re-exports
----------
IEntityStore, IEntityTransaction
    Persistent storage contract and its unit-of-work.
IMediaClassifier
    Photo/video content classification contract.
ISetlistProvider, VenuePerformance
    Setlist-source query contract and helper dataclass.
ICacheProvider
    Key-value cache contract.
"""

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.entity_store import IEntityStore, IEntityTransaction
from src.interfaces.media_classifier import IMediaClassifier
from src.interfaces.setlist_provider import ISetlistProvider, VenuePerformance

__all__ = [
    "ICacheProvider",
    "IEntityStore",
    "IEntityTransaction",
    "IMediaClassifier",
    "ISetlistProvider",
    "VenuePerformance",
]

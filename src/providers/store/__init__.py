"""Entity store providers.

SQLiteEntityStore persists artists, venues, concerts and media items with
aiosqlite.  The analysis compare-and-set and the concert-link write are
single conditional UPDATE statements.
"""

from src.providers.store.sqlite_entity_store import SQLiteEntityStore

__all__ = ["SQLiteEntityStore"]

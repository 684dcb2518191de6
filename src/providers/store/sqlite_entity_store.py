"""SQLite-backed entity store.

Persists artists, venues, concerts and media items to a local SQLite
database at ``data/concert_match.db``.  Uses ``aiosqlite`` for async I/O
with one connection per operation.

Concurrency notes:

* Analysis transitions and concert links are single ``UPDATE ... WHERE``
  statements; ``cursor.rowcount`` tells the caller whether it won.
* Unit-of-work transactions start with ``BEGIN IMMEDIATE`` so two batches
  touching the same concert are serialized by SQLite's write lock instead
  of interleaving.
* ``busy_timeout`` makes a second writer wait for the lock rather than
  failing with ``database is locked``.
"""

from __future__ import annotations

import datetime
import json
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite
import structlog
from pydantic import TypeAdapter

from src.interfaces.entity_store import IEntityStore, IEntityTransaction
from src.models.entities import Artist, Concert, ConcertArtist, Venue
from src.models.media import (
    AnalysisState,
    AnalysisStatus,
    GeoPoint,
    MatchedVia,
    MediaItem,
    MediaKind,
    ReviewStatus,
)
from src.utils.errors import ContractViolationError, StoreError
from src.utils.text_normalizer import normalize_name

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/concert_match.db")
_PROVIDER_NAME = "sqlite"

_STATE_ADAPTER: TypeAdapter[AnalysisState] = TypeAdapter(AnalysisState)

_CREATE_ARTISTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS artists (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    name_key    TEXT NOT NULL,
    external_id TEXT UNIQUE,
    created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_CREATE_VENUES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS venues (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL,
    name_normalized TEXT NOT NULL,
    external_id     TEXT UNIQUE,
    city            TEXT,
    country         TEXT
);
"""

_CREATE_CONCERTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS concerts (
    id               TEXT PRIMARY KEY,
    owner_id         TEXT    NOT NULL,
    concert_date     TEXT    NOT NULL,
    concert_end_date TEXT,
    venue_id         TEXT REFERENCES venues(id),
    is_verified      INTEGER NOT NULL DEFAULT 0,
    confidence       REAL,
    created_at       TEXT    NOT NULL
);
"""

_CREATE_CONCERT_ARTISTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS concert_artists (
    concert_id   TEXT    NOT NULL REFERENCES concerts(id),
    artist_id    TEXT    NOT NULL REFERENCES artists(id),
    is_headliner INTEGER NOT NULL DEFAULT 0,
    set_order    INTEGER,
    PRIMARY KEY (concert_id, artist_id)
);
"""

_CREATE_MEDIA_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS media (
    id                TEXT PRIMARY KEY,
    owner_id          TEXT NOT NULL,
    kind              TEXT NOT NULL,
    storage_ref       TEXT NOT NULL,
    thumbnail_ref     TEXT,
    original_filename TEXT,
    captured_at       TEXT,
    latitude          REAL,
    longitude         REAL,
    analysis_status   TEXT NOT NULL DEFAULT 'pending',
    analysis_state    TEXT NOT NULL,
    concert_id        TEXT REFERENCES concerts(id),
    review_status     TEXT NOT NULL DEFAULT 'unreviewed',
    link_confidence   REAL,
    link_matched_via  TEXT,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_artists_name_key ON artists(name_key);",
    "CREATE INDEX IF NOT EXISTS idx_venues_name_normalized ON venues(name_normalized);",
    "CREATE INDEX IF NOT EXISTS idx_concerts_owner_date ON concerts(owner_id, concert_date);",
    "CREATE INDEX IF NOT EXISTS idx_media_owner ON media(owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_media_status ON media(analysis_status);",
]

_INSERT_ARTIST_SQL = """\
INSERT OR IGNORE INTO artists (id, name, name_key, external_id)
VALUES (?, ?, ?, ?);
"""

_SELECT_ARTIST_SQL = "SELECT id, name, external_id FROM artists WHERE id = ?;"
_SELECT_ARTIST_BY_EXTERNAL_ID_SQL = "SELECT id, name, external_id FROM artists WHERE external_id = ?;"
_SELECT_ARTIST_BY_NAME_SQL = """\
SELECT id, name, external_id
FROM artists
WHERE name_key = ?
ORDER BY created_at, id
LIMIT 1;
"""

_INSERT_VENUE_SQL = """\
INSERT OR IGNORE INTO venues (id, name, name_normalized, external_id, city, country)
VALUES (?, ?, ?, ?, ?, ?);
"""

_SELECT_VENUE_SQL = "SELECT id, name, external_id, city, country FROM venues WHERE id = ?;"
_SELECT_VENUE_BY_EXTERNAL_ID_SQL = (
    "SELECT id, name, external_id, city, country FROM venues WHERE external_id = ?;"
)

_INSERT_CONCERT_SQL = """\
INSERT INTO concerts (id, owner_id, concert_date, concert_end_date, venue_id,
                      is_verified, confidence, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_CONCERT_ARTIST_SQL = """\
INSERT INTO concert_artists (concert_id, artist_id, is_headliner, set_order)
VALUES (?, ?, ?, ?);
"""

_SELECT_CONCERTS_SQL = """\
SELECT c.id, c.owner_id, c.concert_date, c.concert_end_date, c.is_verified,
       c.confidence, c.created_at,
       v.id AS v_id, v.name AS v_name, v.external_id AS v_external_id,
       v.city AS v_city, v.country AS v_country
FROM concerts c
LEFT JOIN venues v ON v.id = c.venue_id
"""

_SELECT_CONCERT_SQL = _SELECT_CONCERTS_SQL + "WHERE c.id = ? AND c.owner_id = ?;"

_SELECT_CANDIDATE_CONCERTS_SQL = _SELECT_CONCERTS_SQL + """\
WHERE c.owner_id = ?
  AND (
        (? AND c.concert_date <= ? AND COALESCE(c.concert_end_date, c.concert_date) >= ?)
     OR (? AND v.name_normalized = ?)
  );
"""

_SELECT_CONCERT_ARTISTS_SQL = """\
SELECT ca.concert_id, ca.is_headliner, ca.set_order,
       a.id AS artist_id, a.name AS artist_name, a.external_id AS artist_external_id
FROM concert_artists ca
JOIN artists a ON a.id = ca.artist_id
WHERE ca.concert_id IN ({placeholders})
ORDER BY ca.concert_id, ca.set_order IS NULL, ca.set_order, ca.rowid;
"""

_INSERT_MEDIA_SQL = """\
INSERT INTO media (id, owner_id, kind, storage_ref, thumbnail_ref, original_filename,
                   captured_at, latitude, longitude, analysis_status, analysis_state,
                   concert_id, review_status, link_confidence, link_matched_via,
                   created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_MEDIA_SQL = "SELECT * FROM media WHERE id = ? AND owner_id = ?;"
_SELECT_PROCESSING_MEDIA_SQL = "SELECT * FROM media WHERE analysis_status = 'processing';"

_TRANSITION_ANALYSIS_SQL = """\
UPDATE media
SET analysis_status = ?, analysis_state = ?, updated_at = ?
WHERE id = ? AND analysis_status IN ({placeholders});
"""

_ASSIGN_CONCERT_SQL = """\
UPDATE media
SET concert_id = ?, review_status = ?, link_confidence = ?, link_matched_via = ?,
    updated_at = ?
WHERE id = ? AND owner_id = ? AND concert_id IS NULL
  AND EXISTS (SELECT 1 FROM concerts WHERE id = ? AND owner_id = ?);
"""

_MARK_REVIEWED_SQL = """\
UPDATE media
SET review_status = ?, updated_at = ?
WHERE id = ? AND owner_id = ?;
"""


def _utcnow_iso() -> str:
    return datetime.datetime.now(tz=datetime.timezone.utc).isoformat()  # noqa: UP017


def _iso(value: datetime.date | datetime.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _name_key(name: str) -> str:
    return name.strip().casefold()


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def _row_to_artist(row: aiosqlite.Row) -> Artist:
    return Artist(id=row["id"], name=row["name"], external_id=row["external_id"])


def _row_to_venue(row: aiosqlite.Row) -> Venue:
    return Venue(
        id=row["id"],
        name=row["name"],
        external_id=row["external_id"],
        city=row["city"],
        country=row["country"],
    )


def _row_to_media(row: aiosqlite.Row) -> MediaItem:
    location = None
    if row["latitude"] is not None and row["longitude"] is not None:
        location = GeoPoint(latitude=row["latitude"], longitude=row["longitude"])
    captured_at = row["captured_at"]
    return MediaItem(
        id=row["id"],
        owner_id=row["owner_id"],
        kind=MediaKind(row["kind"]),
        storage_ref=row["storage_ref"],
        thumbnail_ref=row["thumbnail_ref"],
        original_filename=row["original_filename"],
        captured_at=datetime.datetime.fromisoformat(captured_at) if captured_at else None,
        location=location,
        analysis=_STATE_ADAPTER.validate_json(row["analysis_state"]),
        concert_id=row["concert_id"],
        review_status=ReviewStatus(row["review_status"]),
        link_confidence=row["link_confidence"],
        link_matched_via=MatchedVia(row["link_matched_via"]) if row["link_matched_via"] else None,
        created_at=datetime.datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.datetime.fromisoformat(row["updated_at"]),
    )


def _dump_state(state: AnalysisState) -> str:
    return json.dumps(state.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Shared write helpers (used both by the store and inside transactions)
# ---------------------------------------------------------------------------

async def _fetch_artist(db: aiosqlite.Connection, sql: str, param: str) -> Artist | None:
    cursor = await db.execute(sql, (param,))
    row = await cursor.fetchone()
    return _row_to_artist(row) if row else None


async def _upsert_artist(db: aiosqlite.Connection, artist: Artist) -> Artist:
    """Resolve *artist* to a stored row: external id, then exact name, then insert."""
    if artist.external_id:
        existing = await _fetch_artist(db, _SELECT_ARTIST_BY_EXTERNAL_ID_SQL, artist.external_id)
    else:
        existing = await _fetch_artist(db, _SELECT_ARTIST_BY_NAME_SQL, _name_key(artist.name))
    if existing is not None:
        return existing

    await db.execute(
        _INSERT_ARTIST_SQL,
        (artist.id, artist.name, _name_key(artist.name), artist.external_id),
    )
    # A concurrent writer may have inserted the same external id first.
    if artist.external_id:
        stored = await _fetch_artist(db, _SELECT_ARTIST_BY_EXTERNAL_ID_SQL, artist.external_id)
    else:
        stored = await _fetch_artist(db, _SELECT_ARTIST_SQL, artist.id)
    if stored is None:
        raise StoreError(f"Artist {artist.id} could not be stored", provider_name=_PROVIDER_NAME)
    return stored


async def _upsert_venue(db: aiosqlite.Connection, venue: Venue) -> Venue:
    await db.execute(
        _INSERT_VENUE_SQL,
        (
            venue.id,
            venue.name,
            normalize_name(venue.name),
            venue.external_id,
            venue.city,
            venue.country,
        ),
    )
    if venue.external_id:
        cursor = await db.execute(_SELECT_VENUE_BY_EXTERNAL_ID_SQL, (venue.external_id,))
    else:
        cursor = await db.execute(_SELECT_VENUE_SQL, (venue.id,))
    row = await cursor.fetchone()
    if row is None:
        raise StoreError(f"Venue {venue.id} could not be stored", provider_name=_PROVIDER_NAME)
    return _row_to_venue(row)


async def _load_concert_artists(
    db: aiosqlite.Connection,
    concert_ids: Sequence[str],
) -> dict[str, list[ConcertArtist]]:
    relations: dict[str, list[ConcertArtist]] = {cid: [] for cid in concert_ids}
    if not concert_ids:
        return relations
    placeholders = ", ".join("?" for _ in concert_ids)
    cursor = await db.execute(
        _SELECT_CONCERT_ARTISTS_SQL.format(placeholders=placeholders),
        list(concert_ids),
    )
    for row in await cursor.fetchall():
        relations[row["concert_id"]].append(
            ConcertArtist(
                artist=Artist(
                    id=row["artist_id"],
                    name=row["artist_name"],
                    external_id=row["artist_external_id"],
                ),
                is_headliner=bool(row["is_headliner"]),
                set_order=row["set_order"],
            )
        )
    return relations


async def _rows_to_concerts(db: aiosqlite.Connection, rows: Sequence[aiosqlite.Row]) -> list[Concert]:
    relations = await _load_concert_artists(db, [row["id"] for row in rows])
    concerts: list[Concert] = []
    for row in rows:
        venue = None
        if row["v_id"] is not None:
            venue = Venue(
                id=row["v_id"],
                name=row["v_name"],
                external_id=row["v_external_id"],
                city=row["v_city"],
                country=row["v_country"],
            )
        end_date = row["concert_end_date"]
        concerts.append(
            Concert(
                id=row["id"],
                owner_id=row["owner_id"],
                concert_date=datetime.date.fromisoformat(row["concert_date"]),
                concert_end_date=datetime.date.fromisoformat(end_date) if end_date else None,
                venue=venue,
                artists=relations[row["id"]],
                is_verified=bool(row["is_verified"]),
                confidence=row["confidence"],
                created_at=datetime.datetime.fromisoformat(row["created_at"]),
            )
        )
    return concerts


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------

class _SQLiteTransaction(IEntityTransaction):
    """Operations bound to one open ``BEGIN IMMEDIATE`` connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def find_artist_by_external_id(self, external_id: str) -> Artist | None:
        return await _fetch_artist(self._db, _SELECT_ARTIST_BY_EXTERNAL_ID_SQL, external_id)

    async def find_artist_by_name(self, name: str) -> Artist | None:
        return await _fetch_artist(self._db, _SELECT_ARTIST_BY_NAME_SQL, _name_key(name))

    async def insert_artist(self, artist: Artist) -> Artist:
        return await _upsert_artist(self._db, artist)

    async def list_concert_artists(self, concert_id: str) -> list[ConcertArtist]:
        relations = await _load_concert_artists(self._db, [concert_id])
        return relations[concert_id]

    async def insert_concert_artist(
        self,
        concert_id: str,
        artist_id: str,
        is_headliner: bool,
        set_order: int | None,
    ) -> None:
        await self._db.execute(
            _INSERT_CONCERT_ARTIST_SQL,
            (concert_id, artist_id, int(is_headliner), set_order),
        )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SQLiteEntityStore(IEntityStore):
    """SQLite-backed persistence for the concert-matching engine.

    Parameters
    ----------
    db_path:
        Location of the database file; parent directories are created on
        :meth:`initialize`.
    busy_timeout:
        Seconds a writer waits for SQLite's lock before giving up.
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        busy_timeout: float = 5.0,
    ) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(str(self._db_path), timeout=self._busy_timeout) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON;")
            await db.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout * 1000)};")
            yield db

    async def initialize(self) -> None:
        """Create all tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode = WAL;")
            await db.execute(_CREATE_ARTISTS_TABLE_SQL)
            await db.execute(_CREATE_VENUES_TABLE_SQL)
            await db.execute(_CREATE_CONCERTS_TABLE_SQL)
            await db.execute(_CREATE_CONCERT_ARTISTS_TABLE_SQL)
            await db.execute(_CREATE_MEDIA_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("entity_store_initialized", path=str(self._db_path))

    # -- Reference data --------------------------------------------------

    async def save_artist(self, artist: Artist) -> Artist:
        async with self._connect() as db:
            stored = await _upsert_artist(db, artist)
            await db.commit()
        return stored

    async def get_artist(self, artist_id: str) -> Artist | None:
        async with self._connect() as db:
            return await _fetch_artist(db, _SELECT_ARTIST_SQL, artist_id)

    async def save_venue(self, venue: Venue) -> Venue:
        async with self._connect() as db:
            stored = await _upsert_venue(db, venue)
            await db.commit()
        return stored

    async def get_venue(self, venue_id: str) -> Venue | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_VENUE_SQL, (venue_id,))
            row = await cursor.fetchone()
        return _row_to_venue(row) if row else None

    # -- Concerts --------------------------------------------------------

    async def create_concert(self, concert: Concert) -> Concert:
        async with self._connect() as db:
            venue_id = None
            if concert.venue is not None:
                venue_id = (await _upsert_venue(db, concert.venue)).id

            await db.execute(
                _INSERT_CONCERT_SQL,
                (
                    concert.id,
                    concert.owner_id,
                    concert.concert_date.isoformat(),
                    _iso(concert.concert_end_date),
                    venue_id,
                    int(concert.is_verified),
                    concert.confidence,
                    concert.created_at.isoformat(),
                ),
            )

            attached: set[str] = set()
            for relation in concert.artists:
                stored = await _upsert_artist(db, relation.artist)
                if stored.id in attached:
                    continue
                attached.add(stored.id)
                await db.execute(
                    _INSERT_CONCERT_ARTIST_SQL,
                    (concert.id, stored.id, int(relation.is_headliner), relation.set_order),
                )
            await db.commit()

            cursor = await db.execute(_SELECT_CONCERT_SQL, (concert.id, concert.owner_id))
            row = await cursor.fetchone()
            created = (await _rows_to_concerts(db, [row]))[0]

        logger.info(
            "concert_created",
            concert_id=created.id,
            owner_id=created.owner_id,
            artist_count=len(created.artists),
        )
        return created

    async def get_concert(self, concert_id: str, owner_id: str) -> Concert | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CONCERT_SQL, (concert_id, owner_id))
            row = await cursor.fetchone()
            if row is None:
                return None
            return (await _rows_to_concerts(db, [row]))[0]

    async def list_candidate_concerts(
        self,
        owner_id: str,
        window_start: datetime.date | None,
        window_end: datetime.date | None,
        venue_name_normalized: str | None,
    ) -> list[Concert]:
        use_window = window_start is not None and window_end is not None
        use_venue = bool(venue_name_normalized)
        if not use_window and not use_venue:
            return []

        params: list[Any] = [
            owner_id,
            int(use_window),
            _iso(window_end),
            _iso(window_start),
            int(use_venue),
            venue_name_normalized,
        ]
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CANDIDATE_CONCERTS_SQL, params)
            rows = await cursor.fetchall()
            concerts = await _rows_to_concerts(db, rows)

        logger.debug(
            "candidate_concerts_loaded",
            owner_id=owner_id,
            window_start=_iso(window_start),
            window_end=_iso(window_end),
            venue=venue_name_normalized,
            count=len(concerts),
        )
        return concerts

    # -- Media -----------------------------------------------------------

    async def create_media(self, media: MediaItem) -> MediaItem:
        location = media.location
        async with self._connect() as db:
            try:
                await db.execute(
                    _INSERT_MEDIA_SQL,
                    (
                        media.id,
                        media.owner_id,
                        media.kind.value,
                        media.storage_ref,
                        media.thumbnail_ref,
                        media.original_filename,
                        _iso(media.captured_at),
                        location.latitude if location else None,
                        location.longitude if location else None,
                        media.analysis_status.value,
                        _dump_state(media.analysis),
                        media.concert_id,
                        media.review_status.value,
                        media.link_confidence,
                        media.link_matched_via.value if media.link_matched_via else None,
                        media.created_at.isoformat(),
                        media.updated_at.isoformat(),
                    ),
                )
            except aiosqlite.IntegrityError as exc:
                logger.info("media_create_conflict", media_id=media.id, error=str(exc))
                raise ContractViolationError(f"Media {media.id} already exists") from exc
            await db.commit()
        logger.info("media_created", media_id=media.id, owner_id=media.owner_id, kind=media.kind.value)
        return media

    async def get_media(self, media_id: str, owner_id: str) -> MediaItem | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_MEDIA_SQL, (media_id, owner_id))
            row = await cursor.fetchone()
        return _row_to_media(row) if row else None

    async def transition_analysis(
        self,
        media_id: str,
        expected: Sequence[AnalysisStatus],
        new_state: AnalysisState,
    ) -> bool:
        if not expected:
            return False
        placeholders = ", ".join("?" for _ in expected)
        params: list[Any] = [
            new_state.status.value,
            _dump_state(new_state),
            _utcnow_iso(),
            media_id,
            *(status.value for status in expected),
        ]
        async with self._connect() as db:
            cursor = await db.execute(
                _TRANSITION_ANALYSIS_SQL.format(placeholders=placeholders),
                params,
            )
            await db.commit()
            won = cursor.rowcount == 1

        logger.debug(
            "analysis_transition",
            media_id=media_id,
            to_status=new_state.status.value,
            expected=[s.value for s in expected],
            applied=won,
        )
        return won

    async def assign_concert_if_unset(
        self,
        media_id: str,
        owner_id: str,
        concert_id: str,
        review_status: ReviewStatus,
        link_confidence: float | None = None,
        link_matched_via: MatchedVia | None = None,
    ) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                _ASSIGN_CONCERT_SQL,
                (
                    concert_id,
                    review_status.value,
                    link_confidence,
                    link_matched_via.value if link_matched_via else None,
                    _utcnow_iso(),
                    media_id,
                    owner_id,
                    concert_id,
                    owner_id,
                ),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def mark_reviewed(
        self,
        media_id: str,
        owner_id: str,
        review_status: ReviewStatus,
    ) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                _MARK_REVIEWED_SQL,
                (review_status.value, _utcnow_iso(), media_id, owner_id),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def list_processing_media(self) -> list[MediaItem]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_PROCESSING_MEDIA_SQL)
            rows = await cursor.fetchall()
        return [_row_to_media(row) for row in rows]

    # -- Units of work ---------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[IEntityTransaction]:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE;")
            try:
                yield _SQLiteTransaction(db)
            except aiosqlite.Error as exc:
                await db.rollback()
                logger.error("store_transaction_rolled_back", error=str(exc))
                raise StoreError(
                    f"Transaction failed: {exc}", provider_name=_PROVIDER_NAME
                ) from exc
            except BaseException:
                await db.rollback()
                raise
            else:
                await db.commit()

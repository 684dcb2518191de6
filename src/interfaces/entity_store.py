"""Abstract base classes for the persistent entity store.

The store holds artists, venues, concerts (with their artist relations)
and media items.  Two properties of the contract carry the engine's
concurrency guarantees and must hold for every implementation:

* :meth:`IEntityStore.transition_analysis` and
  :meth:`IEntityStore.assign_concert_if_unset` are single atomic
  conditional writes (compare-and-set).  Callers never read-then-write.
* :meth:`IEntityStore.transaction` yields a unit of work whose writes are
  applied all together or not at all.

Media and concert reads take an ``owner_id``; a row owned by someone else
is reported exactly like a missing row.
"""

from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager

from src.models.entities import Artist, Concert, ConcertArtist, Venue
from src.models.media import (
    AnalysisState,
    AnalysisStatus,
    MatchedVia,
    MediaItem,
    ReviewStatus,
)


class IEntityTransaction(ABC):
    """Operations available inside one store transaction.

    Used by the assignment workflow to resolve-or-create artists and attach
    them to a concert as a single atomic batch.
    """

    @abstractmethod
    async def find_artist_by_external_id(self, external_id: str) -> Artist | None:
        """Return the artist with this external cross-reference key."""

    @abstractmethod
    async def find_artist_by_name(self, name: str) -> Artist | None:
        """Return an artist whose name matches exactly (ignoring case)."""

    @abstractmethod
    async def insert_artist(self, artist: Artist) -> Artist:
        """Persist a new artist and return it."""

    @abstractmethod
    async def list_concert_artists(self, concert_id: str) -> list[ConcertArtist]:
        """Return the relations currently on the concert, in set order."""

    @abstractmethod
    async def insert_concert_artist(
        self,
        concert_id: str,
        artist_id: str,
        is_headliner: bool,
        set_order: int | None,
    ) -> None:
        """Attach an artist to a concert."""


class IEntityStore(ABC):
    """Contract for the engine's persistent storage."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    # -- Reference data --------------------------------------------------

    @abstractmethod
    async def save_artist(self, artist: Artist) -> Artist:
        """Insert an artist, or return the existing one with the same external id."""

    @abstractmethod
    async def get_artist(self, artist_id: str) -> Artist | None:
        """Return the artist with *artist_id*, or ``None``."""

    @abstractmethod
    async def save_venue(self, venue: Venue) -> Venue:
        """Insert a venue, or return the existing one with the same external id."""

    @abstractmethod
    async def get_venue(self, venue_id: str) -> Venue | None:
        """Return the venue with *venue_id*, or ``None``."""

    # -- Concerts --------------------------------------------------------

    @abstractmethod
    async def create_concert(self, concert: Concert) -> Concert:
        """Persist a concert together with its artist relations.

        Artists and the venue referenced by the concert are saved first
        (deduplicated by external id); the returned concert carries the
        stored ids.
        """

    @abstractmethod
    async def get_concert(self, concert_id: str, owner_id: str) -> Concert | None:
        """Return the owner's concert, or ``None`` if missing or foreign."""

    @abstractmethod
    async def list_candidate_concerts(
        self,
        owner_id: str,
        window_start: datetime.date | None,
        window_end: datetime.date | None,
        venue_name_normalized: str | None,
    ) -> list[Concert]:
        """Return the owner's concerts worth scoring against an analysis.

        A concert qualifies when its date range intersects
        ``[window_start, window_end]`` or its venue's normalized name equals
        *venue_name_normalized*.  Either criterion may be ``None``.
        """

    # -- Media -----------------------------------------------------------

    @abstractmethod
    async def create_media(self, media: MediaItem) -> MediaItem:
        """Persist a newly uploaded media item.

        Raises ``ContractViolationError`` if the id is already taken.
        """

    @abstractmethod
    async def get_media(self, media_id: str, owner_id: str) -> MediaItem | None:
        """Return the owner's media item, or ``None`` if missing or foreign."""

    @abstractmethod
    async def transition_analysis(
        self,
        media_id: str,
        expected: Sequence[AnalysisStatus],
        new_state: AnalysisState,
    ) -> bool:
        """Atomically replace the analysis state if it is currently in *expected*.

        Returns
        -------
        bool
            ``True`` if this call performed the transition, ``False`` if the
            row was missing or in another state.
        """

    @abstractmethod
    async def assign_concert_if_unset(
        self,
        media_id: str,
        owner_id: str,
        concert_id: str,
        review_status: ReviewStatus,
        link_confidence: float | None = None,
        link_matched_via: MatchedVia | None = None,
    ) -> bool:
        """Set ``concert_id`` only while it is still unset.

        Returns ``True`` if this call wrote the link.
        """

    @abstractmethod
    async def mark_reviewed(
        self,
        media_id: str,
        owner_id: str,
        review_status: ReviewStatus,
    ) -> bool:
        """Update the review status; ``False`` if the item does not exist."""

    @abstractmethod
    async def list_processing_media(self) -> list[MediaItem]:
        """Return every media item currently in the Processing state."""

    # -- Units of work ---------------------------------------------------

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[IEntityTransaction]:
        """Open a write transaction.

        Committed when the ``async with`` block exits normally, rolled back
        if it raises.
        """

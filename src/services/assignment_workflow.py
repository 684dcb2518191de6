"""Assignment workflow: committing suggestions and lineups to the store.

Every write here is either a single conditional update (linking a media
item to a concert only while it is still unlinked) or one store
transaction (adding lineup artists), so retries and overlapping requests
converge on the same end state:

* confirming the same (media, concert) pair twice is a no-op, not an error
* adding an overlapping lineup twice never creates a second relation for
  the same artist
* a failure half-way through a lineup batch leaves the concert untouched
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

import structlog

from src.interfaces.entity_store import IEntityStore, IEntityTransaction
from src.models.entities import Artist, ConcertArtist
from src.models.lineup import AddArtistsOutcome, LineupArtist
from src.models.media import MatchSuggestion, MediaItem, ReviewStatus
from src.utils.errors import (
    ConcertNotFoundError,
    ContractViolationError,
    MediaNotFoundError,
)
from src.utils.logging import get_logger


def _name_key(name: str) -> str:
    return name.strip().casefold()


class AssignmentWorkflow:
    """Applies user decisions (and auto-links) to media items and concerts."""

    def __init__(self, store: IEntityStore) -> None:
        self._store = store
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # -- Media ↔ concert links ------------------------------------------------

    async def confirm_match(self, media_id: str, concert_id: str, owner_id: str) -> MediaItem:
        """Link *media_id* to *concert_id* on the owner's behalf.

        The concert must be one of the item's suggestions or one of the
        owner's own concerts.  Repeating a successful call returns the item
        unchanged.

        Raises
        ------
        MediaNotFoundError
            If the media item does not exist for this owner.
        ContractViolationError
            If the item is already linked to a different concert, or the
            concert is neither suggested nor owned by the caller.  Nothing is
            written in either case.
        """
        media = await self._require_media(media_id, owner_id)
        if media.concert_id == concert_id:
            return media
        if media.concert_id is not None:
            raise ContractViolationError(
                f"Media {media_id} is already linked to concert {media.concert_id}"
            )

        suggestion = media.suggestion_for(concert_id)
        concert = await self._store.get_concert(concert_id, owner_id)
        if concert is None:
            self._logger.warning(
                "confirm_match_rejected",
                media_id=media_id,
                concert_id=concert_id,
                suggested=suggestion is not None,
            )
            raise ContractViolationError(
                f"Concert {concert_id} is not a suggestion for media {media_id} "
                "and is not one of your concerts"
            )

        await self._store.assign_concert_if_unset(
            media_id,
            owner_id,
            concert_id,
            ReviewStatus.CONFIRMED,
            link_confidence=suggestion.confidence if suggestion else None,
            link_matched_via=suggestion.matched_via if suggestion else None,
        )
        # Whether or not this call won the conditional write, the stored
        # link decides the outcome.
        updated = await self._require_media(media_id, owner_id)
        if updated.concert_id != concert_id:
            raise ContractViolationError(
                f"Media {media_id} was linked to concert {updated.concert_id} concurrently"
            )

        self._logger.info(
            "match_confirmed",
            media_id=media_id,
            concert_id=concert_id,
            from_suggestion=suggestion is not None,
        )
        return updated

    async def skip_match(self, media_id: str, owner_id: str) -> MediaItem:
        """Mark the item reviewed without linking it.

        Suggestions are kept so the gallery can still show them later.
        """
        media = await self._require_media(media_id, owner_id)
        if media.concert_id is not None:
            raise ContractViolationError(
                f"Media {media_id} is already linked to concert {media.concert_id}"
            )
        if media.review_status != ReviewStatus.SKIPPED:
            await self._store.mark_reviewed(media_id, owner_id, ReviewStatus.SKIPPED)
            media = await self._require_media(media_id, owner_id)
        self._logger.info("match_skipped", media_id=media_id)
        return media

    async def auto_link(self, media_id: str, owner_id: str, suggestion: MatchSuggestion) -> bool:
        """Commit a high-confidence suggestion without user confirmation.

        Same conditional write as :meth:`confirm_match`.  Returns ``True`` if
        this call created the link, ``False`` if the item was already linked
        (by the user or an earlier auto-link).
        """
        linked = await self._store.assign_concert_if_unset(
            media_id,
            owner_id,
            suggestion.concert_id,
            ReviewStatus.AUTO_LINKED,
            link_confidence=suggestion.confidence,
            link_matched_via=suggestion.matched_via,
        )
        self._logger.info(
            "auto_link_attempted",
            media_id=media_id,
            concert_id=suggestion.concert_id,
            confidence=suggestion.confidence,
            linked=linked,
        )
        return linked

    # -- Lineups --------------------------------------------------------------

    async def add_lineup_artists(
        self,
        concert_id: str,
        artists: Sequence[LineupArtist],
        owner_id: str,
    ) -> AddArtistsOutcome:
        """Attach lineup artists to a concert in one transaction.

        Artists already on the concert (by external id, else by
        case-insensitive name) are skipped, as are repeats inside *artists*.

        Raises
        ------
        ConcertNotFoundError
            If the concert does not exist for this owner.
        src.utils.errors.StoreError
            If the batch could not be written; nothing was added.
        """
        concert = await self._store.get_concert(concert_id, owner_id)
        if concert is None:
            raise ConcertNotFoundError(f"Concert {concert_id} not found")

        added = 0
        skipped = 0
        async with self._store.transaction() as tx:
            existing = await tx.list_concert_artists(concert_id)
            present = _PresentArtists(existing)
            next_order = max((ca.set_order for ca in existing if ca.set_order is not None), default=0)

            for lineup_artist in artists:
                if present.contains(lineup_artist.external_id, lineup_artist.name):
                    skipped += 1
                    continue

                artist = await self._resolve_artist(tx, lineup_artist)
                if present.contains_id(artist.id):
                    skipped += 1
                    continue

                next_order += 1
                await tx.insert_concert_artist(
                    concert_id,
                    artist.id,
                    is_headliner=lineup_artist.is_headliner,
                    set_order=next_order,
                )
                present.add(artist)
                added += 1

        self._logger.info(
            "lineup_artists_added",
            concert_id=concert_id,
            requested=len(artists),
            added=added,
            skipped=skipped,
        )
        return AddArtistsOutcome(added=added, skipped=skipped)

    # -- Private helpers ------------------------------------------------------

    async def _require_media(self, media_id: str, owner_id: str) -> MediaItem:
        media = await self._store.get_media(media_id, owner_id)
        if media is None:
            raise MediaNotFoundError(f"Media {media_id} not found")
        return media

    @staticmethod
    async def _resolve_artist(tx: IEntityTransaction, lineup_artist: LineupArtist) -> Artist:
        """External id, then exact name, then a new artist record."""
        if lineup_artist.external_id:
            found = await tx.find_artist_by_external_id(lineup_artist.external_id)
            if found is not None:
                return found

        found = await tx.find_artist_by_name(lineup_artist.name)
        # A same-named artist carrying a different external id is someone else.
        if found is not None and (
            not lineup_artist.external_id
            or found.external_id in (None, lineup_artist.external_id)
        ):
            return found

        return await tx.insert_artist(
            Artist(
                id=str(uuid.uuid4()),
                name=lineup_artist.name.strip(),
                external_id=lineup_artist.external_id,
            )
        )


class _PresentArtists:
    """Dedup index over the artists already attached to one concert."""

    def __init__(self, relations: Sequence[ConcertArtist]) -> None:
        self._ids: set[str] = set()
        self._external_ids: set[str] = set()
        self._names: set[str] = set()
        self._names_without_external_id: set[str] = set()
        for relation in relations:
            self.add(relation.artist)

    def add(self, artist: Artist) -> None:
        self._ids.add(artist.id)
        self._names.add(_name_key(artist.name))
        if artist.external_id:
            self._external_ids.add(artist.external_id)
        else:
            self._names_without_external_id.add(_name_key(artist.name))

    def contains_id(self, artist_id: str) -> bool:
        return artist_id in self._ids

    def contains(self, external_id: str | None, name: str) -> bool:
        if external_id:
            if external_id in self._external_ids:
                return True
            # Fall back to the name only against artists stored without an id.
            return _name_key(name) in self._names_without_external_id
        return _name_key(name) in self._names

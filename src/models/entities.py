"""Core catalog entities: artists, venues and the user's concerts.

Artists and venues are shared reference data, deduplicated by their
external cross-reference key (MusicBrainz id for artists, setlist.fm venue
id for venues).  Concerts are owned by exactly one user and carry an
ordered list of performing artists.

All models are frozen Pydantic v2 models.  Field names are snake_case in
Python and camelCase on the wire (``alias_generator=to_camel``), so the
same models serve the entity store and the HTTP contract.
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    """Shared config: immutable, camelCase aliases, construct by field name."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Artist(DomainModel):
    """A performer.  ``external_id`` is the MusicBrainz id when known."""

    id: str
    name: str
    external_id: str | None = None


class Venue(DomainModel):
    """A place where concerts happen.

    ``external_id`` is the setlist.fm venue id; without it the lineup
    resolver has nothing to query and returns an empty lineup.
    """

    id: str
    name: str
    external_id: str | None = None
    city: str | None = None
    country: str | None = None


class ConcertArtist(DomainModel):
    """One (concert, artist) relation.

    Several artists may be headliners at once; ``set_order`` is only a
    sorting hint and is not unique.
    """

    artist: Artist
    is_headliner: bool = False
    set_order: int | None = None


class Concert(DomainModel):
    """A concert in a user's history.

    Multi-day events (festivals) set ``concert_end_date``; single-day
    concerts leave it ``None``.
    """

    id: str
    owner_id: str
    concert_date: datetime.date
    concert_end_date: datetime.date | None = None
    venue: Venue | None = None
    artists: list[ConcertArtist] = Field(default_factory=list)
    is_verified: bool = False
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    created_at: datetime.datetime

    @property
    def end_date(self) -> datetime.date:
        """Last day of the concert (same as the start for one-day shows)."""
        return self.concert_end_date or self.concert_date

    @property
    def artist_names(self) -> list[str]:
        return [ca.artist.name for ca in self.artists]

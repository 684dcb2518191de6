"""Abstract base class for external setlist sources.

A setlist source knows which artists performed at a venue on which days.
The lineup resolver only needs one query: "every performance at venue V
between two dates".  The adapter pattern keeps setlist.fm specifics (date
formats, pagination, API keys) out of the resolver.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class VenuePerformance:
    """One artist's performance at a venue on one day.

    Attributes
    ----------
    artist_name:
        Name as listed by the source.
    event_date:
        Calendar day of the performance.
    artist_external_id:
        Stable artist id from the source (MusicBrainz id for setlist.fm).
    song_count:
        Number of songs in the recorded setlist; ``0`` when unknown.
    event_name:
        Tour or event name attached to the setlist, if any.
    """

    artist_name: str
    event_date: date
    artist_external_id: str | None = None
    song_count: int = 0
    event_name: str | None = None


# Concrete implementation: SetlistFmProvider (src/providers/setlist/)
class ISetlistProvider(ABC):
    """Contract for external lineup / setlist catalogs."""

    @abstractmethod
    async def get_venue_performances(
        self,
        venue_external_id: str,
        start: date,
        end: date,
    ) -> list[VenuePerformance]:
        """Return every performance at the venue between *start* and *end* inclusive.

        Returns
        -------
        list[VenuePerformance]
            Possibly empty; an empty list means the source answered and had
            nothing for that window.

        Raises
        ------
        src.utils.errors.SetlistSourceError
            If the source could not be queried (network, auth, rate limit,
            malformed response).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"setlist_fm"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (API key present)."""

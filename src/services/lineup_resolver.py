"""Lineup resolution for multi-artist events.

When a user creates or edits a concert at a venue, the resolver asks the
external setlist source who else played there around that date, so the
user can add the rest of the bill in one step.

The query covers ``±lineup_window_days`` around the selected date so that
picking any day of a festival finds the whole run.  Only the run of
*consecutive* event days containing the selected date is kept; a separate
show at the same venue a few days earlier is not part of the festival.

Outcomes are kept deliberately distinct:

* venue has no external id, or the source has nothing on that date:
  a :class:`LineupSuggestionResult` with no artists ("nothing found")
* the source could not be queried: a :class:`ResolverError` value
  ("couldn't check"), never an exception and never an empty list
"""

from __future__ import annotations

import asyncio
import datetime
from collections import Counter, defaultdict
from collections.abc import Sequence

import structlog

from src.config.settings import Settings
from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.entity_store import IEntityStore
from src.interfaces.setlist_provider import ISetlistProvider, VenuePerformance
from src.models.lineup import (
    EventDay,
    LineupArtist,
    LineupSuggestionResult,
    ResolverError,
)
from src.utils.errors import SetlistSourceError, VenueNotFoundError
from src.utils.logging import get_logger
from src.utils.text_normalizer import normalize_name

_ONE_DAY = datetime.timedelta(days=1)


def day_label(day: datetime.date) -> str:
    """Short human label for an event day, e.g. ``"Fri, Jun 7"``."""
    return f"{day.strftime('%a, %b')} {day.day}"


def _artist_key(performance: VenuePerformance) -> str:
    if performance.artist_external_id:
        return f"id:{performance.artist_external_id}"
    return f"name:{normalize_name(performance.artist_name)}"


def _contiguous_run(days: set[datetime.date], anchor: datetime.date) -> list[datetime.date]:
    first = last = anchor
    while first - _ONE_DAY in days:
        first -= _ONE_DAY
    while last + _ONE_DAY in days:
        last += _ONE_DAY
    return [first + _ONE_DAY * i for i in range((last - first).days + 1)]


def build_lineup(
    performances: Sequence[VenuePerformance],
    queried_date: datetime.date,
) -> LineupSuggestionResult:
    """Group raw performances into the lineup of the run containing *queried_date*.

    Headliners are the artist(s) with the longest setlist on each day; when
    no setlist on a day has any songs, nobody is flagged that day.
    """
    days = {p.event_date for p in performances}
    if queried_date not in days:
        return LineupSuggestionResult(queried_date=queried_date)

    run = _contiguous_run(days, queried_date)
    run_days = set(run)
    in_run = [p for p in performances if p.event_date in run_days]

    # day -> artist key -> longest setlist that artist played that day
    songs_by_day: dict[datetime.date, dict[str, int]] = defaultdict(dict)
    names: dict[str, str] = {}
    external_ids: dict[str, str | None] = {}
    for performance in in_run:
        key = _artist_key(performance)
        names.setdefault(key, performance.artist_name)
        external_ids.setdefault(key, performance.artist_external_id)
        day_songs = songs_by_day[performance.event_date]
        day_songs[key] = max(day_songs.get(key, 0), performance.song_count)

    headliners: set[str] = set()
    for day_songs in songs_by_day.values():
        longest = max(day_songs.values())
        if longest > 0:
            headliners.update(key for key, count in day_songs.items() if count == longest)

    dates_by_artist: dict[str, list[datetime.date]] = defaultdict(list)
    for day in run:
        for key in songs_by_day[day]:
            dates_by_artist[key].append(day)

    artists = [
        LineupArtist(
            external_id=external_ids[key],
            name=names[key],
            is_headliner=key in headliners,
            performance_dates=dates,
        )
        for key, dates in dates_by_artist.items()
    ]
    artists.sort(key=lambda a: (a.performance_dates[0], not a.is_headliner, a.name.casefold()))

    event_days = [
        EventDay(date=day, display_label=day_label(day), artist_count=len(songs_by_day[day]))
        for day in run
    ]

    event_names = Counter(p.event_name for p in in_run if p.event_name)
    event_name = event_names.most_common(1)[0][0] if event_names else None

    return LineupSuggestionResult(
        artists=artists,
        event_name=event_name,
        queried_date=queried_date,
        event_days=event_days,
        is_multi_day=len(event_days) > 1,
    )


class LineupResolver:
    """Resolves the full lineup at a venue around a date.

    Parameters
    ----------
    setlist_provider:
        The external setlist source, or ``None`` when none is configured
        (every lookup then reports ``not_configured``).
    store:
        Used by :meth:`resolve_for_venue` to look up a venue's external id.
    settings:
        Supplies the window, timeout and cache TTL.
    cache:
        Optional cache for successful lookups.  Errors are never cached.
    """

    def __init__(
        self,
        setlist_provider: ISetlistProvider | None,
        store: IEntityStore,
        settings: Settings,
        cache: ICacheProvider | None = None,
    ) -> None:
        self._provider = setlist_provider
        self._store = store
        self._window = datetime.timedelta(days=settings.lineup_window_days)
        self._timeout = settings.lineup_timeout_seconds
        self._cache = cache
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # -- Public API -----------------------------------------------------------

    async def resolve(
        self,
        venue_external_id: str | None,
        date: datetime.date,
    ) -> LineupSuggestionResult | ResolverError:
        """Return the lineup at the venue around *date*, or why it couldn't be checked."""
        if not venue_external_id:
            self._logger.info("lineup_skipped_no_external_id", date=date.isoformat())
            return LineupSuggestionResult(queried_date=date)

        if self._provider is None or not self._provider.is_available():
            return ResolverError(
                reason="not_configured",
                message="No setlist source is configured",
                retryable=False,
            )

        cache_key = f"lineup:{venue_external_id}:{date.isoformat()}"
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                return cached

        try:
            performances = await asyncio.wait_for(
                self._provider.get_venue_performances(
                    venue_external_id,
                    date - self._window,
                    date + self._window,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._logger.warning(
                "lineup_timeout",
                venue_id=venue_external_id,
                date=date.isoformat(),
                timeout_s=self._timeout,
            )
            return ResolverError(
                reason="timeout",
                message=f"Setlist source did not answer within {self._timeout:g}s",
                retryable=True,
            )
        except SetlistSourceError as exc:
            self._logger.warning(
                "lineup_source_error",
                venue_id=venue_external_id,
                date=date.isoformat(),
                reason=exc.reason,
                error=str(exc),
            )
            return ResolverError(reason=exc.reason, message=exc.message, retryable=exc.retryable)

        result = build_lineup(performances, date)
        if self._cache is not None:
            await self._cache.set(cache_key, result)

        self._logger.info(
            "lineup_resolved",
            venue_id=venue_external_id,
            date=date.isoformat(),
            artist_count=len(result.artists),
            event_days=len(result.event_days),
            event_name=result.event_name,
        )
        return result

    async def resolve_for_venue(
        self,
        venue_id: str,
        date: datetime.date,
    ) -> LineupSuggestionResult | ResolverError:
        """Resolve by the engine's own venue id.

        Raises
        ------
        VenueNotFoundError
            If the venue is unknown to the entity store.
        """
        venue = await self._store.get_venue(venue_id)
        if venue is None:
            raise VenueNotFoundError(f"Venue {venue_id} not found")
        return await self.resolve(venue.external_id, date)

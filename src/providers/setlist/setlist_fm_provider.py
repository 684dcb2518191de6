"""setlist.fm REST API provider.

Implements :class:`ISetlistProvider` on top of the ``/venue/{id}/setlists``
endpoint.  setlist.fm returns a venue's setlists newest-first, 20 per page,
with ``eventDate`` in ``dd-MM-yyyy`` form; this adapter walks pages until it
has passed the start of the requested window (or hits ``max_pages``) and
turns each setlist into a :class:`VenuePerformance`.

Failures are raised as :class:`SetlistSourceError` with a reason code so
the lineup resolver can report *why* the source could not be checked.
A 404 is not a failure: setlist.fm answers 404 for a venue with no
setlists at all.
"""

from __future__ import annotations

import asyncio
import time
from datetime import date, datetime
from typing import Any

import httpx

from src.interfaces.setlist_provider import ISetlistProvider, VenuePerformance
from src.utils.errors import SetlistSourceError
from src.utils.logging import get_logger

_DEFAULT_BASE_URL = "https://api.setlist.fm/rest/1.0"
_USER_AGENT = "concert-match-engine/0.1.0"
_EVENT_DATE_FORMAT = "%d-%m-%Y"
_MIN_REQUEST_INTERVAL = 0.5  # seconds; setlist.fm allows ~2 req/s per key
_DEFAULT_MAX_PAGES = 5


def parse_event_date(raw: str) -> date:
    """Parse a setlist.fm ``dd-MM-yyyy`` event date."""
    return datetime.strptime(raw, _EVENT_DATE_FORMAT).date()


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _count_songs(setlist: dict[str, Any]) -> int:
    sets = setlist.get("sets")
    sets = sets.get("set") if isinstance(sets, dict) else None
    if not isinstance(sets, list):
        return 0
    return sum(
        len(s["song"]) for s in sets if isinstance(s, dict) and isinstance(s.get("song"), list)
    )


class SetlistFmProvider(ISetlistProvider):
    """Setlist source backed by the setlist.fm REST API.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient`` for testability and connection pooling.
    api_key:
        setlist.fm API key sent as ``x-api-key``.
    base_url:
        API root; overridable for tests.
    max_pages:
        Upper bound on pages fetched per query.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        base_url: str = _DEFAULT_BASE_URL,
        max_pages: int = _DEFAULT_MAX_PAGES,
        request_interval: float = _MIN_REQUEST_INTERVAL,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._max_pages = max(1, max_pages)
        self._request_interval = request_interval
        self._last_request_time: float = 0.0
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _throttle(self) -> None:
        """Enforce minimum delay between requests."""
        now = time.monotonic()
        elapsed = now - self._last_request_time
        if self._last_request_time > 0 and elapsed < self._request_interval:
            await asyncio.sleep(self._request_interval - elapsed)
        self._last_request_time = time.monotonic()

    def _error(self, message: str, reason: str, retryable: bool = True) -> SetlistSourceError:
        return SetlistSourceError(
            message=message,
            provider_name=self.get_provider_name(),
            reason=reason,
            retryable=retryable,
        )

    async def _fetch_page(self, venue_external_id: str, page: int) -> dict[str, Any] | None:
        """GET one page of a venue's setlists.

        Returns ``None`` when setlist.fm answers 404 (no setlists / past the
        last page).
        """
        await self._throttle()
        url = f"{self._base_url}/venue/{venue_external_id}/setlists"
        headers = {
            "x-api-key": self._api_key,
            "Accept": "application/json",
            "User-Agent": _USER_AGENT,
        }
        try:
            response = await self._http.get(url, params={"p": page}, headers=headers)
        except httpx.TimeoutException as exc:
            self._logger.warning("setlist_fm_timeout", venue_id=venue_external_id, page=page)
            raise self._error(f"setlist.fm request timed out: {exc}", "timeout") from exc
        except httpx.HTTPError as exc:
            self._logger.warning(
                "setlist_fm_request_failed",
                venue_id=venue_external_id,
                page=page,
                error=str(exc),
            )
            raise self._error(f"setlist.fm request failed: {exc}", "network_error") from exc

        status = response.status_code
        if status == 404:
            return None
        if status == 429:
            self._logger.warning("setlist_fm_rate_limited", venue_id=venue_external_id)
            raise self._error("setlist.fm rate limit exceeded", "rate_limited")
        if status in (401, 403):
            self._logger.error("setlist_fm_unauthorized", status=status)
            raise self._error("setlist.fm rejected the API key", "unauthorized", retryable=False)
        if status >= 500:
            self._logger.warning("setlist_fm_server_error", status=status)
            raise self._error(f"setlist.fm returned HTTP {status}", "unavailable")
        if status != 200:
            self._logger.warning("setlist_fm_unexpected_status", status=status)
            raise self._error(f"setlist.fm returned HTTP {status}", "bad_response")

        try:
            data = response.json()
        except ValueError as exc:
            raise self._error("setlist.fm returned invalid JSON", "bad_response") from exc
        if not isinstance(data, dict):
            raise self._error("setlist.fm returned an unexpected payload", "bad_response")
        return data

    def _to_performance(self, setlist: dict[str, Any]) -> VenuePerformance | None:
        artist = setlist.get("artist") or {}
        if not isinstance(artist, dict):
            self._logger.debug("setlist_fm_bad_artist", artist=repr(artist))
            return None
        name = artist.get("name")
        name = name.strip() if isinstance(name, str) else ""
        raw_date = setlist.get("eventDate")
        if not name or not raw_date:
            return None
        try:
            event_date = parse_event_date(raw_date)
        except (TypeError, ValueError):
            self._logger.debug("setlist_fm_bad_event_date", event_date=raw_date)
            return None
        tour = setlist.get("tour")
        return VenuePerformance(
            artist_name=name,
            event_date=event_date,
            artist_external_id=_text(artist.get("mbid")),
            song_count=_count_songs(setlist),
            event_name=_text(tour.get("name")) if isinstance(tour, dict) else None,
        )

    # ------------------------------------------------------------------
    # ISetlistProvider implementation
    # ------------------------------------------------------------------

    async def get_venue_performances(
        self,
        venue_external_id: str,
        start: date,
        end: date,
    ) -> list[VenuePerformance]:
        performances: list[VenuePerformance] = []
        pages_fetched = 0

        for page in range(1, self._max_pages + 1):
            data = await self._fetch_page(venue_external_id, page)
            if data is None:
                break
            pages_fetched += 1

            setlists = data.get("setlist") or []
            if not isinstance(setlists, list):
                raise self._error("setlist.fm 'setlist' field is not a list", "bad_response")

            oldest_on_page: date | None = None
            for raw in setlists:
                if not isinstance(raw, dict):
                    continue
                performance = self._to_performance(raw)
                if performance is None:
                    continue
                if oldest_on_page is None or performance.event_date < oldest_on_page:
                    oldest_on_page = performance.event_date
                if start <= performance.event_date <= end:
                    performances.append(performance)

            # Pages are newest-first, so once a page reaches back past the
            # window start there is nothing older worth fetching.
            if oldest_on_page is None or oldest_on_page < start:
                break
            try:
                total = int(data.get("total") or 0)
                per_page = int(data.get("itemsPerPage") or len(setlists) or 1)
            except (TypeError, ValueError) as exc:
                raise self._error(
                    "setlist.fm paging fields are not numeric", "bad_response"
                ) from exc
            if page * per_page >= total:
                break

        self._logger.info(
            "setlist_fm_venue_performances",
            venue_id=venue_external_id,
            start=start.isoformat(),
            end=end.isoformat(),
            pages=pages_fetched,
            performance_count=len(performances),
        )
        return performances

    def get_provider_name(self) -> str:
        return "setlist_fm"

    def is_available(self) -> bool:
        return bool(self._api_key)

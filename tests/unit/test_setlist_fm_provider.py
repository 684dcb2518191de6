"""Unit tests for SetlistFmProvider.

HTTP is mocked with ``httpx.MockTransport``; no request leaves the process.
"""

from __future__ import annotations

from datetime import date
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from src.interfaces.entity_store import IEntityStore
from src.models.lineup import ResolverError
from src.providers.setlist.setlist_fm_provider import SetlistFmProvider, parse_event_date
from src.services.lineup_resolver import LineupResolver
from src.utils.errors import SetlistSourceError

BASE_URL = "https://setlist.test/rest/1.0"


def _setlist(
    artist: str,
    event_date: str,
    mbid: str | None = None,
    songs: int = 10,
    tour: str | None = None,
) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "artist": {"name": artist, "mbid": mbid},
        "eventDate": event_date,
        "sets": {"set": [{"song": [{"name": f"Song {i}"} for i in range(songs)]}]},
    }
    if tour:
        entry["tour"] = {"name": tour}
    return entry


def _page(setlists: list[dict[str, Any]], page: int = 1, total: int | None = None) -> dict:
    return {
        "type": "setlists",
        "itemsPerPage": 20,
        "page": page,
        "total": total if total is not None else len(setlists),
        "setlist": setlists,
    }


def _provider(handler, max_pages: int = 5) -> SetlistFmProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SetlistFmProvider(
        http_client=client,
        api_key="test-key",
        base_url=BASE_URL,
        max_pages=max_pages,
        request_interval=0.0,
    )


class TestParseEventDate:
    def test_day_month_year(self) -> None:
        assert parse_event_date("07-06-2024") == date(2024, 6, 7)

    def test_rejects_iso(self) -> None:
        with pytest.raises(ValueError):
            parse_event_date("2024-06-07")


class TestGetVenuePerformances:
    @pytest.mark.asyncio
    async def test_maps_setlists_to_performances(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json=_page(
                    [
                        _setlist("Headliner A", "07-06-2024", "mbid-a", songs=20, tour="Summer Fest"),
                        _setlist("Opener B", "07-06-2024", None, songs=8),
                    ]
                ),
            )

        provider = _provider(handler)
        performances = await provider.get_venue_performances(
            "sfm-venue", date(2024, 6, 4), date(2024, 6, 10)
        )

        assert [p.artist_name for p in performances] == ["Headliner A", "Opener B"]
        assert performances[0].artist_external_id == "mbid-a"
        assert performances[0].song_count == 20
        assert performances[0].event_name == "Summer Fest"
        assert performances[1].artist_external_id is None
        assert seen[0].url.path == "/rest/1.0/venue/sfm-venue/setlists"
        assert seen[0].url.params["p"] == "1"
        assert seen[0].headers["x-api-key"] == "test-key"

    @pytest.mark.asyncio
    async def test_filters_to_window(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=_page(
                    [
                        _setlist("Too Late", "20-06-2024"),
                        _setlist("In Window", "08-06-2024"),
                        _setlist("Too Early", "01-06-2024"),
                    ]
                ),
            )

        performances = await _provider(handler).get_venue_performances(
            "sfm-venue", date(2024, 6, 5), date(2024, 6, 11)
        )
        assert [p.artist_name for p in performances] == ["In Window"]

    @pytest.mark.asyncio
    async def test_follows_pages_until_past_window_start(self) -> None:
        pages = {
            "1": _page([_setlist("Day Three", "09-06-2024")], page=1, total=60),
            "2": _page([_setlist("Day Two", "08-06-2024")], page=2, total=60),
            "3": _page([_setlist("Old Show", "01-01-2024")], page=3, total=60),
        }
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = request.url.params["p"]
            requested.append(page)
            return httpx.Response(200, json=pages[page])

        performances = await _provider(handler).get_venue_performances(
            "sfm-venue", date(2024, 6, 5), date(2024, 6, 11)
        )

        assert requested == ["1", "2", "3"]
        assert [p.artist_name for p in performances] == ["Day Three", "Day Two"]

    @pytest.mark.asyncio
    async def test_stops_at_last_page(self) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.params["p"])
            return httpx.Response(200, json=_page([_setlist("Only", "08-06-2024")], total=1))

        await _provider(handler).get_venue_performances(
            "sfm-venue", date(2024, 6, 5), date(2024, 6, 11)
        )
        assert requested == ["1"]

    @pytest.mark.asyncio
    async def test_respects_max_pages(self) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.params["p"])
            return httpx.Response(200, json=_page([_setlist("Busy", "08-06-2024")], total=500))

        await _provider(handler, max_pages=2).get_venue_performances(
            "sfm-venue", date(2024, 6, 5), date(2024, 6, 11)
        )
        assert requested == ["1", "2"]

    @pytest.mark.asyncio
    async def test_404_means_no_setlists(self) -> None:
        provider = _provider(lambda request: httpx.Response(404, json={"code": 404}))
        performances = await provider.get_venue_performances(
            "sfm-venue", date(2024, 6, 5), date(2024, 6, 11)
        )
        assert performances == []

    @pytest.mark.asyncio
    async def test_skips_malformed_entries(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=_page(
                    [
                        {"artist": {"name": "No Date"}},
                        _setlist("Bad Date", "2024/06/08"),
                        _setlist("Good", "08-06-2024"),
                    ]
                ),
            )

        performances = await _provider(handler).get_venue_performances(
            "sfm-venue", date(2024, 6, 5), date(2024, 6, 11)
        )
        assert [p.artist_name for p in performances] == ["Good"]

    @pytest.mark.asyncio
    async def test_skips_entries_with_non_object_fields(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=_page(
                    [
                        {"artist": "Headliner A", "eventDate": "08-06-2024"},
                        {"artist": {"name": 42}, "eventDate": "08-06-2024"},
                        {"artist": {"name": "Odd Date"}, "eventDate": 8062024},
                        {
                            "artist": {"name": "Loose Fields", "mbid": 7},
                            "eventDate": "08-06-2024",
                            "tour": "Summer Fest",
                            "sets": {"set": "encore"},
                        },
                    ]
                ),
            )

        performances = await _provider(handler).get_venue_performances(
            "sfm-venue", date(2024, 6, 5), date(2024, 6, 11)
        )

        assert [p.artist_name for p in performances] == ["Loose Fields"]
        assert performances[0].artist_external_id is None
        assert performances[0].event_name is None
        assert performances[0].song_count == 0


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "reason", "retryable"),
        [
            (429, "rate_limited", True),
            (401, "unauthorized", False),
            (403, "unauthorized", False),
            (503, "unavailable", True),
            (400, "bad_response", True),
        ],
    )
    async def test_status_codes(self, status: int, reason: str, retryable: bool) -> None:
        provider = _provider(lambda request: httpx.Response(status))

        with pytest.raises(SetlistSourceError) as exc_info:
            await provider.get_venue_performances("sfm-venue", date(2024, 6, 5), date(2024, 6, 11))

        assert exc_info.value.reason == reason
        assert exc_info.value.retryable is retryable
        assert exc_info.value.provider_name == "setlist_fm"

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        provider = _provider(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

        with pytest.raises(SetlistSourceError) as exc_info:
            await provider.get_venue_performances("sfm-venue", date(2024, 6, 5), date(2024, 6, 11))
        assert exc_info.value.reason == "bad_response"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "paging",
        [{"total": "n/a"}, {"itemsPerPage": "twenty"}, {"total": {"count": 3}}],
    )
    async def test_non_numeric_paging_fields(self, paging: dict[str, Any]) -> None:
        payload = {**_page([_setlist("Day Two", "08-06-2024")], total=60), **paging}
        provider = _provider(lambda request: httpx.Response(200, json=payload))

        with pytest.raises(SetlistSourceError) as exc_info:
            await provider.get_venue_performances("sfm-venue", date(2024, 6, 5), date(2024, 6, 11))
        assert exc_info.value.reason == "bad_response"

    @pytest.mark.asyncio
    async def test_malformed_payload_reaches_resolver_as_error(self, settings) -> None:
        payload = {**_page([_setlist("Day Two", "08-06-2024")], total=60), "total": "n/a"}
        provider = _provider(lambda request: httpx.Response(200, json=payload))
        resolver = LineupResolver(provider, MagicMock(spec=IEntityStore), settings)

        result = await resolver.resolve("sfm-venue", date(2024, 6, 8))

        assert isinstance(result, ResolverError)
        assert result.reason == "bad_response"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(SetlistSourceError) as exc_info:
            await _provider(handler).get_venue_performances(
                "sfm-venue", date(2024, 6, 5), date(2024, 6, 11)
            )
        assert exc_info.value.reason == "timeout"

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SetlistSourceError) as exc_info:
            await _provider(handler).get_venue_performances(
                "sfm-venue", date(2024, 6, 5), date(2024, 6, 11)
            )
        assert exc_info.value.reason == "network_error"


class TestMetadata:
    def test_provider_name(self) -> None:
        assert _provider(lambda request: httpx.Response(200)).get_provider_name() == "setlist_fm"

    def test_available_only_with_key(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        assert not SetlistFmProvider(http_client=client, api_key="").is_available()
        assert SetlistFmProvider(http_client=client, api_key="k").is_available()

"""Shared pytest fixtures for the concert-matching engine test suite."""

from __future__ import annotations

import datetime
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from src.config.settings import Settings
from src.interfaces.media_classifier import IMediaClassifier
from src.interfaces.setlist_provider import ISetlistProvider, VenuePerformance
from src.models.entities import Artist, Concert, ConcertArtist, Venue
from src.models.media import (
    AnalysisResult,
    ArtistGuess,
    MediaItem,
    MediaKind,
    VenueGuess,
    VenueType,
)
from src.providers.store.sqlite_entity_store import SQLiteEntityStore

OWNER = "user-1"
OTHER_OWNER = "user-2"


# ---------------------------------------------------------------------------
# Settings & store
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the developer's .env and environment keys."""
    return Settings(
        _env_file=None,
        anthropic_api_key="",
        setlist_fm_api_key="",
        engine_db_path=str(tmp_path / "engine.db"),
        classifier_timeout_seconds=5.0,
        lineup_timeout_seconds=5.0,
    )


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteEntityStore:
    """An initialized store backed by a temporary database file."""
    entity_store = SQLiteEntityStore(db_path=tmp_path / "engine.db")
    await entity_store.initialize()
    return entity_store


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def build_concert(
    *,
    owner_id: str = OWNER,
    concert_date: datetime.date = datetime.date(2023, 6, 10),
    concert_end_date: datetime.date | None = None,
    venue_name: str | None = "Hollywood Bowl",
    venue_external_id: str | None = None,
    artists: list[tuple[str, str | None]] | None = None,
    created_at: datetime.datetime | None = None,
    concert_id: str | None = None,
) -> Concert:
    """Build an unsaved concert; *artists* is a list of (name, external_id)."""
    venue = None
    if venue_name is not None:
        venue = Venue(id=str(uuid.uuid4()), name=venue_name, external_id=venue_external_id)
    relations = [
        ConcertArtist(
            artist=Artist(id=str(uuid.uuid4()), name=name, external_id=external_id),
            is_headliner=index == 1,
            set_order=index,
        )
        for index, (name, external_id) in enumerate(artists or [("boygenius", None)], start=1)
    ]
    return Concert(
        id=concert_id or str(uuid.uuid4()),
        owner_id=owner_id,
        concert_date=concert_date,
        concert_end_date=concert_end_date,
        venue=venue,
        artists=relations,
        created_at=created_at or datetime.datetime.now(tz=datetime.timezone.utc),  # noqa: UP017
    )


def build_media(
    *,
    owner_id: str = OWNER,
    kind: MediaKind = MediaKind.IMAGE,
    captured_at: datetime.datetime | None = None,
    media_id: str | None = None,
    **overrides: Any,
) -> MediaItem:
    return MediaItem(
        id=media_id or str(uuid.uuid4()),
        owner_id=owner_id,
        kind=kind,
        storage_ref=overrides.pop("storage_ref", "/uploads/photo.jpg"),
        captured_at=captured_at,
        **overrides,
    )


def build_result(
    *,
    artist: str | None = "Boygenius",
    artist_external_id: str | None = None,
    venue: str | None = "Hollywood Bowl",
    estimated_date: datetime.date | None = datetime.date(2023, 6, 10),
    overall_confidence: float = 0.92,
) -> AnalysisResult:
    return AnalysisResult(
        artist=ArtistGuess(name=artist, external_id=artist_external_id, confidence=0.95),
        venue=VenueGuess(name=venue, city="Los Angeles", type=VenueType.OUTDOOR, confidence=0.9),
        estimated_date=estimated_date,
        overall_confidence=overall_confidence,
        reasoning="Stage design matches the 2023 tour.",
    )


@pytest.fixture
def concert_factory() -> Callable[..., Concert]:
    return build_concert


@pytest.fixture
def media_factory() -> Callable[..., MediaItem]:
    return build_media


@pytest.fixture
def result_factory() -> Callable[..., AnalysisResult]:
    return build_result


# ---------------------------------------------------------------------------
# Provider doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_classifier() -> MagicMock:
    """A classifier that answers with the default Boygenius result."""
    classifier = MagicMock(spec=IMediaClassifier)
    classifier.analyze = AsyncMock(return_value=build_result())
    classifier.get_provider_name.return_value = "mock_classifier"
    return classifier


@pytest.fixture
def mock_setlist_provider() -> MagicMock:
    """A setlist source that reports no performances."""
    provider = MagicMock(spec=ISetlistProvider)
    provider.get_venue_performances = AsyncMock(return_value=[])
    provider.get_provider_name.return_value = "mock_setlist"
    provider.is_available.return_value = True
    return provider


@pytest.fixture
def festival_performances() -> list[VenuePerformance]:
    """Three consecutive festival days plus an unrelated show two days earlier."""
    fri = datetime.date(2024, 6, 7)
    sat = datetime.date(2024, 6, 8)
    sun = datetime.date(2024, 6, 9)
    earlier = datetime.date(2024, 6, 5)
    return [
        VenuePerformance("Headliner A", fri, "mbid-a", song_count=20, event_name="Summer Fest"),
        VenuePerformance("Opener B", fri, "mbid-b", song_count=8, event_name="Summer Fest"),
        VenuePerformance("Headliner C", sat, "mbid-c", song_count=18, event_name="Summer Fest"),
        VenuePerformance("Opener B", sat, "mbid-b", song_count=9, event_name="Summer Fest"),
        VenuePerformance("Headliner D", sun, None, song_count=22, event_name="Summer Fest"),
        VenuePerformance("Club Act", earlier, "mbid-x", song_count=12, event_name=None),
    ]

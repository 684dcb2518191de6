"""FastAPI API routes for the concert-matching engine.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.  The caller's identity arrives
in the ``X-Owner-Id`` header, set by the authentication layer in front of
this service; media and concerts owned by someone else look exactly like
missing ones.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                              Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/media                         POST    Register an uploaded asset
# /api/v1/media/{id}                    GET     Poll analysis state + suggestions
# /api/v1/media/{id}/analyze            POST    Start analysis (202, idempotent)
# /api/v1/media/{id}/confirm            POST    Link media to a concert
# /api/v1/media/{id}/skip               POST    Dismiss suggestions
# /api/v1/concerts                      POST    Create a concert
# /api/v1/concerts/{id}                 GET     Read a concert
# /api/v1/concerts/{id}/artists         POST    Add lineup artists
# /api/v1/lineup?venueId=&date=         GET     Lineup by setlist.fm venue id
# /api/v1/venues/{id}/lineup?date=      GET     Lineup by engine venue id
# /api/v1/health                        GET     Health check + provider status
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import datetime
import uuid
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from src.api.schemas import (
    AddArtistsRequest,
    ConfirmMatchRequest,
    CreateConcertRequest,
    CreateMediaRequest,
    ErrorResponse,
    HealthResponse,
    LineupErrorResponse,
    MediaItemView,
)
from src.interfaces.entity_store import IEntityStore
from src.models.entities import Artist, Concert, ConcertArtist, Venue
from src.models.lineup import AddArtistsOutcome, LineupSuggestionResult, ResolverError
from src.models.media import MediaItem, ReviewStatus
from src.services.analysis_coordinator import AnalysisCoordinator
from src.services.assignment_workflow import AssignmentWorkflow
from src.services.lineup_resolver import LineupResolver
from src.utils.errors import ConcertNotFoundError, ContractViolationError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"
_SETLIST_DATE_FORMAT = "%d-%m-%Y"


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_store(request: Request) -> IEntityStore:
    """Return the entity store from application state."""
    return request.app.state.store


def _get_coordinator(request: Request) -> AnalysisCoordinator:
    """Return the analysis coordinator from application state."""
    return request.app.state.coordinator


def _get_workflow(request: Request) -> AssignmentWorkflow:
    """Return the assignment workflow from application state."""
    return request.app.state.workflow


def _get_resolver(request: Request) -> LineupResolver:
    """Return the lineup resolver from application state."""
    return request.app.state.lineup_resolver


def _get_owner_id(x_owner_id: Annotated[str | None, Header()] = None) -> str:
    """Return the authenticated owner id, or reject the request."""
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    return x_owner_id.strip()


StoreDep = Annotated[IEntityStore, Depends(_get_store)]
CoordinatorDep = Annotated[AnalysisCoordinator, Depends(_get_coordinator)]
WorkflowDep = Annotated[AssignmentWorkflow, Depends(_get_workflow)]
ResolverDep = Annotated[LineupResolver, Depends(_get_resolver)]
OwnerDep = Annotated[str, Depends(_get_owner_id)]


def parse_lineup_date(raw: str) -> datetime.date:
    """Accept ISO ``YYYY-MM-DD`` or setlist.fm-style ``dd-MM-yyyy``."""
    try:
        return datetime.date.fromisoformat(raw)
    except ValueError:
        pass
    try:
        return datetime.datetime.strptime(raw, _SETLIST_DATE_FORMAT).date()
    except ValueError as exc:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid date '{raw}': expected YYYY-MM-DD or dd-MM-yyyy",
        ) from exc


def _lineup_response(
    outcome: LineupSuggestionResult | ResolverError,
) -> LineupSuggestionResult | LineupErrorResponse:
    if isinstance(outcome, ResolverError):
        return LineupErrorResponse(
            error=outcome.reason,
            message=outcome.message,
            retryable=outcome.retryable,
        )
    return outcome


# ---------------------------------------------------------------------------
# Media endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/media",
    response_model=MediaItemView,
    status_code=201,
    responses={409: {"model": ErrorResponse}},
    summary="Register an uploaded media item",
)
async def create_media(body: CreateMediaRequest, owner_id: OwnerDep, store: StoreDep) -> MediaItemView:
    """Record an asset already stored by the upload subsystem.

    A concert chosen at upload time is linked immediately (review status
    ``manual``); analysis can still run afterwards.
    """
    if body.concert_id is not None:
        concert = await store.get_concert(body.concert_id, owner_id)
        if concert is None:
            raise ContractViolationError(f"Concert {body.concert_id} is not one of your concerts")

    media = MediaItem(
        id=body.id or str(uuid.uuid4()),
        owner_id=owner_id,
        kind=body.kind,
        storage_ref=body.storage_ref,
        thumbnail_ref=body.thumbnail_ref,
        original_filename=body.original_filename,
        captured_at=body.captured_at,
        location=body.location,
        concert_id=body.concert_id,
        review_status=ReviewStatus.MANUAL if body.concert_id else ReviewStatus.UNREVIEWED,
    )
    created = await store.create_media(media)
    return MediaItemView.from_media(created)


@router.get(
    "/media/{media_id}",
    response_model=MediaItemView,
    responses={404: {"model": ErrorResponse}},
    summary="Get a media item's analysis state",
)
async def get_media(media_id: str, owner_id: OwnerDep, coordinator: CoordinatorDep) -> MediaItemView:
    """Return status, result or error, suggestions and the linked concert."""
    view = await coordinator.get_status(media_id, owner_id)
    return MediaItemView.from_media(view.media, retry_after_ms=view.retry_after_ms)


@router.post(
    "/media/{media_id}/analyze",
    status_code=202,
    responses={404: {"model": ErrorResponse}},
    summary="Start content analysis",
)
async def analyze_media(media_id: str, owner_id: OwnerDep, coordinator: CoordinatorDep) -> dict[str, Any]:
    """Fire-and-forget.  Resubmitting while Processing or after Completed is a no-op."""
    await coordinator.submit(media_id, owner_id)
    return {}


@router.post(
    "/media/{media_id}/confirm",
    response_model=MediaItemView,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Confirm a match suggestion",
)
async def confirm_match(
    media_id: str,
    body: ConfirmMatchRequest,
    owner_id: OwnerDep,
    workflow: WorkflowDep,
) -> MediaItemView:
    media = await workflow.confirm_match(media_id, body.concert_id, owner_id)
    return MediaItemView.from_media(media)


@router.post(
    "/media/{media_id}/skip",
    response_model=MediaItemView,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Dismiss match suggestions",
)
async def skip_match(media_id: str, owner_id: OwnerDep, workflow: WorkflowDep) -> MediaItemView:
    media = await workflow.skip_match(media_id, owner_id)
    return MediaItemView.from_media(media)


# ---------------------------------------------------------------------------
# Concert endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/concerts",
    response_model=Concert,
    status_code=201,
    summary="Create a concert",
)
async def create_concert(body: CreateConcertRequest, owner_id: OwnerDep, store: StoreDep) -> Concert:
    if body.concert_end_date is not None and body.concert_end_date < body.concert_date:
        raise HTTPException(status_code=422, detail="concertEndDate is before concertDate")

    venue = None
    if body.venue is not None:
        venue = Venue(
            id=str(uuid.uuid4()),
            name=body.venue.name,
            external_id=body.venue.external_id,
            city=body.venue.city,
            country=body.venue.country,
        )
    concert = Concert(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        concert_date=body.concert_date,
        concert_end_date=body.concert_end_date,
        venue=venue,
        artists=[
            ConcertArtist(
                artist=Artist(id=str(uuid.uuid4()), name=a.name, external_id=a.external_id),
                is_headliner=a.is_headliner,
                set_order=a.set_order if a.set_order is not None else index,
            )
            for index, a in enumerate(body.artists, start=1)
        ],
        is_verified=body.is_verified,
        created_at=datetime.datetime.now(tz=datetime.timezone.utc),  # noqa: UP017
    )
    return await store.create_concert(concert)


@router.get(
    "/concerts/{concert_id}",
    response_model=Concert,
    responses={404: {"model": ErrorResponse}},
    summary="Get a concert",
)
async def get_concert(concert_id: str, owner_id: OwnerDep, store: StoreDep) -> Concert:
    concert = await store.get_concert(concert_id, owner_id)
    if concert is None:
        raise ConcertNotFoundError(f"Concert {concert_id} not found")
    return concert


@router.post(
    "/concerts/{concert_id}/artists",
    response_model=AddArtistsOutcome,
    responses={404: {"model": ErrorResponse}},
    summary="Add lineup artists to a concert",
)
async def add_concert_artists(
    concert_id: str,
    body: AddArtistsRequest,
    owner_id: OwnerDep,
    workflow: WorkflowDep,
) -> AddArtistsOutcome:
    """Already-present artists are skipped and counted, never duplicated."""
    return await workflow.add_lineup_artists(concert_id, body.artists, owner_id)


# ---------------------------------------------------------------------------
# Lineup endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/lineup",
    response_model=LineupSuggestionResult | LineupErrorResponse,
    summary="Resolve the lineup at a venue around a date",
)
async def get_lineup(
    owner_id: OwnerDep,
    resolver: ResolverDep,
    date: Annotated[str, Query(description="YYYY-MM-DD or dd-MM-yyyy")],
    venue_id: Annotated[str | None, Query(alias="venueId")] = None,
) -> LineupSuggestionResult | LineupErrorResponse:
    """``venueId`` is the setlist.fm venue id.

    Source failures come back as ``{"error": reasonCode}`` with HTTP 200,
    so the concert form can carry on without a lineup.
    """
    outcome = await resolver.resolve(venue_id, parse_lineup_date(date))
    return _lineup_response(outcome)


@router.get(
    "/venues/{venue_id}/lineup",
    response_model=LineupSuggestionResult | LineupErrorResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Resolve the lineup at a stored venue around a date",
)
async def get_venue_lineup(
    venue_id: str,
    owner_id: OwnerDep,
    resolver: ResolverDep,
    date: Annotated[str, Query(description="YYYY-MM-DD or dd-MM-yyyy")],
) -> LineupSuggestionResult | LineupErrorResponse:
    outcome = await resolver.resolve_for_venue(venue_id, parse_lineup_date(date))
    return _lineup_response(outcome)


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability.

    The store is critical; the classifier and setlist source only degrade
    the service (analysis fails with ``not_configured``, lineups report
    ``not_configured``).
    """
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is not None:
        providers["inflight_analyses"] = coordinator.inflight_count
    lineup_cache = getattr(request.app.state, "lineup_cache", None)
    if lineup_cache is not None:
        providers["lineup_cache"] = lineup_cache.stats()

    if not providers.get("store", False):
        status = "unhealthy"
    elif providers.get("classifier", False) and providers.get("setlist", False):
        status = "healthy"
    else:
        status = "degraded"

    return HealthResponse(status=status, version=_VERSION, providers=providers)

"""Pydantic request/response schemas for the concert-matching API.

Defines the public contract for every REST endpoint: media registration
and polling, match confirmation, lineup lookup, concert creation and
health.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# These models define the *shape* of every HTTP request and response
# body.  FastAPI uses them for validation (bad input → 422), for
# serialization (via response_model=...) and for the OpenAPI docs.
#
# Field names are snake_case in Python and camelCase on the wire
# (``alias_generator=to_camel``); requests accept either spelling.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.lineup import LineupArtist
from src.models.media import (
    AnalysisError,
    AnalysisResult,
    AnalysisStatus,
    GeoPoint,
    MatchedVia,
    MatchSuggestion,
    MediaItem,
    MediaKind,
    ReviewStatus,
)


class ApiModel(BaseModel):
    """Base for API bodies: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------


class CreateMediaRequest(ApiModel):
    """An asset the upload subsystem has already stored."""

    id: str | None = Field(default=None, description="Client-chosen id; generated when omitted")
    kind: MediaKind = MediaKind.IMAGE
    storage_ref: str = Field(..., min_length=1)
    thumbnail_ref: str | None = None
    original_filename: str | None = None
    captured_at: datetime | None = None
    location: GeoPoint | None = None
    concert_id: str | None = Field(
        default=None, description="Concert chosen at upload time, before any analysis"
    )


class MediaItemView(ApiModel):
    """A media item as seen by the polling gallery."""

    id: str
    owner_id: str
    kind: MediaKind
    storage_ref: str
    thumbnail_ref: str | None = None
    original_filename: str | None = None
    captured_at: datetime | None = None
    location: GeoPoint | None = None
    analysis_status: AnalysisStatus
    analysis_result: AnalysisResult | None = None
    analysis_error: AnalysisError | None = None
    match_suggestions: list[MatchSuggestion] | None = None
    concert_id: str | None = None
    review_status: ReviewStatus
    link_confidence: float | None = None
    link_matched_via: MatchedVia | None = None
    retry_after_ms: int | None = Field(
        default=None, description="Suggested polling interval while Processing"
    )
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_media(cls, media: MediaItem, retry_after_ms: int | None = None) -> MediaItemView:
        return cls(
            id=media.id,
            owner_id=media.owner_id,
            kind=media.kind,
            storage_ref=media.storage_ref,
            thumbnail_ref=media.thumbnail_ref,
            original_filename=media.original_filename,
            captured_at=media.captured_at,
            location=media.location,
            analysis_status=media.analysis_status,
            analysis_result=media.analysis_result,
            analysis_error=media.analysis_error,
            match_suggestions=media.match_suggestions,
            concert_id=media.concert_id,
            review_status=media.review_status,
            link_confidence=media.link_confidence,
            link_matched_via=media.link_matched_via,
            retry_after_ms=retry_after_ms,
            created_at=media.created_at,
            updated_at=media.updated_at,
        )


class ConfirmMatchRequest(ApiModel):
    concert_id: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Concerts & lineups
# ---------------------------------------------------------------------------


class VenueInput(ApiModel):
    name: str = Field(..., min_length=1)
    external_id: str | None = None
    city: str | None = None
    country: str | None = None


class ConcertArtistInput(ApiModel):
    name: str = Field(..., min_length=1)
    external_id: str | None = None
    is_headliner: bool = False
    set_order: int | None = None


class CreateConcertRequest(ApiModel):
    concert_date: date
    concert_end_date: date | None = None
    venue: VenueInput | None = None
    artists: list[ConcertArtistInput] = Field(default_factory=list)
    is_verified: bool = False


class AddArtistsRequest(ApiModel):
    artists: list[LineupArtist] = Field(default_factory=list)


class LineupErrorResponse(ApiModel):
    """Returned (with HTTP 200) when the setlist source could not be checked."""

    error: str = Field(..., description="Reason code, e.g. 'timeout' or 'rate_limited'")
    message: str = ""
    retryable: bool = True


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None

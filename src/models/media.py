"""Media item and analysis-state models.

A :class:`MediaItem` is one uploaded photo or video.  Its analysis
lifecycle is a tagged variant rather than a status flag plus nullable
fields:

    PendingAnalysis ──submit──▶ ProcessingAnalysis ──▶ CompletedAnalysis
          ▲                                         └─▶ FailedAnalysis
          └──────────────── (resubmit from Failed) ◀──────────┘

Because the result only exists on ``CompletedAnalysis`` and the error only
on ``FailedAnalysis``, "result and error are mutually exclusive" holds by
construction.  ``CompletedAnalysis`` also owns the match suggestions, so a
completed analysis can never be observed without its (possibly empty)
suggestion list.
"""

from __future__ import annotations

import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import Field, field_validator

from src.models.entities import DomainModel


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class MediaKind(str, Enum):  # noqa: UP042
    IMAGE = "image"
    VIDEO = "video"


class AnalysisStatus(str, Enum):  # noqa: UP042
    """Discriminator of the analysis state machine."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ReviewStatus(str, Enum):  # noqa: UP042
    """How (or whether) the user dealt with the match suggestions."""

    UNREVIEWED = "unreviewed"
    CONFIRMED = "confirmed"      # user picked a suggestion / own concert
    SKIPPED = "skipped"          # user dismissed the suggestions
    AUTO_LINKED = "auto_linked"  # engine committed a high-confidence match
    MANUAL = "manual"            # concert chosen at upload, before matching


class MatchedVia(str, Enum):  # noqa: UP042
    """Which signal(s) made a concert a candidate."""

    ARTIST = "artist"
    VENUE = "venue"
    DATE = "date"
    COMBINED = "combined"


class VenueType(str, Enum):  # noqa: UP042
    ARENA = "arena"
    STADIUM = "stadium"
    CLUB = "club"
    THEATER = "theater"
    FESTIVAL = "festival"
    OUTDOOR = "outdoor"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Classifier output
# ---------------------------------------------------------------------------

class ArtistGuess(DomainModel):
    name: str | None = None
    # MusicBrainz id, when the classifier could pin the artist down.
    external_id: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    clues: list[str] = Field(default_factory=list)


class VenueGuess(DomainModel):
    name: str | None = None
    city: str | None = None
    type: VenueType = VenueType.UNKNOWN
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    clues: list[str] = Field(default_factory=list)


class TourGuess(DomainModel):
    name: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    clues: list[str] = Field(default_factory=list)


class AnalysisResult(DomainModel):
    """Structured guess returned by the content classifier."""

    artist: ArtistGuess = Field(default_factory=ArtistGuess)
    venue: VenueGuess = Field(default_factory=VenueGuess)
    tour: TourGuess = Field(default_factory=TourGuess)
    estimated_date: datetime.date | None = None
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""


class AnalysisError(DomainModel):
    """Why an analysis failed, and whether resubmitting may help."""

    reason: str
    message: str = ""
    retryable: bool = True


# ---------------------------------------------------------------------------
# Match suggestions
# ---------------------------------------------------------------------------

class MatchSuggestion(DomainModel):
    """A candidate concert for a media item.

    The concert's date, venue name and artist names are snapshotted so the
    gallery can render a suggestion without joining back to the concert.
    """

    concert_id: str
    confidence: float = Field(ge=0.0, le=1.0)
    matched_via: MatchedVia
    concert_date: datetime.date
    concert_end_date: datetime.date | None = None
    venue_name: str | None = None
    artist_names: list[str] = Field(default_factory=list)
    artist_score: float = Field(default=0.0, ge=0.0, le=1.0)
    venue_score: float = Field(default=0.0, ge=0.0, le=1.0)
    date_score: float = Field(default=0.0, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Analysis state variants
# ---------------------------------------------------------------------------

class PendingAnalysis(DomainModel):
    status: Literal[AnalysisStatus.PENDING] = AnalysisStatus.PENDING


class ProcessingAnalysis(DomainModel):
    status: Literal[AnalysisStatus.PROCESSING] = AnalysisStatus.PROCESSING
    started_at: datetime.datetime = Field(default_factory=_utcnow)


class CompletedAnalysis(DomainModel):
    status: Literal[AnalysisStatus.COMPLETED] = AnalysisStatus.COMPLETED
    result: AnalysisResult
    match_suggestions: list[MatchSuggestion] = Field(default_factory=list)
    completed_at: datetime.datetime = Field(default_factory=_utcnow)

    @field_validator("match_suggestions")
    @classmethod
    def _ranked_and_unique(cls, value: list[MatchSuggestion]) -> list[MatchSuggestion]:
        seen: set[str] = set()
        for suggestion in value:
            if suggestion.concert_id in seen:
                raise ValueError(f"duplicate concert_id in suggestions: {suggestion.concert_id}")
            seen.add(suggestion.concert_id)
        confidences = [s.confidence for s in value]
        if confidences != sorted(confidences, reverse=True):
            raise ValueError("match suggestions must be sorted by descending confidence")
        return value


class FailedAnalysis(DomainModel):
    status: Literal[AnalysisStatus.FAILED] = AnalysisStatus.FAILED
    error: AnalysisError
    failed_at: datetime.datetime = Field(default_factory=_utcnow)


AnalysisState = Annotated[
    Union[PendingAnalysis, ProcessingAnalysis, CompletedAnalysis, FailedAnalysis],  # noqa: UP007
    Field(discriminator="status"),
]


# ---------------------------------------------------------------------------
# MediaItem
# ---------------------------------------------------------------------------

class GeoPoint(DomainModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class MediaItem(DomainModel):
    """One uploaded asset and everything the engine knows about it.

    Written by two parties only: the analysis coordinator (``analysis``)
    and the assignment workflow (``concert_id`` and the review fields).
    """

    id: str
    owner_id: str
    kind: MediaKind = MediaKind.IMAGE
    storage_ref: str
    thumbnail_ref: str | None = None
    original_filename: str | None = None
    captured_at: datetime.datetime | None = None
    location: GeoPoint | None = None
    analysis: AnalysisState = Field(default_factory=PendingAnalysis)
    concert_id: str | None = None
    review_status: ReviewStatus = ReviewStatus.UNREVIEWED
    link_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    link_matched_via: MatchedVia | None = None
    created_at: datetime.datetime = Field(default_factory=_utcnow)
    updated_at: datetime.datetime = Field(default_factory=_utcnow)

    @property
    def analysis_status(self) -> AnalysisStatus:
        return self.analysis.status

    @property
    def analysis_result(self) -> AnalysisResult | None:
        if isinstance(self.analysis, CompletedAnalysis):
            return self.analysis.result
        return None

    @property
    def analysis_error(self) -> AnalysisError | None:
        if isinstance(self.analysis, FailedAnalysis):
            return self.analysis.error
        return None

    @property
    def match_suggestions(self) -> list[MatchSuggestion] | None:
        """Suggestions once analysis completed; ``None`` means not computed yet."""
        if isinstance(self.analysis, CompletedAnalysis):
            return self.analysis.match_suggestions
        return None

    def suggestion_for(self, concert_id: str) -> MatchSuggestion | None:
        for suggestion in self.match_suggestions or []:
            if suggestion.concert_id == concert_id:
                return suggestion
        return None

"""Domain models: re-exports all public model classes.

Import models from ``src.models`` rather than their submodules:

    - entities.py: catalog entities (Artist, Venue, Concert)
    - media.py:    media items, the analysis state machine, match suggestions
    - lineup.py:   lineup resolution results and resolver errors

If you add a new model class, remember to add it to ``__all__`` too.
"""

from __future__ import annotations

from src.models.entities import (
    Artist,
    Concert,
    ConcertArtist,
    DomainModel,
    Venue,
)
from src.models.lineup import (
    AddArtistsOutcome,
    EventDay,
    LineupArtist,
    LineupSuggestionResult,
    ResolverError,
)
from src.models.media import (
    AnalysisError,
    AnalysisResult,
    AnalysisState,
    AnalysisStatus,
    ArtistGuess,
    CompletedAnalysis,
    FailedAnalysis,
    GeoPoint,
    MatchedVia,
    MatchSuggestion,
    MediaItem,
    MediaKind,
    PendingAnalysis,
    ProcessingAnalysis,
    ReviewStatus,
    TourGuess,
    VenueGuess,
    VenueType,
)

__all__ = [
    # entities
    "Artist",
    "Concert",
    "ConcertArtist",
    "DomainModel",
    "Venue",
    # lineup
    "AddArtistsOutcome",
    "EventDay",
    "LineupArtist",
    "LineupSuggestionResult",
    "ResolverError",
    # media
    "AnalysisError",
    "AnalysisResult",
    "AnalysisState",
    "AnalysisStatus",
    "ArtistGuess",
    "CompletedAnalysis",
    "FailedAnalysis",
    "GeoPoint",
    "MatchedVia",
    "MatchSuggestion",
    "MediaItem",
    "MediaKind",
    "PendingAnalysis",
    "ProcessingAnalysis",
    "ReviewStatus",
    "TourGuess",
    "VenueGuess",
    "VenueType",
]

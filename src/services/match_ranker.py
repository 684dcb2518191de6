"""Match suggestion ranking.

Given a completed analysis, proposes which of the owner's existing
concerts the photo belongs to.  Each candidate is scored on three
independent signals, each in [0, 1]:

    artist  1.0 on an external-id match, otherwise the best normalized
            edit-distance similarity against the concert's artists
    venue   normalized edit-distance similarity of the venue names
    date    1.0 inside the concert's date range, decaying linearly to 0.0
            at the tolerance boundary

and the weighted combination (0.5 / 0.3 / 0.2 by default) is the
suggestion's confidence.  The artist weight is deliberately large enough
that a strong artist match alone clears the suggest threshold.
"""

from __future__ import annotations

import datetime

import structlog

from src.config.settings import Settings
from src.interfaces.entity_store import IEntityStore
from src.models.entities import Concert
from src.models.media import AnalysisResult, MatchedVia, MatchSuggestion
from src.utils.confidence import calculate_confidence, confidence_to_level, date_proximity
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger
from src.utils.text_normalizer import name_similarity, normalize_name

_SCORE_PRECISION = 4


class MatchSuggestionRanker:
    """Scores and orders candidate concerts for an analysis result."""

    def __init__(self, store: IEntityStore, settings: Settings) -> None:
        self._store = store
        self._tolerance_days = settings.match_date_tolerance_days
        self._suggest_threshold = settings.match_suggest_threshold
        self._signal_threshold = settings.match_signal_threshold
        self._auto_link_threshold = settings.match_auto_link_threshold
        self._auto_link_min_overall = settings.match_auto_link_min_overall
        self._max_suggestions = settings.match_max_suggestions
        self._weights = [
            settings.match_weight_artist,
            settings.match_weight_venue,
            settings.match_weight_date,
        ]
        if sum(self._weights) <= 0:
            raise ConfigurationError("At least one match weight must be positive")
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # -- Public API -----------------------------------------------------------

    async def rank(
        self,
        result: AnalysisResult,
        owner_id: str,
        fallback_date: datetime.date | None = None,
    ) -> list[MatchSuggestion]:
        """Return the owner's concerts that plausibly match *result*.

        Parameters
        ----------
        result:
            The classifier's structured guess.
        owner_id:
            Only this owner's concerts are considered.
        fallback_date:
            Used instead of ``result.estimated_date`` when the classifier
            could not date the photo (typically the capture date).

        Returns
        -------
        list[MatchSuggestion]
            Sorted by descending confidence, ties broken by the most recently
            created concert; empty when nothing clears the suggest threshold.
        """
        target_date = result.estimated_date or fallback_date
        window_start = window_end = None
        if target_date is not None:
            tolerance = datetime.timedelta(days=max(self._tolerance_days, 0))
            window_start = target_date - tolerance
            window_end = target_date + tolerance

        venue_key = normalize_name(result.venue.name) or None
        candidates = await self._store.list_candidate_concerts(
            owner_id, window_start, window_end, venue_key
        )

        scored: list[tuple[MatchSuggestion, Concert]] = []
        for concert in candidates:
            suggestion = self.score(result, concert, target_date)
            if suggestion.confidence >= self._suggest_threshold:
                scored.append((suggestion, concert))

        scored.sort(
            key=lambda pair: (
                -pair[0].confidence,
                -pair[1].created_at.timestamp(),
                pair[1].id,
            )
        )
        suggestions = [s for s, _ in scored[: self._max_suggestions]]

        self._logger.info(
            "match_suggestions_ranked",
            owner_id=owner_id,
            candidate_count=len(candidates),
            suggestion_count=len(suggestions),
            top_confidence=suggestions[0].confidence if suggestions else None,
            top_level=(
                confidence_to_level(
                    suggestions[0].confidence,
                    self._suggest_threshold,
                    self._auto_link_threshold,
                ).value
                if suggestions
                else None
            ),
        )
        return suggestions

    def score(
        self,
        result: AnalysisResult,
        concert: Concert,
        target_date: datetime.date | None,
    ) -> MatchSuggestion:
        """Score one concert against *result* (no threshold applied)."""
        artist_score = self._artist_score(result, concert)
        venue_score = (
            name_similarity(result.venue.name, concert.venue.name) if concert.venue else 0.0
        )
        date_score = 0.0
        if target_date is not None:
            date_score = date_proximity(
                target_date,
                concert.concert_date,
                concert.concert_end_date,
                self._tolerance_days,
            )

        combined = calculate_confidence([artist_score, venue_score, date_score], self._weights)
        return MatchSuggestion(
            concert_id=concert.id,
            confidence=round(combined, _SCORE_PRECISION),
            matched_via=self._matched_via(artist_score, venue_score, date_score),
            concert_date=concert.concert_date,
            concert_end_date=concert.concert_end_date,
            venue_name=concert.venue.name if concert.venue else None,
            artist_names=concert.artist_names,
            artist_score=round(artist_score, _SCORE_PRECISION),
            venue_score=round(venue_score, _SCORE_PRECISION),
            date_score=round(date_score, _SCORE_PRECISION),
        )

    def select_auto_link(
        self,
        result: AnalysisResult,
        suggestions: list[MatchSuggestion],
    ) -> MatchSuggestion | None:
        """Return the suggestion to commit without asking, if any.

        Only when the classifier itself is very sure of its answer and
        exactly one candidate clears the auto-link threshold.
        """
        if result.overall_confidence < self._auto_link_min_overall:
            return None
        strong = [s for s in suggestions if s.confidence >= self._auto_link_threshold]
        if len(strong) != 1:
            return None
        return strong[0]

    # -- Private helpers ------------------------------------------------------

    @staticmethod
    def _artist_score(result: AnalysisResult, concert: Concert) -> float:
        guess = result.artist
        best = 0.0
        for relation in concert.artists:
            artist = relation.artist
            if guess.external_id and artist.external_id == guess.external_id:
                return 1.0
            best = max(best, name_similarity(guess.name, artist.name))
        return best

    def _matched_via(self, artist: float, venue: float, date: float) -> MatchedVia:
        signals = [
            (MatchedVia.ARTIST, artist),
            (MatchedVia.VENUE, venue),
            (MatchedVia.DATE, date),
        ]
        strong = [via for via, score in signals if score >= self._signal_threshold]
        if len(strong) > 1:
            return MatchedVia.COMBINED
        if strong:
            return strong[0]
        # max() keeps the first of equal scores, so artist wins ties.
        return max(signals, key=lambda pair: pair[1])[0]

"""Unit tests for MatchSuggestionRanker.

Candidates come from a real SQLiteEntityStore on a temporary database so
the window and venue pre-filter are exercised together with the scoring.
"""

from __future__ import annotations

import datetime
from unittest.mock import MagicMock

import pytest

from src.interfaces.entity_store import IEntityStore
from src.models.media import MatchedVia
from src.services.match_ranker import MatchSuggestionRanker
from src.utils.errors import ConfigurationError

OWNER = "user-1"
SHOW_DATE = datetime.date(2023, 6, 10)


@pytest.fixture
def ranker(store, settings) -> MatchSuggestionRanker:
    return MatchSuggestionRanker(store=store, settings=settings)


@pytest.fixture
def offline_ranker(settings) -> MatchSuggestionRanker:
    """Ranker for pure scoring tests; the store is never touched."""
    return MatchSuggestionRanker(store=MagicMock(spec=IEntityStore), settings=settings)


# ======================================================================
# rank
# ======================================================================


class TestRank:
    @pytest.mark.asyncio
    async def test_exact_match_is_top_and_combined(
        self, ranker, store, concert_factory, result_factory
    ):
        concert = await store.create_concert(concert_factory())

        suggestions = await ranker.rank(result_factory(), OWNER)

        assert len(suggestions) == 1
        top = suggestions[0]
        assert top.concert_id == concert.id
        assert top.confidence >= 0.85
        assert top.matched_via == MatchedVia.COMBINED
        assert top.venue_name == "Hollywood Bowl"
        assert top.artist_names == ["boygenius"]

    @pytest.mark.asyncio
    async def test_weak_candidates_are_dropped(
        self, ranker, store, concert_factory, result_factory
    ):
        # Only the date lines up: 0.2 * 1.0 is below the suggest threshold.
        await store.create_concert(concert_factory(venue_name="Pit", artists=[("Xxx", None)]))
        assert await ranker.rank(result_factory(), OWNER) == []

    @pytest.mark.asyncio
    async def test_no_candidates_is_empty(self, ranker, result_factory):
        assert await ranker.rank(result_factory(), OWNER) == []

    @pytest.mark.asyncio
    async def test_other_owners_concerts_ignored(
        self, ranker, store, concert_factory, result_factory
    ):
        await store.create_concert(concert_factory(owner_id="someone-else"))
        assert await ranker.rank(result_factory(), OWNER) == []

    @pytest.mark.asyncio
    async def test_sorted_by_descending_confidence(
        self, ranker, store, concert_factory, result_factory
    ):
        exact = await store.create_concert(concert_factory())
        # Same artist and venue, one day later: date signal drops to 0.
        next_day = await store.create_concert(
            concert_factory(concert_date=SHOW_DATE + datetime.timedelta(days=1))
        )

        suggestions = await ranker.rank(result_factory(), OWNER)

        assert [s.concert_id for s in suggestions] == [exact.id, next_day.id]
        assert suggestions[0].confidence > suggestions[1].confidence

    @pytest.mark.asyncio
    async def test_ties_prefer_most_recently_created(
        self, ranker, store, concert_factory, result_factory
    ):
        utc = datetime.timezone.utc  # noqa: UP017
        older = await store.create_concert(
            concert_factory(created_at=datetime.datetime(2023, 1, 1, tzinfo=utc))
        )
        newer = await store.create_concert(
            concert_factory(created_at=datetime.datetime(2023, 6, 1, tzinfo=utc))
        )

        suggestions = await ranker.rank(result_factory(), OWNER)

        assert [s.concert_id for s in suggestions] == [newer.id, older.id]
        assert suggestions[0].confidence == suggestions[1].confidence

    @pytest.mark.asyncio
    async def test_capped_at_max_suggestions(
        self, store, settings, concert_factory, result_factory
    ):
        ranker = MatchSuggestionRanker(
            store=store, settings=settings.model_copy(update={"match_max_suggestions": 2})
        )
        for _ in range(3):
            await store.create_concert(concert_factory())

        assert len(await ranker.rank(result_factory(), OWNER)) == 2

    @pytest.mark.asyncio
    async def test_fallback_date_used_when_undated(
        self, ranker, store, concert_factory, result_factory
    ):
        concert = await store.create_concert(
            concert_factory(venue_name="Pit", artists=[("boygenius", None)])
        )
        undated = result_factory(estimated_date=None, venue=None)

        suggestions = await ranker.rank(undated, OWNER, fallback_date=SHOW_DATE)

        assert [s.concert_id for s in suggestions] == [concert.id]
        assert suggestions[0].date_score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_venue_match_outside_window_is_considered(
        self, ranker, store, concert_factory, result_factory
    ):
        concert = await store.create_concert(
            concert_factory(concert_date=datetime.date(2019, 8, 1))
        )
        suggestions = await ranker.rank(result_factory(), OWNER)

        # artist 1.0 * 0.5 + venue 1.0 * 0.3
        assert [s.concert_id for s in suggestions] == [concert.id]
        assert suggestions[0].confidence == pytest.approx(0.8)
        assert suggestions[0].date_score == 0.0


# ======================================================================
# score / matched_via
# ======================================================================


class TestScore:
    def test_external_id_match_beats_spelling(
        self, offline_ranker, concert_factory, result_factory
    ):
        concert = concert_factory(artists=[("Phoebe Bridgers et al.", "mbid-bg")])
        result = result_factory(artist="Boygenius", artist_external_id="mbid-bg")

        suggestion = offline_ranker.score(result, concert, SHOW_DATE)

        assert suggestion.artist_score == 1.0

    def test_artist_only_signal(
        self, offline_ranker, concert_factory, result_factory
    ):
        concert = concert_factory(
            concert_date=SHOW_DATE + datetime.timedelta(days=1),
            venue_name="Pit",
        )
        suggestion = offline_ranker.score(result_factory(), concert, SHOW_DATE)

        assert suggestion.matched_via == MatchedVia.ARTIST
        assert suggestion.confidence == pytest.approx(0.5)

    def test_venue_only_signal(
        self, offline_ranker, concert_factory, result_factory
    ):
        concert = concert_factory(
            concert_date=SHOW_DATE + datetime.timedelta(days=1),
            artists=[("Xxx", None)],
        )
        suggestion = offline_ranker.score(result_factory(), concert, SHOW_DATE)

        assert suggestion.matched_via == MatchedVia.VENUE

    def test_concert_without_venue(
        self, offline_ranker, concert_factory, result_factory
    ):
        concert = concert_factory(venue_name=None)
        suggestion = offline_ranker.score(result_factory(), concert, SHOW_DATE)

        assert suggestion.venue_score == 0.0
        assert suggestion.venue_name is None
        assert suggestion.confidence == pytest.approx(0.7)

    def test_undated_scores_zero_on_date(
        self, offline_ranker, concert_factory, result_factory
    ):
        undated = result_factory(estimated_date=None)
        suggestion = offline_ranker.score(undated, concert_factory(), None)
        assert suggestion.date_score == 0.0


# ======================================================================
# select_auto_link
# ======================================================================


class TestSelectAutoLink:
    @pytest.mark.asyncio
    async def test_single_strong_match_selected(
        self, ranker, store, concert_factory, result_factory
    ):
        concert = await store.create_concert(concert_factory())
        result = result_factory(overall_confidence=0.92)
        suggestions = await ranker.rank(result, OWNER)

        choice = ranker.select_auto_link(result, suggestions)

        assert choice is not None
        assert choice.concert_id == concert.id

    @pytest.mark.asyncio
    async def test_unsure_classifier_never_auto_links(
        self, ranker, store, concert_factory, result_factory
    ):
        await store.create_concert(concert_factory())
        result = result_factory(overall_confidence=0.6)
        suggestions = await ranker.rank(result, OWNER)

        assert suggestions
        assert ranker.select_auto_link(result, suggestions) is None

    @pytest.mark.asyncio
    async def test_two_strong_matches_are_ambiguous(
        self, ranker, store, concert_factory, result_factory
    ):
        await store.create_concert(concert_factory())
        await store.create_concert(concert_factory())
        result = result_factory(overall_confidence=0.95)
        suggestions = await ranker.rank(result, OWNER)

        assert len(suggestions) == 2
        assert ranker.select_auto_link(result, suggestions) is None

    def test_empty_suggestions(self, offline_ranker, result_factory):
        assert offline_ranker.select_auto_link(result_factory(), []) is None


class TestConfiguration:
    def test_all_zero_weights_rejected(self, settings):
        zeroed = settings.model_copy(
            update={"match_weight_artist": 0.0, "match_weight_venue": 0.0, "match_weight_date": 0.0}
        )
        with pytest.raises(ConfigurationError):
            MatchSuggestionRanker(store=MagicMock(spec=IEntityStore), settings=zeroed)

"""Unit tests for AssignmentWorkflow against a temporary SQLite store."""

from __future__ import annotations

import asyncio

import pytest

from src.models.entities import Artist
from src.models.lineup import LineupArtist
from src.models.media import (
    AnalysisResult,
    AnalysisStatus,
    CompletedAnalysis,
    MatchedVia,
    MatchSuggestion,
    ProcessingAnalysis,
    ReviewStatus,
)
from src.providers.store.sqlite_entity_store import _SQLiteTransaction
from src.services.assignment_workflow import AssignmentWorkflow
from src.utils.errors import (
    ConcertNotFoundError,
    ContractViolationError,
    MediaNotFoundError,
    StoreError,
)

OWNER = "user-1"


@pytest.fixture
def workflow(store) -> AssignmentWorkflow:
    return AssignmentWorkflow(store=store)


async def _completed_media(store, media, suggestions):
    """Store *media* and move it to Completed with *suggestions*."""
    await store.create_media(media)
    await store.transition_analysis(media.id, (AnalysisStatus.PENDING,), ProcessingAnalysis())
    await store.transition_analysis(
        media.id,
        (AnalysisStatus.PROCESSING,),
        CompletedAnalysis(result=AnalysisResult(), match_suggestions=suggestions),
    )
    return media


def _suggestion(concert, confidence: float = 0.9) -> MatchSuggestion:
    return MatchSuggestion(
        concert_id=concert.id,
        confidence=confidence,
        matched_via=MatchedVia.COMBINED,
        concert_date=concert.concert_date,
    )


# ═══════════════════════════════════════════════════════════════════════
# confirm_match
# ═══════════════════════════════════════════════════════════════════════


class TestConfirmMatch:
    @pytest.mark.asyncio
    async def test_confirms_suggestion(self, workflow, store, media_factory, concert_factory):
        concert = await store.create_concert(concert_factory())
        media = await _completed_media(store, media_factory(), [_suggestion(concert, 0.93)])

        linked = await workflow.confirm_match(media.id, concert.id, OWNER)

        assert linked.concert_id == concert.id
        assert linked.review_status == ReviewStatus.CONFIRMED
        assert linked.link_confidence == pytest.approx(0.93)
        assert linked.link_matched_via == MatchedVia.COMBINED

    @pytest.mark.asyncio
    async def test_is_idempotent(self, workflow, store, media_factory, concert_factory):
        concert = await store.create_concert(concert_factory())
        media = await _completed_media(store, media_factory(), [_suggestion(concert)])

        first = await workflow.confirm_match(media.id, concert.id, OWNER)
        second = await workflow.confirm_match(media.id, concert.id, OWNER)

        assert first.concert_id == second.concert_id == concert.id
        assert second.updated_at == first.updated_at

    @pytest.mark.asyncio
    async def test_own_concert_outside_suggestions(
        self, workflow, store, media_factory, concert_factory
    ):
        concert = await store.create_concert(concert_factory())
        media = media_factory()
        await store.create_media(media)

        linked = await workflow.confirm_match(media.id, concert.id, OWNER)

        assert linked.concert_id == concert.id
        assert linked.link_confidence is None

    @pytest.mark.asyncio
    async def test_rejects_foreign_concert(self, workflow, store, media_factory, concert_factory):
        foreign = await store.create_concert(concert_factory(owner_id="someone-else"))
        media = media_factory()
        await store.create_media(media)

        with pytest.raises(ContractViolationError):
            await workflow.confirm_match(media.id, foreign.id, OWNER)
        assert (await store.get_media(media.id, OWNER)).concert_id is None

    @pytest.mark.asyncio
    async def test_rejects_relink(self, workflow, store, media_factory, concert_factory):
        first = await store.create_concert(concert_factory())
        second = await store.create_concert(concert_factory())
        media = media_factory()
        await store.create_media(media)
        await workflow.confirm_match(media.id, first.id, OWNER)

        with pytest.raises(ContractViolationError):
            await workflow.confirm_match(media.id, second.id, OWNER)
        assert (await store.get_media(media.id, OWNER)).concert_id == first.id

    @pytest.mark.asyncio
    async def test_unknown_media(self, workflow, store, concert_factory):
        concert = await store.create_concert(concert_factory())
        with pytest.raises(MediaNotFoundError):
            await workflow.confirm_match("missing", concert.id, OWNER)

    @pytest.mark.asyncio
    async def test_concurrent_confirms_single_link(
        self, workflow, store, media_factory, concert_factory
    ):
        first = await store.create_concert(concert_factory())
        second = await store.create_concert(concert_factory())
        media = media_factory()
        await store.create_media(media)

        outcomes = await asyncio.gather(
            workflow.confirm_match(media.id, first.id, OWNER),
            workflow.confirm_match(media.id, second.id, OWNER),
            return_exceptions=True,
        )

        winners = [o for o in outcomes if not isinstance(o, Exception)]
        losers = [o for o in outcomes if isinstance(o, ContractViolationError)]
        assert len(winners) == 1
        assert len(losers) == 1
        stored = await store.get_media(media.id, OWNER)
        assert stored.concert_id == winners[0].concert_id


# ═══════════════════════════════════════════════════════════════════════
# skip_match / auto_link
# ═══════════════════════════════════════════════════════════════════════


class TestSkipMatch:
    @pytest.mark.asyncio
    async def test_skip_keeps_suggestions(self, workflow, store, media_factory, concert_factory):
        concert = await store.create_concert(concert_factory())
        media = await _completed_media(store, media_factory(), [_suggestion(concert)])

        skipped = await workflow.skip_match(media.id, OWNER)

        assert skipped.review_status == ReviewStatus.SKIPPED
        assert skipped.concert_id is None
        assert [s.concert_id for s in skipped.match_suggestions] == [concert.id]

    @pytest.mark.asyncio
    async def test_skip_linked_item_rejected(
        self, workflow, store, media_factory, concert_factory
    ):
        concert = await store.create_concert(concert_factory())
        media = media_factory()
        await store.create_media(media)
        await workflow.confirm_match(media.id, concert.id, OWNER)

        with pytest.raises(ContractViolationError):
            await workflow.skip_match(media.id, OWNER)

    @pytest.mark.asyncio
    async def test_skip_then_confirm(self, workflow, store, media_factory, concert_factory):
        concert = await store.create_concert(concert_factory())
        media = await _completed_media(store, media_factory(), [_suggestion(concert)])
        await workflow.skip_match(media.id, OWNER)

        linked = await workflow.confirm_match(media.id, concert.id, OWNER)
        assert linked.review_status == ReviewStatus.CONFIRMED


class TestAutoLink:
    @pytest.mark.asyncio
    async def test_links_unlinked_item(self, workflow, store, media_factory, concert_factory):
        concert = await store.create_concert(concert_factory())
        media = media_factory()
        await store.create_media(media)

        assert await workflow.auto_link(media.id, OWNER, _suggestion(concert, 0.97)) is True
        stored = await store.get_media(media.id, OWNER)
        assert stored.review_status == ReviewStatus.AUTO_LINKED
        assert stored.link_confidence == pytest.approx(0.97)

    @pytest.mark.asyncio
    async def test_never_overrides_user_choice(
        self, workflow, store, media_factory, concert_factory
    ):
        chosen = await store.create_concert(concert_factory())
        other = await store.create_concert(concert_factory())
        media = media_factory()
        await store.create_media(media)
        await workflow.confirm_match(media.id, chosen.id, OWNER)

        assert await workflow.auto_link(media.id, OWNER, _suggestion(other)) is False
        stored = await store.get_media(media.id, OWNER)
        assert stored.concert_id == chosen.id
        assert stored.review_status == ReviewStatus.CONFIRMED


# ═══════════════════════════════════════════════════════════════════════
# add_lineup_artists
# ═══════════════════════════════════════════════════════════════════════


class TestAddLineupArtists:
    @pytest.mark.asyncio
    async def test_adds_and_skips(self, workflow, store, concert_factory):
        concert = await store.create_concert(concert_factory(artists=[("Headliner A", "mbid-a")]))

        outcome = await workflow.add_lineup_artists(
            concert.id,
            [
                LineupArtist(name="Headliner A", external_id="mbid-a", is_headliner=True),
                LineupArtist(name="Opener B", external_id="mbid-b"),
            ],
            OWNER,
        )

        assert (outcome.added, outcome.skipped) == (1, 1)
        stored = await store.get_concert(concert.id, OWNER)
        assert stored.artist_names == ["Headliner A", "Opener B"]
        assert stored.artists[1].set_order == 2

    @pytest.mark.asyncio
    async def test_repeat_call_adds_nothing(self, workflow, store, concert_factory):
        concert = await store.create_concert(concert_factory(artists=[("Headliner A", "mbid-a")]))
        lineup = [LineupArtist(name="Opener B", external_id="mbid-b")]

        await workflow.add_lineup_artists(concert.id, lineup, OWNER)
        outcome = await workflow.add_lineup_artists(concert.id, lineup, OWNER)

        assert (outcome.added, outcome.skipped) == (0, 1)
        assert len((await store.get_concert(concert.id, OWNER)).artists) == 2

    @pytest.mark.asyncio
    async def test_name_match_without_external_id(self, workflow, store, concert_factory):
        concert = await store.create_concert(concert_factory(artists=[("Opener B", None)]))

        outcome = await workflow.add_lineup_artists(
            concert.id, [LineupArtist(name="opener b", external_id="mbid-b")], OWNER
        )

        assert (outcome.added, outcome.skipped) == (0, 1)

    @pytest.mark.asyncio
    async def test_duplicates_within_batch(self, workflow, store, concert_factory):
        concert = await store.create_concert(concert_factory(artists=[("Headliner A", "mbid-a")]))

        outcome = await workflow.add_lineup_artists(
            concert.id,
            [
                LineupArtist(name="Opener B", external_id="mbid-b"),
                LineupArtist(name="Opener B", external_id="mbid-b"),
            ],
            OWNER,
        )
        assert (outcome.added, outcome.skipped) == (1, 1)

    @pytest.mark.asyncio
    async def test_reuses_known_artist_record(self, workflow, store, concert_factory):
        known = await store.save_artist(Artist(id="known-b", name="Opener B", external_id="mbid-b"))
        concert = await store.create_concert(concert_factory(artists=[("Headliner A", "mbid-a")]))

        await workflow.add_lineup_artists(
            concert.id, [LineupArtist(name="Opener B", external_id="mbid-b")], OWNER
        )

        stored = await store.get_concert(concert.id, OWNER)
        assert stored.artists[1].artist.id == known.id

    @pytest.mark.asyncio
    async def test_overlapping_calls_never_duplicate(self, workflow, store, concert_factory):
        concert = await store.create_concert(concert_factory(artists=[("Headliner A", "mbid-a")]))
        lineup = [
            LineupArtist(name="Opener B", external_id="mbid-b"),
            LineupArtist(name="Opener C", external_id="mbid-c"),
        ]

        outcomes = await asyncio.gather(
            workflow.add_lineup_artists(concert.id, lineup, OWNER),
            workflow.add_lineup_artists(concert.id, lineup, OWNER),
        )

        assert sum(o.added for o in outcomes) == 2
        assert len((await store.get_concert(concert.id, OWNER)).artists) == 3

    @pytest.mark.asyncio
    async def test_failure_rolls_back_whole_batch(
        self, workflow, store, concert_factory, monkeypatch
    ):
        concert = await store.create_concert(concert_factory(artists=[("Headliner A", "mbid-a")]))
        lineup = [
            LineupArtist(name="Opener B", external_id="mbid-b"),
            LineupArtist(name="Opener C", external_id="mbid-c"),
        ]

        real_insert = _SQLiteTransaction.insert_concert_artist
        calls = 0

        async def flaky_insert(self, *args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise StoreError("disk full")
            await real_insert(self, *args, **kwargs)

        monkeypatch.setattr(_SQLiteTransaction, "insert_concert_artist", flaky_insert)
        with pytest.raises(StoreError):
            await workflow.add_lineup_artists(concert.id, lineup, OWNER)
        monkeypatch.undo()

        stored = await store.get_concert(concert.id, OWNER)
        assert stored.artist_names == ["Headliner A"]
        async with store.transaction() as tx:
            assert await tx.find_artist_by_external_id("mbid-b") is None

    @pytest.mark.asyncio
    async def test_unknown_concert(self, workflow):
        with pytest.raises(ConcertNotFoundError):
            await workflow.add_lineup_artists("missing", [LineupArtist(name="X")], OWNER)

    @pytest.mark.asyncio
    async def test_other_owners_concert(self, workflow, store, concert_factory):
        concert = await store.create_concert(concert_factory(owner_id="someone-else"))
        with pytest.raises(ConcertNotFoundError):
            await workflow.add_lineup_artists(concert.id, [LineupArtist(name="X")], OWNER)


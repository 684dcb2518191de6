"""Analysis worker coordinator.

Drives each media item through its analysis state machine:

    Pending ──submit──▶ Processing ──▶ Completed{result, suggestions}
    Failed  ──submit──┘            └─▶ Failed{error}

# ─── HOW SUBMISSION STAYS SINGLE-RUN ──────────────────────────────────
#
#   submit() performs ONE conditional write at the store:
#
#       UPDATE media SET status='processing' ...
#        WHERE id=? AND status IN ('pending', 'failed')
#
#   Only the caller whose UPDATE touched the row starts a worker.  Two
#   rapid submits for the same item therefore produce exactly one
#   classifier call; the loser gets ``False`` back and nothing else
#   happens.
#
#   The worker runs on its own asyncio task, bounded by a semaphore, and
#   always ends in Completed or Failed.  There is no cancellation path
#   once an item is Processing.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import datetime
from dataclasses import dataclass

import structlog

from src.config.settings import Settings
from src.interfaces.entity_store import IEntityStore
from src.interfaces.media_classifier import IMediaClassifier
from src.models.media import (
    AnalysisError,
    AnalysisStatus,
    CompletedAnalysis,
    FailedAnalysis,
    MediaItem,
    MediaKind,
    ProcessingAnalysis,
)
from src.services.assignment_workflow import AssignmentWorkflow
from src.services.match_ranker import MatchSuggestionRanker
from src.utils.errors import ClassifierError, MediaNotFoundError
from src.utils.logging import get_logger, log_context

_SUBMITTABLE = (AnalysisStatus.PENDING, AnalysisStatus.FAILED)


def retry_after_ms(
    kind: MediaKind,
    started_at: datetime.datetime | None,
    now: datetime.datetime | None = None,
) -> int:
    """Suggested polling interval while an item is Processing.

    Videos take longer to classify, so they start with a longer interval;
    both back off as the analysis runs on.
    """
    quick = 1000 if kind == MediaKind.VIDEO else 500
    if started_at is None:
        return quick
    now = now or datetime.datetime.now(tz=datetime.timezone.utc)  # noqa: UP017
    elapsed = (now - started_at).total_seconds()
    if elapsed < 10:
        return quick
    if elapsed < 30:
        return 2000
    return 5000


@dataclass(frozen=True)
class AnalysisStatusView:
    """What a poller needs: the item itself plus when to ask again."""

    media: MediaItem
    retry_after_ms: int | None = None


class AnalysisCoordinator:
    """Owns the Pending → Processing → Completed/Failed lifecycle.

    Parameters
    ----------
    store:
        Entity store providing the compare-and-set transition.
    classifier:
        Content classifier, or ``None`` when none is configured (every
        submission then fails with ``not_configured``).
    ranker:
        Produces match suggestions for a completed analysis.
    workflow:
        Performs the auto-link write for very confident matches.
    settings:
        Supplies the classifier timeout, concurrency bound and the age at
        which a Processing row counts as orphaned.
    """

    def __init__(
        self,
        store: IEntityStore,
        classifier: IMediaClassifier | None,
        ranker: MatchSuggestionRanker,
        workflow: AssignmentWorkflow,
        settings: Settings,
    ) -> None:
        self._store = store
        self._classifier = classifier
        self._ranker = ranker
        self._workflow = workflow
        self._timeout = settings.classifier_timeout_seconds
        self._stale_after = datetime.timedelta(seconds=settings.stale_processing_seconds)
        self._semaphore = asyncio.Semaphore(settings.max_concurrent_analyses)
        self._inflight: dict[str, asyncio.Task[None]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(self, media_id: str, owner_id: str) -> bool:
        """Start analysing *media_id* if it is Pending or Failed.

        Returns immediately.  ``True`` means this call started a worker;
        ``False`` means the item was already Processing or Completed (or
        another caller won the race), which is not an error.

        Raises
        ------
        MediaNotFoundError
            If the media item does not exist for this owner.
        """
        media = await self._store.get_media(media_id, owner_id)
        if media is None:
            raise MediaNotFoundError(f"Media {media_id} not found")

        if media.analysis_status not in _SUBMITTABLE:
            self._logger.info(
                "analysis_submit_ignored",
                media_id=media_id,
                status=media.analysis_status.value,
            )
            return False

        won = await self._store.transition_analysis(media_id, _SUBMITTABLE, ProcessingAnalysis())
        if not won:
            self._logger.info("analysis_submit_lost_race", media_id=media_id)
            return False

        task = asyncio.create_task(self._run(media_id, owner_id), name=f"analysis-{media_id}")
        self._inflight[media_id] = task
        task.add_done_callback(self._forget)
        self._logger.info(
            "analysis_submitted",
            media_id=media_id,
            resubmission=media.analysis_status == AnalysisStatus.FAILED,
        )
        return True

    async def get_status(self, media_id: str, owner_id: str) -> AnalysisStatusView:
        """Return the item's current state and a polling hint."""
        media = await self._store.get_media(media_id, owner_id)
        if media is None:
            raise MediaNotFoundError(f"Media {media_id} not found")

        hint = None
        if isinstance(media.analysis, ProcessingAnalysis):
            hint = retry_after_ms(media.kind, media.analysis.started_at)
        return AnalysisStatusView(media=media, retry_after_ms=hint)

    async def recover_stale(self, max_age: datetime.timedelta | None = None) -> int:
        """Fail Processing rows orphaned by a restart.

        A row counts as orphaned when it has been Processing for longer than
        *max_age* (default ``stale_processing_seconds``) and no worker in
        this process owns it.  Returns how many rows were failed.
        """
        max_age = self._stale_after if max_age is None else max_age
        cutoff = datetime.datetime.now(tz=datetime.timezone.utc) - max_age  # noqa: UP017
        recovered = 0
        for media in await self._store.list_processing_media():
            if media.id in self._inflight:
                continue
            started_at = getattr(media.analysis, "started_at", None)
            if started_at is not None and started_at > cutoff:
                continue
            failed = FailedAnalysis(
                error=AnalysisError(
                    reason="interrupted",
                    message="Analysis was interrupted before it finished",
                    retryable=True,
                )
            )
            if await self._store.transition_analysis(
                media.id, (AnalysisStatus.PROCESSING,), failed
            ):
                recovered += 1

        if recovered:
            self._logger.warning("stale_analyses_recovered", count=recovered)
        return recovered

    async def drain(self) -> None:
        """Wait for every in-flight worker to reach a terminal state."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _forget(self, task: asyncio.Task[None]) -> None:
        media_id = task.get_name().removeprefix("analysis-")
        if self._inflight.get(media_id) is task:
            del self._inflight[media_id]

    async def _run(self, media_id: str, owner_id: str) -> None:
        with log_context(media_id=media_id, owner_id=owner_id):
            async with self._semaphore:
                try:
                    await self._analyse(media_id, owner_id)
                except Exception as exc:
                    self._logger.exception("analysis_worker_crashed")
                    await self._fail(
                        media_id,
                        AnalysisError(reason="internal_error", message=str(exc), retryable=True),
                    )

    async def _analyse(self, media_id: str, owner_id: str) -> None:
        media = await self._store.get_media(media_id, owner_id)
        if media is None:
            self._logger.warning("analysis_media_vanished", media_id=media_id)
            return

        try:
            if self._classifier is None:
                raise ClassifierError(
                    "No content classifier is configured",
                    reason="not_configured",
                    retryable=False,
                )
            result = await asyncio.wait_for(self._classifier.analyze(media), timeout=self._timeout)
        except asyncio.TimeoutError:
            await self._fail(
                media_id,
                AnalysisError(
                    reason="timeout",
                    message=f"Classifier did not answer within {self._timeout:g}s",
                    retryable=True,
                ),
            )
            return
        except ClassifierError as exc:
            await self._fail(
                media_id,
                AnalysisError(reason=exc.reason, message=exc.message, retryable=exc.retryable),
            )
            return

        fallback_date = media.captured_at.date() if media.captured_at else None
        try:
            suggestions = await self._ranker.rank(result, owner_id, fallback_date)
        except Exception as exc:
            self._logger.exception("match_ranking_failed", media_id=media_id)
            await self._fail(
                media_id,
                AnalysisError(reason="ranking_failed", message=str(exc), retryable=True),
            )
            return

        completed = CompletedAnalysis(result=result, match_suggestions=suggestions)
        if not await self._store.transition_analysis(
            media_id, (AnalysisStatus.PROCESSING,), completed
        ):
            self._logger.warning("analysis_completion_not_applied", media_id=media_id)
            return

        self._logger.info(
            "analysis_completed",
            media_id=media_id,
            artist=result.artist.name,
            venue=result.venue.name,
            overall_confidence=result.overall_confidence,
            suggestion_count=len(suggestions),
        )

        choice = self._ranker.select_auto_link(result, suggestions)
        if choice is not None:
            await self._workflow.auto_link(media_id, owner_id, choice)

    async def _fail(self, media_id: str, error: AnalysisError) -> None:
        applied = await self._store.transition_analysis(
            media_id, (AnalysisStatus.PROCESSING,), FailedAnalysis(error=error)
        )
        self._logger.warning(
            "analysis_failed",
            media_id=media_id,
            reason=error.reason,
            retryable=error.retryable,
            applied=applied,
        )

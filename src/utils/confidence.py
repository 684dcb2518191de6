"""Confidence scoring utilities for match ranking.

The engine turns several independent signals (artist, venue and date
similarity) into one score in [0.0, 1.0].  This module holds the math:

1. **calculate_confidence** -- Weighted average of multiple sub-scores.
   The ranker feeds it ``[artist, venue, date]`` with the configured
   weights ``[0.5, 0.3, 0.2]``.
2. **date_proximity** -- Linear decay from 1.0 on the concert's day(s) to
   0.0 at the tolerance boundary.
3. **confidence_to_level** -- Maps a score to a coarse tier for logs and
   API consumers.
"""

from __future__ import annotations

from datetime import date
from enum import Enum


class ConfidenceLevel(str, Enum):  # noqa: UP042
    """Human-readable confidence tiers."""

    LOW = "low"            # below the suggest threshold
    MEDIUM = "medium"      # worth suggesting
    HIGH = "high"          # strong enough to auto-link


def calculate_confidence(
    scores: list[float],
    weights: list[float] | None = None,
) -> float:
    """Compute a weighted average confidence score.

    Args:
        scores: Individual confidence scores, each in [0.0, 1.0].
        weights: Optional weights for each score. Defaults to equal weighting.

    Returns:
        Weighted average clamped to [0.0, 1.0].

    Raises:
        ValueError: If scores is empty or lengths of scores and weights differ.
    """
    if not scores:
        raise ValueError("scores must not be empty")

    if weights is None:
        weights = [1.0] * len(scores)

    if len(scores) != len(weights):
        raise ValueError("scores and weights must have the same length")

    total_weight = sum(weights)
    if total_weight == 0:
        return 0.0

    weighted_sum = sum(s * w for s, w in zip(scores, weights, strict=True))
    # Clamp to guard against floating-point drift.
    return max(0.0, min(1.0, weighted_sum / total_weight))


def date_proximity(
    target: date,
    start: date,
    end: date | None = None,
    tolerance_days: int = 1,
) -> float:
    """Score how close *target* is to the range ``[start, end]``.

    Returns 1.0 when *target* falls inside the range and decays linearly to
    0.0 at ``tolerance_days`` outside it.  A tolerance of zero only accepts
    an exact hit.
    """
    effective_end = end or start
    if start <= target <= effective_end:
        return 1.0

    if target < start:
        distance = (start - target).days
    else:
        distance = (target - effective_end).days

    if tolerance_days <= 0:
        return 0.0
    return max(0.0, 1.0 - distance / tolerance_days)


def confidence_to_level(
    score: float,
    suggest_threshold: float = 0.4,
    auto_link_threshold: float = 0.85,
) -> ConfidenceLevel:
    """Map a numeric confidence score onto the engine's decision tiers."""
    if score >= auto_link_threshold:
        return ConfidenceLevel.HIGH
    if score >= suggest_threshold:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW

"""Lineup resolution models.

Produced by :class:`~src.services.lineup_resolver.LineupResolver` from the
external setlist source.  Dates are ISO ``YYYY-MM-DD`` on the wire.
"""

from __future__ import annotations

import datetime

from pydantic import Field

from src.models.entities import DomainModel


class LineupArtist(DomainModel):
    """An artist who performed during the resolved event run.

    ``performance_dates`` lists the specific days (of a multi-day run) this
    artist played; it is always a subset of the result's event days.
    """

    external_id: str | None = None
    name: str
    is_headliner: bool = False
    performance_dates: list[datetime.date] = Field(default_factory=list)


class EventDay(DomainModel):
    """One calendar day of an event run at a venue."""

    date: datetime.date
    display_label: str
    artist_count: int = Field(ge=0)


class LineupSuggestionResult(DomainModel):
    """Full lineup at a venue around a queried date.

    An empty ``artists`` list is a successful answer ("nothing found"), not
    a failure; failures are reported as :class:`ResolverError`.
    """

    artists: list[LineupArtist] = Field(default_factory=list)
    event_name: str | None = None
    queried_date: datetime.date
    event_days: list[EventDay] = Field(default_factory=list)
    is_multi_day: bool = False


class ResolverError(DomainModel):
    """The setlist source could not be checked.

    ``reason`` is one of ``timeout``, ``rate_limited``, ``unauthorized``,
    ``unavailable``, ``network_error``, ``bad_response`` or
    ``not_configured``.
    """

    reason: str
    message: str = ""
    retryable: bool = True


class AddArtistsOutcome(DomainModel):
    """How many lineup artists were attached to a concert, and how many were already there."""

    added: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)

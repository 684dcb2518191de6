"""Custom exception hierarchy for the concert-matching engine.

All application exceptions inherit from :class:`ConcertMatchError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "anthropic", "setlist_fm", "sqlite") caused the
failure, plus an HTTP ``status_code`` used by the API error middleware.

The hierarchy is organized by engine component:

    ConcertMatchError  (base -- catch-all for any engine error)
    +-- ClassifierError          (content classifier failed / timed out)
    +-- SetlistSourceError       (external setlist source failed)
    +-- ContractViolationError   (caller broke an operation's preconditions)
    +-- MediaNotFoundError       (unknown media id, or not owned by caller)
    +-- ConcertNotFoundError     (unknown concert id, or not owned by caller)
    +-- VenueNotFoundError       (unknown venue id)
    +-- StoreError               (entity store write failed)
    +-- ConfigurationError       (startup / missing config)

Classifier and setlist-source errors are captured where they originate and
turned into structured data (``AnalysisError`` / ``ResolverError``); they
never cross the coordinator or resolver boundary as exceptions.
"""


class ConcertMatchError(Exception):
    """Base exception for all engine errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[setlist_fm] Rate limit exceeded``.
    """

    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# External capability errors (captured at origin, stored as data)
# ---------------------------------------------------------------------------

class ClassifierError(ConcertMatchError):
    """Raised by a media classifier when analysis cannot produce a result.

    ``reason`` is a short machine-readable code (``"timeout"``,
    ``"rate_limited"``, ``"unsupported_media"``, ``"bad_response"``...) that
    ends up in the media item's ``AnalysisError``.
    """

    status_code = 502

    def __init__(
        self,
        message: str = "Media classification failed",
        provider_name: str | None = None,
        reason: str = "classifier_error",
        retryable: bool = True,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.reason = reason
        self.retryable = retryable


class SetlistSourceError(ConcertMatchError):
    """Raised by a setlist provider when the external source cannot answer.

    The lineup resolver converts this into a ``ResolverError`` value so
    callers can tell "nothing found" apart from "couldn't check".
    """

    status_code = 502

    def __init__(
        self,
        message: str = "Setlist source request failed",
        provider_name: str | None = None,
        reason: str = "unavailable",
        retryable: bool = True,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.reason = reason
        self.retryable = retryable


# ---------------------------------------------------------------------------
# Caller-facing errors
# ---------------------------------------------------------------------------

class ContractViolationError(ConcertMatchError):
    """Raised when a request breaks an operation's preconditions.

    Rejected synchronously; no state is mutated.
    """

    status_code = 409

    def __init__(
        self,
        message: str = "Request violates the operation contract",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MediaNotFoundError(ConcertMatchError):
    """Raised when a media item does not exist or belongs to another owner."""

    status_code = 404

    def __init__(
        self,
        message: str = "Media item not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConcertNotFoundError(ConcertMatchError):
    """Raised when a concert does not exist or belongs to another owner."""

    status_code = 404

    def __init__(
        self,
        message: str = "Concert not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VenueNotFoundError(ConcertMatchError):
    """Raised when a venue id is unknown to the entity store."""

    status_code = 404

    def __init__(
        self,
        message: str = "Venue not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Infrastructure errors
# ---------------------------------------------------------------------------

class StoreError(ConcertMatchError):
    """Raised when an entity store write fails and was rolled back."""

    def __init__(
        self,
        message: str = "Entity store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(ConcertMatchError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)

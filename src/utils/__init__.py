"""Utility modules for the concert-matching engine.

Available utility modules (all re-exported here for convenience):

- **confidence** -- Weighted scoring, date-proximity decay and tier mapping
  used by the match ranker.
- **errors** -- Domain-specific exception hierarchy rooted at
  ConcertMatchError; each component raises its own subclass so callers can
  handle failures granularly.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text_normalizer** -- Diacritic-insensitive name normalization and
  rapidfuzz edit-distance similarity for artist/venue names.
"""

from src.utils.confidence import (
    ConfidenceLevel,
    calculate_confidence,
    confidence_to_level,
    date_proximity,
)
from src.utils.errors import (
    ClassifierError,
    ConcertMatchError,
    ConcertNotFoundError,
    ConfigurationError,
    ContractViolationError,
    MediaNotFoundError,
    SetlistSourceError,
    StoreError,
    VenueNotFoundError,
)
from src.utils.logging import configure_logging, get_logger
from src.utils.text_normalizer import name_similarity, names_equal, normalize_name

__all__ = [
    "ClassifierError",
    "ConcertMatchError",
    "ConcertNotFoundError",
    "ConfidenceLevel",
    "ConfigurationError",
    "ContractViolationError",
    "MediaNotFoundError",
    "SetlistSourceError",
    "StoreError",
    "VenueNotFoundError",
    "calculate_confidence",
    "confidence_to_level",
    "configure_logging",
    "date_proximity",
    "get_logger",
    "name_similarity",
    "names_equal",
    "normalize_name",
]

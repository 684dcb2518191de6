"""Concert-matching API layer: routes, schemas, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    AddArtistsRequest,
    ConfirmMatchRequest,
    CreateConcertRequest,
    CreateMediaRequest,
    ErrorResponse,
    HealthResponse,
    LineupErrorResponse,
    MediaItemView,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "AddArtistsRequest",
    "ConfirmMatchRequest",
    "CreateConcertRequest",
    "CreateMediaRequest",
    "ErrorResponse",
    "HealthResponse",
    "LineupErrorResponse",
    "MediaItemView",
]

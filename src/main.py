"""Concert-matching engine FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.loader import apply_config
from src.config.settings import Settings
from src.interfaces.media_classifier import IMediaClassifier
from src.interfaces.setlist_provider import ISetlistProvider
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.classifier.anthropic_classifier import AnthropicMediaClassifier
from src.providers.setlist.setlist_fm_provider import SetlistFmProvider
from src.providers.store.sqlite_entity_store import SQLiteEntityStore
from src.services.analysis_coordinator import AnalysisCoordinator
from src.services.assignment_workflow import AssignmentWorkflow
from src.services.lineup_resolver import LineupResolver
from src.services.match_ranker import MatchSuggestionRanker
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = apply_config(Settings())

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_classifier(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> IMediaClassifier | None:
    """Return the Anthropic classifier, or ``None`` without an API key.

    Without a classifier the engine still serves concerts and lineups;
    analysis submissions fail with ``not_configured``.
    """
    if app_settings.classifier_configured():
        return AnthropicMediaClassifier(settings=app_settings, http_client=http_client)
    _logger.warning("classifier_not_configured", hint="set ANTHROPIC_API_KEY")
    return None


def _build_setlist_provider(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> ISetlistProvider | None:
    if app_settings.setlist_source_configured():
        return SetlistFmProvider(
            http_client=http_client,
            api_key=app_settings.setlist_fm_api_key,
            base_url=app_settings.setlist_fm_base_url,
            max_pages=app_settings.lineup_max_pages,
        )
    _logger.warning("setlist_source_not_configured", hint="set SETLIST_FM_API_KEY")
    return None


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=30.0)

    # -- Providers --
    store = SQLiteEntityStore(db_path=app_settings.engine_db_path)
    classifier = _build_classifier(app_settings, http_client)
    setlist_provider = _build_setlist_provider(app_settings, http_client)
    lineup_cache = MemoryCacheProvider(ttl=app_settings.lineup_cache_ttl)

    # -- Services --
    ranker = MatchSuggestionRanker(store=store, settings=app_settings)
    workflow = AssignmentWorkflow(store=store)
    lineup_resolver = LineupResolver(
        setlist_provider=setlist_provider,
        store=store,
        settings=app_settings,
        cache=lineup_cache,
    )
    coordinator = AnalysisCoordinator(
        store=store,
        classifier=classifier,
        ranker=ranker,
        workflow=workflow,
        settings=app_settings,
    )

    # -- Provider registry for /health --
    provider_registry: dict[str, Any] = {
        "store": True,
        "classifier": classifier is not None,
        "classifier_name": classifier.get_provider_name() if classifier else None,
        "setlist": setlist_provider is not None and setlist_provider.is_available(),
        "setlist_name": setlist_provider.get_provider_name() if setlist_provider else None,
        "cache": True,
    }

    return {
        "settings": app_settings,
        "http_client": http_client,
        "store": store,
        "coordinator": coordinator,
        "workflow": workflow,
        "ranker": ranker,
        "lineup_resolver": lineup_resolver,
        "lineup_cache": lineup_cache,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise the store and services on startup, drain workers on shutdown."""
    app_settings: Settings = getattr(application.state, "settings", None) or settings
    components = _build_all(app_settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["store"].initialize()
    recovered = await components["coordinator"].recover_stale()

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=app_settings.app_env,
        classifier=components["provider_registry"]["classifier"],
        setlist=components["provider_registry"]["setlist"],
        recovered_analyses=recovered,
    )

    yield

    # -- Shutdown: let running analyses finish, then close the httpx client --
    await components["coordinator"].drain()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="Workers drained, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    *app_settings* overrides the module-level settings (used by tests to
    point the store at a temporary database).
    """
    effective = app_settings or settings
    application = FastAPI(
        title="Concert Match Engine API",
        version=_VERSION,
        description=(
            "Classify concert photos and videos, suggest which of the user's "
            "concerts they belong to, and resolve venue lineups from setlist.fm."
        ),
        lifespan=_lifespan,
    )
    application.state.settings = effective

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=effective.cors_allowed_origins)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )

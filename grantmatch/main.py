"""
GrantMatch FastAPI Application
Entry point for the grant matching API.
"""
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog
from fastapi import FastAPI

from grantmatch import __version__
from grantmatch.api import grants
from grantmatch.core.config import Settings, settings
from grantmatch.core.exceptions import CompletionNotConfiguredError
from grantmatch.core.logging import configure_logging
from grantmatch.database import create_engine_from_settings, create_session_factory, init_db
from grantmatch.matching.pipeline import MatchingPipeline
from grantmatch.services.grant_search import GrantSearchService
from grantmatch.services.grant_store import SqlGrantStore
from grantmatch.services.preferences import SqlPreferenceStore

logger = structlog.get_logger(__name__)


# =============================================================================
# Lifespan Events
# =============================================================================


def build_search_service(session_factory, config: Settings = settings) -> Optional[GrantSearchService]:
    """
    Wire storage and the matching pipeline.

    Returns None when no completion credentials are configured.
    """
    store = SqlGrantStore(session_factory)
    try:
        pipeline = MatchingPipeline.from_settings(store, config)
    except CompletionNotConfiguredError as e:
        logger.warning("search_service_disabled", reason=str(e))
        return None
    return GrantSearchService(pipeline, store, SqlPreferenceStore(session_factory))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle application startup and shutdown.

    Startup:
    - Configure logging
    - Create tables if needed
    - Build the search service

    Shutdown:
    - Dispose database connections
    """
    configure_logging()
    logger.info("app_starting", environment=settings.environment, version=settings.app_version)

    engine = create_engine_from_settings()
    await init_db(engine)
    session_factory = create_session_factory(engine)
    app.state.search_service = build_search_service(session_factory)

    logger.info("app_started")
    yield

    logger.info("app_stopping")
    await engine.dispose()


# =============================================================================
# FastAPI Application
# =============================================================================


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        description="Natural-language grant discovery and matching.",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.include_router(grants.router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "version": __version__,
            "search_enabled": getattr(app.state, "search_service", None) is not None,
        }

    return app


app = create_app()

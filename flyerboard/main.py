"""
FastAPI application factory.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flyerboard.api.router import api_router
from flyerboard.config import Settings, get_settings
from flyerboard.models.database import build_engine, build_session_factory, close_db, init_models
from flyerboard.observability.logging import setup_logging
from flyerboard.pipeline.capabilities import Capabilities, build_capabilities
from flyerboard.pipeline.errors import (
    ExtractionFailure,
    FlyerboardError,
    InputValidationError,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    PromotionFailure,
)
from flyerboard.pipeline.orchestrator import SubmissionPipeline
from flyerboard.storage.artifact_store import ArtifactStore

logger = structlog.get_logger(__name__)

INPUT_ERROR_STATUS = {
    "ERR_FILE_TOO_LARGE": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "ERR_UNSUPPORTED_FORMAT": status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
}


def error_status(exc: FlyerboardError) -> int:
    """HTTP status for a pipeline error."""
    if isinstance(exc, InputValidationError):
        return INPUT_ERROR_STATUS.get(exc.error_code, status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, InvalidTransition):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, PromotionFailure):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, ExtractionFailure):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, PersistenceFailure):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def flyerboard_error_handler(request: Request, exc: FlyerboardError) -> JSONResponse:
    status_code = error_status(exc)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, error_code=exc.error_code,
                     error=exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )


def create_app(
    settings: Optional[Settings] = None,
    capabilities: Optional[Capabilities] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown."""
        setup_logging(settings)

        engine = build_engine(settings)
        await init_models(engine)
        session_factory = build_session_factory(engine)
        store = ArtifactStore(settings.ARTIFACT_ROOT)
        caps = capabilities or build_capabilities(settings)

        app.state.settings = settings
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.store = store
        app.state.pipeline = SubmissionPipeline(settings, caps, session_factory, store)

        logger.info("app_started", version=settings.APP_VERSION,
                    pipeline_version=settings.PIPELINE_VERSION)
        yield

        await caps.aclose()
        await close_db(engine)

    app = FastAPI(
        title="Flyerboard",
        description="Bulletin-board flyer ingestion: extraction, moderation, geocoding and publishing.",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics endpoint
    if settings.PROMETHEUS_ENABLED:
        from prometheus_client import make_asgi_app
        metrics_app = make_asgi_app()
        app.mount("/metrics", metrics_app)

    app.add_exception_handler(FlyerboardError, flyerboard_error_handler)

    # Include all API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()

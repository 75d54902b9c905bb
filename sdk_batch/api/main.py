"""
Main FastAPI application for the SDK batch processor.
Configures the API server with routes, middleware, and error handling.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

import structlog

from sdk_batch.core.config import settings
from sdk_batch.core.database import DatabaseManager, init_database, close_database
from sdk_batch.core.logging import setup_logging
from sdk_batch.api.errors import add_exception_handlers
from sdk_batch.api.middleware import add_middleware
from sdk_batch.api.routes import sdk, submit
from sdk_batch.api.schemas.common import APIResponse, HealthCheckResponse
from sdk_batch.scheduler.batch_scheduler import get_batch_scheduler, shutdown_batch_scheduler
from sdk_batch.services.ledger_client import close_ledger_client, get_ledger_client
from sdk_batch.services.submission_service import get_submission_service, reset_submission_service


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting SDK batch API server")

    # Missing configuration is fatal at startup
    settings.ensure_configured()

    await init_database()
    await get_submission_service()

    if settings.scheduler_enabled:
        scheduler = await get_batch_scheduler()
        await scheduler.start()
        logger.info("Batch scheduler started")

    yield

    logger.info("Shutting down SDK batch API server")

    try:
        await shutdown_batch_scheduler()
        reset_submission_service()
        await close_ledger_client()
    finally:
        await close_database()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="""
        Verifies user-submitted transactions against the reward ledger and
        records them, either immediately or through the batch queue.

        Retryable failures (node unavailable, timeouts, transaction not yet
        visible) are returned with `retryable: true`.
        """,
        version=settings.app_version,
        lifespan=lifespan,
    )

    add_middleware(app)
    add_exception_handlers(app)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check",
    )
    async def health_check():
        """Database and ledger connectivity."""
        database_ok = await DatabaseManager.health_check()

        ledger_ok = False
        try:
            ledger = await get_ledger_client()
            ledger_ok = await ledger.health_check()
        except Exception as e:
            logger.error("Ledger health check failed", error=str(e))

        services = {
            "database": "healthy" if database_ok else "unhealthy",
            "ledger": "healthy" if ledger_ok else "unhealthy",
        }
        body = HealthCheckResponse(
            status="healthy" if database_ok and ledger_ok else "unhealthy",
            version=settings.app_version,
            services=services,
        )
        if database_ok and ledger_ok:
            return body
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=jsonable_encoder(body, by_alias=True),
        )

    @app.get(
        "/",
        response_model=APIResponse,
        tags=["System"],
        summary="API Information",
    )
    async def root():
        return APIResponse(message=f"{settings.app_name} v{settings.app_version}")

    app.include_router(submit.router, prefix="/api/submit", tags=["Submit"])
    app.include_router(sdk.router, prefix="/api/sdk", tags=["SDK Queue"])

    logger.info("FastAPI application created successfully")
    return app

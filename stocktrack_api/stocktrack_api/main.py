"""FastAPI application entry-point for the StockTrack subscription API."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from stocktrack_api import __version__
from stocktrack_api.config import APISettings, PlatformEnv, load_api_settings
from stocktrack_api.dependencies import dispose_engine, init_engine
from stocktrack_api.errors import ReconciliationError
from stocktrack_api.middleware.logging import RequestLoggingMiddleware
from stocktrack_api.routers import health, subscription
from stocktrack_api.state.database import create_tables

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup:
    - Refuse to start outside dev without a token-verification secret.
    - Initialise the async database engine.
    - Create the tables in dev or local SQLite mode.
    - Switch to JSON log lines when structured logging is enabled.

    On shutdown:
    - Dispose the database engine connection pool.
    """
    settings: APISettings = load_api_settings()

    if settings.platform_env in (PlatformEnv.STAGING, PlatformEnv.PRODUCTION) and not (
        settings.jwt_secret.get_secret_value()
    ):
        raise RuntimeError(
            f"STOCKTRACK_JWT_SECRET is required in {settings.platform_env.value} mode. Refusing to start."
        )
    if not settings.stripe_secret_key.get_secret_value():
        logger.warning("STOCKTRACK_STRIPE_SECRET_KEY is not set; subscription sync will fail upstream")

    engine = init_engine(settings)
    is_local = settings.database_url.startswith("sqlite")
    logger.info(
        "Database engine initialised (%s, %s)",
        settings.database_url[:40] + "...",
        "local" if is_local else "postgres",
    )

    if settings.platform_env == PlatformEnv.DEV or is_local:
        await create_tables(engine)
        logger.info(
            "Database tables ensured (%s)",
            "local SQLite" if is_local else "dev auto-migration",
        )

    if settings.structured_logging:
        from stocktrack_api.middleware.json_formatter import JSONFormatter

        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.INFO)
        logger.info("Structured JSON logging enabled")

    yield

    await dispose_engine()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = load_api_settings()

    app = FastAPI(
        title="StockTrack Subscription API",
        description="Reconciles company billing state with Stripe.",
        version=__version__,
        lifespan=lifespan,
    )

    # -- Middleware (outermost first) ----------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID", "Accept"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # -- Routers -------------------------------------------------------------

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(subscription.router, prefix="/api/v1")

    # Probes live outside /api/v1.
    app.include_router(health.readiness_router)

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(ReconciliationError)
    async def reconciliation_error_handler(request: Request, exc: ReconciliationError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", exc.kind, request.url.path, exc.message)
        else:
            logger.warning("%s on %s: %s", exc.kind, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"error": str(exc), "kind": "InvalidRequest"})

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=502,
            content={"error": "Datastore unavailable, please retry", "kind": "UpstreamError"},
        )

    return app


# Module-level application instance used by ``uvicorn stocktrack_api.main:app``.
app = create_app()

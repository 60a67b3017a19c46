"""
FastAPI Application

Main entry point for the Business Metrics API.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from kpi_engine.config import get_settings
from kpi_engine.config.logging import configure_logging
from kpi_engine.data.frames import FrameRecordSource
from kpi_engine.database.connection import close_database, get_session_factory, init_database
from kpi_engine.database.repository import SqlRecordSource
from kpi_engine.metrics.exceptions import DataSourceUnavailable, MetricsError
from kpi_engine.serving.api.middleware import RequestLoggingMiddleware
from kpi_engine.serving.api.routes import analytics_router, health_router
from kpi_engine.serving.cache import close_redis, init_redis

settings = get_settings()
logger = structlog.get_logger(__name__)


async def open_record_source(app: FastAPI) -> None:
    """Attach the frame source when a data directory is configured, else PostgreSQL."""
    if settings.metrics.data_dir:
        try:
            app.state.record_source = FrameRecordSource.from_directory(settings.metrics.data_dir)
        except MetricsError as e:
            logger.warning(
                "Frame source load failed, metrics endpoints will return 503",
                data_dir=settings.metrics.data_dir,
                error=e.message,
            )
            return
        logger.info("Using frame record source", data_dir=settings.metrics.data_dir)
        return

    try:
        await init_database()
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database init failed, metrics endpoints will return 503", error=str(e))
        return
    app.state.record_source = SqlRecordSource(get_session_factory())
    logger.info("Using SQL record source")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    logger.info("Starting Business Metrics API", environment=settings.app_env, version=settings.version)

    app.state.record_source = getattr(app.state, "record_source", None)
    if app.state.record_source is None:
        await open_record_source(app)

    if settings.metrics.cache_enabled:
        try:
            await init_redis()
        except (RedisError, OSError) as e:
            logger.warning("Redis init failed, serving without cache", error=str(e))

    yield

    logger.info("Shutting down...")
    await close_database()
    await close_redis()


app = FastAPI(
    title="Business Metrics API",
    description="Dashboard KPIs for the e-commerce and field-service back office",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.exception_handler(DataSourceUnavailable)
async def data_source_unavailable_handler(request: Request, exc: DataSourceUnavailable) -> JSONResponse:
    """Record source failures become a generic 503."""
    logger.error(
        "Metrics request failed",
        path=request.url.path,
        error=exc.message,
        details=exc.details,
        retryable=exc.retryable,
    )
    return JSONResponse(
        status_code=503,
        content={"error": "Metrics temporarily unavailable", "retryable": exc.retryable},
        headers={"Retry-After": "5"} if exc.retryable else None,
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(analytics_router, prefix="/api/v1/admin/analytics", tags=["Analytics"])


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Business Metrics API",
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }

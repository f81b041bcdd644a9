"""Studio Platform API - FastAPI application."""

import logging
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studio_api.config import settings
from studio_api.database import StudioDB
from studio_api.dependencies import require_admin
from studio_api.errors import StudioError
from studio_api.metrics import ERROR_COUNT
from studio_api.middleware.metrics import MetricsMiddleware, normalize_path
from studio_api.routers import (
    activities,
    backend,
    builds,
    ingredients,
    metrics,
    projects,
    recipes,
    tasks,
    user_tables,
)


def setup_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if not settings.debug else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.INFO if not settings.debug else logging.DEBUG
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler. Owns the store handle."""
    logger = structlog.get_logger()
    logger.info(
        "application_startup",
        version=settings.api_version,
        debug=settings.debug,
        database_path=str(settings.database_path),
    )

    db = StudioDB(
        settings.database_path,
        threads=settings.duckdb_threads,
        memory_limit=settings.duckdb_memory_limit,
    )
    try:
        db.initialize()
    except Exception as e:
        logger.error("studio_db_init_failed", error=str(e), exc_info=True)
        raise

    if settings.seed_demo_data:
        db.seed_demo_data()

    app.state.db = db

    yield

    app.state.db = None
    db.close()
    logger.info("application_shutdown")


# Setup logging before creating app
setup_logging()
logger = structlog.get_logger()

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="""
Admin API of the game studio platform.

- Projects, task board, build history and activity feed
- User tables: custom tables whose field list is defined at runtime,
  with row storage and read-back in the declared types

All `/api` endpoints require `Authorization: Bearer <ADMIN_API_KEY>`.
    """,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# The SPA is served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(MetricsMiddleware)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log all requests with timing and request ID."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    start_time = time.perf_counter()

    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
    )

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )

    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(StudioError)
async def studio_error_handler(request: Request, exc: StudioError):
    """Render domain errors with the HTTPException detail envelope."""
    if exc.status_code >= 500:
        ERROR_COUNT.labels(
            type=type(exc).__name__, endpoint=normalize_path(request.url.path)
        ).inc()
        logger.error(
            "studio_error",
            method=request.method,
            path=request.url.path,
            error=exc.error,
            message=exc.message,
        )
    else:
        logger.info(
            "request_rejected",
            path=request.url.path,
            error=exc.error,
            message=exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    endpoint = normalize_path(request.url.path)
    error_type = type(exc).__name__

    ERROR_COUNT.labels(type=error_type, endpoint=endpoint).inc()

    logger.error(
        "unhandled_exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=error_type,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": str(exc) if settings.debug else "An internal error occurred",
        },
    )


# Include routers
app.include_router(backend.router)
app.include_router(metrics.router)

for api_router in (
    projects.router,
    tasks.router,
    builds.router,
    activities.router,
    recipes.router,
    ingredients.router,
    user_tables.router,
):
    app.include_router(
        api_router,
        prefix=settings.api_prefix,
        dependencies=[Depends(require_admin)],
    )


# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    """Service pointer."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "health": "/health",
        "docs": "/docs" if settings.debug else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "studio_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

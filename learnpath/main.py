"""learnpath tracking API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from learnpath.awards.repository import InMemoryUserStatsStore
from learnpath.catalog.repository import InMemoryContentCatalog
from learnpath.config import Settings, get_settings
from learnpath.core.context import get_request_id
from learnpath.core.locks import InProcessKeyedLock, KeyedLock, RedisKeyedLock
from learnpath.core.logging import configure_structlog, get_logger
from learnpath.core.middleware import RequestContextMiddleware
from learnpath.core.redis import init_redis, shutdown_redis
from learnpath.enrollments.repository import InMemoryEnrollmentStore
from learnpath.enrollments.router import router as enrollments_router
from learnpath.health import router as health_router
from learnpath.progress.repository import InMemoryProgressStore
from learnpath.progress.router import router as progress_router
from learnpath.streaks.router import router as streak_router
from learnpath.tracking.engine import TrackingEngine


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def build_memory_engine(settings: Settings, locks: KeyedLock) -> TrackingEngine:
    """Tracking engine over in-memory stores (tests, local development)."""
    return TrackingEngine.from_settings(
        settings,
        catalog=InMemoryContentCatalog(),
        progress_store=InMemoryProgressStore(),
        enrollment_store=InMemoryEnrollmentStore(),
        stats_store=InMemoryUserStatsStore(),
        locks=locks,
    )


async def build_cassandra_engine(
    app: FastAPI, settings: Settings, locks: KeyedLock
) -> TrackingEngine:
    """Tracking engine over Cassandra, creating the schema if needed."""
    from learnpath.awards.repository import CassandraUserStatsStore
    from learnpath.catalog.repository import CassandraContentCatalog
    from learnpath.core.database import init_async_cassandra
    from learnpath.enrollments.repository import CassandraEnrollmentStore
    from learnpath.progress.repository import CassandraProgressStore

    session = await init_async_cassandra()
    app.state.cassandra_session = session
    logger.info("cassandra_initialized")

    keyspace = settings.cassandra_keyspace
    return TrackingEngine.from_settings(
        settings,
        catalog=CassandraContentCatalog(session, keyspace),
        progress_store=CassandraProgressStore(session, keyspace),
        enrollment_store=CassandraEnrollmentStore(session, keyspace),
        stats_store=CassandraUserStatsStore(session, keyspace),
        locks=locks,
    )


async def build_locks(settings: Settings) -> KeyedLock:
    """Redis locks when Redis is reachable, in-process locks otherwise."""
    if settings.redis_enabled:
        try:
            client = await init_redis()
            logger.info("redis_initialized")
            return RedisKeyedLock(
                client,
                timeout=settings.aggregation_lock_timeout_seconds,
                blocking_timeout=settings.aggregation_lock_blocking_timeout_seconds,
            )
        except Exception as e:
            logger.warning(
                "redis_init_skipped",
                error=str(e),
                message="Running without Redis - aggregation locks are per process",
            )

    return InProcessKeyedLock(
        blocking_timeout=settings.aggregation_lock_blocking_timeout_seconds
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        storage_backend=settings.storage_backend,
    )

    locks = await build_locks(settings)
    app.state.tracking_engine = None
    app.state.cassandra_session = None

    if settings.storage_backend == "memory":
        app.state.tracking_engine = build_memory_engine(settings, locks)
        logger.info("tracking_engine_initialized", storage_backend="memory")
    else:
        try:
            app.state.tracking_engine = await build_cassandra_engine(
                app, settings, locks
            )
            logger.info("tracking_engine_initialized", storage_backend="cassandra")
        except Exception as e:
            logger.warning(
                "database_init_skipped",
                error=str(e),
                message="Running without database connection",
            )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    if app.state.cassandra_session is not None:
        from learnpath.core.database import shutdown_async_cassandra

        await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # debug=False keeps Starlette from rendering stack traces in responses
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Progress and enrollment tracking API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        request_id = _get_request_id_safe(request)
        code = getattr(exc, "code", None)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            code=code,
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
            content={
                "error": True,
                "code": code,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                or exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": request_id,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle request validation errors."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "code": "request_validation_error",
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        Details are logged; the response never carries them.
        """
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "code": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    app.include_router(health_router)
    app.include_router(enrollments_router)
    app.include_router(progress_router)
    app.include_router(streak_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "learnpath tracking API",
            "version": settings.app_version,
        }

    return app


app = create_app()

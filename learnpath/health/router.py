"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from fastapi.responses import ORJSONResponse

from learnpath.config import get_settings
from learnpath.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> ORJSONResponse:
    """Readiness probe - the tracking engine is wired to its stores."""
    settings = get_settings()
    state = request.app.state
    engine_ready = getattr(state, "tracking_engine", None) is not None
    storage_ready = engine_ready and (
        settings.storage_backend == "memory"
        or getattr(state, "cassandra_session", None) is not None
    )

    return ORJSONResponse(
        status_code=status.HTTP_200_OK
        if storage_ready
        else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if storage_ready else "not_ready",
            "environment": settings.environment,
            "storage_backend": settings.storage_backend,
            "distributed_locks": get_redis() is not None,
        },
    )


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }

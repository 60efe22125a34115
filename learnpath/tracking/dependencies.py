"""FastAPI dependencies for tracking.

Provides dependency injection for:
- The tracking engine
- Tracking error to HTTP exception conversion
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from learnpath.core.exceptions import TrackingError

from .engine import TrackingEngine


# Seconds a client should wait before retrying a concurrency conflict
RETRY_AFTER_SECONDS = 1

ERROR_STATUS_MAP: dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "content_not_found": status.HTTP_404_NOT_FOUND,
    "module_not_found": status.HTTP_404_NOT_FOUND,
    "enrollment_not_found": status.HTTP_404_NOT_FOUND,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "not_enrolled": status.HTTP_403_FORBIDDEN,
    "conflict": status.HTTP_409_CONFLICT,
    "already_enrolled": status.HTTP_409_CONFLICT,
    "invalid_transition": status.HTTP_409_CONFLICT,
    "concurrency_conflict": status.HTTP_503_SERVICE_UNAVAILABLE,
}


class TrackingHTTPException(HTTPException):
    """HTTPException that keeps the stable error code for the response body."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        code: str,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code


async def get_tracking_engine(request: Request) -> TrackingEngine:
    """Get tracking engine from app state."""
    engine = getattr(request.app.state, "tracking_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tracking service not available",
        )
    return engine


TrackingEngineDep = Annotated[TrackingEngine, Depends(get_tracking_engine)]


def handle_tracking_error(error: TrackingError) -> TrackingHTTPException:
    """Convert tracking errors to HTTP exceptions.

    Args:
        error: Tracking error

    Returns:
        HTTPException with appropriate status code
    """
    status_code = ERROR_STATUS_MAP.get(
        error.code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )

    headers = None
    if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}

    return TrackingHTTPException(
        status_code=status_code,
        detail=error.message,
        code=error.code,
        headers=headers,
    )

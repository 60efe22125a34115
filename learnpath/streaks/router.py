"""Streak API endpoints."""

from uuid import UUID

from fastapi import APIRouter

from learnpath.auth.dependencies import CurrentUser
from learnpath.core.exceptions import TrackingError
from learnpath.tracking.dependencies import TrackingEngineDep, handle_tracking_error

from .schemas import StreakActivityResponse, StreakStatusResponse


router = APIRouter(prefix="/v1/streak", tags=["streak"])


@router.get(
    "/status",
    response_model=StreakStatusResponse,
    summary="Get my streak status",
)
async def get_streak_status(
    engine: TrackingEngineDep,
    user: CurrentUser,
    user_id: UUID | None = None,
) -> StreakStatusResponse:
    """My streak. Admins may pass ``user_id`` to read anyone's."""
    try:
        view = await engine.view_streak(user, user_id)
        return StreakStatusResponse.from_view(view)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.post(
    "/activity",
    response_model=StreakActivityResponse,
    summary="Record a learning activity",
)
async def record_activity(
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> StreakActivityResponse:
    """Count today towards my streak. Repeated calls on one day change nothing."""
    try:
        update = await engine.record_activity(user.id)
        return StreakActivityResponse.from_update(update)
    except TrackingError as e:
        raise handle_tracking_error(e) from e

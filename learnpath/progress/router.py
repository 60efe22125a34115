"""Progress tracking API endpoints.

Provides routes for:
- Content access (lazy record creation)
- Percentage updates (throttled from the player)
- Explicit completion
- Module progress queries
"""

from uuid import UUID

from fastapi import APIRouter

from learnpath.auth.dependencies import CurrentUser
from learnpath.core.exceptions import TrackingError
from learnpath.tracking.dependencies import TrackingEngineDep, handle_tracking_error

from .schemas import (
    CompleteContentRequest,
    ModuleProgressResponse,
    ProgressRecordResponse,
    ProgressUpdateResponse,
    UpdateProgressRequest,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])


@router.get(
    "/content/{content_id}",
    response_model=ProgressRecordResponse,
    summary="Access a content item",
)
async def access_content(
    content_id: UUID,
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> ProgressRecordResponse:
    """Return my record for a content item, creating it on first access."""
    try:
        record = await engine.access_content(user.id, content_id)
        return ProgressRecordResponse.from_entity(record)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.put(
    "/content/{content_id}",
    response_model=ProgressUpdateResponse,
    summary="Update content progress",
)
async def update_content_progress(
    content_id: UUID,
    data: UpdateProgressRequest,
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> ProgressUpdateResponse:
    """Report a percentage. Videos auto-complete at the configured threshold."""
    try:
        outcome = await engine.update_content_progress(
            user.id, content_id, data.percentage, data.time_spent
        )
        return ProgressUpdateResponse.from_outcome(outcome)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.post(
    "/content/{content_id}/complete",
    response_model=ProgressUpdateResponse,
    summary="Complete a content item",
)
async def complete_content(
    content_id: UUID,
    engine: TrackingEngineDep,
    user: CurrentUser,
    data: CompleteContentRequest | None = None,
) -> ProgressUpdateResponse:
    """Complete a content item. Completing it again changes nothing."""
    data = data or CompleteContentRequest()
    try:
        outcome = await engine.complete_content(
            user.id,
            content_id,
            score=data.score,
            max_score=data.max_score,
            time_spent=data.time_spent,
        )
        return ProgressUpdateResponse.from_outcome(outcome)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.get(
    "/module/{module_id}",
    response_model=ModuleProgressResponse,
    summary="Get module progress",
)
async def get_module_progress(
    module_id: UUID,
    engine: TrackingEngineDep,
    user: CurrentUser,
    user_id: UUID | None = None,
) -> ModuleProgressResponse:
    """My records in a module. Admins may pass ``user_id`` to read anyone's."""
    try:
        view = await engine.get_module_progress(user, module_id, user_id)
        return ModuleProgressResponse.from_view(view)
    except TrackingError as e:
        raise handle_tracking_error(e) from e

"""Enrollment API endpoints.

Provides routes for:
- Enrolling (or re-enrolling after a drop)
- Pause, resume, complete and drop
- Listing own enrollments, and any user's for admins
"""

from uuid import UUID

from fastapi import APIRouter, status

from learnpath.auth.dependencies import AdminUser, CurrentUser
from learnpath.core.exceptions import TrackingError
from learnpath.tracking.dependencies import TrackingEngineDep, handle_tracking_error

from .schemas import (
    CompleteEnrollmentRequest,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
)


router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


@router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in a module",
)
async def enroll(
    data: EnrollRequest,
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Enroll in a module.

    A dropped enrollment is reactivated with its progress history instead
    of creating a new one.
    """
    try:
        enrollment = await engine.enroll(user, data.module_id)
        return EnrollmentResponse.from_entity(enrollment)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.get(
    "",
    response_model=EnrollmentListResponse,
    summary="List my enrollments",
)
async def list_my_enrollments(
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> EnrollmentListResponse:
    try:
        enrollments = await engine.list_enrollments(user)
        return EnrollmentListResponse.from_entities(enrollments)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.get(
    "/module/{module_id}",
    response_model=EnrollmentResponse,
    summary="Get my enrollment in a module",
)
async def get_module_enrollment(
    module_id: UUID,
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    try:
        enrollment = await engine.get_module_enrollment(user, module_id)
        return EnrollmentResponse.from_entity(enrollment)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.get(
    "/user/{user_id}",
    response_model=EnrollmentListResponse,
    summary="List a user's enrollments (admin)",
)
async def list_user_enrollments(
    user_id: UUID,
    engine: TrackingEngineDep,
    admin: AdminUser,
) -> EnrollmentListResponse:
    try:
        enrollments = await engine.list_enrollments(admin, user_id)
        return EnrollmentListResponse.from_entities(enrollments)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.get(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Get an enrollment",
)
async def get_enrollment(
    enrollment_id: UUID,
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    try:
        enrollment = await engine.get_enrollment(user, enrollment_id)
        return EnrollmentResponse.from_entity(enrollment)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.put(
    "/{enrollment_id}/pause",
    response_model=EnrollmentResponse,
    summary="Pause an active enrollment",
)
async def pause_enrollment(
    enrollment_id: UUID,
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    try:
        enrollment = await engine.pause(user, enrollment_id)
        return EnrollmentResponse.from_entity(enrollment)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.put(
    "/{enrollment_id}/resume",
    response_model=EnrollmentResponse,
    summary="Resume a paused enrollment",
)
async def resume_enrollment(
    enrollment_id: UUID,
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    try:
        enrollment = await engine.resume(user, enrollment_id)
        return EnrollmentResponse.from_entity(enrollment)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.put(
    "/{enrollment_id}/complete",
    response_model=EnrollmentResponse,
    summary="Complete an enrollment",
)
async def complete_enrollment(
    enrollment_id: UUID,
    engine: TrackingEngineDep,
    user: CurrentUser,
    data: CompleteEnrollmentRequest | None = None,
) -> EnrollmentResponse:
    """Complete an active or paused enrollment, optionally with a grade."""
    data = data or CompleteEnrollmentRequest()
    try:
        enrollment = await engine.complete_enrollment(
            user, enrollment_id, grade=data.grade, feedback=data.feedback
        )
        return EnrollmentResponse.from_entity(enrollment)
    except TrackingError as e:
        raise handle_tracking_error(e) from e


@router.delete(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Drop an enrollment",
)
async def drop_enrollment(
    enrollment_id: UUID,
    engine: TrackingEngineDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Drop an enrollment. Completed enrollments cannot be dropped."""
    try:
        enrollment = await engine.drop(user, enrollment_id)
        return EnrollmentResponse.from_entity(enrollment)
    except TrackingError as e:
        raise handle_tracking_error(e) from e

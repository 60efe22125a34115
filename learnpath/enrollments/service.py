"""Enrollment lifecycle and aggregation.

State machine (see ``ENROLLMENT_TRANSITIONS``):
- active <-> paused via pause/resume
- active | paused -> completed, exactly once
- active | paused -> dropped, and dropped -> active on re-enroll

Both the explicit complete operation and threshold-crossing aggregation
complete an enrollment through ``mark_completed_if_not_already``.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar
from uuid import UUID

import structlog

from learnpath.core.exceptions import (
    AlreadyEnrolledError,
    ConcurrencyConflictError,
    EnrollmentNotFoundError,
    InvalidTransitionError,
)
from learnpath.core.timeutils import utcnow

from .models import (
    ENROLLMENT_TRANSITIONS,
    Enrollment,
    EnrollmentAction,
    EnrollmentStatus,
)
from .repository import EnrollmentStore


logger = structlog.get_logger(__name__)

T = TypeVar("T")

_TRANSITION_EVENTS = {
    EnrollmentAction.PAUSE: "enrollment_paused",
    EnrollmentAction.RESUME: "enrollment_resumed",
    EnrollmentAction.DROP: "enrollment_dropped",
}


@dataclass(frozen=True)
class ProgressSnapshot:
    """Inputs of one aggregation, read under the (user, module) lock."""

    completed: int
    total: int
    time_spent: int = 0


def compute_percentage(completed: int, total: int) -> int:
    """Completed share as an integer percentage, rounded half up.

    An empty module is 0%, completed is clamped to [0, total], and only a
    fully completed module reaches 100. This deliberately differs from a
    plain ``round(100 * completed / total)``, which would report 100 for
    199 of 200.

    Examples:
        >>> compute_percentage(3, 4)
        75
        >>> compute_percentage(1, 8)
        13
        >>> compute_percentage(199, 200)
        99
        >>> compute_percentage(0, 0)
        0
    """
    if total <= 0:
        return 0
    completed = max(0, min(completed, total))
    if completed == total:
        return 100
    return min((200 * completed + total) // (2 * total), 99)


# ==============================================================================
# Transitions
# ==============================================================================


def apply_transition(
    enrollment: Enrollment, action: EnrollmentAction, now: datetime
) -> None:
    """Move an enrollment along the state machine or raise a conflict."""
    allowed, target = ENROLLMENT_TRANSITIONS[action]
    if enrollment.status not in allowed:
        raise InvalidTransitionError(
            "enrollment", enrollment.status.value, action.value
        )

    enrollment.status = target
    enrollment.last_accessed_at = now
    if target == EnrollmentStatus.DROPPED:
        enrollment.is_active = False
    elif action == EnrollmentAction.REACTIVATE:
        enrollment.is_active = True


def mark_completed_if_not_already(
    enrollment: Enrollment,
    now: datetime,
    grade: str | None = None,
    feedback: str | None = None,
) -> bool:
    """Complete an enrollment unless it already is.

    Returns True only for the call that performs the transition.
    Raises InvalidTransitionError for a dropped enrollment.
    """
    if enrollment.is_completed:
        return False

    apply_transition(enrollment, EnrollmentAction.COMPLETE, now)
    enrollment.completed_at = now
    enrollment.progress_percentage = 100
    if grade is not None:
        enrollment.grade = grade
    if feedback is not None:
        enrollment.feedback = feedback
    return True


def apply_aggregate(
    enrollment: Enrollment,
    snapshot: ProgressSnapshot,
    now: datetime,
    *,
    implicit_completion: bool = True,
) -> bool:
    """Write aggregated progress into an enrollment.

    A completed enrollment keeps its 100% and a dropped one is left as is.
    Returns True when this aggregation completed the enrollment.
    """
    if enrollment.status == EnrollmentStatus.DROPPED:
        return False

    enrollment.last_accessed_at = now
    enrollment.time_spent = snapshot.time_spent
    if enrollment.is_completed:
        return False

    enrollment.total_sections = max(snapshot.total, 0)
    enrollment.completed_sections = max(0, min(snapshot.completed, snapshot.total))
    enrollment.progress_percentage = compute_percentage(
        snapshot.completed, snapshot.total
    )

    if implicit_completion and enrollment.progress_percentage == 100:
        return mark_completed_if_not_already(enrollment, now)
    return False


# ==============================================================================
# Enrollment Manager
# ==============================================================================


class EnrollmentManager:
    """Lifecycle operations over an EnrollmentStore, retried on version conflicts."""

    def __init__(
        self,
        store: EnrollmentStore,
        max_attempts: int = 3,
        *,
        implicit_completion: bool = True,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.implicit_completion = implicit_completion

    async def get(self, enrollment_id: UUID) -> Enrollment:
        enrollment = await self.store.get(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError
        return enrollment

    async def find(self, user_id: UUID, module_id: UUID) -> Enrollment | None:
        return await self.store.get_for_module(user_id, module_id)

    async def list_for_user(self, user_id: UUID) -> list[Enrollment]:
        enrollments = await self.store.list_for_user(user_id)
        return sorted(enrollments, key=lambda e: e.enrolled_at, reverse=True)

    async def list_for_module(self, module_id: UUID) -> list[Enrollment]:
        return await self.store.list_for_module(module_id)

    async def enroll(
        self, user_id: UUID, module_id: UUID, total_sections: int = 0
    ) -> tuple[Enrollment, bool]:
        """Create an active enrollment or reactivate a dropped one.

        Returns the enrollment and whether it was reactivated.

        Raises:
            AlreadyEnrolledError: If an active, paused or completed enrollment exists
        """
        for attempt in range(1, self.max_attempts + 1):
            now = utcnow()
            existing = await self.store.get_for_module(user_id, module_id)

            if existing is None:
                enrollment = Enrollment(
                    user_id=user_id,
                    module_id=module_id,
                    total_sections=total_sections,
                    enrolled_at=now,
                )
                if await self.store.create(enrollment):
                    logger.info(
                        "enrollment_created",
                        user_id=str(user_id),
                        module_id=str(module_id),
                        enrollment_id=str(enrollment.id),
                    )
                    return enrollment, False
            else:
                if existing.status != EnrollmentStatus.DROPPED:
                    raise AlreadyEnrolledError(existing.status.value)
                apply_transition(existing, EnrollmentAction.REACTIVATE, now)
                if await self.store.save(existing):
                    logger.info(
                        "enrollment_reactivated",
                        user_id=str(user_id),
                        module_id=str(module_id),
                        enrollment_id=str(existing.id),
                    )
                    return existing, True

            self._log_retry(f"{user_id}:{module_id}", attempt)

        raise ConcurrencyConflictError

    async def transition(
        self, enrollment_id: UUID, action: EnrollmentAction
    ) -> Enrollment:
        """Apply pause, resume or drop."""

        def _apply(enrollment: Enrollment, now: datetime) -> None:
            apply_transition(enrollment, action, now)

        enrollment, _ = await self._update(enrollment_id, _apply)
        logger.info(
            _TRANSITION_EVENTS.get(action, "enrollment_transitioned"),
            enrollment_id=str(enrollment_id),
            user_id=str(enrollment.user_id),
            module_id=str(enrollment.module_id),
            action=action.value,
        )
        return enrollment

    async def complete(
        self,
        enrollment_id: UUID,
        grade: str | None = None,
        feedback: str | None = None,
    ) -> Enrollment:
        """Explicitly complete an enrollment.

        Raises:
            InvalidTransitionError: If already completed or dropped
        """

        def _complete(enrollment: Enrollment, now: datetime) -> None:
            if not mark_completed_if_not_already(enrollment, now, grade, feedback):
                raise InvalidTransitionError(
                    "enrollment",
                    enrollment.status.value,
                    EnrollmentAction.COMPLETE.value,
                )

        enrollment, _ = await self._update(enrollment_id, _complete)
        self._log_completed(enrollment, implicit=False)
        return enrollment

    async def aggregate(
        self,
        enrollment_id: UUID,
        snapshot: Callable[[], Awaitable[ProgressSnapshot]],
    ) -> tuple[Enrollment, bool]:
        """Recompute aggregated progress from a fresh snapshot per attempt.

        Returns the enrollment and whether this call completed it.
        """
        for attempt in range(1, self.max_attempts + 1):
            now = utcnow()
            enrollment = await self.get(enrollment_id)
            current = await snapshot()
            completed = apply_aggregate(
                enrollment,
                current,
                now,
                implicit_completion=self.implicit_completion,
            )
            if await self.store.save(enrollment):
                if completed:
                    self._log_completed(enrollment, implicit=True)
                return enrollment, completed
            self._log_retry(str(enrollment_id), attempt)

        raise ConcurrencyConflictError

    async def _update(
        self,
        enrollment_id: UUID,
        mutate: Callable[[Enrollment, datetime], T],
    ) -> tuple[Enrollment, T]:
        for attempt in range(1, self.max_attempts + 1):
            enrollment = await self.get(enrollment_id)
            result = mutate(enrollment, utcnow())
            if await self.store.save(enrollment):
                return enrollment, result
            self._log_retry(str(enrollment_id), attempt)

        raise ConcurrencyConflictError

    @staticmethod
    def _log_retry(key: str, attempt: int) -> None:
        logger.info("aggregation_conflict_retry", key=key, attempt=attempt)

    @staticmethod
    def _log_completed(enrollment: Enrollment, *, implicit: bool) -> None:
        logger.info(
            "enrollment_completed",
            enrollment_id=str(enrollment.id),
            user_id=str(enrollment.user_id),
            module_id=str(enrollment.module_id),
            implicit=implicit,
        )

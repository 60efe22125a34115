"""Pydantic schemas for progress endpoints.

Request bounds are checked by the tracking engine rather than here, so
out-of-range values surface as validation errors (400) with the same
messages the engine uses everywhere.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from learnpath.awards.service import AwardResult
from learnpath.enrollments.schemas import EnrollmentResponse
from learnpath.streaks.schemas import StreakActivityResponse
from learnpath.tracking.engine import ModuleProgressView, ProgressOutcome

from .models import ProgressRecord, ProgressStatus


class UpdateProgressRequest(BaseModel):
    """Report progress on a content item."""

    percentage: float = Field(..., description="Progress percentage (0-100)")
    time_spent: int = Field(0, description="Minutes spent since the last report")


class CompleteContentRequest(BaseModel):
    """Explicitly complete a content item (labs, games)."""

    score: float | None = Field(None, description="Score achieved")
    max_score: float | None = Field(None, description="Maximum possible score")
    time_spent: int = Field(0, description="Minutes spent since the last report")


class ProgressRecordResponse(BaseModel):
    """Progress record response."""

    model_config = ConfigDict(from_attributes=True)

    content_id: UUID
    module_id: UUID
    content_type: str
    status: ProgressStatus
    progress_percentage: int
    time_spent: int
    attempts: int
    score: float | None = None
    max_score: float | None = None
    score_percentage: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime
    is_active: bool

    @classmethod
    def from_entity(cls, entity: ProgressRecord) -> "ProgressRecordResponse":
        return cls.model_validate(entity)


class AwardResponse(BaseModel):
    points: int
    level: int
    level_up: bool
    achievements: list[str] = []

    @classmethod
    def from_result(cls, result: AwardResult | None) -> "AwardResponse | None":
        if result is None:
            return None
        return cls(
            points=result.points,
            level=result.level,
            level_up=result.level_up,
            achievements=result.achievements,
        )


class ProgressUpdateResponse(BaseModel):
    """Record, enrollment and side effects of one progress mutation."""

    record: ProgressRecordResponse
    enrollment: EnrollmentResponse
    newly_completed: bool
    enrollment_completed: bool
    award: AwardResponse | None = None
    module_award: AwardResponse | None = None
    streak: StreakActivityResponse | None = None

    @classmethod
    def from_outcome(cls, outcome: ProgressOutcome) -> "ProgressUpdateResponse":
        return cls(
            record=ProgressRecordResponse.from_entity(outcome.record),
            enrollment=EnrollmentResponse.from_entity(outcome.enrollment),
            newly_completed=outcome.newly_completed,
            enrollment_completed=outcome.enrollment_completed,
            award=AwardResponse.from_result(outcome.award),
            module_award=AwardResponse.from_result(outcome.module_award),
            streak=(
                StreakActivityResponse.from_update(outcome.streak)
                if outcome.streak
                else None
            ),
        )


class ModuleProgressResponse(BaseModel):
    """All of a user's records in one module, with counts."""

    module_id: UUID
    user_id: UUID
    total_items: int
    enrollment: EnrollmentResponse | None = None
    records: list[ProgressRecordResponse] = []
    by_status: dict[str, int] = {}
    by_type: dict[str, int] = {}

    @classmethod
    def from_view(cls, view: ModuleProgressView) -> "ModuleProgressResponse":
        return cls(
            module_id=view.module_id,
            user_id=view.user_id,
            total_items=view.total_items,
            enrollment=(
                EnrollmentResponse.from_entity(view.enrollment)
                if view.enrollment
                else None
            ),
            records=[ProgressRecordResponse.from_entity(r) for r in view.records],
            by_status=view.by_status,
            by_type=view.by_type,
        )

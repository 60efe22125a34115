"""Pydantic schemas for enrollment endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import Enrollment, EnrollmentStatus


class EnrollRequest(BaseModel):
    """Request to enroll in a module."""

    module_id: UUID = Field(..., description="Module UUID to enroll in")


class CompleteEnrollmentRequest(BaseModel):
    """Optional grading attached to an explicit completion."""

    grade: str | None = Field(None, max_length=32)
    feedback: str | None = Field(None, max_length=2000)


class EnrollmentResponse(BaseModel):
    """Enrollment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    module_id: UUID
    status: EnrollmentStatus
    progress_percentage: int
    completed_sections: int
    total_sections: int
    time_spent: int
    enrolled_at: datetime
    last_accessed_at: datetime | None = None
    completed_at: datetime | None = None
    grade: str | None = None
    feedback: str | None = None
    is_active: bool

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        return cls.model_validate(entity)


class EnrollmentListResponse(BaseModel):
    """List of user enrollments."""

    items: list[EnrollmentResponse]
    total: int

    @classmethod
    def from_entities(cls, entities: list[Enrollment]) -> "EnrollmentListResponse":
        return cls(
            items=[EnrollmentResponse.from_entity(e) for e in entities],
            total=len(entities),
        )

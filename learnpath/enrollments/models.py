"""Database models for module enrollments.

Cassandra table definitions for:
- Enrollments: keyed by enrollment_id, the compare-and-set target
- enrollments_by_user: (user_id, module_id) -> enrollment_id, also the
  uniqueness guard (at most one enrollment lineage per user and module)
- enrollments_by_module: (module_id, user_id) -> enrollment_id, used to
  re-aggregate every learner of a module when its content changes

Lookup tables carry ids only; status and progress are always read from
the main table so they cannot go stale.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from learnpath.core.timeutils import ensure_utc_aware, utcnow


class EnrollmentStatus(str, Enum):
    """Enrollment lifecycle status."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    DROPPED = "dropped"


class EnrollmentAction(str, Enum):
    """Lifecycle operations, named as they appear in conflict messages."""

    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    DROP = "drop"
    REACTIVATE = "reactivate"


# action -> (allowed source states, target state)
ENROLLMENT_TRANSITIONS: dict[
    EnrollmentAction, tuple[frozenset[EnrollmentStatus], EnrollmentStatus]
] = {
    EnrollmentAction.PAUSE: (
        frozenset({EnrollmentStatus.ACTIVE}),
        EnrollmentStatus.PAUSED,
    ),
    EnrollmentAction.RESUME: (
        frozenset({EnrollmentStatus.PAUSED}),
        EnrollmentStatus.ACTIVE,
    ),
    EnrollmentAction.COMPLETE: (
        frozenset({EnrollmentStatus.ACTIVE, EnrollmentStatus.PAUSED}),
        EnrollmentStatus.COMPLETED,
    ),
    EnrollmentAction.DROP: (
        frozenset({EnrollmentStatus.ACTIVE, EnrollmentStatus.PAUSED}),
        EnrollmentStatus.DROPPED,
    ),
    EnrollmentAction.REACTIVATE: (
        frozenset({EnrollmentStatus.DROPPED}),
        EnrollmentStatus.ACTIVE,
    ),
}

# Statuses under which progress may still be recorded
PROGRESS_WRITABLE_STATUSES = frozenset(
    {EnrollmentStatus.ACTIVE, EnrollmentStatus.PAUSED, EnrollmentStatus.COMPLETED}
)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    enrollment_id UUID PRIMARY KEY,
    user_id UUID,
    module_id UUID,
    status TEXT,
    progress_percentage INT,
    completed_sections INT,
    total_sections INT,
    time_spent INT,
    enrolled_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    completed_at TIMESTAMP,
    grade TEXT,
    feedback TEXT,
    is_active BOOLEAN,
    version INT
)
"""

ENROLLMENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_user (
    user_id UUID,
    module_id UUID,
    enrollment_id UUID,
    PRIMARY KEY (user_id, module_id)
)
"""

ENROLLMENTS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_module (
    module_id UUID,
    user_id UUID,
    enrollment_id UUID,
    PRIMARY KEY (module_id, user_id)
)
"""

ENROLLMENT_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_USER_TABLE_CQL,
    ENROLLMENTS_BY_MODULE_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Enrollment:
    """A user's enrollment in one module, with aggregated progress.

    Attributes:
        id: Enrollment UUID, stable across drop and reactivation
        user_id: Owning user
        module_id: Module
        status: active, paused, completed or dropped
        progress_percentage: Completed share of the module's live content (0-100)
        completed_sections: Completed active content items at last aggregation
        total_sections: Active content items at last aggregation
        time_spent: Sum of time spent over active progress records (minutes)
        enrolled_at: Enrollment timestamp
        last_accessed_at: Last activity timestamp
        completed_at: Completion timestamp
        grade: Optional grade given on completion
        feedback: Optional feedback given on completion
        is_active: False once dropped
        version: Compare-and-set version, bumped on every write
    """

    def __init__(
        self,
        user_id: UUID,
        module_id: UUID,
        id: UUID | None = None,  # noqa: A002
        status: EnrollmentStatus = EnrollmentStatus.ACTIVE,
        progress_percentage: int = 0,
        completed_sections: int = 0,
        total_sections: int = 0,
        time_spent: int = 0,
        enrolled_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
        completed_at: datetime | None = None,
        grade: str | None = None,
        feedback: str | None = None,
        is_active: bool = True,
        version: int = 0,
    ):
        self.id = id or uuid4()
        self.user_id = user_id
        self.module_id = module_id
        self.status = EnrollmentStatus(status)
        self.progress_percentage = progress_percentage
        self.completed_sections = completed_sections
        self.total_sections = total_sections
        self.time_spent = time_spent
        self.enrolled_at = ensure_utc_aware(enrolled_at) or utcnow()
        self.last_accessed_at = ensure_utc_aware(last_accessed_at) or self.enrolled_at
        self.completed_at = ensure_utc_aware(completed_at)
        self.grade = grade
        self.feedback = feedback
        self.is_active = is_active
        self.version = version

    @property
    def is_completed(self) -> bool:
        return self.status == EnrollmentStatus.COMPLETED

    @property
    def accepts_progress(self) -> bool:
        return self.status in PROGRESS_WRITABLE_STATUSES

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            id=row.enrollment_id,
            user_id=row.user_id,
            module_id=row.module_id,
            status=row.status or EnrollmentStatus.ACTIVE,
            progress_percentage=row.progress_percentage or 0,
            completed_sections=row.completed_sections or 0,
            total_sections=row.total_sections or 0,
            time_spent=row.time_spent or 0,
            enrolled_at=row.enrolled_at,
            last_accessed_at=row.last_accessed_at,
            completed_at=row.completed_at,
            grade=row.grade,
            feedback=row.feedback,
            is_active=row.is_active if row.is_active is not None else True,
            version=row.version or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "module_id": self.module_id,
            "status": self.status.value,
            "progress_percentage": self.progress_percentage,
            "completed_sections": self.completed_sections,
            "total_sections": self.total_sections,
            "time_spent": self.time_spent,
            "enrolled_at": self.enrolled_at,
            "last_accessed_at": self.last_accessed_at,
            "completed_at": self.completed_at,
            "grade": self.grade,
            "feedback": self.feedback,
            "is_active": self.is_active,
            "version": self.version,
        }

    def copy(self) -> "Enrollment":
        return Enrollment(**self.to_dict())

    def __repr__(self) -> str:
        return (
            f"<Enrollment user={self.user_id} module={self.module_id} "
            f"{self.status.value} {self.progress_percentage}%>"
        )

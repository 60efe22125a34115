"""Database models for per-content progress records.

One record per (user, content item). Records are created lazily on first
access, mutated by progress updates and completions, and never deleted:
removing content from the catalog soft-deactivates its records instead.

Partitioning by (user_id, module_id) keeps the aggregation read (all of
a user's records in one module) to a single partition.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from learnpath.core.timeutils import ensure_utc_aware, utcnow


class ProgressStatus(str, Enum):
    """Progress status of one content item."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

PROGRESS_RECORDS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress_records (
    user_id UUID,
    module_id UUID,
    content_id UUID,
    content_type TEXT,
    status TEXT,
    progress_percentage INT,
    time_spent INT,
    attempts INT,
    score DOUBLE,
    max_score DOUBLE,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    is_active BOOLEAN,
    version INT,
    PRIMARY KEY ((user_id, module_id), content_id)
)
"""

PROGRESS_TABLES_CQL = [
    PROGRESS_RECORDS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class ProgressRecord:
    """Progress of one user on one content item.

    Invariant: ``status == COMPLETED`` iff ``progress_percentage == 100``
    and ``completed_at`` is set.

    Attributes:
        user_id: Owning user
        content_id: Content item
        module_id: Owning module (denormalized from the catalog)
        content_type: Content type (denormalized from the catalog)
        status: not_started, in_progress or completed
        progress_percentage: 0-100
        time_spent: Minutes, never decreases
        attempts: Explicit completion attempts
        score: Optional score from the last completion
        max_score: Optional maximum score
        started_at: First time progress was reported
        completed_at: Completion timestamp
        last_accessed_at: Last access timestamp
        is_active: False once the content was removed from the catalog
        version: Compare-and-set version, bumped on every write
    """

    def __init__(
        self,
        user_id: UUID,
        content_id: UUID,
        module_id: UUID,
        content_type: str,
        status: ProgressStatus = ProgressStatus.NOT_STARTED,
        progress_percentage: int = 0,
        time_spent: int = 0,
        attempts: int = 0,
        score: float | None = None,
        max_score: float | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
        is_active: bool = True,
        version: int = 0,
    ):
        self.user_id = user_id
        self.content_id = content_id
        self.module_id = module_id
        self.content_type = content_type
        self.status = ProgressStatus(status)
        self.progress_percentage = progress_percentage
        self.time_spent = time_spent
        self.attempts = attempts
        self.score = score
        self.max_score = max_score
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.last_accessed_at = ensure_utc_aware(last_accessed_at) or utcnow()
        self.is_active = is_active
        self.version = version

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED

    @property
    def score_percentage(self) -> int | None:
        """Score as a rounded percentage of max_score, if both are known."""
        if self.score is None or not self.max_score:
            return None
        return round(self.score / self.max_score * 100)

    @classmethod
    def from_row(cls, row: Any) -> "ProgressRecord":
        """Create ProgressRecord instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            content_id=row.content_id,
            module_id=row.module_id,
            content_type=row.content_type,
            status=row.status or ProgressStatus.NOT_STARTED,
            progress_percentage=row.progress_percentage or 0,
            time_spent=row.time_spent or 0,
            attempts=row.attempts or 0,
            score=row.score,
            max_score=row.max_score,
            started_at=row.started_at,
            completed_at=row.completed_at,
            last_accessed_at=row.last_accessed_at,
            is_active=row.is_active if row.is_active is not None else True,
            version=row.version or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "content_id": self.content_id,
            "module_id": self.module_id,
            "content_type": self.content_type,
            "status": self.status.value,
            "progress_percentage": self.progress_percentage,
            "time_spent": self.time_spent,
            "attempts": self.attempts,
            "score": self.score,
            "max_score": self.max_score,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "last_accessed_at": self.last_accessed_at,
            "is_active": self.is_active,
            "version": self.version,
        }

    def copy(self) -> "ProgressRecord":
        return ProgressRecord(**self.to_dict())

    def __repr__(self) -> str:
        return (
            f"<ProgressRecord user={self.user_id} content={self.content_id} "
            f"{self.status.value} {self.progress_percentage}%>"
        )

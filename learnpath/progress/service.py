"""Progress record management.

Business logic for:
- Lazy record creation on first access (auto-start)
- Percentage updates with video auto-completion
- Explicit completion with optional score (labs, games)
- Soft deactivation when content leaves the catalog

Every mutation is a read-modify-write retried on version conflicts, and
reports the status the record had before the write so that callers can
award completion exactly once.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog

from learnpath.catalog.models import ContentItem, ContentType
from learnpath.core.exceptions import ConcurrencyConflictError, ValidationError
from learnpath.core.timeutils import utcnow

from .models import ProgressRecord, ProgressStatus
from .repository import ProgressStore


logger = structlog.get_logger(__name__)

# Video players rarely report exactly 100%
DEFAULT_VIDEO_AUTO_COMPLETE_THRESHOLD = 90


@dataclass
class ProgressChange:
    """Outcome of one record mutation."""

    record: ProgressRecord
    previous_status: ProgressStatus
    created: bool = False

    @property
    def newly_completed(self) -> bool:
        return (
            self.record.is_completed
            and self.previous_status != ProgressStatus.COMPLETED
        )


# ==============================================================================
# Input Validation
# ==============================================================================


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def validate_percentage(percentage: float) -> None:
    if not _is_number(percentage) or math.isnan(percentage):
        msg = "progress percentage must be a number"
        raise ValidationError(msg)
    if percentage < 0 or percentage > 100:
        msg = f"progress percentage must be between 0 and 100, got {percentage}"
        raise ValidationError(msg)


def validate_time_spent(minutes: int) -> None:
    if not isinstance(minutes, int) or isinstance(minutes, bool) or minutes < 0:
        msg = f"time spent must be a non-negative number of minutes, got {minutes}"
        raise ValidationError(msg)


def validate_score(score: float | None, max_score: float | None) -> None:
    for name, value in (("score", score), ("max_score", max_score)):
        if value is None:
            continue
        if not _is_number(value) or math.isnan(value) or value < 0:
            msg = f"{name} must be a non-negative number, got {value}"
            raise ValidationError(msg)
    if score is not None and max_score is not None and score > max_score:
        msg = f"score {score} cannot exceed max_score {max_score}"
        raise ValidationError(msg)


# ==============================================================================
# Record Policies
# ==============================================================================


def mark_record_completed(record: ProgressRecord, now: datetime) -> None:
    record.status = ProgressStatus.COMPLETED
    record.progress_percentage = 100
    record.completed_at = now
    record.started_at = record.started_at or now
    record.last_accessed_at = now


def apply_progress_update(
    record: ProgressRecord,
    percentage: float,
    time_spent: int,
    now: datetime,
    video_threshold: int = DEFAULT_VIDEO_AUTO_COMPLETE_THRESHOLD,
) -> None:
    """Apply a reported percentage to a record.

    A completed record stays completed; only access time and time spent
    move. Videos at or past the threshold and any content at 100% complete.
    """
    record.time_spent += time_spent
    record.last_accessed_at = now

    if record.is_completed:
        return

    is_video = record.content_type == ContentType.VIDEO.value
    if (is_video and percentage >= video_threshold) or percentage >= 100:
        mark_record_completed(record, now)
        return

    # Rounding must not complete what the threshold rule did not
    record.progress_percentage = min(round(percentage), 99)
    if percentage > 0 and record.status == ProgressStatus.NOT_STARTED:
        record.status = ProgressStatus.IN_PROGRESS
        record.started_at = record.started_at or now


def apply_completion(
    record: ProgressRecord,
    score: float | None,
    max_score: float | None,
    time_spent: int,
    now: datetime,
) -> None:
    """Explicitly complete a record; a completed record is only touched."""
    if record.is_completed:
        record.last_accessed_at = now
        return

    record.attempts += 1
    record.time_spent += time_spent
    if score is not None:
        record.score = score
    if max_score is not None:
        record.max_score = max_score
    mark_record_completed(record, now)


# ==============================================================================
# Progress Record Manager
# ==============================================================================


class ProgressRecordManager:
    """Owns reads and compare-and-set writes of progress records."""

    def __init__(
        self,
        store: ProgressStore,
        video_auto_complete_threshold: int = DEFAULT_VIDEO_AUTO_COMPLETE_THRESHOLD,
        max_attempts: int = 3,
    ):
        self.store = store
        self.video_auto_complete_threshold = video_auto_complete_threshold
        self.max_attempts = max_attempts

    async def get_record(
        self, user_id: UUID, item: ContentItem
    ) -> ProgressRecord | None:
        return await self.store.get(user_id, item.module_id, item.id)

    async def list_module_records(
        self, user_id: UUID, module_id: UUID, *, include_inactive: bool = False
    ) -> list[ProgressRecord]:
        records = await self.store.list_for_module(user_id, module_id)
        if include_inactive:
            return records
        return [record for record in records if record.is_active]

    async def get_or_create(
        self, user_id: UUID, item: ContentItem, *, touch: bool = True
    ) -> ProgressRecord:
        """Return the record for an item, creating it as not_started.

        With ``touch`` the access time of an existing record is refreshed.
        """
        if not touch:
            existing = await self.get_record(user_id, item)
            if existing is not None:
                return existing

        def _touch(record: ProgressRecord, now: datetime) -> None:
            record.last_accessed_at = now

        change = await self._mutate(user_id, item, _touch)
        return change.record

    async def update_progress(
        self,
        user_id: UUID,
        item: ContentItem,
        percentage: float,
        time_spent: int = 0,
    ) -> ProgressChange:
        validate_percentage(percentage)
        validate_time_spent(time_spent)

        def _update(record: ProgressRecord, now: datetime) -> None:
            apply_progress_update(
                record,
                percentage,
                time_spent,
                now,
                self.video_auto_complete_threshold,
            )

        change = await self._mutate(user_id, item, _update)

        if change.newly_completed:
            logger.info(
                "progress_auto_completed",
                user_id=str(user_id),
                content_id=str(item.id),
                content_type=item.type.value,
                percentage=percentage,
            )
        elif change.previous_status == ProgressStatus.NOT_STARTED and (
            change.record.status == ProgressStatus.IN_PROGRESS
        ):
            logger.info(
                "progress_started",
                user_id=str(user_id),
                content_id=str(item.id),
            )

        return change

    async def complete(
        self,
        user_id: UUID,
        item: ContentItem,
        score: float | None = None,
        max_score: float | None = None,
        time_spent: int = 0,
    ) -> ProgressChange:
        validate_score(score, max_score)
        validate_time_spent(time_spent)

        def _complete(record: ProgressRecord, now: datetime) -> None:
            apply_completion(record, score, max_score, time_spent, now)

        change = await self._mutate(user_id, item, _complete)

        if change.newly_completed:
            logger.info(
                "progress_completed",
                user_id=str(user_id),
                content_id=str(item.id),
                content_type=item.type.value,
                score=score,
                max_score=max_score,
            )

        return change

    async def deactivate(
        self, user_id: UUID, module_id: UUID, content_id: UUID
    ) -> bool:
        """Soft-deactivate a record. Returns False when there was none."""
        for _ in range(self.max_attempts):
            record = await self.store.get(user_id, module_id, content_id)
            if record is None:
                return False
            if not record.is_active:
                return True
            record.is_active = False
            if await self.store.save(record):
                logger.info(
                    "progress_deactivated",
                    user_id=str(user_id),
                    content_id=str(content_id),
                )
                return True
        raise ConcurrencyConflictError

    async def _mutate(
        self,
        user_id: UUID,
        item: ContentItem,
        mutate: Callable[[ProgressRecord, datetime], None],
    ) -> ProgressChange:
        """Read (or lazily create), mutate and compare-and-set one record."""
        for attempt in range(1, self.max_attempts + 1):
            now = utcnow()
            record = await self.store.get(user_id, item.module_id, item.id)
            created = record is None
            if record is None:
                record = ProgressRecord(
                    user_id=user_id,
                    content_id=item.id,
                    module_id=item.module_id,
                    content_type=item.type.value,
                    last_accessed_at=now,
                )

            previous_status = record.status
            mutate(record, now)

            if created:
                applied = await self.store.create(record)
            else:
                applied = await self.store.save(record)

            if applied:
                return ProgressChange(record, previous_status, created=created)

            logger.info(
                "progress_conflict_retry",
                user_id=str(user_id),
                content_id=str(item.id),
                attempt=attempt,
            )

        logger.warning(
            "progress_conflict_exhausted",
            user_id=str(user_id),
            content_id=str(item.id),
            attempts=self.max_attempts,
        )
        raise ConcurrencyConflictError

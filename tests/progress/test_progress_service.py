"""Tests for progress record policies and the record manager."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest

from learnpath.catalog.models import ContentItem, ContentType
from learnpath.core.exceptions import ConcurrencyConflictError, ValidationError
from learnpath.progress.models import ProgressRecord, ProgressStatus
from learnpath.progress.repository import InMemoryProgressStore
from learnpath.progress.service import (
    ProgressRecordManager,
    apply_completion,
    apply_progress_update,
    validate_percentage,
    validate_score,
    validate_time_spent,
)


NOW = datetime(2024, 5, 10, 14, 0, tzinfo=UTC)


def _record(content_type: ContentType = ContentType.VIDEO, **kwargs) -> ProgressRecord:
    return ProgressRecord(
        user_id=uuid4(),
        content_id=uuid4(),
        module_id=uuid4(),
        content_type=content_type.value,
        **kwargs,
    )


def _item(content_type: ContentType = ContentType.VIDEO) -> ContentItem:
    return ContentItem(id=uuid4(), module_id=uuid4(), type=content_type)


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


class TestValidation:
    """Tests for input validation."""

    @pytest.mark.parametrize("value", [0, 42.5, 100])
    def test_percentage_in_range(self, value: float) -> None:
        validate_percentage(value)

    @pytest.mark.parametrize("value", [-1, 100.5, 150])
    def test_percentage_out_of_range(self, value: float) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_percentage(value)
        assert "between 0 and 100" in exc_info.value.message

    @pytest.mark.parametrize("value", [float("nan"), "50", None, True])
    def test_percentage_not_a_number(self, value: object) -> None:
        with pytest.raises(ValidationError):
            validate_percentage(value)  # type: ignore[arg-type]

    def test_negative_time_spent(self) -> None:
        with pytest.raises(ValidationError):
            validate_time_spent(-5)

    def test_score_above_max(self) -> None:
        with pytest.raises(ValidationError):
            validate_score(11, 10)

    def test_negative_score(self) -> None:
        with pytest.raises(ValidationError):
            validate_score(-1, None)

    def test_score_without_max(self) -> None:
        validate_score(7, None)


class TestApplyProgressUpdate:
    """Tests for the percentage update policy."""

    def test_video_at_threshold_completes(self) -> None:
        record = _record(ContentType.VIDEO)
        apply_progress_update(record, 90, 3, NOW, video_threshold=90)

        assert record.status == ProgressStatus.COMPLETED
        assert record.progress_percentage == 100
        assert record.completed_at == NOW
        assert record.started_at == NOW
        assert record.time_spent == 3

    def test_document_below_100_stays_in_progress(self) -> None:
        record = _record(ContentType.DOCUMENT)
        apply_progress_update(record, 95, 0, NOW)

        assert record.status == ProgressStatus.IN_PROGRESS
        assert record.progress_percentage == 95
        assert record.completed_at is None

    @pytest.mark.parametrize("content_type", list(ContentType))
    def test_any_type_at_100_completes(self, content_type: ContentType) -> None:
        record = _record(content_type)
        apply_progress_update(record, 100, 0, NOW)
        assert record.is_completed

    def test_rounding_never_reports_100_without_completion(self) -> None:
        record = _record(ContentType.LAB)
        apply_progress_update(record, 99.7, 0, NOW)

        assert record.status == ProgressStatus.IN_PROGRESS
        assert record.progress_percentage == 99

    def test_zero_keeps_not_started(self) -> None:
        record = _record(ContentType.DOCUMENT)
        apply_progress_update(record, 0, 2, NOW)

        assert record.status == ProgressStatus.NOT_STARTED
        assert record.started_at is None
        assert record.time_spent == 2

    def test_completed_record_only_accumulates_time(self) -> None:
        completed_at = datetime(2024, 5, 1, tzinfo=UTC)
        record = _record(
            ContentType.VIDEO,
            status=ProgressStatus.COMPLETED,
            progress_percentage=100,
            completed_at=completed_at,
            time_spent=10,
        )
        apply_progress_update(record, 30, 5, NOW)

        assert record.status == ProgressStatus.COMPLETED
        assert record.progress_percentage == 100
        assert record.completed_at == completed_at
        assert record.time_spent == 15
        assert record.last_accessed_at == NOW


class TestApplyCompletion:
    """Tests for explicit completion."""

    def test_sets_score_and_counts_attempt(self) -> None:
        record = _record(ContentType.LAB)
        apply_completion(record, 8, 10, 20, NOW)

        assert record.is_completed
        assert record.attempts == 1
        assert record.score == 8
        assert record.max_score == 10
        assert record.score_percentage == 80
        assert record.time_spent == 20

    def test_second_completion_changes_nothing_but_access(self) -> None:
        record = _record(ContentType.GAME)
        apply_completion(record, 5, 10, 20, NOW)
        later = datetime(2024, 5, 11, tzinfo=UTC)

        apply_completion(record, 10, 10, 30, later)

        assert record.attempts == 1
        assert record.score == 5
        assert record.time_spent == 20
        assert record.completed_at == NOW
        assert record.last_accessed_at == later


class TestProgressRecordManager:
    """Tests for the record manager over the in-memory store."""

    @pytest.fixture
    def manager(self) -> ProgressRecordManager:
        return ProgressRecordManager(InMemoryProgressStore())

    @pytest.mark.asyncio
    async def test_get_or_create_starts_not_started(
        self, manager: ProgressRecordManager, user_id: UUID
    ) -> None:
        item = _item(ContentType.DOCUMENT)
        record = await manager.get_or_create(user_id, item)

        assert record.status == ProgressStatus.NOT_STARTED
        assert record.progress_percentage == 0
        assert record.content_type == "document"
        assert record.version == 1

    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(
        self, manager: ProgressRecordManager, user_id: UUID
    ) -> None:
        item = _item()
        first = await manager.get_or_create(user_id, item)
        second = await manager.get_or_create(user_id, item, touch=False)

        assert second.version == first.version
        records = await manager.list_module_records(user_id, item.module_id)
        assert len(records) == 1

    @pytest.mark.asyncio
    async def test_update_reports_newly_completed_once(
        self, manager: ProgressRecordManager, user_id: UUID
    ) -> None:
        item = _item(ContentType.VIDEO)

        first = await manager.update_progress(user_id, item, 95)
        second = await manager.update_progress(user_id, item, 100)

        assert first.newly_completed is True
        assert first.created is True
        assert second.newly_completed is False
        assert second.record.is_completed

    @pytest.mark.asyncio
    async def test_invalid_percentage_never_touches_store(self, user_id: UUID) -> None:
        store = Mock()
        store.get = AsyncMock()
        manager = ProgressRecordManager(store)

        with pytest.raises(ValidationError):
            await manager.update_progress(user_id, _item(), 150)

        store.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deactivate_hides_record(
        self, manager: ProgressRecordManager, user_id: UUID
    ) -> None:
        item = _item()
        await manager.update_progress(user_id, item, 40)

        assert await manager.deactivate(user_id, item.module_id, item.id) is True
        assert await manager.list_module_records(user_id, item.module_id) == []
        hidden = await manager.list_module_records(
            user_id, item.module_id, include_inactive=True
        )
        assert len(hidden) == 1
        assert hidden[0].progress_percentage == 40

    @pytest.mark.asyncio
    async def test_deactivate_missing_record(
        self, manager: ProgressRecordManager, user_id: UUID
    ) -> None:
        assert await manager.deactivate(user_id, uuid4(), uuid4()) is False

    @pytest.mark.asyncio
    async def test_retries_lost_compare_and_set(self, user_id: UUID) -> None:
        """A lost write is re-read and re-applied."""
        item = _item(ContentType.DOCUMENT)
        stored = ProgressRecord(
            user_id=user_id,
            content_id=item.id,
            module_id=item.module_id,
            content_type="document",
            version=3,
        )
        store = Mock()
        store.get = AsyncMock(side_effect=lambda *_: stored.copy())
        store.save = AsyncMock(side_effect=[False, True])
        manager = ProgressRecordManager(store, max_attempts=3)

        change = await manager.update_progress(user_id, item, 50)

        assert store.save.await_count == 2
        assert change.record.progress_percentage == 50

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_conflict(self, user_id: UUID) -> None:
        item = _item(ContentType.DOCUMENT)
        store = Mock()
        store.get = AsyncMock(return_value=None)
        store.create = AsyncMock(return_value=False)
        manager = ProgressRecordManager(store, max_attempts=2)

        with pytest.raises(ConcurrencyConflictError):
            await manager.update_progress(user_id, item, 50)

        assert store.create.await_count == 2

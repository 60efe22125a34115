"""Tests for the tracking engine over in-memory stores."""

import asyncio
from unittest.mock import Mock
from uuid import uuid4

import pytest

from learnpath.auth.schemas import AuthenticatedUser
from learnpath.catalog.models import ContentItem, ContentType
from learnpath.catalog.repository import InMemoryContentCatalog
from learnpath.core.exceptions import (
    AlreadyEnrolledError,
    AuthorizationError,
    ConcurrencyConflictError,
    ContentNotFoundError,
    InvalidTransitionError,
    ModuleNotFoundError,
    NotEnrolledError,
    ValidationError,
)
from learnpath.enrollments.models import EnrollmentStatus
from learnpath.progress.models import ProgressStatus
from learnpath.streaks.models import StreakAction
from learnpath.tracking.engine import TrackingEngine


VIDEOS = [ContentType.VIDEO] * 4


class TestModuleCompletion:
    """Tests for aggregation into enrollment completion."""

    @pytest.mark.asyncio
    async def test_four_videos_complete_module_once(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, VIDEOS)
        engine.awards.award_module_completion = Mock(
            wraps=engine.awards.award_module_completion
        )
        await engine.enroll(student, module.id)

        for item in items[:3]:
            outcome = await engine.update_content_progress(student.id, item.id, 100)
            assert outcome.newly_completed is True

        assert outcome.enrollment.progress_percentage == 75
        assert outcome.enrollment.status == EnrollmentStatus.ACTIVE
        assert outcome.enrollment_completed is False

        outcome = await engine.update_content_progress(student.id, items[3].id, 100)

        assert outcome.enrollment.progress_percentage == 100
        assert outcome.enrollment.status == EnrollmentStatus.COMPLETED
        assert outcome.enrollment.completed_at is not None
        assert outcome.enrollment_completed is True
        assert outcome.module_award is not None

        # Reporting again on a completed item changes nothing
        outcome = await engine.update_content_progress(student.id, items[3].id, 100)
        assert outcome.newly_completed is False
        assert outcome.enrollment_completed is False
        assert engine.awards.award_module_completion.call_count == 1

        stats = await engine.get_user_stats(student.id)
        assert stats.total_points == 40
        assert stats.contents_completed == 4
        assert stats.modules_completed == 1
        assert "first-steps" in stats.achievements

    @pytest.mark.asyncio
    async def test_video_threshold_auto_completes(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(
            catalog, [ContentType.VIDEO, ContentType.DOCUMENT]
        )
        await engine.enroll(student, module.id)

        video = await engine.update_content_progress(student.id, items[0].id, 92)
        document = await engine.update_content_progress(student.id, items[1].id, 95)

        assert video.record.status == ProgressStatus.COMPLETED
        assert video.award is not None
        assert video.award.points == 10
        assert document.record.status == ProgressStatus.IN_PROGRESS
        assert document.record.progress_percentage == 95
        assert document.award is None
        assert document.enrollment.progress_percentage == 50

    @pytest.mark.asyncio
    async def test_completed_record_does_not_regress(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.VIDEO] * 2)
        await engine.enroll(student, module.id)
        await engine.update_content_progress(student.id, items[0].id, 100, 5)

        outcome = await engine.update_content_progress(student.id, items[0].id, 30, 2)

        assert outcome.record.status == ProgressStatus.COMPLETED
        assert outcome.record.progress_percentage == 100
        assert outcome.record.time_spent == 7
        assert outcome.enrollment.progress_percentage == 50
        assert outcome.enrollment.time_spent == 7

    @pytest.mark.asyncio
    async def test_completed_enrollment_keeps_100_when_content_is_added(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.DOCUMENT] * 2)
        await engine.enroll(student, module.id)
        for item in items:
            await engine.complete_content(student.id, item.id)

        extra = ContentItem(
            id=uuid4(), module_id=module.id, type=ContentType.LAB, order=10
        )
        catalog.add_content_item(extra)
        outcome = await engine.update_content_progress(student.id, extra.id, 40)

        assert outcome.enrollment.status == EnrollmentStatus.COMPLETED
        assert outcome.enrollment.progress_percentage == 100

    @pytest.mark.asyncio
    async def test_concurrent_completions_aggregate_without_regression(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, VIDEOS)
        await engine.enroll(student, module.id)
        engine.awards.award_module_completion = Mock(
            wraps=engine.awards.award_module_completion
        )

        outcomes = await asyncio.gather(
            *(engine.complete_content(student.id, item.id) for item in items),
            engine.complete_content(student.id, items[0].id),
        )

        enrollment = await engine.get_module_enrollment(student, module.id)
        assert enrollment.progress_percentage == 100
        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert sum(o.newly_completed for o in outcomes) == 4
        assert sum(o.enrollment_completed for o in outcomes) == 1
        assert engine.awards.award_module_completion.call_count == 1

        stats = await engine.get_user_stats(student.id)
        assert stats.total_points == 40
        assert stats.contents_completed == 4


class TestProgressPreconditions:
    """Tests for validation, catalog and enrollment checks."""

    @pytest.mark.asyncio
    async def test_not_enrolled(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        _, items = module_factory(catalog, [ContentType.VIDEO])

        with pytest.raises(NotEnrolledError):
            await engine.update_content_progress(student.id, items[0].id, 50)

        with pytest.raises(NotEnrolledError):
            await engine.access_content(student.id, items[0].id)

    @pytest.mark.asyncio
    async def test_unknown_content(
        self, engine: TrackingEngine, student: AuthenticatedUser
    ) -> None:
        with pytest.raises(ContentNotFoundError):
            await engine.update_content_progress(student.id, uuid4(), 50)

    @pytest.mark.asyncio
    async def test_validation_precedes_lookups(
        self, engine: TrackingEngine, student: AuthenticatedUser
    ) -> None:
        """Out-of-range input fails even for content that does not exist."""
        with pytest.raises(ValidationError):
            await engine.update_content_progress(student.id, uuid4(), 150)

        with pytest.raises(ValidationError):
            await engine.complete_content(student.id, uuid4(), score=11, max_score=10)

    @pytest.mark.asyncio
    async def test_paused_enrollment_accepts_progress(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.LAB])
        enrollment = await engine.enroll(student, module.id)
        await engine.pause(student, enrollment.id)

        outcome = await engine.complete_content(student.id, items[0].id, 9, 10)

        assert outcome.enrollment.status == EnrollmentStatus.COMPLETED
        assert outcome.record.score_percentage == 90

    @pytest.mark.asyncio
    async def test_dropped_enrollment_rejects_progress(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.LAB])
        enrollment = await engine.enroll(student, module.id)
        await engine.drop(student, enrollment.id)

        with pytest.raises(NotEnrolledError):
            await engine.complete_content(student.id, items[0].id)

    @pytest.mark.asyncio
    async def test_complete_content_twice_is_idempotent(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.LAB, ContentType.GAME])
        await engine.enroll(student, module.id)

        first = await engine.complete_content(student.id, items[0].id, time_spent=15)
        second = await engine.complete_content(student.id, items[0].id, time_spent=15)

        assert first.newly_completed is True
        assert second.newly_completed is False
        assert second.award is None
        assert second.record.time_spent == 15
        assert second.record.attempts == 1
        stats = await engine.get_user_stats(student.id)
        assert stats.total_points == 50
        assert stats.labs_completed == 1


class TestEnrollmentOperations:
    """Tests for enrollment lifecycle through the engine."""

    @pytest.mark.asyncio
    async def test_enroll_unknown_module(
        self, engine: TrackingEngine, student: AuthenticatedUser
    ) -> None:
        with pytest.raises(ModuleNotFoundError):
            await engine.enroll(student, uuid4())

    @pytest.mark.asyncio
    async def test_enroll_twice_conflicts(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, _ = module_factory(catalog, [ContentType.VIDEO])
        enrollment = await engine.enroll(student, module.id)

        assert enrollment.total_sections == 1
        with pytest.raises(AlreadyEnrolledError):
            await engine.enroll(student, module.id)

    @pytest.mark.asyncio
    async def test_reenroll_keeps_progress(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.VIDEO] * 2)
        enrollment = await engine.enroll(student, module.id)
        await engine.complete_content(student.id, items[0].id)
        await engine.drop(student, enrollment.id)

        again = await engine.enroll(student, module.id)

        assert again.id == enrollment.id
        assert again.status == EnrollmentStatus.ACTIVE
        assert again.progress_percentage == 50

    @pytest.mark.asyncio
    async def test_explicit_completion_awards_once(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.VIDEO])
        enrollment = await engine.enroll(student, module.id)

        completed = await engine.complete_enrollment(
            student, enrollment.id, grade="A", feedback="Well done"
        )
        outcome = await engine.complete_content(student.id, items[0].id)

        assert completed.status == EnrollmentStatus.COMPLETED
        assert completed.grade == "A"
        assert outcome.enrollment_completed is False
        stats = await engine.get_user_stats(student.id)
        assert stats.modules_completed == 1

        with pytest.raises(InvalidTransitionError):
            await engine.complete_enrollment(student, enrollment.id)

    @pytest.mark.asyncio
    async def test_pause_completed_conflicts(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, _ = module_factory(catalog, [ContentType.VIDEO])
        enrollment = await engine.enroll(student, module.id)
        await engine.complete_enrollment(student, enrollment.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await engine.pause(student, enrollment.id)
        assert "completed" in exc_info.value.message

        with pytest.raises(InvalidTransitionError):
            await engine.drop(student, enrollment.id)


class TestOwnership:
    """Tests for owner and admin access rules."""

    @pytest.mark.asyncio
    async def test_other_student_cannot_read_or_modify(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        other_student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, _ = module_factory(catalog, [ContentType.VIDEO])
        enrollment = await engine.enroll(student, module.id)

        with pytest.raises(AuthorizationError):
            await engine.get_enrollment(other_student, enrollment.id)
        with pytest.raises(AuthorizationError):
            await engine.pause(other_student, enrollment.id)
        with pytest.raises(AuthorizationError):
            await engine.list_enrollments(other_student, student.id)
        with pytest.raises(AuthorizationError):
            await engine.get_module_progress(other_student, module.id, student.id)

    @pytest.mark.asyncio
    async def test_admin_reads_but_cannot_modify(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        admin: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, _ = module_factory(catalog, [ContentType.VIDEO])
        enrollment = await engine.enroll(student, module.id)

        fetched = await engine.get_enrollment(admin, enrollment.id)
        listed = await engine.list_enrollments(admin, student.id)

        assert fetched.id == enrollment.id
        assert [e.id for e in listed] == [enrollment.id]
        with pytest.raises(AuthorizationError):
            await engine.drop(admin, enrollment.id)


class TestModuleProgress:
    """Tests for module progress views and content removal."""

    @pytest.mark.asyncio
    async def test_counts_by_status_and_type(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(
            catalog, [ContentType.VIDEO, ContentType.LAB, ContentType.DOCUMENT]
        )
        await engine.enroll(student, module.id)
        await engine.complete_content(student.id, items[0].id)
        await engine.update_content_progress(student.id, items[1].id, 40)
        await engine.access_content(student.id, items[2].id)

        view = await engine.get_module_progress(student, module.id)

        assert view.total_items == 3
        assert view.by_status == {"completed": 1, "in_progress": 1, "not_started": 1}
        assert view.by_type == {"video": 1, "lab": 1, "document": 1}
        assert view.enrollment is not None
        assert view.enrollment.progress_percentage == 33

    @pytest.mark.asyncio
    async def test_removing_completed_content_lowers_percentage(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.VIDEO] * 3)
        await engine.enroll(student, module.id)
        await engine.complete_content(student.id, items[0].id)
        await engine.complete_content(student.id, items[1].id)

        catalog.remove_content_item(items[0].id)
        affected = await engine.handle_content_removed(module.id, items[0].id)

        enrollment = await engine.get_module_enrollment(student, module.id)
        assert affected == 1
        assert enrollment.progress_percentage == 50
        assert enrollment.total_sections == 2
        view = await engine.get_module_progress(student, module.id)
        assert [r.content_id for r in view.records] == [items[1].id]

        with pytest.raises(ContentNotFoundError):
            await engine.update_content_progress(student.id, items[0].id, 10)

    @pytest.mark.asyncio
    async def test_removing_last_open_item_completes(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.VIDEO] * 2)
        await engine.enroll(student, module.id)
        await engine.complete_content(student.id, items[0].id)

        catalog.remove_content_item(items[1].id)
        await engine.handle_content_removed(module.id, items[1].id)

        enrollment = await engine.get_module_enrollment(student, module.id)
        stats = await engine.get_user_stats(student.id)
        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert stats.modules_completed == 1

    @pytest.mark.asyncio
    async def test_failing_enrollment_does_not_stop_removal(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        other_student: AuthenticatedUser,
        module_factory,
    ) -> None:
        """Other enrollments are re-aggregated and a second run settles the rest."""
        module, items = module_factory(catalog, [ContentType.VIDEO] * 2)
        for user in (student, other_student):
            await engine.enroll(user, module.id)
            await engine.complete_content(user.id, items[0].id)

        deactivate = engine.progress.deactivate

        async def failing_for_student(user_id, module_id, content_id):
            if user_id == student.id:
                raise ConcurrencyConflictError
            return await deactivate(user_id, module_id, content_id)

        engine.progress.deactivate = failing_for_student
        catalog.remove_content_item(items[1].id)

        affected = await engine.handle_content_removed(module.id, items[1].id)

        assert affected == 1
        other = await engine.get_module_enrollment(other_student, module.id)
        mine = await engine.get_module_enrollment(student, module.id)
        assert other.status == EnrollmentStatus.COMPLETED
        assert mine.progress_percentage == 50

        engine.progress.deactivate = deactivate
        affected = await engine.handle_content_removed(module.id, items[1].id)

        assert affected == 2
        mine = await engine.get_module_enrollment(student, module.id)
        assert mine.status == EnrollmentStatus.COMPLETED
        stats = await engine.get_user_stats(other_student.id)
        assert stats.modules_completed == 1


class TestStreakActivity:
    """Tests for streak updates caused by progress."""

    @pytest.mark.asyncio
    async def test_progress_counts_as_activity(
        self,
        engine: TrackingEngine,
        catalog: InMemoryContentCatalog,
        student: AuthenticatedUser,
        module_factory,
    ) -> None:
        module, items = module_factory(catalog, [ContentType.VIDEO] * 2)
        await engine.enroll(student, module.id)

        first = await engine.update_content_progress(student.id, items[0].id, 10)
        second = await engine.update_content_progress(student.id, items[1].id, 10)

        assert first.streak is not None
        assert first.streak.action == StreakAction.START
        assert second.streak is not None
        assert second.streak.action == StreakAction.ALREADY_UPDATED

        status = await engine.get_streak_status(student.id)
        assert status.current_streak == 1

    @pytest.mark.asyncio
    async def test_streak_read_access(
        self,
        engine: TrackingEngine,
        student: AuthenticatedUser,
        other_student: AuthenticatedUser,
        admin: AuthenticatedUser,
    ) -> None:
        await engine.record_activity(student.id)

        own = await engine.view_streak(student)
        as_admin = await engine.view_streak(admin, student.id)

        assert own.current_streak == 1
        assert as_admin.current_streak == 1
        with pytest.raises(AuthorizationError):
            await engine.view_streak(other_student, student.id)

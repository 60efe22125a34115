"""Aggregation and award engine.

Entry point for every tracking operation. For a progress mutation:

1. Validate input, then resolve the content item and the user's enrollment.
2. Under the (user, module) lock, mutate the progress record.
3. If the record is completed, credit its points unless that item was
   already credited. A retry after a failed award write settles it.
4. Recompute the enrollment percentage from all active records and the
   module's live content count, completing the enrollment at 100%.
5. Record the activity on the user's streak.

All writes are compare-and-set. The (user, module) lock keeps concurrent
aggregations from interleaving, and the per-user stats lock does the same
for the points, counters and streak that every module of a user shares.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

import structlog

from learnpath.auth.permissions import can_read_user_data, can_write_user_data
from learnpath.auth.schemas import AuthenticatedUser
from learnpath.awards.models import UserStats
from learnpath.awards.repository import UserStatsStore
from learnpath.awards.service import AwardEngine, AwardResult, UserStatsManager
from learnpath.catalog.models import CatalogModule, ContentItem
from learnpath.catalog.repository import ContentCatalog
from learnpath.config import Settings
from learnpath.core.exceptions import (
    AuthorizationError,
    ContentNotFoundError,
    EnrollmentNotFoundError,
    ModuleNotFoundError,
    NotEnrolledError,
    TrackingError,
)
from learnpath.core.locks import KeyedLock, aggregation_scope
from learnpath.core.timeutils import utcnow
from learnpath.enrollments.models import Enrollment, EnrollmentAction, EnrollmentStatus
from learnpath.enrollments.repository import EnrollmentStore
from learnpath.enrollments.service import EnrollmentManager, ProgressSnapshot
from learnpath.progress.models import ProgressRecord
from learnpath.progress.repository import ProgressStore
from learnpath.progress.service import (
    ProgressChange,
    ProgressRecordManager,
    validate_percentage,
    validate_score,
    validate_time_spent,
)
from learnpath.streaks.models import StreakAction, StreakStatusView, StreakUpdate
from learnpath.streaks.service import StreakTracker


logger = structlog.get_logger(__name__)


@dataclass
class ProgressOutcome:
    """Everything one progress mutation caused."""

    record: ProgressRecord
    enrollment: Enrollment
    newly_completed: bool = False
    award: AwardResult | None = None
    enrollment_completed: bool = False
    module_award: AwardResult | None = None
    streak: StreakUpdate | None = None


@dataclass
class ModuleProgressView:
    module_id: UUID
    user_id: UUID
    enrollment: Enrollment | None
    records: list[ProgressRecord]
    total_items: int
    by_status: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)


class TrackingEngine:
    """Orchestrates progress, enrollments, awards and streaks."""

    def __init__(
        self,
        catalog: ContentCatalog,
        progress: ProgressRecordManager,
        enrollments: EnrollmentManager,
        stats: UserStatsManager,
        awards: AwardEngine,
        streaks: StreakTracker,
        locks: KeyedLock,
    ):
        self.catalog = catalog
        self.progress = progress
        self.enrollments = enrollments
        self.stats = stats
        self.awards = awards
        self.streaks = streaks
        self.locks = locks

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        catalog: ContentCatalog,
        progress_store: ProgressStore,
        enrollment_store: EnrollmentStore,
        stats_store: UserStatsStore,
        locks: KeyedLock,
    ) -> "TrackingEngine":
        attempts = settings.aggregation_max_attempts
        return cls(
            catalog=catalog,
            progress=ProgressRecordManager(
                progress_store,
                video_auto_complete_threshold=settings.video_auto_complete_threshold,
                max_attempts=attempts,
            ),
            enrollments=EnrollmentManager(
                enrollment_store,
                max_attempts=attempts,
                implicit_completion=settings.implicit_enrollment_completion,
            ),
            stats=UserStatsManager(stats_store, max_attempts=attempts, locks=locks),
            awards=AwardEngine(
                content_points=settings.content_points,
                points_per_level=settings.points_per_level,
            ),
            streaks=StreakTracker(
                timezone=settings.streak_timezone,
                milestones=settings.streak_milestones,
            ),
            locks=locks,
        )

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll(self, actor: AuthenticatedUser, module_id: UUID) -> Enrollment:
        """Enroll the actor, or reactivate their dropped enrollment.

        Raises:
            ModuleNotFoundError: If the module does not exist
            AlreadyEnrolledError: If an enrollment that is not dropped exists
        """
        await self._get_module(module_id)

        async with self.locks.hold(aggregation_scope(actor.id, module_id)):
            total = await self.catalog.count_active_content_items(module_id)
            enrollment, reactivated = await self.enrollments.enroll(
                actor.id, module_id, total
            )
            if reactivated:
                enrollment, _ = await self._aggregate(enrollment)
                if enrollment.status == EnrollmentStatus.COMPLETED:
                    await self._award_module(enrollment)

        return enrollment

    async def get_enrollment(
        self, actor: AuthenticatedUser, enrollment_id: UUID
    ) -> Enrollment:
        enrollment = await self.enrollments.get(enrollment_id)
        if not can_read_user_data(actor.id, actor.role, enrollment.user_id):
            msg = "Not allowed to access this enrollment"
            raise AuthorizationError(msg)
        return enrollment

    async def get_module_enrollment(
        self, actor: AuthenticatedUser, module_id: UUID
    ) -> Enrollment:
        enrollment = await self.enrollments.find(actor.id, module_id)
        if enrollment is None:
            raise EnrollmentNotFoundError
        return enrollment

    async def list_enrollments(
        self, actor: AuthenticatedUser, user_id: UUID | None = None
    ) -> list[Enrollment]:
        """List a user's enrollments; the actor's own unless an admin asks."""
        owner_id = user_id or actor.id
        if not can_read_user_data(actor.id, actor.role, owner_id):
            msg = "Not allowed to access this user's enrollments"
            raise AuthorizationError(msg)
        return await self.enrollments.list_for_user(owner_id)

    async def pause(self, actor: AuthenticatedUser, enrollment_id: UUID) -> Enrollment:
        return await self._transition(actor, enrollment_id, EnrollmentAction.PAUSE)

    async def resume(
        self, actor: AuthenticatedUser, enrollment_id: UUID
    ) -> Enrollment:
        return await self._transition(actor, enrollment_id, EnrollmentAction.RESUME)

    async def drop(self, actor: AuthenticatedUser, enrollment_id: UUID) -> Enrollment:
        return await self._transition(actor, enrollment_id, EnrollmentAction.DROP)

    async def complete_enrollment(
        self,
        actor: AuthenticatedUser,
        enrollment_id: UUID,
        grade: str | None = None,
        feedback: str | None = None,
    ) -> Enrollment:
        """Explicitly complete an enrollment.

        Raises:
            InvalidTransitionError: If it is already completed or dropped
        """
        enrollment = await self._owned_enrollment(actor, enrollment_id)

        async with self.locks.hold(
            aggregation_scope(enrollment.user_id, enrollment.module_id)
        ):
            if enrollment.status == EnrollmentStatus.COMPLETED:
                # Settle an award lost to a failed write before rejecting
                await self._award_module(enrollment)
            enrollment = await self.enrollments.complete(
                enrollment_id, grade=grade, feedback=feedback
            )
            await self._award_module(enrollment)

        await self.record_activity(enrollment.user_id)
        return enrollment

    async def _transition(
        self,
        actor: AuthenticatedUser,
        enrollment_id: UUID,
        action: EnrollmentAction,
    ) -> Enrollment:
        enrollment = await self._owned_enrollment(actor, enrollment_id)
        async with self.locks.hold(
            aggregation_scope(enrollment.user_id, enrollment.module_id)
        ):
            return await self.enrollments.transition(enrollment_id, action)

    async def _owned_enrollment(
        self, actor: AuthenticatedUser, enrollment_id: UUID
    ) -> Enrollment:
        enrollment = await self.enrollments.get(enrollment_id)
        if not can_write_user_data(actor.id, enrollment.user_id):
            msg = "Only the enrollment owner can modify it"
            raise AuthorizationError(msg)
        return enrollment

    # ==========================================================================
    # Progress Operations
    # ==========================================================================

    async def access_content(self, user_id: UUID, content_id: UUID) -> ProgressRecord:
        """Get or create the user's record for an item, refreshing its access time."""
        item = await self._get_content_item(content_id)
        await self._writable_enrollment(user_id, item.module_id)
        return await self.progress.get_or_create(user_id, item, touch=True)

    async def update_content_progress(
        self,
        user_id: UUID,
        content_id: UUID,
        percentage: float,
        time_spent: int = 0,
    ) -> ProgressOutcome:
        """Report a percentage for a content item.

        Raises:
            ValidationError: If percentage or time_spent is out of range
            ContentNotFoundError: If the item does not exist or was removed
            NotEnrolledError: If the user has no usable enrollment in its module
        """
        validate_percentage(percentage)
        validate_time_spent(time_spent)

        item = await self._get_content_item(content_id)
        enrollment = await self._writable_enrollment(user_id, item.module_id)

        async with self.locks.hold(aggregation_scope(user_id, item.module_id)):
            change = await self.progress.update_progress(
                user_id, item, percentage, time_spent
            )
            outcome = await self._apply_change(enrollment, item, change)

        outcome.streak = await self.record_activity(user_id)
        return outcome

    async def complete_content(
        self,
        user_id: UUID,
        content_id: UUID,
        score: float | None = None,
        max_score: float | None = None,
        time_spent: int = 0,
    ) -> ProgressOutcome:
        """Explicitly complete a content item. Idempotent once completed."""
        validate_score(score, max_score)
        validate_time_spent(time_spent)

        item = await self._get_content_item(content_id)
        enrollment = await self._writable_enrollment(user_id, item.module_id)

        async with self.locks.hold(aggregation_scope(user_id, item.module_id)):
            change = await self.progress.complete(
                user_id, item, score, max_score, time_spent
            )
            outcome = await self._apply_change(enrollment, item, change)

        outcome.streak = await self.record_activity(user_id)
        return outcome

    async def get_module_progress(
        self, actor: AuthenticatedUser, module_id: UUID, user_id: UUID | None = None
    ) -> ModuleProgressView:
        owner_id = user_id or actor.id
        if not can_read_user_data(actor.id, actor.role, owner_id):
            msg = "Not allowed to access this user's progress"
            raise AuthorizationError(msg)

        await self._get_module(module_id)
        records = await self.progress.list_module_records(owner_id, module_id)
        enrollment = await self.enrollments.find(owner_id, module_id)
        total = await self.catalog.count_active_content_items(module_id)

        return ModuleProgressView(
            module_id=module_id,
            user_id=owner_id,
            enrollment=enrollment,
            records=records,
            total_items=total,
            by_status=dict(Counter(r.status.value for r in records)),
            by_type=dict(Counter(r.content_type for r in records)),
        )

    async def handle_content_removed(self, module_id: UUID, content_id: UUID) -> int:
        """Deactivate every record of a removed item and re-aggregate.

        The only path through which an enrollment percentage may drop.
        A failing enrollment is logged and skipped; the others still run,
        and running the hook again for the same content is safe.
        Returns the number of enrollments re-aggregated.
        """
        affected = 0
        failed = 0
        for enrollment in await self.enrollments.list_for_module(module_id):
            try:
                if await self._reaggregate_after_removal(enrollment, content_id):
                    affected += 1
            except TrackingError as e:
                failed += 1
                logger.warning(
                    "content_removal_reaggregation_failed",
                    enrollment_id=str(enrollment.id),
                    user_id=str(enrollment.user_id),
                    content_id=str(content_id),
                    error=e.code,
                )

        logger.info(
            "content_removed_reaggregated",
            module_id=str(module_id),
            content_id=str(content_id),
            enrollments=affected,
            failed=failed,
        )
        return affected

    async def _reaggregate_after_removal(
        self, enrollment: Enrollment, content_id: UUID
    ) -> bool:
        async with self.locks.hold(
            aggregation_scope(enrollment.user_id, enrollment.module_id)
        ):
            await self.progress.deactivate(
                enrollment.user_id, enrollment.module_id, content_id
            )
            if enrollment.status == EnrollmentStatus.DROPPED:
                return False
            updated, _ = await self._aggregate(enrollment)
            if updated.status == EnrollmentStatus.COMPLETED:
                await self._award_module(updated)
            return True

    async def _apply_change(
        self, enrollment: Enrollment, item: ContentItem, change: ProgressChange
    ) -> ProgressOutcome:
        outcome = ProgressOutcome(
            record=change.record,
            enrollment=enrollment,
            newly_completed=change.newly_completed,
        )

        # Also settles a completion whose award write failed on an earlier call
        if change.record.is_completed:
            outcome.award = await self._award_content(enrollment.user_id, item)

        outcome.enrollment, outcome.enrollment_completed = await self._aggregate(
            enrollment
        )
        if outcome.enrollment.status == EnrollmentStatus.COMPLETED:
            outcome.module_award = await self._award_module(outcome.enrollment)
        return outcome

    async def _aggregate(self, enrollment: Enrollment) -> tuple[Enrollment, bool]:
        user_id, module_id = enrollment.user_id, enrollment.module_id

        async def snapshot() -> ProgressSnapshot:
            records = await self.progress.list_module_records(user_id, module_id)
            total = await self.catalog.count_active_content_items(module_id)
            return ProgressSnapshot(
                completed=sum(1 for r in records if r.is_completed),
                total=total,
                time_spent=sum(r.time_spent for r in records),
            )

        return await self.enrollments.aggregate(enrollment.id, snapshot)

    async def _award_content(
        self, user_id: UUID, item: ContentItem
    ) -> AwardResult | None:
        """Credit a completed item once; None if it was credited before."""
        _, award = await self.stats.update(
            user_id,
            lambda stats: self.awards.credit_content(stats, item.id, item.type.value),
        )
        if award is not None:
            logger.info(
                "points_awarded",
                user_id=str(user_id),
                content_id=str(item.id),
                content_type=item.type.value,
                points=award.points,
                achievements=award.achievements,
            )
        return award

    async def _award_module(self, enrollment: Enrollment) -> AwardResult | None:
        """Credit a completed enrollment once; None if it was credited before."""
        _, award = await self.stats.update(
            enrollment.user_id,
            lambda stats: self.awards.credit_module(stats, enrollment.module_id),
        )
        if award is not None:
            logger.info(
                "module_completion_awarded",
                user_id=str(enrollment.user_id),
                module_id=str(enrollment.module_id),
                achievements=award.achievements,
            )
        return award

    # ==========================================================================
    # Streaks and Stats
    # ==========================================================================

    async def record_activity(
        self, user_id: UUID, now: datetime | None = None
    ) -> StreakUpdate:
        """Feed one qualifying activity into the user's streak."""
        now = now or utcnow()

        def _apply(stats: UserStats) -> StreakUpdate:
            update = self.streaks.record(stats.streak, now)
            stats.streak = update.state
            return update

        _, update = await self.stats.update(user_id, _apply)

        if update.action != StreakAction.ALREADY_UPDATED:
            logger.info(
                f"streak_{update.action.value}",
                user_id=str(user_id),
                current_streak=update.state.current_streak,
                longest_streak=update.state.longest_streak,
            )
        if update.milestone is not None:
            logger.info(
                "streak_milestone_reached",
                user_id=str(user_id),
                milestone=update.milestone,
            )
        return update

    async def get_streak_status(
        self, user_id: UUID, now: datetime | None = None
    ) -> StreakStatusView:
        stats = await self.stats.get(user_id)
        return self.streaks.status(stats.streak, now or utcnow())

    async def view_streak(
        self, actor: AuthenticatedUser, user_id: UUID | None = None
    ) -> StreakStatusView:
        """Streak status of the actor, or of any user for an admin."""
        owner_id = user_id or actor.id
        if not can_read_user_data(actor.id, actor.role, owner_id):
            msg = "Not allowed to access this user's streak"
            raise AuthorizationError(msg)
        return await self.get_streak_status(owner_id)

    async def get_user_stats(self, user_id: UUID) -> UserStats:
        return await self.stats.get(user_id)

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def _get_module(self, module_id: UUID) -> CatalogModule:
        module = await self.catalog.get_module(module_id)
        if module is None or not module.is_active:
            raise ModuleNotFoundError
        return module

    async def _get_content_item(self, content_id: UUID) -> ContentItem:
        item = await self.catalog.get_content_item(content_id)
        if item is None or not item.is_active:
            raise ContentNotFoundError
        return item

    async def _writable_enrollment(self, user_id: UUID, module_id: UUID) -> Enrollment:
        enrollment = await self.enrollments.find(user_id, module_id)
        if enrollment is None or not enrollment.accepts_progress:
            raise NotEnrolledError
        return enrollment

"""Points, levels and achievements.

``AwardEngine`` holds the award rules and applies them to a ``UserStats``
in memory. ``UserStatsManager`` persists such mutations with
compare-and-set, re-reading and re-applying on conflict, so a mutation
must depend only on the stats it is given. The ``credit_*`` rules record
what they credited, which makes re-running them after a failure safe.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TypeVar
from uuid import UUID

import structlog

from learnpath.catalog.models import ContentType
from learnpath.core.exceptions import ConcurrencyConflictError
from learnpath.core.locks import KeyedLock, stats_scope

from .models import ACHIEVEMENTS, Achievement, UserStats
from .repository import UserStatsStore


logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_CONTENT_POINTS: dict[str, int] = {
    ContentType.VIDEO.value: 10,
    ContentType.LAB.value: 50,
    ContentType.GAME.value: 30,
    ContentType.DOCUMENT.value: 5,
}

DEFAULT_POINTS_PER_LEVEL = 500


@dataclass
class AwardResult:
    points: int = 0
    level: int = 1
    level_up: bool = False
    achievements: list[str] = field(default_factory=list)


def calculate_level(
    total_points: int, points_per_level: int = DEFAULT_POINTS_PER_LEVEL
) -> int:
    """Level for a points total, starting at 1.

    Examples:
        >>> calculate_level(0)
        1
        >>> calculate_level(500)
        2
    """
    return max(total_points, 0) // points_per_level + 1


class AwardEngine:
    """Award rules applied to a user stats aggregate."""

    def __init__(
        self,
        content_points: Mapping[str, int] | None = None,
        points_per_level: int = DEFAULT_POINTS_PER_LEVEL,
        achievements: tuple[Achievement, ...] = ACHIEVEMENTS,
    ):
        self.content_points = dict(content_points or DEFAULT_CONTENT_POINTS)
        self.points_per_level = points_per_level
        self.achievements = achievements

    def points_for(self, content_type: str) -> int:
        return self.content_points.get(content_type, 0)

    def award_content_completion(
        self, stats: UserStats, content_type: str
    ) -> AwardResult:
        """Credit one content item's transition into completed."""
        points = self.points_for(content_type)
        stats.total_points += points
        stats.contents_completed += 1
        if content_type == ContentType.LAB.value:
            stats.labs_completed += 1
        elif content_type == ContentType.GAME.value:
            stats.games_completed += 1
        return self._finish(stats, points)

    def award_module_completion(self, stats: UserStats) -> AwardResult:
        """Credit one enrollment's transition into completed."""
        stats.modules_completed += 1
        return self._finish(stats, 0)

    def credit_content(
        self, stats: UserStats, content_id: UUID, content_type: str
    ) -> AwardResult | None:
        """Award a completed item unless it was already credited."""
        if content_id in stats.awarded_contents:
            return None
        stats.awarded_contents.add(content_id)
        return self.award_content_completion(stats, content_type)

    def credit_module(self, stats: UserStats, module_id: UUID) -> AwardResult | None:
        """Award a completed module unless it was already credited."""
        if module_id in stats.awarded_modules:
            return None
        stats.awarded_modules.add(module_id)
        return self.award_module_completion(stats)

    def _finish(self, stats: UserStats, points: int) -> AwardResult:
        previous_level = stats.level
        stats.level = calculate_level(stats.total_points, self.points_per_level)
        unlocked = self.unlock_achievements(stats)
        return AwardResult(
            points=points,
            level=stats.level,
            level_up=stats.level > previous_level,
            achievements=unlocked,
        )

    def unlock_achievements(self, stats: UserStats) -> list[str]:
        """Unlock every achievement whose target is met; each only once."""
        unlocked = []
        for achievement in self.achievements:
            if achievement.slug in stats.achievements:
                continue
            if stats.metric(achievement.metric) >= achievement.target:
                stats.achievements.add(achievement.slug)
                unlocked.append(achievement.slug)
        return unlocked


class UserStatsManager:
    """Compare-and-set persistence of user stats mutations.

    Every module of a user writes the same stats record, so with ``locks``
    set the whole read-mutate-write runs under the user's stats scope and
    compare-and-set only has to catch writers outside it.
    """

    def __init__(
        self,
        store: UserStatsStore,
        max_attempts: int = 3,
        locks: KeyedLock | None = None,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.locks = locks

    async def get(self, user_id: UUID) -> UserStats:
        """Stored stats, or fresh zeroed stats for a user with none yet."""
        stats = await self.store.get(user_id)
        return stats if stats is not None else UserStats(user_id=user_id)

    async def update(
        self, user_id: UUID, mutate: Callable[[UserStats], T]
    ) -> tuple[UserStats, T]:
        """Apply ``mutate`` to the latest stats and persist the result.

        A mutation returning None on existing stats changed nothing and is
        not written.

        Raises:
            ConcurrencyConflictError: If the scope or the write could not be
                obtained in time
        """
        if self.locks is None:
            return await self._update(user_id, mutate)
        async with self.locks.hold(stats_scope(user_id)):
            return await self._update(user_id, mutate)

    async def _update(
        self, user_id: UUID, mutate: Callable[[UserStats], T]
    ) -> tuple[UserStats, T]:
        for attempt in range(1, self.max_attempts + 1):
            stats = await self.store.get(user_id)
            created = stats is None
            if stats is None:
                stats = UserStats(user_id=user_id)

            result = mutate(stats)
            if result is None and not created:
                return stats, result

            if created:
                applied = await self.store.create(stats)
            else:
                applied = await self.store.save(stats)
            if applied:
                return stats, result

            logger.info(
                "user_stats_conflict_retry", user_id=str(user_id), attempt=attempt
            )

        logger.warning(
            "user_stats_conflict_exhausted",
            user_id=str(user_id),
            attempts=self.max_attempts,
        )
        raise ConcurrencyConflictError

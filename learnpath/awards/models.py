"""User stats aggregate and achievement definitions.

``UserStats`` is the single per-user record holding every global counter
(points, level, completion counters, streak and unlocked achievements).
It is only mutated through the tracking engine, under compare-and-set.
The ids of credited content items and modules are kept alongside the
counters, so crediting the same completion twice is a no-op.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from learnpath.core.timeutils import ensure_utc_aware
from learnpath.streaks.models import StreakState


class AchievementMetric(str, Enum):
    """Counter an achievement threshold applies to."""

    MODULES_COMPLETED = "modules_completed"
    LABS_COMPLETED = "labs_completed"
    GAMES_COMPLETED = "games_completed"
    TOTAL_POINTS = "total_points"


@dataclass(frozen=True)
class Achievement:
    slug: str
    title: str
    metric: AchievementMetric
    target: int


ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("first-steps", "First Steps", AchievementMetric.MODULES_COMPLETED, 1),
    Achievement(
        "learning-streak", "Learning Streak", AchievementMetric.MODULES_COMPLETED, 3
    ),
    Achievement(
        "knowledge-seeker", "Knowledge Seeker", AchievementMetric.MODULES_COMPLETED, 5
    ),
    Achievement(
        "module-master", "Module Master", AchievementMetric.MODULES_COMPLETED, 10
    ),
    Achievement("lab-rookie", "Lab Rookie", AchievementMetric.LABS_COMPLETED, 1),
    Achievement(
        "hands-on-learner", "Hands-On Learner", AchievementMetric.LABS_COMPLETED, 5
    ),
    Achievement("lab-expert", "Lab Expert", AchievementMetric.LABS_COMPLETED, 15),
    Achievement("game-on", "Game On", AchievementMetric.GAMES_COMPLETED, 1),
    Achievement(
        "gaming-enthusiast", "Gaming Enthusiast", AchievementMetric.GAMES_COMPLETED, 5
    ),
    Achievement("game-master", "Game Master", AchievementMetric.GAMES_COMPLETED, 10),
    Achievement("xp-collector", "XP Collector", AchievementMetric.TOTAL_POINTS, 100),
    Achievement("xp-hunter", "XP Hunter", AchievementMetric.TOTAL_POINTS, 500),
    Achievement("xp-legend", "XP Legend", AchievementMetric.TOTAL_POINTS, 1000),
)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

USER_STATS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.user_stats (
    user_id UUID PRIMARY KEY,
    total_points INT,
    level INT,
    contents_completed INT,
    modules_completed INT,
    labs_completed INT,
    games_completed INT,
    current_streak INT,
    longest_streak INT,
    last_active_at TIMESTAMP,
    achievements SET<TEXT>,
    awarded_contents SET<UUID>,
    awarded_modules SET<UUID>,
    version INT
)
"""

AWARDS_TABLES_CQL = [
    USER_STATS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class UserStats:
    """Per-user counters.

    Attributes:
        user_id: Owning user
        total_points: Points earned from content completions
        level: ``total_points // points_per_level + 1``
        contents_completed: Content items completed
        modules_completed: Enrollments completed
        labs_completed: Labs completed
        games_completed: Games completed
        current_streak: Consecutive active days
        longest_streak: Highest current_streak ever reached
        last_active_at: Last qualifying activity
        achievements: Unlocked achievement slugs
        awarded_contents: Content items whose completion was credited
        awarded_modules: Modules whose completion was credited
        version: Compare-and-set version, bumped on every write
    """

    def __init__(
        self,
        user_id: UUID,
        total_points: int = 0,
        level: int = 1,
        contents_completed: int = 0,
        modules_completed: int = 0,
        labs_completed: int = 0,
        games_completed: int = 0,
        current_streak: int = 0,
        longest_streak: int = 0,
        last_active_at: datetime | None = None,
        achievements: set[str] | None = None,
        awarded_contents: set[UUID] | None = None,
        awarded_modules: set[UUID] | None = None,
        version: int = 0,
    ):
        self.user_id = user_id
        self.total_points = total_points
        self.level = level
        self.contents_completed = contents_completed
        self.modules_completed = modules_completed
        self.labs_completed = labs_completed
        self.games_completed = games_completed
        self.current_streak = current_streak
        self.longest_streak = longest_streak
        self.last_active_at = ensure_utc_aware(last_active_at)
        self.achievements = set(achievements or ())
        self.awarded_contents = set(awarded_contents or ())
        self.awarded_modules = set(awarded_modules or ())
        self.version = version

    @property
    def streak(self) -> StreakState:
        return StreakState(
            current_streak=self.current_streak,
            longest_streak=self.longest_streak,
            last_active_at=self.last_active_at,
        )

    @streak.setter
    def streak(self, state: StreakState) -> None:
        self.current_streak = state.current_streak
        self.longest_streak = state.longest_streak
        self.last_active_at = state.last_active_at

    def metric(self, metric: AchievementMetric) -> int:
        return getattr(self, metric.value)

    @classmethod
    def from_row(cls, row: Any) -> "UserStats":
        """Create UserStats instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            total_points=row.total_points or 0,
            level=row.level or 1,
            contents_completed=row.contents_completed or 0,
            modules_completed=row.modules_completed or 0,
            labs_completed=row.labs_completed or 0,
            games_completed=row.games_completed or 0,
            current_streak=row.current_streak or 0,
            longest_streak=row.longest_streak or 0,
            last_active_at=row.last_active_at,
            achievements=set(row.achievements or ()),
            awarded_contents=set(row.awarded_contents or ()),
            awarded_modules=set(row.awarded_modules or ()),
            version=row.version or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "total_points": self.total_points,
            "level": self.level,
            "contents_completed": self.contents_completed,
            "modules_completed": self.modules_completed,
            "labs_completed": self.labs_completed,
            "games_completed": self.games_completed,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_active_at": self.last_active_at,
            "achievements": set(self.achievements),
            "awarded_contents": set(self.awarded_contents),
            "awarded_modules": set(self.awarded_modules),
            "version": self.version,
        }

    def copy(self) -> "UserStats":
        return UserStats(**self.to_dict())

    def __repr__(self) -> str:
        return (
            f"<UserStats user={self.user_id} points={self.total_points} "
            f"level={self.level} streak={self.current_streak}>"
        )

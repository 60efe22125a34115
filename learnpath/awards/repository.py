"""User stats stores, compare-and-set on ``version``."""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import UserStats


if TYPE_CHECKING:
    from cassandra.cluster import Session


class UserStatsStore(Protocol):
    async def get(self, user_id: UUID) -> UserStats | None: ...

    async def create(self, stats: UserStats) -> bool: ...

    async def save(self, stats: UserStats) -> bool: ...


class CassandraUserStatsStore:
    """User stats in Cassandra, written with lightweight transactions."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_stats = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.user_stats
            WHERE user_id = ?
        """)

        self._insert_stats = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.user_stats
            (user_id, total_points, level, contents_completed, modules_completed,
             labs_completed, games_completed, current_streak, longest_streak,
             last_active_at, achievements, awarded_contents, awarded_modules,
             version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_stats = self.session.prepare(f"""
            UPDATE {self.keyspace}.user_stats
            SET total_points = ?, level = ?, contents_completed = ?,
                modules_completed = ?, labs_completed = ?, games_completed = ?,
                current_streak = ?, longest_streak = ?, last_active_at = ?,
                achievements = ?, awarded_contents = ?, awarded_modules = ?,
                version = ?
            WHERE user_id = ?
            IF version = ?
        """)

    async def get(self, user_id: UUID) -> UserStats | None:
        result = await self.session.aexecute(self._get_stats, [user_id])
        row = result.one()
        return UserStats.from_row(row) if row else None

    async def create(self, stats: UserStats) -> bool:
        result = await self.session.aexecute(
            self._insert_stats,
            [
                stats.user_id,
                stats.total_points,
                stats.level,
                stats.contents_completed,
                stats.modules_completed,
                stats.labs_completed,
                stats.games_completed,
                stats.current_streak,
                stats.longest_streak,
                stats.last_active_at,
                stats.achievements,
                stats.awarded_contents,
                stats.awarded_modules,
                1,
            ],
        )
        if not result.was_applied:
            return False
        stats.version = 1
        return True

    async def save(self, stats: UserStats) -> bool:
        result = await self.session.aexecute(
            self._update_stats,
            [
                stats.total_points,
                stats.level,
                stats.contents_completed,
                stats.modules_completed,
                stats.labs_completed,
                stats.games_completed,
                stats.current_streak,
                stats.longest_streak,
                stats.last_active_at,
                stats.achievements,
                stats.awarded_contents,
                stats.awarded_modules,
                stats.version + 1,
                stats.user_id,
                stats.version,
            ],
        )
        if not result.was_applied:
            return False
        stats.version += 1
        return True


class InMemoryUserStatsStore:
    """User stats in a dictionary; stores and returns copies."""

    def __init__(self) -> None:
        self._stats: dict[UUID, UserStats] = {}

    async def get(self, user_id: UUID) -> UserStats | None:
        stats = self._stats.get(user_id)
        return stats.copy() if stats else None

    async def create(self, stats: UserStats) -> bool:
        if stats.user_id in self._stats:
            return False
        stats.version = 1
        self._stats[stats.user_id] = stats.copy()
        return True

    async def save(self, stats: UserStats) -> bool:
        stored = self._stats.get(stats.user_id)
        if stored is None or stored.version != stats.version:
            return False
        stats.version += 1
        self._stats[stats.user_id] = stats.copy()
        return True

"""Enrollment stores.

``create`` enforces one enrollment per (user, module) and ``save`` is a
compare-and-set on ``version``; both return False on conflict.
"""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import Enrollment


if TYPE_CHECKING:
    from cassandra.cluster import Session


class EnrollmentStore(Protocol):
    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...

    async def get_for_module(
        self, user_id: UUID, module_id: UUID
    ) -> Enrollment | None: ...

    async def list_for_user(self, user_id: UUID) -> list[Enrollment]: ...

    async def list_for_module(self, module_id: UUID) -> list[Enrollment]: ...

    async def create(self, enrollment: Enrollment) -> bool: ...

    async def save(self, enrollment: Enrollment) -> bool: ...


class CassandraEnrollmentStore:
    """Enrollments in Cassandra with id lookup tables."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE enrollment_id = ?
        """)

        self._get_user_module_id = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_user
            WHERE user_id = ? AND module_id = ?
        """)

        self._get_user_ids = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_user
            WHERE user_id = ?
        """)

        self._get_module_ids = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_module
            WHERE module_id = ?
        """)

        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (enrollment_id, user_id, module_id, status, progress_percentage,
             completed_sections, total_sections, time_spent, enrolled_at,
             last_accessed_at, completed_at, grade, feedback, is_active, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._delete_enrollment = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments
            WHERE enrollment_id = ?
        """)

        self._insert_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_user
            (user_id, module_id, enrollment_id)
            VALUES (?, ?, ?)
            IF NOT EXISTS
        """)

        self._insert_by_module = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_module
            (module_id, user_id, enrollment_id)
            VALUES (?, ?, ?)
        """)

        self._update_enrollment = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET status = ?, progress_percentage = ?, completed_sections = ?,
                total_sections = ?, time_spent = ?, last_accessed_at = ?,
                completed_at = ?, grade = ?, feedback = ?, is_active = ?,
                version = ?
            WHERE enrollment_id = ?
            IF version = ?
        """)

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        result = await self.session.aexecute(self._get_enrollment, [enrollment_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def get_for_module(
        self, user_id: UUID, module_id: UUID
    ) -> Enrollment | None:
        result = await self.session.aexecute(
            self._get_user_module_id, [user_id, module_id]
        )
        row = result.one()
        return await self.get(row.enrollment_id) if row else None

    async def list_for_user(self, user_id: UUID) -> list[Enrollment]:
        rows = await self.session.aexecute(self._get_user_ids, [user_id])
        return await self._load_all([row.enrollment_id for row in rows])

    async def list_for_module(self, module_id: UUID) -> list[Enrollment]:
        rows = await self.session.aexecute(self._get_module_ids, [module_id])
        return await self._load_all([row.enrollment_id for row in rows])

    async def _load_all(self, enrollment_ids: list[UUID]) -> list[Enrollment]:
        enrollments = []
        for enrollment_id in enrollment_ids:
            enrollment = await self.get(enrollment_id)
            if enrollment is not None:
                enrollments.append(enrollment)
        return enrollments

    async def create(self, enrollment: Enrollment) -> bool:
        await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.id,
                enrollment.user_id,
                enrollment.module_id,
                enrollment.status.value,
                enrollment.progress_percentage,
                enrollment.completed_sections,
                enrollment.total_sections,
                enrollment.time_spent,
                enrollment.enrolled_at,
                enrollment.last_accessed_at,
                enrollment.completed_at,
                enrollment.grade,
                enrollment.feedback,
                enrollment.is_active,
                1,
            ],
        )

        # The by-user lookup is the uniqueness guard for (user, module)
        guard = await self.session.aexecute(
            self._insert_by_user,
            [enrollment.user_id, enrollment.module_id, enrollment.id],
        )
        if not guard.was_applied:
            await self.session.aexecute(self._delete_enrollment, [enrollment.id])
            return False

        await self.session.aexecute(
            self._insert_by_module,
            [enrollment.module_id, enrollment.user_id, enrollment.id],
        )
        enrollment.version = 1
        return True

    async def save(self, enrollment: Enrollment) -> bool:
        result = await self.session.aexecute(
            self._update_enrollment,
            [
                enrollment.status.value,
                enrollment.progress_percentage,
                enrollment.completed_sections,
                enrollment.total_sections,
                enrollment.time_spent,
                enrollment.last_accessed_at,
                enrollment.completed_at,
                enrollment.grade,
                enrollment.feedback,
                enrollment.is_active,
                enrollment.version + 1,
                enrollment.id,
                enrollment.version,
            ],
        )
        if not result.was_applied:
            return False
        enrollment.version += 1
        return True


class InMemoryEnrollmentStore:
    """Enrollments in dictionaries; stores and returns copies."""

    def __init__(self) -> None:
        self._enrollments: dict[UUID, Enrollment] = {}
        self._by_user_module: dict[tuple[UUID, UUID], UUID] = {}

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        enrollment = self._enrollments.get(enrollment_id)
        return enrollment.copy() if enrollment else None

    async def get_for_module(
        self, user_id: UUID, module_id: UUID
    ) -> Enrollment | None:
        enrollment_id = self._by_user_module.get((user_id, module_id))
        return await self.get(enrollment_id) if enrollment_id else None

    async def list_for_user(self, user_id: UUID) -> list[Enrollment]:
        return [
            e.copy() for e in self._enrollments.values() if e.user_id == user_id
        ]

    async def list_for_module(self, module_id: UUID) -> list[Enrollment]:
        return [
            e.copy() for e in self._enrollments.values() if e.module_id == module_id
        ]

    async def create(self, enrollment: Enrollment) -> bool:
        key = (enrollment.user_id, enrollment.module_id)
        if key in self._by_user_module:
            return False
        enrollment.version = 1
        self._by_user_module[key] = enrollment.id
        self._enrollments[enrollment.id] = enrollment.copy()
        return True

    async def save(self, enrollment: Enrollment) -> bool:
        stored = self._enrollments.get(enrollment.id)
        if stored is None or stored.version != enrollment.version:
            return False
        enrollment.version += 1
        self._enrollments[enrollment.id] = enrollment.copy()
        return True

    def count(self) -> int:
        return len(self._enrollments)

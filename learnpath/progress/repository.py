"""Progress record stores.

Writes are compare-and-set on ``version``: ``create`` only succeeds when
no record exists yet, ``save`` only succeeds when the stored version still
equals the version that was read. Both return False instead of raising so
that callers can re-read and retry.
"""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import ProgressRecord


if TYPE_CHECKING:
    from cassandra.cluster import Session


class ProgressStore(Protocol):
    async def get(
        self, user_id: UUID, module_id: UUID, content_id: UUID
    ) -> ProgressRecord | None: ...

    async def list_for_module(
        self, user_id: UUID, module_id: UUID
    ) -> list[ProgressRecord]: ...

    async def create(self, record: ProgressRecord) -> bool: ...

    async def save(self, record: ProgressRecord) -> bool: ...


class CassandraProgressStore:
    """Progress records in Cassandra, written with lightweight transactions."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_record = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.progress_records
            WHERE user_id = ? AND module_id = ? AND content_id = ?
        """)

        self._get_module_records = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.progress_records
            WHERE user_id = ? AND module_id = ?
        """)

        self._insert_record = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress_records
            (user_id, module_id, content_id, content_type, status,
             progress_percentage, time_spent, attempts, score, max_score,
             started_at, completed_at, last_accessed_at, is_active, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_record = self.session.prepare(f"""
            UPDATE {self.keyspace}.progress_records
            SET status = ?, progress_percentage = ?, time_spent = ?,
                attempts = ?, score = ?, max_score = ?, started_at = ?,
                completed_at = ?, last_accessed_at = ?, is_active = ?,
                version = ?
            WHERE user_id = ? AND module_id = ? AND content_id = ?
            IF version = ?
        """)

    async def get(
        self, user_id: UUID, module_id: UUID, content_id: UUID
    ) -> ProgressRecord | None:
        result = await self.session.aexecute(
            self._get_record, [user_id, module_id, content_id]
        )
        row = result.one()
        return ProgressRecord.from_row(row) if row else None

    async def list_for_module(
        self, user_id: UUID, module_id: UUID
    ) -> list[ProgressRecord]:
        rows = await self.session.aexecute(
            self._get_module_records, [user_id, module_id]
        )
        return [ProgressRecord.from_row(row) for row in rows]

    async def create(self, record: ProgressRecord) -> bool:
        result = await self.session.aexecute(
            self._insert_record,
            [
                record.user_id,
                record.module_id,
                record.content_id,
                record.content_type,
                record.status.value,
                record.progress_percentage,
                record.time_spent,
                record.attempts,
                record.score,
                record.max_score,
                record.started_at,
                record.completed_at,
                record.last_accessed_at,
                record.is_active,
                1,
            ],
        )
        if not result.was_applied:
            return False
        record.version = 1
        return True

    async def save(self, record: ProgressRecord) -> bool:
        result = await self.session.aexecute(
            self._update_record,
            [
                record.status.value,
                record.progress_percentage,
                record.time_spent,
                record.attempts,
                record.score,
                record.max_score,
                record.started_at,
                record.completed_at,
                record.last_accessed_at,
                record.is_active,
                record.version + 1,
                record.user_id,
                record.module_id,
                record.content_id,
                record.version,
            ],
        )
        if not result.was_applied:
            return False
        record.version += 1
        return True


class InMemoryProgressStore:
    """Progress records in a dictionary; stores and returns copies."""

    def __init__(self) -> None:
        self._records: dict[tuple[UUID, UUID, UUID], ProgressRecord] = {}

    async def get(
        self, user_id: UUID, module_id: UUID, content_id: UUID
    ) -> ProgressRecord | None:
        record = self._records.get((user_id, module_id, content_id))
        return record.copy() if record else None

    async def list_for_module(
        self, user_id: UUID, module_id: UUID
    ) -> list[ProgressRecord]:
        return [
            record.copy()
            for (owner, module, _), record in self._records.items()
            if owner == user_id and module == module_id
        ]

    async def create(self, record: ProgressRecord) -> bool:
        key = (record.user_id, record.module_id, record.content_id)
        if key in self._records:
            return False
        record.version = 1
        self._records[key] = record.copy()
        return True

    async def save(self, record: ProgressRecord) -> bool:
        key = (record.user_id, record.module_id, record.content_id)
        stored = self._records.get(key)
        if stored is None or stored.version != record.version:
            return False
        record.version += 1
        self._records[key] = record.copy()
        return True

"""Keyed mutual exclusion for read-compute-write sequences.

Aggregation reads a user's progress set, computes a percentage and writes
the enrollment back. Two such sequences for the same (user, module) must
not interleave, so callers wrap them in ``async with locks.hold(scope)``.
A user's stats are shared by all of their modules and are written under a
per-user scope. Stats scopes nest inside aggregation scopes, never the
other way round.

- ``RedisKeyedLock`` serializes across workers and hosts.
- ``InProcessKeyedLock`` serializes within one event loop (tests, single
  worker deployments, Redis unavailable).
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import redis.asyncio as redis
import structlog
from redis.exceptions import LockError

from learnpath.core.exceptions import ConcurrencyConflictError
from learnpath.core.redis import lock_key


logger = structlog.get_logger(__name__)


class KeyedLock(Protocol):
    def hold(self, scope: str) -> AbstractAsyncContextManager[None]: ...


class InProcessKeyedLock:
    """One ``asyncio.Lock`` per scope, dropped when nobody holds or waits."""

    def __init__(self, blocking_timeout: float | None = None) -> None:
        self._blocking_timeout = blocking_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, scope: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(scope, asyncio.Lock())
        self._users[scope] = self._users.get(scope, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._blocking_timeout)
            except TimeoutError:
                logger.warning("lock_timeout", scope=scope)
                raise ConcurrencyConflictError from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[scope] -= 1
            if self._users[scope] == 0:
                del self._users[scope]
                self._locks.pop(scope, None)

    def is_held(self, scope: str) -> bool:
        lock = self._locks.get(scope)
        return lock is not None and lock.locked()


class RedisKeyedLock:
    """Distributed lock built on ``redis.asyncio`` ``Lock``.

    ``timeout`` bounds how long a crashed holder can keep the scope;
    ``blocking_timeout`` bounds how long a caller waits for it.
    """

    def __init__(
        self,
        client: redis.Redis,
        timeout: float,
        blocking_timeout: float,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, scope: str) -> AsyncIterator[None]:
        lock = self._client.lock(
            lock_key(scope),
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout,
        )
        if not await lock.acquire():
            logger.warning("lock_timeout", scope=scope)
            raise ConcurrencyConflictError

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Expired while held; store compare-and-set rejects stale writes
                logger.warning("lock_expired", scope=scope, error=str(e))


def aggregation_scope(user_id: object, module_id: object) -> str:
    return f"aggregation:{user_id}:{module_id}"


def stats_scope(user_id: object) -> str:
    """Scope of one user's stats writes."""
    return f"stats:{user_id}"

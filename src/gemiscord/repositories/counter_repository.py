"""
Counter repository for database operations.

Persistent CounterStore on SQLAlchemy async. Increments are a single
``INSERT ... ON CONFLICT DO UPDATE`` statement so concurrent writers from any
number of processes never lose updates.
"""

import asyncio
import logging
from datetime import datetime, UTC
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import and_, case, delete, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ..db.session import create_session_maker, session_scope
from ..exceptions import ConfigurationError, CounterStoreError
from ..models.counter import QuotaCounter
from ..utils.clock import Clock, now_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SqlCounterStore:
    """CounterStore backed by the ``quota_counters`` table."""

    def __init__(
        self,
        engine: AsyncEngine,
        timeout_seconds: float = 5.0,
        clock: Clock = now_ms,
    ):
        dialect = engine.dialect.name
        if dialect not in _DIALECT_INSERTS:
            raise ConfigurationError(
                f"Counter store does not support the '{dialect}' database dialect"
            )

        self._insert = _DIALECT_INSERTS[dialect]
        self._session_maker = create_session_maker(engine)
        self._timeout = timeout_seconds
        self._clock = clock

    async def _run(
        self, operation: str, key: str, work: Callable[[AsyncSession], Awaitable[T]]
    ) -> T:
        async def _in_session() -> T:
            async with session_scope(self._session_maker) as session:
                return await work(session)

        try:
            return await asyncio.wait_for(_in_session(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise CounterStoreError(
                f"Counter store {operation} timed out for '{key}' after {self._timeout}s"
            ) from e
        except SQLAlchemyError as e:
            raise CounterStoreError(
                f"Counter store {operation} failed for '{key}': {e}"
            ) from e

    def _not_expired(self, now: int) -> Any:
        return or_(
            QuotaCounter.expires_at_ms.is_(None),
            QuotaCounter.expires_at_ms > now,
        )

    def _upsert(self, key: str, value: int, ttl_ms: Optional[int], accumulate: bool):
        now = self._clock()
        expires_at = now + ttl_ms if ttl_ms else None
        stmt = self._insert(QuotaCounter).values(
            key=key,
            value=value,
            expires_at_ms=expires_at,
            created_at=datetime.now(UTC),
            updated_at=datetime.now(UTC),
        )

        if accumulate:
            expired = and_(
                QuotaCounter.expires_at_ms.is_not(None),
                QuotaCounter.expires_at_ms <= now,
            )
            update = {
                "value": case(
                    (expired, stmt.excluded["value"]),
                    else_=QuotaCounter.value + stmt.excluded["value"],
                ),
                "expires_at_ms": case(
                    (expired, stmt.excluded["expires_at_ms"]),
                    else_=func.coalesce(
                        QuotaCounter.expires_at_ms, stmt.excluded["expires_at_ms"]
                    ),
                ),
                "updated_at": stmt.excluded["updated_at"],
            }
        else:
            update = {
                "value": stmt.excluded["value"],
                "expires_at_ms": stmt.excluded["expires_at_ms"],
                "updated_at": stmt.excluded["updated_at"],
            }

        return stmt.on_conflict_do_update(
            index_elements=[QuotaCounter.key], set_=update
        ).returning(QuotaCounter.value)

    async def get(self, key: str) -> int:
        async def work(session: AsyncSession) -> int:
            stmt = select(QuotaCounter.value).where(
                QuotaCounter.key == key, self._not_expired(self._clock())
            )
            value = (await session.execute(stmt)).scalar_one_or_none()
            return int(value) if value is not None else 0

        return await self._run("get", key, work)

    async def set(self, key: str, value: int, ttl_ms: Optional[int] = None) -> None:
        async def work(session: AsyncSession) -> None:
            await session.execute(self._upsert(key, value, ttl_ms, accumulate=False))

        await self._run("set", key, work)

    async def increment(
        self, key: str, delta: int = 1, ttl_ms: Optional[int] = None
    ) -> int:
        async def work(session: AsyncSession) -> int:
            result = await session.execute(
                self._upsert(key, delta, ttl_ms, accumulate=True)
            )
            return int(result.scalar_one())

        return await self._run("increment", key, work)

    async def has(self, key: str) -> bool:
        async def work(session: AsyncSession) -> bool:
            stmt = select(QuotaCounter.key).where(
                QuotaCounter.key == key, self._not_expired(self._clock())
            )
            return (await session.execute(stmt)).first() is not None

        return await self._run("has", key, work)

    async def delete(self, key: str) -> None:
        async def work(session: AsyncSession) -> None:
            await session.execute(delete(QuotaCounter).where(QuotaCounter.key == key))

        await self._run("delete", key, work)

    async def cleanup_expired(self) -> int:
        """
        Delete expired counter rows.

        Returns:
            Number of rows deleted
        """

        async def work(session: AsyncSession) -> int:
            stmt = delete(QuotaCounter).where(
                QuotaCounter.expires_at_ms.is_not(None),
                QuotaCounter.expires_at_ms <= self._clock(),
            )
            result = await session.execute(stmt)
            return result.rowcount or 0

        count = await self._run("cleanup", "*", work)
        if count > 0:
            logger.info(f"🧹 Cleaned up {count} expired quota counters")
        return count

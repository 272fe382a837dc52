# researchcollab/infra/db_async.py
"""
Async database access using asyncpg.

``Database`` owns the connection pool.  It is constructed in the app
lifespan and handed to the repositories; there is no module-level pool.
"""
from __future__ import annotations
import uuid
from typing import AsyncIterator
from contextlib import asynccontextmanager

import asyncpg
from researchcollab.infra.db_resilience_async import acquire_with_retry
from researchcollab.infra.logging_config import get_logger

logger = get_logger(__name__)


class Database:

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30.0,
        application_name: str = "researchcollab",
    ) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._command_timeout = command_timeout
        self._application_name = application_name
        self._pool: asyncpg.Pool | None = None

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_dsn,
            min_size=settings.pg_pool_min,
            max_size=settings.pg_pool_max,
            command_timeout=settings.pg_command_timeout,
        )

    async def connect(self) -> None:
        """Create the connection pool (idempotent)"""
        if self._pool is not None:
            return

        logger.info("Initializing asyncpg connection pool")
        self._pool = await asyncpg.create_pool(
            dsn=self._dsn,
            min_size=self._min_size,
            max_size=self._max_size,
            command_timeout=self._command_timeout,
            server_settings={
                "application_name": self._application_name,
            },
        )
        logger.info(f"Connection pool created: min={self._min_size}, max={self._max_size}")

    async def close(self) -> None:
        """Close the connection pool"""
        if self._pool is None:
            return

        logger.info("Closing connection pool")
        await self._pool.close()
        self._pool = None
        logger.info("Connection pool closed")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Connection pool not initialized. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def connection(self, transaction: bool = False) -> AsyncIterator[asyncpg.Connection]:
        """
        Get a connection from the pool.

        Usage:
            async with db.connection() as conn:
                row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)

        Args:
            transaction: If True, the block runs in a transaction that commits
                on success and rolls back on any exception.
        """
        pool = self.pool
        conn = await acquire_with_retry(pool)
        try:
            if transaction:
                async with conn.transaction():
                    yield conn
            else:
                yield conn
        finally:
            await pool.release(conn)

    async def ping(self) -> bool:
        """True if the database answers SELECT 1"""
        try:
            async with self.connection() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except Exception as exc:
            logger.warning(f"Database ping failed: {type(exc).__name__}: {exc}")
            return False


def parse_uuid(value: str | None) -> uuid.UUID | None:
    """UUID for a query parameter, or None when the value is not a UUID"""
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None

# researchcollab/infra/db_resilience_async.py
"""
Async database resilience utilities.
Retry logic for asyncpg on transient errors.

Only connection acquisition and idempotent reads are retried.  A write
that reached the server is never replayed.
"""
from __future__ import annotations
import asyncio
from typing import TypeVar, Callable
from functools import wraps

import asyncpg
from researchcollab.infra.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


def is_transient_error(exc: Exception) -> bool:
    """
    Check if database error is transient (should retry).

    Transient errors:
    - Connection errors
    - Server closed connection
    - Too many connections
    - Deadlock
    """
    if isinstance(exc, asyncpg.PostgresConnectionError):
        return True

    if isinstance(exc, asyncpg.TooManyConnectionsError):
        return True

    if isinstance(exc, asyncpg.DeadlockDetectedError):
        return True

    if isinstance(exc, (ConnectionError, asyncio.TimeoutError)):
        return True

    # Constraint / data errors are never transient, whatever the message says
    if isinstance(exc, asyncpg.PostgresError):
        return False

    error_message = str(exc).lower()
    transient_patterns = [
        "connection",
        "timeout",
        "network",
        "too many connections",
        "server closed",
        "connection reset",
    ]
    return any(pattern in error_message for pattern in transient_patterns)


def retry_on_transient_error(
    max_retries: int = 3,
    initial_delay: float = 0.1,
    backoff_factor: float = 2.0,
    max_delay: float = 5.0
):
    """
    Decorator to retry an idempotent async function on transient database errors.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay between retries (seconds)
        backoff_factor: Multiplier for delay after each retry
        max_delay: Maximum delay between retries (seconds)

    Example:
        @retry_on_transient_error(max_retries=3)
        async def get_call(self, call_id: str):
            async with self._db.connection() as conn:
                return await conn.fetchrow("SELECT * FROM research_calls WHERE id = $1", call_id)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    if not is_transient_error(exc) or attempt >= max_retries:
                        raise

                    logger.warning(
                        f"Transient error in {func.__name__} (attempt {attempt + 1}/{max_retries}): {exc}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)

        return wrapper
    return decorator


async def acquire_with_retry(
    pool: asyncpg.Pool,
    max_retries: int = 3,
    initial_delay: float = 0.1,
) -> asyncpg.Connection:
    """
    Acquire a pooled connection, retrying transient failures with backoff.
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            return await pool.acquire()
        except Exception as exc:
            if not is_transient_error(exc):
                raise

            if attempt >= max_retries:
                logger.error(f"Max retries ({max_retries}) exceeded getting connection")
                raise

            logger.warning(
                f"Transient error getting connection (attempt {attempt + 1}/{max_retries}): {exc}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2.0, 5.0)

"""
Database helper functions for common patterns.
Reduces boilerplate in repositories.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import errors as pg_errors

from network_engine.db.pool import get_db_connection, get_db_transaction
from network_engine.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Execute query and return single row as dict.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Optional existing connection (joins its transaction)

    Returns:
        Dict with row data or None if no results
    """
    try:
        if connection:
            async with connection.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()
        async with await get_db_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()

    except pg_errors.UniqueViolation:
        raise
    except psycopg.Error as e:
        logger.error("Database fetch_one error", query=str(query)[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_one") from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    """Execute query and return all rows as list of dicts."""
    try:
        if connection:
            async with connection.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()
        async with await get_db_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()

    except psycopg.Error as e:
        logger.error("Database fetch_all error", query=str(query)[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_all") from e


async def fetch_val(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> Any:
    """Execute query and return the first column of the first row."""
    row = await fetch_one(query, params, connection=connection)
    return next(iter(row.values())) if row else None


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """
    Execute query and return number of affected rows.

    Unique violations are re-raised untouched so callers can map them to a
    conflict instead of a generic database failure.
    """
    try:
        if connection:
            cursor = await connection.execute(query, params)
            return cursor.rowcount
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount

    except pg_errors.UniqueViolation:
        raise
    except psycopg.Error as e:
        logger.error("Database execute error", query=str(query)[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="execute") from e


@asynccontextmanager
async def advisory_locks(keys: Iterable[str]) -> AsyncGenerator[psycopg.AsyncConnection, None]:
    """
    Open a transaction holding advisory locks for the given keys.

    Keys are contact ids, or a scoped name such as ``queue:<date>``. Locks
    are taken in sorted order and released on commit/rollback, so the
    interaction-log path and the nightly batch never interleave on a contact.
    """
    ordered = sorted(set(keys))
    async with await get_db_transaction() as conn:
        for key in ordered:
            await conn.execute(
                "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))", (key,)
            )
        yield conn


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Decorator to retry database operations on temporary failures.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Base delay between retries (exponential backoff)
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except (psycopg.OperationalError, DatabaseError) as e:
                    # Helpers wrap driver errors; only connection-level failures are retried
                    if isinstance(e, DatabaseError) and not isinstance(
                        e.__cause__, psycopg.OperationalError
                    ):
                        raise
                    if attempt < max_retries:
                        delay = base_delay * (2**attempt)
                        logger.warning(
                            "Database operation failed, retrying",
                            attempt=attempt + 1,
                            max_retries=max_retries,
                            delay=delay,
                            error=str(e),
                        )
                        await asyncio.sleep(delay)
                        continue

                    logger.error(
                        "Database operation failed after all retries",
                        attempts=max_retries + 1,
                        error=str(e),
                    )
                    raise DatabaseError(
                        f"Operation failed after {max_retries} retries: {e}",
                        operation=func.__name__,
                        recoverable=False,
                    ) from e

                except (psycopg.IntegrityError, psycopg.DataError) as e:
                    if isinstance(e, pg_errors.UniqueViolation):
                        raise
                    logger.error("Database operation failed with permanent error", error=str(e))
                    raise DatabaseError(
                        f"Permanent database error: {e}", operation=func.__name__, recoverable=False
                    ) from e

        return wrapper

    return decorator

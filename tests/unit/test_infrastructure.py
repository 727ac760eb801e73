from unittest.mock import AsyncMock

import psycopg
import pytest

from network_engine.db.helpers import DatabaseError, with_db_retry
from network_engine.infrastructure.redis_client import FastRedisClient, RedisUnavailableError


def _flaky(failures, error_factory):
    calls = {"count": 0}

    @with_db_retry(max_retries=3, base_delay=0)
    async def operation():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise error_factory()
        return "ok"

    return operation, calls


def _connection_lost():
    try:
        raise psycopg.OperationalError("server closed the connection")
    except psycopg.OperationalError as e:
        raise DatabaseError("Query failed", operation="fetch_val") from e


def _wrapped_connection_error():
    try:
        _connection_lost()
    except DatabaseError as e:
        return e


@pytest.mark.asyncio
async def test_retry_recovers_from_connection_failures():
    operation, calls = _flaky(2, _wrapped_connection_error)

    assert await operation() == "ok"
    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_retries():
    operation, calls = _flaky(10, lambda: psycopg.OperationalError("down"))

    with pytest.raises(DatabaseError):
        await operation()
    assert calls["count"] == 4


@pytest.mark.asyncio
async def test_query_errors_are_not_retried():
    operation, calls = _flaky(1, lambda: DatabaseError("syntax error", operation="fetch_one"))

    with pytest.raises(DatabaseError):
        await operation()
    assert calls["count"] == 1


def _broken_redis():
    client = FastRedisClient("redis://unused")
    client._initialized = True
    client.client = AsyncMock()
    client.client.get.side_effect = ConnectionError("connection refused")
    client.client.mget.side_effect = ConnectionError("connection refused")
    client.client.zcount.side_effect = ConnectionError("connection refused")
    return client


@pytest.mark.asyncio
async def test_plain_reads_degrade_to_none():
    assert await _broken_redis().get("linkedin:cooldown:ends") is None


@pytest.mark.asyncio
async def test_counter_reads_fail_closed():
    client = _broken_redis()

    with pytest.raises(RedisUnavailableError):
        await client.mget("linkedin:requests:day:2025-03-12")
    with pytest.raises(RedisUnavailableError):
        await client.zcount("linkedin:requests:log", 0, "+inf")

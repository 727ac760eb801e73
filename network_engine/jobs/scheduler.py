"""
Daily scheduling loop shared by the job schedulers.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from network_engine.infrastructure.observability.logging import get_logger
from network_engine.utils.clock import local_zone, utc_now

logger = get_logger(__name__)

RETRY_AFTER_ERROR_S = 3600


def seconds_until_hour(hour: int, now: datetime | None = None) -> float:
    """Seconds from ``now`` to the next ``hour``:00 in the configured timezone."""
    now = (now or utc_now()).astimezone(local_zone())
    next_run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if now >= next_run:
        next_run += timedelta(days=1)
    return (next_run.astimezone(UTC) - now.astimezone(UTC)).total_seconds()


async def run_daily(
    job_name: str,
    hour: int,
    runner: Callable[[], Awaitable[Any]],
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> None:
    """Sleep until ``hour`` every day and run ``runner``; never exits on job errors."""
    logger.info("Scheduler started", job=job_name, schedule_hour=hour)

    while True:
        try:
            sleep_seconds = seconds_until_hour(hour)
            logger.info("Job scheduled", job=job_name, sleep_seconds=round(sleep_seconds))
            await sleep(sleep_seconds)

            logger.info("Running scheduled job", job=job_name)
            await runner()

        except asyncio.CancelledError:
            logger.info("Scheduler cancelled", job=job_name)
            break
        except Exception as e:
            logger.error("Error in scheduler, will retry", job=job_name, error=str(e))
            await sleep(RETRY_AFTER_ERROR_S)

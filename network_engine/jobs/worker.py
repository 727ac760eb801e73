"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, opens the database pool and Redis client, and delegates to the
appropriate scheduler or one-off run.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from network_engine.config import settings
from network_engine.db.pool import db_pool
from network_engine.infrastructure.observability.logging import get_logger, setup_logging
from network_engine.infrastructure.redis_client import fast_redis
from network_engine.jobs.duplicate_scan_job import start_duplicate_scan_scheduler
from network_engine.jobs.queue_generation_job import start_queue_generation_scheduler
from network_engine.jobs.score_batch_job import (
    run_priority_batch_once,
    start_score_batch_scheduler,
)

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "score_batch": start_score_batch_scheduler,
    "priority_batch": run_priority_batch_once,
    "daily_queue": start_queue_generation_scheduler,
    "duplicate_scan": start_duplicate_scan_scheduler,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "score_batch").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name, environment=settings.environment)
    await db_pool.initialize()
    await fast_redis.initialize()
    try:
        await JOB_REGISTRY[name]()
    finally:
        await fast_redis.close()
        await db_pool.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()

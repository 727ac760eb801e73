"""
Shared run bookkeeping for batch jobs.

Every run is recorded in ``job_runs`` (running -> completed/failed), tagged
in the logs with the job name, and guarded so a job already running in
this process is skipped rather than started twice.
"""

import time
from typing import Any

import structlog

from network_engine.infrastructure.observability.logging import get_logger, log_batch_summary

from .repository import JobRunRepository

logger = get_logger(__name__)


class BatchJob:
    name = "batch"

    def __init__(self, job_runs=JobRunRepository):
        self.job_runs = job_runs
        self.is_running = False

    async def execute(self) -> dict[str, Any]:
        raise NotImplementedError

    async def run(self) -> dict[str, Any]:
        """
        Run the job once.

        Returns the job summary, or ``{"success": False, "error": ...}``
        when the job is already running. Failures are recorded and re-raised.
        """
        if self.is_running:
            logger.warning("Job already running, skipping", job=self.name)
            return {"success": False, "error": "Already running"}

        self.is_running = True
        started = time.monotonic()
        structlog.contextvars.bind_contextvars(job=self.name)
        try:
            run_id = await self.job_runs.start(self.name)
            logger.info("Job started", run_id=run_id)
            try:
                summary = await self.execute()
            except Exception as e:
                logger.error("Job failed", run_id=run_id, error=str(e))
                await self.job_runs.finish(run_id, "failed", error=str(e))
                raise

            await self.job_runs.finish(
                run_id, "completed", processed=summary.get("processed", 0), summary=summary
            )
            log_batch_summary(self.name, summary, time.monotonic() - started)
            return summary
        finally:
            self.is_running = False
            structlog.contextvars.unbind_contextvars("job")

"""
Daily queue generation job. Builds today's queue at QUEUE_GENERATION_HOUR.
"""

from typing import Any

from network_engine.config import settings
from network_engine.features.queue.service import QueueService, queue_service
from network_engine.utils.clock import local_today

from .base import BatchJob
from .repository import JobRunRepository
from .scheduler import run_daily


class QueueGenerationJob(BatchJob):
    name = "daily_queue"

    def __init__(self, queue: QueueService = queue_service, job_runs=JobRunRepository):
        super().__init__(job_runs)
        self.queue = queue

    async def execute(self) -> dict[str, Any]:
        result = await self.queue.generate_daily_queue(local_today())
        result["processed"] = result["total"]
        return result


async def start_queue_generation_scheduler():
    await run_daily(
        queue_generation_job.name, settings.QUEUE_GENERATION_HOUR, queue_generation_job.run
    )


queue_generation_job = QueueGenerationJob()

"""
Duplicate scan job. Runs the idempotent duplicate scan daily at DUPLICATE_SCAN_HOUR.
"""

from typing import Any

from network_engine.config import settings
from network_engine.features.duplicates.service import DuplicateService, duplicate_service

from .base import BatchJob
from .repository import JobRunRepository
from .scheduler import run_daily


class DuplicateScanJob(BatchJob):
    name = "duplicate_scan"

    def __init__(self, duplicates: DuplicateService = duplicate_service, job_runs=JobRunRepository):
        super().__init__(job_runs)
        self.duplicates = duplicates

    async def execute(self) -> dict[str, Any]:
        result = await self.duplicates.scan()
        result["processed"] = result["candidates"]
        return result


async def start_duplicate_scan_scheduler():
    await run_daily(duplicate_scan_job.name, settings.DUPLICATE_SCAN_HOUR, duplicate_scan_job.run)


duplicate_scan_job = DuplicateScanJob()

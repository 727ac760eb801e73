"""
Nightly score batch.

Recomputes every active contact's relationship score, writes the day's
score snapshot, applies at most one automated promotion or demotion per
contact, then refreshes priority scores for targets. Each contact commits
on its own, so a cancelled run leaves every processed contact consistent
and the next run simply starts over.

Usage:
    asyncio.create_task(start_score_batch_scheduler())
"""

from typing import Any

from network_engine.config import settings
from network_engine.errors import batch_error
from network_engine.features.contacts.repository import ContactRepository
from network_engine.features.scoring.config import EngineConfig
from network_engine.features.scoring.service import ScoringService, scoring_service
from network_engine.features.transitions.service import TransitionService, transition_service
from network_engine.infrastructure.observability.logging import get_logger
from network_engine.utils.clock import local_today, utc_now

from .base import BatchJob
from .repository import JobRunRepository
from .scheduler import run_daily

logger = get_logger(__name__)


class ScoreBatchJob(BatchJob):
    name = "score_batch"

    def __init__(
        self,
        contacts=ContactRepository,
        scoring: ScoringService = scoring_service,
        transitions: TransitionService = transition_service,
        job_runs=JobRunRepository,
        page_size: int | None = None,
    ):
        super().__init__(job_runs)
        self.contacts = contacts
        self.scoring = scoring
        self.transitions = transitions
        self.page_size = page_size or settings.BATCH_PAGE_SIZE

    async def execute(self) -> dict[str, Any]:
        """
        Returns:
            dict: {"processed", "updated", "transitions", "errors", "priority"}
        """
        config = await self.scoring.load_config()
        result = await self.run_relationship_batch(config)
        priority = await self.scoring.run_priority_batch(config, self.page_size)
        result["priority"] = {
            "processed": priority["processed"],
            "updated": priority["updated"],
            "errors": len(priority["errors"]),
        }
        result["errors"].extend(priority["errors"])
        return result

    async def run_relationship_batch(self, config: EngineConfig) -> dict[str, Any]:
        now = utc_now()
        today = local_today(now)
        result: dict[str, Any] = {"processed": 0, "updated": 0, "transitions": 0, "errors": []}

        cursor = None
        while True:
            page = await self.contacts.fetch_page(after=cursor, limit=self.page_size)
            if not page:
                break

            for listed in page:
                try:
                    changed, transitioned = await self._process_contact(
                        listed.id, config, now, today
                    )
                except Exception as e:
                    logger.error("Score recompute failed", contact_id=listed.id, error=str(e))
                    result["errors"].append(batch_error(e, contact_id=listed.id))
                    continue

                result["processed"] += 1
                result["updated"] += int(changed)
                result["transitions"] += int(transitioned)

            cursor = (page[-1].created_at, page[-1].id)
            if len(page) < self.page_size:
                break

        return result

    async def _process_contact(self, contact_id, config, now, today) -> tuple[bool, bool]:
        async with self.contacts.locked(contact_id) as conn:
            contact = await self.contacts.get_active(contact_id, connection=conn)
            if contact is None:
                return False, False

            previous = contact.relationship_score
            score = await self.scoring.recalculate_relationship_score(
                contact, config=config, as_of=now, snapshot_date=today, connection=conn
            )
            transition = await self.transitions.evaluate_automated(
                contact, config=config, connection=conn, today=today
            )
        return score != previous, transition is not None


class PriorityBatchJob(BatchJob):
    name = "priority_batch"

    def __init__(self, scoring: ScoringService = scoring_service, job_runs=JobRunRepository):
        super().__init__(job_runs)
        self.scoring = scoring

    async def execute(self) -> dict[str, Any]:
        return await self.scoring.run_priority_batch()


async def start_score_batch_scheduler():
    """Run the score batch daily at SCORE_BATCH_HOUR."""
    await run_daily(score_batch_job.name, settings.SCORE_BATCH_HOUR, score_batch_job.run)


async def run_priority_batch_once():
    """One-off priority recompute for all targets."""
    await priority_batch_job.run()


# Singleton instances for manual triggers
score_batch_job = ScoreBatchJob()
priority_batch_job = PriorityBatchJob()

"""
Scoring service - recomputes and persists relationship and priority scores.
"""

from __future__ import annotations

from datetime import date, datetime

import psycopg

from network_engine.config import settings
from network_engine.domain.models import Contact
from network_engine.errors import NotFoundError, batch_error
from network_engine.features.contacts.repository import ContactRepository
from network_engine.features.interactions.repository import InteractionRepository
from network_engine.infrastructure.observability.logging import get_logger
from network_engine.utils.clock import utc_now

from .config import EngineConfig
from .priority import PriorityBreakdown, calculate_priority
from .relationship import calculate_relationship_score
from .repository import ScoreHistoryRepository, ScoringConfigRepository

logger = get_logger(__name__)

PRIORITY_EPSILON = 0.01


class ScoringService:
    def __init__(
        self,
        contacts=ContactRepository,
        interactions=InteractionRepository,
        score_history=ScoreHistoryRepository,
        config_store=ScoringConfigRepository,
    ):
        self.contacts = contacts
        self.interactions = interactions
        self.score_history = score_history
        self.config_store = config_store

    async def load_config(self) -> EngineConfig:
        """Load config rows once; raises ConfigurationError if they are invalid."""
        rows = await self.config_store.fetch_rows()
        return EngineConfig.from_rows(rows)

    async def recalculate_relationship_score(
        self,
        contact: Contact,
        *,
        config: EngineConfig,
        as_of: datetime | None = None,
        snapshot_date: date | None = None,
        connection: psycopg.AsyncConnection | None = None,
    ) -> int:
        """
        Recompute one contact's relationship score inside the caller's lock.

        Writes only when the value changed. With ``snapshot_date`` the day's
        ScoreHistory row is written as well.
        """
        interactions = await self.interactions.list_for_contact(contact.id, connection=connection)
        score = calculate_relationship_score(
            interactions, config.relationship, as_of or utc_now()
        )

        if score != contact.relationship_score:
            await self.contacts.update_relationship_score(contact.id, score, connection=connection)
            logger.debug(
                "Relationship score updated",
                contact_id=contact.id,
                previous=contact.relationship_score,
                score=score,
            )
            contact.relationship_score = score

        if snapshot_date is not None:
            await self.score_history.upsert_snapshot(
                contact.id, "relationship", score, snapshot_date, connection=connection
            )
        return score

    async def recalculate_for_contact(
        self, contact_id: str, config: EngineConfig | None = None
    ) -> int:
        """On-demand recompute for a single contact."""
        config = config or await self.load_config()
        async with self.contacts.locked(contact_id) as conn:
            contact = await self.contacts.get_active(contact_id, connection=conn)
            if contact is None:
                raise NotFoundError("Contact", contact_id)
            return await self.recalculate_relationship_score(
                contact, config=config, connection=conn
            )

    async def calculate_priority_for_contact(
        self, contact_id: str, config: EngineConfig | None = None
    ) -> PriorityBreakdown:
        """Priority breakdown for one contact; only targets have the total stored."""
        config = config or await self.load_config()
        contact = await self.contacts.get_active(contact_id)
        if contact is None:
            raise NotFoundError("Contact", contact_id)

        breakdown = calculate_priority(contact, config.priority)
        if contact.status == "target" and _priority_changed(
            contact.priority_score, breakdown.total
        ):
            await self.contacts.update_priority_score(contact.id, breakdown.total)
        return breakdown

    async def run_priority_batch(
        self, config: EngineConfig | None = None, page_size: int | None = None
    ) -> dict:
        """
        Recompute priority for every active target contact.

        Returns:
            dict: {"processed": int, "updated": int, "errors": list}
        """
        config = config or await self.load_config()
        page_size = page_size or settings.BATCH_PAGE_SIZE
        result = {"processed": 0, "updated": 0, "errors": []}

        cursor = None
        while True:
            page = await self.contacts.fetch_page(
                statuses=["target"], after=cursor, limit=page_size
            )
            if not page:
                break

            for contact in page:
                result["processed"] += 1
                try:
                    total = calculate_priority(contact, config.priority).total
                    if _priority_changed(contact.priority_score, total):
                        await self.contacts.update_priority_score(contact.id, total)
                        result["updated"] += 1
                except Exception as e:
                    logger.error(
                        "Priority recompute failed", contact_id=contact.id, error=str(e)
                    )
                    result["errors"].append(batch_error(e, contact_id=contact.id))

            cursor = (page[-1].created_at, page[-1].id)
            if len(page) < page_size:
                break

        logger.info(
            "Priority batch finished",
            processed=result["processed"],
            updated=result["updated"],
            errors=len(result["errors"]),
        )
        return result


def _priority_changed(stored: float | None, new: float) -> bool:
    if stored is None:
        return True
    return abs(new - stored) > PRIORITY_EPSILON


scoring_service = ScoringService()

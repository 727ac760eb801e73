"""
Status transition service.

Every status change writes the contact row and a status_history row on the
same connection, inside the caller's per-contact lock. A change that lands
on ``connected`` also logs the acceptance and recomputes the relationship
score before the transaction commits.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

import psycopg

from network_engine.domain.models import Contact, StatusChange
from network_engine.domain.requests import StatusChangeRequest, parse_request
from network_engine.domain.types import INTERACTION_POINTS, STATUS_ORDER
from network_engine.errors import NotFoundError
from network_engine.features.contacts.repository import ContactRepository
from network_engine.features.interactions.repository import InteractionRepository
from network_engine.features.scoring.config import EngineConfig
from network_engine.features.scoring.repository import ScoreHistoryRepository
from network_engine.features.scoring.service import ScoringService, scoring_service
from network_engine.infrastructure.observability.logging import get_logger
from network_engine.utils.clock import utc_now

from .repository import StatusHistoryRepository
from .rules import demotion_target, promotion_target

logger = get_logger(__name__)

ACCEPTANCE_TYPE = "connection_request_accepted"


@dataclass(slots=True)
class TransitionResult:
    contact_id: str
    from_status: str | None
    to_status: str
    trigger: str
    reason: str | None
    relationship_score: int | None = None


class TransitionService:
    def __init__(
        self,
        contacts=ContactRepository,
        interactions=InteractionRepository,
        status_history=StatusHistoryRepository,
        score_history=ScoreHistoryRepository,
        scoring: ScoringService = scoring_service,
    ):
        self.contacts = contacts
        self.interactions = interactions
        self.status_history = status_history
        self.score_history = score_history
        self.scoring = scoring

    async def manual_transition(
        self,
        contact_id: str,
        status: str,
        reason: str | None = None,
        config: EngineConfig | None = None,
    ) -> TransitionResult | None:
        """
        Move a contact to any status on human request.

        Returns None when the contact is already in ``status``.

        Raises:
            ValidationError: unknown status
            NotFoundError: contact missing or soft-deleted
        """
        request = parse_request(
            StatusChangeRequest, {"contact_id": contact_id, "status": status, "reason": reason}
        )
        config = config or await self.scoring.load_config()

        async with self.contacts.locked(request.contact_id) as conn:
            contact = await self.contacts.get_active(request.contact_id, connection=conn)
            if contact is None:
                raise NotFoundError("Contact", request.contact_id)
            if contact.status == request.status:
                return None

            return await self.apply_transition(
                contact,
                request.status,
                trigger="manual",
                reason=request.reason or f"Manual status change to {request.status}",
                config=config,
                connection=conn,
            )

    async def apply_transition(
        self,
        contact: Contact,
        to_status: str,
        *,
        trigger: str,
        reason: str | None,
        config: EngineConfig,
        connection: psycopg.AsyncConnection | None,
        log_acceptance: bool = True,
        now: datetime | None = None,
    ) -> TransitionResult:
        """Apply a status change. Caller holds the contact lock and transaction."""
        now = now or utc_now()
        from_status = contact.status

        await self.contacts.update_status(contact.id, to_status, connection=connection)
        await self.status_history.insert(
            StatusChange(
                contact_id=contact.id,
                from_status=from_status,
                to_status=to_status,
                trigger=trigger,
                reason=reason,
            ),
            connection=connection,
        )
        contact.status = to_status

        score = None
        if to_status == "connected":
            # Demotions back to connected are not acceptances
            if log_acceptance and STATUS_ORDER[from_status] < STATUS_ORDER["connected"]:
                await self.interactions.insert(
                    contact.id,
                    ACCEPTANCE_TYPE,
                    "manual",
                    now,
                    INTERACTION_POINTS[ACCEPTANCE_TYPE],
                    {"via": "status_transition", "trigger": trigger},
                    connection=connection,
                )
                await self.contacts.touch_last_interaction(contact.id, now, connection=connection)
            score = await self.scoring.recalculate_relationship_score(
                contact, config=config, as_of=now, connection=connection
            )

        logger.info(
            "Contact status changed",
            contact_id=contact.id,
            from_status=from_status,
            to_status=to_status,
            trigger=trigger,
        )
        return TransitionResult(
            contact_id=contact.id,
            from_status=from_status,
            to_status=to_status,
            trigger=trigger,
            reason=reason,
            relationship_score=score,
        )

    async def evaluate_automated(
        self,
        contact: Contact,
        *,
        config: EngineConfig,
        connection: psycopg.AsyncConnection | None,
        today: date,
        include_demotion: bool = True,
    ) -> TransitionResult | None:
        """Apply at most one automated promotion or demotion step."""
        thresholds = config.thresholds
        score = contact.relationship_score

        if contact.status in ("connected", "engaged"):
            counts = await self.interactions.counts_for_contact(contact.id, connection=connection)
            promotion = promotion_target(
                contact.status, score, counts["total"], counts["reciprocal"], thresholds
            )
            if promotion:
                to_status, reason = promotion
                return await self.apply_transition(
                    contact,
                    to_status,
                    trigger="automated_promotion",
                    reason=reason,
                    config=config,
                    connection=connection,
                )

        if include_demotion and contact.status in ("engaged", "relationship"):
            since = today - timedelta(days=thresholds.demotion_window_days)
            best = await self.score_history.max_since(contact.id, since, connection=connection)
            demotion = demotion_target(contact.status, score, best, thresholds)
            if demotion:
                to_status, reason = demotion
                return await self.apply_transition(
                    contact,
                    to_status,
                    trigger="automated_demotion",
                    reason=reason,
                    config=config,
                    connection=connection,
                )

        return None


transition_service = TransitionService()

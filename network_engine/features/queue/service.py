"""
Daily queue generator and queue item actions.

Generation turns scores, statuses and rate-limit headroom into the day's
list of connection requests, follow-ups and re-engagements. Regenerating a
date replaces its open items and never duplicates a
(contact, date, action) triple.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from network_engine.domain.models import QueueItem
from network_engine.domain.requests import SnoozeRequest, parse_request
from network_engine.domain.types import CONNECTED_STATUSES, INTERACTION_POINTS
from network_engine.errors import ConflictError, NotFoundError, ValidationError
from network_engine.features.contacts.repository import ContactRepository
from network_engine.features.interactions.repository import InteractionRepository
from network_engine.features.outreach.rate_limiter import LinkedInRateLimiter
from network_engine.features.scoring.config import EngineConfig
from network_engine.features.scoring.repository import ScoreHistoryRepository
from network_engine.features.scoring.service import ScoringService, scoring_service
from network_engine.features.transitions.repository import StatusHistoryRepository
from network_engine.features.transitions.service import (
    TransitionResult,
    TransitionService,
    transition_service,
)
from network_engine.infrastructure.observability.logging import get_logger
from network_engine.utils.clock import utc_now

from .repository import QueueRepository
from .selection import select_connection_requests, select_follow_ups, select_re_engagements
from .templates import (
    EXCEEDS_LIMIT_NOTE,
    exceeds_limit,
    render_template,
    select_template,
    template_values,
)

logger = get_logger(__name__)

EXECUTED_INTERACTION = {
    "connection_request": "connection_request_sent",
    "follow_up": "linkedin_message",
    "re_engagement": "linkedin_message",
}


@dataclass(slots=True)
class QueueExecution:
    item: QueueItem
    relationship_score: int
    transition: TransitionResult | None = None


class QueueService:
    def __init__(
        self,
        contacts=ContactRepository,
        queue=QueueRepository,
        interactions=InteractionRepository,
        status_history=StatusHistoryRepository,
        score_history=ScoreHistoryRepository,
        scoring: ScoringService = scoring_service,
        transitions: TransitionService = transition_service,
        rate_limiter: LinkedInRateLimiter | None = None,
    ):
        self.contacts = contacts
        self.queue = queue
        self.interactions = interactions
        self.status_history = status_history
        self.score_history = score_history
        self.scoring = scoring
        self.transitions = transitions
        self.rate_limiter = rate_limiter

    async def generate_daily_queue(
        self,
        queue_date: date,
        config: EngineConfig | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Build the queue for ``queue_date``.

        Open (pending/approved) items for the date are replaced; executed,
        skipped and snoozed items stay and block their contact/action pair.

        Returns:
            dict: {"queue_date", "connection_requests", "follow_ups",
            "re_engagements", "total", "flagged_for_editing",
            "skipped_rate_limited", "rate_limit_reason"}

        Raises:
            ValidationError: ``queue_date`` is not a calendar date
        """
        if isinstance(queue_date, datetime) or not isinstance(queue_date, date):
            raise ValidationError("queue_date must be a calendar date", queue_date=str(queue_date))

        config = config or await self.scoring.load_config()
        queue_config = config.queue
        limiter = self.rate_limiter or LinkedInRateLimiter(config=config.rate_limit)

        budget, rate_limit_reason = await limiter.planning_budget(queue_date, now)
        if budget > queue_config.safety_cap:
            budget = queue_config.safety_cap

        targets = await self.contacts.list_active(["target"])
        nurtured = await self.contacts.list_active(CONNECTED_STATUSES)
        connected_ids = [contact.id for contact in nurtured if contact.status == "connected"]
        connected_at = await self.status_history.latest_entry_times(connected_ids, "connected")
        last_outbound_at = await self.interactions.last_outbound_times(connected_ids)
        warm_ids = [contact.id for contact in nurtured if contact.status != "connected"]
        earliest = await self.score_history.earliest_since(
            warm_ids, queue_date - timedelta(days=config.thresholds.going_cold_window_days)
        )
        templates = await self.queue.active_templates()

        async with self.queue.locked_for_date(queue_date) as conn:
            cleared = await self.queue.clear_open_items(queue_date, connection=conn)
            blocked = await self.queue.blocked_pairs(queue_date, connection=conn)

            requests, skipped_ids = select_connection_requests(targets, blocked, budget)
            follow_ups = select_follow_ups(
                nurtured, queue_date, queue_config, blocked, connected_at, last_outbound_at
            )
            re_engagements = select_re_engagements(
                nurtured,
                earliest,
                config.thresholds,
                queue_config,
                blocked,
                exclude=[candidate.contact.id for candidate in follow_ups],
            )

            items: list[dict[str, Any]] = []
            flagged = 0
            for contact in requests:
                template = select_template(templates, contact)
                message = (
                    render_template(template.body, template_values(contact)) if template else None
                )
                notes = None
                if exceeds_limit(message, queue_config.message_max_length):
                    notes = EXCEEDS_LIMIT_NOTE
                    flagged += 1
                items.append(
                    {
                        "contact_id": contact.id,
                        "queue_date": queue_date,
                        "action_type": "connection_request",
                        "template_id": template.id if template else None,
                        "personalized_message": message,
                        "notes": notes,
                    }
                )
            for candidate in follow_ups:
                items.append(
                    {
                        "contact_id": candidate.contact.id,
                        "queue_date": queue_date,
                        "action_type": "follow_up",
                        "notes": "New connection" if candidate.reason == "new_connection" else None,
                    }
                )
            for candidate in re_engagements:
                items.append(
                    {
                        "contact_id": candidate.contact.id,
                        "queue_date": queue_date,
                        "action_type": "re_engagement",
                        "notes": candidate.note,
                    }
                )

            inserted = await self.queue.insert_items(items, connection=conn)

        result = {
            "queue_date": queue_date.isoformat(),
            "connection_requests": len(requests),
            "follow_ups": len(follow_ups),
            "re_engagements": len(re_engagements),
            "total": len(items),
            "flagged_for_editing": flagged,
            "skipped_rate_limited": skipped_ids,
            "rate_limit_reason": rate_limit_reason,
        }
        logger.info(
            "Daily queue generated",
            queue_date=result["queue_date"],
            cleared=cleared,
            inserted=inserted,
            connection_requests=result["connection_requests"],
            follow_ups=result["follow_ups"],
            re_engagements=result["re_engagements"],
            budget=budget,
            rate_limit_reason=rate_limit_reason,
            skipped_rate_limited=len(skipped_ids),
        )
        return result

    async def mark_executed(
        self,
        item_id: str,
        notes: str | None = None,
        config: EngineConfig | None = None,
        now: datetime | None = None,
    ) -> QueueExecution:
        """
        Record that a queue item was carried out.

        Logs the matching interaction, moves a target to ``requested`` for a
        connection request and recomputes the relationship score, all in one
        transaction under the contact lock.

        Raises:
            NotFoundError: item or contact missing
            ConflictError: item already executed
        """
        item = await self.queue.get_item(item_id)
        if item is None:
            raise NotFoundError("QueueItem", item_id)

        config = config or await self.scoring.load_config()
        now = now or utc_now()

        async with self.contacts.locked(item.contact_id) as conn:
            item = await self.queue.get_item(item_id, connection=conn)
            if item is None:
                raise NotFoundError("QueueItem", item_id)
            if item.status == "executed":
                raise ConflictError(
                    "Queue item already executed", code="ALREADY_EXECUTED", item_id=item_id
                )
            contact = await self.contacts.get_active(item.contact_id, connection=conn)
            if contact is None:
                raise NotFoundError("Contact", item.contact_id)

            updated = await self.queue.mark_executed(item_id, notes, connection=conn)
            interaction_type = EXECUTED_INTERACTION[item.action_type]
            await self.interactions.insert(
                contact.id,
                interaction_type,
                "linkedin",
                now,
                INTERACTION_POINTS[interaction_type],
                {"queue_item_id": item_id, "action_type": item.action_type},
                connection=conn,
            )
            await self.contacts.touch_last_interaction(contact.id, now, connection=conn)

            transition = None
            if item.action_type == "connection_request" and contact.status == "target":
                transition = await self.transitions.apply_transition(
                    contact,
                    "requested",
                    trigger="automated_promotion",
                    reason="Connection request sent via queue",
                    config=config,
                    connection=conn,
                    now=now,
                )
            score = await self.scoring.recalculate_relationship_score(
                contact, config=config, as_of=now, connection=conn
            )
            if item.template_id:
                await self.queue.increment_template_usage(item.template_id, connection=conn)

        logger.info(
            "Queue item executed",
            item_id=item_id,
            contact_id=contact.id,
            action_type=item.action_type,
            relationship_score=score,
            transitioned_to=transition.to_status if transition else None,
        )
        return QueueExecution(item=updated, relationship_score=score, transition=transition)

    async def mark_skipped(self, item_id: str, reason: str | None = None) -> QueueItem:
        item = await self._open_item(item_id)
        skipped = await self.queue.mark_skipped(item.id, reason)
        logger.info("Queue item skipped", item_id=item_id, reason=reason)
        return skipped

    async def snooze(self, item_id: str, snooze_until: date) -> QueueItem:
        """Hide an item until ``snooze_until``, which must fall after its queue date."""
        request = parse_request(SnoozeRequest, {"item_id": item_id, "snooze_until": snooze_until})
        item = await self._open_item(request.item_id)
        if request.snooze_until <= item.queue_date:
            raise ValidationError(
                "snooze_until must be after the item's queue date",
                item_id=item_id,
                queue_date=item.queue_date.isoformat(),
            )
        snoozed = await self.queue.snooze(item.id, request.snooze_until)
        logger.info(
            "Queue item snoozed", item_id=item_id, snooze_until=request.snooze_until.isoformat()
        )
        return snoozed

    async def approve(self, item_ids: list[str]) -> int:
        approved = await self.queue.approve(item_ids)
        logger.info("Queue items approved", requested=len(item_ids), approved=approved)
        return approved

    async def queue_summary(self, queue_date: date) -> dict[str, Any]:
        counts = await self.queue.status_counts(queue_date)
        summary = {
            status: counts.get(status, 0)
            for status in ("pending", "approved", "executed", "skipped", "snoozed")
        }
        summary["total"] = sum(counts.values())
        summary["queue_date"] = queue_date.isoformat()
        return summary

    async def _open_item(self, item_id: str) -> QueueItem:
        item = await self.queue.get_item(item_id)
        if item is None:
            raise NotFoundError("QueueItem", item_id)
        if item.status == "executed":
            raise ConflictError(
                "Queue item already executed", code="ALREADY_EXECUTED", item_id=item_id
            )
        return item


queue_service = QueueService()

"""
Outreach execution reporting.

The browser automation that actually sends connection requests lives
outside the engine. It asks for the day's pending requests, sends them
through a ``ConnectionSender`` and reports each outcome back here, which
turns the outcome into ledger, limiter and queue effects.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any, Protocol

from network_engine.config import settings
from network_engine.domain.requests import SendOutcome, parse_request
from network_engine.errors import EngineError, SoftBanSignal, batch_error
from network_engine.features.queue.repository import QueueRepository
from network_engine.features.queue.service import QueueExecution, QueueService, queue_service
from network_engine.infrastructure.observability.logging import get_logger

from .rate_limiter import LinkedInRateLimiter, SendPermit

logger = get_logger(__name__)

SOFT_BAN_MARKERS = ("soft ban", "restrict", "weekly invitation limit", "unusual activity")
MESSAGE_MAX_LENGTH = 300


class ConnectionSender(Protocol):
    async def send_connection_request(self, profile_url: str, message: str) -> SendOutcome: ...


def is_soft_ban(reason: str | None) -> bool:
    text = (reason or "").lower()
    return any(marker in text for marker in SOFT_BAN_MARKERS)


class OutreachExecutor:
    def __init__(
        self,
        queue: QueueService = queue_service,
        queue_items=QueueRepository,
        rate_limiter: LinkedInRateLimiter | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.queue = queue
        self.queue_items = queue_items
        self.rate_limiter = rate_limiter or LinkedInRateLimiter()
        self.sleep = sleep

    async def pending_send_requests(self, queue_date: date) -> list[dict[str, Any]]:
        return await self.queue_items.pending_send_requests(queue_date)

    async def report_outcome(
        self,
        item_id: str,
        outcome: SendOutcome | dict[str, Any],
        reservation: SendPermit | None = None,
    ) -> QueueExecution | None:
        """
        Apply one send outcome.

        Success counts the send and marks the item executed. Failure marks
        it skipped; a failure that reads like a restriction also starts the
        cooldown and raises ``SoftBanSignal``. The cooldown starts before
        any queue write.

        ``reservation`` is the slot taken by ``try_acquire`` for this send:
        a success keeps it, a failure gives it back.
        """
        outcome = parse_request(SendOutcome, outcome)

        if outcome.success:
            if reservation is None:
                await self.rate_limiter.record_send()
            return await self.queue.mark_executed(item_id, notes=outcome.message)

        reason = outcome.error or "Send failed"
        logger.warning("Connection request failed", item_id=item_id, reason=reason)
        if reservation is not None:
            await self.rate_limiter.release(reservation)

        if not is_soft_ban(reason):
            await self.queue.mark_skipped(item_id, reason)
            return None

        ends_at = await self.rate_limiter.enter_cooldown()
        try:
            await self.queue.mark_skipped(item_id, reason)
        except EngineError as e:
            logger.warning("Soft-banned item not marked skipped", item_id=item_id, error=str(e))
        raise SoftBanSignal(reason, cooldown_ends_at=ends_at)

    async def run_send_batch(
        self,
        sender: ConnectionSender,
        queue_date: date,
        safety_limit: int | None = None,
    ) -> dict[str, Any]:
        """
        Send the day's pending connection requests until a limit stops us.

        Each slot is reserved with ``try_acquire`` before the sender runs.
        Queue errors on one item are recorded and the batch moves on.

        Returns:
            dict: {"sent", "failed", "skipped", "soft_ban_detected",
            "stopped_reason", "errors"}
        """
        safety_limit = safety_limit or settings.SEND_BATCH_SAFETY_LIMIT
        requests = await self.pending_send_requests(queue_date)
        result = {
            "sent": 0,
            "failed": 0,
            "skipped": 0,
            "soft_ban_detected": False,
            "stopped_reason": None,
            "errors": [],
        }

        logger.info(
            "Send batch started",
            queue_date=queue_date.isoformat(),
            pending=len(requests),
            safety_limit=safety_limit,
        )

        for index, request in enumerate(requests):
            if result["sent"] >= safety_limit:
                result["stopped_reason"] = "safety_limit"
                break

            item_id = request["queue_item_id"]
            message = request["message"]
            if len(message) > MESSAGE_MAX_LENGTH:
                try:
                    await self.queue.mark_skipped(item_id, "Message exceeds 300 characters")
                except EngineError as e:
                    logger.error("Skipping queue item failed", item_id=item_id, error=str(e))
                    result["errors"].append(batch_error(e, item_id=item_id))
                    continue
                result["skipped"] += 1
                continue

            permit = await self.rate_limiter.try_acquire()
            if not permit.allowed:
                result["stopped_reason"] = permit.reason
                logger.info("Send batch stopped by rate limiter", reason=permit.reason)
                break

            try:
                outcome = await sender.send_connection_request(request["profile_url"], message)
            except Exception as e:
                logger.error("Sender raised", item_id=item_id, error=str(e))
                outcome = SendOutcome(success=False, error=str(e))

            try:
                await self.report_outcome(item_id, outcome, reservation=permit)
            except SoftBanSignal as signal:
                result["failed"] += 1
                result["soft_ban_detected"] = True
                result["stopped_reason"] = "soft_ban"
                logger.error(
                    "Soft ban detected, send batch halted",
                    item_id=item_id,
                    reason=signal.reason,
                    cooldown_ends_at=signal.cooldown_ends_at.isoformat(),
                )
                break
            except EngineError as e:
                logger.error("Reporting send outcome failed", item_id=item_id, error=str(e))
                result["errors"].append(batch_error(e, item_id=item_id))

            result["sent" if outcome.success else "failed"] += 1

            if index < len(requests) - 1:
                await self.sleep(self.rate_limiter.next_request_delay())

        logger.info(
            "Send batch finished",
            queue_date=queue_date.isoformat(),
            sent=result["sent"],
            failed=result["failed"],
            skipped=result["skipped"],
            soft_ban_detected=result["soft_ban_detected"],
            stopped_reason=result["stopped_reason"],
            errors=len(result["errors"]),
        )
        return result


outreach_executor = OutreachExecutor()

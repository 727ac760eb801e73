import asyncio
from datetime import date, timedelta

import pytest

from network_engine.domain.requests import SendOutcome
from network_engine.errors import SoftBanSignal
from network_engine.features.outreach.execution import is_soft_ban
from network_engine.utils.clock import local_today


class ScriptedSender:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def send_connection_request(self, profile_url, message):
        self.calls.append((profile_url, message))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _pending_request(engine, queue_date, name, message="Hi there"):
    contact = engine.contacts.add(
        first_name=name, linkedin_url=f"https://www.linkedin.com/in/{name.lower()}"
    )
    item = engine.queue_items.add_item(
        contact_id=contact.id,
        queue_date=queue_date,
        action_type="connection_request",
        personalized_message=message,
    )
    return contact, item


def test_soft_ban_markers():
    assert is_soft_ban("Account restricted: unusual activity detected")
    assert is_soft_ban("You've reached the weekly invitation limit")
    assert not is_soft_ban("Profile not found")
    assert not is_soft_ban(None)


@pytest.mark.asyncio
async def test_successful_send_counts_and_executes(engine):
    today = local_today()
    contact, item = _pending_request(engine, today, "Ada")
    sender = ScriptedSender(SendOutcome(success=True, message="Invitation sent"))

    result = await engine.outreach.run_send_batch(sender, today)

    assert result == {
        "sent": 1,
        "failed": 0,
        "skipped": 0,
        "soft_ban_detected": False,
        "stopped_reason": None,
        "errors": [],
    }
    assert sender.calls == [("https://www.linkedin.com/in/ada", "Hi there")]
    assert engine.queue_items.items[item.id].status == "executed"
    assert engine.contacts.rows[contact.id].status == "requested"
    assert (await engine.limiter.get_status())["daily"]["used"] == 1


@pytest.mark.asyncio
async def test_soft_ban_halts_batch_and_starts_cooldown(engine):
    today = local_today()
    _, banned = _pending_request(engine, today, "Ada")
    _, untouched = _pending_request(engine, today, "Bob")
    sender = ScriptedSender(SendOutcome(success=False, error="Account restricted"))

    result = await engine.outreach.run_send_batch(sender, today)

    assert result["soft_ban_detected"] is True
    assert result["stopped_reason"] == "soft_ban"
    assert result["failed"] == 1
    assert len(sender.calls) == 1
    assert engine.queue_items.items[banned.id].status == "skipped"
    assert engine.queue_items.items[untouched.id].status == "pending"
    assert (await engine.limiter.get_cooldown_status())["active"] is True


@pytest.mark.asyncio
async def test_plain_failure_skips_item_and_continues(engine):
    today = local_today()
    _, failed = _pending_request(engine, today, "Ada")
    _, sent = _pending_request(engine, today, "Bob")
    sender = ScriptedSender(RuntimeError("browser crashed"), SendOutcome(success=True))

    result = await engine.outreach.run_send_batch(sender, today)

    assert (result["sent"], result["failed"]) == (1, 1)
    assert engine.queue_items.items[failed.id].status == "skipped"
    assert engine.queue_items.items[failed.id].notes == "browser crashed"
    assert engine.queue_items.items[sent.id].status == "executed"
    assert (await engine.limiter.get_status())["daily"]["used"] == 1


@pytest.mark.asyncio
async def test_overlong_message_skipped_without_sending(engine):
    today = local_today()
    _, item = _pending_request(engine, today, "Ada", message="x" * 301)
    sender = ScriptedSender()

    result = await engine.outreach.run_send_batch(sender, today)

    assert result["skipped"] == 1
    assert sender.calls == []
    assert engine.queue_items.items[item.id].notes == "Message exceeds 300 characters"


@pytest.mark.asyncio
async def test_rate_limiter_stops_batch(engine):
    today = local_today()
    _pending_request(engine, today, "Ada")
    for _ in range(20):
        await engine.limiter.record_send()
    sender = ScriptedSender()

    result = await engine.outreach.run_send_batch(sender, today)

    assert result["stopped_reason"] == "daily_limit"
    assert result["sent"] == 0
    assert sender.calls == []


@pytest.mark.asyncio
async def test_safety_limit_caps_batch(engine):
    today = local_today()
    _pending_request(engine, today, "Ada")
    _pending_request(engine, today, "Bob")
    sender = ScriptedSender(SendOutcome(success=True), SendOutcome(success=True))

    result = await engine.outreach.run_send_batch(sender, today, safety_limit=1)

    assert result["sent"] == 1
    assert result["stopped_reason"] == "safety_limit"


@pytest.mark.asyncio
async def test_report_outcome_raises_on_soft_ban(engine):
    _, item = _pending_request(engine, date(2025, 3, 12), "Ada")

    with pytest.raises(SoftBanSignal) as exc_info:
        await engine.outreach.report_outcome(
            item.id, {"success": False, "error": "Weekly invitation limit reached"}
        )

    assert exc_info.value.cooldown_ends_at is not None
    assert engine.queue_items.items[item.id].status == "skipped"


@pytest.mark.asyncio
async def test_soft_ban_on_executed_item_still_starts_cooldown(engine):
    _, item = _pending_request(engine, date(2025, 3, 12), "Ada")
    engine.queue_items.items[item.id].status = "executed"

    with pytest.raises(SoftBanSignal):
        await engine.outreach.report_outcome(
            item.id, {"success": False, "error": "Account restricted"}
        )

    assert (await engine.limiter.get_cooldown_status())["active"] is True
    assert engine.queue_items.items[item.id].status == "executed"


class RegeneratingSender:
    """Drops the queue item from under the batch, as a queue regeneration would."""

    def __init__(self, engine, doomed_item_id):
        self.engine = engine
        self.doomed_item_id = doomed_item_id
        self.calls = 0

    async def send_connection_request(self, profile_url, message):
        self.calls += 1
        self.engine.queue_items.items.pop(self.doomed_item_id, None)
        return SendOutcome(success=True)


@pytest.mark.asyncio
async def test_missing_queue_item_recorded_and_batch_continues(engine):
    today = local_today()
    _, vanished = _pending_request(engine, today, "Ada")
    _, kept = _pending_request(engine, today, "Bob")
    sender = RegeneratingSender(engine, vanished.id)

    result = await engine.outreach.run_send_batch(sender, today)

    assert sender.calls == 2
    assert result["sent"] == 2
    assert [error["item_id"] for error in result["errors"]] == [vanished.id]
    assert result["errors"][0]["error_type"] == "NotFoundError"
    assert engine.queue_items.items[kept.id].status == "executed"
    assert (await engine.limiter.get_status())["daily"]["used"] == 2


class YieldingSender:
    def __init__(self):
        self.calls = 0

    async def send_connection_request(self, profile_url, message):
        self.calls += 1
        await asyncio.sleep(0)
        return SendOutcome(success=True)


@pytest.mark.asyncio
async def test_concurrent_batches_share_the_daily_cap(engine):
    today = local_today()
    other_day = today + timedelta(days=1)
    _pending_request(engine, today, "Ada")
    _pending_request(engine, other_day, "Bob")
    for _ in range(19):
        await engine.limiter.record_send()
    sender = YieldingSender()

    first, second = await asyncio.gather(
        engine.outreach.run_send_batch(sender, today),
        engine.outreach.run_send_batch(sender, other_day),
    )

    assert sender.calls == 1
    assert first["sent"] + second["sent"] == 1
    assert "daily_limit" in (first["stopped_reason"], second["stopped_reason"])
    assert (await engine.limiter.get_status())["daily"]["used"] == 20

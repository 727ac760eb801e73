"""
LinkedIn send-side rate limiter and cooldown guard.

Counters live in Redis so the CLI sender, background worker and any
interactive caller share them across processes. Calendar mode keys the
counters by local day and ISO week (Monday start); rolling mode keeps a
sorted set of send timestamps and counts the trailing 24 hours / 7 days.

Keys:
    linkedin:requests:day:<YYYY-MM-DD>
    linkedin:requests:week:<monday YYYY-MM-DD>
    linkedin:requests:log            (rolling mode)
    linkedin:last_request_time       (epoch ms)
    linkedin:cooldown:ends           (epoch ms)
"""

import random
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from network_engine.errors import RateLimitedError
from network_engine.features.scoring.config import RateLimitConfig
from network_engine.infrastructure.observability.logging import get_logger
from network_engine.infrastructure.redis_client import fast_redis
from network_engine.utils.clock import (
    epoch_ms,
    from_epoch_ms,
    local_today,
    local_zone,
    start_of_day,
    utc_now,
    week_start,
)

logger = get_logger(__name__)

DAY_KEY = "linkedin:requests:day:{day}"
WEEK_KEY = "linkedin:requests:week:{monday}"
LOG_KEY = "linkedin:requests:log"
LAST_REQUEST_KEY = "linkedin:last_request_time"
COOLDOWN_KEY = "linkedin:cooldown:ends"

DAY_TTL_S = 2 * 86_400
WEEK_TTL_S = 8 * 86_400


@dataclass(slots=True)
class SendPermit:
    allowed: bool
    reason: str | None = None
    wait_ms: int | None = None
    daily_used: int = 0
    weekly_used: int = 0
    slot: str | None = None


class LinkedInRateLimiter:
    """Daily/weekly caps, minimum spacing and cooldown for connection requests."""

    def __init__(self, redis_client=fast_redis, config: RateLimitConfig | None = None):
        self.redis = redis_client
        self.config = config or RateLimitConfig()

    @property
    def rolling(self) -> bool:
        return self.config.window_mode == "rolling"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _counts_for(self, day: date, now: datetime) -> tuple[int, int]:
        """(daily, weekly) sends counted against ``day``."""
        if self.rolling:
            if day == local_today(now):
                daily_from = now - timedelta(days=1)
                weekly_from = now - timedelta(days=7)
            else:
                daily_from = start_of_day(day)
                weekly_from = start_of_day(day) - timedelta(days=6)
            daily = await self.redis.zcount(LOG_KEY, epoch_ms(daily_from), "+inf")
            weekly = await self.redis.zcount(LOG_KEY, epoch_ms(weekly_from), "+inf")
            return daily, weekly

        daily_raw, weekly_raw = await self.redis.mget(
            DAY_KEY.format(day=day.isoformat()),
            WEEK_KEY.format(monday=week_start(day).isoformat()),
        )
        return int(daily_raw or 0), int(weekly_raw or 0)

    async def get_cooldown_status(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or utc_now()
        raw = await self.redis.get(COOLDOWN_KEY)
        if raw:
            ends_at = from_epoch_ms(raw)
            if ends_at > now:
                return {
                    "active": True,
                    "ends_at": ends_at,
                    "remaining_ms": epoch_ms(ends_at) - epoch_ms(now),
                }
            await self.redis.delete(COOLDOWN_KEY)
        return {"active": False, "ends_at": None, "remaining_ms": 0}

    async def can_send(self, now: datetime | None = None) -> SendPermit:
        """
        Check whether one more connection request may go out now.

        Checks run in order: cooldown, weekly cap, daily cap, minimum gap.
        """
        now = now or utc_now()

        cooldown = await self.get_cooldown_status(now)
        if cooldown["active"]:
            return SendPermit(False, "cooldown", cooldown["remaining_ms"])

        today = local_today(now)
        daily, weekly = await self._counts_for(today, now)

        if weekly >= self.config.weekly_limit:
            next_week = start_of_day(week_start(today) + timedelta(days=7))
            return SendPermit(
                False, "weekly_limit", epoch_ms(next_week) - epoch_ms(now), daily, weekly
            )

        if daily >= self.config.daily_limit:
            tomorrow = start_of_day(today + timedelta(days=1))
            return SendPermit(
                False, "daily_limit", epoch_ms(tomorrow) - epoch_ms(now), daily, weekly
            )

        last_raw = await self.redis.get(LAST_REQUEST_KEY)
        if last_raw:
            elapsed_ms = epoch_ms(now) - int(last_raw)
            min_gap_ms = self.config.min_gap_seconds * 1000
            if elapsed_ms < min_gap_ms:
                return SendPermit(False, "spacing", min_gap_ms - elapsed_ms, daily, weekly)

        return SendPermit(True, None, None, daily, weekly)

    async def require_send(self, now: datetime | None = None) -> SendPermit:
        """Like ``can_send`` but raises ``RateLimitedError`` when not allowed."""
        permit = await self.can_send(now)
        if not permit.allowed:
            raise RateLimitedError(permit.reason, permit.wait_ms)
        return permit

    async def planning_budget(
        self, queue_date: date, now: datetime | None = None
    ) -> tuple[int, str | None]:
        """
        Connection requests the generator may plan for ``queue_date``.

        Returns ``(budget, reason)``; reason names the exhausted limit when
        the budget is zero.
        """
        now = now or utc_now()
        cooldown = await self.get_cooldown_status(now)
        if cooldown["active"] and cooldown["ends_at"].astimezone(local_zone()).date() > queue_date:
            return 0, "cooldown"

        daily, weekly = await self._counts_for(queue_date, now)
        daily_left = max(0, self.config.daily_limit - daily)
        weekly_left = max(0, self.config.weekly_limit - weekly)
        if weekly_left == 0:
            return 0, "weekly_limit"
        if daily_left == 0:
            return 0, "daily_limit"
        return min(daily_left, weekly_left), None

    async def get_status(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or utc_now()
        daily, weekly = await self._counts_for(local_today(now), now)
        cooldown = await self.get_cooldown_status(now)
        permit = await self.can_send(now)
        return {
            "daily": {
                "used": daily,
                "limit": self.config.daily_limit,
                "remaining": max(0, self.config.daily_limit - daily),
            },
            "weekly": {
                "used": weekly,
                "limit": self.config.weekly_limit,
                "remaining": max(0, self.config.weekly_limit - weekly),
            },
            "cooldown": cooldown,
            "can_send": permit.allowed,
            "reason": permit.reason,
            "next_allowed_at": (
                now + timedelta(milliseconds=permit.wait_ms) if permit.wait_ms else None
            ),
            "window_mode": self.config.window_mode,
        }

    def next_request_delay(self) -> float:
        """Randomized pause in seconds before the next send. Advisory only."""
        return random.uniform(self.config.min_gap_seconds, self.config.max_gap_seconds)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record_send(self, now: datetime | None = None) -> SendPermit:
        """Count one completed send; all keys change in one MULTI block."""
        now = now or utc_now()
        today = local_today(now)

        if self.rolling:
            await self._log_rolling_send(now)
            daily, weekly = await self._counts_for(today, now)
        else:
            daily, weekly = await self.redis.incr_many_with_ttl(
                {
                    DAY_KEY.format(day=today.isoformat()): DAY_TTL_S,
                    WEEK_KEY.format(monday=week_start(today).isoformat()): WEEK_TTL_S,
                },
                extra_sets={LAST_REQUEST_KEY: str(epoch_ms(now))},
            )

        logger.info("LinkedIn send recorded", daily_used=daily, weekly_used=weekly)
        return SendPermit(True, None, None, daily, weekly)

    async def try_acquire(self, now: datetime | None = None) -> SendPermit:
        """
        Reserve one send slot atomically.

        Increments first and rolls back when a cap is exceeded, so two
        processes racing for the last slot cannot both win.
        """
        now = now or utc_now()
        permit = await self.can_send(now)
        if not permit.allowed:
            return permit

        today = local_today(now)
        if self.rolling:
            member = await self._log_rolling_send(now)
            daily, weekly = await self._counts_for(today, now)
            if daily > self.config.daily_limit or weekly > self.config.weekly_limit:
                await self.redis.zrem(LOG_KEY, member)
                return SendPermit(False, _exceeded(daily, weekly, self.config), None, daily, weekly)
            return SendPermit(True, None, None, daily, weekly, slot=member)

        day_key = DAY_KEY.format(day=today.isoformat())
        week_key = WEEK_KEY.format(monday=week_start(today).isoformat())
        daily, weekly = await self.redis.incr_many_with_ttl(
            {day_key: DAY_TTL_S, week_key: WEEK_TTL_S}
        )
        if daily > self.config.daily_limit or weekly > self.config.weekly_limit:
            await self.redis.decr_many([day_key, week_key])
            logger.info("Send slot reservation rolled back", daily=daily, weekly=weekly)
            return SendPermit(
                False, _exceeded(daily, weekly, self.config), None, daily - 1, weekly - 1
            )

        await self.redis.set_with_ttl(LAST_REQUEST_KEY, str(epoch_ms(now)))
        return SendPermit(True, None, None, daily, weekly, slot=today.isoformat())

    async def release(self, permit: SendPermit) -> None:
        """Give back a slot reserved by ``try_acquire`` when no request went out."""
        if not permit.allowed or permit.slot is None:
            return
        if self.rolling:
            await self.redis.zrem(LOG_KEY, permit.slot)
        else:
            day = date.fromisoformat(permit.slot)
            await self.redis.decr_many(
                [
                    DAY_KEY.format(day=permit.slot),
                    WEEK_KEY.format(monday=week_start(day).isoformat()),
                ]
            )
        logger.info("Send slot released", slot=permit.slot)

    async def enter_cooldown(
        self, days: int | None = None, now: datetime | None = None
    ) -> datetime:
        """Suppress all sends for ``days`` (default from config). Returns the end time."""
        now = now or utc_now()
        days = days if days is not None else self.config.cooldown_days
        ends_at = now + timedelta(days=days)
        await self.redis.set_with_ttl(COOLDOWN_KEY, str(epoch_ms(ends_at)), days * 86_400)
        logger.warning("LinkedIn cooldown entered", days=days, ends_at=ends_at.isoformat())
        return ends_at

    async def clear_cooldown(self) -> None:
        await self.redis.delete(COOLDOWN_KEY)
        logger.info("LinkedIn cooldown cleared")

    async def _log_rolling_send(self, now: datetime) -> str:
        member = f"{epoch_ms(now)}:{uuid.uuid4().hex[:8]}"
        await self.redis.zadd_with_ttl(LOG_KEY, member, epoch_ms(now), WEEK_TTL_S)
        await self.redis.zremrangebyscore(
            LOG_KEY, "-inf", epoch_ms(now - timedelta(days=8))
        )
        await self.redis.set_with_ttl(LAST_REQUEST_KEY, str(epoch_ms(now)))
        return member


def _exceeded(daily: int, weekly: int, config: RateLimitConfig) -> str:
    return "weekly_limit" if weekly > config.weekly_limit else "daily_limit"

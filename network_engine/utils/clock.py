"""
Time helpers. Calendar days and weeks follow the configured timezone.
"""

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from network_engine.config import settings


def utc_now() -> datetime:
    return datetime.now(UTC)


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def local_today(now: datetime | None = None) -> date:
    return (now or utc_now()).astimezone(local_zone()).date()


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def start_of_day(day: date) -> datetime:
    """Midnight of ``day`` in the configured timezone, as an aware datetime."""
    return datetime(day.year, day.month, day.day, tzinfo=local_zone())


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_epoch_ms(value: int | str) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)

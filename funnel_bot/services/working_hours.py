from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from funnel_bot.logging_config import get_logger
from funnel_bot.schemas.funnel import WorkingHours

logger = get_logger("working_hours")


def local_now(tz_name: str, now: Optional[datetime] = None) -> datetime:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name))


def is_within_working_hours(hours: Optional[WorkingHours], now: Optional[datetime] = None) -> bool:
    """True when live replies should be sent.

    Fails open: a broken window (unknown timezone, missing config) counts as open
    so the funnel is never silently blocked by a configuration error.
    """
    try:
        local = local_now(hours.timezone, now)
        if hours.days and local.weekday() not in hours.days:
            return False
        return hours.start_hour <= local.hour < hours.end_hour
    except Exception as exc:
        logger.warning(
            "Working hours check failed, treating as open",
            extra={"context": {"error": str(exc)}},
        )
        return True


def local_time_or_utc(tz_name: str, now: Optional[datetime] = None) -> datetime:
    """Local time in ``tz_name``; UTC when the zone is unknown."""
    try:
        return local_now(tz_name, now)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name!r}, using UTC")
        return local_now("UTC", now)

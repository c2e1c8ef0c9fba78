import logging
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from scheduling.core import config

logger = logging.getLogger(__name__)


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to the configured default."""
    if not name:
        return ZoneInfo(config.DEFAULT_DOCTOR_TIMEZONE)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning('Unknown timezone %r, using %s', name, config.DEFAULT_DOCTOR_TIMEZONE)
        return ZoneInfo(config.DEFAULT_DOCTOR_TIMEZONE)


def to_naive_utc(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


def local_to_utc(on_date: date, clock_time: time, zone: ZoneInfo) -> datetime:
    return to_naive_utc(datetime.combine(on_date, clock_time, tzinfo=zone))


def local_date_of(instant: datetime, zone: ZoneInfo) -> date:
    """Calendar date of a naive-UTC instant on the doctor's local clock."""
    return instant.replace(tzinfo=timezone.utc).astimezone(zone).date()

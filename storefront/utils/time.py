"""Time utilities (UTC now, normalisation, signed date differences)."""
from __future__ import annotations
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from storefront.config import OFFER_SCHEDULE_SETTINGS

# Seconds per supported difference unit. Unknown units fall back to hours.
UNIT_SECONDS: dict[str, int] = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
    "weeks": 604800,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalise to UTC. Naive values are taken as UTC (sqlite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def reference_timezone() -> ZoneInfo:
    return ZoneInfo(str(OFFER_SCHEDULE_SETTINGS["reference_timezone"]))


def date_difference(date1: datetime, date2: datetime, unit: str = "hours") -> int:
    """Return ``date2 - date1`` expressed in ``unit``, truncated toward zero.

    A positive value means ``date2`` is still ahead of ``date1``; zero or a
    negative value means it is now-or-past. Both instants are compared in the
    configured reference timezone.
    """
    tz = reference_timezone()
    a = ensure_utc(date1).astimezone(tz)
    b = ensure_utc(date2).astimezone(tz)
    seconds = UNIT_SECONDS.get(unit, UNIT_SECONDS["hours"])
    return int((b - a).total_seconds() / seconds)


def is_future(instant: datetime, now: datetime | None = None) -> bool:
    return date_difference(now or utc_now(), instant, "seconds") > 0


__all__ = ["utc_now", "ensure_utc", "reference_timezone", "date_difference", "is_future", "UNIT_SECONDS"]

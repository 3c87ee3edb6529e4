from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

import pytz

from shifttrack.core.settings import business_timezone_name


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes (sqlite round-trips) are treated as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def business_tz():
    return pytz.timezone(business_timezone_name())


def to_business_local(dt: datetime) -> datetime:
    return to_utc_aware(dt).astimezone(business_tz())


def business_today(now: Optional[datetime] = None) -> date:
    return to_business_local(now or utcnow()).date()


def local_day_bounds_utc(day: date) -> Tuple[datetime, datetime]:
    """[start, end) of a local calendar day, expressed in UTC."""
    tz = business_tz()
    next_day = day + timedelta(days=1)
    start_local = tz.localize(datetime(day.year, day.month, day.day))
    end_local = tz.localize(datetime(next_day.year, next_day.month, next_day.day))
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)

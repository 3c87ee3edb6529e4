"""
Romanian working-day calendar.

Public holidays are listed per year (Orthodox Easter and Pentecost move every
year, so they are not computed here). Dates past the last populated year are
simply not recognised as holidays.
"""
from datetime import date, datetime
from typing import FrozenSet, Union

from shifttrack.core.clock import to_business_local

DateLike = Union[str, date, datetime]

ROMANIAN_PUBLIC_HOLIDAYS = (
    # 2024
    "2024-01-01", "2024-01-02", "2024-01-24",
    "2024-05-01",
    "2024-05-03",  # Good Friday
    "2024-05-05", "2024-05-06",  # Orthodox Easter
    "2024-06-01",
    "2024-06-23", "2024-06-24",  # Pentecost
    "2024-08-15", "2024-11-30", "2024-12-01", "2024-12-25", "2024-12-26",

    # 2025
    "2025-01-01", "2025-01-02", "2025-01-24",
    "2025-04-18",  # Good Friday
    "2025-04-20", "2025-04-21",  # Orthodox Easter
    "2025-05-01", "2025-06-01",
    "2025-06-08", "2025-06-09",  # Pentecost
    "2025-08-15", "2025-11-30", "2025-12-01", "2025-12-25", "2025-12-26",

    # 2026
    "2026-01-01", "2026-01-02", "2026-01-24",
    "2026-04-10",  # Good Friday
    "2026-04-12", "2026-04-13",  # Orthodox Easter
    "2026-05-01",
    "2026-05-31", "2026-06-01",  # Pentecost (Jun 1 is also Children's Day)
    "2026-08-15", "2026-11-30", "2026-12-01", "2026-12-25", "2026-12-26",

    # 2027
    "2027-01-01", "2027-01-02", "2027-01-24",
    "2027-04-30",  # Good Friday
    "2027-05-01",
    "2027-05-02", "2027-05-03",  # Orthodox Easter
    "2027-06-01",
    "2027-06-20", "2027-06-21",  # Pentecost
    "2027-08-15", "2027-11-30", "2027-12-01", "2027-12-25", "2027-12-26",
)

_HOLIDAYS: FrozenSet[date] = frozenset(date.fromisoformat(d) for d in ROMANIAN_PUBLIC_HOLIDAYS)


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return to_business_local(value).date()
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def is_public_holiday(value: DateLike) -> bool:
    return _as_date(value) in _HOLIDAYS


def is_weekend(value: DateLike) -> bool:
    # Saturday=5, Sunday=6
    return _as_date(value).weekday() >= 5


def is_working_day(value: DateLike) -> bool:
    return not is_weekend(value) and not is_public_holiday(value)


def last_covered_year() -> int:
    return max(d.year for d in _HOLIDAYS)

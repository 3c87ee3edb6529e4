import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from shifttrack.core.clock import business_today
from shifttrack.core.settings import compliance_tolerance_minutes
from shifttrack.database import SessionLocal
from shifttrack.models.schedule import ScheduleAssignment, WorkSchedule
from shifttrack.models.user import User
from shifttrack.services import notification_service
from shifttrack.services.notification_service import NotificationType, build_notification

logger = logging.getLogger(__name__)

Notifier = Callable[[List[Dict[str, Any]]], int]


@dataclass(frozen=True)
class ComplianceResult:
    mismatch: bool
    actual_minutes: Optional[int] = None
    expected_minutes: Optional[int] = None
    expected_hours: Optional[float] = None

    @property
    def actual_hours(self) -> Optional[float]:
        if self.actual_minutes is None:
            return None
        return round(self.actual_minutes / 60, 2)


def is_mismatch(actual_minutes: int, expected_minutes: int, tolerance_minutes: int) -> bool:
    return abs(int(actual_minutes) - int(expected_minutes)) > int(tolerance_minutes)


def find_assignment(db: Session, user_id: str, day: date) -> Optional[ScheduleAssignment]:
    """Working assignment for user/day within the approved schedules of that month."""
    schedule_ids = [
        row.id
        for row in db.query(WorkSchedule.id)
        .filter(
            WorkSchedule.month == day.month,
            WorkSchedule.year == day.year,
            WorkSchedule.status == "APPROVED",
        )
        .all()
    ]
    if not schedule_ids:
        return None

    return (
        db.query(ScheduleAssignment)
        .options(joinedload(ScheduleAssignment.shift_type))
        .filter(
            ScheduleAssignment.work_schedule_id.in_(schedule_ids),
            ScheduleAssignment.user_id == str(user_id),
            ScheduleAssignment.shift_date == day,
            ScheduleAssignment.is_rest_day.is_(False),
            ScheduleAssignment.shift_type_id.isnot(None),
        )
        .first()
    )


def _notify_mismatch(
    db: Session,
    user_id: str,
    result: ComplianceResult,
    day: date,
    notify: Notifier,
) -> None:
    employee = db.query(User).filter(User.id == str(user_id)).first()
    employee_name = employee.full_name if employee is not None else str(user_id)

    recipients = notification_service.active_users_with_roles(db, ["ADMIN", "MANAGER"])
    if not recipients:
        logger.warning("No active admins or managers to notify of mismatch", extra={"user_id": user_id})
        return

    actual_minutes = int(result.actual_minutes or 0)
    title = "Time entry mismatch"
    message = (
        f"{employee_name} worked {actual_minutes // 60}h {actual_minutes % 60}m "
        f"({result.actual_hours}h) but was scheduled for {result.expected_hours}h on {day.isoformat()}."
    )
    data = {
        "employeeId": str(user_id),
        "employeeName": employee_name,
        "date": day.isoformat(),
        "expectedHours": result.expected_hours,
        "expectedMinutes": result.expected_minutes,
        "actualHours": result.actual_hours,
        "actualMinutes": actual_minutes,
    }

    try:
        sent = notify(
            [
                build_notification(r.id, NotificationType.TIME_ENTRY_MISMATCH, title, message, data)
                for r in recipients
            ]
        )
        logger.info(
            "Time entry mismatch notified",
            extra={"user_id": user_id, "recipients": len(recipients), "sent": sent},
        )
    except Exception:
        logger.exception("Failed to notify time entry mismatch", extra={"user_id": user_id})


def check_compliance(
    user_id: str,
    actual_duration_minutes: int,
    *,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
    tolerance_minutes: Optional[int] = None,
    notify: Notifier = notification_service.create_many,
) -> ComplianceResult:
    """
    Compare a finished shift against today's assigned shift.

    "Today" is the business-timezone date at the moment of the check, so an
    overnight shift is compared with the assignment of the day it ended on.
    Missing schedules or assignments are not errors; they yield no mismatch.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    if tolerance_minutes is None:
        tolerance_minutes = compliance_tolerance_minutes()

    try:
        day = business_today(now)
        assignment = find_assignment(db, user_id, day)
        if assignment is None or assignment.shift_type is None:
            return ComplianceResult(mismatch=False, actual_minutes=int(actual_duration_minutes))

        expected_hours = float(assignment.shift_type.duration_hours)
        expected_minutes = int(round(expected_hours * 60))

        result = ComplianceResult(
            mismatch=is_mismatch(actual_duration_minutes, expected_minutes, tolerance_minutes),
            actual_minutes=int(actual_duration_minutes),
            expected_minutes=expected_minutes,
            expected_hours=expected_hours,
        )

        if result.mismatch:
            _notify_mismatch(db, user_id, result, day, notify)

        return result
    finally:
        if owns_db:
            db.close()

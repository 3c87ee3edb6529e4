"""
Time entries and their GPS location logs.

Every function takes an optional `db`. If db is provided, the function
flushes but does NOT commit/close: the caller owns the transaction. If db is
None, the function manages its own session and commits.

The one-open-entry-per-user rule is enforced by the partial unique index
`uq_time_entries_open_per_user`; the lookup in start_timer only produces the
friendly error in the common case.
"""
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_DOWN, Decimal
from typing import Callable, List, Optional
from uuid import uuid4

from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from shifttrack.core.clock import to_utc_aware, utcnow
from shifttrack.core.errors import ConflictError, InvalidStateError, NotFoundError
from shifttrack.database import SessionLocal
from shifttrack.models.location_log import LocationLog
from shifttrack.models.time_entry import GpsStatus, TimeEntry
from shifttrack.models.user import User
from shifttrack.services import notification_service, push_service
from shifttrack.services.compliance_service import ComplianceResult, check_compliance
from shifttrack.services.notification_service import NotificationType, build_notification

logger = logging.getLogger(__name__)

ComplianceChecker = Callable[..., ComplianceResult]

_postgis_cache = {}

_start_locks_guard = threading.Lock()
_start_locks = defaultdict(threading.Lock)


@dataclass(frozen=True)
class StoppedEntry:
    entry: TimeEntry
    compliance: ComplianceResult


def compute_duration_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between start and end; an exact half minute rounds down."""
    seconds = Decimal(str((to_utc_aware(end) - to_utc_aware(start)).total_seconds()))
    return int((seconds / Decimal(60)).quantize(Decimal(1), rounding=ROUND_HALF_DOWN))


def _get_open_entry(db: Session, user_id: str) -> Optional[TimeEntry]:
    return (
        db.query(TimeEntry)
        .filter(
            TimeEntry.user_id == str(user_id),
            TimeEntry.end_time.is_(None),
        )
        .first()
    )


def _get_owned_entry(db: Session, user_id: str, time_entry_id: str, *, for_update: bool = False) -> TimeEntry:
    q = db.query(TimeEntry).filter(
        TimeEntry.id == str(time_entry_id),
        TimeEntry.user_id == str(user_id),
    )
    if for_update:
        q = q.with_for_update()
    entry = q.first()
    if entry is None:
        raise NotFoundError("Time entry not found")
    return entry


def close_entry(
    db: Session,
    entry: TimeEntry,
    end_time: datetime,
    **extra_fields,
) -> bool:
    """
    Close an open entry with a conditional update.

    Returns False when another writer closed it first; the entry is then
    refreshed from the database and left untouched.
    """
    end_time = to_utc_aware(end_time)
    values = {
        TimeEntry.end_time: end_time,
        TimeEntry.duration_minutes: compute_duration_minutes(entry.start_time, end_time),
    }
    for key, value in extra_fields.items():
        values[getattr(TimeEntry, key)] = value

    updated = (
        db.query(TimeEntry)
        .filter(TimeEntry.id == entry.id, TimeEntry.end_time.is_(None))
        .update(values, synchronize_session=False)
    )
    db.flush()
    db.refresh(entry)
    return bool(updated)


@contextmanager
def _user_start_lock(db: Session, user_id: str):
    """
    Serialize start_timer per user.

    PostgreSQL gets a transaction-scoped advisory lock, released on commit or
    rollback. Other backends fall back to a per-process lock.
    """
    if db.get_bind().dialect.name == "postgresql":
        db.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"time_entry_start:{user_id}"},
        )
        yield
        return

    with _start_locks_guard:
        lock = _start_locks[str(user_id)]
    with lock:
        yield


def start_timer(
    user_id: str,
    task_id: Optional[str] = None,
    *,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        with _user_start_lock(db, user_id):
            if _get_open_entry(db, user_id) is not None:
                raise ConflictError("You already have an active timer running")

            entry = TimeEntry(
                id=str(uuid4()),
                user_id=str(user_id),
                task_id=str(task_id) if task_id else None,
                start_time=to_utc_aware(now or utcnow()),
                end_time=None,
            )
            db.add(entry)

            try:
                db.flush()
            except IntegrityError as exc:
                # Lost the race against a concurrent start for the same user.
                raise ConflictError("You already have an active timer running") from exc

            db.refresh(entry)

            if owns_db:
                db.commit()

        logger.info("Timer started", extra={"user_id": user_id, "time_entry_id": entry.id})
        return entry
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def _run_compliance(user_id: str, entry: TimeEntry, compliance: ComplianceChecker, now: datetime) -> ComplianceResult:
    try:
        return compliance(user_id, int(entry.duration_minutes or 0), now=now)
    except Exception:
        logger.exception(
            "Compliance check failed; stop is kept",
            extra={"user_id": user_id, "time_entry_id": entry.id},
        )
        return ComplianceResult(mismatch=False, actual_minutes=entry.duration_minutes)


def stop_timer(
    user_id: str,
    time_entry_id: str,
    *,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
    compliance: ComplianceChecker = check_compliance,
) -> StoppedEntry:
    """
    Close the caller's entry, then compare it against the assigned shift.

    The close is committed (or flushed, when the caller owns db) before the
    compliance check runs; a failing check never undoes the stop.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = to_utc_aware(now or utcnow())

    try:
        entry = _get_owned_entry(db, user_id, time_entry_id, for_update=True)
        if entry.end_time is not None:
            raise InvalidStateError("Timer already stopped")

        if not close_entry(db, entry, now):
            raise InvalidStateError("Timer already stopped")

        if owns_db:
            db.commit()
    except Exception:
        if owns_db:
            db.rollback()
            db.close()
        raise

    try:
        logger.info(
            "Timer stopped",
            extra={
                "user_id": user_id,
                "time_entry_id": entry.id,
                "duration_minutes": entry.duration_minutes,
            },
        )
        result = _run_compliance(user_id, entry, compliance, now)
        return StoppedEntry(entry=entry, compliance=result)
    finally:
        if owns_db:
            db.close()


def get_active_timer(user_id: str, *, db: Optional[Session] = None) -> Optional[TimeEntry]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        return (
            db.query(TimeEntry)
            .options(selectinload(TimeEntry.location_logs))
            .filter(
                TimeEntry.user_id == str(user_id),
                TimeEntry.end_time.is_(None),
            )
            .first()
        )
    finally:
        if owns_db:
            db.close()


def get_time_entries(
    user_id: str,
    *,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    task_id: Optional[str] = None,
    db: Optional[Session] = None,
) -> List[TimeEntry]:
    """Entries of one user, newest first; the date range is [start_date, end_date)."""
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        q = (
            db.query(TimeEntry)
            .options(selectinload(TimeEntry.location_logs))
            .filter(TimeEntry.user_id == str(user_id))
        )

        if start_date is not None:
            q = q.filter(TimeEntry.start_time >= to_utc_aware(start_date))
        if end_date is not None:
            q = q.filter(TimeEntry.start_time < to_utc_aware(end_date))
        if task_id is not None:
            q = q.filter(TimeEntry.task_id == str(task_id))

        return q.order_by(TimeEntry.start_time.desc()).all()
    finally:
        if owns_db:
            db.close()


def _postgis_column_available(db: Session) -> bool:
    bind = db.get_bind()
    if bind.dialect.name != "postgresql":
        return False

    key = str(bind.url)
    if key not in _postgis_cache:
        try:
            found = db.execute(
                text(
                    """
                    SELECT 1
                    FROM information_schema.columns
                    WHERE table_name = 'location_logs'
                      AND column_name = 'location'
                    """
                )
            ).scalar()
            _postgis_cache[key] = bool(found)
        except Exception:
            logger.warning("Could not detect PostGIS location column; storing plain coordinates")
            _postgis_cache[key] = False
    return _postgis_cache[key]


def record_location(
    user_id: str,
    time_entry_id: str,
    latitude: float,
    longitude: float,
    accuracy: Optional[float] = None,
    is_auto_recorded: bool = True,
    *,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
) -> LocationLog:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        entry = _get_owned_entry(db, user_id, time_entry_id, for_update=True)
        if entry.end_time is not None:
            raise InvalidStateError("Cannot record location for stopped timer")

        log = LocationLog(
            id=str(uuid4()),
            time_entry_id=entry.id,
            user_id=str(user_id),
            latitude=float(latitude),
            longitude=float(longitude),
            accuracy=float(accuracy) if accuracy is not None else None,
            recorded_at=to_utc_aware(now or utcnow()),
            is_auto_recorded=bool(is_auto_recorded),
        )
        db.add(log)
        db.flush()

        if _postgis_column_available(db):
            db.execute(
                text(
                    "UPDATE location_logs "
                    "SET location = ST_SetSRID(ST_MakePoint(:lon, :lat), 4326)::geography "
                    "WHERE id = :id"
                ),
                {"lon": float(longitude), "lat": float(latitude), "id": log.id},
            )

        db.refresh(log)

        if owns_db:
            db.commit()

        return log
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def get_location_history(
    user_id: str,
    time_entry_id: str,
    *,
    db: Optional[Session] = None,
) -> List[LocationLog]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        entry = _get_owned_entry(db, user_id, time_entry_id)
        return (
            db.query(LocationLog)
            .filter(LocationLog.time_entry_id == entry.id)
            .order_by(LocationLog.recorded_at.asc())
            .all()
        )
    finally:
        if owns_db:
            db.close()


def report_gps_status(
    user_id: str,
    time_entry_id: str,
    status: str,
    error_message: Optional[str] = None,
    *,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    try:
        gps_status = GpsStatus(str(status))
    except ValueError as exc:
        raise InvalidStateError(f"Unknown GPS status: {status}") from exc

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        entry = _get_owned_entry(db, user_id, time_entry_id)
        if entry.end_time is not None:
            raise InvalidStateError("Cannot report GPS status for stopped timer")

        entry.gps_status = gps_status.value
        if gps_status == GpsStatus.ACTIVE:
            entry.last_gps_error = None
        elif error_message:
            entry.last_gps_error = str(error_message)[:255]
        entry.gps_status_updated_at = to_utc_aware(now or utcnow())

        db.flush()
        db.refresh(entry)

        if owns_db:
            db.commit()

        return entry
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def last_location_times(db: Session, entry_ids: List[str]) -> dict:
    if not entry_ids:
        return {}
    rows = (
        db.query(LocationLog.time_entry_id, func.max(LocationLog.recorded_at))
        .filter(LocationLog.time_entry_id.in_(entry_ids))
        .group_by(LocationLog.time_entry_id)
        .all()
    )
    return {entry_id: to_utc_aware(last) for entry_id, last in rows}


def list_open_entries(db: Session, departments: Optional[List[str]] = None) -> List[TimeEntry]:
    q = db.query(TimeEntry).filter(TimeEntry.end_time.is_(None))
    if departments is not None:
        q = q.join(User, User.id == TimeEntry.user_id).filter(User.department.in_(list(departments)))
    return q.order_by(TimeEntry.start_time.asc()).all()


def _silence_started_at(entry: TimeEntry, last_seen: dict) -> datetime:
    return last_seen.get(entry.id) or to_utc_aware(entry.start_time)


def find_silent_entries(db: Session, threshold_minutes: int, now: datetime) -> List[TimeEntry]:
    """Open entries whose last location (or start, if none) is older than the threshold."""
    now = to_utc_aware(now)
    entries = list_open_entries(db)
    last_seen = last_location_times(db, [e.id for e in entries])
    return [
        e
        for e in entries
        if (now - _silence_started_at(e, last_seen)).total_seconds() > int(threshold_minutes) * 60
    ]


def _notify_auto_stop(db: Session, entry: TimeEntry, threshold_minutes: int, notify, push) -> None:
    employee = db.query(User).filter(User.id == entry.user_id).first()
    employee_name = employee.full_name if employee is not None else entry.user_id

    data = {
        "timeEntryId": entry.id,
        "employeeId": entry.user_id,
        "employeeName": employee_name,
        "durationMinutes": entry.duration_minutes,
        "thresholdMinutes": int(threshold_minutes),
    }
    employee_message = (
        f"Your shift was stopped automatically because no location was received "
        f"for more than {threshold_minutes} minutes."
    )
    admin_message = (
        f"The shift of {employee_name} was stopped automatically: no location "
        f"for more than {threshold_minutes} minutes ({entry.duration_minutes} min worked)."
    )

    batch = [
        build_notification(entry.user_id, NotificationType.GPS_AUTO_STOP, "Shift stopped automatically", employee_message, data)
    ]
    for admin in notification_service.active_users_with_roles(db, ["ADMIN"]):
        if admin.id != entry.user_id:
            batch.append(
                build_notification(admin.id, NotificationType.GPS_AUTO_STOP, "Shift auto-stopped (no GPS)", admin_message, data)
            )

    try:
        notify(batch)
    except Exception:
        logger.exception("Failed to store auto-stop notifications", extra={"time_entry_id": entry.id})

    try:
        push(entry.user_id, "Shift stopped automatically", employee_message, {"action": "GPS_AUTO_STOP", "timeEntryId": entry.id})
    except Exception:
        logger.warning(
            "Auto-stop push failed",
            extra={"time_entry_id": entry.id, "user_id": entry.user_id},
            exc_info=True,
        )


def auto_stop_silent_entries(
    threshold_minutes: int = 30,
    *,
    now: Optional[datetime] = None,
    notify=None,
    push=None,
) -> int:
    """
    Force-close open entries that stopped reporting location.

    Each entry is closed in its own transaction; failures are logged and the
    sweep moves on. An entry closed concurrently by its owner is skipped.
    Returns the number of entries this run closed.
    """
    if notify is None:
        notify = notification_service.create_many
    if push is None:
        push = push_service.send_to_user

    now = to_utc_aware(now or utcnow())

    db = SessionLocal()
    try:
        candidates = [(e.id, e.user_id) for e in find_silent_entries(db, threshold_minutes, now)]
    finally:
        db.close()

    stopped = 0
    for entry_id, user_id in candidates:
        db = SessionLocal()
        try:
            entry = db.query(TimeEntry).filter(TimeEntry.id == entry_id).with_for_update().first()
            if entry is None or entry.end_time is not None:
                logger.info("Entry already closed before auto-stop", extra={"time_entry_id": entry_id})
                continue

            closed = close_entry(
                db,
                entry,
                now,
                auto_stopped=True,
                gps_status=GpsStatus.UNAVAILABLE.value,
                gps_status_updated_at=now,
                manual_adjustment_reason=(
                    f"Auto-stopped: no GPS location for more than {int(threshold_minutes)} minutes"
                ),
            )
            if not closed:
                db.rollback()
                logger.info("Entry already closed before auto-stop", extra={"time_entry_id": entry_id})
                continue

            db.commit()
            stopped += 1
            logger.warning(
                "Shift auto-stopped for missing GPS",
                extra={
                    "time_entry_id": entry_id,
                    "user_id": user_id,
                    "duration_minutes": entry.duration_minutes,
                },
            )

            _notify_auto_stop(db, entry, threshold_minutes, notify, push)
        except Exception:
            db.rollback()
            logger.exception("Auto-stop failed", extra={"time_entry_id": entry_id, "user_id": user_id})
        finally:
            db.close()

    return stopped

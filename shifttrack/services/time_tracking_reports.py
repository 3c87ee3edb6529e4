"""Cross-user read models: admin dashboards, entry routes and the daily GPS report."""
from collections import OrderedDict
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload, selectinload

from shifttrack.core.clock import business_today, local_day_bounds_utc, to_business_local, to_utc_aware, utcnow
from shifttrack.core.errors import NotFoundError
from shifttrack.core.settings import env_float, gps_tracked_departments
from shifttrack.database import SessionLocal
from shifttrack.models.location_log import LocationLog
from shifttrack.models.time_entry import GpsStatus, TimeEntry
from shifttrack.models.user import User
from shifttrack.services.geo import centroid, cluster_sequential, path_length_m
from shifttrack.services.time_tracking_service import last_location_times, list_open_entries

GPS_PROBLEM_STATUSES = {GpsStatus.DENIED.value, GpsStatus.ERROR.value, GpsStatus.UNAVAILABLE.value}


def _hhmm(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return to_business_local(dt).strftime("%H:%M")


def _iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return to_utc_aware(dt).isoformat()


def has_gps_problem(entry: TimeEntry, location_count: int) -> bool:
    return entry.gps_status in GPS_PROBLEM_STATUSES or location_count == 0


def get_admin_active_timers(*, db: Optional[Session] = None, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = to_utc_aware(now or utcnow())

    try:
        entries = list_open_entries(db)
        last_seen = last_location_times(db, [e.id for e in entries])

        rows = []
        for e in entries:
            user = e.user
            rows.append(
                {
                    "timeEntryId": e.id,
                    "userId": e.user_id,
                    "userName": user.full_name if user is not None else None,
                    "departmentName": user.department if user is not None else None,
                    "taskId": e.task_id,
                    "startTime": _iso(e.start_time),
                    "elapsedMinutes": int((now - to_utc_aware(e.start_time)).total_seconds() // 60),
                    "lastLocationAt": _iso(last_seen.get(e.id)),
                    "gpsStatus": e.gps_status,
                    "lastGpsError": e.last_gps_error,
                }
            )
        return rows
    finally:
        if owns_db:
            db.close()


def get_admin_department_users(
    *,
    db: Optional[Session] = None,
    departments: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """Active users of the GPS-tracked departments, with their open entry if any."""
    if departments is None:
        departments = gps_tracked_departments()

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        users = (
            db.query(User)
            .filter(User.is_active.is_(True), User.department.in_(list(departments)))
            .order_by(User.department.asc(), User.full_name.asc())
            .all()
        )
        open_by_user = {e.user_id: e.id for e in list_open_entries(db, departments)}

        return [
            {
                "userId": u.id,
                "userName": u.full_name,
                "email": u.email,
                "role": u.role,
                "departmentName": u.department,
                "activeTimeEntryId": open_by_user.get(u.id),
            }
            for u in users
        ]
    finally:
        if owns_db:
            db.close()


def get_admin_all_entries(
    *,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user_id: Optional[str] = None,
    db: Optional[Session] = None,
) -> List[TimeEntry]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        q = db.query(TimeEntry).options(joinedload(TimeEntry.user), selectinload(TimeEntry.location_logs))

        if start_date is not None:
            q = q.filter(TimeEntry.start_time >= to_utc_aware(start_date))
        if end_date is not None:
            q = q.filter(TimeEntry.start_time < to_utc_aware(end_date))
        if user_id is not None:
            q = q.filter(TimeEntry.user_id == str(user_id))

        return q.order_by(TimeEntry.start_time.desc()).all()
    finally:
        if owns_db:
            db.close()


def _entries_started_on(db: Session, day: date) -> List[TimeEntry]:
    start, end = local_day_bounds_utc(day)
    return (
        db.query(TimeEntry)
        .options(joinedload(TimeEntry.user), selectinload(TimeEntry.location_logs))
        .filter(TimeEntry.start_time >= start, TimeEntry.start_time < end)
        .order_by(TimeEntry.start_time.asc())
        .all()
    )


def get_admin_stats(*, db: Optional[Session] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = to_utc_aware(now or utcnow())

    try:
        today = business_today(now)
        entries = _entries_started_on(db, today)

        return {
            "date": today.isoformat(),
            "activeTimers": db.query(TimeEntry).filter(TimeEntry.end_time.is_(None)).count(),
            "entriesToday": len(entries),
            "totalMinutesToday": sum(int(e.duration_minutes or 0) for e in entries),
            "gpsProblemsToday": sum(1 for e in entries if has_gps_problem(e, len(e.location_logs))),
            "autoStoppedToday": sum(1 for e in entries if e.auto_stopped),
        }
    finally:
        if owns_db:
            db.close()


def _get_entry_or_404(db: Session, time_entry_id: str) -> TimeEntry:
    entry = db.query(TimeEntry).filter(TimeEntry.id == str(time_entry_id)).first()
    if entry is None:
        raise NotFoundError("Time entry not found")
    return entry


def get_admin_location_logs(time_entry_id: str, *, db: Optional[Session] = None) -> List[LocationLog]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        entry = _get_entry_or_404(db, time_entry_id)
        return (
            db.query(LocationLog)
            .filter(LocationLog.time_entry_id == entry.id)
            .order_by(LocationLog.recorded_at.asc())
            .all()
        )
    finally:
        if owns_db:
            db.close()


def get_admin_entry_route(
    time_entry_id: str,
    *,
    db: Optional[Session] = None,
    radius_m: Optional[float] = None,
) -> Dict[str, Any]:
    """Chronological trace of one entry with its travelled distance and stops."""
    if radius_m is None:
        radius_m = env_float("GEOCODING_CLUSTER_RADIUS_M", 50.0)

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        entry = _get_entry_or_404(db, time_entry_id)
        logs = (
            db.query(LocationLog)
            .filter(LocationLog.time_entry_id == entry.id)
            .order_by(LocationLog.recorded_at.asc())
            .all()
        )

        stops = []
        for cluster in cluster_sequential(logs, radius_m):
            point = centroid(cluster)
            addresses = [log.address for log in cluster if log.address]
            stops.append(
                {
                    "latitude": point.lat,
                    "longitude": point.lon,
                    "arrivedAt": _iso(cluster[0].recorded_at),
                    "leftAt": _iso(cluster[-1].recorded_at),
                    "pointCount": len(cluster),
                    "address": addresses[0] if addresses else None,
                }
            )

        return {
            "timeEntryId": entry.id,
            "userId": entry.user_id,
            "startTime": _iso(entry.start_time),
            "endTime": _iso(entry.end_time),
            "totalDistanceMeters": round(path_length_m(logs), 1),
            "points": [
                {
                    "latitude": log.latitude,
                    "longitude": log.longitude,
                    "accuracy": log.accuracy,
                    "recordedAt": _iso(log.recorded_at),
                    "address": log.address,
                }
                for log in logs
            ],
            "stops": stops,
        }
    finally:
        if owns_db:
            db.close()


def _carries_gps(entry: TimeEntry) -> bool:
    return bool(entry.location_logs) or entry.gps_status is not None or bool(entry.auto_stopped)


def get_daily_gps_report(day: date, *, db: Optional[Session] = None) -> Optional[Dict[str, Any]]:
    """
    Per-employee GPS summary for one local calendar day.

    Returns None when no entry of that day carries any GPS data, so callers
    can skip the digest instead of sending an empty one.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        entries = [e for e in _entries_started_on(db, day) if _carries_gps(e)]
        if not entries:
            return None

        by_user: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        gps_problems = 0
        auto_stopped = 0

        for e in entries:
            user = e.user
            emp = by_user.get(e.user_id)
            if emp is None:
                emp = {
                    "userId": e.user_id,
                    "userName": user.full_name if user is not None else e.user_id,
                    "departmentName": user.department if user is not None else None,
                    "shifts": [],
                    "locationCount": 0,
                    "addresses": [],
                    "gpsStatus": None,
                    "hasGpsProblem": False,
                }
                by_user[e.user_id] = emp

            location_count = len(e.location_logs)
            problem = has_gps_problem(e, location_count)

            emp["shifts"].append(
                {
                    "timeEntryId": e.id,
                    "startTime": _hhmm(e.start_time),
                    "endTime": _hhmm(e.end_time),
                    "durationMinutes": e.duration_minutes,
                    "autoStopped": bool(e.auto_stopped),
                    "locationCount": location_count,
                }
            )
            emp["locationCount"] += location_count
            for log in e.location_logs:
                if log.address and log.address not in emp["addresses"]:
                    emp["addresses"].append(log.address)
            if e.gps_status is not None:
                emp["gpsStatus"] = e.gps_status
            emp["hasGpsProblem"] = emp["hasGpsProblem"] or problem

            if problem:
                gps_problems += 1
            if e.auto_stopped:
                auto_stopped += 1

        employees = sorted(by_user.values(), key=lambda emp: str(emp["userName"]).lower())

        return {
            "date": day.isoformat(),
            "employees": employees,
            "summary": {
                "totalEmployees": len(employees),
                "totalShifts": len(entries),
                "gpsProblems": gps_problems,
                "autoStoppedShifts": auto_stopped,
            },
        }
    finally:
        if owns_db:
            db.close()

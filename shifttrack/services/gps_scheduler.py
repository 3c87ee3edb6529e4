"""
GPS tracking control loop.

Three independent periodic tasks, all pinned to the business timezone:
  - capture trigger: silent push asking each tracked device for a location
  - auto-stop: close open entries that stopped reporting location
  - daily digest: e-mail a GPS summary to admins on working days

Each tick is wrapped so that a failing task never stops its siblings or its
own next tick.
"""
import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from shifttrack.core.clock import business_tz, to_business_local, to_utc_aware, utcnow
from shifttrack.core.settings import env_bool, env_int, gps_silence_threshold_minutes, gps_tracked_departments
from shifttrack.database import SessionLocal
from shifttrack.services import email_service, notification_service, push_service
from shifttrack.services.time_tracking_reports import get_daily_gps_report
from shifttrack.services.time_tracking_service import auto_stop_silent_entries, list_open_entries
from shifttrack.services.work_calendar import is_working_day

logger = logging.getLogger(__name__)

GPS_CAPTURE_ACTION = "GPS_CAPTURE"


def trigger_gps_capture(
    *,
    push: Optional[Callable] = None,
    departments: Optional[List[str]] = None,
) -> dict:
    """
    Silent push to every open entry of a GPS-tracked department; no retries.

    A push that raises counts as failed; one the push boundary declines (no
    gateway configured) counts as skipped.
    """
    if push is None:
        push = push_service.send_to_user
    if departments is None:
        departments = gps_tracked_departments()

    db = SessionLocal()
    try:
        targets = [(e.id, e.user_id) for e in list_open_entries(db, departments)]
    finally:
        db.close()

    result = {"attempted": len(targets), "sent": 0, "failed": 0, "skipped": 0}
    if not targets:
        return result

    logger.info("Sending GPS capture push", extra={"recipients": len(targets)})

    for entry_id, user_id in targets:
        try:
            delivered = push(
                user_id,
                "GPS",
                "Automatic location capture",
                {
                    "action": GPS_CAPTURE_ACTION,
                    "timeEntryId": entry_id,
                    "userId": user_id,
                    "silent": True,
                },
            )
            if delivered:
                result["sent"] += 1
            else:
                result["skipped"] += 1
        except Exception as exc:
            result["failed"] += 1
            logger.warning(
                "GPS capture push failed",
                extra={"time_entry_id": entry_id, "user_id": user_id, "error": str(exc)},
            )

    logger.info("GPS capture push finished", extra=dict(result))
    return result


def auto_stop_no_gps_shifts(
    *,
    now: Optional[datetime] = None,
    threshold_minutes: Optional[int] = None,
    notify: Optional[Callable] = None,
    push: Optional[Callable] = None,
) -> int:
    if threshold_minutes is None:
        threshold_minutes = gps_silence_threshold_minutes()

    stopped = auto_stop_silent_entries(threshold_minutes, now=now, notify=notify, push=push)
    if stopped > 0:
        logger.warning(
            "Stopped shifts without GPS data",
            extra={"stopped": stopped, "threshold_minutes": threshold_minutes},
        )
    return stopped


def should_send_digest(now: Optional[datetime] = None) -> bool:
    """Digests go out on business days only."""
    return is_working_day(to_business_local(now or utcnow()))


def send_daily_gps_digest(
    *,
    now: Optional[datetime] = None,
    send_email: Optional[Callable] = None,
) -> int:
    """E-mail today's GPS report to every active admin. Returns how many were sent."""
    if send_email is None:
        send_email = email_service.send_daily_gps_report

    now = to_utc_aware(now or utcnow())
    today = to_business_local(now).date()

    if not should_send_digest(now):
        logger.info("Not a working day; daily digest skipped", extra={"date": today.isoformat()})
        return 0

    report = get_daily_gps_report(today)
    if report is None:
        logger.info("No GPS activity today; daily digest skipped", extra={"date": today.isoformat()})
        return 0

    db = SessionLocal()
    try:
        admins = [(a.email, a.full_name) for a in notification_service.active_users_with_roles(db, ["ADMIN"])]
    finally:
        db.close()

    if not admins:
        logger.warning("No active admins for daily GPS digest")
        return 0

    report_date = today.strftime("%d.%m.%Y")
    sent = 0
    for email, name in admins:
        try:
            if send_email(email, name, report_date, report):
                sent += 1
        except Exception:
            logger.exception("Daily GPS digest send failed", extra={"recipient": email})

    logger.info("Daily GPS digest sent", extra={"sent": sent, "recipients": len(admins)})
    return sent


def run_task(name: str, fn: Callable, *args, **kwargs):
    """Run one tick of a task; failures are logged and swallowed."""
    try:
        return fn(*args, **kwargs)
    except Exception:
        logger.exception("GPS scheduler task failed", extra={"task": name})
        return None


def seconds_until(hour: int, minute: int, now: Optional[datetime] = None) -> float:
    """Seconds until the next local hour:minute in the business timezone."""
    tz = business_tz()
    now_local = to_business_local(now or utcnow())

    target = tz.localize(datetime(now_local.year, now_local.month, now_local.day, hour, minute))
    if target <= now_local:
        next_day = now_local.date() + timedelta(days=1)
        target = tz.localize(datetime(next_day.year, next_day.month, next_day.day, hour, minute))

    return max((target - now_local).total_seconds(), 0.0)


async def periodic_loop(name: str, interval_seconds: float, fn: Callable) -> None:
    logger.info("GPS scheduler task started", extra={"task": name, "interval_seconds": interval_seconds})
    while True:
        try:
            await asyncio.to_thread(run_task, name, fn)
        except asyncio.CancelledError:
            logger.info("GPS scheduler task cancelled", extra={"task": name})
            raise
        await asyncio.sleep(interval_seconds)


async def daily_digest_loop(hour: int, minute: int) -> None:
    name = "daily_gps_digest"
    logger.info("GPS scheduler task started", extra={"task": name, "hour": hour, "minute": minute})
    while True:
        try:
            await asyncio.sleep(seconds_until(hour, minute))
            await asyncio.to_thread(run_task, name, send_daily_gps_digest)
        except asyncio.CancelledError:
            logger.info("GPS scheduler task cancelled", extra={"task": name})
            raise
        # guard against firing twice inside the same minute
        await asyncio.sleep(61)


def gps_scheduler_enabled() -> bool:
    # Disable by default under pytest to keep tests deterministic.
    if os.getenv("PYTEST_CURRENT_TEST"):
        return False
    return env_bool("GPS_SCHEDULER_ENABLED", True)


def start_gps_scheduler_tasks() -> List[asyncio.Task]:
    if not gps_scheduler_enabled():
        logger.info("GPS scheduler disabled")
        return []

    capture_interval = env_int("GPS_CAPTURE_INTERVAL_SECONDS", 600)
    autostop_interval = env_int("GPS_AUTOSTOP_INTERVAL_SECONDS", 300)
    digest_hour = env_int("GPS_DIGEST_HOUR", 20)
    digest_minute = env_int("GPS_DIGEST_MINUTE", 0)

    return [
        asyncio.create_task(periodic_loop("gps_capture", capture_interval, trigger_gps_capture), name="gps_capture"),
        asyncio.create_task(periodic_loop("gps_auto_stop", autostop_interval, auto_stop_no_gps_shifts), name="gps_auto_stop"),
        asyncio.create_task(daily_digest_loop(digest_hour, digest_minute), name="daily_gps_digest"),
    ]

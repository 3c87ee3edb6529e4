from datetime import datetime, timedelta, timezone

import pytest

from shifttrack.core.errors import ConflictError, InvalidStateError, NotFoundError
from shifttrack.services import time_tracking_service
from shifttrack.services.compliance_service import ComplianceResult
from shifttrack.services.time_tracking_service import (
    compute_duration_minutes,
    get_active_timer,
    get_location_history,
    get_time_entries,
    record_location,
    report_gps_status,
    start_timer,
    stop_timer,
)

T0 = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


def _no_compliance(user_id, actual_minutes, **_kwargs):
    return ComplianceResult(mismatch=False, actual_minutes=actual_minutes)


def test_start_timer_opens_entry(user_factory):
    user = user_factory()

    entry = start_timer(user.id, "task-1", now=T0)

    assert entry.user_id == user.id
    assert entry.task_id == "task-1"
    assert entry.end_time is None
    assert entry.duration_minutes is None
    assert entry.auto_stopped is False

    active = get_active_timer(user.id)
    assert active is not None
    assert active.id == entry.id


def test_second_start_is_a_conflict(user_factory):
    user = user_factory()
    start_timer(user.id, now=T0)

    with pytest.raises(ConflictError) as excinfo:
        start_timer(user.id, now=T0 + timedelta(minutes=1))

    assert "already have an active timer" in str(excinfo.value)


def test_stop_rounds_half_minute_down():
    assert compute_duration_minutes(T0, T0 + timedelta(minutes=487, seconds=30)) == 487
    assert compute_duration_minutes(T0, T0 + timedelta(minutes=487, seconds=31)) == 488
    assert compute_duration_minutes(T0, T0 + timedelta(seconds=29)) == 0


def test_stop_timer_sets_end_and_duration(user_factory):
    user = user_factory()
    entry = start_timer(user.id, now=T0)

    stopped = stop_timer(
        user.id,
        entry.id,
        now=datetime(2024, 6, 1, 16, 7, 30, tzinfo=timezone.utc),
        compliance=_no_compliance,
    )

    assert stopped.entry.duration_minutes == 487
    assert stopped.entry.end_time is not None
    assert stopped.compliance.mismatch is False
    assert get_active_timer(user.id) is None


def test_stop_twice_is_invalid_state(user_factory):
    user = user_factory()
    entry = start_timer(user.id, now=T0)
    stop_timer(user.id, entry.id, now=T0 + timedelta(hours=1), compliance=_no_compliance)

    with pytest.raises(InvalidStateError) as excinfo:
        stop_timer(user.id, entry.id, now=T0 + timedelta(hours=2), compliance=_no_compliance)

    assert "already stopped" in str(excinfo.value)

    entries = get_time_entries(user.id)
    assert len(entries) == 1
    assert entries[0].duration_minutes == 60


def test_stop_unknown_or_foreign_entry_is_not_found(user_factory):
    owner = user_factory()
    other = user_factory()
    entry = start_timer(owner.id, now=T0)

    with pytest.raises(NotFoundError):
        stop_timer(other.id, entry.id, compliance=_no_compliance)

    with pytest.raises(NotFoundError) as excinfo:
        stop_timer(owner.id, "does-not-exist", compliance=_no_compliance)
    assert "not found" in str(excinfo.value)

    assert get_active_timer(owner.id).id == entry.id


def test_stop_survives_failing_compliance_check(user_factory):
    user = user_factory()
    entry = start_timer(user.id, now=T0)

    def _broken(*_args, **_kwargs):
        raise RuntimeError("schedule store down")

    stopped = stop_timer(user.id, entry.id, now=T0 + timedelta(hours=8), compliance=_broken)

    assert stopped.entry.duration_minutes == 480
    assert stopped.compliance.mismatch is False
    assert get_active_timer(user.id) is None


def test_start_again_after_stop(user_factory):
    user = user_factory()
    first = start_timer(user.id, now=T0)
    stop_timer(user.id, first.id, now=T0 + timedelta(hours=1), compliance=_no_compliance)

    second = start_timer(user.id, now=T0 + timedelta(hours=2))

    assert second.id != first.id
    assert second.end_time is None


def test_record_location_and_history_is_chronological(user_factory):
    user = user_factory()
    entry = start_timer(user.id, now=T0)

    record_location(user.id, entry.id, 44.43, 26.10, 12.5, now=T0 + timedelta(minutes=20))
    record_location(user.id, entry.id, 44.44, 26.11, None, False, now=T0 + timedelta(minutes=10))

    history = get_location_history(user.id, entry.id)

    assert [h.latitude for h in history] == [44.44, 44.43]
    assert history[0].is_auto_recorded is False
    assert history[0].accuracy is None
    assert history[1].accuracy == 12.5
    assert all(h.address is None for h in history)


def test_record_location_on_stopped_entry_is_rejected(user_factory):
    user = user_factory()
    entry = start_timer(user.id, now=T0)
    stop_timer(user.id, entry.id, now=T0 + timedelta(hours=1), compliance=_no_compliance)

    with pytest.raises(InvalidStateError) as excinfo:
        record_location(user.id, entry.id, 44.43, 26.10)

    assert "stopped timer" in str(excinfo.value)
    assert get_location_history(user.id, entry.id) == []


def test_foreign_entry_locations_are_not_found(user_factory):
    owner = user_factory()
    other = user_factory()
    entry = start_timer(owner.id, now=T0)

    with pytest.raises(NotFoundError):
        record_location(other.id, entry.id, 44.43, 26.10)

    with pytest.raises(NotFoundError):
        get_location_history(other.id, entry.id)


def test_get_time_entries_filters_and_orders_newest_first(user_factory, time_entry_factory):
    user = user_factory()
    other = user_factory()
    day = datetime(2025, 3, 1, tzinfo=timezone.utc)

    time_entry_factory(user.id, day, day + timedelta(hours=1), duration_minutes=60, task_id="a")
    time_entry_factory(user.id, day + timedelta(days=1), day + timedelta(days=1, hours=1), duration_minutes=60, task_id="b")
    time_entry_factory(user.id, day + timedelta(days=2), day + timedelta(days=2, hours=1), duration_minutes=60, task_id="a")
    time_entry_factory(other.id, day + timedelta(days=1), day + timedelta(days=1, hours=1), duration_minutes=60)

    everything = get_time_entries(user.id)
    assert [e.task_id for e in everything] == ["a", "b", "a"]
    assert everything[0].start_time > everything[-1].start_time

    ranged = get_time_entries(user.id, start_date=day + timedelta(days=1), end_date=day + timedelta(days=2))
    assert [e.task_id for e in ranged] == ["b"]

    by_task = get_time_entries(user.id, task_id="a")
    assert len(by_task) == 2


def test_report_gps_status_records_and_clears_error(user_factory):
    user = user_factory()
    entry = start_timer(user.id, now=T0)

    denied = report_gps_status(user.id, entry.id, "denied", "User denied location permission")
    assert denied.gps_status == "denied"
    assert denied.last_gps_error == "User denied location permission"
    assert denied.gps_status_updated_at is not None

    active = report_gps_status(user.id, entry.id, "active")
    assert active.gps_status == "active"
    assert active.last_gps_error is None


def test_report_gps_status_truncates_long_errors(user_factory):
    user = user_factory()
    entry = start_timer(user.id, now=T0)

    updated = report_gps_status(user.id, entry.id, "error", "x" * 400)

    assert len(updated.last_gps_error) == 255


def test_report_gps_status_rejects_unknown_status_and_stopped_entry(user_factory):
    user = user_factory()
    entry = start_timer(user.id, now=T0)

    with pytest.raises(InvalidStateError):
        report_gps_status(user.id, entry.id, "sleeping")

    stop_timer(user.id, entry.id, now=T0 + timedelta(hours=1), compliance=_no_compliance)

    with pytest.raises(InvalidStateError) as excinfo:
        report_gps_status(user.id, entry.id, "error", "late report")
    assert "stopped timer" in str(excinfo.value)


def test_caller_owned_session_is_not_committed(user_factory):
    from shifttrack.database import SessionLocal

    user = user_factory()
    db = SessionLocal()
    try:
        entry = time_tracking_service.start_timer(user.id, db=db, now=T0)
        assert entry.end_time is None
        db.rollback()
    finally:
        db.close()

    assert get_active_timer(user.id) is None

from datetime import datetime, timedelta, timezone

import pytest

from shifttrack.database import SessionLocal
from shifttrack.models.notification import Notification
from shifttrack.models.time_entry import TimeEntry
from shifttrack.services import gps_scheduler
from shifttrack.services.gps_scheduler import (
    auto_stop_no_gps_shifts,
    run_task,
    seconds_until,
    send_daily_gps_digest,
    should_send_digest,
    trigger_gps_capture,
)

T0 = datetime(2025, 6, 10, 5, 0, tzinfo=timezone.utc)


class RecordingPush:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []

    def __call__(self, user_id, title, body, data=None):
        self.calls.append((user_id, title, body, data))
        if user_id in self.fail_for:
            raise RuntimeError("device token expired")
        return True


def _load_entry(entry_id: str) -> TimeEntry:
    db = SessionLocal()
    try:
        return db.query(TimeEntry).filter(TimeEntry.id == entry_id).one()
    finally:
        db.close()


def test_auto_stop_closes_entry_silent_past_threshold(user_factory, time_entry_factory, location_log_factory):
    user = user_factory()
    admin = user_factory(role="ADMIN")
    entry = time_entry_factory(user.id, T0)
    location_log_factory(entry, 44.43, 26.10, T0 + timedelta(minutes=5))
    push = RecordingPush()
    batches = []

    stopped = auto_stop_no_gps_shifts(
        now=T0 + timedelta(minutes=5 + 31),
        threshold_minutes=30,
        notify=lambda n: batches.append(n) or len(n),
        push=push,
    )

    assert stopped == 1
    closed = _load_entry(entry.id)
    assert closed.end_time is not None
    assert closed.duration_minutes == 36
    assert closed.auto_stopped is True
    assert closed.gps_status == "unavailable"
    assert "30 minutes" in closed.manual_adjustment_reason

    assert len(batches) == 1
    assert sorted(n["userId"] for n in batches[0]) == sorted([user.id, admin.id])
    assert all(n["kind"] == "GPS_AUTO_STOP" for n in batches[0])
    assert [c[0] for c in push.calls] == [user.id]


def test_auto_stop_keeps_entry_inside_threshold(user_factory, time_entry_factory, location_log_factory):
    user = user_factory()
    entry = time_entry_factory(user.id, T0)
    location_log_factory(entry, 44.43, 26.10, T0 + timedelta(minutes=5))

    stopped = auto_stop_no_gps_shifts(
        now=T0 + timedelta(minutes=5 + 29),
        threshold_minutes=30,
        notify=lambda n: len(n),
        push=RecordingPush(),
    )

    assert stopped == 0
    assert _load_entry(entry.id).end_time is None


def test_auto_stop_uses_start_time_when_no_location_was_ever_recorded(user_factory, time_entry_factory):
    user = user_factory()
    entry = time_entry_factory(user.id, T0)

    stopped = auto_stop_no_gps_shifts(
        now=T0 + timedelta(minutes=31),
        threshold_minutes=30,
        notify=lambda n: len(n),
        push=RecordingPush(),
    )

    assert stopped == 1
    assert _load_entry(entry.id).auto_stopped is True


def test_auto_stop_stores_inbox_rows_even_if_push_fails(user_factory, time_entry_factory):
    user = user_factory()
    entry = time_entry_factory(user.id, T0)

    stopped = auto_stop_no_gps_shifts(
        now=T0 + timedelta(hours=2),
        threshold_minutes=30,
        push=RecordingPush(fail_for={user.id}),
    )

    assert stopped == 1
    db = SessionLocal()
    try:
        rows = db.query(Notification).filter(Notification.user_id == user.id).all()
        assert len(rows) == 1
        assert rows[0].type == "GPS_AUTO_STOP"
        assert rows[0].data["timeEntryId"] == entry.id
    finally:
        db.close()


def test_auto_stop_leaves_closed_entries_alone(user_factory, time_entry_factory):
    user = user_factory()
    time_entry_factory(user.id, T0, T0 + timedelta(minutes=10), duration_minutes=10)

    stopped = auto_stop_no_gps_shifts(
        now=T0 + timedelta(hours=5),
        threshold_minutes=30,
        notify=lambda n: len(n),
        push=RecordingPush(),
    )

    assert stopped == 0


def test_capture_fans_out_and_survives_failed_push(user_factory, time_entry_factory):
    a = user_factory(department="Control")
    b = user_factory(department="Intretinere Parcari")
    c = user_factory(department="Control")
    office = user_factory(department="Contabilitate")
    entry_a = time_entry_factory(a.id, T0)
    time_entry_factory(b.id, T0)
    time_entry_factory(c.id, T0)
    time_entry_factory(office.id, T0)
    push = RecordingPush(fail_for={b.id})

    result = trigger_gps_capture(push=push, departments=["Control", "Intretinere Parcari"])

    assert result == {"attempted": 3, "sent": 2, "failed": 1, "skipped": 0}
    assert sorted(call[0] for call in push.calls) == sorted([a.id, b.id, c.id])

    payload = next(call[3] for call in push.calls if call[0] == a.id)
    assert payload["action"] == "GPS_CAPTURE"
    assert payload["timeEntryId"] == entry_a.id
    assert payload["silent"] is True


def test_capture_with_no_open_entries_sends_nothing(user_factory):
    user_factory(department="Control")
    push = RecordingPush()

    result = trigger_gps_capture(push=push, departments=["Control"])

    assert result == {"attempted": 0, "sent": 0, "failed": 0, "skipped": 0}
    assert push.calls == []


def test_capture_without_push_gateway_reports_skipped_not_sent(user_factory, time_entry_factory, monkeypatch):
    monkeypatch.delenv("PUSH_GATEWAY_URL", raising=False)
    worker = user_factory(department="Control")
    time_entry_factory(worker.id, T0)

    result = trigger_gps_capture(departments=["Control"])

    assert result == {"attempted": 1, "sent": 0, "failed": 0, "skipped": 1}


def _entry_with_gps_on(day_start, user_factory, time_entry_factory, location_log_factory):
    worker = user_factory()
    entry = time_entry_factory(worker.id, day_start, day_start + timedelta(hours=8), duration_minutes=480)
    location_log_factory(entry, 44.43, 26.10, day_start + timedelta(minutes=10))
    return entry


@pytest.mark.parametrize(
    "day_start",
    [
        datetime(2025, 6, 14, 5, 0, tzinfo=timezone.utc),  # Saturday
        datetime(2025, 12, 25, 6, 0, tzinfo=timezone.utc),  # Christmas, a Thursday
    ],
)
def test_digest_is_not_sent_on_non_working_days(day_start, user_factory, time_entry_factory, location_log_factory):
    user_factory(role="ADMIN")
    _entry_with_gps_on(day_start, user_factory, time_entry_factory, location_log_factory)
    sent = []

    count = send_daily_gps_digest(
        now=day_start + timedelta(hours=12),
        send_email=lambda *args: sent.append(args) or True,
    )

    assert count == 0
    assert sent == []


def test_should_send_digest_follows_the_work_calendar():
    assert should_send_digest(datetime(2025, 6, 10, 17, 0, tzinfo=timezone.utc)) is True
    assert should_send_digest(datetime(2025, 6, 14, 17, 0, tzinfo=timezone.utc)) is False
    assert should_send_digest(datetime(2025, 12, 25, 17, 0, tzinfo=timezone.utc)) is False


def test_digest_without_gps_activity_sends_no_email(user_factory, time_entry_factory):
    user = user_factory()
    user_factory(role="ADMIN")
    # an entry with neither logs nor GPS status does not count as activity
    time_entry_factory(user.id, T0, T0 + timedelta(hours=8), duration_minutes=480)
    sent = []

    count = send_daily_gps_digest(
        now=T0 + timedelta(hours=12),
        send_email=lambda *args: sent.append(args) or True,
    )

    assert count == 0
    assert sent == []


def test_digest_goes_to_every_active_admin(user_factory, time_entry_factory, location_log_factory):
    user = user_factory(full_name="Maria Ionescu")
    admin1 = user_factory(role="ADMIN", email="a1@example.test")
    admin2 = user_factory(role="ADMIN", email="a2@example.test")
    user_factory(role="ADMIN", email="gone@example.test", is_active=False)
    entry = time_entry_factory(user.id, T0, T0 + timedelta(hours=8), duration_minutes=480)
    location_log_factory(entry, 44.43, 26.10, T0 + timedelta(minutes=10), address="Strada Lipscani 12")
    sent = []

    count = send_daily_gps_digest(
        now=T0 + timedelta(hours=12),
        send_email=lambda email, name, report_date, report: sent.append((email, report_date, report)) or True,
    )

    assert count == 2
    assert sorted(s[0] for s in sent) == sorted([admin1.email, admin2.email])
    assert sent[0][1] == "10.06.2025"
    report = sent[0][2]
    assert report["summary"]["totalEmployees"] == 1
    assert report["employees"][0]["userName"] == "Maria Ionescu"
    assert report["employees"][0]["addresses"] == ["Strada Lipscani 12"]


def test_run_task_swallows_failures():
    def _boom():
        raise RuntimeError("tick failed")

    assert run_task("boom", _boom) is None
    assert run_task("ok", lambda: 42) == 42


def test_seconds_until_later_today_and_tomorrow():
    # 16:00 local (UTC+3 in summer)
    now = datetime(2025, 6, 10, 13, 0, tzinfo=timezone.utc)

    assert seconds_until(20, 0, now) == pytest.approx(4 * 3600)
    assert seconds_until(9, 0, now) == pytest.approx(17 * 3600)


def test_scheduler_disabled_under_pytest():
    assert gps_scheduler.gps_scheduler_enabled() is False
    assert gps_scheduler.start_gps_scheduler_tasks() == []

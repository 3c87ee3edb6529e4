import os
_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret
os.environ["ENV"] = "test"

import subprocess
import tempfile
from datetime import date
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

_default_test_db = Path(tempfile.mkdtemp(prefix="shifttrack-tests-")) / "shifttrack_test.db"
TEST_DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{_default_test_db}")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from shifttrack import database
from shifttrack.database import Base, SessionLocal
from shifttrack.models import LocationLog, ScheduleAssignment, ShiftType, TimeEntry, User, WorkSchedule


def _get_access_token(client, user_id: str, role: str = "EMPLOYEE") -> str:
    resp = client.post("/auth/token", json={"user_id": user_id, "role": role})
    assert resp.status_code == 200, f"token request failed: {resp.status_code} {resp.text}"
    data = resp.json()
    assert isinstance(data, dict), f"token response not a JSON object: {data}"
    assert "access_token" in data, f"token response missing access_token: {data}"
    return data["access_token"]


def _ensure_database_exists(database_url: str) -> None:
    url = make_url(database_url)

    if not url.drivername.startswith("postgresql"):
        return

    db_name = url.database
    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")

    try:
        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name},
            ).scalar()
            if not exists:
                safe_db_name = db_name.replace('"', '""')
                conn.execute(text(f'CREATE DATABASE "{safe_db_name}"'))
    finally:
        admin_engine.dispose()


def _is_postgres() -> bool:
    return database.engine.dialect.name == "postgresql"


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_database() -> None:
    database.configure_database()

    if _is_postgres():
        _ensure_database_exists(TEST_DATABASE_URL)

        env = os.environ.copy()
        env["DATABASE_URL"] = TEST_DATABASE_URL

        subprocess.run(
            ["alembic", "upgrade", "head"],
            check=True,
            cwd=Path(__file__).resolve().parents[2],
            env=env,
        )
    else:
        Base.metadata.create_all(database.engine)


def _empty_all_tables() -> None:
    with database.engine.begin() as conn:
        if _is_postgres():
            names = [t.name for t in Base.metadata.sorted_tables]
            quoted = ", ".join([f'"public"."{name}"' for name in names])
            conn.execute(text(f"TRUNCATE TABLE {quoted} RESTART IDENTITY CASCADE"))
            return

        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function", autouse=True)
def _truncate_tables_between_tests():
    _empty_all_tables()
    yield
    _empty_all_tables()


def _persist(obj):
    db = SessionLocal()
    try:
        db.add(obj)
        db.commit()
        db.refresh(obj)
        return obj
    finally:
        db.close()


@pytest.fixture
def user_factory():
    def _create(
        *,
        role: str = "EMPLOYEE",
        department: str = "Control",
        full_name: str = None,
        email: str = None,
        is_active: bool = True,
    ) -> User:
        user_id = str(uuid4())
        return _persist(
            User(
                id=user_id,
                full_name=full_name or f"User {user_id[:8]}",
                email=email or f"{user_id[:8]}@example.test",
                role=role,
                department=department,
                is_active=is_active,
            )
        )

    return _create


@pytest.fixture
def shift_assignment_factory():
    def _create(
        user_id: str,
        day: date,
        *,
        duration_hours: float = 8,
        schedule_status: str = "APPROVED",
        is_rest_day: bool = False,
    ) -> ScheduleAssignment:
        shift_type = _persist(
            ShiftType(
                id=str(uuid4()),
                name=f"Shift {duration_hours}h",
                shift_pattern="SHIFT_8H",
                start_time="07:00",
                end_time="15:00",
                duration_hours=duration_hours,
            )
        )
        schedule = _persist(
            WorkSchedule(
                id=str(uuid4()),
                name=f"Schedule {day.year}-{day.month:02d}",
                month=day.month,
                year=day.year,
                status=schedule_status,
            )
        )
        return _persist(
            ScheduleAssignment(
                id=str(uuid4()),
                work_schedule_id=schedule.id,
                user_id=str(user_id),
                shift_type_id=None if is_rest_day else shift_type.id,
                shift_date=day,
                is_rest_day=is_rest_day,
            )
        )

    return _create


@pytest.fixture
def time_entry_factory():
    def _create(user_id: str, start_time, end_time=None, **fields) -> TimeEntry:
        return _persist(
            TimeEntry(
                id=str(uuid4()),
                user_id=str(user_id),
                start_time=start_time,
                end_time=end_time,
                **fields,
            )
        )

    return _create


@pytest.fixture
def location_log_factory():
    def _create(entry: TimeEntry, latitude: float, longitude: float, recorded_at, address: str = None) -> LocationLog:
        return _persist(
            LocationLog(
                id=str(uuid4()),
                time_entry_id=entry.id,
                user_id=entry.user_id,
                latitude=latitude,
                longitude=longitude,
                accuracy=5.0,
                recorded_at=recorded_at,
                is_auto_recorded=True,
                address=address,
            )
        )

    return _create

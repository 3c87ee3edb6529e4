from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func, text
from sqlalchemy.orm import relationship
from sqlalchemy.schema import Index

from shifttrack.database import Base


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class GpsStatus(str, Enum):
    ACTIVE = "active"
    DENIED = "denied"
    ERROR = "error"
    UNAVAILABLE = "unavailable"


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(String, primary_key=True, index=True)

    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    task_id = Column(String, nullable=True, index=True)

    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)

    is_manual = Column(Boolean, nullable=False, default=False)
    manual_adjustment_reason = Column(Text, nullable=True)
    auto_stopped = Column(Boolean, nullable=False, default=False)

    approval_status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value)
    approved_by = Column(String, nullable=True)

    gps_status = Column(String(20), nullable=True)
    last_gps_error = Column(String(255), nullable=True)
    gps_status_updated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    user = relationship("User")
    location_logs = relationship(
        "LocationLog",
        back_populates="time_entry",
        order_by="LocationLog.recorded_at",
    )

    __table_args__ = (
        # At most one open entry per user; the store relies on this to close
        # the check-then-insert race in start_timer.
        Index(
            "uq_time_entries_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("end_time IS NULL"),
            sqlite_where=text("end_time IS NULL"),
        ),
        Index("ix_time_entries_user_start", "user_id", "start_time"),
    )

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.schema import Index

from shifttrack.database import Base


class ShiftType(Base):
    __tablename__ = "shift_types"

    id = Column(String, primary_key=True)
    name = Column(String(100), nullable=False)
    shift_pattern = Column(String(20), nullable=False)
    start_time = Column(String(8), nullable=False)
    end_time = Column(String(8), nullable=False)
    duration_hours = Column(Numeric(4, 2, asdecimal=False), nullable=False)
    is_night_shift = Column(Boolean, nullable=False, default=False)


class WorkSchedule(Base):
    __tablename__ = "work_schedules"

    id = Column(String, primary_key=True)
    name = Column(String(255), nullable=False)
    department = Column(String, nullable=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="DRAFT")

    assignments = relationship("ScheduleAssignment", back_populates="schedule")

    __table_args__ = (
        Index("ix_work_schedules_period_status", "year", "month", "status"),
    )


class ScheduleAssignment(Base):
    __tablename__ = "schedule_assignments"

    id = Column(String, primary_key=True)
    work_schedule_id = Column(String, ForeignKey("work_schedules.id"), nullable=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    shift_type_id = Column(String, ForeignKey("shift_types.id"), nullable=True)
    shift_date = Column(Date, nullable=False, index=True)
    is_rest_day = Column(Boolean, nullable=False, default=False)
    leave_type = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    schedule = relationship("WorkSchedule", back_populates="assignments")
    shift_type = relationship("ShiftType")

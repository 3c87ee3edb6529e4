from shifttrack.models.location_log import LocationLog
from shifttrack.models.notification import Notification
from shifttrack.models.schedule import ScheduleAssignment, ShiftType, WorkSchedule
from shifttrack.models.time_entry import ApprovalStatus, GpsStatus, TimeEntry
from shifttrack.models.user import User

__all__ = [
    "ApprovalStatus",
    "GpsStatus",
    "LocationLog",
    "Notification",
    "ScheduleAssignment",
    "ShiftType",
    "TimeEntry",
    "User",
    "WorkSchedule",
]

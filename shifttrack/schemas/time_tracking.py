from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class StartTimerRequest(BaseModel):
    taskId: Optional[str] = None


class RecordLocationRequest(BaseModel):
    timeEntryId: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)
    isAutoRecorded: bool = True


class GpsStatusRequest(BaseModel):
    status: Literal["active", "denied", "error", "unavailable"]
    errorMessage: Optional[str] = None


class LocationLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    time_entry_id: str
    user_id: str
    latitude: float
    longitude: float
    accuracy: Optional[float]
    recorded_at: datetime
    is_auto_recorded: bool
    address: Optional[str]


class TimeEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    task_id: Optional[str]
    start_time: datetime
    end_time: Optional[datetime]
    duration_minutes: Optional[int]
    is_manual: bool
    manual_adjustment_reason: Optional[str]
    auto_stopped: bool
    approval_status: str
    approved_by: Optional[str]
    gps_status: Optional[str]
    last_gps_error: Optional[str]
    gps_status_updated_at: Optional[datetime]


class TimeEntryWithLocationsResponse(TimeEntryResponse):
    location_logs: List[LocationLogResponse] = []


class StopTimerResponse(TimeEntryResponse):
    mismatch: bool
    actual_minutes: Optional[int]
    actual_hours: Optional[float]
    expected_minutes: Optional[int]
    expected_hours: Optional[float]


class GeocodeResponse(BaseModel):
    geocodedCount: int


class GpsCaptureResponse(BaseModel):
    attempted: int
    sent: int
    failed: int
    skipped: int

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from shifttrack.core.errors import TimeTrackingError
from shifttrack.deps.auth import require_auth
from shifttrack.routers.errors import to_http_exception
from shifttrack.schemas.time_tracking import (
    GpsStatusRequest,
    LocationLogResponse,
    RecordLocationRequest,
    StartTimerRequest,
    StopTimerResponse,
    TimeEntryResponse,
    TimeEntryWithLocationsResponse,
)
from shifttrack.services import time_tracking_service

router = APIRouter(
    prefix="/time-tracking",
    tags=["Time Tracking"],
)


@router.post("/start", response_model=TimeEntryResponse)
def start_timer(
    payload: StartTimerRequest,
    user_id: str = Depends(require_auth),
):
    try:
        return time_tracking_service.start_timer(user_id, payload.taskId)
    except TimeTrackingError as exc:
        raise to_http_exception(exc) from exc


@router.post("/location", response_model=LocationLogResponse)
def record_location(
    payload: RecordLocationRequest,
    user_id: str = Depends(require_auth),
):
    try:
        return time_tracking_service.record_location(
            user_id,
            payload.timeEntryId,
            payload.latitude,
            payload.longitude,
            accuracy=payload.accuracy,
            is_auto_recorded=payload.isAutoRecorded,
        )
    except TimeTrackingError as exc:
        raise to_http_exception(exc) from exc


@router.get("/active", response_model=Optional[TimeEntryWithLocationsResponse])
def get_active_timer(user_id: str = Depends(require_auth)):
    return time_tracking_service.get_active_timer(user_id)


@router.get("/entries", response_model=List[TimeEntryResponse])
def get_time_entries(
    user_id: str = Depends(require_auth),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    task_id: Optional[str] = Query(default=None, alias="taskId"),
):
    return time_tracking_service.get_time_entries(
        user_id,
        start_date=start_date,
        end_date=end_date,
        task_id=task_id,
    )


@router.post("/{time_entry_id}/stop", response_model=StopTimerResponse)
def stop_timer(
    time_entry_id: str,
    user_id: str = Depends(require_auth),
):
    try:
        stopped = time_tracking_service.stop_timer(user_id, time_entry_id)
    except TimeTrackingError as exc:
        raise to_http_exception(exc) from exc

    body = TimeEntryResponse.model_validate(stopped.entry).model_dump()
    compliance = stopped.compliance
    return StopTimerResponse(
        **body,
        mismatch=compliance.mismatch,
        actual_minutes=compliance.actual_minutes,
        actual_hours=compliance.actual_hours,
        expected_minutes=compliance.expected_minutes,
        expected_hours=compliance.expected_hours,
    )


@router.get("/{time_entry_id}/locations", response_model=List[LocationLogResponse])
def get_location_history(
    time_entry_id: str,
    user_id: str = Depends(require_auth),
):
    try:
        return time_tracking_service.get_location_history(user_id, time_entry_id)
    except TimeTrackingError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{time_entry_id}/gps-status", response_model=TimeEntryResponse)
def report_gps_status(
    time_entry_id: str,
    payload: GpsStatusRequest,
    user_id: str = Depends(require_auth),
):
    try:
        return time_tracking_service.report_gps_status(
            user_id,
            time_entry_id,
            payload.status,
            payload.errorMessage,
        )
    except TimeTrackingError as exc:
        raise to_http_exception(exc) from exc

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from shifttrack.core.authorization import Role, require_role
from shifttrack.core.errors import TimeTrackingError
from shifttrack.routers.errors import to_http_exception
from shifttrack.schemas.time_tracking import (
    GeocodeResponse,
    GpsCaptureResponse,
    LocationLogResponse,
    TimeEntryResponse,
)
from shifttrack.services import geocoding_service, gps_scheduler, time_tracking_reports

router = APIRouter(
    prefix="/time-tracking/admin",
    tags=["Time Tracking Admin"],
)


@router.get("/active")
def get_admin_active_timers(_role=Depends(require_role(Role.ADMIN))):
    return time_tracking_reports.get_admin_active_timers()


@router.get("/users")
def get_admin_department_users(_role=Depends(require_role(Role.ADMIN))):
    return time_tracking_reports.get_admin_department_users()


@router.get("/entries", response_model=List[TimeEntryResponse])
def get_admin_all_entries(
    _role=Depends(require_role(Role.ADMIN)),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    user_id: Optional[str] = Query(default=None, alias="userId"),
):
    return time_tracking_reports.get_admin_all_entries(
        start_date=start_date,
        end_date=end_date,
        user_id=user_id,
    )


@router.get("/stats")
def get_admin_stats(_role=Depends(require_role(Role.ADMIN))):
    return time_tracking_reports.get_admin_stats()


@router.get("/entries/{time_entry_id}/locations", response_model=List[LocationLogResponse])
def get_admin_location_logs(
    time_entry_id: str,
    _role=Depends(require_role(Role.ADMIN)),
):
    try:
        return time_tracking_reports.get_admin_location_logs(time_entry_id)
    except TimeTrackingError as exc:
        raise to_http_exception(exc) from exc


@router.get("/entries/{time_entry_id}/route")
def get_admin_entry_route(
    time_entry_id: str,
    _role=Depends(require_role(Role.ADMIN)),
):
    try:
        return time_tracking_reports.get_admin_entry_route(time_entry_id)
    except TimeTrackingError as exc:
        raise to_http_exception(exc) from exc


@router.post("/entries/{time_entry_id}/geocode", response_model=GeocodeResponse)
def geocode_entry_locations(
    time_entry_id: str,
    _role=Depends(require_role(Role.ADMIN)),
):
    return geocoding_service.geocode_entry_locations(time_entry_id)


@router.post("/request-locations", response_model=GpsCaptureResponse)
def request_instant_locations(_role=Depends(require_role(Role.ADMIN))):
    return gps_scheduler.trigger_gps_capture()

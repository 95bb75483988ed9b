"""Availability router - schedule days, availability lookups and schedule change requests"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin, require_doctor
from ...database import get_db
from ...models import User
from ...services.realtime_sync import SyncBroadcaster, get_broadcaster
from ...shared.dates import parse_date_param
from .schemas import (
    AvailabilityResponse,
    BulkScheduleUpsert,
    ScheduleChangeRequestCreate,
    ScheduleChangeRequestResponse,
    ScheduleChangeReview,
    ScheduleFields,
    ScheduleResponse,
    ScheduleUpsert,
)
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doctor", tags=["Doctor Schedules"])
availability_router = APIRouter(prefix="/availability", tags=["Availability"])
admin_router = APIRouter(prefix="/admin", tags=["Admin Schedules"])


def get_availability_service(
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster = Depends(get_broadcaster),
) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db, broadcaster)


def _required_date(value: Optional[str], field: str = "date"):
    parsed = parse_date_param(value, field)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"{field} is required")
    return parsed


# ============================================================================
# AVAILABILITY LOOKUP (booking flow)
# ============================================================================


@availability_router.get("/{date}", response_model=AvailabilityResponse)
async def get_availability(
    date: str,
    doctorId: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Effective availability of a doctor on a date"""
    if doctorId is None:
        raise HTTPException(status_code=400, detail="Doctor ID is required")
    return service.resolve_availability(doctorId, _required_date(date))


# ============================================================================
# DOCTOR SCHEDULES
# ============================================================================


@router.get("/schedules")
async def list_schedules(
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
    current_user: User = Depends(require_doctor),
    service: AvailabilityService = Depends(get_availability_service),
):
    schedules = service.list_schedules(
        current_user, parse_date_param(startDate, "startDate"), parse_date_param(endDate, "endDate")
    )
    return {"schedules": [ScheduleResponse.from_schedule(s) for s in schedules]}


@router.post("/schedules")
async def set_schedule(
    data: ScheduleUpsert,
    current_user: User = Depends(require_doctor),
    service: AvailabilityService = Depends(get_availability_service),
):
    schedule, cancelled = service.set_availability(current_user, _required_date(data.date), data)
    return {
        "message": "Doctor schedule updated successfully",
        "schedule": ScheduleResponse.from_schedule(schedule),
        "cancelledAppointments": len(cancelled),
    }


@router.post("/schedules/bulk")
async def bulk_set_schedules(
    data: BulkScheduleUpsert,
    current_user: User = Depends(require_doctor),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.bulk_set_availability(
        current_user, _required_date(data.startDate, "startDate"), _required_date(data.endDate, "endDate"), data
    )


@router.put("/schedules/{schedule_id}")
async def update_schedule(
    schedule_id: int,
    data: ScheduleFields,
    current_user: User = Depends(require_doctor),
    service: AvailabilityService = Depends(get_availability_service),
):
    schedule, cancelled = service.update_schedule(current_user, schedule_id, data)
    return {
        "message": "Schedule updated successfully",
        "schedule": ScheduleResponse.from_schedule(schedule),
        "cancelledAppointments": len(cancelled),
    }


@router.delete("/schedules/{schedule_id}")
async def delete_schedule(
    schedule_id: int,
    current_user: User = Depends(require_doctor),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.delete_schedule(current_user, schedule_id)


# ============================================================================
# SCHEDULE CHANGE REQUESTS
# ============================================================================


@router.post("/schedule-requests")
async def submit_schedule_request(
    data: ScheduleChangeRequestCreate,
    current_user: User = Depends(require_doctor),
    service: AvailabilityService = Depends(get_availability_service),
):
    request = service.submit_change_request(current_user, data)
    return {
        "success": True,
        "message": "Schedule request submitted successfully",
        "requestId": request.id,
    }


@router.get("/schedule-requests", response_model=list[ScheduleChangeRequestResponse])
async def list_my_schedule_requests(
    current_user: User = Depends(require_doctor),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.list_change_requests(current_user)


@admin_router.post("/doctors/{doctor_id}/schedules")
async def admin_set_schedule(
    doctor_id: int,
    data: ScheduleUpsert,
    current_user: User = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
):
    doctor = service.get_doctor(doctor_id)
    schedule, cancelled = service.set_availability(doctor, _required_date(data.date), data)
    logger.info(f"📅 Admin {current_user.id} set schedule for doctor {doctor_id} on {schedule.date}")
    return {
        "message": "Doctor schedule updated successfully",
        "schedule": ScheduleResponse.from_schedule(schedule),
        "cancelledAppointments": len(cancelled),
    }


@admin_router.get("/schedule-requests", response_model=list[ScheduleChangeRequestResponse])
async def list_schedule_requests(
    status: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.list_change_requests(current_user, status)


@admin_router.patch("/schedule-requests/{request_id}/approve", response_model=ScheduleChangeRequestResponse)
async def approve_schedule_request(
    request_id: int,
    data: ScheduleChangeReview,
    current_user: User = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.approve_change_request(current_user, request_id, data.adminComment)


@admin_router.patch("/schedule-requests/{request_id}/reject", response_model=ScheduleChangeRequestResponse)
async def reject_schedule_request(
    request_id: int,
    data: ScheduleChangeReview,
    current_user: User = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.reject_change_request(current_user, request_id, data.adminComment)

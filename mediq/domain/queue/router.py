"""Queue router - doctor's daily queue and consultation actions"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin, require_doctor
from ...database import get_db
from ...models import User
from ...services.realtime_sync import SyncBroadcaster, get_broadcaster
from ...shared.dates import parse_date_param
from .schemas import (
    AppointmentListResponse,
    BatchStatusUpdate,
    CompleteConsultation,
    NextPatientResponse,
    StatusUpdate,
    TodayQueueResponse,
    TokenAction,
    TokenResponse,
)
from .service import QueueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doctor", tags=["Doctor Queue"])
admin_router = APIRouter(prefix="/admin", tags=["Admin Queue"])


def get_queue_service(
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster = Depends(get_broadcaster),
) -> QueueService:
    """Dependency injection for QueueService"""
    return QueueService(db, broadcaster)


@router.get("/appointments", response_model=AppointmentListResponse)
async def list_appointments(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1),
    limit: int = Query(10),
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    result = service.list_appointments(
        current_user,
        parse_date_param(start_date, "start_date"),
        parse_date_param(end_date, "end_date"),
        status,
        page,
        limit,
    )
    result["appointments"] = [TokenResponse.from_token(t) for t in result["appointments"]]
    return result


@router.get("/today-queue", response_model=TodayQueueResponse)
async def today_queue(
    date: Optional[str] = Query(None),
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    """Today's tokens grouped into morning / afternoon / evening"""
    queue = service.today_queue(current_user, parse_date_param(date))
    for session in queue["sessions"]:
        session["queue"] = [TokenResponse.from_token(t) for t in session["queue"]]
    return queue


@router.get("/next-patient", response_model=NextPatientResponse)
async def next_patient(
    date: Optional[str] = Query(None),
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    token = service.next_patient(current_user, parse_date_param(date))
    return {"next": TokenResponse.from_token(token) if token else None}


@router.post("/consultation/start")
async def start_consultation(
    data: TokenAction,
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    token = service.start_consultation(data.tokenId, current_user)
    return {"message": "Consultation started", "appointment": TokenResponse.from_token(token)}


@router.post("/consultation/skip")
async def skip_consultation(
    data: TokenAction,
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    token = service.skip(data.tokenId, current_user)
    return {"message": "Patient skipped", "appointment": TokenResponse.from_token(token)}


@router.post("/consultation/no-show")
async def mark_no_show(
    data: TokenAction,
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    token = service.mark_no_show(data.tokenId, current_user)
    return {"message": "Marked as no-show", "appointment": TokenResponse.from_token(token)}


@router.post("/consultation/complete")
async def complete_consultation(
    data: CompleteConsultation,
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    token = service.complete_consultation(data.tokenId, current_user, data.notes, data.diagnosis)
    return {"message": "Consultation completed", "appointment": TokenResponse.from_token(token)}


@router.patch("/appointments/batch-update")
async def batch_update_appointments(
    data: BatchStatusUpdate,
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    return service.batch_update_status(data.appointmentIds, data.status, data.notes, doctor=current_user)


@router.get("/appointments/{appointment_id}", response_model=TokenResponse)
async def get_appointment(
    appointment_id: int,
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    return TokenResponse.from_token(service.get_appointment(appointment_id, current_user))


@router.patch("/appointments/{appointment_id}/status")
async def update_appointment_status(
    appointment_id: int,
    data: StatusUpdate,
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    token = service.update_status(appointment_id, current_user, data.status, data.notes, data.referredDoctorId)
    return {"message": "Appointment status updated successfully", "appointment": TokenResponse.from_token(token)}


@router.post("/appointments/{appointment_id}/video/join")
async def join_video(
    appointment_id: int,
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    token = service.join_video(appointment_id, current_user)
    return {
        "message": "Joined video consultation",
        "meetingUrl": token.meeting_link["meetingUrl"],
        "appointment": TokenResponse.from_token(token),
    }


@router.post("/appointments/{appointment_id}/video/close")
async def close_video(
    appointment_id: int,
    current_user: User = Depends(require_doctor),
    service: QueueService = Depends(get_queue_service),
):
    token = service.close_video(appointment_id, current_user)
    return {"message": "Video consultation closed", "appointment": TokenResponse.from_token(token)}


@admin_router.patch("/appointments/batch-update")
async def admin_batch_update_appointments(
    data: BatchStatusUpdate,
    current_user: User = Depends(require_admin),
    service: QueueService = Depends(get_queue_service),
):
    logger.info(f"🔄 Admin {current_user.id} batch update of {len(data.appointmentIds)} appointments")
    return service.batch_update_status(data.appointmentIds, data.status, data.notes)

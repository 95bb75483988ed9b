"""Leave router - doctor leave requests and admin review"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin, require_doctor
from ...database import get_db
from ...models import User
from ...services.realtime_sync import SyncBroadcaster, get_broadcaster, token_event_payload
from .schemas import LeaveRequestCreate, LeaveRequestResponse, LeaveReview
from .service import LeaveService

router = APIRouter(prefix="/doctor", tags=["Doctor Leave"])
admin_router = APIRouter(prefix="/admin", tags=["Admin Leave"])


def get_leave_service(
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster = Depends(get_broadcaster),
) -> LeaveService:
    """Dependency injection for LeaveService"""
    return LeaveService(db, broadcaster)


@router.post("/leave-requests")
async def submit_leave_request(
    data: LeaveRequestCreate,
    current_user: User = Depends(require_doctor),
    service: LeaveService = Depends(get_leave_service),
):
    leave = service.submit(current_user, data)
    return {
        "message": "Leave request submitted successfully",
        "leaveRequest": LeaveRequestResponse.model_validate(leave),
    }


@router.get("/leave-requests")
async def list_my_leave_requests(
    status: Optional[str] = Query(None),
    current_user: User = Depends(require_doctor),
    service: LeaveService = Depends(get_leave_service),
):
    leaves = service.list_for_doctor(current_user, status)
    return {"leaveRequests": [LeaveRequestResponse.model_validate(leave) for leave in leaves]}


@router.put("/leave-requests/{leave_id}/cancel")
async def cancel_leave_request(
    leave_id: int,
    current_user: User = Depends(require_doctor),
    service: LeaveService = Depends(get_leave_service),
):
    service.cancel(current_user, leave_id)
    return {"message": "Leave request cancelled successfully"}


@admin_router.get("/leave-requests")
async def list_leave_requests(
    status: Optional[str] = Query(None),
    doctorId: Optional[int] = Query(None),
    current_user: User = Depends(require_admin),
    service: LeaveService = Depends(get_leave_service),
):
    leaves = service.list_all(status, doctorId)
    return {"leaveRequests": [LeaveRequestResponse.model_validate(leave) for leave in leaves]}


@admin_router.patch("/leave-requests/{leave_id}/approve")
async def approve_leave_request(
    leave_id: int,
    data: LeaveReview,
    current_user: User = Depends(require_admin),
    service: LeaveService = Depends(get_leave_service),
):
    leave, affected = service.approve(current_user, leave_id, data.admin_comment)
    return {
        "message": "Leave request approved",
        "leaveRequest": LeaveRequestResponse.model_validate(leave),
        "cancelledAppointments": len(affected),
        "affectedAppointments": [token_event_payload(t) for t in affected],
    }


@admin_router.patch("/leave-requests/{leave_id}/reject")
async def reject_leave_request(
    leave_id: int,
    data: LeaveReview,
    current_user: User = Depends(require_admin),
    service: LeaveService = Depends(get_leave_service),
):
    leave = service.reject(current_user, leave_id, data.admin_comment)
    return {"message": "Leave request rejected", "leaveRequest": LeaveRequestResponse.model_validate(leave)}

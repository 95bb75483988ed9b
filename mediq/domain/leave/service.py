"""
Leave service - doctor leave requests and their review

Approving a leave cancels the doctor's active appointments for every date in
the range (status cancelled_by_hospital). A full-day leave also marks each day
unavailable; a half-day leave only cancels the tokens of its session.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import RESEND_API_KEY
from ...email_service import send_leave_decision_email
from ...models import User
from ...models_schedule import LeaveRequest
from ...services.notification_service import create_notification, notify_admins
from ...services.realtime_sync import SyncBroadcaster, get_broadcaster
from ...services.status_automation import TokenStatus
from ...shared.dates import iter_dates, parse_local_ymd
from ...side_effects import SideEffects
from ..availability.service import ON_LEAVE_REASON, AvailabilityService
from ..stats.service import invalidate_doctor_stats
from .repository import LeaveRepository
from .schemas import LeaveRequestCreate

logger = logging.getLogger(__name__)

LEAVE_CANCELLATION_REASON = "Doctor leave approved"


class LeaveService:
    """Service layer for leave requests"""

    def __init__(self, db: Session, broadcaster: Optional[SyncBroadcaster] = None):
        self.db = db
        self.repo = LeaveRepository()
        self.sync = broadcaster or get_broadcaster()
        self.availability = AvailabilityService(db, self.sync)

    # ------------------------------------------------------------------
    # Doctor side
    # ------------------------------------------------------------------

    def submit(self, doctor: User, data: LeaveRequestCreate) -> LeaveRequest:
        leave_type = data.leave_type or ("full_day" if data.date else None)
        start_str = data.start_date or data.date
        end_str = data.end_date or data.date

        if not start_str:
            raise HTTPException(status_code=400, detail="Start date is required")
        if leave_type == "full_day" and not end_str:
            raise HTTPException(status_code=400, detail="End date is required for full day leave")

        leave_type = leave_type or "full_day"
        start = parse_local_ymd(start_str)
        end = parse_local_ymd(end_str) if leave_type == "full_day" else start
        if not start or not end:
            raise HTTPException(status_code=400, detail="Invalid date format. Use DD-MM-YYYY or YYYY-MM-DD")
        if end < start:
            raise HTTPException(status_code=400, detail="End date must be on or after start date")

        if self.repo.find_overlapping(self.db, doctor.id, start, end):
            logger.warning(f"⚠️ Overlapping leave request from doctor {doctor.id} for {start} - {end}")
            raise HTTPException(status_code=409, detail="You already have a leave request for this date range")

        leave = self.repo.create(
            self.db,
            doctor_id=doctor.id,
            leave_type=leave_type,
            start_date=start,
            end_date=end,
            session=(data.session or "morning") if leave_type == "half_day" else "morning",
            reason=data.reason or "",
            status="pending",
        )
        logger.info(f"✅ Leave request {leave.id} submitted by doctor {doctor.id} ({start} - {end})")

        effects = SideEffects()
        effects.add(
            "notification.admins",
            notify_admins,
            self.db,
            title="New Leave Request",
            message=f"Dr. {doctor.full_name} requested leave from {start} to {end}: {leave.reason}",
            type="leave_request",
            priority="normal",
            related_id=leave.id,
            related_type="leave_request",
        )
        effects.add("broadcast.leave", self.sync.emit_leave_request_change, leave, "created")
        effects.dispatch()
        return leave

    def list_for_doctor(self, doctor: User, status: Optional[str] = None) -> list[LeaveRequest]:
        return self.repo.list(self.db, doctor.id, status)

    def cancel(self, doctor: User, leave_id: int, now: Optional[datetime] = None) -> LeaveRequest:
        """Doctors can withdraw a request while it is still pending"""
        leave = self.repo.get_pending_for_doctor(self.db, leave_id, doctor.id)
        if not leave:
            raise HTTPException(status_code=404, detail="Leave request not found or cannot be cancelled")

        leave.status = "cancelled"
        leave.cancelled_at = now or datetime.now()
        leave.cancelled_by = "doctor"
        leave = self.repo.save(self.db, leave)
        logger.info(f"🗑️ Leave request {leave.id} cancelled by doctor {doctor.id}")

        effects = SideEffects()
        effects.add("broadcast.leave", self.sync.emit_leave_request_change, leave, "cancelled")
        effects.dispatch()
        return leave

    # ------------------------------------------------------------------
    # Admin side
    # ------------------------------------------------------------------

    def list_all(self, status: Optional[str] = None, doctor_id: Optional[int] = None) -> list[LeaveRequest]:
        return self.repo.list(self.db, doctor_id, status)

    def _get_pending(self, leave_id: int) -> LeaveRequest:
        leave = self.repo.get(self.db, leave_id)
        if not leave:
            raise HTTPException(status_code=404, detail="Leave request not found")
        if leave.status != "pending":
            raise HTTPException(status_code=409, detail=f"Leave request already {leave.status}")
        return leave

    def approve(
        self, admin: User, leave_id: int, admin_comment: Optional[str] = None, now: Optional[datetime] = None
    ) -> tuple[LeaveRequest, list]:
        now = now or datetime.now()
        leave = self._get_pending(leave_id)
        doctor = self.availability.get_doctor(leave.doctor_id)

        leave.status = "approved"
        leave.admin_comment = admin_comment or ""
        leave.reviewed_by = admin.id
        leave.reviewed_at = now
        leave = self.repo.save(self.db, leave)

        effects = SideEffects()
        affected, previous = [], {}
        for day in iter_dates(leave.start_date, leave.end_date):
            if leave.leave_type == "half_day":
                tokens, prev = self.availability.cancel_active_tokens(
                    doctor.id,
                    day,
                    TokenStatus.CANCELLED_BY_HOSPITAL.value,
                    LEAVE_CANCELLATION_REASON,
                    leave.session,
                    now,
                )
            else:
                schedule, tokens, prev = self.availability.apply_day(
                    doctor,
                    day,
                    {"is_available": False, "leave_reason": leave.reason or ON_LEAVE_REASON},
                    cascade_status=TokenStatus.CANCELLED_BY_HOSPITAL.value,
                    cascade_reason=LEAVE_CANCELLATION_REASON,
                    now=now,
                )
                effects.add(
                    "broadcast.schedule",
                    self.sync.emit_schedule_change,
                    doctor.id,
                    day,
                    "updated",
                    {"isAvailable": False, "leaveReason": schedule.leave_reason, "leaveRequestId": leave.id},
                )
            affected.extend(tokens)
            previous.update(prev)

        logger.info(
            f"✅ Leave request {leave.id} approved by admin {admin.id}: "
            f"{len(affected)} appointments cancelled"
        )

        effects.add("broadcast.leave_approval", self.sync.emit_leave_approval, leave, affected)
        effects.add("broadcast.leave", self.sync.emit_leave_request_change, leave, "approved")
        effects.extend(
            self.availability.cancellation_effects(doctor, affected, previous, f"Doctor on leave: {leave.reason}")
        )
        effects.extend(self._decision_effects(doctor, leave))
        effects.add("stats.invalidate", invalidate_doctor_stats, self.db, doctor.id)
        effects.dispatch()
        return leave, affected

    def reject(
        self, admin: User, leave_id: int, admin_comment: Optional[str] = None, now: Optional[datetime] = None
    ) -> LeaveRequest:
        leave = self._get_pending(leave_id)
        doctor = self.availability.get_doctor(leave.doctor_id)

        leave.status = "rejected"
        leave.admin_comment = admin_comment or ""
        leave.reviewed_by = admin.id
        leave.reviewed_at = now or datetime.now()
        leave = self.repo.save(self.db, leave)
        logger.info(f"❌ Leave request {leave.id} rejected by admin {admin.id}")

        effects = self._decision_effects(doctor, leave)
        effects.add("broadcast.leave", self.sync.emit_leave_request_change, leave, "rejected")
        effects.dispatch()
        return leave

    def _decision_effects(self, doctor: User, leave: LeaveRequest) -> SideEffects:
        effects = SideEffects()
        message = f"Your leave request from {leave.start_date} to {leave.end_date} has been {leave.status}."
        if leave.admin_comment:
            message += f" Comment: {leave.admin_comment}"
        effects.add(
            "notification.doctor",
            create_notification,
            self.db,
            recipient_id=doctor.id,
            recipient_type="doctor",
            title=f"Leave Request {leave.status.capitalize()}",
            message=message,
            type="leave_request",
            priority="high" if leave.status == "rejected" else "normal",
            related_id=leave.id,
            related_type="leave_request",
        )
        if RESEND_API_KEY and doctor.email:
            effects.add(
                "email.doctor",
                send_leave_decision_email,
                doctor.email,
                doctor.full_name,
                leave.status,
                leave.start_date.isoformat(),
                leave.end_date.isoformat(),
                leave.admin_comment or "",
            )
        return effects

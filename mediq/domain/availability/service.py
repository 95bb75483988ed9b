"""
Availability service - schedule days, availability lookups and cascade cancellation

A doctor with no schedule row for a date is not available. Whenever a day ends
up unavailable, every booked / in_queue token of that doctor on that day is
cancelled in one UPDATE before the call returns. Notifications, emails,
broadcasts and stats invalidation follow as best-effort side effects.
"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import RESEND_API_KEY
from ...email_service import send_appointment_cancelled_email
from ...models import User
from ...models_queue import Token
from ...models_schedule import DoctorSchedule, LeaveRequest, ScheduleChangeRequest
from ...services.notification_service import create_notification, notify_admins, notify_cancelled_patients
from ...services.realtime_sync import SyncBroadcaster, get_broadcaster
from ...services.status_automation import TokenStatus
from ...shared.dates import iter_dates, parse_date_param
from ...side_effects import SideEffects
from ..queue.sessions import in_half_day_session
from ..stats.service import invalidate_doctor_stats
from .repository import SCHEDULE_DEFAULTS, AvailabilityRepository
from .schemas import ScheduleChangeRequestCreate, ScheduleFields

logger = logging.getLogger(__name__)

UNAVAILABLE_REASON = "Doctor unavailable"
NO_SCHEDULE_REASON = "No schedule"
ON_LEAVE_REASON = "On leave"
# Bulk ranges are capped to keep one request bounded
MAX_BULK_DAYS = 90


def schedule_payload(schedule: DoctorSchedule) -> dict:
    return {
        "id": schedule.id,
        "isAvailable": schedule.is_available,
        "workingHours": {"start_time": schedule.working_start, "end_time": schedule.working_end},
        "breakTime": {"start_time": schedule.break_start, "end_time": schedule.break_end},
        "slotDuration": schedule.slot_duration,
        "leaveReason": schedule.leave_reason,
    }


class AvailabilityService:
    """Service layer for doctor availability"""

    def __init__(self, db: Session, broadcaster: Optional[SyncBroadcaster] = None):
        self.db = db
        self.repo = AvailabilityRepository()
        self.sync = broadcaster or get_broadcaster()

    def get_doctor(self, doctor_id: int) -> User:
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise HTTPException(status_code=404, detail="Doctor not found")
        return doctor

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def approved_leave(self, doctor_id: int, day: date) -> tuple[Optional[LeaveRequest], list[LeaveRequest]]:
        """(full-day leave covering the day, half-day leaves on the day); approved only"""
        leaves = self.repo.approved_leaves_on(self.db, doctor_id, day)
        full_day = next((leave for leave in leaves if leave.leave_type != "half_day"), None)
        half_days = [leave for leave in leaves if leave.leave_type == "half_day"]
        return full_day, half_days

    def resolve_availability(self, doctor_id: int, day: date) -> dict:
        """
        Effective availability of a doctor on a date

        No schedule row means unavailable. Approved leave wins over the schedule row:
        a full-day leave closes the day, a half-day leave is reported in
        blockedSessions so that session is not offered for booking.
        """
        full_day, half_days = self.approved_leave(doctor_id, day)
        schedule = self.repo.get_schedule(self.db, doctor_id, day)

        if full_day:
            return {
                "isAvailable": False,
                "workingHours": None,
                "breakTime": None,
                "slotDuration": None,
                "leaveReason": full_day.reason or ON_LEAVE_REASON,
                "notes": schedule.notes if schedule else None,
                "blockedSessions": [],
            }

        blocked = sorted({leave.session for leave in half_days})
        if not schedule:
            return {
                "isAvailable": False,
                "workingHours": None,
                "breakTime": None,
                "slotDuration": None,
                "leaveReason": NO_SCHEDULE_REASON,
                "notes": None,
                "blockedSessions": blocked,
            }

        break_time = None
        if schedule.break_start and schedule.break_end:
            break_time = {"start_time": schedule.break_start, "end_time": schedule.break_end}
        leave_reason = schedule.leave_reason
        if not leave_reason and half_days:
            leave_reason = half_days[0].reason or ON_LEAVE_REASON
        return {
            "isAvailable": bool(schedule.is_available),
            "workingHours": {"start_time": schedule.working_start, "end_time": schedule.working_end},
            "breakTime": break_time,
            "slotDuration": schedule.slot_duration,
            "leaveReason": leave_reason,
            "notes": schedule.notes,
            "blockedSessions": blocked,
        }

    def list_schedules(
        self, doctor: User, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[DoctorSchedule]:
        return self.repo.list_schedules(self.db, doctor.id, start, end)

    # ------------------------------------------------------------------
    # Cascade
    # ------------------------------------------------------------------

    def cancel_active_tokens(
        self,
        doctor_id: int,
        day: date,
        status: str,
        reason: str,
        session: Optional[str],
        now: datetime,
    ) -> tuple[list[Token], dict[int, str]]:
        candidates = self.repo.active_tokens(self.db, doctor_id, day)
        if session:
            candidates = [t for t in candidates if in_half_day_session(t.time_slot, session)]
        if not candidates:
            return [], {}

        previous = {t.id: t.status for t in candidates}
        modified = self.repo.cancel_tokens(self.db, list(previous), status, reason, now)

        # Reload after the bulk UPDATE and keep the rows this call actually cancelled
        affected = []
        for token in candidates:
            self.db.refresh(token)
            if token.status == status and token.cancelled_at == now:
                affected.append(token)
        logger.info(
            f"🚫 Cascade cancelled {modified} appointments for doctor {doctor_id} on {day}"
            + (f" ({session} session)" if session else "")
        )
        return affected, {t.id: previous[t.id] for t in affected}

    def cascade_cancel(
        self,
        doctor_id: int,
        day: date,
        status: str = TokenStatus.CANCELLED.value,
        reason: str = UNAVAILABLE_REASON,
        session: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[Token]:
        """Cancel every active token of the doctor on that day (or one half-day session)"""
        tokens, _ = self.cancel_active_tokens(doctor_id, day, status, reason, session, now or datetime.now())
        return tokens

    def cancellation_effects(
        self, doctor: User, tokens: list[Token], previous: dict[int, str], reason: str
    ) -> SideEffects:
        """Patient-facing fallout of a cascade"""
        effects = SideEffects()
        if not tokens:
            return effects

        for token in tokens:
            effects.add(
                "broadcast.status",
                self.sync.emit_appointment_status_change,
                token.id,
                previous.get(token.id, TokenStatus.BOOKED.value),
                token.status,
                token.patient_id,
            )
        effects.add("notification.patients", notify_cancelled_patients, self.db, tokens, reason, doctor.full_name)
        if RESEND_API_KEY:
            for token in tokens:
                if token.patient and token.patient.email:
                    effects.add(
                        "email.patient",
                        send_appointment_cancelled_email,
                        token.patient.email,
                        token.patient_display_name,
                        doctor.full_name,
                        token.booking_date.isoformat(),
                        token.time_slot,
                        reason,
                    )
        return effects

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def ensure_not_reopening_leave(self, doctor_id: int, day: date, fields: dict) -> None:
        """A day covered by approved full-day leave cannot be made available again"""
        if "is_available" in fields:
            opening = fields["is_available"]
        else:
            existing = self.repo.get_schedule(self.db, doctor_id, day)
            opening = existing.is_available if existing else SCHEDULE_DEFAULTS["is_available"]
        if not opening:
            return

        full_day, _ = self.approved_leave(doctor_id, day)
        if full_day:
            logger.warning(f"⚠️ Rejected reopening {day} for doctor {doctor_id}: leave {full_day.id} is approved")
            raise HTTPException(status_code=409, detail=f"Doctor has approved leave on {day.isoformat()}")

    def apply_day(
        self,
        doctor: User,
        day: date,
        fields: dict,
        cascade_status: str = TokenStatus.CANCELLED.value,
        cascade_reason: str = UNAVAILABLE_REASON,
        max_patients_default: int = 20,
        now: Optional[datetime] = None,
    ) -> tuple[DoctorSchedule, list[Token], dict[int, str]]:
        """Upsert one day and cascade if it ends up unavailable. No side effects."""
        self.ensure_not_reopening_leave(doctor.id, day, fields)
        schedule = self.repo.upsert_schedule(self.db, doctor.id, day, fields, max_patients_default)
        tokens, previous = [], {}
        if not schedule.is_available:
            tokens, previous = self.cancel_active_tokens(
                doctor.id, day, cascade_status, cascade_reason, None, now or datetime.now()
            )
        return schedule, tokens, previous

    def _day_effects(
        self, doctor: User, schedule: DoctorSchedule, change_type: str, tokens: list, previous: dict, reason: str
    ) -> SideEffects:
        effects = SideEffects()
        data = schedule_payload(schedule)
        data["cancelledAppointments"] = len(tokens)
        effects.add("broadcast.schedule", self.sync.emit_schedule_change, doctor.id, schedule.date, change_type, data)
        effects.extend(self.cancellation_effects(doctor, tokens, previous, reason))
        effects.add("stats.invalidate", invalidate_doctor_stats, self.db, doctor.id)
        return effects

    def set_availability(
        self, doctor: User, day: date, data: ScheduleFields, now: Optional[datetime] = None
    ) -> tuple[DoctorSchedule, list[Token]]:
        existing = self.repo.get_schedule(self.db, doctor.id, day)
        schedule, tokens, previous = self.apply_day(doctor, day, data.to_columns(), now=now)
        logger.info(
            f"📅 Schedule {'updated' if existing else 'created'} for doctor {doctor.id} on {day} "
            f"(available={schedule.is_available})"
        )

        self._day_effects(
            doctor, schedule, "updated" if existing else "created", tokens, previous, UNAVAILABLE_REASON
        ).dispatch()
        return schedule, tokens

    def bulk_set_availability(
        self, doctor: User, start: date, end: date, data: ScheduleFields, now: Optional[datetime] = None
    ) -> dict:
        """Day-by-day upsert + cascade; each day is committed on its own"""
        if end < start:
            raise HTTPException(status_code=400, detail="endDate must be on or after startDate")
        if (end - start).days + 1 > MAX_BULK_DAYS:
            raise HTTPException(status_code=400, detail=f"Date range cannot exceed {MAX_BULK_DAYS} days")

        fields = data.to_columns()
        for day in iter_dates(start, end):
            self.ensure_not_reopening_leave(doctor.id, day, fields)

        effects = SideEffects()
        schedules = []
        cancelled = []
        for day in iter_dates(start, end):
            schedule, tokens, previous = self.apply_day(doctor, day, fields, max_patients_default=1, now=now)
            schedules.append(schedule)
            if not schedule.is_available:
                cancelled.append({"date": day.isoformat(), "cancelledTokens": len(tokens)})
            effects.extend(self._day_effects(doctor, schedule, "updated", tokens, previous, UNAVAILABLE_REASON))

        logger.info(f"📅 Bulk schedule update for doctor {doctor.id}: {len(schedules)} days")
        effects.dispatch()
        return {
            "message": "Bulk schedule update completed successfully",
            "schedulesUpdated": len(schedules),
            "cancelledTokens": cancelled,
        }

    def _get_owned_schedule(self, doctor: User, schedule_id: int) -> DoctorSchedule:
        schedule = self.repo.get_schedule_by_id(self.db, schedule_id, doctor.id)
        if not schedule:
            raise HTTPException(status_code=404, detail="Schedule not found")
        return schedule

    def update_schedule(
        self, doctor: User, schedule_id: int, data: ScheduleFields, now: Optional[datetime] = None
    ) -> tuple[DoctorSchedule, list[Token]]:
        schedule = self._get_owned_schedule(doctor, schedule_id)
        fields = data.to_columns()
        self.ensure_not_reopening_leave(doctor.id, schedule.date, fields)
        schedule = self.repo.update_schedule(self.db, schedule, fields)

        tokens, previous = [], {}
        if not schedule.is_available:
            tokens, previous = self.cancel_active_tokens(
                doctor.id, schedule.date, TokenStatus.CANCELLED.value, UNAVAILABLE_REASON, None, now or datetime.now()
            )
        logger.info(f"📅 Schedule {schedule.id} updated for doctor {doctor.id}")

        self._day_effects(doctor, schedule, "updated", tokens, previous, UNAVAILABLE_REASON).dispatch()
        return schedule, tokens

    def delete_schedule(self, doctor: User, schedule_id: int) -> dict:
        schedule = self._get_owned_schedule(doctor, schedule_id)
        day = schedule.date
        self.repo.delete_schedule(self.db, schedule)
        logger.info(f"🗑️ Schedule {schedule_id} deleted for doctor {doctor.id}")

        effects = SideEffects()
        effects.add("broadcast.schedule", self.sync.emit_schedule_change, doctor.id, day, "deleted", {"id": schedule_id})
        effects.add("stats.invalidate", invalidate_doctor_stats, self.db, doctor.id)
        effects.dispatch()
        return {"message": "Schedule deleted successfully"}

    # ------------------------------------------------------------------
    # Schedule change requests
    # ------------------------------------------------------------------

    def submit_change_request(self, doctor: User, data: ScheduleChangeRequestCreate) -> ScheduleChangeRequest:
        schedule = self._get_owned_schedule(doctor, data.scheduleId)
        request = self.repo.create_change_request(
            self.db,
            doctor_id=doctor.id,
            request_type=data.type,
            schedule_id=schedule.id,
            reason=data.reason,
            date=parse_date_param(data.date) or schedule.date,
            new_schedule=data.newSchedule.model_dump(exclude_none=True, mode="json") if data.newSchedule else None,
            status="pending",
        )
        logger.info(f"📝 Schedule {data.type} request {request.id} submitted by doctor {doctor.id}")

        effects = SideEffects()
        effects.add(
            "notification.admins",
            notify_admins,
            self.db,
            title="New Schedule Change Request",
            message=f"Dr. {doctor.full_name} requested to {data.type} the schedule on {request.date}: {data.reason}",
            type="schedule_change",
            priority="normal",
            related_id=request.id,
            related_type="schedule",
        )
        effects.add(
            "broadcast.alert",
            self.sync.emit_system_alert,
            "schedule_change_request",
            f"Dr. {doctor.full_name} submitted a schedule {data.type} request",
            "info",
            {"requestId": request.id, "doctorId": doctor.id},
        )
        effects.dispatch()
        return request

    def list_change_requests(self, user: User, status: Optional[str] = None) -> list[ScheduleChangeRequest]:
        """Doctors see their own requests, admins see everything"""
        doctor_id = None if user.role == "admin" else user.id
        return self.repo.list_change_requests(self.db, doctor_id, status)

    def _get_pending_request(self, request_id: int) -> ScheduleChangeRequest:
        request = self.repo.get_change_request(self.db, request_id)
        if not request:
            raise HTTPException(status_code=404, detail="Schedule request not found")
        if request.status != "pending":
            raise HTTPException(status_code=409, detail=f"Schedule request already {request.status}")
        return request

    def approve_change_request(
        self, admin: User, request_id: int, admin_comment: Optional[str] = None, now: Optional[datetime] = None
    ) -> ScheduleChangeRequest:
        now = now or datetime.now()
        request = self._get_pending_request(request_id)
        doctor = self.get_doctor(request.doctor_id)
        schedule = self._get_owned_schedule(doctor, request.schedule_id)

        if request.request_type == "cancel":
            fields = {"is_available": False, "leave_reason": request.reason}
            change_type = "cancelled"
        else:
            fields = ScheduleFields.model_validate(request.new_schedule or {}).to_columns()
            change_type = "updated"

        day = schedule.date
        schedule, tokens, previous = self.apply_day(doctor, day, fields, cascade_reason=request.reason, now=now)

        request.status = "approved"
        request.admin_comment = admin_comment or ""
        request.reviewed_by = admin.id
        request.reviewed_at = now
        request = self.repo.save(self.db, request)
        logger.info(f"✅ Schedule request {request.id} approved by admin {admin.id}")

        effects = self._day_effects(doctor, schedule, change_type, tokens, previous, request.reason)
        effects.add(
            "notification.doctor",
            create_notification,
            self.db,
            recipient_id=doctor.id,
            recipient_type="doctor",
            title="Schedule Request Approved",
            message=f"Your request to {request.request_type} the schedule on {day} has been approved.",
            type="schedule_change",
            priority="normal",
            related_id=request.id,
            related_type="schedule",
        )
        effects.dispatch()
        return request

    def reject_change_request(
        self, admin: User, request_id: int, admin_comment: Optional[str] = None, now: Optional[datetime] = None
    ) -> ScheduleChangeRequest:
        request = self._get_pending_request(request_id)
        request.status = "rejected"
        request.admin_comment = admin_comment or ""
        request.reviewed_by = admin.id
        request.reviewed_at = now or datetime.now()
        request = self.repo.save(self.db, request)
        logger.info(f"❌ Schedule request {request.id} rejected by admin {admin.id}")

        effects = SideEffects()
        effects.add(
            "notification.doctor",
            create_notification,
            self.db,
            recipient_id=request.doctor_id,
            recipient_type="doctor",
            title="Schedule Request Rejected",
            message=f"Your schedule {request.request_type} request was rejected. {request.admin_comment}".strip(),
            type="schedule_change",
            priority="normal",
            related_id=request.id,
            related_type="schedule",
        )
        effects.dispatch()
        return request


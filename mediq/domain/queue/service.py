"""
Queue service - the doctor's day: start, complete, skip, no-show, referrals and video visits

Every state change goes through the transition table in services/status_automation.py.
The token row is committed first; broadcasts, notifications, emails and stats
invalidation run afterwards as best-effort side effects.
"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import RESEND_API_KEY
from ...email_service import send_video_call_email
from ...models import User
from ...models_queue import Token
from ...services.meeting_link_service import generate_meeting_link, is_link_valid
from ...services.notification_service import create_notification
from ...services.realtime_sync import SyncBroadcaster, get_broadcaster, token_event_payload
from ...services.status_automation import (
    ACTIVE_STATUSES,
    CANCELLED_STATUSES,
    TERMINAL_STATUSES,
    TokenStatus,
    sources_for,
    validate_token_transition,
)
from ...side_effects import SideEffects
from ..stats.service import invalidate_doctor_stats
from .repository import QueueRepository
from .sessions import SESSIONS, group_by_session

logger = logging.getLogger(__name__)


def _stamp_status_fields(values: dict, new_status: str, now: datetime, actor: str) -> dict:
    """Timestamps that accompany entering a status"""
    if new_status == TokenStatus.CONSULTED.value:
        values["consultation_completed_at"] = now
    elif new_status == TokenStatus.MISSED.value:
        values["no_show_at"] = now
    elif new_status in CANCELLED_STATUSES:
        values["cancelled_at"] = now
        values["cancelled_by"] = actor
    return values


class QueueService:
    """Service layer for token queue operations"""

    def __init__(self, db: Session, broadcaster: Optional[SyncBroadcaster] = None):
        self.db = db
        self.repo = QueueRepository()
        self.sync = broadcaster or get_broadcaster()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_appointment(self, token_id: int, doctor: User) -> Token:
        token = self.repo.get_doctor_token(self.db, token_id, doctor.id)
        if not token:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return token

    def list_appointments(
        self,
        doctor: User,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        if page < 1 or limit < 1 or limit > 100:
            raise HTTPException(status_code=400, detail="Invalid pagination parameters")
        tokens, total = self.repo.list_tokens(self.db, doctor.id, start, end, status, page, limit)
        return {
            "appointments": tokens,
            "totalPages": (total + limit - 1) // limit,
            "currentPage": page,
            "totalAppointments": total,
        }

    def today_queue(self, doctor: User, day: Optional[date] = None) -> dict:
        day = day or date.today()
        grouped = group_by_session(self.repo.tokens_for_day(self.db, doctor.id, day))
        return {
            "date": day,
            "sessions": [
                {"id": s["id"], "name": s["name"], "range": s["range"], "queue": grouped[s["id"]]} for s in SESSIONS
            ],
        }

    def next_patient(self, doctor: User, day: Optional[date] = None) -> Optional[Token]:
        return self.repo.next_active(self.db, doctor.id, day or date.today())

    # ------------------------------------------------------------------
    # Single-token transitions
    # ------------------------------------------------------------------

    def _transition(self, token: Token, new_status: str) -> str:
        if not validate_token_transition(token.status, new_status):
            logger.warning(f"⚠️ Rejected token {token.id} transition {token.status} → {new_status}")
            raise HTTPException(
                status_code=409,
                detail=f"Cannot change appointment status from {token.status} to {new_status}",
            )
        old_status = token.status
        token.status = new_status
        return old_status

    def _status_effects(self, token: Token, old_status: str, action: str) -> SideEffects:
        effects = SideEffects()
        effects.add(
            "broadcast.status",
            self.sync.emit_appointment_status_change,
            token.id,
            old_status,
            token.status,
            token.patient_id,
        )
        effects.add(
            "broadcast.queue",
            self.sync.emit_queue_update,
            token.doctor_id,
            {"action": action, "token": token_event_payload(token)},
        )
        effects.add("stats.invalidate", invalidate_doctor_stats, self.db, token.doctor_id)
        return effects

    def start_consultation(self, token_id: int, doctor: User, now: Optional[datetime] = None) -> Token:
        now = now or datetime.now()
        token = self.get_appointment(token_id, doctor)
        old_status = self._transition(token, TokenStatus.IN_QUEUE.value)
        token.consultation_started_at = now
        token = self.repo.save(self.db, token)
        logger.info(f"🩺 Consultation started for token {token.id} by doctor {doctor.id}")

        self._status_effects(token, old_status, "started").dispatch()
        return token

    def complete_consultation(
        self,
        token_id: int,
        doctor: User,
        notes: Optional[str] = None,
        diagnosis: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Token:
        now = now or datetime.now()
        token = self.get_appointment(token_id, doctor)
        old_status = self._transition(token, TokenStatus.CONSULTED.value)
        token.consultation_completed_at = now
        if notes:
            token.consultation_notes = str(notes)
        if diagnosis:
            token.diagnosis = str(diagnosis)
        token = self.repo.save(self.db, token)
        logger.info(f"✅ Consultation completed for token {token.id}")

        self._status_effects(token, old_status, "completed").dispatch()
        return token

    def mark_no_show(self, token_id: int, doctor: User, now: Optional[datetime] = None) -> Token:
        now = now or datetime.now()
        token = self.get_appointment(token_id, doctor)
        old_status = self._transition(token, TokenStatus.MISSED.value)
        token.no_show_at = now
        token = self.repo.save(self.db, token)
        logger.info(f"🚫 Token {token.id} marked as no-show")

        self._status_effects(token, old_status, "no_show").dispatch()
        return token

    def skip(self, token_id: int, doctor: User, now: Optional[datetime] = None) -> Token:
        """Call later: status is kept, the token moves behind everyone not yet skipped"""
        now = now or datetime.now()
        token = self.get_appointment(token_id, doctor)
        if token.status not in ACTIVE_STATUSES:
            raise HTTPException(status_code=409, detail=f"Cannot skip an appointment that is {token.status}")

        token.queue_priority = (token.queue_priority or 0) + 1
        token.skipped_at = now
        token = self.repo.save(self.db, token)
        logger.info(f"⏭️ Token {token.id} skipped (priority {token.queue_priority})")

        effects = SideEffects()
        effects.add(
            "broadcast.queue",
            self.sync.emit_queue_update,
            token.doctor_id,
            {"action": "skipped", "token": token_event_payload(token)},
        )
        effects.dispatch()
        return token

    def update_status(
        self,
        token_id: int,
        doctor: User,
        status: str,
        notes: Optional[str] = None,
        referred_doctor_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Token:
        now = now or datetime.now()
        token = self.get_appointment(token_id, doctor)

        if referred_doctor_id is not None:
            if status != TokenStatus.REFERRED.value:
                raise HTTPException(status_code=400, detail="A referred doctor can only be set when referring")
            referred = (
                self.db.query(User).filter(User.id == referred_doctor_id, User.role == "doctor").first()
            )
            if not referred or referred.id == doctor.id:
                raise HTTPException(status_code=400, detail="Referred doctor not found")

        old_status = self._transition(token, status)
        for key, value in _stamp_status_fields({}, status, now, "doctor").items():
            setattr(token, key, value)
        if status == TokenStatus.IN_QUEUE.value and not token.consultation_started_at:
            token.consultation_started_at = now
        if notes:
            token.notes = notes
        if referred_doctor_id is not None:
            token.referred_doctor_id = referred_doctor_id
        token = self.repo.save(self.db, token)
        logger.info(f"🔄 Token {token.id} status {old_status} → {status}")

        effects = self._status_effects(token, old_status, "status_updated")
        effects.add(
            "broadcast.appointment",
            self.sync.emit_appointment_update,
            token.doctor_id,
            {
                "appointmentId": token.id,
                "status": token.status,
                "patientName": token.patient_display_name,
                "bookingDate": token.booking_date.isoformat(),
                "timeSlot": token.time_slot,
                "referredDoctorId": token.referred_doctor_id,
                "updatedAt": now.isoformat(),
            },
        )
        effects.dispatch()
        return token

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def batch_update_status(
        self,
        token_ids: list[int],
        status: str,
        notes: Optional[str] = None,
        doctor: Optional[User] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Match-and-set: only tokens (of this doctor, unless called by an admin) whose
        current status can legally move to `status` are updated. Returns modifiedCount.
        """
        if not token_ids:
            raise HTTPException(status_code=400, detail="Appointment IDs are required")

        now = now or datetime.now()
        from_statuses = sources_for(status)
        if not from_statuses:
            return {"message": "Updated 0 appointments successfully", "modifiedCount": 0}

        doctor_id = doctor.id if doctor else None
        actor = "doctor" if doctor else "admin"

        query = self.db.query(Token).filter(Token.id.in_(token_ids), Token.status.in_(from_statuses))
        if doctor_id is not None:
            query = query.filter(Token.doctor_id == doctor_id)
        candidates = [(t.id, t.status, t.doctor_id, t.patient_id) for t in query.all()]

        values = _stamp_status_fields({"status": status}, status, now, actor)
        if notes:
            values["notes"] = notes
        modified = self.repo.match_and_set(
            self.db, [c[0] for c in candidates], from_statuses, values, doctor_id=doctor_id
        )
        logger.info(f"🔄 Batch status update to {status}: {modified}/{len(token_ids)} appointments modified")

        if modified:
            effects = SideEffects()
            for token_id, old_status, _, patient_id in candidates:
                effects.add(
                    "broadcast.status",
                    self.sync.emit_appointment_status_change,
                    token_id,
                    old_status,
                    status,
                    patient_id,
                )
            for affected_doctor in sorted({c[2] for c in candidates}):
                effects.add(
                    "broadcast.queue",
                    self.sync.emit_queue_update,
                    affected_doctor,
                    {"action": "batch_updated", "status": status, "tokenIds": [c[0] for c in candidates]},
                )
                effects.add("stats.invalidate", invalidate_doctor_stats, self.db, affected_doctor)
            effects.dispatch()

        return {"message": f"Updated {modified} appointments successfully", "modifiedCount": modified}

    # ------------------------------------------------------------------
    # Video consultations
    # ------------------------------------------------------------------

    def _get_video_token(self, token_id: int, doctor: User) -> Token:
        token = self.get_appointment(token_id, doctor)
        if token.appointment_type != "video":
            raise HTTPException(status_code=400, detail="This is not a video consultation")
        return token

    def join_video(self, token_id: int, doctor: User, now: Optional[datetime] = None) -> Token:
        now = now or datetime.now()
        token = self._get_video_token(token_id, doctor)
        if token.status in TERMINAL_STATUSES:
            raise HTTPException(status_code=409, detail=f"Cannot join a consultation that is {token.status}")

        if not is_link_valid(token.meeting_link, now):
            token.meeting_link = generate_meeting_link(token)
        token.meeting_link["doctorJoined"] = True
        token.meeting_link["doctorJoinedAt"] = now.isoformat()
        token = self.repo.save(self.db, token)
        meeting_url = token.meeting_link["meetingUrl"]
        logger.info(f"🎥 Doctor {doctor.id} joined video consultation for token {token.id}")

        message = f"Dr. {doctor.full_name} has joined your video consultation. Join now!"
        effects = SideEffects()
        effects.add(
            "notification.patient",
            create_notification,
            self.db,
            recipient_id=token.patient_id,
            recipient_type="patient",
            title="Doctor is waiting",
            message=message,
            type="appointment",
            priority="high",
            related_id=token.id,
            related_type="appointment",
            metadata={"meetingUrl": meeting_url},
        )
        if RESEND_API_KEY and token.patient and token.patient.email:
            effects.add(
                "email.patient",
                send_video_call_email,
                token.patient.email,
                token.patient_display_name,
                doctor.full_name,
                meeting_url,
            )
        effects.add(
            "broadcast.appointment",
            self.sync.emit_appointment_update,
            token.doctor_id,
            {
                "type": "doctor_joined_video",
                "appointmentId": token.id,
                "patientId": token.patient_id,
                "meetingUrl": meeting_url,
                "message": message,
            },
        )
        effects.dispatch()
        return token

    def close_video(self, token_id: int, doctor: User, now: Optional[datetime] = None) -> Token:
        now = now or datetime.now()
        token = self._get_video_token(token_id, doctor)
        old_status = self._transition(token, TokenStatus.CONSULTED.value)

        link = token.meeting_link or {}
        link.update({"doctorJoined": False, "meetingEnded": True, "meetingEndedAt": now.isoformat()})
        token.meeting_link = link
        token.consultation_completed_at = now
        token = self.repo.save(self.db, token)
        logger.info(f"🎥 Video consultation closed for token {token.id}")

        effects = self._status_effects(token, old_status, "video_closed")
        effects.add(
            "notification.patient",
            create_notification,
            self.db,
            recipient_id=token.patient_id,
            recipient_type="patient",
            title="Consultation completed",
            message=f"Your video consultation with Dr. {doctor.full_name} has ended.",
            type="appointment",
            priority="normal",
            related_id=token.id,
            related_type="appointment",
        )
        effects.add(
            "broadcast.appointment",
            self.sync.emit_appointment_update,
            token.doctor_id,
            {"type": "video_closed", "appointmentId": token.id, "patientId": token.patient_id},
        )
        effects.dispatch()
        return token

"""Availability repository - schedule days, cascade updates and schedule change requests"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from ...models import User
from ...models_queue import Token
from ...models_schedule import DoctorSchedule, LeaveRequest, ScheduleChangeRequest
from ...services.status_automation import ACTIVE_STATUSES
from ...shared.upsert import upsert

SCHEDULE_DEFAULTS = {
    "is_available": True,
    "working_start": "09:00",
    "working_end": "17:00",
    "break_start": "13:00",
    "break_end": "14:00",
    "slot_duration": 30,
    "max_patients_per_slot": 20,
    "leave_reason": "",
    "notes": "",
}


class AvailabilityRepository:
    """Repository for schedule database operations"""

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == doctor_id, User.role == "doctor").first()

    @staticmethod
    def get_schedule(db: Session, doctor_id: int, day: date) -> Optional[DoctorSchedule]:
        return db.query(DoctorSchedule).filter(DoctorSchedule.doctor_id == doctor_id, DoctorSchedule.date == day).first()

    @staticmethod
    def approved_leaves_on(db: Session, doctor_id: int, day: date) -> list[LeaveRequest]:
        return (
            db.query(LeaveRequest)
            .filter(
                LeaveRequest.doctor_id == doctor_id,
                LeaveRequest.status == "approved",
                LeaveRequest.start_date <= day,
                LeaveRequest.end_date >= day,
            )
            .order_by(LeaveRequest.id.asc())
            .all()
        )

    @staticmethod
    def get_schedule_by_id(db: Session, schedule_id: int, doctor_id: int) -> Optional[DoctorSchedule]:
        return (
            db.query(DoctorSchedule)
            .filter(DoctorSchedule.id == schedule_id, DoctorSchedule.doctor_id == doctor_id)
            .first()
        )

    @staticmethod
    def list_schedules(
        db: Session, doctor_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[DoctorSchedule]:
        query = db.query(DoctorSchedule).filter(DoctorSchedule.doctor_id == doctor_id)
        if start:
            query = query.filter(DoctorSchedule.date >= start)
        if end:
            query = query.filter(DoctorSchedule.date <= end)
        return query.order_by(DoctorSchedule.date.asc()).all()

    @staticmethod
    def upsert_schedule(
        db: Session, doctor_id: int, day: date, fields: dict, max_patients_default: int = 20
    ) -> DoctorSchedule:
        """
        New days get defaults for anything not in fields; existing days only
        have the given fields overwritten.
        """
        values = {**SCHEDULE_DEFAULTS, "max_patients_per_slot": max_patients_default, **fields}
        values.update({"doctor_id": doctor_id, "date": day})
        upsert(db, DoctorSchedule, values, ["doctor_id", "date"], update_columns=list(fields))
        db.commit()

        schedule = AvailabilityRepository.get_schedule(db, doctor_id, day)
        db.refresh(schedule)
        return schedule

    @staticmethod
    def update_schedule(db: Session, schedule: DoctorSchedule, fields: dict) -> DoctorSchedule:
        for key, value in fields.items():
            setattr(schedule, key, value)
        db.commit()
        db.refresh(schedule)
        return schedule

    @staticmethod
    def delete_schedule(db: Session, schedule: DoctorSchedule) -> None:
        db.delete(schedule)
        db.commit()

    @staticmethod
    def active_tokens(db: Session, doctor_id: int, day: date) -> list[Token]:
        return (
            db.query(Token)
            .options(joinedload(Token.patient))
            .filter(Token.doctor_id == doctor_id, Token.booking_date == day, Token.status.in_(ACTIVE_STATUSES))
            .order_by(Token.time_slot.asc(), Token.id.asc())
            .all()
        )

    @staticmethod
    def cancel_tokens(db: Session, token_ids: list[int], status: str, reason: str, now: datetime) -> int:
        """One UPDATE; tokens that left the active states meanwhile are not touched"""
        if not token_ids:
            return 0
        result = db.execute(
            update(Token)
            .where(Token.id.in_(token_ids), Token.status.in_(ACTIVE_STATUSES))
            .values(status=status, cancellation_reason=reason, cancelled_at=now, cancelled_by="system")
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount

    # Schedule change requests

    @staticmethod
    def create_change_request(db: Session, **data) -> ScheduleChangeRequest:
        request = ScheduleChangeRequest(**data)
        db.add(request)
        db.commit()
        db.refresh(request)
        return request

    @staticmethod
    def get_change_request(db: Session, request_id: int) -> Optional[ScheduleChangeRequest]:
        return db.query(ScheduleChangeRequest).filter(ScheduleChangeRequest.id == request_id).first()

    @staticmethod
    def list_change_requests(
        db: Session, doctor_id: Optional[int] = None, status: Optional[str] = None
    ) -> list[ScheduleChangeRequest]:
        query = db.query(ScheduleChangeRequest)
        if doctor_id is not None:
            query = query.filter(ScheduleChangeRequest.doctor_id == doctor_id)
        if status:
            query = query.filter(ScheduleChangeRequest.status == status)
        return query.order_by(ScheduleChangeRequest.created_at.desc(), ScheduleChangeRequest.id.desc()).all()

    @staticmethod
    def save(db: Session, obj):
        db.commit()
        db.refresh(obj)
        return obj

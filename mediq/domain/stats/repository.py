"""Stats repository - cached stats rows and the aggregate queries behind them"""

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import User
from ...models_queue import Token
from ...models_schedule import DoctorSchedule
from ...models_stats import DoctorStats
from ...shared.upsert import upsert


class StatsRepository:
    @staticmethod
    def get(db: Session, doctor_id: int) -> Optional[DoctorStats]:
        return db.query(DoctorStats).filter(DoctorStats.doctor_id == doctor_id).first()

    @staticmethod
    def replace(db: Session, doctor_id: int, values: dict) -> None:
        """Overwrite the whole row in one statement"""
        upsert(db, DoctorStats, {"doctor_id": doctor_id, **values}, ["doctor_id"])
        db.commit()

    @staticmethod
    def delete(db: Session, doctor_id: int) -> int:
        deleted = db.query(DoctorStats).filter(DoctorStats.doctor_id == doctor_id).delete(synchronize_session=False)
        db.commit()
        return deleted

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == doctor_id, User.role == "doctor").first()

    @staticmethod
    def status_counts(
        db: Session, doctor_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> dict[str, int]:
        query = db.query(Token.status, func.count(Token.id)).filter(Token.doctor_id == doctor_id)
        if start:
            query = query.filter(Token.booking_date >= start)
        if end:
            query = query.filter(Token.booking_date <= end)
        return {status: count for status, count in query.group_by(Token.status).all()}

    @staticmethod
    def paid_consultations(db: Session, doctor_id: int, start: date, end: date) -> int:
        return (
            db.query(func.count(Token.id))
            .filter(
                Token.doctor_id == doctor_id,
                Token.booking_date >= start,
                Token.booking_date <= end,
                Token.status == "consulted",
                Token.payment_status == "paid",
            )
            .scalar()
            or 0
        )

    @staticmethod
    def unique_patients(db: Session, doctor_id: int) -> int:
        return db.query(func.count(func.distinct(Token.patient_id))).filter(Token.doctor_id == doctor_id).scalar() or 0

    @staticmethod
    def schedule_day_counts(db: Session, doctor_id: int, start: date, end: date) -> dict[bool, int]:
        rows = (
            db.query(DoctorSchedule.is_available, func.count(DoctorSchedule.id))
            .filter(
                DoctorSchedule.doctor_id == doctor_id,
                DoctorSchedule.date >= start,
                DoctorSchedule.date <= end,
            )
            .group_by(DoctorSchedule.is_available)
            .all()
        )
        return {bool(available): count for available, count in rows}

    @staticmethod
    def daily_status_counts(db: Session, doctor_id: int, start: date, end: date) -> list[tuple[date, str, int]]:
        return (
            db.query(Token.booking_date, Token.status, func.count(Token.id))
            .filter(Token.doctor_id == doctor_id, Token.booking_date >= start, Token.booking_date <= end)
            .group_by(Token.booking_date, Token.status)
            .order_by(Token.booking_date.asc())
            .all()
        )

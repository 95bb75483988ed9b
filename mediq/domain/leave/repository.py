"""Leave repository - Database operations for leave requests"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models_schedule import LeaveRequest

BLOCKING_STATUSES = ("pending", "approved")


class LeaveRepository:
    @staticmethod
    def find_overlapping(db: Session, doctor_id: int, start: date, end: date) -> Optional[LeaveRequest]:
        """Pending or approved leave intersecting the closed range [start, end]"""
        return (
            db.query(LeaveRequest)
            .filter(
                LeaveRequest.doctor_id == doctor_id,
                LeaveRequest.status.in_(BLOCKING_STATUSES),
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
            .first()
        )

    @staticmethod
    def create(db: Session, **data) -> LeaveRequest:
        leave = LeaveRequest(**data)
        db.add(leave)
        db.commit()
        db.refresh(leave)
        return leave

    @staticmethod
    def get(db: Session, leave_id: int) -> Optional[LeaveRequest]:
        return db.query(LeaveRequest).filter(LeaveRequest.id == leave_id).first()

    @staticmethod
    def get_pending_for_doctor(db: Session, leave_id: int, doctor_id: int) -> Optional[LeaveRequest]:
        return (
            db.query(LeaveRequest)
            .filter(
                LeaveRequest.id == leave_id,
                LeaveRequest.doctor_id == doctor_id,
                LeaveRequest.status == "pending",
            )
            .first()
        )

    @staticmethod
    def list(db: Session, doctor_id: Optional[int] = None, status: Optional[str] = None) -> list[LeaveRequest]:
        query = db.query(LeaveRequest)
        if doctor_id is not None:
            query = query.filter(LeaveRequest.doctor_id == doctor_id)
        if status:
            query = query.filter(LeaveRequest.status == status)
        return query.order_by(LeaveRequest.start_date.desc(), LeaveRequest.created_at.desc()).all()

    @staticmethod
    def save(db: Session, leave: LeaveRequest) -> LeaveRequest:
        db.commit()
        db.refresh(leave)
        return leave

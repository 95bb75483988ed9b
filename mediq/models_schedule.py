"""
Availability Models - per-day doctor schedules, leave requests and schedule change requests
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .database import Base


class DoctorSchedule(Base):
    """Working hours and availability of one doctor on one calendar date"""

    __tablename__ = "doctor_schedules"
    __table_args__ = (
        UniqueConstraint("doctor_id", "date", name="uq_schedule_doctor_date"),
        Index("ix_schedules_doctor_available", "doctor_id", "is_available"),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    working_start = Column(String(5), default="09:00", nullable=False)  # HH:MM
    working_end = Column(String(5), default="17:00", nullable=False)
    break_start = Column(String(5), default="13:00", nullable=True)
    break_end = Column(String(5), default="14:00", nullable=True)
    slot_duration = Column(Integer, default=30, nullable=False)  # minutes
    max_patients_per_slot = Column(Integer, default=20, nullable=False)

    leave_reason = Column(Text, default="", nullable=True)
    notes = Column(Text, default="", nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class LeaveRequest(Base):
    """Doctor-submitted leave, reviewed by an administrator"""

    __tablename__ = "leave_requests"
    __table_args__ = (
        Index("ix_leave_doctor_range", "doctor_id", "start_date", "end_date"),
        Index("ix_leave_doctor_status", "doctor_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    leave_type = Column(String(20), default="full_day", nullable=False)  # full_day, half_day
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # Inclusive; equals start_date for half_day
    session = Column(String(20), default="morning", nullable=False)  # morning, afternoon (half_day only)
    reason = Column(Text, default="", nullable=True)

    # pending → approved | rejected (admin) or cancelled (doctor, only while pending)
    status = Column(String(20), default="pending", nullable=False, index=True)
    admin_comment = Column(Text, default="", nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(20), nullable=True)  # doctor, admin

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ScheduleChangeRequest(Base):
    """Doctor request to cancel or reschedule an existing schedule day"""

    __tablename__ = "schedule_change_requests"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    request_type = Column(String(20), nullable=False)  # cancel, reschedule
    schedule_id = Column(Integer, ForeignKey("doctor_schedules.id"), nullable=False)
    reason = Column(Text, nullable=False)
    date = Column(Date, nullable=True)
    new_schedule = Column(JSON, nullable=True)

    status = Column(String(20), default="pending", nullable=False, index=True)  # pending, approved, rejected
    admin_comment = Column(Text, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

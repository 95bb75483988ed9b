"""
Token Queue Models - one row per booked visit
"""

from sqlalchemy import (
    JSON,
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
from sqlalchemy.ext.mutable import MutableDict
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Token(Base):
    """A patient-doctor booking for a specific date and time slot"""

    __tablename__ = "tokens"
    __table_args__ = (
        UniqueConstraint("doctor_id", "booking_date", "token_number", name="uq_token_number_per_day"),
        Index("ix_tokens_doctor_date", "doctor_id", "booking_date"),
        Index("ix_tokens_doctor_date_status", "doctor_id", "booking_date", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    token_number = Column(String(20), nullable=False)  # Display sequence, unique per doctor/day

    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    family_member_id = Column(Integer, nullable=True)  # Booked on behalf of a family member
    family_member_name = Column(String(255), nullable=True)

    booking_date = Column(Date, nullable=False)
    time_slot = Column(String(5), nullable=False)  # HH:MM format

    # Status workflow: booked → in_queue → consulted
    # booked | in_queue → missed | cancelled | cancelled_by_hospital | referred
    # See services/status_automation.py for the transition table
    status = Column(String(30), default="booked", nullable=False, index=True)

    appointment_type = Column(String(20), default="consultation", nullable=False)  # consultation, video
    symptoms = Column(Text, nullable=True)
    payment_status = Column(String(20), default="pending", nullable=False)  # pending, paid, refunded

    # Consultation tracking
    consultation_started_at = Column(DateTime, nullable=True)
    consultation_completed_at = Column(DateTime, nullable=True)
    no_show_at = Column(DateTime, nullable=True)
    consultation_notes = Column(Text, nullable=True)
    diagnosis = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    referred_doctor_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Cancellation metadata
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(20), nullable=True)  # doctor, admin, system

    # Queue ordering - each skip pushes the token behind unskipped ones
    queue_priority = Column(Integer, default=0, nullable=False)
    skipped_at = Column(DateTime, nullable=True)

    # Video visits: meetingId, meetingUrl, provider, doctorJoined, doctorJoinedAt, meetingEnded, meetingEndedAt
    meeting_link = Column(MutableDict.as_mutable(JSON), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("User", foreign_keys=[doctor_id])
    patient = relationship("User", foreign_keys=[patient_id])

    @property
    def patient_display_name(self) -> str:
        if self.family_member_name:
            return self.family_member_name
        return self.patient.full_name if self.patient else "Patient"

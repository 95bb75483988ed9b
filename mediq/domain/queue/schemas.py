"""Queue domain schemas - Pydantic models for validation"""

from datetime import date as date_type, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...services.status_automation import TOKEN_TRANSITIONS


def _check_status(v: str) -> str:
    if v not in TOKEN_TRANSITIONS:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(TOKEN_TRANSITIONS)}")
    return v


class TokenAction(BaseModel):
    """Body of the start / skip / no-show consultation actions"""

    tokenId: int


class CompleteConsultation(BaseModel):
    tokenId: int
    notes: Optional[str] = None
    diagnosis: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None
    referredDoctorId: Optional[int] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_status(v)


class BatchStatusUpdate(BaseModel):
    appointmentIds: list[int]
    status: str
    notes: Optional[str] = None

    @field_validator("appointmentIds")
    @classmethod
    def validate_ids(cls, v):
        if not v:
            raise ValueError("Appointment IDs are required")
        return list(dict.fromkeys(v))

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_status(v)


class TokenResponse(BaseModel):
    id: int
    token_number: str
    doctor_id: int
    patient_id: int
    patient_name: Optional[str] = None
    booking_date: date_type
    time_slot: str
    status: str
    appointment_type: str
    symptoms: Optional[str] = None
    payment_status: str
    queue_priority: int = 0
    consultation_started_at: Optional[datetime] = None
    consultation_completed_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None
    consultation_notes: Optional[str] = None
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    referred_doctor_id: Optional[int] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    skipped_at: Optional[datetime] = None
    meeting_link: Optional[dict] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_token(cls, token) -> "TokenResponse":
        response = cls.model_validate(token)
        response.patient_name = token.patient_display_name
        return response


class QueueSession(BaseModel):
    id: str
    name: str
    range: str
    queue: list[TokenResponse]


class TodayQueueResponse(BaseModel):
    date: date_type
    sessions: list[QueueSession]


class NextPatientResponse(BaseModel):
    next: Optional[TokenResponse] = None


class AppointmentListResponse(BaseModel):
    appointments: list[TokenResponse]
    totalPages: int
    currentPage: int
    totalAppointments: int

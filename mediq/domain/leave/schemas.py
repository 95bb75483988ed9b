"""Leave domain schemas"""

from datetime import date as date_type, datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class LeaveRequestCreate(BaseModel):
    """
    Doctor leave submission. The legacy single-day payload {date, reason}
    is still accepted and treated as a full-day leave.
    """

    leave_type: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    session: Optional[str] = None
    reason: Optional[str] = ""
    date: Optional[str] = None

    @field_validator("leave_type")
    @classmethod
    def validate_leave_type(cls, v):
        if v is not None and v not in ("full_day", "half_day"):
            raise ValueError("leave_type must be 'full_day' or 'half_day'")
        return v

    @field_validator("session")
    @classmethod
    def validate_session(cls, v):
        if v is not None and v not in ("morning", "afternoon"):
            raise ValueError("session must be 'morning' or 'afternoon'")
        return v


class LeaveReview(BaseModel):
    admin_comment: Optional[str] = None


class LeaveRequestResponse(BaseModel):
    id: int
    doctor_id: int
    leave_type: str
    start_date: date_type
    end_date: date_type
    session: str
    reason: Optional[str] = None
    status: str
    admin_comment: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

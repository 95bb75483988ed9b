"""Availability domain schemas - Pydantic models for validation"""

import re
from datetime import date as date_type, datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class TimeRange(BaseModel):
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v):
        if not TIME_PATTERN.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v

    @model_validator(mode="after")
    def validate_order(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class ScheduleFields(BaseModel):
    """Editable fields of a schedule day; omitted fields keep their stored value"""

    isAvailable: Optional[bool] = None
    workingHours: Optional[TimeRange] = None
    breakTime: Optional[TimeRange] = None
    slotDuration: Optional[int] = None
    maxPatientsPerSlot: Optional[int] = None
    leaveReason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("slotDuration")
    @classmethod
    def validate_slot_duration(cls, v):
        if v is not None and not 5 <= v <= 240:
            raise ValueError("slotDuration must be between 5 and 240 minutes")
        return v

    @field_validator("maxPatientsPerSlot")
    @classmethod
    def validate_max_patients(cls, v):
        if v is not None and v < 1:
            raise ValueError("maxPatientsPerSlot must be at least 1")
        return v

    def to_columns(self) -> dict:
        """Provided fields mapped to DoctorSchedule columns"""
        columns = {}
        if self.isAvailable is not None:
            columns["is_available"] = self.isAvailable
        if self.workingHours is not None:
            columns["working_start"] = self.workingHours.start_time
            columns["working_end"] = self.workingHours.end_time
        if self.breakTime is not None:
            columns["break_start"] = self.breakTime.start_time
            columns["break_end"] = self.breakTime.end_time
        if self.slotDuration is not None:
            columns["slot_duration"] = self.slotDuration
        if self.maxPatientsPerSlot is not None:
            columns["max_patients_per_slot"] = self.maxPatientsPerSlot
        if self.leaveReason is not None:
            columns["leave_reason"] = self.leaveReason
        if self.notes is not None:
            columns["notes"] = self.notes
        return columns


class ScheduleUpsert(ScheduleFields):
    date: str


class BulkScheduleUpsert(ScheduleFields):
    startDate: str
    endDate: str


class ScheduleResponse(BaseModel):
    id: int
    doctorId: int
    date: date_type
    isAvailable: bool
    workingHours: TimeRange
    breakTime: Optional[TimeRange] = None
    slotDuration: int
    maxPatientsPerSlot: int
    leaveReason: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_schedule(cls, schedule) -> "ScheduleResponse":
        break_time = None
        if schedule.break_start and schedule.break_end:
            break_time = TimeRange(start_time=schedule.break_start, end_time=schedule.break_end)
        return cls(
            id=schedule.id,
            doctorId=schedule.doctor_id,
            date=schedule.date,
            isAvailable=schedule.is_available,
            workingHours=TimeRange(start_time=schedule.working_start, end_time=schedule.working_end),
            breakTime=break_time,
            slotDuration=schedule.slot_duration,
            maxPatientsPerSlot=schedule.max_patients_per_slot,
            leaveReason=schedule.leave_reason,
            notes=schedule.notes,
        )


class AvailabilityResponse(BaseModel):
    isAvailable: bool
    workingHours: Optional[TimeRange] = None
    breakTime: Optional[TimeRange] = None
    slotDuration: Optional[int] = None
    leaveReason: Optional[str] = None
    notes: Optional[str] = None
    blockedSessions: list[str] = []


class ScheduleChangeRequestCreate(BaseModel):
    type: str
    scheduleId: int
    reason: str
    date: Optional[str] = None
    newSchedule: Optional[ScheduleFields] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v not in ("cancel", "reschedule"):
            raise ValueError("type must be 'cancel' or 'reschedule'")
        return v

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if not v or not v.strip():
            raise ValueError("reason is required")
        return v.strip()

    @model_validator(mode="after")
    def validate_new_schedule(self):
        if self.type == "reschedule" and (self.newSchedule is None or not self.newSchedule.to_columns()):
            raise ValueError("newSchedule is required for reschedule requests")
        return self


class ScheduleChangeReview(BaseModel):
    adminComment: Optional[str] = None


class ScheduleChangeRequestResponse(BaseModel):
    id: int
    doctor_id: int
    request_type: str
    schedule_id: int
    reason: str
    date: Optional[date_type] = None
    new_schedule: Optional[dict] = None
    status: str
    admin_comment: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

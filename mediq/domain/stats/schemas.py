"""Stats domain schemas"""

from datetime import date as date_type, datetime

from pydantic import BaseModel


class DoctorStatsResponse(BaseModel):
    doctor_id: int
    today_appointments: int
    today_completed: int
    today_cancelled: int
    today_pending: int
    month_appointments: int
    month_completed: int
    month_revenue: float
    total_patients: int
    total_appointments: int
    total_completed: int
    working_days_this_month: int
    leave_days_this_month: int
    last_calculated: datetime
    cache_expires_at: datetime

    class Config:
        from_attributes = True


class TrendPoint(BaseModel):
    date: date_type
    total: int
    consulted: int
    cancelled: int
    missed: int
    pending: int

"""
Doctor statistics cache - derived from tokens and schedules, never edited by hand
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer

from .database import Base


class DoctorStats(Base):
    __tablename__ = "doctor_stats"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # Daily stats
    today_appointments = Column(Integer, default=0, nullable=False)
    today_completed = Column(Integer, default=0, nullable=False)
    today_cancelled = Column(Integer, default=0, nullable=False)
    today_pending = Column(Integer, default=0, nullable=False)

    # Monthly stats
    month_appointments = Column(Integer, default=0, nullable=False)
    month_completed = Column(Integer, default=0, nullable=False)
    month_revenue = Column(Float, default=0, nullable=False)

    # Overall stats
    total_patients = Column(Integer, default=0, nullable=False)
    total_appointments = Column(Integer, default=0, nullable=False)
    total_completed = Column(Integer, default=0, nullable=False)

    # Availability stats
    working_days_this_month = Column(Integer, default=0, nullable=False)
    leave_days_this_month = Column(Integer, default=0, nullable=False)

    last_calculated = Column(DateTime, nullable=False)
    cache_expires_at = Column(DateTime, nullable=False, index=True)

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        """Stats are stale once the validity window has passed"""
        return (now or datetime.now()) > self.cache_expires_at

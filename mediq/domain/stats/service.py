"""
Stats service - per-doctor dashboard counters

Rows are a read-through cache: get_stats() serves the stored row while it is
inside its validity window and recomputes it synchronously once it has expired
or been invalidated. A recompute always replaces the whole row.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_CONSULTATION_FEE, STATS_CACHE_TTL_SECONDS
from ...models_stats import DoctorStats
from ...services.status_automation import ACTIVE_STATUSES, CANCELLED_STATUSES
from ...shared.dates import month_bounds
from .repository import StatsRepository

logger = logging.getLogger(__name__)


def _summarize(counts: dict[str, int]) -> dict[str, int]:
    return {
        "total": sum(counts.values()),
        "completed": counts.get("consulted", 0),
        "cancelled": sum(counts.get(s, 0) for s in CANCELLED_STATUSES),
        "pending": sum(counts.get(s, 0) for s in ACTIVE_STATUSES),
        "missed": counts.get("missed", 0),
    }


class StatsService:
    """Service layer for the doctor stats cache"""

    def __init__(self, db: Session, ttl_seconds: int = STATS_CACHE_TTL_SECONDS):
        self.db = db
        self.repo = StatsRepository()
        self.ttl = timedelta(seconds=ttl_seconds)

    def get_stats(self, doctor_id: int, now: Optional[datetime] = None) -> DoctorStats:
        now = now or datetime.now()
        stats = self.repo.get(self.db, doctor_id)
        if stats and not stats.needs_refresh(now):
            logger.debug(f"✅ Stats cache HIT for doctor {doctor_id}")
            return stats

        logger.debug(f"❌ Stats cache MISS for doctor {doctor_id}")
        return self.refresh_stats(doctor_id, now)

    def refresh_stats(self, doctor_id: int, now: Optional[datetime] = None) -> DoctorStats:
        now = now or datetime.now()
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise HTTPException(status_code=404, detail="Doctor not found")

        values = self.compute(doctor_id, now, doctor.consultation_fee)
        self.repo.replace(self.db, doctor_id, values)

        stats = self.repo.get(self.db, doctor_id)
        # The upsert bypasses the identity map
        self.db.refresh(stats)
        logger.info(f"📊 Stats recalculated for doctor {doctor_id}")
        return stats

    def compute(self, doctor_id: int, now: datetime, consultation_fee: Optional[float] = None) -> dict:
        today = now.date()
        month_start, month_end = month_bounds(today)
        fee = consultation_fee if consultation_fee is not None else DEFAULT_CONSULTATION_FEE

        today_counts = _summarize(self.repo.status_counts(self.db, doctor_id, today, today))
        month_counts = _summarize(self.repo.status_counts(self.db, doctor_id, month_start, month_end))
        total_counts = _summarize(self.repo.status_counts(self.db, doctor_id))
        days = self.repo.schedule_day_counts(self.db, doctor_id, month_start, month_end)

        return {
            "today_appointments": today_counts["total"],
            "today_completed": today_counts["completed"],
            "today_cancelled": today_counts["cancelled"],
            "today_pending": today_counts["pending"],
            "month_appointments": month_counts["total"],
            "month_completed": month_counts["completed"],
            "month_revenue": float(self.repo.paid_consultations(self.db, doctor_id, month_start, month_end) * fee),
            "total_patients": self.repo.unique_patients(self.db, doctor_id),
            "total_appointments": total_counts["total"],
            "total_completed": total_counts["completed"],
            "working_days_this_month": days.get(True, 0),
            "leave_days_this_month": days.get(False, 0),
            "last_calculated": now,
            "cache_expires_at": now + self.ttl,
        }

    def invalidate(self, doctor_id: int) -> bool:
        """Drop the cached row; the next read recomputes it"""
        deleted = self.repo.delete(self.db, doctor_id)
        if deleted:
            logger.debug(f"🗑️ Stats cache invalidated for doctor {doctor_id}")
        return bool(deleted)

    def appointment_trends(self, doctor_id: int, days: int = 30, today: Optional[date] = None) -> list[dict]:
        if days < 1 or days > 365:
            raise HTTPException(status_code=400, detail="days must be between 1 and 365")

        end = today or date.today()
        start = end - timedelta(days=days - 1)

        per_day: dict[date, dict[str, int]] = {}
        for day, status, count in self.repo.daily_status_counts(self.db, doctor_id, start, end):
            per_day.setdefault(day, {})[status] = count

        trends = []
        current = start
        while current <= end:
            summary = _summarize(per_day.get(current, {}))
            trends.append(
                {
                    "date": current,
                    "total": summary["total"],
                    "consulted": summary["completed"],
                    "cancelled": summary["cancelled"],
                    "missed": summary["missed"],
                    "pending": summary["pending"],
                }
            )
            current += timedelta(days=1)
        return trends


def invalidate_doctor_stats(db: Session, doctor_id: int) -> bool:
    """Side-effect entry point used after token and schedule mutations"""
    return StatsService(db).invalidate(doctor_id)

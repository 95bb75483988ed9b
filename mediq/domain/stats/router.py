"""Stats router - doctor dashboard counters and trends"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin, require_doctor
from ...database import get_db
from ...models import User
from .schemas import DoctorStatsResponse, TrendPoint
from .service import StatsService

router = APIRouter(prefix="/doctor", tags=["Doctor Stats"])
admin_router = APIRouter(prefix="/admin", tags=["Admin Stats"])


def get_stats_service(db: Session = Depends(get_db)) -> StatsService:
    """Dependency injection for StatsService"""
    return StatsService(db)


@router.get("/stats", response_model=DoctorStatsResponse)
async def get_my_stats(
    refresh: bool = Query(False),
    current_user: User = Depends(require_doctor),
    service: StatsService = Depends(get_stats_service),
):
    """Cached dashboard stats; ?refresh=true forces a recompute"""
    if refresh:
        return service.refresh_stats(current_user.id)
    return service.get_stats(current_user.id)


@router.get("/analytics/trends", response_model=list[TrendPoint])
async def get_trends(
    days: int = Query(30),
    current_user: User = Depends(require_doctor),
    service: StatsService = Depends(get_stats_service),
):
    return service.appointment_trends(current_user.id, days)


@admin_router.get("/doctors/{doctor_id}/stats", response_model=DoctorStatsResponse)
async def get_doctor_stats(
    doctor_id: int,
    refresh: bool = Query(False),
    current_user: User = Depends(require_admin),
    service: StatsService = Depends(get_stats_service),
):
    if refresh:
        return service.refresh_stats(doctor_id)
    return service.get_stats(doctor_id)

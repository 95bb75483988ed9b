"""
Notification routes - dashboard notifications for the signed-in user
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..services.notification_service import list_notifications, mark_read

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    type: str
    priority: str
    read: bool
    read_at: Optional[datetime] = None
    related_id: Optional[int] = None
    related_type: Optional[str] = None
    metadata: Optional[dict] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_notification(cls, notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            title=notification.title,
            message=notification.message,
            type=notification.type,
            priority=notification.priority,
            read=notification.read,
            read_at=notification.read_at,
            related_id=notification.related_id,
            related_type=notification.related_type,
            metadata=notification.extra,
            created_at=notification.created_at,
        )


@router.get("", response_model=list[NotificationResponse])
async def get_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [NotificationResponse.from_notification(n) for n in list_notifications(db, current_user, unread_only, limit)]


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = mark_read(db, current_user, notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationResponse.from_notification(notification)

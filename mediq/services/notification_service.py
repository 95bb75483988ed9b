"""
In-app notification service
Persists dashboard notifications for doctors, patients and admins
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Notification, User

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("appointment", "leave_request", "schedule_change", "system", "payment", "cancellation")
PRIORITIES = ("low", "normal", "high", "urgent")


def create_notification(
    db: Session,
    recipient_id: int,
    recipient_type: str,
    title: str,
    message: str,
    type: str = "system",
    priority: str = "normal",
    related_id: Optional[int] = None,
    related_type: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Notification:
    """
    Create a notification for one recipient

    Raises:
        ValueError: Unknown type or priority
    """
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Invalid notification type: {type}")
    if priority not in PRIORITIES:
        raise ValueError(f"Invalid notification priority: {priority}")

    notification = Notification(
        recipient_id=recipient_id,
        recipient_type=recipient_type,
        title=title,
        message=message,
        type=type,
        priority=priority,
        related_id=related_id,
        related_type=related_type,
        extra=metadata or {},
    )
    try:
        db.add(notification)
        db.commit()
        db.refresh(notification)
        logger.info(f"🔔 Notification '{title}' created for {recipient_type} {recipient_id}")
        return notification
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to create notification for {recipient_type} {recipient_id}: {e}")
        raise


def notify_admins(
    db: Session,
    title: str,
    message: str,
    type: str = "system",
    priority: str = "normal",
    related_id: Optional[int] = None,
    related_type: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> int:
    """Create the same notification for every active admin; returns how many were created"""
    admins = db.query(User).filter(User.role == "admin", User.is_active.is_(True)).all()
    for admin in admins:
        create_notification(
            db,
            recipient_id=admin.id,
            recipient_type="admin",
            title=title,
            message=message,
            type=type,
            priority=priority,
            related_id=related_id,
            related_type=related_type,
            metadata=metadata,
        )
    return len(admins)


def notify_cancelled_patients(db: Session, tokens: list, reason: str, doctor_name: str) -> int:
    """One high-priority cancellation notice per affected token"""
    created = 0
    for token in tokens:
        create_notification(
            db,
            recipient_id=token.patient_id,
            recipient_type="patient",
            title="Appointment Cancelled",
            message=(
                f"Your appointment with Dr. {doctor_name} on {token.booking_date.isoformat()} "
                f"at {token.time_slot} has been cancelled. Reason: {reason}"
            ),
            type="cancellation",
            priority="high",
            related_id=token.id,
            related_type="appointment",
            metadata={"doctorId": token.doctor_id, "date": token.booking_date.isoformat(), "reason": reason},
        )
        created += 1
    return created


def list_notifications(db: Session, user: User, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.query(Notification).filter(Notification.recipient_id == user.id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(db: Session, user: User, notification_id: int) -> Optional[Notification]:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.recipient_id == user.id)
        .first()
    )
    if not notification:
        return None
    if not notification.read:
        notification.read = True
        notification.read_at = datetime.now()
        db.commit()
        db.refresh(notification)
    return notification

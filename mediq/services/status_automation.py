"""
Token status machine and automated status transitions

Token statuses: booked → in_queue → consulted
                booked | in_queue → missed | cancelled | cancelled_by_hospital | referred
Handles the automatic no-show cancellation of tokens whose session or day has passed
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class TokenStatus(str, Enum):
    BOOKED = "booked"
    IN_QUEUE = "in_queue"
    CONSULTED = "consulted"
    MISSED = "missed"
    CANCELLED = "cancelled"
    CANCELLED_BY_HOSPITAL = "cancelled_by_hospital"
    REFERRED = "referred"


ACTIVE_STATUSES = (TokenStatus.BOOKED.value, TokenStatus.IN_QUEUE.value)
TERMINAL_STATUSES = (
    TokenStatus.CONSULTED.value,
    TokenStatus.MISSED.value,
    TokenStatus.CANCELLED.value,
    TokenStatus.CANCELLED_BY_HOSPITAL.value,
    TokenStatus.REFERRED.value,
)
CANCELLED_STATUSES = (TokenStatus.CANCELLED.value, TokenStatus.CANCELLED_BY_HOSPITAL.value)

# Terminal states have no outgoing edges
TOKEN_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "booked": ("in_queue", "consulted", "missed", "cancelled", "cancelled_by_hospital", "referred"),
    "in_queue": ("consulted", "missed", "cancelled", "cancelled_by_hospital", "referred"),
    "consulted": (),
    "missed": (),
    "cancelled": (),
    "cancelled_by_hospital": (),
    "referred": (),
}

PAST_DAY_REASON = "No-show: Automatically cancelled - appointment date has passed"
SESSION_END_REASON = "No-show: Automatically cancelled after session end"


def validate_token_transition(current_status: str, new_status: str) -> bool:
    """
    Validate if a token status transition is allowed

    Re-entering the current status is rejected: completing an already
    consulted token must not re-stamp it.

    Args:
        current_status: Current token status
        new_status: Desired new status

    Returns:
        bool: True if transition is valid, False otherwise
    """
    return new_status in TOKEN_TRANSITIONS.get(current_status, ())


def sources_for(new_status: str) -> list[str]:
    """Statuses from which new_status can be reached (used by bulk match-and-set updates)"""
    return [current for current, targets in TOKEN_TRANSITIONS.items() if new_status in targets]


def expire_stale_tokens(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Cancel tokens nobody showed up for
    Should be run as a scheduled job (see worker.py cron jobs)

    1. Active tokens from previous days
    2. Today's still-booked tokens whose session has ended (morning 13:00, afternoon 18:00)

    Returns:
        dict: Summary with affected token ids per rule and per doctor
    """
    from ..domain.queue.sessions import session_has_ended
    from ..models_queue import Token

    now = now or datetime.now()
    today = now.date()
    current_time = now.strftime("%H:%M")

    summary = {"previous_days": 0, "session_ended": 0, "total_updated": 0, "doctor_ids": [], "tokens": [], "previous": {}}

    try:
        stale = (
            db.query(Token)
            .filter(Token.booking_date < today, Token.status.in_(ACTIVE_STATUSES))
            .all()
        )
        for token in stale:
            summary["previous"][token.id] = token.status
            _auto_cancel(token, PAST_DAY_REASON, now)
            summary["previous_days"] += 1
            summary["tokens"].append(token)
            logger.info(f"🚫 Token {token.id} from {token.booking_date} auto-cancelled (date passed)")

        booked_today = (
            db.query(Token)
            .filter(Token.booking_date == today, Token.status == TokenStatus.BOOKED.value)
            .all()
        )
        for token in booked_today:
            if session_has_ended(token.time_slot, current_time):
                summary["previous"][token.id] = token.status
                _auto_cancel(token, SESSION_END_REASON, now)
                summary["session_ended"] += 1
                summary["tokens"].append(token)
                logger.info(f"🚫 Token {token.id} at {token.time_slot} auto-cancelled (session ended)")

        total = summary["previous_days"] + summary["session_ended"]
        if total > 0:
            db.commit()
            summary["total_updated"] = total
            summary["doctor_ids"] = sorted({t.doctor_id for t in summary["tokens"]})
            logger.info(
                f"📊 Stale token summary: previous_days={summary['previous_days']}, "
                f"session_ended={summary['session_ended']}"
            )
        else:
            logger.debug("ℹ️ No stale tokens to cancel")

        return summary

    except Exception as e:
        logger.error(f"❌ Error expiring stale tokens: {str(e)}")
        db.rollback()
        raise


def _auto_cancel(token, reason: str, now: datetime) -> None:
    token.status = TokenStatus.CANCELLED.value
    token.cancellation_reason = reason
    token.cancelled_at = now
    token.cancelled_by = "system"

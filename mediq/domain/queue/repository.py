"""Queue repository - Database operations for tokens"""

from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from ...models_queue import Token
from ...services.status_automation import ACTIVE_STATUSES


class QueueRepository:
    """Repository for token database operations"""

    @staticmethod
    def get_doctor_token(db: Session, token_id: int, doctor_id: int) -> Optional[Token]:
        """A token only exists for the doctor it was booked with"""
        return db.query(Token).filter(Token.id == token_id, Token.doctor_id == doctor_id).first()

    @staticmethod
    def tokens_for_day(db: Session, doctor_id: int, day: date) -> list[Token]:
        return (
            db.query(Token)
            .options(joinedload(Token.patient))
            .filter(Token.doctor_id == doctor_id, Token.booking_date == day)
            .order_by(Token.time_slot.asc(), Token.created_at.asc(), Token.id.asc())
            .all()
        )

    @staticmethod
    def next_active(db: Session, doctor_id: int, day: date) -> Optional[Token]:
        """Skipped tokens (higher queue_priority) sort behind everyone else"""
        return (
            db.query(Token)
            .options(joinedload(Token.patient))
            .filter(
                Token.doctor_id == doctor_id,
                Token.booking_date == day,
                Token.status.in_(ACTIVE_STATUSES),
            )
            .order_by(
                Token.queue_priority.asc(),
                Token.status.asc(),
                Token.time_slot.asc(),
                Token.created_at.asc(),
                Token.id.asc(),
            )
            .first()
        )

    @staticmethod
    def list_tokens(
        db: Session,
        doctor_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Token], int]:
        query = db.query(Token).filter(Token.doctor_id == doctor_id)
        if start:
            query = query.filter(Token.booking_date >= start)
        if end:
            query = query.filter(Token.booking_date <= end)
        if status:
            query = query.filter(Token.status == status)

        total = query.count()
        tokens = (
            query.options(joinedload(Token.patient))
            .order_by(Token.booking_date.desc(), Token.time_slot.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return tokens, total

    @staticmethod
    def save(db: Session, token: Token) -> Token:
        db.commit()
        db.refresh(token)
        return token

    @staticmethod
    def match_and_set(
        db: Session,
        token_ids: list[int],
        from_statuses: list[str],
        values: dict,
        doctor_id: Optional[int] = None,
    ) -> int:
        """
        Single UPDATE over the given ids whose status is one of from_statuses.
        Rows that do not match are left alone. Returns the number of rows changed.
        """
        if not token_ids or not from_statuses:
            return 0

        stmt = update(Token).where(Token.id.in_(token_ids), Token.status.in_(from_statuses))
        if doctor_id is not None:
            stmt = stmt.where(Token.doctor_id == doctor_id)

        result = db.execute(stmt.values(**values).execution_options(synchronize_session="fetch"))
        db.commit()
        return result.rowcount

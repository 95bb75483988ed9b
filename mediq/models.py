from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    # admin, doctor, patient, receptionist
    role = Column(String(20), nullable=False, index=True)
    specialization = Column(String(255), nullable=True)  # Doctors only
    consultation_fee = Column(Float, nullable=True)  # Doctors only - falls back to DEFAULT_CONSULTATION_FEE
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Notification(Base):
    """In-app notification shown on the recipient's dashboard"""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recipient_type = Column(String(20), nullable=False)  # doctor, patient, admin, receptionist
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    # appointment, leave_request, schedule_change, system, payment, cancellation
    type = Column(String(30), nullable=False, index=True)
    priority = Column(String(10), default="normal", nullable=False)  # low, normal, high, urgent
    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    # Reference to related entities
    related_id = Column(Integer, nullable=True)
    related_type = Column(String(30), nullable=True)  # appointment, leave_request, schedule, payment
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSON, default=dict, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), index=True)

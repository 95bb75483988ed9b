import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .config import JWT_ALGORITHM, SECRET_KEY
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ROLES = ("admin", "doctor", "patient", "receptionist")


def create_access_token(user_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a signed bearer token (used by the login service and by tests)"""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=12))
    to_encode = {"sub": str(user_id), "role": role, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a bearer token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"⚠️ JWT verification failed: {e}")
        return None


def resolve_user(db: Session, token: str) -> User:
    """Map a verified token to an active user row"""
    payload = decode_access_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    try:
        user = db.query(User).filter(User.id == int(user_id)).first()
    except ValueError as e:
        raise HTTPException(status_code=401, detail="Invalid token claims") from e

    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    if payload.get("role") and payload["role"] != user.role:
        logger.warning(f"⚠️ Role claim mismatch for user {user.id}: {payload['role']} != {user.role}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the bearer token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )
    return resolve_user(db, credentials.credentials)


async def require_doctor(user: User = Depends(get_current_user)) -> User:
    if user.role != "doctor":
        logger.warning(f"⚠️ User {user.id} ({user.role}) attempted a doctor-only action")
        raise HTTPException(status_code=403, detail="Access denied. Doctor role required.")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        logger.warning(f"⚠️ User {user.id} ({user.role}) attempted an admin-only action")
        raise HTTPException(status_code=403, detail="Access denied. Admin role required.")
    return user

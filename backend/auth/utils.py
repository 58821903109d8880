from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import settings
from db.database import get_db
from db.models import User
from services.rate_limit_service import InMemoryRateLimiter, api_rule, enforce_rate_limit, get_rate_limiter, user_scope

security = HTTPBearer(auto_error=False)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_token(user_id: int, token_version: int = 0, expiry_hours: int | None = None) -> str:
    hours = int(expiry_hours) if expiry_hours is not None else settings.JWT_EXPIRY_HOURS
    payload = {
        "sub": str(user_id),
        "tv": int(token_version or 0),
        "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    token_payload = decode_token(credentials.credentials)
    try:
        user_id = int(token_payload.get("sub", 0))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
    if int(token_payload.get("tv", 0)) != int(user.token_version or 0):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session invalidated. Please sign in again.")
    request.state.user_id = user.id
    return user


def too_many_requests(retry_after: int, message: str = "Too many requests. Please try again later.") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=message,
        headers={"Retry-After": str(retry_after)},
    )


def get_current_user_id(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
) -> int:
    """Resolve the caller's id and apply the per-user API rate limit."""
    user_id = user.id
    retry_after = enforce_rate_limit(db, limiter, api_rule(), user_scope(user_id), user_id=user_id)
    if retry_after:
        raise too_many_requests(retry_after)
    return user_id

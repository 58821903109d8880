import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from auth.models import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from auth.utils import (
    create_token,
    get_current_user,
    hash_password,
    normalize_email,
    too_many_requests,
    verify_password,
)
from config import settings
from db.database import get_db
from db.models import User
from services.rate_limit_service import (
    InMemoryRateLimiter,
    RateLimitRule,
    client_scope,
    enforce_rate_limit,
    get_rate_limiter,
    login_rule,
    register_rule,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _client_ip(request: Request) -> str:
    return (request.client.host if request.client else "") or "unknown"


def _token_response(user: User) -> TokenResponse:
    token = create_token(user.id, token_version=user.token_version)
    return TokenResponse(access_token=token, expires_in=max(int(settings.JWT_EXPIRY_HOURS), 1) * 3600)


def _enforce_auth_limit(
    db: Session,
    request: Request,
    limiter: InMemoryRateLimiter,
    rule: RateLimitRule,
    email: str,
    message: str,
) -> None:
    ip_address = _client_ip(request)
    retry_after = enforce_rate_limit(db, limiter, rule, client_scope(ip_address, email), ip_address=ip_address)
    if retry_after:
        raise too_many_requests(retry_after, message)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    req: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
):
    email = normalize_email(req.email)
    _enforce_auth_limit(
        db,
        request,
        limiter,
        register_rule(),
        email,
        message="Too many registration attempts. Please try again later.",
    )
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(req.password),
        name=(req.name or "").strip() or None,
        is_active=True,
        token_version=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
def login(
    req: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
):
    email = normalize_email(req.email)
    _enforce_auth_limit(
        db,
        request,
        limiter,
        login_rule(),
        email,
        message="Too many login attempts. Please try again later.",
    )
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is inactive")
    user.last_login_at = datetime.now(timezone.utc).replace(tzinfo=None)
    db.commit()
    logger.info("User %s logged in", user.id)
    return _token_response(user)


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user

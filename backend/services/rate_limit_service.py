"""Sliding-window request limits, with an audit row for every refused request.

Authenticated traffic is limited per user; the login and register endpoints,
which run before there is a user, are limited per client address and email.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from db.models import RateLimitAuditEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    endpoint: str
    limit: int
    window_seconds: int


class InMemoryRateLimiter:
    def __init__(self) -> None:
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str, rule: RateLimitRule) -> int:
        """Count one request for ``key``. Returns 0 when it fits, otherwise seconds until a slot frees up."""
        now = time.monotonic()
        window = max(int(rule.window_seconds), 1)
        with self._lock:
            recent = self._hits[key]
            while recent and recent[0] <= now - window:
                recent.popleft()
            if len(recent) >= max(int(rule.limit), 1):
                return max(int(recent[0] + window - now), 1)
            recent.append(now)
            return 0


_LIMITER = InMemoryRateLimiter()


def get_rate_limiter() -> InMemoryRateLimiter:
    return _LIMITER


def api_rule() -> RateLimitRule:
    return RateLimitRule("/api/v1", settings.RATE_LIMIT_API_REQUESTS, settings.RATE_LIMIT_API_WINDOW_SECONDS)


def login_rule() -> RateLimitRule:
    return RateLimitRule(
        "/api/v1/auth/login",
        settings.RATE_LIMIT_AUTH_LOGIN_ATTEMPTS,
        settings.RATE_LIMIT_AUTH_LOGIN_WINDOW_SECONDS,
    )


def register_rule() -> RateLimitRule:
    return RateLimitRule(
        "/api/v1/auth/register",
        settings.RATE_LIMIT_AUTH_REGISTER_ATTEMPTS,
        settings.RATE_LIMIT_AUTH_REGISTER_WINDOW_SECONDS,
    )


def user_scope(user_id: int) -> str:
    return f"user:{user_id}"


def client_scope(ip_address: str, email: str) -> str:
    return f"ip:{ip_address}|email:{email}"


def _audit_refusal(
    db: Session,
    rule: RateLimitRule,
    scope: str,
    retry_after: int,
    user_id: int | None,
    ip_address: str | None,
) -> None:
    db.add(
        RateLimitAuditEvent(
            endpoint=rule.endpoint,
            scope_hash=hashlib.sha256(scope.encode("utf-8")).hexdigest()[:24],
            user_id=user_id,
            ip_address=(ip_address or "")[:128] or None,
            retry_after_seconds=retry_after,
        )
    )
    try:
        db.commit()
    except SQLAlchemyError as e:
        # The refusal stands even if the audit row cannot be written.
        db.rollback()
        logger.warning("Could not record rate limit refusal on %s: %s", rule.endpoint, e)


def enforce_rate_limit(
    db: Session,
    limiter: InMemoryRateLimiter,
    rule: RateLimitRule,
    scope: str,
    *,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> int:
    """Apply ``rule`` to ``scope``; returns 0 when allowed, else the Retry-After seconds."""
    retry_after = limiter.hit(f"{rule.endpoint}|{scope}", rule)
    if retry_after:
        logger.info("Rate limit reached on %s for %s, retry in %ss", rule.endpoint, scope.split("|")[0], retry_after)
        _audit_refusal(db, rule, scope, retry_after, user_id, ip_address)
    return retry_after

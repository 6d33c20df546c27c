"""Dependency injection for FastAPI endpoints"""

import uuid
from functools import lru_cache
from typing import Callable, Dict, Tuple
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from furby_gateway.api.errors import to_http_exception
from furby_gateway.config import settings
from furby_gateway.domain.exceptions import RateLimitExceeded
from furby_gateway.infrastructure.clients.payments import PaymentProvider, build_payment_provider
from furby_gateway.infrastructure.database.models import User
from furby_gateway.infrastructure.database.session import get_db
from furby_gateway.infrastructure.rate_limit import RateLimiter, build_rate_limiter, rate_key


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


@lru_cache
def get_payment_provider() -> PaymentProvider:
    """Provide the configured payment provider (one per process)"""
    return build_payment_provider()


@lru_cache
def get_rate_limiter() -> RateLimiter:
    return build_rate_limiter()


def get_current_user(
    x_user_id: str = Header(..., alias="X-User-ID", description="Authenticated user id set by the auth layer"),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the caller from the identity header"""
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user identity")

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is inactive")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def _limits() -> Dict[str, Tuple[int, int]]:
    return {
        "deposit": (settings.deposit_rate_limit, settings.deposit_rate_window_seconds),
        "withdrawal": (settings.withdrawal_rate_limit, settings.withdrawal_rate_window_seconds),
        "investment": (settings.investment_rate_limit, settings.investment_rate_window_seconds),
    }


def rate_limited(action: str) -> Callable[..., User]:
    """Dependency that counts one hit of ``action`` for the caller, returning the caller"""

    def dependency(
        user: User = Depends(get_current_user),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> User:
        limit, window = _limits()[action]
        try:
            limiter.hit(rate_key(action, user.id), limit, window)
        except RateLimitExceeded as e:
            raise to_http_exception(e)
        return user

    return dependency

"""Translation of domain exceptions to HTTP errors"""

from fastapi import HTTPException

from furby_gateway.domain.exceptions import (
    DomainException,
    ExternalProviderError,
    InsufficientFunds,
    InternalError,
    InvalidStateTransition,
    NotFound,
    RateLimitExceeded,
    ValidationError,
)


def to_http_exception(exc: DomainException) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail={"message": str(exc), "field": exc.field})
    if isinstance(exc, InsufficientFunds):
        return HTTPException(
            status_code=400,
            detail={
                "message": "Insufficient funds",
                "balance_cents": exc.balance_cents,
                "requested_cents": exc.requested_cents,
            },
        )
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidStateTransition):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ExternalProviderError):
        return HTTPException(status_code=503, detail="Payment provider unavailable")
    if isinstance(exc, RateLimitExceeded):
        return HTTPException(
            status_code=429,
            detail="Too many requests",
            headers={"Retry-After": str(exc.retry_after)},
        )
    if isinstance(exc, InternalError):
        return HTTPException(status_code=500, detail=str(exc) or "Internal server error")
    return HTTPException(status_code=500, detail="Internal server error")

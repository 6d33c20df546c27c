"""/v1/users - registration, profile, stats and referrals"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from furby_gateway.api.dependencies import get_current_user, get_request_id
from furby_gateway.api.errors import to_http_exception
from furby_gateway.api.v1.schemas import (
    PixKeyUpdateRequest,
    ReferralItem,
    ReferralListResponse,
    UserCreateRequest,
    UserResponse,
    UserStatsResponse,
)
from furby_gateway.domain.exceptions import DomainException
from furby_gateway.infrastructure.database.models import User
from furby_gateway.infrastructure.database.session import get_db
from furby_gateway.services import users as user_service

router = APIRouter()


@router.post("/users", response_model=UserResponse, status_code=201)
def register(request_body: UserCreateRequest, request: Request, db: Session = Depends(get_db)):
    """Create an account, optionally under a referrer"""
    try:
        user = user_service.register_user(
            db, request_body.name, request_body.email, referral_code=request_body.referral_code
        )
        return UserResponse.model_validate(user)

    except DomainException as e:
        logging.warning(f"Registration rejected: {e}", extra={"request_id": get_request_id(request)})
        raise to_http_exception(e)


@router.get("/users/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return UserResponse.model_validate(user)


@router.put("/users/me/pix-key", response_model=UserResponse)
def update_pix_key(
    request_body: PixKeyUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        updated = user_service.set_pix_key(db, user.id, request_body.pix_key, request_body.pix_key_type)
        return UserResponse.model_validate(updated)
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/users/me/stats", response_model=UserStatsResponse)
def stats(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return UserStatsResponse(**user_service.user_stats(db, user.id))


@router.get("/users/me/referrals", response_model=ReferralListResponse)
def referrals(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Direct downline of the caller, newest first"""
    items = [ReferralItem.model_validate(u) for u in user_service.list_referrals(db, user.id)]
    return ReferralListResponse(total=len(items), referrals=items)


@router.delete("/users/me", status_code=204)
def deactivate(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        user_service.deactivate_user(db, user.id)
    except DomainException as e:
        raise to_http_exception(e)
    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"user_id": str(user.id)})
        raise HTTPException(status_code=500, detail="Internal server error")

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..schemas.auth import LoginRequest, MeResponse, RefreshRequest, TokenResponse
from .security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    load_active_user,
    verify_password,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(
        (User.username == req.identifier) | (User.email == req.identifier)
    ).first()
    if not user or not verify_password(req.password, user.password_hash):
        logger.info("login_failed", identifier=req.identifier)
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User not active")
    access = create_access_token(str(user.id))
    refresh = create_refresh_token(str(user.id))
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("login_succeeded", user_id=str(user.id), role=user.role)
    return TokenResponse(access_token=access, refresh_token=refresh)


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(req.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    # Deactivated users cannot keep refreshing
    user = load_active_user(db, payload.get("sub"))
    return TokenResponse(
        access_token=create_access_token(str(user.id)),
        refresh_token=create_refresh_token(str(user.id)),
    )


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    return MeResponse(
        id=str(user.id),
        username=user.username,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        phone=user.phone,
        is_active=user.is_active,
    )

import uuid
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth.security import get_password_hash, require_roles
from ..db import get_db
from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..models.models import Job, User
from ..schemas.users import UserCreate, UserResponse, UserStatusUpdate, UserUpdate
from ..services.job_lifecycle import Role


router = APIRouter(prefix="/users", tags=["users"])
logger = structlog.get_logger(__name__)

admin_only = require_roles(Role.super_admin.value)

# How many blocking job numbers a refused delete lists
BLOCKING_JOBS_SHOWN = 5


def _get_user(db: Session, user_id: uuid.UUID) -> User:
    u = db.query(User).filter(User.id == user_id).first()
    if not u:
        raise NotFoundError("User not found")
    return u


def _commit_unique(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Username or email already in use")


@router.get("")
def list_users(
    q: str = "",
    role: str = "",
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    _=Depends(admin_only),
):
    limit = min(max(1, limit), 200)
    page = max(1, page)
    query = db.query(User)
    if q:
        like = f"%{q}%"
        query = query.filter(
            User.username.ilike(like) | User.email.ilike(like) | User.full_name.ilike(like)
        )
    if role:
        try:
            role = Role(role).value
        except ValueError:
            raise ValidationError(f"Unknown role: {role}")
        query = query.filter(User.role == role)
    total = query.count()
    rows = query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "data": [UserResponse.model_validate(u) for u in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


@router.post("", status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db), admin: User = Depends(admin_only)):
    now = datetime.now(timezone.utc)
    u = User(
        username=payload.username.strip(),
        email=str(payload.email).lower(),
        full_name=payload.full_name.strip(),
        role=payload.role.value,
        phone=payload.phone,
        password_hash=get_password_hash(payload.password),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(u)
    _commit_unique(db)
    db.refresh(u)
    logger.info("user_created", user_id=str(u.id), role=u.role, created_by=str(admin.id))
    return {"success": True, "data": UserResponse.model_validate(u)}


@router.put("/{user_id}")
def update_user(user_id: uuid.UUID, payload: UserUpdate, db: Session = Depends(get_db), _=Depends(admin_only)):
    u = _get_user(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    password = changes.pop("password", None)
    for key, value in changes.items():
        if value is None and key != "phone":
            continue
        if key == "role":
            value = Role(value).value
        elif key == "email":
            value = str(value).lower()
        setattr(u, key, value)
    if password:
        u.password_hash = get_password_hash(password)
    u.updated_at = datetime.now(timezone.utc)
    _commit_unique(db)
    db.refresh(u)
    return {"success": True, "data": UserResponse.model_validate(u)}


@router.patch("/{user_id}/status")
def set_user_status(
    user_id: uuid.UUID,
    payload: UserStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(admin_only),
):
    u = _get_user(db, user_id)
    if u.id == admin.id and not payload.is_active:
        raise ConflictError("You cannot deactivate your own account")
    u.is_active = payload.is_active
    u.updated_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("user_status_changed", user_id=str(u.id), is_active=u.is_active)
    return {"success": True}


@router.delete("/{user_id}")
def delete_user(user_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(admin_only)):
    u = _get_user(db, user_id)
    if u.role == Role.super_admin.value:
        raise AuthorizationError("Cannot delete super admin users")
    owned = db.query(Job.job_number).filter(Job.created_by == u.id)
    total = owned.count()
    if total:
        shown = owned.order_by(Job.created_at.asc()).limit(BLOCKING_JOBS_SHOWN).all()
        numbers = ", ".join(n for (n,) in shown)
        more = ", ..." if total > BLOCKING_JOBS_SHOWN else ""
        raise ConflictError(
            f"Cannot delete user. User has created {total} job(s): {numbers}{more}. "
            "Please reassign or delete these jobs first."
        )
    db.delete(u)
    db.commit()
    logger.info("user_deleted", user_id=str(user_id))
    return {"success": True}

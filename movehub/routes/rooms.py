import uuid
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..errors import NotFoundError, ValidationError
from ..models.models import Item, Room, User
from ..schemas.items import ItemCreate
from ..schemas.rooms import RoomCreate, RoomResponse
from ..services.job_store import JobStore
from .items import add_item, item_rows


router = APIRouter(prefix="/jobs/{job_id}/rooms", tags=["rooms"])
logger = structlog.get_logger(__name__)


def _get_room(db: Session, job_id: uuid.UUID, room_id: uuid.UUID) -> Room:
    room = db.query(Room).filter(Room.id == room_id, Room.job_id == job_id).first()
    if room is None:
        raise NotFoundError("Room not found")
    return room


def _room_response(room: Room, item_count: int = 0) -> RoomResponse:
    data = RoomResponse.model_validate(room)
    data.item_count = item_count
    return data


@router.get("")
def list_rooms(job_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    JobStore(db).find(job_id)
    counts = dict(
        db.query(Item.room_id, func.count(Item.id))
        .filter(Item.job_id == job_id, Item.room_id.isnot(None))
        .group_by(Item.room_id)
        .all()
    )
    rooms = db.query(Room).filter(Room.job_id == job_id).order_by(Room.created_at.asc(), Room.id.asc()).all()
    return {"data": [_room_response(r, counts.get(r.id, 0)) for r in rooms]}


@router.post("", status_code=201)
def create_room(
    job_id: uuid.UUID,
    payload: RoomCreate,
    db: Session = Depends(get_db),
    _=Depends(get_current_user),
):
    JobStore(db).find(job_id)
    if not payload.room_name or not payload.room_type:
        raise ValidationError("Room name and type are required")
    now = datetime.now(timezone.utc)
    room = Room(
        job_id=job_id,
        room_name=payload.room_name,
        room_type=payload.room_type,
        floor_level=payload.floor_level,
        is_completed=False,
        created_at=now,
        updated_at=now,
    )
    db.add(room)
    db.commit()
    db.refresh(room)
    logger.info("room_created", job_id=str(job_id), room_id=str(room.id), room_type=room.room_type)
    return {"success": True, "data": _room_response(room)}


@router.get("/{room_id}")
def get_room(job_id: uuid.UUID, room_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    room = _get_room(db, job_id, room_id)
    count = db.query(func.count(Item.id)).filter(Item.room_id == room.id).scalar() or 0
    return {"data": _room_response(room, count)}


@router.delete("/{room_id}")
def delete_room(job_id: uuid.UUID, room_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    room = _get_room(db, job_id, room_id)
    # Items stay on the job; they only lose their room
    db.query(Item).filter(Item.room_id == room.id).update({Item.room_id: None}, synchronize_session=False)
    db.delete(room)
    db.commit()
    logger.info("room_deleted", job_id=str(job_id), room_id=str(room_id))
    return {"success": True, "message": "Room deleted successfully"}


@router.get("/{room_id}/items")
def list_room_items(job_id: uuid.UUID, room_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    room = _get_room(db, job_id, room_id)
    return {"data": item_rows(db, Item.room_id == room.id)}


@router.post("/{room_id}/items", status_code=201)
def create_room_item(
    job_id: uuid.UUID,
    room_id: uuid.UUID,
    payload: ItemCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    room = _get_room(db, job_id, room_id)
    return add_item(db, job_id, payload, user, room_id=room.id)

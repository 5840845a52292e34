import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..errors import NotFoundError, ValidationError
from ..models.models import Item, ItemImage, JobLocation, User
from ..schemas.items import ItemCreate, ItemResponse, ItemUpdate
from ..services.job_store import JobStore


router = APIRouter(prefix="/jobs/{job_id}/items", tags=["items"])
logger = structlog.get_logger(__name__)

# Below this the item is flagged for a human to check
VERIFICATION_THRESHOLD = 0.8


def needs_verification(confidence, requested: bool) -> bool:
    return bool(requested) or (confidence is not None and confidence < VERIFICATION_THRESHOLD)


def _item_response(item: Item, image_count: int = 0) -> ItemResponse:
    data = ItemResponse.model_validate(item)
    data.image_count = image_count
    return data


def _get_item(db: Session, job_id: uuid.UUID, item_id: uuid.UUID) -> Item:
    item = db.query(Item).filter(Item.id == item_id, Item.job_id == job_id).first()
    if item is None:
        raise NotFoundError("Item not found")
    return item


def _check_delivery_location(db: Session, job_id: uuid.UUID, location_id) -> None:
    if location_id is None:
        return
    loc = db.query(JobLocation).filter(
        JobLocation.id == location_id,
        JobLocation.job_id == job_id,
        JobLocation.location_type == "delivery",
    ).first()
    if loc is None:
        raise ValidationError("delivery_location_id does not belong to this job")


def item_rows(db: Session, *criteria) -> list:
    """Matching items, newest first, each with its photo count."""
    counts = dict(
        db.query(ItemImage.item_id, func.count(ItemImage.id))
        .join(Item, Item.id == ItemImage.item_id)
        .filter(*criteria)
        .group_by(ItemImage.item_id)
        .all()
    )
    items = db.query(Item).filter(*criteria).order_by(Item.created_at.desc(), Item.id.desc()).all()
    return [_item_response(i, counts.get(i.id, 0)) for i in items]


@router.get("")
def list_items(job_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    JobStore(db).find(job_id)
    return {"data": item_rows(db, Item.job_id == job_id)}


def add_item(db: Session, job_id: uuid.UUID, payload: ItemCreate, user: User, room_id: Optional[uuid.UUID] = None) -> dict:
    """Insert an item (and its photo, if any) on a job that is known to exist."""
    _check_delivery_location(db, job_id, payload.delivery_location_id)
    now = datetime.now(timezone.utc)
    item = Item(
        job_id=job_id,
        room_id=room_id,
        delivery_location_id=payload.delivery_location_id,
        item_name=payload.item_name.strip(),
        category=payload.category,
        quantity=payload.quantity,
        condition=payload.condition.value,
        material=payload.material,
        item_value=payload.item_value,
        dimensions=payload.dimensions,
        weight_estimate=payload.weight_estimate,
        handling_instructions=payload.handling_instructions,
        fragile=payload.fragile,
        ai_confidence_score=payload.ai_confidence_score,
        manual_verification=needs_verification(payload.ai_confidence_score, payload.manual_verification),
        created_by=user.id,
        created_at=now,
        updated_at=now,
    )
    db.add(item)
    db.flush()
    image_count = 0
    if payload.image_data:
        db.add(ItemImage(
            item_id=item.id,
            image_url=payload.image_data,
            image_type=payload.image_type.value,
            ai_analysis_data={
                "confidence_score": payload.ai_confidence_score,
                "identified_items": [item.item_name],
                "analysis_timestamp": now.isoformat(),
            },
            uploaded_at=now,
        ))
        image_count = 1
    db.commit()
    db.refresh(item)
    logger.info("item_created", job_id=str(job_id), item_id=str(item.id), room_id=str(room_id) if room_id else None, category=item.category, quantity=item.quantity)
    return {"success": True, "data": _item_response(item, image_count)}


@router.post("", status_code=201)
def create_item(
    job_id: uuid.UUID,
    payload: ItemCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    JobStore(db).find(job_id)
    return add_item(db, job_id, payload, user)


@router.put("/{item_id}")
def update_item(
    job_id: uuid.UUID,
    item_id: uuid.UUID,
    payload: ItemUpdate,
    db: Session = Depends(get_db),
    _=Depends(get_current_user),
):
    item = _get_item(db, job_id, item_id)
    changes = payload.model_dump(exclude_unset=True)
    if "delivery_location_id" in changes:
        _check_delivery_location(db, job_id, changes["delivery_location_id"])
    for key, value in changes.items():
        setattr(item, key, value.value if isinstance(value, enum.Enum) else value)
    item.manual_verification = needs_verification(item.ai_confidence_score, item.manual_verification)
    item.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(item)
    image_count = db.query(func.count(ItemImage.id)).filter(ItemImage.item_id == item.id).scalar() or 0
    return {"success": True, "data": _item_response(item, image_count), "message": "Item updated successfully"}


@router.delete("/{item_id}")
def delete_item(job_id: uuid.UUID, item_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    item = _get_item(db, job_id, item_id)
    db.delete(item)
    db.commit()
    logger.info("item_deleted", job_id=str(job_id), item_id=str(item_id))
    return {"success": True, "message": "Item deleted successfully"}

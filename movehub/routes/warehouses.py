from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import Warehouse
from ..schemas.warehouses import WarehouseCreate, WarehouseResponse
from ..services.job_lifecycle import Role


router = APIRouter(prefix="/warehouses", tags=["warehouses"])
logger = structlog.get_logger(__name__)


@router.get("")
def list_warehouses(db: Session = Depends(get_db), _=Depends(get_current_user)):
    rows = db.query(Warehouse).filter(Warehouse.is_active == True).order_by(Warehouse.name.asc()).all()  # noqa: E712
    return {"data": [WarehouseResponse.model_validate(w) for w in rows]}


@router.post("", status_code=201)
def create_warehouse(
    payload: WarehouseCreate,
    db: Session = Depends(get_db),
    _=Depends(require_roles(Role.super_admin.value)),
):
    now = datetime.now(timezone.utc)
    w = Warehouse(
        name=payload.name.strip(),
        address=payload.address,
        contact_person=payload.contact_person,
        contact_phone=payload.contact_phone,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(w)
    db.commit()
    db.refresh(w)
    logger.info("warehouse_created", warehouse_id=str(w.id), name=w.name)
    return {"success": True, "data": WarehouseResponse.model_validate(w)}

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth.security import actor_from_user, get_current_user, require_roles
from ..db import get_db
from ..errors import ConflictError
from ..models.models import Item, Job, JobLocation, User
from ..reports.pdf_report import ReportGenerator
from ..schemas.jobs import ApprovalRequest, JobCreate, JobResponse, JobUpdate, LocationResponse
from ..schemas.reports import ReportType
from ..services import audit
from ..services.aggregation import quantity_by_delivery, total_quantity_by_job
from ..services.job_lifecycle import (
    JobAction,
    JobSnapshot,
    JobStatus,
    Role,
    allowed_actions,
    plan_transition,
    stored_labels,
)
from ..services.job_numbers import next_job_number
from ..services.job_store import JobStore, build_report_data, execute_transition


router = APIRouter(prefix="/jobs", tags=["jobs"])
logger = structlog.get_logger(__name__)


def _plain(values: dict) -> dict:
    return {k: (v.value if isinstance(v, enum.Enum) else v) for k, v in values.items()}


def _warehouse_entry(job: Job) -> Optional[dict]:
    if not job.warehouse_holding:
        return None
    return {
        "name": job.warehouse.name if job.warehouse else None,
        "from_date": job.estimated_storage_start_date,
        "to_date": job.estimated_storage_end_date,
    }


def _job_summary(job: Job, total_items: int) -> dict:
    pickup = next((loc for loc in job.locations if loc.location_type == "pickup"), None)
    delivery = next((loc for loc in job.locations if loc.location_type == "delivery"), None)
    return {
        "id": str(job.id),
        "job_number": job.job_number,
        "client_name": job.client_name,
        "client_phone": job.client_phone,
        "pickup_address": pickup.address if pickup else "Address not set",
        "delivery_address": delivery.address if delivery else "Address not set",
        "pickup_date": pickup.date if pickup else None,
        "delivery_date": delivery.date if delivery else None,
        "status": JobStatus.parse(job.status).value,
        "created_by": str(job.created_by),
        "created_at": job.created_at,
        "updated_at": job.updated_at,
        "submitted_at": job.submitted_at,
        "total_items": total_items,
        "warehouse_entry": _warehouse_entry(job),
    }


def _decision_response(job: Job, message: str) -> dict:
    return {"success": True, "data": JobResponse.model_validate(job), "message": message}


@router.get("")
def list_jobs(
    status: Optional[str] = None,
    mine: bool = False,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    limit = min(max(1, limit), 200)
    page = max(1, page)
    query = db.query(Job)
    if status:
        query = query.filter(Job.status.in_(stored_labels(JobStatus.parse(status))))
    if mine:
        query = query.filter(Job.created_by == user.id)
    total = query.count()
    jobs = query.order_by(Job.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    job_ids = [j.id for j in jobs]
    items = db.query(Item.job_id, Item.quantity).filter(Item.job_id.in_(job_ids)).all() if job_ids else []
    totals = total_quantity_by_job({"job_id": job_id, "quantity": qty} for job_id, qty in items)
    return {
        "data": [_job_summary(j, totals.get(j.id, 0)) for j in jobs],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/approvals/pending")
def pending_approvals(
    db: Session = Depends(get_db),
    _=Depends(require_roles(Role.super_admin.value, Role.checker.value)),
):
    jobs = (
        db.query(Job)
        .filter(Job.status.in_(stored_labels(JobStatus.pending_review)))
        .order_by(Job.submitted_at.asc())
        .all()
    )
    job_ids = [j.id for j in jobs]
    items = db.query(Item.job_id, Item.quantity).filter(Item.job_id.in_(job_ids)).all() if job_ids else []
    totals = total_quantity_by_job({"job_id": job_id, "quantity": qty} for job_id, qty in items)
    data = []
    for j in jobs:
        row = _job_summary(j, totals.get(j.id, 0))
        row.update({"client_email": j.client_email, "notes": j.notes, "move_date": j.move_date, "truck_vehicle_no": j.truck_vehicle_no})
        data.append(row)
    return {"data": data}


@router.get("/{job_id}")
def get_job(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    store = JobStore(db)
    job = store.find(job_id)
    locations = store.list_locations(job_id)
    pickups = [loc for loc in locations if loc.location_type == "pickup"]
    deliveries = [loc for loc in locations if loc.location_type == "delivery"]
    items = store.list_items(job_id)

    # Items without a delivery location are counted against the first delivery
    default_delivery = deliveries[0].id if deliveries else None
    per_delivery = quantity_by_delivery(items, default_key=default_delivery)
    delivery_rows = []
    for index, loc in enumerate(deliveries):
        row = LocationResponse.model_validate(loc).model_dump()
        row["delivery_index"] = index + 1
        row["item_count"] = per_delivery.get(loc.id, 0)
        delivery_rows.append(row)

    data = JobResponse.model_validate(job).model_dump()
    data.update({
        "status": JobStatus.parse(job.status).value,
        "total_items": sum(per_delivery.values()),
        "warehouse_entry": _warehouse_entry(job),
        "pickup_locations": [LocationResponse.model_validate(loc).model_dump() for loc in pickups],
        "delivery_locations": delivery_rows,
        "pickup_address": pickups[0].address if pickups else "Address not set",
        "delivery_address": deliveries[0].address if deliveries else "Address not set",
        "pickup_date": pickups[0].date if pickups else None,
        "delivery_date": deliveries[0].date if deliveries else None,
        "allowed_actions": allowed_actions(store.snapshot(job), actor_from_user(user)),
    })
    return {"data": data}


@router.post("", status_code=201)
def create_job(payload: JobCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    actor = actor_from_user(user)
    now = datetime.now(timezone.utc)
    fields = _plain(payload.model_dump(exclude={"locations", "submit_for_review"}))
    if not fields.get("warehouse_holding"):
        fields["selected_warehouse_id"] = None
        fields["estimated_storage_start_date"] = None
        fields["estimated_storage_end_date"] = None

    job_id = uuid.uuid4()
    plan = None
    if payload.submit_for_review:
        # Validate before anything is written so a refused submission leaves no draft behind
        snapshot = JobSnapshot(
            id=job_id,
            status=JobStatus.draft,
            created_by=user.id,
            pickup_count=sum(1 for loc in payload.locations if loc.location_type.value == "pickup"),
            delivery_count=sum(1 for loc in payload.locations if loc.location_type.value == "delivery"),
        )
        plan = plan_transition(snapshot, JobAction.submit, actor, now=now)

    job = Job(
        id=job_id,
        job_number=next_job_number(db, now),
        created_by=user.id,
        status=JobStatus.draft.value,
        created_at=now,
        updated_at=now,
        **fields,
    )
    if plan is not None:
        for key, value in plan.fields.items():
            setattr(job, key, value)
    db.add(job)
    for order, loc in enumerate(payload.locations):
        loc_fields = _plain(loc.model_dump())
        if loc_fields.get("sequence_order") is None:
            loc_fields["sequence_order"] = order
        db.add(JobLocation(job_id=job_id, **loc_fields))
    audit.create_audit_log(
        db,
        entity_type="job",
        entity_id=job_id,
        action="CREATE" if plan is None else "SUBMIT",
        actor_id=actor.id,
        actor_role=actor.role,
        source="api",
        changes_json={"status": {"before": None, "after": job.status}},
        context={"job_number": job.job_number},
        commit=False,
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Job number already issued, please retry")
    db.refresh(job)
    logger.info("job_created", job_id=str(job.id), job_number=job.job_number, status=job.status, created_by=str(user.id))
    return {"success": True, "data": JobResponse.model_validate(job)}


@router.put("/{job_id}")
def update_job(
    job_id: uuid.UUID,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    actor = actor_from_user(user)
    store = JobStore(db)
    job = store.find(job_id)
    changes = _plain(payload.model_dump(exclude_unset=True, exclude={"locations"}))
    plan = plan_transition(store.snapshot(job), JobAction.edit, actor, changes)
    if payload.locations is not None:
        # Rolled back together with the job row if the guarded update misses
        store.replace_locations(job_id, [_plain(loc.model_dump()) for loc in payload.locations])
    updated = store.apply(plan, actor=actor, context={"job_number": job.job_number})
    logger.info("job_updated", job_id=str(job_id), fields=sorted(changes))
    return {"success": True, "data": JobResponse.model_validate(updated)}


@router.post("/{job_id}/submit")
def submit_job(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job = execute_transition(db, job_id, JobAction.submit, actor_from_user(user))
    return _decision_response(job, "Job submitted for review")


@router.post("/{job_id}/approve")
def decide_job(
    job_id: uuid.UUID,
    payload: ApprovalRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    action = JobAction.approve if payload.action.value == "approve" else JobAction.reject
    job = execute_transition(
        db,
        job_id,
        action,
        actor_from_user(user),
        {"rejection_reason": payload.rejection_reason},
    )
    if action is JobAction.approve:
        return _decision_response(job, "Job approved successfully and moved to in progress")
    return _decision_response(job, "Job rejected and returned to draft")


@router.post("/{job_id}/start")
def start_job(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job = execute_transition(db, job_id, JobAction.start, actor_from_user(user))
    return _decision_response(job, "Job started")


@router.post("/{job_id}/complete")
def complete_job(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job = execute_transition(db, job_id, JobAction.complete, actor_from_user(user))
    return _decision_response(job, "Job completed")


@router.post("/{job_id}/cancel")
def cancel_job(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    job = execute_transition(db, job_id, JobAction.cancel, actor_from_user(user))
    return _decision_response(job, "Job cancelled")


@router.get("/{job_id}/history")
def job_history(job_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    JobStore(db).find(job_id)
    rows = audit.get_audit_logs(db, entity_type="job", entity_id=job_id)
    return {
        "data": [
            {
                "action": r.action,
                "actor_id": str(r.actor_id) if r.actor_id else None,
                "actor_role": r.actor_role,
                "changes": r.changes_json,
                "timestamp": r.timestamp_utc,
            }
            for r in rows
        ]
    }


@router.get("/{job_id}/report")
def job_report(
    job_id: uuid.UUID,
    report_type: ReportType = ReportType.completion,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    report_data = build_report_data(db, job_id, report_type.value, generated_by=user.full_name)
    rendered = ReportGenerator().render(report_data)
    return Response(
        content=rendered.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{rendered.filename}"'},
    )

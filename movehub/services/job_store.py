"""
Persistence side of the job lifecycle.

Transitions are written with compare-and-swap semantics:

    UPDATE jobs SET ... WHERE id = :id AND status = :expected_status

A zero-row update means somebody else moved the job first (or it never
existed); the caller gets a ConflictError/NotFoundError and must re-fetch.
Nothing is retried here.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from ..errors import ConflictError, NotFoundError
from ..models.models import Item, Job, JobLocation
from ..schemas.reports import ItemData, JobData, ReportData
from . import audit
from .job_lifecycle import (
    Actor,
    JobAction,
    JobSnapshot,
    JobStatus,
    TransitionPlan,
    plan_transition,
    stored_labels,
)


logger = structlog.get_logger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


class JobStore:
    def __init__(self, db: Session):
        self.db = db

    def find(self, job_id: uuid.UUID) -> Job:
        job = self.db.query(Job).filter(Job.id == job_id).first()
        if job is None:
            raise NotFoundError("Job not found")
        return job

    def list_items(self, job_id: uuid.UUID) -> List[Item]:
        return (
            self.db.query(Item)
            .filter(Item.job_id == job_id)
            .order_by(Item.created_at.asc(), Item.id.asc())
            .all()
        )

    def list_locations(self, job_id: uuid.UUID) -> List[JobLocation]:
        return (
            self.db.query(JobLocation)
            .filter(JobLocation.job_id == job_id)
            .order_by(JobLocation.sequence_order.asc())
            .all()
        )

    def replace_locations(self, job_id: uuid.UUID, locations: List[Mapping[str, Any]]) -> None:
        """Swap every location of the job; flushed only, the caller commits."""
        self.db.query(JobLocation).filter(JobLocation.job_id == job_id).delete(synchronize_session=False)
        for order, loc in enumerate(locations):
            fields = dict(loc)
            if fields.get("sequence_order") is None:
                fields["sequence_order"] = order
            self.db.add(JobLocation(job_id=job_id, **fields))
        self.db.flush()

    def snapshot(self, job: Job) -> JobSnapshot:
        locations = self.list_locations(job.id)
        return JobSnapshot(
            id=job.id,
            status=JobStatus.parse(job.status),
            created_by=job.created_by,
            pickup_count=sum(1 for loc in locations if loc.location_type == "pickup"),
            delivery_count=sum(1 for loc in locations if loc.location_type == "delivery"),
        )

    def conditional_update(
        self,
        job_id: uuid.UUID,
        expected_status: JobStatus,
        fields: Mapping[str, Any],
        commit: bool = True,
    ) -> Job:
        result = self.db.execute(
            update(Job)
            .where(Job.id == job_id, Job.status.in_(stored_labels(expected_status)))
            .values(**dict(fields))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            exists = self.db.query(Job.id).filter(Job.id == job_id).first()
            if exists is None:
                raise NotFoundError("Job not found")
            raise ConflictError(f"Job is not in {expected_status.value} status")
        if commit:
            self.db.commit()
        job = self.find(job_id)
        self.db.refresh(job)
        return job

    def apply(self, plan: TransitionPlan, actor: Optional[Actor] = None, context: Optional[Dict] = None) -> Job:
        """Write a planned transition and its audit entry in one commit."""
        job = self.conditional_update(plan.job_id, plan.expected_status, plan.fields, commit=False)
        audit.create_audit_log(
            self.db,
            entity_type="job",
            entity_id=plan.job_id,
            action=plan.action.value.upper(),
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            source="api",
            changes_json={
                "status": {"before": plan.expected_status.value, "after": plan.target_status.value},
                "fields": {k: _jsonable(v) for k, v in plan.fields.items()},
            },
            context=context,
            commit=False,
        )
        self.db.commit()
        self.db.refresh(job)
        return job


def execute_transition(
    db: Session,
    job_id: uuid.UUID,
    action: JobAction,
    actor: Actor,
    payload: Optional[Mapping[str, Any]] = None,
) -> Job:
    """Load, plan, apply. Validation and authorization failures never touch the row."""
    store = JobStore(db)
    job = store.find(job_id)
    plan = plan_transition(store.snapshot(job), action, actor, payload)
    updated = store.apply(plan, actor=actor, context={"job_number": job.job_number})
    logger.info(
        "job_transition",
        job_id=str(job_id),
        job_number=updated.job_number,
        action=plan.action.value,
        from_status=plan.expected_status.value,
        to_status=plan.target_status.value,
        actor_id=str(actor.id),
    )
    return updated


def build_report_data(
    db: Session,
    job_id: uuid.UUID,
    report_type: str,
    generated_by: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> ReportData:
    """Immutable ReportData snapshot of a stored job and its items."""
    store = JobStore(db)
    job = store.find(job_id)
    locations = store.list_locations(job_id)
    pickup = next((loc for loc in locations if loc.location_type == "pickup"), None)
    delivery = next((loc for loc in locations if loc.location_type == "delivery"), None)
    items = store.list_items(job_id)
    return ReportData(
        job=JobData(
            id=job.id,
            job_number=job.job_number,
            client_name=job.client_name,
            client_phone=job.client_phone,
            client_email=job.client_email,
            pickup_location=pickup.address if pickup else None,
            delivery_location=delivery.address if delivery else None,
            status=JobStatus.parse(job.status).value,
            created_at=job.created_at,
            completed_at=job.completed_at,
        ),
        items=[
            ItemData(
                id=item.id,
                job_id=item.job_id,
                item_name=item.item_name,
                category=item.category,
                quantity=item.quantity or 1,
                condition=item.condition,
                item_value=item.item_value,
                dimensions=item.dimensions,
                weight_estimate=item.weight_estimate,
                handling_instructions=item.handling_instructions,
                fragile=bool(item.fragile),
                ai_confidence_score=item.ai_confidence_score,
                manual_verification=bool(item.manual_verification),
                created_at=item.created_at,
            )
            for item in items
        ],
        report_type=report_type,
        generated_by=generated_by,
        generated_at=generated_at or datetime.now(timezone.utc),
    )

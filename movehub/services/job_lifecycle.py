"""
Job lifecycle state machine.

Pure: given a snapshot of a job, the requested action and the acting user it
either returns a TransitionPlan (the field updates to apply, guarded by the
status the job must still be in) or raises a typed domain error. Persisting
the plan is the job store's business.

    draft --submit--> pending_review --approve--> in_progress --complete--> completed
      ^                     |
      +-------reject--------+
    approved --start--> in_progress            (rows approved by older clients)
    any open status --cancel--> cancelled
"""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Mapping, Optional

from ..errors import AuthorizationError, ConflictError, ValidationError


class JobStatus(str, enum.Enum):
    draft = "draft"
    pending_review = "pending_review"
    approved = "approved"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"

    @classmethod
    def parse(cls, raw: Any) -> "JobStatus":
        if isinstance(raw, cls):
            return raw
        value = (str(raw or "")).strip().lower()
        value = LEGACY_STATUS_ALIASES.get(value, value)
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown job status: {raw!r}")


# Older routes wrote these labels for the review step
LEGACY_STATUS_ALIASES = {
    "pending": "pending_review",
    "pending_approval": "pending_review",
}


def stored_labels(status: "JobStatus") -> list:
    """Every label a row in `status` may carry in storage, canonical first."""
    status = JobStatus.parse(status)
    return [status.value] + sorted(k for k, v in LEGACY_STATUS_ALIASES.items() if v == status.value)


class JobAction(str, enum.Enum):
    submit = "submit"
    approve = "approve"
    reject = "reject"
    start = "start"
    complete = "complete"
    cancel = "cancel"
    edit = "edit"


class Role(str, enum.Enum):
    super_admin = "super_admin"
    checker = "checker"
    maker = "maker"


APPROVER_ROLES = frozenset({Role.super_admin.value, Role.checker.value})
ALL_ROLES = frozenset(r.value for r in Role)

# Fields a draft edit may touch; anything else in the payload is ignored
EDITABLE_FIELDS = frozenset({
    "client_name",
    "client_phone",
    "client_email",
    "job_type",
    "warehouse_holding",
    "selected_warehouse_id",
    "estimated_storage_start_date",
    "estimated_storage_end_date",
    "move_date",
    "truck_vehicle_no",
    "notes",
})


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    role: str


@dataclass(frozen=True)
class JobSnapshot:
    id: uuid.UUID
    status: JobStatus
    created_by: Optional[uuid.UUID] = None
    pickup_count: int = 0
    delivery_count: int = 0


@dataclass(frozen=True)
class Transition:
    sources: FrozenSet[JobStatus]
    target: JobStatus
    roles: FrozenSet[str]
    owner_allowed: bool = False


OPEN_STATUSES = frozenset({
    JobStatus.draft,
    JobStatus.pending_review,
    JobStatus.approved,
    JobStatus.in_progress,
})

TRANSITIONS: Dict[JobAction, Transition] = {
    JobAction.submit: Transition(
        sources=frozenset({JobStatus.draft}),
        target=JobStatus.pending_review,
        roles=frozenset({Role.super_admin.value}),
        owner_allowed=True,
    ),
    JobAction.approve: Transition(
        sources=frozenset({JobStatus.pending_review}),
        target=JobStatus.in_progress,
        roles=APPROVER_ROLES,
    ),
    JobAction.reject: Transition(
        sources=frozenset({JobStatus.pending_review}),
        target=JobStatus.draft,
        roles=APPROVER_ROLES,
    ),
    JobAction.start: Transition(
        sources=frozenset({JobStatus.approved}),
        target=JobStatus.in_progress,
        roles=APPROVER_ROLES,
    ),
    JobAction.complete: Transition(
        sources=frozenset({JobStatus.in_progress}),
        target=JobStatus.completed,
        roles=ALL_ROLES,
    ),
    JobAction.cancel: Transition(
        sources=OPEN_STATUSES,
        target=JobStatus.cancelled,
        roles=frozenset({Role.super_admin.value}),
    ),
    JobAction.edit: Transition(
        sources=frozenset({JobStatus.draft}),
        target=JobStatus.draft,
        roles=frozenset({Role.super_admin.value}),
        owner_allowed=True,
    ),
}


@dataclass(frozen=True)
class TransitionPlan:
    job_id: uuid.UUID
    action: JobAction
    expected_status: JobStatus
    target_status: JobStatus
    fields: Dict[str, Any] = field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def can_perform(job: JobSnapshot, action: JobAction, actor: Actor) -> bool:
    """True when the actor's role/ownership allows the action and the job is in a source state."""
    rule = TRANSITIONS[action]
    if job.status not in rule.sources:
        return False
    return _is_authorized(rule, job, actor)


def allowed_actions(job: JobSnapshot, actor: Actor) -> list:
    return [a.value for a in JobAction if can_perform(job, a, actor)]


def _is_authorized(rule: Transition, job: JobSnapshot, actor: Actor) -> bool:
    if actor.role in rule.roles:
        return True
    return rule.owner_allowed and job.created_by is not None and job.created_by == actor.id


def plan_transition(
    job: JobSnapshot,
    action: JobAction,
    actor: Actor,
    payload: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> TransitionPlan:
    action = JobAction(action)
    rule = TRANSITIONS[action]
    payload = payload or {}
    now = now or _utcnow()

    if action is JobAction.edit:
        # Non-draft jobs are locked for everyone, including their owner
        if job.status is not JobStatus.draft:
            raise AuthorizationError(f"Only draft jobs can be edited (job is {job.status.value})")
        if not _is_authorized(rule, job, actor):
            raise AuthorizationError("Only the job owner can edit this job")
    else:
        if not _is_authorized(rule, job, actor):
            raise AuthorizationError(f"Insufficient permissions to {action.value} jobs")
        if job.status not in rule.sources:
            raise ConflictError(
                f"Cannot {action.value} a job in status {job.status.value}"
            )

    fields: Dict[str, Any] = {"updated_at": now}
    if rule.target is not job.status:
        fields["status"] = rule.target.value

    if action is JobAction.submit:
        if job.pickup_count < 1 or job.delivery_count < 1:
            raise ValidationError("At least one pickup and one delivery location are required before submission")
        fields["submitted_at"] = now
        # A resubmitted job no longer carries the previous rejection
        fields["rejection_reason"] = None
    elif action is JobAction.approve:
        fields["approved_by"] = actor.id
        fields["approved_at"] = now
        fields["rejection_reason"] = None
    elif action is JobAction.reject:
        reason = (payload.get("rejection_reason") or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required")
        fields["rejection_reason"] = reason
        # A rejection is recorded as a decision, same columns as an approval
        fields["approved_by"] = actor.id
        fields["approved_at"] = now
    elif action is JobAction.complete:
        fields["completed_at"] = now
    elif action is JobAction.cancel:
        fields["cancelled_at"] = now
        fields["rejection_reason"] = None
    elif action is JobAction.edit:
        for key, value in payload.items():
            if key in EDITABLE_FIELDS:
                fields[key] = value
        if not fields.get("warehouse_holding", True):
            fields["selected_warehouse_id"] = None
            fields["estimated_storage_start_date"] = None
            fields["estimated_storage_end_date"] = None

    return TransitionPlan(
        job_id=job.id,
        action=action,
        expected_status=job.status,
        target_status=rule.target,
        fields=fields,
    )

"""
Audit logging service.
Append-only audit log with integrity hashing.
"""
import hashlib
import uuid
import json
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings


def _canonical_hash(data: Dict[str, Any], secret: str) -> str:
    # Remove None values and sort keys for consistency
    canonical = {k: v for k, v in data.items() if v is not None}
    canonical_json = json.dumps(canonical, sort_keys=True, default=str)
    return hashlib.sha256(f"{canonical_json}:{secret}".encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    actor_id: Optional[uuid.UUID] = None,
    actor_role: Optional[str] = None,
    source: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None,
    commit: bool = True,
) -> AuditLog:
    """
    Create an append-only audit log entry.

    Args:
        db: Database session
        entity_type: Type of entity (job|item|user)
        entity_id: Entity ID
        action: Action performed (SUBMIT|APPROVE|REJECT|START|COMPLETE|CANCEL|UPDATE)
        actor_id: User ID who performed the action
        actor_role: Role of the actor (super_admin|checker|maker|system)
        source: Source of the action (api|system)
        changes_json: Before/after diff
        context: Additional context (job_number, rejection reason, ...)
        integrity_secret: Secret for integrity hash (defaults to JWT_SECRET)
        commit: Commit the session after adding the entry

    Returns:
        Created AuditLog object
    """
    timestamp_utc = datetime.utcnow().replace(tzinfo=None)

    if integrity_secret is None:
        integrity_secret = settings.jwt_secret

    integrity_hash = None
    if integrity_secret:
        integrity_hash = _canonical_hash(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "actor_id": str(actor_id) if actor_id else None,
                "actor_role": actor_role,
                "source": source,
                "timestamp_utc": timestamp_utc.isoformat(),
                "changes": changes_json,
                "context": context,
            },
            integrity_secret,
        )

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        source=source or "system",
        changes_json=changes_json,
        timestamp_utc=timestamp_utc,
        context=context,
        integrity_hash=integrity_hash,
    )

    db.add(audit_log)
    if commit:
        db.commit()
        db.refresh(audit_log)

    return audit_log


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[uuid.UUID] = None,
    limit: int = 100,
    offset: int = 0
) -> list:
    query = db.query(AuditLog)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)

    query = query.order_by(AuditLog.timestamp_utc.desc())
    query = query.limit(limit).offset(offset)

    return query.all()

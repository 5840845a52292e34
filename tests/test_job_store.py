import uuid
from datetime import datetime, timezone

import pytest

from movehub.errors import ConflictError, NotFoundError, ValidationError
from movehub.models.models import AuditLog, Item, Job
from movehub.services.job_lifecycle import JobAction, JobStatus, plan_transition
from movehub.services.job_numbers import format_job_number, next_job_number, parse_sequence
from movehub.services.job_store import JobStore, build_report_data, execute_transition
from movehub.auth.security import actor_from_user

from conftest import TestingSession, make_job


def test_concurrent_approvals_only_one_wins(db, maker, checker, admin):
    job = make_job(db, maker, status="pending_review")

    s1, s2 = TestingSession(), TestingSession()
    try:
        store1, store2 = JobStore(s1), JobStore(s2)
        plan1 = plan_transition(store1.snapshot(store1.find(job.id)), JobAction.approve, actor_from_user(checker))
        plan2 = plan_transition(
            store2.snapshot(store2.find(job.id)), JobAction.reject, actor_from_user(admin), {"rejection_reason": "dup"}
        )

        store1.apply(plan1, actor=actor_from_user(checker))
        with pytest.raises(ConflictError):
            store2.apply(plan2, actor=actor_from_user(admin))
    finally:
        s1.close()
        s2.close()

    db.expire_all()
    final = db.query(Job).filter(Job.id == job.id).one()
    assert final.status == "in_progress"
    assert final.approved_by == checker.id
    assert final.rejection_reason is None
    actions = [a.action for a in db.query(AuditLog).filter(AuditLog.entity_id == job.id).all()]
    assert actions == ["APPROVE"]


def test_conditional_update_on_missing_job_is_not_found(db):
    with pytest.raises(NotFoundError):
        JobStore(db).conditional_update(uuid.uuid4(), JobStatus.draft, {"notes": "x"})


def test_conditional_update_matches_legacy_pending_label(db, maker, checker):
    job = make_job(db, maker, status="pending_approval")
    updated = execute_transition(db, job.id, JobAction.approve, actor_from_user(checker))
    assert updated.status == "in_progress"
    assert updated.approved_at is not None


def test_failed_validation_leaves_row_untouched(db, maker, checker):
    job = make_job(db, maker, status="pending_review")
    with pytest.raises(ValidationError):
        execute_transition(db, job.id, JobAction.reject, actor_from_user(checker), {"rejection_reason": "  "})
    db.expire_all()
    assert db.query(Job).filter(Job.id == job.id).one().status == "pending_review"
    assert db.query(AuditLog).count() == 0


def test_submit_without_delivery_is_rejected(db, maker):
    job = make_job(db, maker, deliveries=0)
    with pytest.raises(ValidationError):
        execute_transition(db, job.id, JobAction.submit, actor_from_user(maker))
    db.expire_all()
    assert db.query(Job).filter(Job.id == job.id).one().status == "draft"


def test_full_happy_path_is_audited(db, maker, checker):
    job = make_job(db, maker)
    execute_transition(db, job.id, JobAction.submit, actor_from_user(maker))
    execute_transition(db, job.id, JobAction.approve, actor_from_user(checker))
    done = execute_transition(db, job.id, JobAction.complete, actor_from_user(maker))
    assert done.status == "completed"
    assert done.completed_at is not None
    logs = db.query(AuditLog).filter(AuditLog.entity_id == job.id).all()
    assert sorted(a.action for a in logs) == ["APPROVE", "COMPLETE", "SUBMIT"]
    approve = next(a for a in logs if a.action == "APPROVE")
    assert approve.changes_json["status"] == {"before": "pending_review", "after": "in_progress"}
    assert approve.integrity_hash


def test_replace_locations_renumbers_sequence(db, maker):
    job = make_job(db, maker, pickups=2, deliveries=2)
    store = JobStore(db)
    store.replace_locations(job.id, [
        {"location_type": "pickup", "address": "Koregaon Park"},
        {"location_type": "delivery", "address": "Salt Lake"},
    ])
    db.commit()
    locs = store.list_locations(job.id)
    assert [(l.address, l.sequence_order) for l in locs] == [("Koregaon Park", 0), ("Salt Lake", 1)]


def test_job_numbers_continue_from_highest_of_the_day(db, maker):
    day = datetime(2025, 1, 1, tzinfo=timezone.utc)
    make_job(db, maker, number="JOB-20250101-0001")
    make_job(db, maker, number="JOB-20250101-0007")
    make_job(db, maker, number="JOB-20241231-0042")
    assert next_job_number(db, day) == "JOB-20250101-0008"
    assert next_job_number(db, datetime(2025, 1, 2, tzinfo=timezone.utc)) == "JOB-20250102-0001"
    assert format_job_number(day, 3) == "JOB-20250101-0003"
    assert parse_sequence("JOB-20250101-0012") == 12
    assert parse_sequence("not-a-job") is None


def test_report_snapshot_uses_stored_job_and_items(db, maker):
    job = make_job(db, maker, status="pending_approval", number="JOB-20250101-0001")
    db.add_all([
        Item(job_id=job.id, item_name="Sofa", category="Furniture", quantity=1, condition="good", item_value=15000),
        Item(job_id=job.id, item_name="TV", category="Electronics", quantity=2, condition="fair", fragile=True),
    ])
    db.commit()
    data = build_report_data(db, job.id, "insurance", generated_by="Maker")
    assert data.job.job_number == "JOB-20250101-0001"
    assert data.job.status == "pending_review"
    assert data.job.pickup_location == "1 MG Road, Pune"
    assert data.job.delivery_location == "1 Park Street, Kolkata"
    assert sorted(i.item_name for i in data.items) == ["Sofa", "TV"]
    assert data.report_type == "insurance"


def test_reason_only_survives_while_rejected_draft(db, maker, checker, admin):
    job = make_job(db, maker, status="pending_review")
    rejected = execute_transition(
        db, job.id, JobAction.reject, actor_from_user(checker), {"rejection_reason": "  Missing sofa photos  "}
    )
    assert rejected.status == "draft"
    assert rejected.rejection_reason == "Missing sofa photos"

    resubmitted = execute_transition(db, job.id, JobAction.submit, actor_from_user(maker))
    assert resubmitted.status == "pending_review"
    assert resubmitted.rejection_reason is None

    execute_transition(db, job.id, JobAction.reject, actor_from_user(checker), {"rejection_reason": "Still missing"})
    cancelled = execute_transition(db, job.id, JobAction.cancel, actor_from_user(admin))
    assert cancelled.status == "cancelled"
    assert cancelled.rejection_reason is None

import uuid

from movehub.models.models import AuditLog, Item, Job, JobLocation

from conftest import auth, make_job


def _payload(**overrides):
    data = {
        "client_name": "Rohan Mehta",
        "client_phone": "+91 90000 11111",
        "locations": [
            {"type": "pickup", "address": "14 Linking Road, Mumbai"},
            {"type": "delivery", "address": "7 Brigade Road, Bengaluru"},
        ],
    }
    data.update(overrides)
    return data


def test_requests_need_a_token(client, db):
    assert client.get("/jobs").status_code == 401


def test_create_draft_job(client, db, maker):
    r = client.post("/jobs", json=_payload(), headers=auth(maker))
    assert r.status_code == 201
    body = r.json()["data"]
    assert body["status"] == "draft"
    assert body["job_number"].startswith("JOB-")
    assert body["created_by"] == str(maker.id)

    job_id = uuid.UUID(body["id"])
    locs = db.query(JobLocation).filter(JobLocation.job_id == job_id).order_by(JobLocation.sequence_order).all()
    assert [(l.location_type, l.sequence_order) for l in locs] == [("pickup", 0), ("delivery", 1)]
    assert [a.action for a in db.query(AuditLog).all()] == ["CREATE"]


def test_create_and_submit_in_one_step(client, db, maker):
    r = client.post("/jobs", json=_payload(submit_for_review=True), headers=auth(maker))
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["status"] == "pending_review"
    assert data["submitted_at"] is not None


def test_refused_submission_leaves_no_draft(client, db, maker):
    payload = _payload(submit_for_review=True, locations=[{"type": "pickup", "address": "14 Linking Road"}])
    r = client.post("/jobs", json=payload, headers=auth(maker))
    assert r.status_code == 400
    assert "error" in r.json()
    assert db.query(Job).count() == 0


def test_location_type_is_validated(client, db, maker):
    payload = _payload(locations=[{"type": "warehouse", "address": "Bhiwandi"}])
    assert client.post("/jobs", json=payload, headers=auth(maker)).status_code == 422


def test_approve_flow(client, db, maker, checker):
    job = make_job(db, maker)
    r = client.post(f"/jobs/{job.id}/submit", headers=auth(maker))
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "pending_review"

    r = client.post(f"/jobs/{job.id}/approve", json={"action": "approve"}, headers=auth(checker))
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Job approved successfully and moved to in progress"
    assert body["data"]["status"] == "in_progress"
    assert body["data"]["approved_by"] == str(checker.id)
    assert body["data"]["approved_at"] is not None

    # A second decision on the same job is stale
    r = client.post(f"/jobs/{job.id}/approve", json={"action": "approve"}, headers=auth(checker))
    assert r.status_code == 409


def test_maker_cannot_approve(client, db, maker):
    job = make_job(db, maker, status="pending_review")
    r = client.post(f"/jobs/{job.id}/approve", json={"action": "approve"}, headers=auth(maker))
    assert r.status_code == 403
    db.expire_all()
    assert db.query(Job).filter(Job.id == job.id).one().status == "pending_review"


def test_reject_needs_a_reason_then_resubmit(client, db, maker, checker, admin):
    job = make_job(db, maker, status="pending_review")
    r = client.post(f"/jobs/{job.id}/approve", json={"action": "reject", "rejection_reason": "  "}, headers=auth(checker))
    assert r.status_code == 400

    r = client.post(
        f"/jobs/{job.id}/approve",
        json={"action": "reject", "rejection_reason": "Add the piano to the list"},
        headers=auth(admin),
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Job rejected and returned to draft"
    data = r.json()["data"]
    assert data["status"] == "draft"
    assert data["rejection_reason"] == "Add the piano to the list"
    assert data["approved_by"] == str(admin.id)

    assert client.post(f"/jobs/{job.id}/submit", headers=auth(maker)).status_code == 200
    r = client.post(f"/jobs/{job.id}/approve", json={"action": "approve"}, headers=auth(checker))
    assert r.json()["data"]["rejection_reason"] is None


def test_edit_is_locked_once_submitted(client, db, maker):
    job = make_job(db, maker, status="pending_review")
    r = client.put(f"/jobs/{job.id}", json={"notes": "gate code 4411"}, headers=auth(maker))
    assert r.status_code == 403


def test_edit_draft_replaces_locations(client, db, maker):
    job = make_job(db, maker, pickups=2, deliveries=2)
    r = client.put(
        f"/jobs/{job.id}",
        json={
            "notes": "gate code 4411",
            "locations": [
                {"type": "pickup", "address": "Aundh, Pune"},
                {"type": "delivery", "address": "Salt Lake, Kolkata"},
            ],
        },
        headers=auth(maker),
    )
    assert r.status_code == 200
    assert r.json()["data"]["notes"] == "gate code 4411"
    db.expire_all()
    locs = db.query(JobLocation).filter(JobLocation.job_id == job.id).all()
    assert sorted(l.address for l in locs) == ["Aundh, Pune", "Salt Lake, Kolkata"]


def test_other_maker_cannot_edit(client, db, maker):
    from conftest import make_user

    other = make_user(db, "maker", "other-maker")
    job = make_job(db, maker)
    assert client.put(f"/jobs/{job.id}", json={"notes": "x"}, headers=auth(other)).status_code == 403


def test_detail_counts_items_per_delivery(client, db, maker, checker):
    job = make_job(db, maker, deliveries=2)
    deliveries = (
        db.query(JobLocation)
        .filter(JobLocation.job_id == job.id, JobLocation.location_type == "delivery")
        .order_by(JobLocation.sequence_order)
        .all()
    )
    db.add_all([
        Item(job_id=job.id, item_name="Sofa", category="Furniture", quantity=1, condition="good"),
        Item(job_id=job.id, item_name="Chairs", category="Furniture", quantity=4, condition="good",
             delivery_location_id=deliveries[1].id),
    ])
    db.commit()

    r = client.get(f"/jobs/{job.id}", headers=auth(maker))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["total_items"] == 5
    assert [d["item_count"] for d in data["delivery_locations"]] == [1, 4]
    assert [d["delivery_index"] for d in data["delivery_locations"]] == [1, 2]
    assert data["pickup_address"] == "1 MG Road, Pune"
    assert set(data["allowed_actions"]) == {"submit", "edit"}

    r = client.get(f"/jobs/{job.id}", headers=auth(checker))
    assert r.json()["data"]["allowed_actions"] == []


def test_unknown_job_is_not_found(client, db, maker):
    r = client.get(f"/jobs/{uuid.uuid4()}", headers=auth(maker))
    assert r.status_code == 404
    assert r.json() == {"error": "Job not found"}


def test_list_filters_and_normalises_legacy_status(client, db, maker, checker):
    make_job(db, maker, status="pending_approval")
    make_job(db, maker, status="pending_review")
    make_job(db, maker)

    r = client.get("/jobs?status=pending_review", headers=auth(checker))
    data = r.json()["data"]
    assert r.json()["total"] == 2
    assert {j["status"] for j in data} == {"pending_review"}

    r = client.get("/jobs?mine=true", headers=auth(checker))
    assert r.json()["total"] == 0

    assert client.get("/jobs?status=shipped", headers=auth(checker)).status_code == 400


def test_list_defaults_missing_addresses(client, db, maker):
    make_job(db, maker, pickups=0, deliveries=0)
    row = client.get("/jobs", headers=auth(maker)).json()["data"][0]
    assert row["pickup_address"] == "Address not set"
    assert row["delivery_address"] == "Address not set"
    assert row["total_items"] == 0


def test_pending_queue_is_for_reviewers(client, db, maker, checker):
    make_job(db, maker, status="pending_review")
    make_job(db, maker)
    assert client.get("/jobs/approvals/pending", headers=auth(maker)).status_code == 403
    r = client.get("/jobs/approvals/pending", headers=auth(checker))
    assert r.status_code == 200
    assert len(r.json()["data"]) == 1


def test_start_complete_and_cancel(client, db, maker, checker, admin):
    job = make_job(db, maker, status="approved")
    assert client.post(f"/jobs/{job.id}/start", headers=auth(checker)).json()["data"]["status"] == "in_progress"
    assert client.post(f"/jobs/{job.id}/cancel", headers=auth(checker)).status_code == 403
    done = client.post(f"/jobs/{job.id}/complete", headers=auth(maker))
    assert done.json()["data"]["status"] == "completed"
    assert client.post(f"/jobs/{job.id}/cancel", headers=auth(admin)).status_code == 409


def test_history_lists_decisions(client, db, maker, checker):
    job = make_job(db, maker)
    client.post(f"/jobs/{job.id}/submit", headers=auth(maker))
    client.post(f"/jobs/{job.id}/approve", json={"action": "approve"}, headers=auth(checker))
    r = client.get(f"/jobs/{job.id}/history", headers=auth(maker))
    assert r.status_code == 200
    actions = sorted(h["action"] for h in r.json()["data"])
    assert actions == ["APPROVE", "SUBMIT"]


def test_report_download(client, db, maker):
    job = make_job(db, maker, number="JOB-20250101-0001")
    db.add(Item(job_id=job.id, item_name="Fridge", category="Appliances", quantity=1, condition="good", item_value=32000))
    db.commit()
    r = client.get(f"/jobs/{job.id}/report?report_type=insurance", headers=auth(maker))
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")
    assert 'filename="Insurance_Report_JOB-20250101-0001_' in r.headers["content-disposition"]

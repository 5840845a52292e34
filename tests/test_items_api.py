import uuid

from movehub.models.models import Item, ItemImage, JobLocation
from movehub.routes.items import needs_verification

from conftest import auth, make_job


def _item(**overrides):
    data = {
        "item_name": "Teak Dining Table",
        "category": "Furniture",
        "quantity": 1,
        "condition": "good",
        "item_value": 45000,
        "dimensions": "180cm L x 90cm W x 75cm H",
    }
    data.update(overrides)
    return data


def test_low_confidence_forces_review():
    assert needs_verification(0.79, False)
    assert not needs_verification(0.8, False)
    assert not needs_verification(None, False)
    assert needs_verification(0.95, True)


def test_create_and_list_items(client, db, maker):
    job = make_job(db, maker)
    r = client.post(f"/jobs/{job.id}/items", json=_item(), headers=auth(maker))
    assert r.status_code == 201
    created = r.json()["data"]
    assert created["manual_verification"] is False
    assert created["image_count"] == 0

    r = client.post(
        f"/jobs/{job.id}/items",
        json=_item(item_name="Sony TV", category="Electronics", ai_confidence_score=0.55, fragile=True,
                   imageData="data:image/jpeg;base64,AAAA"),
        headers=auth(maker),
    )
    tv = r.json()["data"]
    assert tv["manual_verification"] is True
    assert tv["image_count"] == 1
    image = db.query(ItemImage).one()
    assert image.ai_analysis_data["confidence_score"] == 0.55

    listed = client.get(f"/jobs/{job.id}/items", headers=auth(maker)).json()["data"]
    assert {i["item_name"] for i in listed} == {"Teak Dining Table", "Sony TV"}
    assert {i["item_name"]: i["image_count"] for i in listed}["Sony TV"] == 1


def test_unknown_category_is_rejected(client, db, maker):
    job = make_job(db, maker)
    r = client.post(f"/jobs/{job.id}/items", json=_item(category="Vehicles"), headers=auth(maker))
    assert r.status_code == 422
    r = client.post(f"/jobs/{job.id}/items", json=_item(quantity=0), headers=auth(maker))
    assert r.status_code == 422


def test_delivery_location_must_belong_to_job(client, db, maker):
    job = make_job(db, maker)
    other = make_job(db, maker)
    pickup = db.query(JobLocation).filter(JobLocation.job_id == job.id, JobLocation.location_type == "pickup").one()
    foreign = db.query(JobLocation).filter(JobLocation.job_id == other.id, JobLocation.location_type == "delivery").one()
    own = db.query(JobLocation).filter(JobLocation.job_id == job.id, JobLocation.location_type == "delivery").one()

    for bad in (pickup.id, foreign.id):
        r = client.post(f"/jobs/{job.id}/items", json=_item(delivery_location_id=str(bad)), headers=auth(maker))
        assert r.status_code == 400

    r = client.post(f"/jobs/{job.id}/items", json=_item(delivery_location_id=str(own.id)), headers=auth(maker))
    assert r.status_code == 201
    assert r.json()["data"]["delivery_location_id"] == str(own.id)


def test_update_and_delete_item(client, db, maker):
    job = make_job(db, maker)
    item_id = client.post(f"/jobs/{job.id}/items", json=_item(), headers=auth(maker)).json()["data"]["id"]

    r = client.put(f"/jobs/{job.id}/items/{item_id}", json={"quantity": 2, "condition": "fair"}, headers=auth(maker))
    assert r.status_code == 200
    assert r.json()["data"]["quantity"] == 2
    assert r.json()["data"]["condition"] == "fair"

    r = client.delete(f"/jobs/{job.id}/items/{item_id}", headers=auth(maker))
    assert r.status_code == 200
    assert db.query(Item).count() == 0
    assert client.delete(f"/jobs/{job.id}/items/{item_id}", headers=auth(maker)).status_code == 404


def test_items_of_unknown_job(client, db, maker):
    assert client.get(f"/jobs/{uuid.uuid4()}/items", headers=auth(maker)).status_code == 404

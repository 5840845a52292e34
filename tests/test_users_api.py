from movehub.models.models import User

from conftest import auth, make_job, make_user


def _new_user(**overrides):
    data = {
        "username": "ravi",
        "email": "Ravi@MoveHub.in",
        "password": "long-enough",
        "full_name": "Ravi Kumar",
        "role": "checker",
    }
    data.update(overrides)
    return data


def test_only_super_admin_manages_users(client, db, maker, checker):
    assert client.get("/users", headers=auth(maker)).status_code == 403
    assert client.get("/users", headers=auth(checker)).status_code == 403
    assert client.post("/users", json=_new_user(), headers=auth(checker)).status_code == 403


def test_create_and_list_users(client, db, admin, maker):
    r = client.post("/users", json=_new_user(), headers=auth(admin))
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["email"] == "ravi@movehub.in"
    assert data["role"] == "checker"
    assert "password_hash" not in data

    r = client.get("/users?role=checker", headers=auth(admin))
    assert [u["username"] for u in r.json()["data"]] == ["ravi"]
    r = client.get("/users?q=mak", headers=auth(admin))
    assert r.json()["total"] == 1
    assert client.get("/users?role=driver", headers=auth(admin)).status_code == 400


def test_duplicate_username_conflicts(client, db, admin):
    client.post("/users", json=_new_user(), headers=auth(admin))
    r = client.post("/users", json=_new_user(email="other@movehub.in"), headers=auth(admin))
    assert r.status_code == 409


def test_update_user_role_and_password(client, db, admin, maker):
    r = client.put(f"/users/{maker.id}", json={"role": "checker", "password": "new-password"}, headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["data"]["role"] == "checker"
    r = client.post("/auth/login", json={"identifier": "maker", "password": "new-password"})
    assert r.status_code == 200


def test_deactivation(client, db, admin, maker):
    assert client.patch(f"/users/{admin.id}/status", json={"is_active": False}, headers=auth(admin)).status_code == 409
    assert client.patch(f"/users/{maker.id}/status", json={"is_active": False}, headers=auth(admin)).status_code == 200
    # An existing token stops working once the account is inactive
    assert client.get("/auth/me", headers=auth(maker)).status_code == 401


def test_delete_rules(client, db, admin, maker):
    other_admin = make_user(db, "super_admin", "root2")
    r = client.delete(f"/users/{other_admin.id}", headers=auth(admin))
    assert r.status_code == 403
    assert r.json() == {"error": "Cannot delete super admin users"}

    for n in range(6):
        make_job(db, maker, number=f"JOB-20250101-{n + 1:04d}")
    r = client.delete(f"/users/{maker.id}", headers=auth(admin))
    assert r.status_code == 409
    message = r.json()["error"]
    assert "has created 6 job(s)" in message
    assert message.count("JOB-") == 5
    assert ", ..." in message

    spare = make_user(db, "maker", "spare")
    assert client.delete(f"/users/{spare.id}", headers=auth(admin)).status_code == 200
    db.expire_all()
    assert db.query(User).filter(User.username == "spare").first() is None


def test_warehouses(client, db, admin, maker):
    payload = {"name": "Express Hub Delhi", "address": "Okhla Phase II", "contact_name": "Vikram"}
    assert client.post("/warehouses", json=payload, headers=auth(maker)).status_code == 403
    r = client.post("/warehouses", json=payload, headers=auth(admin))
    assert r.status_code == 201
    listed = client.get("/warehouses", headers=auth(maker)).json()["data"]
    assert [w["name"] for w in listed] == ["Express Hub Delhi"]

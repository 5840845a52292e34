from movehub.auth.security import create_refresh_token, decode_token

from conftest import auth, make_user


def test_login_by_username_or_email(client, db, maker):
    for identifier in ("maker", "maker@example.com"):
        r = client.post("/auth/login", json={"identifier": identifier, "password": "secret-pass"})
        assert r.status_code == 200
        body = r.json()
        assert body["token_type"] == "bearer"
        assert decode_token(body["access_token"])["type"] == "access"
        assert decode_token(body["refresh_token"])["type"] == "refresh"
    db.expire_all()
    assert db.get(type(maker), maker.id).last_login_at is not None


def test_wrong_password(client, db, maker):
    r = client.post("/auth/login", json={"identifier": "maker", "password": "nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid username or password"


def test_inactive_user_cannot_login(client, db):
    make_user(db, "maker", "sleepy", is_active=False)
    r = client.post("/auth/login", json={"identifier": "sleepy", "password": "secret-pass"})
    assert r.status_code == 401


def test_me(client, db, checker):
    r = client.get("/auth/me", headers=auth(checker))
    assert r.status_code == 200
    assert r.json()["role"] == "checker"
    assert r.json()["username"] == "checker"


def test_refresh_token_only_refreshes(client, db, maker):
    refresh = create_refresh_token(str(maker.id))
    r = client.get("/auth/me", headers={"Authorization": f"Bearer {refresh}"})
    assert r.status_code == 401

    r = client.post("/auth/refresh", json={"refresh_token": refresh})
    assert r.status_code == 200
    access = r.json()["access_token"]
    assert client.get("/auth/me", headers={"Authorization": f"Bearer {access}"}).status_code == 200

    r = client.post("/auth/refresh", json={"refresh_token": access})
    assert r.status_code == 400


def test_garbage_token(client, db):
    r = client.get("/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
    assert r.status_code == 401


def test_health(client, db):
    r = client.get("/health")
    assert r.status_code == 200

import os

os.environ.setdefault("RATE_LIMIT", "100000/minute")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("AUTO_CREATE_DB", "false")

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from movehub.auth.security import create_access_token, get_password_hash
from movehub.db import Base, get_db
from movehub.main import app
from movehub.models.models import Job, JobLocation, User


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def _override():
        s = TestingSession()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_user(db, role: str, username: str = None, password: str = "secret-pass", is_active: bool = True) -> User:
    username = username or f"{role}-{uuid.uuid4().hex[:6]}"
    u = User(
        username=username,
        email=f"{username}@example.com",
        full_name=username.title(),
        role=role,
        password_hash=get_password_hash(password),
        is_active=is_active,
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


def make_job(db, owner: User, status: str = "draft", pickups: int = 1, deliveries: int = 1, number: str = None) -> Job:
    job = Job(
        job_number=number or f"JOB-20250101-{uuid.uuid4().int % 10000:04d}",
        client_name="Asha Verma",
        client_phone="+91 98765 43210",
        status=status,
        created_by=owner.id,
        created_at=datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc),
        updated_at=datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc),
    )
    db.add(job)
    db.flush()
    order = 0
    for i in range(pickups):
        db.add(JobLocation(job_id=job.id, location_type="pickup", address=f"{i + 1} MG Road, Pune", sequence_order=order))
        order += 1
    for i in range(deliveries):
        db.add(JobLocation(job_id=job.id, location_type="delivery", address=f"{i + 1} Park Street, Kolkata", sequence_order=order))
        order += 1
    db.commit()
    db.refresh(job)
    return job


@pytest.fixture
def maker(db):
    return make_user(db, "maker", "maker")


@pytest.fixture
def checker(db):
    return make_user(db, "checker", "checker")


@pytest.fixture
def admin(db):
    return make_user(db, "super_admin", "admin")

"""
Create the initial super_admin / checker / maker accounts and a default warehouse.

Usage:
    python scripts/seed_users.py [--password PASSWORD] [--dry-run]

Existing usernames are left untouched, so the script can be re-run safely.
"""
import argparse
import os
import sys
from datetime import datetime, timezone

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from movehub.auth.security import get_password_hash
from movehub.db import Base, SessionLocal, engine
from movehub.models.models import User, Warehouse


SEED_USERS = [
    ("admin", "admin@buhariwala.com", "System Administrator", "super_admin"),
    ("checker", "checker@buhariwala.com", "Operations Checker", "checker"),
    ("maker", "maker@buhariwala.com", "Field Surveyor", "maker"),
]

SEED_WAREHOUSE = ("Express Hub Delhi", "Delhi, India")


def seed(password: str, dry_run: bool = False) -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    now = datetime.now(timezone.utc)
    try:
        for username, email, full_name, role in SEED_USERS:
            if db.query(User).filter(User.username == username).first():
                print(f"[SKIP] {username} already exists")
                continue
            print(f"[ADD] {username} ({role})")
            db.add(User(
                username=username,
                email=email,
                full_name=full_name,
                role=role,
                password_hash=get_password_hash(password),
                is_active=True,
                created_at=now,
                updated_at=now,
            ))
        name, address = SEED_WAREHOUSE
        if not db.query(Warehouse).filter(Warehouse.name == name).first():
            print(f"[ADD] warehouse {name}")
            db.add(Warehouse(name=name, address=address, is_active=True, created_at=now, updated_at=now))
        if dry_run:
            db.rollback()
            print("Dry run: nothing written")
        else:
            db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed default MoveHub accounts")
    parser.add_argument("--password", default=os.getenv("SEED_PASSWORD", "changeme123"))
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()
    seed(args.password, args.dry_run)

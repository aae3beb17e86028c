#!/usr/bin/env python3
"""
Seed Data Script

Creates the ticketing tables and the initial staff accounts used by the QR
verifier app and the admin panel.

Usage:
    python seed_data.py
    STAFF_SEED_PASSWORD=secret python seed_data.py
"""

import os

from src.auth.schemas import StaffRole
from src.auth.service import StaffService
from src.database import Base, SessionLocal, engine
from src import models  # noqa: F401

DEFAULT_PASSWORD = "ChangeMe123!"

STAFF_ACCOUNTS = [
    ("Event Administrator", "admin@malangdandiya.com", StaffRole.ADMIN),
    ("Gate Staff 1", "gate1@malangdandiya.com", StaffRole.STAFF),
    ("Gate Staff 2", "gate2@malangdandiya.com", StaffRole.STAFF),
]


def create_seed_data():
    Base.metadata.create_all(bind=engine)
    password = os.getenv("STAFF_SEED_PASSWORD", DEFAULT_PASSWORD)
    db = SessionLocal()

    try:
        print("🚀 Creating staff accounts...")
        created = 0
        for name, email, role in STAFF_ACCOUNTS:
            if StaffService.get_staff_by_email(db, email):
                print(f"  - {email} already exists, skipping")
                continue
            StaffService.create_staff(db, name=name, email=email, password=password, role=role)
            created += 1
            print(f"  - {email} ({role.value})")

        print(f"✅ Created {created} staff account(s)")
        if password == DEFAULT_PASSWORD:
            print("⚠️  Default password in use, change it before the event")

    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    create_seed_data()

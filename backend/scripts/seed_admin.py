#!/usr/bin/env python3
"""
Admin User Seed Script
Creates (or promotes) an admin user for the session report console and
prints a bearer token for local testing.

Usage:
    python -m scripts.seed_admin <email> <full_name>

Example:
    python -m scripts.seed_admin admin@skillbridge.vn "Ops Admin"
"""
import sys
import os
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import UserDB, UserRole
from app.auth import create_access_token


def create_admin_user(email: str, full_name: str) -> UserDB:
    """Create an admin user, or upgrade an existing user with that email."""
    # Ensure tables exist
    init_db()

    db: Session = SessionLocal()
    try:
        existing = db.query(UserDB).filter(UserDB.email == email).first()

        if existing:
            if existing.role == UserRole.ADMIN:
                print(f"User '{email}' is already an admin.")
            else:
                existing.role = UserRole.ADMIN
                db.commit()
                print(f"Upgraded existing user '{email}' to admin role.")
            db.refresh(existing)
            return existing

        admin_user = UserDB(
            id=str(uuid4()),
            email=email,
            full_name=full_name,
            role=UserRole.ADMIN,
        )
        db.add(admin_user)
        db.commit()
        db.refresh(admin_user)
        print(f"Created admin user '{email}' ({admin_user.id}).")
        return admin_user
    finally:
        db.close()


def main():
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(1)

    admin = create_admin_user(sys.argv[1], sys.argv[2])
    print("\nBearer token (24h):")
    print(create_access_token(admin.id, admin.role.value))


if __name__ == "__main__":
    main()

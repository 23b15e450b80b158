#!/usr/bin/env python3
"""
Create or update a portal admin in the database.

Usage (set env vars; do NOT hardcode secrets):

  Required env vars:
    - USER_EMAIL
    - USER_PASSWORD

  Optional env vars:
    - USER_FIRST_NAME (default: "System")
    - USER_LAST_NAME (default: "Administrator")

  DATABASE_URL is read from the normal backend config (recovery_portal.config.database).
"""
import os
import sys

# Ensure we can import backend modules
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from recovery_portal.config.database import SessionLocal  # type: ignore
from recovery_portal.models import User, UserStatus  # type: ignore
from recovery_portal.utils.auth import hash_password, validate_password_strength  # type: ignore


def main() -> None:
    email = (os.getenv("USER_EMAIL") or "").strip().lower()
    password = os.getenv("USER_PASSWORD")
    first_name = os.getenv("USER_FIRST_NAME", "System")
    last_name = os.getenv("USER_LAST_NAME", "Administrator")

    if not email or not password:
        print("ERROR: USER_EMAIL and USER_PASSWORD must be set in environment.")
        sys.exit(1)

    strength = validate_password_strength(password)
    if not strength["valid"]:
        print("ERROR: " + "; ".join(strength["errors"]))
        sys.exit(1)

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.password_hash = hash_password(password)
            user.first_name = first_name
            user.last_name = last_name
            user.is_admin = True
            user.status = UserStatus.ACTIVE
            user.must_change_password = False
            db.commit()
            print(f"✅ Updated existing admin: {email}")
        else:
            db.add(User(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                is_admin=True,
                status=UserStatus.ACTIVE,
            ))
            db.commit()
            print(f"✅ Created admin: {email}")

    except Exception as e:
        db.rollback()
        print(f"❌ Error creating admin: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()

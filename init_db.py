#!/usr/bin/env python3
"""
Initialize the recovery portal database
Creates a demo organisation, an admin and a client user for local testing
"""
import sys
import os

# Add the project root to the path to import the package
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from recovery_portal.config.database import SessionLocal
from recovery_portal.models import Organisation, User, UserStatus, SessionSettings, create_tables
from recovery_portal.utils.auth import hash_password

ADMIN_EMAIL = os.getenv("INIT_ADMIN_EMAIL", "admin@recovery.local")
ADMIN_PASSWORD = os.getenv("INIT_ADMIN_PASSWORD", "RecoveryAdmin2025")
CLIENT_EMAIL = os.getenv("INIT_CLIENT_EMAIL", "client@demo-lending.local")
CLIENT_PASSWORD = os.getenv("INIT_CLIENT_PASSWORD", "DemoClient2025")


def init_database():
    """Initialize database with default data"""

    print("🚀 Initializing recovery portal database...")

    create_tables()
    print("✅ Database tables created")

    db = SessionLocal()

    try:
        organisation = db.query(Organisation).filter(Organisation.name == "Demo Lending Ltd").first()
        if not organisation:
            organisation = Organisation(
                name="Demo Lending Ltd",
                contact_email=CLIENT_EMAIL,
                contact_phone="0118 000 0000",
            )
            db.add(organisation)
            db.commit()
            db.refresh(organisation)
            print(f"✅ Created demo organisation: {organisation.name}")
        else:
            print(f"ℹ️  Demo organisation already exists: {organisation.name}")

        if not db.query(User).filter(User.email == ADMIN_EMAIL).first():
            db.add(User(
                email=ADMIN_EMAIL,
                password_hash=hash_password(ADMIN_PASSWORD),
                first_name="System",
                last_name="Administrator",
                is_admin=True,
                status=UserStatus.ACTIVE,
            ))
            db.commit()
            print("✅ Created admin user:")
            print(f"   📧 Email: {ADMIN_EMAIL}")
            print(f"   🔐 Password: {ADMIN_PASSWORD}")
        else:
            print("ℹ️  Admin user already exists")

        if not db.query(User).filter(User.email == CLIENT_EMAIL).first():
            db.add(User(
                email=CLIENT_EMAIL,
                password_hash=hash_password(CLIENT_PASSWORD),
                first_name="Demo",
                last_name="Client",
                organisation_id=organisation.id,
                status=UserStatus.ACTIVE,
            ))
            db.commit()
            print("✅ Created client user:")
            print(f"   📧 Email: {CLIENT_EMAIL}")
            print(f"   🔐 Password: {CLIENT_PASSWORD}")
        else:
            print("ℹ️  Client user already exists")

        session_settings = SessionSettings.get_or_create_default(db)
        print(f"⏱️  Idle timeout: {session_settings.session_timeout_seconds}s "
              f"(warning {session_settings.session_warning_seconds}s before)")

        print("\n🎉 Database initialization complete!")
        print("   🌐 API: http://localhost:8000")
        print("   📚 Docs: http://localhost:8000/api/docs")
        print("\n⚠️  Change the default passwords before using this database anywhere but locally")

    except Exception as e:
        print(f"❌ Error initializing database: {e}")
        db.rollback()
        raise

    finally:
        db.close()


if __name__ == "__main__":
    init_database()

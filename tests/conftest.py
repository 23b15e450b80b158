"""
Test configuration and fixtures for the recovery portal backend tests.
"""
import os
import tempfile

# Settings are read at import time, so the environment must be in place first
UPLOAD_ROOT = tempfile.mkdtemp(prefix="portal-uploads-")
os.environ.update({
    "DATABASE_URL": "sqlite://",
    "UPLOAD_DIR": UPLOAD_ROOT,
    "USE_S3_STORAGE": "false",
    "RATE_LIMIT_ENABLED": "false",
    "DEBUG": "true",
    "SECRET_KEY": "test-secret-key-for-the-portal-suite",
})

from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from recovery_portal.config.database import Base, engine, SessionLocal, get_db
from recovery_portal.main import app
from recovery_portal.models import Organisation, User, Case, Payment
from recovery_portal.utils.auth import hash_password
from recovery_portal.utils.document_storage import DocumentStorage, get_document_storage
from tests.helpers import PASSWORD, login


@pytest.fixture
def db_session():
    """Fresh schema for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    """Local document storage rooted in a per-test directory."""
    return DocumentStorage(upload_dir=str(tmp_path))


@pytest.fixture
def client(db_session, storage):
    """Create a test client with database and storage dependency overrides."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_document_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_organisation(db_session):
    def _make(name="Acme Lending Ltd"):
        organisation = Organisation(name=name, contact_email="accounts@example.com")
        db_session.add(organisation)
        db_session.commit()
        return organisation
    return _make


@pytest.fixture
def make_user(db_session):
    def _make(email, organisation=None, is_admin=False, password=PASSWORD, **fields):
        user = User(
            email=email,
            password_hash=hash_password(password),
            organisation_id=organisation.id if organisation else None,
            is_admin=is_admin,
            **fields
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def make_case(db_session):
    counter = {"n": 0}

    def _make(organisation, payments=(), **fields):
        counter["n"] += 1
        values = dict(
            account_number=f"ACC-2025-{counter['n']:06d}",
            debtor_name=f"Debtor {counter['n']}",
            original_amount=Decimal("1000.00"),
            organisation_id=organisation.id,
        )
        values.update(fields)
        case = Case(**values)
        db_session.add(case)
        db_session.flush()
        for amount, when in payments:
            db_session.add(Payment(
                case_id=case.id,
                organisation_id=organisation.id,
                amount=Decimal(str(amount)),
                payment_date=when or datetime.utcnow(),
                payment_method="Bank Transfer",
            ))
        db_session.commit()
        db_session.refresh(case)
        return case
    return _make


@pytest.fixture
def organisation(make_organisation):
    return make_organisation()


@pytest.fixture
def client_user(make_user, organisation):
    return make_user("client@example.com", organisation, first_name="Casey", last_name="Client")


@pytest.fixture
def admin_user(make_user):
    return make_user("admin@example.com", is_admin=True, first_name="Ada", last_name="Admin")


@pytest.fixture
def as_client(client, client_user):
    login(client, client_user.email)
    return client


@pytest.fixture
def as_admin(client, admin_user):
    login(client, admin_user.email)
    return client

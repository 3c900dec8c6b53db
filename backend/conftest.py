"""Shared pytest fixtures: a throwaway SQLite file, seeded organizations, admins and items."""
import base64
import os
import shutil
import tempfile

# Settings are read at import time, so the environment must be ready first.
_TMP_DIR = tempfile.mkdtemp(prefix="lendbox-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "storage")
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["ENVIRONMENT"] = "test"
os.environ["ALLOWED_HOSTS"] = "testserver,localhost"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"
os.environ["RATE_LIMIT_SUBMISSIONS"] = "100000"
os.environ["MASTER_ADMIN_EMAIL"] = "master@example.com"
os.environ["MASTER_ADMIN_PASSWORD"] = "master-password-1"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import lendbox.models  # noqa: E402,F401
from lendbox.core.permissions import AdminContext  # noqa: E402
from lendbox.core.security import create_access_token, get_password_hash  # noqa: E402
from lendbox.db.base import Base  # noqa: E402
from lendbox.db.session import SessionLocal, engine  # noqa: E402
from lendbox.models.item import Item  # noqa: E402
from lendbox.models.organization import Organization  # noqa: E402
from lendbox.models.user import ROLE_ADMIN_MASTER, ROLE_ADMIN_ORG, User  # noqa: E402
from lendbox.services import inventory_service, loan_service  # noqa: E402

ADMIN_PASSWORD = "org-admin-pass-1"
PHOTO = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\nnot-really-a-png").decode()


def pytest_sessionfinish(session, exitstatus):
    engine.dispose()
    shutil.rmtree(_TMP_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _organization(db, name, slug):
    organization = Organization(name=name, slug=slug)
    db.add(organization)
    db.commit()
    db.refresh(organization)
    return organization


@pytest.fixture
def organization(db):
    return _organization(db, "Alpha School", "alpha-school")


@pytest.fixture
def other_organization(db):
    return _organization(db, "Beta Club", "beta-club")


def _user(db, email, role, organization_id=None):
    user = User(
        name=email.split("@")[0].title(),
        email=email,
        hashed_password=get_password_hash(ADMIN_PASSWORD),
        role=role,
        organization_id=organization_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def org_admin(db, organization):
    return _user(db, "alpha.admin@example.com", ROLE_ADMIN_ORG, organization.id)


@pytest.fixture
def other_admin(db, other_organization):
    return _user(db, "beta.admin@example.com", ROLE_ADMIN_ORG, other_organization.id)


@pytest.fixture
def master_admin(db):
    return _user(db, "root@example.com", ROLE_ADMIN_MASTER)


@pytest.fixture
def admin_ctx(org_admin):
    return AdminContext.from_user(org_admin)


@pytest.fixture
def make_item(db, organization):
    def _make(stock=5, is_loanable=True, reason=None, organization_id=None, name="Projector"):
        item = Item(
            organization_id=organization_id or organization.id,
            name=name,
            code=inventory_service.generate_item_code(db),
            category="Electronics",
            stock=stock,
            available_stock=stock,
            condition="good",
            is_loanable=is_loanable,
            not_loanable_reason=reason,
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return _make


@pytest.fixture
def make_loan(db, organization):
    def _make(item, quantity=1, borrower_name="Budi"):
        return loan_service.submit_loan(
            db,
            organization,
            item.id,
            borrower_name=borrower_name,
            borrower_phone="08123456789",
            borrower_photo="loan_photos/test.jpg",
            quantity=quantity,
        )

    return _make


@pytest.fixture
def client():
    from lendbox.main import app

    with TestClient(app) as c:
        yield c


def auth_header(user):
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest.fixture
def auth():
    return auth_header


@pytest.fixture
def photo():
    return PHOTO

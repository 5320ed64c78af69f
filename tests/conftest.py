"""
Test configuration and fixtures.

Provides:
- In-memory SQLite schema rebuilt for every test
- Clinic/user factories and JWT minting per role
- HTTPX AsyncClient bound to the ASGI app
"""
import os
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

# Must be set before the app (and its settings) are imported
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_MIGRATE"] = "false"
os.environ["JWT_SECRET"] = "test-secret"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from clinic_api.core.deps import get_db
from clinic_api.core.login_attempts import InMemoryLoginAttemptStore
from clinic_api.core.security import create_access_token, hash_password
from clinic_api.db import models  # noqa: F401
from clinic_api.db.base import Base
from clinic_api.db.enums import ClinicStatus, Role
from clinic_api.db.models import Clinic, User
from clinic_api.db.session import SessionLocal, engine
from clinic_api.main import app
from clinic_api.services.lead_service import get_leads_cache

USER_PASSWORD = "secret123"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; the in-memory database lives on one shared connection."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_leads_cache():
    get_leads_cache().clear()
    yield
    get_leads_cache().clear()


@pytest.fixture
def login_attempts() -> InMemoryLoginAttemptStore:
    store = InMemoryLoginAttemptStore(max_attempts=3, lockout_seconds=900)
    app.state.login_attempts = store
    yield store
    del app.state.login_attempts


# =============================================================================
# Factories
# =============================================================================

def create_clinic(db: Session, slug: str, **overrides) -> Clinic:
    clinic = Clinic(
        name=overrides.pop("name", slug.replace("-", " ").title()),
        slug=slug,
        status=overrides.pop("status", ClinicStatus.ACTIVE.value),
        **overrides,
    )
    db.add(clinic)
    db.commit()
    db.refresh(clinic)
    return clinic


def create_user(
    db: Session,
    username: str,
    role: Role,
    clinic: Clinic | None = None,
    password: str = USER_PASSWORD,
    **overrides,
) -> User:
    user = User(
        name=overrides.pop("name", username.title()),
        username=username,
        password_hash=hash_password(password),
        role=role.value,
        clinic_id=clinic.id if clinic else None,
        **overrides,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def mint_token(user: User) -> str:
    return create_access_token(
        user_id=user.id,
        username=user.username,
        name=user.name,
        role=user.role,
        clinic_id=user.clinic_id,
        is_owner=user.is_owner,
    )


def headers_for(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(user)}"}


@pytest.fixture
def make_clinic():
    return create_clinic


@pytest.fixture
def make_user():
    return create_user


@pytest.fixture
def user_token():
    return mint_token


@pytest.fixture
def auth_headers():
    return headers_for


@pytest.fixture
def user_password() -> str:
    return USER_PASSWORD


# =============================================================================
# Tenant Fixtures
# =============================================================================

@dataclass
class Tenant:
    clinic: Clinic
    admin: User
    staff: User

    @property
    def admin_headers(self) -> dict[str, str]:
        return headers_for(self.admin)

    @property
    def staff_headers(self) -> dict[str, str]:
        return headers_for(self.staff)


def make_tenant(db: Session, slug: str) -> Tenant:
    clinic = create_clinic(db, slug)
    admin = create_user(db, f"{slug}-admin", Role.CLINIC_ADMIN, clinic, is_owner=True)
    staff = create_user(db, f"{slug}-staff", Role.STAFF, clinic)
    return Tenant(clinic=clinic, admin=admin, staff=staff)


@pytest.fixture
def clinic_a(db: Session) -> Tenant:
    return make_tenant(db, "clinic-a")


@pytest.fixture
def clinic_b(db: Session, clinic_a: Tenant) -> Tenant:
    return make_tenant(db, "clinic-b")


@pytest.fixture
def super_admin(db: Session) -> User:
    return create_user(db, "root", Role.SUPER_ADMIN)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient sharing the test session with request handlers."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()

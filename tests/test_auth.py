"""Login, token verification, secret rotation and lockout."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from clinic_api.core import security
from clinic_api.core.config import settings
from clinic_api.core.deps import resolve_tenant_context
from clinic_api.core.errors import UnauthenticatedError
from clinic_api.core.login_attempts import InMemoryLoginAttemptStore
from clinic_api.db.enums import ClinicStatus, Role


# =============================================================================
# Token handling
# =============================================================================

def test_token_round_trips_into_tenant_context(db, clinic_a, user_token):
    context = resolve_tenant_context(user_token(clinic_a.admin))
    assert context.user_id == clinic_a.admin.id
    assert context.clinic_id == clinic_a.clinic.id
    assert context.role == Role.CLINIC_ADMIN
    assert context.is_owner is True


def test_expired_token_is_rejected():
    payload = {
        "userId": 1,
        "username": "x",
        "role": "staff",
        "clinicId": 1,
        "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")
    with pytest.raises(UnauthenticatedError, match="invalid or expired token"):
        resolve_tenant_context(token)


def test_token_with_unknown_role_is_rejected():
    token = jwt.encode(
        {"userId": 1, "username": "x", "role": "owner", "clinicId": 1},
        settings.JWT_SECRET,
        algorithm="HS256",
    )
    with pytest.raises(UnauthenticatedError):
        resolve_tenant_context(token)


def test_previous_secret_still_verifies(monkeypatch):
    old_token = security.create_access_token(1, "ana", "Ana", "staff", 1)
    monkeypatch.setattr(settings, "JWT_SECRET", "rotated-secret")
    monkeypatch.setattr(settings, "JWT_SECRET_PREVIOUS", "test-secret")

    assert resolve_tenant_context(old_token).username == "ana"


def test_password_hashing():
    hashed = security.hash_password("s3cret!")
    assert security.verify_password("s3cret!", hashed)
    assert not security.verify_password("wrong", hashed)
    assert not security.verify_password("s3cret!", "")


# =============================================================================
# Login endpoint
# =============================================================================

@pytest.mark.asyncio
async def test_login_returns_token_and_user(client, db, clinic_a, user_password):
    res = await client.post(
        "/api/auth/login", json={"username": clinic_a.admin.username, "password": user_password}
    )
    assert res.status_code == 200
    body = res.json()
    assert body["user"]["clinic_id"] == clinic_a.clinic.id
    assert body["user"]["isOwner"] is True
    assert body["user"]["clinic"]["slug"] == "clinic-a"
    assert body["user"]["last_login_at"] is not None

    verify = await client.get(
        "/api/auth/verify", headers={"Authorization": f"Bearer {body['token']}"}
    )
    assert verify.status_code == 200
    assert verify.json()["user"]["clinic_id"] == clinic_a.clinic.id


@pytest.mark.asyncio
async def test_login_accepts_email(client, db, make_clinic, make_user, user_password):
    clinic = make_clinic(db, "clinic-mail")
    make_user(db, "maria", Role.STAFF, clinic, email="maria@clinic.test")
    res = await client.post(
        "/api/auth/login", json={"email": "maria@clinic.test", "password": user_password}
    )
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_login_wrong_password(client, clinic_a):
    res = await client.post(
        "/api/auth/login", json={"username": clinic_a.staff.username, "password": "nope"}
    )
    assert res.status_code == 401
    assert res.json()["code"] == "INVALID_CREDENTIALS"


@pytest.mark.asyncio
async def test_login_missing_fields(client, db):
    res = await client.post("/api/auth/login", json={"username": "someone"})
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_login_blocked_for_suspended_clinic(client, db, make_clinic, make_user, user_password):
    clinic = make_clinic(db, "clinic-off", status=ClinicStatus.SUSPENDED.value)
    user = make_user(db, "blocked", Role.STAFF, clinic)
    res = await client.post("/api/auth/login", json={"username": user.username, "password": user_password})
    assert res.status_code == 403
    assert res.json()["code"] == "CLINIC_INACTIVE"


@pytest.mark.asyncio
async def test_super_admin_logs_in_without_clinic(client, super_admin, user_password):
    res = await client.post("/api/auth/login", json={"username": "root", "password": user_password})
    assert res.status_code == 200
    assert res.json()["user"]["clinic"] is None


@pytest.mark.asyncio
async def test_lockout_after_repeated_failures(client, clinic_a, login_attempts, user_password):
    username = clinic_a.staff.username
    for _ in range(login_attempts.max_attempts):
        res = await client.post("/api/auth/login", json={"username": username, "password": "bad"})
        assert res.status_code == 401

    res = await client.post("/api/auth/login", json={"username": username, "password": user_password})
    assert res.status_code == 429


def test_lockout_window_expires():
    now = [0.0]
    store = InMemoryLoginAttemptStore(max_attempts=2, lockout_seconds=60, clock=lambda: now[0])
    store.record_failure("ana")
    store.record_failure("ana")
    assert store.is_locked("ana")

    now[0] += 61
    assert not store.is_locked("ana")


def test_reset_clears_failures():
    store = InMemoryLoginAttemptStore(max_attempts=1, lockout_seconds=60)
    store.record_failure("ana")
    store.reset("ana")
    assert not store.is_locked("ana")


def test_lockout_ignores_username_case():
    store = InMemoryLoginAttemptStore(max_attempts=2, lockout_seconds=60)
    store.record_failure("Ana")
    assert store.record_failure("ANA") == 2
    assert store.is_locked("ana")

    store.reset("aNa")
    assert not store.is_locked("Ana")


def test_expired_windows_are_pruned_on_failure():
    now = [0.0]
    store = InMemoryLoginAttemptStore(max_attempts=5, lockout_seconds=60, clock=lambda: now[0])
    for username in ("ana", "bia", "caio"):
        store.record_failure(username)

    now[0] += 61
    store.record_failure("davi")
    assert list(store._attempts) == ["davi"]

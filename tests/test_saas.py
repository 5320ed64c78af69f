"""Super admin platform endpoints."""

import pytest

from clinic_api.db.enums import UpgradeRequestStatus
from clinic_api.db.models import AuditLog, Clinic, Lead, UpgradeRequest, User


def _clinic_payload(slug: str, username: str) -> dict:
    return {
        "name": f"Clinica {slug}",
        "slug": slug,
        "plan_tier": "professional",
        "admin": {"name": "Dona", "username": username, "password": "secret123"},
    }


@pytest.mark.asyncio
async def test_non_super_admin_is_forbidden(client, clinic_a):
    res = await client.get("/api/saas/clinics", headers=clinic_a.admin_headers)
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_create_clinic_with_owner(client, db, super_admin, auth_headers):
    res = await client.post(
        "/api/saas/clinics",
        json=_clinic_payload("nova-clinica", "dona"),
        headers=auth_headers(super_admin),
    )
    assert res.status_code == 201
    body = res.json()
    assert body["clinic"]["slug"] == "nova-clinica"
    assert body["clinic"]["plan_tier"] == "professional"

    admin = db.get(User, body["admin_user_id"])
    assert admin.role == "clinic_admin"
    assert admin.is_owner is True
    assert admin.clinic_id == body["clinic"]["id"]
    assert db.get(Clinic, body["clinic"]["id"]).owner_id == admin.id


@pytest.mark.asyncio
async def test_duplicate_slug_or_username_conflicts(client, db, super_admin, clinic_a, auth_headers):
    headers = auth_headers(super_admin)

    res = await client.post("/api/saas/clinics", json=_clinic_payload("clinic-a", "fresh"), headers=headers)
    assert res.status_code == 409
    assert res.json()["code"] == "SLUG_TAKEN"

    res = await client.post(
        "/api/saas/clinics",
        json=_clinic_payload("clinic-z", clinic_a.staff.username),
        headers=headers,
    )
    assert res.status_code == 409
    assert res.json()["code"] == "USERNAME_TAKEN"
    assert db.query(Clinic).filter(Clinic.slug == "clinic-z").first() is None


@pytest.mark.asyncio
async def test_default_clinic_cannot_be_deleted(client, super_admin, clinic_a, auth_headers):
    assert clinic_a.clinic.id == 1
    res = await client.delete("/api/saas/clinics/1", headers=auth_headers(super_admin))
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_delete_clinic_removes_owned_rows(client, db, super_admin, clinic_a, clinic_b, auth_headers):
    db.add(Lead(clinic_id=clinic_b.clinic.id, name="Lead B"))
    db.commit()
    clinic_b_id = clinic_b.clinic.id

    res = await client.delete(f"/api/saas/clinics/{clinic_b_id}", headers=auth_headers(super_admin))
    assert res.status_code == 204

    db.expire_all()
    assert db.get(Clinic, clinic_b_id) is None
    assert db.query(Lead).filter(Lead.clinic_id == clinic_b_id).count() == 0
    assert db.query(User).filter(User.clinic_id == clinic_b_id).count() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "start, target, expected",
    [
        ("active", "suspended", 200),
        ("suspended", "active", 200),
        ("suspended", "cancelled", 200),
        ("cancelled", "suspended", 200),
        ("trial", "active", 200),
        ("cancelled", "active", 409),
        ("active", "trial", 409),
    ],
)
async def test_status_transitions(client, db, super_admin, start, target, expected, auth_headers, make_clinic):
    clinic = make_clinic(db, f"lifecycle-{start}", status=start)
    res = await client.patch(
        f"/api/saas/clinics/{clinic.id}/status",
        json={"status": target},
        headers=auth_headers(super_admin),
    )
    assert res.status_code == expected
    if expected == 200:
        assert res.json()["status"] == target


@pytest.mark.asyncio
async def test_approving_upgrade_sets_plan(client, db, super_admin, clinic_a, auth_headers):
    res = await client.post(
        "/api/clinic/upgrade-request",
        json={"requested_plan": "enterprise", "notes": "mais usuarios"},
        headers=clinic_a.admin_headers,
    )
    assert res.status_code == 201
    request_id = res.json()["id"]
    assert res.json()["current_plan"] == "basic"

    res = await client.get(
        "/api/saas/upgrade-requests", params={"status": "pending"}, headers=auth_headers(super_admin)
    )
    assert [row["id"] for row in res.json()] == [request_id]

    res = await client.patch(
        f"/api/saas/upgrade-requests/{request_id}",
        json={"status": "approved"},
        headers=auth_headers(super_admin),
    )
    assert res.status_code == 200
    assert res.json()["status"] == "approved"
    db.expire_all()
    assert db.get(Clinic, clinic_a.clinic.id).plan_tier == "enterprise"

    res = await client.patch(
        f"/api/saas/upgrade-requests/{request_id}",
        json={"status": "rejected"},
        headers=auth_headers(super_admin),
    )
    assert res.status_code == 409


@pytest.mark.asyncio
async def test_rejecting_upgrade_keeps_plan(client, db, super_admin, clinic_a, auth_headers):
    request = UpgradeRequest(
        clinic_id=clinic_a.clinic.id,
        current_plan="basic",
        requested_plan="professional",
        status=UpgradeRequestStatus.PENDING.value,
    )
    db.add(request)
    db.commit()

    res = await client.patch(
        f"/api/saas/upgrade-requests/{request.id}",
        json={"status": "rejected"},
        headers=auth_headers(super_admin),
    )
    assert res.status_code == 200
    db.expire_all()
    assert db.get(Clinic, clinic_a.clinic.id).plan_tier == "basic"


@pytest.mark.asyncio
async def test_stats_and_analytics(client, db, super_admin, clinic_a, clinic_b, auth_headers):
    db.add_all([Lead(clinic_id=clinic_b.clinic.id, name=f"L{i}") for i in range(3)])
    db.add(Lead(clinic_id=clinic_a.clinic.id, name="A"))
    db.commit()
    headers = auth_headers(super_admin)

    stats = (await client.get("/api/saas/stats", headers=headers)).json()
    assert stats["total_clinics"] == 2
    assert stats["total_leads"] == 4

    analytics = (await client.get("/api/saas/analytics", headers=headers)).json()
    assert analytics["top_clinics"][0]["slug"] == "clinic-b"
    assert analytics["top_clinics"][0]["lead_count"] == 3

    export = await client.get("/api/saas/analytics/export", headers=headers)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "attachment" in export.headers["content-disposition"]
    assert "clinic-b" in export.text


@pytest.mark.asyncio
async def test_platform_requests_are_audited(client, db, super_admin, auth_headers):
    res = await client.get("/api/saas/stats", headers=auth_headers(super_admin))
    assert res.status_code == 200

    db.expire_all()
    entry = db.query(AuditLog).one()
    assert entry.user_id == super_admin.id
    assert entry.action == "GET /api/saas/stats"
    assert entry.status_code == 200

    res = await client.get("/api/saas/audit-logs", headers=auth_headers(super_admin))
    assert res.json()["total"] >= 1

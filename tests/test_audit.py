"""Audit action labels and middleware writes."""

from types import SimpleNamespace

import pytest

from clinic_api.db.models import AuditLog
from clinic_api.services.audit_service import action_name, route_template, should_audit


@pytest.mark.parametrize(
    "route_path, path, expected",
    [
        ("/api/saas/stats", "/api/saas/stats", "/api/saas/stats"),
        ("/stats", "/api/saas/stats", "/api/saas/stats"),
        ("/stats", "/api/clinic/stats", "/api/clinic/stats"),
        ("/clinics/{clinic_id}", "/api/saas/clinics/7", "/api/saas/clinics/{clinic_id}"),
        ("/api/appointments/{appointment_id}", "/api/appointments/lead-3", "/api/appointments/{appointment_id}"),
    ],
)
def test_route_template_keeps_router_prefix(route_path, path, expected):
    scope = {"path": path, "route": SimpleNamespace(path=route_path)}
    assert route_template(scope) == expected


def test_route_template_without_matched_route():
    assert route_template({"path": "/api/nope"}) == "/api/nope"


def test_action_name_and_audit_filter():
    assert action_name("patch", "/api/appointments/{appointment_id}") == "PATCH /api/appointments/{appointment_id}"
    assert should_audit("GET", "/api/saas/stats")
    assert should_audit("DELETE", "/api/leads/1")
    assert not should_audit("GET", "/api/clinic/stats")


@pytest.mark.asyncio
async def test_platform_and_tenant_stats_are_told_apart(client, db, clinic_a, super_admin, auth_headers):
    await client.get("/api/saas/stats", headers=auth_headers(super_admin))
    await client.post(
        "/api/clinic/upgrade-request",
        json={"requested_plan": "professional"},
        headers=clinic_a.admin_headers,
    )

    db.expire_all()
    actions = {entry.action for entry in db.query(AuditLog).all()}
    assert actions == {"GET /api/saas/stats", "POST /api/clinic/upgrade-request"}

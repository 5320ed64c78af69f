"""Appointment/lead union view: listing, id routing, writes and archive."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from clinic_api.db.enums import LeadStatus
from clinic_api.db.models import Appointment, Lead, Patient
from clinic_api.services import appointment_service


def _at(hour: int, days: int = 0) -> datetime:
    base = datetime.now().replace(hour=hour, minute=0, second=0, microsecond=0)
    return base + timedelta(days=days)


def _add_appointment(db, clinic_id: int, start: datetime, **fields) -> Appointment:
    appt = Appointment(
        clinic_id=clinic_id,
        patient_name=fields.pop("patient_name", "Maria"),
        start_time=start,
        appointment_date=start,
        **fields,
    )
    db.add(appt)
    db.commit()
    db.refresh(appt)
    return appt


def _add_lead(db, clinic_id: int, when: datetime | None, **fields) -> Lead:
    lead = Lead(clinic_id=clinic_id, name=fields.pop("name", "João"), appointment_date=when, **fields)
    db.add(lead)
    db.commit()
    db.refresh(lead)
    return lead


# =============================================================================
# List
# =============================================================================

@pytest.mark.asyncio
async def test_list_merges_appointments_and_dated_leads(client, db, clinic_a):
    clinic_id = clinic_a.clinic.id
    appt = _add_appointment(db, clinic_id, _at(11), duration_minutes=45)
    lead = _add_lead(
        db,
        clinic_id,
        _at(9),
        notes='Retorno {"financial": {"paymentType": "Unimed", "paymentValue": 150}}',
    )
    _add_lead(db, clinic_id, None, name="Sem data")

    res = await client.get("/api/calendar/appointments", headers=clinic_a.staff_headers)
    assert res.status_code == 200
    rows = res.json()

    assert [row["id"] for row in rows] == [f"lead-{lead.id}", appt.id]
    lead_row, appt_row = rows
    assert lead_row["source"] == "lead"
    assert lead_row["insurance"] == "Unimed"
    assert datetime.fromisoformat(lead_row["endTime"]) - datetime.fromisoformat(
        lead_row["startTime"]
    ) == timedelta(minutes=30)
    assert appt_row["source"] == "appointment"
    assert datetime.fromisoformat(appt_row["endTime"]) == _at(11) + timedelta(minutes=45)
    assert "X-Calendar-Degraded" not in res.headers


@pytest.mark.asyncio
async def test_appointment_without_duration_defaults_to_thirty_minutes(client, db, clinic_a):
    _add_appointment(db, clinic_a.clinic.id, _at(14))
    res = await client.get("/api/calendar/appointments", headers=clinic_a.staff_headers)
    (row,) = res.json()
    assert datetime.fromisoformat(row["endTime"]) == _at(14) + timedelta(minutes=30)


@pytest.mark.asyncio
async def test_date_only_end_bound_includes_whole_day(client, db, clinic_a):
    clinic_id = clinic_a.clinic.id
    _add_appointment(db, clinic_id, _at(22))
    _add_lead(db, clinic_id, _at(23))
    _add_appointment(db, clinic_id, _at(10, days=2))

    day = _at(0).date().isoformat()
    res = await client.get(
        "/api/calendar/appointments",
        params={"startDate": day, "endDate": day},
        headers=clinic_a.staff_headers,
    )
    assert res.status_code == 200
    assert len(res.json()) == 2


@pytest.mark.asyncio
async def test_overlapping_appointment_is_included(client, db, clinic_a):
    # Starts before the window, ends inside it
    _add_appointment(db, clinic_a.clinic.id, _at(8), end_time=_at(10))
    res = await client.get(
        "/api/calendar/appointments",
        params={"startDate": _at(9).isoformat(), "endDate": _at(12).isoformat()},
        headers=clinic_a.staff_headers,
    )
    assert len(res.json()) == 1


@pytest.mark.asyncio
async def test_invalid_date_range_is_bad_request(client, clinic_a):
    res = await client.get(
        "/api/calendar/appointments",
        params={"startDate": "yesterday"},
        headers=clinic_a.staff_headers,
    )
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_lead_failure_still_returns_appointments(client, db, clinic_a, monkeypatch):
    _add_appointment(db, clinic_a.clinic.id, _at(10))

    def broken(*args, **kwargs):
        raise OperationalError("SELECT leads", {}, Exception("no such table"))

    monkeypatch.setattr(appointment_service, "_list_lead_rows", broken)
    res = await client.get("/api/calendar/appointments", headers=clinic_a.staff_headers)
    assert res.status_code == 200
    assert len(res.json()) == 1
    assert res.headers["X-Calendar-Degraded"] == "true"


@pytest.mark.asyncio
async def test_both_sources_failing_is_internal_error(client, clinic_a, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(appointment_service, "_list_lead_rows", broken)
    monkeypatch.setattr(appointment_service, "_list_appointment_rows", broken)
    res = await client.get("/api/calendar/appointments", headers=clinic_a.staff_headers)
    assert res.status_code == 500
    assert res.json()["code"] == "INTERNAL_ERROR"


# =============================================================================
# Id routing
# =============================================================================

@pytest.mark.asyncio
async def test_get_appointment_backfills_patient_contact(client, db, clinic_a):
    patient = Patient(clinic_id=clinic_a.clinic.id, name="Ana Lima", phone="11999990000")
    db.add(patient)
    db.commit()
    appt = _add_appointment(db, clinic_a.clinic.id, _at(10), patient_name=None, patient_id=patient.id)

    res = await client.get(f"/api/appointments/{appt.id}", headers=clinic_a.staff_headers)
    assert res.status_code == 200
    body = res.json()
    assert body["patientName"] == "Ana Lima"
    assert body["patientPhone"] == "11999990000"


@pytest.mark.asyncio
async def test_patch_lead_moves_only_the_lead(client, db, clinic_a):
    clinic_id = clinic_a.clinic.id
    appt = _add_appointment(db, clinic_id, _at(9))
    lead = _add_lead(db, clinic_id, _at(10))
    new_start = _at(15, days=1)

    res = await client.patch(
        f"/api/calendar/appointments/lead-{lead.id}",
        json={"start": new_start.isoformat(), "notes": "ignored for leads"},
        headers=clinic_a.staff_headers,
    )
    assert res.status_code == 200
    assert res.json()["id"] == f"lead-{lead.id}"

    db.refresh(lead)
    db.refresh(appt)
    assert lead.appointment_date == new_start
    assert lead.notes is None
    assert appt.start_time == _at(9)


@pytest.mark.asyncio
async def test_patch_appointment_keeps_legacy_date_in_sync(client, db, clinic_a):
    appt = _add_appointment(db, clinic_a.clinic.id, _at(9), duration_minutes=60)
    new_start = _at(13)

    res = await client.patch(
        f"/api/appointments/{appt.id}",
        json={"appointmentDate": new_start.isoformat(), "name": "Maria Souza"},
        headers=clinic_a.staff_headers,
    )
    assert res.status_code == 200

    db.refresh(appt)
    assert appt.start_time == new_start
    assert appt.appointment_date == new_start
    assert appt.end_time == new_start + timedelta(minutes=60)
    assert appt.patient_name == "Maria Souza"


@pytest.mark.asyncio
async def test_patch_without_known_fields_is_bad_request(client, db, clinic_a):
    appt = _add_appointment(db, clinic_a.clinic.id, _at(9))
    res = await client.patch(
        f"/api/appointments/{appt.id}", json={"color": "red"}, headers=clinic_a.staff_headers
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "at least one field required"


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["status", "start", "appointmentDate"])
async def test_patch_rejects_null_for_required_columns(client, db, clinic_a, field):
    start = _at(9)
    appt = _add_appointment(db, clinic_a.clinic.id, start, notes="retorno")

    res = await client.patch(
        f"/api/appointments/{appt.id}", json={field: None}, headers=clinic_a.staff_headers
    )
    assert res.status_code == 422
    assert res.json()["code"] == "VALIDATION_ERROR"

    db.refresh(appt)
    assert appt.status == "scheduled"
    assert appt.start_time == start
    assert appt.appointment_date == start


@pytest.mark.asyncio
async def test_patch_null_clears_optional_column(client, db, clinic_a):
    appt = _add_appointment(db, clinic_a.clinic.id, _at(9), notes="retorno")

    res = await client.patch(
        f"/api/appointments/{appt.id}", json={"notes": None}, headers=clinic_a.staff_headers
    )
    assert res.status_code == 200

    db.refresh(appt)
    assert appt.notes is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw_id, code",
    [("lead-abc", "INVALID_LEAD_ID"), ("lead-", "INVALID_LEAD_ID"), ("abc", "INVALID_APPOINTMENT_ID")],
)
async def test_malformed_ids_are_bad_request(client, clinic_a, raw_id, code):
    res = await client.delete(f"/api/appointments/{raw_id}", headers=clinic_a.staff_headers)
    assert res.status_code == 400
    assert res.json()["code"] == code


@pytest.mark.asyncio
async def test_delete_routes_by_id_kind(client, db, clinic_a):
    clinic_id = clinic_a.clinic.id
    appt = _add_appointment(db, clinic_id, _at(9))
    lead = _add_lead(db, clinic_id, _at(10))

    res = await client.delete(f"/api/calendar/appointments/lead-{lead.id}", headers=clinic_a.staff_headers)
    assert res.status_code == 204
    assert db.get(Lead, lead.id) is None
    assert db.get(Appointment, appt.id) is not None

    res = await client.delete(f"/api/appointments/{appt.id}", headers=clinic_a.staff_headers)
    assert res.status_code == 204
    res = await client.delete(f"/api/appointments/{appt.id}", headers=clinic_a.staff_headers)
    assert res.status_code == 404


# =============================================================================
# Create
# =============================================================================

@pytest.mark.asyncio
async def test_create_applies_defaults(client, clinic_a):
    start = _at(10, days=1)
    res = await client.post(
        "/api/appointments",
        json={"patientName": "Carla", "appointmentDate": start.isoformat()},
        headers=clinic_a.staff_headers,
    )
    assert res.status_code == 201
    body = res.json()
    assert body["clinicId"] == clinic_a.clinic.id
    assert body["status"] == "scheduled"
    assert body["insurance"] == "Particular"
    assert datetime.fromisoformat(body["endTime"]) == start + timedelta(minutes=60)


@pytest.mark.asyncio
async def test_create_requires_name_and_date(client, clinic_a):
    res = await client.post(
        "/api/appointments", json={"patientName": "Carla"}, headers=clinic_a.staff_headers
    )
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_create_ignores_foreign_clinic_id_for_tenants(client, clinic_a, clinic_b):
    res = await client.post(
        "/api/appointments",
        json={
            "patientName": "Carla",
            "appointmentDate": _at(10).isoformat(),
            "clinicId": clinic_b.clinic.id,
        },
        headers=clinic_a.staff_headers,
    )
    assert res.status_code == 201
    assert res.json()["clinicId"] == clinic_a.clinic.id


@pytest.mark.asyncio
async def test_super_admin_must_name_clinic_on_create(client, super_admin, clinic_a, auth_headers):
    payload = {"patientName": "Carla", "appointmentDate": _at(10).isoformat()}
    res = await client.post("/api/appointments", json=payload, headers=auth_headers(super_admin))
    assert res.status_code == 400

    payload["clinicId"] = clinic_a.clinic.id
    res = await client.post("/api/appointments", json=payload, headers=auth_headers(super_admin))
    assert res.status_code == 201
    assert res.json()["clinicId"] == clinic_a.clinic.id


# =============================================================================
# Archive
# =============================================================================

@pytest.mark.asyncio
async def test_archived_listing_and_restore(client, db, clinic_a):
    clinic_id = clinic_a.clinic.id
    appt = _add_appointment(db, clinic_id, _at(9), status="archived")
    lead = _add_lead(db, clinic_id, _at(10), status=LeadStatus.ARCHIVED.value, archive_reason="duplicate")
    _add_appointment(db, clinic_id, _at(11))

    res = await client.get("/api/appointments/archived", headers=clinic_a.staff_headers)
    assert res.status_code == 200
    assert {row["id"] for row in res.json()} == {appt.id, f"lead-{lead.id}"}

    res = await client.post(f"/api/appointments/lead-{lead.id}/restore", headers=clinic_a.staff_headers)
    assert res.status_code == 200
    assert res.json()["status"] == "scheduled"
    db.refresh(lead)
    assert lead.status == LeadStatus.SCHEDULED.value
    assert lead.archive_reason is None

    res = await client.post(f"/api/appointments/{appt.id}/restore", headers=clinic_a.staff_headers)
    assert res.status_code == 200
    res = await client.post(f"/api/appointments/{appt.id}/restore", headers=clinic_a.staff_headers)
    assert res.status_code == 409

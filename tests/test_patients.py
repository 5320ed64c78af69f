"""Patient care flow: kanban status, clinical history and consultation finish."""

import json
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from clinic_api.db.models import MedicalRecord, Patient, Prescription


def _patient(db, clinic_id: int, **fields) -> Patient:
    patient = Patient(clinic_id=clinic_id, name=fields.pop("name", "Joana"), **fields)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


@pytest.mark.asyncio
async def test_status_moves_set_timestamps(client, db, clinic_a):
    patient = _patient(db, clinic_a.clinic.id)
    headers = clinic_a.staff_headers

    res = await client.patch(f"/api/patients/{patient.id}/status", json={"status": "consultation"}, headers=headers)
    assert res.status_code == 200
    started = res.json()["start_time"]
    assert started is not None
    assert res.json()["end_time"] is None

    res = await client.patch(f"/api/patients/{patient.id}/status", json={"status": "triage"}, headers=headers)
    res = await client.patch(f"/api/patients/{patient.id}/status", json={"status": "consultation"}, headers=headers)
    assert res.json()["start_time"] == started

    res = await client.patch(f"/api/patients/{patient.id}/status", json={"status": "finished"}, headers=headers)
    assert res.json()["status"] == "finished"
    assert res.json()["end_time"] is not None


@pytest.mark.asyncio
async def test_unusual_transition_is_allowed(client, db, clinic_a):
    patient = _patient(db, clinic_a.clinic.id)
    res = await client.patch(
        f"/api/patients/{patient.id}/status", json={"status": "finished"}, headers=clinic_a.staff_headers
    )
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_unknown_status_is_rejected(client, db, clinic_a):
    patient = _patient(db, clinic_a.clinic.id)
    res = await client.patch(
        f"/api/patients/{patient.id}/status", json={"status": "gone"}, headers=clinic_a.staff_headers
    )
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_finish_writes_record_and_prescription(client, db, clinic_a):
    patient = _patient(db, clinic_a.clinic.id, status="consultation")
    body = {
        "anamnesisText": "Dor de cabeca ha 3 dias",
        "diagnosis": "Enxaqueca",
        "medications": [{"name": "Dipirona", "dosage": "500mg", "instructions": "8/8h"}],
    }

    res = await client.post(f"/api/patients/{patient.id}/finish", json=body, headers=clinic_a.admin_headers)
    assert res.status_code == 200
    result = res.json()
    assert result["status"] == "finished"

    record = db.get(MedicalRecord, result["medical_record_id"])
    assert record.diagnosis == "Enxaqueca"
    assert record.doctor_id == clinic_a.admin.id
    prescription = db.get(Prescription, result["prescription_id"])
    assert json.loads(prescription.medications_json)[0]["name"] == "Dipirona"
    db.refresh(patient)
    assert patient.status == "finished"
    assert patient.end_time is not None


@pytest.mark.asyncio
async def test_finish_rolls_back_on_database_error(client, db, clinic_a, monkeypatch):
    patient = _patient(db, clinic_a.clinic.id, status="consultation")

    def failing_flush(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(db, "flush", failing_flush)
    res = await client.post(
        f"/api/patients/{patient.id}/finish", json={"diagnosis": "x"}, headers=clinic_a.admin_headers
    )
    monkeypatch.undo()

    assert res.status_code == 500
    assert db.query(MedicalRecord).count() == 0
    assert db.query(Prescription).count() == 0
    assert db.get(Patient, patient.id).status == "consultation"


@pytest.mark.asyncio
async def test_other_clinics_patient_is_not_found(client, db, clinic_a, clinic_b):
    patient = _patient(db, clinic_b.clinic.id)
    headers = clinic_a.admin_headers

    res = await client.post(f"/api/patients/{patient.id}/finish", json={}, headers=headers)
    assert res.status_code == 404
    res = await client.get(f"/api/patients/{patient.id}/history", headers=headers)
    assert res.status_code == 404
    res = await client.patch(f"/api/patients/{patient.id}/status", json={"status": "triage"}, headers=headers)
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_history_is_chronological_and_skips_deleted(client, db, clinic_a):
    clinic_id = clinic_a.clinic.id
    patient = _patient(db, clinic_id)
    db.add_all(
        [
            MedicalRecord(
                clinic_id=clinic_id, patient_id=patient.id, diagnosis="Gripe",
                created_at=datetime(2024, 2, 1, 9, 0),
            ),
            Prescription(
                clinic_id=clinic_id, patient_id=patient.id, medications_json='[{"name": "Xarope"}]',
                created_at=datetime(2024, 1, 10, 9, 0),
            ),
            MedicalRecord(
                clinic_id=clinic_id, patient_id=patient.id, diagnosis="Apagado",
                created_at=datetime(2024, 3, 1), deleted_at=datetime(2024, 3, 2),
            ),
            Prescription(
                clinic_id=clinic_id, patient_id=patient.id, medications_json="not json",
                created_at=datetime(2024, 4, 1),
            ),
        ]
    )
    db.commit()

    res = await client.get(f"/api/patients/{patient.id}/history", headers=clinic_a.staff_headers)
    history = res.json()["history"]
    assert [entry["type"] for entry in history] == ["prescription", "medical_record", "prescription"]
    assert history[0]["medications"] == [{"name": "Xarope"}]
    assert history[1]["diagnosis"] == "Gripe"
    assert history[2]["medications"] == []

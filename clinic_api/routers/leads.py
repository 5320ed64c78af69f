"""Leads router - cached legacy lead listing."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from clinic_api.core.deps import clinic_scope, get_db
from clinic_api.core.policies import ClinicScope
from clinic_api.services import lead_service

router = APIRouter()


@router.get("")
def list_leads(
    scope: ClinicScope = Depends(clinic_scope("appointments.list")),
    db: Session = Depends(get_db),
):
    """Serialized once per TTL; the cached body is returned verbatim."""
    payload = lead_service.get_leads_payload(db, scope)
    return Response(content=payload, media_type="application/json")

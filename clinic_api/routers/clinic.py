"""Clinic router - the caller's own clinic: settings, usage, plan requests, audit trail.

None of these endpoints bypass isolation; super admins see their own clinic.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from clinic_api.core.deps import clinic_scope, get_db, get_tenant_context, require_clinic_admin
from clinic_api.core.policies import ClinicScope
from clinic_api.schemas.auth import TenantContext
from clinic_api.schemas.clinic import (
    AuditLogList,
    AuditLogRead,
    ClinicInfoResponse,
    ClinicSettingsRead,
    ClinicSettingsUpdate,
    ClinicStats,
    UpgradeRequestCreate,
    UpgradeRequestRead,
)
from clinic_api.services import audit_service, clinic_service

router = APIRouter()


@router.get(
    "/settings",
    response_model=ClinicSettingsRead,
    dependencies=[Depends(require_clinic_admin)],
)
def get_settings(
    scope: ClinicScope = Depends(clinic_scope("clinic.settings")),
    db: Session = Depends(get_db),
):
    """Stored settings, or defaults when the clinic never saved any."""
    return clinic_service.get_settings(db, scope.require_clinic())


@router.put(
    "/settings",
    response_model=ClinicSettingsRead,
    dependencies=[Depends(require_clinic_admin)],
)
def save_settings(
    data: ClinicSettingsUpdate,
    scope: ClinicScope = Depends(clinic_scope("clinic.settings")),
    db: Session = Depends(get_db),
):
    """Replace all settings sections. 201 on first save, 200 afterwards."""
    saved, created = clinic_service.save_settings(db, scope.require_clinic(), data)
    return JSONResponse(
        status_code=201 if created else 200,
        content=saved.model_dump(mode="json", by_alias=True),
    )


@router.get("/info", response_model=ClinicInfoResponse)
def get_info(
    context: TenantContext = Depends(get_tenant_context),
    scope: ClinicScope = Depends(clinic_scope("clinic.info")),
    db: Session = Depends(get_db),
):
    return clinic_service.get_info(db, context, scope.require_clinic())


@router.get("/stats", response_model=ClinicStats)
def get_stats(
    scope: ClinicScope = Depends(clinic_scope("clinic.info")),
    db: Session = Depends(get_db),
):
    return clinic_service.get_stats(db, scope.require_clinic())


@router.post(
    "/upgrade-request",
    response_model=UpgradeRequestRead,
    status_code=201,
    dependencies=[Depends(require_clinic_admin)],
)
def create_upgrade_request(
    data: UpgradeRequestCreate,
    scope: ClinicScope = Depends(clinic_scope("clinic.upgrade")),
    db: Session = Depends(get_db),
):
    return clinic_service.create_upgrade_request(db, scope.require_clinic(), data)


@router.get("/audit-logs", response_model=AuditLogList)
def list_audit_logs(
    action: str | None = Query(None, max_length=100),
    user_id: int | None = Query(None),
    limit: int = Query(100, ge=1, le=audit_service.MAX_AUDIT_PAGE),
    offset: int = Query(0, ge=0),
    scope: ClinicScope = Depends(clinic_scope("clinic.audit")),
    db: Session = Depends(get_db),
):
    """This clinic's audit trail, newest first."""
    rows, total = audit_service.list_audit_logs(
        db,
        clinic_id=scope.require_clinic(),
        user_id=user_id,
        action=action,
        limit=limit,
        offset=offset,
    )
    return AuditLogList(
        items=[AuditLogRead.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )

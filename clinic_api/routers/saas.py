"""SaaS router - platform administration across all clinics.

Every endpoint requires the super_admin role.
"""

import logging

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from clinic_api.core.deps import get_db, require_super_admin
from clinic_api.core.structured_logging import build_log_context
from clinic_api.db.enums import UpgradeRequestStatus
from clinic_api.schemas.auth import TenantContext
from clinic_api.schemas.clinic import AuditLogList, AuditLogRead
from clinic_api.schemas.saas import (
    ClinicCreate,
    ClinicCreated,
    ClinicRead,
    ClinicStatusUpdate,
    ClinicUpdate,
    PlatformAnalytics,
    PlatformStats,
    UpgradeRequestAdminRead,
    UpgradeRequestResolve,
)
from clinic_api.services import audit_service, saas_service
from clinic_api.utils.csv_export import attachment_headers

router = APIRouter(dependencies=[Depends(require_super_admin)])
logger = logging.getLogger(__name__)


def _log_action(context: TenantContext, message: str, **fields) -> None:
    extra = build_log_context(user_id=context.user_id)
    extra.update(fields)
    logger.info(message, extra=extra)


# =============================================================================
# Clinics
# =============================================================================

@router.get("/clinics", response_model=list[ClinicRead])
def list_clinics(db: Session = Depends(get_db)):
    return saas_service.list_clinics(db)


@router.post("/clinics", response_model=ClinicCreated, status_code=201)
def create_clinic(
    data: ClinicCreate,
    context: TenantContext = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    """Create a clinic together with its first clinic_admin (owner)."""
    clinic, admin = saas_service.create_clinic(db, data)
    _log_action(context, "Super admin created clinic", target_clinic_id=clinic.id)
    return ClinicCreated(clinic=ClinicRead.model_validate(clinic), admin_user_id=admin.id)


@router.get("/clinics/{clinic_id}", response_model=ClinicRead)
def get_clinic(clinic_id: int, db: Session = Depends(get_db)):
    return saas_service.get_clinic(db, clinic_id)


@router.patch("/clinics/{clinic_id}", response_model=ClinicRead)
def update_clinic(
    clinic_id: int,
    data: ClinicUpdate,
    context: TenantContext = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    clinic = saas_service.update_clinic(db, clinic_id, data)
    _log_action(context, "Super admin updated clinic", target_clinic_id=clinic_id)
    return clinic


@router.patch("/clinics/{clinic_id}/status", response_model=ClinicRead)
def update_clinic_status(
    clinic_id: int,
    data: ClinicStatusUpdate,
    context: TenantContext = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    clinic = saas_service.update_clinic_status(db, clinic_id, data)
    _log_action(
        context, "Super admin changed clinic status", target_clinic_id=clinic_id, status=clinic.status
    )
    return clinic


@router.delete("/clinics/{clinic_id}", status_code=204)
def delete_clinic(
    clinic_id: int,
    context: TenantContext = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    saas_service.delete_clinic(db, clinic_id)
    _log_action(context, "Super admin deleted clinic", target_clinic_id=clinic_id)
    return Response(status_code=204)


# =============================================================================
# Stats / analytics
# =============================================================================

@router.get("/stats", response_model=PlatformStats)
def get_stats(db: Session = Depends(get_db)):
    return saas_service.get_stats(db)


@router.get("/analytics", response_model=PlatformAnalytics)
def get_analytics(db: Session = Depends(get_db)):
    return saas_service.get_analytics(db)


@router.get("/analytics/export")
def export_analytics(db: Session = Depends(get_db)):
    """Per-clinic usage counters as CSV."""
    return Response(
        content=saas_service.export_analytics_csv(db),
        media_type="text/csv",
        headers=attachment_headers("clinics_analytics"),
    )


# =============================================================================
# Upgrade requests
# =============================================================================

@router.get("/upgrade-requests", response_model=list[UpgradeRequestAdminRead])
def list_upgrade_requests(
    status: UpgradeRequestStatus | None = Query(None),
    db: Session = Depends(get_db),
):
    return saas_service.list_upgrade_requests(db, status)


@router.patch("/upgrade-requests/{request_id}", response_model=UpgradeRequestAdminRead)
def resolve_upgrade_request(
    request_id: int,
    data: UpgradeRequestResolve,
    context: TenantContext = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    """Approve (applies the plan) or reject a pending request."""
    resolved = saas_service.resolve_upgrade_request(db, request_id, data)
    _log_action(
        context,
        "Super admin resolved upgrade request",
        request_id=request_id,
        resolution=resolved.status.value,
    )
    return resolved


# =============================================================================
# Audit logs
# =============================================================================

@router.get("/audit-logs", response_model=AuditLogList)
def list_audit_logs(
    clinic_id: int | None = Query(None),
    user_id: int | None = Query(None),
    action: str | None = Query(None, max_length=100),
    limit: int = Query(100, ge=1, le=audit_service.MAX_AUDIT_PAGE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    rows, total = audit_service.list_audit_logs(
        db, clinic_id=clinic_id, user_id=user_id, action=action, limit=limit, offset=offset
    )
    return AuditLogList(
        items=[AuditLogRead.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/audit-logs/export")
def export_audit_logs(
    clinic_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    return Response(
        content=audit_service.export_audit_logs_csv(db, clinic_id),
        media_type="text/csv",
        headers=attachment_headers("audit_logs"),
    )

"""Audit logging service - request trail for tenant and platform actions.

Security guidelines:
- NEVER log secrets (tokens, passwords) or request bodies
- Use IDs instead of raw data where possible
- IP: Trust X-Forwarded-For only behind a configured proxy
"""

import json
import logging
from typing import Any

from fastapi import Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clinic_api.core.config import settings
from clinic_api.db.models import AuditLog
from clinic_api.schemas.auth import TenantContext
from clinic_api.utils.csv_export import write_csv

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
PLATFORM_PATH_PREFIX = "/api/saas"
MAX_AUDIT_PAGE = 500

AUDIT_CSV_HEADERS = [
    "id",
    "created_at",
    "clinic_id",
    "user_id",
    "user_role",
    "action",
    "method",
    "path",
    "status_code",
    "ip_address",
    "details",
]


def get_client_ip(request: Request | None) -> str | None:
    """
    Extract client IP from request.

    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    """
    if not request:
        return None

    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return None


def should_audit(method: str, path: str) -> bool:
    return method.upper() in MUTATING_METHODS or path.startswith(PLATFORM_PATH_PREFIX)


def route_template(scope: dict[str, Any]) -> str:
    """Mounted route template, e.g. ``/api/saas/clinics/{clinic_id}``.

    Some router versions store only the part of the template below the
    ``include_router`` prefix on the matched route; the missing leading
    segments are taken from the request path.
    """
    path = scope.get("path", "")
    template = getattr(scope.get("route"), "path", None)
    if not template:
        return path
    missing = path.rstrip("/").count("/") - template.rstrip("/").count("/")
    if missing > 0:
        return "/".join(path.split("/")[: missing + 1]) + template
    return template


def action_name(method: str, path: str) -> str:
    """Stable action label, e.g. ``PATCH /api/appointments/{id}``."""
    return f"{method.upper()} {path}"[:100]


def log_event(
    db: Session,
    *,
    action: str,
    context: TenantContext | None = None,
    clinic_id: int | None = None,
    path: str | None = None,
    method: str | None = None,
    status_code: int | None = None,
    ip_address: str | None = None,
    details: dict[str, Any] | None = None,
    commit: bool = True,
) -> AuditLog:
    entry = AuditLog(
        clinic_id=clinic_id if clinic_id is not None else (context.clinic_id if context else None),
        user_id=context.user_id if context else None,
        user_role=context.role.value if context else None,
        action=action,
        path=path,
        method=method,
        status_code=status_code,
        ip_address=ip_address,
        details=json.dumps(details, default=str) if details else None,
    )
    db.add(entry)
    if commit:
        db.commit()
    return entry


def log_request(
    db: Session,
    request: Request,
    context: TenantContext,
    status_code: int,
    duration_ms: float,
) -> AuditLog:
    return log_event(
        db,
        action=action_name(request.method, route_template(request.scope)),
        context=context,
        path=request.url.path,
        method=request.method,
        status_code=status_code,
        ip_address=get_client_ip(request),
        details={"duration_ms": round(duration_ms, 1)},
    )


def list_audit_logs(
    db: Session,
    *,
    clinic_id: int | None = None,
    user_id: int | None = None,
    action: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[AuditLog], int]:
    """Newest first. ``clinic_id=None`` spans every clinic (platform view)."""
    stmt = select(AuditLog)
    if clinic_id is not None:
        stmt = stmt.where(AuditLog.clinic_id == clinic_id)
    if user_id is not None:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action.contains(action))

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(min(limit, MAX_AUDIT_PAGE))
        .offset(offset)
    ).scalars().all()
    return list(rows), total


def export_audit_logs_csv(db: Session, clinic_id: int | None = None) -> str:
    stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if clinic_id is not None:
        stmt = stmt.where(AuditLog.clinic_id == clinic_id)
    rows = (
        [
            log.id,
            log.created_at,
            log.clinic_id,
            log.user_id,
            log.user_role,
            log.action,
            log.method,
            log.path,
            log.status_code,
            log.ip_address,
            log.details,
        ]
        for log in db.execute(stmt).scalars()
    )
    return write_csv(AUDIT_CSV_HEADERS, rows)

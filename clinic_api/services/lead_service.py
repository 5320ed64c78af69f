"""Legacy lead reads with a short-lived payload cache.

The serialized leads list is cached per clinic scope for
``LEADS_CACHE_TTL_SECONDS`` (Redis keys ``leads:<clinic_id>`` and ``leads:all``
when Redis is reachable); any lead write invalidates the clinic's entry and
the cross-tenant entry.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_api.core.cache import PayloadCache, build_payload_cache
from clinic_api.core.config import settings
from clinic_api.core.policies import ClinicScope
from clinic_api.db.models import Lead

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "leads"
ALL_CLINICS_KEY = "all"

_leads_cache: PayloadCache | None = None


def get_leads_cache() -> PayloadCache:
    """Store picked on first use (at startup), then shared by every request."""
    global _leads_cache
    if _leads_cache is None:
        _leads_cache = build_payload_cache(CACHE_NAMESPACE, settings.LEADS_CACHE_TTL_SECONDS)
        logger.info("Leads cache backend: %s", type(_leads_cache).__name__)
    return _leads_cache


def _cache_key(clinic_id: int | None) -> str:
    return ALL_CLINICS_KEY if clinic_id is None else str(clinic_id)


def lead_to_dict(lead: Lead) -> dict[str, Any]:
    return {
        "id": lead.id,
        "clinic_id": lead.clinic_id,
        "name": lead.name,
        "phone": lead.phone,
        "email": lead.email,
        "type": lead.type,
        "status": lead.status,
        "appointment_date": lead.appointment_date.isoformat() if lead.appointment_date else None,
        "doctor": lead.doctor,
        "appointment_type": lead.appointment_type,
        "notes": lead.notes,
        "value": lead.value,
        "attendance_status": lead.attendance_status,
        "archive_reason": lead.archive_reason,
        "created_at": lead.created_at.isoformat() if lead.created_at else None,
        "updated_at": lead.updated_at.isoformat() if lead.updated_at else None,
    }


def fetch_leads(db: Session, scope: ClinicScope) -> list[Lead]:
    stmt = select(Lead).order_by(Lead.created_at.desc(), Lead.id.desc())
    if scope.clinic_id is not None:
        stmt = stmt.where(Lead.clinic_id == scope.clinic_id)
    return list(db.execute(stmt).scalars().all())


def get_leads_payload(db: Session, scope: ClinicScope) -> str:
    """
    JSON array of the scope's leads.

    Repeated reads inside the TTL return the identical cached string without
    touching the database.
    """
    def fetch() -> str:
        leads = fetch_leads(db, scope)
        logger.debug("Leads cache miss, loaded %d rows", len(leads))
        return json.dumps([lead_to_dict(lead) for lead in leads])

    return get_leads_cache().get_or_fetch(_cache_key(scope.clinic_id), fetch)


def invalidate_leads_cache(clinic_id: int | None) -> None:
    cache = get_leads_cache()
    if clinic_id is not None:
        cache.remove(_cache_key(clinic_id))
    cache.remove(ALL_CLINICS_KEY)

"""Tenant isolation policies.

Each operation has one explicit policy that turns a ``TenantContext`` into
the clinic filter the repository query must apply. Only policies built with
``allow_cross_tenant=True`` let a super admin span all clinics.
"""

import logging
from dataclasses import dataclass

from clinic_api.core.errors import UnauthenticatedError
from clinic_api.core.structured_logging import build_log_context
from clinic_api.schemas.auth import TenantContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClinicScope:
    """Resolved clinic filter. ``clinic_id is None`` only when ``cross_tenant``."""

    clinic_id: int | None
    cross_tenant: bool = False

    def require_clinic(self) -> int:
        """Concrete clinic id for writes that must land in one tenant."""
        if self.clinic_id is None:
            raise UnauthenticatedError("clinic not identified")
        return self.clinic_id


@dataclass(frozen=True)
class IsolationPolicy:
    operation: str
    allow_cross_tenant: bool = False

    def resolve(self, context: TenantContext) -> ClinicScope:
        if context.is_super_admin and self.allow_cross_tenant:
            logger.info(
                "Super admin bypassed clinic isolation for %s",
                self.operation,
                extra=build_log_context(
                    user_id=context.user_id,
                    clinic_id=context.clinic_id,
                    operation=self.operation,
                ),
            )
            return ClinicScope(clinic_id=None, cross_tenant=True)

        if context.clinic_id is None:
            raise UnauthenticatedError("clinic not identified")
        return ClinicScope(clinic_id=context.clinic_id)


def _policy(operation: str, *, cross_tenant: bool = False) -> IsolationPolicy:
    return IsolationPolicy(operation=operation, allow_cross_tenant=cross_tenant)


POLICIES: dict[str, IsolationPolicy] = {
    # Calendar / appointment union view
    "appointments.list": _policy("appointments.list", cross_tenant=True),
    "appointments.read": _policy("appointments.read", cross_tenant=True),
    "appointments.update": _policy("appointments.update", cross_tenant=True),
    "appointments.delete": _policy("appointments.delete", cross_tenant=True),
    "appointments.create": _policy("appointments.create", cross_tenant=True),
    "metrics.dashboard": _policy("metrics.dashboard", cross_tenant=True),
    # Always bound to the caller's own clinic
    "clinic.settings": _policy("clinic.settings"),
    "clinic.info": _policy("clinic.info"),
    "clinic.upgrade": _policy("clinic.upgrade"),
    "clinic.audit": _policy("clinic.audit"),
    "financial": _policy("financial"),
    "patients": _policy("patients"),
}


def get_policy(operation: str) -> IsolationPolicy:
    """Fetch an operation policy or raise KeyError."""
    return POLICIES[operation]

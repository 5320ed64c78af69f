"""FastAPI dependencies for authentication, tenant isolation, and database access."""

from typing import Callable, Generator

import jwt
from fastapi import Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from clinic_api.core.errors import ForbiddenError, UnauthenticatedError
from clinic_api.core.policies import ClinicScope, get_policy
from clinic_api.core.security import decode_access_token
from clinic_api.db.enums import Role
from clinic_api.db.session import SessionLocal
from clinic_api.schemas.auth import TenantContext, TokenPayload

# Legacy clients send the raw token in this header instead of Authorization
ACCESS_TOKEN_HEADER = "x-access-token"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def extract_token(request: Request) -> str | None:
    """Bearer token from Authorization, falling back to x-access-token."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    token = request.headers.get(ACCESS_TOKEN_HEADER, "").strip()
    return token or None


def resolve_tenant_context(token: str | None) -> TenantContext:
    """
    Decode a token into a TenantContext.

    Pure function of the token: no storage lookups, so the clinic embedded in
    the token is trusted for the lifetime of the request.

    Raises:
        UnauthenticatedError: token missing, badly signed, expired or malformed
    """
    if not token:
        raise UnauthenticatedError("authentication token not provided")
    try:
        payload = TokenPayload.model_validate(decode_access_token(token))
    except (jwt.InvalidTokenError, ValidationError):
        raise UnauthenticatedError("invalid or expired token")
    return TenantContext(
        user_id=payload.user_id,
        username=payload.username,
        name=payload.name,
        role=payload.role,
        clinic_id=payload.clinic_id,
        is_owner=payload.is_owner,
    )


def get_tenant_context(request: Request) -> TenantContext:
    """Resolve the caller and attach it to request.state for audit logging."""
    cached = getattr(request.state, "tenant", None)
    if isinstance(cached, TenantContext):
        return cached
    context = resolve_tenant_context(extract_token(request))
    request.state.tenant = context
    return context


def require_roles(allowed_roles: list[Role]):
    """
    Dependency factory for role-based authorization.

    Usage:
        @router.get("/x", dependencies=[Depends(require_roles([Role.CLINIC_ADMIN]))])
    """
    def dependency(context: TenantContext = Depends(get_tenant_context)) -> TenantContext:
        if context.role not in allowed_roles:
            raise ForbiddenError(f"Role '{context.role.value}' not authorized for this action")
        return context
    return dependency


require_super_admin = require_roles([Role.SUPER_ADMIN])
require_clinic_admin = require_roles([Role.CLINIC_ADMIN, Role.SUPER_ADMIN])


def clinic_scope(operation: str) -> Callable[..., ClinicScope]:
    """
    Dependency factory applying the isolation policy for ``operation``.

    Usage:
        scope: ClinicScope = Depends(clinic_scope("appointments.list"))
    """
    policy = get_policy(operation)

    def dependency(context: TenantContext = Depends(get_tenant_context)) -> ClinicScope:
        return policy.resolve(context)
    return dependency

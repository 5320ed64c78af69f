"""Authentication endpoints: credential login and token verification."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from clinic_api.core.deps import get_db, get_tenant_context
from clinic_api.core.login_attempts import LoginAttemptStore, get_login_attempt_store
from clinic_api.core.rate_limit import AUTH_LIMIT, limiter
from clinic_api.schemas.auth import LoginRequest, LoginResponse, TenantContext, VerifyResponse
from clinic_api.services import auth_service

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
@limiter.limit(AUTH_LIMIT)
def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
    attempts: LoginAttemptStore = Depends(get_login_attempt_store),
):
    """Exchange username (or email) and password for an access token."""
    return auth_service.login(db, attempts, body.username or body.email, body.password)


@router.get("/verify", response_model=VerifyResponse)
def verify(context: TenantContext = Depends(get_tenant_context)):
    """Echo the decoded token; 401 when missing or invalid."""
    return VerifyResponse(valid=True, user=context)

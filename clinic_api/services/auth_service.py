"""Authentication service - username/password login and token issuance."""

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from clinic_api.core.errors import (
    BadRequestError,
    ForbiddenError,
    TooManyAttemptsError,
    UnauthenticatedError,
)
from clinic_api.core.login_attempts import LoginAttemptStore
from clinic_api.core.security import create_access_token, verify_password
from clinic_api.core.structured_logging import build_log_context
from clinic_api.db.enums import CLINIC_LOGIN_STATUSES, Role
from clinic_api.db.models import Clinic, User
from clinic_api.schemas.auth import ClinicSummary, LoginResponse, LoginUser

logger = logging.getLogger(__name__)


def find_user_by_identity(db: Session, identifier: str) -> User | None:
    """Match on username or email."""
    return db.execute(
        select(User).where(or_(User.username == identifier, User.email == identifier))
    ).scalars().first()


def login(
    db: Session,
    attempts: LoginAttemptStore,
    identifier: str | None,
    password: str | None,
) -> LoginResponse:
    """
    Verify credentials and issue an access token.

    Raises:
        BadRequestError: identifier or password missing
        TooManyAttemptsError: username locked out
        UnauthenticatedError: unknown user, wrong password or disabled account
        ForbiddenError: the user's clinic is not active (super admins exempt)
    """
    identifier = (identifier or "").strip()
    password = (password or "").strip()
    if not identifier or not password:
        raise BadRequestError("username and password are required")

    if attempts.is_locked(identifier):
        logger.warning("Login blocked by lockout")
        raise TooManyAttemptsError()

    user = find_user_by_identity(db, identifier)
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        count = attempts.record_failure(identifier)
        logger.info("Failed login attempt", extra={"attempts": count})
        raise UnauthenticatedError("invalid credentials", code="INVALID_CREDENTIALS")

    clinic = db.get(Clinic, user.clinic_id) if user.clinic_id is not None else None
    if user.role != Role.SUPER_ADMIN.value:
        if clinic is None or clinic.status not in CLINIC_LOGIN_STATUSES:
            raise ForbiddenError(
                "clinic is inactive or suspended, contact support",
                code="CLINIC_INACTIVE",
            )

    attempts.reset(identifier)
    user.last_login_at = datetime.now()
    db.commit()
    db.refresh(user)

    token = create_access_token(
        user_id=user.id,
        username=user.username,
        name=user.name,
        role=user.role,
        clinic_id=user.clinic_id,
        is_owner=user.is_owner,
    )
    logger.info(
        "User logged in",
        extra=build_log_context(user_id=user.id, clinic_id=user.clinic_id),
    )
    return LoginResponse(
        token=token,
        user=LoginUser(
            id=user.id,
            name=user.name,
            username=user.username,
            email=user.email,
            role=Role(user.role),
            clinic_id=user.clinic_id,
            is_owner=user.is_owner,
            last_login_at=user.last_login_at,
            clinic=ClinicSummary.model_validate(clinic) if clinic else None,
        ),
    )

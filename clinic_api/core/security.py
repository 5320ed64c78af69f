"""Security utilities for access tokens and password hashing."""

from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from clinic_api.core.config import settings


# =============================================================================
# Access Token (JWT bearer)
# =============================================================================

def create_access_token(
    user_id: int,
    username: str,
    name: str,
    role: str,
    clinic_id: int | None,
    is_owner: bool = False,
) -> str:
    """
    Create signed access JWT.

    Always signs with current secret (JWT_SECRET). Claims use the camelCase
    names the dashboard reads directly.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "username": username,
        "name": name,
        "role": role,
        "clinicId": clinic_id,
        "isOwner": bool(is_owner),
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_access_token(token: str) -> dict:
    """
    Decode and verify access JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


# =============================================================================
# Passwords
# =============================================================================

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str | None) -> bool:
    """Check a plaintext password against a bcrypt hash; malformed hashes never match."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False

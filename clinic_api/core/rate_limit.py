"""Per-IP request limits (slowapi).

Counters live in Redis when it is reachable so every worker shares them;
otherwise each process counts on its own.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from clinic_api.core.config import settings
from clinic_api.core.redis_client import MEMORY_STORAGE_URI, reachable_redis_client, redis_url

IS_TESTING = settings.TESTING
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)
# Applied to POST /api/auth/login on top of the per-username lockout
AUTH_LIMIT = f"{max(settings.RATE_LIMIT_AUTH, 1)}/minute"


def _storage_uri() -> str:
    if IS_TESTING:
        return MEMORY_STORAGE_URI
    if reachable_redis_client("rate limiting") is None:
        return MEMORY_STORAGE_URI
    return redis_url()


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri(),
    default_limits=DEFAULT_LIMITS,
    enabled=not IS_TESTING,
)

"""
Request rate limiting using slowapi.

This is per-request throttling in front of the API.  The daily analysis
quota is a separate, database-backed check (services/analysis/rate_limiter).

Usage in route files:
    from middleware.rate_limit import limiter

    @router.post("")
    @limiter.limit(ANALYSIS_TRIGGER_LIMIT)
    async def my_endpoint(request: Request):
        ...
"""
import logging
import os

from fastapi import Request
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def _get_rate_limit_key(request: Request) -> str:
    """
    Bucket by Supabase user id (JWT `sub`) when a bearer token is present,
    otherwise by client IP.
    """
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        try:
            # Unverified on purpose: auth is enforced by get_current_db_user
            sub = jwt.get_unverified_claims(token).get("sub")
        except JWTError:
            sub = None
        if sub:
            return f"user:{sub}"

    return get_remote_address(request)


def _enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "1").lower() not in ("0", "false", "no")


# ─── Limits ────────────────────────────────────────────────────────
# Env-overridable so you can tune per-environment without redeploying.
DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")
ANALYSIS_TRIGGER_LIMIT = os.getenv("RATE_LIMIT_ANALYSIS_TRIGGER", "5/minute")

limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
    strategy="fixed-window",
    enabled=_enabled(),
)

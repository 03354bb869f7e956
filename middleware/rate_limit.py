"""
Rate limiting configuration using slowapi.

Every route gets the default limit via SlowAPIMiddleware. Tighter limits go
on individual endpoints; unauthenticated ones key on the client address:

    from middleware.rate_limit import limiter

    @router.post("/login")
    @limiter.limit("10/minute", key_func=get_remote_address)
    def login(request: Request, ...):
        ...
"""
import logging
from typing import Optional

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError

from config.settings import get_settings
from database import SessionLocal
from services.session_service import get_bearer_token, resolve_user_id

logger = logging.getLogger(__name__)


def _session_user_key(token: str) -> Optional[str]:
    db = SessionLocal()
    try:
        user_id = resolve_user_id(db, token)
    except SQLAlchemyError:
        logger.warning("rate_limit_key_lookup_failed")
        return None
    finally:
        db.close()
    return f"user:{user_id}" if user_id is not None else None


def _get_rate_limit_key(request: Request) -> str:
    """
    Identify the caller for rate-limiting.

    Strategy:
      1. If the bearer token belongs to a live session, bucket by user id so
         the limit is per-user regardless of IP.
      2. Otherwise, fall back to client IP. Unknown or made-up tokens never
         get a bucket of their own.
    """
    token = get_bearer_token(request)
    if token:
        key = _session_user_key(token)
        if key:
            return key
    return get_remote_address(request)


_settings = get_settings()

limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[_settings.rate_limit_default],
    storage_uri=_settings.rate_limit_storage_uri,
    strategy="fixed-window",
    enabled=_settings.rate_limit_enabled,
)

# services/session_service.py
"""
Opaque bearer-token sessions.

Lifecycle: issued (login / register / refresh) -> valid until `expires_at`
-> rejected once `now >= expires_at`, or deleted on logout / refresh.
Only the SHA-256 digest of a token is stored.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from config.settings import get_settings
from database import get_db
from models.session import UserSession
from models.user import User
from services.errors import AuthenticationError
from utils.common_helpers import token_digest, utcnow

TOKEN_BYTES = 32


def new_token() -> str:
    # CSPRNG, 64 hex chars
    return secrets.token_hex(TOKEN_BYTES)


def issue_session(
    db: Session,
    user_id: int,
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> str:
    now = now or utcnow()
    ttl = ttl or timedelta(hours=get_settings().session_ttl_hours)
    token = new_token()
    db.add(
        UserSession(
            user_id=user_id,
            token_hash=token_digest(token),
            expires_at=now + ttl,
            created_at=now,
        )
    )
    db.flush()
    return token


def resolve_user_id(db: Session, token: str, *, now: Optional[datetime] = None) -> Optional[int]:
    """User id for a live token, else None. Expiry must be strictly in the future."""
    if not token:
        return None
    now = now or utcnow()
    row = (
        db.query(UserSession.user_id)
        .filter(
            UserSession.token_hash == token_digest(token),
            UserSession.expires_at > now,
        )
        .first()
    )
    return row.user_id if row else None


def revoke_session(db: Session, token: str) -> bool:
    deleted = (
        db.query(UserSession)
        .filter(UserSession.token_hash == token_digest(token))
        .delete(synchronize_session=False)
    )
    return deleted > 0


def refresh_session(db: Session, token: str, *, now: Optional[datetime] = None) -> str:
    """Swap a live token for a brand-new one; the old token stops working."""
    now = now or utcnow()
    user_id = resolve_user_id(db, token, now=now)
    if user_id is None:
        raise AuthenticationError("Invalid or expired token")
    revoke_session(db, token)
    return issue_session(db, user_id, now=now)


def revoke_all_sessions(db: Session, user_id: int) -> int:
    return (
        db.query(UserSession)
        .filter(UserSession.user_id == user_id)
        .delete(synchronize_session=False)
    )


# ========================
# Request dependencies
# ========================

def get_bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if not auth.lower().startswith("bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    return token or None


def require_bearer_token(request: Request) -> str:
    token = get_bearer_token(request)
    if not token:
        raise AuthenticationError("Authentication required")
    return token


def get_current_user(
    token: str = Depends(require_bearer_token),
    db: Session = Depends(get_db),
) -> User:
    user_id = resolve_user_id(db, token)
    if user_id is None:
        raise AuthenticationError("Invalid or expired token")
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid or expired token")
    return user

# services/account_service.py
"""
Registration, login (with lockout), profile and password management.

All functions take an explicit `now` so callers and tests control the clock.
Each public function commits its own unit of work.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from prometheus_client import Counter
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.settings import get_settings
from models.activity_log import ActivityLog
from models.failed_login import FailedLogin
from models.user import User, default_preferences
from services.activity_service import log_activity
from services.errors import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    ValidationError,
)
from services.passwords import burn_password_check, get_password_hash, verify_password
from services.session_service import issue_session, revoke_all_sessions, revoke_session
from utils.common_helpers import is_valid_email, normalize_email, utcnow

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
NAME_MIN_LENGTH = 2
PREFERENCE_KEYS = ("notifications", "newsletter", "dark_mode")

# Metrics
LOGIN_FAILURES = Counter(
    "login_failures_total",
    "Rejected login attempts",
    ["reason"],
)
LOGIN_LOCKOUTS = Counter(
    "login_lockouts_total",
    "Login attempts refused because the account is locked",
)


# ========================
# Validation helpers
# ========================

def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _validate_names(first_name: str, last_name: str) -> None:
    if not first_name or not last_name:
        raise ValidationError("First and last name are required")
    if len(first_name) < NAME_MIN_LENGTH or len(last_name) < NAME_MIN_LENGTH:
        raise ValidationError("First and last name must be at least 2 characters")


def _validate_new_password(password: str, confirm: str) -> None:
    min_len = get_settings().password_min_length
    if len(password) < min_len:
        raise ValidationError(f"Password must be at least {min_len} characters")
    if password != confirm:
        raise ValidationError("Passwords do not match")


def _merge_preferences(current: Optional[dict], updates: Optional[dict]) -> dict:
    merged = default_preferences()
    merged.update({k: bool(v) for k, v in (current or {}).items() if k in PREFERENCE_KEYS})
    merged.update({k: bool(v) for k, v in (updates or {}).items() if k in PREFERENCE_KEYS})
    return merged


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


# ========================
# Lockout
# ========================

def recent_failures(db: Session, email: str, *, now: datetime) -> int:
    window = timedelta(minutes=get_settings().login_lockout_window_minutes)
    return (
        db.query(func.count(FailedLogin.id))
        .filter(FailedLogin.email == email, FailedLogin.attempted_at > now - window)
        .scalar()
        or 0
    )


def is_locked(db: Session, email: str, *, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return recent_failures(db, normalize_email(email), now=now) >= get_settings().login_lockout_threshold


def _record_failure(db: Session, email: str, ip_address: Optional[str], now: datetime) -> None:
    db.add(FailedLogin(email=email, ip_address=ip_address, attempted_at=now))
    db.commit()


# ========================
# Registration / login
# ========================

def register(
    db: Session,
    *,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    confirm_password: str,
    phone: Optional[str] = None,
    country: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[User, str]:
    now = now or utcnow()
    first_name, last_name = _clean(first_name), _clean(last_name)
    email = normalize_email(email)

    if not first_name or not last_name or not email or not password:
        raise ValidationError("All required fields must be filled")
    _validate_names(first_name, last_name)
    if not is_valid_email(email):
        raise ValidationError("Invalid email format")
    _validate_new_password(password, confirm_password)

    if get_user_by_email(db, email) is not None:
        raise ConflictError("User with this email already exists")

    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=get_password_hash(password),
        phone=_clean(phone) or None,
        country=_clean(country) or None,
        preferences=default_preferences(),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        # lost a race with a concurrent registration for the same email
        db.rollback()
        raise ConflictError("User with this email already exists")

    token = issue_session(db, user.id, now=now)
    log_activity(db, user.id, "register", "User registered successfully", now=now)
    db.commit()
    db.refresh(user)
    logger.info("user_registered user_id=%s", user.id)
    return user, token


def login(
    db: Session,
    *,
    email: str,
    password: str,
    ip_address: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[User, str]:
    """
    Exchange credentials for a session token.

    Lockout is checked first, so once an email has hit the failure threshold
    inside the window even the right password is refused until it slides out.
    """
    now = now or utcnow()
    email = normalize_email(email)

    if not email or not password:
        raise ValidationError("Email and password are required")
    if not is_valid_email(email):
        raise ValidationError("Invalid email format")

    if is_locked(db, email, now=now):
        LOGIN_LOCKOUTS.inc()
        logger.warning("login_locked")
        raise AccountLockedError("Account temporarily locked due to multiple failed login attempts")

    user = get_user_by_email(db, email)
    if user is None or not user.is_active:
        burn_password_check()
        LOGIN_FAILURES.labels(reason="unknown_account").inc()
        _record_failure(db, email, ip_address, now)
        raise AuthenticationError(INVALID_CREDENTIALS)

    if not verify_password(password, user.password_hash):
        LOGIN_FAILURES.labels(reason="bad_password").inc()
        _record_failure(db, email, ip_address, now)
        logger.info("login_failed user_id=%s", user.id)
        raise AuthenticationError(INVALID_CREDENTIALS)

    token = issue_session(db, user.id, now=now)
    user.last_login = now
    log_activity(db, user.id, "login", "User logged in successfully", now=now)
    db.commit()
    db.refresh(user)
    return user, token


def logout(db: Session, token: str, *, user_id: Optional[int] = None) -> bool:
    removed = revoke_session(db, token)
    if removed and user_id is not None:
        log_activity(db, user_id, "logout", "User logged out")
    db.commit()
    return removed


# ========================
# Profile
# ========================

def update_profile(
    db: Session,
    user: User,
    *,
    first_name: str,
    last_name: str,
    phone: Optional[str] = None,
    country: Optional[str] = None,
    preferences: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> User:
    now = now or utcnow()
    first_name, last_name = _clean(first_name), _clean(last_name)
    _validate_names(first_name, last_name)

    user.first_name = first_name
    user.last_name = last_name
    user.phone = _clean(phone) or None
    user.country = _clean(country) or None
    if preferences is not None:
        user.preferences = _merge_preferences(user.preferences, preferences)
    user.updated_at = now

    log_activity(db, user.id, "profile_update", "User updated profile", now=now)
    db.commit()
    db.refresh(user)
    return user


def change_password(
    db: Session,
    user: User,
    *,
    current_password: str,
    new_password: str,
    confirm_password: str,
    now: Optional[datetime] = None,
) -> None:
    now = now or utcnow()
    if not verify_password(current_password or "", user.password_hash):
        raise ValidationError("Current password is incorrect")
    _validate_new_password(new_password, confirm_password)

    user.password_hash = get_password_hash(new_password)
    user.updated_at = now
    log_activity(db, user.id, "password_change", "User changed password", now=now)
    db.commit()


def delete_account(db: Session, user: User, *, password: str) -> None:
    if not verify_password(password or "", user.password_hash):
        raise ValidationError("Password is incorrect")
    user_id = user.id
    revoke_all_sessions(db, user_id)
    # SQLite does not enforce ON DELETE SET NULL
    db.query(ActivityLog).filter(ActivityLog.user_id == user_id).update(
        {ActivityLog.user_id: None}, synchronize_session=False
    )
    db.delete(user)
    db.commit()
    logger.info("user_deleted user_id=%s", user_id)

# services/maintenance.py
"""Housekeeping for time-bounded tables."""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import get_settings
from models.activity_log import ActivityLog
from models.failed_login import FailedLogin
from models.session import UserSession
from utils.common_helpers import utcnow

logger = logging.getLogger(__name__)


def clean_old_data(db: Session, *, now: Optional[datetime] = None) -> Dict[str, int]:
    """Delete expired sessions, failed logins past retention, and old activity."""
    now = now or utcnow()
    settings = get_settings()
    # never prune failures that still count toward a lockout
    failed_retention = max(
        timedelta(hours=settings.failed_login_retention_hours),
        timedelta(minutes=settings.login_lockout_window_minutes),
    )

    counts = {
        "sessions": db.query(UserSession)
        .filter(UserSession.expires_at <= now)
        .delete(synchronize_session=False),
        "failed_logins": db.query(FailedLogin)
        .filter(FailedLogin.attempted_at < now - failed_retention)
        .delete(synchronize_session=False),
        "activity_logs": db.query(ActivityLog)
        .filter(ActivityLog.created_at < now - timedelta(days=settings.activity_log_retention_days))
        .delete(synchronize_session=False),
    }
    db.commit()
    logger.info(
        "cleanup_done sessions=%d failed_logins=%d activity_logs=%d",
        counts["sessions"], counts["failed_logins"], counts["activity_logs"],
    )
    return counts


def run_cleanup(session_factory: Callable[[], Session]) -> Optional[Dict[str, int]]:
    """One cleanup pass in its own session. Database errors are logged, not raised."""
    db = session_factory()
    try:
        return clean_old_data(db)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("cleanup_failed")
        return None
    finally:
        db.close()


async def cleanup_loop(session_factory: Callable[[], Session], interval_seconds: float) -> None:
    """Run `run_cleanup` now and then every `interval_seconds` until cancelled."""
    while True:
        await asyncio.to_thread(run_cleanup, session_factory)
        await asyncio.sleep(interval_seconds)

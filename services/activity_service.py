# services/activity_service.py
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from models.activity_log import ActivityLog
from utils.common_helpers import utcnow

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    user_id: Optional[int],
    action: str,
    details: str = "",
    *,
    now: Optional[datetime] = None,
) -> None:
    """Queue an audit row in the caller's transaction; committed with it."""
    db.add(ActivityLog(user_id=user_id, action=action, details=details or None, created_at=now or utcnow()))
    logger.info("activity user_id=%s action=%s", user_id, action)

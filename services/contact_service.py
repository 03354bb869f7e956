import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from models.contact_message import ContactMessage
from services.errors import ValidationError
from utils.common_helpers import is_valid_email, normalize_email, utcnow

logger = logging.getLogger(__name__)

MESSAGE_MAX_LENGTH = 5000


def submit_contact_message(
    db: Session,
    *,
    name: str,
    email: str,
    subject: str,
    message: str,
    now: Optional[datetime] = None,
) -> ContactMessage:
    name, subject, message = (name or "").strip(), (subject or "").strip(), (message or "").strip()
    email = normalize_email(email)
    if not name or not email or not subject or not message:
        raise ValidationError("All fields are required")
    if not is_valid_email(email):
        raise ValidationError("Invalid email format")
    if len(message) > MESSAGE_MAX_LENGTH:
        raise ValidationError(f"Message must be at most {MESSAGE_MAX_LENGTH} characters")

    row = ContactMessage(
        name=name[:120],
        email=email,
        subject=subject[:200],
        message=message,
        created_at=now or utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("contact_message_received id=%s", row.id)
    return row

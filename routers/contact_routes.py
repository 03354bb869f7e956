from fastapi import APIRouter, Depends, Request, status
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from database import get_db
from middleware.rate_limit import limiter
from schemas.misc import ContactCreate
from services.contact_service import submit_contact_message

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute", key_func=get_remote_address)
def contact(request: Request, payload: ContactCreate, db: Session = Depends(get_db)):
    submit_contact_message(
        db,
        name=payload.name,
        email=payload.email,
        subject=payload.subject,
        message=payload.message,
    )
    return {"success": True, "message": "Message sent successfully"}

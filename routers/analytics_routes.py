from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models.user import User
from services.analytics_service import get_analytics
from services.session_service import get_current_user

router = APIRouter()


@router.get("")
def portfolio_analytics(
    period: str = Query("1M"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"success": True, "analytics": get_analytics(db, user.id, period)}

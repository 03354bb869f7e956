# routers/portfolio_routes.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from models.user import User
from schemas.position import PositionCreate, PositionOut, PositionUpdate
from services import position_service
from services.position_store import Lot
from services.session_service import get_current_user

router = APIRouter()


@router.get("")
def get_portfolio(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = position_service.get_portfolio(db, user.id)
    return {
        "success": True,
        "portfolio": [PositionOut.model_validate(p) for p in data["portfolio"]],
        "summary": data["summary"],
    }


@router.get("/positions/{position_id}")
def get_position(
    position_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    position = position_service.get_position(db, user.id, position_id)
    return {"success": True, "position": PositionOut.model_validate(position)}


@router.post("/positions", status_code=status.HTTP_201_CREATED)
def add_position(
    payload: PositionCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    lot = Lot(
        symbol=payload.symbol,
        name=payload.name,
        shares=payload.shares,
        price=payload.avg_price,
        sector=payload.sector,
        purchase_date=payload.purchase_date,
    )
    position, created = position_service.add_position(db, user.id, lot, payload.current_price)
    verb = "Added new" if created else "Updated existing"
    return {
        "success": True,
        "message": f"{verb} position for {position.symbol}",
        "created": created,
        "position": PositionOut.model_validate(position_service.get_position(db, user.id, position.id)),
    }


@router.put("/positions/{position_id}")
def update_position(
    position_id: int,
    payload: PositionUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    position = position_service.update_position(
        db,
        user.id,
        position_id,
        shares=payload.shares,
        avg_price=payload.avg_price,
        current_price=payload.current_price,
        sector=payload.sector,
    )
    return {
        "success": True,
        "message": "Position updated successfully",
        "position": PositionOut.model_validate(position_service.get_position(db, user.id, position.id)),
    }


@router.delete("/positions/{position_id}")
def delete_position(
    position_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    position_service.delete_position(db, user.id, position_id)
    return {"success": True, "message": "Position deleted successfully"}

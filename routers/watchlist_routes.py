from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from models.user import User
from schemas.watchlist import WatchlistItemCreate, WatchlistItemOut, WatchlistItemUpdate
from services.session_service import get_current_user
from services.watchlist_service import (
    add_watchlist_item,
    list_watchlist,
    remove_watchlist_item,
    update_watchlist_item,
)

router = APIRouter()


@router.get("")
def get_user_watchlist(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    items = [WatchlistItemOut.model_validate(item) for item in list_watchlist(db, user.id)]
    return {"success": True, "watchlist": items}


@router.post("", status_code=status.HTTP_201_CREATED)
def add_to_watchlist(
    payload: WatchlistItemCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    item = add_watchlist_item(
        db,
        user.id,
        symbol=payload.symbol,
        name=payload.name,
        price=payload.price,
        target_price=payload.target_price,
        alert_type=payload.alert_type,
        notes=payload.notes,
    )
    return {
        "success": True,
        "message": f"Added {payload.symbol} to watchlist",
        "item": WatchlistItemOut.model_validate(item),
    }


@router.put("/{item_id}")
def update_watchlist_entry(
    item_id: int,
    payload: WatchlistItemUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # only fields the caller actually sent are touched
    changes = payload.model_dump(exclude_unset=True)
    item = update_watchlist_item(db, user.id, item_id, **changes)
    return {
        "success": True,
        "message": "Watchlist item updated successfully",
        "item": WatchlistItemOut.model_validate(item),
    }


@router.delete("/{item_id}")
def remove_from_watchlist(
    item_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    remove_watchlist_item(db, user.id, item_id)
    return {"success": True, "message": "Removed from watchlist"}

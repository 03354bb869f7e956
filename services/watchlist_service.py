from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.watchlist import WatchlistItem
from services.activity_service import log_activity
from services.errors import ConflictError, NotFoundError
from services.price_service import get_quotes, upsert_price
from services.valuation import PriceQuote
from utils.common_helpers import utcnow

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def is_alert_triggered(alert_type: str, target_price: Optional[float], current_price: Optional[float]) -> bool:
    if not target_price or not current_price:
        return False
    if alert_type == "above":
        return current_price >= target_price
    if alert_type == "below":
        return current_price <= target_price
    return False


def _item_dict(item: WatchlistItem, quote: Optional[PriceQuote]) -> Dict[str, Any]:
    current_price = quote.current_price if quote else None
    return {
        "id": item.id,
        "symbol": item.symbol,
        "name": item.name,
        "target_price": item.target_price,
        "alert_type": item.alert_type,
        "notes": item.notes,
        "created_at": item.created_at,
        "current_price": current_price,
        "day_change": quote.day_change if quote else None,
        "day_change_percent": quote.day_change_percent if quote else None,
        "alert_triggered": is_alert_triggered(item.alert_type, item.target_price, current_price),
    }


def _get_item(db: Session, user_id: int, item_id: int) -> WatchlistItem | None:
    return (
        db.query(WatchlistItem)
        .filter(
            WatchlistItem.id == item_id,
            WatchlistItem.user_id == user_id,
            WatchlistItem.is_active.is_(True),
        )
        .first()
    )


def list_watchlist(db: Session, user_id: int) -> List[Dict[str, Any]]:
    items = (
        db.query(WatchlistItem)
        .filter(WatchlistItem.user_id == user_id, WatchlistItem.is_active.is_(True))
        .order_by(WatchlistItem.created_at.desc(), WatchlistItem.id.desc())
        .all()
    )
    quotes = get_quotes(db, [item.symbol for item in items])
    return [_item_dict(item, quotes.get(item.symbol)) for item in items]


def add_watchlist_item(
    db: Session,
    user_id: int,
    *,
    symbol: str,
    name: str,
    price: float,
    target_price: Optional[float] = None,
    alert_type: str = "above",
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utcnow()
    exists = (
        db.query(WatchlistItem.id)
        .filter(
            WatchlistItem.user_id == user_id,
            WatchlistItem.symbol == symbol,
            WatchlistItem.is_active.is_(True),
        )
        .first()
    )
    if exists:
        raise ConflictError("Stock already in watchlist")

    item = WatchlistItem(
        user_id=user_id,
        symbol=symbol,
        name=name,
        target_price=target_price,
        alert_type=alert_type,
        notes=(notes or "").strip() or None,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(item)
    try:
        db.flush()
        upsert_price(db, symbol, price, now=now)
        log_activity(db, user_id, "add_watchlist", f"Added to watchlist: {symbol}", now=now)
        db.commit()
    except IntegrityError:
        # concurrent add for the same symbol won the unique index
        db.rollback()
        raise ConflictError("Stock already in watchlist")
    db.refresh(item)
    return _item_dict(item, get_quotes(db, [symbol]).get(symbol))


def update_watchlist_item(
    db: Session,
    user_id: int,
    item_id: int,
    *,
    price: Optional[float] = None,
    target_price: Optional[float] = _UNSET,
    alert_type: Optional[str] = None,
    notes: Optional[str] = _UNSET,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Partial update; pass target_price=None (or 0) to clear the alert."""
    now = now or utcnow()
    item = _get_item(db, user_id, item_id)
    if not item:
        raise NotFoundError("Watchlist item not found")

    if target_price is not _UNSET:
        item.target_price = target_price or None
    if alert_type is not None:
        item.alert_type = alert_type
    if notes is not _UNSET:
        item.notes = (notes or "").strip() or None
    item.updated_at = now

    if price is not None:
        upsert_price(db, item.symbol, price, now=now)
    log_activity(db, user_id, "update_watchlist", f"Updated watchlist item: {item.symbol}", now=now)
    db.commit()
    db.refresh(item)
    return _item_dict(item, get_quotes(db, [item.symbol]).get(item.symbol))


def remove_watchlist_item(db: Session, user_id: int, item_id: int, *, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    item = _get_item(db, user_id, item_id)
    if not item:
        raise NotFoundError("Watchlist item not found")

    item.is_active = False
    item.updated_at = now
    log_activity(db, user_id, "remove_watchlist", f"Removed from watchlist: {item.symbol}", now=now)
    db.commit()

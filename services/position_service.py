# services/position_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from models.position import Position
from services.activity_service import log_activity
from services.errors import NotFoundError
from services.position_store import Lot, PositionStore, SqlPositionStore
from services.price_service import get_quotes, upsert_price
from services.valuation import PositionValuation, PriceQuote, summary_to_dict, value_portfolio
from utils.common_helpers import utcnow

logger = logging.getLogger(__name__)


def record_lot(store: PositionStore, user_id: int, lot: Lot, *, now: Optional[datetime] = None) -> Tuple[Any, bool]:
    """Merge a lot into the user's ledger, whatever the backing store."""
    return store.merge_lot(user_id, lot, now=now)


def _position_dict(position: Any, valuation: PositionValuation) -> Dict[str, Any]:
    return {
        "id": position.id,
        "symbol": position.symbol,
        "name": position.name,
        "sector": position.sector,
        "purchase_date": position.purchase_date,
        "shares": valuation.shares,
        "avg_price": round(valuation.avg_price, 4),
        "current_price": round(valuation.current_price, 4),
        "day_change": round(valuation.day_change, 4),
        "current_value": round(valuation.current_value, 2),
        "cost_basis": round(valuation.cost_basis, 2),
        "gain_loss": round(valuation.gain_loss, 2),
        "gain_loss_percent": round(valuation.gain_loss_percent, 2),
        "day_gain_loss": round(valuation.day_gain_loss, 2),
        "weight": None if valuation.weight is None else round(valuation.weight, 2),
        "price_status": valuation.price_status,
    }


def build_portfolio(positions: List[Any], quotes: Dict[str, PriceQuote]) -> Dict[str, Any]:
    valuation = value_portfolio(positions, quotes)
    return {
        "portfolio": [_position_dict(p, v) for p, v in zip(positions, valuation.positions)],
        "summary": summary_to_dict(valuation.summary),
    }


def get_portfolio(db: Session, user_id: int) -> Dict[str, Any]:
    positions = SqlPositionStore(db).list_active(user_id)
    quotes = get_quotes(db, [p.symbol for p in positions])
    return build_portfolio(positions, quotes)


def get_position(db: Session, user_id: int, position_id: int) -> Dict[str, Any]:
    position = SqlPositionStore(db).get_by_id(user_id, position_id)
    if position is None:
        raise NotFoundError("Position not found")
    quotes = get_quotes(db, [position.symbol])
    return build_portfolio([position], quotes)["portfolio"][0]


def add_position(
    db: Session,
    user_id: int,
    lot: Lot,
    current_price: float,
    *,
    now: Optional[datetime] = None,
) -> Tuple[Position, bool]:
    """
    Merge-or-create a position and refresh the shared price cache, atomically.

    Returns (position, created).
    """
    now = now or utcnow()
    try:
        position, created = record_lot(SqlPositionStore(db), user_id, lot, now=now)
        upsert_price(db, lot.symbol, current_price, now=now)
        log_activity(db, user_id, "add_position", f"Added/Updated position: {lot.symbol}", now=now)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(position)
    logger.info(
        "position_%s user_id=%s symbol=%s",
        "created" if created else "merged", user_id, lot.symbol,
    )
    return position, created


def update_position(
    db: Session,
    user_id: int,
    position_id: int,
    *,
    shares: float,
    avg_price: float,
    current_price: float,
    sector: str,
    now: Optional[datetime] = None,
) -> Position:
    now = now or utcnow()
    store = SqlPositionStore(db)
    position = store.get_by_id(user_id, position_id)
    if position is None:
        raise NotFoundError("Position not found")

    try:
        store.put(position, shares=shares, avg_price=avg_price, sector=sector, now=now)
        upsert_price(db, position.symbol, current_price, now=now)
        log_activity(db, user_id, "update_position", f"Updated position: {position.symbol}", now=now)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(position)
    return position


def delete_position(db: Session, user_id: int, position_id: int, *, now: Optional[datetime] = None) -> None:
    """Soft delete: the row stays for history but drops out of the ledger."""
    now = now or utcnow()
    store = SqlPositionStore(db)
    position = store.get_by_id(user_id, position_id)
    if position is None:
        raise NotFoundError("Position not found")

    store.deactivate(position, now=now)
    log_activity(db, user_id, "delete_position", f"Deleted position: {position.symbol}", now=now)
    db.commit()

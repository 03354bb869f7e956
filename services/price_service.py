# services/price_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from models.stock_price import StockPrice
from services.valuation import PriceQuote
from utils.common_helpers import to_float, utcnow

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def get_quotes(db: Session, symbols: Iterable[str]) -> Dict[str, PriceQuote]:
    wanted = sorted({s for s in symbols if s})
    if not wanted:
        return {}
    rows = (
        db.query(StockPrice)
        .filter(StockPrice.symbol.in_(wanted))
        .execution_options(populate_existing=True)
        .all()
    )
    return {
        row.symbol: PriceQuote(
            current_price=to_float(row.current_price),
            day_change=to_float(row.day_change),
            day_change_percent=to_float(row.day_change_percent),
        )
        for row in rows
    }


def upsert_price(
    db: Session,
    symbol: str,
    current_price: float,
    *,
    day_change: Optional[float] = None,
    day_change_percent: Optional[float] = None,
    now: Optional[datetime] = None,
) -> None:
    """
    Record the latest price for a symbol; last write wins.

    Runs inside the caller's transaction. Day-change columns are only touched
    when a value is supplied.
    """
    now = now or utcnow()
    values = {"symbol": symbol, "current_price": current_price, "updated_at": now}
    if day_change is not None:
        values["day_change"] = day_change
    if day_change_percent is not None:
        values["day_change_percent"] = day_change_percent

    insert_fn = _DIALECT_INSERTS.get(db.get_bind().dialect.name)
    if insert_fn is None:
        # other backends: plain read-then-write inside the transaction
        row = db.get(StockPrice, symbol)
        if row is None:
            db.add(StockPrice(**values))
        else:
            for key, value in values.items():
                setattr(row, key, value)
        db.flush()
        return

    stmt = insert_fn(StockPrice).values(**values)
    update_cols = {k: stmt.excluded[k] for k in values if k != "symbol"}
    stmt = stmt.on_conflict_do_update(index_elements=[StockPrice.symbol], set_=update_cols)
    db.execute(stmt)
    logger.debug("price_cache_upsert symbol=%s", symbol)

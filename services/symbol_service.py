from typing import List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models.stock_symbol import StockSymbol

SEARCH_LIMIT = 10


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_symbols(db: Session, query: str, limit: int = SEARCH_LIMIT) -> List[StockSymbol]:
    term = (query or "").strip()
    if not term:
        return []
    pattern = f"%{_escape_like(term)}%"
    return (
        db.query(StockSymbol)
        .filter(
            or_(
                StockSymbol.symbol.ilike(pattern, escape="\\"),
                StockSymbol.name.ilike(pattern, escape="\\"),
            )
        )
        .order_by(StockSymbol.symbol.asc())
        .limit(limit)
        .all()
    )

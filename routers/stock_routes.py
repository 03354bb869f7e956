from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from schemas.misc import SymbolOut
from services.symbol_service import SEARCH_LIMIT, search_symbols

router = APIRouter()


@router.get("/search")
def search(
    q: str = Query("", max_length=64),
    limit: int = Query(SEARCH_LIMIT, ge=1, le=50),
    db: Session = Depends(get_db),
):
    results: List[SymbolOut] = [
        SymbolOut(symbol=row.symbol, name=row.name) for row in search_symbols(db, q, limit)
    ]
    return {"success": True, "results": results}

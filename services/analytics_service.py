# services/analytics_service.py
"""
Portfolio analytics.

Sector allocation and top performers come from the real ledger and price
cache. The performance series and risk metrics are SIMULATED placeholders:
there is no historical price ingestion, so responses carry `simulated: True`.
"""
from __future__ import annotations

import random
from datetime import date, timedelta
from math import fsum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from services.errors import ValidationError
from services.position_store import SqlPositionStore
from services.price_service import get_quotes
from services.valuation import value_portfolio
from utils.common_helpers import pct_of, utcnow

PERIOD_DAYS: Dict[str, int] = {
    "1M": 30,
    "3M": 90,
    "6M": 180,
    "1Y": 365,
    "2Y": 730,
}

EMPTY_PORTFOLIO_BASELINE = 100_000.0
TOP_PERFORMERS_LIMIT = 5

# fixed placeholders; nothing here is derived from market data
PLACEHOLDER_RISK_METRICS: Dict[str, float] = {
    "beta": 1.2,
    "sharpe_ratio": 0.8,
    "volatility": 15.5,
    "max_drawdown": -8.2,
    "var_95": -3.5,
}


def period_days(period: str) -> int:
    try:
        return PERIOD_DAYS[period.upper()]
    except (KeyError, AttributeError):
        raise ValidationError(f"Invalid period, expected one of {', '.join(PERIOD_DAYS)}")


def simulate_performance(
    current_value: float,
    days: int,
    *,
    end: date,
    rng: Optional[random.Random] = None,
) -> List[Dict[str, Any]]:
    """`days + 1` daily points ending at `end`, jittered around a base value."""
    rng = rng or random.Random()
    base = current_value if current_value > 0 else EMPTY_PORTFOLIO_BASELINE
    points = []
    for offset in range(days, -1, -1):
        jitter = rng.uniform(-0.05, 0.10)
        points.append({
            "date": (end - timedelta(days=offset)).isoformat(),
            "value": round(base * (1.0 + jitter), 2),
        })
    return points


def sector_allocation(positions: List[Any], valuations: List[Any]) -> List[Dict[str, Any]]:
    totals: Dict[str, float] = {}
    for position, valued in zip(positions, valuations):
        sector = position.sector or "Other"
        totals[sector] = totals.get(sector, 0.0) + valued.current_value
    grand_total = fsum(totals.values())
    items = sorted(totals.items(), key=lambda kv: -kv[1])
    return [
        {"sector": sector, "value": round(value, 2), "weight": round(pct_of(value, grand_total), 2)}
        for sector, value in items
    ]


def top_performers(positions: List[Any], valuations: List[Any], limit: int = TOP_PERFORMERS_LIMIT) -> List[Dict[str, Any]]:
    ranked = sorted(
        zip(positions, valuations),
        key=lambda pv: pv[1].gain_loss_percent,
        reverse=True,
    )
    return [
        {"symbol": p.symbol, "name": p.name, "gain_loss_percent": round(v.gain_loss_percent, 2)}
        for p, v in ranked[:limit]
    ]


def get_analytics(
    db: Session,
    user_id: int,
    period: str = "1M",
    *,
    today: Optional[date] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    days = period_days(period)
    today = today or utcnow().date()

    positions = SqlPositionStore(db).list_active(user_id)
    quotes = get_quotes(db, [p.symbol for p in positions])
    valuation = value_portfolio(positions, quotes)

    return {
        "performance": simulate_performance(valuation.summary.total_value, days, end=today, rng=rng),
        "sectors": sector_allocation(positions, valuation.positions),
        "risk_metrics": dict(PLACEHOLDER_RISK_METRICS),
        "top_performers": top_performers(positions, valuation.positions),
        "period": period.upper(),
        "simulated": True,
    }

# services/valuation.py
"""
Portfolio valuation: pure arithmetic over positions and a price lookup.

No I/O here. Callers load positions and quotes, then hand them in.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from math import fsum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from utils.common_helpers import pct_of, to_float


@dataclass(frozen=True)
class PriceQuote:
    current_price: float
    day_change: float = 0.0
    day_change_percent: float = 0.0


@dataclass
class PositionValuation:
    symbol: str
    shares: float
    avg_price: float
    current_price: float
    day_change: float
    current_value: float
    cost_basis: float
    gain_loss: float
    gain_loss_percent: float
    day_gain_loss: float
    price_status: str          # live / unavailable
    weight: Optional[float] = None


@dataclass
class PortfolioSummary:
    total_value: float = 0.0
    total_cost: float = 0.0
    total_gain_loss: float = 0.0
    total_gain_loss_percent: float = 0.0
    day_gain_loss: float = 0.0
    day_gain_loss_percent: float = 0.0
    position_count: int = 0
    price_status: str = "live"  # live / mixed / unavailable


@dataclass
class PortfolioValuation:
    positions: List[PositionValuation] = field(default_factory=list)
    summary: PortfolioSummary = field(default_factory=PortfolioSummary)


def merge_lot(
    shares: float,
    avg_price: float,
    lot_shares: float,
    lot_price: float,
) -> Tuple[float, float]:
    """
    Fold a new lot into an existing holding.

    Shares add up; average cost is weighted by total cost of each side.
    """
    total_shares = shares + lot_shares
    if total_shares <= 0:
        raise ValueError("merged share count must be positive")
    total_cost = shares * avg_price + lot_shares * lot_price
    return total_shares, total_cost / total_shares


def value_position(symbol: str, shares: float, avg_price: float, quote: Optional[PriceQuote]) -> PositionValuation:
    if quote is not None:
        price = to_float(quote.current_price)
        day_change = to_float(quote.day_change)
        status = "live"
    else:
        # no cached quote: carry the position at cost
        price = avg_price
        day_change = 0.0
        status = "unavailable"

    current_value = shares * price
    cost_basis = shares * avg_price
    gain_loss = current_value - cost_basis

    return PositionValuation(
        symbol=symbol,
        shares=shares,
        avg_price=avg_price,
        current_price=price,
        day_change=day_change,
        current_value=current_value,
        cost_basis=cost_basis,
        gain_loss=gain_loss,
        gain_loss_percent=pct_of(gain_loss, cost_basis),
        day_gain_loss=shares * day_change,
        price_status=status,
    )


def value_portfolio(
    positions: Iterable[Any],
    prices: Mapping[str, PriceQuote],
) -> PortfolioValuation:
    """
    Value every position and roll the figures up.

    `positions` may be ORM rows or any object exposing symbol, shares and
    avg_price. Totals are sums of the per-position numbers; percentage totals
    fall back to 0 on a zero denominator.
    """
    valued = [
        value_position(p.symbol, to_float(p.shares), to_float(p.avg_price), prices.get(p.symbol))
        for p in positions
    ]

    total_value = fsum(v.current_value for v in valued)
    total_cost = fsum(v.cost_basis for v in valued)
    total_day = fsum(v.day_gain_loss for v in valued)
    total_gain_loss = total_value - total_cost

    for v in valued:
        v.weight = pct_of(v.current_value, total_value) if total_value > 0 else None

    live_count = sum(1 for v in valued if v.price_status == "live")
    if valued and live_count == 0:
        price_status = "unavailable"
    elif live_count == len(valued):
        price_status = "live"
    else:
        price_status = "mixed"

    summary = PortfolioSummary(
        total_value=total_value,
        total_cost=total_cost,
        total_gain_loss=total_gain_loss,
        total_gain_loss_percent=pct_of(total_gain_loss, total_cost),
        day_gain_loss=total_day,
        day_gain_loss_percent=pct_of(total_day, total_value),
        position_count=len(valued),
        price_status=price_status,
    )
    return PortfolioValuation(positions=valued, summary=summary)


def summary_to_dict(summary: PortfolioSummary) -> Dict[str, Any]:
    # round only at the edge
    return {
        "total_value": round(summary.total_value, 2),
        "total_cost": round(summary.total_cost, 2),
        "total_gain_loss": round(summary.total_gain_loss, 2),
        "total_gain_loss_percent": round(summary.total_gain_loss_percent, 2),
        "day_gain_loss": round(summary.day_gain_loss, 2),
        "day_gain_loss_percent": round(summary.day_gain_loss_percent, 2),
        "position_count": summary.position_count,
        "price_status": summary.price_status,
    }

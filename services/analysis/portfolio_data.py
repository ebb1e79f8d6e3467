"""Assemble the PortfolioData snapshot an analysis runs on."""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from schemas.ai_analysis import InvestmentStrategyData, PortfolioData, Position


@dataclass
class _Lot:
    symbol: str
    quantity: float
    purchase_price: float
    current_price: Optional[float]


def _aggregate(lots: Iterable[_Lot]) -> "OrderedDict[str, Dict[str, float]]":
    """Merge lots per symbol: total quantity, total cost, market value."""
    out: "OrderedDict[str, Dict[str, float]]" = OrderedDict()
    for lot in lots:
        sym = (lot.symbol or "").strip().upper()
        qty = float(lot.quantity or 0.0)
        if not sym or qty <= 0:
            continue
        cost = qty * float(lot.purchase_price or 0.0)
        price = lot.current_price if lot.current_price is not None else lot.purchase_price
        value = qty * float(price or 0.0)

        agg = out.setdefault(sym, {"quantity": 0.0, "cost": 0.0, "value": 0.0})
        agg["quantity"] += qty
        agg["cost"] += cost
        agg["value"] += value
    return out


def build_positions(holdings: Iterable) -> List[Position]:
    """
    Holdings rows (anything with symbol/quantity/purchase_price/current_price)
    -> one Position per symbol with value, share of portfolio and P/L.
    """
    lots = (
        _Lot(h.symbol, h.quantity, h.purchase_price, h.current_price)
        for h in holdings
    )
    merged = _aggregate(lots)
    total_value = sum(a["value"] for a in merged.values())

    positions: List[Position] = []
    for sym, a in merged.items():
        qty, cost, value = a["quantity"], a["cost"], a["value"]
        pl = value - cost
        positions.append(
            Position(
                ticker=sym,
                quantity=qty,
                average_price=cost / qty if qty else 0.0,
                current_price=value / qty if qty else 0.0,
                total_value=value,
                percentage_of_portfolio=(value / total_value * 100.0) if total_value > 0 else 0.0,
                profit_loss=pl,
                profit_loss_percentage=(pl / cost * 100.0) if cost > 0 else 0.0,
            )
        )
    return positions


def portfolio_value(holdings: Iterable) -> float:
    return sum(p.total_value for p in build_positions(holdings))


def build_portfolio_data(user_id: int, holdings: Iterable, strategy: InvestmentStrategyData) -> PortfolioData:
    positions = build_positions(holdings)
    return PortfolioData(
        user_id=user_id,
        total_value=sum(p.total_value for p in positions),
        positions=positions,
        strategy=strategy,
    )

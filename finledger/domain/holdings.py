"""Holding cost-basis arithmetic"""

from typing import Optional, Tuple

from finledger.domain.exceptions import ValidationError
from finledger.domain.models import Bucket, Holding, Purchase


def normalize_symbol(symbol: str) -> str:
    normalized = symbol.strip().upper()
    if not normalized:
        raise ValidationError("Symbol cannot be empty")
    return normalized


def apply_purchase(holding: Holding, purchase: Purchase) -> Holding:
    """
    Fold a purchase into a holding using volume-weighted averaging.

    new_avg = (old_qty * old_avg + qty * price) / (old_qty + qty)

    When both the holding and the purchase carry an FX rate (foreign holding
    funded in local currency) the rate is averaged by quantity the same way.
    """
    if purchase.quantity <= 0:
        raise ValidationError("Purchased quantity must be positive")
    if purchase.price <= 0:
        raise ValidationError("Purchase price must be positive")

    old_qty = holding.quantity
    total_qty = old_qty + purchase.quantity

    holding.avg_cost = (old_qty * holding.avg_cost + purchase.quantity * purchase.price) / total_qty

    if purchase.fx_rate is not None:
        if holding.fx_rate is None or old_qty == 0:
            holding.fx_rate = purchase.fx_rate
        else:
            holding.fx_rate = (old_qty * holding.fx_rate + purchase.quantity * purchase.fx_rate) / total_qty

    holding.quantity = total_qty
    return holding


def open_holding(
    user_id: str,
    bucket: Bucket,
    symbol: str,
    currency: str,
    purchase: Purchase,
    name: Optional[str] = None,
) -> Holding:
    """New holding whose cost basis is the first purchase"""
    return apply_purchase(
        Holding(
            user_id=user_id,
            bucket=bucket,
            symbol=normalize_symbol(symbol),
            quantity=0.0,
            avg_cost=0.0,
            currency=currency,
            name=name or symbol,
        ),
        purchase,
    )


def holding_value(holding: Holding, local_currency: str) -> Tuple[float, float]:
    """
    Cost basis and current value of a holding in local currency.

    Falls back to average cost when no price is known, and to no conversion
    when a foreign holding has no stored FX rate.
    """
    price = holding.current_price if holding.current_price is not None else holding.avg_cost
    cost = holding.quantity * holding.avg_cost
    value = holding.quantity * price

    if holding.currency != local_currency and holding.fx_rate:
        return cost * holding.fx_rate, value * holding.fx_rate
    return cost, value

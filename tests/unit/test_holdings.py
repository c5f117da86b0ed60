"""Unit tests for holding cost basis and valuation"""

import pytest
from finledger.domain.exceptions import ValidationError
from finledger.domain.holdings import apply_purchase, holding_value, normalize_symbol, open_holding
from finledger.domain.models import Bucket, Holding, Purchase


def test_weighted_average_cost():
    """10 @ 100 then 10 @ 200 -> 20 @ 150"""
    holding = open_holding("user_1", Bucket.IND_STOCK, "infy", "INR", Purchase(quantity=10, price=100))
    apply_purchase(holding, Purchase(quantity=10, price=200))

    assert holding.quantity == 20
    assert holding.avg_cost == 150
    assert holding.symbol == "INFY"


def test_fx_rate_weighted_by_quantity():
    holding = open_holding("user_1", Bucket.US_STOCK, "AAPL", "USD", Purchase(quantity=10, price=180, fx_rate=80))
    apply_purchase(holding, Purchase(quantity=30, price=200, fx_rate=84))

    assert holding.fx_rate == pytest.approx(83)
    assert holding.avg_cost == pytest.approx(195)


def test_purchase_requires_positive_quantity_and_price():
    holding = Holding(user_id="u", bucket=Bucket.CRYPTO, symbol="BITCOIN", quantity=1, avg_cost=10, currency="INR")

    with pytest.raises(ValidationError):
        apply_purchase(holding, Purchase(quantity=0, price=10))
    with pytest.raises(ValidationError):
        apply_purchase(holding, Purchase(quantity=1, price=0))


def test_normalize_symbol():
    assert normalize_symbol("  reliance ") == "RELIANCE"
    with pytest.raises(ValidationError):
        normalize_symbol("   ")


def test_foreign_holding_valued_in_local_currency():
    holding = Holding(
        user_id="u",
        bucket=Bucket.US_STOCK,
        symbol="AAPL",
        quantity=20,
        avg_cost=150,
        currency="USD",
        current_price=200,
        fx_rate=80,
    )

    assert holding_value(holding, "INR") == (240000, 320000)


def test_value_falls_back_to_cost_without_price():
    holding = Holding(user_id="u", bucket=Bucket.MUTUAL_FUND, symbol="120503", quantity=10, avg_cost=50, currency="INR")

    assert holding_value(holding, "INR") == (500, 500)

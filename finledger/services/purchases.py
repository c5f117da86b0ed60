"""One-time purchases and the holding update shared with plan executions"""

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from finledger.config import settings
from finledger.domain.exceptions import PricingError, StateViolationError, ValidationError
from finledger.domain.holdings import apply_purchase, normalize_symbol, open_holding
from finledger.domain.models import Bucket, Holding, Purchase, TransactionType
from finledger.infrastructure.clients.pricing import PricingClient, holding_currency
from finledger.infrastructure.database.repositories import HoldingRepository
from finledger.services.budget import BudgetService
from finledger.services.closing import ensure_period_open


def post_to_holding(
    db: Session,
    user_id: str,
    bucket: Bucket,
    symbol: str,
    currency: str,
    purchase: Purchase,
    transaction_type: TransactionType,
    amount: float,
    local_amount: Optional[float],
    on: date,
    current_price: Optional[float] = None,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Holding:
    """
    Fold a purchase into the user's holding for (bucket, symbol) and record the transaction.

    Creates the holding on first purchase. Does not commit.
    """
    holdings = HoldingRepository(db)
    holding = holdings.find(user_id, bucket, symbol)
    if holding is None:
        holding = open_holding(user_id, bucket, symbol, currency, purchase, name=name)
    else:
        apply_purchase(holding, purchase)
    if current_price is not None:
        holding.current_price = current_price

    holdings.save(holding)
    holdings.add_transaction(
        holding,
        transaction_type,
        quantity=purchase.quantity,
        price=purchase.price,
        amount=round(amount, 2),
        local_amount=round(local_amount, 2) if local_amount is not None else None,
        purchase_date=on,
        fx_rate=purchase.fx_rate,
        description=description,
    )
    return holding


class PurchaseService:
    """Manual buys posted against holdings"""

    def __init__(
        self,
        db: Session,
        pricing: PricingClient,
        clock: Callable[[], date] = date.today,
        local_currency: str | None = None,
    ):
        self.db = db
        self.pricing = pricing
        self.clock = clock
        self.local_currency = local_currency or settings.local_currency

    async def buy(
        self,
        user_id: str,
        bucket: Bucket,
        symbol: str,
        quantity: float,
        price: float,
        purchase_date: Optional[date] = None,
        name: Optional[str] = None,
        fx_rate: Optional[float] = None,
    ) -> Holding:
        """
        Record a one-time purchase.

        Flow:
        1. Refuse future dates and dates inside a closed month
        2. Check quantity * price (in local currency when an FX rate is known) against
           the bucket allocation
        3. Refresh the holding's last price; a pricing failure leaves it unknown
        4. Apply the weighted-average update at the buy price

        Raises:
            ValidationError: bad quantity, price, symbol or date
            StateViolationError: purchase date falls in a closed month
            ConfigurationMissingError / BudgetExceededError: allocation check failed
        """
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")
        if price <= 0:
            raise ValidationError("Price must be positive")
        symbol = normalize_symbol(symbol)

        today = self.clock()
        purchase_date = purchase_date or today
        if purchase_date > today:
            raise ValidationError("Purchase date cannot be in the future")
        ensure_period_open(self.db, user_id, purchase_date, "record a purchase")

        currency = holding_currency(bucket, self.local_currency)
        if currency == self.local_currency:
            fx_rate = None
        elif fx_rate is None:
            try:
                fx_rate = await self.pricing.get_fx_rate(currency, self.local_currency)
            except PricingError as e:
                logging.warning(
                    f"FX rate unavailable, storing purchase without local amount: {e}",
                    extra={"user_id": user_id, "symbol": symbol},
                )

        amount = quantity * price
        if currency == self.local_currency:
            local_amount = amount
        else:
            local_amount = amount * fx_rate if fx_rate else None
        # Without a rate the allocation is checked against the unconverted amount
        proposed = local_amount if local_amount is not None else amount
        BudgetService(self.db, self.clock).check(user_id, bucket, proposed, on=purchase_date)

        try:
            current_price = await self.pricing.get_price(symbol, bucket, currency)
        except PricingError as e:
            logging.warning(
                f"Price refresh failed, storing holding without current price: {e}",
                extra={"user_id": user_id, "symbol": symbol},
            )
            current_price = None

        try:
            holding = post_to_holding(
                self.db,
                user_id,
                bucket,
                symbol,
                currency,
                Purchase(quantity=quantity, price=price, fx_rate=fx_rate),
                TransactionType.BUY,
                amount=amount,
                local_amount=local_amount,
                on=purchase_date,
                current_price=current_price,
                name=name,
            )
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise StateViolationError(f"Holding {symbol} was modified concurrently; retry the purchase") from e
        except Exception:
            self.db.rollback()
            raise

        logging.info(
            "Purchase recorded",
            extra={"user_id": user_id, "bucket": bucket.value, "symbol": symbol, "quantity": quantity},
        )
        return holding

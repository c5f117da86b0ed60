"""POST /v1/purchases - one-time investment purchase"""

from datetime import date
from typing import Callable

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from finledger.api.dependencies import get_clock, get_pricing_client, get_request_id, http_error
from finledger.api.v1.schemas import HoldingResponse, PurchaseRequest
from finledger.config import settings
from finledger.domain.exceptions import DomainException
from finledger.domain.holdings import holding_value
from finledger.infrastructure.clients.pricing import PricingClient
from finledger.infrastructure.database.session import get_db
from finledger.services.purchases import PurchaseService

router = APIRouter()


@router.post("/purchases", response_model=HoldingResponse, status_code=201)
async def create_purchase(
    body: PurchaseRequest,
    request: Request,
    db: Session = Depends(get_db),
    pricing: PricingClient = Depends(get_pricing_client),
    clock: Callable[[], date] = Depends(get_clock),
):
    """
    Record a manual buy.

    Flow:
    1. Check the purchase against the bucket allocation
    2. Fold it into the holding at the buy price
    3. Return the updated holding valued in local currency
    """
    try:
        holding = await PurchaseService(db, pricing, clock).buy(
            user_id=body.user_id,
            bucket=body.bucket,
            symbol=body.symbol,
            quantity=body.quantity,
            price=body.price,
            purchase_date=body.purchase_date,
            name=body.name,
            fx_rate=body.fx_rate,
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    cost, value = holding_value(holding, settings.local_currency)
    return HoldingResponse(
        id=holding.id,
        bucket=holding.bucket,
        symbol=holding.symbol,
        quantity=holding.quantity,
        avg_cost=holding.avg_cost,
        currency=holding.currency,
        current_price=holding.current_price,
        cost_basis=round(cost, 2),
        current_value=round(value, 2),
    )

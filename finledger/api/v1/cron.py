"""Scheduled job endpoints: daily plan execution and month close"""

from datetime import date
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from finledger.api.dependencies import (
    get_clock,
    get_pricing_client,
    get_request_id,
    http_error,
    verify_cron_secret,
)
from finledger.api.v1.schemas import BatchReportResponse, CloseReportResponse
from finledger.domain.exceptions import DomainException
from finledger.infrastructure.clients.pricing import PricingClient
from finledger.infrastructure.database.session import get_db
from finledger.services.closing import PeriodClosingService
from finledger.services.execution import ExecutionService

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@router.post("/cron/plan-execution", response_model=BatchReportResponse)
async def run_plan_execution(
    db: Session = Depends(get_db),
    pricing: PricingClient = Depends(get_pricing_client),
    clock: Callable[[], date] = Depends(get_clock),
):
    """
    Execute every recurring plan due today.

    Safe to call repeatedly: plans that already succeeded today are skipped,
    failed ones are retried.
    """
    report = await ExecutionService(db, pricing, clock).run()
    return BatchReportResponse.model_validate(report)


@router.post("/cron/month-close", response_model=CloseReportResponse)
def run_month_close(
    request: Request,
    year: Optional[int] = Query(None, ge=1),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    """Close a period for all users; defaults to the month before today"""
    if (year is None) != (month is None):
        raise HTTPException(status_code=422, detail="Provide both year and month, or neither")

    service = PeriodClosingService(db, clock)
    try:
        if year is None:
            report = service.close_previous_month_for_all()
        else:
            report = service.close_month_for_all(year, month)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return CloseReportResponse.model_validate(report)

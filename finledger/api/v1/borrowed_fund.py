"""Borrowed fund endpoints"""

from datetime import date
from typing import Callable

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from finledger.api.dependencies import get_clock, get_request_id, http_error
from finledger.api.v1.schemas import BorrowedFundResponse, BorrowRequest, FundReturnRequest
from finledger.domain.exceptions import DomainException
from finledger.infrastructure.database.session import get_db
from finledger.services.borrowed_funds import BorrowedFundService

router = APIRouter()


@router.post("/borrowed-funds", response_model=BorrowedFundResponse, status_code=201)
def borrow(
    body: BorrowRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    try:
        fund = BorrowedFundService(db, clock).borrow(body.user_id, body.lender_name, body.amount, body.borrowed_date)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return BorrowedFundResponse.model_validate(fund)


@router.post("/borrowed-funds/{fund_id}/returns", response_model=BorrowedFundResponse)
def return_funds(
    fund_id: str,
    body: FundReturnRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    """Record a partial or full return of a borrowed fund"""
    try:
        fund = BorrowedFundService(db, clock).return_funds(body.user_id, fund_id, body.amount, body.return_date)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return BorrowedFundResponse.model_validate(fund)

"""Loan endpoints: create, inspect, pay installments, close"""

from datetime import date
from typing import Callable

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from finledger.api.dependencies import get_clock, get_request_id, http_error
from finledger.api.v1.schemas import LoanCreateRequest, LoanResponse, PaymentRequest
from finledger.domain.exceptions import DomainException
from finledger.domain.models import CustomSchedule, InstallmentPayment, ScheduleAnchor
from finledger.infrastructure.database.session import get_db
from finledger.services.loans import LoanService

router = APIRouter()


def _payment(body: PaymentRequest) -> InstallmentPayment:
    return InstallmentPayment(
        paid_amount=body.paid_amount,
        paid_date=body.paid_date,
        payment_method=body.payment_method,
        principal_paid=body.principal_paid,
        interest_paid=body.interest_paid,
        late_fee=body.late_fee,
    )


@router.post("/loans", response_model=LoanResponse, status_code=201)
def create_loan(
    body: LoanCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    """
    Create a loan and its installment schedule.

    Either tenure (months) or installment_amount is required; the other is
    solved with the amortizing-loan formula.
    """
    try:
        schedule = None
        if body.custom_schedule:
            schedule = CustomSchedule(
                anchors=tuple(ScheduleAnchor(month=a.month, day=a.day) for a in body.custom_schedule)
            )
        loan = LoanService(db, clock).create_loan(
            user_id=body.user_id,
            name=body.name,
            principal=body.principal,
            annual_rate=body.annual_rate,
            recurrence=body.recurrence,
            start_date=body.start_date,
            tenure=body.tenure,
            installment_amount=body.installment_amount,
            schedule=schedule,
            overrides=body.overrides,
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return LoanResponse.model_validate(loan)


@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(
    loan_id: str,
    request: Request,
    user_id: str = Query(..., description="User identifier"),
    db: Session = Depends(get_db),
):
    try:
        loan = LoanService(db).get_loan(user_id, loan_id)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return LoanResponse.model_validate(loan)


@router.post("/loans/{loan_id}/installments/{sequence}/payment", response_model=LoanResponse)
def pay_installment(
    loan_id: str,
    sequence: int,
    body: PaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    """Record payment of one installment; a second payment of the same installment is rejected"""
    try:
        loan = LoanService(db, clock).pay_installment(body.user_id, loan_id, sequence, _payment(body))
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return LoanResponse.model_validate(loan)


@router.put("/loans/{loan_id}/installments/{sequence}/payment", response_model=LoanResponse)
def correct_payment(
    loan_id: str,
    sequence: int,
    body: PaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    try:
        loan = LoanService(db, clock).correct_payment(body.user_id, loan_id, sequence, _payment(body))
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return LoanResponse.model_validate(loan)


@router.post("/loans/{loan_id}/close", response_model=LoanResponse)
def close_loan(
    loan_id: str,
    request: Request,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    try:
        loan = LoanService(db).close_loan(user_id, loan_id)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return LoanResponse.model_validate(loan)

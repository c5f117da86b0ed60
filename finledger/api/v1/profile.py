"""Salary, tax, allocation and expense endpoints"""

from datetime import date
from typing import Callable

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from finledger.api.dependencies import get_clock, get_request_id, http_error
from finledger.api.v1.schemas import (
    AllocationRequest,
    BudgetCheckRequest,
    BudgetCheckResponse,
    ExpenseRequest,
    SalaryRequest,
    TaxRuleRequest,
)
from finledger.domain.exceptions import DomainException
from finledger.domain.models import AllocationRule, Expense, SalaryRecord, TaxRule
from finledger.infrastructure.database.session import get_db
from finledger.services.budget import BudgetService
from finledger.services.profile import ProfileService

router = APIRouter()


@router.post("/salary", status_code=201)
def set_salary(
    body: SalaryRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    try:
        ProfileService(db, clock).set_salary(
            body.user_id,
            SalaryRecord(monthly_amount=body.monthly_amount, effective_from=body.effective_from),
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return {"status": "ok"}


@router.put("/tax-rule")
def set_tax_rule(
    body: TaxRuleRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    try:
        ProfileService(db, clock).set_tax_rule(
            body.user_id,
            TaxRule(mode=body.mode, percentage=body.percentage, fixed_amount=body.fixed_amount),
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return {"status": "ok"}


@router.put("/allocations")
def set_allocation(
    body: AllocationRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    try:
        ProfileService(db, clock).set_allocation(
            body.user_id,
            AllocationRule(
                bucket=body.bucket,
                allocation_type=body.allocation_type,
                percent=body.percent,
                fixed_amount=body.fixed_amount,
            ),
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return {"status": "ok"}


@router.post("/allocations/check", response_model=BudgetCheckResponse)
def check_allocation(
    body: BudgetCheckRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    """Dry-run the allocation check for a proposed monthly contribution"""
    try:
        check = BudgetService(db, clock).check(body.user_id, body.bucket, body.proposed)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return BudgetCheckResponse.model_validate(check)


@router.post("/expenses", status_code=201)
def add_expense(
    body: ExpenseRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    try:
        ProfileService(db, clock).add_expense(
            body.user_id,
            Expense(
                date=body.expense_date,
                amount=body.amount,
                category=body.category,
                expense_type=body.expense_type,
                needs_portion=body.needs_portion,
                avoid_portion=body.avoid_portion,
                description=body.description,
            ),
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return {"status": "ok"}

"""Recurring investment plan endpoints"""

from datetime import date
from typing import Callable, List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from finledger.api.dependencies import get_clock, get_request_id, http_error
from finledger.api.v1.schemas import (
    ExecutionHistoryResponse,
    ExecutionSchema,
    PlanCreateRequest,
    PlanResponse,
)
from finledger.domain.exceptions import DomainException
from finledger.domain.models import RecurringPlan
from finledger.infrastructure.database.session import get_db
from finledger.services.plans import PlanService

router = APIRouter()


@router.post("/plans", response_model=PlanResponse, status_code=201)
def create_plan(
    body: PlanCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    """
    Create a recurring plan.

    Plans that target a bucket are rejected when their monthly load does not
    fit the bucket's allocation (422 with the budget figures).
    """
    plan = RecurringPlan(
        user_id=body.user_id,
        name=body.name,
        amount=body.amount,
        recurrence=body.recurrence,
        start_date=body.start_date,
        custom_day=body.custom_day,
        end_date=body.end_date,
        bucket=body.bucket,
        symbol=body.symbol,
        currency=body.currency.upper(),
        amount_in_holding_currency=body.amount_in_holding_currency,
    )
    try:
        saved = PlanService(db, clock).create_plan(plan)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return PlanResponse.model_validate(saved)


@router.get("/plans", response_model=List[PlanResponse])
def list_plans(user_id: str = Query(..., description="User identifier"), db: Session = Depends(get_db)):
    return [PlanResponse.model_validate(p) for p in PlanService(db).list_plans(user_id)]


@router.get("/plans/executions", response_model=ExecutionHistoryResponse)
def list_executions(
    user_id: str = Query(..., description="User identifier"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Recent executions, newest first, including failed attempts"""
    executions = PlanService(db).list_executions(user_id, limit=limit)
    return ExecutionHistoryResponse(
        user_id=user_id,
        executions=[ExecutionSchema.model_validate(e) for e in executions],
    )

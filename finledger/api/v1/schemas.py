"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from finledger.domain.models import (
    AllocationType,
    Bucket,
    ExecutionStatus,
    ExpenseCategory,
    ExpenseType,
    LoanRecurrence,
    PaymentMethod,
    PlanRecurrence,
    TaxMode,
)


class ResponseModel(BaseModel):
    """Base for responses built from domain dataclasses"""

    model_config = ConfigDict(from_attributes=True)


# Profile


class SalaryRequest(BaseModel):
    """Request body for POST /v1/salary"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    monthly_amount: float = Field(..., ge=0)
    effective_from: date


class TaxRuleRequest(BaseModel):
    """Request body for PUT /v1/tax-rule"""

    user_id: str = Field(..., min_length=1)
    mode: TaxMode
    percentage: Optional[float] = None
    fixed_amount: Optional[float] = None


class AllocationRequest(BaseModel):
    """Request body for PUT /v1/allocations"""

    user_id: str = Field(..., min_length=1)
    bucket: Bucket
    allocation_type: AllocationType
    percent: Optional[float] = None
    fixed_amount: Optional[float] = None


class BudgetCheckRequest(BaseModel):
    """Request body for POST /v1/allocations/check"""

    user_id: str = Field(..., min_length=1)
    bucket: Bucket
    proposed: float = Field(..., gt=0)


class BudgetCheckResponse(ResponseModel):
    bucket: Bucket
    budget: float
    committed: float
    proposed: float
    remaining: float


class ExpenseRequest(BaseModel):
    """Request body for POST /v1/expenses"""

    user_id: str = Field(..., min_length=1)
    expense_date: date
    amount: float = Field(..., gt=0)
    category: ExpenseCategory
    expense_type: ExpenseType
    needs_portion: Optional[float] = None
    avoid_portion: Optional[float] = None
    description: Optional[str] = None


# Loans


class ScheduleAnchorSchema(BaseModel):
    month: int = Field(..., ge=1, le=12)
    day: int = Field(..., ge=1, le=31)


class LoanCreateRequest(BaseModel):
    """Request body for POST /v1/loans"""

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    principal: float = Field(..., gt=0)
    annual_rate: float = Field(..., ge=0, le=100)
    recurrence: LoanRecurrence
    start_date: date
    tenure: Optional[int] = Field(None, gt=0, description="Tenure in months")
    installment_amount: Optional[float] = Field(None, gt=0)
    custom_schedule: Optional[List[ScheduleAnchorSchema]] = None
    overrides: Optional[Dict[int, float]] = Field(None, description="1-based installment number -> amount")


class InstallmentSchema(ResponseModel):
    """Single installment in a loan schedule"""

    sequence: int
    due_date: date
    amount: float
    principal_component: float
    interest_component: float
    is_paid: bool
    paid_amount: Optional[float] = None
    paid_date: Optional[date] = None
    principal_paid: Optional[float] = None
    interest_paid: Optional[float] = None


class LoanResponse(ResponseModel):
    """Response for loan endpoints"""

    id: str
    user_id: str
    name: str
    principal: float
    annual_rate: float
    recurrence: LoanRecurrence
    start_date: date
    tenure: int
    installment_amount: float
    outstanding: float
    total_paid: float
    is_active: bool
    is_closed: bool
    closed_at: Optional[datetime] = None
    installments: List[InstallmentSchema]


class PaymentRequest(BaseModel):
    """Request body for installment payment and correction"""

    user_id: str = Field(..., min_length=1)
    paid_amount: float = Field(..., gt=0)
    paid_date: date
    payment_method: PaymentMethod
    principal_paid: Optional[float] = Field(None, ge=0)
    interest_paid: Optional[float] = Field(None, ge=0)
    late_fee: Optional[float] = Field(None, ge=0)


# Recurring plans


class PlanCreateRequest(BaseModel):
    """Request body for POST /v1/plans"""

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    recurrence: PlanRecurrence
    start_date: date
    custom_day: Optional[int] = None
    end_date: Optional[date] = None
    bucket: Optional[Bucket] = None
    symbol: Optional[str] = None
    currency: str = "INR"
    amount_in_holding_currency: bool = False


class PlanResponse(ResponseModel):
    id: str
    user_id: str
    name: str
    amount: float
    recurrence: PlanRecurrence
    start_date: date
    custom_day: Optional[int] = None
    end_date: Optional[date] = None
    bucket: Optional[Bucket] = None
    symbol: Optional[str] = None
    is_active: bool
    currency: str


class ExecutionSchema(ResponseModel):
    plan_id: str
    execution_date: date
    amount: float
    status: ExecutionStatus
    quantity: Optional[float] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    local_amount: Optional[float] = None
    error_message: Optional[str] = None


class ExecutionHistoryResponse(BaseModel):
    """Response for GET /v1/plans/executions"""

    user_id: str
    executions: List[ExecutionSchema]


# Purchases and holdings


class PurchaseRequest(BaseModel):
    """Request body for POST /v1/purchases"""

    user_id: str = Field(..., min_length=1)
    bucket: Bucket
    symbol: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0)
    price: float = Field(..., gt=0)
    purchase_date: Optional[date] = None
    name: Optional[str] = None
    fx_rate: Optional[float] = Field(None, gt=0)


class HoldingResponse(BaseModel):
    id: str
    bucket: Bucket
    symbol: str
    quantity: float
    avg_cost: float
    currency: str
    current_price: Optional[float] = None
    cost_basis: float
    current_value: float


# Borrowed funds


class BorrowRequest(BaseModel):
    """Request body for POST /v1/borrowed-funds"""

    user_id: str = Field(..., min_length=1)
    lender_name: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    borrowed_date: Optional[date] = None


class FundReturnRequest(BaseModel):
    """Request body for POST /v1/borrowed-funds/{fund_id}/returns"""

    user_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    return_date: Optional[date] = None


class BorrowedFundResponse(ResponseModel):
    id: str
    lender_name: str
    borrowed_amount: float
    borrowed_date: date
    returned_amount: float
    remaining: float
    is_fully_returned: bool
    actual_return_date: Optional[date] = None


# Snapshots and batches


class LoanDetailSchema(ResponseModel):
    loan_id: Optional[str] = None
    name: str
    installment_amount: float
    due_date: Optional[date] = None
    is_paid: bool


class SnapshotResponse(ResponseModel):
    """Monthly financial statement"""

    user_id: str
    year: int
    month: int
    net_salary: float
    tax_amount: float
    after_tax: float
    total_loans: float
    total_plans: float
    total_expenses: float
    expected_expenses: float
    unexpected_expenses: float
    needs_expenses: float
    partial_needs_expenses: float
    avoid_expenses: float
    available_amount: float
    spent_amount: float
    surplus_amount: float
    previous_surplus: float
    investments_made: float
    borrowed_received: float
    borrowed_returned: float
    loan_details: List[LoanDetailSchema]
    is_closed: bool
    closed_at: Optional[datetime] = None


class CloseResponse(BaseModel):
    outcome: str
    snapshot: SnapshotResponse


class BatchReportResponse(ResponseModel):
    """Response for POST /v1/cron/plan-execution"""

    run_date: date
    total: int
    executed: int
    skipped: int
    failed: int
    errors: List[str]


class CloseReportResponse(ResponseModel):
    """Response for POST /v1/cron/month-close"""

    year: int
    month: int
    created: int
    updated: int
    skipped: int
    failed: int
    errors: List[str]

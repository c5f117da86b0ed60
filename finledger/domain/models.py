"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from finledger.domain.exceptions import ValidationError


class TaxMode(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"
    HYBRID = "HYBRID"


class LoanRecurrence(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    HALF_YEARLY = "HALF_YEARLY"
    ANNUALLY = "ANNUALLY"
    CUSTOM = "CUSTOM"


class PlanRecurrence(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    CUSTOM = "CUSTOM"


class Bucket(str, Enum):
    MUTUAL_FUND = "MUTUAL_FUND"
    IND_STOCK = "IND_STOCK"
    US_STOCK = "US_STOCK"
    CRYPTO = "CRYPTO"
    EMERGENCY_FUND = "EMERGENCY_FUND"


class AllocationType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    AMOUNT = "AMOUNT"


class ExpenseCategory(str, Enum):
    NEEDS = "NEEDS"
    PARTIAL_NEEDS = "PARTIAL_NEEDS"
    AVOID = "AVOID"


class ExpenseType(str, Enum):
    EXPECTED = "EXPECTED"
    UNEXPECTED = "UNEXPECTED"


class ExecutionStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class TransactionType(str, Enum):
    BUY = "BUY"
    SIP_EXECUTION = "SIP_EXECUTION"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    NET_BANKING = "NET_BANKING"
    OTHER = "OTHER"


@dataclass(frozen=True)
class ScheduleAnchor:
    """A {month, day} point in the year on which a custom loan installment falls"""

    month: int
    day: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValidationError(f"Schedule month must be between 1 and 12, got {self.month}")
        if not 1 <= self.day <= 31:
            raise ValidationError(f"Schedule day must be between 1 and 31, got {self.day}")


@dataclass(frozen=True)
class CustomSchedule:
    """Explicit yearly installment calendar for CUSTOM loans (1-12 anchors)"""

    anchors: Tuple[ScheduleAnchor, ...]

    def __post_init__(self) -> None:
        if not 1 <= len(self.anchors) <= 12:
            raise ValidationError("Custom schedule needs between 1 and 12 payment dates")
        if len(set(self.anchors)) != len(self.anchors):
            raise ValidationError("Custom schedule contains duplicate payment dates")

    @classmethod
    def from_pairs(cls, pairs: List[Dict[str, int]]) -> "CustomSchedule":
        try:
            anchors = tuple(ScheduleAnchor(month=int(p["month"]), day=int(p["day"])) for p in pairs)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed custom schedule entry: {e}") from e
        return cls(anchors=anchors)

    def to_pairs(self) -> List[Dict[str, int]]:
        return [{"month": a.month, "day": a.day} for a in self.anchors]


@dataclass
class TaxRule:
    """Tax configuration; the latest rule by update time is effective"""

    mode: TaxMode
    percentage: Optional[float] = None
    fixed_amount: Optional[float] = None


@dataclass
class SalaryRecord:
    """Monthly salary effective from a given date"""

    monthly_amount: float
    effective_from: date


@dataclass
class LoanTerms:
    """Resolved loan parameters: both tenure and installment amount are known"""

    principal: float
    annual_rate: float
    recurrence: LoanRecurrence
    tenure: int  # months
    installment_amount: float
    installment_count: int
    schedule: Optional[CustomSchedule] = None

    @property
    def total_payment(self) -> float:
        return round(self.installment_amount * self.installment_count, 2)

    @property
    def total_interest(self) -> float:
        return round(self.total_payment - self.principal, 2)


@dataclass
class Installment:
    """Single payment in a loan schedule"""

    sequence: int
    due_date: date
    amount: float
    principal_component: float = 0.0
    interest_component: float = 0.0
    is_paid: bool = False
    paid_amount: Optional[float] = None
    paid_date: Optional[date] = None
    principal_paid: Optional[float] = None
    interest_paid: Optional[float] = None
    late_fee: Optional[float] = None
    payment_method: Optional[PaymentMethod] = None
    id: Optional[str] = None


@dataclass
class Loan:
    """Loan aggregate with its running balance"""

    user_id: str
    name: str
    principal: float
    annual_rate: float
    recurrence: LoanRecurrence
    start_date: date
    tenure: int
    installment_amount: float
    outstanding: float
    total_paid: float = 0.0
    schedule: Optional[CustomSchedule] = None
    is_active: bool = True
    is_closed: bool = False
    closed_at: Optional[datetime] = None
    installments: List[Installment] = field(default_factory=list)
    id: Optional[str] = None


@dataclass
class InstallmentPayment:
    """Payment details recorded against an installment"""

    paid_amount: float
    paid_date: date
    payment_method: PaymentMethod
    principal_paid: Optional[float] = None
    interest_paid: Optional[float] = None
    late_fee: Optional[float] = None


@dataclass
class RecurringPlan:
    """Scheduled recurring contribution (SIP)"""

    user_id: str
    name: str
    amount: float
    recurrence: PlanRecurrence
    start_date: date
    custom_day: Optional[int] = None
    end_date: Optional[date] = None
    bucket: Optional[Bucket] = None
    symbol: Optional[str] = None
    is_active: bool = True
    currency: str = "INR"
    amount_in_holding_currency: bool = False
    id: Optional[str] = None


@dataclass
class PlanExecution:
    """Outcome of one trigger of a recurring plan"""

    plan_id: str
    user_id: str
    execution_date: date
    amount: float
    status: ExecutionStatus
    quantity: Optional[float] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    local_amount: Optional[float] = None
    holding_id: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class Holding:
    """Aggregated position tracked by quantity and weighted average cost"""

    user_id: str
    bucket: Bucket
    symbol: str
    quantity: float
    avg_cost: float
    currency: str
    current_price: Optional[float] = None
    fx_rate: Optional[float] = None  # local units per holding-currency unit
    name: Optional[str] = None
    id: Optional[str] = None


@dataclass
class Purchase:
    """A buy applied to a holding (plan execution or one-time purchase)"""

    quantity: float
    price: float
    fx_rate: Optional[float] = None


@dataclass
class AllocationRule:
    """Per-bucket investment budget policy"""

    bucket: Bucket
    allocation_type: AllocationType
    percent: Optional[float] = None
    fixed_amount: Optional[float] = None


@dataclass
class BudgetCheck:
    """Accepted allocation check with the figures it was decided on"""

    bucket: Bucket
    budget: float
    committed: float
    proposed: float

    @property
    def remaining(self) -> float:
        return self.budget - self.committed - self.proposed


@dataclass
class Expense:
    """Categorized spending entry"""

    date: date
    amount: float
    category: ExpenseCategory
    expense_type: ExpenseType
    needs_portion: Optional[float] = None
    avoid_portion: Optional[float] = None
    description: Optional[str] = None


@dataclass
class BorrowedFund:
    """Money borrowed from someone, returned in one or more instalments"""

    user_id: str
    lender_name: str
    borrowed_amount: float
    borrowed_date: date
    returned_amount: float = 0.0
    is_fully_returned: bool = False
    actual_return_date: Optional[date] = None
    id: Optional[str] = None

    @property
    def remaining(self) -> float:
        return round(self.borrowed_amount - self.returned_amount, 2)


@dataclass
class FundReturn:
    """A single return recorded against a borrowed fund"""

    fund_id: str
    amount: float
    return_date: date


@dataclass
class LoanMonthDetail:
    """Per-loan view of the installment due in a snapshot month"""

    loan_id: Optional[str]
    name: str
    installment_amount: float
    due_date: Optional[date] = None
    is_paid: bool = False


@dataclass
class MonthlySnapshot:
    """Financial statement for one (user, year, month)"""

    user_id: str
    year: int
    month: int
    net_salary: float = 0.0
    tax_amount: float = 0.0
    after_tax: float = 0.0
    total_loans: float = 0.0
    total_plans: float = 0.0
    total_expenses: float = 0.0
    expected_expenses: float = 0.0
    unexpected_expenses: float = 0.0
    needs_expenses: float = 0.0
    partial_needs_expenses: float = 0.0
    avoid_expenses: float = 0.0
    available_amount: float = 0.0
    spent_amount: float = 0.0
    surplus_amount: float = 0.0
    previous_surplus: float = 0.0
    investments_made: float = 0.0
    borrowed_received: float = 0.0
    borrowed_returned: float = 0.0
    loan_details: List[LoanMonthDetail] = field(default_factory=list)
    is_closed: bool = False
    closed_at: Optional[datetime] = None


@dataclass
class PlanOutcome:
    """Result of processing one plan in the execution batch"""

    plan_id: str
    status: str  # executed | skipped | failed
    reason: Optional[str] = None
    execution: Optional[PlanExecution] = None


@dataclass
class BatchReport:
    """Aggregate result of one execution batch run"""

    run_date: date
    total: int = 0
    executed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    outcomes: List[PlanOutcome] = field(default_factory=list)

    def record(self, outcome: PlanOutcome) -> "BatchReport":
        self.total += 1
        self.outcomes.append(outcome)
        if outcome.status == "executed":
            self.executed += 1
        elif outcome.status == "failed":
            self.failed += 1
            self.errors.append(f"Plan {outcome.plan_id}: {outcome.reason}")
        else:
            self.skipped += 1
        return self


@dataclass
class CloseResult:
    """Outcome of closing one period"""

    user_id: str
    year: int
    month: int
    outcome: str  # created | updated | skipped
    snapshot: MonthlySnapshot


@dataclass
class CloseReport:
    """Aggregate result of closing a period for many users"""

    year: int
    month: int
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

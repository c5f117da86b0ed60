"""Data access layer translating ORM rows to domain entities"""

from dataclasses import asdict
from datetime import date, datetime
from typing import List, Optional, Set

from sqlalchemy import select, union
from sqlalchemy.orm import Session, selectinload

from finledger.domain.models import (
    AllocationRule,
    AllocationType,
    BorrowedFund,
    Bucket,
    CustomSchedule,
    Expense,
    ExpenseCategory,
    ExpenseType,
    ExecutionStatus,
    FundReturn,
    Holding,
    Installment,
    Loan,
    LoanMonthDetail,
    LoanRecurrence,
    MonthlySnapshot,
    PaymentMethod,
    PlanExecution,
    PlanRecurrence,
    RecurringPlan,
    SalaryRecord,
    TaxMode,
    TaxRule,
    TransactionType,
)
from finledger.infrastructure.database.models import (
    AllocationRuleRow,
    BorrowedFundRow,
    ExpenseRow,
    FundReturnRow,
    HoldingRow,
    InstallmentRow,
    InvestmentTransactionRow,
    LoanRow,
    MonthlySnapshotRow,
    PlanExecutionRow,
    RecurringPlanRow,
    SalaryRecordRow,
    TaxRuleRow,
)


class SalaryRepository:
    """Repository for salary history"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, user_id: str, record: SalaryRecord) -> SalaryRecord:
        self.db.add(
            SalaryRecordRow(
                user_id=user_id,
                monthly_amount=record.monthly_amount,
                effective_from=record.effective_from,
            )
        )
        self.db.flush()
        return record

    def list_for_user(self, user_id: str) -> List[SalaryRecord]:
        rows = (
            self.db.query(SalaryRecordRow)
            .filter(SalaryRecordRow.user_id == user_id)
            .order_by(SalaryRecordRow.effective_from.desc())
            .all()
        )
        return [SalaryRecord(monthly_amount=r.monthly_amount, effective_from=r.effective_from) for r in rows]

    def effective(self, user_id: str, as_of: date) -> Optional[SalaryRecord]:
        """Latest record effective on or before ``as_of``"""
        row = (
            self.db.query(SalaryRecordRow)
            .filter(SalaryRecordRow.user_id == user_id, SalaryRecordRow.effective_from <= as_of)
            .order_by(SalaryRecordRow.effective_from.desc())
            .first()
        )
        if row is None:
            return None
        return SalaryRecord(monthly_amount=row.monthly_amount, effective_from=row.effective_from)


class TaxRuleRepository:
    """Repository for tax settings"""

    def __init__(self, db: Session):
        self.db = db

    def upsert(self, user_id: str, rule: TaxRule) -> TaxRule:
        """Replace the user's tax settings, bumping updated_at"""
        row = (
            self.db.query(TaxRuleRow)
            .filter(TaxRuleRow.user_id == user_id)
            .order_by(TaxRuleRow.updated_at.desc())
            .first()
        )
        if row is None:
            row = TaxRuleRow(user_id=user_id)
            self.db.add(row)
        row.mode = rule.mode.value
        row.percentage = rule.percentage
        row.fixed_amount = rule.fixed_amount
        self.db.flush()
        return rule

    def effective(self, user_id: str) -> Optional[TaxRule]:
        row = (
            self.db.query(TaxRuleRow)
            .filter(TaxRuleRow.user_id == user_id)
            .order_by(TaxRuleRow.updated_at.desc())
            .first()
        )
        if row is None:
            return None
        return TaxRule(mode=TaxMode(row.mode), percentage=row.percentage, fixed_amount=row.fixed_amount)


def _installment_to_domain(row: InstallmentRow) -> Installment:
    return Installment(
        id=row.id,
        sequence=row.sequence,
        due_date=row.due_date,
        amount=row.amount,
        principal_component=row.principal_component,
        interest_component=row.interest_component,
        is_paid=row.is_paid,
        paid_amount=row.paid_amount,
        paid_date=row.paid_date,
        principal_paid=row.principal_paid,
        interest_paid=row.interest_paid,
        late_fee=row.late_fee,
        payment_method=PaymentMethod(row.payment_method) if row.payment_method else None,
    )


def _loan_to_domain(row: LoanRow) -> Loan:
    return Loan(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        principal=row.principal,
        annual_rate=row.annual_rate,
        recurrence=LoanRecurrence(row.recurrence),
        start_date=row.start_date,
        tenure=row.tenure,
        installment_amount=row.installment_amount,
        outstanding=row.outstanding,
        total_paid=row.total_paid,
        schedule=CustomSchedule.from_pairs(row.custom_schedule) if row.custom_schedule else None,
        is_active=row.is_active,
        is_closed=row.is_closed,
        closed_at=row.closed_at,
        installments=[_installment_to_domain(i) for i in row.installments],
    )


class LoanRepository:
    """Repository for loans and their installments"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, loan: Loan) -> Loan:
        """Persist a loan together with its installment schedule"""
        row = LoanRow(
            user_id=loan.user_id,
            name=loan.name,
            principal=loan.principal,
            annual_rate=loan.annual_rate,
            recurrence=loan.recurrence.value,
            start_date=loan.start_date,
            tenure=loan.tenure,
            installment_amount=loan.installment_amount,
            custom_schedule=loan.schedule.to_pairs() if loan.schedule else None,
            outstanding=loan.outstanding,
            total_paid=loan.total_paid,
            is_active=loan.is_active,
            is_closed=loan.is_closed,
        )
        row.installments = [
            InstallmentRow(
                sequence=i.sequence,
                due_date=i.due_date,
                amount=i.amount,
                principal_component=i.principal_component,
                interest_component=i.interest_component,
            )
            for i in loan.installments
        ]
        self.db.add(row)
        self.db.flush()
        return _loan_to_domain(row)

    def _row(self, user_id: str, loan_id: str) -> Optional[LoanRow]:
        return (
            self.db.query(LoanRow)
            .options(selectinload(LoanRow.installments))
            .filter(LoanRow.id == loan_id, LoanRow.user_id == user_id)
            .first()
        )

    def get(self, user_id: str, loan_id: str) -> Optional[Loan]:
        row = self._row(user_id, loan_id)
        return _loan_to_domain(row) if row else None

    def list_for_user(self, user_id: str, started_by: Optional[date] = None) -> List[Loan]:
        query = (
            self.db.query(LoanRow)
            .options(selectinload(LoanRow.installments))
            .filter(LoanRow.user_id == user_id)
        )
        if started_by is not None:
            query = query.filter(LoanRow.start_date <= started_by)
        return [_loan_to_domain(r) for r in query.order_by(LoanRow.start_date).all()]

    def save(self, loan: Loan) -> None:
        """
        Write back running totals and installment payment state.

        The row's version column makes the UPDATE fail with StaleDataError
        when another transaction changed the loan since it was read.
        """
        row = self._row(loan.user_id, loan.id)
        row.outstanding = loan.outstanding
        row.total_paid = loan.total_paid
        row.is_active = loan.is_active
        row.is_closed = loan.is_closed
        row.closed_at = loan.closed_at

        by_sequence = {i.sequence: i for i in loan.installments}
        for inst_row in row.installments:
            inst = by_sequence[inst_row.sequence]
            inst_row.is_paid = inst.is_paid
            inst_row.paid_amount = inst.paid_amount
            inst_row.paid_date = inst.paid_date
            inst_row.principal_paid = inst.principal_paid
            inst_row.interest_paid = inst.interest_paid
            inst_row.late_fee = inst.late_fee
            inst_row.payment_method = inst.payment_method.value if inst.payment_method else None
        self.db.flush()


def _plan_to_domain(row: RecurringPlanRow) -> RecurringPlan:
    return RecurringPlan(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        amount=row.amount,
        recurrence=PlanRecurrence(row.recurrence),
        custom_day=row.custom_day,
        start_date=row.start_date,
        end_date=row.end_date,
        bucket=Bucket(row.bucket) if row.bucket else None,
        symbol=row.symbol,
        is_active=row.is_active,
        currency=row.currency,
        amount_in_holding_currency=row.amount_in_holding_currency,
    )


class PlanRepository:
    """Repository for recurring investment plans"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, plan: RecurringPlan) -> RecurringPlan:
        row = RecurringPlanRow(
            user_id=plan.user_id,
            name=plan.name,
            amount=plan.amount,
            recurrence=plan.recurrence.value,
            custom_day=plan.custom_day,
            start_date=plan.start_date,
            end_date=plan.end_date,
            bucket=plan.bucket.value if plan.bucket else None,
            symbol=plan.symbol,
            is_active=plan.is_active,
            currency=plan.currency,
            amount_in_holding_currency=plan.amount_in_holding_currency,
        )
        self.db.add(row)
        self.db.flush()
        return _plan_to_domain(row)

    def list_for_user(self, user_id: str) -> List[RecurringPlan]:
        rows = self.db.query(RecurringPlanRow).filter(RecurringPlanRow.user_id == user_id).all()
        return [_plan_to_domain(r) for r in rows]

    def list_due_candidates(self, today: date) -> List[RecurringPlan]:
        """Active plans that have started and not yet ended, across all users"""
        rows = (
            self.db.query(RecurringPlanRow)
            .filter(
                RecurringPlanRow.is_active.is_(True),
                RecurringPlanRow.start_date <= today,
                (RecurringPlanRow.end_date.is_(None)) | (RecurringPlanRow.end_date >= today),
            )
            .order_by(RecurringPlanRow.created_at)
            .all()
        )
        return [_plan_to_domain(r) for r in rows]


class ExecutionRepository:
    """Repository for plan execution records"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def success_key(plan_id: str, day: date) -> str:
        return f"{plan_id}:{day.isoformat()}"

    def has_success(self, plan_id: str, day: date) -> bool:
        return (
            self.db.query(PlanExecutionRow.id)
            .filter(PlanExecutionRow.success_key == self.success_key(plan_id, day))
            .first()
            is not None
        )

    def add(self, execution: PlanExecution) -> PlanExecution:
        """
        Insert an execution row.

        Non-failed rows claim the (plan, day) success key; a concurrent run that
        already claimed it makes the flush raise IntegrityError.
        """
        is_failed = execution.status == ExecutionStatus.FAILED
        self.db.add(
            PlanExecutionRow(
                plan_id=execution.plan_id,
                user_id=execution.user_id,
                execution_date=execution.execution_date,
                amount=execution.amount,
                quantity=execution.quantity,
                price=execution.price,
                currency=execution.currency,
                local_amount=execution.local_amount,
                holding_id=execution.holding_id,
                status=execution.status.value,
                error_message=execution.error_message,
                success_key=None if is_failed else self.success_key(execution.plan_id, execution.execution_date),
            )
        )
        self.db.flush()
        return execution

    def list_for_user(self, user_id: str, limit: int = 50) -> List[PlanExecution]:
        rows = (
            self.db.query(PlanExecutionRow)
            .filter(PlanExecutionRow.user_id == user_id)
            .order_by(PlanExecutionRow.execution_date.desc(), PlanExecutionRow.created_at.desc())
            .limit(limit)
            .all()
        )
        return [
            PlanExecution(
                plan_id=r.plan_id,
                user_id=r.user_id,
                execution_date=r.execution_date,
                amount=r.amount,
                status=ExecutionStatus(r.status),
                quantity=r.quantity,
                price=r.price,
                currency=r.currency,
                local_amount=r.local_amount,
                holding_id=r.holding_id,
                error_message=r.error_message,
            )
            for r in rows
        ]


def _holding_to_domain(row: HoldingRow) -> Holding:
    return Holding(
        id=row.id,
        user_id=row.user_id,
        bucket=Bucket(row.bucket),
        symbol=row.symbol,
        name=row.name,
        quantity=row.quantity,
        avg_cost=row.avg_cost,
        current_price=row.current_price,
        currency=row.currency,
        fx_rate=row.fx_rate,
    )


class HoldingRepository:
    """Repository for holdings and the purchases posted to them"""

    def __init__(self, db: Session):
        self.db = db

    def find(self, user_id: str, bucket: Bucket, symbol: str) -> Optional[Holding]:
        row = (
            self.db.query(HoldingRow)
            .filter(
                HoldingRow.user_id == user_id,
                HoldingRow.bucket == bucket.value,
                HoldingRow.symbol == symbol,
            )
            .with_for_update()
            .first()
        )
        return _holding_to_domain(row) if row else None

    def save(self, holding: Holding) -> Holding:
        """Insert a new holding or write back a loaded one (version-checked)"""
        if holding.id is None:
            row = HoldingRow(user_id=holding.user_id, bucket=holding.bucket.value, symbol=holding.symbol)
            self.db.add(row)
        else:
            row = self.db.get(HoldingRow, holding.id)
        row.name = holding.name
        row.quantity = holding.quantity
        row.avg_cost = holding.avg_cost
        row.current_price = holding.current_price
        row.currency = holding.currency
        row.fx_rate = holding.fx_rate
        self.db.flush()
        holding.id = row.id
        return holding

    def add_transaction(
        self,
        holding: Holding,
        transaction_type: TransactionType,
        quantity: float,
        price: float,
        amount: float,
        local_amount: Optional[float],
        purchase_date: date,
        fx_rate: Optional[float] = None,
        description: Optional[str] = None,
    ) -> None:
        self.db.add(
            InvestmentTransactionRow(
                user_id=holding.user_id,
                holding_id=holding.id,
                bucket=holding.bucket.value,
                symbol=holding.symbol,
                transaction_type=transaction_type.value,
                quantity=quantity,
                price=price,
                amount=amount,
                currency=holding.currency,
                local_amount=local_amount,
                fx_rate=fx_rate,
                purchase_date=purchase_date,
                description=description,
            )
        )
        self.db.flush()

    def invested_amounts(self, user_id: str, first: date, last: date) -> List[float]:
        """Local-currency amounts of purchases dated within [first, last], where known"""
        rows = (
            self.db.query(InvestmentTransactionRow.local_amount)
            .filter(
                InvestmentTransactionRow.user_id == user_id,
                InvestmentTransactionRow.local_amount.isnot(None),
                InvestmentTransactionRow.purchase_date >= first,
                InvestmentTransactionRow.purchase_date <= last,
            )
            .all()
        )
        return [r.local_amount for r in rows]


class AllocationRepository:
    """Repository for per-bucket allocation rules"""

    def __init__(self, db: Session):
        self.db = db

    def upsert(self, user_id: str, rule: AllocationRule) -> AllocationRule:
        row = (
            self.db.query(AllocationRuleRow)
            .filter(AllocationRuleRow.user_id == user_id, AllocationRuleRow.bucket == rule.bucket.value)
            .first()
        )
        if row is None:
            row = AllocationRuleRow(user_id=user_id, bucket=rule.bucket.value)
            self.db.add(row)
        row.allocation_type = rule.allocation_type.value
        row.percent = rule.percent
        row.fixed_amount = rule.fixed_amount
        self.db.flush()
        return rule

    def get(self, user_id: str, bucket: Bucket) -> Optional[AllocationRule]:
        row = (
            self.db.query(AllocationRuleRow)
            .filter(AllocationRuleRow.user_id == user_id, AllocationRuleRow.bucket == bucket.value)
            .first()
        )
        if row is None:
            return None
        return AllocationRule(
            bucket=Bucket(row.bucket),
            allocation_type=AllocationType(row.allocation_type),
            percent=row.percent,
            fixed_amount=row.fixed_amount,
        )


class ExpenseRepository:
    """Repository for expenses"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, user_id: str, expense: Expense) -> Expense:
        self.db.add(
            ExpenseRow(
                user_id=user_id,
                date=expense.date,
                amount=expense.amount,
                category=expense.category.value,
                expense_type=expense.expense_type.value,
                needs_portion=expense.needs_portion,
                avoid_portion=expense.avoid_portion,
                description=expense.description,
            )
        )
        self.db.flush()
        return expense

    def list_in_period(self, user_id: str, first: date, last: date) -> List[Expense]:
        rows = (
            self.db.query(ExpenseRow)
            .filter(ExpenseRow.user_id == user_id, ExpenseRow.date >= first, ExpenseRow.date <= last)
            .all()
        )
        return [
            Expense(
                date=r.date,
                amount=r.amount,
                category=ExpenseCategory(r.category),
                expense_type=ExpenseType(r.expense_type),
                needs_portion=r.needs_portion,
                avoid_portion=r.avoid_portion,
                description=r.description,
            )
            for r in rows
        ]


def _fund_to_domain(row: BorrowedFundRow) -> BorrowedFund:
    return BorrowedFund(
        id=row.id,
        user_id=row.user_id,
        lender_name=row.lender_name,
        borrowed_amount=row.borrowed_amount,
        borrowed_date=row.borrowed_date,
        returned_amount=row.returned_amount,
        is_fully_returned=row.is_fully_returned,
        actual_return_date=row.actual_return_date,
    )


class BorrowedFundRepository:
    """Repository for borrowed funds and their returns"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, fund: BorrowedFund) -> BorrowedFund:
        row = BorrowedFundRow(
            user_id=fund.user_id,
            lender_name=fund.lender_name,
            borrowed_amount=fund.borrowed_amount,
            borrowed_date=fund.borrowed_date,
        )
        self.db.add(row)
        self.db.flush()
        return _fund_to_domain(row)

    def get(self, user_id: str, fund_id: str) -> Optional[BorrowedFund]:
        row = (
            self.db.query(BorrowedFundRow)
            .filter(BorrowedFundRow.id == fund_id, BorrowedFundRow.user_id == user_id)
            .first()
        )
        return _fund_to_domain(row) if row else None

    def save_return(self, fund: BorrowedFund, fund_return: FundReturn) -> None:
        row = self.db.get(BorrowedFundRow, fund.id)
        row.returned_amount = fund.returned_amount
        row.is_fully_returned = fund.is_fully_returned
        row.actual_return_date = fund.actual_return_date
        row.returns.append(
            FundReturnRow(user_id=fund.user_id, amount=fund_return.amount, return_date=fund_return.return_date)
        )
        self.db.flush()

    def borrowed_in_period(self, user_id: str, first: date, last: date) -> List[BorrowedFund]:
        rows = (
            self.db.query(BorrowedFundRow)
            .filter(
                BorrowedFundRow.user_id == user_id,
                BorrowedFundRow.borrowed_date >= first,
                BorrowedFundRow.borrowed_date <= last,
            )
            .all()
        )
        return [_fund_to_domain(r) for r in rows]

    def returns_in_period(self, user_id: str, first: date, last: date) -> List[FundReturn]:
        rows = (
            self.db.query(FundReturnRow)
            .filter(
                FundReturnRow.user_id == user_id,
                FundReturnRow.return_date >= first,
                FundReturnRow.return_date <= last,
            )
            .all()
        )
        return [FundReturn(fund_id=r.fund_id, amount=r.amount, return_date=r.return_date) for r in rows]


_SNAPSHOT_FIGURES = (
    "net_salary",
    "tax_amount",
    "after_tax",
    "total_loans",
    "total_plans",
    "total_expenses",
    "expected_expenses",
    "unexpected_expenses",
    "needs_expenses",
    "partial_needs_expenses",
    "avoid_expenses",
    "available_amount",
    "spent_amount",
    "surplus_amount",
    "previous_surplus",
    "investments_made",
    "borrowed_received",
    "borrowed_returned",
)


def _snapshot_to_domain(row: MonthlySnapshotRow) -> MonthlySnapshot:
    details = []
    for d in row.loan_details or []:
        details.append(
            LoanMonthDetail(
                loan_id=d.get("loan_id"),
                name=d["name"],
                installment_amount=d["installment_amount"],
                due_date=date.fromisoformat(d["due_date"]) if d.get("due_date") else None,
                is_paid=d.get("is_paid", False),
            )
        )
    return MonthlySnapshot(
        user_id=row.user_id,
        year=row.year,
        month=row.month,
        loan_details=details,
        is_closed=row.is_closed,
        closed_at=row.closed_at,
        **{name: getattr(row, name) for name in _SNAPSHOT_FIGURES},
    )


def _details_to_json(details: List[LoanMonthDetail]) -> List[dict]:
    payload = []
    for d in details:
        item = asdict(d)
        item["due_date"] = d.due_date.isoformat() if d.due_date else None
        payload.append(item)
    return payload


class SnapshotRepository:
    """Repository for monthly snapshots"""

    def __init__(self, db: Session):
        self.db = db

    def _row(self, user_id: str, year: int, month: int, lock: bool = False) -> Optional[MonthlySnapshotRow]:
        query = self.db.query(MonthlySnapshotRow).filter(
            MonthlySnapshotRow.user_id == user_id,
            MonthlySnapshotRow.year == year,
            MonthlySnapshotRow.month == month,
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def get(self, user_id: str, year: int, month: int) -> Optional[MonthlySnapshot]:
        row = self._row(user_id, year, month)
        return _snapshot_to_domain(row) if row else None

    def is_closed(self, user_id: str, year: int, month: int) -> bool:
        row = (
            self.db.query(MonthlySnapshotRow.is_closed)
            .filter(
                MonthlySnapshotRow.user_id == user_id,
                MonthlySnapshotRow.year == year,
                MonthlySnapshotRow.month == month,
            )
            .first()
        )
        return bool(row and row.is_closed)

    def upsert_closed(self, snapshot: MonthlySnapshot, closed_at: datetime) -> Optional[bool]:
        """
        Store a snapshot as closed.

        Returns True when a row was created, False when an open row was
        overwritten, and None when the period was already closed (left as is).
        """
        row = self._row(snapshot.user_id, snapshot.year, snapshot.month, lock=True)
        if row is not None and row.is_closed:
            return None

        created = row is None
        if created:
            row = MonthlySnapshotRow(user_id=snapshot.user_id, year=snapshot.year, month=snapshot.month)
            self.db.add(row)
        for name in _SNAPSHOT_FIGURES:
            setattr(row, name, getattr(snapshot, name))
        row.loan_details = _details_to_json(snapshot.loan_details)
        row.is_closed = True
        row.closed_at = closed_at
        self.db.flush()

        snapshot.is_closed = True
        snapshot.closed_at = closed_at
        return created

    def known_user_ids(self) -> Set[str]:
        """Users with any financial records"""
        stmt = union(
            select(SalaryRecordRow.user_id),
            select(LoanRow.user_id),
            select(RecurringPlanRow.user_id),
            select(ExpenseRow.user_id),
        )
        return {row[0] for row in self.db.execute(stmt)}

"""Service tests for budgets, loans, purchases, borrowing and period closing"""

import pytest
from datetime import date
from sqlalchemy import text
from sqlalchemy.orm import Session
from finledger.domain.exceptions import (
    BudgetExceededError,
    ConfigurationMissingError,
    NotFoundError,
    StateViolationError,
    ValidationError,
)
from finledger.domain.models import (
    AllocationRule,
    AllocationType,
    Bucket,
    Expense,
    ExpenseCategory,
    ExpenseType,
    InstallmentPayment,
    LoanRecurrence,
    PaymentMethod,
    PlanRecurrence,
    RecurringPlan,
    SalaryRecord,
    TaxMode,
    TaxRule,
)
from finledger.infrastructure.database.repositories import (
    BorrowedFundRepository,
    ExpenseRepository,
    HoldingRepository,
    LoanRepository,
    PlanRepository,
)
from finledger.services.borrowed_funds import BorrowedFundService
from finledger.services.budget import BudgetService
from finledger.services.closing import PeriodClosingService
from finledger.services.loans import LoanService
from finledger.services.plans import PlanService
from finledger.services.profile import ProfileService
from finledger.services.purchases import PurchaseService


@pytest.fixture
def profile(db: Session, clock) -> ProfileService:
    """user_1 earns 100000 a month, taxed at 10%"""
    service = ProfileService(db, clock)
    service.set_salary("user_1", SalaryRecord(100000, date(2025, 1, 1)))
    service.set_tax_rule("user_1", TaxRule(mode=TaxMode.PERCENTAGE, percentage=10))
    service.set_allocation("user_1", AllocationRule(Bucket.MUTUAL_FUND, AllocationType.PERCENTAGE, percent=10))
    service.set_allocation("user_1", AllocationRule(Bucket.US_STOCK, AllocationType.AMOUNT, fixed_amount=20000))
    return service


def create_car_loan(db: Session, clock, start_date: date = date(2025, 1, 10)):
    return LoanService(db, clock).create_loan(
        "user_1", "Car loan", 120000, 12, LoanRecurrence.MONTHLY, start_date, tenure=12
    )


def upi_payment(amount: float, paid_date: date) -> InstallmentPayment:
    return InstallmentPayment(paid_amount=amount, paid_date=paid_date, payment_method=PaymentMethod.UPI)


def bump_version(db: Session, table: str, row_id: str) -> None:
    """Commit a version bump from another session, as a concurrent writer would"""
    other = Session(bind=db.get_bind())
    try:
        other.execute(text(f"UPDATE {table} SET version = version + 1 WHERE id = :id"), {"id": row_id})
        other.commit()
    finally:
        other.close()


class TestBudget:
    def test_missing_salary(self, db, clock):
        ProfileService(db, clock).set_allocation(
            "user_1", AllocationRule(Bucket.CRYPTO, AllocationType.AMOUNT, fixed_amount=5000)
        )

        with pytest.raises(ConfigurationMissingError) as exc_info:
            BudgetService(db, clock).check("user_1", Bucket.CRYPTO, 1000)

        assert exc_info.value.prerequisite == "salary"

    def test_missing_allocation(self, db, clock, profile):
        with pytest.raises(ConfigurationMissingError) as exc_info:
            BudgetService(db, clock).check("user_1", Bucket.CRYPTO, 1000)

        assert exc_info.value.prerequisite == "allocation"

    def test_plans_fill_bucket_then_reject(self, db, clock, profile):
        """10% of 90000 after tax leaves 9000 for mutual funds"""
        plans = PlanService(db, clock)
        plans.create_plan(
            RecurringPlan("user_1", "SIP A", 5000, PlanRecurrence.MONTHLY, date(2025, 3, 20), bucket=Bucket.MUTUAL_FUND, symbol="120503")
        )

        with pytest.raises(BudgetExceededError) as exc_info:
            plans.create_plan(
                RecurringPlan("user_1", "SIP B", 5000, PlanRecurrence.MONTHLY, date(2025, 3, 20), bucket=Bucket.MUTUAL_FUND, symbol="119551")
            )

        assert exc_info.value.budget == pytest.approx(9000)
        assert exc_info.value.committed == pytest.approx(5000)
        assert len(PlanRepository(db).list_for_user("user_1")) == 1

    def test_loan_installments_reduce_investable(self, db, clock, profile):
        create_car_loan(db, clock)

        assert BudgetService(db, clock).investable("user_1", 2025, 3) == pytest.approx(90000 - 10661.85)

    def test_ended_plan_no_longer_committed(self, db, clock, profile):
        PlanRepository(db).create(
            RecurringPlan(
                "user_1",
                "Finished SIP",
                8000,
                PlanRecurrence.MONTHLY,
                date(2024, 1, 5),
                end_date=date(2024, 12, 31),
                bucket=Bucket.MUTUAL_FUND,
                symbol="120503",
            )
        )
        db.commit()

        plan = PlanService(db, clock).create_plan(
            RecurringPlan("user_1", "New SIP", 5000, PlanRecurrence.MONTHLY, date(2025, 3, 20), bucket=Bucket.MUTUAL_FUND, symbol="119551")
        )

        assert plan.id is not None

    def test_yearly_plan_weighs_one_twelfth(self, db, clock, profile):
        plan = PlanService(db, clock).create_plan(
            RecurringPlan("user_1", "Yearly top-up", 60000, PlanRecurrence.YEARLY, date(2025, 4, 1), bucket=Bucket.MUTUAL_FUND, symbol="120503")
        )

        assert plan.id is not None


class TestLoans:
    def test_create_persists_schedule(self, db, clock):
        loan = create_car_loan(db, clock)

        stored = LoanRepository(db).get("user_1", loan.id)
        assert len(stored.installments) == 12
        assert stored.installment_amount == pytest.approx(10661.85)
        assert stored.installments[0].due_date == date(2025, 2, 10)

    def test_pay_installment_persists_balance(self, db, clock):
        loan = create_car_loan(db, clock)
        service = LoanService(db, clock)

        service.pay_installment("user_1", loan.id, 1, upi_payment(10661.85, date(2025, 2, 10)))

        stored = service.get_loan("user_1", loan.id)
        assert stored.installments[0].is_paid
        assert stored.installments[0].payment_method == PaymentMethod.UPI
        assert stored.outstanding == pytest.approx(110538.15)
        assert stored.total_paid == pytest.approx(10661.85)

    def test_pay_twice_rejected(self, db, clock):
        loan = create_car_loan(db, clock)
        service = LoanService(db, clock)
        service.pay_installment("user_1", loan.id, 1, upi_payment(10661.85, date(2025, 2, 10)))

        with pytest.raises(StateViolationError):
            service.pay_installment("user_1", loan.id, 1, upi_payment(10661.85, date(2025, 2, 11)))

    def test_unknown_loan_or_installment(self, db, clock):
        loan = create_car_loan(db, clock)
        service = LoanService(db, clock)

        with pytest.raises(NotFoundError):
            service.get_loan("user_2", loan.id)
        with pytest.raises(NotFoundError):
            service.pay_installment("user_1", loan.id, 13, upi_payment(100, date(2025, 3, 1)))

    def test_invalid_loan_stores_nothing(self, db, clock):
        with pytest.raises(ValidationError):
            LoanService(db, clock).create_loan("user_1", "Bad", 0, 12, LoanRecurrence.MONTHLY, date(2025, 1, 10), tenure=12)

        assert LoanRepository(db).list_for_user("user_1") == []

    def test_concurrent_payment_rejected(self, db, clock, monkeypatch):
        loan = create_car_loan(db, clock)
        save = LoanRepository.save

        def save_after_concurrent_write(repo, changed):
            bump_version(db, "loan", changed.id)
            save(repo, changed)

        monkeypatch.setattr(LoanRepository, "save", save_after_concurrent_write)

        with pytest.raises(StateViolationError):
            LoanService(db, clock).pay_installment("user_1", loan.id, 1, upi_payment(10661.85, date(2025, 2, 10)))

        monkeypatch.undo()
        stored = LoanRepository(db).get("user_1", loan.id)
        assert not stored.installments[0].is_paid
        assert stored.total_paid == 0


class TestPeriodClose:
    def test_close_is_idempotent(self, db, clock, profile):
        service = PeriodClosingService(db, clock)

        first = service.close_month("user_1", 2025, 2)
        closed_at = service.view("user_1", 2025, 2).closed_at
        second = service.close_month("user_1", 2025, 2)

        assert first.outcome == "created"
        assert second.outcome == "skipped"
        assert second.snapshot.closed_at == closed_at
        assert second.snapshot.net_salary == first.snapshot.net_salary

    def test_surplus_carried_into_next_month(self, db, clock):
        profile = ProfileService(db, clock)
        profile.set_salary("user_1", SalaryRecord(50000, date(2025, 1, 1)))
        profile.add_expense("user_1", Expense(date(2025, 2, 10), 35000, ExpenseCategory.NEEDS, ExpenseType.EXPECTED))
        service = PeriodClosingService(db, clock)

        closed = service.close_month("user_1", 2025, 2)
        march = service.view("user_1", 2025, 3)

        assert closed.snapshot.surplus_amount == pytest.approx(15000)
        assert march.previous_surplus == pytest.approx(15000)
        assert not march.is_closed

    def test_closed_month_figures_are_frozen(self, db, clock, profile):
        service = PeriodClosingService(db, clock)
        service.close_month("user_1", 2025, 2)

        profile.set_salary("user_1", SalaryRecord(150000, date(2025, 2, 1)))

        assert service.view("user_1", 2025, 2).net_salary == 100000
        assert service.view("user_1", 2025, 3).net_salary == 150000

    def test_expense_in_closed_month_rejected(self, db, clock, profile):
        PeriodClosingService(db, clock).close_month("user_1", 2025, 2)

        with pytest.raises(StateViolationError):
            profile.add_expense("user_1", Expense(date(2025, 2, 20), 500, ExpenseCategory.AVOID, ExpenseType.UNEXPECTED))

        assert ExpenseRepository(db).list_in_period("user_1", date(2025, 2, 1), date(2025, 2, 28)) == []

    def test_loan_starting_in_closed_month_rejected(self, db, clock):
        PeriodClosingService(db, clock).close_month("user_1", 2025, 2)

        with pytest.raises(StateViolationError):
            create_car_loan(db, clock, start_date=date(2025, 2, 10))

        assert LoanRepository(db).list_for_user("user_1") == []

    def test_payment_in_closed_month_rejected(self, db, clock):
        loan = create_car_loan(db, clock)
        PeriodClosingService(db, clock).close_month("user_1", 2025, 2)
        service = LoanService(db, clock)

        with pytest.raises(StateViolationError):
            service.pay_installment("user_1", loan.id, 1, upi_payment(10661.85, date(2025, 2, 10)))
        assert not service.get_loan("user_1", loan.id).installments[0].is_paid

        service.pay_installment("user_1", loan.id, 1, upi_payment(10661.85, date(2025, 3, 2)))
        assert service.get_loan("user_1", loan.id).installments[0].is_paid

    def test_correction_out_of_closed_month_rejected(self, db, clock):
        loan = create_car_loan(db, clock)
        service = LoanService(db, clock)
        service.pay_installment("user_1", loan.id, 1, upi_payment(10661.85, date(2025, 2, 10)))
        PeriodClosingService(db, clock).close_month("user_1", 2025, 2)

        with pytest.raises(StateViolationError):
            service.correct_payment("user_1", loan.id, 1, upi_payment(10000, date(2025, 3, 1)))

    def test_invalid_month_rejected(self, db, clock):
        with pytest.raises(ValidationError):
            PeriodClosingService(db, clock).close_month("user_1", 2025, 13)

    def test_close_for_all_users(self, db, clock, profile):
        ProfileService(db, clock).add_expense(
            "user_2", Expense(date(2025, 2, 3), 1200, ExpenseCategory.NEEDS, ExpenseType.EXPECTED)
        )
        service = PeriodClosingService(db, clock)
        service.close_month("user_1", 2025, 2)

        report = service.close_previous_month_for_all()

        assert (report.year, report.month) == (2025, 2)
        assert report.created == 1
        assert report.skipped == 1
        assert report.failed == 0
        assert service.view("user_2", 2025, 2).is_closed


class TestPurchases:
    @pytest.mark.asyncio
    async def test_buy_refreshes_current_price(self, db, pricing, clock, profile):
        holding = await PurchaseService(db, pricing, clock).buy("user_1", Bucket.MUTUAL_FUND, "120503", 10, 40)

        assert holding.quantity == 10
        assert holding.avg_cost == 40
        assert holding.current_price == 50

    @pytest.mark.asyncio
    async def test_buy_without_price_keeps_holding(self, db, pricing, clock, profile):
        holding = await PurchaseService(db, pricing, clock).buy("user_1", Bucket.MUTUAL_FUND, "119551", 10, 40)

        assert holding.current_price is None
        assert HoldingRepository(db).find("user_1", Bucket.MUTUAL_FUND, "119551") is not None

    @pytest.mark.asyncio
    async def test_foreign_buy_uses_fx_rate(self, db, pricing, clock, profile):
        holding = await PurchaseService(db, pricing, clock).buy("user_1", Bucket.US_STOCK, "AAPL", 1, 190)

        assert holding.currency == "USD"
        assert holding.fx_rate == 80
        assert HoldingRepository(db).invested_amounts("user_1", date(2025, 3, 1), date(2025, 3, 31)) == [15200]

    @pytest.mark.asyncio
    async def test_foreign_buy_without_fx_rate_still_recorded(self, db, pricing, clock, profile):
        pricing.fx_rates = {}

        holding = await PurchaseService(db, pricing, clock).buy("user_1", Bucket.US_STOCK, "AAPL", 1, 190)

        assert holding.quantity == 1
        assert holding.fx_rate is None
        assert HoldingRepository(db).invested_amounts("user_1", date(2025, 3, 1), date(2025, 3, 31)) == []

    @pytest.mark.asyncio
    async def test_foreign_buy_with_given_fx_rate(self, db, pricing, clock, profile):
        pricing.fx_rates = {}

        holding = await PurchaseService(db, pricing, clock).buy("user_1", Bucket.US_STOCK, "AAPL", 1, 190, fx_rate=82)

        assert holding.fx_rate == 82
        assert HoldingRepository(db).invested_amounts("user_1", date(2025, 3, 1), date(2025, 3, 31)) == [15580]

    @pytest.mark.asyncio
    async def test_concurrent_holding_update_rejected(self, db, pricing, clock, profile, monkeypatch):
        service = PurchaseService(db, pricing, clock)
        first = await service.buy("user_1", Bucket.MUTUAL_FUND, "120503", 10, 40)
        save = HoldingRepository.save

        def save_after_concurrent_write(repo, holding):
            bump_version(db, "holding", holding.id)
            return save(repo, holding)

        monkeypatch.setattr(HoldingRepository, "save", save_after_concurrent_write)

        with pytest.raises(StateViolationError):
            await service.buy("user_1", Bucket.MUTUAL_FUND, "120503", 10, 60)

        monkeypatch.undo()
        stored = HoldingRepository(db).find("user_1", Bucket.MUTUAL_FUND, first.symbol)
        assert stored.quantity == 10
        assert stored.avg_cost == 40

    @pytest.mark.asyncio
    async def test_buy_over_allocation_rejected(self, db, pricing, clock, profile):
        with pytest.raises(BudgetExceededError):
            await PurchaseService(db, pricing, clock).buy("user_1", Bucket.US_STOCK, "AAPL", 2, 190)

        assert HoldingRepository(db).find("user_1", Bucket.US_STOCK, "AAPL") is None

    @pytest.mark.asyncio
    async def test_future_purchase_rejected(self, db, pricing, clock, profile):
        with pytest.raises(ValidationError):
            await PurchaseService(db, pricing, clock).buy(
                "user_1", Bucket.MUTUAL_FUND, "120503", 1, 40, purchase_date=date(2025, 3, 16)
            )

    @pytest.mark.asyncio
    async def test_purchase_in_closed_month_rejected(self, db, pricing, clock, profile):
        PeriodClosingService(db, clock).close_month("user_1", 2025, 2)

        with pytest.raises(StateViolationError):
            await PurchaseService(db, pricing, clock).buy(
                "user_1", Bucket.MUTUAL_FUND, "120503", 1, 40, purchase_date=date(2025, 2, 27)
            )


class TestBorrowedFunds:
    def test_partial_return_persisted(self, db, clock):
        service = BorrowedFundService(db, clock)
        fund = service.borrow("user_1", "Asha", 10000, date(2025, 3, 1))

        service.return_funds("user_1", fund.id, 4000)

        stored = BorrowedFundRepository(db).get("user_1", fund.id)
        assert stored.remaining == 6000
        assert not stored.is_fully_returned

    def test_return_in_closed_month_rejected(self, db, clock):
        service = BorrowedFundService(db, clock)
        fund = service.borrow("user_1", "Asha", 10000, date(2025, 1, 5))
        PeriodClosingService(db, clock).close_month("user_1", 2025, 2)

        with pytest.raises(StateViolationError):
            service.return_funds("user_1", fund.id, 1000, date(2025, 2, 20))

        assert BorrowedFundRepository(db).get("user_1", fund.id).remaining == 10000

    def test_unknown_fund(self, db, clock):
        with pytest.raises(NotFoundError):
            BorrowedFundService(db, clock).return_funds("user_1", "missing", 100)

"""Monthly snapshot aggregation for the period closing engine"""

from datetime import date
from typing import Iterable, List, Optional

from finledger.domain.exceptions import ValidationError
from finledger.domain.frequency import is_loan_active_in, monthly_equivalent
from finledger.domain.models import (
    BorrowedFund,
    Expense,
    ExpenseCategory,
    ExpenseType,
    FundReturn,
    Loan,
    LoanMonthDetail,
    MonthlySnapshot,
    RecurringPlan,
    SalaryRecord,
    TaxRule,
)
from finledger.domain.tax import compute_tax
from finledger.utils.date_utils import month_bounds

PORTION_TOLERANCE = 0.01


def validate_expense(expense: Expense) -> None:
    """
    Reject malformed expenses.

    PARTIAL_NEEDS expenses must split their amount into needs and avoid
    portions that add up to the total (within one cent); other categories
    must not carry portions.
    """
    if expense.amount <= 0:
        raise ValidationError("Expense amount must be positive")

    if expense.category == ExpenseCategory.PARTIAL_NEEDS:
        if expense.needs_portion is None or expense.avoid_portion is None:
            raise ValidationError("Partial-needs expenses need both needs and avoid portions")
        if expense.needs_portion < 0 or expense.avoid_portion < 0:
            raise ValidationError("Expense portions cannot be negative")
        if abs(expense.needs_portion + expense.avoid_portion - expense.amount) > PORTION_TOLERANCE:
            raise ValidationError(
                f"Needs ({expense.needs_portion}) and avoid ({expense.avoid_portion}) portions "
                f"must add up to the amount ({expense.amount})"
            )
    elif expense.needs_portion is not None or expense.avoid_portion is not None:
        raise ValidationError("Only partial-needs expenses can be split into portions")


def effective_salary(salaries: Iterable[SalaryRecord], as_of: date) -> Optional[SalaryRecord]:
    """Latest salary record effective on or before ``as_of``"""
    eligible = [s for s in salaries if s.effective_from <= as_of]
    if not eligible:
        return None
    return max(eligible, key=lambda s: s.effective_from)


def loan_details_for(loans: Iterable[Loan], year: int, month: int) -> List[LoanMonthDetail]:
    """Active loans for the month with the paid state of the installment due in it"""
    first, last = month_bounds(year, month)
    details = []
    for loan in loans:
        if not is_loan_active_in(loan, year, month):
            continue
        due = next((i for i in loan.installments if first <= i.due_date <= last), None)
        details.append(
            LoanMonthDetail(
                loan_id=loan.id,
                name=loan.name,
                installment_amount=loan.installment_amount,
                due_date=due.due_date if due else None,
                is_paid=due.is_paid if due else False,
            )
        )
    return details


def compute_snapshot(
    user_id: str,
    year: int,
    month: int,
    salaries: Iterable[SalaryRecord],
    tax_rule: Optional[TaxRule],
    loans: Iterable[Loan],
    plans: Iterable[RecurringPlan],
    expenses: Iterable[Expense],
    previous: Optional[MonthlySnapshot] = None,
    investments: Iterable[float] = (),
    borrowed: Iterable[BorrowedFund] = (),
    returns: Iterable[FundReturn] = (),
) -> MonthlySnapshot:
    """
    Aggregate a user's records into the figures for one calendar month.

    Pure function: callers load the records; nothing here reads or writes
    storage, so it can be re-run any number of times with identical results.

    - available = after_tax - loan installments - plan monthly equivalents
    - spent = total expenses
    - surplus = available - spent
    - previous_surplus comes from the prior month's snapshot when there is one
    """
    first, last = month_bounds(year, month)

    salary = effective_salary(salaries, last)
    net_salary = salary.monthly_amount if salary else 0.0
    tax_amount = compute_tax(net_salary, tax_rule) if net_salary > 0 else 0.0
    after_tax_amount = net_salary - tax_amount

    loan_details = loan_details_for(loans, year, month)
    total_loans = sum(d.installment_amount for d in loan_details)

    total_plans = sum(monthly_equivalent(plan, year, month) for plan in plans)

    expected = unexpected = needs = partial = avoid = 0.0
    for expense in expenses:
        if not first <= expense.date <= last:
            continue
        if expense.expense_type == ExpenseType.EXPECTED:
            expected += expense.amount
        else:
            unexpected += expense.amount

        if expense.category == ExpenseCategory.NEEDS:
            needs += expense.amount
        elif expense.category == ExpenseCategory.PARTIAL_NEEDS:
            partial += expense.amount
            needs += expense.needs_portion or 0.0
            avoid += expense.avoid_portion or 0.0
        else:
            avoid += expense.amount
    total_expenses = expected + unexpected

    available = after_tax_amount - total_loans - total_plans
    surplus = available - total_expenses

    borrowed_received = sum(f.borrowed_amount for f in borrowed if first <= f.borrowed_date <= last)
    borrowed_returned = sum(r.amount for r in returns if first <= r.return_date <= last)

    return MonthlySnapshot(
        user_id=user_id,
        year=year,
        month=month,
        net_salary=round(net_salary, 2),
        tax_amount=round(tax_amount, 2),
        after_tax=round(after_tax_amount, 2),
        total_loans=round(total_loans, 2),
        total_plans=round(total_plans, 2),
        total_expenses=round(total_expenses, 2),
        expected_expenses=round(expected, 2),
        unexpected_expenses=round(unexpected, 2),
        needs_expenses=round(needs, 2),
        partial_needs_expenses=round(partial, 2),
        avoid_expenses=round(avoid, 2),
        available_amount=round(available, 2),
        spent_amount=round(total_expenses, 2),
        surplus_amount=round(surplus, 2),
        previous_surplus=round(previous.surplus_amount, 2) if previous else 0.0,
        investments_made=round(sum(investments), 2),
        borrowed_received=round(borrowed_received, 2),
        borrowed_returned=round(borrowed_returned, 2),
        loan_details=loan_details,
    )

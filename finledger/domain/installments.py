"""Loan installment schedule generation and payment lifecycle"""

import math
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from finledger.domain.exceptions import StateViolationError, ValidationError
from finledger.domain.frequency import (
    LOAN_STEP_MONTHS,
    anchor_occurrences,
    payments_per_year,
)
from finledger.domain.models import (
    CustomSchedule,
    Installment,
    InstallmentPayment,
    Loan,
    LoanRecurrence,
    LoanTerms,
)
from finledger.utils.date_utils import add_months


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def installment_count(tenure_months: int, per_year: int) -> int:
    """Number of installments falling within a tenure expressed in months"""
    return max(1, _ceil_div(tenure_months * per_year, 12))


def tenure_for_count(count: int, per_year: int) -> int:
    """Months spanned by ``count`` installments"""
    return _ceil_div(count * 12, per_year)


def solve_installment_amount(principal: float, period_rate: float, count: int) -> float:
    """
    Equal installment that amortizes ``principal`` over ``count`` periods.

    Formula: EMI = P * r * (1 + r)^n / ((1 + r)^n - 1)
    With a zero rate the principal is simply split evenly.
    """
    if period_rate == 0:
        return round(principal / count, 2)

    growth = (1 + period_rate) ** count
    return round(principal * period_rate * growth / (growth - 1), 2)


def solve_installment_count(principal: float, period_rate: float, installment_amount: float) -> int:
    """
    Number of equal installments needed to repay ``principal``.

    Derived from: n = log(EMI / (EMI - P * r)) / log(1 + r)

    Raises:
        ValidationError: when the installment does not even cover one period's interest
    """
    if period_rate == 0:
        return math.ceil(principal / installment_amount)

    period_interest = principal * period_rate
    if installment_amount <= period_interest:
        raise ValidationError(
            f"Installment {installment_amount:.2f} does not cover the periodic interest "
            f"{period_interest:.2f}; the loan would never be repaid"
        )

    periods = math.log(installment_amount / (installment_amount - period_interest)) / math.log(1 + period_rate)
    # Tolerate float noise so an exact amortizing EMI does not round up an extra period
    return math.ceil(periods - 1e-9)


def resolve_loan_terms(
    principal: float,
    annual_rate: float,
    recurrence: LoanRecurrence,
    tenure: Optional[int] = None,
    installment_amount: Optional[float] = None,
    schedule: Optional[CustomSchedule] = None,
) -> LoanTerms:
    """
    Validate loan inputs and solve whichever of tenure / installment is missing.

    Requirements:
    - principal > 0, 0 <= annual_rate <= 100
    - at least one of tenure (months) or installment_amount
    - installment_amount wins when both are given
    - CUSTOM recurrence needs a schedule, other recurrences must not carry one

    The period rate is annual_rate / payments_per_year / 100 where payments per
    year is 12 / step months, or the number of anchors for CUSTOM schedules.
    """
    if principal <= 0:
        raise ValidationError("Principal must be positive")
    if not 0 <= annual_rate <= 100:
        raise ValidationError("Annual interest rate must be between 0 and 100")
    if recurrence == LoanRecurrence.CUSTOM and schedule is None:
        raise ValidationError("CUSTOM recurrence requires a payment schedule")
    if recurrence != LoanRecurrence.CUSTOM and schedule is not None:
        raise ValidationError("A payment schedule is only used with CUSTOM recurrence")

    per_year = payments_per_year(recurrence, schedule)
    period_rate = annual_rate / per_year / 100

    if installment_amount is not None:
        if installment_amount <= 0:
            raise ValidationError("Installment amount must be positive")
        count = solve_installment_count(principal, period_rate, installment_amount)
        amount = round(installment_amount, 2)
        tenure_months = tenure_for_count(count, per_year)
    elif tenure is not None:
        if tenure <= 0:
            raise ValidationError("Tenure must be positive")
        count = installment_count(tenure, per_year)
        amount = solve_installment_amount(principal, period_rate, count)
        tenure_months = tenure
    else:
        raise ValidationError("Either tenure or installment amount is required")

    return LoanTerms(
        principal=principal,
        annual_rate=annual_rate,
        recurrence=recurrence,
        tenure=tenure_months,
        installment_amount=amount,
        installment_count=count,
        schedule=schedule,
    )


def generate_due_dates(terms: LoanTerms, start_date: date) -> List[date]:
    """
    Due dates for every installment of a loan.

    - Stepped recurrences: start + k * step months for k = 1..count
    - CUSTOM: anchors rolled forward from start + one month
    """
    if terms.recurrence == LoanRecurrence.CUSTOM:
        return anchor_occurrences(terms.schedule, add_months(start_date, 1), terms.installment_count)

    step = LOAN_STEP_MONTHS[terms.recurrence]
    return [add_months(start_date, step * k) for k in range(1, terms.installment_count + 1)]


def generate_loan_schedule(
    terms: LoanTerms,
    start_date: date,
    overrides: Optional[Dict[int, float]] = None,
) -> List[Installment]:
    """
    Generate the full installment schedule for a loan.

    Args:
        terms: Resolved loan terms (see resolve_loan_terms)
        start_date: Loan disbursal date; the first installment is one step later
        overrides: Optional 1-based installment number -> amount, for balloon or
            irregular schedules

    Returns:
        Installments with due dates, amounts and the scheduled principal/interest
        split. The last installment takes whatever principal is left so the
        principal components add up to the loan principal exactly.
    """
    overrides = overrides or {}
    for sequence, amount in overrides.items():
        if not 1 <= sequence <= terms.installment_count:
            raise ValidationError(f"Override for installment {sequence} is outside the schedule")
        if amount <= 0:
            raise ValidationError(f"Override amount for installment {sequence} must be positive")

    period_rate = terms.annual_rate / payments_per_year(terms.recurrence, terms.schedule) / 100
    due_dates = generate_due_dates(terms, start_date)

    installments = []
    balance = terms.principal
    for sequence, due_date in enumerate(due_dates, start=1):
        amount = round(overrides.get(sequence, terms.installment_amount), 2)

        if sequence == terms.installment_count:
            principal_part = round(balance, 2)
            interest_part = round(max(amount - principal_part, 0.0), 2)
        else:
            interest_part = round(balance * period_rate, 2)
            principal_part = round(min(max(amount - interest_part, 0.0), balance), 2)

        balance = round(balance - principal_part, 2)
        installments.append(
            Installment(
                sequence=sequence,
                due_date=due_date,
                amount=amount,
                principal_component=principal_part,
                interest_component=interest_part,
            )
        )

    return installments


def _close(loan: Loan, now: Optional[datetime]) -> None:
    loan.is_closed = True
    loan.is_active = False
    loan.closed_at = now or datetime.now(timezone.utc)


def record_payment(
    loan: Loan,
    installment: Installment,
    payment: InstallmentPayment,
    now: Optional[datetime] = None,
) -> Loan:
    """
    Move an installment from unpaid to paid and update the loan's running totals.

    Principal defaults to the installment's scheduled principal component.
    The loan closes once its outstanding balance reaches zero or no unpaid
    installments remain.
    """
    if loan.is_closed:
        raise StateViolationError(f"Loan {loan.id} is already closed")
    if installment.is_paid:
        raise StateViolationError(f"Installment {installment.sequence} is already paid")
    if payment.paid_amount <= 0:
        raise ValidationError("Paid amount must be positive")

    principal = payment.principal_paid
    if principal is None:
        principal = installment.principal_component or payment.paid_amount
    interest = payment.interest_paid
    if interest is None:
        interest = max(payment.paid_amount - principal, 0.0)

    installment.is_paid = True
    installment.paid_amount = payment.paid_amount
    installment.paid_date = payment.paid_date
    installment.principal_paid = round(principal, 2)
    installment.interest_paid = round(interest, 2)
    installment.late_fee = payment.late_fee
    installment.payment_method = payment.payment_method

    loan.outstanding = round(max(0.0, loan.outstanding - principal), 2)
    loan.total_paid = round(loan.total_paid + payment.paid_amount, 2)

    unpaid_left = any(not other.is_paid for other in loan.installments if other is not installment)
    if loan.outstanding <= 0 or not unpaid_left:
        _close(loan, now)

    return loan


def correct_payment(
    loan: Loan,
    installment: Installment,
    payment: InstallmentPayment,
    now: Optional[datetime] = None,
) -> Loan:
    """Replace the payment details of an already paid installment, adjusting loan totals by the difference"""
    if not installment.is_paid:
        raise StateViolationError(f"Installment {installment.sequence} has not been paid yet")
    if payment.paid_amount <= 0:
        raise ValidationError("Paid amount must be positive")

    old_principal = installment.principal_paid or 0.0
    old_paid = installment.paid_amount or 0.0
    new_principal = payment.principal_paid if payment.principal_paid is not None else old_principal
    new_interest = payment.interest_paid
    if new_interest is None:
        new_interest = max(payment.paid_amount - new_principal, 0.0)

    installment.paid_amount = payment.paid_amount
    installment.paid_date = payment.paid_date
    installment.principal_paid = round(new_principal, 2)
    installment.interest_paid = round(new_interest, 2)
    installment.late_fee = payment.late_fee
    installment.payment_method = payment.payment_method

    outstanding = loan.outstanding + old_principal - new_principal
    loan.outstanding = round(min(max(outstanding, 0.0), loan.principal), 2)
    loan.total_paid = round(loan.total_paid - old_paid + payment.paid_amount, 2)

    if not loan.is_closed and loan.outstanding <= 0:
        _close(loan, now)

    return loan


def close_loan(loan: Loan, now: Optional[datetime] = None) -> Loan:
    """Close a loan early (foreclosure or write-off)"""
    if loan.is_closed:
        raise StateViolationError(f"Loan {loan.id} is already closed")
    _close(loan, now)
    return loan

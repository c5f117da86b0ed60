"""Frequency normalization for recurring plans and loan recurrences"""

from datetime import date
from typing import Dict, List, Optional

from finledger.domain.exceptions import ValidationError
from finledger.domain.models import (
    CustomSchedule,
    Loan,
    LoanRecurrence,
    PlanRecurrence,
    RecurringPlan,
)
from finledger.utils.date_utils import clamp_day, days_in_month, month_bounds, months_between

# Month step between installments; CUSTOM loans follow their own anchors
LOAN_STEP_MONTHS: Dict[LoanRecurrence, int] = {
    LoanRecurrence.MONTHLY: 1,
    LoanRecurrence.QUARTERLY: 3,
    LoanRecurrence.HALF_YEARLY: 6,
    LoanRecurrence.ANNUALLY: 12,
    LoanRecurrence.CUSTOM: 1,
}


def validate_plan(plan: RecurringPlan) -> None:
    """Reject malformed recurring plans before they are stored"""
    if plan.amount <= 0:
        raise ValidationError("Plan amount must be positive")
    if plan.recurrence == PlanRecurrence.CUSTOM:
        if plan.custom_day is None:
            raise ValidationError("custom_day is required for CUSTOM recurrence")
        if not 1 <= plan.custom_day <= 31:
            raise ValidationError(f"custom_day must be between 1 and 31, got {plan.custom_day}")
    elif plan.custom_day is not None:
        raise ValidationError("custom_day is only allowed for CUSTOM recurrence")
    if plan.end_date is not None and plan.end_date < plan.start_date:
        raise ValidationError("Plan end date is before its start date")


def is_plan_live_in(plan: RecurringPlan, year: int, month: int) -> bool:
    """Plan is active and its [start, end] range overlaps the month"""
    first, last = month_bounds(year, month)
    if not plan.is_active or plan.start_date > last:
        return False
    return plan.end_date is None or plan.end_date >= first


def monthly_equivalent(plan: RecurringPlan, year: int, month: int) -> float:
    """
    Amount a plan draws from the given calendar month.

    MONTHLY and CUSTOM plans draw their amount every month; YEARLY plans draw
    the full amount in their anniversary month and nothing otherwise.
    """
    if not is_plan_live_in(plan, year, month):
        return 0.0

    if plan.recurrence == PlanRecurrence.MONTHLY:
        return plan.amount
    if plan.recurrence == PlanRecurrence.YEARLY:
        return plan.amount if month == plan.start_date.month else 0.0
    if plan.recurrence == PlanRecurrence.CUSTOM:
        return plan.amount
    raise ValidationError(f"Unsupported plan recurrence: {plan.recurrence}")


def budget_load(amount: float, recurrence: PlanRecurrence) -> float:
    """
    Average monthly pressure a contribution puts on an allocation budget.

    Yearly plans are spread over twelve months so a single anniversary month
    does not consume a whole year's allowance.
    """
    if recurrence == PlanRecurrence.YEARLY:
        return amount / 12
    if recurrence in (PlanRecurrence.MONTHLY, PlanRecurrence.CUSTOM):
        return amount
    raise ValidationError(f"Unsupported plan recurrence: {recurrence}")


def _trigger_day(day: int, on: date) -> int:
    # Day 31 fires on the 30th in April, on the 28th/29th in February
    return min(day, days_in_month(on.year, on.month))


def is_triggered_on(plan: RecurringPlan, on: date) -> bool:
    """Whether a recurring plan is due on the given calendar date"""
    if plan.recurrence == PlanRecurrence.MONTHLY:
        return on.day == _trigger_day(plan.start_date.day, on)
    if plan.recurrence == PlanRecurrence.YEARLY:
        return on.month == plan.start_date.month and on.day == _trigger_day(plan.start_date.day, on)
    if plan.recurrence == PlanRecurrence.CUSTOM:
        if plan.custom_day is None:
            raise ValidationError(f"Plan {plan.id} has CUSTOM recurrence without custom_day")
        return on.day == _trigger_day(plan.custom_day, on)
    raise ValidationError(f"Unsupported plan recurrence: {plan.recurrence}")


def payments_per_year(recurrence: LoanRecurrence, schedule: Optional[CustomSchedule] = None) -> int:
    if recurrence == LoanRecurrence.CUSTOM:
        if schedule is None:
            raise ValidationError("CUSTOM recurrence requires a payment schedule")
        return len(schedule.anchors)
    return 12 // LOAN_STEP_MONTHS[recurrence]


def months_elapsed(start: date, year: int, month: int) -> int:
    return months_between(start, year, month)


def is_loan_active_in(loan: Loan, year: int, month: int) -> bool:
    """Loan counts toward a month while 0 <= months since start < tenure"""
    elapsed = months_elapsed(loan.start_date, year, month)
    return 0 <= elapsed < loan.tenure


def anchor_occurrences(schedule: CustomSchedule, not_before: date, count: int) -> List[date]:
    """
    Roll custom {month, day} anchors forward year by year.

    Each anchor's first occurrence on or after ``not_before`` is found, the
    anchors are ordered chronologically from there, and the cycle repeats in
    following years until ``count`` dates are produced.
    """
    first_hits = []
    for anchor in schedule.anchors:
        candidate = clamp_day(not_before.year, anchor.month, anchor.day)
        if candidate < not_before:
            candidate = clamp_day(not_before.year + 1, anchor.month, anchor.day)
        first_hits.append((candidate, anchor))
    first_hits.sort(key=lambda hit: hit[0])

    dates: List[date] = []
    year_offset = 0
    while len(dates) < count:
        for first, anchor in first_hits:
            dates.append(clamp_day(first.year + year_offset, anchor.month, anchor.day))
            if len(dates) == count:
                break
        year_offset += 1
    return dates

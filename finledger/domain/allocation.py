"""Allocation budget checks gating new investment contributions"""

from datetime import date
from typing import Iterable, Optional

from finledger.domain.exceptions import BudgetExceededError, ConfigurationMissingError, ValidationError
from finledger.domain.frequency import budget_load, is_loan_active_in
from finledger.domain.models import (
    AllocationRule,
    AllocationType,
    BudgetCheck,
    Bucket,
    Loan,
    RecurringPlan,
    TaxRule,
)
from finledger.domain.tax import after_tax
from finledger.utils.date_utils import month_bounds


def validate_allocation_rule(rule: AllocationRule) -> None:
    if rule.allocation_type == AllocationType.PERCENTAGE:
        if rule.percent is None or not 0 <= rule.percent <= 100:
            raise ValidationError("Percentage allocation needs a percent between 0 and 100")
    elif rule.allocation_type == AllocationType.AMOUNT:
        if rule.fixed_amount is None or rule.fixed_amount < 0:
            raise ValidationError("Amount allocation needs a non-negative fixed amount")
    else:
        raise ValidationError(f"Unsupported allocation type: {rule.allocation_type}")


def loan_installments_due(loans: Iterable[Loan], year: int, month: int) -> float:
    """Sum of installment amounts for loans active in the month, paid or not"""
    return sum(loan.installment_amount for loan in loans if is_loan_active_in(loan, year, month))


def investable_amount(
    monthly_salary: float,
    tax_rule: Optional[TaxRule],
    loans: Iterable[Loan],
    year: int,
    month: int,
) -> float:
    """After-tax income minus the month's loan installments"""
    return after_tax(monthly_salary, tax_rule) - loan_installments_due(loans, year, month)


def bucket_budget(investable: float, rule: AllocationRule) -> float:
    if rule.allocation_type == AllocationType.PERCENTAGE:
        return investable * (rule.percent or 0.0) / 100
    if rule.allocation_type == AllocationType.AMOUNT:
        return rule.fixed_amount or 0.0
    raise ValidationError(f"Unsupported allocation type: {rule.allocation_type}")


def committed_amount(plans: Iterable[RecurringPlan], bucket: Bucket, on: Optional[date] = None) -> float:
    """
    Monthly budget load of active plans already targeting the bucket.

    With ``on`` given, plans that ended before that month are no longer
    committed. Plans starting later still are.
    """
    first = month_bounds(on.year, on.month)[0] if on else None
    return sum(
        budget_load(plan.amount, plan.recurrence)
        for plan in plans
        if plan.is_active
        and plan.bucket == bucket
        and (first is None or plan.end_date is None or plan.end_date >= first)
    )


def check_contribution(
    bucket: Bucket,
    rule: Optional[AllocationRule],
    investable: float,
    plans: Iterable[RecurringPlan],
    proposed: float,
    on: Optional[date] = None,
) -> BudgetCheck:
    """
    Accept or reject a proposed monthly contribution to a bucket.

    Raises:
        ConfigurationMissingError: no allocation rule exists for the bucket
        BudgetExceededError: committed + proposed exceeds the bucket budget
    """
    if rule is None:
        raise ConfigurationMissingError(
            "allocation",
            f"Configure an allocation for {bucket.value} before adding investments to it",
        )
    if proposed <= 0:
        raise ValidationError("Proposed contribution must be positive")

    budget = bucket_budget(investable, rule)
    committed = committed_amount(plans, bucket, on)

    if committed + proposed > budget:
        raise BudgetExceededError(bucket.value, budget, committed, proposed)

    return BudgetCheck(bucket=bucket, budget=budget, committed=committed, proposed=proposed)

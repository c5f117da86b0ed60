"""Tax calculation on monthly income"""

from typing import Optional

from finledger.domain.exceptions import ValidationError
from finledger.domain.models import TaxMode, TaxRule


def validate_tax_rule(rule: TaxRule) -> None:
    """
    Check that a rule carries the fields its mode needs.

    - PERCENTAGE / HYBRID need a percentage in [0, 100]
    - FIXED / HYBRID need a fixed amount >= 0
    """
    uses_percentage = rule.mode in (TaxMode.PERCENTAGE, TaxMode.HYBRID)
    uses_fixed = rule.mode in (TaxMode.FIXED, TaxMode.HYBRID)

    if uses_percentage:
        if rule.percentage is None:
            raise ValidationError(f"{rule.mode.value} tax requires a percentage")
        if not 0 <= rule.percentage <= 100:
            raise ValidationError("Tax percentage must be between 0 and 100")
    if uses_fixed:
        if rule.fixed_amount is None:
            raise ValidationError(f"{rule.mode.value} tax requires a fixed amount")
        if rule.fixed_amount < 0:
            raise ValidationError("Fixed tax amount cannot be negative")


def compute_tax(monthly_income: float, rule: Optional[TaxRule]) -> float:
    """
    Tax owed on a month's income.

    HYBRID charges whichever is larger of the percentage-derived amount and
    the fixed amount. No rule means no tax.
    """
    if rule is None:
        return 0.0

    percentage_amount = monthly_income * (rule.percentage or 0.0) / 100
    fixed_amount = rule.fixed_amount or 0.0

    if rule.mode == TaxMode.PERCENTAGE:
        tax = percentage_amount
    elif rule.mode == TaxMode.FIXED:
        tax = fixed_amount
    elif rule.mode == TaxMode.HYBRID:
        tax = max(percentage_amount, fixed_amount)
    else:
        raise ValidationError(f"Unsupported tax mode: {rule.mode}")

    return max(tax, 0.0)


def after_tax(monthly_income: float, rule: Optional[TaxRule]) -> float:
    """Income left after tax; may go negative when the rule is misconfigured"""
    return monthly_income - compute_tax(monthly_income, rule)

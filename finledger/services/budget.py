"""Allocation budget checks against stored salary, tax, loan and plan records"""

from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from finledger.domain.allocation import check_contribution, investable_amount
from finledger.domain.exceptions import BudgetExceededError, ConfigurationMissingError
from finledger.domain.models import BudgetCheck, Bucket
from finledger.infrastructure.database.repositories import (
    AllocationRepository,
    LoanRepository,
    PlanRepository,
    SalaryRepository,
    TaxRuleRepository,
)
from finledger.infrastructure.observability.metrics import budget_rejection_counter
from finledger.utils.date_utils import month_bounds


class BudgetService:
    """Gatekeeper for new plan and purchase contributions"""

    def __init__(self, db: Session, clock: Callable[[], date] = date.today):
        self.db = db
        self.clock = clock

    def investable(self, user_id: str, year: int, month: int) -> float:
        """
        Investable amount for a month: after-tax salary minus active loan installments.

        A missing tax rule means no tax; a missing salary is a configuration error.
        """
        _, last = month_bounds(year, month)
        salary = SalaryRepository(self.db).effective(user_id, last)
        if salary is None:
            raise ConfigurationMissingError("salary", "Configure a salary before adding investments")

        tax_rule = TaxRuleRepository(self.db).effective(user_id)
        loans = LoanRepository(self.db).list_for_user(user_id)
        return investable_amount(salary.monthly_amount, tax_rule, loans, year, month)

    def check(self, user_id: str, bucket: Bucket, proposed: float, on: Optional[date] = None) -> BudgetCheck:
        """
        Check that a proposed monthly contribution fits the bucket's allocation.

        Raises:
            ConfigurationMissingError: no salary or no allocation rule for the bucket
            BudgetExceededError: the contribution does not fit
        """
        on = on or self.clock()
        rule = AllocationRepository(self.db).get(user_id, bucket)
        if rule is None:
            # Skip the salary lookup so the missing allocation is what gets reported
            return check_contribution(bucket, None, 0.0, [], proposed)

        investable = self.investable(user_id, on.year, on.month)
        plans = PlanRepository(self.db).list_for_user(user_id)
        try:
            return check_contribution(bucket, rule, investable, plans, proposed, on=on)
        except BudgetExceededError:
            budget_rejection_counter.labels(bucket=bucket.value).inc()
            raise

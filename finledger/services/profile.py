"""Salary, tax, allocation and expense records feeding the budget and snapshots"""

from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from finledger.domain.allocation import validate_allocation_rule
from finledger.domain.exceptions import ValidationError
from finledger.domain.models import AllocationRule, Expense, SalaryRecord, TaxRule
from finledger.domain.snapshot import validate_expense
from finledger.domain.tax import validate_tax_rule
from finledger.infrastructure.database.repositories import (
    AllocationRepository,
    ExpenseRepository,
    SalaryRepository,
    TaxRuleRepository,
)
from finledger.services.closing import ensure_period_open


class ProfileService:
    """Per-user configuration and expense entry"""

    def __init__(self, db: Session, clock: Callable[[], date] = date.today):
        self.db = db
        self.clock = clock

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def set_salary(self, user_id: str, record: SalaryRecord) -> SalaryRecord:
        if record.monthly_amount < 0:
            raise ValidationError("Salary cannot be negative")
        SalaryRepository(self.db).add(user_id, record)
        self._commit()
        return record

    def set_tax_rule(self, user_id: str, rule: TaxRule) -> TaxRule:
        validate_tax_rule(rule)
        TaxRuleRepository(self.db).upsert(user_id, rule)
        self._commit()
        return rule

    def set_allocation(self, user_id: str, rule: AllocationRule) -> AllocationRule:
        validate_allocation_rule(rule)
        AllocationRepository(self.db).upsert(user_id, rule)
        self._commit()
        return rule

    def add_expense(self, user_id: str, expense: Expense) -> Expense:
        validate_expense(expense)
        ensure_period_open(self.db, user_id, expense.date, "add an expense")
        ExpenseRepository(self.db).add(user_id, expense)
        self._commit()
        return expense

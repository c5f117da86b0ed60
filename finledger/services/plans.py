"""Recurring plan setup gated by the allocation budget"""

import logging
from datetime import date
from typing import Callable, List

from sqlalchemy.orm import Session

from finledger.domain.frequency import budget_load, validate_plan
from finledger.domain.holdings import normalize_symbol
from finledger.domain.models import PlanExecution, RecurringPlan
from finledger.infrastructure.database.repositories import ExecutionRepository, PlanRepository
from finledger.services.budget import BudgetService


class PlanService:
    """Creation and history of recurring investment plans"""

    def __init__(self, db: Session, clock: Callable[[], date] = date.today):
        self.db = db
        self.clock = clock

    def create_plan(self, plan: RecurringPlan) -> RecurringPlan:
        """
        Validate and store a plan.

        Plans targeting a bucket must fit its allocation, measured by their
        monthly budget load. Plans without a bucket are bookkeeping only.
        """
        validate_plan(plan)
        if plan.symbol is not None:
            plan.symbol = normalize_symbol(plan.symbol)

        if plan.bucket is not None:
            BudgetService(self.db, self.clock).check(
                plan.user_id,
                plan.bucket,
                budget_load(plan.amount, plan.recurrence),
                on=max(plan.start_date, self.clock()),
            )

        try:
            saved = PlanRepository(self.db).create(plan)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logging.info(
            "Recurring plan created",
            extra={"user_id": plan.user_id, "plan_id": saved.id, "recurrence": plan.recurrence.value},
        )
        return saved

    def list_plans(self, user_id: str) -> List[RecurringPlan]:
        return PlanRepository(self.db).list_for_user(user_id)

    def list_executions(self, user_id: str, limit: int = 50) -> List[PlanExecution]:
        return ExecutionRepository(self.db).list_for_user(user_id, limit=limit)

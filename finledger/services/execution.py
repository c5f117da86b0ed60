"""Daily recurring investment (SIP) execution batch"""

import logging
import time
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from finledger.config import settings
from finledger.domain.exceptions import DomainException, PricingError
from finledger.domain.frequency import is_triggered_on
from finledger.domain.holdings import normalize_symbol
from finledger.domain.models import (
    BatchReport,
    ExecutionStatus,
    PlanExecution,
    PlanOutcome,
    Purchase,
    RecurringPlan,
    TransactionType,
)
from finledger.infrastructure.clients.pricing import PricingClient, holding_currency
from finledger.infrastructure.database.repositories import ExecutionRepository, PlanRepository
from finledger.infrastructure.observability.logging import log_batch_complete, log_plan_execution
from finledger.infrastructure.observability.metrics import batch_duration_histogram, record_plan_outcome
from finledger.services.purchases import post_to_holding

ALREADY_EXECUTED = "already executed today"
NOT_DUE = "not due today"


class ExecutionService:
    """Runs every due recurring plan once per day"""

    def __init__(
        self,
        db: Session,
        pricing: PricingClient,
        clock: Callable[[], date] = date.today,
        local_currency: str | None = None,
    ):
        self.db = db
        self.pricing = pricing
        self.clock = clock
        self.local_currency = local_currency or settings.local_currency
        self.executions = ExecutionRepository(db)

    async def run(self, today: Optional[date] = None) -> BatchReport:
        """
        Execute all plans due today.

        Each plan is processed in its own transaction, so one plan's failure
        never rolls back another's execution. Re-running on the same day skips
        plans that already succeeded and retries the ones that failed.
        """
        today = today or self.clock()
        start_time = time.time()

        plans = PlanRepository(self.db).list_due_candidates(today)
        report = BatchReport(run_date=today)
        for plan in plans:
            outcome = await self.process(plan, today)
            report.record(outcome)

            record_plan_outcome(outcome.status)
            execution = outcome.execution
            log_plan_execution(
                plan.id,
                plan.user_id,
                outcome.status,
                reason=outcome.reason,
                quantity=execution.quantity if execution else None,
                price=execution.price if execution else None,
            )

        duration = time.time() - start_time
        batch_duration_histogram.observe(duration)
        log_batch_complete(
            today.isoformat(),
            report.total,
            report.executed,
            report.skipped,
            report.failed,
            report.errors,
            duration * 1000,
        )
        return report

    async def process(self, plan: RecurringPlan, today: date) -> PlanOutcome:
        """Decide and carry out one plan for the day"""
        try:
            if not is_triggered_on(plan, today):
                return PlanOutcome(plan_id=plan.id, status="skipped", reason=NOT_DUE)
            if self.executions.has_success(plan.id, today):
                return PlanOutcome(plan_id=plan.id, status="skipped", reason=ALREADY_EXECUTED)

            execution = await self._execute(plan, today)
            self.db.commit()
            return PlanOutcome(plan_id=plan.id, status="executed", execution=execution)

        except IntegrityError:
            # Another run claimed the (plan, day) success key first
            self.db.rollback()
            return PlanOutcome(plan_id=plan.id, status="skipped", reason=ALREADY_EXECUTED)

        except (DomainException, SQLAlchemyError) as e:
            self.db.rollback()
            message = str(e)
            logging.error(
                f"Plan execution failed: {message}",
                extra={"plan_id": plan.id, "user_id": plan.user_id},
            )
            failed = self._record_failure(plan, today, message)
            return PlanOutcome(plan_id=plan.id, status="failed", reason=message, execution=failed)

    async def _execute(self, plan: RecurringPlan, today: date) -> PlanExecution:
        # Plans without an instrument are bookkeeping only
        if plan.bucket is None or not plan.symbol:
            return self.executions.add(
                PlanExecution(
                    plan_id=plan.id,
                    user_id=plan.user_id,
                    execution_date=today,
                    amount=plan.amount,
                    status=ExecutionStatus.SUCCESS,
                    currency=plan.currency,
                )
            )

        symbol = normalize_symbol(plan.symbol)
        currency = holding_currency(plan.bucket, self.local_currency)
        price = await self.pricing.get_price(symbol, plan.bucket, currency)

        plan_currency = currency if plan.amount_in_holding_currency else plan.currency
        fx_rate = None
        if plan_currency == currency:
            amount = plan.amount
            local_amount = await self._local_amount(plan, amount, currency)
        elif plan_currency == self.local_currency:
            # Holding FX rate is tracked only for foreign holdings funded in local currency
            fx_rate = await self.pricing.get_fx_rate(currency, self.local_currency)
            amount = plan.amount / fx_rate
            local_amount = plan.amount
        else:
            amount = plan.amount * await self.pricing.get_fx_rate(plan_currency, currency)
            local_amount = await self._local_amount(plan, amount, currency)

        quantity = amount / price
        cross_currency = currency != self.local_currency or plan_currency != self.local_currency
        holding = post_to_holding(
            self.db,
            plan.user_id,
            plan.bucket,
            symbol,
            currency,
            Purchase(quantity=quantity, price=price, fx_rate=fx_rate),
            TransactionType.SIP_EXECUTION,
            amount=amount,
            local_amount=local_amount,
            on=today,
            current_price=price,
            name=plan.name,
            description=f"SIP execution for {plan.name}",
        )

        return self.executions.add(
            PlanExecution(
                plan_id=plan.id,
                user_id=plan.user_id,
                execution_date=today,
                amount=plan.amount,
                status=ExecutionStatus.SUCCESS,
                quantity=quantity,
                price=price,
                currency=currency,
                local_amount=round(local_amount, 2) if cross_currency and local_amount is not None else None,
                holding_id=holding.id,
            )
        )

    async def _local_amount(self, plan: RecurringPlan, amount: float, currency: str) -> Optional[float]:
        """Local-currency value of an amount; unknown when the FX rate cannot be fetched"""
        if currency == self.local_currency:
            return amount
        try:
            return amount * await self.pricing.get_fx_rate(currency, self.local_currency)
        except PricingError as e:
            logging.warning(
                f"No FX rate for local amount, recording it as unknown: {e}",
                extra={"plan_id": plan.id, "user_id": plan.user_id},
            )
            return None

    def _record_failure(self, plan: RecurringPlan, today: date, message: str) -> PlanExecution:
        failed = PlanExecution(
            plan_id=plan.id,
            user_id=plan.user_id,
            execution_date=today,
            amount=plan.amount,
            status=ExecutionStatus.FAILED,
            currency=plan.currency,
            error_message=message,
        )
        try:
            self.executions.add(failed)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logging.error(
                f"Could not record failed execution: {e}",
                extra={"plan_id": plan.id, "user_id": plan.user_id},
            )
        return failed

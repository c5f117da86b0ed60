"""Period closing: compute, freeze and guard monthly snapshots"""

import logging
from datetime import date, datetime, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from finledger.domain.exceptions import DomainException, StateViolationError, ValidationError
from finledger.domain.models import CloseReport, CloseResult, MonthlySnapshot
from finledger.domain.snapshot import compute_snapshot
from finledger.infrastructure.database.repositories import (
    BorrowedFundRepository,
    ExpenseRepository,
    HoldingRepository,
    LoanRepository,
    PlanRepository,
    SalaryRepository,
    SnapshotRepository,
    TaxRuleRepository,
)
from finledger.infrastructure.observability.logging import log_period_close
from finledger.infrastructure.observability.metrics import record_period_close
from finledger.utils.date_utils import month_bounds, previous_period


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_period_open(db: Session, user_id: str, on_date: date, action: str) -> None:
    """
    Refuse a write dated inside a closed month.

    Raises:
        StateViolationError: the (user, month of on_date) snapshot is closed
    """
    if SnapshotRepository(db).is_closed(user_id, on_date.year, on_date.month):
        raise StateViolationError(
            f"Cannot {action} on {on_date.isoformat()}: {on_date:%B %Y} is already closed"
        )


def _validate_period(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")
    if year < 1:
        raise ValidationError(f"Invalid year {year}")


class PeriodClosingService:
    """Monthly snapshot computation and the Open -> Closed transition"""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], date] = date.today,
        now: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.clock = clock
        self.now = now
        self.snapshots = SnapshotRepository(db)

    def compute(self, user_id: str, year: int, month: int) -> MonthlySnapshot:
        """Recompute a month's figures from stored records without writing anything"""
        _validate_period(year, month)
        first, last = month_bounds(year, month)
        funds = BorrowedFundRepository(self.db)

        return compute_snapshot(
            user_id,
            year,
            month,
            salaries=SalaryRepository(self.db).list_for_user(user_id),
            tax_rule=TaxRuleRepository(self.db).effective(user_id),
            loans=LoanRepository(self.db).list_for_user(user_id, started_by=last),
            plans=PlanRepository(self.db).list_for_user(user_id),
            expenses=ExpenseRepository(self.db).list_in_period(user_id, first, last),
            previous=self.snapshots.get(user_id, *previous_period(year, month)),
            investments=HoldingRepository(self.db).invested_amounts(user_id, first, last),
            borrowed=funds.borrowed_in_period(user_id, first, last),
            returns=funds.returns_in_period(user_id, first, last),
        )

    def view(self, user_id: str, year: int, month: int) -> MonthlySnapshot:
        """Stored figures for a closed month, live figures for an open one"""
        stored = self.snapshots.get(user_id, year, month)
        if stored is not None and stored.is_closed:
            return stored
        return self.compute(user_id, year, month)

    def close_month(self, user_id: str, year: int, month: int) -> CloseResult:
        """
        Freeze a month's snapshot.

        An already closed month is left untouched (same figures, same closed_at)
        and reported as skipped. Otherwise the snapshot is recomputed and stored
        with is_closed set, creating the row or overwriting an open one. Nothing
        is written when computation fails, so the close can simply be re-run.
        """
        existing = self.snapshots.get(user_id, year, month)
        if existing is not None and existing.is_closed:
            log_period_close(user_id, year, month, "skipped")
            record_period_close("skipped")
            return CloseResult(user_id=user_id, year=year, month=month, outcome="skipped", snapshot=existing)

        snapshot = self.compute(user_id, year, month)
        try:
            created = self.snapshots.upsert_closed(snapshot, self.now())
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if created is None:
            # Closed by a concurrent run between our read and the locked upsert
            outcome = "skipped"
            snapshot = self.snapshots.get(user_id, year, month)
        else:
            outcome = "created" if created else "updated"

        log_period_close(user_id, year, month, outcome)
        record_period_close(outcome)
        return CloseResult(user_id=user_id, year=year, month=month, outcome=outcome, snapshot=snapshot)

    def close_month_for_all(self, year: int, month: int) -> CloseReport:
        """Close a period for every user with financial records; one failure does not stop the rest"""
        _validate_period(year, month)
        report = CloseReport(year=year, month=month)

        for user_id in sorted(self.snapshots.known_user_ids()):
            try:
                result = self.close_month(user_id, year, month)
            except (DomainException, SQLAlchemyError) as e:
                report.failed += 1
                report.errors.append(f"User {user_id}: {e}")
                record_period_close("failed")
                logging.error(
                    f"Period close failed: {e}",
                    extra={"user_id": user_id, "period": f"{year:04d}-{month:02d}"},
                )
                continue

            if result.outcome == "created":
                report.created += 1
            elif result.outcome == "updated":
                report.updated += 1
            else:
                report.skipped += 1

        return report

    def close_previous_month_for_all(self) -> CloseReport:
        today = self.clock()
        return self.close_month_for_all(*previous_period(today.year, today.month))

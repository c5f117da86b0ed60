"""Loan creation, installment payments and closure"""

import logging
from datetime import date, datetime
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from finledger.domain.exceptions import NotFoundError, StateViolationError, ValidationError
from finledger.domain.installments import (
    close_loan,
    correct_payment,
    generate_loan_schedule,
    record_payment,
    resolve_loan_terms,
)
from finledger.domain.models import (
    CustomSchedule,
    Installment,
    InstallmentPayment,
    Loan,
    LoanRecurrence,
)
from finledger.infrastructure.database.repositories import LoanRepository
from finledger.services.closing import ensure_period_open, utc_now


class LoanService:
    """Storage-backed loan lifecycle"""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], date] = date.today,
        now: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.clock = clock
        self.now = now
        self.loans = LoanRepository(db)

    def create_loan(
        self,
        user_id: str,
        name: str,
        principal: float,
        annual_rate: float,
        recurrence: LoanRecurrence,
        start_date: date,
        tenure: Optional[int] = None,
        installment_amount: Optional[float] = None,
        schedule: Optional[CustomSchedule] = None,
        overrides: Optional[Dict[int, float]] = None,
    ) -> Loan:
        """
        Create a loan with its full installment schedule.

        Flow:
        1. Refuse a start date inside a closed month
        2. Resolve tenure / installment amount
        3. Generate the schedule
        4. Persist loan and installments in one transaction

        Raises:
            StateViolationError: start date falls in a closed month
            ValidationError: invalid loan inputs (nothing is stored)
        """
        if not name or not name.strip():
            raise ValidationError("Loan name is required")
        ensure_period_open(self.db, user_id, start_date, "add a loan")

        terms = resolve_loan_terms(
            principal,
            annual_rate,
            recurrence,
            tenure=tenure,
            installment_amount=installment_amount,
            schedule=schedule,
        )
        installments = generate_loan_schedule(terms, start_date, overrides)

        loan = Loan(
            user_id=user_id,
            name=name.strip(),
            principal=terms.principal,
            annual_rate=terms.annual_rate,
            recurrence=terms.recurrence,
            start_date=start_date,
            tenure=terms.tenure,
            installment_amount=terms.installment_amount,
            outstanding=terms.principal,
            schedule=terms.schedule,
            installments=installments,
        )
        try:
            saved = self.loans.create(loan)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logging.info(
            "Loan created",
            extra={
                "user_id": user_id,
                "loan_id": saved.id,
                "installment_count": terms.installment_count,
                "installment_amount": terms.installment_amount,
            },
        )
        return saved

    def get_loan(self, user_id: str, loan_id: str) -> Loan:
        loan = self.loans.get(user_id, loan_id)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    @staticmethod
    def _installment(loan: Loan, sequence: int) -> Installment:
        for installment in loan.installments:
            if installment.sequence == sequence:
                return installment
        raise NotFoundError(f"Loan {loan.id} has no installment {sequence}")

    def _save(self, loan: Loan) -> Loan:
        try:
            self.loans.save(loan)
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise StateViolationError(f"Loan {loan.id} was modified concurrently; reload and retry") from e
        except Exception:
            self.db.rollback()
            raise
        return loan

    def pay_installment(self, user_id: str, loan_id: str, sequence: int, payment: InstallmentPayment) -> Loan:
        """
        Mark an installment paid and update the loan's outstanding balance.

        Raises:
            NotFoundError: unknown loan or installment
            StateViolationError: installment already paid, loan closed, or the
                payment date falls in a closed month
        """
        loan = self.get_loan(user_id, loan_id)
        installment = self._installment(loan, sequence)
        ensure_period_open(self.db, user_id, payment.paid_date, "record a loan payment")

        record_payment(loan, installment, payment, now=self.now())
        self._save(loan)

        logging.info(
            "Installment paid",
            extra={
                "user_id": user_id,
                "loan_id": loan_id,
                "sequence": sequence,
                "outstanding": loan.outstanding,
                "loan_closed": loan.is_closed,
            },
        )
        return loan

    def correct_payment(self, user_id: str, loan_id: str, sequence: int, payment: InstallmentPayment) -> Loan:
        """Edit a recorded payment; both the old and new payment months must be open"""
        loan = self.get_loan(user_id, loan_id)
        installment = self._installment(loan, sequence)
        if installment.paid_date is not None:
            ensure_period_open(self.db, user_id, installment.paid_date, "edit a loan payment")
        ensure_period_open(self.db, user_id, payment.paid_date, "edit a loan payment")

        correct_payment(loan, installment, payment, now=self.now())
        return self._save(loan)

    def close_loan(self, user_id: str, loan_id: str) -> Loan:
        loan = self.get_loan(user_id, loan_id)
        close_loan(loan, now=self.now())
        return self._save(loan)

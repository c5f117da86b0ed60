"""Borrowing and returning funds"""

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from finledger.domain.borrowed_funds import apply_return, validate_borrowing
from finledger.domain.exceptions import NotFoundError, StateViolationError
from finledger.domain.models import BorrowedFund
from finledger.infrastructure.database.repositories import BorrowedFundRepository
from finledger.services.closing import ensure_period_open


class BorrowedFundService:
    """Borrowed fund lifecycle with period-close guards on every dated write"""

    def __init__(self, db: Session, clock: Callable[[], date] = date.today):
        self.db = db
        self.clock = clock
        self.funds = BorrowedFundRepository(db)

    def borrow(self, user_id: str, lender_name: str, amount: float, borrowed_date: Optional[date] = None) -> BorrowedFund:
        fund = BorrowedFund(
            user_id=user_id,
            lender_name=lender_name.strip(),
            borrowed_amount=amount,
            borrowed_date=borrowed_date or self.clock(),
        )
        validate_borrowing(fund)
        ensure_period_open(self.db, user_id, fund.borrowed_date, "record borrowed funds")

        try:
            saved = self.funds.create(fund)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logging.info("Borrowed fund recorded", extra={"user_id": user_id, "fund_id": saved.id})
        return saved

    def return_funds(
        self,
        user_id: str,
        fund_id: str,
        amount: float,
        return_date: Optional[date] = None,
    ) -> BorrowedFund:
        """
        Record a partial or full return.

        Raises:
            NotFoundError: unknown fund
            StateViolationError: fund already fully returned, or the return date
                falls in a closed month
            ValidationError: amount is not positive or exceeds what is owed
        """
        fund = self.funds.get(user_id, fund_id)
        if fund is None:
            raise NotFoundError(f"Borrowed fund {fund_id} not found")

        return_date = return_date or self.clock()
        fund_return = apply_return(fund, amount, return_date)
        ensure_period_open(self.db, user_id, return_date, "record a fund return")

        try:
            self.funds.save_return(fund, fund_return)
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise StateViolationError(f"Borrowed fund {fund_id} was modified concurrently; retry") from e
        except Exception:
            self.db.rollback()
            raise

        return fund

"""Borrowed fund bookkeeping"""

from datetime import date

from finledger.domain.exceptions import StateViolationError, ValidationError
from finledger.domain.models import BorrowedFund, FundReturn


def validate_borrowing(fund: BorrowedFund) -> None:
    if fund.borrowed_amount <= 0:
        raise ValidationError("Borrowed amount must be positive")
    if not fund.lender_name.strip():
        raise ValidationError("Lender name is required")


def apply_return(fund: BorrowedFund, amount: float, return_date: date) -> FundReturn:
    """
    Record a partial or full return against a borrowed fund.

    Raises:
        StateViolationError: the fund has already been fully returned
        ValidationError: non-positive amount, or more than what is still owed
    """
    if fund.is_fully_returned:
        raise StateViolationError(f"Borrowed fund {fund.id} is already fully returned")
    if amount <= 0:
        raise ValidationError("Return amount must be positive")
    if return_date < fund.borrowed_date:
        raise ValidationError("Return date is before the borrowing date")
    if round(fund.returned_amount + amount, 2) > fund.borrowed_amount:
        raise ValidationError(
            f"Return of {amount:.2f} exceeds the remaining balance of {fund.remaining:.2f}"
        )

    fund.returned_amount = round(fund.returned_amount + amount, 2)
    if fund.returned_amount >= fund.borrowed_amount:
        fund.is_fully_returned = True
        fund.actual_return_date = return_date

    return FundReturn(fund_id=fund.id, amount=amount, return_date=return_date)

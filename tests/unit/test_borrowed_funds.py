"""Unit tests for borrowed fund returns"""

import pytest
from datetime import date
from finledger.domain.borrowed_funds import apply_return, validate_borrowing
from finledger.domain.exceptions import StateViolationError, ValidationError
from finledger.domain.models import BorrowedFund


@pytest.fixture
def fund() -> BorrowedFund:
    return BorrowedFund(user_id="user_1", lender_name="Asha", borrowed_amount=10000, borrowed_date=date(2025, 1, 5), id="f1")


def test_partial_then_full_return(fund):
    apply_return(fund, 4000, date(2025, 2, 1))

    assert fund.remaining == 6000
    assert not fund.is_fully_returned

    result = apply_return(fund, 6000, date(2025, 3, 1))

    assert result.amount == 6000
    assert fund.is_fully_returned
    assert fund.actual_return_date == date(2025, 3, 1)


def test_return_after_full_repayment_rejected(fund):
    apply_return(fund, 10000, date(2025, 2, 1))

    with pytest.raises(StateViolationError):
        apply_return(fund, 1, date(2025, 2, 2))


def test_return_above_remaining_rejected(fund):
    with pytest.raises(ValidationError):
        apply_return(fund, 10000.01, date(2025, 2, 1))


def test_return_before_borrowing_rejected(fund):
    with pytest.raises(ValidationError):
        apply_return(fund, 100, date(2025, 1, 1))


def test_borrowing_needs_amount_and_lender():
    with pytest.raises(ValidationError):
        validate_borrowing(BorrowedFund("user_1", "Asha", 0, date(2025, 1, 1)))
    with pytest.raises(ValidationError):
        validate_borrowing(BorrowedFund("user_1", "  ", 100, date(2025, 1, 1)))

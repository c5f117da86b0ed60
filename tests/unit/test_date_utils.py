"""Unit tests for calendar helpers"""

from datetime import date
from finledger.domain.models import BatchReport, PlanOutcome
from finledger.utils.date_utils import add_months, month_bounds, previous_period


def test_add_months_clamps_to_month_end():
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)


def test_month_bounds():
    assert month_bounds(2025, 2) == (date(2025, 2, 1), date(2025, 2, 28))


def test_previous_period_wraps_year():
    assert previous_period(2025, 1) == (2024, 12)
    assert previous_period(2025, 7) == (2025, 6)


def test_batch_report_folds_outcomes():
    report = BatchReport(run_date=date(2025, 3, 15))
    report.record(PlanOutcome(plan_id="a", status="executed"))
    report.record(PlanOutcome(plan_id="b", status="skipped", reason="not due today"))
    report.record(PlanOutcome(plan_id="c", status="failed", reason="No price available for XYZ"))

    assert (report.total, report.executed, report.skipped, report.failed) == (3, 1, 1, 1)
    assert report.errors == ["Plan c: No price available for XYZ"]

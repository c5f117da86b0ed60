"""SQLAlchemy ORM models for the accounting engine"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# Floats in, floats out; storage keeps fixed precision
Money = Numeric(14, 2, asdecimal=False)
Quantity = Numeric(24, 10, asdecimal=False)
Rate = Numeric(12, 6, asdecimal=False)


def new_id() -> str:
    return str(uuid.uuid4())


class SalaryRecordRow(Base):
    """Monthly salary, effective from a date"""

    __tablename__ = "salary_record"

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    monthly_amount = Column(Money, nullable=False)
    effective_from = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TaxRuleRow(Base):
    """Tax configuration; latest by updated_at wins"""

    __tablename__ = "tax_rule"

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    mode = Column(Text, nullable=False)
    percentage = Column(Rate, nullable=True)
    fixed_amount = Column(Money, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class LoanRow(Base):
    """Loan with running outstanding balance"""

    __tablename__ = "loan"

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    principal = Column(Money, nullable=False)
    annual_rate = Column(Rate, nullable=False)
    recurrence = Column(Text, nullable=False)
    start_date = Column(Date, nullable=False)
    tenure = Column(Integer, nullable=False)
    installment_amount = Column(Money, nullable=False)
    custom_schedule = Column(JSON, nullable=True)
    outstanding = Column(Money, nullable=False)
    total_paid = Column(Money, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    is_closed = Column(Boolean, nullable=False, default=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    installments = relationship(
        "InstallmentRow",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="InstallmentRow.sequence",
    )

    __mapper_args__ = {"version_id_col": version}


class InstallmentRow(Base):
    """Single scheduled loan payment"""

    __tablename__ = "installment"
    __table_args__ = (UniqueConstraint("loan_id", "sequence", name="uq_installment_loan_sequence"),)

    id = Column(Text, primary_key=True, default=new_id)
    loan_id = Column(Text, ForeignKey("loan.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(Money, nullable=False)
    principal_component = Column(Money, nullable=False, default=0)
    interest_component = Column(Money, nullable=False, default=0)
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_amount = Column(Money, nullable=True)
    paid_date = Column(Date, nullable=True)
    principal_paid = Column(Money, nullable=True)
    interest_paid = Column(Money, nullable=True)
    late_fee = Column(Money, nullable=True)
    payment_method = Column(Text, nullable=True)

    loan = relationship("LoanRow", back_populates="installments")


class RecurringPlanRow(Base):
    """Recurring investment plan (SIP)"""

    __tablename__ = "recurring_plan"

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    recurrence = Column(Text, nullable=False)
    custom_day = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    bucket = Column(Text, nullable=True)
    symbol = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    currency = Column(Text, nullable=False, default="INR")
    amount_in_holding_currency = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PlanExecutionRow(Base):
    """
    One attempt to execute a plan on a date.

    ``success_key`` is "<plan_id>:<date>" for non-failed rows and NULL for
    failed ones, so the unique index admits at most one successful run per
    plan per day while failed attempts can be retried.
    """

    __tablename__ = "plan_execution"

    id = Column(Text, primary_key=True, default=new_id)
    plan_id = Column(Text, ForeignKey("recurring_plan.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Text, nullable=False, index=True)
    execution_date = Column(Date, nullable=False)
    amount = Column(Money, nullable=False)
    quantity = Column(Quantity, nullable=True)
    price = Column(Quantity, nullable=True)
    currency = Column(Text, nullable=True)
    local_amount = Column(Money, nullable=True)
    holding_id = Column(Text, ForeignKey("holding.id", ondelete="SET NULL"), nullable=True)
    status = Column(Text, nullable=False)
    error_message = Column(Text, nullable=True)
    success_key = Column(Text, nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class HoldingRow(Base):
    """Aggregated position per (user, bucket, symbol)"""

    __tablename__ = "holding"
    __table_args__ = (UniqueConstraint("user_id", "bucket", "symbol", name="uq_holding_user_bucket_symbol"),)

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    bucket = Column(Text, nullable=False)
    symbol = Column(Text, nullable=False)
    name = Column(Text, nullable=True)
    quantity = Column(Quantity, nullable=False)
    avg_cost = Column(Quantity, nullable=False)
    current_price = Column(Quantity, nullable=True)
    currency = Column(Text, nullable=False)
    fx_rate = Column(Rate, nullable=True)
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}


class InvestmentTransactionRow(Base):
    """Purchase posted against a holding"""

    __tablename__ = "investment_transaction"

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    holding_id = Column(Text, ForeignKey("holding.id", ondelete="CASCADE"), nullable=False)
    bucket = Column(Text, nullable=False)
    symbol = Column(Text, nullable=False)
    transaction_type = Column(Text, nullable=False)
    quantity = Column(Quantity, nullable=False)
    price = Column(Quantity, nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(Text, nullable=False)
    local_amount = Column(Money, nullable=True)
    fx_rate = Column(Rate, nullable=True)
    purchase_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AllocationRuleRow(Base):
    """Investment budget per bucket"""

    __tablename__ = "allocation_rule"
    __table_args__ = (UniqueConstraint("user_id", "bucket", name="uq_allocation_user_bucket"),)

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    bucket = Column(Text, nullable=False)
    allocation_type = Column(Text, nullable=False)
    percent = Column(Rate, nullable=True)
    fixed_amount = Column(Money, nullable=True)


class ExpenseRow(Base):
    """Categorized expense"""

    __tablename__ = "expense"

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    date = Column(Date, nullable=False)
    amount = Column(Money, nullable=False)
    category = Column(Text, nullable=False)
    expense_type = Column(Text, nullable=False)
    needs_portion = Column(Money, nullable=True)
    avoid_portion = Column(Money, nullable=True)
    description = Column(Text, nullable=True)


class BorrowedFundRow(Base):
    """Money borrowed from a lender"""

    __tablename__ = "borrowed_fund"

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    lender_name = Column(Text, nullable=False)
    borrowed_amount = Column(Money, nullable=False)
    borrowed_date = Column(Date, nullable=False)
    returned_amount = Column(Money, nullable=False, default=0)
    is_fully_returned = Column(Boolean, nullable=False, default=False)
    actual_return_date = Column(Date, nullable=True)
    version = Column(Integer, nullable=False)

    returns = relationship("FundReturnRow", back_populates="fund", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}


class FundReturnRow(Base):
    """Single repayment of a borrowed fund"""

    __tablename__ = "fund_return"

    id = Column(Text, primary_key=True, default=new_id)
    fund_id = Column(Text, ForeignKey("borrowed_fund.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Text, nullable=False, index=True)
    amount = Column(Money, nullable=False)
    return_date = Column(Date, nullable=False)

    fund = relationship("BorrowedFundRow", back_populates="returns")


class MonthlySnapshotRow(Base):
    """Financial statement per (user, year, month); frozen once closed"""

    __tablename__ = "monthly_snapshot"
    __table_args__ = (UniqueConstraint("user_id", "year", "month", name="uq_snapshot_user_period"),)

    id = Column(Text, primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    net_salary = Column(Money, nullable=False, default=0)
    tax_amount = Column(Money, nullable=False, default=0)
    after_tax = Column(Money, nullable=False, default=0)
    total_loans = Column(Money, nullable=False, default=0)
    total_plans = Column(Money, nullable=False, default=0)
    total_expenses = Column(Money, nullable=False, default=0)
    expected_expenses = Column(Money, nullable=False, default=0)
    unexpected_expenses = Column(Money, nullable=False, default=0)
    needs_expenses = Column(Money, nullable=False, default=0)
    partial_needs_expenses = Column(Money, nullable=False, default=0)
    avoid_expenses = Column(Money, nullable=False, default=0)
    available_amount = Column(Money, nullable=False, default=0)
    spent_amount = Column(Money, nullable=False, default=0)
    surplus_amount = Column(Money, nullable=False, default=0)
    previous_surplus = Column(Money, nullable=False, default=0)
    investments_made = Column(Money, nullable=False, default=0)
    borrowed_received = Column(Money, nullable=False, default=0)
    borrowed_returned = Column(Money, nullable=False, default=0)
    loan_details = Column(JSON, nullable=True)
    is_closed = Column(Boolean, nullable=False, default=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

"""Prometheus metrics for monitoring plan executions, price fetches, and period closes"""

from prometheus_client import Counter, Histogram

# Plan execution metrics
plan_execution_counter = Counter(
    "finledger_plan_executions_total",
    "Recurring plan execution outcomes",
    ["status"],  # executed | skipped | failed
)

batch_duration_histogram = Histogram(
    "finledger_execution_batch_seconds",
    "Daily plan execution batch duration",
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

# Pricing metrics
price_fetch_failures_counter = Counter(
    "finledger_price_fetch_failures_total",
    "Failed price or FX lookups",
    ["provider"],  # mutual_fund | equity | crypto | fx
)

# Period closing metrics
period_close_counter = Counter(
    "finledger_period_close_total",
    "Month close attempts per user",
    ["outcome"],  # created | updated | skipped | failed
)

# Allocation metrics
budget_rejection_counter = Counter(
    "finledger_budget_rejections_total",
    "Contributions rejected for exceeding the bucket allocation",
    ["bucket"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_plan_outcome(status: str) -> None:
    plan_execution_counter.labels(status=status).inc()


def record_period_close(outcome: str) -> None:
    period_close_counter.labels(outcome=outcome).inc()

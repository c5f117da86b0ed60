"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, List

from pythonjsonlogger import jsonlogger

from finledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_plan_execution(
    plan_id: str,
    user_id: str,
    status: str,
    reason: str | None = None,
    quantity: float | None = None,
    price: float | None = None,
) -> None:
    """Log one plan's outcome in the daily batch"""
    logging.info(
        "Plan execution processed",
        extra={
            "plan_id": plan_id,
            "user_id": user_id,
            "step": "plan_execution",
            "status": status,
            "reason": reason,
            "quantity": quantity,
            "price": price,
        },
    )


def log_batch_complete(
    run_date: str,
    total: int,
    executed: int,
    skipped: int,
    failed: int,
    errors: List[str],
    duration_ms: float,
) -> None:
    """Log the daily batch summary"""
    logging.info(
        "Plan execution batch completed",
        extra={
            "step": "batch_complete",
            "run_date": run_date,
            "total": total,
            "executed": executed,
            "skipped": skipped,
            "failed": failed,
            "errors": errors,
            "duration_ms": duration_ms,
        },
    )


def log_period_close(user_id: str, year: int, month: int, outcome: str) -> None:
    """Log a month close for one user"""
    logging.info(
        "Period close processed",
        extra={
            "user_id": user_id,
            "step": "period_close",
            "period": f"{year:04d}-{month:02d}",
            "outcome": outcome,
        },
    )

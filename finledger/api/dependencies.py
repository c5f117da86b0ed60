"""Dependency injection for FastAPI endpoints"""

import logging
from datetime import date
from typing import Callable

from fastapi import Header, HTTPException, Request

from finledger.config import settings
from finledger.domain.exceptions import (
    BudgetExceededError,
    ConfigurationMissingError,
    DomainException,
    ExternalDependencyFailure,
    NotFoundError,
    StateViolationError,
    ValidationError,
)
from finledger.infrastructure.clients.pricing import PricingClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_pricing_client() -> PricingClient:
    """Provide market price client instance"""
    return PricingClient()


def get_clock() -> Callable[[], date]:
    """Provide the business-date clock"""
    return date.today


def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    """Scheduled jobs authenticate with a shared bearer secret"""
    if authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def http_error(e: DomainException, request_id: str) -> HTTPException:
    """
    Translate a domain error into an HTTP error.

    - ValidationError, BudgetExceededError -> 422
    - StateViolationError -> 409
    - ConfigurationMissingError -> 400
    - NotFoundError -> 404
    - ExternalDependencyFailure -> 503
    """
    if isinstance(e, BudgetExceededError):
        logging.info(f"Budget exceeded: {e}", extra={"request_id": request_id})
        return HTTPException(
            status_code=422,
            detail={
                "error": str(e),
                "bucket": e.bucket,
                "budget": round(e.budget, 2),
                "committed": round(e.committed, 2),
                "proposed": round(e.proposed, 2),
                "available": round(e.budget - e.committed, 2),
            },
        )
    if isinstance(e, ValidationError):
        logging.warning(f"Validation error: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, StateViolationError):
        logging.warning(f"State violation: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ConfigurationMissingError):
        logging.warning(f"Missing configuration: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ExternalDependencyFailure):
        logging.error(f"External dependency failure: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=503, detail="Pricing service unavailable")

    logging.error(f"Unhandled domain error: {e}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")

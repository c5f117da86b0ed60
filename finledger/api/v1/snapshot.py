"""Monthly snapshot endpoints"""

from fastapi import APIRouter, Depends, Path, Query, Request
from sqlalchemy.orm import Session

from finledger.api.dependencies import get_request_id, http_error
from finledger.api.v1.schemas import CloseResponse, SnapshotResponse
from finledger.domain.exceptions import DomainException
from finledger.infrastructure.database.session import get_db
from finledger.services.closing import PeriodClosingService

router = APIRouter()


@router.get("/snapshots/{year}/{month}", response_model=SnapshotResponse)
def get_snapshot(
    request: Request,
    year: int = Path(..., ge=1),
    month: int = Path(..., ge=1, le=12),
    user_id: str = Query(..., description="User identifier"),
    db: Session = Depends(get_db),
):
    """
    Month figures for a user.

    Returns the frozen snapshot for a closed month, otherwise figures
    computed live from current records (nothing is stored).
    """
    try:
        snapshot = PeriodClosingService(db).view(user_id, year, month)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return SnapshotResponse.model_validate(snapshot)


@router.post("/snapshots/{year}/{month}/close", response_model=CloseResponse)
def close_snapshot(
    request: Request,
    year: int = Path(..., ge=1),
    month: int = Path(..., ge=1, le=12),
    user_id: str = Query(..., description="User identifier"),
    db: Session = Depends(get_db),
):
    """Close a month; closing an already closed month is a no-op reported as skipped"""
    try:
        result = PeriodClosingService(db).close_month(user_id, year, month)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return CloseResponse(outcome=result.outcome, snapshot=SnapshotResponse.model_validate(result.snapshot))

"""Read-only listing of merge operations and statistics snapshots.

Backs the administrative screens: filter by account, strategy, status and
date range, plus aggregate summaries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from credit_merge.core.database import get_db
from credit_merge.core.logging import get_logger
from credit_merge.models.merge_operation import MergeOperation
from credit_merge.models.merge_statistics import MergeStatistics
from credit_merge.schemas.audit import (
    MergeOperationResponse,
    MergeStatisticsResponse,
    OperationsSummary,
    StatisticsSummary,
)
from credit_merge.services.merge import audit

logger = get_logger(__name__)

router = APIRouter()


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} format: {value}")


@router.get("/operations", response_model=list[MergeOperationResponse])
def list_operations(
    account_id: Optional[UUID] = Query(None, description="Filter by account"),
    strategy: Optional[str] = Query(None, description="Filter by time-window strategy"),
    status: Optional[str] = Query(None, description="Filter by status"),
    dry_run: Optional[bool] = Query(None, description="Filter by dry-run flag"),
    date_from: Optional[str] = Query(
        None, description="Filter by operation_time >= date (YYYY-MM-DD)"
    ),
    date_to: Optional[str] = Query(
        None, description="Filter by operation_time <= date (YYYY-MM-DD)"
    ),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=500, description="Items per page"),
    db: Session = Depends(get_db),
) -> list:
    """List merge operations with optional filters and pagination."""
    query = audit.operations_query(
        db,
        account_id=account_id,
        strategy=strategy,
        status=status,
        dry_run=dry_run,
        date_from=_parse_date(date_from, "date_from"),
        date_to=_parse_date(date_to, "date_to"),
    )
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()

    logger.info(
        "Operations query: total=%d page=%d limit=%d returned=%d",
        total,
        page,
        limit,
        len(items),
    )
    return items


@router.get("/operations/summary", response_model=OperationsSummary)
def operations_summary(db: Session = Depends(get_db)) -> OperationsSummary:
    """Totals over all successful merge operations."""
    return OperationsSummary(**audit.successful_operations_summary(db))


@router.get("/operations/latest", response_model=MergeOperationResponse)
def latest_operation(
    account_id: UUID = Query(..., description="Account whose last run is wanted"),
    db: Session = Depends(get_db),
) -> MergeOperation:
    """Most recent merge operation of an account."""
    operation = audit.latest_operation(db, account_id)
    if operation is None:
        raise HTTPException(status_code=404, detail="No merge operation for account")
    return operation


@router.get("/operations/{operation_id}", response_model=MergeOperationResponse)
def get_operation(
    operation_id: UUID,
    db: Session = Depends(get_db),
) -> MergeOperation:
    """Retrieve a single merge operation by ID."""
    operation = db.get(MergeOperation, operation_id)
    if operation is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    return operation


@router.get("/statistics", response_model=list[MergeStatisticsResponse])
def list_statistics(
    account_id: Optional[UUID] = Query(None, description="Filter by account"),
    strategy: Optional[str] = Query(None, description="Filter by time-window strategy"),
    date_from: Optional[str] = Query(None, description="statistics_time >= date"),
    date_to: Optional[str] = Query(None, description="statistics_time <= date"),
    min_efficiency: Optional[float] = Query(
        None, ge=0, le=100, description="Only snapshots at or above this efficiency %"
    ),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=500, description="Items per page"),
    db: Session = Depends(get_db),
) -> list:
    """List statistics snapshots with optional filters and pagination."""
    query = audit.statistics_query(
        db,
        account_id=account_id,
        strategy=strategy,
        date_from=_parse_date(date_from, "date_from"),
        date_to=_parse_date(date_to, "date_to"),
        min_efficiency=min_efficiency,
    )
    return query.offset((page - 1) * limit).limit(limit).all()


@router.get("/statistics/summary", response_model=StatisticsSummary)
def statistics_summary(db: Session = Depends(get_db)) -> StatisticsSummary:
    """Totals and average efficiency across all snapshots."""
    return StatisticsSummary(**audit.global_statistics_summary(db))


@router.get("/statistics/by-strategy")
def statistics_by_strategy(db: Session = Depends(get_db)) -> dict:
    """Snapshot counts and average efficiency per strategy."""
    return audit.statistics_by_strategy(db)


@router.get("/statistics/latest", response_model=MergeStatisticsResponse)
def latest_statistics(
    account_id: UUID = Query(..., description="Account whose last snapshot is wanted"),
    strategy: Optional[str] = Query(None, description="Restrict to one strategy"),
    db: Session = Depends(get_db),
) -> MergeStatistics:
    """Most recent statistics snapshot of an account."""
    statistics = audit.latest_statistics(db, account_id, strategy)
    if statistics is None:
        raise HTTPException(status_code=404, detail="No statistics snapshot for account")
    return statistics


@router.get("/statistics/high-efficiency", response_model=list[MergeStatisticsResponse])
def high_efficiency_statistics(
    min_efficiency: float = Query(50.0, ge=0, le=100, description="Efficiency % floor"),
    db: Session = Depends(get_db),
) -> list:
    """Snapshots whose merge efficiency reaches *min_efficiency*, best first."""
    return audit.high_efficiency_statistics(db, min_efficiency)

"""Merge endpoints.

Provides routes to run a merge for one account, inspect an account's
small-amount statistics and merge potential, and submit batch merges as
background jobs.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from credit_merge.core.database import get_db
from credit_merge.core.exceptions import AccountNotFoundError, InvalidStrategyError
from credit_merge.core.logging import get_logger
from credit_merge.models.account import Account
from credit_merge.schemas.merge import (
    BatchMergeRequest,
    GroupStatResponse,
    MergeRequest,
    MergeResponse,
    SmallAmountStatsResponse,
)
from credit_merge.services.merge.engine import MergeOrchestrator, resolve_account
from credit_merge.services.merge.potential import MergePotentialAnalyzer
from credit_merge.services.merge.stats import SmallAmountStats
from credit_merge.services.merge.time_window import TimeWindowStrategy

logger = get_logger(__name__)

router = APIRouter()


def _parse_strategy(value: str) -> TimeWindowStrategy:
    try:
        return TimeWindowStrategy.from_string(value)
    except InvalidStrategyError as exc:
        raise HTTPException(
            status_code=400,
            detail=f"{exc}. Available: {', '.join(TimeWindowStrategy.options())}",
        )


def _load_account(db: Session, account_id: UUID) -> Account:
    try:
        return resolve_account(db, account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


def _stats_response(stats: SmallAmountStats) -> SmallAmountStatsResponse:
    return SmallAmountStatsResponse(
        account_id=stats.account.id,
        count=stats.count,
        total=stats.total,
        threshold=stats.threshold,
        strategy=stats.strategy.value if stats.strategy else None,
        average_amount=stats.average_amount,
        has_mergeable_records=stats.has_mergeable_records,
        potential_reduction=stats.potential_record_reduction,
        merge_efficiency=round(stats.merge_efficiency, 2),
        group_stats={
            key: GroupStatResponse(
                count=g.count, total=g.total, earliest_expiry=g.earliest_expiry
            )
            for key, g in stats.group_stats.items()
        },
    )


@router.post("/run", response_model=MergeResponse)
def run_merge(
    body: MergeRequest,
    db: Session = Depends(get_db),
) -> MergeResponse:
    """Merge the small credit records of one account.

    The strategy is validated before any data is read.  Returns the merged
    count together with the audit operation id.
    """
    strategy = _parse_strategy(body.strategy)
    account = _load_account(db, body.account_id)

    logger.info(
        "Merge requested: account=%s min_amount=%s strategy=%s dry_run=%s",
        account.id,
        body.min_amount,
        strategy.value,
        body.dry_run,
    )

    orchestrator = MergeOrchestrator(db)
    try:
        merged = orchestrator.merge_small_amounts(
            account,
            min_amount=body.min_amount,
            batch_size=body.batch_size,
            strategy=strategy,
            dry_run=body.dry_run,
        )
    except Exception as exc:
        logger.exception("Merge run failed")
        raise HTTPException(status_code=500, detail=str(exc))

    operation = orchestrator.last_operation
    return MergeResponse(
        operation_id=operation.id,
        account_id=account.id,
        strategy=strategy.value,
        dry_run=body.dry_run,
        merged_count=merged,
        records_before=operation.records_count_before,
        records_after=operation.records_count_after,
        status=operation.status,
    )


@router.get("/accounts/{account_id}/stats", response_model=SmallAmountStatsResponse)
def account_stats(
    account_id: UUID,
    threshold: Decimal = Query(Decimal("5.0"), gt=0, description="Small-amount threshold"),
    strategy: Optional[str] = Query(
        None, description="Group by this strategy; omit for ungrouped stats"
    ),
    db: Session = Depends(get_db),
) -> SmallAmountStatsResponse:
    """Small-amount statistics of an account, grouped when a strategy is given."""
    parsed = _parse_strategy(strategy) if strategy is not None else None
    account = _load_account(db, account_id)

    orchestrator = MergeOrchestrator(db)
    if parsed is None:
        stats = orchestrator.get_small_amount_stats(account, threshold)
    else:
        stats = orchestrator.get_detailed_small_amount_stats(account, threshold, parsed)
    return _stats_response(stats)


@router.get("/accounts/{account_id}/potential")
def account_merge_potential(
    account_id: UUID,
    threshold: Decimal = Query(Decimal("5.0"), gt=0, description="Small-amount threshold"),
    db: Session = Depends(get_db),
) -> dict:
    """Merge potential of an account under every strategy, with the best one."""
    account = _load_account(db, account_id)
    return MergePotentialAnalyzer(db).distribution(account, threshold)


# ── Batch / async merge endpoints ────────────────────────────────────


@router.post("/run-async")
def run_merge_async(
    request: BatchMergeRequest,
    background_tasks: BackgroundTasks,
):
    """Submit a merge over several accounts as a background job.

    Returns immediately with a job_id that can be polled via GET /jobs/{id}.
    """
    from credit_merge.core.database import SessionLocal
    from credit_merge.services.merge.batch import submit_merge_job

    strategy = _parse_strategy(request.strategy)
    job_id = submit_merge_job(
        db_factory=SessionLocal,
        account_ids=[str(a) for a in request.account_ids] if request.account_ids else None,
        min_amount=request.min_amount,
        batch_size=request.batch_size,
        strategy=strategy,
        dry_run=request.dry_run,
        background_tasks=background_tasks,
    )
    return {
        "job_id": job_id,
        "status": "pending",
        "message": "Merge job submitted",
    }


@router.get("/jobs")
def list_jobs():
    """List all submitted merge jobs."""
    from credit_merge.services.merge.batch import list_jobs as _list_jobs

    return {"jobs": _list_jobs()}


@router.get("/jobs/{job_id}")
def get_job(job_id: str):
    """Poll a specific job's status by its ID."""
    from credit_merge.services.merge.batch import get_job_status

    job = get_job_status(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job

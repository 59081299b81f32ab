"""Read-only queries over merge operations and statistics snapshots."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from credit_merge.models.merge_operation import MergeOperation
from credit_merge.models.merge_statistics import MergeStatistics


def operations_query(
    db: Session,
    account_id: Optional[uuid.UUID] = None,
    strategy: Optional[str] = None,
    status: Optional[str] = None,
    dry_run: Optional[bool] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Query:
    """Operations matching every given criterion, newest first."""
    query = db.query(MergeOperation)
    if account_id is not None:
        query = query.filter(MergeOperation.account_id == account_id)
    if strategy is not None:
        query = query.filter(MergeOperation.time_window_strategy == strategy)
    if status is not None:
        query = query.filter(MergeOperation.status == status)
    if dry_run is not None:
        query = query.filter(MergeOperation.is_dry_run == dry_run)
    if date_from is not None:
        query = query.filter(MergeOperation.operation_time >= date_from)
    if date_to is not None:
        query = query.filter(MergeOperation.operation_time <= date_to)
    return query.order_by(MergeOperation.operation_time.desc())


def statistics_query(
    db: Session,
    account_id: Optional[uuid.UUID] = None,
    strategy: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    min_efficiency: Optional[float] = None,
) -> Query:
    """Statistics snapshots matching every given criterion, newest first."""
    query = db.query(MergeStatistics)
    if account_id is not None:
        query = query.filter(MergeStatistics.account_id == account_id)
    if strategy is not None:
        query = query.filter(MergeStatistics.time_window_strategy == strategy)
    if date_from is not None:
        query = query.filter(MergeStatistics.statistics_time >= date_from)
    if date_to is not None:
        query = query.filter(MergeStatistics.statistics_time <= date_to)
    if min_efficiency is not None:
        query = query.filter(MergeStatistics.merge_efficiency >= min_efficiency)
    return query.order_by(MergeStatistics.statistics_time.desc())


def latest_operation(db: Session, account_id: uuid.UUID) -> Optional[MergeOperation]:
    return operations_query(db, account_id=account_id).first()


def latest_statistics(
    db: Session, account_id: uuid.UUID, strategy: Optional[str] = None
) -> Optional[MergeStatistics]:
    return statistics_query(db, account_id=account_id, strategy=strategy).first()


def high_efficiency_statistics(
    db: Session, min_efficiency: float = 50.0
) -> list[MergeStatistics]:
    """Snapshots at or above *min_efficiency*, best first."""
    return (
        db.query(MergeStatistics)
        .filter(MergeStatistics.merge_efficiency >= min_efficiency)
        .order_by(MergeStatistics.merge_efficiency.desc())
        .all()
    )


def successful_operations_summary(db: Session) -> dict:
    """Totals over all successful operations."""
    count, before, after, amount = (
        db.query(
            func.count(MergeOperation.id),
            func.sum(MergeOperation.records_count_before),
            func.sum(MergeOperation.records_count_after),
            func.sum(MergeOperation.total_amount),
        )
        .filter(MergeOperation.status == "success")
        .one()
    )
    before = int(before or 0)
    after = int(after or 0)
    return {
        "total_operations": int(count or 0),
        "total_records_before": before,
        "total_records_after": after,
        "total_amount": Decimal(str(amount or 0)).quantize(Decimal("0.01")),
        "records_reduction": before - after,
    }


def global_statistics_summary(db: Session) -> dict:
    """Totals and average efficiency over every statistics snapshot."""
    row = db.query(
        func.count(func.distinct(MergeStatistics.account_id)),
        func.sum(MergeStatistics.total_small_records),
        func.sum(MergeStatistics.total_small_amount),
        func.sum(MergeStatistics.mergeable_records),
        func.sum(MergeStatistics.potential_record_reduction),
        func.avg(MergeStatistics.merge_efficiency),
    ).one()
    accounts, records, amount, mergeable, reduction, efficiency = row
    return {
        "total_accounts": int(accounts or 0),
        "total_small_records": int(records or 0),
        "total_small_amount": Decimal(str(amount or 0)).quantize(Decimal("0.01")),
        "total_mergeable_records": int(mergeable or 0),
        "total_potential_reduction": int(reduction or 0),
        "average_merge_efficiency": round(float(efficiency or 0), 2),
    }


def statistics_by_strategy(db: Session) -> dict[str, dict]:
    """Snapshot counts and average efficiency per time-window strategy."""
    rows = (
        db.query(
            MergeStatistics.time_window_strategy,
            func.count(MergeStatistics.id),
            func.sum(MergeStatistics.total_small_records),
            func.sum(MergeStatistics.mergeable_records),
            func.avg(MergeStatistics.merge_efficiency),
        )
        .group_by(MergeStatistics.time_window_strategy)
        .all()
    )
    return {
        strategy: {
            "strategy": strategy,
            "record_count": int(count or 0),
            "total_small_records": int(records or 0),
            "total_mergeable_records": int(mergeable or 0),
            "average_efficiency": round(float(efficiency or 0), 2),
        }
        for strategy, count, records, mergeable, efficiency in rows
    }

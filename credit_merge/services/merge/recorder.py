"""Audit records of merge runs: operations and statistics snapshots.

Every write here is committed immediately on the shared session.  The
orchestrator starts the operation before the merge unit of work and marks
it failed after a rollback, so the audit rows must not depend on whether
the merge itself commits.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from credit_merge.core.logging import get_logger
from credit_merge.models.account import Account
from credit_merge.models.merge_operation import MergeOperation
from credit_merge.models.merge_statistics import MergeStatistics
from credit_merge.services.merge.finder import Amount, to_decimal
from credit_merge.services.merge.stats import TWO_PLACES, SmallAmountStats
from credit_merge.services.merge.time_window import TimeWindowStrategy

logger = get_logger(__name__)


class OperationRecorder:
    """Persists MergeOperation and MergeStatistics rows."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def start(
        self,
        account: Account,
        strategy: TimeWindowStrategy,
        threshold: Amount,
        batch_size: int,
        dry_run: bool = False,
    ) -> MergeOperation:
        """Insert a ``running`` operation with zeroed counters."""
        operation = MergeOperation(
            id=uuid.uuid4(),
            account_id=account.id,
            operation_time=datetime.utcnow(),
            time_window_strategy=strategy.value,
            min_amount_threshold=to_decimal(threshold),
            batch_size=batch_size,
            is_dry_run=dry_run,
            status="running",
            records_count_before=0,
            records_count_after=0,
            merged_records_count=0,
            total_amount=Decimal("0.00"),
        )
        self.db.add(operation)
        self.db.commit()

        logger.info(
            "Merge operation started: id=%s account=%s strategy=%s dry_run=%s",
            operation.id,
            account.id,
            strategy.value,
            dry_run,
        )
        return operation

    def complete(
        self,
        operation: MergeOperation,
        records_before: int,
        records_after: int,
        merged_count: int,
        total_amount: Amount,
        execution_time: Optional[float] = None,
        message: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Mark *operation* successful and store its outcome."""
        operation.records_count_before = records_before
        operation.records_count_after = records_after
        operation.merged_records_count = merged_count
        operation.total_amount = to_decimal(total_amount)
        operation.status = "success"
        operation.execution_time = _seconds(execution_time)
        operation.result_message = message
        operation.context = context
        self.db.commit()

        logger.info(
            "Merge operation completed: id=%s before=%d after=%d merged=%d total=%s",
            operation.id,
            records_before,
            records_after,
            merged_count,
            operation.total_amount,
        )

    def fail(
        self,
        operation: MergeOperation,
        error_message: str,
        execution_time: Optional[float] = None,
    ) -> None:
        """Mark *operation* failed with the error text."""
        operation.status = "failed"
        operation.result_message = error_message
        operation.execution_time = _seconds(execution_time)
        self.db.commit()

        logger.error(
            "Merge operation failed: id=%s error=%s", operation.id, error_message
        )

    def snapshot(
        self, stats: SmallAmountStats, strategy: TimeWindowStrategy
    ) -> MergeStatistics:
        """Persist an immutable MergeStatistics row built from *stats*."""
        statistics = MergeStatistics(
            id=uuid.uuid4(),
            account_id=stats.account.id,
            statistics_time=datetime.utcnow(),
            time_window_strategy=strategy.value,
            min_amount_threshold=stats.threshold,
            total_small_records=stats.count,
            total_small_amount=stats.total,
            mergeable_records=stats.count if stats.has_mergeable_records else 0,
            potential_record_reduction=stats.potential_record_reduction,
            merge_efficiency=Decimal(str(stats.merge_efficiency)).quantize(
                TWO_PLACES, rounding=ROUND_HALF_UP
            ),
            average_amount=stats.average_amount,
            time_window_groups=len(stats.group_stats),
            group_stats={k: g.to_dict() for k, g in stats.group_stats.items()},
            context={
                "has_mergeable_records": stats.has_mergeable_records,
                "strategy": strategy.value,
                "strategy_label": strategy.label,
            },
        )
        self.db.add(statistics)
        self.db.commit()

        logger.info(
            "Merge statistics recorded: id=%s account=%s records=%d efficiency=%.2f",
            statistics.id,
            stats.account.id,
            stats.count,
            stats.merge_efficiency,
        )
        return statistics


def _seconds(value: Optional[float]) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)

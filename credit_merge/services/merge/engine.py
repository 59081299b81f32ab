"""Merge orchestrator: the entry point of a small-amount merge run.

A run for one account goes through:
  1. Compute the before-stats and record a ``running`` operation.
  2. Merge the no-expiry set, then each time-window group (skipped on dry run).
  3. Compute the after-stats and commit the whole account at once.
  4. Mark the operation successful and snapshot the before-stats.

Any failure in steps 2-3 rolls the account back, marks the operation
``failed`` and re-raises, so a batch caller can decide whether to carry on
with the next account.  A failure in step 4 leaves the merged records
committed and marks the operation ``failed`` with the recording error.
"""

from __future__ import annotations

import time
import uuid
from typing import Optional, Union

from sqlalchemy.orm import Session

from credit_merge.core.exceptions import AccountNotFoundError
from credit_merge.core.logging import get_logger
from credit_merge.models.account import Account
from credit_merge.models.merge_operation import MergeOperation
from credit_merge.services.merge.executor import MergeExecutor
from credit_merge.services.merge.finder import Amount, EligibilityFinder
from credit_merge.services.merge.grouper import WindowGrouper
from credit_merge.services.merge.recorder import OperationRecorder
from credit_merge.services.merge.stats import SmallAmountStats, StatsCalculator
from credit_merge.services.merge.time_window import TimeWindowStrategy

logger = get_logger(__name__)


def resolve_account(db: Session, account_id: Union[str, uuid.UUID]) -> Account:
    """Load an account by id.

    Raises:
        AccountNotFoundError: If the id is malformed or unknown.
    """
    try:
        key = account_id if isinstance(account_id, uuid.UUID) else uuid.UUID(str(account_id))
    except ValueError:
        raise AccountNotFoundError(account_id)
    account = db.get(Account, key)
    if account is None:
        raise AccountNotFoundError(account_id)
    return account


class MergeOrchestrator:
    """Runs merges and statistics queries for accounts on one session."""

    def __init__(
        self,
        db: Session,
        executor: Optional[MergeExecutor] = None,
        stats: Optional[StatsCalculator] = None,
        recorder: Optional[OperationRecorder] = None,
    ) -> None:
        self.db = db
        finder = EligibilityFinder(db)
        grouper = WindowGrouper()
        self.executor = executor or MergeExecutor(db, finder, grouper)
        self.stats = stats or StatsCalculator(db, finder, grouper)
        self.recorder = recorder or OperationRecorder(db)
        self.last_operation: Optional[MergeOperation] = None

    # ── Public API ───────────────────────────────────────────────────

    def merge_small_amounts(
        self,
        account: Account,
        min_amount: Amount = 5.0,
        batch_size: int = 100,
        strategy: TimeWindowStrategy = TimeWindowStrategy.MONTH,
        dry_run: bool = False,
    ) -> int:
        """Merge the account's small credit records.

        Args:
            account: Account to consolidate.
            min_amount: Records with ``balance <= min_amount`` are small.
            batch_size: Recorded on the operation; the whole eligible set
                is processed per call.
            strategy: Time window inside which expiring records may merge.
            dry_run: Compute and record statistics without merging.

        Returns:
            Number of source records consumed (0 on dry run).
        """
        started = time.perf_counter()

        before = self.get_detailed_small_amount_stats(account, min_amount, strategy)
        operation = self.recorder.start(account, strategy, min_amount, batch_size, dry_run)
        self.last_operation = operation

        logger.info(
            "Merge started: operation=%s account=%s min_amount=%s batch_size=%d "
            "strategy=%s dry_run=%s records_before=%d",
            operation.id,
            account.id,
            min_amount,
            batch_size,
            strategy.value,
            dry_run,
            before.count,
        )

        try:
            merged = 0
            if not dry_run:
                merged += self.executor.merge_no_expiry_records(account, min_amount)
                merged += self.executor.merge_expiry_records(account, min_amount, strategy)
                after = self.get_detailed_small_amount_stats(account, min_amount, strategy)
            else:
                after = before
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            elapsed = time.perf_counter() - started
            self.recorder.fail(operation, str(exc), elapsed)
            logger.exception(
                "Merge failed: operation=%s account=%s elapsed=%.3fs",
                operation.id,
                account.id,
                elapsed,
            )
            raise

        elapsed = time.perf_counter() - started
        try:
            self.recorder.complete(
                operation,
                before.count,
                after.count,
                merged,
                before.total,
                elapsed,
                "Dry run completed" if dry_run else "Merge completed",
                {
                    "records_reduction": before.count - after.count,
                    "merge_efficiency": round(before.merge_efficiency, 2),
                    "average_amount": str(before.average_amount),
                },
            )
            self.recorder.snapshot(before, strategy)
        except Exception as exc:
            # The merge itself is committed; only its audit trail is incomplete
            self.db.rollback()
            self.recorder.fail(operation, f"Recording merge result failed: {exc}", elapsed)
            logger.exception(
                "Merge result not recorded: operation=%s account=%s merged=%d",
                operation.id,
                account.id,
                merged,
            )
            raise

        logger.info(
            "Merge completed: operation=%s account=%s merged=%d before=%d after=%d "
            "elapsed=%.3fs dry_run=%s",
            operation.id,
            account.id,
            merged,
            before.count,
            after.count,
            elapsed,
            dry_run,
        )
        return merged

    def get_small_amount_stats(
        self, account: Account, threshold: Amount = 5.0
    ) -> SmallAmountStats:
        """Ungrouped count and total of the account's small records."""
        return self.stats.basic_stats(account, threshold)

    def get_detailed_small_amount_stats(
        self,
        account: Account,
        threshold: Amount = 5.0,
        strategy: TimeWindowStrategy = TimeWindowStrategy.MONTH,
    ) -> SmallAmountStats:
        """Small-record stats grouped the way *strategy* would merge them."""
        return self.stats.detailed_stats(account, threshold, strategy)

"""Replacement of small-record groups by one consolidated transaction.

For a group of N >= 2 records the executor:
  1. Sums their balances and creates one consolidated transaction holding
     that sum as both amount and balance.
  2. Zeroes each source balance (the original ``amount`` stays for audit).
  3. Writes one ConsumeLog per source linking it to the consolidated record.

Nothing is committed here: the caller owns the unit of work and decides to
commit or roll back the whole account.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from credit_merge.core.exceptions import StorageError
from credit_merge.core.logging import get_logger
from credit_merge.models.account import Account
from credit_merge.models.consume_log import ConsumeLog
from credit_merge.models.transaction import CreditTransaction
from credit_merge.services.merge.finder import Amount, EligibilityFinder
from credit_merge.services.merge.grouper import WindowGrouper
from credit_merge.services.merge.time_window import TimeWindowStrategy

logger = get_logger(__name__)

NO_EXPIRY_KEY = "no_expiry"


def make_event_no(account: Account, key: str) -> str:
    """Unique event number of a consolidated transaction."""
    return f"MERGE_{account.id}_{key}_{uuid.uuid4().hex}"


class MergeExecutor:
    """Performs the writes of a merge inside the caller's transaction."""

    def __init__(
        self,
        db: Session,
        finder: Optional[EligibilityFinder] = None,
        grouper: Optional[WindowGrouper] = None,
    ) -> None:
        self.db = db
        self.finder = finder or EligibilityFinder(db)
        self.grouper = grouper or WindowGrouper()

    # ── Public API ───────────────────────────────────────────────────

    def merge_no_expiry_records(self, account: Account, min_amount: Amount) -> int:
        """Merge every eligible never-expiring record into one."""
        records = self.finder.find_no_expiry(account, min_amount)
        if len(records) <= 1:
            return 0

        merged = self.merge_group(records, account, NO_EXPIRY_KEY)
        logger.info(
            "Merged no-expiry records: account=%s count=%d", account.id, merged
        )
        return merged

    def merge_expiry_records(
        self,
        account: Account,
        min_amount: Amount,
        strategy: TimeWindowStrategy,
    ) -> int:
        """Merge eligible expiring records window by window."""
        records = self.finder.find_with_expiry(account, min_amount)
        if not records:
            return 0

        total = 0
        for key, group in self.grouper.group(records, strategy).items():
            if not group.mergeable:
                continue
            merged = self.merge_group(
                group.records, account, key, group.earliest_expiry
            )
            total += merged
            logger.debug(
                "Merged window group: account=%s window=%s count=%d",
                account.id,
                key,
                merged,
            )
        return total

    def merge_group(
        self,
        records: Sequence[CreditTransaction],
        account: Account,
        key: str,
        expiry: Optional[datetime] = None,
    ) -> int:
        """Replace *records* with one consolidated transaction.

        Args:
            records: Source records, all belonging to *account*.
            account: Owner of the records; supplies the currency.
            key: Window key recorded on the consolidated transaction.
            expiry: Expiry of the consolidated transaction (``None`` for
                the no-expiry group).

        Returns:
            Number of source records consumed; 0 when fewer than two
            records were given (a single record is never merged).

        Raises:
            StorageError: If persisting any row fails.
        """
        if len(records) <= 1:
            return 0

        total = sum((Decimal(str(r.balance)) for r in records), Decimal("0"))
        record_ids = [str(r.id) for r in records if r.id is not None]

        merged = CreditTransaction(
            id=uuid.uuid4(),
            account_id=account.id,
            currency=account.currency,
            event_no=make_event_no(account, key),
            amount=total,
            balance=total,
            expire_time=expiry,
            remark=f"Merged {len(records)} small credit records ({key})",
            context={
                "merged_records": record_ids,
                "merge_strategy": key,
                "merge_time": datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S"),
            },
        )

        try:
            self.db.add(merged)
            for record in records:
                self._consume(record, merged)
            self.db.flush()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to persist merge of window {key!r}: {exc}") from exc

        return len(records)

    # ── Private helpers ──────────────────────────────────────────────

    def _consume(self, record: CreditTransaction, merged: CreditTransaction) -> None:
        """Zero the source balance and log its consumption by *merged*."""
        consumed = Decimal(str(record.balance))
        record.balance = Decimal("0")
        self.db.add(
            ConsumeLog(
                id=uuid.uuid4(),
                cost_transaction_id=record.id,
                consume_transaction_id=merged.id,
                amount=consumed,
            )
        )

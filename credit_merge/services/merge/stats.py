"""Small-amount statistics and the merge-efficiency metrics derived from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from credit_merge.core.exceptions import StorageError
from credit_merge.core.logging import get_logger
from credit_merge.models.account import Account
from credit_merge.models.transaction import CreditTransaction
from credit_merge.services.merge.executor import NO_EXPIRY_KEY
from credit_merge.services.merge.finder import Amount, EligibilityFinder, eligible_query, to_decimal
from credit_merge.services.merge.grouper import WindowGrouper
from credit_merge.services.merge.time_window import TimeWindowStrategy

logger = get_logger(__name__)

TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class WindowGroupStat:
    """Count, total and earliest expiry of one merge group."""

    count: int
    total: Decimal
    earliest_expiry: Optional[datetime] = None

    @property
    def reduction(self) -> int:
        """Records eliminated if this group is merged."""
        return self.count - 1 if self.count > 1 else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total": str(self.total),
            "earliest_expiry": (
                self.earliest_expiry.strftime("%Y-%m-%d %H:%M:%S")
                if self.earliest_expiry is not None
                else None
            ),
        }


@dataclass
class SmallAmountStats:
    """Eligible small records of one account, optionally split into merge groups.

    ``strategy`` is ``None`` for ungrouped stats; the account's whole
    eligible set is then treated as one merge candidate.  Once a strategy
    has been applied, the potential reduction is summed over
    ``group_stats`` instead.
    """

    account: Account
    count: int
    total: Decimal
    threshold: Decimal
    strategy: Optional[TimeWindowStrategy] = None
    group_stats: dict[str, WindowGroupStat] = field(default_factory=dict)

    @classmethod
    def empty(cls, account: Account, threshold: Amount = 5.0) -> SmallAmountStats:
        return cls(account, 0, Decimal("0.00"), to_decimal(threshold))

    def add_group_stats(
        self,
        key: str,
        count: int,
        total: Decimal,
        earliest_expiry: Optional[datetime] = None,
    ) -> None:
        self.group_stats[key] = WindowGroupStat(count, total, earliest_expiry)

    @property
    def has_mergeable_records(self) -> bool:
        return self.count > 1

    @property
    def average_amount(self) -> Decimal:
        if self.count == 0:
            return Decimal("0.00")
        return (self.total / self.count).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    @property
    def potential_record_reduction(self) -> int:
        if not self.has_mergeable_records:
            return 0
        if self.strategy is None:
            return self.count - 1
        return sum(g.reduction for g in self.group_stats.values())

    @property
    def merge_efficiency(self) -> float:
        """Percentage (0-100) of records a merge would eliminate."""
        if self.count <= 1:
            return 0.0
        return self.potential_record_reduction / self.count * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": str(self.account.id),
            "count": self.count,
            "total": str(self.total),
            "threshold": str(self.threshold),
            "strategy": self.strategy.value if self.strategy else None,
            "average_amount": str(self.average_amount),
            "has_mergeable_records": self.has_mergeable_records,
            "potential_reduction": self.potential_record_reduction,
            "merge_efficiency": round(self.merge_efficiency, 2),
            "group_stats": {k: g.to_dict() for k, g in self.group_stats.items()},
        }


class StatsCalculator:
    """Computes SmallAmountStats from the transaction store."""

    def __init__(
        self,
        db: Session,
        finder: Optional[EligibilityFinder] = None,
        grouper: Optional[WindowGrouper] = None,
    ) -> None:
        self.db = db
        self.finder = finder or EligibilityFinder(db)
        self.grouper = grouper or WindowGrouper()

    def basic_stats(self, account: Account, threshold: Amount = 5.0) -> SmallAmountStats:
        """Count and total of eligible records in one aggregate query."""
        count, total = self._aggregate(eligible_query(self.db, account, threshold))
        return SmallAmountStats(account, count, total, to_decimal(threshold))

    def detailed_stats(
        self,
        account: Account,
        threshold: Amount = 5.0,
        strategy: TimeWindowStrategy = TimeWindowStrategy.MONTH,
    ) -> SmallAmountStats:
        """Basic stats plus one group per merge candidate set.

        Groups are the ``no_expiry`` set followed by one group per time
        window of the expiring records, in expiry order.
        """
        stats = self.basic_stats(account, threshold)
        stats.strategy = strategy
        if stats.count <= 0:
            return stats

        no_expiry = eligible_query(self.db, account, threshold).filter(
            CreditTransaction.expire_time.is_(None)
        )
        count, total = self._aggregate(no_expiry)
        if count > 0:
            stats.add_group_stats(NO_EXPIRY_KEY, count, total)

        records = self.finder.find_with_expiry(account, threshold)
        for key, group in self.grouper.group(records, strategy).items():
            stats.add_group_stats(
                key,
                group.count,
                group.total_balance.quantize(TWO_PLACES),
                group.earliest_expiry,
            )

        logger.debug(
            "Detailed stats: account=%s strategy=%s count=%d groups=%d",
            account.id,
            strategy.value,
            stats.count,
            len(stats.group_stats),
        )
        return stats

    def _aggregate(self, query) -> tuple[int, Decimal]:
        try:
            count, total = query.with_entities(
                func.count(CreditTransaction.id),
                func.sum(CreditTransaction.balance),
            ).one()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to aggregate small credit records: {exc}") from exc
        return int(count or 0), Decimal(str(total or 0)).quantize(TWO_PLACES)

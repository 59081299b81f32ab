"""Merge potential analysis across all time-window strategies.

Answers "what would merging buy us, and with which strategy?" for one
account without touching any data: the eligible records are split into
the no-expiry set and the expiring set, and the expiring set is grouped
under each of the day/week/month strategies side by side.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy.orm import Session

from credit_merge.core.logging import get_logger
from credit_merge.models.account import Account
from credit_merge.services.merge.finder import Amount, EligibilityFinder
from credit_merge.services.merge.grouper import WindowGroup, WindowGrouper
from credit_merge.services.merge.time_window import TimeWindowStrategy

logger = get_logger(__name__)

COMPARED_STRATEGIES = (
    TimeWindowStrategy.DAY,
    TimeWindowStrategy.WEEK,
    TimeWindowStrategy.MONTH,
)


def _sum_balances(records: Iterable[Any]) -> Decimal:
    return sum((Decimal(str(r.balance)) for r in records), Decimal("0"))


def _fmt(ts) -> str | None:
    return ts.strftime("%Y-%m-%d %H:%M:%S") if ts is not None else None


class MergePotentialAnalyzer:
    """Compares the merge potential of every strategy for an account."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.finder = EligibilityFinder(db)
        self.grouper = WindowGrouper()

    def distribution(self, account: Account, min_amount: Amount = 5.0) -> dict:
        """Small-record distribution and merge potential of *account*.

        Returns a dict with:
          - total_count / total_amount: all eligible small records
          - no_expiry: {count, amount}
          - with_expiry: {count, amount, by_window: {strategy: {...}}}
          - merge_potential: per-set potential and the optimal strategy
        """
        no_expiry = self.finder.find_no_expiry(account, min_amount)
        with_expiry = self.finder.find_with_expiry(account, min_amount)

        stats: dict[str, Any] = {
            "no_expiry": {
                "count": len(no_expiry),
                "amount": _sum_balances(no_expiry),
            },
            "with_expiry": {
                "count": len(with_expiry),
                "amount": _sum_balances(with_expiry),
                "by_window": {
                    strategy.value: self.window_breakdown(
                        self.grouper.group(with_expiry, strategy)
                    )
                    for strategy in COMPARED_STRATEGIES
                },
            },
        }
        stats["total_count"] = stats["no_expiry"]["count"] + stats["with_expiry"]["count"]
        stats["total_amount"] = stats["no_expiry"]["amount"] + stats["with_expiry"]["amount"]
        stats["merge_potential"] = self.merge_potential(stats)

        logger.info(
            "Merge potential: account=%s total=%d optimal=%s",
            account.id,
            stats["total_count"],
            stats["merge_potential"]["optimal_strategy"]["strategy"],
        )
        return stats

    def window_breakdown(self, groups: dict[str, WindowGroup]) -> dict:
        """Describe the windows of one strategy and what merging them yields."""
        windows = [
            {
                "window_key": g.window_key,
                "count": g.count,
                "total_amount": g.total_balance,
                "min_expire": _fmt(g.earliest_expiry),
                "max_expire": _fmt(g.latest_expiry),
            }
            for g in groups.values()
        ]
        return {
            "windows": windows,
            "window_count": len(windows),
            "merge_groups": [w["window_key"] for w in windows if w["count"] > 1],
            "merge_potential": self.window_merge_potential(groups.values()),
        }

    @staticmethod
    def window_merge_potential(groups: Iterable[WindowGroup]) -> dict:
        potential = {
            "mergeable_windows": 0,
            "mergeable_records": 0,
            "mergeable_amount": Decimal("0"),
        }
        for group in groups:
            if group.count > 1:
                potential["mergeable_windows"] += 1
                potential["mergeable_records"] += group.count
                potential["mergeable_amount"] += group.total_balance
        return potential

    def merge_potential(self, stats: dict) -> dict:
        no_expiry = stats["no_expiry"]
        can_merge = no_expiry["count"] > 1
        by_window = stats["with_expiry"]["by_window"]
        return {
            "no_expiry": {
                "can_merge": can_merge,
                "records": no_expiry["count"] if can_merge else 0,
                "amount": no_expiry["amount"] if can_merge else Decimal("0"),
            },
            "with_expiry": {
                name: window["merge_potential"] for name, window in by_window.items()
            },
            "optimal_strategy": self.optimal_strategy(stats),
        }

    @staticmethod
    def optimal_strategy(stats: dict) -> dict:
        """Candidate with the most mergeable records (first listed wins ties)."""
        no_expiry = stats["no_expiry"]
        can_merge = no_expiry["count"] > 1
        candidates = [
            {
                "strategy": "no_expiry",
                "records": no_expiry["count"] if can_merge else 0,
                "amount": no_expiry["amount"] if can_merge else Decimal("0"),
            }
        ]
        for name, window in stats["with_expiry"]["by_window"].items():
            potential = window["merge_potential"]
            candidates.append(
                {
                    "strategy": name,
                    "records": potential["mergeable_records"],
                    "amount": potential["mergeable_amount"],
                }
            )
        return sorted(candidates, key=lambda c: c["records"], reverse=True)[0]

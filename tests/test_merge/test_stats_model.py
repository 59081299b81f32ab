"""Unit tests for the SmallAmountStats value object and its derived metrics."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from credit_merge.services.merge.stats import SmallAmountStats, WindowGroupStat
from credit_merge.services.merge.time_window import TimeWindowStrategy


@pytest.fixture
def account() -> SimpleNamespace:
    return SimpleNamespace(id=uuid.uuid4())


def _stats(account, count: int, total: str, strategy=None) -> SmallAmountStats:
    return SmallAmountStats(account, count, Decimal(total), Decimal("5.00"), strategy)


class TestDerivedMetrics:
    def test_empty_stats(self, account) -> None:
        stats = SmallAmountStats.empty(account)

        assert stats.count == 0
        assert stats.average_amount == Decimal("0.00")
        assert not stats.has_mergeable_records
        assert stats.potential_record_reduction == 0
        assert stats.merge_efficiency == 0.0

    def test_single_record_is_not_mergeable(self, account) -> None:
        stats = _stats(account, 1, "3.00", TimeWindowStrategy.MONTH)
        stats.add_group_stats("2024-01", 1, Decimal("3.00"))

        assert not stats.has_mergeable_records
        assert stats.potential_record_reduction == 0
        assert stats.merge_efficiency == 0.0

    def test_average_amount(self, account) -> None:
        assert _stats(account, 3, "4.50").average_amount == Decimal("1.50")
        assert _stats(account, 3, "1.00").average_amount == Decimal("0.33")

    def test_ungrouped_reduction_treats_everything_as_one_group(self, account) -> None:
        stats = _stats(account, 4, "8.00")

        assert stats.potential_record_reduction == 3
        assert stats.merge_efficiency == pytest.approx(75.0)

    def test_grouped_reduction_sums_groups(self, account) -> None:
        stats = _stats(account, 6, "9.00", TimeWindowStrategy.MONTH)
        stats.add_group_stats("no_expiry", 2, Decimal("3.00"))
        stats.add_group_stats("2024-01", 3, Decimal("4.00"), datetime(2024, 1, 3))
        stats.add_group_stats("2024-02", 1, Decimal("2.00"), datetime(2024, 2, 9))

        # (2-1) + (3-1) + 0
        assert stats.potential_record_reduction == 3
        assert stats.merge_efficiency == pytest.approx(3 / 6 * 100)

    def test_efficiency_formula_holds(self, account) -> None:
        for count in range(2, 12):
            stats = _stats(account, count, "10.00")
            assert stats.merge_efficiency == pytest.approx(
                stats.potential_record_reduction / count * 100
            )

    def test_strategy_with_no_multi_record_group_has_zero_reduction(self, account) -> None:
        stats = _stats(account, 2, "2.00", TimeWindowStrategy.DAY)
        stats.add_group_stats("2024-01-01", 1, Decimal("1.00"))
        stats.add_group_stats("2024-01-02", 1, Decimal("1.00"))

        assert stats.has_mergeable_records
        assert stats.potential_record_reduction == 0
        assert stats.merge_efficiency == 0.0


class TestSerialisation:
    def test_group_stat_to_dict(self) -> None:
        stat = WindowGroupStat(2, Decimal("3.50"), datetime(2024, 1, 15, 8, 30))

        assert stat.to_dict() == {
            "count": 2,
            "total": "3.50",
            "earliest_expiry": "2024-01-15 08:30:00",
        }
        assert stat.reduction == 1

    def test_stats_to_dict(self, account) -> None:
        stats = _stats(account, 2, "3.00", TimeWindowStrategy.WEEK)
        stats.add_group_stats("2024-W03", 2, Decimal("3.00"), datetime(2024, 1, 15))

        data = stats.to_dict()

        assert data["account_id"] == str(account.id)
        assert data["strategy"] == "week"
        assert data["potential_reduction"] == 1
        assert data["merge_efficiency"] == 50.0
        assert data["group_stats"]["2024-W03"]["count"] == 2

"""Unit tests for the WindowGrouper.

Pure tests with SimpleNamespace stand-ins for ORM records.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from credit_merge.services.merge.grouper import WindowGrouper
from credit_merge.services.merge.time_window import TimeWindowStrategy


def _rec(balance: str, expire_time) -> SimpleNamespace:
    """Create a minimal credit-record-like object."""
    return SimpleNamespace(balance=Decimal(balance), expire_time=expire_time)


@pytest.fixture
def grouper() -> WindowGrouper:
    return WindowGrouper()


class TestWindowGrouper:
    def test_same_day_records_share_a_group(self, grouper: WindowGrouper) -> None:
        records = [
            _rec("1.00", datetime(2024, 1, 15, 9, 0)),
            _rec("2.00", datetime(2024, 1, 15, 18, 0)),
        ]

        by_day = grouper.group(records, TimeWindowStrategy.DAY)
        by_month = grouper.group(records, TimeWindowStrategy.MONTH)

        assert list(by_day) == ["2024-01-15"]
        assert by_day["2024-01-15"].count == 2
        assert list(by_month) == ["2024-01"]
        assert by_month["2024-01"].count == 2

    def test_tracks_sum_and_expiry_bounds(self, grouper: WindowGrouper) -> None:
        records = [
            _rec("1.50", datetime(2024, 3, 20)),
            _rec("0.25", datetime(2024, 3, 2)),
            _rec("3.00", datetime(2024, 3, 31)),
        ]

        group = grouper.group(records, TimeWindowStrategy.MONTH)["2024-03"]

        assert group.count == 3
        assert group.total_balance == Decimal("4.75")
        assert group.earliest_expiry == datetime(2024, 3, 2)
        assert group.latest_expiry == datetime(2024, 3, 31)
        assert group.records == records

    def test_records_without_expiry_are_skipped(self, grouper: WindowGrouper) -> None:
        records = [
            _rec("1.00", None),
            _rec("2.00", datetime(2024, 5, 1)),
        ]

        groups = grouper.group(records, TimeWindowStrategy.ALL)

        assert list(groups) == ["all"]
        assert groups["all"].count == 1
        assert not groups["all"].mergeable

    def test_group_order_follows_input(self, grouper: WindowGrouper) -> None:
        records = [
            _rec("1.00", datetime(2024, 2, 1)),
            _rec("1.00", datetime(2024, 1, 1)),
            _rec("1.00", datetime(2024, 2, 9)),
        ]

        groups = grouper.group(records, TimeWindowStrategy.MONTH)

        assert list(groups) == ["2024-02", "2024-01"]
        assert groups["2024-02"].count == 2
        assert groups["2024-02"].mergeable

    def test_empty_input(self, grouper: WindowGrouper) -> None:
        assert grouper.group([], TimeWindowStrategy.DAY) == {}

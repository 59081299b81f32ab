"""Partitioning of expiring records into time-window groups."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from credit_merge.core.logging import get_logger
from credit_merge.services.merge.time_window import TimeWindowStrategy, window_key

logger = get_logger(__name__)


@dataclass
class WindowGroup:
    """Records sharing one window key, plus their running aggregates.

    Attributes:
        window_key: The bucket label (``2024-01``, ``2024-W03``, ``all`` ...).
        records: Member records in input order.
        count: Number of members.
        total_balance: Sum of member balances.
        earliest_expiry: Minimum expiry seen; used as the merged record's expiry.
        latest_expiry: Maximum expiry seen.
    """

    window_key: str
    records: list[Any] = field(default_factory=list)
    count: int = 0
    total_balance: Decimal = Decimal("0")
    earliest_expiry: Optional[datetime] = None
    latest_expiry: Optional[datetime] = None

    def add(self, record: Any) -> None:
        expire_time = record.expire_time
        self.records.append(record)
        self.count += 1
        self.total_balance += Decimal(str(record.balance))
        if self.earliest_expiry is None or expire_time < self.earliest_expiry:
            self.earliest_expiry = expire_time
        if self.latest_expiry is None or expire_time > self.latest_expiry:
            self.latest_expiry = expire_time

    @property
    def mergeable(self) -> bool:
        return self.count > 1


class WindowGrouper:
    """Groups records by the window key of their expiry time.

    Works on any objects exposing ``expire_time`` and ``balance``; records
    without an expiry are skipped (the no-expiry merge path owns them).
    Group order follows first appearance in the input.
    """

    def group(
        self,
        records: Iterable[Any],
        strategy: TimeWindowStrategy,
    ) -> dict[str, WindowGroup]:
        groups: dict[str, WindowGroup] = {}
        for record in records:
            if record.expire_time is None:
                continue
            key = window_key(record.expire_time, strategy)
            if key not in groups:
                groups[key] = WindowGroup(window_key=key)
            groups[key].add(record)

        logger.debug(
            "Grouped by %s window: groups=%d", strategy.value, len(groups)
        )
        return groups

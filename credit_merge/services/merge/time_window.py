"""Time-window strategies and the grouping keys derived from them.

Small credit records are only merged with records whose expiry falls in the
same window, so the merged record never outlives (or dies much earlier than)
the credits it replaces.  The window key is the bucket label: two expiry
timestamps that land in the same calendar day/week/month must produce the
same key.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from credit_merge.core.exceptions import InvalidStrategyError


class TimeWindowStrategy(str, Enum):
    """How wide a window of expiry dates may be merged together."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def from_string(cls, value: str) -> TimeWindowStrategy:
        """Parse a strategy name, accepting the ``daily``/``weekly``/``monthly`` synonyms.

        Raises:
            InvalidStrategyError: If *value* names no known strategy.
        """
        strategy = _SYNONYMS.get(value.strip().lower()) if isinstance(value, str) else None
        if strategy is None:
            raise InvalidStrategyError(value)
        return strategy

    @classmethod
    def options(cls) -> dict[str, str]:
        """Map of strategy value -> label, in declaration order."""
        return {s.value: s.label for s in cls}


_LABELS = {
    TimeWindowStrategy.DAY: "By day",
    TimeWindowStrategy.WEEK: "By week",
    TimeWindowStrategy.MONTH: "By month",
    TimeWindowStrategy.ALL: "Merge all",
}

_SYNONYMS = {
    "day": TimeWindowStrategy.DAY,
    "daily": TimeWindowStrategy.DAY,
    "week": TimeWindowStrategy.WEEK,
    "weekly": TimeWindowStrategy.WEEK,
    "month": TimeWindowStrategy.MONTH,
    "monthly": TimeWindowStrategy.MONTH,
    "all": TimeWindowStrategy.ALL,
}


def window_key(timestamp: datetime, strategy: TimeWindowStrategy) -> str:
    """Return the grouping key of *timestamp* under *strategy*.

    Examples:
        >>> window_key(datetime(2023, 10, 15), TimeWindowStrategy.DAY)
        '2023-10-15'
        >>> window_key(datetime(2023, 10, 15), TimeWindowStrategy.WEEK)
        '2023-W41'
        >>> window_key(datetime(2023, 10, 15), TimeWindowStrategy.MONTH)
        '2023-10'
    """
    if strategy is TimeWindowStrategy.DAY:
        return timestamp.strftime("%Y-%m-%d")
    if strategy is TimeWindowStrategy.WEEK:
        # ISO year, so the days around New Year land in the same week
        iso = timestamp.isocalendar()
        return f"{iso[0]:04d}-W{iso[1]:02d}"
    if strategy is TimeWindowStrategy.MONTH:
        return timestamp.strftime("%Y-%m")
    return "all"

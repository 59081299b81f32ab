"""Merge statistics model: point-in-time snapshot of merge potential."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, JSON, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_merge.core.database import Base


class MergeStatistics(Base):
    """Small-amount statistics of one account under one strategy.

    Written once per merge run from the stats computed before merging and
    never updated afterwards.
    """

    __tablename__ = "merge_statistics"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    statistics_time: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )
    time_window_strategy: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="day | week | month | all",
    )
    min_amount_threshold: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    total_small_records: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    total_small_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0.00"),
    )
    mergeable_records: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    potential_record_reduction: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    merge_efficiency: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=Decimal("0.00"),
        comment="Percentage of records eliminated, 0-100",
    )
    average_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0.00"),
    )
    time_window_groups: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    group_stats: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    context: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # -- Relationships --
    account: Mapped[Account] = relationship(
        "Account",
        lazy="joined",
    )

    __table_args__ = (
        Index("ix_merge_statistics_strategy_time", "time_window_strategy", "statistics_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<MergeStatistics(id={self.id!r}, total_small_records="
            f"{self.total_small_records}, merge_efficiency={self.merge_efficiency})>"
        )

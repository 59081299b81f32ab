"""Merge operation model: audit trail of each merge run."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_merge.core.database import Base


class MergeOperation(Base):
    """One invocation of the small-amount merge for a single account.

    The row is inserted with status ``running`` before any merge work and
    moved to ``success`` or ``failed`` when the run ends.  Dry runs are
    recorded too so the operational history shows every attempt.
    """

    __tablename__ = "merge_operations"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    operation_time: Mapped[datetime] = mapped_column(
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
    records_count_before: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    records_count_after: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    merged_records_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0.00"),
    )
    batch_size: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    is_dry_run: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="pending | running | success | failed | partial",
    )
    result_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    context: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    execution_time: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 3),
        nullable=True,
        comment="Wall-clock seconds",
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
        Index("ix_merge_operation_status_time", "status", "operation_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<MergeOperation(id={self.id!r}, status={self.status!r}, "
            f"merged_records_count={self.merged_records_count})>"
        )

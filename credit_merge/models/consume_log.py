"""Consume log model: links a consumed transaction to what consumed it."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_merge.core.database import Base


class ConsumeLog(Base):
    """One consumption of a source ("cost") transaction.

    During a merge the consuming side is the consolidated transaction and
    ``amount`` is the full balance the source held at merge time.  Rows are
    written once and never updated.
    """

    __tablename__ = "consume_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    cost_transaction_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("credit_transactions.id"),
        nullable=False,
        index=True,
    )
    consume_transaction_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("credit_transactions.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # -- Relationships --
    cost_transaction: Mapped[CreditTransaction] = relationship(
        "CreditTransaction",
        foreign_keys=[cost_transaction_id],
        lazy="select",
    )
    consume_transaction: Mapped[CreditTransaction] = relationship(
        "CreditTransaction",
        foreign_keys=[consume_transaction_id],
        lazy="select",
    )

    def __repr__(self) -> str:
        return (
            f"<ConsumeLog(cost={self.cost_transaction_id!r}, "
            f"consume={self.consume_transaction_id!r}, amount={self.amount})>"
        )

"""Credit transaction model: one entry in an account's credit ledger."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Index, JSON, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_merge.core.database import Base


class CreditTransaction(Base):
    """A credit grant with its original amount and remaining balance.

    ``amount`` is what was granted and is never rewritten.  ``balance`` is
    what is still spendable; it drops to zero once the entry is consumed,
    either by spending or by being folded into a consolidated transaction.
    """

    __tablename__ = "credit_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )
    expire_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    event_no: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        nullable=False,
    )
    remark: Mapped[Optional[str]] = mapped_column(
        String(255),
    )
    context: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=func.now(),
    )

    # -- Relationships --
    account: Mapped[Account] = relationship(
        "Account",
        lazy="select",
    )

    __table_args__ = (
        Index("ix_credit_tx_account_balance", "account_id", "balance"),
        Index("ix_credit_tx_account_expire", "account_id", "expire_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<CreditTransaction(event_no={self.event_no!r}, "
            f"amount={self.amount}, balance={self.balance})>"
        )

"""Selection of small, untouched credit records eligible for merging."""

from __future__ import annotations

from decimal import Decimal
from typing import Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from credit_merge.core.exceptions import StorageError
from credit_merge.core.logging import get_logger
from credit_merge.models.account import Account
from credit_merge.models.transaction import CreditTransaction

logger = get_logger(__name__)

Amount = Union[Decimal, float, int, str]


def to_decimal(value: Amount) -> Decimal:
    """Convert a caller-supplied amount to a 2-place ``Decimal``."""
    return Decimal(str(value)).quantize(Decimal("0.01"))


def eligible_query(db: Session, account: Account, min_amount: Amount) -> Query:
    """Base query for an account's small-and-eligible records.

    A record qualifies when ``0 < balance <= min_amount`` and it has never
    been partially spent (``balance == amount``).
    """
    return (
        db.query(CreditTransaction)
        .filter(CreditTransaction.account_id == account.id)
        .filter(CreditTransaction.balance > 0)
        .filter(CreditTransaction.balance <= to_decimal(min_amount))
        .filter(CreditTransaction.balance == CreditTransaction.amount)
    )


class EligibilityFinder:
    """Read-only lookups of merge candidates, split by expiry presence."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_no_expiry(
        self, account: Account, min_amount: Amount
    ) -> list[CreditTransaction]:
        """Eligible records that never expire."""
        query = eligible_query(self.db, account, min_amount).filter(
            CreditTransaction.expire_time.is_(None)
        )
        records = self._fetch(query)
        logger.debug(
            "No-expiry small records: account=%s count=%d", account.id, len(records)
        )
        return records

    def find_with_expiry(
        self, account: Account, min_amount: Amount
    ) -> list[CreditTransaction]:
        """Eligible records with an expiry, earliest expiry first."""
        query = (
            eligible_query(self.db, account, min_amount)
            .filter(CreditTransaction.expire_time.isnot(None))
            .order_by(CreditTransaction.expire_time.asc(), CreditTransaction.created_at.asc())
        )
        records = self._fetch(query)
        logger.debug(
            "Expiring small records: account=%s count=%d", account.id, len(records)
        )
        return records

    def _fetch(self, query: Query) -> list[CreditTransaction]:
        try:
            return query.all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load small credit records: {exc}") from exc

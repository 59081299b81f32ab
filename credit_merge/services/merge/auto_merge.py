"""Merge triggered by a large consumption.

Before a big spend is applied, the ledger walk that pays for it may need to
touch a long tail of tiny records.  When the spend is large enough and the
walk would touch more than ``threshold`` records, the account's small
records are merged first.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from credit_merge.core.config import Settings
from credit_merge.core.logging import get_logger
from credit_merge.models.account import Account
from credit_merge.models.transaction import CreditTransaction
from credit_merge.services.merge.engine import MergeOrchestrator
from credit_merge.services.merge.finder import Amount, to_decimal
from credit_merge.services.merge.time_window import TimeWindowStrategy

logger = get_logger(__name__)

TRIGGERED_BATCH_SIZE = 100


@dataclass(frozen=True)
class AutoMergeConfig:
    """Knobs of the consumption-triggered merge.

    Attributes:
        enabled: Master switch.
        threshold: Merge when a consumption would touch more records than this.
        min_amount: Only consumptions of at least this amount can trigger.
        strategy: Time-window strategy of the triggered merge.
        merge_floor: Small-amount threshold used by the triggered merge.
    """

    enabled: bool = True
    threshold: int = 100
    min_amount: Decimal = Decimal("100.00")
    strategy: TimeWindowStrategy = TimeWindowStrategy.MONTH
    merge_floor: Decimal = Decimal("5.00")

    @classmethod
    def from_settings(cls, config: Settings) -> AutoMergeConfig:
        return cls(
            enabled=config.auto_merge_enabled,
            threshold=config.auto_merge_threshold,
            min_amount=to_decimal(config.auto_merge_min_amount),
            strategy=TimeWindowStrategy.from_string(config.auto_merge_strategy),
            merge_floor=to_decimal(config.auto_merge_floor),
        )


@dataclass(frozen=True)
class ConsumptionPreview:
    """How many records paying *cost_amount* would touch, capped at threshold + 1."""

    record_count: int
    threshold: int

    @property
    def needs_merge(self) -> bool:
        return self.record_count > self.threshold


class AutoMergeTrigger:
    """Runs a small-amount merge ahead of a large consumption when needed."""

    def __init__(
        self,
        db: Session,
        config: AutoMergeConfig,
        orchestrator: Optional[MergeOrchestrator] = None,
    ) -> None:
        self.db = db
        self.config = config
        self.orchestrator = orchestrator or MergeOrchestrator(db)

    def check_and_merge_if_needed(self, account: Account, cost_amount: Amount) -> int:
        """Merge the account's small records if *cost_amount* warrants it.

        Returns:
            Number of records merged; 0 when no merge was needed.
        """
        cost = to_decimal(cost_amount)
        if not self.config.enabled or cost < self.config.min_amount:
            return 0

        preview = self.consumption_preview(account, cost)
        if not preview.needs_merge:
            return 0

        logger.info(
            "Large consumption triggers merge: account=%s cost=%s records>%d strategy=%s",
            account.id,
            cost,
            self.config.threshold,
            self.config.strategy.value,
        )
        merged = self.orchestrator.merge_small_amounts(
            account,
            self.config.merge_floor,
            TRIGGERED_BATCH_SIZE,
            self.config.strategy,
        )
        logger.info(
            "Triggered merge completed: account=%s merged=%d", account.id, merged
        )
        return merged

    def consumption_preview(self, account: Account, cost: Decimal) -> ConsumptionPreview:
        """Walk spendable records in consumption order until *cost* is covered.

        Consumption order is earliest expiry first, never-expiring records
        last.  The walk stops after ``threshold + 1`` records since only
        crossing the threshold matters.
        """
        now = datetime.utcnow()
        records = (
            self.db.query(CreditTransaction.balance)
            .filter(CreditTransaction.account_id == account.id)
            .filter(CreditTransaction.balance > 0)
            .filter(
                or_(
                    CreditTransaction.expire_time.is_(None),
                    CreditTransaction.expire_time > now,
                )
            )
            .order_by(
                CreditTransaction.expire_time.is_(None),
                CreditTransaction.expire_time.asc(),
                CreditTransaction.created_at.asc(),
            )
            .limit(self.config.threshold + 1)
            .all()
        )

        covered = Decimal("0")
        count = 0
        for (balance,) in records:
            count += 1
            covered += Decimal(str(balance))
            if covered >= cost:
                break
        return ConsumptionPreview(record_count=count, threshold=self.config.threshold)

"""Pydantic schemas for merge requests, results and small-amount stats."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class MergeRequest(BaseModel):
    """Request body to merge one account's small credit records."""

    account_id: UUID = Field(..., description="Account to consolidate")
    min_amount: Decimal = Field(
        Decimal("5.0"),
        gt=0,
        description="Records with balance <= min_amount are merged",
    )
    batch_size: int = Field(100, ge=1, description="Records per batch (recorded)")
    strategy: str = Field(
        "month",
        description="day | week | month | all (daily/weekly/monthly accepted)",
    )
    dry_run: bool = Field(False, description="Compute stats only, change nothing")


class MergeResponse(BaseModel):
    """Outcome of a synchronous merge run."""

    operation_id: Optional[UUID] = None
    account_id: UUID
    strategy: str
    dry_run: bool
    merged_count: int
    records_before: int
    records_after: int
    status: str


class BatchMergeRequest(BaseModel):
    """Request body to merge several (or all) accounts in the background."""

    account_ids: Optional[list[UUID]] = Field(
        None,
        description="Accounts to merge; None = every account",
    )
    min_amount: Decimal = Field(Decimal("5.0"), gt=0)
    batch_size: int = Field(100, ge=1)
    strategy: str = Field("month")
    dry_run: bool = Field(False)


class GroupStatResponse(BaseModel):
    count: int
    total: Decimal
    earliest_expiry: Optional[datetime] = None


class SmallAmountStatsResponse(BaseModel):
    """Small-amount statistics with derived merge metrics."""

    account_id: UUID
    count: int
    total: Decimal
    threshold: Decimal
    strategy: Optional[str] = None
    average_amount: Decimal
    has_mergeable_records: bool
    potential_reduction: int
    merge_efficiency: float
    group_stats: dict[str, GroupStatResponse] = Field(default_factory=dict)

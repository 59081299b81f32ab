"""Pydantic schemas for merge operation and statistics records."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MergeOperationResponse(BaseModel):
    """Audit record of one merge run."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: UUID
    operation_time: datetime
    time_window_strategy: str
    min_amount_threshold: Decimal
    records_count_before: int = 0
    records_count_after: int = 0
    merged_records_count: int = 0
    total_amount: Optional[Decimal] = None
    batch_size: int
    is_dry_run: bool = False
    status: str = Field(
        ...,
        description="pending | running | success | failed | partial",
    )
    result_message: Optional[str] = None
    context: Optional[dict[str, Any]] = None
    execution_time: Optional[Decimal] = None
    created_at: Optional[datetime] = None


class MergeStatisticsResponse(BaseModel):
    """Snapshot of an account's merge potential."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: UUID
    statistics_time: datetime
    time_window_strategy: str
    min_amount_threshold: Decimal
    total_small_records: int = 0
    total_small_amount: Decimal
    mergeable_records: int = 0
    potential_record_reduction: int = 0
    merge_efficiency: Decimal
    average_amount: Decimal
    time_window_groups: int = 0
    group_stats: Optional[dict[str, Any]] = None
    context: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class OperationsSummary(BaseModel):
    total_operations: int = 0
    total_records_before: int = 0
    total_records_after: int = 0
    total_amount: Decimal = Decimal("0")
    records_reduction: int = 0


class StatisticsSummary(BaseModel):
    total_accounts: int = 0
    total_small_records: int = 0
    total_small_amount: Decimal = Decimal("0")
    total_mergeable_records: int = 0
    total_potential_reduction: int = 0
    average_merge_efficiency: float = 0.0

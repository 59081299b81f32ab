"""SQLAlchemy models for the credit small-amount merge service."""

from credit_merge.models.account import Account
from credit_merge.models.transaction import CreditTransaction
from credit_merge.models.consume_log import ConsumeLog
from credit_merge.models.merge_operation import MergeOperation
from credit_merge.models.merge_statistics import MergeStatistics

__all__ = [
    "Account",
    "CreditTransaction",
    "ConsumeLog",
    "MergeOperation",
    "MergeStatistics",
]

"""Project-wide custom exceptions."""

from __future__ import annotations


class CreditMergeError(Exception):
    """Base exception for the credit merge service."""


class StorageError(CreditMergeError):
    """Raised when the transaction store fails (query error, lost connection)."""


class InvalidStrategyError(CreditMergeError, ValueError):
    """Raised when a time-window strategy name is not recognised."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Invalid time window strategy: {value!r}")


class AccountNotFoundError(CreditMergeError):
    """Raised when an account id does not resolve to an account."""

    def __init__(self, account_id: object) -> None:
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")

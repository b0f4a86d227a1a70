"""
Vesting-specific exception hierarchy for vestlock.

Provides typed exceptions for ledger operations so callers can tell a
rejected precondition apart from an infrastructure failure and decide
whether retrying later makes sense.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingError(Exception):
    """Base exception for all vesting ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the caller may retry once the precondition holds
    """

    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if recoverable is not None:
            self.recoverable = recoverable


# ==================== Authorization Errors ====================


class UnauthorizedError(VestingError):
    """Raised when the caller is not a registered beneficiary or not the administrator."""
    pass


class ReentrancyError(VestingError):
    """Raised when a mutating operation is entered while another is still running."""
    pass


# ==================== Validation Errors ====================


class InvalidAmountError(VestingError):
    """Raised when a lock amount is zero, negative or not an integer."""
    pass


class InvalidRecipientError(VestingError):
    """Raised when a sweep destination is empty or the zero address."""
    pass


class InvalidScheduleError(VestingError):
    """Raised when a release schedule cannot be constructed.

    Examples: wrong number of checkpoints, timestamps not strictly increasing.
    """
    pass


class InvalidRegistryError(VestingError):
    """Raised when the beneficiary set or administrator identity is unusable."""
    pass


# ==================== Ledger State Errors ====================


class InsufficientFundsError(VestingError):
    """Raised when holder balance, allowance or custody balance is too low."""
    recoverable = True  # Can retry after funding or approving


class ScheduleNotElapsedError(VestingError):
    """Raised when a claim or sweep is attempted before its unlock time."""
    recoverable = True  # Can retry once the checkpoint passes

    def __init__(
        self,
        message: str,
        unlock_time: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.unlock_time = unlock_time


class NothingToClaimError(VestingError):
    """Raised when no new entitlement has accrued since the last claim."""
    recoverable = True  # Can retry after the next checkpoint


# ==================== Token Errors ====================


class TokenError(VestingError):
    """Raised when the asset token rejects an operation."""
    pass


# ==================== Storage Errors ====================


class StorageError(VestingError):
    """Raised when ledger snapshot storage operations fail."""
    pass


class CorruptedDataError(StorageError):
    """Raised when a stored ledger snapshot fails integrity checks."""
    pass


# ==================== Configuration Errors ====================


class ConfigurationError(VestingError):
    """Raised when required configuration is missing or invalid."""
    pass


__all__ = [
    "VestingError",
    "UnauthorizedError",
    "ReentrancyError",
    "InvalidAmountError",
    "InvalidRecipientError",
    "InvalidScheduleError",
    "InvalidRegistryError",
    "InsufficientFundsError",
    "ScheduleNotElapsedError",
    "NothingToClaimError",
    "TokenError",
    "StorageError",
    "CorruptedDataError",
    "ConfigurationError",
]

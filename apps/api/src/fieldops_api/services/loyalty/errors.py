"""Exceptions raised by loyalty approval workflows."""

from __future__ import annotations

from enum import Enum


class ApprovalError(RuntimeError):
    """Base exception for loyalty transition failures."""


class RecordNotFoundError(ApprovalError):
    """Raised when the record (or the account behind it) does not exist."""


class InvalidTransitionError(ApprovalError):
    """Raised when the requested status is not reachable from the current one."""

    def __init__(self, record: str, current_status: Enum, requested_status: Enum, reason: str | None = None) -> None:
        message = f"Cannot transition {record} from {current_status.value} to {requested_status.value}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.record = record
        self.current_status = current_status
        self.requested_status = requested_status


class InsufficientStockError(ApprovalError):
    """Raised when a reward does not hold enough stock for an approval."""

    def __init__(self, reward_id: int, available: int, required: int) -> None:
        super().__init__(
            f"Insufficient stock to approve. Available: {available}, Required: {required}"
        )
        self.reward_id = reward_id
        self.available = available
        self.required = required


class InsufficientPointsError(ApprovalError):
    """Raised when an account balance cannot cover a debit."""


class TransitionConflictError(ApprovalError):
    """Raised when a concurrent transition changed the record first."""

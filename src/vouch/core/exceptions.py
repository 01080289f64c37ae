# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Vouch Contributors

"""Custom exception hierarchy for Vouch.

Every public operation either returns a value or raises exactly one of
these. Collaborator failures during reward issuance are reported in the
operation's receipt instead of being raised.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class VouchException(Exception):  # noqa: N818
    """Base exception for all Vouch errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(VouchException):
    """Exception for validation errors.

    Raised when:
    - Input validation fails
    - Field values are out of range
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigException(VouchException):
    """Exception for configuration errors."""

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class NotFoundError(VouchException):
    """Exception for resource not found errors.

    Raised when:
    - Requested post id was never created
    """

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(VouchException):
    """Exception for conflict errors.

    Raised when:
    - Attempting to create a duplicate record
    """

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class AlreadyVerifiedError(ConflictError):
    """An identity tried to verify the same post a second time."""

    def __init__(self, post_id: int, identity: str):
        super().__init__(
            f"Identity {identity} already verified post {post_id}",
            existing_id=f"{post_id}:{identity}",
        )
        self.details.update({"post_id": post_id, "identity": identity})
        self.post_id = post_id
        self.identity = identity


class UnauthorizedError(VouchException):
    """The caller lacks the rights for a privileged pool operation."""

    def __init__(self, identity: str, operation: str):
        message = f"{identity} is not authorized to {operation}"
        super().__init__(message, {"identity": identity, "operation": operation})
        self.identity = identity
        self.operation = operation


class InvalidAmountError(ValidationException):
    """Zero or negative amount on deposit or sponsor."""

    def __init__(self, amount: Decimal, field: str = "amount"):
        super().__init__(f"Amount must be positive, got {amount}", field, amount)
        self.amount = amount


class InsufficientBalanceError(VouchException):
    """A sponsorship would exceed what the pool may pay out."""

    def __init__(self, requested: Decimal, available: Decimal):
        message = f"Requested {requested} exceeds available {available}"
        super().__init__(
            message,
            {"requested": str(requested), "available": str(available)},
        )
        self.requested = requested
        self.available = available


class NothingToWithdrawError(VouchException):
    """The platform fee computation yields zero."""

    def __init__(self, message: str = "No platform fee available to withdraw"):
        super().__init__(message)


class TransferFailedError(VouchException):
    """The funds-transfer collaborator rejected a payout.

    The pool reservation for the payout has already been reversed when
    this is raised.
    """

    def __init__(self, recipient: str, amount: Decimal, reason: str = "transfer rejected"):
        message = f"Transfer of {amount} to {recipient} failed: {reason}"
        super().__init__(
            message,
            {"recipient": recipient, "amount": str(amount), "reason": reason},
        )
        self.recipient = recipient
        self.amount = amount
        self.reason = reason

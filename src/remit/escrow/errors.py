"""Escrow error taxonomy.

Every failure the escrow can report is a distinct subclass of EscrowError
carrying a stable ``kind`` string, so collaborators can render targeted
messages without parsing text. Errors always abort the whole operation.
"""

from __future__ import annotations


class EscrowError(Exception):
    """Base class for all escrow failures."""

    kind = "EscrowError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)


# Malformed input, rejected before any mutation.

class InvalidRecipient(EscrowError):
    """Null or zero-sentinel identity where a real identity is required."""
    kind = "InvalidRecipient"


class InvalidAmount(EscrowError):
    """Amount is not a positive integer within the supported range."""
    kind = "InvalidAmount"


class InvalidPurpose(EscrowError):
    """Purpose is empty or exceeds the configured length."""
    kind = "InvalidPurpose"


class InvalidFee(EscrowError):
    """Fee rate outside [0, MAX_FEE_BPS]."""
    kind = "InvalidFee"


# Lookup.

class RemittanceNotFound(EscrowError):
    kind = "RemittanceNotFound"


# Caller-identity mismatch against a role.

class NotCreator(EscrowError):
    kind = "NotCreator"


class NotRecipient(EscrowError):
    kind = "NotRecipient"


class Unauthorized(EscrowError):
    """Caller is not the owner for an administrative operation."""
    kind = "Unauthorized"


# State-machine violations.

class TargetNotMet(EscrowError):
    kind = "TargetNotMet"


class AlreadyReleased(EscrowError):
    kind = "AlreadyReleased"


class AlreadyCancelled(EscrowError):
    kind = "AlreadyCancelled"


class ReentrantCall(EscrowError):
    """A mutating operation was entered while another was in progress."""
    kind = "ReentrantCall"


# Value movement.

class TransferFailed(EscrowError):
    """The transfer rail could not move value; the operation is rolled back."""
    kind = "TransferFailed"

"""Escrow notifications: the data each committed operation publishes.

The protocol emits one event per committed operation, inside the
operation's atomic block: if the listener fails, the operation is rolled
back. Delivery to off-chain observers is the listener's concern.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Tuple

from remit.models.remittance import Refund


@dataclass(frozen=True)
class EscrowEvent:
    """Base class for escrow notifications."""

    name: ClassVar[str] = "escrow_event"

    def payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RemittanceCreated(EscrowEvent):
    name: ClassVar[str] = "remittance_created"
    remittance_id: int
    creator: str
    recipient: str
    target_amount: int
    purpose: str


@dataclass(frozen=True)
class ContributionMade(EscrowEvent):
    name: ClassVar[str] = "contribution_made"
    remittance_id: int
    contributor: str
    amount: int
    new_total: int


@dataclass(frozen=True)
class FundsReleased(EscrowEvent):
    name: ClassVar[str] = "funds_released"
    remittance_id: int
    recipient: str
    amount: int
    platform_fee: int
    fee_collector: str


@dataclass(frozen=True)
class RemittanceCancelled(EscrowEvent):
    name: ClassVar[str] = "remittance_cancelled"
    remittance_id: int
    creator: str
    refunds: Tuple[Refund, ...]

    @property
    def total_refunded(self) -> int:
        return sum(r.amount for r in self.refunds)


@dataclass(frozen=True)
class PlatformFeeUpdated(EscrowEvent):
    name: ClassVar[str] = "platform_fee_updated"
    old_bps: int
    new_bps: int


@dataclass(frozen=True)
class FeeCollectorUpdated(EscrowEvent):
    name: ClassVar[str] = "fee_collector_updated"
    old_collector: str
    new_collector: str


@dataclass(frozen=True)
class OwnershipTransferred(EscrowEvent):
    name: ClassVar[str] = "ownership_transferred"
    previous_owner: str
    new_owner: str

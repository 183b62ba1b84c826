"""Remittance models: pooled-funding records, refunds, and fee configuration.

All amounts are integers in the smallest native-value unit. No floats and
no Decimal: the escrow never divides value except for the platform fee,
which rounds down.

Invariants enforced by these models:
- is_released and is_cancelled are mutually exclusive
- Once terminal, current_amount is frozen
- target_amount is positive and immutable
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


# Largest amount the escrow will hold for a single remittance or move
# in a single transfer (unsigned 256-bit range).
MAX_AMOUNT = 2**256 - 1

BPS_DENOMINATOR = 10_000

# Hard ceiling on the platform fee (5%). Deployments may lower it, never raise it.
MAX_FEE_BPS = 500


class RemittanceStatus(str, enum.Enum):
    """Observable lifecycle status of a remittance.

    State machine:
        ACTIVE → FUNDED → RELEASED
        ACTIVE → CANCELLED
        FUNDED → CANCELLED

    FUNDED is derived (current_amount >= target_amount), not stored.
    """
    ACTIVE = "active"
    FUNDED = "funded"
    RELEASED = "released"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FeeConfig:
    """Current platform fee configuration."""
    platform_fee_bps: int
    fee_collector: str
    max_fee_bps: int


@dataclass(frozen=True)
class Refund:
    """A single refund paid to a contributor on cancellation."""
    contributor: str
    amount: int


@dataclass
class Remittance:
    """A pooled-funding campaign with one recipient and a fixed target.

    Mutable: current_amount grows with contributions, and exactly one
    of release or cancel finalizes the record. Never deleted.
    """
    remittance_id: int
    creator: str
    recipient: str
    target_amount: int
    purpose: str
    created_utc: datetime
    current_amount: int = 0
    is_released: bool = False
    is_cancelled: bool = False
    released_utc: Optional[datetime] = None
    cancelled_utc: Optional[datetime] = None
    platform_fee: Optional[int] = None
    recipient_payout: Optional[int] = None
    refunds: list[Refund] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.is_released or self.is_cancelled

    @property
    def is_funded(self) -> bool:
        return self.current_amount >= self.target_amount

    @property
    def status(self) -> RemittanceStatus:
        if self.is_released:
            return RemittanceStatus.RELEASED
        if self.is_cancelled:
            return RemittanceStatus.CANCELLED
        if self.is_funded:
            return RemittanceStatus.FUNDED
        return RemittanceStatus.ACTIVE

    @property
    def progress_bps(self) -> int:
        """Funding progress in basis points, capped at 100%."""
        return min(
            BPS_DENOMINATOR,
            self.current_amount * BPS_DENOMINATOR // self.target_amount,
        )

    @property
    def remaining_amount(self) -> int:
        return max(0, self.target_amount - self.current_amount)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence and JSON output."""
        return {
            "remittance_id": self.remittance_id,
            "creator": self.creator,
            "recipient": self.recipient,
            "target_amount": self.target_amount,
            "current_amount": self.current_amount,
            "purpose": self.purpose,
            "created_utc": self.created_utc.isoformat(),
            "is_released": self.is_released,
            "is_cancelled": self.is_cancelled,
            "released_utc": (
                self.released_utc.isoformat() if self.released_utc else None
            ),
            "cancelled_utc": (
                self.cancelled_utc.isoformat() if self.cancelled_utc else None
            ),
            "platform_fee": self.platform_fee,
            "recipient_payout": self.recipient_payout,
            "refunds": [
                {"contributor": r.contributor, "amount": r.amount}
                for r in self.refunds
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Remittance:
        """Reconstruct a Remittance from persisted data."""
        return cls(
            remittance_id=data["remittance_id"],
            creator=data["creator"],
            recipient=data["recipient"],
            target_amount=data["target_amount"],
            current_amount=data["current_amount"],
            purpose=data["purpose"],
            created_utc=datetime.fromisoformat(data["created_utc"]),
            is_released=data["is_released"],
            is_cancelled=data["is_cancelled"],
            released_utc=(
                datetime.fromisoformat(data["released_utc"])
                if data.get("released_utc")
                else None
            ),
            cancelled_utc=(
                datetime.fromisoformat(data["cancelled_utc"])
                if data.get("cancelled_utc")
                else None
            ),
            platform_fee=data.get("platform_fee"),
            recipient_payout=data.get("recipient_payout"),
            refunds=[
                Refund(contributor=r["contributor"], amount=r["amount"])
                for r in data.get("refunds", [])
            ],
        )

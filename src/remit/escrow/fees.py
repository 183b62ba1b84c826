"""Fee policy: platform fee rate and fee collector.

The fee is taken once, on release, in basis points of the pooled amount:

    platform_fee = current_amount * platform_fee_bps // 10000
    recipient_payout = current_amount - platform_fee

Integer division rounds the fee down, so the recipient never receives
less than the exact proportional share. Refunds on cancel carry no fee.

Invariants:
- platform_fee_bps is always in [0, max_fee_bps]
- fee_collector is never a null identity
- platform_fee + recipient_payout == current_amount
"""

from __future__ import annotations

from typing import Any, Tuple

from remit.escrow.access import AuthorizationGuard, require_identity
from remit.escrow.errors import InvalidFee
from remit.models.remittance import BPS_DENOMINATOR, MAX_FEE_BPS, FeeConfig


class FeePolicy:
    """Holds the platform fee configuration; mutations are owner-gated.

    Usage:
        policy = FeePolicy(guard, fee_collector=owner, platform_fee_bps=50)
        fee, payout = policy.split(100)
        policy.set_platform_fee(owner, 100)
    """

    def __init__(
        self,
        guard: AuthorizationGuard,
        fee_collector: str,
        platform_fee_bps: int = 50,
        max_fee_bps: int = MAX_FEE_BPS,
    ) -> None:
        if not 0 <= max_fee_bps <= MAX_FEE_BPS:
            raise ValueError(f"max_fee_bps must be in [0, {MAX_FEE_BPS}], got {max_fee_bps}")
        self._guard = guard
        self._max_fee_bps = max_fee_bps
        self._validate_bps(platform_fee_bps)
        self._platform_fee_bps = platform_fee_bps
        self._fee_collector = require_identity(fee_collector)

    @property
    def platform_fee_bps(self) -> int:
        return self._platform_fee_bps

    @property
    def fee_collector(self) -> str:
        return self._fee_collector

    @property
    def max_fee_bps(self) -> int:
        return self._max_fee_bps

    def config(self) -> FeeConfig:
        return FeeConfig(
            platform_fee_bps=self._platform_fee_bps,
            fee_collector=self._fee_collector,
            max_fee_bps=self._max_fee_bps,
        )

    def compute_fee(self, amount: int) -> int:
        """Platform fee on amount, rounded down."""
        return amount * self._platform_fee_bps // BPS_DENOMINATOR

    def split(self, amount: int) -> Tuple[int, int]:
        """Return (platform_fee, recipient_payout) for a pooled amount."""
        fee = self.compute_fee(amount)
        return fee, amount - fee

    def set_platform_fee(self, caller: str, new_bps: int) -> int:
        """Replace the fee rate. Returns the previous rate.

        Raises Unauthorized for non-owners, InvalidFee above the ceiling.
        """
        self._guard.require_owner(caller)
        self._validate_bps(new_bps)
        previous = self._platform_fee_bps
        self._platform_fee_bps = new_bps
        return previous

    def set_fee_collector(self, caller: str, new_collector: str) -> str:
        """Replace the fee collector. Returns the previous collector.

        Raises Unauthorized for non-owners, InvalidRecipient for null.
        """
        self._guard.require_owner(caller)
        require_identity(new_collector)
        previous = self._fee_collector
        self._fee_collector = new_collector
        return previous

    def _validate_bps(self, bps: Any) -> None:
        if not isinstance(bps, int) or isinstance(bps, bool):
            raise InvalidFee(f"Fee must be an integer number of basis points, got {bps!r}")
        if bps < 0 or bps > self._max_fee_bps:
            raise InvalidFee(
                f"Fee {bps} bps outside [0, {self._max_fee_bps}]"
            )

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform_fee_bps": self._platform_fee_bps,
            "fee_collector": self._fee_collector,
        }

    def restore(self, data: dict[str, Any]) -> None:
        """Load persisted fee configuration (startup only)."""
        self._validate_bps(data["platform_fee_bps"])
        self._platform_fee_bps = data["platform_fee_bps"]
        self._fee_collector = require_identity(data["fee_collector"])

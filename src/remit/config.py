"""Escrow deployment parameters.

Loaded from config/escrow_params.json. The defaults match a fresh
deployment: 0.5% platform fee, 5% ceiling, 200-character purpose, and a
reference price of 1.0 at 8 decimals when no oracle is wired.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from remit.models.remittance import MAX_FEE_BPS


DEFAULT_CONFIG_PATH = (
    Path(__file__).resolve().parents[2] / "config" / "escrow_params.json"
)


@dataclass(frozen=True)
class EscrowParams:
    """Deployment configuration for the escrow core.

    All values are fixed at startup. Fee changes after deployment go
    through the owner-gated set_platform_fee operation, never through
    this object.
    """

    default_platform_fee_bps: int = 50
    max_fee_bps: int = MAX_FEE_BPS
    max_purpose_length: int = 200
    default_reference_price: int = 100_000_000
    price_decimals: int = 8

    def __post_init__(self) -> None:
        for name in (
            "default_platform_fee_bps",
            "max_fee_bps",
            "max_purpose_length",
            "default_reference_price",
            "price_decimals",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        if not 0 <= self.max_fee_bps <= MAX_FEE_BPS:
            raise ValueError(
                f"max_fee_bps must be in [0, {MAX_FEE_BPS}], got {self.max_fee_bps}"
            )
        if not 0 <= self.default_platform_fee_bps <= self.max_fee_bps:
            raise ValueError(
                f"default_platform_fee_bps ({self.default_platform_fee_bps}) "
                f"must be in [0, max_fee_bps={self.max_fee_bps}]"
            )
        if self.max_purpose_length <= 0:
            raise ValueError("max_purpose_length must be positive")
        if self.default_reference_price <= 0:
            raise ValueError("default_reference_price must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EscrowParams:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    @classmethod
    def from_config_file(cls, path: Optional[Path] = None) -> EscrowParams:
        """Load from escrow_params.json (defaults to the repo config dir)."""
        config_path = path or DEFAULT_CONFIG_PATH
        params = json.loads(config_path.read_text(encoding="utf-8"))
        return cls.from_dict(params["escrow"])

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> EscrowParams:
        return cls.from_config_file(config_dir / "escrow_params.json")

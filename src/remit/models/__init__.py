"""Core data models for remittance escrow."""

from remit.models.remittance import (
    FeeConfig,
    Refund,
    Remittance,
    RemittanceStatus,
)

__all__ = [
    "FeeConfig",
    "Refund",
    "Remittance",
    "RemittanceStatus",
]

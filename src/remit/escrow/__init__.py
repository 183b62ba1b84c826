"""Escrow core: registry, contribution ledger, fees, guard, lock, protocol."""

from remit.escrow.fees import FeePolicy
from remit.escrow.ledger import ContributionLedger
from remit.escrow.lock import ReentrancyLock
from remit.escrow.protocol import EscrowProtocol
from remit.escrow.registry import RemittanceRegistry
from remit.escrow.transfer import InMemoryRail, TransferRail

__all__ = [
    "ContributionLedger",
    "EscrowProtocol",
    "FeePolicy",
    "InMemoryRail",
    "ReentrancyLock",
    "RemittanceRegistry",
    "TransferRail",
]

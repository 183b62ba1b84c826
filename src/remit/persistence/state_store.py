"""State store: durable snapshot of the escrow between process runs.

The store holds the full escrow state as one JSON document:
registry (records and indexes), contribution ledger, fee configuration,
owner, and, when the in-memory rail is used, its balance book.

Writes go to a temporary file that replaces the previous snapshot, so a
crash mid-write leaves the last good snapshot in place.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from remit.escrow.fees import FeePolicy
from remit.escrow.ledger import ContributionLedger
from remit.escrow.registry import RemittanceRegistry


STATE_VERSION = 1


@dataclass
class PersistedState:
    """Escrow state as loaded from disk."""
    owner: str
    fees: dict[str, Any]
    registry: RemittanceRegistry
    ledger: ContributionLedger
    rail: Optional[dict[str, Any]] = None


class StateStore:
    """JSON snapshot persistence for the escrow core."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def path(self) -> Path:
        return self._storage_path

    def exists(self) -> bool:
        return self._storage_path.exists()

    def save(
        self,
        owner: str,
        fee_policy: FeePolicy,
        registry: RemittanceRegistry,
        ledger: ContributionLedger,
        rail: Optional[dict[str, Any]] = None,
    ) -> None:
        """Write a full snapshot. Raises OSError on I/O failure."""
        document = {
            "version": STATE_VERSION,
            "owner": owner,
            "fees": fee_policy.to_dict(),
            "registry": registry.to_dict(),
            "ledger": ledger.to_dict(),
            "rail": rail,
        }
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self._storage_path)

    def load(self, max_purpose_length: int = 200) -> Optional[PersistedState]:
        """Load the last snapshot, or None if nothing has been saved yet."""
        if not self._storage_path.exists():
            return None
        document = json.loads(self._storage_path.read_text(encoding="utf-8"))
        version = document.get("version")
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported state version: {version}")
        return PersistedState(
            owner=document["owner"],
            fees=document["fees"],
            registry=RemittanceRegistry.from_dict(
                document["registry"], max_purpose_length=max_purpose_length,
            ),
            ledger=ContributionLedger.from_dict(document["ledger"]),
            rail=document.get("rail"),
        )

"""Remittance registry: the authoritative store of remittance records.

Records are assigned sequential zero-based ids, indexed by creator and by
recipient at creation time, and never deleted. The registry validates
record shape; lifecycle rules (who may release, when) live in the
protocol.

Lifecycle:
    create → (contributions) → released | cancelled

The registry is a pure store. No value moves here and no events are
emitted. Event recording is handled by the service layer.
"""

from __future__ import annotations

import copy
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from remit.escrow.access import require_identity
from remit.escrow.errors import InvalidAmount, InvalidPurpose, RemittanceNotFound
from remit.models.remittance import MAX_AMOUNT, Remittance


def require_amount(amount: Any, what: str = "Amount") -> int:
    """Return amount if it is a positive int within MAX_AMOUNT."""
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmount(f"{what} must be an integer, got {amount!r}")
    if amount <= 0:
        raise InvalidAmount(f"{what} must be positive, got {amount}")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"{what} exceeds maximum supported value")
    return amount


class RemittanceRegistry:
    """Stores remittance records and their creator/recipient indexes.

    Usage:
        registry = RemittanceRegistry(max_purpose_length=200)
        record = registry.create("0xcreator", "0xrecipient", 100, "School fees")
        registry.get(record.remittance_id)
        registry.ids_by_creator("0xcreator")   # [0]
    """

    def __init__(self, max_purpose_length: int = 200) -> None:
        self._max_purpose_length = max_purpose_length
        self._remittances: Dict[int, Remittance] = {}
        self._next_id = 0
        self._by_creator: Dict[str, List[int]] = {}
        self._by_recipient: Dict[str, List[int]] = {}

    def create(
        self,
        creator: str,
        recipient: str,
        target_amount: int,
        purpose: str,
        now: Optional[datetime] = None,
    ) -> Remittance:
        """Create a new remittance record with the next sequential id.

        Args:
            creator: The calling identity.
            recipient: The identity allowed to release funds.
            target_amount: Positive target in the smallest value unit.
            purpose: Non-empty description, bounded length.
            now: Creation time (defaults to UTC now).

        Returns:
            The created Remittance.

        Raises:
            InvalidRecipient: creator or recipient is null or the zero sentinel.
            InvalidAmount: target is not a positive integer in range.
            InvalidPurpose: purpose is empty or too long.
        """
        require_identity(creator)
        require_identity(recipient)
        require_amount(target_amount, "Target amount")
        if not isinstance(purpose, str) or not purpose.strip():
            raise InvalidPurpose("Purpose must be a non-empty string")
        if len(purpose) > self._max_purpose_length:
            raise InvalidPurpose(
                f"Purpose must be {self._max_purpose_length} characters or less"
            )
        if now is None:
            now = datetime.now(timezone.utc)

        remittance_id = self._next_id
        record = Remittance(
            remittance_id=remittance_id,
            creator=creator,
            recipient=recipient,
            target_amount=target_amount,
            purpose=purpose,
            created_utc=now,
        )
        self._remittances[remittance_id] = record
        self._next_id += 1
        self._by_creator.setdefault(creator, []).append(remittance_id)
        self._by_recipient.setdefault(recipient, []).append(remittance_id)
        return record

    def get(self, remittance_id: int) -> Remittance:
        """Look up a record; raises RemittanceNotFound for unknown ids."""
        record = None
        if isinstance(remittance_id, int) and not isinstance(remittance_id, bool):
            record = self._remittances.get(remittance_id)
        if record is None:
            raise RemittanceNotFound(f"Unknown remittance ID: {remittance_id}")
        return record

    def exists(self, remittance_id: int) -> bool:
        return remittance_id in self._remittances

    def ids_by_creator(self, creator: str) -> List[int]:
        return list(self._by_creator.get(creator, []))

    def ids_by_recipient(self, recipient: str) -> List[int]:
        return list(self._by_recipient.get(recipient, []))

    def all(self) -> List[Remittance]:
        return [self._remittances[rid] for rid in sorted(self._remittances)]

    @property
    def count(self) -> int:
        return self._next_id

    # ------------------------------------------------------------------
    # Rollback support
    # ------------------------------------------------------------------

    def snapshot(self, remittance_id: int) -> Remittance:
        return copy.deepcopy(self.get(remittance_id))

    def discard_latest(self, remittance_id: int) -> None:
        """Undo the most recent create (failed notification only).

        Committed records are never deleted; this only unwinds a create
        that has not yet returned its id to the caller.
        """
        if remittance_id != self._next_id - 1 or remittance_id not in self._remittances:
            raise ValueError(f"Remittance {remittance_id} is not the latest record")
        record = self._remittances.pop(remittance_id)
        self._next_id -= 1
        self._by_creator[record.creator].remove(remittance_id)
        if not self._by_creator[record.creator]:
            del self._by_creator[record.creator]
        self._by_recipient[record.recipient].remove(remittance_id)
        if not self._by_recipient[record.recipient]:
            del self._by_recipient[record.recipient]

    def restore(self, record: Remittance) -> None:
        """Put back a snapshot taken before a failed operation.

        Restores in place so references handed out earlier stay valid.
        """
        current = self._remittances[record.remittance_id]
        for f in fields(record):
            setattr(current, f.name, getattr(record, f.name))

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_id": self._next_id,
            "remittances": [r.to_dict() for r in self.all()],
            "by_creator": {k: list(v) for k, v in self._by_creator.items()},
            "by_recipient": {k: list(v) for k, v in self._by_recipient.items()},
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        max_purpose_length: int = 200,
    ) -> RemittanceRegistry:
        registry = cls(max_purpose_length=max_purpose_length)
        for item in data.get("remittances", []):
            record = Remittance.from_dict(item)
            registry._remittances[record.remittance_id] = record
        registry._next_id = data.get("next_id", len(registry._remittances))
        registry._by_creator = {
            k: list(v) for k, v in data.get("by_creator", {}).items()
        }
        registry._by_recipient = {
            k: list(v) for k, v in data.get("by_recipient", {}).items()
        }
        return registry

"""Authorization guard: owner, creator, and recipient role checks.

Roles are explicit predicates evaluated per call against stored role
fields. There is no inheritance-based access control: every gated
operation names the check it needs.
"""

from __future__ import annotations

from typing import Optional

from remit.escrow.errors import InvalidRecipient, NotCreator, NotRecipient, Unauthorized
from remit.models.remittance import Remittance


ZERO_ADDRESS = "0x" + "0" * 40


def is_null_identity(identity: Optional[str]) -> bool:
    """True for None, blank strings, and the zero-address sentinel."""
    if identity is None or not isinstance(identity, str):
        return True
    stripped = identity.strip()
    if not stripped:
        return True
    return stripped.lower() == ZERO_ADDRESS


def require_identity(identity: Optional[str]) -> str:
    """Return the identity unchanged, or raise InvalidRecipient if null."""
    if is_null_identity(identity):
        raise InvalidRecipient(f"Invalid identity: {identity!r}")
    return identity  # type: ignore[return-value]


class AuthorizationGuard:
    """Single-owner access control plus per-remittance role checks.

    Usage:
        guard = AuthorizationGuard(owner="0xabc...")
        guard.require_owner(caller)
        guard.require_creator(record, caller)
    """

    def __init__(self, owner: str) -> None:
        self._owner = require_identity(owner)

    @property
    def owner(self) -> str:
        return self._owner

    def is_owner(self, caller: str) -> bool:
        return caller == self._owner

    def require_owner(self, caller: str) -> None:
        if not self.is_owner(caller):
            raise Unauthorized(f"Caller {caller} is not the owner")

    def require_creator(self, record: Remittance, caller: str) -> None:
        if caller != record.creator:
            raise NotCreator(
                f"Caller {caller} is not the creator of remittance {record.remittance_id}"
            )

    def require_recipient(self, record: Remittance, caller: str) -> None:
        if caller != record.recipient:
            raise NotRecipient(
                f"Caller {caller} is not the recipient of remittance {record.remittance_id}"
            )

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        """Hand ownership to a new identity. Returns the previous owner."""
        self.require_owner(caller)
        require_identity(new_owner)
        previous = self._owner
        self._owner = new_owner
        return previous

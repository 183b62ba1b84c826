"""Transfer rail abstraction: how value enters and leaves escrow custody.

The escrow protocol never touches balances directly. It pulls
contributions into custody and pushes payouts and refunds out through a
TransferRail, inside a rail transaction:

    with rail.transaction():
        rail.send(fee_collector, fee)
        rail.send(recipient, payout)

If anything inside the block raises, every movement made in it is undone,
so a release or cancel can never leave a partial payout behind.

Sending value may hand control to the receiving identity (a receive
hook). Hooks can call back into the escrow; the protocol's reentrancy
lock rejects such calls, and the rejection surfaces here as
TransferFailed, which aborts the outer operation.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Set, Tuple, runtime_checkable

from remit.escrow.errors import TransferFailed


ReceiveHook = Callable[[str, int], None]


@runtime_checkable
class TransferRail(Protocol):
    """Contract any value-transfer backend must satisfy.

    Adding a new rail = implement this Protocol and hand it to the
    protocol. Zero changes to registry, ledger, or fee logic.
    """

    @property
    def rail_id(self) -> str:
        """Unique identifier (e.g., 'memory', 'celo_native')."""
        ...

    def collect(self, sender: str, amount: int) -> None:
        """Move amount from sender into escrow custody."""
        ...

    def send(self, recipient: str, amount: int) -> None:
        """Move amount from escrow custody to recipient."""
        ...

    def transaction(self) -> Any:
        """Context manager: commit on clean exit, undo on exception."""
        ...


class InMemoryRail:
    """Reference rail: a balance book plus a single custody balance.

    Supports receive hooks (code run when an identity is paid) and
    blocked identities (recipients that reject value), which is enough
    to exercise reentrancy and refund-failure paths.

    Usage:
        rail = InMemoryRail(balances={"alice": 100})
        with rail.transaction():
            rail.collect("alice", 60)
        rail.custody        # 60
        rail.balance_of("alice")   # 40
    """

    def __init__(
        self,
        balances: Optional[Dict[str, int]] = None,
        rail_id: str = "memory",
    ) -> None:
        self._rail_id = rail_id
        self._balances: Dict[str, int] = dict(balances or {})
        self._custody = 0
        self._hooks: Dict[str, ReceiveHook] = {}
        self._blocked: Set[str] = set()
        self._journal: List[Tuple[str, str, int]] = []
        self._depth = 0

    @property
    def rail_id(self) -> str:
        return self._rail_id

    @property
    def custody(self) -> int:
        """Value currently held by the escrow."""
        return self._custody

    def balance_of(self, identity: str) -> int:
        return self._balances.get(identity, 0)

    def fund(self, identity: str, amount: int) -> None:
        """Credit an external wallet (test setup and local tooling)."""
        if amount <= 0:
            raise ValueError(f"Funding amount must be positive, got {amount}")
        self._balances[identity] = self._balances.get(identity, 0) + amount

    def register_hook(self, identity: str, hook: ReceiveHook) -> None:
        """Run hook(identity, amount) whenever identity is paid."""
        self._hooks[identity] = hook

    def block(self, identity: str) -> None:
        """Make every payment to identity fail."""
        self._blocked.add(identity)

    def unblock(self, identity: str) -> None:
        self._blocked.discard(identity)

    def collect(self, sender: str, amount: int) -> None:
        available = self._balances.get(sender, 0)
        if amount > available:
            raise TransferFailed(
                f"Insufficient balance for {sender}: {available} < {amount}"
            )
        self._balances[sender] = available - amount
        self._custody += amount
        if self._depth:
            self._journal.append(("collect", sender, amount))

    def send(self, recipient: str, amount: int) -> None:
        if recipient in self._blocked:
            raise TransferFailed(f"Recipient {recipient} rejected transfer")
        if amount > self._custody:
            raise TransferFailed(
                f"Escrow custody underfunded: {self._custody} < {amount}"
            )
        self._custody -= amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        if self._depth:
            self._journal.append(("send", recipient, amount))

        hook = self._hooks.get(recipient)
        if hook is not None:
            try:
                hook(recipient, amount)
            except Exception as e:
                raise TransferFailed(
                    f"Transfer to {recipient} failed in receive hook: {e}"
                ) from e

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Savepoint-style transaction; nested blocks undo only their own part."""
        mark = len(self._journal)
        self._depth += 1
        try:
            yield
        except BaseException:
            self._undo_to(mark)
            raise
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._journal.clear()

    def _undo_to(self, mark: int) -> None:
        while len(self._journal) > mark:
            kind, identity, amount = self._journal.pop()
            if kind == "collect":
                self._custody -= amount
                self._balances[identity] = self._balances.get(identity, 0) + amount
            else:
                self._balances[identity] -= amount
                self._custody += amount

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "rail_id": self._rail_id,
            "custody": self._custody,
            "balances": dict(self._balances),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InMemoryRail:
        rail = cls(balances=data.get("balances", {}), rail_id=data.get("rail_id", "memory"))
        rail._custody = data.get("custody", 0)
        return rail

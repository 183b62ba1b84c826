"""Contribution ledger: who put how much into which remittance.

For every remittance the ledger keeps:
- a cumulative amount per contributor (accumulates across repeat
  contributions, never resets while the remittance is active)
- an ordered set of distinct contributors (insertion order preserved,
  each identity at most once)

On cancellation the entries are settled to zero and the amounts returned
as refunds. The contributor list itself is never trimmed.
"""

from __future__ import annotations

from typing import Any, Dict, List, Set, Tuple

from remit.models.remittance import Refund


class ContributionLedger:
    """In-memory per-remittance contribution ledger.

    Usage:
        ledger = ContributionLedger()
        total, first_time = ledger.record(0, "alice", 60)
        ledger.contribution_of(0, "alice")   # 60
        refunds = ledger.settle_refunds(0)
    """

    def __init__(self) -> None:
        self._entries: Dict[int, Dict[str, int]] = {}
        self._contributors: Dict[int, List[str]] = {}
        self._members: Dict[int, Set[str]] = {}

    def open(self, remittance_id: int) -> None:
        """Start an empty ledger for a newly created remittance."""
        if remittance_id in self._entries:
            raise ValueError(f"Ledger already open for remittance {remittance_id}")
        self._entries[remittance_id] = {}
        self._contributors[remittance_id] = []
        self._members[remittance_id] = set()

    def discard(self, remittance_id: int) -> None:
        """Drop an empty ledger opened for a create that did not commit."""
        self._entries.pop(remittance_id, None)
        self._contributors.pop(remittance_id, None)
        self._members.pop(remittance_id, None)

    def record(self, remittance_id: int, contributor: str, amount: int) -> Tuple[int, bool]:
        """Add amount to the contributor's entry.

        Returns (new cumulative entry, whether this was the contributor's
        first contribution to the remittance).
        """
        entries = self._entries[remittance_id]
        first_time = contributor not in self._members[remittance_id]
        if first_time:
            self._members[remittance_id].add(contributor)
            self._contributors[remittance_id].append(contributor)
        entries[contributor] = entries.get(contributor, 0) + amount
        return entries[contributor], first_time

    def contribution_of(self, remittance_id: int, contributor: str) -> int:
        return self._entries.get(remittance_id, {}).get(contributor, 0)

    def contributors_of(self, remittance_id: int) -> List[str]:
        return list(self._contributors.get(remittance_id, []))

    def total_of(self, remittance_id: int) -> int:
        """Sum of all open entries for a remittance."""
        return sum(self._entries.get(remittance_id, {}).values())

    def settle_refunds(self, remittance_id: int) -> List[Refund]:
        """Zero every entry and return what each contributor is owed.

        Contributors are returned in contribution order; identities with
        nothing outstanding are skipped.
        """
        entries = self._entries[remittance_id]
        refunds: List[Refund] = []
        for contributor in self._contributors[remittance_id]:
            owed = entries.get(contributor, 0)
            if owed > 0:
                refunds.append(Refund(contributor=contributor, amount=owed))
            entries[contributor] = 0
        return refunds

    # ------------------------------------------------------------------
    # Rollback support
    # ------------------------------------------------------------------

    def snapshot(self, remittance_id: int) -> Tuple[Dict[str, int], List[str]]:
        return (
            dict(self._entries[remittance_id]),
            list(self._contributors[remittance_id]),
        )

    def restore(
        self,
        remittance_id: int,
        snapshot: Tuple[Dict[str, int], List[str]],
    ) -> None:
        entries, contributors = snapshot
        self._entries[remittance_id] = dict(entries)
        self._contributors[remittance_id] = list(contributors)
        self._members[remittance_id] = set(contributors)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize ledger state for persistence."""
        return {
            str(rid): {
                "contributors": list(self._contributors[rid]),
                "entries": dict(self._entries[rid]),
            }
            for rid in self._entries
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContributionLedger:
        ledger = cls()
        for rid_str, item in data.items():
            rid = int(rid_str)
            ledger._entries[rid] = dict(item["entries"])
            ledger._contributors[rid] = list(item["contributors"])
            ledger._members[rid] = set(item["contributors"])
        return ledger

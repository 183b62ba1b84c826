"""Remit service: facade over the escrow core with audit and persistence.

This is the primary interface for programmatic access. It wires:
- The escrow protocol (create, contribute, release, cancel, admin)
- The audit event log (every committed operation is recorded)
- The state store (snapshot after every committed operation)

All operations return a ServiceResult. Escrow failures come back with
success=False and their error kind in data["error"], so callers can
render targeted messages. Audit-trail events are never silently
dropped: if the event log cannot be written, the operation is rolled
back and reported as failed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from remit.config import EscrowParams
from remit.escrow.errors import EscrowError
from remit.escrow.events import EscrowEvent
from remit.escrow.ledger import ContributionLedger
from remit.escrow.price_feed import PriceOracle, format_price
from remit.escrow.protocol import EscrowProtocol
from remit.escrow.registry import RemittanceRegistry
from remit.escrow.transfer import InMemoryRail, TransferRail
from remit.models.remittance import Remittance
from remit.persistence.event_log import EventKind, EventLog, EventRecord
from remit.persistence.state_store import StateStore


logger = structlog.get_logger(__name__)


class AuditTrailError(Exception):
    """The event log could not record a committed operation."""


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class RemitService:
    """Unified escrow facade.

    Usage:
        service = RemitService.open(owner="0xowner", rail=InMemoryRail())

        result = service.create_remittance("0xcreator", "0xrecipient", 100, "Rent")
        rid = result.data["remittance_id"]
        service.contribute("0xalice", rid, 60)
        service.contribute("0xbob", rid, 40)
        service.release_funds("0xrecipient", rid)

    Persistence (optional):
        service = RemitService.open(
            owner, rail, event_log=EventLog(path), state_store=StateStore(path),
        )
        # State is persisted on each committed operation and loaded on open.
    """

    def __init__(
        self,
        protocol: EscrowProtocol,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._protocol = protocol
        self._event_log = event_log
        self._state_store = state_store
        self._event_counter = event_log.count if event_log is not None else 0
        self._persistence_degraded = False
        protocol.set_listener(self._record_event)

    @classmethod
    def open(
        cls,
        owner: str,
        rail: Optional[TransferRail] = None,
        params: Optional[EscrowParams] = None,
        oracle: Optional[PriceOracle] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> RemitService:
        """Build a service, restoring persisted state when a store has one.

        A restored snapshot wins over the owner argument: ownership only
        changes through transfer_ownership.
        """
        params = params or EscrowParams()
        persisted = (
            state_store.load(max_purpose_length=params.max_purpose_length)
            if state_store is not None
            else None
        )

        registry: Optional[RemittanceRegistry] = None
        ledger: Optional[ContributionLedger] = None
        if persisted is not None:
            owner = persisted.owner
            registry = persisted.registry
            ledger = persisted.ledger
            if rail is None and persisted.rail is not None:
                rail = InMemoryRail.from_dict(persisted.rail)

        protocol = EscrowProtocol(
            owner=owner,
            rail=rail if rail is not None else InMemoryRail(),
            params=params,
            oracle=oracle,
            registry=registry,
            ledger=ledger,
        )
        if persisted is not None:
            protocol.fee_policy.restore(persisted.fees)
            logger.info(
                "escrow_state_restored",
                remittances=protocol.total_count(),
                path=str(state_store.path),
            )
        return cls(protocol, event_log=event_log, state_store=state_store)

    @property
    def protocol(self) -> EscrowProtocol:
        return self._protocol

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_remittance(
        self,
        caller: str,
        recipient: str,
        target_amount: int,
        purpose: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Open a new remittance for recipient."""
        return self._execute(
            lambda: {
                "remittance_id": self._protocol.create(
                    caller, recipient, target_amount, purpose, now=now,
                ),
            }
        )

    def contribute(
        self,
        caller: str,
        remittance_id: int,
        amount: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._execute(
            lambda: self._protocol.contribute(
                caller, remittance_id, amount, now=now,
            ).payload()
        )

    def release_funds(
        self,
        caller: str,
        remittance_id: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._execute(
            lambda: self._protocol.release(caller, remittance_id, now=now).payload()
        )

    def cancel_remittance(
        self,
        caller: str,
        remittance_id: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        def _cancel() -> dict[str, Any]:
            event = self._protocol.cancel(caller, remittance_id, now=now)
            data = event.payload()
            data["total_refunded"] = event.total_refunded
            return data

        return self._execute(_cancel)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def set_platform_fee(self, caller: str, new_bps: int) -> ServiceResult:
        return self._execute(
            lambda: self._protocol.set_platform_fee(caller, new_bps).payload()
        )

    def set_fee_collector(self, caller: str, new_collector: str) -> ServiceResult:
        return self._execute(
            lambda: self._protocol.set_fee_collector(caller, new_collector).payload()
        )

    def transfer_ownership(self, caller: str, new_owner: str) -> ServiceResult:
        return self._execute(
            lambda: self._protocol.transfer_ownership(caller, new_owner).payload()
        )

    def fund_wallet(self, identity: str, amount: int) -> ServiceResult:
        """Credit an external wallet on the in-memory rail (local tooling)."""
        rail = self._protocol.rail
        if not isinstance(rail, InMemoryRail):
            return ServiceResult(
                success=False,
                errors=[f"Rail '{rail.rail_id}' does not support local funding"],
            )
        try:
            rail.fund(identity, amount)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])
        data: dict[str, Any] = {"identity": identity, "balance": rail.balance_of(identity)}
        warning = self._safe_persist_post_audit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_remittance(self, remittance_id: int) -> Optional[Remittance]:
        try:
            return self._protocol.get(remittance_id)
        except EscrowError:
            return None

    def describe_remittance(self, remittance_id: int) -> ServiceResult:
        """Full read-only view of one remittance, including its contributors."""
        try:
            record = self._protocol.get(remittance_id)
            quote = self._protocol.quote_release(remittance_id)
        except EscrowError as e:
            return self._failure(e)
        data = record.to_dict()
        data.update({
            "status": record.status.value,
            "progress_bps": record.progress_bps,
            "remaining_amount": record.remaining_amount,
            "contributors": [
                {
                    "contributor": c,
                    "amount": self._protocol.contribution_of(remittance_id, c),
                }
                for c in self._protocol.contributors_of(remittance_id)
            ],
            "release_quote": {
                "platform_fee": quote.platform_fee,
                "recipient_payout": quote.recipient_payout,
            },
        })
        return ServiceResult(success=True, data=data)

    def status(self) -> dict[str, Any]:
        fee = self._protocol.fee_config()
        price = self._protocol.reference_price()
        counts: dict[str, int] = {}
        for record in self._protocol.registry.all():
            counts[record.status.value] = counts.get(record.status.value, 0) + 1
        return {
            "owner": self._protocol.owner,
            "total_remittances": self._protocol.total_count(),
            "remittances_by_status": counts,
            "platform_fee_bps": fee.platform_fee_bps,
            "max_fee_bps": fee.max_fee_bps,
            "fee_collector": fee.fee_collector,
            "reference_price": price,
            "reference_price_display": format_price(
                price, self._protocol.params.price_decimals,
            ),
            "rail": self._protocol.rail.rail_id,
            "events_recorded": self._event_log.count if self._event_log else 0,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(self, operation: Callable[[], dict[str, Any]]) -> ServiceResult:
        """Run a protocol operation and translate its outcome."""
        try:
            data = operation()
        except EscrowError as e:
            return self._failure(e)
        except AuditTrailError as e:
            # Raised from the listener; the protocol has already rolled
            # the operation back.
            return ServiceResult(
                success=False,
                errors=[f"Audit-trail failure: {e}"],
                data={"error": "AuditFailure"},
            )

        warning = self._safe_persist_post_audit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    @staticmethod
    def _failure(error: EscrowError) -> ServiceResult:
        return ServiceResult(
            success=False,
            errors=[str(error)],
            data={"error": error.kind},
        )

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(self, event: EscrowEvent, caller: str, now: datetime) -> None:
        """Protocol listener: durably append the event or raise.

        Raising here makes the protocol roll the operation back, so no
        committed operation is ever missing from the audit trail.
        """
        if self._event_log is None:
            return
        record = EventRecord.create(
            event_id=self._next_event_id(),
            event_kind=EventKind(event.name),
            actor_id=caller,
            payload=event.payload(),
            timestamp_utc=now,
        )
        try:
            self._event_log.append(record)
        except (ValueError, OSError) as e:
            self._event_counter -= 1
            raise AuditTrailError(str(e)) from e

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired).

        Can raise OSError; callers go through _safe_persist_post_audit.
        """
        if self._state_store is None:
            return
        rail = self._protocol.rail
        self._state_store.save(
            owner=self._protocol.owner,
            fee_policy=self._protocol.fee_policy,
            registry=self._protocol.registry,
            ledger=self._protocol.ledger,
            rail=rail.to_dict() if isinstance(rail, InMemoryRail) else None,
        )

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after audit events have been committed.

        MUST NOT roll back in-memory state: the audit trail is already
        durable. On failure, sets the degraded flag and returns a warning.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("state_persist_failed", error=str(e))
            return (
                f"Persistence degraded: {e}. State committed in audit trail "
                f"but StateStore is stale"
            )

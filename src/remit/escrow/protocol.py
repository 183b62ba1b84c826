"""Escrow protocol: create, contribute, release, cancel.

This is the only way to mutate escrow state. Each operation:

1. Takes the reentrancy lock for its full duration.
2. Runs every check before touching state (fail fast, nothing to undo).
3. Applies effects to the registry and ledger.
4. Moves value through the transfer rail.
5. Emits its notification, so nothing is published for a call whose
   transfers did not go through.

Steps 3-5 run inside a rail transaction with registry/ledger snapshots.
Any failure restores the snapshots and undoes the rail movements, so
every call either commits in full or leaves no trace.

State machine:
    ACTIVE → (contribute)* → RELEASED   recipient, current >= target
    ACTIVE → (contribute)* → CANCELLED  creator, all contributors refunded

Fee on release:
    platform_fee = current_amount * platform_fee_bps // 10000
    recipient_payout = current_amount - platform_fee
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional

import structlog

from remit.config import EscrowParams
from remit.escrow.access import AuthorizationGuard, require_identity
from remit.escrow.errors import (
    AlreadyCancelled,
    AlreadyReleased,
    EscrowError,
    InvalidAmount,
    TargetNotMet,
)
from remit.escrow.events import (
    ContributionMade,
    EscrowEvent,
    FeeCollectorUpdated,
    FundsReleased,
    OwnershipTransferred,
    PlatformFeeUpdated,
    RemittanceCancelled,
    RemittanceCreated,
)
from remit.escrow.fees import FeePolicy
from remit.escrow.ledger import ContributionLedger
from remit.escrow.lock import ReentrancyLock
from remit.escrow.price_feed import PriceOracle, reference_price
from remit.escrow.registry import RemittanceRegistry, require_amount
from remit.escrow.transfer import TransferRail
from remit.models.remittance import MAX_AMOUNT, FeeConfig, Remittance


logger = structlog.get_logger(__name__)

EventListener = Callable[[EscrowEvent, str, datetime], None]


@dataclass(frozen=True)
class ReleaseQuote:
    """What a release would pay out right now (read-only preview)."""
    remittance_id: int
    current_amount: int
    platform_fee: int
    recipient_payout: int
    target_met: bool


class EscrowProtocol:
    """Orchestrates the escrow: registry, ledger, fees, guard, lock, rail.

    Usage:
        rail = InMemoryRail(balances={"alice": 100})
        escrow = EscrowProtocol(owner="0xowner", rail=rail)
        rid = escrow.create("0xcreator", "0xrecipient", 100, "Rent")
        escrow.contribute("alice", rid, 100)
        escrow.release("0xrecipient", rid)

    The caller identity is passed explicitly to every operation; it is
    authenticated by the host before reaching the core.
    """

    def __init__(
        self,
        owner: str,
        rail: TransferRail,
        params: Optional[EscrowParams] = None,
        oracle: Optional[PriceOracle] = None,
        registry: Optional[RemittanceRegistry] = None,
        ledger: Optional[ContributionLedger] = None,
        listener: Optional[EventListener] = None,
    ) -> None:
        self._params = params or EscrowParams()
        self._guard = AuthorizationGuard(owner)
        self._fees = FeePolicy(
            self._guard,
            fee_collector=owner,
            platform_fee_bps=self._params.default_platform_fee_bps,
            max_fee_bps=self._params.max_fee_bps,
        )
        self._lock = ReentrancyLock()
        self._rail = rail
        self._oracle = oracle
        self._registry = registry or RemittanceRegistry(
            max_purpose_length=self._params.max_purpose_length,
        )
        self._ledger = ledger or ContributionLedger()
        self._listener = listener

    @property
    def params(self) -> EscrowParams:
        return self._params

    @property
    def owner(self) -> str:
        return self._guard.owner

    @property
    def rail(self) -> TransferRail:
        return self._rail

    @property
    def registry(self) -> RemittanceRegistry:
        return self._registry

    @property
    def ledger(self) -> ContributionLedger:
        return self._ledger

    @property
    def fee_policy(self) -> FeePolicy:
        return self._fees

    @property
    def guard(self) -> AuthorizationGuard:
        return self._guard

    def set_listener(self, listener: Optional[EventListener]) -> None:
        self._listener = listener

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def create(
        self,
        caller: str,
        recipient: str,
        target_amount: int,
        purpose: str,
        now: Optional[datetime] = None,
    ) -> int:
        """Open a new remittance. Returns its id."""
        now = now or datetime.now(timezone.utc)
        with self._operation("create"):
            record = self._registry.create(
                caller, recipient, target_amount, purpose, now=now,
            )
            self._ledger.open(record.remittance_id)
            try:
                self._emit(
                    RemittanceCreated(
                        remittance_id=record.remittance_id,
                        creator=caller,
                        recipient=recipient,
                        target_amount=target_amount,
                        purpose=purpose,
                    ),
                    caller,
                    now,
                )
            except Exception:
                self._ledger.discard(record.remittance_id)
                self._registry.discard_latest(record.remittance_id)
                raise

        logger.info(
            "remittance_created",
            remittance_id=record.remittance_id,
            creator=caller,
            recipient=recipient,
            target_amount=target_amount,
        )
        return record.remittance_id

    def contribute(
        self,
        caller: str,
        remittance_id: int,
        amount: int,
        now: Optional[datetime] = None,
    ) -> ContributionMade:
        """Add value to a remittance's pool.

        The amount is taken from the caller into escrow custody through
        the rail. Contributions past the target are accepted.
        """
        now = now or datetime.now(timezone.utc)
        with self._operation("contribute"):
            record = self._registry.get(remittance_id)
            self._require_active(record)
            require_identity(caller)
            require_amount(amount, "Contribution")
            new_total = record.current_amount + amount
            if new_total > MAX_AMOUNT:
                raise InvalidAmount("Contribution would overflow the remittance total")

            with self._atomic(remittance_id):
                record.current_amount = new_total
                entry, first_time = self._ledger.record(remittance_id, caller, amount)
                event = ContributionMade(
                    remittance_id=remittance_id,
                    contributor=caller,
                    amount=amount,
                    new_total=new_total,
                )
                self._rail.collect(caller, amount)
                self._emit(event, caller, now)

        logger.info(
            "contribution_made",
            remittance_id=remittance_id,
            contributor=caller,
            amount=amount,
            new_total=new_total,
            contributor_total=entry,
            first_contribution=first_time,
        )
        return event

    def release(
        self,
        caller: str,
        remittance_id: int,
        now: Optional[datetime] = None,
    ) -> FundsReleased:
        """Pay the pool, minus the platform fee, to the recipient."""
        now = now or datetime.now(timezone.utc)
        with self._operation("release"):
            record = self._registry.get(remittance_id)
            self._require_active(record)
            self._guard.require_recipient(record, caller)
            if record.current_amount < record.target_amount:
                raise TargetNotMet(
                    f"Remittance {remittance_id} has {record.current_amount} "
                    f"of {record.target_amount}"
                )

            pooled = record.current_amount
            fee, payout = self._fees.split(pooled)
            collector = self._fees.fee_collector

            with self._atomic(remittance_id):
                record.is_released = True
                record.released_utc = now
                record.platform_fee = fee
                record.recipient_payout = payout
                event = FundsReleased(
                    remittance_id=remittance_id,
                    recipient=record.recipient,
                    amount=payout,
                    platform_fee=fee,
                    fee_collector=collector,
                )
                if fee > 0:
                    self._rail.send(collector, fee)
                if payout > 0:
                    self._rail.send(record.recipient, payout)
                self._emit(event, caller, now)

        logger.info(
            "funds_released",
            remittance_id=remittance_id,
            recipient=record.recipient,
            payout=payout,
            platform_fee=fee,
        )
        return event

    def cancel(
        self,
        caller: str,
        remittance_id: int,
        now: Optional[datetime] = None,
    ) -> RemittanceCancelled:
        """Abandon a remittance and refund every contributor in full."""
        now = now or datetime.now(timezone.utc)
        with self._operation("cancel"):
            record = self._registry.get(remittance_id)
            self._require_active(record)
            self._guard.require_creator(record, caller)

            with self._atomic(remittance_id):
                record.is_cancelled = True
                record.cancelled_utc = now
                refunds = self._ledger.settle_refunds(remittance_id)
                record.refunds = list(refunds)
                event = RemittanceCancelled(
                    remittance_id=remittance_id,
                    creator=record.creator,
                    refunds=tuple(refunds),
                )
                for refund in refunds:
                    self._rail.send(refund.contributor, refund.amount)
                self._emit(event, caller, now)

        logger.info(
            "remittance_cancelled",
            remittance_id=remittance_id,
            refund_count=len(refunds),
            total_refunded=event.total_refunded,
        )
        return event

    # ------------------------------------------------------------------
    # Administration (owner only)
    # ------------------------------------------------------------------

    def set_platform_fee(
        self,
        caller: str,
        new_bps: int,
        now: Optional[datetime] = None,
    ) -> PlatformFeeUpdated:
        now = now or datetime.now(timezone.utc)
        with self._operation("set_platform_fee"):
            previous = self._fees.set_platform_fee(caller, new_bps)
            event = PlatformFeeUpdated(old_bps=previous, new_bps=new_bps)
            try:
                self._emit(event, caller, now)
            except Exception:
                self._fees.set_platform_fee(caller, previous)
                raise
        logger.info("platform_fee_updated", old_bps=previous, new_bps=new_bps)
        return event

    def set_fee_collector(
        self,
        caller: str,
        new_collector: str,
        now: Optional[datetime] = None,
    ) -> FeeCollectorUpdated:
        now = now or datetime.now(timezone.utc)
        with self._operation("set_fee_collector"):
            previous = self._fees.set_fee_collector(caller, new_collector)
            event = FeeCollectorUpdated(old_collector=previous, new_collector=new_collector)
            try:
                self._emit(event, caller, now)
            except Exception:
                self._fees.set_fee_collector(caller, previous)
                raise
        logger.info("fee_collector_updated", new_collector=new_collector)
        return event

    def transfer_ownership(
        self,
        caller: str,
        new_owner: str,
        now: Optional[datetime] = None,
    ) -> OwnershipTransferred:
        now = now or datetime.now(timezone.utc)
        with self._operation("transfer_ownership"):
            previous = self._guard.transfer_ownership(caller, new_owner)
            event = OwnershipTransferred(previous_owner=previous, new_owner=new_owner)
            try:
                self._emit(event, caller, now)
            except Exception:
                self._guard.transfer_ownership(new_owner, previous)
                raise
        logger.info("ownership_transferred", previous_owner=previous, new_owner=new_owner)
        return event

    # ------------------------------------------------------------------
    # Queries (read-only)
    # ------------------------------------------------------------------

    def get(self, remittance_id: int) -> Remittance:
        return self._registry.get(remittance_id)

    def by_creator(self, identity: str) -> List[int]:
        return self._registry.ids_by_creator(identity)

    def by_recipient(self, identity: str) -> List[int]:
        return self._registry.ids_by_recipient(identity)

    def contribution_of(self, remittance_id: int, identity: str) -> int:
        self._registry.get(remittance_id)
        return self._ledger.contribution_of(remittance_id, identity)

    def contributors_of(self, remittance_id: int) -> List[str]:
        self._registry.get(remittance_id)
        return self._ledger.contributors_of(remittance_id)

    def total_count(self) -> int:
        return self._registry.count

    def fee_config(self) -> FeeConfig:
        return self._fees.config()

    def reference_price(self) -> int:
        return reference_price(self._oracle, self._params.default_reference_price)

    def quote_release(self, remittance_id: int) -> ReleaseQuote:
        record = self._registry.get(remittance_id)
        fee, payout = self._fees.split(record.current_amount)
        return ReleaseQuote(
            remittance_id=remittance_id,
            current_amount=record.current_amount,
            platform_fee=fee,
            recipient_payout=payout,
            target_met=record.is_funded,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        """Hold the lock for one operation; log rejections with their kind."""
        try:
            with self._lock.hold(name):
                yield
        except EscrowError as e:
            logger.warning(
                "escrow_operation_rejected",
                operation=name,
                error=e.kind,
                detail=str(e),
            )
            raise

    @contextmanager
    def _atomic(self, remittance_id: int) -> Iterator[None]:
        """Snapshot registry and ledger; restore both if the block raises."""
        record_before = self._registry.snapshot(remittance_id)
        ledger_before = self._ledger.snapshot(remittance_id)

        def _rollback() -> None:
            self._registry.restore(record_before)
            self._ledger.restore(remittance_id, ledger_before)

        try:
            with self._rail.transaction():
                yield
        except BaseException:
            _rollback()
            raise

    def _require_active(self, record: Remittance) -> None:
        if record.is_released:
            raise AlreadyReleased(f"Remittance {record.remittance_id} already released")
        if record.is_cancelled:
            raise AlreadyCancelled(f"Remittance {record.remittance_id} already cancelled")

    def _emit(self, event: EscrowEvent, caller: str, now: datetime) -> None:
        if self._listener is not None:
            self._listener(event, caller, now)

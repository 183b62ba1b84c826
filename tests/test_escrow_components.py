"""Tests for escrow building blocks: guard, lock, fees, ledger, registry."""

import pytest
from datetime import datetime, timezone

from remit.escrow.access import ZERO_ADDRESS, AuthorizationGuard, is_null_identity
from remit.escrow.errors import (
    EscrowError,
    InvalidAmount,
    InvalidFee,
    InvalidRecipient,
    NotCreator,
    NotRecipient,
    ReentrantCall,
    RemittanceNotFound,
    Unauthorized,
)
from remit.escrow.fees import FeePolicy
from remit.escrow.ledger import ContributionLedger
from remit.escrow.lock import ReentrancyLock
from remit.escrow.registry import RemittanceRegistry, require_amount
from remit.models.remittance import MAX_AMOUNT, Refund


def _now() -> datetime:
    return datetime(2026, 3, 1, 9, 30, 0, tzinfo=timezone.utc)


def _registry_with_one() -> RemittanceRegistry:
    registry = RemittanceRegistry()
    registry.create("0xcreator", "0xrecipient", 100, "Rent", now=_now())
    return registry


class TestErrors:
    def test_kind_is_default_message(self) -> None:
        assert str(InvalidAmount()) == "InvalidAmount"

    def test_every_error_is_an_escrow_error(self) -> None:
        error = InvalidFee("too high")
        assert isinstance(error, EscrowError)
        assert error.kind == "InvalidFee"
        assert str(error) == "too high"


class TestIdentity:
    @pytest.mark.parametrize(
        "identity",
        [None, "", "   ", ZERO_ADDRESS, " " + ZERO_ADDRESS, 42],
    )
    def test_null_identities(self, identity) -> None:
        assert is_null_identity(identity)

    def test_real_identity(self) -> None:
        assert not is_null_identity("0xabc")

    def test_guard_rejects_null_owner(self) -> None:
        with pytest.raises(InvalidRecipient):
            AuthorizationGuard(ZERO_ADDRESS)


class TestAuthorizationGuard:
    def test_owner_checks(self) -> None:
        guard = AuthorizationGuard("0xowner")
        assert guard.is_owner("0xowner")
        guard.require_owner("0xowner")
        with pytest.raises(Unauthorized):
            guard.require_owner("0xmallory")

    def test_role_checks(self) -> None:
        guard = AuthorizationGuard("0xowner")
        record = _registry_with_one().get(0)
        guard.require_creator(record, "0xcreator")
        guard.require_recipient(record, "0xrecipient")
        with pytest.raises(NotCreator):
            guard.require_creator(record, "0xrecipient")
        with pytest.raises(NotRecipient):
            guard.require_recipient(record, "0xcreator")

    def test_owner_gets_no_role_bypass(self) -> None:
        guard = AuthorizationGuard("0xowner")
        record = _registry_with_one().get(0)
        with pytest.raises(NotCreator):
            guard.require_creator(record, "0xowner")

    def test_transfer_ownership(self) -> None:
        guard = AuthorizationGuard("0xowner")
        assert guard.transfer_ownership("0xowner", "0xnext") == "0xowner"
        assert guard.owner == "0xnext"
        with pytest.raises(Unauthorized):
            guard.transfer_ownership("0xowner", "0xother")
        with pytest.raises(InvalidRecipient):
            guard.transfer_ownership("0xnext", "")


class TestReentrancyLock:
    def test_hold_and_release(self) -> None:
        lock = ReentrancyLock()
        with lock.hold("release"):
            assert lock.locked
            assert lock.holder == "release"
        assert not lock.locked

    def test_nested_entry_rejected(self) -> None:
        lock = ReentrancyLock()
        with lock.hold("release"):
            with pytest.raises(ReentrantCall, match="release"):
                with lock.hold("contribute"):
                    pass
            assert lock.holder == "release"

    def test_released_after_exception(self) -> None:
        lock = ReentrancyLock()
        with pytest.raises(RuntimeError):
            with lock.hold("cancel"):
                raise RuntimeError("boom")
        assert not lock.locked


class TestFeePolicy:
    def _policy(self, bps: int = 50) -> FeePolicy:
        return FeePolicy(AuthorizationGuard("0xowner"), fee_collector="0xowner", platform_fee_bps=bps)

    def test_split_at_default_rate(self) -> None:
        fee, payout = self._policy().split(100 * 10**18)
        assert fee == 5 * 10**17
        assert payout == 995 * 10**17

    def test_split_rounds_fee_down(self) -> None:
        assert self._policy().split(199) == (0, 199)
        assert self._policy(bps=500).split(39) == (1, 38)

    def test_max_amount_does_not_overflow(self) -> None:
        fee, payout = self._policy(bps=500).split(MAX_AMOUNT)
        assert fee + payout == MAX_AMOUNT
        assert fee == MAX_AMOUNT * 500 // 10_000

    @pytest.mark.parametrize("bps", [-1, 501, True, 2.5])
    def test_set_fee_rejects(self, bps) -> None:
        policy = self._policy()
        with pytest.raises(InvalidFee):
            policy.set_platform_fee("0xowner", bps)
        assert policy.platform_fee_bps == 50

    def test_set_fee_returns_previous(self) -> None:
        policy = self._policy()
        assert policy.set_platform_fee("0xowner", 0) == 50
        assert policy.compute_fee(1_000) == 0

    def test_ceiling_above_five_percent_rejected(self) -> None:
        with pytest.raises(ValueError, match="max_fee_bps"):
            FeePolicy(
                AuthorizationGuard("0xowner"),
                fee_collector="0xowner",
                platform_fee_bps=50,
                max_fee_bps=10_000,
            )

    def test_initial_rate_above_ceiling_rejected(self) -> None:
        with pytest.raises(InvalidFee):
            self._policy(bps=600)

    def test_restore(self) -> None:
        policy = self._policy()
        policy.restore({"platform_fee_bps": 120, "fee_collector": "0xtreasury"})
        assert policy.config().platform_fee_bps == 120
        assert policy.config().fee_collector == "0xtreasury"
        assert policy.to_dict() == {"platform_fee_bps": 120, "fee_collector": "0xtreasury"}


class TestContributionLedger:
    def test_record_tracks_first_contribution(self) -> None:
        ledger = ContributionLedger()
        ledger.open(0)
        assert ledger.record(0, "alice", 60) == (60, True)
        assert ledger.record(0, "alice", 20) == (80, False)
        assert ledger.contributors_of(0) == ["alice"]
        assert ledger.total_of(0) == 80

    def test_contributors_keep_first_seen_order(self) -> None:
        ledger = ContributionLedger()
        ledger.open(0)
        for who in ("carol", "alice", "carol", "bob", "alice"):
            ledger.record(0, who, 1)
        assert ledger.contributors_of(0) == ["carol", "alice", "bob"]

    def test_ledgers_are_per_remittance(self) -> None:
        ledger = ContributionLedger()
        ledger.open(0)
        ledger.open(1)
        ledger.record(0, "alice", 5)
        assert ledger.contribution_of(1, "alice") == 0
        assert ledger.contributors_of(1) == []

    def test_open_twice_rejected(self) -> None:
        ledger = ContributionLedger()
        ledger.open(0)
        with pytest.raises(ValueError):
            ledger.open(0)

    def test_settle_refunds_zeroes_entries(self) -> None:
        ledger = ContributionLedger()
        ledger.open(0)
        ledger.record(0, "alice", 60)
        ledger.record(0, "bob", 40)
        refunds = ledger.settle_refunds(0)
        assert refunds == [Refund("alice", 60), Refund("bob", 40)]
        assert ledger.total_of(0) == 0
        assert ledger.contributors_of(0) == ["alice", "bob"]
        assert ledger.settle_refunds(0) == []

    def test_restore_snapshot(self) -> None:
        ledger = ContributionLedger()
        ledger.open(0)
        ledger.record(0, "alice", 10)
        snapshot = ledger.snapshot(0)
        ledger.record(0, "bob", 5)
        ledger.restore(0, snapshot)
        assert ledger.contributors_of(0) == ["alice"]
        assert ledger.record(0, "bob", 1) == (1, True)

    def test_serialization(self) -> None:
        ledger = ContributionLedger()
        ledger.open(3)
        ledger.record(3, "alice", 10**30)
        restored = ContributionLedger.from_dict(ledger.to_dict())
        assert restored.contribution_of(3, "alice") == 10**30
        assert restored.record(3, "alice", 1) == (10**30 + 1, False)


class TestRequireAmount:
    def test_accepts_bounds(self) -> None:
        assert require_amount(1) == 1
        assert require_amount(MAX_AMOUNT) == MAX_AMOUNT

    @pytest.mark.parametrize("amount", [0, -5, MAX_AMOUNT + 1, False, None, 3.0])
    def test_rejects(self, amount) -> None:
        with pytest.raises(InvalidAmount):
            require_amount(amount)


class TestRemittanceRegistry:
    def test_get_rejects_unknown_and_bool_ids(self) -> None:
        registry = _registry_with_one()
        with pytest.raises(RemittanceNotFound):
            registry.get(1)
        with pytest.raises(RemittanceNotFound):
            registry.get(False)
        with pytest.raises(RemittanceNotFound):
            registry.get("0")

    def test_all_in_id_order(self) -> None:
        registry = _registry_with_one()
        registry.create("0xother", "0xrecipient", 5, "Books", now=_now())
        assert [r.remittance_id for r in registry.all()] == [0, 1]
        assert registry.count == 2
        assert registry.exists(1)

    def test_restore_is_in_place(self) -> None:
        registry = _registry_with_one()
        held = registry.get(0)
        snapshot = registry.snapshot(0)
        held.current_amount = 50
        held.is_cancelled = True
        registry.restore(snapshot)
        assert held.current_amount == 0
        assert not held.is_cancelled
        assert registry.get(0) is held

    def test_discard_latest_only(self) -> None:
        registry = _registry_with_one()
        registry.create("0xother", "0xrecipient", 5, "Books", now=_now())
        with pytest.raises(ValueError):
            registry.discard_latest(0)
        registry.discard_latest(1)
        assert registry.count == 1
        assert registry.ids_by_creator("0xother") == []
        assert registry.ids_by_recipient("0xrecipient") == [0]

    def test_custom_purpose_length(self) -> None:
        registry = RemittanceRegistry(max_purpose_length=5)
        registry.create("0xc", "0xr", 1, "12345", now=_now())
        with pytest.raises(EscrowError, match="5 characters"):
            registry.create("0xc", "0xr", 1, "123456", now=_now())

    def test_serialization(self) -> None:
        registry = _registry_with_one()
        registry.get(0).current_amount = 40
        restored = RemittanceRegistry.from_dict(registry.to_dict())
        assert restored.count == 1
        assert restored.get(0).current_amount == 40
        assert restored.get(0).created_utc == _now()
        assert restored.ids_by_creator("0xcreator") == [0]

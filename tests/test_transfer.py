"""Tests for the in-memory transfer rail: custody, hooks, and savepoints."""

import pytest

from remit.escrow.errors import TransferFailed
from remit.escrow.transfer import InMemoryRail, TransferRail


class TestInMemoryRail:
    def test_satisfies_rail_protocol(self) -> None:
        assert isinstance(InMemoryRail(), TransferRail)

    def test_collect_and_send(self) -> None:
        rail = InMemoryRail(balances={"alice": 100})
        rail.collect("alice", 60)
        assert rail.custody == 60
        assert rail.balance_of("alice") == 40
        rail.send("bob", 25)
        assert rail.custody == 35
        assert rail.balance_of("bob") == 25

    def test_collect_insufficient_balance(self) -> None:
        rail = InMemoryRail(balances={"alice": 10})
        with pytest.raises(TransferFailed, match="Insufficient"):
            rail.collect("alice", 11)
        assert rail.balance_of("alice") == 10

    def test_send_beyond_custody(self) -> None:
        rail = InMemoryRail()
        with pytest.raises(TransferFailed, match="underfunded"):
            rail.send("bob", 1)

    def test_blocked_recipient(self) -> None:
        rail = InMemoryRail(balances={"alice": 10})
        rail.collect("alice", 10)
        rail.block("bob")
        with pytest.raises(TransferFailed):
            rail.send("bob", 5)
        rail.unblock("bob")
        rail.send("bob", 5)
        assert rail.balance_of("bob") == 5

    def test_fund_rejects_non_positive(self) -> None:
        rail = InMemoryRail()
        with pytest.raises(ValueError):
            rail.fund("alice", 0)
        rail.fund("alice", 7)
        assert rail.balance_of("alice") == 7

    def test_hook_runs_after_credit(self) -> None:
        rail = InMemoryRail(balances={"alice": 10})
        rail.collect("alice", 10)
        seen = []
        rail.register_hook("bob", lambda who, amount: seen.append((who, rail.balance_of(who))))
        rail.send("bob", 4)
        assert seen == [("bob", 4)]

    def test_hook_failure_becomes_transfer_failure(self) -> None:
        rail = InMemoryRail(balances={"alice": 10})
        rail.collect("alice", 10)

        def refuse(who: str, amount: int) -> None:
            raise RuntimeError("not accepting")

        rail.register_hook("bob", refuse)
        with pytest.raises(TransferFailed) as exc_info:
            with rail.transaction():
                rail.send("bob", 4)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert rail.balance_of("bob") == 0
        assert rail.custody == 10


class TestRailTransaction:
    def test_failure_undoes_every_movement(self) -> None:
        rail = InMemoryRail(balances={"alice": 100})
        with pytest.raises(TransferFailed):
            with rail.transaction():
                rail.collect("alice", 50)
                rail.send("bob", 20)
                rail.send("carol", 100)
        assert rail.balance_of("alice") == 100
        assert rail.balance_of("bob") == 0
        assert rail.custody == 0

    def test_nested_savepoint_undoes_only_inner_block(self) -> None:
        rail = InMemoryRail(balances={"alice": 100})
        with rail.transaction():
            rail.collect("alice", 30)
            with pytest.raises(TransferFailed):
                with rail.transaction():
                    rail.send("bob", 10)
                    rail.send("carol", 100)
        assert rail.custody == 30
        assert rail.balance_of("alice") == 70
        assert rail.balance_of("bob") == 0

    def test_clean_exit_commits(self) -> None:
        rail = InMemoryRail(balances={"alice": 100})
        with rail.transaction():
            rail.collect("alice", 40)
        with pytest.raises(TransferFailed):
            with rail.transaction():
                rail.send("bob", 50)
        assert rail.custody == 40
        assert rail.balance_of("alice") == 60

    def test_serialization(self) -> None:
        rail = InMemoryRail(balances={"alice": 100}, rail_id="local")
        rail.collect("alice", 30)
        restored = InMemoryRail.from_dict(rail.to_dict())
        assert restored.rail_id == "local"
        assert restored.custody == 30
        assert restored.balance_of("alice") == 70

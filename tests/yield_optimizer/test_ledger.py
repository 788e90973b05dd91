"""Atomic execution, ownership and reentrancy guard."""

from decimal import Decimal

import pytest
from eth_typing import HexAddress

from yield_optimizer.address import ZERO_ADDRESS, account_from_label, create_address
from yield_optimizer.errors import ReentrantCall, TransferFailed, Unauthorized
from yield_optimizer.ledger import Ledger, LedgerComponent, entrypoint
from yield_optimizer.simulated.token import create_token


class Counter(LedgerComponent):
    state_attributes = ("value",)

    def __init__(self, ledger: Ledger, owner: HexAddress):
        super().__init__(ledger, owner)
        self.value = 0

    @entrypoint(only_owner=True)
    def increment(self, *, sender: HexAddress):
        self.value += 1
        self.emit("Incremented", value=self.value)

    @entrypoint
    def increment_and_fail(self, *, sender: HexAddress):
        self.value += 1
        self.emit("Incremented", value=self.value)
        raise RuntimeError("Boom")

    @entrypoint
    def reenter(self, *, sender: HexAddress):
        self.value += 1
        self.increment(sender=self.owner)


@pytest.fixture()
def ledger() -> Ledger:
    return Ledger()


@pytest.fixture()
def owner() -> HexAddress:
    return account_from_label("owner")


@pytest.fixture()
def counter(ledger, owner) -> Counter:
    return ledger.deploy(Counter(ledger, owner), owner)


def test_deterministic_addresses(owner):
    """Same deployer and nonce always give the same address."""
    assert create_address(owner, 0) == create_address(owner, 0)
    assert create_address(owner, 0) != create_address(owner, 1)
    assert create_address(owner, 0).startswith("0x")

    ledger_1 = Ledger()
    ledger_2 = Ledger()
    token_1 = create_token(ledger_1, owner, "Foo", "FOO")
    token_2 = create_token(ledger_2, owner, "Foo", "FOO")
    assert token_1.address == token_2.address


def test_owner_check(counter, owner):
    """Only the owner can call owner only entrypoints."""
    counter.increment(sender=owner)
    assert counter.value == 1

    with pytest.raises(Unauthorized):
        counter.increment(sender=account_from_label("stranger"))
    assert counter.value == 1


def test_failed_call_rolls_back(ledger, counter, owner):
    """State and events of a failed call are gone."""
    counter.increment(sender=owner)
    event_count = len(ledger.events)

    with pytest.raises(RuntimeError):
        counter.increment_and_fail(sender=owner)

    assert counter.value == 1
    assert len(ledger.events) == event_count
    assert len(ledger.get_events("Incremented", counter.address)) == 1


def test_reentrant_call(counter, owner):
    """Nested mutating call on the same instance aborts the outer call."""
    with pytest.raises(ReentrantCall):
        counter.reenter(sender=owner)
    assert counter.value == 0

    # Guard is released on the failure path
    counter.increment(sender=owner)
    assert counter.value == 1


def test_composite_transaction(ledger, owner):
    """Failure at the end of a transaction undoes deployments, balances and nonces."""
    user = account_from_label("user")
    token = create_token(ledger, owner, "Foo", "FOO", supply=100)

    with pytest.raises(TransferFailed):
        with ledger.transaction():
            token.transfer(user, 60, sender=owner)
            create_token(ledger, owner, "Bar", "BAR")
            token.transfer(user, 60, sender=owner)

    assert token.balance_of(owner) == 100
    assert token.balance_of(user) == 0

    # Nonce was restored, so the next deployment gets the address of the dropped one
    bar = create_token(ledger, owner, "Bar", "BAR")
    assert bar.address == create_address(owner, 1)
    assert ledger.is_deployed(bar.address)


def test_mine(ledger):
    assert ledger.block_number == 1
    assert ledger.mine(10) == 11


def test_get_unknown(ledger):
    with pytest.raises(KeyError):
        ledger.get(ZERO_ADDRESS)


def test_in_transaction(ledger):
    assert not ledger.in_transaction
    with ledger.transaction():
        assert ledger.in_transaction
        with ledger.transaction():
            assert ledger.in_transaction
        assert ledger.in_transaction
    assert not ledger.in_transaction


def test_token_decimals(ledger):
    owner = account_from_label("owner")
    token = create_token(ledger, owner, "Six", "SIX", decimals=6)
    assert token.convert_to_raw(Decimal("1.5")) == 1_500_000
    assert token.convert_to_decimals(1_500_000) == Decimal("1.5")

"""Deposit WMATIC-MUST liquidity in a Beefy like vault."""

import pytest

from yield_optimizer.errors import InsufficientBalance, ProtectedToken
from yield_optimizer.optimizer import VaultOptimizer
from yield_optimizer.simulated.vault import SimulatedVault
from yield_optimizer.strategy import Strategy, StrategyKind


@pytest.fixture()
def vault(ledger, operator, wmatic_must_pair) -> SimulatedVault:
    return ledger.deploy(SimulatedVault(ledger, wmatic_must_pair, owner=operator), operator)


@pytest.fixture()
def vault_strategy(deployment, zap, vault, router, operator) -> Strategy:
    return deployment.treasury.create_vault_strategy(deployment.strategy_registry.address, vault.address, router.address, sender=operator)


@pytest.fixture()
def optimizer(deployment, vault_strategy, user, user_lp, wmatic_must_pair) -> VaultOptimizer:
    optimizer = deployment.strategy_registry.create_optimizer(vault_strategy.id, sender=user)
    wmatic_must_pair.approve(optimizer.address, user_lp, sender=user)
    return optimizer


@pytest.fixture()
def accrue(vault, wmatic_must_pair, operator):
    """Simulate the vault compounding."""

    def _accrue(amount: int):
        wmatic_must_pair.approve(vault.address, amount, sender=operator)
        vault.accrue(amount, sender=operator)

    return _accrue


def test_vault_strategy(vault_strategy, vault, wmatic_must_pair, wmatic, must):
    assert vault_strategy.kind == StrategyKind.vault
    assert vault_strategy.vault == vault.address
    assert vault_strategy.staking_token == wmatic_must_pair.address
    assert vault_strategy.reward_token == wmatic_must_pair.address
    assert set(vault_strategy.get_pair()) == {wmatic.address, must.address}


def test_stake_and_withdraw(optimizer, vault, wmatic_must_pair, user, user_lp):
    """Round trip through the vault without yield is lossless."""
    optimizer.stake(user_lp, sender=user)
    assert isinstance(optimizer, VaultOptimizer)
    assert vault.balance_of(optimizer.address) == user_lp
    assert optimizer.staked() == user_lp
    assert optimizer.get_pending_rewards() == 0

    assert optimizer.withdraw(user_lp, sender=user) == user_lp
    assert wmatic_must_pair.balance_of(user) == user_lp
    assert vault.balance_of(optimizer.address) == 0


def test_withdraw_too_much(optimizer, user, user_lp):
    optimizer.stake(user_lp, sender=user)
    with pytest.raises(InsufficientBalance):
        optimizer.withdraw(user_lp + 1, sender=user)


def test_harvest_vault_yield(deployment, vault_strategy, optimizer, accrue, wmatic_must_pair, user, user_lp, dividend_recipient):
    """Vault gains 10%, harvest pays 3% fee and 2% dividend of the gain in liquidity tokens."""
    optimizer.stake(user_lp, sender=user)
    accrue(10**18)

    assert optimizer.staked() == 11 * 10**18
    assert optimizer.get_pending_rewards() == 10**18

    fee_collector = deployment.strategy_registry.get_fee_collector(vault_strategy.id)
    compounded = optimizer.harvest(sender=user)

    assert compounded == 95 * 10**16
    assert wmatic_must_pair.balance_of(dividend_recipient) == 2 * 10**16
    assert fee_collector.staked() == pytest.approx(3 * 10**16, abs=1000)
    assert optimizer.staked() == pytest.approx(1095 * 10**16, abs=1000)
    assert optimizer.get_pending_rewards() == 0


def test_harvest_no_yield(optimizer, user, user_lp):
    optimizer.stake(user_lp, sender=user)
    assert optimizer.harvest(sender=user) == 0
    assert optimizer.staked() == user_lp


def test_withdraw_all(optimizer, accrue, vault, wmatic_must_pair, user, user_lp):
    """withdraw_all harvests and redeems every share."""
    optimizer.stake(user_lp, sender=user)
    accrue(10**18)

    withdrawn = optimizer.withdraw_all(sender=user)

    assert withdrawn == pytest.approx(1095 * 10**16, abs=1000)
    assert wmatic_must_pair.balance_of(user) == withdrawn
    assert vault.balance_of(optimizer.address) == 0
    assert optimizer.staked() == 0


def test_recover_vault_shares(optimizer, vault, user, user_lp):
    optimizer.stake(user_lp, sender=user)
    with pytest.raises(ProtectedToken):
        optimizer.recover_erc20(vault.address, sender=user)


def test_harvest_yield_dust(optimizer, accrue, vault, wmatic_must_pair, user, user_lp):
    """One wei of yield would not mint a share when deposited back, it stays in the vault until exit."""
    optimizer.stake(10, sender=user)
    accrue(1)
    assert optimizer.get_pending_rewards() == 1

    assert optimizer.harvest(sender=user) == 0
    assert optimizer.staked() == 11
    assert vault.balance_of(optimizer.address) == 10

    assert optimizer.exit_avalanche(sender=user) == 11
    assert wmatic_must_pair.balance_of(user) == user_lp + 1
    assert vault.balance_of(optimizer.address) == 0

"""Fee collector retirement."""

import pytest

from yield_optimizer.errors import AlreadyRetired, InvalidRetirement, Unauthorized, UnknownFeeCollector
from yield_optimizer.optimizer import Optimizer
from yield_optimizer.simulated.amm import SimulatedRouter
from yield_optimizer.simulated.staking import SimulatedStakingPool
from yield_optimizer.strategy import Strategy

#: 0.1 MUST per block
REWARD_RATE = 10**17


@pytest.fixture()
def make_pool(ledger, operator, must):
    """Deploy a funded staking pool paying MUST."""

    def _make_pool(staking_token) -> SimulatedStakingPool:
        pool = ledger.deploy(SimulatedStakingPool(ledger, staking_token, must.address, REWARD_RATE, owner=operator), operator)
        must.mint(pool.address, 100_000 * 10**18, sender=operator)
        return pool

    return _make_pool


@pytest.fixture()
def weth_strategy(deployment, strategy, make_pool, wmatic_weth_pair, router, operator) -> Strategy:
    """Strategy 1: WMATIC-WETH on the same router as strategy 0."""
    pool = make_pool(wmatic_weth_pair.address)
    return deployment.treasury.create_strategy(deployment.strategy_registry.address, pool.address, router.address, sender=operator)


@pytest.fixture()
def user_optimizer(ledger, deployment, strategy, user, user_lp, wmatic_must_pair) -> Optimizer:
    """User staked on strategy 0 and paid one harvest fee."""
    optimizer = deployment.strategy_registry.create_optimizer(strategy.id, sender=user)
    wmatic_must_pair.approve(optimizer.address, user_lp, sender=user)
    optimizer.stake(user_lp, sender=user)
    ledger.mine(100)
    optimizer.harvest(sender=user)
    ledger.mine(10)
    return optimizer


def test_fee_collectors_known(deployment, strategy, weth_strategy):
    treasury = deployment.treasury
    assert treasury.get_fee_collectors() == [strategy.fee_collector, weth_strategy.fee_collector]
    assert not treasury.retirement_status(strategy.fee_collector)
    assert not treasury.retirement_status(weth_strategy.fee_collector)


def test_retire_into_other_pair(ledger, deployment, strategy, weth_strategy, user_optimizer, wmatic_must_pair, operator):
    """WMATIC-MUST fee stake moves to the WMATIC-WETH fee collector through the shared WMATIC."""
    treasury = deployment.treasury
    registry = deployment.strategy_registry
    source = registry.get_fee_collector(strategy.id)
    target = registry.get_fee_collector(weth_strategy.id)
    assert source.staked() > 0
    assert target.staked() == 0

    migrated = treasury.retire_fee_collector(source.address, target.address, sender=operator)

    assert migrated > 0
    assert target.staked() == migrated
    assert source.staked() == 0
    assert source.retired
    assert treasury.retirement_status(source.address)
    assert not treasury.retirement_status(target.address)
    assert wmatic_must_pair.balance_of(treasury.address) == 0

    record = treasury.get_retirement(source.address)
    assert record.successor == target.address
    assert record.migrated == migrated

    events = ledger.get_events("FeeCollectorRetired", treasury.address)
    assert len(events) == 1
    assert events[0].args["successor"] == target.address
    assert events[0].args["withdrawn"] > 0


def test_retire_same_liquidity_token(ledger, deployment, strategy, user_optimizer, make_pool, wmatic_must_pair, router, operator):
    """Both strategies stake WMATIC-MUST, the stake moves without a conversion."""
    treasury = deployment.treasury
    registry = deployment.strategy_registry
    pool = make_pool(wmatic_must_pair.address)
    second = treasury.create_strategy(registry.address, pool.address, router.address, sender=operator)
    source = registry.get_fee_collector(strategy.id)
    target = registry.get_fee_collector(second.id)

    migrated = treasury.retire_fee_collector(source.address, target.address, sender=operator)

    assert migrated == ledger.get_events("FeeCollectorRetired")[0].args["withdrawn"]
    assert target.staked() == migrated
    assert source.staked() == 0


def test_retire_across_routers(ledger, deployment, strategy, user_optimizer, make_pool, add_liquidity, wmatic, must, operator):
    """WMATIC-MUST on another router: unzap to WMATIC, zap with the other router's zap."""
    treasury = deployment.treasury
    registry = deployment.strategy_registry
    other_router = ledger.deploy(SimulatedRouter(ledger), operator)
    other_pair = add_liquidity(other_router, operator, wmatic, 500_000 * 10**18, must, 10_000 * 10**18)
    deployment.zap_registry.create_zap(other_router.address, sender=operator)
    pool = make_pool(other_pair.address)
    other = treasury.create_strategy(registry.address, pool.address, other_router.address, sender=operator)

    source = registry.get_fee_collector(strategy.id)
    target = registry.get_fee_collector(other.id)
    migrated = treasury.retire_fee_collector(source.address, target.address, sender=operator)

    assert migrated > 0
    assert target.staked() == migrated
    assert pool.balance_of(target.address) == migrated
    assert wmatic.balance_of(treasury.address) < 10**9


def test_retire_empty_fee_collector(deployment, strategy, weth_strategy, operator):
    """Nothing collected yet, retirement still goes through."""
    treasury = deployment.treasury
    assert treasury.retire_fee_collector(strategy.fee_collector, weth_strategy.fee_collector, sender=operator) == 0
    assert treasury.retirement_status(strategy.fee_collector)


def test_retire_twice(deployment, strategy, weth_strategy, user_optimizer, operator):
    """Retired fee collectors can be neither source nor target again."""
    treasury = deployment.treasury
    treasury.retire_fee_collector(strategy.fee_collector, weth_strategy.fee_collector, sender=operator)

    with pytest.raises(AlreadyRetired):
        treasury.retire_fee_collector(strategy.fee_collector, weth_strategy.fee_collector, sender=operator)
    with pytest.raises(AlreadyRetired):
        treasury.retire_fee_collector(weth_strategy.fee_collector, strategy.fee_collector, sender=operator)
    assert not treasury.retirement_status(weth_strategy.fee_collector)


def test_retire_into_itself(deployment, strategy, operator):
    treasury = deployment.treasury
    with pytest.raises(InvalidRetirement):
        treasury.retire_fee_collector(strategy.fee_collector, strategy.fee_collector, sender=operator)
    assert not treasury.retirement_status(strategy.fee_collector)


def test_retire_unknown(deployment, strategy, weth_strategy, user_optimizer, operator):
    """User optimizers are not fee collectors."""
    treasury = deployment.treasury
    with pytest.raises(UnknownFeeCollector):
        treasury.retire_fee_collector(user_optimizer.address, weth_strategy.fee_collector, sender=operator)
    with pytest.raises(UnknownFeeCollector):
        treasury.retire_fee_collector(strategy.fee_collector, user_optimizer.address, sender=operator)
    with pytest.raises(UnknownFeeCollector):
        treasury.retirement_status(user_optimizer.address)


def test_retire_not_operator(deployment, strategy, weth_strategy, user):
    with pytest.raises(Unauthorized):
        deployment.treasury.retire_fee_collector(strategy.fee_collector, weth_strategy.fee_collector, sender=user)
    assert not deployment.treasury.retirement_status(strategy.fee_collector)


def test_fee_collector_not_user_operable(deployment, strategy, operator, user):
    """Only the treasury contract owns fee collectors, not the operator account."""
    fee_collector = deployment.strategy_registry.get_fee_collector(strategy.id)
    with pytest.raises(Unauthorized):
        fee_collector.harvest(sender=operator)
    with pytest.raises(Unauthorized):
        fee_collector.exit_avalanche(sender=user)


def test_harvest_after_retirement(ledger, deployment, strategy, weth_strategy, user_optimizer, operator, user):
    """Strategy with a retired fee collector compounds the fee share."""
    treasury = deployment.treasury
    source = deployment.strategy_registry.get_fee_collector(strategy.id)
    treasury.retire_fee_collector(source.address, weth_strategy.fee_collector, sender=operator)
    collected_before = len(ledger.get_events("FeeCollected"))

    ledger.mine(100)
    compounded = user_optimizer.harvest(sender=user)

    assert compounded > 0
    assert source.staked() == 0
    assert len(ledger.get_events("FeeCollected")) == collected_before
    assert ledger.get_events("Harvested", user_optimizer.address)[-1].args["fee"] == 0

    with pytest.raises(Unauthorized):
        source.collect_fee(1, sender=user_optimizer.address)

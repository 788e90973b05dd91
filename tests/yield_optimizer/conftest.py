"""Protocol deployment fixtures.

- A fresh ledger for every test

- ComethSwap like AMM with WMATIC, MUST and WETH pairs at roughly consistent prices:
  1 MUST = 50 WMATIC, 1 WETH = 2000 WMATIC

- WMATIC-MUST staking pool paying MUST, like the Polygon pool
  0x2328c83431a29613b1780706E0Af3679E3D04afd
"""

import logging

import pytest
from eth_typing import HexAddress

from yield_optimizer.address import account_from_label
from yield_optimizer.config import ProtocolConfig
from yield_optimizer.deployment import ProtocolDeployment, deploy_protocol
from yield_optimizer.ledger import Ledger
from yield_optimizer.simulated.amm import SimulatedPair, SimulatedRouter
from yield_optimizer.simulated.staking import SimulatedStakingPool
from yield_optimizer.simulated.token import SimulatedToken, create_token
from yield_optimizer.strategy import Strategy
from yield_optimizer.zap import Zap

logger = logging.getLogger(__name__)

#: 0.1 MUST per block
REWARD_RATE = 10**17


@pytest.fixture()
def ledger() -> Ledger:
    return Ledger()


@pytest.fixture()
def operator() -> HexAddress:
    """Deploys everything and operates the treasury."""
    return account_from_label("operator")


@pytest.fixture()
def user() -> HexAddress:
    return account_from_label("user")


@pytest.fixture()
def user_2() -> HexAddress:
    return account_from_label("user 2")


@pytest.fixture()
def dividend_recipient() -> HexAddress:
    return account_from_label("dividend recipient")


@pytest.fixture()
def config(dividend_recipient) -> ProtocolConfig:
    """3% fee, 2% dividend."""
    return ProtocolConfig(fee_bps=300, dividend_bps=200, dividend_recipient=dividend_recipient)


@pytest.fixture()
def wmatic(ledger, operator) -> SimulatedToken:
    return create_token(ledger, operator, "Wrapped Matic", "WMATIC")


@pytest.fixture()
def must(ledger, operator) -> SimulatedToken:
    return create_token(ledger, operator, "Must", "MUST")


@pytest.fixture()
def weth(ledger, operator) -> SimulatedToken:
    return create_token(ledger, operator, "Wrapped Ether", "WETH")


@pytest.fixture()
def router(ledger, operator) -> SimulatedRouter:
    return ledger.deploy(SimulatedRouter(ledger), operator)


def _add_liquidity(router: SimulatedRouter, provider: HexAddress, token_a: SimulatedToken, amount_a: int, token_b: SimulatedToken, amount_b: int) -> SimulatedPair:
    """Mint both tokens to the provider and deposit them."""
    for token, amount in ((token_a, amount_a), (token_b, amount_b)):
        token.mint(provider, amount, sender=token.owner)
        token.approve(router.address, amount, sender=provider)
    router.add_liquidity(token_a.address, token_b.address, amount_a, amount_b, 0, 0, provider, sender=provider)
    return router.get_pair_contract(token_a.address, token_b.address)


@pytest.fixture()
def add_liquidity():
    """Seed any router pair, see :py:func:`_add_liquidity`."""
    return _add_liquidity


@pytest.fixture()
def wmatic_must_pair(router, operator, wmatic, must) -> SimulatedPair:
    return _add_liquidity(router, operator, wmatic, 1_000_000 * 10**18, must, 20_000 * 10**18)


@pytest.fixture()
def wmatic_weth_pair(router, operator, wmatic, weth) -> SimulatedPair:
    return _add_liquidity(router, operator, wmatic, 10_000_000 * 10**18, weth, 5_000 * 10**18)


@pytest.fixture()
def must_weth_pair(router, operator, must, weth) -> SimulatedPair:
    return _add_liquidity(router, operator, must, 200_000 * 10**18, weth, 5_000 * 10**18)


@pytest.fixture()
def staking_pool(ledger, operator, wmatic_must_pair, must) -> SimulatedStakingPool:
    """WMATIC-MUST pool paying MUST, funded for 1M blocks."""
    pool = ledger.deploy(SimulatedStakingPool(ledger, wmatic_must_pair.address, must.address, REWARD_RATE, owner=operator), operator)
    must.mint(pool.address, 100_000 * 10**18, sender=operator)
    return pool


@pytest.fixture()
def deployment(ledger, operator, config) -> ProtocolDeployment:
    return deploy_protocol(ledger, operator, config)


@pytest.fixture()
def zap(deployment, router, operator) -> Zap:
    return deployment.zap_registry.create_zap(router.address, sender=operator)


@pytest.fixture()
def strategy(deployment, zap, staking_pool, router, operator) -> Strategy:
    return deployment.treasury.create_strategy(deployment.strategy_registry.address, staking_pool.address, router.address, sender=operator)


@pytest.fixture()
def user_lp(wmatic_must_pair, operator, user) -> int:
    """Give the user 10 WMATIC-MUST liquidity tokens."""
    amount = 10 * 10**18
    wmatic_must_pair.transfer(user, amount, sender=operator)
    return amount

"""Walk through a WMATIC-MUST staking strategy on an in-memory ledger.

- Deploy the protocol and a simulated ComethSwap like AMM

- Stake, let rewards accrue, harvest, exit

- If ``JSON_RPC_POLYGON`` is set, seed the simulated pair with the live WMATIC-MUST reserves

To run:

.. code-block:: shell

    export JSON_RPC_POLYGON=https://polygon-rpc.com
    python scripts/simulate-harvest.py
"""

import logging
import os

from web3 import HTTPProvider, Web3

from yield_optimizer.address import account_from_label
from yield_optimizer.config import ProtocolConfig
from yield_optimizer.deployment import deploy_protocol
from yield_optimizer.ledger import Ledger
from yield_optimizer.onchain import fetch_pair_reserves, fork_pair_liquidity
from yield_optimizer.simulated.amm import SimulatedRouter
from yield_optimizer.simulated.staking import SimulatedStakingPool
from yield_optimizer.simulated.token import create_token
from yield_optimizer.utils import setup_console_logging

#: WMATIC-MUST on ComethSwap, Polygon
WMATIC_MUST_PAIR = "0x80676b414a905De269D0ac593322Af821b683B92"

logger = logging.getLogger(__name__)


def main():
    setup_console_logging(default_log_level="info", simplified_logging=True)

    ledger = Ledger()
    operator = account_from_label("operator")
    user = account_from_label("user")
    dividend_recipient = account_from_label("dividends")

    config = ProtocolConfig.from_env()
    if config.dividend_recipient is None:
        config = ProtocolConfig(
            fee_bps=config.fee_bps,
            dividend_bps=config.dividend_bps,
            dividend_recipient=dividend_recipient,
            withdraw_fee_policy=config.withdraw_fee_policy,
            withdraw_fee_bps=config.withdraw_fee_bps,
        )

    deployment = deploy_protocol(ledger, operator, config)

    wmatic = create_token(ledger, operator, "Wrapped Matic", "WMATIC")
    must = create_token(ledger, operator, "Must", "MUST")
    router = ledger.deploy(SimulatedRouter(ledger), operator)

    json_rpc_url = os.environ.get("JSON_RPC_POLYGON")
    if json_rpc_url:
        web3 = Web3(HTTPProvider(json_rpc_url))
        reserves = fetch_pair_reserves(web3, WMATIC_MUST_PAIR)
        logger.info("Live reserves at block %d: %d / %d", reserves.block_number, reserves.reserve0, reserves.reserve1)
        # WMATIC sorts before MUST on Polygon
        pair = fork_pair_liquidity(router, reserves, wmatic, must, operator)
    else:
        for token, amount in ((wmatic, 1_000_000 * 10**18), (must, 20_000 * 10**18)):
            token.mint(operator, amount, sender=operator)
            token.approve(router.address, amount, sender=operator)
        router.add_liquidity(wmatic.address, must.address, 1_000_000 * 10**18, 20_000 * 10**18, 0, 0, operator, sender=operator)
        pair = router.get_pair_contract(wmatic.address, must.address)

    pool = ledger.deploy(SimulatedStakingPool(ledger, pair.address, must.address, reward_rate=10**17, owner=operator), operator)
    must.mint(pool.address, 10_000 * 10**18, sender=operator)

    deployment.zap_registry.create_zap(router.address, sender=operator)
    strategy = deployment.treasury.create_strategy(deployment.strategy_registry.address, pool.address, router.address, sender=operator)

    lp_amount = pair.balance_of(operator) // 100
    pair.transfer(user, lp_amount, sender=operator)

    optimizer = deployment.strategy_registry.create_optimizer(strategy.id, sender=user)
    pair.approve(optimizer.address, lp_amount, sender=user)
    optimizer.stake(lp_amount, sender=user)
    logger.info("User staked %s LP", pair.convert_to_decimals(lp_amount))

    ledger.mine(1_000)
    logger.info("Pending reward %s MUST", must.convert_to_decimals(optimizer.get_pending_rewards()))

    fee_collector = deployment.strategy_registry.get_fee_collector(strategy.id)
    optimizer.harvest(sender=user)
    logger.info("Staked after harvest %s LP", pair.convert_to_decimals(optimizer.staked()))
    logger.info("Fee collector staked %s LP", pair.convert_to_decimals(fee_collector.staked()))
    logger.info("Dividend recipient holds %s MUST", must.convert_to_decimals(must.balance_of(config.dividend_recipient)))

    ledger.mine(1_000)
    withdrawn = optimizer.exit_avalanche(sender=user)
    logger.info("User exited with %s LP and %s MUST", pair.convert_to_decimals(withdrawn), must.convert_to_decimals(must.balance_of(user)))
    logger.info("%d events on the ledger", len(ledger.events))


if __name__ == "__main__":
    main()

"""Deploy the protocol components on a ledger.

Example:

.. code-block:: python

    ledger = Ledger()
    deployment = deploy_protocol(ledger, operator, ProtocolConfig.from_env())

    deployment.zap_registry.create_zap(router.address, sender=operator)
    deployment.treasury.create_strategy(
        deployment.strategy_registry.address,
        staking_pool.address,
        router.address,
        sender=operator,
    )
"""

import logging
from dataclasses import dataclass

from eth_typing import HexAddress

from yield_optimizer.amm import DEFAULT_FEE_BPS
from yield_optimizer.config import ProtocolConfig
from yield_optimizer.ledger import Ledger
from yield_optimizer.registry import StrategyRegistry
from yield_optimizer.treasury import Treasury
from yield_optimizer.zap import DEFAULT_MAX_SLIPPAGE_BPS, ZapRegistry

logger = logging.getLogger(__name__)


@dataclass
class ProtocolDeployment:
    """Deployed protocol components."""

    ledger: Ledger

    #: Account that operates the treasury and the zap registry
    operator: HexAddress

    treasury: Treasury

    zap_registry: ZapRegistry

    strategy_registry: StrategyRegistry

    def __repr__(self):
        return f"<Protocol treasury:{self.treasury.address} zaps:{self.zap_registry.address} strategies:{self.strategy_registry.address}>"


def deploy_protocol(
    ledger: Ledger,
    operator: HexAddress,
    config: ProtocolConfig | None = None,
    zap_fee_bps: int = DEFAULT_FEE_BPS,
    zap_max_slippage_bps: int = DEFAULT_MAX_SLIPPAGE_BPS,
) -> ProtocolDeployment:
    """Deploy treasury, zap registry and strategy registry.

    The operator owns the treasury and the zap registry.
    The treasury owns the strategy registry.

    :param config:
        Fee configuration, defaults to :py:class:`ProtocolConfig` defaults

    :param zap_fee_bps:
        Router fee the zaps assume

    :param zap_max_slippage_bps:
        Swap output tolerance of the zaps
    """
    treasury = ledger.deploy(Treasury(ledger, operator), operator)
    zap_registry = ledger.deploy(
        ZapRegistry(ledger, operator, fee_bps=zap_fee_bps, max_slippage_bps=zap_max_slippage_bps),
        operator,
    )
    strategy_registry = ledger.deploy(
        StrategyRegistry(ledger, treasury.address, zap_registry.address, config),
        operator,
    )
    deployment = ProtocolDeployment(
        ledger=ledger,
        operator=operator,
        treasury=treasury,
        zap_registry=zap_registry,
        strategy_registry=strategy_registry,
    )
    logger.info("Deployed %s", deployment)
    return deployment

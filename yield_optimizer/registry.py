"""Strategy catalog and optimizer factory.

- The treasury registers strategies, each gets a fee collector at creation

- Anyone creates an optimizer for themselves, one per strategy

Optimizer indexes count fee collectors too: after the first strategy
the fee collector is optimizer 0 and the first depositor gets optimizer 1.
"""

import logging

from eth_typing import HexAddress

from yield_optimizer.config import ProtocolConfig
from yield_optimizer.errors import InvalidStrategy, ZapNotFound
from yield_optimizer.ledger import Ledger, LedgerComponent, entrypoint
from yield_optimizer.optimizer import OPTIMIZER_CLASSES, Optimizer
from yield_optimizer.strategy import Strategy, StrategyParams
from yield_optimizer.zap import ZapRegistry

logger = logging.getLogger(__name__)


class StrategyRegistry(LedgerComponent):
    """Also called ``OptimizerFactory``.

    :param treasury:
        Owner, the only account allowed to add strategies

    :param zap_registry:
        Where strategy routers get their zaps from

    :param config:
        Fee parameters every optimizer of this registry reads
    """

    state_attributes = (
        "strategies",
        "optimizers",
        "optimizer_by_owner",
        "optimizer_strategy",
        "config",
    )

    def __init__(self, ledger: Ledger, treasury: HexAddress, zap_registry: HexAddress, config: ProtocolConfig | None = None):
        super().__init__(ledger, treasury)
        self.zap_registry = zap_registry
        self.config = config or ProtocolConfig()

        #: Strategies by id
        self.strategies: list[Strategy] = []

        #: All optimizers, fee collectors included, in creation order
        self.optimizers: list[HexAddress] = []

        #: (owner, strategy id) -> optimizer
        self.optimizer_by_owner: dict[tuple[HexAddress, int], HexAddress] = {}

        #: optimizer -> strategy id
        self.optimizer_strategy: dict[HexAddress, int] = {}

    def get_zap_registry(self) -> ZapRegistry:
        return self.ledger.get(self.zap_registry)

    @entrypoint(only_owner=True)
    def add_strategy(self, params: StrategyParams, *, sender: HexAddress) -> Strategy:
        """Register a strategy and deploy its fee collector.

        :raise ZapNotFound: If the strategy router has no zap yet
        """
        zap = self.get_zap_registry().get_zap_by_router(params.router)
        if zap is None:
            raise ZapNotFound(f"No zap for router {params.router}, create one first")

        strategy_id = len(self.strategies)
        fee_collector = self._deploy_optimizer(params.kind, strategy_id, self.owner, is_fee_collector=True)

        strategy = Strategy(
            id=strategy_id,
            kind=params.kind,
            token_a=params.token_a,
            token_b=params.token_b,
            staking_token=params.staking_token,
            reward_token=params.reward_token,
            staking_pool=params.staking_pool,
            router=params.router,
            vault=params.vault,
            zap=zap,
            fee_collector=fee_collector.address,
        )
        self.strategies.append(strategy)
        self.emit("StrategyCreated", strategy_id=strategy_id, kind=params.kind.value, fee_collector=fee_collector.address)
        logger.info("Added %s strategy %d for %s, fee collector %s", params.kind.value, strategy_id, params.staking_token, fee_collector.address)
        return strategy

    @entrypoint
    def create_optimizer(self, strategy_id: int, *, sender: HexAddress) -> Optimizer:
        """Get the sender's optimizer for a strategy, deploying it on the first call.

        :raise InvalidStrategy: If the strategy does not exist
        """
        strategy = self.get_strategy(strategy_id)
        existing = self.optimizer_by_owner.get((sender, strategy_id))
        if existing is not None:
            return self.ledger.get(existing)
        optimizer = self._deploy_optimizer(strategy.kind, strategy_id, sender)
        self.optimizer_by_owner[(sender, strategy_id)] = optimizer.address
        return optimizer

    @entrypoint(only_owner=True)
    def set_config(self, config: ProtocolConfig, *, sender: HexAddress):
        assert isinstance(config, ProtocolConfig)
        self.config = config
        self.emit("ConfigUpdated", fee_bps=config.fee_bps, dividend_bps=config.dividend_bps)
        logger.info("New protocol config %s", config)

    def _deploy_optimizer(self, kind, strategy_id: int, owner: HexAddress, is_fee_collector: bool = False) -> Optimizer:
        optimizer_class = OPTIMIZER_CLASSES[kind]
        optimizer = optimizer_class(self.ledger, self.address, strategy_id, owner, is_fee_collector=is_fee_collector)
        self.ledger.deploy(optimizer, self.address)
        self.optimizers.append(optimizer.address)
        self.optimizer_strategy[optimizer.address] = strategy_id
        self.emit("OptimizerCreated", optimizer=optimizer.address, owner=owner, strategy_id=strategy_id, index=len(self.optimizers) - 1)
        logger.debug("Deployed %s", optimizer)
        return optimizer

    def get_strategy(self, strategy_id: int) -> Strategy:
        """:raise InvalidStrategy: If the strategy does not exist"""
        if not (0 <= strategy_id < len(self.strategies)):
            raise InvalidStrategy(f"Strategy {strategy_id} does not exist, have {len(self.strategies)}")
        return self.strategies[strategy_id]

    def get_strategy_count(self) -> int:
        return len(self.strategies)

    def get_optimizer_count(self) -> int:
        return len(self.optimizers)

    def get_optimizer_by_index(self, index: int) -> Optimizer:
        return self.ledger.get(self.optimizers[index])

    def get_optimizer(self, owner: HexAddress, strategy_id: int) -> Optimizer | None:
        address = self.optimizer_by_owner.get((owner, strategy_id))
        return self.ledger.get(address) if address else None

    def get_fee_collector(self, strategy_id: int) -> Optimizer:
        return self.ledger.get(self.get_strategy(strategy_id).fee_collector)

    def is_optimizer(self, address: HexAddress, strategy_id: int) -> bool:
        return self.optimizer_strategy.get(address) == strategy_id

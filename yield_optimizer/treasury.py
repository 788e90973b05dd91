"""Protocol treasury.

- The only account able to register strategies

- Owns every fee collector

- Retires a fee collector by moving all of its stake into another fee collector

Retirement of ``from`` into ``to``:

1. Mark ``from`` retired
2. Harvest and withdraw everything from ``from``
3. Convert the withdrawn liquidity tokens to ``to``'s pair, unless both use the same liquidity token
4. Stake the result in ``to``

Example:

.. code-block:: python

    treasury.retire_fee_collector(
        registry.get_fee_collector(0).address,
        registry.get_fee_collector(1).address,
        sender=operator,
    )
    assert treasury.retirement_status(registry.get_fee_collector(0).address)
"""

import logging
from dataclasses import dataclass

from eth_typing import HexAddress

from yield_optimizer.config import ProtocolConfig
from yield_optimizer.errors import AlreadyRetired, InvalidRetirement, UnknownFeeCollector
from yield_optimizer.interfaces import FungibleToken, Router, StakingPool, Vault
from yield_optimizer.ledger import Ledger, LedgerComponent, entrypoint
from yield_optimizer.optimizer import Optimizer
from yield_optimizer.registry import StrategyRegistry
from yield_optimizer.strategy import Strategy, StrategyKind, StrategyParams
from yield_optimizer.zap import Zap

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetirementRecord:
    """Retirement state of one fee collector.

    Goes from active to retired once and stays there.
    """

    fee_collector: HexAddress

    #: Registry the fee collector belongs to
    registry: HexAddress

    retired: bool = False

    #: Fee collector that received the stake
    successor: HexAddress | None = None

    #: Liquidity tokens staked into the successor
    migrated: int = 0


class Treasury(LedgerComponent):
    """Also called ``FeeManager``.

    The operator drives every call, the treasury is the owner
    the registries and fee collectors see.
    """

    state_attributes = ("retirements",)

    def __init__(self, ledger: Ledger, operator: HexAddress):
        super().__init__(ledger, operator)

        #: fee collector -> record, also tells which fee collectors we know
        self.retirements: dict[HexAddress, RetirementRecord] = {}

    @entrypoint(only_owner=True)
    def create_strategy(self, registry: HexAddress, staking_pool: HexAddress, router: HexAddress, *, sender: HexAddress) -> Strategy:
        """Register a staking pool strategy.

        The pair is read from the staking token of the pool.
        """
        pool: StakingPool = self.ledger.get(staking_pool)
        token_a, token_b = self._get_pair_tokens(router, pool.staking_token)
        params = StrategyParams(
            kind=StrategyKind.staking_pool,
            staking_token=pool.staking_token,
            reward_token=pool.rewards_token,
            token_a=token_a,
            token_b=token_b,
            router=router,
            staking_pool=staking_pool,
        )
        return self._add_strategy(registry, params)

    @entrypoint(only_owner=True)
    def create_vault_strategy(self, registry: HexAddress, vault: HexAddress, router: HexAddress, *, sender: HexAddress) -> Strategy:
        """Register an auto-compounding vault strategy.

        The vault must take a liquidity token of the router.
        """
        vault_contract: Vault = self.ledger.get(vault)
        token_a, token_b = self._get_pair_tokens(router, vault_contract.want)
        params = StrategyParams(
            kind=StrategyKind.vault,
            staking_token=vault_contract.want,
            reward_token=vault_contract.want,
            token_a=token_a,
            token_b=token_b,
            router=router,
            vault=vault,
        )
        return self._add_strategy(registry, params)

    @entrypoint(only_owner=True)
    def update_config(self, registry: HexAddress, config: ProtocolConfig, *, sender: HexAddress):
        self._get_registry(registry).set_config(config, sender=self.address)

    @entrypoint(only_owner=True)
    def harvest_fee_collector(self, fee_collector: HexAddress, *, sender: HexAddress) -> int:
        """Compound the fees a fee collector has earned.

        :return: Liquidity tokens compounded
        """
        self._get_record(fee_collector)
        return self._get_fee_collector(fee_collector).harvest(sender=self.address)

    @entrypoint(only_owner=True)
    def retire_fee_collector(self, from_fee_collector: HexAddress, to_fee_collector: HexAddress, *, sender: HexAddress) -> int:
        """Move everything ``from_fee_collector`` has staked into ``to_fee_collector``.

        :return: Liquidity tokens staked into ``to_fee_collector``

        :raise UnknownFeeCollector: If either is not a fee collector of this treasury
        :raise AlreadyRetired: If either has been retired
        :raise InvalidRetirement: If both are the same
        """
        from_record = self._get_record(from_fee_collector)
        to_record = self._get_record(to_fee_collector)
        if from_fee_collector == to_fee_collector:
            raise InvalidRetirement(f"Cannot retire {from_fee_collector} into itself")
        if from_record.retired:
            raise AlreadyRetired(f"{from_fee_collector} was retired into {from_record.successor}")
        if to_record.retired:
            raise AlreadyRetired(f"Cannot migrate into retired {to_fee_collector}")

        from_record.retired = True
        from_record.successor = to_fee_collector

        source = self._get_fee_collector(from_fee_collector)
        target = self._get_fee_collector(to_fee_collector)
        withdrawn = source.exit_avalanche(sender=self.address)
        source.retire(sender=self.address)
        migrated = self._convert(source.get_strategy(), target.get_strategy(), withdrawn)
        if migrated > 0:
            target.get_staking_token().approve(target.address, migrated, sender=self.address)
            target.stake(migrated, sender=self.address)
        from_record.migrated = migrated

        self.emit("FeeCollectorRetired", fee_collector=from_fee_collector, successor=to_fee_collector, withdrawn=withdrawn, migrated=migrated)
        logger.info("Retired %s into %s: withdrew %d, staked %d", from_fee_collector, to_fee_collector, withdrawn, migrated)
        return migrated

    def retirement_status(self, fee_collector: HexAddress) -> bool:
        """:raise UnknownFeeCollector: If this is not our fee collector"""
        return self._get_record(fee_collector).retired

    def get_retirement(self, fee_collector: HexAddress) -> RetirementRecord:
        return self._get_record(fee_collector)

    def get_fee_collectors(self) -> list[HexAddress]:
        return list(self.retirements.keys())

    def _add_strategy(self, registry: HexAddress, params: StrategyParams) -> Strategy:
        strategy = self._get_registry(registry).add_strategy(params, sender=self.address)
        self.retirements[strategy.fee_collector] = RetirementRecord(fee_collector=strategy.fee_collector, registry=registry)
        return strategy

    def _get_registry(self, registry: HexAddress) -> StrategyRegistry:
        return self.ledger.get(registry)

    def _get_pair_tokens(self, router: HexAddress, lp_token: HexAddress) -> tuple[HexAddress, HexAddress]:
        router_contract: Router = self.ledger.get(router)
        return router_contract.get_pair_tokens(lp_token)

    def _get_record(self, fee_collector: HexAddress) -> RetirementRecord:
        record = self.retirements.get(fee_collector)
        if record is None:
            raise UnknownFeeCollector(f"{fee_collector} is not a fee collector of {self}")
        return record

    def _get_fee_collector(self, fee_collector: HexAddress) -> Optimizer:
        return self.ledger.get(fee_collector)

    def _convert(self, source: Strategy, target: Strategy, amount: int) -> int:
        """Turn the source liquidity tokens the treasury holds into target liquidity tokens."""
        if amount == 0 or source.staking_token == target.staking_token:
            return amount

        lp_token: FungibleToken = self.ledger.get(source.staking_token)
        source_zap: Zap = self.ledger.get(source.zap)
        lp_token.approve(source_zap.address, amount, sender=self.address)

        if source.router == target.router:
            return source_zap.swap_lp(source.staking_token, target.staking_token, amount, sender=self.address)

        # Different routers: go through a single asset, one both pairs have if possible
        shared = [t for t in target.get_pair() if t in source.get_pair()]
        intermediate = shared[0] if shared else target.token_a
        intermediate_amount = source_zap.unzap(source.staking_token, intermediate, amount, sender=self.address)

        target_zap: Zap = self.ledger.get(target.zap)
        self.ledger.get(intermediate).approve(target_zap.address, intermediate_amount, sender=self.address)
        return target_zap.zap(intermediate, target.token_a, target.token_b, intermediate_amount, sender=self.address)

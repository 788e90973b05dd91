"""Strategy records.

A strategy describes one yield source for one Uniswap v2 liquidity token
and never changes after the registry has stored it.
"""

import enum
from dataclasses import dataclass

from eth_typing import HexAddress


class StrategyKind(enum.Enum):
    """Where the liquidity tokens go."""

    #: Synthetix StakingRewards like pool paying a reward token
    staking_pool = "staking_pool"

    #: Beefy like auto-compounding vault, yield shows up in the price per share
    vault = "vault"


@dataclass(frozen=True, slots=True)
class StrategyParams:
    """What the treasury passes to :py:meth:`yield_optimizer.registry.StrategyRegistry.add_strategy`."""

    kind: StrategyKind

    #: Liquidity token users stake
    staking_token: HexAddress

    #: Token the yield source pays.
    #:
    #: For vaults this is the staking token itself.
    reward_token: HexAddress

    token_a: HexAddress

    token_b: HexAddress

    #: Router of the pair, also picks the zap
    router: HexAddress

    staking_pool: HexAddress | None = None

    vault: HexAddress | None = None

    def __post_init__(self):
        assert self.token_a != self.token_b, f"Bad pair {self.token_a}-{self.token_b}"
        if self.kind == StrategyKind.staking_pool:
            assert self.staking_pool is not None, "Staking pool strategy needs a pool"
            assert self.reward_token != self.staking_token, "Reward token cannot be the staked liquidity token"
        else:
            assert self.vault is not None, "Vault strategy needs a vault"


@dataclass(frozen=True, slots=True)
class Strategy:
    """A registered strategy."""

    #: Sequential, never reused
    id: int

    kind: StrategyKind

    token_a: HexAddress

    token_b: HexAddress

    staking_token: HexAddress

    reward_token: HexAddress

    staking_pool: HexAddress | None

    router: HexAddress

    vault: HexAddress | None

    #: Zap of the router
    zap: HexAddress

    #: Optimizer owned by the treasury collecting the fees of this strategy
    fee_collector: HexAddress

    def get_pair(self) -> tuple[HexAddress, HexAddress]:
        return self.token_a, self.token_b

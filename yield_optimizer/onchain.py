"""Read live protocol state over JSON-RPC.

- Uniswap v2 pair reserves

- Synthetix StakingRewards pool state

- Beefy vault state

- Seed a :py:class:`yield_optimizer.simulated.amm.SimulatedRouter` pair with live reserves,
  so a simulation starts from real prices

Only the view functions we need are in the ABIs below.

Example:

.. code-block:: python

    web3 = Web3(HTTPProvider(os.environ["JSON_RPC_POLYGON"]))
    reserves = fetch_pair_reserves(web3, "0x80676b414a905De269D0ac593322Af821b683B92")
    pair = fork_pair_liquidity(router, reserves, wmatic, must, provider)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from eth_typing import BlockIdentifier, HexAddress
from web3 import Web3
from web3.contract import Contract

from yield_optimizer.simulated.amm import SimulatedPair, SimulatedRouter
from yield_optimizer.simulated.token import SimulatedToken

logger = logging.getLogger(__name__)


def _view(name: str, output_type: str, inputs: Optional[list[str]] = None) -> dict:
    return {
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(inputs or [])],
        "name": name,
        "outputs": [{"name": "", "type": output_type}],
        "stateMutability": "view",
        "type": "function",
    }


#: Minimal ABI for UniswapV2Pair
UNISWAP_V2_PAIR_ABI = [
    {
        "inputs": [],
        "name": "getReserves",
        "outputs": [
            {"name": "_reserve0", "type": "uint112"},
            {"name": "_reserve1", "type": "uint112"},
            {"name": "_blockTimestampLast", "type": "uint32"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    _view("token0", "address"),
    _view("token1", "address"),
    _view("totalSupply", "uint256"),
]

#: Minimal ABI for Synthetix StakingRewards
STAKING_REWARDS_ABI = [
    _view("stakingToken", "address"),
    _view("rewardsToken", "address"),
    _view("totalSupply", "uint256"),
    _view("rewardRate", "uint256"),
    _view("periodFinish", "uint256"),
    _view("balanceOf", "uint256", ["address"]),
    _view("earned", "uint256", ["address"]),
]

#: Minimal ABI for Beefy vaults
BEEFY_VAULT_ABI = [
    _view("want", "address"),
    _view("balance", "uint256"),
    _view("totalSupply", "uint256"),
    _view("getPricePerFullShare", "uint256"),
    _view("balanceOf", "uint256", ["address"]),
]


@dataclass
class PairReserves:
    """Uniswap v2 pair sampled at a block.

    Reserves are raw token amounts.
    """

    pair: HexAddress

    token0: HexAddress

    token1: HexAddress

    reserve0: int

    reserve1: int

    #: Liquidity token supply
    total_supply: int

    block_number: int


@dataclass
class StakingPoolState:
    """StakingRewards pool sampled at a block."""

    pool: HexAddress

    staking_token: HexAddress

    rewards_token: HexAddress

    total_supply: int

    #: Reward tokens per second
    reward_rate: int

    #: UNIX timestamp when the current reward period ends
    period_finish: int

    #: Staked by the account, if one was asked
    balance: Optional[int]

    #: Claimable by the account, if one was asked
    earned: Optional[int]

    block_number: int

    def is_active(self, timestamp: int) -> bool:
        """Does the pool still pay rewards at this time."""
        return self.reward_rate > 0 and timestamp < self.period_finish


@dataclass
class VaultState:
    """Beefy vault sampled at a block."""

    vault: HexAddress

    want: HexAddress

    #: Want tokens managed by the vault
    balance: int

    total_supply: int

    #: 1e18 scaled
    price_per_share: int

    block_number: int


def get_contract(web3: Web3, address: HexAddress | str, abi: list[dict]) -> Contract:
    return web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)


def _resolve_block(web3: Web3, block_identifier: BlockIdentifier) -> int:
    if isinstance(block_identifier, int):
        return block_identifier
    return web3.eth.get_block(block_identifier)["number"]


def fetch_pair_reserves(web3: Web3, pair_address: HexAddress | str, block_identifier: BlockIdentifier = "latest") -> PairReserves:
    """Read Uniswap v2 pair reserves.

    :param pair_address: Pair contract address
    :param block_identifier: Block to read at, needs an archive node for old blocks
    """
    block_number = _resolve_block(web3, block_identifier)
    pair = get_contract(web3, pair_address, UNISWAP_V2_PAIR_ABI)
    reserve0, reserve1, _ = pair.functions.getReserves().call(block_identifier=block_number)
    return PairReserves(
        pair=pair.address,
        token0=pair.functions.token0().call(block_identifier=block_number),
        token1=pair.functions.token1().call(block_identifier=block_number),
        reserve0=reserve0,
        reserve1=reserve1,
        total_supply=pair.functions.totalSupply().call(block_identifier=block_number),
        block_number=block_number,
    )


def fetch_staking_pool_state(
    web3: Web3,
    pool_address: HexAddress | str,
    account: HexAddress | str | None = None,
    block_identifier: BlockIdentifier = "latest",
) -> StakingPoolState:
    """Read StakingRewards pool state, optionally for one staker."""
    block_number = _resolve_block(web3, block_identifier)
    pool = get_contract(web3, pool_address, STAKING_REWARDS_ABI)

    balance = earned = None
    if account is not None:
        account = Web3.to_checksum_address(account)
        balance = pool.functions.balanceOf(account).call(block_identifier=block_number)
        earned = pool.functions.earned(account).call(block_identifier=block_number)

    return StakingPoolState(
        pool=pool.address,
        staking_token=pool.functions.stakingToken().call(block_identifier=block_number),
        rewards_token=pool.functions.rewardsToken().call(block_identifier=block_number),
        total_supply=pool.functions.totalSupply().call(block_identifier=block_number),
        reward_rate=pool.functions.rewardRate().call(block_identifier=block_number),
        period_finish=pool.functions.periodFinish().call(block_identifier=block_number),
        balance=balance,
        earned=earned,
        block_number=block_number,
    )


def fetch_vault_state(web3: Web3, vault_address: HexAddress | str, block_identifier: BlockIdentifier = "latest") -> VaultState:
    """Read Beefy vault state."""
    block_number = _resolve_block(web3, block_identifier)
    vault = get_contract(web3, vault_address, BEEFY_VAULT_ABI)
    return VaultState(
        vault=vault.address,
        want=vault.functions.want().call(block_identifier=block_number),
        balance=vault.functions.balance().call(block_identifier=block_number),
        total_supply=vault.functions.totalSupply().call(block_identifier=block_number),
        price_per_share=vault.functions.getPricePerFullShare().call(block_identifier=block_number),
        block_number=block_number,
    )


def fork_pair_liquidity(
    router: SimulatedRouter,
    reserves: PairReserves,
    token0: SimulatedToken,
    token1: SimulatedToken,
    provider: HexAddress,
    scale: int = 1,
) -> SimulatedPair:
    """Create a simulated pair with the price of a live pair.

    ``token0`` and ``token1`` stand in for the live pair tokens in the same order.
    The provider must own both simulated tokens, so it can mint the reserves.

    :param scale:
        Divide the live reserves by this, for thin simulated pools

    :return: The simulated pair, the provider holds its liquidity tokens
    """
    assert scale >= 1
    amount0 = reserves.reserve0 // scale
    amount1 = reserves.reserve1 // scale
    assert amount0 > 0 and amount1 > 0, f"Pair {reserves.pair} has no liquidity"

    for token, amount in ((token0, amount0), (token1, amount1)):
        token.mint(provider, amount, sender=provider)
        token.approve(router.address, amount, sender=provider)

    router.add_liquidity(token0.address, token1.address, amount0, amount1, 0, 0, provider, sender=provider)
    logger.info("Forked %s at block %d into %s-%s with reserves %d/%d", reserves.pair, reserves.block_number, token0.symbol, token1.symbol, amount0, amount1)
    return router.get_pair_contract(token0.address, token1.address)

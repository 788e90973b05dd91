"""Boundary interfaces of the external protocols the optimizers drive.

The core never reaches into these protocols' internals:
all staked balances are read back through these calls,
because the pools and vaults are shared by many optimizer instances.

In-memory implementations live in :py:mod:`yield_optimizer.simulated`.
"""

from typing import Protocol, Sequence, runtime_checkable

from eth_typing import HexAddress

#: Vault price per share is expressed with 18 decimals
PRICE_PER_SHARE_UNIT = 10**18


@runtime_checkable
class FungibleToken(Protocol):
    """ERC-20 like token."""

    address: HexAddress

    total_supply: int

    def balance_of(self, account: HexAddress) -> int: ...

    def allowance(self, owner: HexAddress, spender: HexAddress) -> int: ...

    def transfer(self, to: HexAddress, amount: int, *, sender: HexAddress) -> bool: ...

    def transfer_from(self, owner: HexAddress, to: HexAddress, amount: int, *, sender: HexAddress) -> bool: ...

    def approve(self, spender: HexAddress, amount: int, *, sender: HexAddress) -> bool: ...


@runtime_checkable
class StakingPool(Protocol):
    """Synthetix StakingRewards like pool.

    Balances are attributed to the calling address.
    """

    address: HexAddress

    #: Liquidity token accepted by the pool
    staking_token: HexAddress

    #: Token paid out as reward
    rewards_token: HexAddress

    def stake(self, amount: int, *, sender: HexAddress): ...

    def withdraw(self, amount: int, *, sender: HexAddress): ...

    def claim(self, *, sender: HexAddress) -> int: ...

    def balance_of(self, account: HexAddress) -> int: ...

    def pending_reward(self, account: HexAddress) -> int: ...


@runtime_checkable
class Vault(Protocol):
    """Beefy like auto-compounding vault.

    The vault is itself the share token.
    """

    address: HexAddress

    #: Token deposited into the vault
    want: HexAddress

    total_supply: int

    def deposit(self, amount: int, *, sender: HexAddress) -> int: ...

    def withdraw(self, shares: int, *, sender: HexAddress) -> int: ...

    def balance(self) -> int: ...

    def balance_of(self, account: HexAddress) -> int: ...

    def price_per_share(self) -> int: ...


@runtime_checkable
class Router(Protocol):
    """Uniswap v2 router like swap and liquidity interface."""

    address: HexAddress

    def get_pair(self, token_a: HexAddress, token_b: HexAddress) -> HexAddress | None: ...

    def get_pair_tokens(self, lp_token: HexAddress) -> tuple[HexAddress, HexAddress]: ...

    def get_reserves(self, token_a: HexAddress, token_b: HexAddress) -> tuple[int, int]: ...

    def get_amounts_out(self, amount_in: int, path: Sequence[HexAddress]) -> list[int]: ...

    def swap_exact_tokens_for_tokens(
        self,
        amount_in: int,
        amount_out_min: int,
        path: Sequence[HexAddress],
        to: HexAddress,
        *,
        sender: HexAddress,
    ) -> list[int]: ...

    def add_liquidity(
        self,
        token_a: HexAddress,
        token_b: HexAddress,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int,
        amount_b_min: int,
        to: HexAddress,
        *,
        sender: HexAddress,
    ) -> tuple[int, int, int]: ...

    def remove_liquidity(
        self,
        token_a: HexAddress,
        token_b: HexAddress,
        liquidity: int,
        amount_a_min: int,
        amount_b_min: int,
        to: HexAddress,
        *,
        sender: HexAddress,
    ) -> tuple[int, int]: ...

"""In-memory Uniswap v2 like AMM.

- :py:class:`SimulatedPair` is the pair contract and its own liquidity token

- :py:class:`SimulatedRouter` is the factory and the router in one

Example how to set up a pool for tests:

.. code-block:: python

    router = ledger.deploy(SimulatedRouter(ledger), deployer)
    wmatic.approve(router.address, 2**256 - 1, sender=deployer)
    must.approve(router.address, 2**256 - 1, sender=deployer)

    # Price 1 MUST = 20 WMATIC
    router.add_liquidity(
        wmatic.address,
        must.address,
        200_000 * 10**18,
        10_000 * 10**18,
        0,
        0,
        deployer,
        sender=deployer,
    )
"""

import logging
from typing import Sequence

from eth_typing import HexAddress

from yield_optimizer.address import ZERO_ADDRESS, sort_tokens
from yield_optimizer.amm import (
    BPS,
    DEFAULT_FEE_BPS,
    MINIMUM_LIQUIDITY,
    calculate_liquidity_minted,
    get_amount_out_from_reserves,
    quote,
)
from yield_optimizer.errors import InsufficientLiquidity, PairNotFound, SlippageExceeded, ZeroAmount
from yield_optimizer.ledger import Ledger, LedgerComponent, entrypoint
from yield_optimizer.simulated.token import SimulatedToken

logger = logging.getLogger(__name__)


class SimulatedPair(SimulatedToken):
    """Constant product pair.

    Reserves follow the token balances the pair holds, like UniswapV2Pair.
    Only the router that created the pair may call mint, burn and swap.
    """

    state_attributes = SimulatedToken.state_attributes + ("reserve0", "reserve1")

    def __init__(self, ledger: Ledger, router: HexAddress, token0: SimulatedToken, token1: SimulatedToken, fee: int):
        super().__init__(ledger, f"{token0.symbol}-{token1.symbol} LP", f"{token0.symbol}-{token1.symbol}", owner=router)
        assert int(token0.address, 16) < int(token1.address, 16), "Tokens must be sorted"
        self.token0 = token0
        self.token1 = token1
        self.fee = fee
        self.reserve0 = 0
        self.reserve1 = 0

    def __repr__(self):
        return f"<Pair {self.symbol} at {self.address}, reserves {self.reserve0}/{self.reserve1}>"

    def get_reserves(self) -> tuple[int, int]:
        return self.reserve0, self.reserve1

    def _sync(self):
        self.reserve0 = self.token0.balance_of(self.address)
        self.reserve1 = self.token1.balance_of(self.address)

    @entrypoint(only_owner=True)
    def mint_liquidity(self, to: HexAddress, *, sender: HexAddress) -> int:
        """Mint liquidity tokens for whatever was transferred in since the last sync."""
        amount0 = self.token0.balance_of(self.address) - self.reserve0
        amount1 = self.token1.balance_of(self.address) - self.reserve1
        first_deposit = self.total_supply == 0
        liquidity = calculate_liquidity_minted(amount0, amount1, self.reserve0, self.reserve1, self.total_supply)
        if liquidity <= 0:
            raise InsufficientLiquidity(f"{self}: insufficient liquidity minted for {amount0}/{amount1}")
        if first_deposit:
            self._mint(ZERO_ADDRESS, MINIMUM_LIQUIDITY)
        self._mint(to, liquidity)
        self._sync()
        return liquidity

    @entrypoint(only_owner=True)
    def burn_liquidity(self, to: HexAddress, *, sender: HexAddress) -> tuple[int, int]:
        """Burn liquidity tokens transferred to the pair, pay out both assets."""
        liquidity = self.balance_of(self.address)
        balance0 = self.token0.balance_of(self.address)
        balance1 = self.token1.balance_of(self.address)
        amount0 = liquidity * balance0 // self.total_supply
        amount1 = liquidity * balance1 // self.total_supply
        if amount0 == 0 or amount1 == 0:
            raise InsufficientLiquidity(f"{self}: insufficient liquidity burned {liquidity}")
        self._burn(self.address, liquidity)
        self.token0.transfer(to, amount0, sender=self.address)
        self.token1.transfer(to, amount1, sender=self.address)
        self._sync()
        return amount0, amount1

    @entrypoint(only_owner=True)
    def swap(self, amount0_out: int, amount1_out: int, to: HexAddress, *, sender: HexAddress):
        """Pay out and check the invariant against what was transferred in."""
        if amount0_out == 0 and amount1_out == 0:
            raise ZeroAmount(f"{self}: insufficient output amount")
        if amount0_out >= self.reserve0 or amount1_out >= self.reserve1:
            raise InsufficientLiquidity(f"{self}: output {amount0_out}/{amount1_out} exceeds reserves")
        if amount0_out:
            self.token0.transfer(to, amount0_out, sender=self.address)
        if amount1_out:
            self.token1.transfer(to, amount1_out, sender=self.address)
        balance0 = self.token0.balance_of(self.address)
        balance1 = self.token1.balance_of(self.address)
        amount0_in = max(balance0 - (self.reserve0 - amount0_out), 0)
        amount1_in = max(balance1 - (self.reserve1 - amount1_out), 0)
        if amount0_in == 0 and amount1_in == 0:
            raise ZeroAmount(f"{self}: insufficient input amount")
        adjusted0 = balance0 * BPS - amount0_in * self.fee
        adjusted1 = balance1 * BPS - amount1_in * self.fee
        assert adjusted0 * adjusted1 >= self.reserve0 * self.reserve1 * BPS**2, f"{self}: K invariant broken"
        self._sync()


class SimulatedRouter(LedgerComponent):
    """Factory and router for :py:class:`SimulatedPair` pools.

    :param fee: Trading fee charged by every pair, in BPS
    """

    state_attributes = ("pairs", "pair_tokens")

    def __init__(self, ledger: Ledger, fee: int = DEFAULT_FEE_BPS):
        super().__init__(ledger)
        assert 0 <= fee < BPS
        self.fee = fee

        #: (token0, token1) -> pair address
        self.pairs: dict[tuple[HexAddress, HexAddress], HexAddress] = {}

        #: pair address -> (token0, token1)
        self.pair_tokens: dict[HexAddress, tuple[HexAddress, HexAddress]] = {}

    def get_pair(self, token_a: HexAddress, token_b: HexAddress) -> HexAddress | None:
        if token_a == token_b:
            return None
        return self.pairs.get(sort_tokens(token_a, token_b))

    def get_pair_contract(self, token_a: HexAddress, token_b: HexAddress) -> SimulatedPair:
        """:raise PairNotFound: If the pool does not exist"""
        pair_address = self.get_pair(token_a, token_b)
        if pair_address is None:
            raise PairNotFound(f"{self}: no pair for {token_a}-{token_b}")
        return self.ledger.get(pair_address)

    def get_pair_tokens(self, lp_token: HexAddress) -> tuple[HexAddress, HexAddress]:
        """Underlying assets of a liquidity token, sorted.

        :raise PairNotFound: If the liquidity token is not a pair of this router
        """
        try:
            return self.pair_tokens[lp_token]
        except KeyError as e:
            raise PairNotFound(f"{self}: {lp_token} is not a pair of this router") from e

    def get_reserves(self, token_a: HexAddress, token_b: HexAddress) -> tuple[int, int]:
        """Reserves in the asked token order.

        :raise PairNotFound: If the pool does not exist
        """
        pair = self.get_pair_contract(token_a, token_b)
        if pair.token0.address == token_a:
            return pair.reserve0, pair.reserve1
        return pair.reserve1, pair.reserve0

    def get_amounts_out(self, amount_in: int, path: Sequence[HexAddress]) -> list[int]:
        """Amounts after each hop of a route."""
        assert len(path) >= 2
        if amount_in <= 0:
            raise ZeroAmount("Router: insufficient input amount")
        amounts = [amount_in]
        for token_in, token_out in zip(path, path[1:]):
            reserve_in, reserve_out = self.get_reserves(token_in, token_out)
            if reserve_in == 0 or reserve_out == 0:
                raise InsufficientLiquidity(f"{self}: pair {token_in}-{token_out} has no liquidity")
            amounts.append(get_amount_out_from_reserves(amounts[-1], reserve_in, reserve_out, fee=self.fee))
        return amounts

    @entrypoint
    def create_pair(self, token_a: HexAddress, token_b: HexAddress, *, sender: HexAddress) -> SimulatedPair:
        return self._create_pair(token_a, token_b)

    def _create_pair(self, token_a: HexAddress, token_b: HexAddress) -> SimulatedPair:
        token0, token1 = sort_tokens(token_a, token_b)
        assert (token0, token1) not in self.pairs, f"Pair exists {token0}-{token1}"
        pair = SimulatedPair(self.ledger, self.address, self.ledger.get(token0), self.ledger.get(token1), self.fee)
        self.ledger.deploy(pair, self.address)
        self.pairs[(token0, token1)] = pair.address
        self.pair_tokens[pair.address] = (token0, token1)
        logger.info("Created pair %s", pair)
        return pair

    @entrypoint
    def swap_exact_tokens_for_tokens(
        self,
        amount_in: int,
        amount_out_min: int,
        path: Sequence[HexAddress],
        to: HexAddress,
        *,
        sender: HexAddress,
    ) -> list[int]:
        """Swap along a route.

        :raise SlippageExceeded: If the final output is below ``amount_out_min``
        """
        amounts = self.get_amounts_out(amount_in, path)
        if amounts[-1] < amount_out_min:
            raise SlippageExceeded(f"Router: insufficient output amount {amounts[-1]}, minimum {amount_out_min}")

        first_pair = self.get_pair_contract(path[0], path[1])
        self.ledger.get(path[0]).transfer_from(sender, first_pair.address, amount_in, sender=self.address)

        hops = list(zip(path, path[1:]))
        for i, (token_in, token_out) in enumerate(hops):
            pair = self.get_pair_contract(token_in, token_out)
            amount_out = amounts[i + 1]
            if pair.token0.address == token_in:
                amount0_out, amount1_out = 0, amount_out
            else:
                amount0_out, amount1_out = amount_out, 0
            if i < len(hops) - 1:
                recipient = self.get_pair(token_out, path[i + 2])
            else:
                recipient = to
            pair.swap(amount0_out, amount1_out, recipient, sender=self.address)
        return amounts

    @entrypoint
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
    ) -> tuple[int, int, int]:
        """Add liquidity at the current reserve ratio.

        Only the amounts matching the ratio are pulled from the sender, the rest stays with the sender.

        :return: (amount a used, amount b used, liquidity minted)
        """
        if amount_a_desired <= 0 or amount_b_desired <= 0:
            raise ZeroAmount("Router: insufficient amount")

        if self.get_pair(token_a, token_b) is None:
            self._create_pair(token_a, token_b)

        reserve_a, reserve_b = self.get_reserves(token_a, token_b)
        if reserve_a == 0 and reserve_b == 0:
            amount_a, amount_b = amount_a_desired, amount_b_desired
        else:
            amount_b_optimal = quote(amount_a_desired, reserve_a, reserve_b)
            if amount_b_optimal <= amount_b_desired:
                if amount_b_optimal < amount_b_min:
                    raise SlippageExceeded(f"Router: insufficient B amount {amount_b_optimal}, minimum {amount_b_min}")
                amount_a, amount_b = amount_a_desired, amount_b_optimal
            else:
                amount_a_optimal = quote(amount_b_desired, reserve_b, reserve_a)
                assert amount_a_optimal <= amount_a_desired
                if amount_a_optimal < amount_a_min:
                    raise SlippageExceeded(f"Router: insufficient A amount {amount_a_optimal}, minimum {amount_a_min}")
                amount_a, amount_b = amount_a_optimal, amount_b_desired

        pair = self.get_pair_contract(token_a, token_b)
        self.ledger.get(token_a).transfer_from(sender, pair.address, amount_a, sender=self.address)
        self.ledger.get(token_b).transfer_from(sender, pair.address, amount_b, sender=self.address)
        liquidity = pair.mint_liquidity(to, sender=self.address)
        return amount_a, amount_b, liquidity

    @entrypoint
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
    ) -> tuple[int, int]:
        """Burn liquidity tokens and pay out both assets.

        :return: (amount a, amount b)
        """
        if liquidity <= 0:
            raise ZeroAmount("Router: zero liquidity")
        pair = self.get_pair_contract(token_a, token_b)
        pair.transfer_from(sender, pair.address, liquidity, sender=self.address)
        amount0, amount1 = pair.burn_liquidity(to, sender=self.address)
        if pair.token0.address == token_a:
            amount_a, amount_b = amount0, amount1
        else:
            amount_a, amount_b = amount1, amount0
        if amount_a < amount_a_min or amount_b < amount_b_min:
            raise SlippageExceeded(f"Router: removed {amount_a}/{amount_b}, minimum {amount_a_min}/{amount_b_min}")
        return amount_a, amount_b

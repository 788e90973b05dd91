"""Single asset to liquidity position conversion ("zapping").

- :py:class:`Zap` turns any token into a Uniswap v2 liquidity token and back, through one router

- :py:class:`ZapRegistry` keeps at most one :py:class:`Zap` per router

How a zap works for a pair ``(A, B)`` and an input amount ``a`` of ``A``:

1. Solve the constant product invariant for the swap size ``s``
   that leaves ``a - s`` of ``A`` and the swap output of ``B`` in the post-swap reserve ratio,
   see :py:func:`yield_optimizer.amm.calculate_optimal_swap_amount`

2. Swap ``s`` of ``A`` to ``B``

3. Add liquidity with both balances

4. Return whatever the router did not take back to the caller

An input token that is not part of the pair is first swapped in full to one of the legs.

Example:

.. code-block:: python

    zap = zap_registry.create_zap(router.address, sender=operator)

    weth.approve(zap.address, amount, sender=user)
    lp_amount = zap.zap(weth.address, wmatic.address, must.address, amount, sender=user)
"""

import logging

from eth_typing import HexAddress

from yield_optimizer.amm import (
    DEFAULT_FEE_BPS,
    apply_slippage,
    calculate_liquidity_minted,
    calculate_optimal_swap_amount,
    get_amount_out_from_reserves,
    quote,
)
from yield_optimizer.errors import DuplicateZap, InsufficientLiquidity, PairNotFound, SlippageExceeded, ZeroAmount
from yield_optimizer.interfaces import FungibleToken, Router
from yield_optimizer.ledger import Ledger, LedgerComponent, entrypoint

logger = logging.getLogger(__name__)

#: Default tolerance between the swap output we calculate and what the router gives, in BPS
DEFAULT_MAX_SLIPPAGE_BPS = 50


class Zap(LedgerComponent):
    """Liquidity conversions through one router.

    The zap holds no balances between calls: everything it receives
    is either added as liquidity or sent back to the caller.

    :param router:
        Uniswap v2 like router address

    :param fee_bps:
        Trading fee the router charges, in BPS.
        Used to solve the optimal swap split and the minimum swap output.

    :param max_slippage_bps:
        How much less than the calculated swap output we accept, in BPS
    """

    def __init__(
        self,
        ledger: Ledger,
        router: HexAddress,
        fee_bps: int = DEFAULT_FEE_BPS,
        max_slippage_bps: int = DEFAULT_MAX_SLIPPAGE_BPS,
        owner: HexAddress | None = None,
    ):
        super().__init__(ledger, owner)
        self.router = router
        self.fee_bps = fee_bps
        self.max_slippage_bps = max_slippage_bps

    def get_router(self) -> Router:
        return self.ledger.get(self.router)

    def get_token(self, address: HexAddress) -> FungibleToken:
        return self.ledger.get(address)

    @entrypoint
    def zap(self, token_in: HexAddress, token_a: HexAddress, token_b: HexAddress, amount_in: int, *, sender: HexAddress) -> int:
        """Convert ``amount_in`` of ``token_in`` to liquidity tokens of the pair ``(token_a, token_b)``.

        The sender must have approved the zap for ``amount_in``.

        :return:
            Liquidity tokens sent to the sender

        :raise ZeroAmount:
            If ``amount_in`` is zero or too small to split

        :raise SlippageExceeded:
            If a swap returned less than we calculated, minus tolerance
        """
        if amount_in == 0:
            raise ZeroAmount("Cannot zap 0")
        self._pull(token_in, sender, amount_in)
        liquidity = self._zap_from_balance(token_in, token_a, token_b, amount_in, sender)
        self.emit("Zapped", account=sender, token_in=token_in, amount_in=amount_in, liquidity=liquidity)
        return liquidity

    @entrypoint
    def unzap(self, lp_token: HexAddress, token_out: HexAddress, lp_amount: int, *, sender: HexAddress) -> int:
        """Remove liquidity and convert both assets to ``token_out``.

        :return:
            Amount of ``token_out`` sent to the sender

        :raise InsufficientLiquidity:
            If the sender has not approved or does not hold ``lp_amount``
        """
        if lp_amount == 0:
            raise ZeroAmount("Cannot unzap 0")
        self._check_lp_available(lp_token, sender, lp_amount)
        self._pull(lp_token, sender, lp_amount)
        amount_out = self._unzap_to_balance(lp_token, token_out, lp_amount)
        self.get_token(token_out).transfer(sender, amount_out, sender=self.address)
        self.emit("Unzapped", account=sender, lp_token=lp_token, lp_amount=lp_amount, token_out=token_out, amount_out=amount_out)
        return amount_out

    @entrypoint
    def swap_lp(self, lp_in: HexAddress, lp_out: HexAddress, amount: int, *, sender: HexAddress) -> int:
        """Move a liquidity position from one pair to another.

        Unzaps into an asset of the target pair, preferring an asset both pairs share,
        then zaps into the target pair.

        :return:
            Liquidity tokens of ``lp_out`` sent to the sender
        """
        assert lp_in != lp_out, f"Swapping {lp_in} to itself"
        if amount == 0:
            raise ZeroAmount("Cannot swap 0 liquidity")
        self._check_lp_available(lp_in, sender, amount)
        self._pull(lp_in, sender, amount)

        router = self.get_router()
        in_tokens = router.get_pair_tokens(lp_in)
        out_token0, out_token1 = router.get_pair_tokens(lp_out)
        shared = [t for t in (out_token0, out_token1) if t in in_tokens]
        intermediate = shared[0] if shared else out_token0

        intermediate_amount = self._unzap_to_balance(lp_in, intermediate, amount)
        liquidity = self._zap_from_balance(intermediate, out_token0, out_token1, intermediate_amount, sender)
        self.emit("LiquiditySwapped", account=sender, lp_in=lp_in, lp_out=lp_out, amount_in=amount, liquidity=liquidity)
        return liquidity

    def estimate_zap(self, token_in: HexAddress, token_a: HexAddress, token_b: HexAddress, amount_in: int) -> int:
        """How many liquidity tokens :py:meth:`zap` would mint at the current reserves.

        Follows the same swaps and liquidity math as :py:meth:`zap` without changing any state,
        so callers can tell reward dust apart from an amount worth zapping.

        :return:
            Liquidity tokens, or 0 if ``amount_in`` is too small to swap, split or mint anything
        """
        assert token_a != token_b, f"Bad pair {token_a}-{token_b}"
        if amount_in <= 0:
            return 0

        router = self.get_router()
        if token_in not in (token_a, token_b):
            leg = self._pick_leg(token_in, token_a, token_b)
            amount_in = router.get_amounts_out(amount_in, [token_in, leg])[-1]
            token_in = leg
            if amount_in == 0:
                return 0

        other = token_b if token_in == token_a else token_a
        reserve_in, reserve_other = router.get_reserves(token_in, other)
        if reserve_in == 0 or reserve_other == 0:
            return 0

        swap_amount = calculate_optimal_swap_amount(amount_in, reserve_in, fee=self.fee_bps)
        remaining = amount_in - swap_amount
        if swap_amount == 0 or remaining == 0:
            return 0
        other_amount = router.get_amounts_out(swap_amount, [token_in, other])[-1]
        if other_amount == 0:
            return 0

        # Liquidity is added against the post-swap reserves
        reserve_in += swap_amount
        reserve_other -= other_amount
        used_other = quote(remaining, reserve_in, reserve_other)
        if used_other <= other_amount:
            used_in = remaining
        else:
            used_in = quote(other_amount, reserve_other, reserve_in)
            used_other = other_amount

        pair = self.get_token(router.get_pair(token_in, other))
        liquidity = calculate_liquidity_minted(used_in, used_other, reserve_in, reserve_other, pair.total_supply)
        return max(liquidity, 0)

    def _check_lp_available(self, lp_token: HexAddress, owner: HexAddress, amount: int):
        lp = self.get_token(lp_token)
        allowance = lp.allowance(owner, self.address)
        balance = lp.balance_of(owner)
        if allowance < amount or balance < amount:
            raise InsufficientLiquidity(f"Zap: {owner} has approved {allowance} and holds {balance} of {lp_token}, needs {amount}")

    def _pull(self, token: HexAddress, owner: HexAddress, amount: int):
        self.get_token(token).transfer_from(owner, self.address, amount, sender=self.address)

    def _approve_router(self, token: HexAddress, amount: int):
        self.get_token(token).approve(self.router, amount, sender=self.address)

    def _swap(self, token_in: HexAddress, token_out: HexAddress, amount_in: int) -> int:
        """Swap with the minimum output derived from the reserves we see."""
        router = self.get_router()
        reserve_in, reserve_out = router.get_reserves(token_in, token_out)
        if reserve_in == 0 or reserve_out == 0:
            raise InsufficientLiquidity(f"Zap: no liquidity for {token_in}-{token_out}")
        expected = get_amount_out_from_reserves(amount_in, reserve_in, reserve_out, fee=self.fee_bps)
        amount_out_min = apply_slippage(expected, self.max_slippage_bps)
        self._approve_router(token_in, amount_in)
        amounts = router.swap_exact_tokens_for_tokens(amount_in, amount_out_min, [token_in, token_out], self.address, sender=self.address)
        amount_out = amounts[-1]
        if amount_out < amount_out_min:
            raise SlippageExceeded(f"Zap: swap {token_in} -> {token_out} returned {amount_out}, minimum {amount_out_min}")
        logger.debug("Swapped %d %s -> %d %s", amount_in, token_in, amount_out, token_out)
        return amount_out

    def _pick_leg(self, token_in: HexAddress, token_a: HexAddress, token_b: HexAddress) -> HexAddress:
        router = self.get_router()
        for leg in (token_a, token_b):
            if router.get_pair(token_in, leg) is not None:
                return leg
        raise PairNotFound(f"Zap: no route from {token_in} to either {token_a} or {token_b}")

    def _zap_from_balance(self, token_in: HexAddress, token_a: HexAddress, token_b: HexAddress, amount_in: int, recipient: HexAddress) -> int:
        """Zap tokens the zap already holds, send liquidity and dust to the recipient."""
        assert token_a != token_b, f"Bad pair {token_a}-{token_b}"

        if token_in not in (token_a, token_b):
            leg = self._pick_leg(token_in, token_a, token_b)
            amount_in = self._swap(token_in, leg, amount_in)
            token_in = leg

        other = token_b if token_in == token_a else token_a
        router = self.get_router()
        reserve_in, reserve_other = router.get_reserves(token_in, other)
        if reserve_in == 0 or reserve_other == 0:
            raise InsufficientLiquidity(f"Zap: pair {token_in}-{other} has no liquidity")

        swap_amount = calculate_optimal_swap_amount(amount_in, reserve_in, fee=self.fee_bps)
        if swap_amount == 0:
            raise ZeroAmount(f"Zap: {amount_in} of {token_in} is too small to split")
        other_amount = self._swap(token_in, other, swap_amount)
        remaining = amount_in - swap_amount

        self._approve_router(token_in, remaining)
        self._approve_router(other, other_amount)
        used_in, used_other, liquidity = router.add_liquidity(
            token_in,
            other,
            remaining,
            other_amount,
            0,
            0,
            recipient,
            sender=self.address,
        )

        # Whatever the pool did not take goes back to the caller
        for token, dust in ((token_in, remaining - used_in), (other, other_amount - used_other)):
            if dust > 0:
                self.get_token(token).transfer(recipient, dust, sender=self.address)
                logger.debug("Returned %d dust of %s to %s", dust, token, recipient)
            self._approve_router(token, 0)

        logger.info("Zapped %d %s into %d liquidity of %s-%s", amount_in, token_in, liquidity, token_a, token_b)
        return liquidity

    def _unzap_to_balance(self, lp_token: HexAddress, token_out: HexAddress, lp_amount: int) -> int:
        """Unzap liquidity tokens the zap already holds, keep the output in the zap."""
        router = self.get_router()
        token0, token1 = router.get_pair_tokens(lp_token)
        self._approve_router(lp_token, lp_amount)
        amount0, amount1 = router.remove_liquidity(token0, token1, lp_amount, 0, 0, self.address, sender=self.address)
        total = 0
        for token, amount in ((token0, amount0), (token1, amount1)):
            if token == token_out:
                total += amount
            else:
                total += self._swap(token, token_out, amount)
        logger.info("Unzapped %d of %s into %d %s", lp_amount, lp_token, total, token_out)
        return total


class ZapRegistry(LedgerComponent):
    """At most one :py:class:`Zap` per router.

    Zaps are created on demand by the registry owner, the protocol operator.
    """

    state_attributes = ("zaps", "zap_by_router")

    def __init__(
        self,
        ledger: Ledger,
        owner: HexAddress,
        fee_bps: int = DEFAULT_FEE_BPS,
        max_slippage_bps: int = DEFAULT_MAX_SLIPPAGE_BPS,
    ):
        super().__init__(ledger, owner)
        self.fee_bps = fee_bps
        self.max_slippage_bps = max_slippage_bps

        #: Zap addresses in creation order
        self.zaps: list[HexAddress] = []

        #: router address -> zap address
        self.zap_by_router: dict[HexAddress, HexAddress] = {}

    @entrypoint(only_owner=True)
    def create_zap(self, router: HexAddress, *, sender: HexAddress) -> Zap:
        """Deploy a zap for a router.

        :raise DuplicateZap: If the router already has one
        """
        if router in self.zap_by_router:
            raise DuplicateZap(f"Router {router} already has zap {self.zap_by_router[router]}")
        zap = Zap(self.ledger, router, fee_bps=self.fee_bps, max_slippage_bps=self.max_slippage_bps, owner=self.owner)
        self.ledger.deploy(zap, self.address)
        self.zaps.append(zap.address)
        self.zap_by_router[router] = zap.address
        self.emit("ZapCreated", router=router, zap=zap.address)
        logger.info("Created zap %s for router %s", zap.address, router)
        return zap

    def get_zap_by_router(self, router: HexAddress) -> HexAddress | None:
        return self.zap_by_router.get(router)

    def get_zap_count(self) -> int:
        return len(self.zaps)

    def get_zap(self, index: int) -> Zap:
        return self.ledger.get(self.zaps[index])

"""Uniswap v2 constant product math.

- Swap output and input estimation given reserves

- Optimal swap split for single sided liquidity provision ("zapping")

All amounts are raw integer token units and all fees are expressed in BPS.

`Partially lifted from Uniswap-v2-py MIT licensed by Asynctomatic <https://github.com/nosofa/uniswap-v2-py>`_.
"""

import logging
import math

logger = logging.getLogger(__name__)

#: BPS denominator
BPS = 10_000

#: Uniswap v2 default trading fee, 30 BPS = 0.3%
DEFAULT_FEE_BPS = 30

#: Liquidity tokens locked forever when a pair is seeded
MINIMUM_LIQUIDITY = 1000


def get_amount_out_from_reserves(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    *,
    fee: int = DEFAULT_FEE_BPS,
) -> int:
    """Given an input asset amount, returns the maximum output amount of
    the other asset (accounting for fees) given reserves.

    :param amount_in: Amount of input asset.
    :param reserve_in: Reserve of input asset in the pair contract.
    :param reserve_out: Reserve of output asset in the pair contract.
    :param fee: Trading fee express in bps, default = 30 bps (0.3%)
    :return: Maximum amount of output asset.
    """
    assert amount_in > 0
    assert reserve_in > 0 and reserve_out > 0
    amount_in_with_fee = amount_in * (BPS - fee)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS + amount_in_with_fee
    return numerator // denominator


def get_amount_in_from_reserves(
    amount_out: int,
    reserve_in: int,
    reserve_out: int,
    *,
    fee: int = DEFAULT_FEE_BPS,
) -> int:
    """Returns the minimum input asset amount required to buy the given
    output asset amount (accounting for fees) given reserves.

    :param amount_out: Amount of output asset.
    :param reserve_in: Reserve of input asset in the pair contract.
    :param reserve_out: Reserve of output asset in the pair contract.
    :param fee: Trading fee express in bps, default = 30 bps (0.3%)
    :return: Required amount of input asset.
    """
    assert amount_out > 0
    assert reserve_in > 0 and reserve_out > amount_out
    numerator = reserve_in * amount_out * BPS
    denominator = (reserve_out - amount_out) * (BPS - fee)
    return numerator // denominator + 1


def quote(amount_a: int, reserve_a: int, reserve_b: int) -> int:
    """Equivalent amount of the other asset at the current reserve ratio, no fees."""
    assert amount_a > 0
    assert reserve_a > 0 and reserve_b > 0
    return amount_a * reserve_b // reserve_a


def calculate_optimal_swap_amount(amount_in: int, reserve_in: int, *, fee: int = DEFAULT_FEE_BPS) -> int:
    """How much of a single asset to swap before adding liquidity.

    Solves the constant product invariant for the swap size ``s`` after which
    the remaining ``amount_in - s`` and the swap output are in the same ratio
    as the post-swap reserves, so adding liquidity leaves as little dust as possible.

    With ``f`` being the fee as a fraction:

    .. code-block:: text

        s = (sqrt(r * (r * (2 - f)^2 + 4 * (1 - f) * a)) - r * (2 - f)) / (2 * (1 - f))

    Here scaled by :py:data:`BPS` so that everything stays in integers.

    :param amount_in: Amount of the asset we hold
    :param reserve_in: Pair reserve of the same asset
    :param fee: Trading fee express in bps
    :return: Amount to swap into the other leg
    """
    assert amount_in > 0
    assert reserve_in > 0
    assert 0 <= fee < BPS
    two_minus_fee = 2 * BPS - fee
    one_minus_fee = BPS - fee
    root = math.isqrt(reserve_in * (reserve_in * two_minus_fee**2 + 4 * one_minus_fee * BPS * amount_in))
    swap_amount = (root - reserve_in * two_minus_fee) // (2 * one_minus_fee)
    logger.debug("Optimal swap for %d against reserve %d is %d", amount_in, reserve_in, swap_amount)
    return swap_amount


def calculate_liquidity_minted(amount_0: int, amount_1: int, reserve_0: int, reserve_1: int, total_supply: int) -> int:
    """Liquidity tokens minted for a deposit, as UniswapV2Pair.mint() does it.

    The first deposit locks :py:data:`MINIMUM_LIQUIDITY` forever.
    """
    if total_supply == 0:
        return math.isqrt(amount_0 * amount_1) - MINIMUM_LIQUIDITY
    return min(amount_0 * total_supply // reserve_0, amount_1 * total_supply // reserve_1)


def apply_slippage(amount: int, max_slippage: int) -> int:
    """Minimum accepted amount given a slippage tolerance.

    :param amount: Expected amount
    :param max_slippage: Tolerance in BPS
    """
    assert 0 <= max_slippage <= BPS
    return amount * (BPS - max_slippage) // BPS

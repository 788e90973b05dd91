"""Constant product math and the simulated router."""

import pytest

from yield_optimizer.address import account_from_label
from yield_optimizer.amm import (
    MINIMUM_LIQUIDITY,
    apply_slippage,
    calculate_liquidity_minted,
    calculate_optimal_swap_amount,
    get_amount_in_from_reserves,
    get_amount_out_from_reserves,
    quote,
)
from yield_optimizer.errors import PairNotFound, SlippageExceeded


def test_amount_out_and_in():
    """Buying back what we sold never costs less than we sold."""
    reserve_in = 1_000 * 10**18
    reserve_out = 2_000 * 10**18
    amount_in = 10**18

    amount_out = get_amount_out_from_reserves(amount_in, reserve_in, reserve_out)
    # Less than the 2:1 spot price because of the fee and price impact
    assert 0 < amount_out < 2 * 10**18
    assert get_amount_out_from_reserves(amount_in, reserve_in, reserve_out, fee=0) > amount_out

    assert get_amount_in_from_reserves(amount_out, reserve_in, reserve_out) <= amount_in + 1


def test_quote():
    assert quote(10, 100, 200) == 20


def test_optimal_swap_without_fee():
    """With no fee the swap is sqrt(r * (r + a)) - r."""
    assert calculate_optimal_swap_amount(3 * 10**18, 10**18, fee=0) == 10**18


def test_optimal_swap_leaves_matching_ratio():
    """After the optimal swap the leftovers are in the pool ratio."""
    reserve_in = 1_000_000 * 10**18
    reserve_out = 20_000 * 10**18
    amount = 5_000 * 10**18

    swap_amount = calculate_optimal_swap_amount(amount, reserve_in)
    assert amount * 49 // 100 < swap_amount < amount * 51 // 100

    amount_out = get_amount_out_from_reserves(swap_amount, reserve_in, reserve_out)
    new_reserve_in = reserve_in + swap_amount
    new_reserve_out = reserve_out - amount_out
    remaining = amount - swap_amount

    matching_out = quote(remaining, new_reserve_in, new_reserve_out)
    assert matching_out == pytest.approx(amount_out, rel=1e-9)


def test_liquidity_minted():
    assert calculate_liquidity_minted(10**18, 4 * 10**18, 0, 0, 0) == 2 * 10**18 - MINIMUM_LIQUIDITY
    assert calculate_liquidity_minted(10, 20, 100, 200, 1000) == 100


def test_apply_slippage():
    assert apply_slippage(10_000, 50) == 9_950
    assert apply_slippage(10_000, 0) == 10_000


def test_router_swap(router, wmatic_must_pair, wmatic, must, user):
    """Swap WMATIC to MUST through the router."""
    wmatic.mint(user, 100 * 10**18, sender=wmatic.owner)
    wmatic.approve(router.address, 100 * 10**18, sender=user)

    expected = router.get_amounts_out(100 * 10**18, [wmatic.address, must.address])[-1]
    amounts = router.swap_exact_tokens_for_tokens(100 * 10**18, expected, [wmatic.address, must.address], user, sender=user)

    assert amounts[-1] == expected
    assert must.balance_of(user) == expected
    assert wmatic.balance_of(user) == 0
    reserve_wmatic, reserve_must = router.get_reserves(wmatic.address, must.address)
    assert reserve_wmatic == 1_000_100 * 10**18
    assert reserve_must == 20_000 * 10**18 - expected


def test_router_swap_slippage(router, wmatic_must_pair, wmatic, must, user):
    """Output below the minimum reverts and nothing moves."""
    wmatic.mint(user, 100 * 10**18, sender=wmatic.owner)
    wmatic.approve(router.address, 100 * 10**18, sender=user)

    with pytest.raises(SlippageExceeded):
        router.swap_exact_tokens_for_tokens(100 * 10**18, 2 * 10**18, [wmatic.address, must.address], user, sender=user)

    assert wmatic.balance_of(user) == 100 * 10**18
    assert router.get_reserves(wmatic.address, must.address) == (1_000_000 * 10**18, 20_000 * 10**18)


def test_router_remove_liquidity(router, wmatic_must_pair, wmatic, must, operator):
    """Burning a tenth of the supply pays out a tenth of the reserves."""
    liquidity = wmatic_must_pair.total_supply // 10
    wmatic_must_pair.approve(router.address, liquidity, sender=operator)
    amount_wmatic, amount_must = router.remove_liquidity(wmatic.address, must.address, liquidity, 0, 0, operator, sender=operator)
    assert amount_wmatic == pytest.approx(100_000 * 10**18, rel=1e-9)
    assert amount_must == pytest.approx(2_000 * 10**18, rel=1e-9)


def test_router_unknown_pair(router, wmatic, weth):
    with pytest.raises(PairNotFound):
        router.get_reserves(wmatic.address, weth.address)
    with pytest.raises(PairNotFound):
        router.get_pair_tokens(account_from_label("not a pair"))


def test_router_create_pair(router, wmatic, weth, operator):
    """Empty pair, tokens sorted by address."""
    pair = router.create_pair(wmatic.address, weth.address, sender=operator)
    assert router.get_pair(weth.address, wmatic.address) == pair.address
    assert router.get_reserves(wmatic.address, weth.address) == (0, 0)
    assert set(router.get_pair_tokens(pair.address)) == {wmatic.address, weth.address}

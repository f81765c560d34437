"""
Swap Math - a single bounded swap step

References:
- Uniswap V3 Core: contracts/libraries/SwapMath.sol

Only exact-input steps exist: ``amount_remaining`` is always positive.
"""

from typing import NamedTuple

from .constants import FEE_DENOMINATOR
from .full_math import mul_div, mul_div_rounding_up
from .sqrt_price_math import (
    get_amount0_delta,
    get_amount1_delta,
    get_next_sqrt_price_from_input,
)


class SwapStep(NamedTuple):
    sqrt_ratio_next_x96: int
    amount_in: int
    amount_out: int
    fee_amount: int


def compute_swap_step(
    sqrt_ratio_current_x96: int,
    sqrt_ratio_target_x96: int,
    liquidity: int,
    amount_remaining: int,
    fee_pips: int,
) -> SwapStep:
    """
    Swap as much of ``amount_remaining`` as fits before reaching the target price.

    Args:
        sqrt_ratio_current_x96: Current sqrt price
        sqrt_ratio_target_x96: Price the step may not pass
        liquidity: Active liquidity
        amount_remaining: Input still to swap, fee included
        fee_pips: Fee in hundredths of a bip

    Returns:
        SwapStep with the price reached, input consumed (fee excluded),
        output produced and fee charged
    """
    zero_for_one = sqrt_ratio_current_x96 >= sqrt_ratio_target_x96

    amount_remaining_less_fee = mul_div(
        amount_remaining, FEE_DENOMINATOR - fee_pips, FEE_DENOMINATOR
    )
    if zero_for_one:
        amount_in = get_amount0_delta(
            sqrt_ratio_target_x96, sqrt_ratio_current_x96, liquidity, True
        )
    else:
        amount_in = get_amount1_delta(
            sqrt_ratio_current_x96, sqrt_ratio_target_x96, liquidity, True
        )

    if amount_remaining_less_fee >= amount_in:
        sqrt_ratio_next_x96 = sqrt_ratio_target_x96
    else:
        sqrt_ratio_next_x96 = get_next_sqrt_price_from_input(
            sqrt_ratio_current_x96, liquidity, amount_remaining_less_fee, zero_for_one
        )

    reached_target = sqrt_ratio_target_x96 == sqrt_ratio_next_x96

    if zero_for_one:
        if not reached_target:
            amount_in = get_amount0_delta(
                sqrt_ratio_next_x96, sqrt_ratio_current_x96, liquidity, True
            )
        amount_out = get_amount1_delta(
            sqrt_ratio_next_x96, sqrt_ratio_current_x96, liquidity, False
        )
    else:
        if not reached_target:
            amount_in = get_amount1_delta(
                sqrt_ratio_current_x96, sqrt_ratio_next_x96, liquidity, True
            )
        amount_out = get_amount0_delta(
            sqrt_ratio_current_x96, sqrt_ratio_next_x96, liquidity, False
        )

    if not reached_target:
        # the remainder that did not move the price is taken as fee
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = mul_div_rounding_up(amount_in, fee_pips, FEE_DENOMINATOR - fee_pips)

    return SwapStep(sqrt_ratio_next_x96, amount_in, amount_out, fee_amount)

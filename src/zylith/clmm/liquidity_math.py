"""
Liquidity Math - signed liquidity deltas and liquidity <-> token amounts

References:
- Uniswap V3 Core: contracts/libraries/LiquidityMath.sol
- Uniswap V3 Periphery: contracts/libraries/LiquidityAmounts.sol

    L = amount1 / (sqrtB - sqrtA)
    L = amount0 * sqrtA * sqrtB / (sqrtB - sqrtA)
"""

from typing import Tuple

from zylith.exceptions import ArithmeticOverflowError

from .constants import Q96, UINT128_MAX
from .full_math import mul_div
from .sqrt_price_math import get_amount0_delta, get_amount1_delta


def add_delta(x: int, y: int) -> int:
    """Apply a signed delta to a uint128 liquidity value.

    Raises:
        ArithmeticOverflowError: On underflow below zero or overflow past uint128
    """
    z = x + y
    if z < 0:
        raise ArithmeticOverflowError(f"Liquidity underflow: {x} + ({y})")
    if z > UINT128_MAX:
        raise ArithmeticOverflowError(f"Liquidity overflow: {x} + {y}")
    return z


def get_liquidity_for_amount0(sqrt_ratio_a_x96: int, sqrt_ratio_b_x96: int, amount0: int) -> int:
    """Largest liquidity that ``amount0`` of token0 funds between two prices."""
    if sqrt_ratio_a_x96 > sqrt_ratio_b_x96:
        sqrt_ratio_a_x96, sqrt_ratio_b_x96 = sqrt_ratio_b_x96, sqrt_ratio_a_x96
    if sqrt_ratio_b_x96 == sqrt_ratio_a_x96:
        return 0
    intermediate = mul_div(sqrt_ratio_a_x96, sqrt_ratio_b_x96, Q96)
    return mul_div(amount0, intermediate, sqrt_ratio_b_x96 - sqrt_ratio_a_x96)


def get_liquidity_for_amount1(sqrt_ratio_a_x96: int, sqrt_ratio_b_x96: int, amount1: int) -> int:
    """Largest liquidity that ``amount1`` of token1 funds between two prices."""
    if sqrt_ratio_a_x96 > sqrt_ratio_b_x96:
        sqrt_ratio_a_x96, sqrt_ratio_b_x96 = sqrt_ratio_b_x96, sqrt_ratio_a_x96
    if sqrt_ratio_b_x96 == sqrt_ratio_a_x96:
        return 0
    return mul_div(amount1, Q96, sqrt_ratio_b_x96 - sqrt_ratio_a_x96)


def get_liquidity_for_amounts(
    sqrt_ratio_x96: int,
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    amount0: int,
    amount1: int,
) -> int:
    """Largest liquidity mintable from both amounts at the current price.

    Below the range only token0 counts, above it only token1, inside it the
    smaller of the two bounds wins.
    """
    if sqrt_ratio_a_x96 > sqrt_ratio_b_x96:
        sqrt_ratio_a_x96, sqrt_ratio_b_x96 = sqrt_ratio_b_x96, sqrt_ratio_a_x96

    if sqrt_ratio_x96 <= sqrt_ratio_a_x96:
        return get_liquidity_for_amount0(sqrt_ratio_a_x96, sqrt_ratio_b_x96, amount0)
    if sqrt_ratio_x96 < sqrt_ratio_b_x96:
        liquidity0 = get_liquidity_for_amount0(sqrt_ratio_x96, sqrt_ratio_b_x96, amount0)
        liquidity1 = get_liquidity_for_amount1(sqrt_ratio_a_x96, sqrt_ratio_x96, amount1)
        return min(liquidity0, liquidity1)
    return get_liquidity_for_amount1(sqrt_ratio_a_x96, sqrt_ratio_b_x96, amount1)


def get_amounts_for_liquidity(
    sqrt_ratio_x96: int,
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    liquidity: int,
) -> Tuple[int, int]:
    """Token amounts held by ``liquidity`` at the current price (rounded down)."""
    if sqrt_ratio_a_x96 > sqrt_ratio_b_x96:
        sqrt_ratio_a_x96, sqrt_ratio_b_x96 = sqrt_ratio_b_x96, sqrt_ratio_a_x96

    if sqrt_ratio_x96 <= sqrt_ratio_a_x96:
        return get_amount0_delta(sqrt_ratio_a_x96, sqrt_ratio_b_x96, liquidity, False), 0
    if sqrt_ratio_x96 < sqrt_ratio_b_x96:
        return (
            get_amount0_delta(sqrt_ratio_x96, sqrt_ratio_b_x96, liquidity, False),
            get_amount1_delta(sqrt_ratio_a_x96, sqrt_ratio_x96, liquidity, False),
        )
    return 0, get_amount1_delta(sqrt_ratio_a_x96, sqrt_ratio_b_x96, liquidity, False)

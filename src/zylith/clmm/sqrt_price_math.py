"""
Sqrt Price Math - price movement and token deltas for a liquidity amount

References:
- Uniswap V3 Core: contracts/libraries/SqrtPriceMath.sol

    amount0 = L * (sqrtB - sqrtA) / (sqrtA * sqrtB)
    amount1 = L * (sqrtB - sqrtA)
"""

from zylith.exceptions import ArithmeticOverflowError, ZeroLiquidityError

from .constants import Q96, UINT256_MOD
from .full_math import div_rounding_up, mul_div, mul_div_rounding_up

_UINT160_MOD = 2 ** 160


def _to_uint160(value: int) -> int:
    if value < 0 or value >= _UINT160_MOD:
        raise ArithmeticOverflowError(f"sqrt price {value} does not fit in uint160")
    return value


def get_next_sqrt_price_from_amount0_rounding_up(
    sqrt_price_x96: int, liquidity: int, amount: int, add: bool
) -> int:
    """Next sqrt price after adding or removing ``amount`` of token0 (rounded up)."""
    if amount == 0:
        return sqrt_price_x96

    numerator1 = liquidity << 96
    product = amount * sqrt_price_x96

    if add:
        if product < UINT256_MOD:
            denominator = numerator1 + product
            if denominator < UINT256_MOD:
                return mul_div_rounding_up(numerator1, sqrt_price_x96, denominator)
        return div_rounding_up(numerator1, numerator1 // sqrt_price_x96 + amount)

    if product >= UINT256_MOD or numerator1 <= product:
        raise ArithmeticOverflowError("token0 removal exceeds available liquidity")
    denominator = numerator1 - product
    return _to_uint160(mul_div_rounding_up(numerator1, sqrt_price_x96, denominator))


def get_next_sqrt_price_from_amount1_rounding_down(
    sqrt_price_x96: int, liquidity: int, amount: int, add: bool
) -> int:
    """Next sqrt price after adding or removing ``amount`` of token1 (rounded down)."""
    if add:
        quotient = mul_div(amount, Q96, liquidity)
        return _to_uint160(sqrt_price_x96 + quotient)

    quotient = div_rounding_up(amount << 96, liquidity)
    if sqrt_price_x96 <= quotient:
        raise ArithmeticOverflowError("token1 removal exceeds available liquidity")
    return sqrt_price_x96 - quotient


def get_next_sqrt_price_from_input(
    sqrt_price_x96: int, liquidity: int, amount_in: int, zero_for_one: bool
) -> int:
    """Next sqrt price after an exact input of token0 (zero_for_one) or token1."""
    if sqrt_price_x96 <= 0:
        raise ArithmeticOverflowError("sqrt price must be positive")
    if liquidity <= 0:
        raise ZeroLiquidityError("Cannot move price without liquidity")

    if zero_for_one:
        return get_next_sqrt_price_from_amount0_rounding_up(
            sqrt_price_x96, liquidity, amount_in, True
        )
    return get_next_sqrt_price_from_amount1_rounding_down(
        sqrt_price_x96, liquidity, amount_in, True
    )


def get_amount0_delta(
    sqrt_ratio_a_x96: int, sqrt_ratio_b_x96: int, liquidity: int, round_up: bool
) -> int:
    """token0 owed for ``liquidity`` between two sqrt prices."""
    if sqrt_ratio_a_x96 > sqrt_ratio_b_x96:
        sqrt_ratio_a_x96, sqrt_ratio_b_x96 = sqrt_ratio_b_x96, sqrt_ratio_a_x96
    if sqrt_ratio_a_x96 <= 0:
        raise ArithmeticOverflowError("sqrt price must be positive")

    numerator1 = liquidity << 96
    numerator2 = sqrt_ratio_b_x96 - sqrt_ratio_a_x96

    if round_up:
        return div_rounding_up(
            mul_div_rounding_up(numerator1, numerator2, sqrt_ratio_b_x96),
            sqrt_ratio_a_x96,
        )
    return mul_div(numerator1, numerator2, sqrt_ratio_b_x96) // sqrt_ratio_a_x96


def get_amount1_delta(
    sqrt_ratio_a_x96: int, sqrt_ratio_b_x96: int, liquidity: int, round_up: bool
) -> int:
    """token1 owed for ``liquidity`` between two sqrt prices."""
    if sqrt_ratio_a_x96 > sqrt_ratio_b_x96:
        sqrt_ratio_a_x96, sqrt_ratio_b_x96 = sqrt_ratio_b_x96, sqrt_ratio_a_x96

    if round_up:
        return mul_div_rounding_up(liquidity, sqrt_ratio_b_x96 - sqrt_ratio_a_x96, Q96)
    return mul_div(liquidity, sqrt_ratio_b_x96 - sqrt_ratio_a_x96, Q96)


def get_amount0_delta_signed(sqrt_ratio_a_x96: int, sqrt_ratio_b_x96: int, liquidity: int) -> int:
    """Signed token0 delta: positive when liquidity is added, negative when removed."""
    if liquidity < 0:
        return -get_amount0_delta(sqrt_ratio_a_x96, sqrt_ratio_b_x96, -liquidity, False)
    return get_amount0_delta(sqrt_ratio_a_x96, sqrt_ratio_b_x96, liquidity, True)


def get_amount1_delta_signed(sqrt_ratio_a_x96: int, sqrt_ratio_b_x96: int, liquidity: int) -> int:
    """Signed token1 delta: positive when liquidity is added, negative when removed."""
    if liquidity < 0:
        return -get_amount1_delta(sqrt_ratio_a_x96, sqrt_ratio_b_x96, -liquidity, False)
    return get_amount1_delta(sqrt_ratio_a_x96, sqrt_ratio_b_x96, liquidity, True)

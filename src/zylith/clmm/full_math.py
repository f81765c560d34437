"""
Full-precision multiply/divide with uint256 result checks.

References:
- Uniswap V3 Core: contracts/libraries/FullMath.sol, UnsafeMath.sol
"""

from zylith.exceptions import ArithmeticOverflowError

from .constants import UINT256_MOD


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator), failing if the result exceeds uint256."""
    if denominator == 0:
        raise ArithmeticOverflowError("mul_div by zero")
    result = (a * b) // denominator
    if result >= UINT256_MOD:
        raise ArithmeticOverflowError("mul_div result exceeds uint256")
    return result


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    """ceil(a * b / denominator), failing if the result exceeds uint256."""
    result = mul_div(a, b, denominator)
    if (a * b) % denominator:
        result += 1
        if result >= UINT256_MOD:
            raise ArithmeticOverflowError("mul_div_rounding_up result exceeds uint256")
    return result


def div_rounding_up(x: int, y: int) -> int:
    """ceil(x / y) for non-negative x and positive y."""
    return x // y + (1 if x % y else 0)

"""
Concentrated-liquidity constants.

- Q96: sqrt price encoding (2^96)
- Q128: fee growth encoding (2^128)
- FEE_TIERS: supported fee tiers and their tick spacing
"""

from typing import Dict

# Fixed-point encoding
Q96: int = 2 ** 96
Q128: int = 2 ** 128

UINT128_MAX: int = 2 ** 128 - 1
UINT256_MOD: int = 2 ** 256
INT128_MIN: int = -(2 ** 127)
INT128_MAX: int = 2 ** 127 - 1

# Tick domain
MIN_TICK: int = -887272
MAX_TICK: int = 887272

# get_sqrt_ratio_at_tick(MIN_TICK) and get_sqrt_ratio_at_tick(MAX_TICK)
MIN_SQRT_RATIO: int = 4295128739
MAX_SQRT_RATIO: int = 1461446703485210103287273052203988822378723970342

# Fee in hundredths of a bip -> tick spacing
# 500 = 0.05%, 3000 = 0.30%, 10000 = 1.00%
FEE_TIERS: Dict[int, int] = {
    500: 10,
    3000: 60,
    10000: 200,
}

FEE_DENOMINATOR: int = 1_000_000

"""Concentrated-liquidity engine: tick math, fee accounting and the swap stepper."""

from zylith.clmm.constants import FEE_TIERS, MAX_SQRT_RATIO, MAX_TICK, MIN_SQRT_RATIO, MIN_TICK
from zylith.clmm.pool import Pool, PoolState, SwapResult

__all__ = [
    "FEE_TIERS",
    "MAX_SQRT_RATIO",
    "MAX_TICK",
    "MIN_SQRT_RATIO",
    "MIN_TICK",
    "Pool",
    "PoolState",
    "SwapResult",
]

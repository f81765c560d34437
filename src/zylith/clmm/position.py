"""Liquidity positions and owed-fee accrual.

Reference: Uniswap V3 Core contracts/libraries/Position.sol
"""

from dataclasses import asdict, dataclass
from typing import Dict, Hashable, Tuple

from zylith.exceptions import ZeroLiquidityError

from .constants import Q128, UINT128_MAX, UINT256_MOD
from .full_math import mul_div
from .liquidity_math import add_delta

PositionKey = Tuple[Hashable, int, int]


@dataclass
class PositionInfo:
    liquidity: int = 0
    fee_growth_inside0_last_x128: int = 0
    fee_growth_inside1_last_x128: int = 0
    tokens_owed0: int = 0
    tokens_owed1: int = 0

    def update(
        self, liquidity_delta: int, fee_growth_inside0_x128: int, fee_growth_inside1_x128: int
    ) -> None:
        """
        Credit fees accrued since the last update, then apply a liquidity change.

        Raises:
            ZeroLiquidityError: On a zero delta against an empty position
        """
        if liquidity_delta == 0:
            if self.liquidity == 0:
                raise ZeroLiquidityError("Cannot poke a position with no liquidity")
            liquidity_next = self.liquidity
        else:
            liquidity_next = add_delta(self.liquidity, liquidity_delta)

        owed0 = mul_div(
            (fee_growth_inside0_x128 - self.fee_growth_inside0_last_x128) % UINT256_MOD,
            self.liquidity,
            Q128,
        )
        owed1 = mul_div(
            (fee_growth_inside1_x128 - self.fee_growth_inside1_last_x128) % UINT256_MOD,
            self.liquidity,
            Q128,
        )

        self.liquidity = liquidity_next
        self.fee_growth_inside0_last_x128 = fee_growth_inside0_x128
        self.fee_growth_inside1_last_x128 = fee_growth_inside1_x128
        if owed0 or owed1:
            # owed amounts wrap at uint128; owners must collect before that
            self.tokens_owed0 = (self.tokens_owed0 + owed0) & UINT128_MAX
            self.tokens_owed1 = (self.tokens_owed1 + owed1) & UINT128_MAX

    def to_dict(self) -> dict:
        return asdict(self)


class PositionTable:
    """Positions keyed by (owner, tick_lower, tick_upper)."""

    def __init__(self):
        self.positions: Dict[PositionKey, PositionInfo] = {}

    def get(self, owner: Hashable, tick_lower: int, tick_upper: int) -> PositionInfo:
        """Return the position, creating an empty one on first reference."""
        key = (owner, tick_lower, tick_upper)
        info = self.positions.get(key)
        if info is None:
            info = PositionInfo()
            self.positions[key] = info
        return info

    def peek(self, owner: Hashable, tick_lower: int, tick_upper: int) -> PositionInfo:
        """Return the position or an empty one, without creating it."""
        return self.positions.get((owner, tick_lower, tick_upper)) or PositionInfo()

    def __len__(self) -> int:
        return len(self.positions)

"""Per-tick liquidity and fee-growth bookkeeping.

Reference: Uniswap V3 Core contracts/libraries/Tick.sol
"""

from dataclasses import asdict, dataclass
from typing import Dict, Tuple

from zylith.exceptions import ArithmeticOverflowError

from .constants import INT128_MAX, INT128_MIN, MAX_TICK, MIN_TICK, UINT128_MAX, UINT256_MOD
from .liquidity_math import add_delta


@dataclass
class TickInfo:
    """State kept for an initialized (or previously initialized) tick."""

    liquidity_gross: int = 0
    liquidity_net: int = 0
    fee_growth_outside0_x128: int = 0
    fee_growth_outside1_x128: int = 0
    initialized: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def tick_spacing_to_max_liquidity_per_tick(tick_spacing: int) -> int:
    """Cap on gross liquidity per tick so the total stays within uint128."""
    min_tick = -(-MIN_TICK // tick_spacing) * tick_spacing
    max_tick = (MAX_TICK // tick_spacing) * tick_spacing
    num_ticks = (max_tick - min_tick) // tick_spacing + 1
    return UINT128_MAX // num_ticks


class TickTable:
    """
    Map of tick index to TickInfo.

    Entries are created on first reference and zeroed, never deleted, when
    their liquidity is fully removed.
    """

    def __init__(self):
        self.ticks: Dict[int, TickInfo] = {}

    def __contains__(self, tick: int) -> bool:
        return tick in self.ticks

    def get(self, tick: int) -> TickInfo:
        """Return the entry for ``tick`` without creating one."""
        return self.ticks.get(tick) or TickInfo()

    def _entry(self, tick: int) -> TickInfo:
        info = self.ticks.get(tick)
        if info is None:
            info = TickInfo()
            self.ticks[tick] = info
        return info

    def update(
        self,
        tick: int,
        tick_current: int,
        liquidity_delta: int,
        fee_growth_global0_x128: int,
        fee_growth_global1_x128: int,
        upper: bool,
        max_liquidity: int,
    ) -> bool:
        """
        Apply a liquidity change at a range boundary.

        Args:
            tick: Boundary tick being updated
            tick_current: Pool's current tick
            liquidity_delta: Signed liquidity change of the position
            fee_growth_global0_x128: Current global fee growth of token0
            fee_growth_global1_x128: Current global fee growth of token1
            upper: True for a position's upper tick
            max_liquidity: Gross liquidity cap for a single tick

        Returns:
            bool: True if the tick flipped between initialized and uninitialized

        Raises:
            ArithmeticOverflowError: If gross liquidity would exceed the cap
                or net liquidity leaves int128
        """
        info = self._entry(tick)

        liquidity_gross_before = info.liquidity_gross
        liquidity_gross_after = add_delta(liquidity_gross_before, liquidity_delta)
        if liquidity_gross_after > max_liquidity:
            raise ArithmeticOverflowError(
                f"Tick {tick} gross liquidity {liquidity_gross_after} exceeds {max_liquidity}"
            )

        flipped = (liquidity_gross_after == 0) != (liquidity_gross_before == 0)

        if liquidity_gross_before == 0:
            # all growth before initialization is taken to have happened below the tick
            if tick <= tick_current:
                info.fee_growth_outside0_x128 = fee_growth_global0_x128
                info.fee_growth_outside1_x128 = fee_growth_global1_x128
            info.initialized = True

        info.liquidity_gross = liquidity_gross_after
        net = info.liquidity_net - liquidity_delta if upper else info.liquidity_net + liquidity_delta
        if net < INT128_MIN or net > INT128_MAX:
            raise ArithmeticOverflowError(f"Tick {tick} net liquidity {net} leaves int128")
        info.liquidity_net = net

        return flipped

    def clear(self, tick: int) -> None:
        """Reset a tick whose gross liquidity reached zero."""
        self.ticks[tick] = TickInfo()

    def cross(self, tick: int, fee_growth_global0_x128: int, fee_growth_global1_x128: int) -> int:
        """
        Flip the outside fee growth of ``tick`` as the price moves across it.

        Returns:
            int: The tick's net liquidity, to be added when crossing left to right
        """
        info = self._entry(tick)
        info.fee_growth_outside0_x128 = (
            fee_growth_global0_x128 - info.fee_growth_outside0_x128
        ) % UINT256_MOD
        info.fee_growth_outside1_x128 = (
            fee_growth_global1_x128 - info.fee_growth_outside1_x128
        ) % UINT256_MOD
        return info.liquidity_net

    def get_fee_growth_inside(
        self,
        tick_lower: int,
        tick_upper: int,
        tick_current: int,
        fee_growth_global0_x128: int,
        fee_growth_global1_x128: int,
    ) -> Tuple[int, int]:
        """
        Fee growth per unit of liquidity accrued strictly inside a range.

        inside = global - below(lower) - above(upper), all modulo 2^256, with
        the outside value taken as-is on the side the current tick is not on.
        """
        lower = self.get(tick_lower)
        upper = self.get(tick_upper)

        if tick_current >= tick_lower:
            below0 = lower.fee_growth_outside0_x128
            below1 = lower.fee_growth_outside1_x128
        else:
            below0 = fee_growth_global0_x128 - lower.fee_growth_outside0_x128
            below1 = fee_growth_global1_x128 - lower.fee_growth_outside1_x128

        if tick_current < tick_upper:
            above0 = upper.fee_growth_outside0_x128
            above1 = upper.fee_growth_outside1_x128
        else:
            above0 = fee_growth_global0_x128 - upper.fee_growth_outside0_x128
            above1 = fee_growth_global1_x128 - upper.fee_growth_outside1_x128

        return (
            (fee_growth_global0_x128 - below0 - above0) % UINT256_MOD,
            (fee_growth_global1_x128 - below1 - above1) % UINT256_MOD,
        )

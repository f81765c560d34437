"""Concentrated-liquidity pool: positions, tick crossings and the swap stepper.

The pool is pure accounting. It never moves tokens; callers settle the
amounts it returns (see ``zylith.pool.controller``).

Reference: Uniswap V3 Core contracts/UniswapV3Pool.sol
"""

import copy
import logging
from dataclasses import asdict, dataclass, field
from typing import Hashable, List, Optional, Tuple

from zylith.exceptions import (
    ArithmeticOverflowError,
    ExactOutputNotSupportedError,
    InsufficientLiquidityError,
    InvalidPriceLimitError,
    InvalidTokenPairError,
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
    SwapLoopLimitExceededError,
    ZeroAmountError,
    ZeroLiquidityError,
)

from .constants import (
    FEE_TIERS,
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q128,
    UINT128_MAX,
    UINT256_MOD,
)
from .full_math import mul_div
from .liquidity_math import add_delta
from .position import PositionInfo, PositionTable
from .sqrt_price_math import get_amount0_delta_signed, get_amount1_delta_signed
from .swap_math import compute_swap_step
from .tick import TickTable, tick_spacing_to_max_liquidity_per_tick
from .tick_bitmap import TickBitmap
from .tick_math import check_ticks, get_sqrt_ratio_at_tick, get_tick_at_sqrt_ratio

logger = logging.getLogger(__name__)

DEFAULT_MAX_SWAP_ITERATIONS = 512


@dataclass
class PoolState:
    sqrt_price_x96: int = 0
    tick: int = 0
    liquidity: int = 0
    fee_growth_global0_x128: int = 0
    fee_growth_global1_x128: int = 0
    protocol_fees0: int = 0
    protocol_fees1: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SwapResult:
    """
    Outcome of a swap.

    ``amount0``/``amount1`` are signed from the pool's point of view:
    positive amounts are owed to the pool, negative amounts are paid out.
    """

    zero_for_one: bool
    amount0: int
    amount1: int
    sqrt_price_x96: int
    tick: int
    liquidity: int
    steps: int
    ticks_crossed: List[int] = field(default_factory=list)

    @property
    def amount_in(self) -> int:
        return self.amount0 if self.zero_for_one else self.amount1

    @property
    def amount_out(self) -> int:
        return -(self.amount1 if self.zero_for_one else self.amount0)


@dataclass
class _PoolSnapshot:
    state: PoolState
    ticks: TickTable
    bitmap: TickBitmap
    positions: PositionTable


class Pool:
    """
    Concentrated-liquidity pool for one (token0, token1, fee) triple.

    Args:
        token0: Lower token identifier
        token1: Higher token identifier
        fee: Fee tier in hundredths of a bip (500, 3000 or 10000)
        max_swap_iterations: Hard ceiling on steps per swap
        protocol_fee_denominator: Protocol share is ``fee // denominator``; 0 disables it

    Raises:
        InvalidTokenPairError: If tokens are equal or not in canonical order
        ValueError: If the fee tier is unsupported
    """

    def __init__(
        self,
        token0: int,
        token1: int,
        fee: int,
        max_swap_iterations: int = DEFAULT_MAX_SWAP_ITERATIONS,
        protocol_fee_denominator: int = 0,
    ):
        if token0 == token1:
            raise InvalidTokenPairError("Pool tokens must differ")
        if token0 > token1:
            raise InvalidTokenPairError("Pool tokens must be in canonical order (token0 < token1)")
        if fee not in FEE_TIERS:
            raise ValueError(f"Unsupported fee tier {fee}; expected one of {sorted(FEE_TIERS)}")
        if max_swap_iterations < 1:
            raise ValueError("max_swap_iterations must be positive")

        self.token0 = token0
        self.token1 = token1
        self.fee = fee
        self.tick_spacing = FEE_TIERS[fee]
        self.max_liquidity_per_tick = tick_spacing_to_max_liquidity_per_tick(self.tick_spacing)
        self.max_swap_iterations = max_swap_iterations
        self.protocol_fee_denominator = protocol_fee_denominator

        self.state = PoolState()
        self.ticks = TickTable()
        self.bitmap = TickBitmap()
        self.positions = PositionTable()

    @property
    def initialized(self) -> bool:
        return self.state.sqrt_price_x96 != 0

    def initialize(self, sqrt_price_x96: int) -> int:
        """
        Set the starting price.

        Returns:
            int: The tick of the starting price

        Raises:
            PoolAlreadyInitializedError: If the price is already set
            InvalidTickRangeError: If the price is outside the tick domain
        """
        if self.initialized:
            raise PoolAlreadyInitializedError("Pool is already initialized")
        tick = get_tick_at_sqrt_ratio(sqrt_price_x96)
        self.state.sqrt_price_x96 = sqrt_price_x96
        self.state.tick = tick
        logger.debug(f"Pool {self.token0:#x}/{self.token1:#x}/{self.fee} initialized at tick {tick}")
        return tick

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise PoolNotInitializedError("Pool price has not been initialized")

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def _check_position_change(
        self, position: PositionInfo, tick_lower: int, tick_upper: int, liquidity_delta: int
    ) -> None:
        """Run every check that could fail before any state is touched."""
        add_delta(position.liquidity, liquidity_delta)
        for tick in (tick_lower, tick_upper):
            gross = add_delta(self.ticks.get(tick).liquidity_gross, liquidity_delta)
            if gross > self.max_liquidity_per_tick:
                raise ArithmeticOverflowError(
                    f"Tick {tick} would exceed max liquidity per tick"
                )
        if tick_lower <= self.state.tick < tick_upper:
            add_delta(self.state.liquidity, liquidity_delta)

    def _modify_position(
        self, owner: Hashable, tick_lower: int, tick_upper: int, liquidity_delta: int
    ) -> Tuple[PositionInfo, int, int]:
        check_ticks(tick_lower, tick_upper, self.tick_spacing)
        s = self.state

        position = self.positions.peek(owner, tick_lower, tick_upper)
        self._check_position_change(position, tick_lower, tick_upper, liquidity_delta)
        position = self.positions.get(owner, tick_lower, tick_upper)

        flipped_lower = self.ticks.update(
            tick_lower, s.tick, liquidity_delta,
            s.fee_growth_global0_x128, s.fee_growth_global1_x128,
            False, self.max_liquidity_per_tick,
        )
        flipped_upper = self.ticks.update(
            tick_upper, s.tick, liquidity_delta,
            s.fee_growth_global0_x128, s.fee_growth_global1_x128,
            True, self.max_liquidity_per_tick,
        )
        if flipped_lower:
            self.bitmap.flip_tick(tick_lower, self.tick_spacing)
        if flipped_upper:
            self.bitmap.flip_tick(tick_upper, self.tick_spacing)

        inside0, inside1 = self.ticks.get_fee_growth_inside(
            tick_lower, tick_upper, s.tick,
            s.fee_growth_global0_x128, s.fee_growth_global1_x128,
        )
        position.update(liquidity_delta, inside0, inside1)

        if liquidity_delta < 0:
            if flipped_lower:
                self.ticks.clear(tick_lower)
            if flipped_upper:
                self.ticks.clear(tick_upper)

        amount0 = amount1 = 0
        sqrt_lower = get_sqrt_ratio_at_tick(tick_lower)
        sqrt_upper = get_sqrt_ratio_at_tick(tick_upper)
        if s.tick < tick_lower:
            amount0 = get_amount0_delta_signed(sqrt_lower, sqrt_upper, liquidity_delta)
        elif s.tick < tick_upper:
            amount0 = get_amount0_delta_signed(s.sqrt_price_x96, sqrt_upper, liquidity_delta)
            amount1 = get_amount1_delta_signed(sqrt_lower, s.sqrt_price_x96, liquidity_delta)
            s.liquidity = add_delta(s.liquidity, liquidity_delta)
        else:
            amount1 = get_amount1_delta_signed(sqrt_lower, sqrt_upper, liquidity_delta)

        return position, amount0, amount1

    def mint(self, owner: Hashable, tick_lower: int, tick_upper: int, liquidity: int) -> Tuple[int, int]:
        """
        Add liquidity to a position.

        Returns:
            (amount0, amount1) the caller must pay in

        Raises:
            PoolNotInitializedError: Before ``initialize``
            ZeroLiquidityError: If ``liquidity`` is not positive
            InvalidTickRangeError: On a bad range
        """
        self._require_initialized()
        if liquidity <= 0:
            raise ZeroLiquidityError("Mint liquidity must be positive")
        if liquidity > UINT128_MAX:
            raise ArithmeticOverflowError("Mint liquidity exceeds uint128")
        _, amount0, amount1 = self._modify_position(owner, tick_lower, tick_upper, liquidity)
        logger.debug(
            f"mint owner={owner} [{tick_lower}, {tick_upper}) L={liquidity} -> ({amount0}, {amount1})"
        )
        return amount0, amount1

    def burn(
        self, owner: Hashable, tick_lower: int, tick_upper: int, liquidity: Optional[int] = None
    ) -> Tuple[int, int]:
        """
        Remove liquidity from a position and credit the principal as owed tokens.

        Args:
            owner: Position owner
            tick_lower: Lower tick
            tick_upper: Upper tick
            liquidity: Amount to remove; None removes the whole position

        Returns:
            (amount0, amount1) principal credited to ``tokens_owed``

        Raises:
            ZeroLiquidityError: If the position is empty
            InsufficientLiquidityError: If ``liquidity`` exceeds the position
        """
        self._require_initialized()
        check_ticks(tick_lower, tick_upper, self.tick_spacing)
        position = self.positions.peek(owner, tick_lower, tick_upper)
        if position.liquidity == 0:
            raise ZeroLiquidityError("Position has no liquidity")
        if liquidity is None:
            liquidity = position.liquidity
        if liquidity <= 0:
            raise ZeroLiquidityError("Burn liquidity must be positive")
        if liquidity > position.liquidity:
            raise InsufficientLiquidityError(
                f"Burn of {liquidity} exceeds position liquidity {position.liquidity}"
            )

        position, amount0, amount1 = self._modify_position(owner, tick_lower, tick_upper, -liquidity)
        amount0, amount1 = -amount0, -amount1
        if amount0 or amount1:
            position.tokens_owed0 = (position.tokens_owed0 + amount0) & UINT128_MAX
            position.tokens_owed1 = (position.tokens_owed1 + amount1) & UINT128_MAX
        logger.debug(
            f"burn owner={owner} [{tick_lower}, {tick_upper}) L={liquidity} -> ({amount0}, {amount1})"
        )
        return amount0, amount1

    def collect(
        self,
        owner: Hashable,
        tick_lower: int,
        tick_upper: int,
        amount0_requested: int = UINT128_MAX,
        amount1_requested: int = UINT128_MAX,
    ) -> Tuple[int, int]:
        """Release up to the requested owed amounts; returns what was released."""
        position = self.positions.peek(owner, tick_lower, tick_upper)
        amount0 = min(amount0_requested, position.tokens_owed0)
        amount1 = min(amount1_requested, position.tokens_owed1)
        if amount0 or amount1:
            position = self.positions.get(owner, tick_lower, tick_upper)
            position.tokens_owed0 -= amount0
            position.tokens_owed1 -= amount1
        return amount0, amount1

    def collect_protocol(
        self, amount0_requested: int = UINT128_MAX, amount1_requested: int = UINT128_MAX
    ) -> Tuple[int, int]:
        amount0 = min(amount0_requested, self.state.protocol_fees0)
        amount1 = min(amount1_requested, self.state.protocol_fees1)
        self.state.protocol_fees0 -= amount0
        self.state.protocol_fees1 -= amount1
        return amount0, amount1

    def fee_growth_inside(self, tick_lower: int, tick_upper: int) -> Tuple[int, int]:
        s = self.state
        return self.ticks.get_fee_growth_inside(
            tick_lower, tick_upper, s.tick, s.fee_growth_global0_x128, s.fee_growth_global1_x128
        )

    # ------------------------------------------------------------------
    # Swap
    # ------------------------------------------------------------------

    def swap(
        self,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x96: Optional[int] = None,
    ) -> SwapResult:
        """
        Exact-input swap.

        Tick crossings are collected during the loop and written only after
        it finishes, so a failed swap leaves the pool untouched.

        Args:
            zero_for_one: True to sell token0 for token1 (price falls)
            amount_specified: Exact input amount, fee included
            sqrt_price_limit_x96: Price the swap may not pass; defaults to
                the edge of the price domain

        Returns:
            SwapResult

        Raises:
            PoolNotInitializedError: Before ``initialize``
            ZeroAmountError: If ``amount_specified`` is zero
            ExactOutputNotSupportedError: If ``amount_specified`` is negative
            InvalidPriceLimitError: If the limit is on the wrong side of the price
            SwapLoopLimitExceededError: If the swap needs more steps than allowed
        """
        self._require_initialized()
        if amount_specified == 0:
            raise ZeroAmountError("Swap amount must be non-zero")
        if amount_specified < 0:
            raise ExactOutputNotSupportedError("Only exact-input swaps are supported")

        s = self.state
        if sqrt_price_limit_x96 is None:
            sqrt_price_limit_x96 = MIN_SQRT_RATIO + 1 if zero_for_one else MAX_SQRT_RATIO - 1

        if zero_for_one:
            if not (MIN_SQRT_RATIO < sqrt_price_limit_x96 < s.sqrt_price_x96):
                raise InvalidPriceLimitError(
                    f"Limit {sqrt_price_limit_x96} must be in ({MIN_SQRT_RATIO}, {s.sqrt_price_x96})"
                )
        else:
            if not (s.sqrt_price_x96 < sqrt_price_limit_x96 < MAX_SQRT_RATIO):
                raise InvalidPriceLimitError(
                    f"Limit {sqrt_price_limit_x96} must be in ({s.sqrt_price_x96}, {MAX_SQRT_RATIO})"
                )

        remaining = amount_specified
        calculated = 0
        sqrt_price = s.sqrt_price_x96
        tick = s.tick
        liquidity = s.liquidity
        fee_growth0 = s.fee_growth_global0_x128
        fee_growth1 = s.fee_growth_global1_x128
        protocol_fee = 0
        crossings: List[Tuple[int, int, int]] = []
        steps = 0

        while remaining != 0 and sqrt_price != sqrt_price_limit_x96:
            if steps >= self.max_swap_iterations:
                raise SwapLoopLimitExceededError(
                    f"Swap needs more than {self.max_swap_iterations} steps"
                )
            steps += 1

            sqrt_price_start = sqrt_price
            tick_next, initialized = self.bitmap.next_initialized_tick_within_one_word(
                tick, self.tick_spacing, zero_for_one
            )
            tick_next = max(MIN_TICK, min(MAX_TICK, tick_next))
            sqrt_price_next = get_sqrt_ratio_at_tick(tick_next)

            if zero_for_one:
                target = max(sqrt_price_next, sqrt_price_limit_x96)
            else:
                target = min(sqrt_price_next, sqrt_price_limit_x96)

            step = compute_swap_step(sqrt_price, target, liquidity, remaining, self.fee)
            sqrt_price = step.sqrt_ratio_next_x96
            remaining -= step.amount_in + step.fee_amount
            calculated -= step.amount_out

            fee_amount = step.fee_amount
            if self.protocol_fee_denominator > 0:
                delta = fee_amount // self.protocol_fee_denominator
                fee_amount -= delta
                protocol_fee += delta

            if liquidity > 0:
                growth = mul_div(fee_amount, Q128, liquidity)
                if zero_for_one:
                    fee_growth0 = (fee_growth0 + growth) % UINT256_MOD
                else:
                    fee_growth1 = (fee_growth1 + growth) % UINT256_MOD

            if sqrt_price == sqrt_price_next:
                if initialized:
                    crossings.append((tick_next, fee_growth0, fee_growth1))
                    liquidity_net = self.ticks.get(tick_next).liquidity_net
                    if zero_for_one:
                        liquidity_net = -liquidity_net
                    liquidity = add_delta(liquidity, liquidity_net)
                tick = tick_next - 1 if zero_for_one else tick_next
            elif sqrt_price != sqrt_price_start:
                tick = get_tick_at_sqrt_ratio(sqrt_price)

        # commit
        for crossed_tick, growth0, growth1 in crossings:
            self.ticks.cross(crossed_tick, growth0, growth1)
        s.sqrt_price_x96 = sqrt_price
        s.tick = tick
        s.liquidity = liquidity
        s.fee_growth_global0_x128 = fee_growth0
        s.fee_growth_global1_x128 = fee_growth1
        if zero_for_one:
            s.protocol_fees0 += protocol_fee
        else:
            s.protocol_fees1 += protocol_fee

        consumed = amount_specified - remaining
        if zero_for_one:
            amount0, amount1 = consumed, calculated
        else:
            amount0, amount1 = calculated, consumed

        logger.debug(
            f"swap zero_for_one={zero_for_one} in={consumed} out={-calculated} "
            f"steps={steps} crossed={len(crossings)} tick={tick}"
        )
        return SwapResult(
            zero_for_one=zero_for_one,
            amount0=amount0,
            amount1=amount1,
            sqrt_price_x96=sqrt_price,
            tick=tick,
            liquidity=liquidity,
            steps=steps,
            ticks_crossed=[t for t, _, _ in crossings],
        )

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> _PoolSnapshot:
        """Deep copy of all mutable pool state."""
        return _PoolSnapshot(
            state=copy.deepcopy(self.state),
            ticks=copy.deepcopy(self.ticks),
            bitmap=copy.deepcopy(self.bitmap),
            positions=copy.deepcopy(self.positions),
        )

    def restore(self, snapshot: _PoolSnapshot) -> None:
        self.state = snapshot.state
        self.ticks = snapshot.ticks
        self.bitmap = snapshot.bitmap
        self.positions = snapshot.positions

    def to_dict(self) -> dict:
        return {
            "token0": hex(self.token0),
            "token1": hex(self.token1),
            "fee": self.fee,
            "tick_spacing": self.tick_spacing,
            "initialized": self.initialized,
            "sqrt_price_x96": str(self.state.sqrt_price_x96),
            "tick": self.state.tick,
            "liquidity": str(self.state.liquidity),
            "fee_growth_global0_x128": str(self.state.fee_growth_global0_x128),
            "fee_growth_global1_x128": str(self.state.fee_growth_global1_x128),
            "protocol_fees0": str(self.state.protocol_fees0),
            "protocol_fees1": str(self.state.protocol_fees1),
        }

"""Tests for the concentrated-liquidity pool engine."""

import pytest

from zylith.clmm.constants import MAX_SQRT_RATIO, MIN_SQRT_RATIO, Q96, UINT128_MAX
from zylith.clmm.pool import Pool
from zylith.clmm.tick_math import get_sqrt_ratio_at_tick
from zylith.exceptions import (
    ArithmeticOverflowError,
    ExactOutputNotSupportedError,
    InsufficientLiquidityError,
    InvalidPriceLimitError,
    InvalidTickRangeError,
    InvalidTokenPairError,
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
    SwapLoopLimitExceededError,
    ZeroAmountError,
    ZeroLiquidityError,
)

OWNER = "alice"
L = 10 ** 18


@pytest.fixture
def pool():
    """Fee-500 pool (tick spacing 10) at price 1."""
    pool = Pool(1, 2, 500)
    pool.initialize(Q96)
    return pool


@pytest.fixture
def liquid_pool(pool):
    pool.mint(OWNER, -1000, 1000, L)
    return pool


class TestPoolSetup:
    """Tests for construction and initialization."""

    def test_fee_tier_sets_spacing(self):
        assert Pool(1, 2, 500).tick_spacing == 10
        assert Pool(1, 2, 3000).tick_spacing == 60
        assert Pool(1, 2, 10000).tick_spacing == 200

    def test_unsupported_fee(self):
        with pytest.raises(ValueError):
            Pool(1, 2, 100)

    def test_token_order(self):
        with pytest.raises(InvalidTokenPairError):
            Pool(2, 1, 500)
        with pytest.raises(InvalidTokenPairError):
            Pool(1, 1, 500)

    def test_initialize(self):
        pool = Pool(1, 2, 500)
        assert not pool.initialized
        assert pool.initialize(get_sqrt_ratio_at_tick(123)) == 123
        assert pool.state.tick == 123

    def test_initialize_twice(self, pool):
        with pytest.raises(PoolAlreadyInitializedError):
            pool.initialize(Q96)

    def test_uninitialized_pool_rejects_operations(self):
        pool = Pool(1, 2, 500)
        with pytest.raises(PoolNotInitializedError):
            pool.mint(OWNER, -10, 10, 1)
        with pytest.raises(PoolNotInitializedError):
            pool.swap(True, 100)


class TestMintBurn:
    """Tests for position changes."""

    def test_mint_in_range_needs_both_tokens(self, pool):
        amount0, amount1 = pool.mint(OWNER, -100, 100, L)
        assert amount0 > 0 and amount1 > 0
        assert pool.state.liquidity == L

    def test_mint_above_price_needs_token0_only(self, pool):
        amount0, amount1 = pool.mint(OWNER, 100, 200, L)
        assert amount0 > 0 and amount1 == 0
        assert pool.state.liquidity == 0

    def test_mint_below_price_needs_token1_only(self, pool):
        amount0, amount1 = pool.mint(OWNER, -200, -100, L)
        assert amount0 == 0 and amount1 > 0
        assert pool.state.liquidity == 0

    def test_mint_updates_ticks_and_bitmap(self, pool):
        pool.mint(OWNER, -100, 100, L)
        assert pool.ticks.get(-100).liquidity_net == L
        assert pool.ticks.get(100).liquidity_net == -L
        assert pool.ticks.get(-100).liquidity_gross == L
        assert pool.bitmap.is_initialized(-100, 10)
        assert pool.bitmap.is_initialized(100, 10)

    def test_mint_validation(self, pool):
        with pytest.raises(ZeroLiquidityError):
            pool.mint(OWNER, -100, 100, 0)
        with pytest.raises(InvalidTickRangeError):
            pool.mint(OWNER, 100, -100, L)
        with pytest.raises(InvalidTickRangeError):
            pool.mint(OWNER, -105, 100, L)
        with pytest.raises(ArithmeticOverflowError):
            pool.mint(OWNER, -100, 100, UINT128_MAX + 1)

    def test_max_liquidity_per_tick(self, pool):
        with pytest.raises(ArithmeticOverflowError):
            pool.mint(OWNER, -100, 100, pool.max_liquidity_per_tick + 1)
        assert pool.state.liquidity == 0

    def test_burn_returns_principal(self, pool):
        minted0, minted1 = pool.mint(OWNER, -100, 100, L)
        burned0, burned1 = pool.burn(OWNER, -100, 100)
        assert 0 <= minted0 - burned0 <= 1
        assert 0 <= minted1 - burned1 <= 1
        position = pool.positions.peek(OWNER, -100, 100)
        assert position.liquidity == 0
        assert (position.tokens_owed0, position.tokens_owed1) == (burned0, burned1)
        assert not pool.bitmap.is_initialized(-100, 10)

    def test_partial_burn(self, pool):
        pool.mint(OWNER, -100, 100, L)
        pool.burn(OWNER, -100, 100, L // 4)
        assert pool.positions.peek(OWNER, -100, 100).liquidity == L - L // 4
        assert pool.state.liquidity == L - L // 4

    def test_burn_more_than_position(self, pool):
        pool.mint(OWNER, -100, 100, L)
        with pytest.raises(InsufficientLiquidityError):
            pool.burn(OWNER, -100, 100, L + 1)

    def test_burn_empty_position(self, pool):
        with pytest.raises(ZeroLiquidityError):
            pool.burn(OWNER, -100, 100)

    def test_collect_caps_at_owed(self, pool):
        pool.mint(OWNER, -100, 100, L)
        burned0, burned1 = pool.burn(OWNER, -100, 100)
        assert pool.collect(OWNER, -100, 100, 10, 10) == (min(10, burned0), min(10, burned1))
        assert pool.collect(OWNER, -100, 100) == (burned0 - min(10, burned0), burned1 - min(10, burned1))
        assert pool.collect(OWNER, -100, 100) == (0, 0)


class TestSwap:
    """Tests for the exact-input swap stepper."""

    def test_zero_for_one_lowers_price(self, liquid_pool):
        limit = get_sqrt_ratio_at_tick(-500)
        start = liquid_pool.state.sqrt_price_x96
        result = liquid_pool.swap(True, 10 ** 15, limit)
        assert result.sqrt_price_x96 <= start
        assert result.sqrt_price_x96 >= limit
        assert result.amount0 == 10 ** 15
        assert result.amount1 < 0
        assert result.amount_in == 10 ** 15
        assert result.amount_out == -result.amount1

    def test_one_for_zero_raises_price(self, liquid_pool):
        limit = get_sqrt_ratio_at_tick(500)
        start = liquid_pool.state.sqrt_price_x96
        result = liquid_pool.swap(False, 10 ** 15, limit)
        assert result.sqrt_price_x96 >= start
        assert result.sqrt_price_x96 <= limit
        assert result.amount1 == 10 ** 15
        assert result.amount0 < 0

    def test_swap_stops_at_limit(self, liquid_pool):
        limit = get_sqrt_ratio_at_tick(-20)
        result = liquid_pool.swap(True, 10 ** 18, limit)
        assert result.sqrt_price_x96 == limit
        assert result.amount_in < 10 ** 18
        assert liquid_pool.state.sqrt_price_x96 == limit

    def test_no_crossing_fee_scenario(self, liquid_pool):
        """A swap inside one tick interval only moves global fee growth."""
        outside_before = {
            tick: (info.fee_growth_outside0_x128, info.fee_growth_outside1_x128)
            for tick, info in liquid_pool.ticks.ticks.items()
        }
        result = liquid_pool.swap(True, 10 ** 12)
        assert result.ticks_crossed == []
        assert liquid_pool.state.fee_growth_global0_x128 > 0
        assert liquid_pool.state.fee_growth_global1_x128 == 0
        outside_after = {
            tick: (info.fee_growth_outside0_x128, info.fee_growth_outside1_x128)
            for tick, info in liquid_pool.ticks.ticks.items()
        }
        assert outside_after == outside_before

    def test_fee_growth_inside(self, liquid_pool):
        liquid_pool.swap(True, 10 ** 12)
        state = liquid_pool.state
        assert liquid_pool.fee_growth_inside(-1000, 1000) == (
            state.fee_growth_global0_x128,
            state.fee_growth_global1_x128,
        )
        assert liquid_pool.fee_growth_inside(2000, 3000) == (0, 0)

    def test_crossing_updates_liquidity(self, pool):
        pool.mint(OWNER, -1000, 1000, L)
        pool.mint("bob", -100, 100, L)
        assert pool.state.liquidity == 2 * L
        result = pool.swap(True, 10 ** 18, get_sqrt_ratio_at_tick(-500))
        assert result.ticks_crossed == [-100]
        assert pool.state.liquidity == L
        assert pool.state.tick < -100

    def test_fees_accrue_to_in_range_position(self, liquid_pool):
        liquid_pool.swap(True, 10 ** 16)
        liquid_pool.swap(False, 10 ** 16)
        amount0, amount1 = liquid_pool.burn(OWNER, -1000, 1000)
        position = liquid_pool.positions.peek(OWNER, -1000, 1000)
        assert position.tokens_owed0 > amount0
        assert position.tokens_owed1 > amount1

    def test_protocol_fee_share(self):
        pool = Pool(1, 2, 500, protocol_fee_denominator=4)
        pool.initialize(Q96)
        pool.mint(OWNER, -1000, 1000, L)
        pool.swap(True, 10 ** 16)
        assert pool.state.protocol_fees0 > 0
        assert pool.state.protocol_fees1 == 0
        collected0, _ = pool.collect_protocol()
        assert collected0 > 0
        assert pool.state.protocol_fees0 == 0

    def test_exact_output_rejected(self, liquid_pool):
        with pytest.raises(ExactOutputNotSupportedError):
            liquid_pool.swap(True, -1000)

    def test_zero_amount_rejected(self, liquid_pool):
        with pytest.raises(ZeroAmountError):
            liquid_pool.swap(True, 0)

    def test_limit_on_wrong_side(self, liquid_pool):
        with pytest.raises(InvalidPriceLimitError):
            liquid_pool.swap(True, 1000, get_sqrt_ratio_at_tick(10))
        with pytest.raises(InvalidPriceLimitError):
            liquid_pool.swap(False, 1000, get_sqrt_ratio_at_tick(-10))
        with pytest.raises(InvalidPriceLimitError):
            liquid_pool.swap(True, 1000, MIN_SQRT_RATIO)
        with pytest.raises(InvalidPriceLimitError):
            liquid_pool.swap(False, 1000, MAX_SQRT_RATIO)

    def test_iteration_ceiling_leaves_pool_untouched(self):
        pool = Pool(1, 2, 500, max_swap_iterations=1)
        pool.initialize(Q96)
        pool.mint(OWNER, -100, 100, L)
        before = pool.to_dict()
        ticks_before = {t: info.to_dict() for t, info in pool.ticks.ticks.items()}
        with pytest.raises(SwapLoopLimitExceededError):
            pool.swap(True, 10 ** 18)
        assert pool.to_dict() == before
        assert {t: info.to_dict() for t, info in pool.ticks.ticks.items()} == ticks_before

    def test_snapshot_restore(self, liquid_pool):
        snapshot = liquid_pool.snapshot()
        before = liquid_pool.to_dict()
        liquid_pool.swap(True, 10 ** 15)
        liquid_pool.mint("bob", -50, 50, L)
        liquid_pool.restore(snapshot)
        assert liquid_pool.to_dict() == before
        assert liquid_pool.positions.peek("bob", -50, 50).liquidity == 0

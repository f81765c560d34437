"""
Tick Math - tick <-> sqrt price conversion

Integer-exact port of the Uniswap V3 TickMath library.

References:
- Uniswap V3 Core: contracts/libraries/TickMath.sol
- Whitepaper Section 6.1: Ticks and Tick Spacing

    price = 1.0001^tick
    sqrtPriceX96 = sqrt(price) * 2^96
"""

from zylith.exceptions import InvalidTickRangeError

from .constants import MAX_SQRT_RATIO, MAX_TICK, MIN_SQRT_RATIO, MIN_TICK


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """Compute sqrtPriceX96 for a tick.

    Args:
        tick: Tick index in [MIN_TICK, MAX_TICK]

    Returns:
        sqrtPriceX96 (Q64.96)

    Raises:
        InvalidTickRangeError: If the tick is outside the tick domain
    """
    if tick < MIN_TICK or tick > MAX_TICK:
        raise InvalidTickRangeError(f"Tick {tick} outside [{MIN_TICK}, {MAX_TICK}]")

    abs_tick = abs(tick)

    ratio = 0x100000000000000000000000000000000 if abs_tick & 0x1 == 0 \
        else 0xfffcb933bd6fad37aa2d162d1a594001

    if abs_tick & 0x2:
        ratio = (ratio * 0xfff97272373d413259a46990580e213a) >> 128
    if abs_tick & 0x4:
        ratio = (ratio * 0xfff2e50f5f656932ef12357cf3c7fdcc) >> 128
    if abs_tick & 0x8:
        ratio = (ratio * 0xffe5caca7e10e4e61c3624eaa0941cd0) >> 128
    if abs_tick & 0x10:
        ratio = (ratio * 0xffcb9843d60f6159c9db58835c926644) >> 128
    if abs_tick & 0x20:
        ratio = (ratio * 0xff973b41fa98c081472e6896dfb254c0) >> 128
    if abs_tick & 0x40:
        ratio = (ratio * 0xff2ea16466c96a3843ec78b326b52861) >> 128
    if abs_tick & 0x80:
        ratio = (ratio * 0xfe5dee046a99a2a811c461f1969c3053) >> 128
    if abs_tick & 0x100:
        ratio = (ratio * 0xfcbe86c7900a88aedcffc83b479aa3a4) >> 128
    if abs_tick & 0x200:
        ratio = (ratio * 0xf987a7253ac413176f2b074cf7815e54) >> 128
    if abs_tick & 0x400:
        ratio = (ratio * 0xf3392b0822b70005940c7a398e4b70f3) >> 128
    if abs_tick & 0x800:
        ratio = (ratio * 0xe7159475a2c29b7443b29c7fa6e889d9) >> 128
    if abs_tick & 0x1000:
        ratio = (ratio * 0xd097f3bdfd2022b8845ad8f792aa5825) >> 128
    if abs_tick & 0x2000:
        ratio = (ratio * 0xa9f746462d870fdf8a65dc1f90e061e5) >> 128
    if abs_tick & 0x4000:
        ratio = (ratio * 0x70d869a156d2a1b890bb3df62baf32f7) >> 128
    if abs_tick & 0x8000:
        ratio = (ratio * 0x31be135f97d08fd981231505542fcfa6) >> 128
    if abs_tick & 0x10000:
        ratio = (ratio * 0x9aa508b5b7a84e1c677de54f3e99bc9) >> 128
    if abs_tick & 0x20000:
        ratio = (ratio * 0x5d6af8dedb81196699c329225ee604) >> 128
    if abs_tick & 0x40000:
        ratio = (ratio * 0x2216e584f5fa1ea926041bedfe98) >> 128
    if abs_tick & 0x80000:
        ratio = (ratio * 0x48a170391f7dc42444e8fa2) >> 128

    if tick > 0:
        ratio = (2**256 - 1) // ratio

    # Q128.128 -> Q64.96, rounding up
    return (ratio >> 32) + (1 if ratio % (1 << 32) != 0 else 0)


def get_tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
    """Greatest tick whose sqrt ratio is <= sqrt_price_x96.

    Raises:
        InvalidTickRangeError: If the price is outside [MIN_SQRT_RATIO, MAX_SQRT_RATIO)
    """
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 >= MAX_SQRT_RATIO:
        raise InvalidTickRangeError(
            f"sqrtPriceX96 {sqrt_price_x96} outside [{MIN_SQRT_RATIO}, {MAX_SQRT_RATIO})"
        )

    ratio = sqrt_price_x96 << 32

    r = ratio
    msb = 0

    f = (1 if r > 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFF else 0) << 7
    msb |= f
    r >>= f

    f = (1 if r > 0xFFFFFFFFFFFFFFFF else 0) << 6
    msb |= f
    r >>= f

    f = (1 if r > 0xFFFFFFFF else 0) << 5
    msb |= f
    r >>= f

    f = (1 if r > 0xFFFF else 0) << 4
    msb |= f
    r >>= f

    f = (1 if r > 0xFF else 0) << 3
    msb |= f
    r >>= f

    f = (1 if r > 0xF else 0) << 2
    msb |= f
    r >>= f

    f = (1 if r > 0x3 else 0) << 1
    msb |= f
    r >>= f

    f = 1 if r > 0x1 else 0
    msb |= f

    if msb >= 128:
        r = ratio >> (msb - 127)
    else:
        r = ratio << (127 - msb)

    log_2 = (msb - 128) << 64

    for i in range(14):
        r = (r * r) >> 127
        f = r >> 128
        log_2 |= f << (63 - i)
        r >>= f

    log_sqrt10001 = log_2 * 255738958999603826347141

    tick_low = (log_sqrt10001 - 3402992956809132418596140100660247210) >> 128
    tick_high = (log_sqrt10001 + 291339464771989622907027621153398088495) >> 128

    if tick_low == tick_high:
        return tick_low

    if get_sqrt_ratio_at_tick(tick_high) <= sqrt_price_x96:
        return tick_high
    return tick_low


def check_ticks(tick_lower: int, tick_upper: int, tick_spacing: int) -> None:
    """Validate a position range.

    Raises:
        InvalidTickRangeError: If the range is empty, reversed, out of the
            tick domain or not aligned to ``tick_spacing``
    """
    if tick_lower >= tick_upper:
        raise InvalidTickRangeError(
            f"tick_lower {tick_lower} must be below tick_upper {tick_upper}"
        )
    if tick_lower < MIN_TICK:
        raise InvalidTickRangeError(f"tick_lower {tick_lower} below MIN_TICK")
    if tick_upper > MAX_TICK:
        raise InvalidTickRangeError(f"tick_upper {tick_upper} above MAX_TICK")
    if tick_lower % tick_spacing or tick_upper % tick_spacing:
        raise InvalidTickRangeError(
            f"Ticks ({tick_lower}, {tick_upper}) are not multiples of spacing {tick_spacing}"
        )

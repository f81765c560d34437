"""Packed initialized-tick flags, 256 compressed ticks per word.

Reference: Uniswap V3 Core contracts/libraries/TickBitmap.sol
"""

from typing import Dict, Tuple

from zylith.exceptions import InvalidTickRangeError

_WORD_MASK = 2 ** 256 - 1


class TickBitmap:
    """Word-indexed bit flags marking initialized compressed ticks."""

    def __init__(self):
        self.words: Dict[int, int] = {}

    @staticmethod
    def position(compressed: int) -> Tuple[int, int]:
        """(word_pos, bit_pos) of a compressed tick."""
        return compressed >> 8, compressed & 0xFF

    def flip_tick(self, tick: int, tick_spacing: int) -> None:
        """Toggle the initialized flag of ``tick``."""
        if tick % tick_spacing != 0:
            raise InvalidTickRangeError(f"Tick {tick} is not a multiple of {tick_spacing}")
        word_pos, bit_pos = self.position(tick // tick_spacing)
        self.words[word_pos] = self.words.get(word_pos, 0) ^ (1 << bit_pos)

    def is_initialized(self, tick: int, tick_spacing: int) -> bool:
        word_pos, bit_pos = self.position(tick // tick_spacing)
        return bool(self.words.get(word_pos, 0) >> bit_pos & 1)

    def next_initialized_tick_within_one_word(
        self, tick: int, tick_spacing: int, lte: bool
    ) -> Tuple[int, bool]:
        """
        Next initialized tick in the same 256-tick word as ``tick``.

        Args:
            tick: Starting tick
            tick_spacing: Spacing between usable ticks
            lte: Search at or below ``tick`` (price falling) when True,
                strictly above it otherwise

        Returns:
            (next_tick, initialized). When nothing is set in the word the
            word boundary is returned with ``initialized`` False.
        """
        # floor division rounds toward negative infinity
        compressed = tick // tick_spacing

        if lte:
            word_pos, bit_pos = self.position(compressed)
            mask = (1 << bit_pos) - 1 + (1 << bit_pos)
            masked = self.words.get(word_pos, 0) & mask

            if masked:
                msb = masked.bit_length() - 1
                return (compressed - (bit_pos - msb)) * tick_spacing, True
            return (compressed - bit_pos) * tick_spacing, False

        word_pos, bit_pos = self.position(compressed + 1)
        mask = ~((1 << bit_pos) - 1) & _WORD_MASK
        masked = self.words.get(word_pos, 0) & mask

        if masked:
            lsb = (masked & -masked).bit_length() - 1
            return (compressed + 1 + (lsb - bit_pos)) * tick_spacing, True
        return (compressed + 1 + (255 - bit_pos)) * tick_spacing, False

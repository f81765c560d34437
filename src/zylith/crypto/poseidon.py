"""Poseidon permutation hash over the BN254 scalar field.

Parameters follow the reference Poseidon parameter generator (Grassi et al.,
"Poseidon: A New Hash Function for Zero-Knowledge Proof Systems", 2019) with
the instantiation used by circom circuits:

    - S-box x^5, 8 full rounds
    - partial rounds by state width (56, 57, 56, 60, 60, 63, ... for t = 2, 3, ...)
    - round constants and Cauchy MDS matrix drawn from the Grain LFSR

The sponge is used in its fixed-length form: the state is ``[0] + inputs``,
one permutation is applied and lane 0 is the digest.
"""

from functools import lru_cache
from typing import Iterator, List, Sequence, Tuple

from zylith.utils.encoding import FIELD_MODULUS, ensure_field

FULL_ROUNDS = 8
PARTIAL_ROUNDS = [56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68]
ALPHA = 5
FIELD_BITS = 254
MAX_INPUTS = len(PARTIAL_ROUNDS)


class _GrainLFSR:
    """80-bit self-shrinking Grain LFSR seeded with the permutation parameters."""

    STATE_BITS = 80

    def __init__(self, width: int, full_rounds: int, partial_rounds: int):
        bits = (
            format(1, "02b")  # prime field
            + format(0, "04b")  # x^alpha S-box
            + format(FIELD_BITS, "012b")
            + format(width, "012b")
            + format(full_rounds, "010b")
            + format(partial_rounds, "010b")
            + "1" * 30
        )
        # Bit i of the integer is position i of the shift register.
        self._state = sum(int(bit) << i for i, bit in enumerate(bits))
        for _ in range(160):
            self._step()

    def _step(self) -> int:
        s = self._state
        new_bit = ((s >> 62) ^ (s >> 51) ^ (s >> 38) ^ (s >> 23) ^ (s >> 13) ^ s) & 1
        self._state = (s >> 1) | (new_bit << (self.STATE_BITS - 1))
        return new_bit

    def bits(self) -> Iterator[int]:
        while True:
            control = self._step()
            while control == 0:
                self._step()
                control = self._step()
            yield self._step()

    def random_int(self, num_bits: int) -> int:
        gen = self.bits()
        value = 0
        for _ in range(num_bits):
            value = (value << 1) | next(gen)
        return value

    def field_element(self) -> int:
        """Rejection-sample a canonical field element."""
        value = self.random_int(FIELD_BITS)
        while value >= FIELD_MODULUS:
            value = self.random_int(FIELD_BITS)
        return value


@lru_cache(maxsize=None)
def poseidon_parameters(width: int) -> Tuple[Tuple[int, ...], Tuple[Tuple[int, ...], ...], int]:
    """
    Generate (round_constants, mds_matrix, partial_rounds) for a state width.

    Args:
        width: State width t = number of inputs + 1

    Returns:
        Tuple of flat round constants, t x t MDS matrix and partial round count

    Raises:
        ValueError: If the width is unsupported
    """
    if width < 2 or width - 2 >= len(PARTIAL_ROUNDS):
        raise ValueError(f"Unsupported Poseidon width {width}")

    partial_rounds = PARTIAL_ROUNDS[width - 2]
    lfsr = _GrainLFSR(width, FULL_ROUNDS, partial_rounds)

    num_constants = (FULL_ROUNDS + partial_rounds) * width
    constants = tuple(lfsr.field_element() for _ in range(num_constants))

    # Cauchy matrix M[i][j] = 1 / (x_i + y_j) from fresh distinct samples
    while True:
        samples = [lfsr.random_int(FIELD_BITS) % FIELD_MODULUS for _ in range(2 * width)]
        if len(set(samples)) != len(samples):
            continue
        xs, ys = samples[:width], samples[width:]
        if any((x + y) % FIELD_MODULUS == 0 for x in xs for y in ys):
            continue
        mds = tuple(
            tuple(pow(x + y, -1, FIELD_MODULUS) for y in ys)
            for x in xs
        )
        return constants, mds, partial_rounds


def permute(state: Sequence[int]) -> List[int]:
    """Apply the Poseidon permutation to a full state vector."""
    width = len(state)
    constants, mds, partial_rounds = poseidon_parameters(width)
    half_full = FULL_ROUNDS // 2
    total_rounds = FULL_ROUNDS + partial_rounds
    p = FIELD_MODULUS

    state = list(state)
    for r in range(total_rounds):
        offset = r * width
        state = [(x + constants[offset + i]) % p for i, x in enumerate(state)]
        if r < half_full or r >= half_full + partial_rounds:
            state = [pow(x, ALPHA, p) for x in state]
        else:
            state[0] = pow(state[0], ALPHA, p)
        state = [sum(m * x for m, x in zip(row, state)) % p for row in mds]
    return state


def poseidon(*inputs: int) -> int:
    """
    Hash 1..16 field elements.

    Args:
        *inputs: Canonical BN254 field elements

    Returns:
        int: Digest as a field element

    Raises:
        ValueError: On an empty or oversized input list, or a negative input
        ArithmeticOverflowError: If an input is not below the field modulus
    """
    if not inputs or len(inputs) > MAX_INPUTS:
        raise ValueError(f"Poseidon takes 1 to {MAX_INPUTS} inputs, got {len(inputs)}")
    for value in inputs:
        ensure_field(value)
    return permute([0, *inputs])[0]

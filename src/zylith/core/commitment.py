"""Note commitments and nullifier hashes.

    innerHash          = H(secret, nullifier)
    commitment         = H(innerHash, amountLow, amountHigh, token)
    nullifierHash      = H(nullifier)
    positionCommitment = H(secret, nullifier, tickLower + OFFSET, tickUpper + OFFSET, liquidity)

H is Poseidon over BN254. Input order is part of the wire format and must not
change.
"""

import secrets
from dataclasses import dataclass, field
from typing import Dict

from zylith.clmm.constants import MAX_TICK, MIN_TICK
from zylith.crypto.poseidon import poseidon
from zylith.exceptions import InvalidTickRangeError
from zylith.utils.encoding import (
    FIELD_MODULUS,
    ensure_field,
    ensure_uint,
    split_amount,
)

# Ticks travel as tick + TICK_OFFSET so every encoded tick is non-negative
TICK_OFFSET = MAX_TICK


def encode_tick(tick: int) -> int:
    """Map a signed tick onto ``[0, 2 * TICK_OFFSET]``."""
    if tick < MIN_TICK or tick > MAX_TICK:
        raise InvalidTickRangeError(f"Tick {tick} outside [{MIN_TICK}, {MAX_TICK}]")
    return tick + TICK_OFFSET


def decode_tick(encoded: int) -> int:
    """
    Re-center an offset-encoded tick.

    Raises:
        InvalidTickRangeError: If ``encoded`` is outside ``[0, 2 * TICK_OFFSET]``
    """
    if encoded < 0 or encoded > 2 * TICK_OFFSET:
        raise InvalidTickRangeError(
            f"Encoded tick {encoded} outside [0, {2 * TICK_OFFSET}]"
        )
    return encoded - TICK_OFFSET


def compute_inner_hash(secret: int, nullifier: int) -> int:
    """Compute H(secret, nullifier)."""
    return poseidon(secret, nullifier)


def compute_nullifier_hash(nullifier: int) -> int:
    """Compute H(nullifier), the value revealed when a note is spent."""
    return poseidon(nullifier)


def compute_commitment(
    secret: int, nullifier: int, amount_low: int, amount_high: int, token: int
) -> int:
    """
    Compute a note commitment.

    Args:
        secret: Note secret (field element)
        nullifier: Note nullifier (field element)
        amount_low: Low 128 bits of the amount
        amount_high: High 128 bits of the amount
        token: Token identifier (field element)

    Returns:
        int: H(H(secret, nullifier), amount_low, amount_high, token)

    Raises:
        ArithmeticOverflowError: If an amount half exceeds 128 bits or a
            value is not a field element
    """
    ensure_uint(amount_low, 128, "amount_low")
    ensure_uint(amount_high, 128, "amount_high")
    inner = compute_inner_hash(secret, nullifier)
    return poseidon(inner, amount_low, amount_high, token)


def compute_position_commitment(
    secret: int, nullifier: int, tick_lower: int, tick_upper: int, liquidity: int
) -> int:
    """
    Compute a liquidity position commitment.

    Ticks are signed here and hashed in their offset encoding.

    Raises:
        InvalidTickRangeError: If a tick is outside the tick domain
        ArithmeticOverflowError: If liquidity exceeds 128 bits
    """
    ensure_uint(liquidity, 128, "liquidity")
    return poseidon(
        secret,
        nullifier,
        encode_tick(tick_lower),
        encode_tick(tick_upper),
        liquidity,
    )


def random_field_element() -> int:
    """Draw a uniformly random non-zero field element."""
    while True:
        value = secrets.randbelow(FIELD_MODULUS)
        if value:
            return value


@dataclass(frozen=True)
class Note:
    """
    A private value note (secret, nullifier, amount, token).

    Known only to its owner; the pool only ever sees ``commitment`` and,
    when spent, ``nullifier_hash``.
    """

    secret: int
    nullifier: int
    amount: int
    token: int
    commitment: int = field(init=False, repr=False)

    def __post_init__(self):
        ensure_field(self.secret)
        ensure_field(self.nullifier)
        low, high = split_amount(self.amount)
        object.__setattr__(
            self,
            "commitment",
            compute_commitment(self.secret, self.nullifier, low, high, self.token),
        )

    @classmethod
    def generate(cls, amount: int, token: int) -> "Note":
        """Create a note with fresh random secret and nullifier."""
        return cls(
            secret=random_field_element(),
            nullifier=random_field_element(),
            amount=amount,
            token=token,
        )

    @property
    def amount_low(self) -> int:
        return split_amount(self.amount)[0]

    @property
    def amount_high(self) -> int:
        return split_amount(self.amount)[1]

    @property
    def inner_hash(self) -> int:
        return compute_inner_hash(self.secret, self.nullifier)

    @property
    def nullifier_hash(self) -> int:
        return compute_nullifier_hash(self.nullifier)

    def to_dict(self) -> Dict[str, str]:
        """Serialize for the owner's wallet (decimal strings)."""
        return {
            "secret": str(self.secret),
            "nullifier": str(self.nullifier),
            "amount": str(self.amount),
            "token": str(self.token),
            "commitment": str(self.commitment),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "Note":
        return cls(
            secret=int(data["secret"]),
            nullifier=int(data["nullifier"]),
            amount=int(data["amount"]),
            token=int(data["token"]),
        )


@dataclass(frozen=True)
class PositionNote:
    """A private concentrated-liquidity position (secret, nullifier, ticks, liquidity)."""

    secret: int
    nullifier: int
    tick_lower: int
    tick_upper: int
    liquidity: int
    commitment: int = field(init=False, repr=False)

    def __post_init__(self):
        if self.tick_lower >= self.tick_upper:
            raise InvalidTickRangeError(
                f"tick_lower {self.tick_lower} must be below tick_upper {self.tick_upper}"
            )
        object.__setattr__(
            self,
            "commitment",
            compute_position_commitment(
                self.secret, self.nullifier, self.tick_lower, self.tick_upper, self.liquidity
            ),
        )

    @classmethod
    def generate(cls, tick_lower: int, tick_upper: int, liquidity: int) -> "PositionNote":
        return cls(
            secret=random_field_element(),
            nullifier=random_field_element(),
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            liquidity=liquidity,
        )

    @property
    def nullifier_hash(self) -> int:
        return compute_nullifier_hash(self.nullifier)

    def to_dict(self) -> Dict[str, str]:
        return {
            "secret": str(self.secret),
            "nullifier": str(self.nullifier),
            "tick_lower": str(self.tick_lower),
            "tick_upper": str(self.tick_upper),
            "liquidity": str(self.liquidity),
            "commitment": str(self.commitment),
        }

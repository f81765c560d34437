"""Shielded operation kinds and their public-output tuples.

Each kind has a fixed, positionally ordered tuple of public outputs. The
order is a wire contract shared with the circuits; decoding is strictly by
position.

    withdraw: root, nullifierHash, recipient, amountLow, amountHigh, token
    swap:     changeCommitment, root, nullifierHash, newCommitment,
              tokenIn, tokenOut, amountIn, amountOutMin
    mint:     changeCommitment0, changeCommitment1, root, nullifierHash0,
              nullifierHash1, positionCommitment, tickLower, tickUpper
    burn:     root, positionNullifierHash, newCommitment0, newCommitment1,
              tickLower, tickUpper

Ticks arrive offset-encoded (tick + TICK_OFFSET) and are re-centered here.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Protocol, Sequence, Tuple, Type, Union

from zylith.core.commitment import decode_tick
from zylith.exceptions import (
    ArithmeticOverflowError,
    InvalidLeafError,
    InvalidProofError,
    InvalidTickRangeError,
    InvalidTokenPairError,
    ZeroAmountError,
)
from zylith.utils.encoding import ensure_felt252, ensure_field, ensure_uint, join_amount


class OperationKind(str, Enum):
    """The four proof-authorized operations."""
    WITHDRAW = "withdraw"
    SWAP = "swap"
    MINT = "mint"
    BURN = "burn"


PUBLIC_OUTPUT_COUNTS: Dict[OperationKind, int] = {
    OperationKind.WITHDRAW: 6,
    OperationKind.SWAP: 8,
    OperationKind.MINT: 8,
    OperationKind.BURN: 6,
}


class VerificationOracle(Protocol):
    """External proof checker used by the coordinator."""

    def verify(self, kind: OperationKind, proof: Any, public_inputs: Sequence[int]) -> Tuple[int, ...]:
        """
        Check ``proof`` against ``public_inputs`` for ``kind``.

        Returns:
            The ordered public outputs

        Raises:
            InvalidProofError: If the proof does not verify
        """
        ...


def _ticks(tick_lower: int, tick_upper: int) -> None:
    if tick_lower >= tick_upper:
        raise InvalidTickRangeError(
            f"tick_lower {tick_lower} must be below tick_upper {tick_upper}"
        )


@dataclass(frozen=True)
class WithdrawOutputs:
    root: int
    nullifier_hash: int
    recipient: int
    amount_low: int
    amount_high: int
    token: int

    kind = OperationKind.WITHDRAW

    @classmethod
    def from_outputs(cls, values: Sequence[int]) -> "WithdrawOutputs":
        root, nullifier_hash, recipient, amount_low, amount_high, token = values
        return cls(
            root=root,
            nullifier_hash=nullifier_hash,
            recipient=ensure_felt252(recipient, "recipient"),
            amount_low=ensure_uint(amount_low, 128, "amount_low"),
            amount_high=ensure_uint(amount_high, 128, "amount_high"),
            token=ensure_felt252(token, "token"),
        )

    @property
    def amount(self) -> int:
        return join_amount(self.amount_low, self.amount_high)

    @property
    def nullifier_hashes(self) -> Tuple[int, ...]:
        return (self.nullifier_hash,)

    @property
    def output_commitments(self) -> Tuple[int, ...]:
        return ()

    def validate(self) -> None:
        if self.amount_low == 0 and self.amount_high == 0:
            raise ZeroAmountError("Withdrawal amount must be non-zero")


@dataclass(frozen=True)
class SwapOutputs:
    change_commitment: int
    root: int
    nullifier_hash: int
    new_commitment: int
    token_in: int
    token_out: int
    amount_in: int
    amount_out_min: int

    kind = OperationKind.SWAP

    @classmethod
    def from_outputs(cls, values: Sequence[int]) -> "SwapOutputs":
        (change_commitment, root, nullifier_hash, new_commitment,
         token_in, token_out, amount_in, amount_out_min) = values
        return cls(
            change_commitment=change_commitment,
            root=root,
            nullifier_hash=nullifier_hash,
            new_commitment=new_commitment,
            token_in=ensure_felt252(token_in, "token_in"),
            token_out=ensure_felt252(token_out, "token_out"),
            amount_in=ensure_uint(amount_in, 128, "amount_in"),
            amount_out_min=ensure_uint(amount_out_min, 128, "amount_out_min"),
        )

    @property
    def nullifier_hashes(self) -> Tuple[int, ...]:
        return (self.nullifier_hash,)

    @property
    def output_commitments(self) -> Tuple[int, ...]:
        return (self.change_commitment, self.new_commitment)

    def validate(self) -> None:
        if self.token_in == self.token_out:
            raise InvalidTokenPairError("Swap tokens must differ")
        if self.amount_in == 0:
            raise ZeroAmountError("Swap input amount must be non-zero")
        if self.new_commitment == 0:
            raise InvalidLeafError("Swap output commitment must be non-zero")


@dataclass(frozen=True)
class MintOutputs:
    change_commitment0: int
    change_commitment1: int
    root: int
    nullifier_hash0: int
    nullifier_hash1: int
    position_commitment: int
    tick_lower: int
    tick_upper: int

    kind = OperationKind.MINT

    @classmethod
    def from_outputs(cls, values: Sequence[int]) -> "MintOutputs":
        (change_commitment0, change_commitment1, root, nullifier_hash0,
         nullifier_hash1, position_commitment, tick_lower, tick_upper) = values
        return cls(
            change_commitment0=change_commitment0,
            change_commitment1=change_commitment1,
            root=root,
            nullifier_hash0=nullifier_hash0,
            nullifier_hash1=nullifier_hash1,
            position_commitment=position_commitment,
            tick_lower=decode_tick(tick_lower),
            tick_upper=decode_tick(tick_upper),
        )

    @property
    def nullifier_hashes(self) -> Tuple[int, ...]:
        return (self.nullifier_hash0, self.nullifier_hash1)

    @property
    def output_commitments(self) -> Tuple[int, ...]:
        return (self.change_commitment0, self.change_commitment1, self.position_commitment)

    def validate(self) -> None:
        _ticks(self.tick_lower, self.tick_upper)
        if self.position_commitment == 0:
            raise InvalidLeafError("Position commitment must be non-zero")


@dataclass(frozen=True)
class BurnOutputs:
    root: int
    position_nullifier_hash: int
    new_commitment0: int
    new_commitment1: int
    tick_lower: int
    tick_upper: int

    kind = OperationKind.BURN

    @classmethod
    def from_outputs(cls, values: Sequence[int]) -> "BurnOutputs":
        (root, position_nullifier_hash, new_commitment0, new_commitment1,
         tick_lower, tick_upper) = values
        return cls(
            root=root,
            position_nullifier_hash=position_nullifier_hash,
            new_commitment0=new_commitment0,
            new_commitment1=new_commitment1,
            tick_lower=decode_tick(tick_lower),
            tick_upper=decode_tick(tick_upper),
        )

    @property
    def nullifier_hashes(self) -> Tuple[int, ...]:
        return (self.position_nullifier_hash,)

    @property
    def output_commitments(self) -> Tuple[int, ...]:
        return (self.new_commitment0, self.new_commitment1)

    def validate(self) -> None:
        _ticks(self.tick_lower, self.tick_upper)


OperationOutputs = Union[WithdrawOutputs, SwapOutputs, MintOutputs, BurnOutputs]

_DECODERS: Dict[OperationKind, Type] = {
    OperationKind.WITHDRAW: WithdrawOutputs,
    OperationKind.SWAP: SwapOutputs,
    OperationKind.MINT: MintOutputs,
    OperationKind.BURN: BurnOutputs,
}


def check_public_inputs(kind: OperationKind, values: Sequence[int]) -> Tuple[int, ...]:
    """
    Check arity and field range of a public-input tuple.

    Raises:
        InvalidProofError: On a wrong count or a value outside the field
    """
    kind = OperationKind(kind)
    expected = PUBLIC_OUTPUT_COUNTS[kind]
    if len(values) != expected:
        raise InvalidProofError(
            f"{kind.value} expects {expected} public inputs, got {len(values)}"
        )
    try:
        return tuple(ensure_field(int(v)) for v in values)
    except (ValueError, ArithmeticOverflowError) as e:
        raise InvalidProofError(f"Public input out of field range: {e}") from e


def decode_outputs(kind: OperationKind, values: Sequence[int]) -> OperationOutputs:
    """
    Decode an oracle output tuple into its typed form.

    Raises:
        InvalidProofError: On a wrong arity
        InvalidTickRangeError: If an encoded tick is outside [0, 2 * TICK_OFFSET]
        ArithmeticOverflowError: If an amount or identifier does not fit its width
    """
    kind = OperationKind(kind)
    values = check_public_inputs(kind, values)
    return _DECODERS[kind].from_outputs(values)


def outputs_to_dict(outputs: OperationOutputs) -> Dict[str, Any]:
    """String-valued view for events and persistence."""
    return {key: str(value) for key, value in asdict(outputs).items()}

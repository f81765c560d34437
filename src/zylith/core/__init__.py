"""Note commitments, the accumulator, nullifiers and the proof coordinator."""

from zylith.core.commitment import (
    TICK_OFFSET,
    Note,
    PositionNote,
    compute_commitment,
    compute_inner_hash,
    compute_nullifier_hash,
    compute_position_commitment,
    decode_tick,
    encode_tick,
)
from zylith.core.merkle_tree import (
    TREE_DEPTH,
    MerkleAccumulator,
    RootHistory,
    compute_root_from_path,
)
from zylith.core.nullifier import NullifierSet
from zylith.core.operations import (
    PUBLIC_OUTPUT_COUNTS,
    OperationKind,
    VerificationOracle,
    decode_outputs,
)
from zylith.core.events import EventBus
from zylith.core.coordinator import DepositReceipt, OperationReceipt, ProofCoordinator

__all__ = [
    "TICK_OFFSET",
    "Note",
    "PositionNote",
    "compute_commitment",
    "compute_inner_hash",
    "compute_nullifier_hash",
    "compute_position_commitment",
    "decode_tick",
    "encode_tick",
    "TREE_DEPTH",
    "MerkleAccumulator",
    "RootHistory",
    "compute_root_from_path",
    "NullifierSet",
    "PUBLIC_OUTPUT_COUNTS",
    "OperationKind",
    "VerificationOracle",
    "decode_outputs",
    "EventBus",
    "DepositReceipt",
    "OperationReceipt",
    "ProofCoordinator",
]

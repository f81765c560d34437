"""Zylith: a shielded note pool fused with a concentrated-liquidity AMM."""

__version__ = "0.1.0"
__author__ = "Zylith Team"
__description__ = "Shielded concentrated-liquidity pool with a Poseidon note accumulator"

from .core.commitment import Note, PositionNote
from .core.merkle_tree import MerkleAccumulator, RootHistory
from .core.nullifier import NullifierSet
from .core.coordinator import ProofCoordinator
from .clmm.pool import Pool

__all__ = [
    "Note",
    "PositionNote",
    "MerkleAccumulator",
    "RootHistory",
    "NullifierSet",
    "ProofCoordinator",
    "Pool",
]

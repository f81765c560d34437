"""Append-only Poseidon Merkle accumulator and root history.

The tree has a fixed depth and grows left to right. Empty subtrees are
represented by 0 and are never hashed: a node whose sibling is empty is
carried to the next level unchanged. A tree holding one leaf therefore has
that leaf as its root, and the empty tree has root 0.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from zylith.exceptions import (
    InvalidLeafError,
    InvalidLeafIndexError,
    MerkleTreeError,
    TreeFullError,
)
from zylith.utils.encoding import ensure_field
from zylith.utils.hash import merkle_hash

logger = logging.getLogger(__name__)

TREE_DEPTH = 20
ZERO_VALUE = 0


class MerkleAccumulator:
    """
    Fixed-depth incremental Merkle tree over note commitments.

    Keeps one filled-subtree node per level for O(depth) insertion, plus
    every computed node so inclusion paths can be served.

    Args:
        depth: Tree depth; production pools use TREE_DEPTH, smaller depths
            exist for fixtures
    """

    def __init__(self, depth: int = TREE_DEPTH):
        if depth < 1 or depth > 32:
            raise ValueError("Tree depth must be between 1 and 32")

        self.depth = depth
        self.capacity = 2 ** depth
        self.next_index = 0
        self.filled_subtrees: List[int] = [ZERO_VALUE] * depth
        # (level, position) -> node
        self.nodes: Dict[Tuple[int, int], int] = {}
        self._root = ZERO_VALUE

    @classmethod
    def from_leaves(cls, leaves: Iterable[int], depth: int = TREE_DEPTH) -> "MerkleAccumulator":
        """Rebuild a tree by replaying leaves in index order."""
        tree = cls(depth)
        for leaf in leaves:
            tree.insert(leaf)
        return tree

    @property
    def root(self) -> int:
        return self._root

    @property
    def remaining_capacity(self) -> int:
        return self.capacity - self.next_index

    def __len__(self) -> int:
        return self.next_index

    def insert(self, leaf: int) -> int:
        """
        Append a leaf at ``next_index``.

        Args:
            leaf: Non-zero field element (a commitment)

        Returns:
            int: The new root

        Raises:
            TreeFullError: If all 2^depth slots are used
            InvalidLeafError: If the leaf is zero
            ArithmeticOverflowError: If the leaf is not a field element
        """
        ensure_field(leaf)
        if leaf == ZERO_VALUE:
            raise InvalidLeafError("Zero is reserved for empty subtrees")
        if self.next_index >= self.capacity:
            raise TreeFullError(f"Tree is full (capacity {self.capacity})")

        index = self.next_index
        node = leaf
        for level in range(self.depth):
            self.nodes[(level, index)] = node
            if index % 2 == 0:
                self.filled_subtrees[level] = node
                node = merkle_hash(node, ZERO_VALUE)
            else:
                node = merkle_hash(self.filled_subtrees[level], node)
            index >>= 1

        self._root = node
        self.next_index += 1
        return node

    def leaf(self, leaf_index: int) -> int:
        self._check_index(leaf_index)
        return self.nodes[(0, leaf_index)]

    def leaves(self) -> List[int]:
        return [self.nodes[(0, i)] for i in range(self.next_index)]

    def _check_index(self, leaf_index: int) -> None:
        if leaf_index < 0 or leaf_index >= self.next_index:
            raise InvalidLeafIndexError(
                f"Leaf index {leaf_index} out of range [0, {self.next_index})"
            )

    def get_path(self, leaf_index: int) -> Tuple[List[int], List[int]]:
        """
        Inclusion path for a leaf against the current root.

        Returns:
            (siblings, path_bits): one entry per level, bottom-up. A sibling
            of 0 marks an empty subtree.

        Raises:
            InvalidLeafIndexError: If no leaf exists at ``leaf_index``
        """
        self._check_index(leaf_index)
        siblings = []
        path_bits = []
        index = leaf_index
        for level in range(self.depth):
            siblings.append(self.nodes.get((level, index ^ 1), ZERO_VALUE))
            path_bits.append(index & 1)
            index >>= 1
        return siblings, path_bits

    def verify_inclusion(self, leaf: int, siblings: Sequence[int], path_bits: Sequence[int]) -> int:
        """Fold an inclusion path; see ``compute_root_from_path``."""
        if len(siblings) != self.depth or len(path_bits) != self.depth:
            raise MerkleTreeError(f"Inclusion path must have exactly {self.depth} levels")
        return compute_root_from_path(leaf, siblings, path_bits)

    def get_state(self) -> dict:
        return {
            "depth": self.depth,
            "size": self.next_index,
            "capacity": self.capacity,
            "root": self._root,
        }


def compute_root_from_path(leaf: int, siblings: Sequence[int], path_bits: Sequence[int]) -> int:
    """
    Recompute the root implied by a leaf and its sibling path.

    At each level the node is hashed with its sibling on the side given by
    the path bit (0: node is the left child). An empty (zero) sibling leaves
    the node unchanged.

    Args:
        leaf: Leaf value
        siblings: Sibling per level, bottom-up
        path_bits: 0 or 1 per level, bottom-up

    Returns:
        int: Root
    """
    if len(siblings) != len(path_bits):
        raise MerkleTreeError("siblings and path_bits differ in length")
    node = leaf
    for sibling, bit in zip(siblings, path_bits):
        if sibling == ZERO_VALUE:
            continue
        if bit == 0:
            node = merkle_hash(node, sibling)
        elif bit == 1:
            node = merkle_hash(sibling, node)
        else:
            raise MerkleTreeError(f"Path bits must be 0 or 1, got {bit}")
    return node


class RootHistory:
    """
    Bounded ring buffer of accepted roots.

    ``is_known`` scans newest-first and stops at the first empty slot, so a
    root is known exactly while it is among the last ``size`` roots added.
    """

    def __init__(self, size: int = 100):
        if size < 1:
            raise ValueError("Root history size must be positive")
        self.size = size
        self._roots: List[int] = [ZERO_VALUE] * size
        self._current = -1

    def add(self, root: int) -> None:
        if root == ZERO_VALUE:
            raise InvalidLeafError("The empty root cannot be recorded")
        self._current = (self._current + 1) % self.size
        self._roots[self._current] = root

    @property
    def latest(self) -> Optional[int]:
        if self._current < 0:
            return None
        return self._roots[self._current]

    def is_known(self, root: int) -> bool:
        if root == ZERO_VALUE or self._current < 0:
            return False
        index = self._current
        for _ in range(self.size):
            value = self._roots[index]
            if value == ZERO_VALUE:
                return False
            if value == root:
                return True
            index = (index - 1) % self.size
        return False

    def roots(self) -> List[int]:
        """Held roots, newest first."""
        result = []
        index = self._current
        for _ in range(self.size if self._current >= 0 else 0):
            value = self._roots[index]
            if value == ZERO_VALUE:
                break
            result.append(value)
            index = (index - 1) % self.size
        return result

    def __len__(self) -> int:
        return len(self.roots())

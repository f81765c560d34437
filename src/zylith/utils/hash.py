"""Hash helpers shared by the accumulator, coordinator and storage layers."""

import hashlib
import json
from typing import Any, Sequence, Union

from zylith.crypto.poseidon import poseidon


def sha256(data: Union[bytes, str]) -> bytes:
    """
    Compute SHA-256 hash of data.

    Args:
        data: Bytes or string to hash

    Returns:
        bytes: 32-byte SHA-256 hash
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).digest()


def merkle_hash(left: int, right: int) -> int:
    """
    Compute the parent of two accumulator nodes.

    A zero child marks an empty branch and is never hashed: the other
    child is carried up unchanged. Two non-empty children are combined
    with Poseidon(left, right).

    Args:
        left: Left child (field element)
        right: Right child (field element)

    Returns:
        int: Parent node
    """
    if right == 0:
        return left
    if left == 0:
        return right
    return poseidon(left, right)


def operation_digest(kind: str, proof: Any, public_inputs: Sequence[int]) -> str:
    """Stable hex identifier for a submitted (kind, proof, inputs) triple."""
    payload = json.dumps(
        {"kind": kind, "proof": proof, "inputs": [str(v) for v in public_inputs]},
        sort_keys=True,
        default=str,
    )
    return sha256(payload).hex()

"""Spent-nullifier registry.

A note is consumed the moment its nullifier hash enters this set. The set
only grows: membership is never reversed, and marking one hash never
affects any other.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Set

from zylith.exceptions import NullifierAlreadySpentError


@dataclass(frozen=True)
class NullifierRecord:
    """When and by which operation a nullifier hash was spent."""

    nullifier_hash: int
    operation_id: str
    spent_at: str


class NullifierSet:
    """
    Append-only set of spent nullifier hashes.

    Callers that need check-then-set atomicity across threads hold the
    owning pool's lock around ``ensure_unspent`` and ``mark_spent``.
    """

    def __init__(self):
        self.spent: Set[int] = set()
        self.records: Dict[int, NullifierRecord] = {}

    def is_spent(self, nullifier_hash: int) -> bool:
        """Check if a nullifier hash has been spent."""
        return nullifier_hash in self.spent

    def ensure_unspent(self, nullifier_hashes: Iterable[int]) -> None:
        """
        Raise if any hash is spent or repeated within ``nullifier_hashes``.

        Raises:
            NullifierAlreadySpentError
        """
        seen: Set[int] = set()
        for nullifier_hash in nullifier_hashes:
            if nullifier_hash in self.spent or nullifier_hash in seen:
                raise NullifierAlreadySpentError(
                    f"Nullifier {nullifier_hash:#x} has already been spent"
                )
            seen.add(nullifier_hash)

    def mark_spent(self, nullifier_hash: int, operation_id: str = "") -> NullifierRecord:
        """
        Record a nullifier hash as spent.

        Raises:
            NullifierAlreadySpentError: If it is already spent
        """
        if nullifier_hash in self.spent:
            raise NullifierAlreadySpentError(
                f"Nullifier {nullifier_hash:#x} has already been spent"
            )
        record = NullifierRecord(
            nullifier_hash=nullifier_hash,
            operation_id=operation_id,
            spent_at=datetime.now(timezone.utc).isoformat(),
        )
        self.spent.add(nullifier_hash)
        self.records[nullifier_hash] = record
        return record

    def get_record(self, nullifier_hash: int) -> Optional[NullifierRecord]:
        return self.records.get(nullifier_hash)

    @property
    def size(self) -> int:
        """Get number of spent nullifiers."""
        return len(self.spent)

    def __len__(self) -> int:
        return len(self.spent)

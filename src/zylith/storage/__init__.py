"""Storage layer for persistent data."""

from zylith.storage.database import (
    Base,
    CommitmentRecord,
    DatabaseManager,
    EventRecorder,
    MerkleRootRecord,
    NullifierRecord,
    OperationRecord,
    get_db_manager,
    reset_db_manager,
    restore_coordinator_state,
)

__all__ = [
    "Base",
    "CommitmentRecord",
    "DatabaseManager",
    "EventRecorder",
    "MerkleRootRecord",
    "NullifierRecord",
    "OperationRecord",
    "get_db_manager",
    "reset_db_manager",
    "restore_coordinator_state",
]

"""Proof coordinator: the state machine behind every shielded operation.

One coordinator owns one pool's accumulator, root history and nullifier set.
Each operation goes through

    Received -> oracle.verify -> {Accepted, Rejected}

and, once accepted, the checks below run under the pool lock:

    1. the claimed root is in the root history
    2. no referenced nullifier hash is spent (or repeated within the operation)
    3. the accumulator has room for every output commitment
    4. the pool controller applies the engine effect (rolled back on failure)

Only then are the nullifiers marked spent, the output commitments appended
and the events published. A failure at any step leaves no trace.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from zylith.core.events import (
    CommitmentAdded,
    EventBus,
    NullifierSpent,
    OperationVerified,
    RootAccepted,
)
from zylith.core.merkle_tree import TREE_DEPTH, MerkleAccumulator, RootHistory
from zylith.core.nullifier import NullifierSet
from zylith.core.operations import (
    BurnOutputs,
    MintOutputs,
    OperationKind,
    OperationOutputs,
    SwapOutputs,
    VerificationOracle,
    WithdrawOutputs,
    decode_outputs,
    outputs_to_dict,
)
from zylith.crypto.signatures import verify_root_signature
from zylith.exceptions import (
    CoordinatorPausedError,
    InvalidLeafError,
    InvalidProofError,
    InvalidTokenPairError,
    TreeFullError,
    UnauthorizedError,
    UnknownRootError,
    ZylithError,
)
from zylith.pool.controller import PoolController
from zylith.utils.encoding import ensure_field
from zylith.utils.hash import operation_digest

logger = logging.getLogger(__name__)


class DepositReceipt:
    """Receipt for an ingested commitment."""

    def __init__(self, commitment: int, leaf_index: int, root: int, timestamp: datetime):
        self.commitment = commitment
        self.leaf_index = leaf_index
        self.root = root
        self.timestamp = timestamp

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "commitment": str(self.commitment),
            "leaf_index": self.leaf_index,
            "root": str(self.root),
            "timestamp": self.timestamp.isoformat(),
        }


class OperationReceipt:
    """Receipt for an accepted shielded operation."""

    def __init__(
        self,
        operation_id: str,
        kind: OperationKind,
        outputs: OperationOutputs,
        inserted: List[Tuple[int, int]],
        root: int,
        result: Dict[str, Any],
        timestamp: datetime,
    ):
        self.operation_id = operation_id
        self.kind = kind
        self.outputs = outputs
        self.inserted = inserted
        self.root = root
        self.result = result
        self.timestamp = timestamp

    @property
    def leaf_indices(self) -> List[int]:
        return [index for _, index in self.inserted]

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.value,
            "outputs": outputs_to_dict(self.outputs),
            "inserted": [
                {"commitment": str(commitment), "leaf_index": index}
                for commitment, index in self.inserted
            ],
            "root": str(self.root),
            "result": {key: str(value) for key, value in self.result.items()},
            "timestamp": self.timestamp.isoformat(),
        }


class ProofCoordinator:
    """
    Per-pool registry of commitments, roots and spent nullifiers.

    Args:
        controller: Pool controller whose lock serializes this coordinator
        oracle: Verification oracle for the four operation kinds
        tree_depth: Accumulator depth (TREE_DEPTH outside of tests)
        root_history_size: Number of recent roots accepted in proofs
        admin: Identifier allowed to pause and unpause
        root_publisher_key: Key trusted for ``publish_root``; None disables it
        event_bus: Bus receiving events after each commit
    """

    def __init__(
        self,
        controller: PoolController,
        oracle: VerificationOracle,
        tree_depth: int = TREE_DEPTH,
        root_history_size: int = 100,
        admin: int = 0,
        root_publisher_key: Optional[Ed25519PublicKey] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.controller = controller
        self.oracle = oracle
        self.tree = MerkleAccumulator(tree_depth)
        self.root_history = RootHistory(root_history_size)
        self.nullifiers = NullifierSet()
        self.admin = admin
        self.root_publisher_key = root_publisher_key
        self.events = event_bus or EventBus()
        self.paused = False
        self.lock = controller.lock

    @property
    def pool_id(self) -> str:
        return self.controller.pool_id

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def _require_admin(self, caller: Optional[int]) -> None:
        if caller is None or caller != self.admin:
            raise UnauthorizedError(f"Caller {caller!r} is not the admin")

    def _require_active(self) -> None:
        if self.paused:
            raise CoordinatorPausedError(f"Coordinator for {self.pool_id} is paused")

    def pause(self, caller: int) -> None:
        self._require_admin(caller)
        with self.lock:
            self.paused = True
        logger.warning(f"Coordinator for {self.pool_id} paused")

    def unpause(self, caller: int) -> None:
        self._require_admin(caller)
        with self.lock:
            self.paused = False
        logger.info(f"Coordinator for {self.pool_id} unpaused")

    # ------------------------------------------------------------------
    # Commitment ingestion and roots
    # ------------------------------------------------------------------

    def deposit(
        self,
        commitment: int,
        depositor: Optional[int] = None,
        token: Optional[int] = None,
        amount: int = 0,
        caller: Optional[int] = None,
    ) -> DepositReceipt:
        """
        Append a commitment at the next leaf index.

        When ``depositor`` is given, ``amount`` of ``token`` is first pulled
        into the pool vault to back the note. Without a depositor nothing
        backs the note, so only the admin relayer may ingest it.

        Args:
            commitment: Note commitment
            depositor: Account funding the note
            token: Token pulled from ``depositor``
            amount: Amount pulled from ``depositor``
            caller: Identifier of the relayer submitting an unfunded commitment

        Returns:
            DepositReceipt: leaf index and the new root

        Raises:
            CoordinatorPausedError: While paused
            InvalidLeafError: If the commitment is zero
            InvalidTokenPairError: If a funded deposit names no pool token
            UnauthorizedError: If an unfunded commitment comes from anyone but the admin
            TreeFullError: If the accumulator is full
        """
        self._require_active()
        ensure_field(commitment)
        if commitment == 0:
            raise InvalidLeafError("Zero is not a valid commitment")
        if depositor is None:
            self._require_admin(caller)
        elif token is None:
            raise InvalidTokenPairError("A funded deposit needs a token")

        with self.lock:
            self._require_active()
            if self.tree.remaining_capacity == 0:
                raise TreeFullError(f"Accumulator for {self.pool_id} is full")
            if depositor is not None:
                self.controller.shielded_deposit(depositor, token, amount)
            leaf_index = self.tree.next_index
            root = self.tree.insert(commitment)
            self.root_history.add(root)

        logger.info(f"Deposit into {self.pool_id}: leaf {leaf_index}, root {root:#x}")
        self.events.publish(
            CommitmentAdded(pool_id=self.pool_id, commitment=commitment, leaf_index=leaf_index, root=root)
        )
        self.events.publish(RootAccepted(pool_id=self.pool_id, root=root, source="accumulator"))
        return DepositReceipt(commitment, leaf_index, root, datetime.now(timezone.utc))

    def publish_root(self, root: int, signature: bytes) -> None:
        """
        Accept an externally computed root signed by the root publisher.

        Raises:
            UnauthorizedError: If no publisher is configured or the signature is wrong
        """
        if self.root_publisher_key is None:
            raise UnauthorizedError("Root publication is not enabled for this pool")
        ensure_field(root)
        verify_root_signature(self.root_publisher_key, self.pool_id, root, signature)
        with self.lock:
            self._require_active()
            self.root_history.add(root)
        logger.info(f"Published root {root:#x} accepted for {self.pool_id}")
        self.events.publish(RootAccepted(pool_id=self.pool_id, root=root, source="publisher"))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def withdraw(self, proof: Any, public_inputs: Sequence[int]) -> OperationReceipt:
        """Spend a note and pay its amount from the vault to the recipient."""
        return self._execute(OperationKind.WITHDRAW, proof, public_inputs, self._apply_withdraw)

    def swap(
        self,
        proof: Any,
        public_inputs: Sequence[int],
        sqrt_price_limit_x96: Optional[int] = None,
    ) -> OperationReceipt:
        """Spend a note into an exact-input swap; output and change become new notes."""
        return self._execute(
            OperationKind.SWAP,
            proof,
            public_inputs,
            lambda outputs: self._apply_swap(outputs, sqrt_price_limit_x96),
        )

    def mint(self, proof: Any, public_inputs: Sequence[int], liquidity: int) -> OperationReceipt:
        """Spend two notes into a position note holding ``liquidity``."""
        return self._execute(
            OperationKind.MINT,
            proof,
            public_inputs,
            lambda outputs: self._apply_mint(outputs, liquidity),
        )

    def burn(self, proof: Any, public_inputs: Sequence[int], liquidity: int) -> OperationReceipt:
        """Spend a position note; its principal becomes two new notes."""
        return self._execute(
            OperationKind.BURN,
            proof,
            public_inputs,
            lambda outputs: self._apply_burn(outputs, liquidity),
        )

    def _apply_withdraw(self, outputs: WithdrawOutputs) -> Dict[str, int]:
        self.controller.shielded_withdraw(outputs.recipient, outputs.token, outputs.amount)
        return {"amount": outputs.amount}

    def _apply_swap(self, outputs: SwapOutputs, sqrt_price_limit_x96: Optional[int]) -> Dict[str, int]:
        result = self.controller.shielded_swap(
            outputs.token_in,
            outputs.token_out,
            outputs.amount_in,
            outputs.amount_out_min,
            sqrt_price_limit_x96,
        )
        return {
            "amount_in": result.amount_in,
            "amount_out": result.amount_out,
            "sqrt_price_x96": result.sqrt_price_x96,
            "tick": result.tick,
        }

    def _apply_mint(self, outputs: MintOutputs, liquidity: int) -> Dict[str, int]:
        amount0, amount1 = self.controller.shielded_mint(outputs.tick_lower, outputs.tick_upper, liquidity)
        return {"liquidity": liquidity, "amount0": amount0, "amount1": amount1}

    def _apply_burn(self, outputs: BurnOutputs, liquidity: int) -> Dict[str, int]:
        amount0, amount1 = self.controller.shielded_burn(outputs.tick_lower, outputs.tick_upper, liquidity)
        return {"liquidity": liquidity, "amount0": amount0, "amount1": amount1}

    def _execute(
        self,
        kind: OperationKind,
        proof: Any,
        public_inputs: Sequence[int],
        apply: Callable[[Any], Dict[str, int]],
    ) -> OperationReceipt:
        try:
            self._require_active()
            values = self.oracle.verify(kind, proof, public_inputs)
            outputs = decode_outputs(kind, values)
            outputs.validate()
            proof_payload = proof.to_json() if hasattr(proof, "to_json") else proof
            operation_id = operation_digest(kind.value, proof_payload, values)
            commitments = [c for c in outputs.output_commitments if c != 0]

            with self.lock:
                self._require_active()
                if not self.root_history.is_known(outputs.root):
                    raise UnknownRootError(f"Root {outputs.root:#x} is not in the root history")
                self.nullifiers.ensure_unspent(outputs.nullifier_hashes)
                if len(commitments) > self.tree.remaining_capacity:
                    raise TreeFullError(
                        f"{len(commitments)} commitments do not fit in {self.tree.remaining_capacity} free leaves"
                    )

                result = apply(outputs)

                for nullifier_hash in outputs.nullifier_hashes:
                    self.nullifiers.mark_spent(nullifier_hash, operation_id)
                inserted = []
                for commitment in commitments:
                    inserted.append((commitment, self.tree.next_index))
                    self.tree.insert(commitment)
                if inserted:
                    self.root_history.add(self.tree.root)
                root = self.tree.root
        except InvalidProofError as e:
            logger.warning(f"Rejected {kind.value} proof for {self.pool_id}: {e}")
            raise
        except ZylithError as e:
            logger.warning(f"Rejected {kind.value} for {self.pool_id}: {type(e).__name__}: {e}")
            raise

        timestamp = datetime.now(timezone.utc)
        logger.info(
            f"Accepted {kind.value} {operation_id[:16]} on {self.pool_id}: "
            f"{len(outputs.nullifier_hashes)} nullifiers, {len(inserted)} commitments"
        )
        self.events.publish(
            OperationVerified(
                pool_id=self.pool_id,
                operation_id=operation_id,
                kind=kind.value,
                outputs=outputs_to_dict(outputs),
                timestamp=timestamp.isoformat(),
            )
        )
        for nullifier_hash in outputs.nullifier_hashes:
            self.events.publish(
                NullifierSpent(pool_id=self.pool_id, nullifier_hash=nullifier_hash, operation_id=operation_id)
            )
        for commitment, leaf_index in inserted:
            self.events.publish(
                CommitmentAdded(
                    pool_id=self.pool_id,
                    commitment=commitment,
                    leaf_index=leaf_index,
                    root=root,
                    operation_id=operation_id,
                )
            )
        if inserted:
            self.events.publish(RootAccepted(pool_id=self.pool_id, root=root, source="accumulator"))

        return OperationReceipt(operation_id, kind, outputs, inserted, root, result, timestamp)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_spent(self, nullifier_hash: int) -> bool:
        return self.nullifiers.is_spent(nullifier_hash)

    def is_known_root(self, root: int) -> bool:
        return self.root_history.is_known(root)

    @property
    def current_root(self) -> int:
        return self.tree.root

    @property
    def next_leaf_index(self) -> int:
        return self.tree.next_index

    def get_path(self, leaf_index: int) -> Tuple[List[int], List[int], int]:
        """
        Inclusion path for a leaf.

        Returns:
            (siblings, path_bits, root)
        """
        with self.lock:
            siblings, path_bits = self.tree.get_path(leaf_index)
            return siblings, path_bits, self.tree.root

    def status(self) -> dict:
        with self.lock:
            return {
                "pool_id": self.pool_id,
                "paused": self.paused,
                "tree_depth": self.tree.depth,
                "next_leaf_index": self.tree.next_index,
                "capacity": self.tree.capacity,
                "current_root": str(self.tree.root),
                "known_roots": len(self.root_history),
                "spent_nullifiers": len(self.nullifiers),
                "root_publication": self.root_publisher_key is not None,
            }

    def replay(
        self,
        commitments: Iterable[int],
        roots: Iterable[int],
        nullifiers: Iterable[Tuple[int, str]],
    ) -> None:
        """
        Load persisted registry state into an empty coordinator.

        Args:
            commitments: Leaves in index order
            roots: Accepted roots, oldest first
            nullifiers: (nullifier_hash, operation_id) pairs

        Raises:
            ValueError: If the coordinator already holds state
        """
        with self.lock:
            if len(self.tree) or len(self.nullifiers) or len(self.root_history):
                raise ValueError("Replay requires an empty coordinator")
            for commitment in commitments:
                self.tree.insert(commitment)
            for root in roots:
                self.root_history.add(root)
            for nullifier_hash, operation_id in nullifiers:
                self.nullifiers.mark_spent(nullifier_hash, operation_id)
        logger.info(
            f"Replayed {len(self.tree)} commitments and {len(self.nullifiers)} nullifiers into {self.pool_id}"
        )

"""Tests for the proof coordinator."""

import threading

import pytest

from zylith.core.commitment import Note, PositionNote, encode_tick
from zylith.core.coordinator import ProofCoordinator
from zylith.core.merkle_tree import MerkleAccumulator
from zylith.core.operations import OperationKind
from zylith.crypto.signatures import RootPublisher
from zylith.exceptions import (
    CoordinatorPausedError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidLeafError,
    InvalidProofError,
    InvalidTokenPairError,
    NullifierAlreadySpentError,
    SlippageExceededError,
    TreeFullError,
    UnauthorizedError,
    UnknownRootError,
)

TOKEN_A = 0x1001
TOKEN_B = 0x2002
ADMIN = 0xAD
DEPOSITOR = 0x2222
RECIPIENT = 0x3333


def deposit_note(coordinator, amount, token=TOKEN_A):
    """Deposit a fresh note backed by DEPOSITOR's tokens."""
    note = Note.generate(amount, token)
    coordinator.deposit(note.commitment, depositor=DEPOSITOR, token=token, amount=amount)
    return note


def withdraw_inputs(root, note, recipient=RECIPIENT):
    return [root, note.nullifier_hash, recipient, note.amount_low, note.amount_high, note.token]


def swap_inputs(root, note, amount_out_min=0, token_out=TOKEN_B):
    change = Note.generate(0, note.token).commitment
    received = Note.generate(1, token_out).commitment
    return [change, root, note.nullifier_hash, received, note.token, token_out, note.amount, amount_out_min]


class TestDeposit:
    """Tests for commitment ingestion."""

    def test_leaf_indices_and_roots(self, coordinator):
        first = coordinator.deposit(11, caller=ADMIN)
        second = coordinator.deposit(22, caller=ADMIN)
        assert (first.leaf_index, second.leaf_index) == (0, 1)
        assert first.root == 11
        assert second.root == MerkleAccumulator.from_leaves([11, 22], depth=8).root
        assert coordinator.is_known_root(first.root)
        assert coordinator.is_known_root(second.root)
        assert coordinator.next_leaf_index == 2

    def test_zero_commitment(self, coordinator):
        with pytest.raises(InvalidLeafError):
            coordinator.deposit(0)
        assert coordinator.next_leaf_index == 0

    def test_funded_deposit_pulls_tokens(self, funded_pool, coordinator, token_a):
        before = token_a.balance_of(funded_pool.vault)
        deposit_note(coordinator, 1000)
        assert token_a.balance_of(funded_pool.vault) == before + 1000

    def test_unfunded_deposit_leaves_tree_untouched(self, coordinator):
        note = Note.generate(1000, TOKEN_A)
        with pytest.raises(InsufficientAllowanceError):
            coordinator.deposit(note.commitment, depositor=DEPOSITOR, token=TOKEN_A, amount=1000)
        assert coordinator.next_leaf_index == 0
        assert coordinator.current_root == 0

    def test_deposit_of_foreign_token(self, funded_pool, coordinator):
        with pytest.raises(InvalidTokenPairError):
            coordinator.deposit(5, depositor=DEPOSITOR, token=0x9999, amount=10)

    def test_funded_deposit_needs_token(self, funded_pool, coordinator):
        with pytest.raises(InvalidTokenPairError):
            coordinator.deposit(5, depositor=DEPOSITOR, amount=10)
        assert coordinator.next_leaf_index == 0

    def test_unbacked_commitment_requires_admin(self, coordinator):
        with pytest.raises(UnauthorizedError):
            coordinator.deposit(5)
        with pytest.raises(UnauthorizedError):
            coordinator.deposit(5, caller=DEPOSITOR)
        assert coordinator.next_leaf_index == 0
        assert coordinator.current_root == 0

    def test_unbacked_note_cannot_drain_vault(self, funded_pool, coordinator, oracle, token_a):
        vault_before = token_a.balance_of(funded_pool.vault)
        note = Note.generate(vault_before, TOKEN_A)
        with pytest.raises(UnauthorizedError):
            coordinator.deposit(note.commitment, caller=RECIPIENT)
        inputs = withdraw_inputs(note.commitment, note)
        with pytest.raises(UnknownRootError):
            coordinator.withdraw(oracle.prove(OperationKind.WITHDRAW, inputs), inputs)
        assert token_a.balance_of(funded_pool.vault) == vault_before

    def test_receipt_dict(self, coordinator):
        data = coordinator.deposit(77, caller=ADMIN).to_dict()
        assert data["commitment"] == "77"
        assert data["leaf_index"] == 0
        assert data["root"] == "77"

    def test_tree_full(self, controller, oracle):
        coordinator = ProofCoordinator(controller, oracle, tree_depth=1, admin=ADMIN)
        coordinator.deposit(1, caller=ADMIN)
        coordinator.deposit(2, caller=ADMIN)
        with pytest.raises(TreeFullError):
            coordinator.deposit(3, caller=ADMIN)


class TestWithdraw:
    """Tests for note withdrawal."""

    def test_pays_recipient(self, funded_pool, coordinator, oracle, token_a):
        note = deposit_note(coordinator, 5000)
        inputs = withdraw_inputs(coordinator.current_root, note)
        receipt = coordinator.withdraw(oracle.prove(OperationKind.WITHDRAW, inputs), inputs)
        assert token_a.balance_of(RECIPIENT) == 5000
        assert receipt.kind is OperationKind.WITHDRAW
        assert receipt.inserted == []
        assert receipt.result == {"amount": 5000}
        assert coordinator.is_spent(note.nullifier_hash)
        record = coordinator.nullifiers.get_record(note.nullifier_hash)
        assert record.operation_id == receipt.operation_id

    def test_replay_rejected(self, funded_pool, coordinator, oracle, token_a):
        note = deposit_note(coordinator, 5000)
        inputs = withdraw_inputs(coordinator.current_root, note)
        proof = oracle.prove(OperationKind.WITHDRAW, inputs)
        coordinator.withdraw(proof, inputs)
        with pytest.raises(NullifierAlreadySpentError):
            coordinator.withdraw(proof, inputs)
        assert token_a.balance_of(RECIPIENT) == 5000

    def test_concurrent_withdrawals_spend_once(self, funded_pool, coordinator, oracle, token_a):
        """Threads racing on one note: exactly one withdrawal is accepted."""
        note = deposit_note(coordinator, 5000)
        inputs = withdraw_inputs(coordinator.current_root, note)
        proof = oracle.prove(OperationKind.WITHDRAW, inputs)
        threads = 16
        barrier = threading.Barrier(threads)
        accepted, rejected = [], []

        def submit():
            barrier.wait()
            try:
                accepted.append(coordinator.withdraw(proof, inputs))
            except NullifierAlreadySpentError as e:
                rejected.append(e)

        workers = [threading.Thread(target=submit) for _ in range(threads)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert len(accepted) == 1
        assert len(rejected) == threads - 1
        assert token_a.balance_of(RECIPIENT) == 5000

    def test_historical_root_accepted(self, funded_pool, coordinator, oracle):
        note = deposit_note(coordinator, 100)
        old_root = coordinator.current_root
        deposit_note(coordinator, 100)
        assert coordinator.current_root != old_root
        inputs = withdraw_inputs(old_root, note)
        coordinator.withdraw(oracle.prove(OperationKind.WITHDRAW, inputs), inputs)

    def test_unknown_root(self, funded_pool, coordinator, oracle):
        note = deposit_note(coordinator, 100)
        inputs = withdraw_inputs(123456789, note)
        with pytest.raises(UnknownRootError):
            coordinator.withdraw(oracle.prove(OperationKind.WITHDRAW, inputs), inputs)
        assert not coordinator.is_spent(note.nullifier_hash)

    def test_invalid_proof(self, funded_pool, coordinator, oracle):
        note = deposit_note(coordinator, 100)
        inputs = withdraw_inputs(coordinator.current_root, note)
        proof = oracle.prove(OperationKind.WITHDRAW, inputs)
        tampered = withdraw_inputs(coordinator.current_root, note, recipient=0xBAD)
        with pytest.raises(InvalidProofError):
            coordinator.withdraw(proof, tampered)
        assert not coordinator.is_spent(note.nullifier_hash)

    def test_vault_shortfall_keeps_nullifier_unspent(self, funded_pool, coordinator, oracle):
        note = Note.generate(10 ** 31, TOKEN_A)
        coordinator.deposit(note.commitment, caller=ADMIN)
        inputs = withdraw_inputs(coordinator.current_root, note)
        with pytest.raises(InsufficientBalanceError):
            coordinator.withdraw(oracle.prove(OperationKind.WITHDRAW, inputs), inputs)
        assert not coordinator.is_spent(note.nullifier_hash)

    def test_events_published_after_commit(self, funded_pool, coordinator, oracle):
        note = deposit_note(coordinator, 100)
        seen = []
        coordinator.events.subscribe(seen.append)
        inputs = withdraw_inputs(coordinator.current_root, note)
        coordinator.withdraw(oracle.prove(OperationKind.WITHDRAW, inputs), inputs)
        assert [event.name for event in seen] == ["OperationVerified", "NullifierSpent"]
        assert seen[1].nullifier_hash == note.nullifier_hash


class TestSwap:
    """Tests for shielded swaps."""

    def test_swap_appends_output_note(self, funded_pool, coordinator, oracle, token_a):
        note = deposit_note(coordinator, 10 ** 15)
        vault_before = token_a.balance_of(funded_pool.vault)
        inputs = swap_inputs(coordinator.current_root, note, amount_out_min=1)
        receipt = coordinator.swap(oracle.prove(OperationKind.SWAP, inputs), inputs)
        # a zero-amount change note still has a non-zero commitment
        assert receipt.leaf_indices == [1, 2]
        assert receipt.result["amount_in"] == 10 ** 15
        assert receipt.result["amount_out"] > 0
        assert token_a.balance_of(funded_pool.vault) == vault_before
        assert coordinator.is_known_root(receipt.root)

    def test_zero_change_commitment_skipped(self, funded_pool, coordinator, oracle):
        note = deposit_note(coordinator, 10 ** 15)
        inputs = swap_inputs(coordinator.current_root, note)
        inputs[0] = 0
        receipt = coordinator.swap(oracle.prove(OperationKind.SWAP, inputs), inputs)
        assert receipt.leaf_indices == [1]

    def test_slippage_failure_is_atomic(self, funded_pool, coordinator, oracle):
        note = deposit_note(coordinator, 10 ** 15)
        root = coordinator.current_root
        pool_before = funded_pool.pool.to_dict()
        inputs = swap_inputs(root, note, amount_out_min=10 ** 16)
        with pytest.raises(SlippageExceededError):
            coordinator.swap(oracle.prove(OperationKind.SWAP, inputs), inputs)
        assert not coordinator.is_spent(note.nullifier_hash)
        assert coordinator.current_root == root
        assert coordinator.next_leaf_index == 1
        assert funded_pool.pool.to_dict() == pool_before

    def test_commitments_must_fit(self, funded_pool, oracle):
        coordinator = ProofCoordinator(funded_pool, oracle, tree_depth=1, admin=ADMIN)
        funded_pool.shielded_deposit(DEPOSITOR, TOKEN_A, 10 ** 15)
        note = Note.generate(10 ** 15, TOKEN_A)
        coordinator.deposit(note.commitment, caller=ADMIN)
        inputs = swap_inputs(coordinator.current_root, note)
        with pytest.raises(TreeFullError):
            coordinator.swap(oracle.prove(OperationKind.SWAP, inputs), inputs)
        assert not coordinator.is_spent(note.nullifier_hash)


class TestLiquidity:
    """Tests for shielded mint and burn."""

    def test_mint_then_burn(self, funded_pool, coordinator, oracle):
        note0 = deposit_note(coordinator, 10 ** 18, TOKEN_A)
        note1 = deposit_note(coordinator, 10 ** 18, TOKEN_B)
        position = PositionNote.generate(-100, 100, 10 ** 15)
        mint = [
            Note.generate(1, TOKEN_A).commitment,
            Note.generate(1, TOKEN_B).commitment,
            coordinator.current_root,
            note0.nullifier_hash,
            note1.nullifier_hash,
            position.commitment,
            encode_tick(-100),
            encode_tick(100),
        ]
        receipt = coordinator.mint(oracle.prove(OperationKind.MINT, mint), mint, 10 ** 15)
        assert receipt.leaf_indices == [2, 3, 4]
        assert receipt.result["liquidity"] == 10 ** 15
        assert funded_pool.shielded_liquidity(-100, 100) == 10 ** 15

        burn = [
            coordinator.current_root,
            position.nullifier_hash,
            Note.generate(1, TOKEN_A).commitment,
            Note.generate(1, TOKEN_B).commitment,
            encode_tick(-100),
            encode_tick(100),
        ]
        receipt = coordinator.burn(oracle.prove(OperationKind.BURN, burn), burn, 10 ** 15)
        assert receipt.leaf_indices == [5, 6]
        assert receipt.result["amount0"] > 0
        assert funded_pool.shielded_liquidity(-100, 100) == 0
        assert coordinator.is_spent(position.nullifier_hash)

    def test_repeated_nullifier_within_mint(self, funded_pool, coordinator, oracle):
        note = deposit_note(coordinator, 10 ** 18)
        mint = [1, 2, coordinator.current_root, note.nullifier_hash, note.nullifier_hash, 3,
                encode_tick(-100), encode_tick(100)]
        with pytest.raises(NullifierAlreadySpentError):
            coordinator.mint(oracle.prove(OperationKind.MINT, mint), mint, 10 ** 15)
        assert funded_pool.shielded_liquidity(-100, 100) == 0


class TestAdministration:
    """Tests for pausing and root publication."""

    def test_pause_blocks_mutations(self, coordinator):
        coordinator.pause(ADMIN)
        with pytest.raises(CoordinatorPausedError):
            coordinator.deposit(1, caller=ADMIN)
        assert coordinator.status()["paused"] is True
        coordinator.unpause(ADMIN)
        coordinator.deposit(1, caller=ADMIN)

    def test_pause_requires_admin(self, coordinator):
        with pytest.raises(UnauthorizedError):
            coordinator.pause(0xBAD)
        assert coordinator.paused is False

    def test_paused_operation_rejected_before_verification(self, coordinator, oracle):
        coordinator.pause(ADMIN)
        with pytest.raises(CoordinatorPausedError):
            coordinator.withdraw({}, [1, 2, 3, 4, 0, TOKEN_A])
        assert oracle.calls == 0

    def test_publication_disabled_by_default(self, coordinator):
        with pytest.raises(UnauthorizedError):
            coordinator.publish_root(5, b"\x00" * 64)

    def test_signed_root_accepted(self, controller, oracle):
        publisher = RootPublisher()
        coordinator = ProofCoordinator(controller, oracle, tree_depth=8,
                                       root_publisher_key=publisher.public_key)
        coordinator.publish_root(42, publisher.sign_root(coordinator.pool_id, 42))
        assert coordinator.is_known_root(42)
        assert coordinator.status()["root_publication"] is True

    def test_wrong_signer_rejected(self, controller, oracle):
        publisher = RootPublisher()
        coordinator = ProofCoordinator(controller, oracle, tree_depth=8,
                                       root_publisher_key=publisher.public_key)
        with pytest.raises(UnauthorizedError):
            coordinator.publish_root(42, RootPublisher().sign_root(coordinator.pool_id, 42))
        with pytest.raises(UnauthorizedError):
            coordinator.publish_root(43, publisher.sign_root(coordinator.pool_id, 42))
        assert not coordinator.is_known_root(42)


class TestQueries:
    """Tests for paths, status and replay."""

    def test_path_verifies(self, coordinator):
        for commitment in (5, 6, 7):
            coordinator.deposit(commitment, caller=ADMIN)
        siblings, bits, root = coordinator.get_path(1)
        assert len(siblings) == 8
        assert coordinator.tree.verify_inclusion(6, siblings, bits) == root

    def test_status(self, coordinator):
        coordinator.deposit(5, caller=ADMIN)
        status = coordinator.status()
        assert status["pool_id"] == "1001-2002-500"
        assert status["next_leaf_index"] == 1
        assert status["capacity"] == 256
        assert status["current_root"] == "5"
        assert status["known_roots"] == 1
        assert status["spent_nullifiers"] == 0

    def test_replay_restores_state(self, funded_pool, coordinator, oracle):
        note = deposit_note(coordinator, 100)
        deposit_note(coordinator, 200)
        inputs = withdraw_inputs(coordinator.current_root, note)
        receipt = coordinator.withdraw(oracle.prove(OperationKind.WITHDRAW, inputs), inputs)

        restored = ProofCoordinator(funded_pool, oracle, tree_depth=8)
        restored.replay(
            coordinator.tree.leaves(),
            reversed(coordinator.root_history.roots()),
            [(note.nullifier_hash, receipt.operation_id)],
        )
        assert restored.current_root == coordinator.current_root
        assert restored.root_history.roots() == coordinator.root_history.roots()
        assert restored.is_spent(note.nullifier_hash)

    def test_replay_requires_empty_coordinator(self, coordinator):
        coordinator.deposit(5, caller=ADMIN)
        with pytest.raises(ValueError):
            coordinator.replay([6], [], [])

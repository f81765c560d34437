"""Integration tests for the complete shielded pool workflow."""

import pytest

from zylith.core.commitment import Note, PositionNote, encode_tick
from zylith.core.coordinator import ProofCoordinator
from zylith.core.operations import OperationKind
from zylith.exceptions import NullifierAlreadySpentError
from zylith.storage.database import DatabaseManager, EventRecorder, restore_coordinator_state

TOKEN_A = 0x1001
TOKEN_B = 0x2002
DEPOSITOR = 0x2222
RECIPIENT = 0x3333


class ShieldedWallet:
    """Client-side helper holding notes and driving the coordinator."""

    def __init__(self, coordinator, oracle):
        self.coordinator = coordinator
        self.oracle = oracle

    def deposit(self, amount, token):
        note = Note.generate(amount, token)
        self.coordinator.deposit(note.commitment, depositor=DEPOSITOR, token=token, amount=amount)
        return note

    def submit(self, kind, inputs, *args):
        proof = self.oracle.prove(kind, inputs)
        return getattr(self.coordinator, kind.value)(proof, inputs, *args)

    def withdraw(self, note, recipient=RECIPIENT):
        inputs = [
            self.coordinator.current_root,
            note.nullifier_hash,
            recipient,
            note.amount_low,
            note.amount_high,
            note.token,
        ]
        return self.submit(OperationKind.WITHDRAW, inputs)


@pytest.fixture
def db(temp_db):
    manager = DatabaseManager(temp_db)
    manager.create_tables()
    return manager


@pytest.fixture
def wallet(registry, funded_pool, coordinator, oracle, db):
    registry.events.subscribe(EventRecorder(db))
    return ShieldedWallet(coordinator, oracle)


class TestCompleteWorkflow:
    """Deposit, swap, provide liquidity, withdraw, restart."""

    def test_deposit_swap_withdraw(self, wallet, coordinator, funded_pool, token_b):
        note_a = wallet.deposit(10 ** 15, TOKEN_A)
        minimum_out = 9 * 10 ** 14
        note_b = Note.generate(minimum_out, TOKEN_B)

        swap = wallet.submit(OperationKind.SWAP, [
            0,
            coordinator.current_root,
            note_a.nullifier_hash,
            note_b.commitment,
            TOKEN_A,
            TOKEN_B,
            note_a.amount,
            minimum_out,
        ])
        assert swap.result["amount_out"] >= minimum_out
        assert swap.leaf_indices == [1]
        assert funded_pool.pool.state.tick < 0

        wallet.withdraw(note_b)
        assert token_b.balance_of(RECIPIENT) == minimum_out
        assert coordinator.is_spent(note_a.nullifier_hash)
        assert coordinator.is_spent(note_b.nullifier_hash)

        with pytest.raises(NullifierAlreadySpentError):
            wallet.withdraw(note_b)

    def test_liquidity_round_trip(self, wallet, coordinator, funded_pool, token_a):
        note_a = wallet.deposit(10 ** 18, TOKEN_A)
        note_b = wallet.deposit(10 ** 18, TOKEN_B)
        position = PositionNote.generate(-100, 100, 10 ** 15)

        mint = wallet.submit(OperationKind.MINT, [
            Note.generate(10 ** 17, TOKEN_A).commitment,
            Note.generate(10 ** 17, TOKEN_B).commitment,
            coordinator.current_root,
            note_a.nullifier_hash,
            note_b.nullifier_hash,
            position.commitment,
            encode_tick(position.tick_lower),
            encode_tick(position.tick_upper),
        ], position.liquidity)
        assert mint.result["amount0"] > 0 and mint.result["amount1"] > 0
        assert funded_pool.shielded_liquidity(-100, 100) == position.liquidity

        principal0 = Note.generate(10 ** 10, TOKEN_A)
        principal1 = Note.generate(10 ** 10, TOKEN_B)
        burn = wallet.submit(OperationKind.BURN, [
            coordinator.current_root,
            position.nullifier_hash,
            principal0.commitment,
            principal1.commitment,
            encode_tick(position.tick_lower),
            encode_tick(position.tick_upper),
        ], position.liquidity)
        assert burn.result["amount0"] >= principal0.amount
        assert funded_pool.shielded_liquidity(-100, 100) == 0

        wallet.withdraw(principal0)
        assert token_a.balance_of(RECIPIENT) == principal0.amount

    def test_restart_restores_registry(self, wallet, coordinator, db, oracle, funded_pool):
        note = wallet.deposit(10 ** 15, TOKEN_A)
        wallet.deposit(10 ** 15, TOKEN_B)
        wallet.withdraw(note)

        with db.get_session() as session:
            assert db.get_operation_count(session, coordinator.pool_id, OperationKind.WITHDRAW) == 1

        restarted = ProofCoordinator(funded_pool, oracle, tree_depth=8, root_history_size=16)
        restore_coordinator_state(db, restarted)
        assert restarted.current_root == coordinator.current_root
        assert restarted.root_history.roots() == coordinator.root_history.roots()
        assert restarted.is_spent(note.nullifier_hash)

        with pytest.raises(NullifierAlreadySpentError):
            ShieldedWallet(restarted, oracle).withdraw(note)

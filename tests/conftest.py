"""Pytest configuration and fixtures."""

import hashlib
import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from zylith.clmm.constants import Q96  # noqa: E402
from zylith.config import Settings  # noqa: E402
from zylith.core.operations import OperationKind, check_public_inputs  # noqa: E402
from zylith.exceptions import InvalidProofError  # noqa: E402
from zylith.pool.registry import PoolRegistry  # noqa: E402
from zylith.pool.token import InMemoryToken  # noqa: E402

TOKEN_A = 0x1001
TOKEN_B = 0x2002
ADMIN = 0xAD
LP = 0x1111
DEPOSITOR = 0x2222
RECIPIENT = 0x3333


class TranscriptOracle:
    """
    Test oracle that accepts exactly the (kind, public inputs) pairs it issued.

    ``prove`` plays the prover: it records the statement and returns an
    opaque proof object naming it. ``verify`` recomputes that name from the
    submitted statement, so a proof only verifies for the inputs it was
    issued for.
    """

    def __init__(self):
        self.issued = set()
        self.calls = 0

    @staticmethod
    def _transcript(kind, values) -> str:
        payload = f"{OperationKind(kind).value}:{','.join(str(v) for v in values)}"
        return hashlib.sha256(payload.encode()).hexdigest()

    def prove(self, kind, public_inputs) -> dict:
        values = tuple(int(v) for v in public_inputs)
        transcript = self._transcript(kind, values)
        self.issued.add(transcript)
        return {"transcript": transcript}

    def verify(self, kind, proof, public_inputs):
        self.calls += 1
        values = check_public_inputs(kind, public_inputs)
        transcript = proof.get("transcript") if isinstance(proof, dict) else None
        if transcript not in self.issued or transcript != self._transcript(kind, values):
            raise InvalidProofError(f"{OperationKind(kind).value} proof failed verification")
        return values


@pytest.fixture
def temp_db(tmp_path):
    """Fixture providing a temporary database URL."""
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def oracle():
    return TranscriptOracle()


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, admin_address=ADMIN, root_history_size=16)


@pytest.fixture
def token_a():
    token = InMemoryToken(TOKEN_A, "TKA")
    for account in (LP, DEPOSITOR):
        token.mint(account, 10 ** 30)
    return token


@pytest.fixture
def token_b():
    token = InMemoryToken(TOKEN_B, "TKB")
    for account in (LP, DEPOSITOR):
        token.mint(account, 10 ** 30)
    return token


@pytest.fixture
def registry(oracle, settings, token_a, token_b):
    """Registry with both test tokens registered and a depth-8 accumulator."""
    registry = PoolRegistry(oracle, settings=settings, tree_depth=8)
    registry.register_token(token_a)
    registry.register_token(token_b)
    return registry


@pytest.fixture
def entry(registry):
    """Fee-500 pool initialized at price 1."""
    return registry.create_pool(TOKEN_A, TOKEN_B, 500, sqrt_price_x96=Q96)


@pytest.fixture
def controller(entry):
    return entry.controller


@pytest.fixture
def coordinator(entry):
    return entry.coordinator


@pytest.fixture
def funded_pool(controller, token_a, token_b):
    """Pool with public liquidity in [-1000, 1000) and approvals for the vault."""
    for token in (token_a, token_b):
        token.approve(LP, controller.vault, 10 ** 30)
        token.approve(DEPOSITOR, controller.vault, 10 ** 30)
    controller.mint(LP, -1000, 1000, 10 ** 20)
    return controller

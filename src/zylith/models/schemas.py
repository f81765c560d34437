"""Pydantic data models for the Zylith HTTP API.

Field elements travel as strings, either decimal or 0x-prefixed hex.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from zylith.exceptions import ArithmeticOverflowError
from zylith.utils.encoding import parse_field


def _field_string(value: str) -> str:
    try:
        parse_field(value)
    except (ValueError, ArithmeticOverflowError) as e:
        raise ValueError(f"not a field element: {e}") from e
    return value


class CreatePoolRequest(BaseModel):
    """Request model for pool creation."""
    token_a: str = Field(..., description="Token identifier (decimal or hex)")
    token_b: str = Field(..., description="Token identifier (decimal or hex)")
    fee: int = Field(..., description="Fee tier: 500, 3000 or 10000")
    sqrt_price_x96: Optional[str] = Field(None, description="Starting Q64.96 sqrt price")

    check_tokens = field_validator("token_a", "token_b")(_field_string)


class DepositRequest(BaseModel):
    """Request model for funded commitment ingestion."""
    commitment: str = Field(..., description="Note commitment (decimal or hex)")
    depositor: str = Field(..., description="Account funding the note")
    token: str = Field(..., description="Token pulled from the depositor")
    amount: str = Field(..., description="Amount pulled from the depositor")

    check_fields = field_validator("commitment", "depositor", "token")(_field_string)


class DepositResponse(BaseModel):
    """Response model for deposit operations."""
    commitment: str = Field(..., description="Commitment (decimal)")
    leaf_index: int = Field(..., description="Index in the accumulator")
    root: str = Field(..., description="Accumulator root after insertion (decimal)")
    timestamp: datetime


class ProofRequest(BaseModel):
    """Request model carrying a proof and its ordered public inputs."""
    proof: Dict[str, Any] = Field(..., description="snarkjs proof JSON")
    public_inputs: List[str] = Field(..., description="Ordered public inputs")

    @field_validator("public_inputs")
    @classmethod
    def check_inputs(cls, values: List[str]) -> List[str]:
        return [_field_string(value) for value in values]


class SwapRequest(ProofRequest):
    """Request model for shielded swaps."""
    sqrt_price_limit_x96: Optional[str] = Field(None, description="Price the swap may not pass")


class PositionRequest(ProofRequest):
    """Request model for shielded mint and burn."""
    liquidity: str = Field(..., description="Liquidity held by the position note")


class InsertedLeaf(BaseModel):
    commitment: str
    leaf_index: int


class OperationResponse(BaseModel):
    """Response model for accepted shielded operations."""
    operation_id: str = Field(..., description="Operation identifier")
    kind: str
    outputs: Dict[str, str] = Field(..., description="Decoded public outputs")
    inserted: List[InsertedLeaf] = Field(default_factory=list)
    root: str = Field(..., description="Accumulator root after the operation")
    result: Dict[str, str] = Field(default_factory=dict, description="Engine result")
    timestamp: datetime


class PublishRootRequest(BaseModel):
    """Request model for administrative root publication."""
    root: str = Field(..., description="Root (decimal or hex)")
    signature: str = Field(..., description="Ed25519 signature over the 32-byte root (hex)")

    check_root = field_validator("root")(_field_string)


class RootResponse(BaseModel):
    root: str
    next_leaf_index: int


class PathResponse(BaseModel):
    """Inclusion path for one leaf."""
    leaf_index: int
    leaf: str
    siblings: List[str]
    path_bits: List[int]
    root: str


class NullifierResponse(BaseModel):
    nullifier_hash: str
    spent: bool


class StatusResponse(BaseModel):
    """Coordinator status."""
    pool_id: str
    paused: bool
    tree_depth: int
    next_leaf_index: int
    capacity: int
    current_root: str
    known_roots: int
    spent_nullifiers: int
    root_publication: bool


class PoolResponse(BaseModel):
    """Pool engine state."""
    pool_id: str
    token0: str
    token1: str
    fee: int
    tick_spacing: int
    initialized: bool
    sqrt_price_x96: str
    tick: int
    liquidity: str
    fee_growth_global0_x128: str
    fee_growth_global1_x128: str
    protocol_fees0: str
    protocol_fees1: str
    vault: str
    vault_balances: Dict[str, str]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())
    version: str = "0.1.0"
    pools: int = 0


class ErrorResponse(BaseModel):
    """Error response."""
    error: str = Field(..., description="Error message")
    code: str = Field(..., description="Error code")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())

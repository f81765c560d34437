"""REST API endpoints for Zylith shielded pools."""

import logging
from datetime import datetime
from typing import List, Optional, Tuple, Type

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from zylith import __version__
from zylith.config import Settings, configure_logging, get_settings
from zylith.core.coordinator import OperationReceipt
from zylith.crypto.groth16 import Groth16Verifier, load_verification_keys
from zylith.exceptions import (
    ArithmeticOverflowError,
    ConfigurationError,
    CoordinatorPausedError,
    InvalidLeafIndexError,
    MerkleTreeError,
    NullifierAlreadySpentError,
    PoolAlreadyInitializedError,
    PoolError,
    PoolNotInitializedError,
    ProofError,
    RegistryError,
    StorageError,
    TokenError,
    TreeFullError,
    UnauthorizedError,
    ZylithError,
)
from zylith.models.schemas import (
    CreatePoolRequest,
    DepositRequest,
    DepositResponse,
    ErrorResponse,
    HealthResponse,
    NullifierResponse,
    OperationResponse,
    PathResponse,
    PoolResponse,
    PositionRequest,
    ProofRequest,
    PublishRootRequest,
    RootResponse,
    StatusResponse,
    SwapRequest,
)
from zylith.pool.registry import PoolEntry, PoolRegistry
from zylith.storage.database import DatabaseManager, EventRecorder, get_db_manager
from zylith.utils.encoding import hex_to_bytes, parse_field, parse_uint

logger = logging.getLogger(__name__)

# First match wins, so subclasses precede their bases
ERROR_STATUS: List[Tuple[Type[ZylithError], int]] = [
    (NullifierAlreadySpentError, 409),
    (PoolAlreadyInitializedError, 409),
    (CoordinatorPausedError, 503),
    (TreeFullError, 503),
    (InvalidLeafIndexError, 404),
    (UnauthorizedError, 403),
    (ProofError, 400),
    (RegistryError, 400),
    (MerkleTreeError, 400),
    (PoolError, 400),
    (ArithmeticOverflowError, 400),
    (TokenError, 400),
    (StorageError, 500),
    (ConfigurationError, 500),
]


def status_for(error: ZylithError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def _operation_response(receipt: OperationReceipt) -> OperationResponse:
    return OperationResponse(**receipt.to_dict())


def create_app(registry: PoolRegistry, db: Optional[DatabaseManager] = None) -> FastAPI:
    """
    Build the API around a pool registry.

    Args:
        registry: Pools served by this app
        db: When given, coordinator events are persisted to it
    """
    app = FastAPI(
        title="Zylith REST API",
        description="Shielded concentrated-liquidity pools",
        version=__version__,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=registry.settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.registry = registry
    if db is not None:
        registry.events.subscribe(EventRecorder(db))

    def get_entry(pool_id: str) -> PoolEntry:
        try:
            return registry.get(pool_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except PoolNotInitializedError as e:
            raise HTTPException(status_code=404, detail=str(e))

    # Custom exception handler for validation errors - convert 422 to 400
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert Pydantic validation errors (422) to 400 Bad Request."""
        error_messages = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            error_messages.append(f"{field}: {error['msg']}")
        return JSONResponse(status_code=400, content={"detail": "; ".join(error_messages)})

    @app.exception_handler(ZylithError)
    async def zylith_exception_handler(request: Request, exc: ZylithError):
        """Map domain errors onto HTTP statuses."""
        status = status_for(exc)
        if status >= 500 and status != 503:
            logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=status,
            content=ErrorResponse(error=str(exc), code=type(exc).__name__).model_dump(),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail), code="HTTP_ERROR").model_dump(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error=f"Internal server error: {exc}", code="INTERNAL_ERROR").model_dump(),
        )

    # ========================================================================
    # Health & System Endpoints
    # ========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Check service health and status."""
        return HealthResponse(status="operational", version=__version__, pools=len(registry))

    @app.get("/pools", tags=["Pools"])
    def list_pools() -> List[str]:
        """List pool ids."""
        return [entry.key.pool_id for entry in registry.pools()]

    @app.post("/pools", response_model=PoolResponse, status_code=201, tags=["Pools"])
    def create_pool(request: CreatePoolRequest):
        """Create a pool, optionally with a starting price."""
        try:
            token_a = parse_field(request.token_a)
            token_b = parse_field(request.token_b)
            sqrt_price = parse_uint(request.sqrt_price_x96) if request.sqrt_price_x96 else None
            entry = registry.create_pool(token_a, token_b, request.fee, sqrt_price)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return PoolResponse(**entry.controller.to_dict())

    @app.get("/pools/{pool_id}", response_model=PoolResponse, tags=["Pools"])
    def get_pool(pool_id: str):
        """Get pool engine state."""
        return PoolResponse(**get_entry(pool_id).controller.to_dict())

    @app.get("/pools/{pool_id}/status", response_model=StatusResponse, tags=["Pools"])
    def get_status(pool_id: str):
        """Get coordinator status."""
        return StatusResponse(**get_entry(pool_id).coordinator.status())

    # ========================================================================
    # Accumulator
    # ========================================================================

    @app.post("/pools/{pool_id}/deposit", response_model=DepositResponse, tags=["Deposit"])
    def deposit(pool_id: str, request: DepositRequest):
        """
        Append a note commitment backed by tokens.

        **amount** of **token** is pulled from **depositor** into the pool
        vault before the commitment is inserted.
        """
        coordinator = get_entry(pool_id).coordinator
        try:
            amount = parse_uint(request.amount)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid input: {e}")
        receipt = coordinator.deposit(
            parse_field(request.commitment),
            depositor=parse_field(request.depositor),
            token=parse_field(request.token),
            amount=amount,
        )
        return DepositResponse(**receipt.to_dict())

    @app.post("/pools/{pool_id}/roots", status_code=202, tags=["Roots"])
    def publish_root(pool_id: str, request: PublishRootRequest):
        """Accept a root signed by the root publisher."""
        coordinator = get_entry(pool_id).coordinator
        try:
            signature = hex_to_bytes(request.signature)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid signature encoding: {e}")
        root = parse_field(request.root)
        coordinator.publish_root(root, signature)
        return {"root": str(root), "accepted": True}

    @app.get("/pools/{pool_id}/tree/root", response_model=RootResponse, tags=["Tree"])
    def get_root(pool_id: str):
        coordinator = get_entry(pool_id).coordinator
        return RootResponse(root=str(coordinator.current_root), next_leaf_index=coordinator.next_leaf_index)

    @app.get("/pools/{pool_id}/tree/path/{leaf_index}", response_model=PathResponse, tags=["Tree"])
    def get_path(pool_id: str, leaf_index: int):
        """Inclusion path for a leaf, bottom-up."""
        coordinator = get_entry(pool_id).coordinator
        siblings, path_bits, root = coordinator.get_path(leaf_index)
        return PathResponse(
            leaf_index=leaf_index,
            leaf=str(coordinator.tree.leaf(leaf_index)),
            siblings=[str(s) for s in siblings],
            path_bits=path_bits,
            root=str(root),
        )

    @app.get("/pools/{pool_id}/nullifiers/{nullifier_hash}", response_model=NullifierResponse, tags=["Tree"])
    def get_nullifier(pool_id: str, nullifier_hash: str):
        coordinator = get_entry(pool_id).coordinator
        try:
            value = parse_field(nullifier_hash)
        except (ValueError, ArithmeticOverflowError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid nullifier hash: {e}")
        return NullifierResponse(nullifier_hash=str(value), spent=coordinator.is_spent(value))

    # ========================================================================
    # Shielded operations
    # ========================================================================

    @app.post("/pools/{pool_id}/withdraw", response_model=OperationResponse, tags=["Shielded"])
    def withdraw(pool_id: str, request: ProofRequest):
        """Spend a note and pay its amount to the recipient."""
        coordinator = get_entry(pool_id).coordinator
        inputs = [parse_field(v) for v in request.public_inputs]
        return _operation_response(coordinator.withdraw(request.proof, inputs))

    @app.post("/pools/{pool_id}/swap", response_model=OperationResponse, tags=["Shielded"])
    def swap(pool_id: str, request: SwapRequest):
        """Spend a note into an exact-input swap."""
        coordinator = get_entry(pool_id).coordinator
        inputs = [parse_field(v) for v in request.public_inputs]
        try:
            limit = parse_uint(request.sqrt_price_limit_x96) if request.sqrt_price_limit_x96 else None
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid price limit: {e}")
        return _operation_response(coordinator.swap(request.proof, inputs, limit))

    @app.post("/pools/{pool_id}/mint", response_model=OperationResponse, tags=["Shielded"])
    def mint(pool_id: str, request: PositionRequest):
        """Spend two notes into a position note."""
        coordinator = get_entry(pool_id).coordinator
        inputs = [parse_field(v) for v in request.public_inputs]
        try:
            liquidity = parse_uint(request.liquidity)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid liquidity: {e}")
        return _operation_response(coordinator.mint(request.proof, inputs, liquidity))

    @app.post("/pools/{pool_id}/burn", response_model=OperationResponse, tags=["Shielded"])
    def burn(pool_id: str, request: PositionRequest):
        """Spend a position note; its principal becomes new notes."""
        coordinator = get_entry(pool_id).coordinator
        inputs = [parse_field(v) for v in request.public_inputs]
        try:
            liquidity = parse_uint(request.liquidity)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid liquidity: {e}")
        return _operation_response(coordinator.burn(request.proof, inputs, liquidity))

    @app.get("/", tags=["System"])
    async def root():
        """API documentation root."""
        return {
            "name": "Zylith REST API",
            "version": __version__,
            "timestamp": datetime.now().isoformat(),
            "endpoints": {
                "health": "/health",
                "pools": "GET|POST /pools",
                "pool": "GET /pools/{pool_id}",
                "status": "GET /pools/{pool_id}/status",
                "deposit": "POST /pools/{pool_id}/deposit",
                "roots": "POST /pools/{pool_id}/roots",
                "withdraw": "POST /pools/{pool_id}/withdraw",
                "swap": "POST /pools/{pool_id}/swap",
                "mint": "POST /pools/{pool_id}/mint",
                "burn": "POST /pools/{pool_id}/burn",
                "tree_root": "GET /pools/{pool_id}/tree/root",
                "tree_path": "GET /pools/{pool_id}/tree/path/{leaf_index}",
                "nullifier": "GET /pools/{pool_id}/nullifiers/{nullifier_hash}",
            },
        }

    return app


def build_default_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the service from settings: Groth16 keys from ``verification_key_dir``
    and persistence in ``database_url``.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    keys = load_verification_keys(settings.verification_key_dir) if settings.verification_key_dir else {}
    if not keys:
        logger.warning("No verification keys configured; every proof will be rejected")
    registry = PoolRegistry(Groth16Verifier(keys), settings=settings)
    return create_app(registry, db=get_db_manager(settings.database_url))


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(build_default_app(settings), host=settings.api_host, port=settings.api_port)

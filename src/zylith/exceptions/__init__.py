"""Custom exceptions for the Zylith shielded pool."""


class ZylithError(Exception):
    """Base exception for all Zylith errors."""
    pass


# Proof Errors
class ProofError(ZylithError):
    """Base exception for proof-related errors."""
    pass


class InvalidProofError(ProofError):
    """Raised when the verification oracle rejects a proof."""
    pass


# Registry Errors
class RegistryError(ZylithError):
    """Base exception for nullifier and root registry errors."""
    pass


class UnknownRootError(RegistryError):
    """Raised when a proof references a root outside the root history."""
    pass


class NullifierAlreadySpentError(RegistryError):
    """Raised when a nullifier hash has already been recorded as spent."""
    pass


class CoordinatorPausedError(RegistryError):
    """Raised when a mutating call reaches a paused coordinator."""
    pass


# Merkle Tree Errors
class MerkleTreeError(ZylithError):
    """Base exception for Merkle accumulator errors."""
    pass


class TreeFullError(MerkleTreeError):
    """Raised when the accumulator has no free leaf slots."""
    pass


class InvalidLeafError(MerkleTreeError):
    """Raised when a leaf is not a valid non-zero field element."""
    pass


class InvalidLeafIndexError(MerkleTreeError):
    """Raised when leaf index is invalid."""
    pass


# Pool Errors
class PoolError(ZylithError):
    """Base exception for concentrated-liquidity pool errors."""
    pass


class InvalidTickRangeError(PoolError):
    """Raised when a tick or tick range is out of bounds or misordered."""
    pass


class ZeroAmountError(PoolError):
    """Raised when an amount that must be positive is zero."""
    pass


class ZeroLiquidityError(PoolError):
    """Raised when a liquidity delta or position liquidity is zero."""
    pass


class SwapLoopLimitExceededError(PoolError):
    """Raised when a swap needs more steps than the iteration ceiling allows."""
    pass


class PoolNotInitializedError(PoolError):
    """Raised when a pool is used before its price is set."""
    pass


class PoolAlreadyInitializedError(PoolError):
    """Raised when a pool is initialized or created twice."""
    pass


class InvalidPriceLimitError(PoolError):
    """Raised when a swap price limit is on the wrong side of the price."""
    pass


class SlippageExceededError(PoolError):
    """Raised when a swap returns less than the requested minimum."""
    pass


class InvalidTokenPairError(PoolError):
    """Raised when tokens are equal, misordered or foreign to the pool."""
    pass


class ExactOutputNotSupportedError(PoolError):
    """Raised for exact-output swaps, which the engine does not implement."""
    pass


class InsufficientLiquidityError(PoolError):
    """Raised when burning more liquidity than a position holds."""
    pass


# Arithmetic Errors
class ArithmeticOverflowError(ZylithError):
    """Raised when a value does not fit its target width or field."""
    pass


# Authorization Errors
class UnauthorizedError(ZylithError):
    """Raised when a caller lacks the rights for an administrative action."""
    pass


# Token Errors
class TokenError(ZylithError):
    """Base exception for token transfer errors."""
    pass


class InsufficientBalanceError(TokenError):
    """Raised when an account cannot cover a transfer."""
    pass


class InsufficientAllowanceError(TokenError):
    """Raised when a spender is not approved for a transfer amount."""
    pass


# Storage Errors
class StorageError(ZylithError):
    """Base exception for storage errors."""
    pass


class DatabaseError(StorageError):
    """Raised when database operation fails."""
    pass


# Configuration Errors
class ConfigurationError(ZylithError):
    """Raised when settings or verification keys are invalid."""
    pass

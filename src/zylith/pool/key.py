"""Pool identity: (token0, token1, fee) in canonical token order."""

from typing import NamedTuple

from zylith.clmm.constants import FEE_TIERS
from zylith.exceptions import ArithmeticOverflowError, InvalidTokenPairError
from zylith.utils.encoding import ensure_felt252
from zylith.utils.hash import sha256


class PoolKey(NamedTuple):
    token0: int
    token1: int
    fee: int

    @classmethod
    def canonical(cls, token_a: int, token_b: int, fee: int) -> "PoolKey":
        """
        Order a token pair (lower identifier first).

        Raises:
            InvalidTokenPairError: If the tokens are equal
            ValueError: If the fee tier is unsupported
        """
        ensure_felt252(token_a, "token_a")
        ensure_felt252(token_b, "token_b")
        if token_a == token_b:
            raise InvalidTokenPairError("Pool tokens must differ")
        if fee not in FEE_TIERS:
            raise ValueError(f"Unsupported fee tier {fee}; expected one of {sorted(FEE_TIERS)}")
        token0, token1 = sorted((token_a, token_b))
        return cls(token0, token1, fee)

    @classmethod
    def from_id(cls, pool_id: str) -> "PoolKey":
        """Parse ``<token0 hex>-<token1 hex>-<fee>``."""
        try:
            token0, token1, fee = pool_id.split("-")
            key = cls.canonical(int(token0, 16), int(token1, 16), int(fee))
        except (ValueError, ArithmeticOverflowError, InvalidTokenPairError) as e:
            raise ValueError(f"Malformed pool id {pool_id!r}: {e}") from e
        if key.pool_id != pool_id.lower():
            raise ValueError(f"Pool id {pool_id!r} is not in canonical form")
        return key

    @property
    def tick_spacing(self) -> int:
        return FEE_TIERS[self.fee]

    @property
    def pool_id(self) -> str:
        return f"{self.token0:x}-{self.token1:x}-{self.fee}"

    @property
    def vault_address(self) -> int:
        """Account holding this pool's tokens (248-bit, inside felt252)."""
        return int.from_bytes(sha256(f"zylith.vault:{self.pool_id}")[:31], "big")

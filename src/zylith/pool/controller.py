"""Pool controller: the only writer of a pool's engine state.

Two entry paths share one engine and one lock:

* the public path moves real tokens between traders and the pool vault;
* the shielded path is driven by the proof coordinator and moves no tokens,
  except at the edges (deposits into and withdrawals out of the vault).

Every mutating call runs under the pool's lock on a snapshot that is
restored if the call fails, so a call either commits fully or not at all.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple

from zylith.clmm.constants import UINT128_MAX
from zylith.clmm.pool import Pool, SwapResult
from zylith.exceptions import (
    InsufficientBalanceError,
    InvalidTokenPairError,
    SlippageExceededError,
    UnauthorizedError,
    ZeroAmountError,
)
from zylith.pool.key import PoolKey
from zylith.pool.token import Token, can_pull

logger = logging.getLogger(__name__)

# Position owner under which all shielded liquidity is aggregated per range
SHIELDED_OWNER = "shielded"


class PoolController:
    """
    Serialized access to one pool's engine and token balances.

    Args:
        pool: Engine instance
        token0: Token handle for ``pool.token0``
        token1: Token handle for ``pool.token1``
        admin: Identifier allowed to collect protocol fees

    Raises:
        InvalidTokenPairError: If the token handles do not match the pool
    """

    def __init__(self, pool: Pool, token0: Token, token1: Token, admin: int = 0):
        if token0.address != pool.token0 or token1.address != pool.token1:
            raise InvalidTokenPairError("Token handles do not match the pool's tokens")
        self.pool = pool
        self.key = PoolKey(pool.token0, pool.token1, pool.fee)
        self.tokens: Dict[int, Token] = {token0.address: token0, token1.address: token1}
        self.vault = self.key.vault_address
        self.admin = admin
        self.lock = threading.RLock()

    @property
    def pool_id(self) -> str:
        return self.key.pool_id

    def token(self, address: int) -> Token:
        """
        Token handle for one of the pool's tokens.

        Raises:
            InvalidTokenPairError: If ``address`` is not one of them
        """
        token = self.tokens.get(address)
        if token is None:
            raise InvalidTokenPairError(f"Token {address:#x} is not traded by pool {self.pool_id}")
        return token

    @contextmanager
    def atomic(self) -> Iterator[Pool]:
        """Hold the lock and roll the engine back if the block raises."""
        with self.lock:
            snapshot = self.pool.snapshot()
            try:
                yield self.pool
            except Exception:
                self.pool.restore(snapshot)
                raise

    def _pull(self, owner: int, amount0: int, amount1: int) -> None:
        token0, token1 = self.tokens[self.key.token0], self.tokens[self.key.token1]
        can_pull(token0, owner, self.vault, amount0)
        can_pull(token1, owner, self.vault, amount1)
        if amount0 > 0:
            token0.transfer_from(self.vault, owner, self.vault, amount0)
        if amount1 > 0:
            token1.transfer_from(self.vault, owner, self.vault, amount1)

    def _pay(self, recipient: int, amount0: int, amount1: int) -> None:
        token0, token1 = self.tokens[self.key.token0], self.tokens[self.key.token1]
        for token, amount in ((token0, amount0), (token1, amount1)):
            if token.balance_of(self.vault) < amount:
                raise InsufficientBalanceError(
                    f"Vault of {self.pool_id} holds less than {amount} of {token.address:#x}"
                )
        if amount0 > 0:
            token0.transfer(self.vault, recipient, amount0)
        if amount1 > 0:
            token1.transfer(self.vault, recipient, amount1)

    # ------------------------------------------------------------------
    # Public path
    # ------------------------------------------------------------------

    def initialize(self, sqrt_price_x96: int) -> int:
        with self.lock:
            tick = self.pool.initialize(sqrt_price_x96)
        logger.info(f"Pool {self.pool_id} initialized at tick {tick}")
        return tick

    def mint(self, owner: int, tick_lower: int, tick_upper: int, liquidity: int) -> Tuple[int, int]:
        """
        Add liquidity and pull the required amounts from ``owner``.

        ``owner`` must have approved the pool vault for both amounts.

        Returns:
            (amount0, amount1) paid in
        """
        with self.atomic() as pool:
            amount0, amount1 = pool.mint(owner, tick_lower, tick_upper, liquidity)
            self._pull(owner, amount0, amount1)
        return amount0, amount1

    def burn(self, owner: int, tick_lower: int, tick_upper: int) -> Tuple[int, int]:
        """
        Remove a position in full; the principal becomes collectable.

        Returns:
            (amount0, amount1) credited to the position's owed balance
        """
        with self.atomic() as pool:
            return pool.burn(owner, tick_lower, tick_upper)

    def collect(
        self,
        owner: int,
        tick_lower: int,
        tick_upper: int,
        amount0_requested: int = UINT128_MAX,
        amount1_requested: int = UINT128_MAX,
    ) -> Tuple[int, int]:
        """Pay out owed fees and burned principal to ``owner``."""
        with self.atomic() as pool:
            amount0, amount1 = pool.collect(
                owner, tick_lower, tick_upper, amount0_requested, amount1_requested
            )
            self._pay(owner, amount0, amount1)
        return amount0, amount1

    def swap(
        self,
        sender: int,
        zero_for_one: bool,
        amount_in: int,
        amount_out_min: int = 0,
        sqrt_price_limit_x96: Optional[int] = None,
        recipient: Optional[int] = None,
    ) -> SwapResult:
        """
        Exact-input swap settled in tokens.

        Raises:
            SlippageExceededError: If the output is below ``amount_out_min``
        """
        recipient = sender if recipient is None else recipient
        with self.atomic() as pool:
            result = pool.swap(zero_for_one, amount_in, sqrt_price_limit_x96)
            if result.amount_out < amount_out_min:
                raise SlippageExceededError(
                    f"Swap output {result.amount_out} is below minimum {amount_out_min}"
                )
            token_in = self.key.token0 if zero_for_one else self.key.token1
            token_out = self.key.token1 if zero_for_one else self.key.token0
            if self.tokens[token_out].balance_of(self.vault) < result.amount_out:
                raise InsufficientBalanceError(f"Vault of {self.pool_id} cannot cover swap output")
            can_pull(self.tokens[token_in], sender, self.vault, result.amount_in)
            if result.amount_in > 0:
                self.tokens[token_in].transfer_from(self.vault, sender, self.vault, result.amount_in)
            if result.amount_out > 0:
                self.tokens[token_out].transfer(self.vault, recipient, result.amount_out)
        return result

    def collect_protocol(
        self,
        caller: int,
        recipient: int,
        amount0_requested: int = UINT128_MAX,
        amount1_requested: int = UINT128_MAX,
    ) -> Tuple[int, int]:
        """
        Pay accrued protocol fees to ``recipient``.

        Raises:
            UnauthorizedError: If ``caller`` is not the admin
        """
        if caller != self.admin:
            raise UnauthorizedError("Only the admin may collect protocol fees")
        with self.atomic() as pool:
            amount0, amount1 = pool.collect_protocol(amount0_requested, amount1_requested)
            self._pay(recipient, amount0, amount1)
        return amount0, amount1

    # ------------------------------------------------------------------
    # Shielded path
    # ------------------------------------------------------------------

    def shielded_deposit(self, depositor: int, token: int, amount: int) -> None:
        """Pull ``amount`` of ``token`` from ``depositor`` into the vault."""
        if amount <= 0:
            raise ZeroAmountError("Deposit amount must be positive")
        handle = self.token(token)
        with self.lock:
            can_pull(handle, depositor, self.vault, amount)
            handle.transfer_from(self.vault, depositor, self.vault, amount)

    def shielded_withdraw(self, recipient: int, token: int, amount: int) -> None:
        """Pay ``amount`` of ``token`` out of the vault."""
        handle = self.token(token)
        with self.lock:
            handle.transfer(self.vault, recipient, amount)

    def shielded_swap(
        self,
        token_in: int,
        token_out: int,
        amount_in: int,
        amount_out_min: int,
        sqrt_price_limit_x96: Optional[int] = None,
    ) -> SwapResult:
        """
        Swap on behalf of a spent note; no tokens move.

        The input is fixed by the proof, so the swap must consume all of it.

        Raises:
            InvalidTokenPairError: If the tokens are not this pool's pair
            SlippageExceededError: On a partial fill or an output below minimum
        """
        if {token_in, token_out} != {self.key.token0, self.key.token1}:
            raise InvalidTokenPairError(
                f"Swap tokens {token_in:#x}/{token_out:#x} are not pool {self.pool_id}'s pair"
            )
        zero_for_one = token_in == self.key.token0
        with self.atomic() as pool:
            result = pool.swap(zero_for_one, amount_in, sqrt_price_limit_x96)
            if result.amount_in != amount_in:
                raise SlippageExceededError(
                    f"Price limit reached after {result.amount_in} of {amount_in} input"
                )
            if result.amount_out < amount_out_min:
                raise SlippageExceededError(
                    f"Swap output {result.amount_out} is below minimum {amount_out_min}"
                )
        return result

    def shielded_mint(self, tick_lower: int, tick_upper: int, liquidity: int) -> Tuple[int, int]:
        """Add note-backed liquidity to the shielded aggregate for the range."""
        with self.atomic() as pool:
            return pool.mint(SHIELDED_OWNER, tick_lower, tick_upper, liquidity)

    def shielded_burn(self, tick_lower: int, tick_upper: int, liquidity: int) -> Tuple[int, int]:
        """
        Remove a position note's liquidity and release its principal.

        Returns:
            (amount0, amount1) owed to the note holder as new notes
        """
        with self.atomic() as pool:
            amount0, amount1 = pool.burn(SHIELDED_OWNER, tick_lower, tick_upper, liquidity)
            pool.collect(SHIELDED_OWNER, tick_lower, tick_upper, amount0, amount1)
        return amount0, amount1

    def shielded_liquidity(self, tick_lower: int, tick_upper: int) -> int:
        return self.pool.positions.peek(SHIELDED_OWNER, tick_lower, tick_upper).liquidity

    def vault_balances(self) -> Dict[str, int]:
        return {hex(address): token.balance_of(self.vault) for address, token in self.tokens.items()}

    def to_dict(self) -> dict:
        with self.lock:
            data = self.pool.to_dict()
            data["pool_id"] = self.pool_id
            data["vault"] = hex(self.vault)
            data["vault_balances"] = {k: str(v) for k, v in self.vault_balances().items()}
        return data

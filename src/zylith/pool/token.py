"""Fungible token interface used by the public trading path and the vault."""

import threading
from typing import Dict, Protocol, Tuple

from zylith.exceptions import InsufficientAllowanceError, InsufficientBalanceError, ZeroAmountError
from zylith.utils.encoding import ensure_felt252, ensure_uint


class Token(Protocol):
    """Standard transfer / transfer-from token."""

    address: int

    def balance_of(self, account: int) -> int:
        ...

    def allowance(self, owner: int, spender: int) -> int:
        ...

    def approve(self, owner: int, spender: int, amount: int) -> None:
        ...

    def transfer(self, sender: int, recipient: int, amount: int) -> None:
        ...

    def transfer_from(self, spender: int, owner: int, recipient: int, amount: int) -> None:
        ...


class InMemoryToken:
    """
    Ledger-backed token kept in process memory.

    Args:
        address: Token identifier (felt252)
        symbol: Display symbol
    """

    def __init__(self, address: int, symbol: str = ""):
        self.address = ensure_felt252(address, "token address")
        self.symbol = symbol
        self.total_supply = 0
        self._balances: Dict[int, int] = {}
        self._allowances: Dict[Tuple[int, int], int] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"InMemoryToken({self.address:#x}, {self.symbol!r})"

    def balance_of(self, account: int) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: int, spender: int) -> int:
        return self._allowances.get((owner, spender), 0)

    def mint(self, account: int, amount: int) -> None:
        """Credit new supply to ``account``."""
        ensure_uint(amount, 256, "amount")
        with self._lock:
            self._balances[account] = self.balance_of(account) + amount
            self.total_supply += amount

    def approve(self, owner: int, spender: int, amount: int) -> None:
        ensure_uint(amount, 256, "amount")
        with self._lock:
            self._allowances[(owner, spender)] = amount

    def _move(self, sender: int, recipient: int, amount: int) -> None:
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalanceError(
                f"{self.symbol or hex(self.address)}: balance {balance} of {sender:#x} "
                f"is below {amount}"
            )
        self._balances[sender] = balance - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

    def transfer(self, sender: int, recipient: int, amount: int) -> None:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Raises:
            ZeroAmountError: If amount is not positive
            InsufficientBalanceError: If ``sender`` cannot cover it
        """
        if amount <= 0:
            raise ZeroAmountError("Transfer amount must be positive")
        with self._lock:
            self._move(sender, recipient, amount)

    def transfer_from(self, spender: int, owner: int, recipient: int, amount: int) -> None:
        """
        Move ``amount`` from ``owner`` using ``spender``'s allowance.

        Raises:
            InsufficientAllowanceError: If the allowance is too small
            InsufficientBalanceError: If ``owner`` cannot cover it
        """
        if amount <= 0:
            raise ZeroAmountError("Transfer amount must be positive")
        with self._lock:
            allowed = self.allowance(owner, spender)
            if allowed < amount:
                raise InsufficientAllowanceError(
                    f"Allowance {allowed} of {spender:#x} over {owner:#x} is below {amount}"
                )
            self._move(owner, recipient, amount)
            self._allowances[(owner, spender)] = allowed - amount


def can_pull(token: Token, owner: int, spender: int, amount: int) -> None:
    """
    Check a later ``transfer_from`` of ``amount`` would succeed.

    Raises:
        InsufficientAllowanceError
        InsufficientBalanceError
    """
    if amount <= 0:
        return
    if token.allowance(owner, spender) < amount:
        raise InsufficientAllowanceError(
            f"Allowance over {owner:#x} for token {token.address:#x} is below {amount}"
        )
    if token.balance_of(owner) < amount:
        raise InsufficientBalanceError(
            f"Balance of {owner:#x} in token {token.address:#x} is below {amount}"
        )

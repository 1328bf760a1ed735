"""
In-memory reference ledger.

Stands in for the custody layer (chain program, bank account, token
contract) so the pool can be exercised end to end. Accounts are opaque
32-byte addresses.
"""

from __future__ import annotations

import threading
from typing import Any, Dict

from .config import ADDRESS_BYTES
from .exceptions import InsufficientFunds, LedgerError, SerializationError
from .interfaces import PoolLedger


def _require_account(account: bytes) -> bytes:
    if not isinstance(account, (bytes, bytearray)) or len(account) != ADDRESS_BYTES:
        raise LedgerError(f"account must be {ADDRESS_BYTES} bytes")
    return bytes(account)


def _require_amount(amount: int) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise LedgerError("amount must be a positive int")
    return amount


class InMemoryLedger(PoolLedger):
    """
    Account balances plus the pool's custody balance.

    Example:
        >>> ledger = InMemoryLedger()
        >>> ledger.fund(alice, 10)
        >>> ledger.transfer_in(alice, 10)
        >>> ledger.pool_balance()
        10
    """

    def __init__(self) -> None:
        self._balances: Dict[bytes, int] = {}
        self._pool = 0
        self._lock = threading.Lock()

    def fund(self, account: bytes, amount: int) -> None:
        """Credit an account from outside the pool."""
        account = _require_account(account)
        amount = _require_amount(amount)
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + amount

    def balance_of(self, account: bytes) -> int:
        account = _require_account(account)
        with self._lock:
            return self._balances.get(account, 0)

    def transfer_in(self, depositor: bytes, amount: int) -> None:
        depositor = _require_account(depositor)
        amount = _require_amount(amount)
        with self._lock:
            balance = self._balances.get(depositor, 0)
            if balance < amount:
                raise InsufficientFunds(
                    f"depositor balance {balance} below deposit amount {amount}"
                )
            self._balances[depositor] = balance - amount
            self._pool += amount

    def transfer_out(self, recipient: bytes, amount: int) -> None:
        recipient = _require_account(recipient)
        amount = _require_amount(amount)
        with self._lock:
            if self._pool < amount:
                raise InsufficientFunds(f"pool balance {self._pool} below {amount}")
            self._pool -= amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount

    def pool_balance(self) -> int:
        with self._lock:
            return self._pool

    def to_state(self) -> Dict[str, Any]:
        with self._lock:
            return {"pool": self._pool, "balances": dict(self._balances)}

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "InMemoryLedger":
        ledger = cls()
        try:
            pool = int(state["pool"])
            balances = {
                _require_account(bytes(account)): int(amount)
                for account, amount in state["balances"].items()
            }
        except (KeyError, TypeError, ValueError, AttributeError, LedgerError) as exc:
            raise SerializationError(f"invalid ledger state: {exc}") from exc
        if pool < 0 or any(amount < 0 for amount in balances.values()):
            raise SerializationError("ledger balances must be non-negative")
        ledger._pool = pool
        ledger._balances = balances
        return ledger

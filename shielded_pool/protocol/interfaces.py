"""
Abstract interfaces for the pluggable parts of a shielded pool.

The pool depends only on these seams: the commitment accumulator (local
incremental tree or a remote tree service), the nullifier store, and the
ledger that actually moves value.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List


class CommitmentAccumulator(ABC):
    """Append-only commitment set with a bounded window of valid roots."""

    @property
    @abstractmethod
    def depth(self) -> int:
        """Tree depth; capacity is 2**depth leaves."""

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    @property
    @abstractmethod
    def next_index(self) -> int:
        """Index the next inserted leaf will receive."""

    @property
    @abstractmethod
    def root(self) -> bytes:
        """Current root."""

    @property
    def is_full(self) -> bool:
        return self.next_index >= self.capacity

    @abstractmethod
    def insert(self, commitment: bytes) -> int:
        """
        Append a leaf and return its index.

        Raises:
            TreeFull: If next_index == 2**depth
            HashingError: On internal hashing failure
        """

    @abstractmethod
    def is_valid_root(self, root: bytes) -> bool:
        """True iff root is current or still in the historical window."""

    @abstractmethod
    def known_roots(self) -> List[bytes]:
        """Current root followed by live historical roots, newest first."""


class NullifierStore(ABC):
    """Exactly-once spend tracker keyed by nullifier hash."""

    @property
    @abstractmethod
    def capacity(self) -> int:
        """Maximum number of nullifiers the store accepts."""

    @abstractmethod
    def check_and_mark(self, nullifier_hash: bytes) -> None:
        """
        Atomically test and insert a nullifier hash.

        Raises:
            NullifierAlreadyUsed: If already marked
            NullifierCapacityExceeded: If the store is full
        """

    @abstractmethod
    def is_spent(self, nullifier_hash: bytes) -> bool:
        """Read-only membership query."""

    @abstractmethod
    def __len__(self) -> int:
        ...


class TreeStorageService(ABC):
    """External tree/compression service that stores leaves on our behalf."""

    @abstractmethod
    def insert(self, leaf: bytes) -> int:
        """Append a leaf and return the index assigned by the service."""

    @abstractmethod
    def current_root(self) -> bytes:
        """Root after the most recent insertion."""


class PoolLedger(ABC):
    """
    Custody and value transfer collaborator.

    Every call is all-or-nothing: it either moves the full amount or raises
    LedgerError without side effects.
    """

    @abstractmethod
    def transfer_in(self, depositor: bytes, amount: int) -> None:
        """Move amount from depositor into pool custody."""

    @abstractmethod
    def transfer_out(self, recipient: bytes, amount: int) -> None:
        """Move amount from pool custody to recipient."""

    @abstractmethod
    def pool_balance(self) -> int:
        """Value currently held by the pool."""

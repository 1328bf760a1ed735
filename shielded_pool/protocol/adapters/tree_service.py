"""
Commitment accumulator backed by an external tree storage service.

The service stores leaves and computes roots; this adapter keeps the pool's
own view of capacity and of the valid-root window.

Failure handling:
- Service errors on insert surface as HashingError and nothing is recorded.
- An index other than the expected one leaves the adapter out of sync; every
  later insert is refused.
- If the service accepts a leaf but its root cannot be read, the leaf counts
  (next_index advances) and the root is marked stale. The last known root
  stays current until refresh() or the next insert reads the service root;
  an insert never proceeds on top of a stale root.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from ..config import DEFAULT_TREE_DEPTH, FIELD_ELEMENT_BYTES, ROOT_HISTORY_SIZE, ZERO_VALUE
from ..exceptions import HashingError, InvalidCommitment, TreeFull
from ..interfaces import CommitmentAccumulator, TreeStorageService
from ..merkle import IncrementalMerkleTree, NodeHasher, hash_node, validate_depth
from ..security import constant_time_compare, is_field_element

logger = logging.getLogger(__name__)


class RemoteTreeAccumulator(CommitmentAccumulator):
    """
    CommitmentAccumulator over a TreeStorageService.

    Example:
        >>> service = InMemoryTreeService(depth=20)
        >>> accumulator = RemoteTreeAccumulator(service, depth=20)
        >>> accumulator.insert(commitment)
        0
    """

    def __init__(
        self,
        service: TreeStorageService,
        depth: int = DEFAULT_TREE_DEPTH,
        root_history_size: int = ROOT_HISTORY_SIZE,
        next_index: int = 0,
    ) -> None:
        if not isinstance(service, TreeStorageService):
            raise TypeError("service must implement TreeStorageService")
        validate_depth(depth)
        if not isinstance(root_history_size, int) or root_history_size < 1:
            raise ValueError("root_history_size must be a positive int")
        if (
            not isinstance(next_index, int)
            or isinstance(next_index, bool)
            or not 0 <= next_index <= (1 << depth)
        ):
            raise ValueError(f"next_index must be in [0, {1 << depth}]")

        self._service = service
        self._depth = depth
        self._next_index = next_index
        self._root = self._read_root()
        self._root_history: List[Optional[bytes]] = [None] * root_history_size
        self._root_history_cursor = 0
        self._root_stale = False
        self._desynced = False
        self._lock = threading.Lock()

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def next_index(self) -> int:
        return self._next_index

    @property
    def root(self) -> bytes:
        return self._root

    @property
    def root_is_stale(self) -> bool:
        """True when the service holds a leaf whose root has not been read yet."""
        return self._root_stale

    def refresh(self) -> bytes:
        """Re-read a stale root from the service and return the current root."""
        with self._lock:
            if self._root_stale:
                self._sync_root()
            return self._root

    def insert(self, commitment: bytes) -> int:
        if not is_field_element(commitment):
            raise InvalidCommitment("commitment must be a 32-byte field element")
        with self._lock:
            if self._desynced:
                raise HashingError("accumulator is out of sync with the tree service")
            if self._next_index >= self.capacity:
                raise TreeFull(f"tree of depth {self._depth} is full")
            if self._root_stale:
                self._sync_root()

            expected = self._next_index
            try:
                index = self._service.insert(bytes(commitment))
            except Exception as exc:
                raise HashingError(f"tree service insert failed: {exc}") from exc
            if index != expected:
                self._desynced = True
                logger.error(
                    "tree service assigned index %r, expected %d; refusing further inserts",
                    index,
                    expected,
                )
                raise HashingError(
                    f"tree service assigned index {index}, expected {expected}"
                )

            # The service holds the leaf from here on
            self._next_index = expected + 1
            self._root_stale = True
            try:
                self._sync_root()
            except HashingError:
                logger.warning(
                    "tree service accepted leaf %d but its root could not be read", index
                )
            logger.debug("remote tree accepted leaf %d", index)
            return index

    def is_valid_root(self, root: bytes) -> bool:
        if not isinstance(root, (bytes, bytearray)) or len(root) != FIELD_ELEMENT_BYTES:
            return False
        root = bytes(root)
        if root == ZERO_VALUE:
            return False
        with self._lock:
            candidates = [self._root] + [r for r in self._root_history if r is not None]
        return any(constant_time_compare(root, candidate) for candidate in candidates)

    def known_roots(self) -> List[bytes]:
        with self._lock:
            roots = [self._root]
            size = len(self._root_history)
            for offset in range(1, size + 1):
                entry = self._root_history[(self._root_history_cursor - offset) % size]
                if entry is None:
                    break
                roots.append(entry)
            return roots

    def _sync_root(self) -> None:
        new_root = self._read_root()
        self._root_history[self._root_history_cursor] = self._root
        self._root_history_cursor = (self._root_history_cursor + 1) % len(
            self._root_history
        )
        self._root = new_root
        self._root_stale = False

    def _read_root(self) -> bytes:
        try:
            root = self._service.current_root()
        except Exception as exc:
            raise HashingError(f"tree service root read failed: {exc}") from exc
        if not is_field_element(root):
            raise HashingError("tree service returned a non-canonical root")
        return bytes(root)


class InMemoryTreeService(TreeStorageService):
    """Reference tree service holding leaves in a local IncrementalMerkleTree."""

    def __init__(self, depth: int = DEFAULT_TREE_DEPTH, hasher: NodeHasher = hash_node) -> None:
        # History lives in the accumulator, the service only needs the latest root
        self._tree = IncrementalMerkleTree(depth=depth, root_history_size=1, hasher=hasher)
        self._leaves: List[bytes] = []

    @property
    def leaves(self) -> List[bytes]:
        return list(self._leaves)

    def insert(self, leaf: bytes) -> int:
        index = self._tree.insert(leaf)
        self._leaves.append(bytes(leaf))
        return index

    def current_root(self) -> bytes:
        return self._tree.root

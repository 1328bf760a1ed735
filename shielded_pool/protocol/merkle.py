"""
Merkle accumulator for pool commitments.

Node hashing is SHA-256 with domain separation, reduced into the BN254
scalar field so every node (and therefore every root) is a valid public
input. The tree has a fixed depth and is padded with zero hashes.

Two views of the same tree live here:
- build_tree / compute_path / verify_path: full recomputation from the leaf
  list, for clients building witnesses and for cross-checking.
- IncrementalMerkleTree: the on-pool accumulator, O(depth) per insert and
  O(depth + K) storage via the filled-subtree cache.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .config import (
    DEFAULT_TREE_DEPTH,
    DOMAIN_SEPARATORS,
    FIELD_ELEMENT_BYTES,
    MAX_TREE_DEPTH,
    ROOT_HISTORY_SIZE,
    ZERO_VALUE,
)
from .exceptions import HashingError, InvalidCommitment, SerializationError, TreeFull
from .interfaces import CommitmentAccumulator
from .security import constant_time_compare, hash_to_field, is_field_element

NodeHasher = Callable[[bytes, bytes], bytes]
MerklePath = List[Tuple[bytes, bool]]


def hash_node(left: bytes, right: bytes) -> bytes:
    """
    Hash two Merkle node hashes.

    Args:
        left: Left child (32-byte field element)
        right: Right child (32-byte field element)

    Returns:
        32-byte field element

    Note:
        Uses fixed left||right ordering (no sorting).
        Domain separation applied.
    """
    if len(left) != FIELD_ELEMENT_BYTES or len(right) != FIELD_ELEMENT_BYTES:
        raise ValueError("node hashes must be 32 bytes")
    return hash_to_field(left, right, domain_sep=DOMAIN_SEPARATORS["merkle_node"])


def zero_hashes(depth: int, hasher: NodeHasher = hash_node) -> List[bytes]:
    """
    Zero hash for every level, zeros[0] being the empty leaf.

    Returns depth + 1 entries; zeros[depth] is the root of an empty tree.
    """
    validate_depth(depth)
    zeros = [ZERO_VALUE]
    for _ in range(depth):
        zeros.append(hasher(zeros[-1], zeros[-1]))
    return zeros


def build_tree(
    leaves: Sequence[bytes],
    depth: int,
    hasher: NodeHasher = hash_node,
) -> Tuple[bytes, List[List[bytes]]]:
    """
    Build a zero-padded fixed-depth Merkle tree.

    Args:
        leaves: Leaf values in insertion order (at most 2**depth)
        depth: Tree depth

    Returns:
        (root, levels)
        - root: 32-byte root
        - levels: levels[0] are the leaves, levels[depth] == [root]; only the
          non-empty prefix of every level is materialised

    Example:
        root, levels = build_tree([c0, c1], depth=20)
    """
    validate_depth(depth)
    if len(leaves) > (1 << depth):
        raise ValueError("too many leaves for tree depth")

    zeros = zero_hashes(depth, hasher)
    levels: List[List[bytes]] = [list(leaves)]

    current = list(leaves)
    for level in range(depth):
        next_level: List[bytes] = []
        for i in range(0, len(current), 2):
            left = current[i]
            right = current[i + 1] if i + 1 < len(current) else zeros[level]
            next_level.append(hasher(left, right))
        levels.append(next_level)
        current = next_level

    root = current[0] if current else zeros[depth]
    return root, levels


def compute_path(
    leaves: Sequence[bytes],
    index: int,
    depth: int,
    hasher: NodeHasher = hash_node,
) -> MerklePath:
    """
    Authentication path for leaves[index].

    Returns:
        [(sibling, is_left), ...] from the leaf level up; is_left is True when
        the sibling sits on the left (the path node is a right child).
    """
    if index < 0 or index >= len(leaves):
        raise IndexError("leaf index out of range")

    zeros = zero_hashes(depth, hasher)
    _, levels = build_tree(leaves, depth, hasher)

    path: MerklePath = []
    position = index
    for level in range(depth):
        nodes = levels[level]
        if position % 2 == 1:
            path.append((nodes[position - 1], True))
        else:
            sibling_pos = position + 1
            sibling = nodes[sibling_pos] if sibling_pos < len(nodes) else zeros[level]
            path.append((sibling, False))
        position //= 2
    return path


def verify_path(
    leaf: bytes,
    path: MerklePath,
    root: bytes,
    hasher: NodeHasher = hash_node,
) -> bool:
    """
    Verify a Merkle authentication path.

    Args:
        leaf: Leaf value (32 bytes)
        path: Authentication path [(sibling, is_left), ...]
        root: Expected root (32 bytes)

    Returns:
        True if path is valid, False otherwise
    """
    current = leaf

    for sibling, is_left in path:
        if is_left:
            current = hasher(sibling, current)
        else:
            current = hasher(current, sibling)

    return constant_time_compare(current, root)


def path_indices(path: MerklePath) -> List[int]:
    """Circuit-style path bits: 1 where the path node is a right child."""
    return [1 if is_left else 0 for _, is_left in path]


# ============================================================================
# INCREMENTAL TREE
# ============================================================================


class IncrementalMerkleTree(CommitmentAccumulator):
    """
    Append-only Merkle tree storing one cached node per level.

    filled_subtrees[level] holds the most recent left child seen at that
    level. A new leaf walking up as a right child pairs with that cached
    node; walking up as a left child it pairs with the zero hash, since
    everything to its right is still empty.

    Superseded roots go into a ring buffer of root_history_size entries so
    that proofs built against a slightly older root stay acceptable.

    Example:
        >>> tree = IncrementalMerkleTree(depth=20)
        >>> index = tree.insert(commitment)
        >>> tree.is_valid_root(tree.root)
        True
    """

    def __init__(
        self,
        depth: int = DEFAULT_TREE_DEPTH,
        root_history_size: int = ROOT_HISTORY_SIZE,
        hasher: NodeHasher = hash_node,
    ) -> None:
        validate_depth(depth)
        if not isinstance(root_history_size, int) or root_history_size < 1:
            raise ValueError("root_history_size must be a positive int")

        self._depth = depth
        self._hasher = hasher
        self._zeros = zero_hashes(depth, hasher)
        self._filled_subtrees: List[bytes] = list(self._zeros[:depth])
        self._root = self._zeros[depth]
        self._next_index = 0
        self._root_history: List[Optional[bytes]] = [None] * root_history_size
        self._root_history_cursor = 0

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
    def root_history_size(self) -> int:
        return len(self._root_history)

    @property
    def filled_subtrees(self) -> List[bytes]:
        return list(self._filled_subtrees)

    def zero_hash(self, level: int) -> bytes:
        return self._zeros[level]

    def insert(self, commitment: bytes) -> int:
        if not is_field_element(commitment):
            raise InvalidCommitment("commitment must be a 32-byte field element")
        if self._next_index >= self.capacity:
            raise TreeFull(f"tree of depth {self._depth} is full")

        leaf_index = self._next_index
        filled = list(self._filled_subtrees)
        current = bytes(commitment)
        position = leaf_index

        for level in range(self._depth):
            if position % 2 == 0:
                filled[level] = current
                left, right = current, self._zeros[level]
            else:
                left, right = filled[level], current
            current = self._hash(left, right)
            position //= 2

        # Commit only after every level hashed successfully
        self._push_history(self._root)
        self._filled_subtrees = filled
        self._root = current
        self._next_index = leaf_index + 1
        return leaf_index

    def is_valid_root(self, root: bytes) -> bool:
        if not isinstance(root, (bytes, bytearray)) or len(root) != FIELD_ELEMENT_BYTES:
            return False
        root = bytes(root)
        if root == ZERO_VALUE:
            return False
        if constant_time_compare(root, self._root):
            return True
        for historical in self._root_history:
            if historical is not None and constant_time_compare(historical, root):
                return True
        return False

    def known_roots(self) -> List[bytes]:
        roots = [self._root]
        size = len(self._root_history)
        for offset in range(1, size + 1):
            entry = self._root_history[(self._root_history_cursor - offset) % size]
            if entry is None:
                break
            roots.append(entry)
        return roots

    def _push_history(self, root: bytes) -> None:
        self._root_history[self._root_history_cursor] = root
        self._root_history_cursor = (self._root_history_cursor + 1) % len(
            self._root_history
        )

    def _hash(self, left: bytes, right: bytes) -> bytes:
        try:
            out = self._hasher(left, right)
        except Exception as exc:
            raise HashingError(f"node hash failed: {exc}") from exc
        if not is_field_element(out):
            raise HashingError("node hash is not a canonical field element")
        return bytes(out)

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def to_state(self) -> Dict[str, Any]:
        """Persisted layout: depth, next_index, root, filled subtrees, ring."""
        return {
            "depth": self._depth,
            "next_index": self._next_index,
            "root": self._root,
            "filled_subtrees": list(self._filled_subtrees),
            "root_history": list(self._root_history),
            "root_history_cursor": self._root_history_cursor,
        }

    @classmethod
    def from_state(
        cls, state: Dict[str, Any], hasher: NodeHasher = hash_node
    ) -> "IncrementalMerkleTree":
        try:
            depth = int(state["depth"])
            history = list(state["root_history"])
            tree = cls(depth=depth, root_history_size=len(history), hasher=hasher)
            next_index = int(state["next_index"])
            filled = [bytes(node) for node in state["filled_subtrees"]]
            root = bytes(state["root"])
            cursor = int(state["root_history_cursor"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SerializationError(f"invalid tree state: {exc}") from exc

        if not 0 <= next_index <= tree.capacity:
            raise SerializationError("next_index out of range")
        if len(filled) != depth:
            raise SerializationError("filled_subtrees length must equal depth")
        if not 0 <= cursor < len(history):
            raise SerializationError("root_history_cursor out of range")
        for node in filled + [root]:
            if not is_field_element(node):
                raise SerializationError("tree node is not a field element")

        tree._next_index = next_index
        tree._filled_subtrees = filled
        tree._root = root
        tree._root_history = [bytes(r) if r is not None else None for r in history]
        tree._root_history_cursor = cursor
        return tree


def validate_depth(depth: int) -> None:
    if not isinstance(depth, int) or isinstance(depth, bool):
        raise TypeError("depth must be int")
    if depth < 1 or depth > MAX_TREE_DEPTH:
        raise ValueError(f"depth must be in [1, {MAX_TREE_DEPTH}]")

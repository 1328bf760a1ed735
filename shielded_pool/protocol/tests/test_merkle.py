"""
Unit tests for the commitment tree: full-tree helpers and the incremental
accumulator.
"""

import pytest

from shielded_pool.protocol import merkle
from shielded_pool.protocol.config import DOMAIN_SEPARATORS, FIELD_MODULUS, ZERO_VALUE
from shielded_pool.protocol.exceptions import (
    HashingError,
    InvalidCommitment,
    SerializationError,
    TreeFull,
)
from shielded_pool.protocol.security import hash_to_field


def _leaf(value: int) -> bytes:
    return (value + 1).to_bytes(32, "big")


# ============================================================================
# NODE HASH / ZERO HASHES
# ============================================================================


def test_hash_node_matches_hash_to_field():
    left, right = _leaf(1), _leaf(2)
    expected = hash_to_field(left, right, domain_sep=DOMAIN_SEPARATORS["merkle_node"])
    assert merkle.hash_node(left, right) == expected


def test_hash_node_is_order_sensitive():
    assert merkle.hash_node(_leaf(1), _leaf(2)) != merkle.hash_node(_leaf(2), _leaf(1))


def test_hash_node_output_is_field_element():
    out = merkle.hash_node(_leaf(1), _leaf(2))
    assert len(out) == 32
    assert int.from_bytes(out, "big") < FIELD_MODULUS


def test_hash_node_rejects_wrong_length():
    with pytest.raises(ValueError):
        merkle.hash_node(b"\x01" * 31, _leaf(2))


def test_zero_hashes_chain():
    zeros = merkle.zero_hashes(5)
    assert len(zeros) == 6
    assert zeros[0] == ZERO_VALUE
    for level in range(5):
        assert zeros[level + 1] == merkle.hash_node(zeros[level], zeros[level])


@pytest.mark.parametrize("depth, error", [(0, ValueError), (33, ValueError), ("3", TypeError)])
def test_invalid_depth(depth, error):
    with pytest.raises(error):
        merkle.IncrementalMerkleTree(depth=depth)


# ============================================================================
# FULL TREE HELPERS
# ============================================================================


def test_build_tree_empty_is_zero_root():
    root, levels = merkle.build_tree([], depth=4)
    assert root == merkle.zero_hashes(4)[4]
    assert levels[0] == []


def test_build_tree_two_leaves():
    zeros = merkle.zero_hashes(2)
    root, _ = merkle.build_tree([_leaf(0), _leaf(1)], depth=2)
    expected = merkle.hash_node(merkle.hash_node(_leaf(0), _leaf(1)), zeros[1])
    assert root == expected


def test_build_tree_rejects_overflow():
    with pytest.raises(ValueError, match="too many leaves"):
        merkle.build_tree([_leaf(i) for i in range(5)], depth=2)


def test_paths_verify_for_every_leaf():
    leaves = [_leaf(i) for i in range(5)]
    root, _ = merkle.build_tree(leaves, depth=3)
    for index, leaf in enumerate(leaves):
        path = merkle.compute_path(leaves, index, depth=3)
        assert len(path) == 3
        assert merkle.verify_path(leaf, path, root) is True
        assert merkle.path_indices(path)[0] == index % 2


def test_path_rejects_wrong_leaf():
    leaves = [_leaf(i) for i in range(4)]
    root, _ = merkle.build_tree(leaves, depth=2)
    path = merkle.compute_path(leaves, 1, depth=2)
    assert merkle.verify_path(_leaf(9), path, root) is False


def test_compute_path_index_out_of_range():
    with pytest.raises(IndexError):
        merkle.compute_path([_leaf(0)], 1, depth=2)


# ============================================================================
# INCREMENTAL TREE
# ============================================================================


def test_empty_tree_root():
    tree = merkle.IncrementalMerkleTree(depth=4)
    assert tree.root == merkle.zero_hashes(4)[4]
    assert tree.next_index == 0
    assert tree.filled_subtrees == merkle.zero_hashes(4)[:4]


def test_incremental_matches_full_recomputation_for_every_prefix():
    tree = merkle.IncrementalMerkleTree(depth=4)
    leaves = []
    for i in range(16):
        leaves.append(_leaf(i * 7919))
        assert tree.insert(leaves[-1]) == i
        root, _ = merkle.build_tree(leaves, depth=4)
        assert tree.root == root


def test_paths_verify_against_root_at_insertion_time():
    tree = merkle.IncrementalMerkleTree(depth=3)
    leaves = []
    for i in range(6):
        leaves.append(_leaf(i))
        tree.insert(leaves[-1])
        path = merkle.compute_path(leaves, i, depth=3)
        assert merkle.verify_path(leaves[-1], path, tree.root)


def test_same_sequence_same_root():
    a = merkle.IncrementalMerkleTree(depth=5)
    b = merkle.IncrementalMerkleTree(depth=5)
    for i in range(9):
        a.insert(_leaf(i))
        b.insert(_leaf(i))
    assert a.root == b.root


def test_order_sensitive():
    a = merkle.IncrementalMerkleTree(depth=5)
    b = merkle.IncrementalMerkleTree(depth=5)
    a.insert(_leaf(1))
    a.insert(_leaf(2))
    b.insert(_leaf(2))
    b.insert(_leaf(1))
    assert a.root != b.root


def test_second_leaf_uses_cached_left_sibling():
    tree = merkle.IncrementalMerkleTree(depth=3)
    zeros = merkle.zero_hashes(3)
    tree.insert(_leaf(0))
    tree.insert(_leaf(1))
    level1 = merkle.hash_node(_leaf(0), _leaf(1))
    level2 = merkle.hash_node(level1, zeros[1])
    assert tree.root == merkle.hash_node(level2, zeros[2])


def test_duplicate_commitments_allowed():
    tree = merkle.IncrementalMerkleTree(depth=3)
    assert tree.insert(_leaf(5)) == 0
    assert tree.insert(_leaf(5)) == 1


def test_tree_full():
    tree = merkle.IncrementalMerkleTree(depth=2)
    for i in range(4):
        tree.insert(_leaf(i))
    assert tree.is_full
    root = tree.root
    with pytest.raises(TreeFull):
        tree.insert(_leaf(4))
    assert tree.root == root
    assert tree.next_index == 4


@pytest.mark.parametrize(
    "commitment",
    [
        FIELD_MODULUS.to_bytes(32, "big"),
        b"\xff" * 32,
        b"\x01" * 31,
        "00" * 32,
    ],
)
def test_invalid_commitment_rejected(commitment):
    tree = merkle.IncrementalMerkleTree(depth=3)
    with pytest.raises(InvalidCommitment):
        tree.insert(commitment)
    assert tree.next_index == 0


# ============================================================================
# ROOT HISTORY
# ============================================================================


def test_history_window():
    history = 3
    tree = merkle.IncrementalMerkleTree(depth=4, root_history_size=history)
    roots = [tree.root]
    for i in range(6):
        tree.insert(_leaf(i))
        roots.append(tree.root)

    n = 6
    for j, root in enumerate(roots):
        assert tree.is_valid_root(root) == (n - j <= history), j


def test_root_expires_after_k_insertions():
    tree = merkle.IncrementalMerkleTree(depth=5, root_history_size=2)
    tree.insert(_leaf(0))
    r1 = tree.root
    tree.insert(_leaf(1))
    assert tree.is_valid_root(r1)
    tree.insert(_leaf(2))
    assert tree.is_valid_root(r1)
    tree.insert(_leaf(3))
    assert not tree.is_valid_root(r1)


def test_zero_and_malformed_roots_never_valid():
    tree = merkle.IncrementalMerkleTree(depth=3)
    assert not tree.is_valid_root(ZERO_VALUE)
    assert not tree.is_valid_root(b"\x01" * 31)
    assert not tree.is_valid_root(None)
    assert not tree.is_valid_root(_leaf(42))


def test_known_roots_newest_first():
    tree = merkle.IncrementalMerkleTree(depth=3, root_history_size=2)
    empty = tree.root
    tree.insert(_leaf(0))
    r1 = tree.root
    tree.insert(_leaf(1))
    r2 = tree.root
    assert tree.known_roots() == [r2, r1, empty]
    tree.insert(_leaf(2))
    assert tree.known_roots() == [tree.root, r2, r1]
    assert empty not in tree.known_roots()


# ============================================================================
# HASHING FAILURES
# ============================================================================


def _poisoned_hasher(poison: bytes, output=None):
    def hasher(left: bytes, right: bytes) -> bytes:
        if poison in (left, right):
            if output is None:
                raise RuntimeError("hash backend unavailable")
            return output
        return merkle.hash_node(left, right)

    return hasher


@pytest.mark.parametrize("output", [None, b"\xff" * 32, b"\x00" * 31])
def test_hashing_error_leaves_tree_untouched(output):
    poison = _leaf(99)
    tree = merkle.IncrementalMerkleTree(depth=3, hasher=_poisoned_hasher(poison, output))
    tree.insert(_leaf(0))
    before = tree.to_state()
    with pytest.raises(HashingError):
        tree.insert(poison)
    assert tree.to_state() == before


# ============================================================================
# PERSISTENCE
# ============================================================================


def test_state_round_trip():
    tree = merkle.IncrementalMerkleTree(depth=4, root_history_size=3)
    for i in range(5):
        tree.insert(_leaf(i))

    restored = merkle.IncrementalMerkleTree.from_state(tree.to_state())
    assert restored.root == tree.root
    assert restored.next_index == tree.next_index
    assert restored.known_roots() == tree.known_roots()

    tree.insert(_leaf(5))
    restored.insert(_leaf(5))
    assert restored.root == tree.root


@pytest.mark.parametrize(
    "mutate",
    [
        lambda s: s.pop("root"),
        lambda s: s.update(next_index=10_000),
        lambda s: s.update(filled_subtrees=s["filled_subtrees"][:-1]),
        lambda s: s.update(root_history_cursor=99),
        lambda s: s.update(root=b"\xff" * 32),
    ],
)
def test_from_state_rejects_invalid(mutate):
    tree = merkle.IncrementalMerkleTree(depth=4, root_history_size=3)
    tree.insert(_leaf(0))
    state = tree.to_state()
    mutate(state)
    with pytest.raises(SerializationError):
        merkle.IncrementalMerkleTree.from_state(state)

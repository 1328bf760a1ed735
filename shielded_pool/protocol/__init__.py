"""Public API for shielded_pool.protocol.

Heavier modules (pairing verifier, pool) are exported lazily so that
importing the tree or registry does not pull in py_ecc.
"""
from __future__ import annotations

from importlib import import_module

from .exceptions import ShieldedPoolError
from .factory import get_accumulator, get_nullifier_registry
from .feature_flags import (
    get_hash_scheme,
    get_nullifier_store,
    get_tree_backend,
    set_hash_scheme,
    set_nullifier_store,
    set_tree_backend,
)
from .interfaces import CommitmentAccumulator, NullifierStore, PoolLedger, TreeStorageService
from .merkle import IncrementalMerkleTree
from .nullifiers import BitmapNullifierRegistry, NullifierRegistry

__all__ = [
    "ShieldedPoolError",
    "get_accumulator",
    "get_nullifier_registry",
    "get_tree_backend",
    "set_tree_backend",
    "get_nullifier_store",
    "set_nullifier_store",
    "get_hash_scheme",
    "set_hash_scheme",
    "HashScheme",
    "get_scheme",
    "CommitmentAccumulator",
    "NullifierStore",
    "PoolLedger",
    "TreeStorageService",
    "IncrementalMerkleTree",
    "NullifierRegistry",
    "BitmapNullifierRegistry",
    "ShieldedPool",
    "InMemoryLedger",
    "Note",
    "PublicInputs",
    "PoolSettings",
    "Groth16Verifier",
    "VerifyingKey",
    "Proof",
]

_LAZY_EXPORTS = {
    "ShieldedPool": "pool",
    "InMemoryLedger": "ledger",
    "Note": "notes",
    "PublicInputs": "types",
    "PoolSettings": "settings",
    "Groth16Verifier": "snark.verifier",
    "VerifyingKey": "snark.keys",
    "Proof": "snark.keys",
    "HashScheme": "hashing",
    "get_scheme": "hashing",
}


def __getattr__(name: str):
    if name in _LAZY_EXPORTS:
        module = import_module(f"{__name__}.{_LAZY_EXPORTS[name]}")
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

"""
Feature flags for selecting the pool's storage backends.

WARNING: backend selection changes failure modes. The bitmap nullifier store
can refuse legitimate withdrawals on index collisions; the remote tree backend
trusts an external service for leaf storage. The hash scheme must match the
withdrawal circuit, or no proof against the pool's roots will verify.
"""

from __future__ import annotations

import os
from typing import Final

from .config import DEFAULT_HASH_SCHEME

_VALID_TREE_BACKENDS: Final[tuple[str, ...]] = ("incremental", "remote")
_DEFAULT_TREE_BACKEND: Final[str] = "incremental"
_TREE_ENV_VAR_NAME: Final[str] = "SHIELDED_POOL_TREE_BACKEND"

_VALID_NULLIFIER_STORES: Final[tuple[str, ...]] = ("map", "bitmap")
_DEFAULT_NULLIFIER_STORE: Final[str] = "map"
_NULLIFIER_ENV_VAR_NAME: Final[str] = "SHIELDED_POOL_NULLIFIER_STORE"

_VALID_HASH_SCHEMES: Final[tuple[str, ...]] = ("sha256", "poseidon")
_DEFAULT_HASH_SCHEME: Final[str] = DEFAULT_HASH_SCHEME
_HASH_ENV_VAR_NAME: Final[str] = "SHIELDED_POOL_HASH"

_tree_backend_override: str | None = None
_nullifier_store_override: str | None = None
_hash_scheme_override: str | None = None


def _format_valid_options(valid: tuple[str, ...]) -> str:
    return ", ".join(valid)


def _normalize(value: str | None, valid: tuple[str, ...], kind: str) -> str | None:
    if value is None:
        return None

    if not isinstance(value, str):
        raise ValueError(
            f"Invalid {kind} type: {value!r}. Valid options: {_format_valid_options(valid)}"
        )

    if value == "":
        return None

    if value not in valid:
        raise ValueError(
            f"Invalid {kind} type: {value!r}. Valid options: {_format_valid_options(valid)}"
        )

    return value


def get_tree_backend(prefer: str | None = None) -> str:
    """
    Resolve the commitment tree backend in precedence order.

    prefer > in-memory override > SHIELDED_POOL_TREE_BACKEND > "incremental"

    Raises:
        ValueError: If a provided backend value is invalid.
    """
    preferred = _normalize(prefer, _VALID_TREE_BACKENDS, "tree backend")
    if preferred is not None:
        return preferred

    if _tree_backend_override is not None:
        return _tree_backend_override

    env_backend = _normalize(
        os.getenv(_TREE_ENV_VAR_NAME), _VALID_TREE_BACKENDS, "tree backend"
    )
    if env_backend is not None:
        return env_backend

    return _DEFAULT_TREE_BACKEND


def set_tree_backend(value: str | None) -> None:
    """
    Set in-memory tree backend override (testing only).

    Args:
        value: Backend to force, or None to clear the override.
    """
    global _tree_backend_override
    _tree_backend_override = _normalize(value, _VALID_TREE_BACKENDS, "tree backend")


def get_nullifier_store(prefer: str | None = None) -> str:
    """
    Resolve the nullifier store in precedence order.

    prefer > in-memory override > SHIELDED_POOL_NULLIFIER_STORE > "map"

    Raises:
        ValueError: If a provided store value is invalid.
    """
    preferred = _normalize(prefer, _VALID_NULLIFIER_STORES, "nullifier store")
    if preferred is not None:
        return preferred

    if _nullifier_store_override is not None:
        return _nullifier_store_override

    env_store = _normalize(
        os.getenv(_NULLIFIER_ENV_VAR_NAME), _VALID_NULLIFIER_STORES, "nullifier store"
    )
    if env_store is not None:
        return env_store

    return _DEFAULT_NULLIFIER_STORE


def set_nullifier_store(value: str | None) -> None:
    """Set in-memory nullifier store override (testing only)."""
    global _nullifier_store_override
    _nullifier_store_override = _normalize(
        value, _VALID_NULLIFIER_STORES, "nullifier store"
    )


def get_hash_scheme(prefer: str | None = None) -> str:
    """
    Resolve the node / commitment hash scheme in precedence order.

    prefer > in-memory override > SHIELDED_POOL_HASH > "sha256"

    Raises:
        ValueError: If a provided scheme value is invalid.
    """
    preferred = _normalize(prefer, _VALID_HASH_SCHEMES, "hash scheme")
    if preferred is not None:
        return preferred

    if _hash_scheme_override is not None:
        return _hash_scheme_override

    env_scheme = _normalize(os.getenv(_HASH_ENV_VAR_NAME), _VALID_HASH_SCHEMES, "hash scheme")
    if env_scheme is not None:
        return env_scheme

    return _DEFAULT_HASH_SCHEME


def set_hash_scheme(value: str | None) -> None:
    """Set in-memory hash scheme override (testing only)."""
    global _hash_scheme_override
    _hash_scheme_override = _normalize(value, _VALID_HASH_SCHEMES, "hash scheme")

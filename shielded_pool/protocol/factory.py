"""
Storage backend factory for shielded pools.

WARNING: backend choice affects failure modes (see feature_flags). This
factory only wires classes together; it does not validate that a remote tree
service computes roots correctly.
"""

from __future__ import annotations

import importlib
from typing import Callable, Final, Mapping

from .config import DEFAULT_TREE_DEPTH, ROOT_HISTORY_SIZE
from .feature_flags import get_nullifier_store, get_tree_backend
from .interfaces import CommitmentAccumulator, NullifierStore, TreeStorageService

ACCUMULATOR_REGISTRY: Final[dict[str, str]] = {
    "incremental": "shielded_pool.protocol.merkle.IncrementalMerkleTree",
    "remote": "shielded_pool.protocol.adapters.tree_service.RemoteTreeAccumulator",
}

NULLIFIER_REGISTRY: Final[dict[str, str]] = {
    "map": "shielded_pool.protocol.nullifiers.NullifierRegistry",
    "bitmap": "shielded_pool.protocol.nullifiers.BitmapNullifierRegistry",
}


def _format_valid_options(registry: Mapping[str, str]) -> str:
    return ", ".join(sorted(registry.keys()))


def _normalize_name(
    value: str | None, registry: Mapping[str, str], *, source: str
) -> str | None:
    if value is None or value == "":
        return None

    if not isinstance(value, str) or value not in registry:
        raise ValueError(
            f"Invalid backend name from {source}: {value!r}. "
            f"Valid options: {_format_valid_options(registry)}"
        )

    return value


def _load_class(registry: Mapping[str, str], name: str, interface: type) -> type:
    import_path = registry[name]
    module_path, _, class_name = import_path.rpartition(".")
    if not module_path or not class_name:
        raise ValueError(f"Invalid backend import path for {name!r}: {import_path!r}")

    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as exc:
        raise ImportError(
            f"Unable to import backend module {module_path!r} for {name!r}"
        ) from exc

    try:
        backend_cls = getattr(module, class_name)
    except AttributeError as exc:
        raise ImportError(
            f"Backend class {class_name!r} not found in module {module_path!r}"
        ) from exc

    if not isinstance(backend_cls, type):
        raise TypeError(f"Backend reference {import_path!r} did not resolve to a class")

    if not issubclass(backend_cls, interface):
        raise TypeError(
            f"Backend class {backend_cls.__name__!r} does not implement {interface.__name__}"
        )

    return backend_cls


def _resolve_tree_backend(*, prefer: str | None, override: str | None) -> str:
    resolved_override = _normalize_name(override, ACCUMULATOR_REGISTRY, source="override")
    if resolved_override is not None:
        return resolved_override

    resolved_prefer = _normalize_name(prefer, ACCUMULATOR_REGISTRY, source="prefer")
    if resolved_prefer is not None:
        return resolved_prefer

    resolved_flag = get_tree_backend()
    if resolved_flag not in ACCUMULATOR_REGISTRY:
        raise ValueError(
            f"Invalid backend name from feature flags: {resolved_flag!r}. "
            f"Valid options: {_format_valid_options(ACCUMULATOR_REGISTRY)}"
        )
    return resolved_flag


def _resolve_nullifier_store(*, prefer: str | None, override: str | None) -> str:
    resolved_override = _normalize_name(override, NULLIFIER_REGISTRY, source="override")
    if resolved_override is not None:
        return resolved_override

    resolved_prefer = _normalize_name(prefer, NULLIFIER_REGISTRY, source="prefer")
    if resolved_prefer is not None:
        return resolved_prefer

    resolved_flag = get_nullifier_store()
    if resolved_flag not in NULLIFIER_REGISTRY:
        raise ValueError(
            f"Invalid backend name from feature flags: {resolved_flag!r}. "
            f"Valid options: {_format_valid_options(NULLIFIER_REGISTRY)}"
        )
    return resolved_flag


def get_accumulator(
    depth: int = DEFAULT_TREE_DEPTH,
    root_history_size: int = ROOT_HISTORY_SIZE,
    *,
    service: TreeStorageService | None = None,
    prefer: str | None = None,
    override: str | None = None,
    hasher: Callable[[bytes, bytes], bytes] | None = None,
) -> CommitmentAccumulator:
    """
    Return a commitment accumulator based on feature flags.

    Args:
        depth: Tree depth
        root_history_size: Number of superseded roots kept valid
        service: Tree storage service (required for the "remote" backend)
        prefer: Optional backend name hint.
        override: Optional backend name override (testing only).
        hasher: Node hash for the "incremental" backend; a remote service
            hashes on its own side.

    Raises:
        ValueError: If a backend name is invalid or "remote" lacks a service.
        ImportError: If the backend class cannot be imported.
        TypeError: If the backend class does not implement CommitmentAccumulator.
    """
    name = _resolve_tree_backend(prefer=prefer, override=override)
    backend_cls = _load_class(ACCUMULATOR_REGISTRY, name, CommitmentAccumulator)

    if name == "remote":
        if service is None:
            raise ValueError("remote tree backend requires a tree storage service")
        return backend_cls(service, depth=depth, root_history_size=root_history_size)
    if hasher is not None:
        return backend_cls(depth=depth, root_history_size=root_history_size, hasher=hasher)
    return backend_cls(depth=depth, root_history_size=root_history_size)


def get_nullifier_registry(
    capacity: int,
    *,
    prefer: str | None = None,
    override: str | None = None,
) -> NullifierStore:
    """
    Return a nullifier store based on feature flags.

    Raises:
        ValueError: If a backend name is invalid.
        ImportError: If the backend class cannot be imported.
        TypeError: If the backend class does not implement NullifierStore.
    """
    name = _resolve_nullifier_store(prefer=prefer, override=override)
    backend_cls = _load_class(NULLIFIER_REGISTRY, name, NullifierStore)
    return backend_cls(capacity=capacity)

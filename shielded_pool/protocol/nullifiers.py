"""
Nullifier registries: exactly-once spend tracking.

NullifierRegistry keys on the full 32-byte nullifier hash and is the
authoritative store. BitmapNullifierRegistry trades exactness for fixed
storage: it indexes a bitmap by a truncated hash, so two distinct nullifiers
landing on the same bit make the second one look already spent. That is an
availability bug (a legitimate withdrawal is refused), never a double spend.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List

from .config import DEFAULT_NULLIFIER_BITMAP_BITS, DOMAIN_SEPARATORS, FIELD_ELEMENT_BYTES
from .exceptions import (
    NullifierAlreadyUsed,
    NullifierCapacityExceeded,
    SerializationError,
)
from .interfaces import NullifierStore
from .security import hash_to_field


def _require_nullifier(nullifier_hash: bytes) -> bytes:
    if not isinstance(nullifier_hash, (bytes, bytearray)):
        raise TypeError("nullifier_hash must be bytes")
    if len(nullifier_hash) != FIELD_ELEMENT_BYTES:
        raise ValueError(f"nullifier_hash must be {FIELD_ELEMENT_BYTES} bytes")
    return bytes(nullifier_hash)


def _require_capacity(capacity: int) -> int:
    if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < 1:
        raise ValueError("capacity must be a positive int")
    return capacity


class NullifierRegistry(NullifierStore):
    """
    Append-only map from nullifier hash to a spent marker.

    check_and_mark holds a lock across the membership test and the insert,
    so no caller can observe "absent" for a hash another caller is marking.
    Entries are never removed.

    Example:
        >>> registry = NullifierRegistry(capacity=1024)
        >>> registry.check_and_mark(nullifier_hash)
        >>> registry.is_spent(nullifier_hash)
        True
    """

    def __init__(self, capacity: int) -> None:
        self._capacity = _require_capacity(capacity)
        self._entries: Dict[bytes, bool] = {}
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def check_and_mark(self, nullifier_hash: bytes) -> None:
        key = _require_nullifier(nullifier_hash)
        with self._lock:
            if key in self._entries:
                raise NullifierAlreadyUsed(f"nullifier {key.hex()} already spent")
            if len(self._entries) >= self._capacity:
                raise NullifierCapacityExceeded(
                    f"nullifier registry full ({self._capacity} entries)"
                )
            self._entries[key] = True

    def is_spent(self, nullifier_hash: bytes) -> bool:
        key = _require_nullifier(nullifier_hash)
        with self._lock:
            return key in self._entries

    def spent(self) -> List[bytes]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def to_state(self) -> Dict[str, Any]:
        return {"kind": "map", "capacity": self._capacity, "entries": self.spent()}

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "NullifierRegistry":
        try:
            registry = cls(capacity=int(state["capacity"]))
            entries: Iterable[bytes] = state["entries"]
            for entry in entries:
                registry.check_and_mark(bytes(entry))
        except (KeyError, TypeError, ValueError) as exc:
            raise SerializationError(f"invalid nullifier state: {exc}") from exc
        except (NullifierAlreadyUsed, NullifierCapacityExceeded) as exc:
            raise SerializationError(f"inconsistent nullifier state: {exc}") from exc
        return registry


class BitmapNullifierRegistry(NullifierStore):
    """
    Fixed-size bitmap indexed by a truncated nullifier hash.

    ⚠️ Index collisions between distinct nullifiers are reported as
    NullifierAlreadyUsed. Prefer NullifierRegistry unless storage must be
    constant.
    """

    def __init__(self, capacity: int = DEFAULT_NULLIFIER_BITMAP_BITS) -> None:
        self._bits = _require_capacity(capacity)
        self._bitmap = bytearray((self._bits + 7) // 8)
        self._count = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._bits

    def bit_index(self, nullifier_hash: bytes) -> int:
        key = _require_nullifier(nullifier_hash)
        digest = hash_to_field(key, domain_sep=DOMAIN_SEPARATORS["bitmap_index"])
        return int.from_bytes(digest[-8:], "big") % self._bits

    def check_and_mark(self, nullifier_hash: bytes) -> None:
        index = self.bit_index(nullifier_hash)
        byte_pos, mask = index // 8, 1 << (index % 8)
        with self._lock:
            if self._bitmap[byte_pos] & mask:
                raise NullifierAlreadyUsed(
                    f"nullifier bit {index} already set"
                )
            if self._count >= self._bits:
                raise NullifierCapacityExceeded("nullifier bitmap full")
            self._bitmap[byte_pos] |= mask
            self._count += 1

    def is_spent(self, nullifier_hash: bytes) -> bool:
        index = self.bit_index(nullifier_hash)
        with self._lock:
            return bool(self._bitmap[index // 8] & (1 << (index % 8)))

    def __len__(self) -> int:
        with self._lock:
            return self._count

    def to_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "kind": "bitmap",
                "capacity": self._bits,
                "bitmap": bytes(self._bitmap),
                "count": self._count,
            }

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "BitmapNullifierRegistry":
        try:
            registry = cls(capacity=int(state["capacity"]))
            bitmap = bytes(state["bitmap"])
            count = int(state["count"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SerializationError(f"invalid nullifier state: {exc}") from exc
        if len(bitmap) != len(registry._bitmap):
            raise SerializationError("bitmap length does not match capacity")
        if count != sum(bin(byte).count("1") for byte in bitmap):
            raise SerializationError("bitmap population does not match count")
        registry._bitmap = bytearray(bitmap)
        registry._count = count
        return registry


def registry_from_state(state: Dict[str, Any]) -> NullifierStore:
    """Restore whichever registry kind produced the state."""
    kind = state.get("kind") if isinstance(state, dict) else None
    if kind == "map":
        return NullifierRegistry.from_state(state)
    if kind == "bitmap":
        return BitmapNullifierRegistry.from_state(state)
    raise SerializationError(f"unknown nullifier registry kind: {kind!r}")

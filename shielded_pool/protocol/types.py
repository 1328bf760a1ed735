"""
⚠️ DRAFT — requires crypto review before production use

Common types for withdrawals and pool events.

This module provides:
1. encode_address / decode_address - 32-byte address <-> two field elements
2. PublicInputs - the ordered withdrawal public input vector, CBOR serializable
3. DepositRecorded / WithdrawalRecorded - events emitted by the pool

Address split:
- A 32-byte address does not fit the ~254-bit scalar field, so it is carried
  as two field elements, each holding 16 address bytes in its low half.
- Decoding refuses halves with anything set in the upper 16 bytes; otherwise
  two different public input vectors would pay the same recipient.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

try:
    import cbor2
except ImportError:
    raise ImportError(
        "cbor2 is required for public input serialization. "
        "Install with: pip install cbor2"
    )

from .config import (
    ADDRESS_BYTES,
    ADDRESS_HALF_BYTES,
    FIELD_ELEMENT_BYTES,
    PUBLIC_INPUTS_COUNT,
    STATE_VERSION,
)
from .exceptions import InvalidPublicInputs, InvalidRecipient, SerializationError
from .security import int_to_field_bytes, is_field_element
from .statements import StatementType, get_statement_spec, validate_public_inputs

ZERO_ADDRESS = b"\x00" * ADDRESS_BYTES

_PAD = b"\x00" * (FIELD_ELEMENT_BYTES - ADDRESS_HALF_BYTES)

# ============================================================================
# ADDRESS CODEC
# ============================================================================


def encode_address(address: bytes) -> Tuple[bytes, bytes]:
    """
    Split a 32-byte address into (hi, lo) field elements.

    Args:
        address: 32-byte address

    Returns:
        (hi, lo): hi carries bytes 0..15, lo bytes 16..31, each zero-extended
        to a 32-byte big-endian field element

    Example:
        >>> hi, lo = encode_address(b"\\x11" * 32)
        >>> decode_address(hi, lo) == b"\\x11" * 32
        True
    """
    if not isinstance(address, (bytes, bytearray)):
        raise InvalidRecipient(f"address must be bytes, got {type(address)}")
    if len(address) != ADDRESS_BYTES:
        raise InvalidRecipient(f"address must be {ADDRESS_BYTES} bytes, got {len(address)}")
    address = bytes(address)
    return _PAD + address[:ADDRESS_HALF_BYTES], _PAD + address[ADDRESS_HALF_BYTES:]


def decode_address(hi: bytes, lo: bytes) -> bytes:
    """
    Rebuild a 32-byte address from its two field-element halves.

    Raises:
        InvalidRecipient: If either half is not 32 bytes or has a non-zero
            upper 16 bytes
    """
    for label, half in (("hi", hi), ("lo", lo)):
        if not isinstance(half, (bytes, bytearray)) or len(half) != FIELD_ELEMENT_BYTES:
            raise InvalidRecipient(f"address {label} half must be {FIELD_ELEMENT_BYTES} bytes")
        if bytes(half[:-ADDRESS_HALF_BYTES]) != _PAD:
            raise InvalidRecipient(f"address {label} half exceeds {ADDRESS_HALF_BYTES} bytes")
    return bytes(hi[-ADDRESS_HALF_BYTES:]) + bytes(lo[-ADDRESS_HALF_BYTES:])


# ============================================================================
# PUBLIC INPUTS
# ============================================================================


@dataclass(frozen=True)
class PublicInputs:
    """
    Withdrawal public inputs, in circuit order.

    [root, nullifier_hash, recipient_hi, recipient_lo, relayer_hi, relayer_lo, fee]

    Every field is a 32-byte canonical field element; construction fails with
    InvalidPublicInputs otherwise.

    Example:
        >>> inputs = PublicInputs.build(root, nullifier_hash, recipient)
        >>> verifier.verify(proof, inputs.as_list())
    """

    root: bytes
    nullifier_hash: bytes
    recipient_hi: bytes
    recipient_lo: bytes
    relayer_hi: bytes
    relayer_lo: bytes
    fee: bytes

    def __post_init__(self) -> None:
        validate_public_inputs(StatementType.WITHDRAW_V2, self.as_list())

    @classmethod
    def build(
        cls,
        root: bytes,
        nullifier_hash: bytes,
        recipient: bytes,
        relayer: bytes = ZERO_ADDRESS,
        fee: int = 0,
    ) -> "PublicInputs":
        recipient_hi, recipient_lo = encode_address(recipient)
        relayer_hi, relayer_lo = encode_address(relayer)
        try:
            fee_bytes = int_to_field_bytes(fee)
        except (TypeError, ValueError) as exc:
            raise InvalidPublicInputs(f"fee: {exc}") from exc
        return cls(
            root=root,
            nullifier_hash=nullifier_hash,
            recipient_hi=recipient_hi,
            recipient_lo=recipient_lo,
            relayer_hi=relayer_hi,
            relayer_lo=relayer_lo,
            fee=fee_bytes,
        )

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return get_statement_spec(StatementType.WITHDRAW_V2).public_input_schema

    def as_list(self) -> List[bytes]:
        return [getattr(self, name) for name in self.field_names()]

    @classmethod
    def from_list(cls, values: Sequence[bytes]) -> "PublicInputs":
        if len(values) != PUBLIC_INPUTS_COUNT:
            raise InvalidPublicInputs(
                f"expected {PUBLIC_INPUTS_COUNT} public inputs, got {len(values)}"
            )
        for value in values:
            if not is_field_element(value):
                raise InvalidPublicInputs("public input is not a canonical field element")
        return cls(*(bytes(v) for v in values))

    def to_field_elements(self) -> List[int]:
        return [int.from_bytes(v, "big") for v in self.as_list()]

    @property
    def recipient(self) -> bytes:
        return decode_address(self.recipient_hi, self.recipient_lo)

    @property
    def relayer(self) -> bytes:
        return decode_address(self.relayer_hi, self.relayer_lo)

    @property
    def fee_amount(self) -> int:
        return int.from_bytes(self.fee, "big")

    # ========================================================================
    # SERIALIZATION
    # ========================================================================

    def to_dict(self) -> Dict[str, str]:
        return {name: value.hex() for name, value in zip(self.field_names(), self.as_list())}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublicInputs":
        try:
            values = [bytes.fromhex(data[name]) for name in cls.field_names()]
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidPublicInputs(f"invalid public inputs mapping: {exc}") from exc
        return cls.from_list(values)

    def serialize(self) -> bytes:
        """CBOR encoding with a version field."""
        return cbor2.dumps({"v": STATE_VERSION, "inputs": self.as_list()})

    @classmethod
    def deserialize(cls, data: bytes) -> "PublicInputs":
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise SerializationError(f"Failed to deserialize public inputs: {e}")

        if not isinstance(obj, dict) or "inputs" not in obj:
            raise SerializationError("Invalid public inputs format")
        if obj.get("v") != STATE_VERSION:
            raise SerializationError(f"Unsupported public inputs version: {obj.get('v')}")
        return cls.from_list(obj["inputs"])


# ============================================================================
# EVENTS
# ============================================================================


@dataclass(frozen=True)
class DepositRecorded:
    """Emitted once a commitment is inserted."""

    commitment: bytes
    leaf_index: int
    root: bytes
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "deposit",
            "commitment": self.commitment.hex(),
            "leaf_index": self.leaf_index,
            "root": self.root.hex(),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class WithdrawalRecorded:
    """Emitted once a nullifier is spent and funds have moved."""

    nullifier_hash: bytes
    recipient: bytes
    relayer: bytes
    fee: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "withdrawal",
            "nullifier_hash": self.nullifier_hash.hex(),
            "recipient": self.recipient.hex(),
            "relayer": self.relayer.hex(),
            "fee": self.fee,
            "timestamp": self.timestamp,
        }

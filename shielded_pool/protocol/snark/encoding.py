"""
BN254 point codecs with validation.

Layout follows the EIP-197 convention used by the alt_bn128 precompiles:
- G1: x || y, 32-byte big-endian each
- G2: x.c1 || x.c0 || y.c1 || y.c0 (imaginary part first)
- all-zero bytes encode the point at infinity

Decoding rejects non-canonical coordinates, points off the curve and G2
points outside the prime-order subgroup. G1 has cofactor 1, so on-curve
implies in-subgroup there.
"""

from __future__ import annotations

from typing import Tuple

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    Z1,
    Z2,
    b,
    b2,
    curve_order,
    is_inf,
    is_on_curve,
    multiply,
    normalize,
)

from ..config import (
    BASE_FIELD_MODULUS,
    FIELD_ELEMENT_BYTES,
    FIELD_MODULUS,
    G1_POINT_BYTES,
    G2_POINT_BYTES,
)
from ..exceptions import InvalidProof

# Projective points as produced by py_ecc.optimized_bn128
G1Point = Tuple[FQ, FQ, FQ]
G2Point = Tuple[FQ2, FQ2, FQ2]

assert curve_order == FIELD_MODULUS


def _read_coordinate(data: bytes, offset: int, label: str) -> int:
    value = int.from_bytes(data[offset : offset + FIELD_ELEMENT_BYTES], "big")
    if value >= BASE_FIELD_MODULUS:
        raise InvalidProof(f"{label} coordinate is not canonical")
    return value


def _require_length(data, expected: int, label: str) -> bytes:
    if not isinstance(data, (bytes, bytearray)):
        raise InvalidProof(f"{label} must be bytes")
    if len(data) != expected:
        raise InvalidProof(f"{label} must be {expected} bytes, got {len(data)}")
    return bytes(data)


def g1_from_ints(x: int, y: int, label: str = "G1 point") -> G1Point:
    """Build and validate a G1 point from affine integer coordinates."""
    if x == 0 and y == 0:
        return Z1
    if not (0 <= x < BASE_FIELD_MODULUS and 0 <= y < BASE_FIELD_MODULUS):
        raise InvalidProof(f"{label} coordinate is not canonical")
    point = (FQ(x), FQ(y), FQ.one())
    if not is_on_curve(point, b):
        raise InvalidProof(f"{label} is not on the curve")
    return point


def g2_from_ints(
    x_c0: int, x_c1: int, y_c0: int, y_c1: int, label: str = "G2 point"
) -> G2Point:
    """Build and validate a G2 point from affine integer coordinates."""
    coords = (x_c0, x_c1, y_c0, y_c1)
    if all(c == 0 for c in coords):
        return Z2
    if not all(0 <= c < BASE_FIELD_MODULUS for c in coords):
        raise InvalidProof(f"{label} coordinate is not canonical")
    point = (FQ2([x_c0, x_c1]), FQ2([y_c0, y_c1]), FQ2.one())
    if not is_on_curve(point, b2):
        raise InvalidProof(f"{label} is not on the curve")
    if not is_inf(multiply(point, curve_order)):
        raise InvalidProof(f"{label} is not in the prime-order subgroup")
    return point


def decode_g1(data: bytes, label: str = "G1 point") -> G1Point:
    data = _require_length(data, G1_POINT_BYTES, label)
    x = _read_coordinate(data, 0, label)
    y = _read_coordinate(data, 32, label)
    return g1_from_ints(x, y, label)


def decode_g2(data: bytes, label: str = "G2 point") -> G2Point:
    data = _require_length(data, G2_POINT_BYTES, label)
    x_c1 = _read_coordinate(data, 0, label)
    x_c0 = _read_coordinate(data, 32, label)
    y_c1 = _read_coordinate(data, 64, label)
    y_c0 = _read_coordinate(data, 96, label)
    return g2_from_ints(x_c0, x_c1, y_c0, y_c1, label)


def encode_g1(point: G1Point) -> bytes:
    if is_inf(point):
        return b"\x00" * G1_POINT_BYTES
    x, y = normalize(point)
    return int(x).to_bytes(32, "big") + int(y).to_bytes(32, "big")


def encode_g2(point: G2Point) -> bytes:
    if is_inf(point):
        return b"\x00" * G2_POINT_BYTES
    x, y = normalize(point)
    x_c0, x_c1 = (int(c) for c in x.coeffs)
    y_c0, y_c1 = (int(c) for c in y.coeffs)
    return b"".join(
        c.to_bytes(32, "big") for c in (x_c1, x_c0, y_c1, y_c0)
    )


def g1_affine(point: G1Point) -> Tuple[int, int]:
    """Affine (x, y) integers; (0, 0) for infinity."""
    if is_inf(point):
        return 0, 0
    x, y = normalize(point)
    return int(x), int(y)


def g2_affine(point: G2Point) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """Affine ((x_c0, x_c1), (y_c0, y_c1)) integers; zeros for infinity."""
    if is_inf(point):
        return (0, 0), (0, 0)
    x, y = normalize(point)
    x_c0, x_c1 = (int(c) for c in x.coeffs)
    y_c0, y_c1 = (int(c) for c in y.coeffs)
    return (x_c0, x_c1), (y_c0, y_c1)


def decode_field_element(data: bytes, label: str = "public input") -> int:
    """32-byte big-endian scalar; must be < r."""
    if not isinstance(data, (bytes, bytearray)) or len(data) != FIELD_ELEMENT_BYTES:
        raise InvalidProof(f"{label} must be {FIELD_ELEMENT_BYTES} bytes")
    value = int.from_bytes(data, "big")
    if value >= FIELD_MODULUS:
        raise InvalidProof(f"{label} is not a canonical field element")
    return value


def encode_field_element(value: int) -> bytes:
    if not 0 <= value < FIELD_MODULUS:
        raise ValueError("value out of field range")
    return value.to_bytes(FIELD_ELEMENT_BYTES, "big")

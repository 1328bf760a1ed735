"""
Groth16 verifying key and proof containers.

Both are immutable once built. Points are decoded and validated on
construction from bytes or snarkjs JSON, so anything holding a VerifyingKey
or Proof holds curve points that passed the on-curve and subgroup checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Tuple

import cbor2

from ..config import G1_POINT_BYTES, G2_POINT_BYTES, PROOF_BYTES, STATE_VERSION
from ..exceptions import InvalidProof, InvalidVerificationKey, SerializationError
from .encoding import (
    G1Point,
    G2Point,
    decode_g1,
    decode_g2,
    encode_g1,
    encode_g2,
    g1_affine,
    g1_from_ints,
    g2_affine,
    g2_from_ints,
)

_IC_COUNT_BYTES = 4


@dataclass(frozen=True)
class VerifyingKey:
    """
    Groth16 verifying key.

    Attributes:
        alpha: α ∈ G1
        beta: β ∈ G2
        gamma: γ ∈ G2
        delta: δ ∈ G2
        ic: IC points ∈ G1; len(ic) == number of public inputs + 1
    """

    alpha: G1Point
    beta: G2Point
    gamma: G2Point
    delta: G2Point
    ic: Tuple[G1Point, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "ic", tuple(self.ic))
        if not self.ic:
            raise InvalidVerificationKey("IC must contain at least one point")

    @property
    def num_public_inputs(self) -> int:
        return len(self.ic) - 1

    # ========================================================================
    # BYTES: alpha || beta || gamma || delta || u32 len(ic) || ic...
    # ========================================================================

    def to_bytes(self) -> bytes:
        out = bytearray()
        out += encode_g1(self.alpha)
        out += encode_g2(self.beta)
        out += encode_g2(self.gamma)
        out += encode_g2(self.delta)
        out += len(self.ic).to_bytes(_IC_COUNT_BYTES, "big")
        for point in self.ic:
            out += encode_g1(point)
        return bytes(out)

    @classmethod
    def from_bytes(cls, data: bytes) -> "VerifyingKey":
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidVerificationKey("verifying key must be bytes")
        data = bytes(data)
        header = G1_POINT_BYTES + 3 * G2_POINT_BYTES + _IC_COUNT_BYTES
        if len(data) < header:
            raise InvalidVerificationKey("verifying key too short")

        offset = 0

        def take(size: int) -> bytes:
            nonlocal offset
            chunk = data[offset : offset + size]
            offset += size
            return chunk

        try:
            alpha = decode_g1(take(G1_POINT_BYTES), "vk.alpha")
            beta = decode_g2(take(G2_POINT_BYTES), "vk.beta")
            gamma = decode_g2(take(G2_POINT_BYTES), "vk.gamma")
            delta = decode_g2(take(G2_POINT_BYTES), "vk.delta")
            count = int.from_bytes(take(_IC_COUNT_BYTES), "big")
            if len(data) != header + count * G1_POINT_BYTES:
                raise InvalidVerificationKey("IC length does not match payload")
            ic = tuple(
                decode_g1(take(G1_POINT_BYTES), f"vk.ic[{i}]") for i in range(count)
            )
        except InvalidProof as exc:
            raise InvalidVerificationKey(str(exc)) from exc
        return cls(alpha=alpha, beta=beta, gamma=gamma, delta=delta, ic=ic)

    # ========================================================================
    # SNARKJS JSON (verification_key.json)
    # ========================================================================

    @classmethod
    def from_snarkjs(cls, data: Mapping[str, Any]) -> "VerifyingKey":
        """
        Build from a snarkjs verification_key.json mapping.

        Expects vk_alpha_1, vk_beta_2, vk_gamma_2, vk_delta_2 and IC with
        decimal string coordinates in projective form ([x, y, "1"]).
        """
        if not isinstance(data, Mapping):
            raise InvalidVerificationKey("verifying key JSON must be an object")
        protocol = data.get("protocol", "groth16")
        if protocol != "groth16":
            raise InvalidVerificationKey(f"unsupported protocol: {protocol!r}")
        curve = data.get("curve", "bn128")
        if curve not in ("bn128", "bn254"):
            raise InvalidVerificationKey(f"unsupported curve: {curve!r}")
        try:
            alpha = _snarkjs_g1(data["vk_alpha_1"], "vk_alpha_1")
            beta = _snarkjs_g2(data["vk_beta_2"], "vk_beta_2")
            gamma = _snarkjs_g2(data["vk_gamma_2"], "vk_gamma_2")
            delta = _snarkjs_g2(data["vk_delta_2"], "vk_delta_2")
            ic = tuple(
                _snarkjs_g1(point, f"IC[{i}]") for i, point in enumerate(data["IC"])
            )
        except KeyError as exc:
            raise InvalidVerificationKey(f"missing field {exc}") from exc
        except (InvalidProof, TypeError, ValueError) as exc:
            raise InvalidVerificationKey(str(exc)) from exc

        n_public = data.get("nPublic")
        if n_public is not None:
            try:
                n_public = int(n_public)
            except (TypeError, ValueError) as exc:
                raise InvalidVerificationKey(f"nPublic is not an integer: {exc}") from exc
            if n_public != len(ic) - 1:
                raise InvalidVerificationKey("nPublic does not match IC length")
        return cls(alpha=alpha, beta=beta, gamma=gamma, delta=delta, ic=ic)

    def to_snarkjs(self) -> Dict[str, Any]:
        return {
            "protocol": "groth16",
            "curve": "bn128",
            "nPublic": self.num_public_inputs,
            "vk_alpha_1": _g1_to_snarkjs(self.alpha),
            "vk_beta_2": _g2_to_snarkjs(self.beta),
            "vk_gamma_2": _g2_to_snarkjs(self.gamma),
            "vk_delta_2": _g2_to_snarkjs(self.delta),
            "IC": [_g1_to_snarkjs(point) for point in self.ic],
        }

    # ========================================================================
    # CBOR
    # ========================================================================

    def serialize(self) -> bytes:
        return cbor2.dumps({"v": STATE_VERSION, "vk": self.to_bytes()})

    @classmethod
    def deserialize(cls, data: bytes) -> "VerifyingKey":
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise SerializationError(f"Failed to deserialize verifying key: {e}")
        if not isinstance(obj, dict) or "vk" not in obj:
            raise SerializationError("Invalid verifying key format")
        if obj.get("v") != STATE_VERSION:
            raise SerializationError(f"Unsupported verifying key version: {obj.get('v')}")
        return cls.from_bytes(obj["vk"])


@dataclass(frozen=True)
class Proof:
    """
    Groth16 proof (A ∈ G1, B ∈ G2, C ∈ G1).

    Byte layout: A(64) || B(128) || C(64).
    """

    a: G1Point
    b: G2Point
    c: G1Point

    def to_bytes(self) -> bytes:
        return encode_g1(self.a) + encode_g2(self.b) + encode_g1(self.c)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Proof":
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidProof("proof must be bytes")
        if len(data) != PROOF_BYTES:
            raise InvalidProof(f"proof must be {PROOF_BYTES} bytes, got {len(data)}")
        data = bytes(data)
        a = decode_g1(data[:G1_POINT_BYTES], "proof.a")
        b = decode_g2(data[G1_POINT_BYTES : G1_POINT_BYTES + G2_POINT_BYTES], "proof.b")
        c = decode_g1(data[G1_POINT_BYTES + G2_POINT_BYTES :], "proof.c")
        return cls(a=a, b=b, c=c)

    @classmethod
    def from_snarkjs(cls, data: Mapping[str, Any]) -> "Proof":
        """Build from a snarkjs proof.json mapping (pi_a, pi_b, pi_c)."""
        if not isinstance(data, Mapping):
            raise InvalidProof("proof JSON must be an object")
        try:
            a = _snarkjs_g1(data["pi_a"], "pi_a")
            b = _snarkjs_g2(data["pi_b"], "pi_b")
            c = _snarkjs_g1(data["pi_c"], "pi_c")
        except KeyError as exc:
            raise InvalidProof(f"missing field {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise InvalidProof(str(exc)) from exc
        return cls(a=a, b=b, c=c)

    def to_snarkjs(self) -> Dict[str, Any]:
        return {
            "protocol": "groth16",
            "curve": "bn128",
            "pi_a": _g1_to_snarkjs(self.a),
            "pi_b": _g2_to_snarkjs(self.b),
            "pi_c": _g1_to_snarkjs(self.c),
        }


# ============================================================================
# SNARKJS HELPERS
# ============================================================================


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("coordinate must be int or decimal string")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 0) if value.startswith("0x") else int(value)
    raise TypeError("coordinate must be int or decimal string")


def _snarkjs_g1(coords: Sequence[Any], label: str) -> G1Point:
    if len(coords) not in (2, 3):
        raise ValueError(f"{label} must have 2 or 3 coordinates")
    x, y = _parse_int(coords[0]), _parse_int(coords[1])
    if len(coords) == 3 and _parse_int(coords[2]) == 0:
        return g1_from_ints(0, 0, label)
    return g1_from_ints(x, y, label)


def _snarkjs_g2(coords: Sequence[Sequence[Any]], label: str) -> G2Point:
    if len(coords) not in (2, 3):
        raise ValueError(f"{label} must have 2 or 3 coordinates")
    x_c0, x_c1 = (_parse_int(c) for c in coords[0])
    y_c0, y_c1 = (_parse_int(c) for c in coords[1])
    if len(coords) == 3 and all(_parse_int(c) == 0 for c in coords[2]):
        return g2_from_ints(0, 0, 0, 0, label)
    return g2_from_ints(x_c0, x_c1, y_c0, y_c1, label)


def _g1_to_snarkjs(point: G1Point) -> list:
    x, y = g1_affine(point)
    z = 0 if (x, y) == (0, 0) else 1
    return [str(x), str(y), str(z)]


def _g2_to_snarkjs(point: G2Point) -> list:
    (x_c0, x_c1), (y_c0, y_c1) = g2_affine(point)
    z = ["0", "0"] if (x_c0, x_c1, y_c0, y_c1) == (0, 0, 0, 0) else ["1", "0"]
    return [[str(x_c0), str(x_c1)], [str(y_c0), str(y_c1)], z]

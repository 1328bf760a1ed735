# -*- coding: utf-8 -*-
"""
Deterministic Groth16 keys and proofs for tests.

Keys are generated from known trapdoor scalars (α, β, γ, δ and the IC
scalars u_i), which lets anyone holding the trapdoor produce a valid proof
for any public input vector:

    A = a·G1, B = b·G2, C = c·G1 with
    c = (a·b - α·β - vk_x·γ) / δ   where vk_x = u_0 + Σ x_i·u_{i+1}

so that e(-A, B)·e(α, β)·e(vk_x, γ)·e(C, δ) = 1. Such keys are worthless
outside tests: the trapdoor is public.
"""

from __future__ import annotations

import hashlib
from functools import lru_cache
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from py_ecc.optimized_bn128 import G1, G2, multiply

from ..config import FIELD_MODULUS, PUBLIC_INPUTS_COUNT
from ..snark.keys import Proof, VerifyingKey

DEFAULT_SEED = b"SHIELDED_POOL_TEST_VECTORS_V1"


@dataclass(frozen=True)
class Trapdoor:
    alpha: int
    beta: int
    gamma: int
    delta: int
    ic: Tuple[int, ...]


def _scalar(seed: bytes, label: str) -> int:
    counter = 0
    while True:
        digest = hashlib.sha256(seed + label.encode("utf-8") + counter.to_bytes(4, "big")).digest()
        value = int.from_bytes(digest, "big") % FIELD_MODULUS
        if value:
            return value
        counter += 1


def make_trapdoor(
    num_public_inputs: int = PUBLIC_INPUTS_COUNT, seed: bytes = DEFAULT_SEED
) -> Trapdoor:
    return Trapdoor(
        alpha=_scalar(seed, "alpha"),
        beta=_scalar(seed, "beta"),
        gamma=_scalar(seed, "gamma"),
        delta=_scalar(seed, "delta"),
        ic=tuple(_scalar(seed, f"ic{i}") for i in range(num_public_inputs + 1)),
    )


def verifying_key_from_trapdoor(trapdoor: Trapdoor) -> VerifyingKey:
    return VerifyingKey(
        alpha=multiply(G1, trapdoor.alpha),
        beta=multiply(G2, trapdoor.beta),
        gamma=multiply(G2, trapdoor.gamma),
        delta=multiply(G2, trapdoor.delta),
        ic=tuple(multiply(G1, u) for u in trapdoor.ic),
    )


def make_verifying_key(
    num_public_inputs: int = PUBLIC_INPUTS_COUNT, seed: bytes = DEFAULT_SEED
) -> Tuple[VerifyingKey, Trapdoor]:
    trapdoor = make_trapdoor(num_public_inputs, seed)
    return verifying_key_from_trapdoor(trapdoor), trapdoor


def _as_scalars(public_inputs: Sequence) -> List[int]:
    out = []
    for value in public_inputs:
        if isinstance(value, (bytes, bytearray)):
            out.append(int.from_bytes(value, "big"))
        else:
            out.append(int(value))
    return out


def simulate_proof(
    trapdoor: Trapdoor,
    public_inputs: Sequence,
    seed: bytes = DEFAULT_SEED,
) -> Proof:
    """Valid proof for public_inputs under the trapdoor's verifying key."""
    scalars = _as_scalars(public_inputs)
    if len(scalars) != len(trapdoor.ic) - 1:
        raise ValueError("public input count does not match trapdoor")

    transcript = seed + b"".join(x.to_bytes(32, "big") for x in scalars)
    a = _scalar(transcript, "a")
    b = _scalar(transcript, "b")

    r = FIELD_MODULUS
    vk_x = (trapdoor.ic[0] + sum(x * u for x, u in zip(scalars, trapdoor.ic[1:]))) % r
    numerator = (a * b - trapdoor.alpha * trapdoor.beta - vk_x * trapdoor.gamma) % r
    c = numerator * pow(trapdoor.delta, -1, r) % r

    return Proof(a=multiply(G1, a), b=multiply(G2, b), c=multiply(G1, c))


@lru_cache(maxsize=None)
def default_vectors() -> Tuple[VerifyingKey, Trapdoor]:
    """Shared 7-input key and trapdoor; built once per process."""
    return make_verifying_key(PUBLIC_INPUTS_COUNT, DEFAULT_SEED)

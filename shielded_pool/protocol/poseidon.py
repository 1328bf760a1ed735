"""
⚠️ DRAFT — requires crypto review before production use

Poseidon hash over the BN254 scalar field, compatible with circomlib.

Matches circomlib's poseidon.circom and circomlibjs buildPoseidon: x^5
S-box, 8 full rounds, the circomlib partial-round table, initial state
[0, inputs...] and output state[0]. Round constants and the Cauchy MDS
matrix are regenerated from the Grain LFSR the Poseidon authors use for
their reference parameters, so no constant tables are shipped.

Parameters are derived once per width and cached.

Example:
    >>> poseidon([1, 2])
    7853200120776062878684798364095072458815029376092732009249414926327459813530
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import List, Sequence, Tuple

from .config import (
    FIELD_ELEMENT_BYTES,
    FIELD_MODULUS,
    POSEIDON_FIELD_BITS,
    POSEIDON_FULL_ROUNDS,
    POSEIDON_MAX_INPUTS,
    POSEIDON_PARTIAL_ROUNDS,
)
from .security import field_bytes_to_int, int_to_field_bytes, is_field_element

_GRAIN_STATE_BITS = 80
_GRAIN_MASK = (1 << _GRAIN_STATE_BITS) - 1
_GRAIN_WARMUP = 160

# Parameter-generator tags: prime field, x^alpha S-box
_FIELD_TAG = 1
_SBOX_TAG = 0


@dataclass(frozen=True)
class PoseidonParameters:
    width: int
    partial_rounds: int
    round_constants: Tuple[int, ...]
    mds: Tuple[Tuple[int, ...], ...]


class _GrainLFSR:
    """Self-shrinking 80-bit Grain LFSR seeded with the instance parameters."""

    def __init__(self, width: int, partial_rounds: int) -> None:
        seed = (
            format(_FIELD_TAG, "02b")
            + format(_SBOX_TAG, "04b")
            + format(POSEIDON_FIELD_BITS, "012b")
            + format(width, "012b")
            + format(POSEIDON_FULL_ROUNDS, "010b")
            + format(partial_rounds, "010b")
            + "1" * 30
        )
        self._state = int(seed, 2)
        for _ in range(_GRAIN_WARMUP):
            self._clock()

    def _clock(self) -> int:
        # Taps at b62, b51, b38, b23, b13, b0 with b0 the oldest (top) bit
        s = self._state
        bit = ((s >> 17) ^ (s >> 28) ^ (s >> 41) ^ (s >> 56) ^ (s >> 66) ^ (s >> 79)) & 1
        self._state = ((s << 1) & _GRAIN_MASK) | bit
        return bit

    def next_bit(self) -> int:
        while True:
            keep = self._clock()
            bit = self._clock()
            if keep:
                return bit

    def next_int(self, bits: int) -> int:
        value = 0
        for _ in range(bits):
            value = (value << 1) | self.next_bit()
        return value


@lru_cache(maxsize=None)
def poseidon_parameters(width: int) -> PoseidonParameters:
    """
    Round constants and MDS matrix for a state of `width` elements.

    Raises:
        ValueError: width outside [2, POSEIDON_MAX_INPUTS + 1]
    """
    if not isinstance(width, int) or not 2 <= width <= POSEIDON_MAX_INPUTS + 1:
        raise ValueError(f"Poseidon width must be in [2, {POSEIDON_MAX_INPUTS + 1}]")

    partial_rounds = POSEIDON_PARTIAL_ROUNDS[width - 2]
    grain = _GrainLFSR(width, partial_rounds)

    count = (POSEIDON_FULL_ROUNDS + partial_rounds) * width
    constants: List[int] = []
    while len(constants) < count:
        value = grain.next_int(POSEIDON_FIELD_BITS)
        if value < FIELD_MODULUS:
            constants.append(value)

    while True:
        sample = [grain.next_int(POSEIDON_FIELD_BITS) % FIELD_MODULUS for _ in range(2 * width)]
        if len(set(sample)) != len(sample):
            continue
        xs, ys = sample[:width], sample[width:]
        if any((x + y) % FIELD_MODULUS == 0 for x in xs for y in ys):
            continue
        break

    mds = tuple(
        tuple(pow((x + y) % FIELD_MODULUS, FIELD_MODULUS - 2, FIELD_MODULUS) for y in ys)
        for x in xs
    )
    return PoseidonParameters(width, partial_rounds, tuple(constants), mds)


def _permute(state: List[int], params: PoseidonParameters) -> List[int]:
    p = FIELD_MODULUS
    width = params.width
    half_full = POSEIDON_FULL_ROUNDS // 2
    rounds = POSEIDON_FULL_ROUNDS + params.partial_rounds

    for rnd in range(rounds):
        offset = rnd * width
        state = [(s + params.round_constants[offset + i]) % p for i, s in enumerate(state)]
        if rnd < half_full or rnd >= rounds - half_full:
            state = [pow(s, 5, p) for s in state]
        else:
            state[0] = pow(state[0], 5, p)
        state = [sum(m * s for m, s in zip(row, state)) % p for row in params.mds]
    return state


def poseidon(inputs: Sequence[int]) -> int:
    """
    circomlib Poseidon of 1..16 field elements.

    Raises:
        ValueError: Wrong input count or an input outside [0, r)
    """
    inputs = list(inputs)
    if not 1 <= len(inputs) <= POSEIDON_MAX_INPUTS:
        raise ValueError(f"Poseidon takes 1 to {POSEIDON_MAX_INPUTS} inputs, got {len(inputs)}")
    for value in inputs:
        if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value < FIELD_MODULUS:
            raise ValueError("Poseidon inputs must be canonical field elements")

    params = poseidon_parameters(len(inputs) + 1)
    return _permute([0] + inputs, params)[0]


def poseidon_bytes(*parts: bytes) -> bytes:
    """Poseidon over 32-byte big-endian field elements, returned in the same encoding."""
    for part in parts:
        if not is_field_element(part):
            raise ValueError(f"Poseidon inputs must be {FIELD_ELEMENT_BYTES}-byte field elements")
    return int_to_field_bytes(poseidon([field_bytes_to_int(part) for part in parts]))


def poseidon_node(left: bytes, right: bytes) -> bytes:
    """Merkle node hash: Poseidon(left, right)."""
    return poseidon_bytes(left, right)

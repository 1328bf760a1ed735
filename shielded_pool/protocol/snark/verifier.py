"""
Groth16 verification over BN254.

⚠️ DRAFT — requires crypto review before production use

Checks e(-A, B) · e(α, β) · e(vk_x, γ) · e(C, δ) == 1 with
vk_x = IC[0] + Σ x_i · IC[i+1]. The four Miller loops are multiplied
together and share a single final exponentiation.
"""

from __future__ import annotations

import logging
from typing import Sequence, Union

from py_ecc.optimized_bn128 import (
    FQ12,
    add,
    final_exponentiate,
    is_inf,
    multiply,
    neg,
    pairing,
)

from ..config import FIELD_MODULUS
from ..exceptions import InvalidProof
from .encoding import G1Point, decode_field_element
from .keys import Proof, VerifyingKey

logger = logging.getLogger(__name__)

PublicInput = Union[bytes, bytearray, int]


class Groth16Verifier:
    """
    Stateless verifier bound to one verifying key.

    verify() raises InvalidProof for malformed input (wrong sizes, points off
    the curve or outside the subgroup, A or C at infinity, wrong number of
    public inputs, non-canonical inputs). It returns False only for a
    well-formed proof that fails the pairing equation.
    """

    def __init__(self, verifying_key: VerifyingKey) -> None:
        if not isinstance(verifying_key, VerifyingKey):
            raise TypeError("verifying_key must be a VerifyingKey")
        self._vk = verifying_key

    @property
    def verifying_key(self) -> VerifyingKey:
        return self._vk

    def verify(
        self,
        proof: Union[Proof, bytes, bytearray],
        public_inputs: Sequence[PublicInput],
    ) -> bool:
        proof = self._coerce_proof(proof)
        scalars = self._coerce_inputs(public_inputs)

        if is_inf(proof.a) or is_inf(proof.b) or is_inf(proof.c):
            raise InvalidProof("proof points must not be at infinity")

        vk = self._vk
        vk_x = self._linear_combination(scalars)

        product = (
            pairing(proof.b, neg(proof.a), final_exponentiate=False)
            * pairing(vk.beta, vk.alpha, final_exponentiate=False)
            * pairing(vk.gamma, vk_x, final_exponentiate=False)
            * pairing(vk.delta, proof.c, final_exponentiate=False)
        )
        ok = final_exponentiate(product) == FQ12.one()
        if not ok:
            logger.debug("groth16 pairing check failed")
        return ok

    def _coerce_proof(self, proof: Union[Proof, bytes, bytearray]) -> Proof:
        if isinstance(proof, Proof):
            return proof
        if isinstance(proof, (bytes, bytearray)):
            return Proof.from_bytes(proof)
        raise InvalidProof("proof must be a Proof or 256 bytes")

    def _coerce_inputs(self, public_inputs: Sequence[PublicInput]) -> list:
        if isinstance(public_inputs, (bytes, bytearray, str)):
            raise InvalidProof("public inputs must be a sequence")
        values = list(public_inputs)
        expected = self._vk.num_public_inputs
        if len(values) != expected:
            raise InvalidProof(
                f"expected {expected} public inputs, got {len(values)}"
            )

        scalars = []
        for i, value in enumerate(values):
            if isinstance(value, bool):
                raise InvalidProof(f"public input {i} has invalid type")
            if isinstance(value, int):
                if not 0 <= value < FIELD_MODULUS:
                    raise InvalidProof(f"public input {i} is not a canonical field element")
                scalars.append(value)
            elif isinstance(value, (bytes, bytearray)):
                scalars.append(decode_field_element(bytes(value), f"public input {i}"))
            else:
                raise InvalidProof(f"public input {i} has invalid type")
        return scalars

    def _linear_combination(self, scalars: Sequence[int]) -> G1Point:
        ic = self._vk.ic
        acc = ic[0]
        for scalar, point in zip(scalars, ic[1:]):
            if scalar:
                acc = add(acc, multiply(point, scalar))
        return acc

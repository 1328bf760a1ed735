from __future__ import annotations

import sys

from shielded_pool.protocol.snark.verifier import Groth16Verifier
from shielded_pool.protocol.test_vectors import groth16_vectors


def main() -> int:
    vk, trapdoor = groth16_vectors.default_vectors()
    verifier = Groth16Verifier(vk)
    inputs = [i + 1 for i in range(vk.num_public_inputs)]
    proof = groth16_vectors.simulate_proof(trapdoor, inputs)

    errors = []
    if not verifier.verify(proof, inputs):
        errors.append("simulated proof rejected")
    tampered = [inputs[0] + 1] + inputs[1:]
    if verifier.verify(proof, tampered):
        errors.append("proof accepted for tampered inputs")
    if errors:
        for error in errors:
            print(f"groth16_vectors: {error}")
        return 1
    print("groth16_vectors: OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

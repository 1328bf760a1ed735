"""Groth16 over BN254: point codecs, keys and proofs, verifier, file loaders."""

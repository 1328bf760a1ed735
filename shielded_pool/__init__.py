"""Shielded pool toolkit: commitment tree, nullifier registry, Groth16 verifier."""

__version__ = "0.1.0"

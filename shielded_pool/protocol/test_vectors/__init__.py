"""Deterministic test vectors."""

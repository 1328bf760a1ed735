"""
Hash schemes for tree nodes, note commitments and nullifier hashes.

A pool uses one scheme for all three so that its roots and the notes it
accepts agree with the withdrawal circuit:

- "sha256": domain-separated SHA-256 reduced mod r (no circuit ships with it)
- "poseidon": circomlib Poseidon, as used by Tornado-style circuits

Under "poseidon" the zero leaf is 0, node = Poseidon(left, right),
commitment = Poseidon(nullifier, secret) and nullifier hash =
Poseidon(nullifier).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict

from .config import DOMAIN_SEPARATORS
from .merkle import NodeHasher, hash_node
from .poseidon import poseidon_bytes, poseidon_node
from .security import hash_to_field


@dataclass(frozen=True)
class HashScheme:
    name: str
    node: NodeHasher
    commitment: Callable[[bytes, bytes], bytes]
    nullifier_hash: Callable[[bytes], bytes]


def _sha256_commitment(nullifier: bytes, secret: bytes) -> bytes:
    return hash_to_field(nullifier, secret, domain_sep=DOMAIN_SEPARATORS["note_commitment"])


def _sha256_nullifier_hash(nullifier: bytes) -> bytes:
    return hash_to_field(nullifier, domain_sep=DOMAIN_SEPARATORS["nullifier_hash"])


HASH_SCHEMES: Dict[str, HashScheme] = {
    "sha256": HashScheme(
        name="sha256",
        node=hash_node,
        commitment=_sha256_commitment,
        nullifier_hash=_sha256_nullifier_hash,
    ),
    "poseidon": HashScheme(
        name="poseidon",
        node=poseidon_node,
        commitment=poseidon_bytes,
        nullifier_hash=poseidon_bytes,
    ),
}


def get_scheme(name: str) -> HashScheme:
    """
    Look up a hash scheme by name.

    Raises:
        ValueError: Unknown scheme name
    """
    try:
        return HASH_SCHEMES[name]
    except (KeyError, TypeError):
        raise ValueError(
            f"Invalid hash scheme: {name!r}. Valid options: {', '.join(sorted(HASH_SCHEMES))}"
        ) from None

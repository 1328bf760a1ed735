"""
⚠️ DRAFT — requires crypto review before production use

Deposit notes.

A note is the depositor's private receipt: a nullifier and a secret (both
random field elements) plus the pool denomination. The commitment inserted
into the tree and the nullifier hash revealed at withdrawal are both derived
from it, so losing the note means losing the deposit.

Note string format: "<nullifier hex>-<secret hex>-<amount>".

The commitment and nullifier-hash properties use the default SHA-256 scheme;
commitment_for / nullifier_hash_for derive them under a pool's own scheme
(see hashing.py), e.g. Poseidon for a circomlib circuit.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .config import DEFAULT_HASH_SCHEME, FIELD_ELEMENT_BYTES
from .hashing import HashScheme, get_scheme
from .security import RandomnessSource, is_field_element


@dataclass(frozen=True)
class Note:
    """
    Private deposit note.

    Attributes:
        nullifier: 32-byte field element, never revealed
        secret: 32-byte field element, never revealed
        amount: Pool denomination the note was created for

    Example:
        >>> note = Note.generate(amount=100_000_000)
        >>> pool.deposit(depositor, note.commitment)
        >>> text = note.format()
        >>> Note.parse(text) == note
        True
    """

    nullifier: bytes
    secret: bytes
    amount: int

    def __post_init__(self) -> None:
        if not is_field_element(self.nullifier):
            raise ValueError("nullifier must be a 32-byte field element")
        if not is_field_element(self.secret):
            raise ValueError("secret must be a 32-byte field element")
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            raise ValueError("amount must be int")
        if self.amount <= 0:
            raise ValueError("amount must be positive")

    @classmethod
    def generate(cls, amount: int, rng: Optional[RandomnessSource] = None) -> "Note":
        """Fresh note with random nullifier and secret."""
        rng = rng or RandomnessSource()
        return cls(
            nullifier=rng.get_random_field_element(),
            secret=rng.get_random_field_element(),
            amount=amount,
        )

    @property
    def commitment(self) -> bytes:
        """H(nullifier, secret); the leaf inserted on deposit."""
        return self.commitment_for(DEFAULT_HASH_SCHEME)

    @property
    def nullifier_hash(self) -> bytes:
        """H(nullifier); revealed once, at withdrawal."""
        return self.nullifier_hash_for(DEFAULT_HASH_SCHEME)

    def commitment_for(self, scheme: Union[str, HashScheme]) -> bytes:
        return _scheme(scheme).commitment(self.nullifier, self.secret)

    def nullifier_hash_for(self, scheme: Union[str, HashScheme]) -> bytes:
        return _scheme(scheme).nullifier_hash(self.nullifier)

    def format(self) -> str:
        return f"{self.nullifier.hex()}-{self.secret.hex()}-{self.amount}"

    @classmethod
    def parse(cls, text: str) -> "Note":
        """
        Parse a note string.

        Raises:
            ValueError: If the string is malformed or holds invalid values
        """
        if not isinstance(text, str):
            raise ValueError("note must be a string")
        parts = text.strip().split("-")
        if len(parts) != 3:
            raise ValueError("note must have the form <nullifier>-<secret>-<amount>")

        nullifier_hex, secret_hex, amount_text = parts
        for label, value in (("nullifier", nullifier_hex), ("secret", secret_hex)):
            if len(value) != FIELD_ELEMENT_BYTES * 2:
                raise ValueError(f"{label} must be {FIELD_ELEMENT_BYTES * 2} hex characters")
        if not amount_text.isdigit():
            raise ValueError("amount must be a decimal integer")

        return cls(
            nullifier=bytes.fromhex(nullifier_hex),
            secret=bytes.fromhex(secret_hex),
            amount=int(amount_text),
        )

    def __repr__(self) -> str:
        # Never leak the secret material into logs
        return f"Note(commitment={self.commitment.hex()[:16]}..., amount={self.amount})"


def _scheme(scheme: Union[str, HashScheme]) -> HashScheme:
    return scheme if isinstance(scheme, HashScheme) else get_scheme(scheme)

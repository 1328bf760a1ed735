"""
⚠️ DRAFT — requires crypto review before production use

Field-element and randomness utilities.

This is a PROTOTYPE implementation for testing and validation.
DO NOT use in production without security audit.
"""

import hashlib
import hmac
import os
import secrets

from .config import (
    FIELD_ELEMENT_BYTES,
    FIELD_MODULUS,
    HASH_FUNCTION,
)


# ============================================================================
# FIELD MODULUS VALIDATION (Run at module import)
# ============================================================================


def _validate_field_modulus():
    """
    Validate FIELD_MODULUS is the BN254 scalar field.

    Raises:
        ValueError: If FIELD_MODULUS is invalid
    """
    bn254_r = (
        21888242871839275222246405745257275088548364400416034343698204186575808495617
    )
    if FIELD_MODULUS != bn254_r:
        raise ValueError(
            f"FIELD_MODULUS mismatch for bn254: "
            f"expected {hex(bn254_r)}, got {hex(FIELD_MODULUS)}"
        )


# Validate FIELD_MODULUS on module import (fail fast)
_validate_field_modulus()


# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    Prevents randomness reuse if the process forks while generating notes.

    Example:
        >>> rng = RandomnessSource()
        >>> secret = rng.get_random_field_element()
    """

    def __init__(self):
        """Initialize randomness source with fork detection."""
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def get_random_scalar(self, max_value: int) -> int:
        """
        Get random scalar in [0, max_value).

        Args:
            max_value: Upper bound (exclusive)

        Returns:
            Random scalar in [0, max_value)
        """
        if os.getpid() != self._pid:
            self.__init__()
        return self._rng.randrange(0, max_value)

    def get_random_bytes(self, n: int) -> bytes:
        """
        Get n cryptographically secure random bytes.
        """
        if os.getpid() != self._pid:
            self.__init__()
        return secrets.token_bytes(n)

    def get_random_field_element(self) -> bytes:
        """
        Get a uniformly random non-zero field element as 32 big-endian bytes.
        """
        value = 1 + self.get_random_scalar(FIELD_MODULUS - 1)
        return int_to_field_bytes(value)


# ============================================================================
# FIELD ELEMENT ENCODING
# ============================================================================


def int_to_field_bytes(value: int) -> bytes:
    """
    Encode an integer in [0, FIELD_MODULUS) as 32 big-endian bytes.

    Raises:
        TypeError: If value is not an int
        ValueError: If value is outside the field
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"value must be int, got {type(value)}")
    if value < 0 or value >= FIELD_MODULUS:
        raise ValueError("value is not a canonical field element")
    return value.to_bytes(FIELD_ELEMENT_BYTES, "big")


def field_bytes_to_int(data: bytes) -> int:
    """
    Decode 32 big-endian bytes into a canonical field element.

    Raises:
        TypeError: If data is not bytes
        ValueError: If data has the wrong length or is >= FIELD_MODULUS
    """
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"data must be bytes, got {type(data)}")
    if len(data) != FIELD_ELEMENT_BYTES:
        raise ValueError(
            f"field element must be {FIELD_ELEMENT_BYTES} bytes, got {len(data)}"
        )
    value = int.from_bytes(data, "big")
    if value >= FIELD_MODULUS:
        raise ValueError("value is not a canonical field element")
    return value


def is_field_element(data) -> bool:
    """True if data is 32 bytes encoding a value below FIELD_MODULUS."""
    try:
        field_bytes_to_int(data)
    except (TypeError, ValueError):
        return False
    return True


# ============================================================================
# HASH FUNCTIONS
# ============================================================================


def hash_to_field(*parts: bytes, domain_sep: bytes) -> bytes:
    """
    Hash byte strings to a field element with domain separation.

    Each part is length-prefixed so that distinct part lists never share an
    encoding. The digest is reduced modulo FIELD_MODULUS.

    Args:
        *parts: Byte strings to hash (at least one)
        domain_sep: Domain separator (must be non-empty)

    Returns:
        32-byte big-endian field element

    Raises:
        TypeError: If inputs are wrong type
        ValueError: If inputs are empty

    Security Note:
        Modulo reduction of a 256-bit digest introduces a bias of about
        2^-2 for BN254; acceptable for a node hash, not for key derivation.
    """
    if not isinstance(domain_sep, bytes):
        raise TypeError(f"domain_sep must be bytes, got {type(domain_sep)}")
    if not domain_sep:
        raise ValueError("Domain separator cannot be empty")
    if not parts:
        raise ValueError("At least one part is required")

    h = hashlib.sha3_256() if HASH_FUNCTION == "SHA3-256" else hashlib.sha256()
    h.update(len(domain_sep).to_bytes(4, "big"))
    h.update(domain_sep)
    for part in parts:
        if not isinstance(part, (bytes, bytearray)):
            raise TypeError(f"parts must be bytes, got {type(part)}")
        h.update(len(part).to_bytes(4, "big"))
        h.update(part)

    value = int.from_bytes(h.digest(), "big") % FIELD_MODULUS
    return value.to_bytes(FIELD_ELEMENT_BYTES, "big")


# ============================================================================
# CONSTANT-TIME OPERATIONS
# ============================================================================


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison to prevent timing attacks.

    Uses hmac.compare_digest which takes constant time regardless of where
    the inputs differ.
    """
    return hmac.compare_digest(a, b)

"""
⚠️ DRAFT — requires crypto review before production use

Custom exceptions for the shielded pool.

Every check in deposit/withdraw is a precondition gate: raising any of these
aborts the whole operation with no state change.
"""


class ShieldedPoolError(Exception):
    """Base exception for shielded pool errors."""

    pass


class ConfigurationError(ShieldedPoolError):
    """Pool configuration error (pool never becomes usable)."""

    pass


class InvalidDepositAmount(ConfigurationError):
    """Deposit denomination must be a positive integer."""

    pass


class InvalidVerificationKey(ConfigurationError):
    """Verifying key is malformed or has the wrong IC length."""

    pass


class InvalidCommitment(ShieldedPoolError):
    """Commitment is not a canonical 32-byte field element."""

    pass


class InvalidProof(ShieldedPoolError):
    """Proof is malformed or failed the pairing check."""

    pass


class InvalidPublicInputs(ShieldedPoolError):
    """Public input vector has the wrong shape or a non-canonical element."""

    pass


class InvalidRecipient(ShieldedPoolError):
    """Recipient encoded in the public inputs does not match the target."""

    pass


class InvalidFee(ShieldedPoolError):
    """Fee exceeds the pool denomination."""

    pass


class NullifierAlreadyUsed(ShieldedPoolError):
    """Double-spend attempt."""

    pass


class NullifierCapacityExceeded(ShieldedPoolError):
    """Nullifier registry is at its declared capacity."""

    pass


class InvalidMerkleRoot(ShieldedPoolError):
    """Root is neither current nor in the historical window."""

    pass


class TreeFull(ShieldedPoolError):
    """Accumulator holds 2^depth leaves; the pool accepts no more deposits."""

    pass


class HashingError(ShieldedPoolError):
    """Internal invariant violation while hashing tree nodes."""

    pass


class LedgerError(ShieldedPoolError):
    """Value transfer failed."""

    pass


class InsufficientFunds(LedgerError):
    """Account or pool balance too low for the transfer."""

    pass


class SerializationError(ShieldedPoolError):
    """Persisted state or wire data could not be encoded/decoded."""

    pass

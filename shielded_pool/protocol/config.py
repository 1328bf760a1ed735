"""
⚠️ DRAFT — requires crypto review before production use

Protocol configuration for the shielded pool.

This is a PROTOTYPE implementation for testing and validation.
DO NOT use in production without security audit.

All values that reach a public input or a tree node are BN254 scalar field
elements, so the accumulator output can be consumed directly by a Groth16
circuit compiled over BN254 (alt_bn128).
"""

# ============================================================================
# CURVE SELECTION
# ============================================================================

# IMPLEMENTATION: BN254 (alt_bn128) via py_ecc
# - Pairing-friendly (required for Groth16)
# - Same curve as the EIP-196/197 precompiles and the Solana alt_bn128 syscalls
# - Embedding degree 12, cofactor 1 on G1

CURVE_NAME = "bn254"
CURVE_LIBRARY = "py_ecc"

# Scalar field (public inputs, tree nodes, note secrets)
FIELD_MODULUS = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

# Base field (point coordinates)
BASE_FIELD_MODULUS = (
    21888242871839275222246405745257275088696311157297823662689037894645226208583
)

FIELD_ELEMENT_BYTES = 32

# ============================================================================
# WIRE SIZES
# ============================================================================

G1_POINT_BYTES = 64  # x || y
G2_POINT_BYTES = 128  # x.c1 || x.c0 || y.c1 || y.c0
PROOF_BYTES = G1_POINT_BYTES + G2_POINT_BYTES + G1_POINT_BYTES

ADDRESS_BYTES = 32
ADDRESS_HALF_BYTES = 16

# ============================================================================
# MERKLE ACCUMULATOR
# ============================================================================

DEFAULT_TREE_DEPTH = 20  # 2^20 leaves
MAX_TREE_DEPTH = 32
ROOT_HISTORY_SIZE = 100

# Empty-leaf value; zero hashes are derived from it level by level
ZERO_VALUE = b"\x00" * FIELD_ELEMENT_BYTES

# ============================================================================
# PUBLIC INPUTS
# ============================================================================

# [root, nullifierHash, recipientHi, recipientLo, relayerHi, relayerLo, fee]
PUBLIC_INPUTS_COUNT = 7
VERIFYING_KEY_IC_LENGTH = PUBLIC_INPUTS_COUNT + 1

# ============================================================================
# HASH FUNCTIONS
# ============================================================================

HASH_FUNCTION = "SHA256"
HASH_OUTPUT_BITS = 256

DOMAIN_SEPARATOR_PREFIX = b"SHIELDED_POOL_V1_"

DOMAIN_SEPARATORS = {
    "merkle_node": DOMAIN_SEPARATOR_PREFIX + b"MERKLE_NODE",
    "note_commitment": DOMAIN_SEPARATOR_PREFIX + b"NOTE_COMMITMENT",
    "nullifier_hash": DOMAIN_SEPARATOR_PREFIX + b"NULLIFIER_HASH",
    "bitmap_index": DOMAIN_SEPARATOR_PREFIX + b"BITMAP_INDEX",
}

# Node, commitment and nullifier-hash scheme: "sha256" or "poseidon"
DEFAULT_HASH_SCHEME = "sha256"

# Poseidon over BN254 with the circomlib round numbers (x^5 S-box).
# Partial rounds are indexed by width - 2, width = inputs + 1.
POSEIDON_FULL_ROUNDS = 8
POSEIDON_PARTIAL_ROUNDS = (56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68)
POSEIDON_MAX_INPUTS = len(POSEIDON_PARTIAL_ROUNDS)
POSEIDON_FIELD_BITS = 254

# ============================================================================
# NULLIFIER STORAGE
# ============================================================================

DEFAULT_NULLIFIER_BITMAP_BITS = 1 << 20

# ============================================================================
# SERIALIZATION
# ============================================================================

SERIALIZATION_FORMAT = "CBOR"
STATE_VERSION = 1  # Increment for breaking changes

# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert FIELD_MODULUS < 2 ** (FIELD_ELEMENT_BYTES * 8), "Field too large"
    assert FIELD_MODULUS < BASE_FIELD_MODULUS, "Scalar field must fit base field"
    assert CURVE_NAME == "bn254", "Invalid curve"
    assert CURVE_LIBRARY == "py_ecc", "bn254 pairings require py_ecc"
    assert HASH_FUNCTION in ["SHA256", "SHA3-256"], "Invalid hash function"
    assert DEFAULT_HASH_SCHEME in ["sha256", "poseidon"], "Invalid hash scheme"
    assert POSEIDON_FULL_ROUNDS % 2 == 0, "Full rounds split evenly around partial rounds"
    assert FIELD_MODULUS.bit_length() == POSEIDON_FIELD_BITS
    assert 1 <= DEFAULT_TREE_DEPTH <= MAX_TREE_DEPTH, "Invalid default depth"
    assert ROOT_HISTORY_SIZE >= 1, "Root history must hold at least one root"
    assert VERIFYING_KEY_IC_LENGTH == PUBLIC_INPUTS_COUNT + 1
    assert PROOF_BYTES == 256
    assert ADDRESS_HALF_BYTES * 2 == ADDRESS_BYTES
    assert len(ZERO_VALUE) == FIELD_ELEMENT_BYTES

    return True


# Auto-validate on import
validate_config()

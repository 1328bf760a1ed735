"""
Statement registry for withdrawal proofs.
Defines public-input layouts, their verifying key shapes, and which of them
a pool accepts.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from .exceptions import InvalidPublicInputs, InvalidVerificationKey
from .security import is_field_element


class StatementType(Enum):
    """Withdrawal statement layouts"""

    # Canonical layout
    WITHDRAW_V2 = "withdraw_v2"

    # Earlier two-input circuit; kept so old proofs are recognised and refused
    WITHDRAW_V1_SIMPLIFIED = "withdraw_v1_simplified"


@dataclass(frozen=True)
class StatementSpec:
    """
    Specification for a withdrawal statement.

    Attributes:
        statement_type: Type identifier
        version: Statement version
        public_input_schema: Ordered public input names, as the circuit exposes them
        compatible: Whether pools accept proofs for this statement
        description: Human-readable statement description
    """

    statement_type: StatementType
    version: int
    public_input_schema: Tuple[str, ...]
    compatible: bool
    description: str

    @property
    def num_public_inputs(self) -> int:
        return len(self.public_input_schema)

    @property
    def ic_length(self) -> int:
        return len(self.public_input_schema) + 1


# Registry of all known statements
STATEMENT_REGISTRY: Dict[StatementType, StatementSpec] = {
    StatementType.WITHDRAW_V2: StatementSpec(
        statement_type=StatementType.WITHDRAW_V2,
        version=2,
        public_input_schema=(
            "root",
            "nullifier_hash",
            "recipient_hi",
            "recipient_lo",
            "relayer_hi",
            "relayer_lo",
            "fee",
        ),
        compatible=True,
        description="Prove knowledge of an unspent note under a known root, "
        "binding recipient, relayer and fee",
    ),
    StatementType.WITHDRAW_V1_SIMPLIFIED: StatementSpec(
        statement_type=StatementType.WITHDRAW_V1_SIMPLIFIED,
        version=1,
        public_input_schema=("root", "nullifier_hash"),
        compatible=False,
        description="Root and nullifier only; recipient not bound, not accepted",
    ),
}

DEFAULT_STATEMENT = StatementType.WITHDRAW_V2


def get_statement_spec(statement_type: StatementType) -> StatementSpec:
    """Get specification for a statement type"""
    if statement_type not in STATEMENT_REGISTRY:
        raise ValueError(f"Unknown statement type: {statement_type}")
    return STATEMENT_REGISTRY[statement_type]


def require_compatible(statement_type: StatementType) -> StatementSpec:
    """
    Return the spec if pools accept it.

    Raises:
        InvalidVerificationKey: For statements pools never accept
    """
    spec = get_statement_spec(statement_type)
    if not spec.compatible:
        raise InvalidVerificationKey(
            f"{statement_type.value} is not supported by this pool"
        )
    return spec


def validate_public_inputs(
    statement_type: StatementType, values: Sequence[bytes]
) -> None:
    """
    Validate a public input vector against the statement layout.

    Raises:
        InvalidPublicInputs: Wrong arity or a non-canonical element
    """
    spec = get_statement_spec(statement_type)

    if len(values) != spec.num_public_inputs:
        raise InvalidPublicInputs(
            f"{statement_type.value} expects {spec.num_public_inputs} public inputs, "
            f"got {len(values)}"
        )

    for name, value in zip(spec.public_input_schema, values):
        if not is_field_element(value):
            raise InvalidPublicInputs(
                f"Field '{name}' must be a 32-byte canonical field element"
            )

"""
⚠️ DRAFT — requires crypto review before production use

Shielded pool: fixed-denomination deposits, proof-gated withdrawals.

Each ShieldedPool is an independent object owning its accumulator,
nullifier store and verifier; several pools (one per denomination) can live
in the same process.

Deposit:
    commitment check -> capacity check -> ledger.transfer_in -> tree insert
Withdraw:
    Groth16 verify -> root window -> recipient binding -> fee bound
    -> pool balance -> nullifier unspent -> ledger.transfer_out (recipient,
    relayer) -> nullifier check-and-mark

A failing gate raises and leaves the pool, the tree, the registry and the
ledger exactly as they were. A failed transfer reverses the legs already paid
and leaves the nullifier unmarked, so the note can be withdrawn again.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import cbor2

from .config import (
    ADDRESS_BYTES,
    DEFAULT_HASH_SCHEME,
    DEFAULT_TREE_DEPTH,
    ROOT_HISTORY_SIZE,
    STATE_VERSION,
    VERIFYING_KEY_IC_LENGTH,
)
from .exceptions import (
    InsufficientFunds,
    InvalidCommitment,
    InvalidDepositAmount,
    InvalidFee,
    InvalidMerkleRoot,
    InvalidProof,
    InvalidRecipient,
    InvalidVerificationKey,
    NullifierAlreadyUsed,
    NullifierCapacityExceeded,
    SerializationError,
    TreeFull,
)
from .factory import get_accumulator, get_nullifier_registry
from .feature_flags import get_hash_scheme
from .hashing import get_scheme
from .interfaces import CommitmentAccumulator, NullifierStore, PoolLedger, TreeStorageService
from .merkle import IncrementalMerkleTree
from .nullifiers import registry_from_state
from .security import is_field_element
from .snark.keys import Proof, VerifyingKey
from .snark.verifier import Groth16Verifier
from .statements import DEFAULT_STATEMENT, StatementType, require_compatible
from .types import ZERO_ADDRESS, DepositRecorded, PublicInputs, WithdrawalRecorded

logger = logging.getLogger(__name__)

PoolEvent = Union[DepositRecorded, WithdrawalRecorded]
Listener = Callable[[PoolEvent], None]


class ShieldedPool:
    """
    One fixed-denomination shielded pool.

    Use ShieldedPool.initialize() (or restore()) rather than the constructor.

    Example:
        >>> pool = ShieldedPool.initialize(100_000_000, vk, depth=20, ledger=ledger)
        >>> pool.deposit(alice, note.commitment)
        0
        >>> pool.withdraw(proof, public_inputs, recipient=bob)
    """

    def __init__(
        self,
        deposit_amount: int,
        verifying_key: VerifyingKey,
        accumulator: CommitmentAccumulator,
        nullifier_registry: NullifierStore,
        ledger: PoolLedger,
        *,
        statement: StatementType = DEFAULT_STATEMENT,
        hash_scheme: str = DEFAULT_HASH_SCHEME,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._deposit_amount = deposit_amount
        self._verifying_key = verifying_key
        self._verifier = Groth16Verifier(verifying_key)
        self._accumulator = accumulator
        self._nullifiers = nullifier_registry
        self._ledger = ledger
        self._statement = statement
        self._hash_scheme = get_scheme(hash_scheme)
        self._clock = clock
        self._lock = threading.RLock()
        self._events: List[PoolEvent] = []
        self._listeners: List[Listener] = []

    # ========================================================================
    # INITIALIZE
    # ========================================================================

    @classmethod
    def initialize(
        cls,
        deposit_amount: int,
        verifying_key: VerifyingKey,
        depth: int = DEFAULT_TREE_DEPTH,
        *,
        ledger: PoolLedger,
        root_history_size: int = ROOT_HISTORY_SIZE,
        nullifier_capacity: Optional[int] = None,
        accumulator: Optional[CommitmentAccumulator] = None,
        nullifier_registry: Optional[NullifierStore] = None,
        tree_backend: Optional[str] = None,
        tree_service: Optional[TreeStorageService] = None,
        nullifier_store: Optional[str] = None,
        hash_scheme: Optional[str] = None,
        statement: StatementType = DEFAULT_STATEMENT,
        clock: Callable[[], float] = time.time,
    ) -> "ShieldedPool":
        """
        Configure a new pool.

        Args:
            deposit_amount: Fixed denomination, positive int
            verifying_key: Groth16 key with one IC point per public input plus one
            depth: Tree depth (capacity 2**depth deposits)
            ledger: Custody collaborator
            root_history_size: Superseded roots that stay valid
            nullifier_capacity: Registry ceiling, defaults to 2**depth
            accumulator / nullifier_registry: Prebuilt backends (skip the factory)
            tree_backend / nullifier_store: Factory hints ("incremental"/"remote",
                "map"/"bitmap")
            hash_scheme: "sha256" or "poseidon" for nodes, commitments and
                nullifier hashes; must match the withdrawal circuit. A prebuilt
                accumulator or tree service must hash the same way.

        Raises:
            InvalidDepositAmount: deposit_amount is not a positive int
            InvalidVerificationKey: Wrong key type or IC length, or a statement
                pools do not accept
        """
        if (
            not isinstance(deposit_amount, int)
            or isinstance(deposit_amount, bool)
            or deposit_amount <= 0
        ):
            raise InvalidDepositAmount(
                f"deposit amount must be a positive integer, got {deposit_amount!r}"
            )
        if not isinstance(verifying_key, VerifyingKey):
            raise InvalidVerificationKey("verifying_key must be a VerifyingKey")

        spec = require_compatible(statement)
        if len(verifying_key.ic) != spec.ic_length or spec.ic_length != VERIFYING_KEY_IC_LENGTH:
            raise InvalidVerificationKey(
                f"verifying key must have {VERIFYING_KEY_IC_LENGTH} IC points, "
                f"got {len(verifying_key.ic)}"
            )
        if not isinstance(ledger, PoolLedger):
            raise TypeError("ledger must implement PoolLedger")

        scheme = get_scheme(get_hash_scheme(hash_scheme))
        if accumulator is None:
            accumulator = get_accumulator(
                depth,
                root_history_size,
                service=tree_service,
                prefer=tree_backend,
                hasher=scheme.node,
            )
        if nullifier_registry is None:
            capacity = nullifier_capacity if nullifier_capacity is not None else 1 << accumulator.depth
            nullifier_registry = get_nullifier_registry(capacity, prefer=nullifier_store)

        pool = cls(
            deposit_amount,
            verifying_key,
            accumulator,
            nullifier_registry,
            ledger,
            statement=statement,
            hash_scheme=scheme.name,
            clock=clock,
        )
        logger.info(
            "initialized pool: deposit_amount=%d depth=%d nullifier_capacity=%d hash=%s",
            deposit_amount,
            accumulator.depth,
            nullifier_registry.capacity,
            scheme.name,
        )
        return pool

    # ========================================================================
    # ACCESSORS
    # ========================================================================

    @property
    def deposit_amount(self) -> int:
        return self._deposit_amount

    @property
    def depth(self) -> int:
        return self._accumulator.depth

    @property
    def root(self) -> bytes:
        with self._lock:
            return self._accumulator.root

    @property
    def next_index(self) -> int:
        with self._lock:
            return self._accumulator.next_index

    @property
    def verifying_key(self) -> VerifyingKey:
        return self._verifying_key

    @property
    def statement(self) -> StatementType:
        return self._statement

    @property
    def hash_scheme(self) -> str:
        return self._hash_scheme.name

    @property
    def ledger(self) -> PoolLedger:
        return self._ledger

    @property
    def accumulator(self) -> CommitmentAccumulator:
        return self._accumulator

    @property
    def nullifier_registry(self) -> NullifierStore:
        return self._nullifiers

    @property
    def events(self) -> List[PoolEvent]:
        with self._lock:
            return list(self._events)

    def is_spent(self, nullifier_hash: bytes) -> bool:
        return self._nullifiers.is_spent(nullifier_hash)

    def is_known_root(self, root: bytes) -> bool:
        with self._lock:
            return self._accumulator.is_valid_root(root)

    def known_roots(self) -> List[bytes]:
        with self._lock:
            return self._accumulator.known_roots()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an event listener; returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ========================================================================
    # DEPOSIT
    # ========================================================================

    def deposit(self, depositor: bytes, commitment: bytes) -> int:
        """
        Lock deposit_amount from depositor behind commitment.

        Returns:
            Leaf index assigned to the commitment

        Raises:
            InvalidCommitment: commitment is not a canonical field element
            TreeFull: No leaves left (checked before any funds move)
            LedgerError / InsufficientFunds: transfer_in refused
            HashingError: Tree insert failed; the deposit is refunded and the
                error re-raised (any insert error is refunded the same way)
        """
        if not is_field_element(commitment):
            raise InvalidCommitment("commitment must be a 32-byte canonical field element")
        commitment = bytes(commitment)

        with self._lock:
            if self._accumulator.is_full:
                raise TreeFull(f"pool tree of depth {self._accumulator.depth} is full")

            self._ledger.transfer_in(depositor, self._deposit_amount)
            try:
                leaf_index = self._accumulator.insert(commitment)
            except Exception:
                self._ledger.transfer_out(depositor, self._deposit_amount)
                logger.error("tree insert failed, deposit refunded")
                raise

            event = DepositRecorded(
                commitment=commitment,
                leaf_index=leaf_index,
                root=self._accumulator.root,
                timestamp=self._clock(),
            )
            self._record(event)

        logger.info("deposit recorded: leaf_index=%d", leaf_index)
        return leaf_index

    # ========================================================================
    # WITHDRAW
    # ========================================================================

    def withdraw(
        self,
        proof: Union[Proof, bytes],
        public_inputs: Union[PublicInputs, Sequence[bytes]],
        recipient: bytes,
    ) -> WithdrawalRecorded:
        """
        Release deposit_amount - fee to recipient (and fee to the relayer).

        Raises:
            InvalidPublicInputs: Wrong arity or non-canonical inputs
            InvalidProof: Malformed proof or pairing check failed
            InvalidMerkleRoot: Root outside the current + historical window
            InvalidRecipient: recipient differs from the proof-bound address
            InvalidFee: fee above deposit_amount, or a nonzero fee with no relayer
            InsufficientFunds: Pool cannot cover the payout
            NullifierAlreadyUsed: Note already withdrawn
            NullifierCapacityExceeded: Registry is full
            LedgerError: A payout leg failed; earlier legs are reversed and the
                nullifier stays unspent
        """
        if not isinstance(public_inputs, PublicInputs):
            public_inputs = PublicInputs.from_list(list(public_inputs))

        # Verification reads only the immutable key, so it runs outside the lock
        if not self._verifier.verify(proof, public_inputs.as_list()):
            logger.warning("withdrawal rejected: proof failed verification")
            raise InvalidProof("proof failed verification")

        with self._lock:
            if not self._accumulator.is_valid_root(public_inputs.root):
                logger.warning("withdrawal rejected: unknown root")
                raise InvalidMerkleRoot("root is not current or in the recent history")

            if not isinstance(recipient, (bytes, bytearray)) or len(recipient) != ADDRESS_BYTES:
                raise InvalidRecipient(f"recipient must be {ADDRESS_BYTES} bytes")
            recipient = bytes(recipient)
            if public_inputs.recipient != recipient:
                logger.warning("withdrawal rejected: recipient mismatch")
                raise InvalidRecipient("recipient does not match the proof")

            fee = public_inputs.fee_amount
            if fee > self._deposit_amount:
                raise InvalidFee(f"fee {fee} exceeds deposit amount {self._deposit_amount}")
            relayer = public_inputs.relayer
            if fee > 0 and relayer == ZERO_ADDRESS:
                raise InvalidFee("nonzero fee requires a relayer")

            balance = self._ledger.pool_balance()
            if balance < self._deposit_amount:
                raise InsufficientFunds(
                    f"pool balance {balance} below deposit amount {self._deposit_amount}"
                )

            nullifier_hash = public_inputs.nullifier_hash
            if self._nullifiers.is_spent(nullifier_hash):
                logger.warning("withdrawal rejected: nullifier already spent")
                raise NullifierAlreadyUsed("nullifier already spent")
            if len(self._nullifiers) >= self._nullifiers.capacity:
                raise NullifierCapacityExceeded(
                    f"nullifier registry full ({self._nullifiers.capacity} entries)"
                )

            # The nullifier is marked only once every transfer has gone through
            payout = self._deposit_amount - fee
            paid: List[Tuple[bytes, int]] = []
            try:
                if payout > 0:
                    self._ledger.transfer_out(recipient, payout)
                    paid.append((recipient, payout))
                if fee > 0:
                    self._ledger.transfer_out(relayer, fee)
                    paid.append((relayer, fee))
                self._nullifiers.check_and_mark(nullifier_hash)
            except Exception:
                self._reverse_payouts(paid)
                raise

            event = WithdrawalRecorded(
                nullifier_hash=nullifier_hash,
                recipient=recipient,
                relayer=relayer,
                fee=fee,
                timestamp=self._clock(),
            )
            self._record(event)

        logger.info("withdrawal recorded: fee=%d", fee)
        return event

    def _reverse_payouts(self, paid: List[Tuple[bytes, int]]) -> None:
        for account, amount in reversed(paid):
            try:
                self._ledger.transfer_in(account, amount)
            except Exception:
                logger.exception("could not reverse payout of %d", amount)
        if paid:
            logger.error("withdrawal failed after payout, %d transfer(s) reversed", len(paid))

    # ========================================================================
    # EVENTS
    # ========================================================================

    def _record(self, event: PoolEvent) -> None:
        self._events.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # State is already committed; a faulty listener cannot undo it
                logger.exception("pool event listener failed")

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def snapshot(self) -> bytes:
        """
        CBOR snapshot: {v, config, verifying_key, tree, nullifiers}.

        The ledger is not included; it is owned by the caller.
        """
        with self._lock:
            if not isinstance(self._accumulator, IncrementalMerkleTree):
                raise SerializationError("only the incremental tree can be snapshotted")
            to_state = getattr(self._nullifiers, "to_state", None)
            if to_state is None:
                raise SerializationError("nullifier store does not support snapshots")
            return cbor2.dumps(
                {
                    "v": STATE_VERSION,
                    "config": {
                        "deposit_amount": self._deposit_amount,
                        "statement": self._statement.value,
                        "hash": self._hash_scheme.name,
                    },
                    "verifying_key": self._verifying_key.to_bytes(),
                    "tree": self._accumulator.to_state(),
                    "nullifiers": to_state(),
                }
            )

    @classmethod
    def restore(
        cls,
        data: bytes,
        ledger: PoolLedger,
        *,
        clock: Callable[[], float] = time.time,
    ) -> "ShieldedPool":
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise SerializationError(f"Failed to deserialize pool snapshot: {e}")

        if not isinstance(obj, dict):
            raise SerializationError("Invalid pool snapshot format")
        if obj.get("v") != STATE_VERSION:
            raise SerializationError(f"Unsupported pool snapshot version: {obj.get('v')}")

        try:
            config: Dict[str, Any] = obj["config"]
            statement = StatementType(config.get("statement", DEFAULT_STATEMENT.value))
            vk_bytes = obj["verifying_key"]
            tree_state = obj["tree"]
            nullifier_state = obj["nullifiers"]
            deposit_amount = config["deposit_amount"]
            scheme = get_scheme(config.get("hash", "sha256"))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise SerializationError(f"invalid pool snapshot: {exc}") from exc

        return cls.initialize(
            deposit_amount,
            VerifyingKey.from_bytes(vk_bytes),
            ledger=ledger,
            accumulator=IncrementalMerkleTree.from_state(tree_state, hasher=scheme.node),
            nullifier_registry=registry_from_state(nullifier_state),
            hash_scheme=scheme.name,
            statement=statement,
            clock=clock,
        )

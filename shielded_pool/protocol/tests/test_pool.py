"""
Unit tests for ShieldedPool deposit / withdraw gating.

Withdrawal tests run a real pairing check per call, so each one exercises a
single gate.
"""

import cbor2
import pytest

from shielded_pool.protocol import feature_flags
from shielded_pool.protocol.adapters.tree_service import (
    InMemoryTreeService,
    RemoteTreeAccumulator,
)
from shielded_pool.protocol.exceptions import (
    HashingError,
    InsufficientFunds,
    InvalidCommitment,
    InvalidDepositAmount,
    InvalidFee,
    InvalidMerkleRoot,
    InvalidProof,
    InvalidPublicInputs,
    InvalidRecipient,
    InvalidVerificationKey,
    LedgerError,
    NullifierAlreadyUsed,
    SerializationError,
    TreeFull,
)
from shielded_pool.protocol.interfaces import TreeStorageService
from shielded_pool.protocol.ledger import InMemoryLedger
from shielded_pool.protocol.merkle import IncrementalMerkleTree, build_tree, hash_node
from shielded_pool.protocol.notes import Note
from shielded_pool.protocol.nullifiers import BitmapNullifierRegistry, NullifierRegistry
from shielded_pool.protocol.poseidon import poseidon_node
from shielded_pool.protocol.pool import ShieldedPool
from shielded_pool.protocol.statements import StatementType
from shielded_pool.protocol.test_vectors.groth16_vectors import (
    default_vectors,
    make_verifying_key,
    simulate_proof,
)
from shielded_pool.protocol.types import (
    ZERO_ADDRESS,
    DepositRecorded,
    PublicInputs,
    WithdrawalRecorded,
)

AMOUNT = 100
ALICE = b"\xa1" * 32
BOB = b"\xb0" * 32
RELAYER = b"\xee" * 32


def _fe(value: int) -> bytes:
    return value.to_bytes(32, "big")


class FlakyLedger(InMemoryLedger):
    """Ledger whose payouts to one account fail while `failures` is positive."""

    def __init__(self, account: bytes, failures: int = 1):
        super().__init__()
        self.account = account
        self.failures = failures

    def transfer_out(self, recipient: bytes, amount: int) -> None:
        if recipient == self.account and self.failures > 0:
            self.failures -= 1
            raise LedgerError("payout rail unavailable")
        super().transfer_out(recipient, amount)


class UnreachableTreeService(TreeStorageService):
    def insert(self, leaf: bytes) -> int:
        raise ConnectionError("tree service unreachable")

    def current_root(self) -> bytes:
        return IncrementalMerkleTree(depth=4).root


@pytest.fixture(autouse=True)
def reset_feature_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    feature_flags.set_tree_backend(None)
    feature_flags.set_nullifier_store(None)
    feature_flags.set_hash_scheme(None)
    monkeypatch.delenv("SHIELDED_POOL_TREE_BACKEND", raising=False)
    monkeypatch.delenv("SHIELDED_POOL_NULLIFIER_STORE", raising=False)
    monkeypatch.delenv("SHIELDED_POOL_HASH", raising=False)


@pytest.fixture(scope="module")
def vk():
    return default_vectors()[0]


@pytest.fixture(scope="module")
def trapdoor():
    return default_vectors()[1]


@pytest.fixture
def ledger():
    ledger = InMemoryLedger()
    ledger.fund(ALICE, 10 * AMOUNT)
    return ledger


@pytest.fixture
def pool(vk, ledger):
    return ShieldedPool.initialize(AMOUNT, vk, depth=4, ledger=ledger, clock=lambda: 42.0)


def _withdrawal(trapdoor, root, note, recipient=BOB, relayer=b"\x00" * 32, fee=0):
    inputs = PublicInputs.build(root, note.nullifier_hash, recipient, relayer=relayer, fee=fee)
    return simulate_proof(trapdoor, inputs.as_list()), inputs


# ============================================================================
# INITIALIZE
# ============================================================================


class TestInitialize:
    @pytest.mark.parametrize("amount", [0, -1, True, 1.0, "100"])
    def test_rejects_bad_deposit_amount(self, vk, ledger, amount):
        with pytest.raises(InvalidDepositAmount):
            ShieldedPool.initialize(amount, vk, depth=4, ledger=ledger)

    def test_rejects_wrong_ic_length(self, ledger):
        small_vk, _ = make_verifying_key(2, seed=b"small")
        with pytest.raises(InvalidVerificationKey, match="8 IC points"):
            ShieldedPool.initialize(AMOUNT, small_vk, depth=4, ledger=ledger)

    def test_rejects_simplified_statement(self, vk, ledger):
        with pytest.raises(InvalidVerificationKey, match="not supported"):
            ShieldedPool.initialize(
                AMOUNT,
                vk,
                depth=4,
                ledger=ledger,
                statement=StatementType.WITHDRAW_V1_SIMPLIFIED,
            )

    def test_rejects_non_key(self, ledger):
        with pytest.raises(InvalidVerificationKey):
            ShieldedPool.initialize(AMOUNT, b"\x00" * 100, depth=4, ledger=ledger)

    def test_defaults(self, pool):
        assert pool.deposit_amount == AMOUNT
        assert pool.depth == 4
        assert pool.next_index == 0
        assert isinstance(pool.accumulator, IncrementalMerkleTree)
        assert isinstance(pool.nullifier_registry, NullifierRegistry)
        assert pool.nullifier_registry.capacity == 16
        assert pool.is_known_root(pool.root)

    def test_bitmap_store_from_flag(self, vk, ledger):
        feature_flags.set_nullifier_store("bitmap")
        pool = ShieldedPool.initialize(
            AMOUNT, vk, depth=4, ledger=ledger, nullifier_capacity=1024
        )
        assert isinstance(pool.nullifier_registry, BitmapNullifierRegistry)

    def test_pools_are_independent(self, vk, ledger):
        a = ShieldedPool.initialize(AMOUNT, vk, depth=4, ledger=ledger)
        b = ShieldedPool.initialize(AMOUNT * 10, vk, depth=4, ledger=ledger)
        a.deposit(ALICE, _fe(1))
        assert a.next_index == 1
        assert b.next_index == 0
        assert a.accumulator is not b.accumulator


# ============================================================================
# DEPOSIT
# ============================================================================


class TestDeposit:
    def test_deposit_moves_funds_and_inserts(self, pool, ledger):
        empty_root = pool.root
        assert pool.deposit(ALICE, _fe(1)) == 0
        assert pool.deposit(ALICE, _fe(2)) == 1
        assert pool.next_index == 2
        assert pool.root != empty_root
        assert ledger.pool_balance() == 2 * AMOUNT
        assert ledger.balance_of(ALICE) == 8 * AMOUNT

    def test_deposit_event(self, pool):
        received = []
        pool.subscribe(received.append)
        pool.deposit(ALICE, _fe(1))
        event = pool.events[0]
        assert isinstance(event, DepositRecorded)
        assert event.leaf_index == 0
        assert event.commitment == _fe(1)
        assert event.root == pool.root
        assert event.timestamp == 42.0
        assert received == [event]

    def test_unsubscribe(self, pool):
        received = []
        unsubscribe = pool.subscribe(received.append)
        unsubscribe()
        pool.deposit(ALICE, _fe(1))
        assert received == []

    def test_listener_failure_does_not_undo_deposit(self, pool):
        def broken(event):
            raise RuntimeError("listener down")

        pool.subscribe(broken)
        assert pool.deposit(ALICE, _fe(1)) == 0
        assert pool.next_index == 1

    @pytest.mark.parametrize("commitment", [b"\xff" * 32, b"\x01" * 31, None])
    def test_invalid_commitment_moves_nothing(self, pool, ledger, commitment):
        with pytest.raises(InvalidCommitment):
            pool.deposit(ALICE, commitment)
        assert ledger.pool_balance() == 0
        assert pool.next_index == 0

    def test_insufficient_funds_inserts_nothing(self, pool):
        root = pool.root
        with pytest.raises(InsufficientFunds):
            pool.deposit(BOB, _fe(1))
        assert pool.root == root
        assert pool.next_index == 0
        assert pool.events == []

    def test_tree_full_before_funds_move(self, vk, ledger):
        pool = ShieldedPool.initialize(AMOUNT, vk, depth=1, ledger=ledger)
        pool.deposit(ALICE, _fe(1))
        pool.deposit(ALICE, _fe(2))
        with pytest.raises(TreeFull):
            pool.deposit(ALICE, _fe(3))
        assert ledger.pool_balance() == 2 * AMOUNT

    def test_hashing_error_refunds(self, vk, ledger):
        poison = _fe(666)

        def hasher(left, right):
            if poison in (left, right):
                raise RuntimeError("boom")
            return hash_node(left, right)

        tree = IncrementalMerkleTree(depth=3, hasher=hasher)
        pool = ShieldedPool.initialize(AMOUNT, vk, ledger=ledger, accumulator=tree)
        with pytest.raises(HashingError):
            pool.deposit(ALICE, poison)
        assert ledger.balance_of(ALICE) == 10 * AMOUNT
        assert ledger.pool_balance() == 0
        assert pool.next_index == 0

    def test_remote_backend(self, vk, ledger):
        service = InMemoryTreeService(depth=4)
        pool = ShieldedPool.initialize(
            AMOUNT, vk, depth=4, ledger=ledger, tree_backend="remote", tree_service=service
        )
        assert isinstance(pool.accumulator, RemoteTreeAccumulator)
        pool.deposit(ALICE, _fe(1))
        assert pool.root == service.current_root()

    def test_tree_service_failure_refunds(self, vk, ledger):
        pool = ShieldedPool.initialize(
            AMOUNT,
            vk,
            depth=4,
            ledger=ledger,
            tree_backend="remote",
            tree_service=UnreachableTreeService(),
        )
        with pytest.raises(HashingError, match="unreachable"):
            pool.deposit(ALICE, _fe(1))
        assert ledger.balance_of(ALICE) == 10 * AMOUNT
        assert ledger.pool_balance() == 0
        assert pool.next_index == 0
        assert pool.events == []


# ============================================================================
# WITHDRAW
# ============================================================================


class TestWithdraw:
    def test_withdraw_with_relayer_fee(self, pool, ledger, trapdoor):
        note = Note(nullifier=_fe(11), secret=_fe(12), amount=AMOUNT)
        pool.deposit(ALICE, note.commitment)
        proof, inputs = _withdrawal(trapdoor, pool.root, note, relayer=RELAYER, fee=7)

        event = pool.withdraw(proof, inputs, BOB)

        assert isinstance(event, WithdrawalRecorded)
        assert event.fee == 7
        assert event.relayer == RELAYER
        assert ledger.balance_of(BOB) == AMOUNT - 7
        assert ledger.balance_of(RELAYER) == 7
        assert ledger.pool_balance() == 0
        assert pool.is_spent(note.nullifier_hash)
        assert pool.events[-1] == event

    def test_double_spend_rejected(self, pool, ledger, trapdoor):
        note = Note(nullifier=_fe(21), secret=_fe(22), amount=AMOUNT)
        pool.deposit(ALICE, note.commitment)
        pool.deposit(ALICE, _fe(5))
        proof, inputs = _withdrawal(trapdoor, pool.root, note)
        pool.withdraw(proof, inputs.as_list(), BOB)
        balance = ledger.balance_of(BOB)
        with pytest.raises(NullifierAlreadyUsed):
            pool.withdraw(proof, inputs, BOB)
        assert ledger.balance_of(BOB) == balance
        assert ledger.pool_balance() == AMOUNT

    def test_unknown_root_rejected(self, pool, ledger, trapdoor):
        note = Note(nullifier=_fe(31), secret=_fe(32), amount=AMOUNT)
        pool.deposit(ALICE, note.commitment)
        proof, inputs = _withdrawal(trapdoor, _fe(123456), note)
        with pytest.raises(InvalidMerkleRoot):
            pool.withdraw(proof, inputs, BOB)
        assert not pool.is_spent(note.nullifier_hash)
        assert ledger.pool_balance() == AMOUNT

    def test_recipient_mismatch_rejected(self, pool, ledger, trapdoor):
        note = Note(nullifier=_fe(41), secret=_fe(42), amount=AMOUNT)
        pool.deposit(ALICE, note.commitment)
        proof, inputs = _withdrawal(trapdoor, pool.root, note, recipient=BOB)
        with pytest.raises(InvalidRecipient):
            pool.withdraw(proof, inputs, ALICE)
        assert not pool.is_spent(note.nullifier_hash)

    def test_fee_above_amount_rejected(self, pool, trapdoor):
        note = Note(nullifier=_fe(51), secret=_fe(52), amount=AMOUNT)
        pool.deposit(ALICE, note.commitment)
        proof, inputs = _withdrawal(trapdoor, pool.root, note, relayer=RELAYER, fee=AMOUNT + 1)
        with pytest.raises(InvalidFee):
            pool.withdraw(proof, inputs, BOB)
        assert not pool.is_spent(note.nullifier_hash)

    def test_fee_without_relayer_rejected(self, pool, ledger, trapdoor):
        note = Note(nullifier=_fe(55), secret=_fe(56), amount=AMOUNT)
        pool.deposit(ALICE, note.commitment)
        proof, inputs = _withdrawal(trapdoor, pool.root, note, fee=5)
        with pytest.raises(InvalidFee, match="relayer"):
            pool.withdraw(proof, inputs, BOB)
        assert not pool.is_spent(note.nullifier_hash)
        assert ledger.balance_of(ZERO_ADDRESS) == 0
        assert ledger.pool_balance() == AMOUNT

    def test_failed_payout_leaves_note_spendable(self, vk, trapdoor):
        ledger = FlakyLedger(BOB)
        ledger.fund(ALICE, AMOUNT)
        pool = ShieldedPool.initialize(AMOUNT, vk, depth=4, ledger=ledger)
        note = Note(nullifier=_fe(81), secret=_fe(82), amount=AMOUNT)
        pool.deposit(ALICE, note.commitment)
        proof, inputs = _withdrawal(trapdoor, pool.root, note)

        with pytest.raises(LedgerError):
            pool.withdraw(proof, inputs, BOB)
        assert not pool.is_spent(note.nullifier_hash)
        assert ledger.pool_balance() == AMOUNT
        assert ledger.balance_of(BOB) == 0
        assert len(pool.events) == 1

        pool.withdraw(proof, inputs, BOB)
        assert pool.is_spent(note.nullifier_hash)
        assert ledger.balance_of(BOB) == AMOUNT

    def test_failed_relayer_leg_reverses_recipient(self, vk, trapdoor):
        ledger = FlakyLedger(RELAYER)
        ledger.fund(ALICE, AMOUNT)
        pool = ShieldedPool.initialize(AMOUNT, vk, depth=4, ledger=ledger)
        note = Note(nullifier=_fe(91), secret=_fe(92), amount=AMOUNT)
        pool.deposit(ALICE, note.commitment)
        proof, inputs = _withdrawal(trapdoor, pool.root, note, relayer=RELAYER, fee=7)

        with pytest.raises(LedgerError):
            pool.withdraw(proof, inputs, BOB)
        assert not pool.is_spent(note.nullifier_hash)
        assert ledger.balance_of(BOB) == 0
        assert ledger.balance_of(RELAYER) == 0
        assert ledger.pool_balance() == AMOUNT

    def test_forged_proof_rejected(self, pool, ledger, trapdoor):
        note = Note(nullifier=_fe(61), secret=_fe(62), amount=AMOUNT)
        pool.deposit(ALICE, note.commitment)
        _, inputs = _withdrawal(trapdoor, pool.root, note)
        other_proof, _ = _withdrawal(trapdoor, pool.root, note, recipient=ALICE)
        with pytest.raises(InvalidProof):
            pool.withdraw(other_proof, inputs, BOB)
        assert not pool.is_spent(note.nullifier_hash)
        assert ledger.pool_balance() == AMOUNT

    def test_empty_pool_cannot_pay(self, pool, trapdoor):
        note = Note(nullifier=_fe(71), secret=_fe(72), amount=AMOUNT)
        proof, inputs = _withdrawal(trapdoor, pool.root, note)
        with pytest.raises(InsufficientFunds):
            pool.withdraw(proof, inputs, BOB)
        assert not pool.is_spent(note.nullifier_hash)

    def test_two_field_vector_rejected_before_verification(self, pool):
        with pytest.raises(InvalidPublicInputs):
            pool.withdraw(b"\x00" * 256, [_fe(1), _fe(2)], BOB)

    def test_malformed_proof_bytes(self, pool):
        inputs = PublicInputs.build(pool.root, _fe(1), BOB)
        with pytest.raises(InvalidProof):
            pool.withdraw(b"\x00" * 100, inputs, BOB)


# ============================================================================
# HASH SCHEMES
# ============================================================================


class TestPoseidonPool:
    def test_poseidon_roots_and_withdrawal(self, vk, ledger, trapdoor):
        pool = ShieldedPool.initialize(AMOUNT, vk, depth=3, ledger=ledger, hash_scheme="poseidon")
        assert pool.hash_scheme == "poseidon"
        note = Note(nullifier=_fe(101), secret=_fe(102), amount=AMOUNT)
        commitment = note.commitment_for("poseidon")
        pool.deposit(ALICE, commitment)

        root, _ = build_tree([commitment], depth=3, hasher=poseidon_node)
        assert pool.root == root

        nullifier_hash = note.nullifier_hash_for("poseidon")
        inputs = PublicInputs.build(pool.root, nullifier_hash, BOB)
        pool.withdraw(simulate_proof(trapdoor, inputs.as_list()), inputs, BOB)
        assert pool.is_spent(nullifier_hash)
        assert ledger.balance_of(BOB) == AMOUNT

    def test_scheme_from_env(self, vk, ledger, monkeypatch):
        monkeypatch.setenv("SHIELDED_POOL_HASH", "poseidon")
        pool = ShieldedPool.initialize(AMOUNT, vk, depth=2, ledger=ledger)
        assert pool.hash_scheme == "poseidon"
        assert pool.root == IncrementalMerkleTree(depth=2, hasher=poseidon_node).root

    def test_snapshot_keeps_scheme(self, vk, ledger):
        pool = ShieldedPool.initialize(AMOUNT, vk, depth=3, ledger=ledger, hash_scheme="poseidon")
        pool.deposit(ALICE, _fe(1))
        restored = ShieldedPool.restore(pool.snapshot(), ledger)
        assert restored.hash_scheme == "poseidon"
        pool.deposit(ALICE, _fe(2))
        restored.deposit(ALICE, _fe(2))
        assert restored.root == pool.root

    def test_unknown_scheme_rejected(self, vk, ledger):
        with pytest.raises(ValueError, match="hash scheme"):
            ShieldedPool.initialize(AMOUNT, vk, depth=3, ledger=ledger, hash_scheme="md5")


# ============================================================================
# PERSISTENCE
# ============================================================================


class TestSnapshot:
    def test_round_trip(self, pool, ledger):
        pool.deposit(ALICE, _fe(1))
        old_root = pool.root
        pool.deposit(ALICE, _fe(2))
        pool.nullifier_registry.check_and_mark(_fe(99))

        restored = ShieldedPool.restore(pool.snapshot(), ledger)
        assert restored.deposit_amount == AMOUNT
        assert restored.root == pool.root
        assert restored.next_index == 2
        assert restored.is_known_root(old_root)
        assert restored.is_spent(_fe(99))
        assert restored.verifying_key.to_bytes() == pool.verifying_key.to_bytes()

        pool.deposit(ALICE, _fe(3))
        restored.deposit(ALICE, _fe(3))
        assert restored.root == pool.root

    def test_restore_garbage(self, ledger):
        with pytest.raises(SerializationError):
            ShieldedPool.restore(cbor2.dumps("not a snapshot"), ledger)

    def test_restore_wrong_version(self, pool, ledger):
        data = cbor2.loads(pool.snapshot())
        data["v"] = 7
        with pytest.raises(SerializationError, match="version"):
            ShieldedPool.restore(cbor2.dumps(data), ledger)

    def test_remote_pool_cannot_snapshot(self, vk, ledger):
        service = InMemoryTreeService(depth=3)
        pool = ShieldedPool.initialize(
            AMOUNT,
            vk,
            ledger=ledger,
            accumulator=RemoteTreeAccumulator(service, depth=3),
        )
        with pytest.raises(SerializationError):
            pool.snapshot()

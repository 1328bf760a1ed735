"""
Basic Shielded Pool Example

Initializes a pool with the deterministic test key, deposits two notes and
withdraws one of them through a relayer.

The test key's trapdoor is public, which is what lets this script produce
proofs without a circuit. Never use it for a real pool.
"""

from shielded_pool.protocol.exceptions import NullifierAlreadyUsed
from shielded_pool.protocol.ledger import InMemoryLedger
from shielded_pool.protocol.notes import Note
from shielded_pool.protocol.pool import ShieldedPool
from shielded_pool.protocol.test_vectors.groth16_vectors import default_vectors, simulate_proof
from shielded_pool.protocol.types import PublicInputs

DENOMINATION = 100_000_000
ALICE = bytes.fromhex("a1" * 32)
BOB = bytes.fromhex("b0" * 32)
RELAYER = bytes.fromhex("ee" * 32)
RELAYER_FEE = 500_000


def main():
    print("\n" + "=" * 70)
    print("Shielded Pool - Basic Example")
    print("=" * 70)

    print("\n1. Initializing pool...")
    vk, trapdoor = default_vectors()
    ledger = InMemoryLedger()
    ledger.fund(ALICE, 2 * DENOMINATION)
    pool = ShieldedPool.initialize(DENOMINATION, vk, depth=20, ledger=ledger)
    print(f"   Empty root: {pool.root.hex()}")

    print("\n2. Depositing two notes from Alice...")
    notes = [Note.generate(DENOMINATION) for _ in range(2)]
    for note in notes:
        index = pool.deposit(ALICE, note.commitment)
        print(f"   ✓ Leaf {index}: {note.commitment.hex()[:16]}...")
    print(f"   Pool balance: {ledger.pool_balance()}")

    print("\n3. Withdrawing the first note to Bob via a relayer...")
    inputs = PublicInputs.build(
        pool.root, notes[0].nullifier_hash, BOB, relayer=RELAYER, fee=RELAYER_FEE
    )
    proof = simulate_proof(trapdoor, inputs.as_list())
    event = pool.withdraw(proof, inputs, BOB)
    print(f"   ✓ Nullifier hash spent: {event.nullifier_hash.hex()[:16]}...")
    print(f"   Bob:     {ledger.balance_of(BOB)}")
    print(f"   Relayer: {ledger.balance_of(RELAYER)}")

    print("\n4. Replaying the same proof...")
    try:
        pool.withdraw(proof, inputs, BOB)
    except NullifierAlreadyUsed as e:
        print(f"   ✓ Rejected: {e}")

    print("\n" + "=" * 70)
    print(f"Deposits: {pool.next_index}  Pool balance: {ledger.pool_balance()}")
    print("=" * 70)


if __name__ == "__main__":
    main()

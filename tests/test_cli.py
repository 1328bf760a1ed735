"""
Test CLI commands against a state file in a temporary directory.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from shielded_pool.cli import main
from shielded_pool.protocol.merkle import build_tree
from shielded_pool.protocol.notes import Note
from shielded_pool.protocol.poseidon import poseidon_node
from shielded_pool.protocol.test_vectors.groth16_vectors import default_vectors, simulate_proof
from shielded_pool.protocol.types import PublicInputs

ALICE = "a1" * 32
BOB = "b0" * 32
STATE = "state.cbor"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workdir(runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    vk, _ = default_vectors()
    Path("vk.json").write_text(json.dumps(vk.to_snarkjs()), encoding="utf-8")
    return tmp_path


def invoke(runner, *args):
    return runner.invoke(main, list(args), catch_exceptions=False)


def _init(runner, amount=1000, depth=4):
    return invoke(
        runner,
        "init",
        "--deposit-amount", str(amount),
        "--vk", "vk.json",
        "--depth", str(depth),
        "--state", STATE,
    )


def test_cli_help(runner):
    result = invoke(runner, "--help")
    assert result.exit_code == 0
    for command in ("init", "deposit", "withdraw", "status", "root-check", "note"):
        assert command in result.output


def test_init_requires_amount(runner, workdir):
    result = invoke(runner, "init", "--vk", "vk.json", "--state", STATE)
    assert result.exit_code == 2
    assert not Path(STATE).exists()


def test_init_rejects_zero_amount(runner, workdir):
    result = _init(runner, amount=0)
    assert result.exit_code == 1
    assert "Error" in result.output


def test_init_from_yaml(runner, workdir):
    Path("pool.yaml").write_text(
        "pool:\n  deposit_amount: 500\n  depth: 3\n  verifying_key: vk.json\n",
        encoding="utf-8",
    )
    result = invoke(runner, "init", "--config", "pool.yaml", "--state", STATE)
    assert result.exit_code == 0, result.output
    assert "deposit amount: 500" in result.output
    assert "depth:          3" in result.output


def test_status_without_state(runner, workdir):
    result = invoke(runner, "status", "--state", STATE)
    assert result.exit_code == 1
    assert "run 'init' first" in result.output


def test_deposit_needs_one_source(runner, workdir):
    _init(runner)
    result = invoke(runner, "deposit", "--depositor", ALICE, "--state", STATE)
    assert result.exit_code == 2


def test_full_session(runner, workdir):
    print("\n" + "=" * 70)
    print("TEST: CLI Session")
    print("=" * 70)

    result = _init(runner)
    assert result.exit_code == 0, result.output
    assert "Pool initialized" in result.output

    result = invoke(runner, "fund", ALICE, "5000", "--state", STATE)
    assert result.exit_code == 0, result.output
    assert "balance 5000" in result.output

    result = invoke(runner, "note", "new", "--amount", "1000")
    assert result.exit_code == 0
    note_text = result.output.splitlines()[0]
    note = Note.parse(note_text)

    result = invoke(runner, "note", "inspect", note_text)
    assert note.commitment.hex() in result.output

    result = invoke(runner, "deposit", "--depositor", ALICE, "--note", note_text, "--state", STATE)
    assert result.exit_code == 0, result.output
    assert "Deposit recorded at leaf 0" in result.output
    root_hex = result.output.split("root: ")[1].split()[0]
    print("✓ Deposit via note")

    result = invoke(runner, "root-check", root_hex, "--state", STATE)
    assert result.exit_code == 0
    result = invoke(runner, "root-check", "11" * 32, "--state", STATE)
    assert result.exit_code == 1

    result = invoke(runner, "status", "--state", STATE)
    assert result.exit_code == 0
    assert "Deposit amount" in result.output
    assert "Pool balance" in result.output

    _, trapdoor = default_vectors()
    inputs = PublicInputs.build(bytes.fromhex(root_hex), note.nullifier_hash, bytes.fromhex(BOB))
    proof = simulate_proof(trapdoor, inputs.as_list())
    Path("proof.json").write_text(json.dumps(proof.to_snarkjs()), encoding="utf-8")
    Path("public.json").write_text(
        json.dumps([str(x) for x in inputs.to_field_elements()]), encoding="utf-8"
    )

    args = ["withdraw", "--proof", "proof.json", "--public-inputs", "public.json",
            "--recipient", BOB, "--state", STATE]
    result = invoke(runner, *args)
    assert result.exit_code == 0, result.output
    assert "Withdrawal recorded" in result.output
    assert "paid:           1000" in result.output
    print("✓ Withdrawal via proof files")

    result = invoke(runner, *args)
    assert result.exit_code == 1
    assert "already spent" in result.output
    print("✓ Replay rejected across runs")


def test_deposit_note_amount_mismatch(runner, workdir):
    _init(runner)
    invoke(runner, "fund", ALICE, "5000", "--state", STATE)
    note_text = Note.generate(999).format()
    result = invoke(runner, "deposit", "--depositor", ALICE, "--note", note_text, "--state", STATE)
    assert result.exit_code == 1
    assert "does not match pool denomination" in result.output


def test_poseidon_pool_session(runner, workdir):
    result = invoke(
        runner,
        "init",
        "--deposit-amount", "1000",
        "--vk", "vk.json",
        "--depth", "3",
        "--hash", "poseidon",
        "--state", STATE,
    )
    assert result.exit_code == 0, result.output
    assert "hash:           poseidon" in result.output

    note = Note(nullifier=(7).to_bytes(32, "big"), secret=(8).to_bytes(32, "big"), amount=1000)
    commitment = note.commitment_for("poseidon")
    result = invoke(runner, "note", "inspect", note.format(), "--hash", "poseidon")
    assert commitment.hex() in result.output

    assert invoke(runner, "fund", ALICE, "1000", "--state", STATE).exit_code == 0
    result = invoke(
        runner, "deposit", "--depositor", ALICE, "--note", note.format(), "--state", STATE
    )
    assert result.exit_code == 0, result.output
    root, _ = build_tree([commitment], depth=3, hasher=poseidon_node)
    assert root.hex() in result.output

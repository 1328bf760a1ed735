"""
Command-Line Interface for the shielded pool toolkit

Runs a local pool whose state (pool snapshot plus an in-memory ledger) lives
in a CBOR state file, so deposits and withdrawals can be exercised from the
shell.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import cbor2
import click
from rich.console import Console
from rich.table import Table

from shielded_pool import __version__
from shielded_pool.protocol.config import ADDRESS_BYTES, STATE_VERSION
from shielded_pool.protocol.exceptions import SerializationError, ShieldedPoolError
from shielded_pool.protocol.ledger import InMemoryLedger
from shielded_pool.protocol.notes import Note
from shielded_pool.protocol.pool import ShieldedPool
from shielded_pool.protocol.settings import PoolSettings
from shielded_pool.protocol.snark.assets import (
    load_proof,
    load_public_inputs,
    load_verifying_key,
    resolve_verifying_key,
)

DEFAULT_STATE_FILE = "pool_state.cbor"

state_option = click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_STATE_FILE,
    show_default=True,
    help="Pool state file",
)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def main(verbose):
    """
    Shielded Pool Toolkit

    Fixed-denomination deposits behind commitments, withdrawals gated by
    Groth16 proofs and nullifiers.

    ⚠️  PROTOTYPE - NOT PRODUCTION READY
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


# ============================================================================
# STATE FILE
# ============================================================================


def _load_state(state_path: str) -> Tuple[ShieldedPool, InMemoryLedger]:
    path = Path(state_path)
    if not path.exists():
        raise click.ClickException(f"state file not found: {path} (run 'init' first)")
    try:
        obj = cbor2.loads(path.read_bytes())
    except Exception as e:
        raise SerializationError(f"Failed to read state file: {e}")
    if not isinstance(obj, dict) or obj.get("v") != STATE_VERSION:
        raise SerializationError("Unsupported state file")
    if "pool" not in obj or "ledger" not in obj:
        raise SerializationError("State file is missing pool or ledger data")

    ledger = InMemoryLedger.from_state(obj["ledger"])
    pool = ShieldedPool.restore(obj["pool"], ledger)
    return pool, ledger


def _save_state(state_path: str, pool: ShieldedPool, ledger: InMemoryLedger) -> None:
    data = cbor2.dumps(
        {"v": STATE_VERSION, "pool": pool.snapshot(), "ledger": ledger.to_state()}
    )
    Path(state_path).write_bytes(data)


def _parse_hex32(value: str, label: str) -> bytes:
    text = value[2:] if value.startswith("0x") else value
    try:
        raw = bytes.fromhex(text)
    except ValueError:
        raise click.BadParameter(f"{label} must be hex")
    if len(raw) != ADDRESS_BYTES:
        raise click.BadParameter(f"{label} must be {ADDRESS_BYTES} bytes")
    return raw


def _fail(error: Exception) -> None:
    click.echo(click.style(f"✗ Error: {error}", fg="red"), err=True)
    sys.exit(1)


# ============================================================================
# COMMANDS
# ============================================================================


@main.command()
@click.option("--deposit-amount", type=int, help="Pool denomination")
@click.option("--vk", "vk_path", type=click.Path(), help="Verifying key (snarkjs JSON or binary)")
@click.option("--depth", type=int, help="Tree depth (default 20)")
@click.option("--history", type=int, help="Root history size (default 100)")
@click.option(
    "--hash",
    "hash_scheme",
    type=click.Choice(["sha256", "poseidon"]),
    help="Node and commitment hash (default sha256, or SHIELDED_POOL_HASH)",
)
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML pool settings")
@state_option
def init(deposit_amount, vk_path, depth, history, hash_scheme, config_path, state_path):
    """
    Create a new pool state file.

    Examples:

        shielded-pool init --deposit-amount 100000000 --vk verification_key.json

        shielded-pool init --config pool.yaml

        shielded-pool init --deposit-amount 100000000 --vk vk.json --hash poseidon
    """
    try:
        if config_path:
            settings = PoolSettings.from_yaml(config_path)
        else:
            if deposit_amount is None:
                raise click.UsageError("--deposit-amount or --config is required")
            settings = PoolSettings(deposit_amount=deposit_amount)
        if deposit_amount is not None:
            settings.deposit_amount = deposit_amount
        if depth is not None:
            settings.depth = depth
        if history is not None:
            settings.root_history_size = history
        if hash_scheme is not None:
            settings.hash_scheme = hash_scheme
        settings.validate()

        key_path = resolve_verifying_key(vk_path or settings.verifying_key_path)
        verifying_key = load_verifying_key(key_path)

        ledger = InMemoryLedger()
        pool = ShieldedPool.initialize(
            settings.deposit_amount,
            verifying_key,
            settings.depth,
            ledger=ledger,
            root_history_size=settings.root_history_size,
            nullifier_capacity=settings.effective_nullifier_capacity,
            tree_backend="incremental",
            hash_scheme=settings.hash_scheme,
        )
        _save_state(state_path, pool, ledger)
    except (ShieldedPoolError, FileNotFoundError, ValueError) as e:
        _fail(e)

    click.echo(click.style(f"✓ Pool initialized: {state_path}", fg="green"))
    click.echo(f"  deposit amount: {pool.deposit_amount}")
    click.echo(f"  depth:          {pool.depth}")
    click.echo(f"  hash:           {pool.hash_scheme}")
    click.echo(f"  root:           {pool.root.hex()}")


@main.command()
@click.argument("account")
@click.argument("amount", type=int)
@state_option
def fund(account, amount, state_path):
    """Credit AMOUNT to ACCOUNT (hex address) in the local ledger."""
    address = _parse_hex32(account, "account")
    try:
        pool, ledger = _load_state(state_path)
        ledger.fund(address, amount)
        _save_state(state_path, pool, ledger)
    except ShieldedPoolError as e:
        _fail(e)
    click.echo(click.style(f"✓ Funded {account}: balance {ledger.balance_of(address)}", fg="green"))


@main.group()
def note():
    """Create and inspect deposit notes."""
    pass


hash_option = click.option(
    "--hash",
    "hash_scheme",
    type=click.Choice(["sha256", "poseidon"]),
    default="sha256",
    show_default=True,
    help="Hash the pool uses for commitments",
)


@note.command("new")
@click.option("--amount", type=int, required=True, help="Pool denomination")
@hash_option
def note_new(amount, hash_scheme):
    """Generate a fresh note. Keep the note string secret."""
    try:
        fresh = Note.generate(amount)
    except ValueError as e:
        _fail(e)
    click.echo(fresh.format())
    click.echo(f"commitment:     {fresh.commitment_for(hash_scheme).hex()}", err=True)
    click.echo(f"nullifier hash: {fresh.nullifier_hash_for(hash_scheme).hex()}", err=True)


@note.command("inspect")
@click.argument("note_text")
@hash_option
def note_inspect(note_text, hash_scheme):
    """Show the commitment and nullifier hash derived from a note."""
    try:
        parsed = Note.parse(note_text)
    except ValueError as e:
        _fail(e)
    click.echo(f"amount:         {parsed.amount}")
    click.echo(f"commitment:     {parsed.commitment_for(hash_scheme).hex()}")
    click.echo(f"nullifier hash: {parsed.nullifier_hash_for(hash_scheme).hex()}")


@main.command()
@click.option("--depositor", required=True, help="Depositor address (hex)")
@click.option("--commitment", help="Commitment (hex)")
@click.option("--note", "note_text", help="Note string; its commitment is deposited")
@state_option
def deposit(depositor, commitment, note_text, state_path):
    """Deposit one denomination behind a commitment."""
    if bool(commitment) == bool(note_text):
        raise click.UsageError("pass exactly one of --commitment or --note")
    depositor_address = _parse_hex32(depositor, "depositor")

    try:
        pool, ledger = _load_state(state_path)
        if note_text:
            parsed = Note.parse(note_text)
            commitment_bytes = parsed.commitment_for(pool.hash_scheme)
        else:
            commitment_bytes = _parse_hex32(commitment, "commitment")

        if note_text and parsed.amount != pool.deposit_amount:
            raise ValueError(
                f"note amount {parsed.amount} does not match pool denomination {pool.deposit_amount}"
            )
        leaf_index = pool.deposit(depositor_address, commitment_bytes)
        _save_state(state_path, pool, ledger)
    except (ShieldedPoolError, ValueError) as e:
        _fail(e)

    click.echo(click.style(f"✓ Deposit recorded at leaf {leaf_index}", fg="green"))
    click.echo(f"  root: {pool.root.hex()}")


@main.command()
@click.option("--proof", "proof_path", required=True, type=click.Path(exists=True))
@click.option("--public-inputs", "inputs_path", required=True, type=click.Path(exists=True))
@click.option("--recipient", required=True, help="Recipient address (hex)")
@state_option
def withdraw(proof_path, inputs_path, recipient, state_path):
    """Withdraw with a Groth16 proof and its public inputs."""
    recipient_address = _parse_hex32(recipient, "recipient")
    try:
        proof = load_proof(proof_path)
        public_inputs = load_public_inputs(inputs_path)
        pool, ledger = _load_state(state_path)
        event = pool.withdraw(proof, public_inputs, recipient_address)
        _save_state(state_path, pool, ledger)
    except ShieldedPoolError as e:
        _fail(e)

    click.echo(click.style("✓ Withdrawal recorded", fg="green"))
    click.echo(f"  nullifier hash: {event.nullifier_hash.hex()}")
    click.echo(f"  paid:           {pool.deposit_amount - event.fee}")
    click.echo(f"  fee:            {event.fee}")


@main.command()
@state_option
def status(state_path):
    """Show pool status."""
    try:
        pool, ledger = _load_state(state_path)
    except ShieldedPoolError as e:
        _fail(e)

    table = Table(title="Shielded Pool")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Deposit amount", str(pool.deposit_amount))
    table.add_row("Depth", str(pool.depth))
    table.add_row("Hash", pool.hash_scheme)
    table.add_row("Deposits", str(pool.next_index))
    table.add_row("Withdrawals", str(len(pool.nullifier_registry)))
    table.add_row("Pool balance", str(ledger.pool_balance()))
    table.add_row("Known roots", str(len(pool.known_roots())))
    table.add_row("Root", pool.root.hex())
    Console().print(table)


@main.command("root-check")
@click.argument("root")
@state_option
def root_check(root, state_path):
    """Check whether ROOT (hex) is still accepted for withdrawals."""
    root_bytes = _parse_hex32(root, "root")
    try:
        pool, _ = _load_state(state_path)
    except ShieldedPoolError as e:
        _fail(e)
    if pool.is_known_root(root_bytes):
        click.echo(click.style("✓ root is valid", fg="green"))
    else:
        click.echo(click.style("✗ root is unknown or expired", fg="red"))
        sys.exit(1)


if __name__ == "__main__":
    main()

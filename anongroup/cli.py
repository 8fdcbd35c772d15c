"""
Command-line interface for anonymous membership proofs.

Works offline: provider keys come from a JWKS file and identity tokens from a
file, so proofs can be produced and checked without a browser or registry.
"""

import json
import logging
import sys
import time
import uuid
from functools import partial
from pathlib import Path
from typing import Optional

import click
import trio
from rich.console import Console
from rich.table import Table

from anongroup import __version__
from anongroup.client.keys import EphemeralKeyManager
from anongroup.client.orchestrator import verify_message
from anongroup.client.storage import FileSecretStore
from anongroup.identity import PROVIDERS, StaticKeySet, get_provider
from anongroup.membership.circuits import get_circuit
from anongroup.membership.circuits.backend import CircuitBackend
from anongroup.membership.exceptions import MembershipProtocolError
from anongroup.membership.factory import get_proving_engine
from anongroup.membership.feature_flags import ENGINE_CHOICES
from anongroup.membership.tokens import jwk_modulus
from anongroup.membership.types import (
    MembershipRecord,
    Message,
    SignedMessage,
    SignedMessageWithProof,
)

console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)

DEFAULT_STORE = Path.home() / ".anongroup" / "key.json"


def _fail(message: str) -> None:
    err_console.print(f"[red]✗ {message}[/red]")
    sys.exit(1)


def _load_record(path: str) -> MembershipRecord:
    try:
        return MembershipRecord.deserialize(Path(path).read_bytes())
    except (ValueError, MembershipProtocolError) as e:
        _fail(f"cannot read membership record {path}: {e}")


def _provider(name: str, jwks: str, engine: Optional[str], token=None):
    backend = CircuitBackend(get_proving_engine(prefer=engine))
    return get_provider(
        name,
        token_source=token,
        keys=StaticKeySet.from_file(jwks),
        backend=backend,
    )


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def main(verbose):
    """
    anongroup - anonymous organization membership proofs

    ⚠️  PROTOTYPE - NOT AUDITED
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


store_option = click.option(
    "--store",
    type=click.Path(dir_okay=False),
    default=str(DEFAULT_STORE),
    show_default=True,
    help="Secret store holding the ephemeral key",
)
engine_option = click.option(
    "--engine",
    type=click.Choice(ENGINE_CHOICES, case_sensitive=False),
    default=None,
    help="Proving engine (default: ANONGROUP_PROVING_ENGINE or reference)",
)
jwks_option = click.option(
    "--jwks",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Provider JWKS file",
)


@main.command()
@store_option
@click.option("--ttl-days", type=int, default=28, show_default=True)
def keygen(store, ttl_days):
    """Generate a new ephemeral key, replacing any stored one."""
    manager = EphemeralKeyManager(FileSecretStore(store), ttl_seconds=ttl_days * 86400)
    key = manager.generate()

    table = Table(title="Ephemeral key", show_header=False)
    table.add_row("pubkey field", hex(key.pubkey_field))
    table.add_row("expiry", key.expiry.isoformat())
    table.add_row("nonce", key.nonce)
    console.print(table)
    console.print(f"[green]✓ Stored in {store}[/green]")


@main.command()
@store_option
@engine_option
@jwks_option
@click.option(
    "--provider",
    type=click.Choice(sorted(PROVIDERS)),
    default="google-oauth",
    show_default=True,
)
@click.option(
    "--token",
    "token_file",
    type=click.File("r"),
    required=True,
    help="File holding the identity token ('-' for stdin)",
)
@click.option("--output", type=click.Path(dir_okay=False), required=True)
def prove(store, engine, jwks, provider, token_file, output):
    """Prove group membership for the stored key with an identity token."""
    identity_token = token_file.read().strip()
    key = EphemeralKeyManager(FileSecretStore(store)).load()
    if key is None:
        _fail(f"no ephemeral key in {store}; run 'anongroup keygen' first")

    oauth = _provider(provider, jwks, engine, token=lambda _nonce: identity_token)
    try:
        bundle = trio.run(oauth.generate_proof, key)
    except MembershipProtocolError as e:
        _fail(str(e))

    record = MembershipRecord(
        provider=oauth.name(),
        ephemeral_pubkey=key.public_key,
        ephemeral_pubkey_expiry=key.expiry,
        group_id=bundle.anon_group.id,
        proof=bundle.proof,
        proof_args=bundle.proof_args,
        circuit_version=bundle.circuit_version,
    )
    Path(output).write_bytes(record.serialize())
    console.print(
        f"[green]✓ Proved membership of {record.group_id} "
        f"({record.circuit_version.value}), wrote {output}[/green]"
    )


@main.command("verify-membership")
@engine_option
@jwks_option
@click.argument("record_path", type=click.Path(exists=True, dir_okay=False))
def verify_membership(engine, jwks, record_path):
    """Verify a serialized membership record."""
    record = _load_record(record_path)
    oauth = _provider(record.provider, jwks, engine)
    verify = partial(
        oauth.verify_proof,
        record.proof,
        record.group_id,
        record.ephemeral_pubkey,
        record.ephemeral_pubkey_expiry,
        record.proof_args,
        circuit_version=record.circuit_version,
    )
    try:
        valid = trio.run(verify)
    except MembershipProtocolError as e:
        _fail(str(e))

    if not valid:
        _fail(f"membership proof for {record.group_id} is INVALID")
    console.print(f"[green]✓ Valid member of {record.group_id}[/green]")


@main.command()
@store_option
@click.option("--record", "record_path", type=click.Path(exists=True), required=True)
@click.option("--internal", is_flag=True, help="Visible to group members only")
@click.option("--timestamp", type=int, default=None, help="Unix milliseconds")
@click.option("--output", type=click.File("w"), default="-")
@click.argument("text")
def sign(store, record_path, internal, timestamp, output, text):
    """Sign a message for the group of a membership record."""
    record = _load_record(record_path)
    manager = EphemeralKeyManager(FileSecretStore(store))
    key = manager.load()
    if key is None or key.public_key != record.ephemeral_pubkey:
        _fail("the stored key does not own this membership record")
    if key.is_expired():
        _fail("ephemeral key expired; generate a new key and prove again")

    message = Message(
        id=str(uuid.uuid4()),
        group_id=record.group_id,
        provider=record.provider,
        text=text,
        timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
        internal=internal,
    )
    signed = manager.sign(message)
    json.dump(signed.to_wire(), output, indent=2)
    output.write("\n")


@main.command("verify-message")
@engine_option
@jwks_option
@click.option("--record", "record_path", type=click.Path(exists=True), required=True)
@click.argument("message_file", type=click.File("r"))
def verify_message_command(engine, jwks, record_path, message_file):
    """Verify a signed message against its sender's membership record."""
    record = _load_record(record_path)
    try:
        signed = SignedMessage.from_wire(json.load(message_file))
    except ValueError as e:
        _fail(f"cannot read message: {e}")

    if (signed.ephemeral_pubkey, signed.group_id) != record.key:
        _fail("message was not signed by the key of this membership record")

    message = SignedMessageWithProof.join(signed, record)
    oauth = _provider(record.provider, jwks, engine)
    valid = trio.run(verify_message, message, {oauth.name(): oauth})
    if not valid:
        _fail("message is INVALID")
    console.print(
        f"[green]✓ Valid message from a member of {message.group_id}[/green]"
    )


@main.command("public-inputs")
@jwks_option
@click.argument("record_path", type=click.Path(exists=True, dir_okay=False))
def public_inputs(jwks, record_path):
    """Show the verifier public inputs for a membership record."""
    record = _load_record(record_path)
    key_id = str(record.proof_args.get("keyId", ""))
    try:
        jwk = trio.run(StaticKeySet.from_file(jwks).get_signing_key, key_id)
        elements = get_circuit(record.circuit_version).build_verifier_public_inputs(
            record.group_id,
            jwk_modulus(jwk),
            ephemeral_pubkey=record.ephemeral_pubkey,
            ephemeral_pubkey_expiry=record.ephemeral_pubkey_expiry,
        )
    except (ValueError, MembershipProtocolError) as e:
        _fail(str(e))

    table = Table(title=f"{record.circuit_version.value} public inputs")
    table.add_column("#", justify="right")
    table.add_column("element")
    for index, element in enumerate(elements):
        table.add_row(str(index), element)
    console.print(table)


if __name__ == "__main__":
    main()

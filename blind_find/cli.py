"""
Command-line interface for blind-find.

Provides key generation, a local SMP run, a mock end-to-end demo and
verification of proofs of indirect connection.
"""

import base64
import logging
from functools import partial
from pathlib import Path
from typing import Optional, Tuple

import click
import trio

from blind_find import __version__
from blind_find.circuits import (
    MockProofBackend,
    ProofComposer,
    SnarkjsBackend,
    decode_proof_indirect_connection,
    encode_proof_indirect_connection,
)
from blind_find.config import load_circuit_config
from blind_find.exceptions import BlindFindError
from blind_find.signing import Keypair
from blind_find.smp import SMPStateMachine


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose):
    """
    blind-find: prove you reached someone through a registered hub
    without revealing who you looked for.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


@main.command()
def genkey():
    """Generate a new keypair."""
    keypair = Keypair.generate()
    pubkey = base64.b64encode(keypair.public_key.serialize()).decode("ascii")
    click.echo(f"private key: {keypair.private_key:064x}")
    click.echo(f"public key:  {pubkey}")


@main.command()
@click.argument("secret_a")
@click.argument("secret_b")
def smp(secret_a, secret_b):
    """Run SMP locally between SECRET_A and SECRET_B and print the result."""
    alice = SMPStateMachine(secret_a)
    bob = SMPStateMachine(secret_b)

    message = alice.transit(None)
    sender, receiver = alice, bob
    while message is not None:
        sender, receiver = receiver, sender
        message = sender.transit(message)

    result_a, result_b = alice.get_result(), bob.get_result()
    if result_a != result_b:
        raise click.ClickException("parties disagree on the result")
    click.echo("match" if result_a else "no match")


@main.command()
@click.option(
    "--out",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Where to write the CBOR-encoded proof",
)
@click.option("--mock-key", required=True, help="Key of the mock proving backend")
def demo(out: Path, mock_key: str):
    """Build a proof of indirect connection with the mock backend."""
    from blind_find.factories import indirect_connection_factory

    connection = indirect_connection_factory()
    composer = ProofComposer(MockProofBackend(mock_key.encode("utf-8")))

    async def _prove():
        proof_of_smp = await composer.gen_proof_of_smp(
            connection.proof_of_smp_input
        )
        return await composer.gen_proof_indirect_connection(
            proof_of_smp, connection.proof_successful_smp_input
        )

    try:
        proof = trio.run(_prove)
    except BlindFindError as e:
        raise click.ClickException(str(e))

    out.write_bytes(encode_proof_indirect_connection(proof))
    click.echo(f"wrote {out}")
    click.echo(f"merkle root: {connection.tree.root}")


@main.command()
@click.argument(
    "proof_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option(
    "--root",
    "roots",
    multiple=True,
    required=True,
    help="A currently valid registry root (decimal); repeatable",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="YAML config (default: ~/.blind_find/configs.yaml)",
)
@click.option("--mock-key", help="Verify with the mock backend using this key")
def verify(
    proof_file: Path,
    roots: Tuple[str, ...],
    config_path: Optional[Path],
    mock_key: Optional[str],
):
    """Verify the proof of indirect connection in PROOF_FILE."""
    try:
        valid_roots = {int(root, 10) for root in roots}
    except ValueError:
        raise click.BadParameter("roots must be decimal integers", param_hint="--root")

    try:
        config = load_circuit_config(config_path)
        if mock_key:
            backend = MockProofBackend(mock_key.encode("utf-8"), config)
        else:
            backend = SnarkjsBackend(config)
        proof = decode_proof_indirect_connection(proof_file.read_bytes())
        composer = ProofComposer(backend, config)
        ok = trio.run(
            partial(
                composer.verify_proof_indirect_connection, proof, valid_roots
            )
        )
    except BlindFindError as e:
        raise click.ClickException(str(e))

    if not ok:
        click.echo("invalid")
        raise SystemExit(1)
    click.echo("valid")


if __name__ == "__main__":
    main()

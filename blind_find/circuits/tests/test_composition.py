"""Tests for proof composition and composite verification."""

from __future__ import annotations

from dataclasses import replace

import pytest

from blind_find.circuits.backend import MockProofBackend, Proof
from blind_find.circuits.composition import (
    ProofComposer,
    ProofIndirectConnection,
    proof_of_smp_args,
    proof_of_smp_input_from_session,
    proof_successful_smp_args,
    proof_successful_smp_input_from_session,
)
from blind_find.exceptions import InvalidProof, MalformedInput, SMPNotFinished
from blind_find.factories import indirect_connection_factory, run_smp
from blind_find.signing import Keypair
from blind_find.smp.state import SMPStateMachine

PROOF_OF_SMP_KEYS = {
    "merklePathElements", "merklePathIndices", "merkleRoot",
    "sigHubRegistryR8", "sigHubRegistryS", "adminAddress",
    "pubkeyC", "sigCR8", "sigCS",
    "pubkeyHub", "sigJoinMsgHubR8", "sigJoinMsgHubS",
    "h2", "h3", "r4h",
    "g2h", "g2hProofC", "g2hProofD", "g3h", "g3hProofC", "g3hProofD",
    "g2a", "g2aProofC", "g2aProofD", "g3a", "g3aProofC", "g3aProofD",
    "pa", "qa", "paqaProofC", "paqaProofD0", "paqaProofD1",
    "ph", "qh", "phqhProofC", "phqhProofD0", "phqhProofD1",
    "rh", "rhProofC", "rhProofD",
}

PROOF_SUCCESSFUL_SMP_KEYS = {"a3", "pa", "ph", "rh", "pubkeyA", "sigRhR8", "sigRhS"}


class AcceptAllBackend:
    """Backend that verifies anything, to reach the signal checks."""

    async def prove(self, circuit, args):
        raise NotImplementedError

    async def verify(self, circuit, proof):
        return True


@pytest.fixture(scope="module")
def connection():
    return indirect_connection_factory()


@pytest.fixture
def composer():
    return ProofComposer(MockProofBackend(b"composition-test-key"))


async def _prove(composer, connection) -> ProofIndirectConnection:
    proof_of_smp = await composer.gen_proof_of_smp(connection.proof_of_smp_input)
    return await composer.gen_proof_indirect_connection(
        proof_of_smp, connection.proof_successful_smp_input
    )


# ============================================================================
# ARGUMENT MAPS
# ============================================================================


def test_proof_of_smp_args_keys(connection):
    args = proof_of_smp_args(connection.proof_of_smp_input)
    assert set(args) == PROOF_OF_SMP_KEYS
    assert len(args["merklePathElements"]) == connection.tree.levels
    assert args["merkleRoot"] == str(connection.tree.root)
    assert all(isinstance(v, str) for v in args["pubkeyC"])
    assert args["h3"] == str(connection.hub_session.exponent_3)


def test_proof_successful_smp_args_keys(connection):
    args = proof_successful_smp_args(connection.proof_successful_smp_input)
    assert set(args) == PROOF_SUCCESSFUL_SMP_KEYS
    assert args["a3"] == str(connection.searcher_session.exponent_3)


def test_invalid_hub_registry_is_rejected(connection):
    inputs = connection.proof_of_smp_input
    forged = replace(
        inputs,
        hub_registry=replace(
            inputs.hub_registry, admin_address=inputs.hub_registry.admin_address + 1
        ),
    )
    with pytest.raises(MalformedInput, match="hub registry"):
        proof_of_smp_args(forged)


def test_input_from_session_roles(connection):
    proof = connection.tree.gen_proof(1)
    with pytest.raises(ValueError):
        proof_of_smp_input_from_session(
            connection.searcher_session,
            proof,
            connection.hub_registry,
            connection.proof_of_smp_input.join_msg,
        )
    with pytest.raises(ValueError):
        proof_successful_smp_input_from_session(
            connection.hub_session, connection.keypair_a
        )


def test_successful_input_requires_finished_session():
    hub = SMPStateMachine("s")
    searcher = SMPStateMachine("s")
    searcher.transit(hub.transit(None))
    with pytest.raises(SMPNotFinished):
        proof_successful_smp_input_from_session(searcher, Keypair.generate())


def test_successful_input_requires_match():
    _, searcher = run_smp("string0", "string1")
    with pytest.raises(ValueError, match="did not succeed"):
        proof_successful_smp_input_from_session(searcher, Keypair.generate())


# ============================================================================
# SINGLE PROOFS
# ============================================================================


@pytest.mark.trio
async def test_proof_of_smp_roundtrip(composer, connection):
    proof = await composer.gen_proof_of_smp(connection.proof_of_smp_input)
    assert len(proof.public_signals) == 39
    assert await composer.verify_proof_of_smp(proof)
    assert not await composer.verify_proof_successful_smp(proof)


@pytest.mark.trio
async def test_proof_successful_smp_roundtrip(composer, connection):
    proof = await composer.gen_proof_successful_smp(
        connection.proof_successful_smp_input
    )
    assert len(proof.public_signals) == 9
    assert await composer.verify_proof_successful_smp(proof)


@pytest.mark.trio
async def test_tampered_signals_do_not_verify(composer, connection):
    proof = await composer.gen_proof_of_smp(connection.proof_of_smp_input)
    signals = list(proof.public_signals)
    signals[3] = str(int(signals[3]) + 1)
    assert not await composer.verify_proof_of_smp(replace(proof, public_signals=signals))


@pytest.mark.trio
async def test_other_key_does_not_verify(composer, connection):
    proof = await composer.gen_proof_of_smp(connection.proof_of_smp_input)
    other = ProofComposer(MockProofBackend(b"another-key"))
    assert not await other.verify_proof_of_smp(proof)


# ============================================================================
# COMPOSITE PROOF
# ============================================================================


@pytest.mark.trio
async def test_composite_proof_verifies(composer, connection):
    proof = await _prove(composer, connection)
    assert proof.pubkey_a == connection.keypair_a.public_key
    assert proof.pubkey_c == connection.keypair_c.public_key
    assert await composer.verify_proof_indirect_connection(
        proof, {connection.tree.root}
    )


@pytest.mark.trio
async def test_composite_mutated_pubkey_a(composer, connection):
    proof = await _prove(composer, connection)
    forged = replace(proof, pubkey_a=Keypair.generate().public_key)
    assert not await composer.verify_proof_indirect_connection(
        forged, {connection.tree.root}
    )


@pytest.mark.trio
async def test_composite_mutated_pubkey_c(composer, connection):
    proof = await _prove(composer, connection)
    forged = replace(proof, pubkey_c=Keypair.generate().public_key)
    assert not await composer.verify_proof_indirect_connection(
        forged, {connection.tree.root}
    )


@pytest.mark.trio
async def test_composite_mutated_admin_address(composer, connection):
    proof = await _prove(composer, connection)
    forged = replace(proof, admin_address=proof.admin_address + 1)
    assert not await composer.verify_proof_indirect_connection(
        forged, {connection.tree.root}
    )


@pytest.mark.trio
async def test_composite_unknown_root(composer, connection):
    proof = await _prove(composer, connection)
    assert not await composer.verify_proof_indirect_connection(
        proof, {connection.tree.root + 1}
    )
    assert not await composer.verify_proof_indirect_connection(proof, set())


@pytest.mark.trio
async def test_composite_from_different_smp_runs(composer, connection):
    proof = await _prove(composer, connection)
    other = await _prove(composer, indirect_connection_factory())
    mixed = replace(
        proof,
        proof_successful_smp=other.proof_successful_smp,
        pubkey_a=other.pubkey_a,
    )
    assert not await composer.verify_proof_indirect_connection(
        mixed, {connection.tree.root}
    )


@pytest.mark.trio
async def test_composite_swapped_proofs_do_not_verify(composer, connection):
    proof = await _prove(composer, connection)
    swapped = replace(
        proof,
        proof_of_smp=proof.proof_successful_smp,
        proof_successful_smp=proof.proof_of_smp,
    )
    assert not await composer.verify_proof_indirect_connection(
        swapped, {connection.tree.root}
    )


@pytest.mark.trio
async def test_composite_bad_signal_length_raises(connection):
    composer = ProofComposer(AcceptAllBackend())
    proof = ProofIndirectConnection(
        pubkey_a=connection.keypair_a.public_key,
        pubkey_c=connection.keypair_c.public_key,
        admin_address=1,
        proof_of_smp=Proof(proof={}, public_signals=["1"] * 38),
        proof_successful_smp=Proof(proof={}, public_signals=["1"] * 9),
    )
    with pytest.raises(MalformedInput):
        await composer.verify_proof_indirect_connection(proof, {0})


@pytest.mark.trio
async def test_searcher_rejects_foreign_proof_of_smp(composer, connection):
    other = indirect_connection_factory()
    proof_of_smp = await composer.gen_proof_of_smp(other.proof_of_smp_input)
    with pytest.raises(InvalidProof, match="different SMP run"):
        await composer.gen_proof_indirect_connection(
            proof_of_smp, connection.proof_successful_smp_input
        )


@pytest.mark.trio
async def test_searcher_rejects_unverified_proof_of_smp(composer, connection):
    proof_of_smp = await composer.gen_proof_of_smp(connection.proof_of_smp_input)
    forged = replace(proof_of_smp, proof={"tag": "00"})
    with pytest.raises(InvalidProof, match="does not verify"):
        await composer.gen_proof_indirect_connection(
            forged, connection.proof_successful_smp_input
        )

"""CBOR encoding of the proof of indirect connection."""

from __future__ import annotations

from typing import Any, Dict

import cbor2

from .backend import Proof
from .composition import ProofIndirectConnection
from ..exceptions import MalformedInput
from ..smp.group import Point

MSG_V = 1
MAX_BLOB_BYTES = 65536


def _encode_proof(proof: Proof) -> Dict[str, Any]:
    return {"proof": proof.proof, "publicSignals": list(proof.public_signals)}


def _decode_proof(value: Any, field: str) -> Proof:
    if not isinstance(value, dict) or "proof" not in value:
        raise MalformedInput(f"{field} must be a proof object")
    signals = value.get("publicSignals")
    if not isinstance(signals, list) or not all(isinstance(s, str) for s in signals):
        raise MalformedInput(f"{field}.publicSignals must be a list of strings")
    return Proof(proof=value["proof"], public_signals=signals)


def _decode_point(value: Any, field: str) -> Point:
    if not isinstance(value, (bytes, bytearray)):
        raise MalformedInput(f"{field} must be bytes")
    return Point.deserialize(bytes(value))


def encode_proof_indirect_connection(proof: ProofIndirectConnection) -> bytes:
    payload = {
        "msg_v": MSG_V,
        "pubkeyA": proof.pubkey_a.serialize(),
        "pubkeyC": proof.pubkey_c.serialize(),
        "adminAddress": proof.admin_address,
        "proofOfSMP": _encode_proof(proof.proof_of_smp),
        "proofSuccessfulSMP": _encode_proof(proof.proof_successful_smp),
    }
    blob = cbor2.dumps(payload)
    if len(blob) > MAX_BLOB_BYTES:
        raise MalformedInput("proof of indirect connection too large")
    return blob


def decode_proof_indirect_connection(blob: bytes) -> ProofIndirectConnection:
    if not isinstance(blob, (bytes, bytearray)):
        raise MalformedInput("proof blob must be bytes")
    blob_bytes = bytes(blob)
    if len(blob_bytes) > MAX_BLOB_BYTES:
        raise MalformedInput("proof of indirect connection too large")
    try:
        payload = cbor2.loads(blob_bytes)
    except cbor2.CBORDecodeError as e:
        raise MalformedInput(f"invalid CBOR: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedInput("proof payload must be a dict")
    if payload.get("msg_v") != MSG_V:
        raise MalformedInput("unsupported msg_v")

    admin_address = payload.get("adminAddress")
    if not isinstance(admin_address, int) or isinstance(admin_address, bool):
        raise MalformedInput("adminAddress must be an integer")

    return ProofIndirectConnection(
        pubkey_a=_decode_point(payload.get("pubkeyA"), "pubkeyA"),
        pubkey_c=_decode_point(payload.get("pubkeyC"), "pubkeyC"),
        admin_address=admin_address,
        proof_of_smp=_decode_proof(payload.get("proofOfSMP"), "proofOfSMP"),
        proof_successful_smp=_decode_proof(
            payload.get("proofSuccessfulSMP"), "proofSuccessfulSMP"
        ),
    )

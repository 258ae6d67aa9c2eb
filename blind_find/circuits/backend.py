"""
External zk-SNARK proving backends.

A backend takes a circuit name and an argument map (field name to a
decimal string, or a list of them for points and paths) and returns a
`Proof`: an opaque proof object plus the circuit's public signals.

`SnarkjsBackend` drives the `snarkjs` CLI. `MockProofBackend` runs in
process: it checks the relations of each statement that it can evaluate,
lays out the public signals exactly as the circuits do and binds them
with an HMAC tag instead of a real proof.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import shutil
import subprocess
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Mapping, Optional, Protocol

import trio

from .signals import (
    PROOF_OF_SMP_OUTPUTS,
    PROOF_SUCCESSFUL_SMP_OUTPUTS,
    layout_public_signals,
)
from ..config import CircuitConfig
from ..exceptions import (
    MalformedInput,
    ProofGenerationError,
    ProofVerificationError,
)
from ..registry import HubRegistry, MerkleProof, join_hub_msg_hash
from ..signing import Signature, hash_point_to_scalar, verify
from ..smp.group import Point, base_point
from ..smp.proofs import (
    ProofDiscreteLog,
    ProofEqualDiscreteCoordinates,
    ProofEqualDiscreteLogs,
    verify_proof_discrete_log,
    verify_proof_equal_discrete_coordinates,
    verify_proof_equal_discrete_logs,
)
from ..smp.state import (
    VERSION_G2A,
    VERSION_G2B,
    VERSION_G3A,
    VERSION_G3B,
    VERSION_PAQA,
    VERSION_PBQB,
    VERSION_RA,
)

logger = logging.getLogger(__name__)

Args = Mapping[str, Any]


@dataclass(frozen=True)
class Proof:
    proof: Any
    public_signals: List[str]


class ProofBackend(Protocol):
    async def prove(self, circuit: str, args: Args) -> Proof:
        ...

    async def verify(self, circuit: str, proof: Proof) -> bool:
        ...


# ============================================================================
# SNARKJS
# ============================================================================


@asynccontextmanager
async def _scratch_dir() -> AsyncIterator[trio.Path]:
    """Temporary directory for snarkjs input and output files."""
    path = await trio.to_thread.run_sync(tempfile.mkdtemp, None, "blind_find_")
    try:
        yield trio.Path(path)
    finally:
        with trio.CancelScope(shield=True):
            await trio.to_thread.run_sync(shutil.rmtree, path, True)


class SnarkjsBackend:
    """
    Groth16 proofs through the `snarkjs` CLI.

    Circuit artifacts are looked up in `config.build_dir`:
    `<circuit>.wasm`, `<circuit>.zkey` and `<circuit>.vkey.json`.
    """

    def __init__(self, config: Optional[CircuitConfig] = None):
        self.config = config or CircuitConfig()

    async def _run(self, command: List[str]) -> subprocess.CompletedProcess:
        logger.debug("running %s", " ".join(command))
        with trio.fail_after(self.config.timeout):
            return await trio.run_process(
                command, capture_stdout=True, capture_stderr=True, check=False
            )

    async def prove(self, circuit: str, args: Args) -> Proof:
        wasm = self.config.wasm_path(circuit)
        zkey = self.config.zkey_path(circuit)
        for path in (wasm, zkey):
            if not path.exists():
                raise ProofGenerationError(f"missing circuit artifact: {path}")

        async with _scratch_dir() as tmp:
            input_path = tmp / "input.json"
            proof_path = tmp / "proof.json"
            public_path = tmp / "public.json"
            await input_path.write_text(json.dumps(dict(args)), encoding="utf-8")

            command = [
                self.config.snarkjs,
                "groth16",
                "fullprove",
                str(input_path),
                str(wasm),
                str(zkey),
                str(proof_path),
                str(public_path),
            ]
            try:
                result = await self._run(command)
            except trio.TooSlowError as e:
                raise ProofGenerationError(
                    f"{circuit}: prover timed out after {self.config.timeout}s"
                ) from e
            except OSError as e:
                raise ProofGenerationError(f"cannot run snarkjs: {e}") from e

            if result.returncode != 0:
                stderr = result.stderr.decode(errors="replace").strip()
                raise ProofGenerationError(
                    f"{circuit}: prover failed: {stderr or 'unknown prover error'}"
                )

            proof = json.loads(await proof_path.read_text(encoding="utf-8"))
            public_signals = json.loads(await public_path.read_text(encoding="utf-8"))

        return Proof(proof=proof, public_signals=[str(s) for s in public_signals])

    async def verify(self, circuit: str, proof: Proof) -> bool:
        vkey = self.config.vkey_path(circuit)
        if not vkey.exists():
            raise ProofVerificationError(f"missing verification key: {vkey}")

        async with _scratch_dir() as tmp:
            proof_path = tmp / "proof.json"
            public_path = tmp / "public.json"
            await proof_path.write_text(json.dumps(proof.proof), encoding="utf-8")
            await public_path.write_text(
                json.dumps(proof.public_signals), encoding="utf-8"
            )

            command = [
                self.config.snarkjs,
                "groth16",
                "verify",
                str(vkey),
                str(public_path),
                str(proof_path),
            ]
            try:
                result = await self._run(command)
            except trio.TooSlowError as e:
                raise ProofVerificationError(
                    f"{circuit}: verifier timed out after {self.config.timeout}s"
                ) from e
            except OSError as e:
                raise ProofVerificationError(f"cannot run snarkjs: {e}") from e

        ok = result.returncode == 0
        logger.debug("%s verification returned %s", circuit, ok)
        return ok


# ============================================================================
# MOCK
# ============================================================================


def _point(value: Any) -> Point:
    x, y = value
    return Point.from_affine(int(x), int(y))


def _signature(args: Args, r8_key: str, s_key: str) -> Signature:
    return Signature(r8=_point(args[r8_key]), s=int(args[s_key]))


def _check_proof_of_smp(args: Args) -> None:
    registry = HubRegistry(
        pubkey=_point(args["pubkeyHub"]),
        sig=_signature(args, "sigHubRegistryR8", "sigHubRegistryS"),
        admin_address=int(args["adminAddress"]),
    )
    if not registry.verify():
        raise ProofGenerationError("hub registry signature does not verify")

    membership = MerkleProof(
        path_elements=[int(v) for v in args["merklePathElements"]],
        path_indices=[int(v) for v in args["merklePathIndices"]],
        root=int(args["merkleRoot"]),
        leaf=registry.hash(),
    )
    if not membership.verify():
        raise ProofGenerationError("hub registry is not in the merkle tree")

    pubkey_c = _point(args["pubkeyC"])
    msg = join_hub_msg_hash(pubkey_c, registry.pubkey)
    if not verify(pubkey_c, msg, _signature(args, "sigCR8", "sigCS")):
        raise ProofGenerationError("join message is not signed by pubkeyC")
    if not verify(
        registry.pubkey, msg, _signature(args, "sigJoinMsgHubR8", "sigJoinMsgHubS")
    ):
        raise ProofGenerationError("join message is not signed by the hub")

    _check_smp_transcript(args)


def _dl_proof(args: Args, name: str) -> ProofDiscreteLog:
    return ProofDiscreteLog(
        c=int(args[f"{name}ProofC"]), d=int(args[f"{name}ProofD"])
    )


def _coords_proof(args: Args, name: str) -> ProofEqualDiscreteCoordinates:
    return ProofEqualDiscreteCoordinates(
        c=int(args[f"{name}ProofC"]),
        d0=int(args[f"{name}ProofD0"]),
        d1=int(args[f"{name}ProofD1"]),
    )


def _check_smp_transcript(args: Args) -> None:
    """
    The hub's side of messages 1-3, seen with the hub as initiator and
    the searcher as responder.
    """
    g1 = base_point()
    h2 = int(args["h2"])
    h3 = int(args["h3"])
    r4h = int(args["r4h"])
    g2h, g3h = _point(args["g2h"]), _point(args["g3h"])
    g2a, g3a = _point(args["g2a"]), _point(args["g3a"])
    pa, qa = _point(args["pa"]), _point(args["qa"])
    ph, qh = _point(args["ph"]), _point(args["qh"])
    rh = _point(args["rh"])

    if g1.multiply(h2) != g2h:
        raise ProofGenerationError("g2h is not g1*h2")
    if g1.multiply(h3) != g3h:
        raise ProofGenerationError("g3h is not g1*h3")

    g2 = g2a.multiply(h2)
    g3 = g3a.multiply(h3)
    if g3.multiply(r4h) != ph:
        raise ProofGenerationError("ph is not g3*r4h")
    qh_qa = qh.subtract(qa)
    if qh_qa.multiply(h3) != rh:
        raise ProofGenerationError("rh is not (qh - qa)*h3")

    transcript_proofs = (
        (
            "g2h",
            verify_proof_discrete_log(VERSION_G2A, _dl_proof(args, "g2h"), g1, g2h),
        ),
        (
            "g3h",
            verify_proof_discrete_log(VERSION_G3A, _dl_proof(args, "g3h"), g1, g3h),
        ),
        (
            "g2a",
            verify_proof_discrete_log(VERSION_G2B, _dl_proof(args, "g2a"), g1, g2a),
        ),
        (
            "g3a",
            verify_proof_discrete_log(VERSION_G3B, _dl_proof(args, "g3a"), g1, g3a),
        ),
        (
            "pa and qa",
            verify_proof_equal_discrete_coordinates(
                VERSION_PBQB, _coords_proof(args, "paqa"), g3, g1, g2, pa, qa
            ),
        ),
        (
            "ph and qh",
            verify_proof_equal_discrete_coordinates(
                VERSION_PAQA, _coords_proof(args, "phqh"), g3, g1, g2, ph, qh
            ),
        ),
        (
            "rh",
            verify_proof_equal_discrete_logs(
                VERSION_RA,
                ProofEqualDiscreteLogs(
                    c=int(args["rhProofC"]), d=int(args["rhProofD"])
                ),
                g1,
                qh_qa,
                g3h,
                rh,
            ),
        ),
    )
    for name, ok in transcript_proofs:
        if not ok:
            raise ProofGenerationError(f"proof of {name} does not verify")


def _check_proof_successful_smp(args: Args) -> None:
    pubkey_a = _point(args["pubkeyA"])
    pa = _point(args["pa"])
    ph = _point(args["ph"])
    rh = _point(args["rh"])
    sig = _signature(args, "sigRhR8", "sigRhS")
    if not verify(pubkey_a, hash_point_to_scalar(rh), sig):
        raise ProofGenerationError("rh is not signed by pubkeyA")
    if rh.multiply(int(args["a3"])) != ph.subtract(pa):
        raise ProofGenerationError("SMP did not succeed")


class MockProofBackend:
    """
    In-process stand-in for the proving backend.

    NOT zero-knowledge and NOT sound against anyone holding `key`; use
    it for tests and local demos only.

    Example:
        >>> backend = MockProofBackend(b"test-key")
        >>> proof = await backend.prove(config.proof_of_smp, args)
        >>> assert await backend.verify(config.proof_of_smp, proof)
    """

    def __init__(self, key: bytes, config: Optional[CircuitConfig] = None):
        if not key:
            raise ValueError("mock backend key cannot be empty")
        self.key = bytes(key)
        self.config = config or CircuitConfig()
        self._circuits = {
            self.config.proof_of_smp: (PROOF_OF_SMP_OUTPUTS, _check_proof_of_smp),
            self.config.proof_successful_smp: (
                PROOF_SUCCESSFUL_SMP_OUTPUTS,
                _check_proof_successful_smp,
            ),
        }

    def _tag(self, circuit: str, public_signals: List[str]) -> str:
        payload = json.dumps([circuit, public_signals]).encode("utf-8")
        return hmac.new(self.key, payload, hashlib.sha256).hexdigest()

    async def prove(self, circuit: str, args: Args) -> Proof:
        if circuit not in self._circuits:
            raise ProofGenerationError(f"unknown circuit: {circuit}")
        outputs, check = self._circuits[circuit]
        try:
            check(args)
            public_signals = layout_public_signals(outputs, args)
        except (KeyError, TypeError, ValueError, MalformedInput) as e:
            raise ProofGenerationError(f"{circuit}: invalid arguments: {e}") from e
        logger.debug("mock proof for %s", circuit)
        proof = {"protocol": "mock", "tag": self._tag(circuit, public_signals)}
        return Proof(proof=proof, public_signals=public_signals)

    async def verify(self, circuit: str, proof: Proof) -> bool:
        if circuit not in self._circuits:
            raise ProofVerificationError(f"unknown circuit: {circuit}")
        if not isinstance(proof.proof, dict):
            return False
        tag = proof.proof.get("tag")
        if not isinstance(tag, str):
            return False
        expected = self._tag(circuit, list(proof.public_signals))
        return hmac.compare_digest(tag, expected)

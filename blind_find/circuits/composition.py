"""
Composition of SMP transcripts into zk-SNARK proofs.

A proof of indirect connection is made of two proofs:

1. Proof of SMP, generated by the hub. It binds the hub's SMP
   transcript with the searcher (messages 1-3) to the hub's registry
   entry, the entry's membership in the registry tree and the join
   message signed by the target user C.
2. Proof of successful SMP, generated by the searcher A. It shows that
   A's side of the same transcript compared equal, and signs `rh` with
   A's key.

A verifier accepts the pair when both proofs verify and their public
signals agree on the identities, the registry root and the shared SMP
points `pa`, `ph` and `rh`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Collection, Dict, List, Optional

from .backend import Proof, ProofBackend
from .signals import (
    parse_proof_of_smp_public_signals,
    parse_proof_successful_smp_public_signals,
)
from ..config import CircuitConfig
from ..exceptions import InvalidProof, MalformedInput
from ..registry import HubRegistry, MerkleProof, SignedJoinMsg
from ..signing import Keypair, Signature, hash_point_to_scalar, sign
from ..smp.group import Point
from ..smp.serialization import SMPMessage1, SMPMessage2, SMPMessage3
from ..smp.state import SMPStateMachine

logger = logging.getLogger(__name__)


# ============================================================================
# INPUTS
# ============================================================================


@dataclass(frozen=True)
class ProofOfSMPInput:
    """
    Everything the hub needs to prove its side of an SMP run.

    Attributes:
        h2, h3: The hub's DH exponents for g2 and g3
        r4h: The hub's exponent behind its P/Q pair
        msg1, msg2, msg3: SMP transcript with the hub as initiator
        proof_of_membership: Merkle proof of `hub_registry.hash()`
        hub_registry: The hub's registration
        join_msg: Target user's join request, countersigned by the hub
    """

    h2: int
    h3: int
    r4h: int
    msg1: SMPMessage1
    msg2: SMPMessage2
    msg3: SMPMessage3
    proof_of_membership: MerkleProof
    hub_registry: HubRegistry
    join_msg: SignedJoinMsg


@dataclass(frozen=True)
class ProofSuccessfulSMPInput:
    a3: int
    pa: Point
    ph: Point
    rh: Point
    pubkey_a: Point
    sig_rh: Signature


def proof_of_smp_input_from_session(
    session: SMPStateMachine,
    proof_of_membership: MerkleProof,
    hub_registry: HubRegistry,
    join_msg: SignedJoinMsg,
) -> ProofOfSMPInput:
    """Lift the hub's side of an exchange that has sent message 3."""
    transcript = session.transcript
    if not session.is_initiator or transcript.msg3 is None:
        raise ValueError("session must be the initiator and have sent message 3")
    return ProofOfSMPInput(
        h2=session.exponent_2,
        h3=session.exponent_3,
        r4h=session.r4,
        msg1=transcript.msg1,
        msg2=transcript.msg2,
        msg3=transcript.msg3,
        proof_of_membership=proof_of_membership,
        hub_registry=hub_registry,
        join_msg=join_msg,
    )


def proof_successful_smp_input_from_session(
    session: SMPStateMachine, keypair_a: Keypair
) -> ProofSuccessfulSMPInput:
    """
    Lift the searcher's side of a finished, successful exchange.

    Raises:
        SMPNotFinished: the exchange has not finished
        ValueError: not the responder, or the secrets did not match
    """
    if session.is_initiator is not False:
        raise ValueError("session must be the responder")
    if not session.get_result():
        raise ValueError("SMP did not succeed")
    transcript = session.transcript
    rh = transcript.msg3.ra
    return ProofSuccessfulSMPInput(
        a3=session.exponent_3,
        pa=transcript.msg2.pb,
        ph=transcript.msg3.pa,
        rh=rh,
        pubkey_a=keypair_a.public_key,
        sig_rh=sign(keypair_a.private_key, hash_point_to_scalar(rh)),
    )


# ============================================================================
# ARGUMENT MAPS
# ============================================================================


def _point_arg(point: Point) -> List[str]:
    x, y = point.to_affine()
    return [str(x), str(y)]


def proof_of_smp_args(inputs: ProofOfSMPInput) -> Dict[str, Any]:
    """
    Build the proof of SMP argument map.

    Raises:
        MalformedInput: the hub registry signature does not verify
    """
    registry = inputs.hub_registry
    if not registry.verify():
        raise MalformedInput("hub registry signature does not verify")

    membership = inputs.proof_of_membership
    join_msg = inputs.join_msg
    msg1, msg2, msg3 = inputs.msg1, inputs.msg2, inputs.msg3
    return {
        "merklePathElements": [str(v) for v in membership.path_elements],
        "merklePathIndices": [str(v) for v in membership.path_indices],
        "merkleRoot": str(membership.root),
        "sigHubRegistryR8": _point_arg(registry.sig.r8),
        "sigHubRegistryS": str(registry.sig.s),
        "adminAddress": str(registry.admin_address),
        "pubkeyC": _point_arg(join_msg.user_pubkey),
        "sigCR8": _point_arg(join_msg.user_sig.r8),
        "sigCS": str(join_msg.user_sig.s),
        "pubkeyHub": _point_arg(registry.pubkey),
        "sigJoinMsgHubR8": _point_arg(join_msg.hub_sig.r8),
        "sigJoinMsgHubS": str(join_msg.hub_sig.s),
        "h2": str(inputs.h2),
        "h3": str(inputs.h3),
        "r4h": str(inputs.r4h),
        # msg1, from the hub
        "g2h": _point_arg(msg1.g2a),
        "g2hProofC": str(msg1.g2a_proof.c),
        "g2hProofD": str(msg1.g2a_proof.d),
        "g3h": _point_arg(msg1.g3a),
        "g3hProofC": str(msg1.g3a_proof.c),
        "g3hProofD": str(msg1.g3a_proof.d),
        # msg2, from the searcher
        "g2a": _point_arg(msg2.g2b),
        "g2aProofC": str(msg2.g2b_proof.c),
        "g2aProofD": str(msg2.g2b_proof.d),
        "g3a": _point_arg(msg2.g3b),
        "g3aProofC": str(msg2.g3b_proof.c),
        "g3aProofD": str(msg2.g3b_proof.d),
        "pa": _point_arg(msg2.pb),
        "qa": _point_arg(msg2.qb),
        "paqaProofC": str(msg2.pbqb_proof.c),
        "paqaProofD0": str(msg2.pbqb_proof.d0),
        "paqaProofD1": str(msg2.pbqb_proof.d1),
        # msg3, from the hub
        "ph": _point_arg(msg3.pa),
        "qh": _point_arg(msg3.qa),
        "phqhProofC": str(msg3.paqa_proof.c),
        "phqhProofD0": str(msg3.paqa_proof.d0),
        "phqhProofD1": str(msg3.paqa_proof.d1),
        "rh": _point_arg(msg3.ra),
        "rhProofC": str(msg3.ra_proof.c),
        "rhProofD": str(msg3.ra_proof.d),
    }


def proof_successful_smp_args(inputs: ProofSuccessfulSMPInput) -> Dict[str, Any]:
    return {
        "a3": str(inputs.a3),
        "pa": _point_arg(inputs.pa),
        "ph": _point_arg(inputs.ph),
        "rh": _point_arg(inputs.rh),
        "pubkeyA": _point_arg(inputs.pubkey_a),
        "sigRhR8": _point_arg(inputs.sig_rh.r8),
        "sigRhS": str(inputs.sig_rh.s),
    }


# ============================================================================
# COMPOSITE PROOF
# ============================================================================


@dataclass(frozen=True)
class ProofIndirectConnection:
    """Searcher A reached target C through a registered hub."""

    pubkey_a: Point
    pubkey_c: Point
    admin_address: int
    proof_of_smp: Proof
    proof_successful_smp: Proof


class ProofComposer:
    """
    Generates and verifies the two proofs through a `ProofBackend`.

    Example:
        >>> composer = ProofComposer(MockProofBackend(b"key"))
        >>> proof_of_smp = await composer.gen_proof_of_smp(hub_input)
        >>> proof = await composer.gen_proof_indirect_connection(
        ...     proof_of_smp, searcher_input
        ... )
        >>> assert await composer.verify_proof_indirect_connection(
        ...     proof, valid_roots={tree.root}
        ... )
    """

    def __init__(
        self, backend: ProofBackend, config: Optional[CircuitConfig] = None
    ):
        self.backend = backend
        self.config = config or CircuitConfig()

    async def gen_proof_of_smp(self, inputs: ProofOfSMPInput) -> Proof:
        args = proof_of_smp_args(inputs)
        logger.debug("generating %s", self.config.proof_of_smp)
        return await self.backend.prove(self.config.proof_of_smp, args)

    async def verify_proof_of_smp(self, proof: Proof) -> bool:
        return await self.backend.verify(self.config.proof_of_smp, proof)

    async def gen_proof_successful_smp(
        self, inputs: ProofSuccessfulSMPInput
    ) -> Proof:
        args = proof_successful_smp_args(inputs)
        logger.debug("generating %s", self.config.proof_successful_smp)
        return await self.backend.prove(self.config.proof_successful_smp, args)

    async def verify_proof_successful_smp(self, proof: Proof) -> bool:
        return await self.backend.verify(self.config.proof_successful_smp, proof)

    async def gen_proof_indirect_connection(
        self, proof_of_smp: Proof, inputs: ProofSuccessfulSMPInput
    ) -> ProofIndirectConnection:
        """
        Searcher side: check the hub's proof, then add our own.

        Raises:
            InvalidProof: the hub's proof does not verify or was made
                for a different SMP run
        """
        if not await self.verify_proof_of_smp(proof_of_smp):
            raise InvalidProof("proof of SMP does not verify")
        public = parse_proof_of_smp_public_signals(proof_of_smp.public_signals)
        if (public.pa, public.ph, public.rh) != (inputs.pa, inputs.ph, inputs.rh):
            raise InvalidProof("proof of SMP is for a different SMP run")

        proof_successful_smp = await self.gen_proof_successful_smp(inputs)
        return ProofIndirectConnection(
            pubkey_a=inputs.pubkey_a,
            pubkey_c=public.pubkey_c,
            admin_address=public.admin_address,
            proof_of_smp=proof_of_smp,
            proof_successful_smp=proof_successful_smp,
        )

    async def verify_proof_indirect_connection(
        self,
        proof: ProofIndirectConnection,
        valid_roots: Collection[int],
    ) -> bool:
        """
        Verify both proofs and that they describe the same connection.

        Checks run in a fixed order and stop at the first failure. A
        failed check is logged and returns False.

        Raises:
            MalformedInput: a public signal vector does not parse
            ProofVerificationError: the backend could not run
        """
        if not await self.verify_proof_of_smp(proof.proof_of_smp):
            return _reject("proof of SMP does not verify")
        if not await self.verify_proof_successful_smp(proof.proof_successful_smp):
            return _reject("proof of successful SMP does not verify")

        smp = parse_proof_of_smp_public_signals(proof.proof_of_smp.public_signals)
        successful = parse_proof_successful_smp_public_signals(
            proof.proof_successful_smp.public_signals
        )

        if successful.pubkey_a != proof.pubkey_a:
            return _reject("pubkeyA mismatch")
        if smp.pubkey_c != proof.pubkey_c:
            return _reject("pubkeyC mismatch")
        if smp.admin_address != proof.admin_address:
            return _reject("adminAddress mismatch")
        if smp.merkle_root not in valid_roots:
            return _reject("merkle root is not valid")
        if (
            successful.pa != smp.pa
            or successful.ph != smp.ph
            or successful.rh != smp.rh
        ):
            return _reject("SMP points mismatch")
        return True


def _reject(reason: str) -> bool:
    logger.info("proof of indirect connection rejected: %s", reason)
    return False

"""zk-SNARK proof composition for proofs of indirect connection."""

from .backend import MockProofBackend, Proof, ProofBackend, SnarkjsBackend
from .composition import (
    ProofComposer,
    ProofIndirectConnection,
    ProofOfSMPInput,
    ProofSuccessfulSMPInput,
    proof_of_smp_args,
    proof_of_smp_input_from_session,
    proof_successful_smp_args,
    proof_successful_smp_input_from_session,
)
from .messages import (
    decode_proof_indirect_connection,
    encode_proof_indirect_connection,
)
from .signals import (
    parse_proof_of_smp_public_signals,
    parse_proof_successful_smp_public_signals,
)

__all__ = [
    "MockProofBackend",
    "Proof",
    "ProofBackend",
    "SnarkjsBackend",
    "ProofComposer",
    "ProofIndirectConnection",
    "ProofOfSMPInput",
    "ProofSuccessfulSMPInput",
    "proof_of_smp_args",
    "proof_of_smp_input_from_session",
    "proof_successful_smp_args",
    "proof_successful_smp_input_from_session",
    "decode_proof_indirect_connection",
    "encode_proof_indirect_connection",
    "parse_proof_of_smp_public_signals",
    "parse_proof_successful_smp_public_signals",
]

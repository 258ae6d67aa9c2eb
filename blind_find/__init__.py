"""
blind-find: proofs of indirect connection through registered hubs.

Two parties run the Socialist Millionaires' Protocol to compare a
secret, and the transcript is wrapped in zk-SNARK proofs binding it to
a hub's registration and a target user's identity.
"""

from .exceptions import (
    BlindFindError,
    InvalidProof,
    MalformedInput,
    ProtocolViolation,
    SMPNotFinished,
)
from .smp import SMPStateMachine, TLV

__version__ = "0.1.0"

__all__ = [
    "BlindFindError",
    "InvalidProof",
    "MalformedInput",
    "ProtocolViolation",
    "SMPNotFinished",
    "SMPStateMachine",
    "TLV",
]

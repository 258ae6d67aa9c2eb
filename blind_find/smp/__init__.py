"""Socialist Millionaires' Protocol: group, proofs, wire format and state machine."""

from .group import Point, base_point
from .proofs import (
    ProofDiscreteLog,
    ProofEqualDiscreteCoordinates,
    ProofEqualDiscreteLogs,
)
from .serialization import (
    TLV,
    SMPMessage1,
    SMPMessage2,
    SMPMessage3,
    SMPMessage4,
    decode_message,
    deserialize_message,
    message_from_tlv,
    message_to_tlv,
    serialize_message,
)
from .state import SMPState, SMPStateMachine

__all__ = [
    "Point",
    "base_point",
    "ProofDiscreteLog",
    "ProofEqualDiscreteCoordinates",
    "ProofEqualDiscreteLogs",
    "TLV",
    "SMPMessage1",
    "SMPMessage2",
    "SMPMessage3",
    "SMPMessage4",
    "decode_message",
    "deserialize_message",
    "message_from_tlv",
    "message_to_tlv",
    "serialize_message",
    "SMPState",
    "SMPStateMachine",
]

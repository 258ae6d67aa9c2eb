"""
Wire format of the SMP exchange.

A TLV record is

    type:   uint16 big-endian
    length: uint16 big-endian
    value:  bytes[length]

SMP messages 1-4 travel as TLVs of type 2-5. Their value is the
concatenation of fixed-width fields in a per-stage order:

    Short  2 bytes, big-endian
    Scalar 32 bytes, big-endian, must be below the group order
    Point  33 bytes, SEC1 compressed

Each stage is a frozen dataclass. `MESSAGE_SCHEMAS` maps the stage
number to its TLV type and field kinds, and decoding walks a
`FieldReader` cursor over the value in schema order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, List, Tuple, Type, Union

from .group import Point
from .proofs import (
    ProofDiscreteLog,
    ProofEqualDiscreteCoordinates,
    ProofEqualDiscreteLogs,
)
from ..config import (
    GROUP_ORDER,
    POINT_SIZE_BYTES,
    SCALAR_SIZE_BYTES,
    SHORT_SIZE_BYTES,
    SMP_TLV_TYPES,
)
from ..exceptions import MalformedInput, ProtocolViolation

TLV_HEADER_BYTES = 2 * SHORT_SIZE_BYTES
MAX_SHORT = 2 ** (SHORT_SIZE_BYTES * 8) - 1


# ============================================================================
# FIXED-WIDTH FIELDS
# ============================================================================


class FieldKind(Enum):
    SHORT = "short"
    SCALAR = "scalar"
    POINT = "point"

    @property
    def size(self) -> int:
        return _FIELD_SIZES[self]


_FIELD_SIZES = {
    FieldKind.SHORT: SHORT_SIZE_BYTES,
    FieldKind.SCALAR: SCALAR_SIZE_BYTES,
    FieldKind.POINT: POINT_SIZE_BYTES,
}

FieldValue = Union[int, Point]


def encode_short(value: int) -> bytes:
    if not 0 <= value <= MAX_SHORT:
        raise ValueError(f"short out of range: {value}")
    return value.to_bytes(SHORT_SIZE_BYTES, "big")


def decode_short(data: bytes) -> int:
    if len(data) != SHORT_SIZE_BYTES:
        raise MalformedInput(
            f"short must be {SHORT_SIZE_BYTES} bytes, got {len(data)}"
        )
    return int.from_bytes(data, "big")


def encode_scalar(value: int) -> bytes:
    if not 0 <= value < GROUP_ORDER:
        raise ValueError("scalar must be in [0, GROUP_ORDER)")
    return value.to_bytes(SCALAR_SIZE_BYTES, "big")


def decode_scalar(data: bytes) -> int:
    if len(data) != SCALAR_SIZE_BYTES:
        raise MalformedInput(
            f"scalar must be {SCALAR_SIZE_BYTES} bytes, got {len(data)}"
        )
    value = int.from_bytes(data, "big")
    if value >= GROUP_ORDER:
        raise MalformedInput("scalar is not reduced modulo the group order")
    return value


def encode_field(kind: FieldKind, value: FieldValue) -> bytes:
    if kind is FieldKind.POINT:
        if not isinstance(value, Point):
            raise TypeError(f"expected Point, got {type(value)}")
        return value.serialize()
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"expected int for {kind.value}, got {type(value)}")
    if kind is FieldKind.SCALAR:
        return encode_scalar(value)
    return encode_short(value)


def decode_field(kind: FieldKind, data: bytes) -> FieldValue:
    if kind is FieldKind.POINT:
        return Point.deserialize(data)
    if kind is FieldKind.SCALAR:
        return decode_scalar(data)
    return decode_short(data)


class FieldReader:
    """
    Cursor over a byte buffer that yields fixed-width fields.

    The buffer is never sliced in place; `offset` is the only state.
    """

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset

    def read(self, kind: FieldKind) -> FieldValue:
        size = kind.size
        if self.remaining < size:
            raise MalformedInput(
                f"need {size} bytes for {kind.value} at offset "
                f"{self.offset}, {self.remaining} left"
            )
        chunk = self._data[self.offset:self.offset + size]
        value = decode_field(kind, chunk)
        self.offset += size
        return value


# ============================================================================
# TLV
# ============================================================================


@dataclass(frozen=True)
class TLV:
    """Type-Length-Value record. The length is implied by `value`."""

    type: int
    value: bytes

    def __post_init__(self):
        if not 0 <= self.type <= MAX_SHORT:
            raise ValueError(f"TLV type out of range: {self.type}")
        if len(self.value) > MAX_SHORT:
            raise ValueError(f"TLV value too long: {len(self.value)} bytes")

    @property
    def length(self) -> int:
        return len(self.value)

    def serialize(self) -> bytes:
        return encode_short(self.type) + encode_short(self.length) + self.value

    @classmethod
    def deserialize(cls, data: bytes) -> "TLV":
        """
        Parse a TLV from the front of `data`.

        Trailing bytes after the record are ignored; use `consume` to
        get them back.

        Raises:
            ProtocolViolation: header truncated or value shorter than declared
        """
        tlv, _ = cls.consume(data)
        return tlv

    @classmethod
    def consume(cls, data: bytes) -> Tuple["TLV", bytes]:
        data = bytes(data)
        if len(data) < TLV_HEADER_BYTES:
            raise ProtocolViolation(
                f"TLV header needs {TLV_HEADER_BYTES} bytes, got {len(data)}"
            )
        tlv_type = int.from_bytes(data[0:SHORT_SIZE_BYTES], "big")
        length = int.from_bytes(data[SHORT_SIZE_BYTES:TLV_HEADER_BYTES], "big")
        end = TLV_HEADER_BYTES + length
        if len(data) < end:
            raise ProtocolViolation(
                f"TLV declares {length} value bytes, only "
                f"{len(data) - TLV_HEADER_BYTES} present"
            )
        return cls(type=tlv_type, value=data[TLV_HEADER_BYTES:end]), data[end:]


# ============================================================================
# SMP MESSAGES
# ============================================================================

P = FieldKind.POINT
S = FieldKind.SCALAR


@dataclass(frozen=True)
class MessageSchema:
    stage: int
    tlv_type: int
    fields: Tuple[FieldKind, ...]

    @property
    def value_size(self) -> int:
        return sum(kind.size for kind in self.fields)


MESSAGE_SCHEMAS: Dict[int, MessageSchema] = {
    1: MessageSchema(1, SMP_TLV_TYPES[1], (P, S, S, P, S, S)),
    2: MessageSchema(2, SMP_TLV_TYPES[2], (P, S, S, P, S, S, P, P, S, S, S)),
    3: MessageSchema(3, SMP_TLV_TYPES[3], (P, P, S, S, S, P, S, S)),
    4: MessageSchema(4, SMP_TLV_TYPES[4], (P, S, S)),
}

STAGE_BY_TLV_TYPE = {
    schema.tlv_type: stage for stage, schema in MESSAGE_SCHEMAS.items()
}


@dataclass(frozen=True)
class SMPMessage1:
    """
    Sent by the initiator to start the DH exchange for g2 and g3.

    g2a, g3a are the initiator's DH halves, each with a proof of
    knowledge of its exponent.
    """

    stage: ClassVar[int] = 1

    g2a: Point
    g2a_proof: ProofDiscreteLog
    g3a: Point
    g3a_proof: ProofDiscreteLog

    def to_elements(self) -> List[FieldValue]:
        return [
            self.g2a, self.g2a_proof.c, self.g2a_proof.d,
            self.g3a, self.g3a_proof.c, self.g3a_proof.d,
        ]

    @classmethod
    def from_elements(cls, e: List[FieldValue]) -> "SMPMessage1":
        return cls(
            g2a=e[0],
            g2a_proof=ProofDiscreteLog(c=e[1], d=e[2]),
            g3a=e[3],
            g3a_proof=ProofDiscreteLog(c=e[4], d=e[5]),
        )


@dataclass(frozen=True)
class SMPMessage2:
    """
    Sent by the responder: its DH halves g2b, g3b with proofs, and the
    comparison pair Pb, Qb with a proof they were built as the
    protocol requires.
    """

    stage: ClassVar[int] = 2

    g2b: Point
    g2b_proof: ProofDiscreteLog
    g3b: Point
    g3b_proof: ProofDiscreteLog
    pb: Point
    qb: Point
    pbqb_proof: ProofEqualDiscreteCoordinates

    def to_elements(self) -> List[FieldValue]:
        return [
            self.g2b, self.g2b_proof.c, self.g2b_proof.d,
            self.g3b, self.g3b_proof.c, self.g3b_proof.d,
            self.pb, self.qb,
            self.pbqb_proof.c, self.pbqb_proof.d0, self.pbqb_proof.d1,
        ]

    @classmethod
    def from_elements(cls, e: List[FieldValue]) -> "SMPMessage2":
        return cls(
            g2b=e[0],
            g2b_proof=ProofDiscreteLog(c=e[1], d=e[2]),
            g3b=e[3],
            g3b_proof=ProofDiscreteLog(c=e[4], d=e[5]),
            pb=e[6],
            qb=e[7],
            pbqb_proof=ProofEqualDiscreteCoordinates(c=e[8], d0=e[9], d1=e[10]),
        )


@dataclass(frozen=True)
class SMPMessage3:
    """
    The initiator's last message: Pa, Qa with their proof, and Ra with
    a proof that it shares its exponent with g3a.
    """

    stage: ClassVar[int] = 3

    pa: Point
    qa: Point
    paqa_proof: ProofEqualDiscreteCoordinates
    ra: Point
    ra_proof: ProofEqualDiscreteLogs

    def to_elements(self) -> List[FieldValue]:
        return [
            self.pa, self.qa,
            self.paqa_proof.c, self.paqa_proof.d0, self.paqa_proof.d1,
            self.ra, self.ra_proof.c, self.ra_proof.d,
        ]

    @classmethod
    def from_elements(cls, e: List[FieldValue]) -> "SMPMessage3":
        return cls(
            pa=e[0],
            qa=e[1],
            paqa_proof=ProofEqualDiscreteCoordinates(c=e[2], d0=e[3], d1=e[4]),
            ra=e[5],
            ra_proof=ProofEqualDiscreteLogs(c=e[6], d=e[7]),
        )


@dataclass(frozen=True)
class SMPMessage4:
    """The responder's last message: Rb with its proof."""

    stage: ClassVar[int] = 4

    rb: Point
    rb_proof: ProofEqualDiscreteLogs

    def to_elements(self) -> List[FieldValue]:
        return [self.rb, self.rb_proof.c, self.rb_proof.d]

    @classmethod
    def from_elements(cls, e: List[FieldValue]) -> "SMPMessage4":
        return cls(rb=e[0], rb_proof=ProofEqualDiscreteLogs(c=e[1], d=e[2]))


SMPMessage = Union[SMPMessage1, SMPMessage2, SMPMessage3, SMPMessage4]

MESSAGE_TYPES: Dict[int, Type] = {
    1: SMPMessage1,
    2: SMPMessage2,
    3: SMPMessage3,
    4: SMPMessage4,
}


def message_to_tlv(msg: SMPMessage) -> TLV:
    schema = MESSAGE_SCHEMAS[msg.stage]
    elements = msg.to_elements()
    if len(elements) != len(schema.fields):
        raise ValueError("length mismatch between elements and schema")
    value = b"".join(
        encode_field(kind, element)
        for kind, element in zip(schema.fields, elements)
    )
    return TLV(type=schema.tlv_type, value=value)


def message_from_tlv(tlv: TLV, stage: int) -> SMPMessage:
    """
    Decode `tlv` as the SMP message of `stage`.

    Raises:
        ProtocolViolation: wrong TLV type, truncated or oversized value,
            or a field that does not decode
    """
    schema = MESSAGE_SCHEMAS[stage]
    if tlv.type != schema.tlv_type:
        raise ProtocolViolation(
            f"type mismatch: expected={schema.tlv_type}, tlv.type={tlv.type}"
        )

    reader = FieldReader(tlv.value)
    try:
        elements = [reader.read(kind) for kind in schema.fields]
    except MalformedInput as e:
        raise ProtocolViolation(f"malformed SMP message {stage}: {e}") from e

    if reader.remaining != 0:
        raise ProtocolViolation(
            f"SMP message {stage} has {reader.remaining} trailing bytes"
        )
    return MESSAGE_TYPES[stage].from_elements(elements)


def decode_message(tlv: TLV) -> SMPMessage:
    """Decode an SMP message of whichever stage its TLV type names."""
    stage = STAGE_BY_TLV_TYPE.get(tlv.type)
    if stage is None:
        raise ProtocolViolation(f"unknown SMP TLV type: {tlv.type}")
    return message_from_tlv(tlv, stage)


def serialize_message(msg: SMPMessage) -> bytes:
    return message_to_tlv(msg).serialize()


def deserialize_message(data: bytes, stage: int) -> SMPMessage:
    return message_from_tlv(TLV.deserialize(data), stage)

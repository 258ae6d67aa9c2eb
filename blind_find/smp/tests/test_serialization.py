"""Tests for the TLV wire format and SMP message codecs."""

import pytest

from blind_find.config import GROUP_ORDER, SMP_TLV_TYPES
from blind_find.exceptions import MalformedInput, ProtocolViolation
from blind_find.factories import random_point, smp_message_factory
from blind_find.smp.serialization import (
    MESSAGE_SCHEMAS,
    TLV,
    FieldKind,
    FieldReader,
    decode_message,
    decode_scalar,
    deserialize_message,
    encode_scalar,
    message_from_tlv,
    message_to_tlv,
    serialize_message,
)

STAGES = [1, 2, 3, 4]


# ============================================================================
# TLV
# ============================================================================


def test_tlv_layout():
    tlv = TLV(type=2, value=b"\xaa\xbb\xcc")
    assert tlv.serialize() == b"\x00\x02\x00\x03\xaa\xbb\xcc"
    assert TLV.deserialize(tlv.serialize()) == tlv


def test_tlv_empty_value():
    tlv = TLV(type=9, value=b"")
    assert TLV.deserialize(tlv.serialize()) == tlv


def test_tlv_consume_returns_rest():
    first = TLV(type=1, value=b"x")
    second = TLV(type=2, value=b"yz")
    tlv, rest = TLV.consume(first.serialize() + second.serialize())
    assert tlv == first
    assert TLV.deserialize(rest) == second


@pytest.mark.parametrize("declared", [1, 10, 65535])
def test_tlv_length_exceeding_buffer_fails(declared):
    data = b"\x00\x02" + declared.to_bytes(2, "big") + b"\x00" * (declared - 1)
    with pytest.raises(ProtocolViolation):
        TLV.deserialize(data)


def test_tlv_truncated_header_fails():
    with pytest.raises(ProtocolViolation):
        TLV.deserialize(b"\x00\x02\x00")


def test_tlv_rejects_oversized_value():
    with pytest.raises(ValueError):
        TLV(type=2, value=b"\x00" * 65536)


# ============================================================================
# FIELDS
# ============================================================================


def test_scalar_encoding_is_fixed_width():
    assert encode_scalar(1) == b"\x00" * 31 + b"\x01"
    assert decode_scalar(encode_scalar(GROUP_ORDER - 1)) == GROUP_ORDER - 1


def test_scalar_not_reduced_is_malformed():
    with pytest.raises(MalformedInput):
        decode_scalar(GROUP_ORDER.to_bytes(32, "big"))


def test_field_reader_advances_cursor():
    point = random_point()
    reader = FieldReader(point.serialize() + encode_scalar(7) + b"\x00\x05")
    assert reader.read(FieldKind.POINT) == point
    assert reader.read(FieldKind.SCALAR) == 7
    assert reader.read(FieldKind.SHORT) == 5
    assert reader.remaining == 0


def test_field_reader_short_buffer():
    reader = FieldReader(b"\x00" * 10)
    with pytest.raises(MalformedInput):
        reader.read(FieldKind.SCALAR)
    assert reader.offset == 0


# ============================================================================
# SMP MESSAGES
# ============================================================================


@pytest.mark.parametrize("stage", STAGES)
def test_message_roundtrip(stage):
    msg = smp_message_factory(stage)
    data = serialize_message(msg)
    assert deserialize_message(data, stage) == msg


@pytest.mark.parametrize("stage", STAGES)
def test_message_tlv_type_and_size(stage):
    tlv = message_to_tlv(smp_message_factory(stage))
    assert tlv.type == SMP_TLV_TYPES[stage]
    assert tlv.length == MESSAGE_SCHEMAS[stage].value_size


def test_schema_sizes():
    assert MESSAGE_SCHEMAS[1].value_size == 2 * 33 + 4 * 32
    assert MESSAGE_SCHEMAS[2].value_size == 4 * 33 + 7 * 32
    assert MESSAGE_SCHEMAS[3].value_size == 3 * 33 + 5 * 32
    assert MESSAGE_SCHEMAS[4].value_size == 33 + 2 * 32


@pytest.mark.parametrize("stage", STAGES)
def test_wrong_tlv_type_is_rejected(stage):
    other = 1 if stage != 1 else 2
    tlv = message_to_tlv(smp_message_factory(other))
    with pytest.raises(ProtocolViolation, match="type mismatch"):
        message_from_tlv(tlv, stage)


@pytest.mark.parametrize("stage", STAGES)
def test_trailing_bytes_are_rejected(stage):
    tlv = message_to_tlv(smp_message_factory(stage))
    padded = TLV(type=tlv.type, value=tlv.value + b"\x00")
    with pytest.raises(ProtocolViolation, match="trailing"):
        message_from_tlv(padded, stage)


@pytest.mark.parametrize("stage", STAGES)
def test_truncated_value_is_rejected(stage):
    tlv = message_to_tlv(smp_message_factory(stage))
    short = TLV(type=tlv.type, value=tlv.value[:-1])
    with pytest.raises(ProtocolViolation):
        message_from_tlv(short, stage)


def test_invalid_point_is_rejected():
    tlv = message_to_tlv(smp_message_factory(4))
    broken = TLV(type=tlv.type, value=b"\x05" + tlv.value[1:])
    with pytest.raises(ProtocolViolation, match="malformed"):
        message_from_tlv(broken, 4)


@pytest.mark.parametrize("stage", STAGES)
def test_decode_message_dispatches_on_type(stage):
    msg = smp_message_factory(stage)
    assert decode_message(message_to_tlv(msg)) == msg


def test_decode_message_unknown_type():
    with pytest.raises(ProtocolViolation):
        decode_message(TLV(type=99, value=b""))

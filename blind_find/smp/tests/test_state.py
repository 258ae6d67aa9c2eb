"""Tests for the SMP state machine."""

import pytest

from blind_find.exceptions import ProtocolViolation, SMPNotFinished
from blind_find.factories import run_smp, smp_message_factory
from blind_find.smp.serialization import TLV, message_to_tlv
from blind_find.smp.state import SMPState, SMPStateMachine, normalize_secret


def _tlv(stage):
    return message_to_tlv(smp_message_factory(stage))


def _snapshot(machine):
    return (
        machine.state,
        machine.is_initiator,
        machine.exponent_2,
        machine.exponent_3,
        machine.r4,
        machine.g2,
        machine.g3,
        machine.pa,
        machine.qa,
        machine.pb,
        machine.qb,
        machine.transcript.msg1,
        machine.transcript.msg2,
        machine.transcript.msg3,
        machine.transcript.msg4,
    )


@pytest.fixture
def machines_by_state():
    """One machine parked in each non-terminal state."""
    alice = SMPStateMachine("string0")
    bob = SMPStateMachine("string0")
    expect1 = SMPStateMachine("string0")

    msg1 = alice.transit(None)
    expect2 = alice

    bob.transit(msg1)
    expect3 = bob

    charlie = SMPStateMachine("string0")
    dave = SMPStateMachine("string0")
    charlie.transit(dave.transit(charlie.transit(None)))
    expect4 = charlie

    return {
        SMPState.EXPECT1: expect1,
        SMPState.EXPECT2: expect2,
        SMPState.EXPECT3: expect3,
        SMPState.EXPECT4: expect4,
    }


# ============================================================================
# SECRETS
# ============================================================================


def test_secret_forms_normalize_consistently():
    assert normalize_secret("abc") == normalize_secret(b"abc")
    assert normalize_secret(1) != normalize_secret(2)
    assert normalize_secret("string0") != normalize_secret("string1")


@pytest.mark.parametrize("secret", [1.5, None, [1], True])
def test_secret_rejects_other_types(secret):
    with pytest.raises(TypeError):
        SMPStateMachine(secret)


def test_secret_rejects_negative_int():
    with pytest.raises(ValueError):
        SMPStateMachine(-1)


def test_secret_is_normalized_once():
    machine = SMPStateMachine("string0")
    assert machine.secret == normalize_secret("string0")


# ============================================================================
# FULL EXCHANGE
# ============================================================================


def test_same_secret_matches():
    alice, bob = run_smp("string0", "string0")
    assert alice.is_finished() and bob.is_finished()
    assert alice.get_result() is True
    assert bob.get_result() is True


def test_different_secret_does_not_match():
    alice, bob = run_smp("string0", "string1")
    assert alice.get_result() is False
    assert bob.get_result() is False


@pytest.mark.parametrize(
    "secret_a, secret_b",
    [(1, 1), (1, 2), (b"\x00\x01", b"\x00\x01"), ("x", b"x"), (0, b"")],
)
def test_results_agree(secret_a, secret_b):
    alice, bob = run_smp(secret_a, secret_b)
    expected = normalize_secret(secret_a) == normalize_secret(secret_b)
    assert alice.get_result() == bob.get_result() == expected


def test_states_and_roles_advance():
    alice = SMPStateMachine(5)
    bob = SMPStateMachine(5)
    assert alice.state is bob.state is SMPState.EXPECT1

    msg1 = alice.transit(None)
    assert alice.state is SMPState.EXPECT2 and alice.is_initiator
    assert msg1.type == 2

    msg2 = bob.transit(msg1)
    assert bob.state is SMPState.EXPECT3 and bob.is_initiator is False
    assert msg2.type == 3

    msg3 = alice.transit(msg2)
    assert alice.state is SMPState.EXPECT4
    assert msg3.type == 4

    msg4 = bob.transit(msg3)
    assert bob.state is SMPState.FINISHED
    assert msg4.type == 5

    assert alice.transit(msg4) is None
    assert alice.state is SMPState.FINISHED


def test_transit_accepts_serialized_bytes():
    alice = SMPStateMachine("s")
    bob = SMPStateMachine("s")
    msg2 = bob.transit(alice.transit(None).serialize())
    msg3 = alice.transit(msg2.serialize())
    msg4 = bob.transit(msg3.serialize())
    alice.transit(msg4.serialize())
    assert alice.get_result() and bob.get_result()


def test_transit_rejects_bytes_after_record():
    alice = SMPStateMachine("s")
    bob = SMPStateMachine("s")
    msg1 = alice.transit(None).serialize()
    with pytest.raises(ProtocolViolation, match="after the TLV"):
        bob.transit(msg1 + b"\x00")
    assert bob.state is SMPState.EXPECT1
    bob.transit(msg1)


def test_get_result_before_finished():
    alice = SMPStateMachine("s")
    with pytest.raises(SMPNotFinished):
        alice.get_result()
    alice.transit(None)
    with pytest.raises(SMPNotFinished):
        alice.get_result()


def test_finished_accepts_nothing():
    alice, bob = run_smp("s", "s")
    with pytest.raises(ProtocolViolation):
        alice.transit(None)
    with pytest.raises(ProtocolViolation):
        bob.transit(_tlv(4))


# ============================================================================
# REJECTION
# ============================================================================

LEGAL_STAGE = {
    SMPState.EXPECT1: 1,
    SMPState.EXPECT2: 2,
    SMPState.EXPECT3: 3,
    SMPState.EXPECT4: 4,
}


@pytest.mark.parametrize("state", list(LEGAL_STAGE))
@pytest.mark.parametrize("stage", [1, 2, 3, 4])
def test_wrong_message_type_is_rejected(machines_by_state, state, stage):
    if LEGAL_STAGE[state] == stage:
        pytest.skip("legal message for this state")
    machine = machines_by_state[state]
    before = _snapshot(machine)
    with pytest.raises(ProtocolViolation):
        machine.transit(_tlv(stage))
    assert _snapshot(machine) == before


@pytest.mark.parametrize(
    "state", [SMPState.EXPECT2, SMPState.EXPECT3, SMPState.EXPECT4]
)
def test_none_only_legal_in_expect1(machines_by_state, state):
    with pytest.raises(ProtocolViolation):
        machines_by_state[state].transit(None)


@pytest.mark.parametrize("state", list(LEGAL_STAGE))
def test_malformed_tlv_is_rejected(machines_by_state, state):
    machine = machines_by_state[state]
    with pytest.raises(ProtocolViolation):
        machine.transit(b"\x00\x02\x00\x10\x00")
    legal = _tlv(LEGAL_STAGE[state])
    with pytest.raises(ProtocolViolation):
        machine.transit(TLV(type=legal.type, value=legal.value[:-3]))
    assert machine.state is state


@pytest.mark.parametrize("state", list(LEGAL_STAGE))
def test_forged_proofs_are_rejected(machines_by_state, state):
    # Random contents carry proofs that do not verify
    machine = machines_by_state[state]
    before = _snapshot(machine)
    with pytest.raises(ProtocolViolation, match="invalid"):
        machine.transit(_tlv(LEGAL_STAGE[state]))
    assert _snapshot(machine) == before


def test_machine_usable_after_rejection():
    alice = SMPStateMachine("string0")
    bob = SMPStateMachine("string0")
    msg1 = alice.transit(None)
    with pytest.raises(ProtocolViolation):
        bob.transit(_tlv(3))
    msg2 = bob.transit(msg1)
    with pytest.raises(ProtocolViolation):
        alice.transit(msg1)
    msg3 = alice.transit(msg2)
    msg4 = bob.transit(msg3)
    alice.transit(msg4)
    assert alice.get_result() and bob.get_result()

"""
SMP state machine.

Each party drives one `SMPStateMachine`. Both start in `EXPECT1`; the
party that calls `transit(None)` becomes the initiator.

    initiator                         responder
    EXPECT1 --transit(None)--> msg1
    EXPECT2                           EXPECT1 --transit(msg1)--> msg2
            <--------------------------------------------------- msg2
    EXPECT2 --transit(msg2)--> msg3   EXPECT3
            --------------------------------------------------> msg3
    EXPECT4                           EXPECT3 --transit(msg3)--> msg4
            <--------------------------------------------------- msg4
    EXPECT4 --transit(msg4)--> None   FINISHED
    FINISHED

With the initiator's exponents (a2, a3, secret x) and the responder's
(b2, b3, secret y), and g1 the base point:

    g2 = g1*(a2*b2), g3 = g1*(a3*b3)
    Pa = g3*r4a, Qa = g1*r4a + g2*x
    Pb = g3*r4b, Qb = g1*r4b + g2*y
    Ra = (Qa - Qb)*a3, Rb = (Qa - Qb)*b3

and both parties accept iff (Qa - Qb)*(a3*b3) == Pa - Pb, which holds
exactly when x == y.

`transit` is all-or-nothing: a call that raises leaves the machine in
the state it had before the call.
"""

import logging
from enum import Enum
from dataclasses import dataclass
from typing import Optional, Union

from .group import Point, base_point
from .proofs import (
    make_proof_discrete_log,
    make_proof_equal_discrete_coordinates,
    make_proof_equal_discrete_logs,
    verify_proof_discrete_log,
    verify_proof_equal_discrete_coordinates,
    verify_proof_equal_discrete_logs,
)
from .serialization import (
    TLV,
    SMPMessage1,
    SMPMessage2,
    SMPMessage3,
    SMPMessage4,
    message_from_tlv,
    message_to_tlv,
)
from ..config import DOMAIN_SEPARATORS
from ..exceptions import ProtocolViolation, SMPNotFinished
from ..security import RandomnessSource, encode_hash_item, hash_to_scalar

logger = logging.getLogger(__name__)

TSecret = Union[int, str, bytes]

# Version tags bound into each proof's challenge
VERSION_G2A = 1
VERSION_G3A = 2
VERSION_G2B = 3
VERSION_G3B = 4
VERSION_PBQB = 5
VERSION_PAQA = 6
VERSION_RA = 7
VERSION_RB = 8


class SMPState(Enum):
    EXPECT1 = 1
    EXPECT2 = 2
    EXPECT3 = 3
    EXPECT4 = 4
    FINISHED = 5


def normalize_secret(secret: TSecret) -> int:
    """
    Hash a secret of any accepted form to a scalar.

    Text is UTF-8 encoded and integers use their minimal big-endian
    form, so `"a"` and `b"a"` name the same secret.
    """
    if isinstance(secret, bool):
        raise TypeError("bool is not a valid SMP secret")
    if isinstance(secret, int):
        if secret < 0:
            raise ValueError("integer secret must be non-negative")
    elif not isinstance(secret, (str, bytes, bytearray)):
        raise TypeError(
            f"secret must be int, str or bytes, got {type(secret)}"
        )
    return hash_to_scalar(
        DOMAIN_SEPARATORS["smp_secret"], encode_hash_item(secret)
    )


@dataclass
class SMPTranscript:
    """Messages seen by one party, in exchange order."""

    msg1: Optional[SMPMessage1] = None
    msg2: Optional[SMPMessage2] = None
    msg3: Optional[SMPMessage3] = None
    msg4: Optional[SMPMessage4] = None


class SMPStateMachine:
    """
    One party of a Socialist Millionaires' Protocol run.

    Example:
        >>> alice = SMPStateMachine("secret")
        >>> bob = SMPStateMachine("secret")
        >>> msg1 = alice.transit(None)
        >>> msg2 = bob.transit(msg1)
        >>> msg3 = alice.transit(msg2)
        >>> msg4 = bob.transit(msg3)
        >>> alice.transit(msg4)
        >>> assert alice.get_result() and bob.get_result()

    Not safe for concurrent `transit` calls.
    """

    def __init__(
        self,
        secret: TSecret,
        randomness_source: Optional[RandomnessSource] = None,
    ):
        self.secret = normalize_secret(secret)
        self.state = SMPState.EXPECT1
        self.is_initiator: Optional[bool] = None
        self.transcript = SMPTranscript()

        self._rng = randomness_source or RandomnessSource()
        self._g1 = base_point()

        # Own DH exponents, r4 and the values kept between messages
        self.exponent_2: Optional[int] = None
        self.exponent_3: Optional[int] = None
        self.r4: Optional[int] = None
        self.g2: Optional[Point] = None
        self.g3: Optional[Point] = None
        self.peer_g3: Optional[Point] = None
        self.pa: Optional[Point] = None
        self.qa: Optional[Point] = None
        self.pb: Optional[Point] = None
        self.qb: Optional[Point] = None

        self._result: Optional[bool] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def transit(
        self, incoming: Optional[Union[TLV, bytes]]
    ) -> Optional[TLV]:
        """
        Consume the peer's message and produce ours.

        Args:
            incoming: None to initiate, otherwise the peer's TLV (or its
                serialized bytes)

        Returns:
            The TLV to send, or None once the initiator has finished

        Raises:
            ProtocolViolation: wrong message for the current state, a
                malformed TLV, or a proof that does not verify
        """
        if isinstance(incoming, (bytes, bytearray)):
            incoming, rest = TLV.consume(incoming)
            if rest:
                raise ProtocolViolation(f"{len(rest)} bytes after the TLV record")
        elif incoming is not None and not isinstance(incoming, TLV):
            raise TypeError(
                f"incoming must be TLV, bytes or None, got {type(incoming)}"
            )

        if self.state is SMPState.FINISHED:
            raise ProtocolViolation("SMP exchange already finished")

        if self.state is SMPState.EXPECT1:
            if incoming is None:
                out = self._initiate()
            else:
                out = self._handle_msg1(message_from_tlv(incoming, 1))
        elif incoming is None:
            raise ProtocolViolation(
                f"state {self.state.name} expects a message, got None"
            )
        elif self.state is SMPState.EXPECT2:
            out = self._handle_msg2(message_from_tlv(incoming, 2))
        elif self.state is SMPState.EXPECT3:
            out = self._handle_msg3(message_from_tlv(incoming, 3))
        else:
            out = self._handle_msg4(message_from_tlv(incoming, 4))

        logger.debug("SMP transit -> %s", self.state.name)
        return None if out is None else message_to_tlv(out)

    def is_finished(self) -> bool:
        return self.state is SMPState.FINISHED

    def get_result(self) -> bool:
        if not self.is_finished() or self._result is None:
            raise SMPNotFinished(
                f"SMP has not finished: state={self.state.name}"
            )
        return self._result

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _initiate(self) -> SMPMessage1:
        a2 = self._random()
        a3 = self._random()
        msg = SMPMessage1(
            g2a=self._g1.multiply(a2),
            g2a_proof=make_proof_discrete_log(
                VERSION_G2A, self._g1, a2, self._random()
            ),
            g3a=self._g1.multiply(a3),
            g3a_proof=make_proof_discrete_log(
                VERSION_G3A, self._g1, a3, self._random()
            ),
        )

        self.is_initiator = True
        self.exponent_2 = a2
        self.exponent_3 = a3
        self.transcript.msg1 = msg
        self.state = SMPState.EXPECT2
        return msg

    def _handle_msg1(self, msg: SMPMessage1) -> SMPMessage2:
        g1 = self._g1
        self._require(
            verify_proof_discrete_log(VERSION_G2A, msg.g2a_proof, g1, msg.g2a),
            "proof of g2a is invalid",
        )
        self._require(
            verify_proof_discrete_log(VERSION_G3A, msg.g3a_proof, g1, msg.g3a),
            "proof of g3a is invalid",
        )

        b2 = self._random()
        b3 = self._random()
        g2 = msg.g2a.multiply(b2)
        g3 = msg.g3a.multiply(b3)

        r4 = self._random()
        pb = g3.multiply(r4)
        qb = g1.multiply(r4).add(g2.multiply(self.secret))

        reply = SMPMessage2(
            g2b=g1.multiply(b2),
            g2b_proof=make_proof_discrete_log(
                VERSION_G2B, g1, b2, self._random()
            ),
            g3b=g1.multiply(b3),
            g3b_proof=make_proof_discrete_log(
                VERSION_G3B, g1, b3, self._random()
            ),
            pb=pb,
            qb=qb,
            pbqb_proof=make_proof_equal_discrete_coordinates(
                VERSION_PBQB, g3, g1, g2, r4, self.secret,
                self._random(), self._random(),
            ),
        )

        self.is_initiator = False
        self.exponent_2 = b2
        self.exponent_3 = b3
        self.r4 = r4
        self.g2 = g2
        self.g3 = g3
        self.peer_g3 = msg.g3a
        self.pb = pb
        self.qb = qb
        self.transcript.msg1 = msg
        self.transcript.msg2 = reply
        self.state = SMPState.EXPECT3
        return reply

    def _handle_msg2(self, msg: SMPMessage2) -> SMPMessage3:
        g1 = self._g1
        self._require(
            verify_proof_discrete_log(VERSION_G2B, msg.g2b_proof, g1, msg.g2b),
            "proof of g2b is invalid",
        )
        self._require(
            verify_proof_discrete_log(VERSION_G3B, msg.g3b_proof, g1, msg.g3b),
            "proof of g3b is invalid",
        )

        g2 = msg.g2b.multiply(self.exponent_2)
        g3 = msg.g3b.multiply(self.exponent_3)
        self._require(
            verify_proof_equal_discrete_coordinates(
                VERSION_PBQB, msg.pbqb_proof, g3, g1, g2, msg.pb, msg.qb
            ),
            "proof of Pb and Qb is invalid",
        )

        r4 = self._random()
        pa = g3.multiply(r4)
        qa = g1.multiply(r4).add(g2.multiply(self.secret))
        qa_qb = qa.subtract(msg.qb)
        ra = qa_qb.multiply(self.exponent_3)

        reply = SMPMessage3(
            pa=pa,
            qa=qa,
            paqa_proof=make_proof_equal_discrete_coordinates(
                VERSION_PAQA, g3, g1, g2, r4, self.secret,
                self._random(), self._random(),
            ),
            ra=ra,
            ra_proof=make_proof_equal_discrete_logs(
                VERSION_RA, g1, qa_qb, self.exponent_3, self._random()
            ),
        )

        self.r4 = r4
        self.g2 = g2
        self.g3 = g3
        self.peer_g3 = msg.g3b
        self.pa = pa
        self.qa = qa
        self.pb = msg.pb
        self.qb = msg.qb
        self.transcript.msg2 = msg
        self.transcript.msg3 = reply
        self.state = SMPState.EXPECT4
        return reply

    def _handle_msg3(self, msg: SMPMessage3) -> SMPMessage4:
        g1 = self._g1
        self._require(
            verify_proof_equal_discrete_coordinates(
                VERSION_PAQA, msg.paqa_proof, self.g3, g1, self.g2,
                msg.pa, msg.qa,
            ),
            "proof of Pa and Qa is invalid",
        )
        qa_qb = msg.qa.subtract(self.qb)
        self._require(
            verify_proof_equal_discrete_logs(
                VERSION_RA, msg.ra_proof, g1, qa_qb, self.peer_g3, msg.ra
            ),
            "proof of Ra is invalid",
        )

        rb = qa_qb.multiply(self.exponent_3)
        reply = SMPMessage4(
            rb=rb,
            rb_proof=make_proof_equal_discrete_logs(
                VERSION_RB, g1, qa_qb, self.exponent_3, self._random()
            ),
        )
        result = self._compare(msg.ra, msg.pa, self.pb)

        self.pa = msg.pa
        self.qa = msg.qa
        self.transcript.msg3 = msg
        self.transcript.msg4 = reply
        self._finish(result)
        return reply

    def _handle_msg4(self, msg: SMPMessage4) -> None:
        g1 = self._g1
        qa_qb = self.qa.subtract(self.qb)
        self._require(
            verify_proof_equal_discrete_logs(
                VERSION_RB, msg.rb_proof, g1, qa_qb, self.peer_g3, msg.rb
            ),
            "proof of Rb is invalid",
        )
        result = self._compare(msg.rb, self.pa, self.pb)

        self.transcript.msg4 = msg
        self._finish(result)
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _random(self) -> int:
        return self._rng.get_random_scalar_mod_order()

    def _compare(self, peer_r: Point, pa: Point, pb: Point) -> bool:
        # (Qa - Qb)*(a3*b3) against Pa - Pb
        r_ab = peer_r.multiply(self.exponent_3)
        return r_ab == pa.subtract(pb)

    def _finish(self, result: bool) -> None:
        self._result = result
        self.state = SMPState.FINISHED
        logger.debug("SMP finished: initiator=%s", self.is_initiator)

    @staticmethod
    def _require(condition: bool, message: str) -> None:
        if not condition:
            raise ProtocolViolation(message)

"""
Zero-knowledge proofs used inside the SMP exchange.

All three proof kinds are non-interactive Schnorr-style proofs made
non-interactive with the Fiat-Shamir transform. Every challenge is bound
to a one-byte `version` tag naming the step of the exchange that
produced it, so a proof lifted from one step never verifies at another.

Discrete log (knowledge of x for Y = g*x):
    prover:   A = g*r,  c = H(version, g, Y, A),  d = r - c*x
    verifier: A' = g*d + Y*c,  accept iff H(version, g, Y, A') == c

Equal discrete logs (Y0 = g0*x and Y1 = g1*x):
    prover:   A0 = g0*r, A1 = g1*r,
              c = H(version, g0, g1, Y0, Y1, A0, A1),  d = r - c*x
    verifier: A0' = g0*d + Y0*c, A1' = g1*d + Y1*c

Equal discrete coordinates (P = g0*x0, Q = g1*x0 + g2*x1):
    prover:   A0 = g0*r0, A1 = g1*r0 + g2*r1,
              c = H(version, g0, g1, g2, P, Q, A0, A1),
              d0 = r0 - c*x0, d1 = r1 - c*x1
    verifier: A0' = g0*d0 + P*c, A1' = g1*d0 + g2*d1 + Q*c

All responses are reduced modulo the group order.
"""

from dataclasses import dataclass

from .group import Point, mod
from ..config import DOMAIN_SEPARATORS
from ..exceptions import CryptographicError
from ..security import constant_time_scalar_equal, hash_to_scalar


@dataclass(frozen=True)
class ProofDiscreteLog:
    c: int
    d: int


@dataclass(frozen=True)
class ProofEqualDiscreteLogs:
    c: int
    d: int


@dataclass(frozen=True)
class ProofEqualDiscreteCoordinates:
    c: int
    d0: int
    d1: int


def _challenge(version: int, *points: Point) -> int:
    return hash_to_scalar(DOMAIN_SEPARATORS["smp_proof"], version, *points)


# ============================================================================
# DISCRETE LOG
# ============================================================================


def make_proof_discrete_log(
    version: int, g: Point, exponent: int, r: int
) -> ProofDiscreteLog:
    """
    Prove knowledge of `exponent` for `g * exponent`.

    Args:
        version: Step tag bound into the challenge
        g: Base point
        exponent: Witness
        r: Fresh random nonce (MUST be unique per proof)
    """
    y = g.multiply(exponent)
    commitment = g.multiply(r)
    c = _challenge(version, g, y, commitment)
    d = mod(r - c * exponent)
    return ProofDiscreteLog(c=c, d=d)


def verify_proof_discrete_log(
    version: int, proof: ProofDiscreteLog, g: Point, y: Point
) -> bool:
    try:
        commitment = g.multiply(proof.d).add(y.multiply(proof.c))
        expected = _challenge(version, g, y, commitment)
    except CryptographicError:
        return False
    return constant_time_scalar_equal(expected, proof.c)


# ============================================================================
# EQUAL DISCRETE LOGS
# ============================================================================


def make_proof_equal_discrete_logs(
    version: int, g0: Point, g1: Point, exponent: int, r: int
) -> ProofEqualDiscreteLogs:
    """Prove `g0*exponent` and `g1*exponent` share the exponent."""
    y0 = g0.multiply(exponent)
    y1 = g1.multiply(exponent)
    a0 = g0.multiply(r)
    a1 = g1.multiply(r)
    c = _challenge(version, g0, g1, y0, y1, a0, a1)
    d = mod(r - c * exponent)
    return ProofEqualDiscreteLogs(c=c, d=d)


def verify_proof_equal_discrete_logs(
    version: int,
    proof: ProofEqualDiscreteLogs,
    g0: Point,
    g1: Point,
    y0: Point,
    y1: Point,
) -> bool:
    try:
        a0 = g0.multiply(proof.d).add(y0.multiply(proof.c))
        a1 = g1.multiply(proof.d).add(y1.multiply(proof.c))
        expected = _challenge(version, g0, g1, y0, y1, a0, a1)
    except CryptographicError:
        return False
    return constant_time_scalar_equal(expected, proof.c)


# ============================================================================
# EQUAL DISCRETE COORDINATES
# ============================================================================


def make_proof_equal_discrete_coordinates(
    version: int,
    g0: Point,
    g1: Point,
    g2: Point,
    exponent0: int,
    exponent1: int,
    r0: int,
    r1: int,
) -> ProofEqualDiscreteCoordinates:
    """
    Prove P = g0*exponent0 and Q = g1*exponent0 + g2*exponent1.

    In the SMP exchange `g0` is the shared g3, `g1` the base point, `g2`
    the shared g2, `exponent0` the fresh r4 and `exponent1` the secret.
    """
    p = g0.multiply(exponent0)
    q = g1.multiply(exponent0).add(g2.multiply(exponent1))
    a0 = g0.multiply(r0)
    a1 = g1.multiply(r0).add(g2.multiply(r1))
    c = _challenge(version, g0, g1, g2, p, q, a0, a1)
    d0 = mod(r0 - c * exponent0)
    d1 = mod(r1 - c * exponent1)
    return ProofEqualDiscreteCoordinates(c=c, d0=d0, d1=d1)


def verify_proof_equal_discrete_coordinates(
    version: int,
    proof: ProofEqualDiscreteCoordinates,
    g0: Point,
    g1: Point,
    g2: Point,
    p: Point,
    q: Point,
) -> bool:
    try:
        a0 = g0.multiply(proof.d0).add(p.multiply(proof.c))
        a1 = (
            g1.multiply(proof.d0)
            .add(g2.multiply(proof.d1))
            .add(q.multiply(proof.c))
        )
        expected = _challenge(version, g0, g1, g2, p, q, a0, a1)
    except CryptographicError:
        return False
    return constant_time_scalar_equal(expected, proof.c)

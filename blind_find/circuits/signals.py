"""
Public signal layouts of the two circuits.

Signals are decimal strings. A point occupies two consecutive signals
(affine x then y) and index 0 is always the constant "1".

proofOfSMP (39 signals):

    0       1
    1..3    pubkeyC
    3       adminAddress
    4       merkleRoot
    5..13   g2h, g2hProofC, g2hProofD, g3h, g3hProofC, g3hProofD
    13..21  g2a, g2aProofC, g2aProofD, g3a, g3aProofC, g3aProofD
    21..28  pa, qa, paqaProofC, paqaProofD0, paqaProofD1
    28..35  ph, qh, phqhProofC, phqhProofD0, phqhProofD1
    35..39  rh, rhProofC, rhProofD

proofSuccessfulSMP (9 signals):

    0       1
    1..3    pubkeyA
    3..5    pa
    5..7    ph
    7..9    rh
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Tuple

from ..config import PROOF_OF_SMP_NUM_SIGNALS, PROOF_SUCCESSFUL_SMP_NUM_SIGNALS
from ..exceptions import MalformedInput
from ..smp.group import Point

POINT = "point"
SCALAR = "scalar"

PROOF_OF_SMP_OUTPUTS: Tuple[Tuple[str, str], ...] = (
    ("pubkeyC", POINT),
    ("adminAddress", SCALAR),
    ("merkleRoot", SCALAR),
    ("g2h", POINT),
    ("g2hProofC", SCALAR),
    ("g2hProofD", SCALAR),
    ("g3h", POINT),
    ("g3hProofC", SCALAR),
    ("g3hProofD", SCALAR),
    ("g2a", POINT),
    ("g2aProofC", SCALAR),
    ("g2aProofD", SCALAR),
    ("g3a", POINT),
    ("g3aProofC", SCALAR),
    ("g3aProofD", SCALAR),
    ("pa", POINT),
    ("qa", POINT),
    ("paqaProofC", SCALAR),
    ("paqaProofD0", SCALAR),
    ("paqaProofD1", SCALAR),
    ("ph", POINT),
    ("qh", POINT),
    ("phqhProofC", SCALAR),
    ("phqhProofD0", SCALAR),
    ("phqhProofD1", SCALAR),
    ("rh", POINT),
    ("rhProofC", SCALAR),
    ("rhProofD", SCALAR),
)

PROOF_SUCCESSFUL_SMP_OUTPUTS: Tuple[Tuple[str, str], ...] = (
    ("pubkeyA", POINT),
    ("pa", POINT),
    ("ph", POINT),
    ("rh", POINT),
)


def layout_public_signals(
    outputs: Sequence[Tuple[str, str]], args: Mapping[str, Any]
) -> List[str]:
    """Lay out circuit outputs, taken from the argument map, as signals."""
    signals = ["1"]
    for key, kind in outputs:
        value = args[key]
        if kind == POINT:
            x, y = value
            signals.extend([str(x), str(y)])
        else:
            signals.append(str(value))
    return signals


def _to_int(signal: Any) -> int:
    if not isinstance(signal, str):
        raise MalformedInput(
            f"public signal must be a decimal string, got {type(signal)}"
        )
    try:
        return int(signal, 10)
    except ValueError as e:
        raise MalformedInput(f"public signal is not decimal: {signal!r}") from e


def _point_at(signals: Sequence[str], start: int) -> Point:
    return Point.from_affine(_to_int(signals[start]), _to_int(signals[start + 1]))


def _check_length(signals: Sequence[str], expected: int, name: str) -> None:
    if len(signals) != expected:
        raise MalformedInput(
            f"{name} expects {expected} public signals, got {len(signals)}"
        )


@dataclass(frozen=True)
class ProofOfSMPPublic:
    pubkey_c: Point
    admin_address: int
    merkle_root: int
    pa: Point
    ph: Point
    rh: Point


@dataclass(frozen=True)
class ProofSuccessfulSMPPublic:
    pubkey_a: Point
    pa: Point
    ph: Point
    rh: Point


def parse_proof_of_smp_public_signals(signals: Sequence[str]) -> ProofOfSMPPublic:
    """
    Raises:
        MalformedInput: wrong length, non-decimal signal or a coordinate
            pair that is not on the curve
    """
    _check_length(signals, PROOF_OF_SMP_NUM_SIGNALS, "proofOfSMP")
    return ProofOfSMPPublic(
        pubkey_c=_point_at(signals, 1),
        admin_address=_to_int(signals[3]),
        merkle_root=_to_int(signals[4]),
        pa=_point_at(signals, 21),
        ph=_point_at(signals, 28),
        rh=_point_at(signals, 35),
    )


def parse_proof_successful_smp_public_signals(
    signals: Sequence[str],
) -> ProofSuccessfulSMPPublic:
    _check_length(signals, PROOF_SUCCESSFUL_SMP_NUM_SIGNALS, "proofSuccessfulSMP")
    return ProofSuccessfulSMPPublic(
        pubkey_a=_point_at(signals, 1),
        pa=_point_at(signals, 3),
        ph=_point_at(signals, 5),
        rh=_point_at(signals, 7),
    )

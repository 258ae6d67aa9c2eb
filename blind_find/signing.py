"""
Schnorr signatures over scalar messages.

Signatures live on the same group as the SMP exchange so that public
keys, signature nonces and SMP points can all be fed into the proving
circuits as affine coordinate pairs.

    sign:   r = H(nonce, sk, m)          (deterministic)
            R8 = g*r
            c = H(challenge, R8, pk, m)
            S = r + c*sk
    verify: g*S == R8 + pk*c
"""

from dataclasses import dataclass
from typing import Optional

from .config import DOMAIN_SEPARATORS, GROUP_ORDER
from .exceptions import CryptographicError
from .security import RandomnessSource, hash_to_scalar
from .smp.group import Point, base_point, mod


@dataclass(frozen=True)
class Signature:
    r8: Point
    s: int


@dataclass(frozen=True)
class Keypair:
    """
    Private scalar and its public point.

    Example:
        >>> kp = Keypair.generate()
        >>> sig = sign(kp.private_key, 42)
        >>> assert verify(kp.public_key, 42, sig)
    """

    private_key: int
    public_key: Point

    @classmethod
    def from_private_key(cls, private_key: int) -> "Keypair":
        if not 0 < private_key < GROUP_ORDER:
            raise ValueError("private key must be in [1, GROUP_ORDER)")
        return cls(private_key, base_point().multiply(private_key))

    @classmethod
    def generate(
        cls, randomness_source: Optional[RandomnessSource] = None
    ) -> "Keypair":
        rng = randomness_source or RandomnessSource()
        return cls.from_private_key(rng.get_random_scalar_mod_order())


def _challenge(r8: Point, public_key: Point, msg: int) -> int:
    return hash_to_scalar(
        DOMAIN_SEPARATORS["signature_challenge"], r8, public_key, msg
    )


def sign(private_key: int, msg: int) -> Signature:
    """
    Sign the scalar `msg`.

    Raises:
        ValueError: msg outside [0, GROUP_ORDER)
    """
    if not 0 <= msg < GROUP_ORDER:
        raise ValueError("message must be a scalar in [0, GROUP_ORDER)")

    nonce = hash_to_scalar(
        DOMAIN_SEPARATORS["signature_nonce"], private_key, msg
    )
    if nonce == 0:
        raise CryptographicError("derived a zero signature nonce")

    g = base_point()
    r8 = g.multiply(nonce)
    c = _challenge(r8, g.multiply(private_key), msg)
    return Signature(r8=r8, s=mod(nonce + c * private_key))


def verify(public_key: Point, msg: int, sig: Signature) -> bool:
    if not 0 <= msg < GROUP_ORDER or not 0 <= sig.s < GROUP_ORDER:
        return False
    try:
        c = _challenge(sig.r8, public_key, msg)
    except CryptographicError:
        return False
    lhs = base_point().multiply(sig.s)
    rhs = sig.r8.add(public_key.multiply(c))
    return lhs == rhs


def hash_point_to_scalar(point: Point) -> int:
    """Scalar a party signs to vouch for a group element (e.g. `rh`)."""
    return hash_to_scalar(DOMAIN_SEPARATORS["point"], point)

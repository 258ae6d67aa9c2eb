"""
Security utilities: fork-safe randomness, domain-separated hashing to
scalars and constant-time comparison.
"""

import os
import secrets
import hashlib
import hmac
from typing import Any

from .config import GROUP_ORDER, HASH_FUNCTION


# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    Prevents catastrophic randomness reuse if process forks.

    Example:
        >>> rng = RandomnessSource()
        >>> scalar = rng.get_random_scalar_mod_order()
    """

    def __init__(self):
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def get_random_scalar(self, max_value: int) -> int:
        """Get random scalar in [0, max_value)."""
        if os.getpid() != self._pid:
            self.__init__()
        return self._rng.randrange(0, max_value)

    def get_random_bytes(self, n: int) -> bytes:
        if os.getpid() != self._pid:
            self.__init__()
        return secrets.token_bytes(n)

    def get_random_scalar_mod_order(self) -> int:
        """Get random scalar in [1, GROUP_ORDER).

        Zero is excluded: a zero exponent or nonce leaks the witness.
        """
        scalar = self.get_random_scalar(GROUP_ORDER)
        while scalar == 0:
            scalar = self.get_random_scalar(GROUP_ORDER)
        return scalar


# ============================================================================
# HASH FUNCTIONS
# ============================================================================


def encode_hash_item(item) -> bytes:
    """
    Canonical byte encoding of a single hash input.

    - bytes are used as-is
    - str is UTF-8 encoded
    - non-negative int is minimal big-endian (zero is one byte)
    - anything with `serialize()` (group elements) uses that encoding
    """
    if isinstance(item, (bytes, bytearray)):
        return bytes(item)
    if isinstance(item, bool):
        raise TypeError("bool is not a valid hash item")
    if isinstance(item, int):
        if item < 0:
            raise ValueError(f"cannot hash negative integer {item}")
        return item.to_bytes(max(1, (item.bit_length() + 7) // 8), "big")
    if isinstance(item, str):
        return item.encode("utf-8")
    serialize = getattr(item, "serialize", None)
    if callable(serialize):
        return serialize()
    raise TypeError(f"unsupported hash item type: {type(item)}")


def hash_to_scalar(domain_sep: bytes, *items: Any) -> int:
    """
    Hash a sequence of items to a scalar in [0, GROUP_ORDER).

    Challenge = H(
        len(domain) || domain || len(item_0) || item_0 || ...
    ) mod GROUP_ORDER

    Length-prefixing every item keeps distinct item sequences from
    colliding on their concatenation.

    Args:
        domain_sep: Domain separator (must be non-empty)
        *items: Values to bind (bytes, str, int or group elements)

    Returns:
        Scalar in [0, GROUP_ORDER)
    """
    if not isinstance(domain_sep, bytes):
        raise TypeError(f"domain_sep must be bytes, got {type(domain_sep)}")
    if not domain_sep:
        raise ValueError("Domain separator cannot be empty")

    h = hashlib.sha3_256() if HASH_FUNCTION == "SHA3-256" else hashlib.sha256()

    h.update(len(domain_sep).to_bytes(4, "big"))
    h.update(domain_sep)

    for item in items:
        encoded = encode_hash_item(item)
        h.update(len(encoded).to_bytes(4, "big"))
        h.update(encoded)

    return int.from_bytes(h.digest(), "big") % GROUP_ORDER


# ============================================================================
# CONSTANT-TIME OPERATIONS
# ============================================================================


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """Constant-time byte comparison via hmac.compare_digest."""
    return hmac.compare_digest(a, b)


def constant_time_scalar_equal(a: int, b: int, size: int = 32) -> bool:
    """Compare two scalars in constant time over their fixed-width encoding."""
    return constant_time_compare(
        (a % GROUP_ORDER).to_bytes(size, "big"),
        (b % GROUP_ORDER).to_bytes(size, "big"),
    )

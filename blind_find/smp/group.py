"""
Group and scalar arithmetic for the SMP exchange.

The group is secp256k1 through petlib. `Point` wraps a petlib `EcPt`
and exposes the small capability set the protocol relies on: add,
multiply by a scalar, negate, equality, a fixed-width serialized form
and affine coordinates. Scalars are plain ints reduced modulo the
subgroup order.

Serialized points are SEC1 compressed (33 bytes). The identity element
has no fixed-width encoding and is never put on the wire.
"""

from typing import Optional, Tuple
import threading

try:
    from petlib.ec import EcGroup, EcPt
    from petlib.bn import Bn
except ImportError:
    raise ImportError(
        "petlib is required for SMP group arithmetic. "
        "Install with: pip install petlib"
    )

from ..config import (
    COORDINATE_SIZE_BYTES,
    CURVE_NID,
    FIELD_PRIME,
    GROUP_ORDER,
    POINT_SIZE_BYTES,
)
from ..exceptions import CryptographicError, MalformedInput


# ============================================================================
# GROUP SETUP
# ============================================================================

_GROUP_CACHE: Optional[EcGroup] = None
_CACHE_LOCK = threading.Lock()


def get_group() -> EcGroup:
    """
    Get the cached secp256k1 group (initialize if needed).

    Thread-safe using double-checked locking.
    """
    global _GROUP_CACHE

    if _GROUP_CACHE is not None:
        return _GROUP_CACHE

    with _CACHE_LOCK:
        if _GROUP_CACHE is None:
            group = EcGroup(CURVE_NID)
            order = int(group.order())
            if order != GROUP_ORDER:
                raise CryptographicError(
                    f"Group order mismatch: expected {GROUP_ORDER}, got {order}"
                )
            _GROUP_CACHE = group

    return _GROUP_CACHE


# ============================================================================
# SCALAR ARITHMETIC
# ============================================================================


def mod(value: int, modulus: int = GROUP_ORDER) -> int:
    """
    Reduce `value` into [0, modulus).

    Python's `%` takes the sign of the divisor, so a negative
    intermediate such as `r - c*x` lands in range without a fix-up.
    """
    return value % modulus


def _to_bn(scalar: int) -> Bn:
    return Bn.from_decimal(str(mod(scalar)))


# ============================================================================
# GROUP ELEMENTS
# ============================================================================


class Point:
    """
    Immutable element of the secp256k1 group.

    Example:
        >>> g = Point.generator()
        >>> p = g.multiply(5)
        >>> assert p == g.multiply(2).add(g.multiply(3))
        >>> assert Point.deserialize(p.serialize()) == p
    """

    __slots__ = ("_pt",)

    size = POINT_SIZE_BYTES

    def __init__(self, pt: EcPt):
        if not isinstance(pt, EcPt):
            raise TypeError(f"pt must be a petlib EcPt, got {type(pt)}")
        self._pt = pt

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def generator(cls) -> "Point":
        return cls(get_group().generator())

    @classmethod
    def identity(cls) -> "Point":
        return cls(get_group().infinite())

    @classmethod
    def deserialize(cls, data: bytes) -> "Point":
        """
        Decode a compressed point.

        Raises:
            MalformedInput: wrong width, not on the curve, or identity
        """
        if not isinstance(data, (bytes, bytearray)):
            raise MalformedInput(f"point must be bytes, got {type(data)}")
        if len(data) != POINT_SIZE_BYTES:
            raise MalformedInput(
                f"point must be {POINT_SIZE_BYTES} bytes, got {len(data)}"
            )
        if data[0] not in (0x02, 0x03):
            raise MalformedInput(f"invalid point prefix: {data[0]:#04x}")

        group = get_group()
        try:
            pt = EcPt.from_binary(bytes(data), group)
        except Exception as e:
            raise MalformedInput(f"invalid point encoding: {e}") from e

        if pt is None or not group.check_point(pt) or pt.is_infinite():
            raise MalformedInput("point is not a valid group element")
        return cls(pt)

    @classmethod
    def from_affine(cls, x: int, y: int) -> "Point":
        """
        Build a point from affine coordinates.

        Raises:
            MalformedInput: coordinates out of range or not on the curve
        """
        for label, value in (("x", x), ("y", y)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise MalformedInput(f"{label} must be int, got {type(value)}")
            if not 0 <= value < FIELD_PRIME:
                raise MalformedInput(f"{label} coordinate out of range")

        encoded = (
            b"\x04"
            + x.to_bytes(COORDINATE_SIZE_BYTES, "big")
            + y.to_bytes(COORDINATE_SIZE_BYTES, "big")
        )
        group = get_group()
        try:
            pt = EcPt.from_binary(encoded, group)
        except Exception as e:
            raise MalformedInput(f"({x}, {y}) is not on the curve") from e

        if pt is None or not group.check_point(pt):
            raise MalformedInput(f"({x}, {y}) is not on the curve")
        return cls(pt)

    # ------------------------------------------------------------------
    # Group operations
    # ------------------------------------------------------------------

    def add(self, other: "Point") -> "Point":
        return Point(self._pt.pt_add(other._pt))

    def negate(self) -> "Point":
        return Point(self._pt.pt_neg())

    def subtract(self, other: "Point") -> "Point":
        return Point(self._pt.pt_add(other._pt.pt_neg()))

    def multiply(self, scalar: int) -> "Point":
        if not isinstance(scalar, int) or isinstance(scalar, bool):
            raise TypeError(f"scalar must be int, got {type(scalar)}")
        return Point(self._pt.pt_mul(_to_bn(scalar)))

    def is_identity(self) -> bool:
        return bool(self._pt.is_infinite())

    def equal(self, other: "Point") -> bool:
        return self._pt.pt_eq(other._pt)

    # ------------------------------------------------------------------
    # Encodings
    # ------------------------------------------------------------------

    def serialize(self) -> bytes:
        if self.is_identity():
            raise CryptographicError("identity element cannot be serialized")
        data = self._pt.export()
        if len(data) != POINT_SIZE_BYTES:
            raise CryptographicError(
                f"Point size mismatch: expected {POINT_SIZE_BYTES} "
                f"bytes, got {len(data)}"
            )
        return data

    def to_affine(self) -> Tuple[int, int]:
        if self.is_identity():
            raise CryptographicError("identity element has no affine form")
        x, y = self._pt.get_affine()
        return int(x), int(y)

    # ------------------------------------------------------------------
    # Python protocol
    # ------------------------------------------------------------------

    __add__ = add
    __neg__ = negate
    __sub__ = subtract

    def __mul__(self, scalar: int) -> "Point":
        return self.multiply(scalar)

    __rmul__ = __mul__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        return self.equal(other)

    def __hash__(self) -> int:
        if self.is_identity():
            return hash(b"")
        return hash(self.serialize())

    def __repr__(self) -> str:
        if self.is_identity():
            return "Point(identity)"
        return f"Point({self.serialize().hex()})"


def base_point() -> Point:
    """The group generator, `g1` in the SMP exchange."""
    return Point.generator()

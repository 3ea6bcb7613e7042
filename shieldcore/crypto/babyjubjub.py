"""
BabyJubJub - twisted Edwards curve embedded in the BN254 scalar field.

Conceptual Background:
---------------------
BabyJubJub is defined over the same prime field that Groth16 circuits on BN254
operate in, so curve arithmetic is cheap inside a circuit:

    a*x^2 + y^2 = 1 + d*x^2*y^2     (a = 168700, d = 168696)

The full curve has order 8*l. Keys live in the prime-order subgroup of
order l generated by BASE8. Two moduli therefore matter:

- FIELD_PRIME (p): coordinates and every Poseidon input
- SUBGROUP_ORDER (l): private keys and scalars, l < p

Private-key arithmetic (stealth derivation, key loading) is always mod l.
Mixing the two moduli is the classic cross-implementation mismatch.

Scalar Multiplication:
---------------------
`scalar_mul` uses a Montgomery ladder over projective coordinates: every bit
performs one addition and one doubling with a conditional swap, so the
sequence of field operations does not depend on the secret bits. The scalar
is NOT reduced before multiplying, otherwise `is_in_subgroup` (which
multiplies by l) could never detect small-subgroup points.
"""

from dataclasses import dataclass
from typing import Tuple

from shieldcore.crypto.poseidon import FIELD_PRIME, int_to_bytes32
from shieldcore.core.errors import InvalidPointError


# =============================================================================
# Curve Parameters
# =============================================================================

CURVE_A = 168700
CURVE_D = 168696

# Order of the prime-order subgroup (scalar field for keys)
SUBGROUP_ORDER = 2736030358979909402780800718157159386076813972158567259200215660948447373041

# Ladder length: every scalar below 2^256 takes the same number of steps
SCALAR_BITS = 256


@dataclass(frozen=True)
class Point:
    """
    Affine point on BabyJubJub.

    Attributes:
        x: x coordinate (field element)
        y: y coordinate (field element)
    """
    x: int
    y: int

    def to_bytes(self) -> bytes:
        """Serialize as x(32) || y(32), big-endian."""
        return int_to_bytes32(self.x) + int_to_bytes32(self.y)

    @classmethod
    def from_bytes(cls, data: bytes, validate: bool = True) -> "Point":
        """
        Deserialize a 64-byte point.

        Args:
            data: x(32) || y(32)
            validate: Reject points off the curve or outside the subgroup

        Raises:
            InvalidPointError: On wrong length or failed validation
        """
        if len(data) != 64:
            raise InvalidPointError(f"Point must be 64 bytes, got {len(data)}")
        point = cls(
            x=int.from_bytes(data[:32], byteorder="big"),
            y=int.from_bytes(data[32:], byteorder="big"),
        )
        if validate:
            validate_point(point)
        return point

    def to_dict(self) -> dict:
        return {"x": str(self.x), "y": str(self.y)}

    @classmethod
    def from_dict(cls, data: dict) -> "Point":
        return cls(x=int(data["x"]), y=int(data["y"]))

    @property
    def is_identity(self) -> bool:
        return self.x == 0 and self.y == 1


IDENTITY = Point(0, 1)

# Generator of the prime-order subgroup (circomlib Base8)
BASE8 = Point(
    x=5299619240641551281634865583518297030282874472190772894086521144482721001553,
    y=16950150798460657717958625567821834550301663161624707787222815936182638968203,
)


def _inv(value: int) -> int:
    """Modular inverse via Fermat's little theorem."""
    return pow(value, FIELD_PRIME - 2, FIELD_PRIME)


# =============================================================================
# Affine Arithmetic
# =============================================================================


def point_add(p: Point, q: Point) -> Point:
    """
    Add two points with the unified twisted Edwards formula.

    x3 = (x1*y2 + y1*x2) / (1 + d*x1*x2*y1*y2)
    y3 = (y1*y2 - a*x1*x2) / (1 - d*x1*x2*y1*y2)
    """
    x1x2 = p.x * q.x % FIELD_PRIME
    y1y2 = p.y * q.y % FIELD_PRIME
    dxy = CURVE_D * x1x2 % FIELD_PRIME * y1y2 % FIELD_PRIME

    x3 = (p.x * q.y + p.y * q.x) * _inv((1 + dxy) % FIELD_PRIME) % FIELD_PRIME
    y3 = (y1y2 - CURVE_A * x1x2) * _inv((1 - dxy) % FIELD_PRIME) % FIELD_PRIME
    return Point(x3, y3)


def point_negate(p: Point) -> Point:
    """Negation on twisted Edwards curves: (x, y) -> (-x, y)."""
    return Point((-p.x) % FIELD_PRIME, p.y)


def is_on_curve(p: Point) -> bool:
    """Check a*x^2 + y^2 == 1 + d*x^2*y^2."""
    if not (0 <= p.x < FIELD_PRIME and 0 <= p.y < FIELD_PRIME):
        return False
    x2 = p.x * p.x % FIELD_PRIME
    y2 = p.y * p.y % FIELD_PRIME
    lhs = (CURVE_A * x2 + y2) % FIELD_PRIME
    rhs = (1 + CURVE_D * x2 % FIELD_PRIME * y2) % FIELD_PRIME
    return lhs == rhs


# =============================================================================
# Projective Arithmetic (Montgomery ladder)
# =============================================================================

_Projective = Tuple[int, int, int]


def _to_projective(p: Point) -> _Projective:
    return (p.x, p.y, 1)


def _to_affine(p: _Projective) -> Point:
    x, y, z = p
    z_inv = _inv(z)
    return Point(x * z_inv % FIELD_PRIME, y * z_inv % FIELD_PRIME)


def _projective_add(p: _Projective, q: _Projective) -> _Projective:
    """Complete projective addition (add-2008-bbjlp). Also used for doubling."""
    x1, y1, z1 = p
    x2, y2, z2 = q
    a = z1 * z2 % FIELD_PRIME
    b = a * a % FIELD_PRIME
    c = x1 * x2 % FIELD_PRIME
    d = y1 * y2 % FIELD_PRIME
    e = CURVE_D * c % FIELD_PRIME * d % FIELD_PRIME
    f = (b - e) % FIELD_PRIME
    g = (b + e) % FIELD_PRIME
    x3 = a * f % FIELD_PRIME * (((x1 + y1) * (x2 + y2) - c - d) % FIELD_PRIME) % FIELD_PRIME
    y3 = a * g % FIELD_PRIME * ((d - CURVE_A * c) % FIELD_PRIME) % FIELD_PRIME
    z3 = f * g % FIELD_PRIME
    return (x3, y3, z3)


def _cswap(r0: _Projective, r1: _Projective, bit: int) -> Tuple[_Projective, _Projective]:
    """Swap r0 and r1 when bit == 1, using masking instead of a branch."""
    mask = -bit
    out0 = []
    out1 = []
    for u, v in zip(r0, r1):
        t = (u ^ v) & mask
        out0.append(u ^ t)
        out1.append(v ^ t)
    return tuple(out0), tuple(out1)


def scalar_mul(p: Point, k: int) -> Point:
    """
    Compute k*P with a Montgomery ladder.

    The scalar is used as given (no reduction), so multiplying by
    SUBGROUP_ORDER yields the identity only for subgroup points.

    Args:
        p: Base point
        k: Non-negative scalar

    Raises:
        ValueError: If k is negative
    """
    if k < 0:
        raise ValueError(f"Scalar must be non-negative, got {k}")

    bits = max(SCALAR_BITS, k.bit_length())
    r0 = _to_projective(IDENTITY)
    r1 = _to_projective(p)

    for i in reversed(range(bits)):
        bit = (k >> i) & 1
        r0, r1 = _cswap(r0, r1, bit)
        r1 = _projective_add(r0, r1)
        r0 = _projective_add(r0, r0)
        r0, r1 = _cswap(r0, r1, bit)

    return _to_affine(r0)


# =============================================================================
# Validation & Key Derivation
# =============================================================================


def is_in_subgroup(p: Point) -> bool:
    """Check P is on the curve and l*P is the identity."""
    if not is_on_curve(p):
        return False
    return scalar_mul(p, SUBGROUP_ORDER).is_identity


def validate_point(p: Point, allow_identity: bool = False) -> Point:
    """
    Validate a point received from outside (ledger records, callers).

    Raises:
        InvalidPointError: Not on the curve, outside the subgroup, or identity
    """
    if not is_on_curve(p):
        raise InvalidPointError(f"Point ({p.x}, {p.y}) is not on BabyJubJub")
    if p.is_identity and not allow_identity:
        raise InvalidPointError("Identity point is not a valid public key")
    if not is_in_subgroup(p):
        raise InvalidPointError(f"Point ({p.x}, {p.y}) is not in the prime-order subgroup")
    return p


def derive_public_key(sk: int) -> Point:
    """Public key = (sk mod l) * BASE8."""
    return scalar_mul(BASE8, sk % SUBGROUP_ORDER)

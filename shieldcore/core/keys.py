"""
Key Hierarchy - spending, viewing and public keys from one secret scalar.

Conceptual Background:
---------------------
The spending key sk is the only root secret: a uniform scalar in [1, l)
where l is the BabyJubJub subgroup order. Everything else is derived
deterministically and never mutated:

    nullifier_key          nk  = H(NULLIFIER_KEY, sk)
    incoming_viewing_key   ivk = H(INCOMING_VIEWING_KEY, sk)
    public_key             P   = sk * G

Derivations are one-way. A watch-only keypair carries the viewing key and
the public key, but no spending capability.
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Optional

from shieldcore.crypto import sha256, bytes_to_hex
from shieldcore.crypto.babyjubjub import Point, SUBGROUP_ORDER, derive_public_key, validate_point
from shieldcore.crypto.poseidon import (
    DOMAIN_INCOMING_VIEWING_KEY,
    int_to_bytes32,
    poseidon_hash_domain,
)
from shieldcore.core.errors import InvalidKeyError, WatchOnlyKeyError
from shieldcore.core.state.nullifier import derive_nullifier_key

SEED_SALT_PREFIX = b"shieldcore"
SEED_ITERATIONS = 100_000


# =============================================================================
# Key Types
# =============================================================================


@dataclass(frozen=True)
class ViewingKey:
    """
    Keys that let a holder recognize and track notes without spending them.

    Attributes:
        nullifier_key: nk, used to derive nullifiers
        incoming_viewing_key: ivk, identifies incoming notes
    """
    nullifier_key: int
    incoming_viewing_key: int

    def to_bytes(self) -> bytes:
        return int_to_bytes32(self.nullifier_key) + int_to_bytes32(self.incoming_viewing_key)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ViewingKey":
        if len(data) != 64:
            raise InvalidKeyError(f"Viewing key must be 64 bytes, got {len(data)}")
        return cls(
            nullifier_key=int.from_bytes(data[:32], "big"),
            incoming_viewing_key=int.from_bytes(data[32:], "big"),
        )


@dataclass(frozen=True)
class Keypair:
    """
    A wallet keypair.

    Attributes:
        spending_key: Root secret in [1, l), None for watch-only
        viewing_key: Derived viewing keys
        public_key: sk * G
    """
    spending_key: Optional[int]
    viewing_key: ViewingKey
    public_key: Point

    def __repr__(self) -> str:
        kind = "watch-only" if self.spending_key is None else "spending"
        return f"Keypair({kind}, pub={bytes_to_hex(self.public_key.to_bytes())[:18]}...)"

    @property
    def can_spend(self) -> bool:
        return self.spending_key is not None

    @property
    def wallet_id(self) -> str:
        """Stable local identifier derived from the public key."""
        return sha256(self.public_key.to_bytes())[:8].hex()

    def require_spending_key(self) -> int:
        """
        Return the spending key.

        Raises:
            WatchOnlyKeyError: For watch-only keypairs
        """
        if self.spending_key is None:
            raise WatchOnlyKeyError("Operation requires a spending key; keypair is watch-only")
        return self.spending_key

    def export_spending_key(self) -> bytes:
        """32-byte big-endian spending key."""
        return int_to_bytes32(self.require_spending_key())

    def export_viewing_key(self) -> bytes:
        """64-byte viewing key (nk || ivk)."""
        return self.viewing_key.to_bytes()


# =============================================================================
# Constructors
# =============================================================================


def derive_incoming_viewing_key(spending_key: int) -> int:
    """ivk = H(INCOMING_VIEWING_KEY, sk)."""
    return poseidon_hash_domain(DOMAIN_INCOMING_VIEWING_KEY, [spending_key])


def _keypair_from_scalar(sk: int) -> Keypair:
    if not (1 <= sk < SUBGROUP_ORDER):
        raise InvalidKeyError("Spending key must be in [1, subgroup order)")
    return Keypair(
        spending_key=sk,
        viewing_key=ViewingKey(
            nullifier_key=derive_nullifier_key(sk),
            incoming_viewing_key=derive_incoming_viewing_key(sk),
        ),
        public_key=derive_public_key(sk),
    )


def create_keypair() -> Keypair:
    """
    Generate a new random keypair.

    sk is drawn uniformly from [1, l) with a cryptographically secure RNG.
    """
    sk = secrets.randbelow(SUBGROUP_ORDER - 1) + 1
    return _keypair_from_scalar(sk)


def load_keypair(data: bytes) -> Keypair:
    """
    Load a keypair from a 32-byte big-endian spending key.

    Raises:
        InvalidKeyError: Wrong length, zero, or not below the subgroup order
    """
    if len(data) != 32:
        raise InvalidKeyError(f"Spending key must be 32 bytes, got {len(data)}")
    return _keypair_from_scalar(int.from_bytes(data, byteorder="big"))


def watch_only_keypair(viewing_key: ViewingKey, public_key: Point) -> Keypair:
    """
    Build a keypair that can track notes but never spend.

    Raises:
        InvalidPointError: If public_key is not a valid subgroup point
    """
    validate_point(public_key)
    return Keypair(spending_key=None, viewing_key=viewing_key, public_key=public_key)


def derive_keypair_from_seed(seed_phrase: str, path: str = "m/0") -> Keypair:
    """
    Deterministically derive a keypair from a seed phrase.

    sk = PBKDF2-HMAC-SHA256(seed, "shieldcore" + path, 100k) mod l

    Args:
        seed_phrase: Wallet seed phrase
        path: Derivation path, one keypair per path
    """
    if not seed_phrase:
        raise InvalidKeyError("Seed phrase must not be empty")
    derived = hashlib.pbkdf2_hmac(
        "sha256",
        seed_phrase.encode("utf-8"),
        SEED_SALT_PREFIX + path.encode("utf-8"),
        SEED_ITERATIONS,
        dklen=32,
    )
    sk = int.from_bytes(derived, byteorder="big") % SUBGROUP_ORDER
    if sk == 0:
        raise InvalidKeyError("Derived spending key is zero")
    return _keypair_from_scalar(sk)

"""
Stealth Addresses - one-time recipient keys via Diffie-Hellman.

Protocol:
--------
Sender, knowing the recipient public key R:
    e  <- random scalar
    E  = e*G                       (published with the note, kept forever)
    S  = e*R                       (shared secret)
    f  = H(STEALTH, S.x) mod l
    P' = R + f*G                   (one-time stealth public key)

Recipient, holding r with R = r*G:
    S' = r*E = S                   (ECDH symmetry)
    f' = H(STEALTH, S'.x) mod l
    sk' = (r + f') mod l           with sk'*G == P'

Both reductions are modulo the subgroup order l, never the field prime.
"""

import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

from shieldcore.crypto.babyjubjub import (
    BASE8,
    Point,
    SUBGROUP_ORDER,
    derive_public_key,
    point_add,
    scalar_mul,
    validate_point,
)
from shieldcore.crypto.poseidon import DOMAIN_STEALTH, poseidon_hash_domain
from shieldcore.core.keys import Keypair
from shieldcore.core.state.nullifier import derive_nullifier_key

if TYPE_CHECKING:
    from shieldcore.core.state.note import DecryptedNote


@dataclass(frozen=True)
class StealthAddress:
    """
    A one-time address for a single payment.

    Attributes:
        stealth_pubkey: P' = R + f*G, the key the note is bound to
        ephemeral_pubkey: E = e*G, needed by the recipient to recover sk'
    """
    stealth_pubkey: Point
    ephemeral_pubkey: Point

    def to_bytes(self) -> bytes:
        return self.stealth_pubkey.to_bytes() + self.ephemeral_pubkey.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "StealthAddress":
        if len(data) != 128:
            raise ValueError(f"Stealth address must be 128 bytes, got {len(data)}")
        return cls(
            stealth_pubkey=Point.from_bytes(data[:64]),
            ephemeral_pubkey=Point.from_bytes(data[64:]),
        )


def stealth_factor(shared_secret: Point) -> int:
    """f = H(STEALTH, S.x) mod l."""
    return poseidon_hash_domain(DOMAIN_STEALTH, [shared_secret.x]) % SUBGROUP_ORDER


def generate_stealth_address(
    recipient_pubkey: Point,
    ephemeral_scalar: Optional[int] = None,
) -> Tuple[StealthAddress, int]:
    """
    Generate a one-time address for a recipient.

    Args:
        recipient_pubkey: Recipient's base public key
        ephemeral_scalar: Fixed ephemeral (tests only). Fresh random if None.

    Returns:
        (stealth_address, ephemeral_private)

    Raises:
        InvalidPointError: If the recipient key is invalid
    """
    validate_point(recipient_pubkey)

    e = ephemeral_scalar if ephemeral_scalar is not None else secrets.randbelow(SUBGROUP_ORDER - 1) + 1
    ephemeral_pubkey = derive_public_key(e)
    shared = scalar_mul(recipient_pubkey, e % SUBGROUP_ORDER)
    f = stealth_factor(shared)
    stealth_pubkey = point_add(recipient_pubkey, scalar_mul(BASE8, f))

    return StealthAddress(stealth_pubkey=stealth_pubkey, ephemeral_pubkey=ephemeral_pubkey), e


def derive_stealth_private_key(recipient_spending_key: int, ephemeral_pubkey: Point) -> int:
    """
    Recover the one-time private key for a stealth address.

    Raises:
        InvalidPointError: If the ephemeral key is invalid
    """
    validate_point(ephemeral_pubkey)
    shared = scalar_mul(ephemeral_pubkey, recipient_spending_key % SUBGROUP_ORDER)
    f = stealth_factor(shared)
    return (recipient_spending_key + f) % SUBGROUP_ORDER


def check_stealth_ownership(stealth_pubkey: Point, ephemeral_pubkey: Point, keypair: Keypair) -> bool:
    """
    Whether a stealth address belongs to this keypair.

    The derived private key never leaves this function.

    Raises:
        WatchOnlyKeyError: Derivation needs the spending key
    """
    sk = keypair.require_spending_key()
    return derive_public_key(derive_stealth_private_key(sk, ephemeral_pubkey)) == stealth_pubkey


def resolve_note_key(keypair: Keypair, note: "DecryptedNote") -> int:
    """
    Private key controlling a note.

    Notes carrying a stealth ephemeral key are controlled by the stealth
    private key; all other notes by the base spending key.
    """
    sk = keypair.require_spending_key()
    if note.stealth_ephemeral_pubkey is None:
        return sk
    return derive_stealth_private_key(sk, note.stealth_ephemeral_pubkey)


def note_nullifier_key(keypair: Keypair, note: "DecryptedNote") -> int:
    """Nullifier key for a note, derived from whichever key controls it."""
    return derive_nullifier_key(resolve_note_key(keypair, note))

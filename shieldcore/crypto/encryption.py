"""
ECIES over BabyJubJub for note payloads.

Construction:
------------
1. Draw a fresh ephemeral scalar e, publish E = e*G
2. Shared secret S = e*R where R is the recipient public key
3. HKDF-SHA256(S.x) -> 32-byte key || 12-byte nonce
4. ChaCha20-Poly1305(key, nonce), associated data = E (64 bytes)

The recipient recomputes S = r*E with its private key r. Binding E as
associated data means a payload cannot be re-attached to another ephemeral key.

Wire format:
    E.x(32) || E.y(32) || ciphertext || tag(16)
"""

import secrets
from dataclasses import dataclass
from typing import Optional, Tuple

from Crypto.Cipher import ChaCha20_Poly1305
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import HKDF

from shieldcore.crypto.babyjubjub import (
    Point,
    SUBGROUP_ORDER,
    derive_public_key,
    scalar_mul,
    validate_point,
)
from shieldcore.crypto.poseidon import int_to_bytes32
from shieldcore.core.errors import DecryptionError, InvalidPointError

KDF_CONTEXT = b"shieldcore-note-v1"
KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
HEADER_SIZE = 64


@dataclass(frozen=True)
class EncryptedNote:
    """
    Authenticated ciphertext as stored on the ledger.

    Attributes:
        ephemeral_pubkey: E = e*G for this payload
        ciphertext: Encrypted plaintext
        tag: 16-byte Poly1305 tag
    """
    ephemeral_pubkey: Point
    ciphertext: bytes
    tag: bytes

    def __post_init__(self):
        if len(self.tag) != TAG_SIZE:
            raise ValueError(f"tag must be {TAG_SIZE} bytes, got {len(self.tag)}")

    def to_bytes(self) -> bytes:
        """Serialize: E.x || E.y || ciphertext || tag."""
        return self.ephemeral_pubkey.to_bytes() + self.ciphertext + self.tag

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncryptedNote":
        """
        Parse the wire format. The ephemeral point is NOT validated here;
        decryption validates it before use.

        Raises:
            ValueError: If data is too short
        """
        if len(data) < HEADER_SIZE + TAG_SIZE:
            raise ValueError(f"Encrypted note too short: {len(data)} bytes")
        return cls(
            ephemeral_pubkey=Point.from_bytes(data[:HEADER_SIZE], validate=False),
            ciphertext=data[HEADER_SIZE:-TAG_SIZE],
            tag=data[-TAG_SIZE:],
        )


def _derive_key_nonce(shared: Point) -> Tuple[bytes, bytes]:
    """HKDF-SHA256 over the shared secret's x coordinate."""
    material = HKDF(
        int_to_bytes32(shared.x),
        KEY_SIZE + NONCE_SIZE,
        None,
        SHA256,
        context=KDF_CONTEXT,
    )
    return material[:KEY_SIZE], material[KEY_SIZE:]


def ecies_encrypt(
    plaintext: bytes,
    recipient_pubkey: Point,
    ephemeral_scalar: Optional[int] = None,
) -> EncryptedNote:
    """
    Encrypt bytes to a BabyJubJub public key.

    Args:
        plaintext: Payload to encrypt
        recipient_pubkey: Validated recipient point
        ephemeral_scalar: Fixed ephemeral (tests only). Fresh random if None.

    Raises:
        InvalidPointError: If the recipient key is invalid
    """
    validate_point(recipient_pubkey)

    e = ephemeral_scalar if ephemeral_scalar is not None else secrets.randbelow(SUBGROUP_ORDER - 1) + 1
    ephemeral_pubkey = derive_public_key(e)
    shared = scalar_mul(recipient_pubkey, e % SUBGROUP_ORDER)

    key, nonce = _derive_key_nonce(shared)
    cipher = ChaCha20_Poly1305.new(key=key, nonce=nonce)
    cipher.update(ephemeral_pubkey.to_bytes())
    ciphertext, tag = cipher.encrypt_and_digest(plaintext)

    return EncryptedNote(ephemeral_pubkey=ephemeral_pubkey, ciphertext=ciphertext, tag=tag)


def ecies_decrypt(encrypted: EncryptedNote, private_key: int) -> bytes:
    """
    Decrypt and authenticate a payload.

    Raises:
        DecryptionError: Invalid ephemeral point or tag verification failure
    """
    try:
        validate_point(encrypted.ephemeral_pubkey)
    except InvalidPointError as e:
        raise DecryptionError(f"Invalid ephemeral key: {e}") from e

    shared = scalar_mul(encrypted.ephemeral_pubkey, private_key % SUBGROUP_ORDER)
    key, nonce = _derive_key_nonce(shared)

    cipher = ChaCha20_Poly1305.new(key=key, nonce=nonce)
    cipher.update(encrypted.ephemeral_pubkey.to_bytes())
    try:
        return cipher.decrypt_and_verify(encrypted.ciphertext, encrypted.tag)
    except ValueError as e:
        raise DecryptionError("Authentication tag did not verify") from e

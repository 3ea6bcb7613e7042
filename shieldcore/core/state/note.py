"""
Note - the private record of value for shieldcore.

Conceptual Background:
---------------------
A note binds an amount of one token to a one-time stealth address:

    Note = (stealth_pub_x, token_id, amount, randomness)

Only its commitment is published. The plaintext travels encrypted next to it
so the recipient can rebuild the note when scanning.

Note Lifecycle:
--------------
1. Sender builds the note and publishes commitment + encrypted payload
2. Recipient scans, decrypts, verifies the commitment -> DecryptedNote
3. The DecryptedNote carries everything needed to prove a spend later
4. Its spending nullifier appears on the ledger -> permanently unspendable

Plaintext layout (112 bytes):
    stealth_pub_x(32) || token_id(32) || amount(16) || randomness(32)
"""

from dataclasses import dataclass
from typing import Optional

from shieldcore.crypto import bytes_to_hex, hex_to_bytes
from shieldcore.crypto.babyjubjub import Point
from shieldcore.crypto.encryption import EncryptedNote, ecies_decrypt, ecies_encrypt
from shieldcore.crypto.poseidon import int_to_bytes32
from shieldcore.core.errors import DecryptionError
from shieldcore.utils.validation import (
    require,
    validate_amount,
    validate_field_element,
    validate_leaf_index,
)

AMOUNT_SIZE = 16
PLAINTEXT_SIZE = 32 + 32 + AMOUNT_SIZE + 32


# =============================================================================
# Note Dataclasses
# =============================================================================


@dataclass(frozen=True)
class Note:
    """
    Plaintext value object. Immutable once created.

    Attributes:
        stealth_pub_x: x coordinate of the owning stealth public key
        token_id: Token identifier as a field element
        amount: Unsigned amount (< 2^128)
        randomness: Blinding factor (field element)
    """
    stealth_pub_x: int
    token_id: int
    amount: int
    randomness: int

    def __post_init__(self):
        require(validate_field_element(self.stealth_pub_x, "stealth_pub_x"))
        require(validate_field_element(self.token_id, "token_id"))
        require(validate_amount(self.amount))
        require(validate_field_element(self.randomness, "randomness"))

    def to_plaintext(self) -> bytes:
        """Serialize to the 112-byte encryption layout."""
        return (
            int_to_bytes32(self.stealth_pub_x) +
            int_to_bytes32(self.token_id) +
            self.amount.to_bytes(AMOUNT_SIZE, byteorder="big") +
            int_to_bytes32(self.randomness)
        )

    @classmethod
    def from_plaintext(cls, data: bytes) -> "Note":
        """Deserialize the 112-byte layout. Raises ValueError on bad input."""
        if len(data) != PLAINTEXT_SIZE:
            raise ValueError(f"Note plaintext must be {PLAINTEXT_SIZE} bytes, got {len(data)}")
        return cls(
            stealth_pub_x=int.from_bytes(data[0:32], "big"),
            token_id=int.from_bytes(data[32:64], "big"),
            amount=int.from_bytes(data[64:80], "big"),
            randomness=int.from_bytes(data[80:112], "big"),
        )


@dataclass(frozen=True)
class DecryptedNote(Note):
    """
    A note recovered by scanning, with its position on the ledger.

    Attributes:
        commitment: Published commitment (verified against the plaintext)
        leaf_index: Position in the pool's commitment tree
        pool_id: Pool the commitment was appended to
        account_hash: Ledger account holding the commitment, if any
        stealth_ephemeral_pubkey: E of the stealth address, if the note uses one
        stealth_pub_y: y coordinate of the owning stealth public key
    """
    commitment: int = 0
    leaf_index: int = 0
    pool_id: str = ""
    account_hash: Optional[str] = None
    stealth_ephemeral_pubkey: Optional[Point] = None
    stealth_pub_y: Optional[int] = None

    def __post_init__(self):
        super().__post_init__()
        require(validate_field_element(self.commitment, "commitment"))
        require(validate_leaf_index(self.leaf_index))
        if not self.pool_id:
            raise ValueError("pool_id must not be empty")

    def note(self) -> Note:
        """The underlying plaintext note."""
        return Note(
            stealth_pub_x=self.stealth_pub_x,
            token_id=self.token_id,
            amount=self.amount,
            randomness=self.randomness,
        )

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "stealth_pub_x": bytes_to_hex(int_to_bytes32(self.stealth_pub_x)),
            "token_id": bytes_to_hex(int_to_bytes32(self.token_id)),
            "amount": str(self.amount),
            "randomness": bytes_to_hex(int_to_bytes32(self.randomness)),
            "commitment": bytes_to_hex(int_to_bytes32(self.commitment)),
            "leaf_index": self.leaf_index,
            "pool_id": self.pool_id,
            "account_hash": self.account_hash,
            "stealth_ephemeral_pubkey": (
                bytes_to_hex(self.stealth_ephemeral_pubkey.to_bytes())
                if self.stealth_ephemeral_pubkey else None
            ),
            "stealth_pub_y": (
                bytes_to_hex(int_to_bytes32(self.stealth_pub_y))
                if self.stealth_pub_y is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DecryptedNote":
        """Create from dict."""
        ephemeral = data.get("stealth_ephemeral_pubkey")
        pub_y = data.get("stealth_pub_y")
        return cls(
            stealth_pub_x=int.from_bytes(hex_to_bytes(data["stealth_pub_x"]), "big"),
            token_id=int.from_bytes(hex_to_bytes(data["token_id"]), "big"),
            amount=int(data["amount"]),
            randomness=int.from_bytes(hex_to_bytes(data["randomness"]), "big"),
            commitment=int.from_bytes(hex_to_bytes(data["commitment"]), "big"),
            leaf_index=data["leaf_index"],
            pool_id=data["pool_id"],
            account_hash=data.get("account_hash"),
            stealth_ephemeral_pubkey=Point.from_bytes(hex_to_bytes(ephemeral)) if ephemeral else None,
            stealth_pub_y=int.from_bytes(hex_to_bytes(pub_y), "big") if pub_y else None,
        )


# =============================================================================
# Note Encryption
# =============================================================================


def encrypt_note(note: Note, recipient_pubkey: Point, ephemeral_scalar: Optional[int] = None) -> EncryptedNote:
    """
    Encrypt a note's plaintext to a recipient key.

    For stealth payments the recipient key is the stealth public key, so
    the note opens with the stealth private key recovered from E.
    """
    base = note.note() if isinstance(note, DecryptedNote) else note
    return ecies_encrypt(base.to_plaintext(), recipient_pubkey, ephemeral_scalar)


def decrypt_note(encrypted: EncryptedNote, private_key: int) -> Note:
    """
    Decrypt a note.

    Raises:
        DecryptionError: Tag failure, invalid ephemeral key, or malformed plaintext
    """
    plaintext = ecies_decrypt(encrypted, private_key)
    try:
        return Note.from_plaintext(plaintext)
    except ValueError as e:
        raise DecryptionError(f"Malformed note plaintext: {e}") from e


def try_decrypt_note(encrypted: EncryptedNote, private_key: int) -> Optional[Note]:
    """
    Decrypt a note, returning None when it is not ours.

    Most ledger ciphertexts belong to other wallets, so failure here is the
    common case during scanning and never raises.
    """
    try:
        return decrypt_note(encrypted, private_key)
    except DecryptionError:
        return None

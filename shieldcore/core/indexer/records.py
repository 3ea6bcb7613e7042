"""
Indexer wire records.

All field elements travel as 0x-prefixed 32-byte big-endian hex; payloads as
hex bytes. Decimal strings are accepted for field elements too, since
snarkjs-style tooling emits them.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shieldcore.crypto import hex_to_bytes
from shieldcore.crypto.babyjubjub import Point
from shieldcore.crypto.poseidon import FIELD_PRIME
from shieldcore.core.state.merkle import MerkleProof


def _parse_field(value):
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        parsed = int(text, 16) if text.startswith(("0x", "0X")) else int(text)
    else:
        raise ValueError(f"expected hex string or int, got {type(value).__name__}")
    if not (0 <= parsed < FIELD_PRIME):
        raise ValueError("value is not a canonical field element")
    return parsed


def _parse_bytes(value):
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return hex_to_bytes(value)
    raise ValueError(f"expected hex string, got {type(value).__name__}")


class CommitmentRecord(BaseModel):
    """A commitment appended to a pool, with its encrypted payload."""
    model_config = ConfigDict(frozen=True)

    pool_id: str
    commitment: int
    leaf_index: int = Field(ge=0)
    slot: int = Field(ge=0)
    encrypted_note: bytes = b""
    stealth_ephemeral_x: Optional[int] = None
    stealth_ephemeral_y: Optional[int] = None
    account_hash: Optional[str] = None

    @field_validator("commitment", mode="before")
    @classmethod
    def _commitment(cls, v):
        return _parse_field(v)

    @field_validator("stealth_ephemeral_x", "stealth_ephemeral_y", mode="before")
    @classmethod
    def _ephemeral(cls, v):
        return None if v is None else _parse_field(v)

    @field_validator("encrypted_note", mode="before")
    @classmethod
    def _payload(cls, v):
        return _parse_bytes(v)

    @property
    def stealth_ephemeral_pubkey(self) -> Optional[Point]:
        """Unvalidated point; callers validate before use."""
        if self.stealth_ephemeral_x is None or self.stealth_ephemeral_y is None:
            return None
        return Point(self.stealth_ephemeral_x, self.stealth_ephemeral_y)


class NullifierRecord(BaseModel):
    """A nullifier published in a pool."""
    model_config = ConfigDict(frozen=True)

    pool_id: str
    nullifier: int
    slot: int = Field(ge=0)

    @field_validator("nullifier", mode="before")
    @classmethod
    def _nullifier(cls, v):
        return _parse_field(v)


class MerkleProofRecord(BaseModel):
    """Inclusion proof as served by the indexer."""
    model_config = ConfigDict(frozen=True)

    root: int
    path_elements: List[int]
    path_indices: List[int]
    leaf_index: int = Field(ge=0)

    @field_validator("root", mode="before")
    @classmethod
    def _root(cls, v):
        return _parse_field(v)

    @field_validator("path_elements", mode="before")
    @classmethod
    def _elements(cls, v):
        return [_parse_field(e) for e in v]

    @field_validator("path_indices")
    @classmethod
    def _indices(cls, v):
        if any(i not in (0, 1) for i in v):
            raise ValueError("path indices must be 0 or 1")
        return v

    def to_proof(self) -> MerkleProof:
        return MerkleProof(
            root=self.root,
            path_elements=list(self.path_elements),
            path_indices=list(self.path_indices),
            leaf_index=self.leaf_index,
        )

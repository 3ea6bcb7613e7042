"""
Cryptographic primitives for shieldcore.

This module provides:
- Poseidon hash over the BN254 scalar field (commitments, nullifiers, keys)
- BabyJubJub curve arithmetic (keys, stealth addresses, ECDH)
- ECIES note encryption (HKDF-SHA256 + ChaCha20-Poly1305)
- SHA-256 and hex helpers for non-circuit data

Design Notes:
-------------
Everything that a circuit must recompute uses Poseidon over BN254 Fr and
BabyJubJub points, so the client witness and the verifier agree bit for bit.
SHA-256 is retained for local identifiers (wallet ids, mock proofs) that
never enter a circuit.
"""

import hashlib


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash.

    Used for: wallet identifiers, deterministic mock proofs.
    """
    return hashlib.sha256(data).digest()


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


# =============================================================================
# Poseidon Hash (ZK-friendly)
# =============================================================================

from shieldcore.crypto.poseidon import (
    poseidon_hash,
    poseidon_hash_domain,
    load_poseidon_params,
    reset_poseidon_params,
    int_to_bytes32,
    bytes32_to_int,
    bytes_to_field,
    field_to_hex,
    hex_to_field,
    FIELD_PRIME,
    DOMAIN_COMMITMENT,
    DOMAIN_SPENDING_NULLIFIER,
    DOMAIN_ACTION_NULLIFIER,
    DOMAIN_NULLIFIER_KEY,
    DOMAIN_STEALTH,
    DOMAIN_MERKLE,
    DOMAIN_EMPTY_LEAF,
    DOMAIN_POSITION,
    DOMAIN_LP,
    DOMAIN_ORDER_TERMS,
    DOMAIN_VOTE_COMMITMENT,
    DOMAIN_INCOMING_VIEWING_KEY,
)

# =============================================================================
# BabyJubJub
# =============================================================================

from shieldcore.crypto.babyjubjub import (
    Point,
    BASE8,
    IDENTITY,
    SUBGROUP_ORDER,
    point_add,
    point_negate,
    scalar_mul,
    is_on_curve,
    is_in_subgroup,
    validate_point,
    derive_public_key,
)

from shieldcore.crypto.encryption import (
    EncryptedNote,
    ecies_encrypt,
    ecies_decrypt,
)

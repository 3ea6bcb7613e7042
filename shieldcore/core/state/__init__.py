"""Notes, commitments, nullifiers and the commitment tree"""
from shieldcore.core.state.note import (
    Note,
    DecryptedNote,
    encrypt_note,
    decrypt_note,
    try_decrypt_note,
)
from shieldcore.core.state.commitment import (
    compute_commitment,
    verify_commitment,
    generate_randomness,
    create_note,
)
from shieldcore.core.state.nullifier import (
    derive_nullifier_key,
    derive_spending_nullifier,
    derive_action_nullifier,
    check_nullifier_spent,
)
from shieldcore.core.state.merkle import MerkleProof, PoseidonMerkleTree, hash_pair

__all__ = [
    "Note",
    "DecryptedNote",
    "encrypt_note",
    "decrypt_note",
    "try_decrypt_note",
    "compute_commitment",
    "verify_commitment",
    "generate_randomness",
    "create_note",
    "derive_nullifier_key",
    "derive_spending_nullifier",
    "derive_action_nullifier",
    "check_nullifier_spent",
    "MerkleProof",
    "PoseidonMerkleTree",
    "hash_pair",
]

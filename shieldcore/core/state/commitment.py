"""
Note commitments.

    commitment = H(COMMITMENT, stealth_pub_x, token_id, amount, randomness)

Binding comes from Poseidon collision resistance; hiding comes from the
randomness, which must carry at least 128 bits of entropy. Randomness is
drawn from `secrets` (254 bits before reduction).
"""

import secrets
from typing import Optional

from shieldcore.crypto.poseidon import DOMAIN_COMMITMENT, FIELD_PRIME, poseidon_hash_domain
from shieldcore.core.state.note import Note


def compute_commitment(note: Note) -> int:
    """Commit to all four note fields."""
    return poseidon_hash_domain(
        DOMAIN_COMMITMENT,
        [note.stealth_pub_x, note.token_id, note.amount, note.randomness],
    )


def verify_commitment(commitment: int, note: Note) -> bool:
    """Whether a commitment opens to this note."""
    return compute_commitment(note) == commitment


def generate_randomness() -> int:
    """Uniform blinding factor in [0, p) from a CSPRNG."""
    return secrets.randbelow(FIELD_PRIME)


def create_note(
    stealth_pub_x: int,
    token_id: int,
    amount: int,
    randomness: Optional[int] = None,
) -> Note:
    """
    Build a note, drawing fresh randomness unless one is supplied.

    Raises:
        ValueError: If any field is out of range
    """
    return Note(
        stealth_pub_x=stealth_pub_x,
        token_id=token_id,
        amount=amount,
        randomness=generate_randomness() if randomness is None else randomness,
    )

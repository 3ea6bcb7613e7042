"""
Nullifiers - one-time spend markers derived from a note.

Conceptual Background:
---------------------
A nullifier is published when a note is used. It is derived from secrets
only the owner holds, so observers cannot link it back to the commitment.

Two kinds exist:

    spending  = H(SPENDING_NULLIFIER, nk, commitment, leaf_index)
    action    = H(ACTION_NULLIFIER,   nk, commitment, action_domain)

Publishing the spending nullifier permanently retires the note. An action
nullifier is scoped to one action context (one ballot, one claim): a note can
produce one per domain and stays spendable.

The nullifier key nk = H(NULLIFIER_KEY, sk) is one-way; nothing derives sk
from it. For notes received at a stealth address, sk is the note's stealth
private key, so nk is derived per note.

The leaf index bound into the spending nullifier is always the note's true
position in the commitment tree. Witness assembly and the on-ledger verifier
use the same formula.
"""

from typing import TYPE_CHECKING

from shieldcore.crypto.poseidon import (
    DOMAIN_ACTION_NULLIFIER,
    DOMAIN_NULLIFIER_KEY,
    DOMAIN_SPENDING_NULLIFIER,
    FIELD_PRIME,
    poseidon_hash_domain,
)
from shieldcore.utils.validation import require, validate_field_element, validate_leaf_index

if TYPE_CHECKING:
    from shieldcore.core.indexer.client import IndexerClient


def derive_nullifier_key(spending_key: int) -> int:
    """nk = H(NULLIFIER_KEY, sk)."""
    return poseidon_hash_domain(DOMAIN_NULLIFIER_KEY, [spending_key % FIELD_PRIME])


def derive_spending_nullifier(nullifier_key: int, commitment: int, leaf_index: int) -> int:
    """
    Spending nullifier for a note at a given tree position.

    Deterministic: the same (nk, commitment, leaf_index) always yields the same value.
    """
    require(validate_field_element(nullifier_key, "nullifier_key"))
    require(validate_field_element(commitment, "commitment"))
    require(validate_leaf_index(leaf_index))
    return poseidon_hash_domain(DOMAIN_SPENDING_NULLIFIER, [nullifier_key, commitment, leaf_index])


def derive_action_nullifier(nullifier_key: int, commitment: int, action_domain: int) -> int:
    """Action nullifier, unique per (note, action_domain)."""
    require(validate_field_element(nullifier_key, "nullifier_key"))
    require(validate_field_element(commitment, "commitment"))
    require(validate_field_element(action_domain, "action_domain"))
    return poseidon_hash_domain(DOMAIN_ACTION_NULLIFIER, [nullifier_key, commitment, action_domain])


async def check_nullifier_spent(indexer: "IndexerClient", nullifier: int) -> bool:
    """
    Ask the indexer whether a nullifier has been published.

    This is the authoritative answer; local caches are only a hint.

    Raises:
        IndexerError: If the indexer cannot be reached
    """
    return await indexer.is_nullifier_spent(nullifier)

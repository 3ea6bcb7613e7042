"""
Unit tests for the key hierarchy.

Tests cover:
1. Random and loaded keypairs
2. Viewing keys and watch-only keypairs
3. Seed derivation
4. Export helpers
"""

import pytest

from shieldcore.crypto import SUBGROUP_ORDER, FIELD_PRIME, derive_public_key, int_to_bytes32
from shieldcore.crypto.babyjubjub import Point
from shieldcore.core.errors import InvalidKeyError, InvalidPointError, WatchOnlyKeyError
from shieldcore.core.keys import (
    ViewingKey,
    create_keypair,
    derive_incoming_viewing_key,
    derive_keypair_from_seed,
    load_keypair,
    watch_only_keypair,
)
from shieldcore.core.state.nullifier import derive_nullifier_key


class TestKeypairGeneration:
    """Tests for keypair creation and loading."""

    def test_create_keypair_in_range(self):
        kp = create_keypair()
        assert 1 <= kp.spending_key < SUBGROUP_ORDER
        assert kp.public_key == derive_public_key(kp.spending_key)
        assert kp.can_spend

    def test_keypairs_are_unique(self):
        assert create_keypair().spending_key != create_keypair().spending_key

    def test_viewing_keys_derived_from_spending_key(self):
        kp = create_keypair()
        assert kp.viewing_key.nullifier_key == derive_nullifier_key(kp.spending_key)
        assert kp.viewing_key.incoming_viewing_key == derive_incoming_viewing_key(kp.spending_key)
        assert kp.viewing_key.nullifier_key != kp.viewing_key.incoming_viewing_key

    def test_load_keypair_round_trip(self):
        kp = create_keypair()
        loaded = load_keypair(kp.export_spending_key())
        assert loaded == kp

    def test_load_rejects_zero(self):
        with pytest.raises(InvalidKeyError):
            load_keypair(bytes(32))

    def test_load_rejects_subgroup_order_and_above(self):
        with pytest.raises(InvalidKeyError):
            load_keypair(int_to_bytes32(SUBGROUP_ORDER))
        with pytest.raises(InvalidKeyError):
            load_keypair(int_to_bytes32(FIELD_PRIME - 1))

    def test_load_rejects_wrong_length(self):
        with pytest.raises(InvalidKeyError):
            load_keypair(b"\x01" * 31)

    def test_repr_hides_secret(self):
        kp = create_keypair()
        assert str(kp.spending_key) not in repr(kp)

    def test_wallet_id_stable(self):
        kp = create_keypair()
        assert kp.wallet_id == load_keypair(kp.export_spending_key()).wallet_id
        assert len(kp.wallet_id) == 16


class TestWatchOnly:
    """Keypairs without a spending key."""

    def test_watch_only_cannot_spend(self):
        kp = create_keypair()
        watch = watch_only_keypair(kp.viewing_key, kp.public_key)
        assert not watch.can_spend
        with pytest.raises(WatchOnlyKeyError):
            watch.require_spending_key()
        with pytest.raises(WatchOnlyKeyError):
            watch.export_spending_key()

    def test_watch_only_keeps_viewing_key(self):
        kp = create_keypair()
        watch = watch_only_keypair(kp.viewing_key, kp.public_key)
        assert watch.export_viewing_key() == kp.export_viewing_key()

    def test_watch_only_validates_public_key(self):
        kp = create_keypair()
        with pytest.raises(InvalidPointError):
            watch_only_keypair(kp.viewing_key, Point(1, 2))

    def test_viewing_key_bytes(self):
        kp = create_keypair()
        data = kp.export_viewing_key()
        assert len(data) == 64
        assert ViewingKey.from_bytes(data) == kp.viewing_key
        with pytest.raises(InvalidKeyError):
            ViewingKey.from_bytes(data[:63])


class TestSeedDerivation:
    """Deterministic keypairs from a seed phrase."""

    def test_deterministic(self):
        a = derive_keypair_from_seed("correct horse battery staple")
        b = derive_keypair_from_seed("correct horse battery staple")
        assert a == b

    def test_path_separates_keys(self):
        a = derive_keypair_from_seed("correct horse battery staple", "m/0")
        b = derive_keypair_from_seed("correct horse battery staple", "m/1")
        assert a.spending_key != b.spending_key

    def test_empty_seed_rejected(self):
        with pytest.raises(InvalidKeyError):
            derive_keypair_from_seed("")

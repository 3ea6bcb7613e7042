"""
Unit tests for the SQLite note store.

Tests cover:
1. Atomic sync commits and reload
2. Spent nullifier tracking
3. Metadata and clearing
"""

import pytest

from shieldcore.core.keys import create_keypair
from shieldcore.core.state.commitment import compute_commitment, create_note
from shieldcore.core.state.note import DecryptedNote
from shieldcore.core.stealth import generate_stealth_address
from shieldcore.core.storage import NoteStore, open_wallet_store


def _note(amount, leaf_index, pool_id="pool-a", stealth=False):
    kp = create_keypair()
    ephemeral = None
    pub = kp.public_key
    if stealth:
        address, _ = generate_stealth_address(kp.public_key)
        pub, ephemeral = address.stealth_pubkey, address.ephemeral_pubkey
    note = create_note(pub.x, 1, amount)
    return DecryptedNote(
        stealth_pub_x=note.stealth_pub_x,
        token_id=note.token_id,
        amount=note.amount,
        randomness=note.randomness,
        commitment=compute_commitment(note),
        leaf_index=leaf_index,
        pool_id=pool_id,
        stealth_ephemeral_pubkey=ephemeral,
        stealth_pub_y=pub.y,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store(tmp_path):
    s = NoteStore(tmp_path / "notes.db")
    yield s
    s.close()


# =============================================================================
# Tests
# =============================================================================


class TestNoteStore:
    """Tests for NoteStore."""

    def test_empty_load(self, store):
        notes, spent, watermark = store.load()
        assert notes == {}
        assert spent == set()
        assert watermark == 0

    def test_commit_and_load(self, store):
        a = _note(100, 0)
        b = _note(50, 1, stealth=True)
        store.commit_sync([(a, 11), (b, 22)], [33], watermark=7)

        notes, spent, watermark = store.load()
        assert notes[a.commitment] == (a, 11)
        assert notes[b.commitment] == (b, 22)
        assert spent == {33}
        assert watermark == 7

    def test_commit_is_idempotent(self, store):
        a = _note(100, 0)
        store.commit_sync([(a, 11)], [], watermark=1)
        store.commit_sync([(a, 11)], [], watermark=2)

        notes, _, watermark = store.load()
        assert len(notes) == 1
        assert watermark == 2

    def test_add_spent(self, store):
        store.add_spent([1, 2])
        store.add_spent([2, 3])
        _, spent, _ = store.load()
        assert spent == {1, 2, 3}

    def test_pool_note_count(self, store):
        store.commit_sync([(_note(1, 0), 1), (_note(2, 1), 2), (_note(3, 0, pool_id="pool-b"), 3)], [], 1)
        assert store.pool_note_count("pool-a") == 2
        assert store.pool_note_count("pool-b") == 1

    def test_meta(self, store):
        assert store.get_meta("missing") is None
        store.set_meta("k", "v")
        assert store.get_meta("k") == "v"

    def test_clear(self, store):
        store.commit_sync([(_note(1, 0), 1)], [9], 4)
        store.clear()
        notes, spent, watermark = store.load()
        assert (notes, spent, watermark) == ({}, set(), 0)

    def test_survives_reopen(self, tmp_path):
        a = _note(100, 0)
        first = NoteStore(tmp_path / "w.db")
        first.commit_sync([(a, 11)], [5], 3)
        first.close()

        second = NoteStore(tmp_path / "w.db")
        try:
            notes, spent, watermark = second.load()
            assert notes[a.commitment][0] == a
            assert spent == {5}
            assert watermark == 3
        finally:
            second.close()

    def test_open_wallet_store(self, tmp_path):
        s = open_wallet_store(tmp_path / "data", "abc123")
        try:
            assert s.db_path == tmp_path / "data" / "wallet-abc123.db"
            assert s.db_path.exists()
        finally:
            s.close()

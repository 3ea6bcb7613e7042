"""
Unit tests for NoteManager.

Tests cover:
1. Sync: discovery, idempotence, stealth and base notes
2. All-or-nothing sync on indexer and storage failures
3. Spent tracking and authoritative confirmation
4. Greedy coin selection
"""

import pytest

from shieldcore.core.errors import (
    IndexerError,
    InsufficientFundsError,
    StorageError,
    TooManyInputsError,
    WatchOnlyKeyError,
)
from shieldcore.core.indexer import LedgerBusyError, LocalLedger
from shieldcore.core.keys import create_keypair, watch_only_keypair
from shieldcore.core.state.commitment import compute_commitment, create_note
from shieldcore.core.state.note import encrypt_note
from shieldcore.core.state.nullifier import derive_action_nullifier, derive_spending_nullifier
from shieldcore.core.stealth import generate_stealth_address, note_nullifier_key
from shieldcore.core.storage import NoteStore
from shieldcore.core.wallet import NoteManager

POOL = "pool-a"
TOKEN = 3


def _pay(ledger, public_key, amount, token=TOKEN, pool=POOL, stealth=True):
    """Shield a note to a wallet; returns the ledger record."""
    if stealth:
        address, _ = generate_stealth_address(public_key)
        target, ephemeral = address.stealth_pubkey, address.ephemeral_pubkey
    else:
        target, ephemeral = public_key, None
    note = create_note(target.x, token, amount)
    return ledger.append_commitment(
        pool, compute_commitment(note), encrypt_note(note, target).to_bytes(), ephemeral,
    )


class FailingStore(NoteStore):
    """NoteStore whose sync commit always fails."""

    def commit_sync(self, notes, nullifiers, watermark):
        raise StorageError("disk full")


class FlakyIndexer:
    """Delegates to a LocalLedger but fails nullifier fetches."""

    def __init__(self, ledger):
        self.ledger = ledger

    def __getattr__(self, name):
        return getattr(self.ledger, name)

    async def fetch_nullifiers(self, pool_ids, since, until):
        raise IndexerError("connection reset")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def keypair():
    return create_keypair()


@pytest.fixture
def ledger():
    return LocalLedger(merkle_depth=8)


@pytest.fixture
def manager(ledger):
    return NoteManager(ledger, [POOL])


# =============================================================================
# Sync
# =============================================================================


class TestSync:
    """Tests for NoteManager.sync."""

    @pytest.mark.asyncio
    async def test_finds_own_notes_only(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 100)
        _pay(ledger, create_keypair().public_key, 999)
        _pay(ledger, keypair.public_key, 50, stealth=False)

        found = await manager.sync(keypair)
        assert sorted(n.amount for n in found) == [50, 100]
        assert manager.get_balance(keypair, TOKEN) == 150
        assert manager.last_synced_slot == ledger.slot

    @pytest.mark.asyncio
    async def test_stealth_note_fields(self, manager, ledger, keypair):
        record = _pay(ledger, keypair.public_key, 100)
        (note,) = await manager.sync(keypair)

        assert note.stealth_ephemeral_pubkey == record.stealth_ephemeral_pubkey
        assert note.leaf_index == record.leaf_index
        assert note.pool_id == POOL
        assert note.stealth_pub_x != keypair.public_key.x
        assert note.stealth_pub_y is not None

    @pytest.mark.asyncio
    async def test_incremental_and_idempotent(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 10)
        assert len(await manager.sync(keypair)) == 1
        assert await manager.sync(keypair) == []

        _pay(ledger, keypair.public_key, 20)
        assert [n.amount for n in await manager.sync(keypair)] == [20]
        assert len(manager) == 2

    @pytest.mark.asyncio
    async def test_untracked_pool_ignored(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 10, pool="pool-b")
        assert await manager.sync(keypair) == []
        assert manager.last_synced_slot == ledger.slot

    @pytest.mark.asyncio
    async def test_forged_commitment_ignored(self, manager, ledger, keypair):
        """A payload that does not open its published commitment is skipped."""
        address, _ = generate_stealth_address(keypair.public_key)
        note = create_note(address.stealth_pubkey.x, TOKEN, 1000)
        ledger.append_commitment(
            POOL, compute_commitment(note) ^ 1,
            encrypt_note(note, address.stealth_pubkey).to_bytes(), address.ephemeral_pubkey,
        )
        assert await manager.sync(keypair) == []

    @pytest.mark.asyncio
    async def test_watch_only_cannot_sync(self, manager, keypair):
        watch = watch_only_keypair(keypair.viewing_key, keypair.public_key)
        with pytest.raises(WatchOnlyKeyError):
            await manager.sync(watch)

    @pytest.mark.asyncio
    async def test_spent_nullifier_in_same_range(self, manager, ledger, keypair):
        """A note spent before the wallet ever syncs is never reported unspent."""
        record = _pay(ledger, keypair.public_key, 100)
        (note,) = await NoteManager(ledger, [POOL]).sync(keypair)
        ledger.publish_nullifier(POOL, derive_spending_nullifier(
            note_nullifier_key(keypair, note), note.commitment, record.leaf_index,
        ))

        await manager.sync(keypair)
        assert len(manager) == 1
        assert manager.get_balance(keypair, TOKEN) == 0

    def test_requires_pool(self, ledger):
        with pytest.raises(ValueError):
            NoteManager(ledger, [])


class TestAtomicSync:
    """A failed sync leaves no trace."""

    @pytest.mark.asyncio
    async def test_indexer_offline(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 10)
        ledger.offline = True
        with pytest.raises(LedgerBusyError):
            await manager.sync(keypair)
        assert len(manager) == 0
        assert manager.last_synced_slot == 0

    @pytest.mark.asyncio
    async def test_partial_fetch_failure(self, ledger, keypair):
        _pay(ledger, keypair.public_key, 10)
        manager = NoteManager(FlakyIndexer(ledger), [POOL])
        with pytest.raises(IndexerError):
            await manager.sync(keypair)
        assert len(manager) == 0
        assert manager.last_synced_slot == 0

    @pytest.mark.asyncio
    async def test_storage_failure(self, ledger, keypair, tmp_path):
        _pay(ledger, keypair.public_key, 10)
        store = FailingStore(tmp_path / "notes.db")
        manager = NoteManager(ledger, [POOL], store=store)
        try:
            with pytest.raises(StorageError):
                await manager.sync(keypair)
            assert len(manager) == 0
            assert manager.last_synced_slot == 0
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 10)
        ledger.offline = True
        with pytest.raises(LedgerBusyError):
            await manager.sync(keypair)
        ledger.offline = False
        assert len(await manager.sync(keypair)) == 1


# =============================================================================
# Spent Tracking
# =============================================================================


class TestSpentTracking:
    """Tests for nullifiers and spent state."""

    @pytest.mark.asyncio
    async def test_nullifier_uses_stealth_key(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 10)
        (note,) = await manager.sync(keypair)
        expected = derive_spending_nullifier(note_nullifier_key(keypair, note), note.commitment, note.leaf_index)
        assert manager.nullifier_for(keypair, note) == expected

    @pytest.mark.asyncio
    async def test_mark_spent(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 10)
        (note,) = await manager.sync(keypair)
        manager.mark_spent([manager.nullifier_for(keypair, note)])
        assert manager.is_spent(keypair, note)
        assert manager.get_unspent_notes(keypair, TOKEN) == []

    @pytest.mark.asyncio
    async def test_action_nullifier_does_not_spend(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 10)
        (note,) = await manager.sync(keypair)
        manager.mark_spent([derive_action_nullifier(note_nullifier_key(keypair, note), note.commitment, 1)])
        assert manager.get_balance(keypair, TOKEN) == 10

    @pytest.mark.asyncio
    async def test_confirm_unspent(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 10)
        _pay(ledger, keypair.public_key, 20)
        notes = await manager.sync(keypair)
        spent_note = next(n for n in notes if n.amount == 10)
        ledger.publish_nullifier(POOL, manager.nullifier_for(keypair, spent_note))

        remaining = await manager.confirm_unspent(keypair, notes)
        assert [n.amount for n in remaining] == [20]
        assert manager.is_spent(keypair, spent_note)

    @pytest.mark.asyncio
    async def test_persist_and_reload(self, ledger, keypair, tmp_path):
        _pay(ledger, keypair.public_key, 10)
        _pay(ledger, keypair.public_key, 20)
        store = NoteStore(tmp_path / "notes.db")
        try:
            manager = NoteManager(ledger, [POOL], store=store)
            notes = await manager.sync(keypair)
            manager.mark_spent([manager.nullifier_for(keypair, notes[0])])

            reloaded = NoteManager(ledger, [POOL], store=store)
            assert reloaded.load_from_store() == 2
            assert reloaded.last_synced_slot == manager.last_synced_slot
            assert reloaded.get_balance(keypair, TOKEN) == manager.get_balance(keypair, TOKEN)
            assert await reloaded.sync(keypair) == []
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_clear(self, manager, ledger, keypair):
        _pay(ledger, keypair.public_key, 10)
        await manager.sync(keypair)
        manager.clear()
        assert len(manager) == 0
        assert manager.last_synced_slot == 0
        assert manager.spent_nullifiers == set()


# =============================================================================
# Coin Selection
# =============================================================================


class TestSelection:
    """Tests for select_notes_for_amount."""

    async def _wallet(self, ledger, keypair, amounts):
        manager = NoteManager(ledger, [POOL])
        for amount in amounts:
            _pay(ledger, keypair.public_key, amount)
        await manager.sync(keypair)
        return manager

    @pytest.mark.asyncio
    async def test_largest_first(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [10, 50, 30])
        result = manager.select_notes_for_amount(keypair, TOKEN, 40)
        assert [n.amount for n in result.notes] == [50]
        assert result.total_amount == 50

    @pytest.mark.asyncio
    async def test_multiple_notes(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [10, 50, 30])
        result = manager.select_notes_for_amount(keypair, TOKEN, 75)
        assert [n.amount for n in result.notes] == [50, 30]

    @pytest.mark.asyncio
    async def test_ties_break_by_leaf_index(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [20, 20])
        result = manager.select_notes_for_amount(keypair, TOKEN, 20)
        assert result.notes[0].leaf_index == 0

    @pytest.mark.asyncio
    async def test_insufficient(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [10, 50, 30])
        with pytest.raises(InsufficientFundsError) as excinfo:
            manager.select_notes_for_amount(keypair, TOKEN, 91)
        assert excinfo.value.available == 90
        assert excinfo.value.required == 91

    @pytest.mark.asyncio
    async def test_too_many_inputs(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [10, 50, 30])
        with pytest.raises(TooManyInputsError) as excinfo:
            manager.select_notes_for_amount(keypair, TOKEN, 75, max_inputs=1)
        assert excinfo.value.max_inputs == 1

    @pytest.mark.asyncio
    async def test_other_token_not_counted(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [10])
        _pay(ledger, keypair.public_key, 500, token=TOKEN + 1)
        await manager.sync(keypair)
        assert manager.get_balance(keypair, TOKEN) == 10
        with pytest.raises(InsufficientFundsError):
            manager.select_notes_for_amount(keypair, TOKEN, 11)

    @pytest.mark.asyncio
    async def test_zero_target(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [10])
        assert manager.select_notes_for_amount(keypair, TOKEN, 0).notes == []


# =============================================================================
# Fragmentation
# =============================================================================


class TestFragmentation:
    """Tests for needs_consolidation and analyze_fragmentation."""

    async def _wallet(self, ledger, keypair, amounts):
        manager = NoteManager(ledger, [POOL])
        for amount in amounts:
            _pay(ledger, keypair.public_key, amount)
        await manager.sync(keypair)
        return manager

    @pytest.mark.asyncio
    async def test_needs_consolidation(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [10, 50, 30])
        assert not manager.needs_consolidation(keypair, TOKEN, 50)
        assert manager.needs_consolidation(keypair, TOKEN, 75)
        assert not manager.needs_consolidation(keypair, TOKEN, 75, max_inputs=2)
        # Unaffordable at any input count
        assert not manager.needs_consolidation(keypair, TOKEN, 91)

    @pytest.mark.asyncio
    async def test_empty_wallet(self, manager, keypair):
        report = manager.analyze_fragmentation(keypair, TOKEN)
        assert report.total_notes == 0
        assert report.score == 0
        assert not report.should_consolidate

    @pytest.mark.asyncio
    async def test_single_note(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [100])
        report = manager.analyze_fragmentation(keypair, TOKEN)
        assert (report.total_notes, report.dust_notes) == (1, 1)
        assert report.largest_note == report.smallest_note == 100
        assert report.score == 34
        assert not report.should_consolidate

    @pytest.mark.asyncio
    async def test_dust_triggers_consolidation(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [1, 2, 3])
        report = manager.analyze_fragmentation(keypair, TOKEN)
        assert report.dust_notes == 3
        assert report.total_balance == 6
        assert report.score == 57
        assert report.should_consolidate

    @pytest.mark.asyncio
    async def test_many_notes_trigger_consolidation(self, ledger, keypair):
        manager = await self._wallet(ledger, keypair, [5000] * 6)
        report = manager.analyze_fragmentation(keypair, TOKEN, dust_threshold=1000)
        assert report.dust_notes == 0
        assert report.score == 49
        assert report.should_consolidate

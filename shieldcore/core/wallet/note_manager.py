"""
Note Manager - scanning, tracking and selecting a wallet's notes.

State owned per wallet:
- cache of commitment -> DecryptedNote (with its spending nullifier)
- set of spent nullifiers observed on the ledger or marked locally
- last_synced_slot watermark

Sync Protocol:
-------------
1. Read the latest slot from the indexer
2. Fetch commitments and nullifiers in (last_synced_slot, latest]
3. Trial-decrypt every payload on a worker thread, with the base key and,
   where the record carries a stealth ephemeral key, the stealth key
4. Keep only notes whose plaintext opens the published commitment
5. Persist notes, nullifiers and watermark in one transaction, then apply
   them in memory without yielding to the event loop

Any failure before step 5 leaves the manager exactly as it was. Re-running
a range is harmless: inserts are keyed by commitment.
"""

import asyncio
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from shieldcore.crypto.babyjubjub import Point, derive_public_key
from shieldcore.crypto.encryption import EncryptedNote
from shieldcore.core.errors import InsufficientFundsError, InvalidPointError, TooManyInputsError
from shieldcore.core.indexer.client import IndexerClient
from shieldcore.core.indexer.records import CommitmentRecord
from shieldcore.core.keys import Keypair
from shieldcore.core.state.commitment import compute_commitment
from shieldcore.core.state.note import DecryptedNote, try_decrypt_note
from shieldcore.core.state.nullifier import derive_nullifier_key, derive_spending_nullifier
from shieldcore.core.stealth import derive_stealth_private_key, note_nullifier_key
from shieldcore.core.storage.note_store import NoteStore
from shieldcore.utils.logger import get_logger
from shieldcore.utils.validation import require, validate_amount

logger = get_logger("notes")

DUST_THRESHOLD = 1000


@dataclass(frozen=True)
class SelectionResult:
    """Notes picked by coin selection and their summed amount."""
    notes: List[DecryptedNote]
    total_amount: int


@dataclass(frozen=True)
class FragmentationReport:
    """
    How scattered a token balance is across notes.

    score runs from 0 to 100 and combines note count (up to 40), share of
    dust notes (up to 30) and how little of the balance the largest note
    holds (up to 30).
    """
    total_notes: int
    dust_notes: int
    largest_note: int
    smallest_note: int
    total_balance: int
    score: int
    should_consolidate: bool


def _scan_records(spending_key: int, records: Sequence[CommitmentRecord]) -> List[Tuple[DecryptedNote, int]]:
    """
    Trial-decrypt records with the base key and any stealth keys.

    CPU-bound; runs on an executor. Records that are not ours, malformed,
    or whose plaintext does not open the published commitment are skipped.
    """
    found: List[Tuple[DecryptedNote, int]] = []
    seen: Set[int] = set()

    for record in records:
        if not record.encrypted_note or record.commitment in seen:
            continue
        try:
            encrypted = EncryptedNote.from_bytes(record.encrypted_note)
        except ValueError:
            continue

        candidates: List[Tuple[int, Optional[Point]]] = [(spending_key, None)]
        ephemeral = record.stealth_ephemeral_pubkey
        if ephemeral is not None:
            try:
                candidates.insert(0, (derive_stealth_private_key(spending_key, ephemeral), ephemeral))
            except InvalidPointError:
                logger.debug(f"Skipping invalid stealth ephemeral key at leaf {record.leaf_index}")

        for key, used_ephemeral in candidates:
            note = try_decrypt_note(encrypted, key)
            if note is None:
                continue
            if compute_commitment(note) != record.commitment:
                logger.warning(
                    f"Decrypted note at leaf {record.leaf_index} in {record.pool_id} "
                    f"does not open its commitment; ignoring"
                )
                break
            owner = derive_public_key(key)
            if owner.x != note.stealth_pub_x:
                logger.warning(f"Note at leaf {record.leaf_index} is bound to a key we do not hold; ignoring")
                break

            decrypted = DecryptedNote(
                stealth_pub_x=note.stealth_pub_x,
                token_id=note.token_id,
                amount=note.amount,
                randomness=note.randomness,
                commitment=record.commitment,
                leaf_index=record.leaf_index,
                pool_id=record.pool_id,
                account_hash=record.account_hash,
                stealth_ephemeral_pubkey=used_ephemeral,
                stealth_pub_y=owner.y,
            )
            nullifier = derive_spending_nullifier(derive_nullifier_key(key), record.commitment, record.leaf_index)
            found.append((decrypted, nullifier))
            seen.add(record.commitment)
            break

    return found


class NoteManager:
    """
    Per-wallet note cache.

    Not internally locked: one owner (see WalletSession) serializes sync
    and spending.
    """

    def __init__(
        self,
        indexer: IndexerClient,
        pool_ids: Sequence[str],
        store: Optional[NoteStore] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize the manager.

        Args:
            indexer: Source of commitments and nullifiers
            pool_ids: Pools this wallet tracks
            store: Optional persistent cache
            executor: Executor for trial decryption (loop default if None)
        """
        if not pool_ids:
            raise ValueError("At least one pool must be tracked")
        self.indexer = indexer
        self.pool_ids = list(pool_ids)
        self.store = store
        self._executor = executor

        self._notes: Dict[int, DecryptedNote] = {}
        self._nullifiers: Dict[int, int] = {}
        self._spent: Set[int] = set()
        self.last_synced_slot = 0

    # =========================================================================
    # Sync
    # =========================================================================

    async def sync(self, keypair: Keypair) -> List[DecryptedNote]:
        """
        Scan new ledger activity for this wallet.

        Returns:
            Notes newly added to the cache

        Raises:
            WatchOnlyKeyError: Payloads only open with the spending key
            IndexerError: Indexer unreachable; nothing changed
            StorageError: Persisting failed; nothing changed
        """
        spending_key = keypair.require_spending_key()
        since = self.last_synced_slot

        latest = await self.indexer.get_latest_slot()
        if latest <= since:
            if latest < since:
                logger.warning(f"Indexer at slot {latest} is behind watermark {since}")
            return []

        commitments = await self.indexer.fetch_commitments(self.pool_ids, since, latest)
        nullifier_records = await self.indexer.fetch_nullifiers(self.pool_ids, since, latest)

        loop = asyncio.get_running_loop()
        scanned = await loop.run_in_executor(self._executor, _scan_records, spending_key, commitments)

        # Nothing below yields; the range commits entirely or not at all.
        staged = [(note, nf) for note, nf in scanned if note.commitment not in self._notes]
        new_spent = {record.nullifier for record in nullifier_records} - self._spent

        if self.store is not None:
            self.store.commit_sync(staged, new_spent, latest)

        for note, nullifier in staged:
            self._notes[note.commitment] = note
            self._nullifiers[note.commitment] = nullifier
        self._spent |= new_spent
        self.last_synced_slot = latest

        logger.info(
            f"Synced slots ({since}, {latest}]: {len(commitments)} commitments scanned, "
            f"{len(staged)} new notes, {len(new_spent)} nullifiers"
        )
        return [note for note, _ in staged]

    # =========================================================================
    # Queries
    # =========================================================================

    def nullifier_for(self, keypair: Keypair, note: DecryptedNote) -> int:
        """Spending nullifier of a note (cached at scan time)."""
        nullifier = self._nullifiers.get(note.commitment)
        if nullifier is None:
            nullifier = derive_spending_nullifier(note_nullifier_key(keypair, note), note.commitment, note.leaf_index)
            self._nullifiers[note.commitment] = nullifier
        return nullifier

    def is_spent(self, keypair: Keypair, note: DecryptedNote) -> bool:
        return self.nullifier_for(keypair, note) in self._spent

    def get_unspent_notes(self, keypair: Keypair, token_id: int) -> List[DecryptedNote]:
        """
        Cached notes of a token whose spending nullifier is not known spent.

        This is the local view only; confirm_unspent asks the indexer.
        """
        return [
            note for note in self._notes.values()
            if note.token_id == token_id and not self.is_spent(keypair, note)
        ]

    def get_balance(self, keypair: Keypair, token_id: int) -> int:
        return sum(note.amount for note in self.get_unspent_notes(keypair, token_id))

    def select_notes_for_amount(
        self,
        keypair: Keypair,
        token_id: int,
        target: int,
        max_inputs: Optional[int] = None,
    ) -> SelectionResult:
        """
        Greedy coin selection, largest notes first.

        Favors few large notes: every input costs a Merkle proof and a
        nullifier in the circuit.

        Raises:
            InsufficientFundsError: All unspent notes together fall short
            TooManyInputsError: Reaching target needs more than max_inputs notes
        """
        require(validate_amount(target, "target"))
        if max_inputs is not None and max_inputs < 1:
            raise ValueError("max_inputs must be at least 1")

        available = sorted(
            self.get_unspent_notes(keypair, token_id),
            key=lambda n: (-n.amount, n.leaf_index),
        )

        selected: List[DecryptedNote] = []
        total = 0
        for note in available:
            if total >= target:
                break
            selected.append(note)
            total += note.amount

        if total < target:
            raise InsufficientFundsError(
                f"Insufficient balance: need {target}, have {total}",
                available=total,
                required=target,
            )
        if max_inputs is not None and len(selected) > max_inputs:
            raise TooManyInputsError(
                f"Reaching {target} needs {len(selected)} notes, circuit takes {max_inputs}; consolidate first",
                max_inputs=max_inputs,
            )

        return SelectionResult(notes=selected, total_amount=total)

    def needs_consolidation(self, keypair: Keypair, token_id: int, target: int, max_inputs: int = 1) -> bool:
        """True when target is affordable but only with more than max_inputs notes."""
        total = 0
        for count, note in enumerate(
            sorted(self.get_unspent_notes(keypair, token_id), key=lambda n: -n.amount), start=1
        ):
            total += note.amount
            if total >= target:
                return count > max_inputs
        return False

    def analyze_fragmentation(
        self,
        keypair: Keypair,
        token_id: int,
        dust_threshold: int = DUST_THRESHOLD,
    ) -> FragmentationReport:
        """
        Summarize how fragmented a token balance is.

        Consolidation is recommended above 5 notes, above 2 dust notes
        (amount below dust_threshold) or above a score of 50. Zero-amount
        notes are ignored.
        """
        amounts = [n.amount for n in self.get_unspent_notes(keypair, token_id) if n.amount > 0]
        if not amounts:
            return FragmentationReport(0, 0, 0, 0, 0, 0, False)

        count = len(amounts)
        dust = sum(1 for a in amounts if a < dust_threshold)
        largest, total = max(amounts), sum(amounts)
        concentration = largest * 100 // total

        # score = 4*min(count, 10) + 30*dust/count + 0.3*(100 - concentration), rounded half up
        scaled = 40 * min(count, 10) * count + 300 * dust + 3 * (100 - concentration) * count
        score = (2 * scaled + 10 * count) // (20 * count)

        return FragmentationReport(
            total_notes=count,
            dust_notes=dust,
            largest_note=largest,
            smallest_note=min(amounts),
            total_balance=total,
            score=score,
            should_consolidate=count > 5 or dust > 2 or score > 50,
        )

    # =========================================================================
    # Spent Tracking
    # =========================================================================

    def mark_spent(self, nullifiers: Iterable[int]):
        """Record locally submitted spends before the next sync sees them."""
        new = set(nullifiers) - self._spent
        if not new:
            return
        if self.store is not None:
            self.store.add_spent(new)
        self._spent |= new
        logger.debug(f"Marked {len(new)} nullifiers spent")

    async def confirm_unspent(self, keypair: Keypair, notes: Sequence[DecryptedNote]) -> List[DecryptedNote]:
        """
        Check notes against the indexer's nullifier set.

        Notes found spent are marked; the rest are returned.
        """
        nullifiers = [self.nullifier_for(keypair, note) for note in notes]
        results = await asyncio.gather(*(self.indexer.is_nullifier_spent(nf) for nf in nullifiers))

        self.mark_spent(nf for nf, spent in zip(nullifiers, results) if spent)
        return [note for note, spent in zip(notes, results) if not spent]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def notes(self) -> List[DecryptedNote]:
        """Every cached note, spent or not."""
        return list(self._notes.values())

    @property
    def spent_nullifiers(self) -> Set[int]:
        return set(self._spent)

    def load_from_store(self) -> int:
        """
        Replace in-memory state with the persisted cache.

        Returns:
            Number of notes loaded
        """
        if self.store is None:
            return 0
        notes, spent, watermark = self.store.load()
        self._notes = {cm: note for cm, (note, _) in notes.items()}
        self._nullifiers = {cm: nf for cm, (_, nf) in notes.items()}
        self._spent = spent
        self.last_synced_slot = watermark
        logger.info(f"Loaded {len(self._notes)} notes up to slot {watermark}")
        return len(self._notes)

    def clear(self, persistent: bool = False):
        """
        Drop all cached state.

        Args:
            persistent: Also wipe the attached store
        """
        self._notes.clear()
        self._nullifiers.clear()
        self._spent.clear()
        self.last_synced_slot = 0
        if persistent and self.store is not None:
            self.store.clear()

    def __len__(self) -> int:
        return len(self._notes)

import json
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Tuple

from shieldcore.core.errors import StorageError
from shieldcore.core.state.note import DecryptedNote
from shieldcore.crypto.poseidon import field_to_hex, hex_to_field
from shieldcore.utils.logger import get_logger

logger = get_logger("storage.notes")


class NoteStore:
    """
    SQLite persistence for one wallet's note cache.

    Stores:
    1. Notes: decrypted notes keyed by commitment, with their spending nullifier
    2. Spent Set: nullifiers observed on the ledger or marked after submission
    3. Wallet Meta: sync watermark and other small values

    Sync results are written in a single transaction so a crash never leaves
    notes without the watermark that produced them, or the reverse.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn_local = threading.local()

        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            try:
                conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
            except sqlite3.Error as e:
                raise StorageError(f"Cannot open note store {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn_local.conn = conn
        return self._conn_local.conn

    def _init_schema(self):
        conn = self._get_conn()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notes (
                    commitment TEXT PRIMARY KEY,
                    pool_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    nullifier TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notes_pool ON notes(pool_id);")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS spent_nullifiers (
                    nullifier TEXT PRIMARY KEY
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS wallet_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    # =========================================================================
    # Sync
    # =========================================================================

    def commit_sync(
        self,
        notes: Iterable[Tuple[DecryptedNote, int]],
        nullifiers: Iterable[int],
        watermark: int,
    ):
        """
        Atomically persist the result of one sync.

        Args:
            notes: (note, spending nullifier) pairs to add
            nullifiers: Spent nullifiers to add
            watermark: New last synced slot

        Raises:
            StorageError: Nothing was written
        """
        try:
            conn = self._get_conn()
            with conn:
                conn.executemany(
                    "INSERT OR IGNORE INTO notes (commitment, pool_id, data, nullifier) VALUES (?, ?, ?, ?)",
                    [
                        (field_to_hex(note.commitment), note.pool_id, json.dumps(note.to_dict()), field_to_hex(nf))
                        for note, nf in notes
                    ],
                )
                conn.executemany(
                    "INSERT OR IGNORE INTO spent_nullifiers (nullifier) VALUES (?)",
                    [(field_to_hex(nf),) for nf in nullifiers],
                )
                conn.execute(
                    "INSERT OR REPLACE INTO wallet_meta (key, value) VALUES (?, ?)",
                    ("last_synced_slot", str(watermark)),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to persist sync up to slot {watermark}: {e}") from e

    def add_spent(self, nullifiers: Iterable[int]):
        """Mark nullifiers as spent."""
        try:
            conn = self._get_conn()
            with conn:
                conn.executemany(
                    "INSERT OR IGNORE INTO spent_nullifiers (nullifier) VALUES (?)",
                    [(field_to_hex(nf),) for nf in nullifiers],
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to persist spent nullifiers: {e}") from e

    # =========================================================================
    # Load
    # =========================================================================

    def load(self) -> Tuple[Dict[int, Tuple[DecryptedNote, int]], Set[int], int]:
        """
        Load the persisted cache.

        Returns:
            (commitment -> (note, nullifier), spent nullifiers, last synced slot)
        """
        try:
            conn = self._get_conn()
            notes: Dict[int, Tuple[DecryptedNote, int]] = {}
            for row in conn.execute("SELECT commitment, data, nullifier FROM notes"):
                notes[hex_to_field(row["commitment"])] = (
                    DecryptedNote.from_dict(json.loads(row["data"])),
                    hex_to_field(row["nullifier"]),
                )
            spent = {hex_to_field(row["nullifier"]) for row in conn.execute("SELECT nullifier FROM spent_nullifiers")}
            watermark = int(self.get_meta("last_synced_slot") or 0)
        except (sqlite3.Error, ValueError, KeyError) as e:
            raise StorageError(f"Corrupt note store {self.db_path}: {e}") from e

        logger.debug(f"Loaded {len(notes)} notes, {len(spent)} spent nullifiers, watermark {watermark}")
        return notes, spent, watermark

    def pool_note_count(self, pool_id: str) -> int:
        conn = self._get_conn()
        cursor = conn.execute("SELECT COUNT(*) AS cnt FROM notes WHERE pool_id = ?", (pool_id,))
        return cursor.fetchone()["cnt"]

    # =========================================================================
    # Wallet Meta
    # =========================================================================

    def set_meta(self, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute("INSERT OR REPLACE INTO wallet_meta (key, value) VALUES (?, ?)", (key, value))

    def get_meta(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM wallet_meta WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row["value"] if row else None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def clear(self):
        """Drop every note, nullifier and the watermark."""
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM notes")
            conn.execute("DELETE FROM spent_nullifiers")
            conn.execute("DELETE FROM wallet_meta")
        logger.info(f"Cleared note store {self.db_path}")

    def close(self):
        """Close this thread's connection."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn


def open_wallet_store(data_dir: Path, wallet_id: str) -> NoteStore:
    """One database per wallet under data_dir."""
    return NoteStore(Path(data_dir) / f"wallet-{wallet_id}.db")

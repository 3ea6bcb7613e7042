"""
Persistent Storage Module.

Provides SQLite-backed persistence for a wallet's note cache:
- Decrypted notes and their spending nullifiers
- Spent nullifier set
- Sync watermark
"""

from shieldcore.core.storage.note_store import NoteStore, open_wallet_store

__all__ = ["NoteStore", "open_wallet_store"]

"""Wallet state: note cache, coin selection and per-wallet sessions"""
from shieldcore.core.wallet.note_manager import FragmentationReport, NoteManager, SelectionResult
from shieldcore.core.wallet.session import WalletSession

__all__ = ["FragmentationReport", "NoteManager", "SelectionResult", "WalletSession"]

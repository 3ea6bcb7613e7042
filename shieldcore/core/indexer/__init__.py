"""Ledger/indexer access: protocol, wire records, HTTP client and local ledger"""
from shieldcore.core.indexer.records import CommitmentRecord, NullifierRecord, MerkleProofRecord
from shieldcore.core.indexer.client import IndexerClient, HttpIndexerClient
from shieldcore.core.indexer.local import LocalLedger, LedgerBusyError, PoolState

__all__ = [
    "CommitmentRecord",
    "NullifierRecord",
    "MerkleProofRecord",
    "IndexerClient",
    "HttpIndexerClient",
    "LocalLedger",
    "LedgerBusyError",
    "PoolState",
]

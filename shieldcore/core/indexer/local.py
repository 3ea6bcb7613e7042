"""
LocalLedger - in-memory ledger and indexer for development and tests.

Conceptual Background:
---------------------
The real ledger and indexer are external. LocalLedger plays both roles in
one process so wallets can be exercised end to end:

1. **Pools**: each pool has a Poseidon commitment tree and its root history
2. **Nullifier Set**: every spending nullifier ever published, per pool
3. **Slots**: every accepted operation occupies one new slot

Submission Processing:
---------------------
1. The bundle's Merkle root must be a root the pool has had (stale -> reject)
2. No nullifier may already be published (double-spend -> reject)
3. The outputs must fit in the tree (full -> reject)
4. Apply: publish nullifiers, append output commitments, advance the slot

Proofs are not verified here; the on-chain verifier is out of scope.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set

from shieldcore.crypto.babyjubjub import Point
from shieldcore.core.errors import DoubleSpendError, IndexerError, StaleMerkleRootError
from shieldcore.core.indexer.records import CommitmentRecord, NullifierRecord
from shieldcore.core.state.merkle import DEFAULT_DEPTH, MerkleProof, PoseidonMerkleTree
from shieldcore.utils.logger import get_logger

if TYPE_CHECKING:
    from shieldcore.core.prover.witness import ProofBundle

logger = get_logger("ledger")


@dataclass
class PoolState:
    """State of one shielded pool."""
    pool_id: str
    tree: PoseidonMerkleTree
    commitments: List[CommitmentRecord] = field(default_factory=list)
    nullifiers: List[NullifierRecord] = field(default_factory=list)
    nullifier_set: Set[int] = field(default_factory=set)
    action_nullifiers: Set[int] = field(default_factory=set)
    root_history: Set[int] = field(default_factory=set)


class LedgerBusyError(IndexerError):
    """Raised by LocalLedger reads while it is set to simulate an outage."""
    pass


class LocalLedger:
    """
    In-memory append-only ledger implementing the IndexerClient interface.

    Attributes:
        pools: Mapping of pool ID to PoolState
        slot: Last used slot
    """

    def __init__(self, merkle_depth: int = DEFAULT_DEPTH):
        self.merkle_depth = merkle_depth
        self.pools: Dict[str, PoolState] = {}
        self.slot = 0
        self.offline = False

    # =========================================================================
    # Pools
    # =========================================================================

    def create_pool(self, pool_id: str) -> PoolState:
        """Create a pool if it does not exist yet."""
        if pool_id not in self.pools:
            tree = PoseidonMerkleTree(depth=self.merkle_depth)
            self.pools[pool_id] = PoolState(
                pool_id=pool_id,
                tree=tree,
                root_history={tree.root},
            )
            logger.info(f"Created pool {pool_id}")
        return self.pools[pool_id]

    def _pool(self, pool_id: str) -> PoolState:
        pool = self.pools.get(pool_id)
        if pool is None:
            raise IndexerError(f"Unknown pool {pool_id}")
        return pool

    def _append(
        self,
        pool: PoolState,
        commitment: int,
        encrypted_note: bytes,
        stealth_ephemeral_pubkey: Optional[Point],
    ) -> CommitmentRecord:
        leaf_index = pool.tree.insert(commitment)
        pool.root_history.add(pool.tree.root)
        record = CommitmentRecord(
            pool_id=pool.pool_id,
            commitment=commitment,
            leaf_index=leaf_index,
            slot=self.slot,
            encrypted_note=encrypted_note,
            stealth_ephemeral_x=stealth_ephemeral_pubkey.x if stealth_ephemeral_pubkey else None,
            stealth_ephemeral_y=stealth_ephemeral_pubkey.y if stealth_ephemeral_pubkey else None,
        )
        pool.commitments.append(record)
        return record

    # =========================================================================
    # Writes
    # =========================================================================

    def append_commitment(
        self,
        pool_id: str,
        commitment: int,
        encrypted_note: bytes = b"",
        stealth_ephemeral_pubkey: Optional[Point] = None,
    ) -> CommitmentRecord:
        """
        Append a single commitment in a new slot (a shield deposit).

        Returns:
            The stored record, including its leaf index
        """
        pool = self.create_pool(pool_id)
        self.slot += 1
        record = self._append(pool, commitment, encrypted_note, stealth_ephemeral_pubkey)
        logger.debug(f"Slot {self.slot}: appended commitment at leaf {record.leaf_index} in {pool_id}")
        return record

    def publish_nullifier(self, pool_id: str, nullifier: int) -> NullifierRecord:
        """
        Publish a spending nullifier in a new slot.

        Raises:
            DoubleSpendError: If the nullifier was already published
        """
        pool = self._pool(pool_id)
        if nullifier in pool.nullifier_set:
            raise DoubleSpendError(f"Nullifier {hex(nullifier)[:12]}... already published")
        self.slot += 1
        record = NullifierRecord(pool_id=pool_id, nullifier=nullifier, slot=self.slot)
        pool.nullifier_set.add(nullifier)
        pool.nullifiers.append(record)
        return record

    def submit(self, bundle: "ProofBundle") -> List[CommitmentRecord]:
        """
        Apply a proven operation atomically in one slot.

        Raises:
            StaleMerkleRootError: Root never held by the pool
            DoubleSpendError: Any nullifier already published
            ValueError: Outputs do not fit in the pool's tree
        """
        pool = self._pool(bundle.pool_id)

        if bundle.merkle_root not in pool.root_history:
            raise StaleMerkleRootError(f"Root {hex(bundle.merkle_root)[:12]}... is not a known root of {pool.pool_id}")
        for nullifier in bundle.nullifiers:
            if nullifier in pool.nullifier_set:
                raise DoubleSpendError(f"Nullifier {hex(nullifier)[:12]}... already published")
        for nullifier in bundle.action_nullifiers:
            if nullifier in pool.action_nullifiers:
                raise DoubleSpendError(f"Action nullifier {hex(nullifier)[:12]}... already used")
        if len(set(bundle.nullifiers)) != len(bundle.nullifiers):
            raise DoubleSpendError("Bundle repeats a nullifier")
        if len(pool.tree) + len(bundle.outputs) > pool.tree.capacity:
            raise ValueError(f"Pool {pool.pool_id} tree cannot hold {len(bundle.outputs)} more commitments")

        self.slot += 1
        for nullifier in bundle.nullifiers:
            pool.nullifier_set.add(nullifier)
            pool.nullifiers.append(NullifierRecord(pool_id=pool.pool_id, nullifier=nullifier, slot=self.slot))
        pool.action_nullifiers.update(bundle.action_nullifiers)

        records = [
            self._append(pool, out.commitment, out.encrypted_note, out.stealth_ephemeral_pubkey)
            for out in bundle.outputs
        ]

        logger.info(
            f"Slot {self.slot}: {bundle.circuit_id} in {pool.pool_id} "
            f"({len(bundle.nullifiers)} nullifiers, {len(records)} commitments)"
        )
        return records

    # =========================================================================
    # IndexerClient
    # =========================================================================

    def _check_online(self) -> None:
        if self.offline:
            raise LedgerBusyError("Local ledger is offline")

    async def get_latest_slot(self) -> int:
        self._check_online()
        return self.slot

    async def fetch_commitments(self, pool_ids: Sequence[str], since: int, until: int) -> List[CommitmentRecord]:
        self._check_online()
        return [
            record
            for pool_id in pool_ids if pool_id in self.pools
            for record in self.pools[pool_id].commitments
            if since < record.slot <= until
        ]

    async def fetch_nullifiers(self, pool_ids: Sequence[str], since: int, until: int) -> List[NullifierRecord]:
        self._check_online()
        return [
            record
            for pool_id in pool_ids if pool_id in self.pools
            for record in self.pools[pool_id].nullifiers
            if since < record.slot <= until
        ]

    async def is_nullifier_spent(self, nullifier: int) -> bool:
        self._check_online()
        return any(nullifier in pool.nullifier_set for pool in self.pools.values())

    async def get_merkle_root(self, pool_id: str) -> int:
        self._check_online()
        return self._pool(pool_id).tree.root

    async def get_merkle_proof(self, pool_id: str, commitment: int) -> MerkleProof:
        self._check_online()
        pool = self._pool(pool_id)
        index = pool.tree.index_of(commitment)
        if index is None:
            raise IndexerError(f"Commitment {hex(commitment)[:12]}... not found in {pool_id}")
        return pool.tree.get_proof(index)

    # =========================================================================
    # Utility
    # =========================================================================

    def __repr__(self) -> str:
        return f"LocalLedger(slot={self.slot}, pools={list(self.pools)})"

    def stats(self) -> dict:
        """Get ledger statistics."""
        return {
            "slot": self.slot,
            "pools": {
                pool_id: {
                    "commitments": len(pool.tree),
                    "nullifiers": len(pool.nullifier_set),
                    "root": hex(pool.tree.root),
                }
                for pool_id, pool in self.pools.items()
            },
        }

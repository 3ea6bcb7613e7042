"""
Poseidon Merkle Tree for note commitments.

Conceptual Background:
---------------------
Every pool appends commitments to a fixed-depth, append-only binary tree.
A spend proves inclusion of its note under a recent root without revealing
which leaf it is.

    node   = H(MERKLE, left, right)
    empty  = H(EMPTY_LEAF, 0)

Empty subtrees are represented by precomputed zero hashes, so the tree only
stores nodes on populated paths:

    zeros[0] = empty
    zeros[i] = H(MERKLE, zeros[i-1], zeros[i-1])

Properties:
----------
- Insert: O(depth)
- Root: O(1) (maintained on insert)
- Prove: O(depth)
- Verify: O(depth)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from shieldcore.crypto.poseidon import (
    DOMAIN_EMPTY_LEAF,
    DOMAIN_MERKLE,
    FIELD_PRIME,
    poseidon_hash_domain,
)
from shieldcore.utils.logger import get_logger

logger = get_logger("merkle")

DEFAULT_DEPTH = 20


def hash_pair(left: int, right: int) -> int:
    """Hash two children to produce parent node."""
    return poseidon_hash_domain(DOMAIN_MERKLE, [left, right])


def empty_leaf() -> int:
    """Value of an unused leaf."""
    return poseidon_hash_domain(DOMAIN_EMPTY_LEAF, [0])


def zero_hashes(depth: int) -> List[int]:
    """Roots of empty subtrees of height 0..depth."""
    zeros = [empty_leaf()]
    for _ in range(depth):
        zeros.append(hash_pair(zeros[-1], zeros[-1]))
    return zeros


# =============================================================================
# Merkle Proof
# =============================================================================


@dataclass(frozen=True)
class MerkleProof:
    """
    Inclusion witness for one leaf at a specific snapshot root.

    Attributes:
        root: Tree root the proof was taken against
        path_elements: Sibling hashes from leaf to root
        path_indices: 1 where the current node is the right child
        leaf_index: Position of the leaf
    """
    root: int
    path_elements: List[int]
    path_indices: List[int]
    leaf_index: int

    def __post_init__(self):
        if len(self.path_elements) != len(self.path_indices):
            raise ValueError("path_elements and path_indices must have equal length")

    @property
    def depth(self) -> int:
        return len(self.path_elements)

    def compute_root(self, leaf: int) -> int:
        """Fold the path over a leaf value."""
        current = leaf
        for sibling, is_right in zip(self.path_elements, self.path_indices):
            if is_right:
                current = hash_pair(sibling, current)
            else:
                current = hash_pair(current, sibling)
        return current

    def verify(self, leaf: int) -> bool:
        """
        Check the proof for a leaf.

        Path indices must spell out leaf_index, and the path must
        reproduce the root.
        """
        expected_bits = [(self.leaf_index >> i) & 1 for i in range(self.depth)]
        if list(self.path_indices) != expected_bits:
            return False
        if self.leaf_index >= (1 << self.depth):
            return False
        return self.compute_root(leaf) == self.root

    def to_dict(self) -> dict:
        return {
            "root": str(self.root),
            "path_elements": [str(e) for e in self.path_elements],
            "path_indices": list(self.path_indices),
            "leaf_index": self.leaf_index,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MerkleProof":
        return cls(
            root=int(data["root"]),
            path_elements=[int(e) for e in data["path_elements"]],
            path_indices=[int(i) for i in data["path_indices"]],
            leaf_index=int(data["leaf_index"]),
        )


# =============================================================================
# Poseidon Merkle Tree
# =============================================================================


@dataclass
class PoseidonMerkleTree:
    """
    Append-only Poseidon Merkle tree with sparse node storage.

    Attributes:
        depth: Tree depth (2^depth leaves)
        leaves: Inserted leaf values in order
    """
    depth: int = DEFAULT_DEPTH
    leaves: List[int] = field(default_factory=list)

    def __post_init__(self):
        if not (1 <= self.depth <= 32):
            raise ValueError(f"depth must be in [1, 32], got {self.depth}")
        self.capacity = 2 ** self.depth
        self._zeros = zero_hashes(self.depth)
        self._nodes: Dict[Tuple[int, int], int] = {}
        self._index: Dict[int, int] = {}

        initial = self.leaves
        self.leaves = []
        for leaf in initial:
            self.insert(leaf)

    def _node(self, level: int, index: int) -> int:
        return self._nodes.get((level, index), self._zeros[level])

    @property
    def root(self) -> int:
        """Current Merkle root."""
        return self._node(self.depth, 0)

    @property
    def empty_root(self) -> int:
        return self._zeros[self.depth]

    def insert(self, value: int) -> int:
        """
        Append a leaf.

        Args:
            value: Field element to insert

        Returns:
            Index where value was inserted
        """
        if not (0 <= value < FIELD_PRIME):
            raise ValueError(f"Value {value} out of field range")
        index = len(self.leaves)
        if index >= self.capacity:
            raise ValueError("Tree is full")

        self.leaves.append(value)
        self._index.setdefault(value, index)
        self._nodes[(0, index)] = value

        idx = index
        for level in range(self.depth):
            left_idx = idx & ~1
            parent = hash_pair(self._node(level, left_idx), self._node(level, left_idx + 1))
            idx >>= 1
            self._nodes[(level + 1, idx)] = parent

        logger.debug(f"Inserted leaf {index}, root={hex(self.root)[:12]}...")
        return index

    def index_of(self, value: int) -> Optional[int]:
        """Leaf index of the first occurrence of a value."""
        return self._index.get(value)

    def get_proof(self, index: int) -> MerkleProof:
        """
        Get Merkle proof for a leaf against the current root.

        Args:
            index: Leaf index
        """
        if index < 0 or index >= len(self.leaves):
            raise IndexError(f"Leaf index {index} out of range")

        path_elements = []
        path_indices = []
        idx = index
        for level in range(self.depth):
            path_elements.append(self._node(level, idx ^ 1))
            path_indices.append(idx & 1)
            idx >>= 1

        return MerkleProof(
            root=self.root,
            path_elements=path_elements,
            path_indices=path_indices,
            leaf_index=index,
        )

    def __len__(self) -> int:
        return len(self.leaves)

    def __contains__(self, value: int) -> bool:
        return value in self._index

"""
Makora Privacy - Merkle Commitment Tree

Fixed-depth sparse Merkle tree over note commitments.

Interior nodes above set leaves are cached under ``"level:index"`` keys
(level 0 is the first level above the leaves); every other subtree is
represented by the precomputed hash of an empty subtree of that
height. Each tree instance owns its caches outright.

Mutations must be serialized by the caller: one writer per tree.
Proof generation and verification may run concurrently against a
stable root.
"""

from __future__ import annotations

import logging
from typing import Any

from .exceptions import LeafIndexOutOfBoundsError, LeafNotFoundError, TreeFullError
from .field import FIELD_MODULUS, hash_fields
from .models import MerkleProof, TreeState

logger = logging.getLogger("makora_privacy")

MERKLE_TREE_DEPTH = 20
ZERO_VALUE = 0


class MerkleTree:
    """
    Sparse Merkle tree of note commitments.

    Usage:
        tree = MerkleTree(depth=20)
        index = tree.insert(note.commitment)
        proof = tree.generate_proof(index)
        assert tree.verify_proof(proof)
    """

    def __init__(self, depth: int = MERKLE_TREE_DEPTH) -> None:
        if not 0 < depth <= 32:
            raise ValueError(f"Tree depth must be between 1 and 32, got {depth}")
        self.depth = depth
        self._leaves: dict[int, int] = {}
        self._nodes: dict[str, int] = {}
        self._zero_values: list[int] = []
        self._root = ZERO_VALUE
        self._next_index = 0
        self._initialize_zero_values()

    def _initialize_zero_values(self) -> None:
        current = ZERO_VALUE
        self._zero_values = [current]
        for _ in range(self.depth):
            current = hash_fields(current, current)
            self._zero_values.append(current)
        self._root = self._zero_values[self.depth]

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def root(self) -> int:
        return self._root

    def get_root(self) -> int:
        """Get the current root."""
        return self._root

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    @property
    def capacity(self) -> int:
        return 2**self.depth

    @property
    def zero_values(self) -> tuple[int, ...]:
        """Hashes of empty subtrees, indexed by height."""
        return tuple(self._zero_values)

    def get_leaf(self, index: int) -> int | None:
        return self._leaves.get(index)

    # =========================================================================
    # MUTATION
    # =========================================================================

    def insert(self, leaf: int) -> int:
        """
        Append a leaf at the next free index.

        Args:
            leaf: Commitment to insert (reduced into the field).

        Returns:
            The leaf index.

        Raises:
            TreeFullError: If the tree already holds ``2**depth`` leaves.
        """
        index = self._next_index
        if index >= self.capacity:
            raise TreeFullError(self.capacity)

        leaf %= FIELD_MODULUS
        self._leaves[index] = leaf
        self._update_path(index, leaf)
        self._next_index = index + 1
        return index

    def insert_at(self, index: int, leaf: int) -> None:
        """
        Set the leaf at a specific index.

        Only meant for replaying an exported tree.

        Raises:
            LeafIndexOutOfBoundsError: If the index is outside the tree.
        """
        if not 0 <= index < self.capacity:
            raise LeafIndexOutOfBoundsError(index, self.capacity)

        leaf %= FIELD_MODULUS
        self._leaves[index] = leaf
        self._update_path(index, leaf)
        self._next_index = max(self._next_index, index + 1)

    def _update_path(self, leaf_index: int, leaf_value: int) -> None:
        current_hash = leaf_value
        current_index = leaf_index

        for level in range(self.depth):
            is_left = current_index % 2 == 0
            sibling = self._sibling(level, current_index + 1 if is_left else current_index - 1)

            left, right = (current_hash, sibling) if is_left else (sibling, current_hash)
            current_hash = hash_fields(left, right)

            parent_index = current_index // 2
            self._nodes[f"{level}:{parent_index}"] = current_hash
            current_index = parent_index

        self._root = current_hash

    def _sibling(self, level: int, sibling_index: int) -> int:
        if level == 0:
            return self._leaves.get(sibling_index, ZERO_VALUE)
        return self._nodes.get(f"{level - 1}:{sibling_index}", self._zero_values[level])

    # =========================================================================
    # PROOFS
    # =========================================================================

    def generate_proof(self, leaf_index: int) -> MerkleProof:
        """
        Generate an inclusion proof against the current root.

        Raises:
            LeafNotFoundError: If no leaf is set at ``leaf_index``.
        """
        leaf = self._leaves.get(leaf_index)
        if leaf is None:
            raise LeafNotFoundError(leaf_index)

        path: list[int] = []
        path_indices: list[int] = []
        current_index = leaf_index

        for level in range(self.depth):
            is_left = current_index % 2 == 0
            path_indices.append(0 if is_left else 1)
            path.append(self._sibling(level, current_index + 1 if is_left else current_index - 1))
            current_index //= 2

        return MerkleProof(
            path=path,
            path_indices=path_indices,
            root=self._root,
            leaf=leaf,
            leaf_index=leaf_index,
        )

    def verify_proof(self, proof: MerkleProof) -> bool:
        """Check a proof of this tree's depth. Never raises."""
        if len(proof.path) != self.depth:
            return False
        return verify_merkle_proof(proof)

    def compute_root(self) -> int:
        """Recompute the root from the leaf set alone, ignoring the node cache."""
        level_nodes = dict(self._leaves)
        for level in range(self.depth):
            zero = self._zero_values[level]
            parents: dict[int, int] = {}
            for parent in {index // 2 for index in level_nodes}:
                parents[parent] = hash_fields(
                    level_nodes.get(2 * parent, zero),
                    level_nodes.get(2 * parent + 1, zero),
                )
            level_nodes = parents
        return level_nodes.get(0, self._zero_values[self.depth])

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def export(self) -> TreeState:
        """Snapshot the leaf set."""
        return TreeState(
            leaves=[(index, str(value)) for index, value in sorted(self._leaves.items())],
            depth=self.depth,
        )

    def import_state(self, state: TreeState | dict[str, Any]) -> None:
        """
        Replace this tree's contents with a snapshot.

        All caches and zero values are rebuilt before replaying leaves in
        index order. The snapshot is validated before anything is reset.
        """
        state = TreeState.model_validate(state)
        capacity = 2**state.depth
        entries = sorted((index, int(value)) for index, value in state.leaves)
        for index, _ in entries:
            if index >= capacity:
                raise LeafIndexOutOfBoundsError(index, capacity)

        self.depth = state.depth
        self._leaves.clear()
        self._nodes.clear()
        self._next_index = 0
        self._initialize_zero_values()

        for index, value in entries:
            self.insert_at(index, value)

        logger.debug(f"Imported {len(entries)} leaves at depth {self.depth}")

    @classmethod
    def from_state(cls, state: TreeState | dict[str, Any]) -> MerkleTree:
        state = TreeState.model_validate(state)
        tree = cls(state.depth)
        tree.import_state(state)
        return tree


def generate_merkle_proof(tree: MerkleTree, leaf_index: int) -> MerkleProof:
    """Generate a Merkle proof for a leaf index."""
    return tree.generate_proof(leaf_index)


def verify_merkle_proof(proof: MerkleProof) -> bool:
    """
    Verify a Merkle proof without access to the tree.

    Folds ``path``/``path_indices`` over ``leaf`` and compares the result
    with ``root``. Every value must already be a canonical field element.
    """
    if len(proof.path) != len(proof.path_indices):
        return False
    if not all(0 <= v < FIELD_MODULUS for v in (proof.leaf, proof.root, *proof.path)):
        return False

    current_hash = proof.leaf
    for sibling, position in zip(proof.path, proof.path_indices):
        if position == 0:
            current_hash = hash_fields(current_hash, sibling)
        elif position == 1:
            current_hash = hash_fields(sibling, current_hash)
        else:
            return False

    return current_hash == proof.root

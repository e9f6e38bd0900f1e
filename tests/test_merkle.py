"""Tests for the Merkle commitment tree."""

import json
import random

import pytest
from pydantic import ValidationError

from makora_privacy import (
    LeafIndexOutOfBoundsError,
    LeafNotFoundError,
    MerkleTree,
    TreeFullError,
    TreeState,
    generate_merkle_proof,
    verify_merkle_proof,
)
from makora_privacy.field import FIELD_MODULUS, hash_fields


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def tree():
    """Create a small tree with five leaves."""
    tree = MerkleTree(depth=4)
    for leaf in (11, 22, 33, 44, 55):
        tree.insert(leaf)
    return tree


class _NoScanDict(dict):
    """Leaf map that fails if anything iterates over it."""

    def __iter__(self):
        raise AssertionError("leaf set was scanned")

    def keys(self):
        raise AssertionError("leaf set was scanned")


# =============================================================================
# CONSTRUCTION TESTS
# =============================================================================


class TestEmptyTree:
    """Tests for a freshly built tree."""

    def test_zero_values(self):
        """Test each empty subtree hash is the hash of two smaller ones."""
        tree = MerkleTree(depth=3)

        zeros = tree.zero_values
        assert zeros[0] == 0
        for level in range(1, 4):
            assert zeros[level] == hash_fields(zeros[level - 1], zeros[level - 1])

    def test_empty_root(self):
        """Test the empty root is the top zero value."""
        tree = MerkleTree(depth=3)

        assert tree.root == tree.zero_values[3]
        assert tree.leaf_count == 0
        assert tree.capacity == 8

    def test_instances_do_not_share_state(self):
        """Test trees of different depth coexist."""
        small = MerkleTree(depth=2)
        large = MerkleTree(depth=5)
        small.insert(1)

        assert large.leaf_count == 0
        assert large.root == large.zero_values[5]

    @pytest.mark.parametrize("depth", [0, 33])
    def test_invalid_depth(self, depth):
        """Test depth must be within 1..32."""
        with pytest.raises(ValueError):
            MerkleTree(depth=depth)


# =============================================================================
# INSERT TESTS
# =============================================================================


class TestInsert:
    """Tests for insert and insert_at."""

    def test_sequential_indices(self):
        """Test leaves land at consecutive indices."""
        tree = MerkleTree(depth=3)

        assert [tree.insert(v) for v in (5, 6, 7)] == [0, 1, 2]
        assert tree.get_leaf(1) == 6
        assert tree.get_leaf(5) is None

    def test_root_matches_recomputation(self, tree):
        """Test the incremental root equals a full recomputation."""
        assert tree.root == tree.compute_root()

    def test_two_leaf_root(self):
        """Test the root of a depth-1 tree by hand."""
        tree = MerkleTree(depth=1)
        tree.insert(3)
        tree.insert(4)

        assert tree.root == hash_fields(3, 4)

    def test_root_changes_on_insert(self, tree):
        """Test every insert moves the root."""
        before = tree.root
        tree.insert(66)

        assert tree.root != before
        assert tree.root == tree.compute_root()

    def test_full_tree(self):
        """Test inserting past capacity fails without mutating."""
        tree = MerkleTree(depth=2)
        for value in range(4):
            tree.insert(value + 1)
        root = tree.root

        with pytest.raises(TreeFullError) as exc_info:
            tree.insert(99)

        assert exc_info.value.capacity == 4
        assert tree.root == root
        assert tree.leaf_count == 4

    def test_insert_at_out_of_bounds(self):
        """Test insert_at rejects indices outside the tree."""
        tree = MerkleTree(depth=2)

        with pytest.raises(LeafIndexOutOfBoundsError):
            tree.insert_at(4, 1)
        with pytest.raises(LeafIndexOutOfBoundsError):
            tree.insert_at(-1, 1)
        assert tree.leaf_count == 0

    def test_insert_at_any_order(self):
        """Test out-of-order placement yields the same root."""
        in_order = MerkleTree(depth=3)
        for index, value in enumerate((8, 9, 10)):
            in_order.insert_at(index, value)

        reversed_order = MerkleTree(depth=3)
        for index, value in reversed(list(enumerate((8, 9, 10)))):
            reversed_order.insert_at(index, value)

        assert in_order.root == reversed_order.root

    def test_insert_after_gap(self):
        """Test append never overwrites a leaf placed beyond a gap."""
        tree = MerkleTree(depth=3)
        tree.insert_at(3, 7)

        assert tree.insert(8) == 4
        assert tree.get_leaf(3) == 7

    def test_insert_at_below_next_index(self):
        """Test filling a gap does not move the append position back."""
        tree = MerkleTree(depth=3)
        tree.insert_at(5, 1)
        tree.insert_at(2, 2)

        assert tree.insert(3) == 6

    def test_append_position_after_import(self):
        """Test import resets the append position to follow the snapshot."""
        tree = MerkleTree(depth=3)
        for value in range(6):
            tree.insert(value + 1)

        tree.import_state({"leaves": [[0, "1"], [2, "3"]], "depth": 3})

        assert tree.insert(9) == 3

    def test_append_ignores_leaf_count(self):
        """Test appending does not walk the existing leaf set."""
        tree = MerkleTree(depth=8)
        for value in range(10):
            tree.insert(value + 1)
        tree._leaves = _NoScanDict(tree._leaves)

        assert tree.insert(11) == 10


# =============================================================================
# PROOF TESTS
# =============================================================================


class TestProofs:
    """Tests for proof generation and verification."""

    def test_every_leaf_verifies(self, tree):
        """Test proofs for all leaves verify against the root."""
        for index in range(tree.leaf_count):
            proof = tree.generate_proof(index)

            assert proof.root == tree.root
            assert len(proof.path) == tree.depth
            assert tree.verify_proof(proof)
            assert verify_merkle_proof(proof)

    def test_path_indices_encode_position(self, tree):
        """Test the path indices spell the leaf index in binary."""
        proof = tree.generate_proof(5 - 1)

        assert proof.path_indices == [0, 0, 1, 0]

    def test_module_helper(self, tree):
        """Test generate_merkle_proof delegates to the tree."""
        assert generate_merkle_proof(tree, 2) == tree.generate_proof(2)

    def test_missing_leaf(self, tree):
        """Test proofs for unset leaves fail."""
        with pytest.raises(LeafNotFoundError) as exc_info:
            tree.generate_proof(9)

        assert exc_info.value.leaf_index == 9

    def test_tampered_proof_fails(self, tree):
        """Test altering the leaf, the root or any single sibling breaks the proof."""
        proof = tree.generate_proof(1)

        assert not verify_merkle_proof(proof.model_copy(update={"leaf": proof.leaf + 1}))
        assert not verify_merkle_proof(proof.model_copy(update={"root": proof.root + 1}))
        for level in range(tree.depth):
            path = list(proof.path)
            path[level] = (path[level] + 1) % FIELD_MODULUS
            assert not verify_merkle_proof(proof.model_copy(update={"path": path}))

    @pytest.mark.parametrize("field", ["leaf", "root", "path"])
    def test_non_canonical_values_rejected(self, tree, field):
        """Test values shifted by the field modulus do not verify."""
        proof = tree.generate_proof(1)
        if field == "path":
            path = list(proof.path)
            path[1] += FIELD_MODULUS
            shifted = proof.model_copy(update={"path": path})
        else:
            shifted = proof.model_copy(update={field: getattr(proof, field) + FIELD_MODULUS})

        assert verify_merkle_proof(proof)
        assert not verify_merkle_proof(shifted)
        assert not tree.verify_proof(shifted)

    def test_negative_sibling_rejected(self, tree):
        """Test negative path elements do not verify."""
        proof = tree.generate_proof(0)
        path = list(proof.path)
        path[0] -= FIELD_MODULUS

        assert not verify_merkle_proof(proof.model_copy(update={"path": path}))

    @pytest.mark.parametrize("seed", range(8))
    def test_random_trees_verify_everywhere(self, seed):
        """Test random trees of 1 to 16 leaves prove every index."""
        rng = random.Random(seed)
        tree = MerkleTree(depth=5)
        count = rng.randint(1, 16)
        for _ in range(count):
            tree.insert(rng.randrange(FIELD_MODULUS))

        assert tree.root == tree.compute_root()
        for index in range(count):
            proof = tree.generate_proof(index)
            assert proof.root == tree.compute_root()
            assert verify_merkle_proof(proof)

    def test_stale_proof_fails_against_new_root(self, tree):
        """Test a proof only holds for the root it was generated under."""
        proof = tree.generate_proof(0)
        tree.insert(77)

        assert verify_merkle_proof(proof)
        assert not verify_merkle_proof(proof.model_copy(update={"root": tree.root}))

    def test_wrong_depth_rejected_by_tree(self, tree):
        """Test the instance check requires a full-depth path."""
        proof = tree.generate_proof(0)
        short = proof.model_copy(
            update={"path": proof.path[:-1], "path_indices": proof.path_indices[:-1]}
        )

        assert not tree.verify_proof(short)

    def test_mismatched_lengths(self, tree):
        """Test path and indices of different lengths do not verify."""
        proof = tree.generate_proof(0)

        assert not verify_merkle_proof(proof.model_copy(update={"path": proof.path[:-1]}))


# =============================================================================
# PERSISTENCE TESTS
# =============================================================================


class TestPersistence:
    """Tests for export and import_state."""

    def test_export_format(self, tree):
        """Test leaves export as sorted (index, decimal) pairs."""
        state = tree.export()

        assert state.depth == 4
        assert state.leaves[0] == (0, "11")
        assert json.loads(state.model_dump_json())["leaves"][1] == [1, "22"]

    def test_round_trip(self, tree):
        """Test an imported tree is identical to the exported one."""
        restored = MerkleTree.from_state(json.loads(tree.export().model_dump_json()))

        assert restored.root == tree.root
        assert restored.leaf_count == tree.leaf_count
        assert restored.generate_proof(3) == tree.generate_proof(3)

    def test_import_unsorted(self, tree):
        """Test import does not depend on snapshot order."""
        state = tree.export()
        shuffled = TreeState(leaves=list(reversed(state.leaves)), depth=state.depth)

        restored = MerkleTree(depth=4)
        restored.import_state(shuffled)

        assert restored.root == tree.root

    def test_import_resets_existing_state(self, tree):
        """Test importing replaces rather than merges."""
        other = MerkleTree(depth=2)
        other.insert(1)

        tree.import_state(other.export())

        assert tree.depth == 2
        assert tree.leaf_count == 1
        assert tree.root == other.root
        assert len(tree.zero_values) == 3

    def test_import_rejects_out_of_range(self, tree):
        """Test a snapshot with an index beyond capacity leaves the tree untouched."""
        root = tree.root

        with pytest.raises(LeafIndexOutOfBoundsError):
            tree.import_state({"leaves": [[0, "1"], [4, "2"]], "depth": 2})

        assert tree.root == root
        assert tree.leaf_count == 5

    def test_import_rejects_malformed(self, tree):
        """Test non-decimal values fail validation."""
        with pytest.raises(ValidationError):
            tree.import_state({"leaves": [[0, "0xzz"]], "depth": 4})

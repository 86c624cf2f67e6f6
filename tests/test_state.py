"""
상태 리프와 트리 팩토리 테스트
"""

import pytest

from maci.crypto.poseidon import hash2, hash5
from maci.state import (
    StateLeaf, hash_state_leaf, hash_deactivate_leaf, state_leaf_zero,
    new_state_tree, new_deactivate_tree, deactivate_commitment, commitment,
    encode_result, decode_result, SCALE,
)


class TestStateLeaf:
    def test_hash_layout(self):
        leaf_hash = hash_state_leaf((1, 2), 100, 0, 0)
        assert leaf_hash == hash2([hash5([1, 2, 100, 0, 0]), hash5([0, 0, 0, 0, 0])])

    def test_leaf_object_matches_function(self):
        leaf = StateLeaf((1, 2), 100, d1=(3, 4), d2=(5, 6))
        assert leaf.hash() == hash_state_leaf((1, 2), 100, 0, 0, [3, 4, 5, 6])

    def test_vote_root_only_after_voting(self):
        leaf = StateLeaf((1, 2), 100)
        leaf.vo_tree.update_leaf(0, 3)
        assert leaf.vote_option_root == 0
        leaf.voted = True
        assert leaf.vote_option_root == leaf.vo_tree.root

    def test_circuit_input_shape(self):
        leaf = StateLeaf((1, 2), 100, nonce=4)
        assert leaf.as_circuit_input() == [1, 2, 100, 0, 4, 0, 0, 0, 0, 0]

    def test_copy_is_independent(self):
        leaf = StateLeaf((1, 2), 100)
        clone = leaf.copy()
        clone.vo_tree.update_leaf(0, 9)
        clone.balance = 1
        assert leaf.vo_tree.leaf(0) == 0
        assert leaf.balance == 100

    def test_bad_d_length(self):
        with pytest.raises(ValueError):
            hash_state_leaf((1, 2), 100, 0, 0, [1, 2, 3])

    def test_empty_leaf_is_tree_zero(self):
        assert StateLeaf().hash() == state_leaf_zero()
        assert new_state_tree(2).zeros[0] == state_leaf_zero()


class TestTrees:
    def test_deactivate_tree_depth(self):
        assert new_deactivate_tree(2).depth == 4

    def test_deactivate_leaf(self):
        assert hash_deactivate_leaf([1, 2, 3, 4, 5]) == hash5([1, 2, 3, 4, 5])
        with pytest.raises(ValueError):
            hash_deactivate_leaf([1, 2, 3, 4])

    def test_commitments(self):
        assert commitment(5, 6) == hash2([5, 6])
        assert deactivate_commitment(5, 6) == hash2([5, 6])


class TestResultEncoding:
    def test_decode(self):
        """v·SCALE + v² 는 (v, v²) 로 풀린다."""
        assert decode_result(7 * (7 + SCALE)) == (7, 49)

    def test_encode(self):
        assert encode_result(3, 9) == 3 * SCALE + 9
        assert decode_result(encode_result(12, 144)) == (12, 144)

"""
B진 머클 트리 테스트
=====================

테스트 범위:
  - 제로 해시, 빈 트리 루트
  - init_leaves / update_leaf 일치
  - 포함 경로 검증 (차수 5, 차수 2)
  - sub_tree, extend_tree_root, copy
"""

import pytest

from maci.crypto.poseidon import poseidon
from maci.tree import Tree, compute_zero_hashes


class TestZeroHashes:
    def test_levels(self):
        zeros = compute_zero_hashes(5, 2, 0)
        assert zeros[0] == 0
        assert zeros[1] == poseidon([0] * 5)
        assert zeros[2] == poseidon([zeros[1]] * 5)

    def test_empty_root(self):
        tree = Tree(5, 2, 7)
        assert tree.root == compute_zero_hashes(5, 2, 7)[2]


class TestTree:
    def test_capacity_and_leaves_index(self):
        tree = Tree(5, 2)
        assert tree.capacity == 25
        assert tree.leaves_idx_0 == 6
        assert len(tree.leaves()) == 25

    def test_init_matches_updates(self):
        """일괄 적재와 하나씩 갱신한 루트가 같다."""
        values = [3, 1, 4, 1, 5, 9, 2]
        bulk = Tree(5, 2)
        bulk.init_leaves(values)
        single = Tree(5, 2)
        for i, v in enumerate(values):
            single.update_leaf(i, v)
        assert bulk.root == single.root
        assert bulk.leaves()[:7] == values

    def test_root_by_hand(self):
        tree = Tree(5, 1)
        tree.init_leaves([1, 2, 3])
        assert tree.root == poseidon([1, 2, 3, 0, 0])

    def test_init_leaves_resets(self):
        tree = Tree(5, 1)
        tree.init_leaves([1, 2, 3])
        tree.init_leaves([1])
        assert tree.root == poseidon([1, 0, 0, 0, 0])

    def test_too_many_leaves(self):
        with pytest.raises(ValueError):
            Tree(5, 1).init_leaves(list(range(6)))

    def test_index_out_of_range(self):
        tree = Tree(5, 1)
        with pytest.raises(ValueError):
            tree.update_leaf(5, 1)
        with pytest.raises(ValueError):
            tree.leaf(-1)

    def test_invalid_shape(self):
        with pytest.raises(ValueError):
            Tree(1, 2)
        with pytest.raises(ValueError):
            Tree(5, 0)


class TestPaths:
    @pytest.mark.parametrize("degree,depth,idx", [(5, 2, 7), (5, 3, 124), (2, 4, 11)])
    def test_inclusion(self, degree, depth, idx):
        tree = Tree(degree, depth)
        tree.init_leaves(list(range(1, degree ** depth + 1)))
        path = tree.path_element_of(idx)
        assert len(path) == depth
        assert all(len(level) == degree - 1 for level in path)
        assert Tree.verify_path(degree, idx, tree.leaf(idx), path, tree.root)

    def test_wrong_leaf_fails(self):
        tree = Tree(5, 2)
        tree.init_leaves([10, 20, 30])
        path = tree.path_element_of(1)
        assert not Tree.verify_path(5, 1, 21, path, tree.root)

    def test_path_idx(self):
        tree = Tree(5, 2)
        assert tree.path_idx_of(7) == [2, 1]
        assert tree.path_idx_of(0) == [0, 0]


class TestDerivedTrees:
    def test_sub_tree_zeroes_tail(self):
        tree = Tree(5, 2, 9)
        tree.init_leaves([1, 2, 3, 4])
        sub = tree.sub_tree(2)
        expected = Tree(5, 2, 9)
        expected.init_leaves([1, 2])
        assert sub.root == expected.root
        assert sub.capacity == tree.capacity

    def test_sub_tree_full_length(self):
        tree = Tree(5, 1)
        tree.init_leaves([1, 2])
        assert tree.sub_tree(100).root == tree.root

    def test_extend_tree_root(self):
        """깊이 1 트리를 깊이 2 트리의 가장 왼쪽 서브트리로 본 루트."""
        small = Tree(5, 1)
        small.init_leaves([1, 2, 3])
        big = Tree(5, 2)
        big.init_leaves([1, 2, 3])
        assert small.extend_tree_root(2) == big.root
        with pytest.raises(ValueError):
            big.extend_tree_root(1)

    def test_copy_is_independent(self):
        tree = Tree(5, 1)
        tree.init_leaves([1])
        clone = tree.copy()
        clone.update_leaf(0, 2)
        assert tree.leaf(0) == 1
        assert clone.root != tree.root

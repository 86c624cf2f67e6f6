"""
고정 분기(fixed-branching) 증분 머클 트리
==========================================

분기 수 B (프로토콜: 5), 깊이 D, 제로 리프 z 로 정의되는 완전 B진 트리.
노드는 평탄한(flat) 배열 하나에 저장한다.

  인덱스 0                     : 루트
  노드 k의 자식                : k·B + 1 .. k·B + B
  LEAVES_IDX_0 = (B^D - 1)/(B - 1) : 첫 리프의 배열 인덱스

  zeros[0] = z
  zeros[h] = H(zeros[h-1] × B)    (비어 있는 높이 h 서브트리의 해시)

압축 함수는 자식 B개를 한꺼번에 해싱한다 (쌍별 해싱이 아님).

사용 예시:
    >>> tree = Tree(5, 2, 0)
    >>> tree.init_leaves([1, 2, 3])
    >>> tree.update_leaf(7, 42)
    >>> path = tree.path_element_of(7)
    >>> Tree.verify_path(5, 7, 42, path, tree.root)   # True
"""

from maci.crypto.field import to_field
from maci.crypto.poseidon import poseidon


def compute_zero_hashes(degree, depth, zero):
    """[zeros[0], ..., zeros[depth]]."""
    zeros = [to_field(zero)]
    for _ in range(depth):
        zeros.append(poseidon([zeros[-1]] * degree))
    return zeros


class Tree:
    """B진 머클 트리.

    속성:
        degree: 분기 수 B
        depth: 깊이 D
        leaves_idx_0: 첫 리프의 노드 인덱스
        zeros: 높이별 제로 해시
        nodes: 평탄한 노드 배열
    """

    def __init__(self, degree, depth, zero=0):
        if degree < 2:
            raise ValueError(f"분기 수는 2 이상이어야 합니다: {degree}")
        if depth < 1:
            raise ValueError(f"깊이는 1 이상이어야 합니다: {depth}")
        self.degree = degree
        self.depth = depth
        self.leaves_idx_0 = (degree ** depth - 1) // (degree - 1)
        self.nodes_count = (degree ** (depth + 1) - 1) // (degree - 1)
        self.zeros = compute_zero_hashes(degree, depth, zero)
        self._init_nodes()

    def _init_nodes(self):
        nodes = []
        for d in range(self.depth + 1):
            nodes.extend([self.zeros[self.depth - d]] * (self.degree ** d))
        self.nodes = nodes

    @property
    def root(self):
        return self.nodes[0]

    @property
    def capacity(self):
        return self.degree ** self.depth

    def _check_leaf_idx(self, leaf_idx):
        if not 0 <= leaf_idx < self.capacity:
            raise ValueError(f"리프 인덱스가 범위를 벗어났습니다: {leaf_idx} (용량 {self.capacity})")

    def _hash_children(self, parent_idx):
        first = parent_idx * self.degree + 1
        return poseidon(self.nodes[first:first + self.degree])

    # ─── 리프 읽기 ───

    def leaf(self, leaf_idx):
        self._check_leaf_idx(leaf_idx)
        return self.nodes[self.leaves_idx_0 + leaf_idx]

    def leaves(self):
        return self.nodes[self.leaves_idx_0:]

    # ─── 리프 쓰기 ───

    def init_leaves(self, values):
        """왼쪽부터 리프를 채우고 조상 노드를 아래에서 위로 다시 계산한다."""
        values = [to_field(v) for v in values]
        if len(values) > self.capacity:
            raise ValueError(f"리프 수가 용량을 초과합니다: {len(values)} > {self.capacity}")
        self._init_nodes()
        start = self.leaves_idx_0
        self.nodes[start:start + len(values)] = values

        # 채워진 구간의 부모만 다시 계산 (나머지는 제로 해시 그대로)
        level_start, level_len = start, len(values)
        while level_start > 0 and level_len > 0:
            parent_start = (level_start - 1) // self.degree
            parent_len = (level_len + self.degree - 1) // self.degree
            for parent_idx in range(parent_start, parent_start + parent_len):
                self.nodes[parent_idx] = self._hash_children(parent_idx)
            level_start, level_len = parent_start, parent_len

    def update_leaf(self, leaf_idx, value):
        """리프 하나를 바꾸고 O(D) 조상 체인을 갱신한다."""
        self._check_leaf_idx(leaf_idx)
        idx = self.leaves_idx_0 + leaf_idx
        self.nodes[idx] = to_field(value)
        while idx > 0:
            parent_idx = (idx - 1) // self.degree
            self.nodes[parent_idx] = self._hash_children(parent_idx)
            idx = parent_idx

    # ─── 경로 ───

    def path_idx_of(self, leaf_idx):
        """레벨별 자식 위치 [0, B) (리프 쪽부터)."""
        self._check_leaf_idx(leaf_idx)
        idx = self.leaves_idx_0 + leaf_idx
        path_idx = []
        while idx > 0:
            path_idx.append((idx - 1) % self.degree)
            idx = (idx - 1) // self.degree
        return path_idx

    def path_element_of(self, leaf_idx):
        """레벨별 형제 노드 B-1개 (리프 쪽부터). 포함 증명의 위트니스."""
        self._check_leaf_idx(leaf_idx)
        idx = self.leaves_idx_0 + leaf_idx
        path = []
        while idx > 0:
            parent_idx = (idx - 1) // self.degree
            first = parent_idx * self.degree + 1
            path.append([self.nodes[first + i] for i in range(self.degree) if first + i != idx])
            idx = parent_idx
        return path

    @staticmethod
    def verify_path(degree, leaf_idx, leaf, path_elements, root):
        """형제 노드로 루트를 재계산해 포함 여부를 확인한다."""
        node = to_field(leaf)
        idx = leaf_idx
        for siblings in path_elements:
            if len(siblings) != degree - 1:
                return False
            position = idx % degree
            children = list(siblings[:position]) + [node] + list(siblings[position:])
            node = poseidon(children)
            idx //= degree
        return node == to_field(root)

    # ─── 파생 트리 ───

    def sub_tree(self, length):
        """리프 ≥ length 를 제로로 만든 같은 모양의 트리.

        실제 리프 개수를 드러내지 않는 고정 용량 뷰를 만든다.
        """
        if length < 0:
            raise ValueError(f"길이는 음수일 수 없습니다: {length}")
        length = min(length, self.capacity)
        sub = Tree(self.degree, self.depth, self.zeros[0])
        sub.init_leaves(self.leaves()[:length])
        return sub

    def extend_tree_root(self, to_depth):
        """현재 루트를 더 깊은 트리(to_depth)의 가장 왼쪽 서브트리로 본 루트."""
        if to_depth < self.depth:
            raise ValueError(f"목표 깊이가 현재 깊이보다 작습니다: {to_depth} < {self.depth}")
        zeros = compute_zero_hashes(self.degree, to_depth, self.zeros[0])
        node = self.root
        for h in range(self.depth, to_depth):
            node = poseidon([node] + [zeros[h]] * (self.degree - 1))
        return node

    def copy(self):
        clone = Tree.__new__(Tree)
        clone.degree = self.degree
        clone.depth = self.depth
        clone.leaves_idx_0 = self.leaves_idx_0
        clone.nodes_count = self.nodes_count
        clone.zeros = list(self.zeros)
        clone.nodes = list(self.nodes)
        return clone

"""
상태 모델: 투표자 리프와 그 위에 세워지는 트리들
==================================================

  StateLeaf = {pub_key, balance, vo_tree, nonce, voted, d1, d2}

  leaf_hash = H₂( H₅(pk.x, pk.y, balance, voted ? voRoot : 0, nonce),
                  H₅(d1.x, d1.y, d2.x, d2.y, 0) )

마지막 0은 5-입력 해시를 채우는 자리다.

트리:
  상태 트리        (5, state_depth,        zero = H₂(H₅(0…), H₅(0…)))
  투표 옵션 트리   (5, vote_option_depth,  zero = 0)       투표자마다 하나
  활성 상태 트리   (5, state_depth,        zero = 0)       0 = 활성
  비활성화 트리    (5, state_depth + 2,    zero = 0)       리프 = H₅(record)
"""

from maci.crypto.poseidon import hash2, hash5
from maci.tree import Tree


TREE_DEGREE = 5

ZERO_POINT = (0, 0)


def _empty_hash5():
    return hash5([0, 0, 0, 0, 0])


def state_leaf_zero():
    """빈 상태 리프의 해시 = 상태 트리의 제로 리프."""
    empty = _empty_hash5()
    return hash2([empty, empty])


class StateLeaf:
    """투표자 한 명의 상태.

    가입 시 생성되고 처리(Processing) 배치에서만 바뀌며 삭제되지 않는다.
    비활성화된 리프도 그대로 남는다.
    """

    def __init__(self, pub_key=ZERO_POINT, balance=0, vote_option_tree_depth=1,
                 nonce=0, d1=ZERO_POINT, d2=ZERO_POINT):
        self.pub_key = (int(pub_key[0]), int(pub_key[1]))
        self.balance = int(balance)
        self.vo_tree = Tree(TREE_DEGREE, vote_option_tree_depth, 0)
        self.nonce = int(nonce)
        self.voted = False
        self.d1 = (int(d1[0]), int(d1[1]))
        self.d2 = (int(d2[0]), int(d2[1]))

    @property
    def vote_option_root(self):
        return self.vo_tree.root if self.voted else 0

    @property
    def d(self):
        """[d1.x, d1.y, d2.x, d2.y]"""
        return [self.d1[0], self.d1[1], self.d2[0], self.d2[1]]

    def hash(self):
        return hash_state_leaf(self.pub_key, self.balance, self.vote_option_root,
                               self.nonce, self.d)

    def as_circuit_input(self):
        """회로 입력 형식 [pk.x, pk.y, balance, voRoot, nonce, d1.x, d1.y, d2.x, d2.y, 0]."""
        return [self.pub_key[0], self.pub_key[1], self.balance, self.vote_option_root,
                self.nonce] + self.d + [0]

    def copy(self):
        clone = StateLeaf.__new__(StateLeaf)
        clone.pub_key = self.pub_key
        clone.balance = self.balance
        clone.vo_tree = self.vo_tree.copy()
        clone.nonce = self.nonce
        clone.voted = self.voted
        clone.d1 = self.d1
        clone.d2 = self.d2
        return clone

    def __repr__(self):
        return (f"StateLeaf(pub_key={self.pub_key}, balance={self.balance}, "
                f"nonce={self.nonce}, voted={self.voted})")


def hash_state_leaf(pub_key, balance, vote_option_root, nonce, d=None):
    """상태 리프 해시. d가 없으면 가입 시점의 (0,0),(0,0)."""
    if d is None:
        d = [0, 0, 0, 0]
    if len(d) != 4:
        raise ValueError(f"d는 4개 원소여야 합니다: {len(d)}")
    return hash2([
        hash5([pub_key[0], pub_key[1], balance, vote_option_root, nonce]),
        hash5(list(d) + [0]),
    ])


def hash_deactivate_leaf(record):
    """[c1.x, c1.y, c2.x, c2.y, sharedKeyHash] → 비활성화 트리 리프."""
    if len(record) != 5:
        raise ValueError(f"비활성화 레코드는 5개 원소여야 합니다: {len(record)}")
    return hash5(record)


# ─── 트리 팩토리 ───

def new_state_tree(state_tree_depth):
    return Tree(TREE_DEGREE, state_tree_depth, state_leaf_zero())


def new_active_state_tree(state_tree_depth):
    return Tree(TREE_DEGREE, state_tree_depth, 0)


def new_deactivate_tree(state_tree_depth):
    return Tree(TREE_DEGREE, state_tree_depth + 2, 0)


def new_vote_option_tree(vote_option_tree_depth):
    return Tree(TREE_DEGREE, vote_option_tree_depth, 0)


def deactivate_commitment(active_state_root, deactivate_root):
    return hash2([active_state_root, deactivate_root])


def commitment(root, salt):
    """H₂(root, salt): 루트나 솔트 어느 하나도 단독으로 드러내지 않는다."""
    return hash2([root, salt])


# ─── 결과 인코딩 ───

# v · SCALE + v² 로 투표 수와 소비 가중치를 한 값에 담는다
SCALE = 10 ** 24


def encode_result(votes, spent):
    return int(votes) * SCALE + int(spent)


def decode_result(value):
    """v · SCALE + v² → (투표 수 v, 소비 가중치 v²)."""
    value = int(value)
    return value // SCALE, value % SCALE

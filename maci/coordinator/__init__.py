"""
코디네이터(Operator): 오프체인 배치 접기(folding)
===================================================

코디네이터는 원장과 같은 순서로 가입/메시지를 받아 평문 상태를 유지하고,
체인의 한 구간을 접어 새 루트/커밋먼트와 증명이 보증해야 할 공개 입력을
만든다.

  ┌─────────────────────────────────────────────────────┐
  │  투표 기간 (FILLING)                                │
  │    sign_up / init_state_leaf, push_message,         │
  │    push_deactivate_message                          │
  │    process_deactivate_messages  → deactivate.py     │
  ├─────────────────────────────────────────────────────┤
  │  처리 기간 (PROCESSING)                             │
  │    process_messages (체인 끝 → 처음) → process.py   │
  ├─────────────────────────────────────────────────────┤
  │  집계 기간 (TALLYING)                               │
  │    process_tally (상태 리프 배치)   → tally.py      │
  └─────────────────────────────────────────────────────┘

배치는 엄격히 순차적으로 처리된다. 각 배치의 입력이 직전 배치가 만든
커밋먼트에 의존하기 때문이다.

사용 예시:
    >>> coordinator = Coordinator(RoundParameters(), Keypair())
    >>> idx = coordinator.sign_up(voter.pub_key, 100)
    >>> coordinator.push_message(message)
    >>> coordinator.end_vote_period()
    >>> result = coordinator.process_messages(new_state_salt=0)
"""

import logging
from enum import Enum

from maci.chain import MessageChain
from maci.command import VoteCommand, DeactivateCommand, decrypt_message
from maci.config import RoundParameters
from maci.crypto.elgamal import decrypt
from maci.crypto.poseidon import poseidon
from maci.state import (
    StateLeaf,
    new_state_tree, new_active_state_tree, new_deactivate_tree, new_vote_option_tree,
    commitment, deactivate_commitment,
)
from maci.coordinator import deactivate, process, tally

logger = logging.getLogger(__name__)


class CoordinatorStatus(Enum):
    FILLING = "filling"
    PROCESSING = "processing"
    TALLYING = "tallying"
    ENDED = "ended"


class BatchResult:
    """배치 하나를 접은 결과.

    속성:
        input_hash: 증명의 공개 입력
        new_commitment: 원장에 제출할 새 커밋먼트
        circuit_input: 증명 생성기에 넘길 전체 입력 dict
        errors: 메시지별 no-op 사유 (None이면 유효)
    """

    def __init__(self, input_hash, new_commitment, circuit_input, errors):
        self.input_hash = input_hash
        self.new_commitment = new_commitment
        self.circuit_input = circuit_input
        self.errors = errors

    @property
    def accepted_count(self):
        return sum(1 for e in self.errors if e is None)


class Coordinator:
    """코디네이터 상태.

    Args:
        parameters: RoundParameters (원장과 같아야 한다)
        keypair: 코디네이터 Keypair
    """

    def __init__(self, parameters, keypair):
        if not isinstance(parameters, RoundParameters):
            raise TypeError("parameters는 RoundParameters여야 합니다")
        self.parameters = parameters.validate()
        self.keypair = keypair
        self.coord_pub_key_hash = poseidon(keypair.pub_key)

        depth = parameters.state_tree_depth
        self.state_leaves = {}
        self.state_tree = new_state_tree(depth)
        self.active_state_tree = new_active_state_tree(depth)
        self.deactivate_tree = new_deactivate_tree(depth)
        self.num_sign_ups = 0

        self.msg_chain = MessageChain("msg")
        self.commands = []
        self.dmsg_chain = MessageChain("dmsg")
        self.dcommands = []
        self.deactivate_records = []
        self.processed_dmsg_count = 0

        self.status = CoordinatorStatus.FILLING
        self.msg_end_idx = 0
        self.state_commitment = 0
        self.state_salt = 0

        self.tally_results = new_vote_option_tree(parameters.vote_option_tree_depth)
        self.batch_num = 0
        self.tally_commitment = 0
        self.tally_salt = 0

    # ─────────────────────────────────────────────────────────────
    # 상태 접근
    # ─────────────────────────────────────────────────────────────

    @property
    def dummy_state_idx(self):
        """무효 명령이 가리키는 자리 (마지막 리프)."""
        return self.parameters.max_leaves - 1

    @property
    def deactivate_commitment(self):
        return deactivate_commitment(self.active_state_tree.root, self.deactivate_tree.root)

    def empty_state(self):
        return StateLeaf(vote_option_tree_depth=self.parameters.vote_option_tree_depth)

    def state_leaf(self, state_idx):
        leaf = self.state_leaves.get(state_idx)
        if leaf is None:
            leaf = self.empty_state()
        return leaf

    def is_deactivated(self, leaf):
        """d1/d2를 복호화해 홀수면 비활성."""
        return decrypt(self.keypair.formatted_priv_key, leaf.d1, leaf.d2) % 2 == 1

    def _require(self, status, action):
        if self.status != status:
            raise ValueError(f"{action}: {status.value} 상태가 아닙니다 (현재 {self.status.value})")

    # ─────────────────────────────────────────────────────────────
    # 투표 기간
    # ─────────────────────────────────────────────────────────────

    def init_state_leaf(self, state_idx, pub_key, balance, d=None):
        """상태 리프를 설정한다. d가 주어지면 재활성화된 리프다."""
        self._require(CoordinatorStatus.FILLING, "init_state_leaf")
        if d is None:
            d = [0, 0, 0, 0]
        leaf = self.state_leaf(state_idx)
        leaf.pub_key = (int(pub_key[0]), int(pub_key[1]))
        leaf.balance = int(balance)
        leaf.d1 = (int(d[0]), int(d[1]))
        leaf.d2 = (int(d[2]), int(d[3]))
        self.state_leaves[state_idx] = leaf
        self.state_tree.update_leaf(state_idx, leaf.hash())
        self.num_sign_ups = max(self.num_sign_ups, state_idx + 1)
        logger.debug("상태 리프 %d 설정, 루트 %s", state_idx, self.state_tree.root)
        return state_idx

    def sign_up(self, pub_key, balance, d=None):
        """다음 인덱스에 상태 리프를 추가한다 (원장의 sign_up/add_new_key와 같은 순서)."""
        return self.init_state_leaf(self.num_sign_ups, pub_key, balance, d)

    def push_message(self, message):
        self._require(CoordinatorStatus.FILLING, "push_message")
        self.msg_chain.append(message)
        self.commands.append(decrypt_message(message, self.keypair, VoteCommand))
        return len(self.msg_chain) - 1

    def push_deactivate_message(self, message):
        self._require(CoordinatorStatus.FILLING, "push_deactivate_message")
        self.dmsg_chain.append(message)
        self.dcommands.append(decrypt_message(message, self.keypair, DeactivateCommand))
        return len(self.dmsg_chain) - 1

    def process_deactivate_messages(self, input_size, sub_state_tree_length):
        """비활성화 메시지 배치 하나를 접는다. deactivate.execute 참조."""
        self._require(CoordinatorStatus.FILLING, "process_deactivate_messages")
        return BatchResult(*deactivate.execute(self, input_size, sub_state_tree_length))

    def fetch_deactivates(self):
        """지금까지 기록된 비활성화 레코드 (투표자가 재활성화에 사용)."""
        return [list(record) for record in self.deactivate_records]

    def end_vote_period(self):
        self._require(CoordinatorStatus.FILLING, "end_vote_period")
        self.status = CoordinatorStatus.PROCESSING
        self.msg_end_idx = len(self.msg_chain)
        self.state_salt = 0
        self.state_commitment = commitment(self.state_tree.root, 0)
        logger.info("투표 종료: 메시지 %d개, 가입 %d명", self.msg_end_idx, self.num_sign_ups)
        if self.msg_end_idx == 0:
            self.end_processing_period()

    # ─────────────────────────────────────────────────────────────
    # 처리 / 집계
    # ─────────────────────────────────────────────────────────────

    def process_messages(self, new_state_salt=0):
        self._require(CoordinatorStatus.PROCESSING, "process_messages")
        return BatchResult(*process.execute(self, new_state_salt))

    def end_processing_period(self):
        self.status = CoordinatorStatus.TALLYING
        self.batch_num = 0
        self.tally_commitment = 0
        self.tally_salt = 0
        logger.info("처리 종료, 집계 시작")

    def process_tally(self, tally_salt=0):
        self._require(CoordinatorStatus.TALLYING, "process_tally")
        return BatchResult(*tally.execute(self, tally_salt))

    def end_tallying_period(self):
        self.status = CoordinatorStatus.ENDED
        logger.info("집계 종료")

    def results(self):
        """옵션별 인코딩 결과 [v·SCALE + v², ...] (max_vote_options 개)."""
        return self.tally_results.leaves()[:self.parameters.max_vote_options]


"""
원장(ledger) 측 라운드: 기간 상태 기계와 커밋먼트 관리
========================================================

  Pending → Voting → Processing → Tallying → Ended      (앞으로만 진행)

  ┌────────────┬──────────────────────────────────────────────────────┐
  │ Voting     │ sign_up, publish_message(_batch),                    │
  │            │ publish_deactivate_message, add_new_key,             │
  │            │ pre_add_new_key, process_deactivate_message          │
  ├────────────┼──────────────────────────────────────────────────────┤
  │ Processing │ process_message (체인 끝에서부터 배치 단위)          │
  ├────────────┼──────────────────────────────────────────────────────┤
  │ Tallying   │ process_tally, stop_tallying_period                  │
  └────────────┴──────────────────────────────────────────────────────┘

라운드는 상태 트리의 루트, 체인 경계 해시, 커밋먼트만 보관한다. 배치의
내용은 증명이 보증하며, 라운드는 공개 입력 해시를 재구성해 외부 검증기에
넘긴다. 모든 검사(기간, 경계, 증명)가 끝난 뒤에만 상태를 바꾸므로
거부된 호출은 아무 흔적도 남기지 않는다.

상태를 바꾸는 연산은 라운드마다 하나의 잠금(RLock) 아래에서 실행된다.
HTTP 서버가 요청을 여러 스레드로 처리해도 같은 배치를 두 번 접거나
널리파이어를 두 번 쓰는 일은 없다.
"""

import functools
import logging
import threading
import time
from enum import Enum

from maci.chain import MessageChain
from maci.config import RoundParameters
from maci.crypto.babyjub import is_valid_point
from maci.crypto.field import SNARK_FIELD_SIZE
from maci.crypto.poseidon import poseidon
from maci.errors import (
    MaciError, PeriodError, InvalidProof, ReplayedNullifier,
    MsgLeftProcess, DmsgLeftProcess, RoundFull,
)
from maci.input_hash import (
    pack_process_vals, pack_tally_vals,
    process_messages_input_hash, tally_input_hash,
    deactivate_input_hash, add_key_input_hash,
)
from maci.state import (
    hash_state_leaf, new_state_tree, new_active_state_tree, new_deactivate_tree,
    new_vote_option_tree, commitment, deactivate_commitment, decode_result,
)

logger = logging.getLogger(__name__)


def serialized(method):
    """라운드의 잠금을 잡고 실행한다. 검사부터 반영까지 한 번에 일어난다."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)
    return wrapper


class PeriodStatus(Enum):
    PENDING = "pending"
    VOTING = "voting"
    PROCESSING = "processing"
    TALLYING = "tallying"
    ENDED = "ended"


class Round:
    """한 투표 라운드의 원장 측 상태.

    Args:
        parameters: RoundParameters
        coordinator_pub_key: 코디네이터 공개키 (x, y)
        voting_time: VotingTime
        verifier: verify(step, proof, input_hash) -> bool 을 가진 객체
        clock: 현재 시각(초)을 돌려주는 함수
        pre_deactivate_root: pre_add_new_key 용 사전 비활성화 트리 루트
        pre_deactivate_coordinator_hash: 사전 비활성화 트리를 만든 코디네이터 해시
    """

    def __init__(self, parameters, coordinator_pub_key, voting_time, verifier,
                 clock=time.time, pre_deactivate_root=None,
                 pre_deactivate_coordinator_hash=None):
        if not isinstance(parameters, RoundParameters):
            raise TypeError("parameters는 RoundParameters여야 합니다")
        self.parameters = parameters.validate()
        if not is_valid_point(coordinator_pub_key):
            raise ValueError(f"코디네이터 공개키가 올바르지 않습니다: {coordinator_pub_key}")
        self.coordinator_pub_key = (int(coordinator_pub_key[0]), int(coordinator_pub_key[1]))
        self.coordinator_hash = poseidon(self.coordinator_pub_key)
        self.voting_time = voting_time
        self.verifier = verifier
        self.clock = clock

        depth = parameters.state_tree_depth
        self.state_tree = new_state_tree(depth)
        self.num_sign_ups = 0

        self.used_enc_keys = set()
        self.msg_chain = MessageChain("msg", self.used_enc_keys)
        self.dmsg_chain = MessageChain("dmsg", self.used_enc_keys,
                                       max_length=parameters.max_deactivate_messages)
        self.nullifiers = set()

        self.processed_msg_count = 0
        self.processed_dmsg_count = 0
        self.processed_user_count = 0

        self.current_state_commitment = 0
        self.current_tally_commitment = 0
        self.current_deactivate_commitment = deactivate_commitment(
            new_active_state_tree(depth).root, new_deactivate_tree(depth).root)
        self.deactivate_root = 0

        self.pre_deactivate_root = pre_deactivate_root
        self.pre_deactivate_coordinator_hash = pre_deactivate_coordinator_hash

        self.results = None
        self.total_result = None
        self._status = PeriodStatus.PENDING
        self.lock = threading.RLock()

    # ─────────────────────────────────────────────────────────────
    # 조회
    # ─────────────────────────────────────────────────────────────

    @property
    def period(self):
        """현재 기간.

        voting_end 이후 start_process_period 전까지는 상태가 그대로 VOTING이지만
        가입과 게시는 거부된다. 이 구간은 voting_open 으로 구분한다.
        """
        if self._status == PeriodStatus.PENDING and self.clock() >= self.voting_time.start_time:
            return PeriodStatus.VOTING
        return self._status

    @property
    def voting_open(self):
        """가입, 게시, 새 키 추가를 지금 받을 수 있는지."""
        return (self._status in (PeriodStatus.PENDING, PeriodStatus.VOTING)
                and self.voting_time.contains(self.clock()))

    @property
    def state_root(self):
        return self.state_tree.root

    @property
    def msg_chain_length(self):
        return len(self.msg_chain)

    @property
    def dmsg_chain_length(self):
        return len(self.dmsg_chain)

    def decoded_results(self):
        if self.results is None:
            return None
        return [decode_result(r) for r in self.results]

    # ─────────────────────────────────────────────────────────────
    # 검사 헬퍼
    # ─────────────────────────────────────────────────────────────

    def _check_voting_time(self):
        if not self.voting_open:
            raise PeriodError(f"투표 기간이 아닙니다 (현재 {self.clock()})")

    def _check_status(self, expected):
        if self.period != expected:
            raise PeriodError(f"{expected.value} 기간이 아닙니다 (현재 {self.period.value})")

    def _check_pub_key(self, pub_key):
        x, y = int(pub_key[0]), int(pub_key[1])
        if not (x < SNARK_FIELD_SIZE and y < SNARK_FIELD_SIZE):
            raise MaciError("공개키 좌표는 필드 크기보다 작아야 합니다")
        if not is_valid_point((x, y)):
            raise MaciError(f"부분군에 속하지 않는 공개키입니다: {(x, y)}")
        return (x, y)

    def _verify(self, step, proof, input_hash):
        if not self.verifier.verify(step, proof, input_hash):
            logger.info("증명 거부: %s (input_hash=%s)", step, input_hash)
            raise InvalidProof(step)

    def _enqueue_state(self, leaf_hash):
        if self.num_sign_ups >= self.parameters.max_leaves:
            raise RoundFull(f"상태 트리가 가득 찼습니다: {self.parameters.max_leaves}")
        state_idx = self.num_sign_ups
        self.state_tree.update_leaf(state_idx, leaf_hash)
        self.num_sign_ups += 1
        return state_idx

    # ─────────────────────────────────────────────────────────────
    # 투표 기간
    # ─────────────────────────────────────────────────────────────

    @serialized
    def sign_up(self, pub_key):
        """새 상태 리프를 추가하고 그 인덱스를 반환한다."""
        self._check_voting_time()
        pub_key = self._check_pub_key(pub_key)
        if self.num_sign_ups >= self.parameters.max_leaves:
            raise RoundFull(f"상태 트리가 가득 찼습니다: {self.parameters.max_leaves}")
        leaf = hash_state_leaf(pub_key, self.parameters.voice_credit_amount, 0, 0)
        state_idx = self._enqueue_state(leaf)
        logger.info("가입: state_idx=%d", state_idx)
        return state_idx

    @serialized
    def publish_message(self, message):
        self._check_voting_time()
        return self.msg_chain.append(message)

    @serialized
    def publish_message_batch(self, messages):
        """여러 메시지를 한 번에 게시한다. 하나라도 실패하면 전부 취소된다."""
        self._check_voting_time()
        if not messages:
            raise MaciError("게시할 메시지가 없습니다")
        return self.msg_chain.append_batch(messages)

    @serialized
    def publish_deactivate_message(self, message):
        self._check_voting_time()
        extra = {"state_root": self.state_root, "num_sign_ups": self.num_sign_ups}
        return self.dmsg_chain.append(message, extra)

    def dmsg_state_root(self, index):
        """비활성화 메시지 index개가 게시된 시점의 상태 루트 (index 0 → 0)."""
        if index == 0:
            return 0
        return self.dmsg_chain.entries[index - 1].extra["state_root"]

    def dmsg_num_sign_ups(self, index):
        if index == 0:
            return 0
        return self.dmsg_chain.entries[index - 1].extra["num_sign_ups"]

    @serialized
    def process_deactivate_message(self, size, new_deactivate_commitment, new_deactivate_root,
                                   proof, batch_start_hash=None, batch_end_hash=None):
        """비활성화 메시지 배치 [processed, processed + size) 를 반영한다."""
        if self._status not in (PeriodStatus.PENDING, PeriodStatus.VOTING):
            raise PeriodError("비활성화 메시지는 투표 기간에만 처리할 수 있습니다")
        if self.processed_dmsg_count >= len(self.dmsg_chain):
            raise MaciError("모든 비활성화 메시지가 이미 처리되었습니다")
        if not 0 < size <= self.parameters.message_batch_size:
            raise MaciError(f"배치 크기가 올바르지 않습니다: {size}")

        start = self.processed_dmsg_count
        end = min(start + size, len(self.dmsg_chain))
        if batch_start_hash is not None or batch_end_hash is not None:
            self.dmsg_chain.check_boundary(start, end, batch_start_hash, batch_end_hash)
        start_hash, end_hash = self.dmsg_chain.boundary(start, end)

        input_hash = deactivate_input_hash(
            new_deactivate_root,
            self.coordinator_hash,
            start_hash,
            end_hash,
            self.current_deactivate_commitment,
            new_deactivate_commitment,
            self.dmsg_state_root(end),
        )
        self._verify("deactivate", proof, input_hash)

        self.deactivate_root = int(new_deactivate_root)
        self.current_deactivate_commitment = int(new_deactivate_commitment)
        self.processed_dmsg_count = end
        logger.info("비활성화 메시지 처리 [%d, %d)", start, end)
        return end - start

    def _add_key(self, pub_key, nullifier, d, proof, deactivate_root, coordinator_hash):
        self._check_voting_time()
        nullifier = int(nullifier)
        if nullifier in self.nullifiers:
            raise ReplayedNullifier(f"이미 사용한 널리파이어입니다: {nullifier}")
        if self.num_sign_ups >= self.parameters.max_leaves:
            raise RoundFull(f"상태 트리가 가득 찼습니다: {self.parameters.max_leaves}")
        pub_key = self._check_pub_key(pub_key)
        d = [int(v) for v in d]

        input_hash = add_key_input_hash(deactivate_root, coordinator_hash, nullifier, d)
        self._verify("add_new_key", proof, input_hash)

        self.nullifiers.add(nullifier)
        leaf = hash_state_leaf(pub_key, self.parameters.voice_credit_amount, 0, 0, d)
        state_idx = self._enqueue_state(leaf)
        logger.info("새 키 추가: state_idx=%d", state_idx)
        return state_idx

    @serialized
    def add_new_key(self, pub_key, nullifier, d, proof):
        """비활성화 기록을 근거로 새 공개키의 상태 리프를 만든다."""
        return self._add_key(pub_key, nullifier, d, proof,
                             self.deactivate_root, self.coordinator_hash)

    @serialized
    def pre_add_new_key(self, pub_key, nullifier, d, proof):
        """라운드 생성 시 주어진 사전 비활성화 트리를 근거로 새 키를 추가한다."""
        if self.pre_deactivate_root is None:
            raise MaciError("사전 비활성화 루트가 설정되지 않았습니다")
        coordinator_hash = self.pre_deactivate_coordinator_hash
        if coordinator_hash is None:
            coordinator_hash = self.coordinator_hash
        return self._add_key(pub_key, nullifier, d, proof,
                             self.pre_deactivate_root, coordinator_hash)

    # ─────────────────────────────────────────────────────────────
    # 처리 기간
    # ─────────────────────────────────────────────────────────────

    @serialized
    def start_process_period(self):
        if self.clock() <= self.voting_time.end_time:
            raise PeriodError("투표 기간이 아직 끝나지 않았습니다")
        if self._status not in (PeriodStatus.PENDING, PeriodStatus.VOTING):
            raise PeriodError(f"처리 기간을 시작할 수 없습니다 (현재 {self._status.value})")
        if self.processed_dmsg_count != len(self.dmsg_chain):
            raise DmsgLeftProcess(
                f"처리되지 않은 비활성화 메시지가 있습니다: "
                f"{len(self.dmsg_chain) - self.processed_dmsg_count}")

        self._status = PeriodStatus.PROCESSING
        self.current_state_commitment = commitment(self.state_root, 0)
        logger.info("처리 기간 시작: 메시지 %d개, 가입 %d명", len(self.msg_chain), self.num_sign_ups)

    def current_message_batch(self):
        """다음에 처리할 투표 메시지 배치 [start, end) (체인 끝에서부터)."""
        remaining = len(self.msg_chain) - self.processed_msg_count
        if remaining <= 0:
            raise MaciError("모든 메시지가 이미 처리되었습니다")
        batch_size = self.parameters.message_batch_size
        start = (remaining - 1) // batch_size * batch_size
        end = min(start + batch_size, len(self.msg_chain))
        return start, end

    @serialized
    def process_message(self, new_state_commitment, proof,
                        batch_start_hash=None, batch_end_hash=None):
        """투표 메시지 배치 하나의 상태 전이를 반영한다.

        batch_start_hash/batch_end_hash를 주면 기록된 경계와 먼저 비교하고,
        다르면 증명과 무관하게 HashChainMismatch로 거부한다.
        """
        self._check_status(PeriodStatus.PROCESSING)
        start, end = self.current_message_batch()
        if batch_start_hash is not None or batch_end_hash is not None:
            self.msg_chain.check_boundary(start, end, batch_start_hash, batch_end_hash)
        start_hash, end_hash = self.msg_chain.boundary(start, end)

        packed_vals = pack_process_vals(self.parameters.max_vote_options, self.num_sign_ups,
                                        self.parameters.is_quadratic)
        input_hash = process_messages_input_hash(
            packed_vals,
            self.coordinator_hash,
            start_hash,
            end_hash,
            self.current_state_commitment,
            new_state_commitment,
            self.current_deactivate_commitment,
        )
        self._verify("process", proof, input_hash)

        self.current_state_commitment = int(new_state_commitment)
        self.processed_msg_count += end - start
        logger.info("메시지 배치 처리 [%d, %d)", start, end)
        return start, end

    @serialized
    def stop_processing_period(self):
        self._check_status(PeriodStatus.PROCESSING)
        # 가입자가 없으면 모든 메시지가 무효이므로 처리 여부를 보지 않는다
        if self.num_sign_ups != 0 and self.processed_msg_count != len(self.msg_chain):
            raise MsgLeftProcess(
                f"처리되지 않은 메시지가 있습니다: {len(self.msg_chain) - self.processed_msg_count}")
        self._status = PeriodStatus.TALLYING
        logger.info("집계 기간 시작")

    # ─────────────────────────────────────────────────────────────
    # 집계 기간
    # ─────────────────────────────────────────────────────────────

    @serialized
    def process_tally(self, new_tally_commitment, proof):
        self._check_status(PeriodStatus.TALLYING)
        if self.processed_user_count >= self.num_sign_ups:
            raise MaciError("모든 사용자가 이미 집계되었습니다")

        batch_size = self.parameters.tally_batch_size
        batch_num = self.processed_user_count // batch_size
        input_hash = tally_input_hash(
            pack_tally_vals(batch_num, self.num_sign_ups),
            self.current_state_commitment,
            self.current_tally_commitment,
            new_tally_commitment,
        )
        self._verify("tally", proof, input_hash)

        self.current_tally_commitment = int(new_tally_commitment)
        self.processed_user_count += batch_size
        logger.info("집계 배치 %d 처리", batch_num)
        return batch_num

    @serialized
    def stop_tallying_period(self, results, salt):
        """최종 결과를 공개한다. 결과와 솔트는 현재 집계 커밋먼트와 맞아야 한다."""
        self._check_status(PeriodStatus.TALLYING)
        if self.processed_user_count < self.num_sign_ups:
            raise MaciError("집계되지 않은 사용자가 남아 있습니다")
        results = [int(r) for r in results]
        if len(results) > self.parameters.max_vote_options:
            raise MaciError(f"결과 수가 최대 옵션 수를 초과합니다: {len(results)}")

        if self.current_tally_commitment != 0:
            tree = new_vote_option_tree(self.parameters.vote_option_tree_depth)
            tree.init_leaves(results)
            if commitment(tree.root, salt) != self.current_tally_commitment:
                raise InvalidProof("StopTallyingPeriod")

        self.results = results
        self.total_result = sum(results)
        self._status = PeriodStatus.ENDED
        logger.info("라운드 종료: 총합 %d", self.total_result)
        return self.results

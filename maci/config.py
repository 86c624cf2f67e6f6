"""
라운드 설정
============

트리 깊이, 배치 크기, 투표 방식 등 한 라운드의 고정 파라미터.
회로(verifying key)가 이 값들에 맞춰 만들어지므로 라운드 생성 후에는
바꾸지 않는다.
"""

import os
from dataclasses import dataclass, asdict
from enum import IntEnum


class CircuitType(IntEnum):
    ONE_PERSON_ONE_VOTE = 0
    QUADRATIC = 1


@dataclass
class RoundParameters:
    state_tree_depth: int = 2
    int_state_tree_depth: int = 1
    vote_option_tree_depth: int = 1
    message_batch_size: int = 5
    max_vote_options: int = 5
    voice_credit_amount: int = 100
    circuit_type: CircuitType = CircuitType.ONE_PERSON_ONE_VOTE

    def __post_init__(self):
        self.circuit_type = CircuitType(self.circuit_type)

    @property
    def is_quadratic(self):
        return self.circuit_type == CircuitType.QUADRATIC

    @property
    def max_leaves(self):
        return 5 ** self.state_tree_depth

    @property
    def tally_batch_size(self):
        return 5 ** self.int_state_tree_depth

    @property
    def max_deactivate_messages(self):
        return 5 ** (self.state_tree_depth + 2) - 1

    def validate(self):
        if self.state_tree_depth < 1:
            raise ValueError(f"state_tree_depth는 1 이상이어야 합니다: {self.state_tree_depth}")
        if not 1 <= self.int_state_tree_depth <= self.state_tree_depth:
            raise ValueError(
                f"int_state_tree_depth는 1..state_tree_depth 범위여야 합니다: {self.int_state_tree_depth}")
        if self.vote_option_tree_depth < 1:
            raise ValueError(f"vote_option_tree_depth는 1 이상이어야 합니다: {self.vote_option_tree_depth}")
        if self.message_batch_size < 1:
            raise ValueError(f"message_batch_size는 1 이상이어야 합니다: {self.message_batch_size}")
        if not 1 <= self.max_vote_options <= 5 ** self.vote_option_tree_depth:
            raise ValueError(
                f"max_vote_options는 1..{5 ** self.vote_option_tree_depth} 범위여야 합니다: "
                f"{self.max_vote_options}")
        if self.voice_credit_amount < 0:
            raise ValueError(f"voice_credit_amount는 음수일 수 없습니다: {self.voice_credit_amount}")
        return self

    def to_dict(self):
        data = asdict(self)
        data["circuit_type"] = int(self.circuit_type)
        return data


@dataclass
class VotingTime:
    """투표 기간 [start_time, end_time] (초 단위 타임스탬프, 양끝 포함)."""
    start_time: int
    end_time: int

    def __post_init__(self):
        if self.end_time < self.start_time:
            raise ValueError(f"투표 종료 시각이 시작 시각보다 이릅니다: {self.end_time} < {self.start_time}")

    def contains(self, now):
        return self.start_time <= now <= self.end_time


@dataclass
class AppConfig:
    """Flask 앱 설정. db_path가 없으면 메모리 DB를 쓴다."""
    db_path: str = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        return cls(
            db_path=os.environ.get("MACI_DB_PATH") or None,
            log_level=os.environ.get("MACI_LOG_LEVEL", "INFO"),
        )

"""
라운드 오류
============

원장 측 연산이 거부될 때 던지는 예외. 모두 ValueError의 하위 클래스다.
거부는 이미 확정된 상태와 호출자 입력만으로 결정되며, 거부된 연산은
어떤 상태도 바꾸지 않는다.
"""


class MaciError(ValueError):
    """라운드 연산 거부의 공통 부모."""


class PeriodError(MaciError):
    """허용되지 않은 기간(period)에 호출된 연산."""


class InvalidEncryptionKey(MaciError):
    """이미 사용했거나 부분군에 속하지 않는 암호화 공개키."""


class InvalidProof(MaciError):
    """검증기가 증명을 거부했다."""

    def __init__(self, step):
        super().__init__(f"증명 검증 실패: {step}")
        self.step = step


class HashChainMismatch(MaciError):
    """배치의 시작/끝 해시가 기록된 체인과 다르다."""


class BalanceExceeded(MaciError):
    """잔액 부족. 배치 안에서는 예외가 아니라 no-op 사유로 쓰인다."""


class ReplayedNullifier(MaciError):
    """이미 소비된 널리파이어로 다시 키를 추가하려 했다."""


class MsgLeftProcess(MaciError):
    """처리되지 않은 투표 메시지가 남아 있다."""


class DmsgLeftProcess(MaciError):
    """처리되지 않은 비활성화 메시지가 남아 있다."""


class MaxDeactivateMessagesReached(MaciError):
    """비활성화 메시지 체인이 가득 찼다."""


class RoundFull(MaciError):
    """상태 트리에 빈 리프가 없다."""

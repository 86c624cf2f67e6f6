"""
메시지 체인 (append-only 해시 체인)
=====================================

  hashes[0]     = 0
  hashes[i + 1] = H₂( H₅(ct[0..5]), H₅(ct[5], ct[6], enc.x, enc.y, hashes[i]) )

배치 [start, end) 의 경계 해시는 (hashes[start], hashes[end]) 이다.
증명은 이 두 값을 공개 입력으로 받으므로 코디네이터는 항목을
재배열하거나 건너뛰거나 중복할 수 없다.

각 항목의 임시 공개키는 라운드 전체에서 한 번만 쓸 수 있다.
"""

import logging

from maci.crypto.babyjub import is_valid_point
from maci.crypto.poseidon import hash2, hash5
from maci.errors import InvalidEncryptionKey, HashChainMismatch, MaxDeactivateMessagesReached

logger = logging.getLogger(__name__)


def hash_message_and_enc_pub_key(message, prev_hash):
    ct = message.ciphertext
    m_hash = hash5(ct[0:5])
    n_hash = hash5([ct[5], ct[6], message.enc_pub_key[0], message.enc_pub_key[1], prev_hash])
    return hash2([m_hash, n_hash])


class ChainEntry:
    """체인 항목: 메시지, 직전 해시, 자기 해시, 부가 데이터."""

    def __init__(self, message, prev_hash, hash, extra=None):
        self.message = message
        self.prev_hash = prev_hash
        self.hash = hash
        self.extra = extra or {}

    def __repr__(self):
        return f"ChainEntry(hash={self.hash})"


class MessageChain:
    """해시로 연결된 메시지 큐.

    Args:
        name: 로그용 이름 ("msg", "dmsg")
        used_keys: 임시 공개키 재사용 방지 집합. 라운드의 두 체인이 공유한다.
        max_length: 최대 항목 수 (None이면 무제한)
    """

    def __init__(self, name, used_keys=None, max_length=None):
        self.name = name
        self.used_keys = used_keys if used_keys is not None else set()
        self.max_length = max_length
        self.entries = []
        self.hashes = [0]

    def __len__(self):
        return len(self.entries)

    @property
    def last_hash(self):
        return self.hashes[-1]

    def _check_key(self, enc_pub_key, pending=()):
        if not is_valid_point(enc_pub_key):
            raise InvalidEncryptionKey(f"부분군에 속하지 않는 암호화 키입니다: {enc_pub_key}")
        if enc_pub_key in self.used_keys or enc_pub_key in pending:
            raise InvalidEncryptionKey(f"이미 사용한 암호화 키입니다: {enc_pub_key}")

    def append(self, message, extra=None):
        """메시지 하나를 검증하고 체인에 붙인다. 새 항목 인덱스를 반환한다."""
        return self.append_batch([message], [extra])[0]

    def append_batch(self, messages, extras=None):
        """여러 메시지를 한 번에 붙인다.

        모든 메시지를 검증하고 해시를 계산한 뒤에야 체인을 바꾸므로,
        중간에 실패하면 아무것도 추가되지 않는다.
        """
        if extras is None:
            extras = [None] * len(messages)
        if self.max_length is not None and len(self.entries) + len(messages) > self.max_length:
            raise MaxDeactivateMessagesReached(
                f"{self.name} 체인 최대 길이를 초과합니다: {self.max_length}")

        pending_keys = set()
        pending = []
        prev_hash = self.last_hash
        for message, extra in zip(messages, extras):
            self._check_key(message.enc_pub_key, pending_keys)
            pending_keys.add(message.enc_pub_key)
            h = hash_message_and_enc_pub_key(message, prev_hash)
            pending.append(ChainEntry(message, prev_hash, h, extra))
            prev_hash = h

        first_idx = len(self.entries)
        for entry in pending:
            self.entries.append(entry)
            self.hashes.append(entry.hash)
        self.used_keys.update(pending_keys)
        logger.debug("%s 체인에 %d개 추가 (길이 %d)", self.name, len(pending), len(self.entries))
        return list(range(first_idx, first_idx + len(pending)))

    def messages(self, start=0, end=None):
        return [entry.message for entry in self.entries[start:end]]

    def boundary(self, start, end):
        """배치 [start, end) 의 (시작 해시, 끝 해시)."""
        if not 0 <= start <= end <= len(self.entries):
            raise ValueError(f"배치 범위가 올바르지 않습니다: [{start}, {end}) / {len(self.entries)}")
        return self.hashes[start], self.hashes[end]

    def check_boundary(self, start, end, start_hash, end_hash):
        """주장된 경계가 기록된 체인과 같은지 확인한다. 두 해시 모두 필요하다."""
        if start_hash is None or end_hash is None:
            raise ValueError("batch_start_hash와 batch_end_hash는 함께 주어야 합니다")
        expected_start, expected_end = self.boundary(start, end)
        if int(start_hash) != expected_start or int(end_hash) != expected_end:
            raise HashChainMismatch(
                f"{self.name} 체인 경계가 일치하지 않습니다: [{start}, {end})")

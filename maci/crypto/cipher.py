"""
Poseidon 듀플렉스(duplex) 대칭 암호
====================================

ECDH 공유키로 명령 평문을 코디네이터에게 암호화한다.

  state = [0, k₀, k₁, nonce + length · 2¹²⁸]      (폭 4, 레이트 3)

  평문을 3개씩 끊어 (부족하면 0으로 채움):
    state ← perm(state); state[1..3] += chunk; 암호문 += state[1..3]
  마지막으로:
    state ← perm(state); 암호문 += state[1]     (인증 태그)

평문 6개 → 암호문 7개. 복호화는 같은 흐름을 되짚고 패딩 0과
태그를 확인하며, 어긋나면 ValueError를 던진다.
"""

from maci.crypto.field import SNARK_FIELD_SIZE, to_field
from maci.crypto.poseidon import poseidon_perm


TWO_128 = 1 << 128

_RATE = 3


def _initial_state(key, nonce, length):
    nonce = int(nonce)
    if not 0 <= nonce < TWO_128:
        raise ValueError(f"nonce는 2^128 미만이어야 합니다: {nonce}")
    return [0, to_field(key[0]), to_field(key[1]), (nonce + length * TWO_128) % SNARK_FIELD_SIZE]


def poseidon_encrypt(msg, key, nonce=0):
    """평문 리스트를 암호화한다.

    Args:
        msg: 필드 원소 리스트
        key: ECDH 공유키 점 (x, y)
        nonce: 2^128 미만 정수

    Returns:
        list[int]: 길이 ceil(len/3)·3 + 1 의 암호문
    """
    p = SNARK_FIELD_SIZE
    message = [to_field(m) for m in msg]
    length = len(message)
    while len(message) % _RATE:
        message.append(0)

    state = _initial_state(key, nonce, length)
    ciphertext = []
    for i in range(0, len(message), _RATE):
        state = poseidon_perm(state)
        for j in range(_RATE):
            state[j + 1] = (state[j + 1] + message[i + j]) % p
        ciphertext.extend(state[1:1 + _RATE])

    state = poseidon_perm(state)
    ciphertext.append(state[1])
    return ciphertext


def poseidon_decrypt(ciphertext, key, nonce, length):
    """poseidon_encrypt의 역연산.

    Raises:
        ValueError: 암호문 길이가 맞지 않거나, 패딩이 0이 아니거나,
            인증 태그가 일치하지 않을 때
    """
    p = SNARK_FIELD_SIZE
    ciphertext = [to_field(c) for c in ciphertext]
    padded = length + (-length) % _RATE
    if len(ciphertext) != padded + 1:
        raise ValueError(f"암호문 길이가 올바르지 않습니다: {len(ciphertext)} != {padded + 1}")

    state = _initial_state(key, nonce, length)
    message = []
    for i in range(0, padded, _RATE):
        state = poseidon_perm(state)
        for j in range(_RATE):
            message.append((ciphertext[i + j] - state[j + 1]) % p)
            state[j + 1] = ciphertext[i + j]

    if any(m != 0 for m in message[length:]):
        raise ValueError("패딩이 0이 아닙니다")

    state = poseidon_perm(state)
    if ciphertext[-1] != state[1]:
        raise ValueError("인증 태그가 일치하지 않습니다")
    return message[:length]

"""
EdDSA-Poseidon 서명
====================

  h  = blake2b-512(priv)  (pruning 적용, keys 모듈과 동일)
  s  = 형식화된 개인키,  A = Base8 · s

  서명:
    r  = LE(blake2b-512(h[32:64] ‖ msg₃₂)) mod l     ← 결정론적 논스
    R8 = Base8 · r
    hm = Poseidon(R8.x, R8.y, A.x, A.y, msg)
    S  = r + hm · 8 · s  (mod l)

  검증:
    S < l,  Base8 · S == R8 + A · (8 · hm)

외부 난수를 쓰지 않으므로 (키, 메시지) → 서명은 항상 같다.
"""

import hashlib

from maci.crypto.field import to_field
from maci.crypto.babyjub import (
    BASE8, SUB_ORDER,
    add_point, mul_point_escalar, in_subgroup,
)
from maci.crypto.keys import expand_priv_key, format_priv_key_for_babyjub
from maci.crypto.poseidon import poseidon


class Signature:
    """EdDSA 서명 (R8, S)."""

    def __init__(self, R8, S):
        self.R8 = (int(R8[0]), int(R8[1]))
        self.S = int(S)

    def __eq__(self, other):
        return isinstance(other, Signature) and self.R8 == other.R8 and self.S == other.S

    def __repr__(self):
        return f"Signature(R8={self.R8}, S={self.S})"


def sign_message(priv_key, msg):
    h = expand_priv_key(priv_key)
    s = format_priv_key_for_babyjub(priv_key)
    A = mul_point_escalar(BASE8, s)

    msg = to_field(msg)
    nonce_input = bytes(h[32:64]) + msg.to_bytes(32, "little")
    r = int.from_bytes(hashlib.blake2b(nonce_input, digest_size=64).digest(), "little") % SUB_ORDER

    R8 = mul_point_escalar(BASE8, r)
    hm = poseidon([R8[0], R8[1], A[0], A[1], msg])
    S = (r + hm * 8 * s) % SUB_ORDER
    return Signature(R8, S)


def verify_signature(msg, signature, pub_key):
    """서명 검증. 형식이 잘못된 서명/공개키는 예외 없이 False."""
    if signature is None or pub_key is None:
        return False
    try:
        A = (int(pub_key[0]), int(pub_key[1]))
    except (TypeError, ValueError, IndexError):
        return False
    if signature.S >= SUB_ORDER:
        return False
    if not in_subgroup(A) or not in_subgroup(signature.R8):
        return False

    hm = poseidon([signature.R8[0], signature.R8[1], A[0], A[1], to_field(msg)])
    left = mul_point_escalar(BASE8, signature.S)
    right = add_point(signature.R8, mul_point_escalar(A, 8 * hm))
    return left == right

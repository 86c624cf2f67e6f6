"""
키 유도, 공개키, ECDH
======================

**개인키 형식화** (EdDSA 키 확장):
  h = blake2b-512(priv를 32바이트 리틀엔디안으로)
  h[0] &= 0xF8; h[31] &= 0x7F; h[31] |= 0x40      (pruning)
  s = LE(h[0:32]) >> 3  (mod l)

  pub = Base8 · s

같은 개인키는 항상 같은 스칼라를 낳고, 스칼라는 부분군 위수 l로 축소되므로
서로 다른 스칼라가 하나의 공개키에 대응하지 않는다.

**ECDH**:
  shared(a, B) = B · s_a   →   shared(a.priv, b.pub) == shared(b.priv, a.pub)
"""

import hashlib
import secrets

from maci.crypto.field import SNARK_FIELD_SIZE, to_field
from maci.crypto.babyjub import (
    BASE8, SUB_ORDER,
    mul_point_escalar, pack_point, unpack_point,
)


def gen_random_salt():
    """[0, p) 범위의 난수."""
    return secrets.randbelow(SNARK_FIELD_SIZE)


def gen_priv_key():
    return gen_random_salt()


def expand_priv_key(priv_key):
    """blake2b-512 확장 후 pruning. 64바이트 bytearray."""
    raw = to_field(priv_key).to_bytes(32, "little")
    h = bytearray(hashlib.blake2b(raw, digest_size=64).digest())
    h[0] &= 0xF8
    h[31] &= 0x7F
    h[31] |= 0x40
    return h


def format_priv_key_for_babyjub(priv_key):
    """개인키 → Baby Jubjub 스칼라 (부분군 위수로 축소)."""
    h = expand_priv_key(priv_key)
    return (int.from_bytes(bytes(h[:32]), "little") >> 3) % SUB_ORDER


def gen_pub_key(priv_key):
    return mul_point_escalar(BASE8, format_priv_key_for_babyjub(priv_key))


def gen_ecdh_shared_key(priv_key, pub_key):
    """ECDH 공유키 점: pub_key · s."""
    return mul_point_escalar(tuple(pub_key), format_priv_key_for_babyjub(priv_key))


def pack_pub_key(pub_key):
    return pack_point(pub_key)


def unpack_pub_key(packed):
    return unpack_point(packed)


class Keypair:
    """개인키/공개키 쌍.

    속성:
        priv_key: [0, p) 범위의 원시 개인키
        pub_key: (x, y) 공개키
        formatted_priv_key: Baby Jubjub 스칼라 (ECDH, 복호화, 널리파이어에 사용)
    """

    def __init__(self, priv_key=None):
        if priv_key is None:
            priv_key = gen_priv_key()
        self.priv_key = to_field(priv_key)
        self.formatted_priv_key = format_priv_key_for_babyjub(self.priv_key)
        self.pub_key = mul_point_escalar(BASE8, self.formatted_priv_key)

    def gen_ecdh_shared_key(self, pub_key):
        return mul_point_escalar(tuple(pub_key), self.formatted_priv_key)

    def __eq__(self, other):
        return isinstance(other, Keypair) and self.priv_key == other.priv_key

    def __hash__(self):
        return hash(self.pub_key)

    def __repr__(self):
        return f"Keypair(pub_key={self.pub_key})"


def gen_keypair(priv_key=None):
    return Keypair(priv_key)

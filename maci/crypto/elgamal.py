"""
재무작위화 가능한(rerandomizable) ElGamal 암호화
=================================================

비공개 비활성화(deactivation) 플래그의 기반.

  암호화:   c1 = Base8 · r,        c2 = M + pub · r
  복호화:   M  = c2 - s · c1       → 값은 M.x
  재무작위: d1 = Base8 · r' + c1,  d2 = pub · r' + c2

**홀짝(odevity) 인코딩**:
  메시지 점 M을 genKeypair(r + i).pub_key 로 잡고, M.x의 홀짝이 원하는
  값이 될 때까지 i를 증가시킨다. 복호화한 x가 짝수면 활성(active),
  홀수면 비활성(inactive).

가입 시점의 d1 = d2 = (0, 0)은 일반 덧셈 공식에서 흡수원처럼 동작하여
x = 0 (짝수, 활성)으로 복호화된다.
"""

import secrets

from maci.crypto.babyjub import (
    BASE8, SUB_ORDER,
    add_point, neg_point, mul_point_escalar,
)
from maci.crypto.field import to_field
from maci.crypto.keys import gen_pub_key


def gen_random_babyjub_value():
    """부분군 위수 미만의 0이 아닌 난수 스칼라."""
    return secrets.randbelow(SUB_ORDER - 1) + 1


class ElGamalCiphertext:
    """(c1, c2) 점 쌍. x_increment는 일반 메시지 인코딩에서만 쓰인다."""

    def __init__(self, c1, c2, x_increment=0):
        self.c1 = (int(c1[0]), int(c1[1]))
        self.c2 = (int(c2[0]), int(c2[1]))
        self.x_increment = int(x_increment)

    def as_list(self):
        """[c1.x, c1.y, c2.x, c2.y]"""
        return [self.c1[0], self.c1[1], self.c2[0], self.c2[1]]

    def __eq__(self, other):
        return (isinstance(other, ElGamalCiphertext)
                and self.c1 == other.c1 and self.c2 == other.c2)

    def __repr__(self):
        return f"ElGamalCiphertext(c1={self.c1}, c2={self.c2})"


def _encrypt_point(point, pub_key, random_val):
    c1 = mul_point_escalar(BASE8, random_val)
    c2 = add_point(point, mul_point_escalar(tuple(pub_key), random_val))
    return c1, c2


def encrypt(plaintext, pub_key, random_val=None):
    """임의 필드 원소 암호화. M.x - x_increment == plaintext."""
    if random_val is None:
        random_val = gen_random_babyjub_value()
    point = gen_pub_key(gen_random_babyjub_value())
    x_increment = to_field(point[0] - to_field(plaintext))
    c1, c2 = _encrypt_point(point, pub_key, random_val)
    return ElGamalCiphertext(c1, c2, x_increment)


def encrypt_odevity(is_odd, pub_key, random_val=None):
    """홀짝 플래그 암호화.

    Args:
        is_odd: True면 비활성(홀수), False면 활성(짝수)
        pub_key: 코디네이터 공개키
        random_val: 암호화 난수. 메시지 점 탐색의 시작값으로도 쓰인다.
    """
    if random_val is None:
        random_val = gen_random_babyjub_value()
    random_val = int(random_val)
    i = 0
    point = gen_pub_key(random_val + i)
    while (point[0] % 2 == 1) != bool(is_odd):
        i += 1
        point = gen_pub_key(random_val + i)
    c1, c2 = _encrypt_point(point, pub_key, random_val)
    return ElGamalCiphertext(c1, c2)


def decrypt(formatted_priv_key, c1, c2, x_increment=0):
    """(c2 - s · c1).x - x_increment."""
    shared = mul_point_escalar(tuple(c1), formatted_priv_key)
    point = add_point(tuple(c2), neg_point(shared))
    return to_field(point[0] - x_increment)


def rerandomize(pub_key, c1, c2, random_val=None):
    """같은 평문을 담은 새 암호문 (d1, d2)."""
    if random_val is None:
        random_val = gen_random_babyjub_value()
    d1 = add_point(mul_point_escalar(BASE8, random_val), tuple(c1))
    d2 = add_point(mul_point_escalar(tuple(pub_key), random_val), tuple(c2))
    return ElGamalCiphertext(d1, d2)

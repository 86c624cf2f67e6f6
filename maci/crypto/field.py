"""
기반 모듈: 프로토콜 유한체(Finite Field)
==========================================

프로토콜에서 저장되거나 해싱되는 모든 값은 bn128 스칼라 필드의 원소다.
이 필드는 Baby Jubjub 곡선의 기저체(base field)이기도 하다.

  - 위수 p ≈ 2^254, 소수체
  - p - 1 = 2^28 × m (m은 홀수) → Tonelli-Shanks 제곱근에서 사용

성능이 중요한 경로(Poseidon 라운드, 곡선 연산)는 FR 객체 대신
평범한 int에 `% SNARK_FIELD_SIZE`를 적용해 계산한다.
FR은 외부 경계(직렬화, 테스트)에서 타입이 있는 값으로 사용한다.

사용 예시:
    >>> from maci.crypto.field import FR, SNARK_FIELD_SIZE
    >>> FR(3) * FR(7)    # FR(21)
    >>> to_field(-1) == SNARK_FIELD_SIZE - 1
"""

from py_ecc.fields import bn128_FQ as FQ
from py_ecc import bn128


# ─────────────────────────────────────────────────────────────────────
# 유한체(Finite Field) FR
# ─────────────────────────────────────────────────────────────────────

class FR(FQ):
    """bn128 스칼라 필드 위의 유한체 원소.

    py_ecc의 FQ 클래스를 상속하여 +, -, *, /, ** 연산을 제공한다.

    속성:
        field_modulus: bn128 곡선 위수 (소수 p)
    """
    field_modulus = bn128.curve_order


# 필드 크기 (SNARK scalar field)
SNARK_FIELD_SIZE = bn128.curve_order

# 필드 원소의 비트 길이 (Poseidon 상수 생성에 사용)
FIELD_BITS = SNARK_FIELD_SIZE.bit_length()


def to_field(value):
    """정수, FR, bool을 [0, p) 범위의 int로 정규화한다."""
    if isinstance(value, FQ):
        return int(value.n)
    return int(value) % SNARK_FIELD_SIZE


def field_inv(value):
    """모듈러 역원. 0의 역원은 정의되지 않는다."""
    value = value % SNARK_FIELD_SIZE
    if value == 0:
        raise ValueError("0의 역원은 존재하지 않습니다")
    return pow(value, -1, SNARK_FIELD_SIZE)


def is_quadratic_residue(value):
    """오일러 판정법: value^((p-1)/2) == 1."""
    value = value % SNARK_FIELD_SIZE
    if value == 0:
        return True
    return pow(value, (SNARK_FIELD_SIZE - 1) // 2, SNARK_FIELD_SIZE) == 1


def field_sqrt(value):
    """Tonelli-Shanks 제곱근.

    p - 1 = 2^28 · m 이므로 p ≡ 1 (mod 4)이고 단순 거듭제곱 공식이
    통하지 않는다. 비이차잉여 5를 생성자로 사용한다.

    Returns:
        int 또는 None: 제곱근 (두 근 중 하나), 비이차잉여면 None
    """
    p = SNARK_FIELD_SIZE
    n = value % p
    if n == 0:
        return 0
    if not is_quadratic_residue(n):
        return None

    # p - 1 = q · 2^s
    q, s = p - 1, 0
    while q % 2 == 0:
        q //= 2
        s += 1

    z = 5
    m = s
    c = pow(z, q, p)
    t = pow(n, q, p)
    r = pow(n, (q + 1) // 2, p)

    while t != 1:
        # t^(2^i) == 1 이 되는 가장 작은 i
        i, t2 = 0, t
        while t2 != 1:
            t2 = t2 * t2 % p
            i += 1
        b = pow(c, 1 << (m - i - 1), p)
        m = i
        c = b * b % p
        t = t * c % p
        r = r * b % p
    return r

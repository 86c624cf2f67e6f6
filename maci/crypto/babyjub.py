"""
Baby Jubjub 뒤틀린 에드워즈(twisted Edwards) 곡선 연산
========================================================

    a·x² + y² = 1 + d·x²·y²      (a = 168700, d = 168696)

bn128 스칼라 필드 위에 정의된 곡선으로, 회로 안에서 효율적으로
검증할 수 있어 키, 서명, ElGamal 암호화의 기반이 된다.

**부분군(subgroup)**:
  곡선 위수 = 8 · l (l은 소수). 프로토콜의 모든 공개키와 암호문 점은
  위수 l인 부분군에 속해야 한다. Base8 = 8 · G 가 부분군 생성자다.

**압축(pack)**:
  점 (x, y)를 y | sign(x) << 255 하나의 256비트 값으로 인코딩한다.
  sign(x)는 x > (p-1)/2 여부. 복원(unpack)은 곡선 방정식에서 x를 풀고
  곡선/부분군 소속을 검증하며, 실패하면 ValueError로 닫힌다(fail closed).

사용 예시:
    >>> P = mul_point_escalar(BASE8, 5)
    >>> unpack_point(pack_point(P)) == P   # True
"""

from maci.crypto.field import SNARK_FIELD_SIZE, field_inv, field_sqrt


# ─────────────────────────────────────────────────────────────────────
# 곡선 상수
# ─────────────────────────────────────────────────────────────────────

P = SNARK_FIELD_SIZE

A = 168700
D = 168696

# 부분군 위수 l, 곡선 위수 = 8 · l
SUB_ORDER = 2736030358979909402780800718157159386076813972158567259200215660948447373041
ORDER = SUB_ORDER * 8

# 항등원
IDENTITY = (0, 1)

GENERATOR = (
    995203441582195749578291179787384436505546430278305826713579947235728471134,
    5472060717959818805561601436314318772137091100104008585924551046643952123905,
)

# 부분군 생성자 Base8 = 8 · GENERATOR
BASE8 = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)

_HALF_P = (P - 1) // 2


# ─────────────────────────────────────────────────────────────────────
# 점 연산
# ─────────────────────────────────────────────────────────────────────

def add_point(p1, p2):
    """에드워즈 덧셈 공식: p1 + p2 (완전 공식이므로 예외 케이스 없음)."""
    x1, y1 = p1
    x2, y2 = p2
    x1x2 = x1 * x2 % P
    y1y2 = y1 * y2 % P
    dxy = D * x1x2 * y1y2 % P
    x3 = (x1 * y2 + y1 * x2) * field_inv(1 + dxy) % P
    y3 = (y1y2 - A * x1x2) * field_inv(1 - dxy) % P
    return (x3, y3)


def neg_point(point):
    """-(x, y) = (-x, y)."""
    x, y = point
    return ((-x) % P, y)


def mul_point_escalar(point, scalar):
    """double-and-add 스칼라 곱셈: scalar · point.

    Args:
        point: (x, y) 튜플
        scalar: 음이 아닌 정수 (부분군 위수로 축소하지 않는다)

    Returns:
        scalar · point
    """
    scalar = int(scalar)
    if scalar < 0:
        raise ValueError(f"스칼라는 음수일 수 없습니다: {scalar}")
    result = IDENTITY
    addend = (point[0] % P, point[1] % P)
    while scalar:
        if scalar & 1:
            result = add_point(result, addend)
        addend = add_point(addend, addend)
        scalar >>= 1
    return result


def in_curve(point):
    """점이 곡선 방정식을 만족하는지 확인한다."""
    x, y = point
    if not (0 <= x < P and 0 <= y < P):
        return False
    x2 = x * x % P
    y2 = y * y % P
    return (A * x2 + y2) % P == (1 + D * x2 * y2) % P


def in_subgroup(point):
    """l · point == 항등원 이면 위수 l 부분군에 속한다."""
    if not in_curve(point):
        return False
    return mul_point_escalar(point, SUB_ORDER) == IDENTITY


def is_valid_point(point):
    """곡선 위 + 부분군 + 항등원이 아닌 점. 공개키/암호화 키 검증용."""
    try:
        x, y = int(point[0]), int(point[1])
    except (TypeError, ValueError, IndexError):
        return False
    if (x, y) == IDENTITY:
        return False
    return in_subgroup((x, y))


# ─────────────────────────────────────────────────────────────────────
# 압축 / 복원
# ─────────────────────────────────────────────────────────────────────

def pack_point(point):
    """(x, y) → y | sign(x) << 255."""
    x, y = point
    packed = y
    if x > _HALF_P:
        packed |= 1 << 255
    return packed


def unpack_point(packed):
    """pack_point의 역연산. 잘못된 입력은 ValueError.

    Raises:
        ValueError: y가 필드 범위를 벗어나거나, x가 존재하지 않거나,
            복원된 점이 부분군에 속하지 않을 때
    """
    packed = int(packed)
    if packed < 0 or packed >> 256:
        raise ValueError(f"압축 값은 256비트여야 합니다: {packed}")
    sign = packed >> 255
    y = packed & ((1 << 255) - 1)
    if y >= P:
        raise ValueError(f"y 좌표가 필드 범위를 벗어났습니다: {y}")

    y2 = y * y % P
    denominator = (A - D * y2) % P
    if denominator == 0:
        raise ValueError("x를 복원할 수 없습니다 (분모 0)")
    x2 = (1 - y2) * field_inv(denominator) % P
    x = field_sqrt(x2)
    if x is None:
        raise ValueError("곡선 위의 점이 아닙니다 (x² 비이차잉여)")

    if sign:
        if x == 0:
            raise ValueError("x = 0 인 점에 부호 비트가 설정되었습니다")
        if x <= _HALF_P:
            x = P - x
    elif x > _HALF_P:
        x = P - x

    point = (x, y)
    if not in_subgroup(point):
        raise ValueError("부분군에 속하지 않는 점입니다")
    return point

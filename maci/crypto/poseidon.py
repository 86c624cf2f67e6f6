"""
Poseidon 해시 (bn128 스칼라 필드)
===================================

SNARK 친화적 치환(permutation) 기반 해시. 트리 압축 함수, 메시지 체인,
상태 리프, 서명, 대칭 암호 모두 이 해시를 공유한다.

**구조** (폭 t = 입력 수 + 1):
  state = [0, x₁, ..., x_k]

  ┌──────────────────────────────────────────────┐
  │  R_F/2 = 4 풀 라운드     : ARK → x⁵(전체) → MDS │
  │  R_P    부분 라운드      : ARK → x⁵(state[0]) → MDS │
  │  R_F/2 = 4 풀 라운드     : ARK → x⁵(전체) → MDS │
  └──────────────────────────────────────────────┘

  해시 출력 = state[0]

**상수 생성**:
  라운드 상수와 Cauchy MDS 행렬은 Grain LFSR (80비트 상태)로부터
  결정론적으로 유도한다. 초기 비트열은
  (필드=1, S-box=0, n=254, t, R_F, R_P, 1×30) 이다.

**컨텍스트 캐싱**:
  상수 테이블 생성은 비싸다. 폭마다 불변 PoseidonContext를 한 번만 만들고
  잠금(lock) 아래에서 지연 초기화하여 모든 호출 지점이 공유한다.

사용 예시:
    >>> h = poseidon([1, 2])
    >>> hash5([1, 2, 3, 4, 5])
    >>> state = poseidon_perm([0, 1, 2, 3])   # 전체 상태 반환
"""

import threading

from maci.crypto.field import SNARK_FIELD_SIZE, FIELD_BITS, to_field


# ─────────────────────────────────────────────────────────────────────
# 파라미터
# ─────────────────────────────────────────────────────────────────────

N_ROUNDS_F = 8

# t = 2..17 에 대한 부분 라운드 수
N_ROUNDS_P = [56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68]

MIN_WIDTH = 2
MAX_WIDTH = MIN_WIDTH + len(N_ROUNDS_P) - 1


# ─────────────────────────────────────────────────────────────────────
# Grain LFSR
# ─────────────────────────────────────────────────────────────────────

class GrainLFSR:
    """Poseidon 상수 생성용 Grain LFSR.

    비트열 b[0..79]를 정수 하나에 담는다 (b[i] = 비트 i).
    갱신 시 b[0]이 빠지고 새 비트가 b[79]로 들어간다.
    """

    def __init__(self, width, rounds_f, rounds_p):
        bits = []
        bits += _int_bits(1, 2)            # 필드: 소수체
        bits += _int_bits(0, 4)            # S-box: x^alpha
        bits += _int_bits(FIELD_BITS, 12)
        bits += _int_bits(width, 12)
        bits += _int_bits(rounds_f, 10)
        bits += _int_bits(rounds_p, 10)
        bits += [1] * 30

        self.state = 0
        for i, b in enumerate(bits):
            self.state |= b << i

        for _ in range(160):
            self._update()

    def _update(self):
        s = self.state
        new_bit = ((s >> 62) ^ (s >> 51) ^ (s >> 38) ^ (s >> 23) ^ (s >> 13) ^ s) & 1
        self.state = (s >> 1) | (new_bit << 79)
        return new_bit

    def next_bit(self):
        """자기 축소(self-shrinking) 출력: 첫 비트가 1일 때만 다음 비트를 낸다."""
        while True:
            first = self._update()
            second = self._update()
            if first == 1:
                return second

    def next_int(self, n_bits):
        value = 0
        for _ in range(n_bits):
            value = (value << 1) | self.next_bit()
        return value

    def next_field_element(self):
        """p 미만이 나올 때까지 n비트 값을 뽑는다 (거부 샘플링)."""
        while True:
            value = self.next_int(FIELD_BITS)
            if value < SNARK_FIELD_SIZE:
                return value


def _int_bits(value, n_bits):
    """빅엔디안 비트 리스트."""
    return [(value >> (n_bits - 1 - i)) & 1 for i in range(n_bits)]


# ─────────────────────────────────────────────────────────────────────
# 컨텍스트
# ─────────────────────────────────────────────────────────────────────

class PoseidonContext:
    """폭 t 하나에 대한 불변 상수 묶음.

    속성:
        width: 상태 폭 t
        rounds_f: 풀 라운드 수 R_F
        rounds_p: 부분 라운드 수 R_P
        round_constants: 길이 (R_F + R_P) · t 의 튜플
        mds: t × t Cauchy 행렬 (튜플의 튜플)
    """

    __slots__ = ("width", "rounds_f", "rounds_p", "round_constants", "mds")

    def __init__(self, width):
        if not MIN_WIDTH <= width <= MAX_WIDTH:
            raise ValueError(f"Poseidon 폭은 {MIN_WIDTH}..{MAX_WIDTH} 이어야 합니다: {width}")
        rounds_f = N_ROUNDS_F
        rounds_p = N_ROUNDS_P[width - MIN_WIDTH]
        grain = GrainLFSR(width, rounds_f, rounds_p)

        constants = tuple(
            grain.next_field_element() for _ in range((rounds_f + rounds_p) * width)
        )

        # Cauchy MDS: M[i][j] = 1 / (x_i + y_j), 2t개의 서로 다른 값
        while True:
            values = [grain.next_int(FIELD_BITS) % SNARK_FIELD_SIZE for _ in range(2 * width)]
            if len(set(values)) != len(values):
                continue
            xs, ys = values[:width], values[width:]
            if any((x + y) % SNARK_FIELD_SIZE == 0 for x in xs for y in ys):
                continue
            break
        mds = tuple(
            tuple(pow(x + y, -1, SNARK_FIELD_SIZE) for y in ys) for x in xs
        )

        object.__setattr__(self, "width", width)
        object.__setattr__(self, "rounds_f", rounds_f)
        object.__setattr__(self, "rounds_p", rounds_p)
        object.__setattr__(self, "round_constants", constants)
        object.__setattr__(self, "mds", mds)

    def __setattr__(self, name, value):
        raise AttributeError("PoseidonContext는 불변입니다")

    def permute(self, state):
        """치환 함수. 입력 리스트는 수정하지 않고 새 리스트를 반환한다."""
        p = SNARK_FIELD_SIZE
        t = self.width
        if len(state) != t:
            raise ValueError(f"상태 길이는 {t}이어야 합니다: {len(state)}")
        state = [s % p for s in state]
        constants = self.round_constants
        mds = self.mds
        half_f = self.rounds_f // 2
        total = self.rounds_f + self.rounds_p

        for r in range(total):
            offset = r * t
            state = [(state[i] + constants[offset + i]) % p for i in range(t)]
            if r < half_f or r >= half_f + self.rounds_p:
                state = [pow(s, 5, p) for s in state]
            else:
                state[0] = pow(state[0], 5, p)
            state = [sum(m * s for m, s in zip(row, state)) % p for row in mds]
        return state


_CONTEXTS = {}
_CONTEXTS_LOCK = threading.Lock()


def get_context(width):
    """폭 t의 PoseidonContext (스레드 안전 지연 초기화)."""
    ctx = _CONTEXTS.get(width)
    if ctx is not None:
        return ctx
    with _CONTEXTS_LOCK:
        ctx = _CONTEXTS.get(width)
        if ctx is None:
            ctx = PoseidonContext(width)
            _CONTEXTS[width] = ctx
    return ctx


# ─────────────────────────────────────────────────────────────────────
# 해시 함수
# ─────────────────────────────────────────────────────────────────────

def poseidon(inputs):
    """Poseidon 해시: 1..16개 필드 원소 → 필드 원소 하나."""
    inputs = [to_field(x) for x in inputs]
    if not inputs:
        raise ValueError("Poseidon 입력이 비어 있습니다")
    ctx = get_context(len(inputs) + 1)
    return ctx.permute([0] + inputs)[0]


def poseidon_perm(state):
    """전체 상태를 반환하는 치환. 대칭 암호(duplex)에서 사용한다."""
    state = [to_field(x) for x in state]
    return get_context(len(state)).permute(state)


def hash2(inputs):
    if len(inputs) != 2:
        raise ValueError(f"hash2 입력은 2개여야 합니다: {len(inputs)}")
    return poseidon(inputs)


def hash5(inputs):
    if len(inputs) != 5:
        raise ValueError(f"hash5 입력은 5개여야 합니다: {len(inputs)}")
    return poseidon(inputs)


def hash_left_right(left, right):
    return poseidon([left, right])

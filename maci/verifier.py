"""
Groth16 증명 검증기 (외부 회로용 어댑터)
=========================================

회로 자체는 이 저장소의 범위 밖이다. 라운드는 단계(step)별 검증키로
공개 입력 해시 하나에 대한 Groth16 증명을 검증하기만 한다.

  e(A, B) == e(α, β) · e(IC₀ + Σ xᵢ·ICᵢ, γ) · e(C, δ)

검증기 인터페이스:  verifier.verify(step, proof, input_hash) -> bool
  step ∈ {"process", "tally", "deactivate", "add_new_key"}
"""

from py_ecc import bn128

from maci.crypto.field import SNARK_FIELD_SIZE

mult = bn128.multiply
pairing = bn128.pairing
add = bn128.add

STEPS = ("process", "tally", "deactivate", "add_new_key")


class VerifyingKey:
    def __init__(self, alpha1, beta2, gamma2, delta2, ic):
        self.alpha1 = alpha1
        self.beta2 = beta2
        self.gamma2 = gamma2
        self.delta2 = delta2
        self.ic = list(ic)


class Groth16Proof:
    def __init__(self, a, b, c):
        self.a = a
        self.b = b
        self.c = c


def lhs(proof):
    return pairing(proof.b, proof.a)


def rhs(vk, proof, public_inputs):
    vk_x = vk.ic[0]
    for ic_i, x_i in zip(vk.ic[1:], public_inputs):
        vk_x = add(vk_x, mult(ic_i, int(x_i) % SNARK_FIELD_SIZE))
    result = pairing(vk.beta2, vk.alpha1)
    result = result * pairing(vk.gamma2, vk_x)
    result = result * pairing(vk.delta2, proof.c)
    return result


def verify_groth16(vk, proof, public_inputs):
    if len(public_inputs) != len(vk.ic) - 1:
        raise ValueError(f"공개 입력 수가 검증키와 맞지 않습니다: {len(public_inputs)} != {len(vk.ic) - 1}")
    for point in (proof.a, proof.c):
        if point is None or not bn128.is_on_curve(point, bn128.b):
            return False
    if proof.b is None or not bn128.is_on_curve(proof.b, bn128.b2):
        return False
    return lhs(proof) == rhs(vk, proof, public_inputs)


class Groth16Verifier:
    """단계별 검증키를 가진 검증기."""

    def __init__(self, vkeys):
        unknown = set(vkeys) - set(STEPS)
        if unknown:
            raise ValueError(f"알 수 없는 검증 단계: {sorted(unknown)}")
        self.vkeys = dict(vkeys)

    def verify(self, step, proof, input_hash):
        vk = self.vkeys.get(step)
        if vk is None:
            raise ValueError(f"검증키가 등록되지 않은 단계입니다: {step}")
        if proof is None:
            return False
        return verify_groth16(vk, proof, [input_hash])


class AcceptAllVerifier:
    """모든 증명을 받아들이는 검증기. 회로 없이 흐름만 점검할 때 쓴다."""

    def verify(self, step, proof, input_hash):
        return True

"""
라운드 데이터 직렬화/역직렬화 헬퍼
====================================

JSON 요청/응답과 TinyDB에 저장 가능한 형태로 라운드 객체를 변환한다.
필드 원소는 JS 정밀도 문제를 피하려고 모두 10진 문자열로 주고받는다.
"""

from py_ecc import bn128
from py_ecc.fields import bn128_FQ as FQ

from maci.command import Message
from maci.config import RoundParameters, VotingTime
from maci.verifier import Groth16Proof, VerifyingKey


# ─── 정수 / 점 ───

def serialize_int(val):
    """int → str(int)"""
    return str(int(val))


def deserialize_int(s):
    """str(int) 또는 int → int"""
    return int(s)


def serialize_int_list(values):
    return [str(int(v)) for v in values]


def deserialize_int_list(data):
    return [int(v) for v in data]


def serialize_point(point):
    """(x, y) → [str, str] or None"""
    if point is None:
        return None
    return [str(int(point[0])), str(int(point[1]))]


def deserialize_point(data):
    """[str, str] → (int, int)"""
    if data is None:
        return None
    if len(data) != 2:
        raise ValueError(f"점은 좌표 2개여야 합니다: {data}")
    return (int(data[0]), int(data[1]))


# ─── BN254 G1 / G2 (증명, 검증키) ───

def serialize_g1(point):
    """G1 point → [str, str] or None"""
    if point is None:
        return None
    return [str(int(point[0])), str(int(point[1]))]


def deserialize_g1(data):
    """[str, str] or None → G1 point"""
    if data is None:
        return None
    return (FQ(int(data[0])), FQ(int(data[1])))


def serialize_g2(point):
    """G2 point → [[str,str],[str,str]] or None"""
    if point is None:
        return None
    return [
        [str(int(point[0].coeffs[0])), str(int(point[0].coeffs[1]))],
        [str(int(point[1].coeffs[0])), str(int(point[1].coeffs[1]))]
    ]


def deserialize_g2(data):
    """[[str,str],[str,str]] or None → G2 point"""
    if data is None:
        return None
    return (
        bn128.FQ2([int(data[0][0]), int(data[0][1])]),
        bn128.FQ2([int(data[1][0]), int(data[1][1])])
    )


def serialize_proof(proof):
    if proof is None:
        return None
    return {
        "a": serialize_g1(proof.a),
        "b": serialize_g2(proof.b),
        "c": serialize_g1(proof.c),
    }


def deserialize_proof(data):
    """{"a", "b", "c"} → Groth16Proof. 없으면 None (증명 없는 호출)."""
    if data is None:
        return None
    return Groth16Proof(
        deserialize_g1(data["a"]),
        deserialize_g2(data["b"]),
        deserialize_g1(data["c"]),
    )


def serialize_verifying_key(vk):
    return {
        "alpha1": serialize_g1(vk.alpha1),
        "beta2": serialize_g2(vk.beta2),
        "gamma2": serialize_g2(vk.gamma2),
        "delta2": serialize_g2(vk.delta2),
        "ic": [serialize_g1(p) for p in vk.ic],
    }


def deserialize_verifying_key(data):
    return VerifyingKey(
        deserialize_g1(data["alpha1"]),
        deserialize_g2(data["beta2"]),
        deserialize_g2(data["gamma2"]),
        deserialize_g2(data["delta2"]),
        [deserialize_g1(p) for p in data["ic"]],
    )


# ─── 메시지 ───

def serialize_message(message):
    return {
        "ciphertext": serialize_int_list(message.ciphertext),
        "enc_pub_key": serialize_point(message.enc_pub_key),
    }


def deserialize_message(data):
    return Message(deserialize_int_list(data["ciphertext"]),
                   deserialize_point(data["enc_pub_key"]))


# ─── 설정 ───

def deserialize_parameters(data):
    """dict → RoundParameters (빠진 키는 기본값)."""
    data = data or {}
    known = RoundParameters.__dataclass_fields__
    unknown = set(data) - set(known)
    if unknown:
        raise ValueError(f"알 수 없는 라운드 파라미터: {sorted(unknown)}")
    return RoundParameters(**{k: int(v) for k, v in data.items()}).validate()


def deserialize_voting_time(data):
    return VotingTime(int(data["start_time"]), int(data["end_time"]))


# ─── 라운드 스냅샷 ───

def serialize_round(round_):
    """라운드의 공개 상태 요약. TinyDB에 저장하고 조회 응답으로도 쓴다."""
    return {
        "period": round_.period.value,
        "voting_open": round_.voting_open,
        "parameters": round_.parameters.to_dict(),
        "coordinator_pub_key": serialize_point(round_.coordinator_pub_key),
        "voting_time": {
            "start_time": round_.voting_time.start_time,
            "end_time": round_.voting_time.end_time,
        },
        "num_sign_ups": round_.num_sign_ups,
        "state_root": serialize_int(round_.state_root),
        "msg_chain_length": round_.msg_chain_length,
        "dmsg_chain_length": round_.dmsg_chain_length,
        "msg_chain_hash": serialize_int(round_.msg_chain.last_hash),
        "dmsg_chain_hash": serialize_int(round_.dmsg_chain.last_hash),
        "processed_msg_count": round_.processed_msg_count,
        "processed_dmsg_count": round_.processed_dmsg_count,
        "processed_user_count": round_.processed_user_count,
        "current_state_commitment": serialize_int(round_.current_state_commitment),
        "current_tally_commitment": serialize_int(round_.current_tally_commitment),
        "current_deactivate_commitment": serialize_int(round_.current_deactivate_commitment),
        "deactivate_root": serialize_int(round_.deactivate_root),
        "results": None if round_.results is None else serialize_int_list(round_.results),
        "total_result": None if round_.total_result is None else serialize_int(round_.total_result),
    }

"""
공개 입력(public input) 해시 패킹
==================================

각 회로는 공개 입력 하나만 받는다: 논리 필드들을 순서대로 32바이트
빅엔디안으로 이어 붙여 SHA-256으로 해싱하고 필드 크기로 축소한 값.

  inputHash = SHA-256(v₀ ‖ v₁ ‖ … ‖ v_{k-1}) mod p

원장과 코디네이터가 같은 순서로 같은 값을 넣어야 같은 해시가 나온다.

┌──────────────────┬─────────────────────────────────────────────────────────┐
│ process-messages │ packedVals, coordHash, start, end, curCommit, newCommit, │
│                  │ deactivateCommit                                         │
│ tally            │ packedVals, stateCommit, curTally, newTally              │
│ deactivate       │ newDeactRoot, coordHash, start, end, curDeactCommit,     │
│                  │ newDeactCommit, subStateRoot                             │
│ add-new-key      │ deactRoot, coordHash, nullifier, d1.x, d1.y, d2.x, d2.y  │
└──────────────────┴─────────────────────────────────────────────────────────┘
"""

import hashlib

from maci.crypto.field import SNARK_FIELD_SIZE


def compute_input_hash(values):
    """uint256 값 목록의 SHA-256 → 필드 원소."""
    data = bytearray()
    for v in values:
        v = int(v)
        if not 0 <= v < (1 << 256):
            raise ValueError(f"uint256 범위를 벗어났습니다: {v}")
        data.extend(v.to_bytes(32, "big"))
    return int.from_bytes(hashlib.sha256(bytes(data)).digest(), "big") % SNARK_FIELD_SIZE


# ─── packedVals ───

def pack_process_vals(max_vote_options, num_sign_ups, is_quadratic=False):
    """maxVoteOptions + numSignUps << 32 (+ 1 << 64 이차 투표)."""
    packed = int(max_vote_options) + (int(num_sign_ups) << 32)
    if is_quadratic:
        packed += 1 << 64
    return packed


def pack_tally_vals(batch_num, num_sign_ups):
    return int(batch_num) + (int(num_sign_ups) << 32)


# ─── 회로별 입력 ───

def process_messages_input_hash(packed_vals, coord_pub_key_hash, batch_start_hash,
                                batch_end_hash, current_state_commitment,
                                new_state_commitment, deactivate_commitment):
    return compute_input_hash([
        packed_vals,
        coord_pub_key_hash,
        batch_start_hash,
        batch_end_hash,
        current_state_commitment,
        new_state_commitment,
        deactivate_commitment,
    ])


def tally_input_hash(packed_vals, state_commitment, current_tally_commitment,
                     new_tally_commitment):
    return compute_input_hash([
        packed_vals,
        state_commitment,
        current_tally_commitment,
        new_tally_commitment,
    ])


def deactivate_input_hash(new_deactivate_root, coord_pub_key_hash, batch_start_hash,
                          batch_end_hash, current_deactivate_commitment,
                          new_deactivate_commitment, sub_state_root):
    return compute_input_hash([
        new_deactivate_root,
        coord_pub_key_hash,
        batch_start_hash,
        batch_end_hash,
        current_deactivate_commitment,
        new_deactivate_commitment,
        sub_state_root,
    ])


def add_key_input_hash(deactivate_root, coord_pub_key_hash, nullifier, d):
    if len(d) != 4:
        raise ValueError(f"d는 4개 원소여야 합니다: {len(d)}")
    return compute_input_hash([deactivate_root, coord_pub_key_hash, nullifier] + list(d))

"""
비활성화 메시지 배치 접기
==========================

체인 순서대로 [processed, processed + size) 를 처리하고, 부족한 자리는
빈 메시지(명령 None)로 채운다.

메시지 i마다:
  newActiveState[i] = processed + i + 1
  레코드 = [c1.x, c1.y, c2.x, c2.y, H(ECDH(coordPriv, voterPub))]
           (c1, c2) = encryptOdevity(무효 여부, coordPub, H(coordPriv, 20040, newActiveState[i]))

  유효      → 활성 상태 트리[stateIdx] = newActiveState[i],
              비활성화 트리[processed + i] = H₅(레코드)
  무효 + 비어 있지 않은 메시지
            → 비활성화 트리에만 (홀수) 레코드를 추가
              (투표자가 결과를 구분할 수 없게 하기 위함)

  새 커밋먼트 = H₂(활성 상태 루트, 비활성화 루트)
"""

import logging

from maci.command import DeactivateCommand, Message
from maci.crypto.eddsa import verify_signature
from maci.crypto.elgamal import encrypt_odevity
from maci.crypto.poseidon import poseidon
from maci.input_hash import deactivate_input_hash
from maci.state import hash_deactivate_leaf, deactivate_commitment

logger = logging.getLogger(__name__)

# 비활성화 플래그 암호화 난수의 도메인 구분 상수
DEACTIVATE_RANDOM_SALT = 20040


def gen_static_random_key(priv_key, salt, index):
    return poseidon([priv_key, salt, index])


def check_deactivate_command(coordinator, cmd, sub_state_tree_length):
    """무효 사유 문자열, 유효하면 None."""
    if cmd is None:
        return "empty command"
    if not isinstance(cmd, DeactivateCommand):
        raise TypeError(f"비활성화 체인에 다른 종류의 명령이 있습니다: {type(cmd).__name__}")
    if cmd.state_idx >= sub_state_tree_length:
        return "state leaf index overflow"
    leaf = coordinator.state_leaf(cmd.state_idx)
    if coordinator.is_deactivated(leaf):
        return "deactivated"
    if not verify_signature(cmd.msg_hash, cmd.signature, leaf.pub_key):
        return "signature error"
    return None


def _path_or_zero(tree, leaf_idx):
    if leaf_idx < tree.capacity:
        return tree.path_element_of(leaf_idx)
    return [[0] * (tree.degree - 1) for _ in range(tree.depth)]


def execute(coordinator, input_size, sub_state_tree_length):
    """비활성화 배치를 접고 (input_hash, 새 커밋먼트, 회로 입력, 사유 목록)을 반환한다."""
    params = coordinator.parameters
    batch_size = params.message_batch_size
    chain = coordinator.dmsg_chain
    keypair = coordinator.keypair

    batch_start = coordinator.processed_dmsg_count
    size = min(input_size, batch_size, len(chain) - batch_start)
    if size <= 0:
        raise ValueError("처리할 비활성화 메시지가 없습니다")
    batch_end = batch_start + size
    logger.info("비활성화 메시지 처리 [%d, %d)", batch_start, batch_end)

    messages = chain.messages(batch_start, batch_end)
    commands = coordinator.dcommands[batch_start:batch_end]
    while len(messages) < batch_size:
        messages.append(Message.empty())
        commands.append(None)

    sub_state_tree = coordinator.state_tree.sub_tree(sub_state_tree_length)
    current_active_state_root = coordinator.active_state_tree.root
    current_deactivate_root = coordinator.deactivate_tree.root
    current_commitment = coordinator.deactivate_commitment

    new_active_state = [batch_start + i + 1 for i in range(batch_size)]
    current_active_state = []
    current_state_leaves = []
    current_state_leaves_path = []
    active_state_leaves_path = []
    deactivate_leaves_path = []
    c1, c2 = [], []
    errors = []

    for i in range(batch_size):
        cmd = commands[i]
        error = check_deactivate_command(coordinator, cmd, sub_state_tree_length)
        state_idx = coordinator.dummy_state_idx if error else cmd.state_idx

        leaf = coordinator.state_leaf(state_idx)
        current_state_leaves.append(leaf.as_circuit_input())
        current_state_leaves_path.append(sub_state_tree.path_element_of(state_idx))
        active_state_leaves_path.append(coordinator.active_state_tree.path_element_of(state_idx))
        deactivate_leaves_path.append(_path_or_zero(coordinator.deactivate_tree, batch_start + i))
        current_active_state.append(coordinator.active_state_tree.leaf(state_idx))

        shared_key = keypair.gen_ecdh_shared_key(leaf.pub_key)
        flag = encrypt_odevity(
            error is not None,
            keypair.pub_key,
            gen_static_random_key(keypair.priv_key, DEACTIVATE_RANDOM_SALT, new_active_state[i]),
        )
        record = flag.as_list() + [poseidon(shared_key)]
        c1.append(list(flag.c1))
        c2.append(list(flag.c2))

        if error is None:
            coordinator.active_state_tree.update_leaf(state_idx, new_active_state[i])
            coordinator.deactivate_tree.update_leaf(batch_start + i, hash_deactivate_leaf(record))
            coordinator.deactivate_records.append(record)
        elif not messages[i].is_empty():
            coordinator.deactivate_tree.update_leaf(batch_start + i, hash_deactivate_leaf(record))
            coordinator.deactivate_records.append(record)

        errors.append(error)
        logger.debug("- 비활성화 메시지 <%d> %s", i, error or "✓")

    new_deactivate_root = coordinator.deactivate_tree.root
    new_commitment = deactivate_commitment(coordinator.active_state_tree.root, new_deactivate_root)
    batch_start_hash, batch_end_hash = chain.boundary(batch_start, batch_end)

    input_hash = deactivate_input_hash(
        new_deactivate_root,
        coordinator.coord_pub_key_hash,
        batch_start_hash,
        batch_end_hash,
        current_commitment,
        new_commitment,
        sub_state_tree.root,
    )

    circuit_input = {
        "inputHash": input_hash,
        "currentActiveStateRoot": current_active_state_root,
        "currentDeactivateRoot": current_deactivate_root,
        "batchStartHash": batch_start_hash,
        "batchEndHash": batch_end_hash,
        "msgs": [m.ciphertext for m in messages],
        "coordPrivKey": keypair.formatted_priv_key,
        "coordPubKey": list(keypair.pub_key),
        "encPubKeys": [list(m.enc_pub_key) for m in messages],
        "c1": c1,
        "c2": c2,
        "currentActiveState": current_active_state,
        "newActiveState": new_active_state,
        "deactivateIndex0": batch_start,
        "currentStateRoot": sub_state_tree.root,
        "currentStateLeaves": current_state_leaves,
        "currentStateLeavesPathElements": current_state_leaves_path,
        "activeStateLeavesPathElements": active_state_leaves_path,
        "deactivateLeavesPathElements": deactivate_leaves_path,
        "currentDeactivateCommitment": current_commitment,
        "newDeactivateRoot": new_deactivate_root,
        "newDeactivateCommitment": new_commitment,
    }

    coordinator.processed_dmsg_count = batch_end
    return input_hash, new_commitment, circuit_input, errors

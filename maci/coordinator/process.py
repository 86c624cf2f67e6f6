"""
투표 메시지 배치 접기
======================

배치는 체인의 끝에서부터 잡는다:

  batchStart = ⌊(msgEndIdx - 1) / B⌋ · B,   batchEnd = min(batchStart + B, msgEndIdx)

배치 안에서도 i = B-1 → 0 역순으로 처리한다. 투표자는 명령을 역순으로
게시하므로, 역순으로 접으면 nonce가 작은 명령부터 적용되고 나중 명령이
앞선 명령을 덮어쓴다.

명령 검사 순서 (처음 걸린 사유로 no-op 처리):
  empty command → state leaf index overflow → vote option index overflow
  → inactive (활성 상태 트리 리프 ≠ 0) → deactivated (d1/d2 복호화 홀수)
  → nonce error → signature error → insufficient balance

무효 명령은 더미 인덱스 5^D - 1 을 가리키며 상태를 바꾸지 않는다.
"""

import logging

from maci.command import Message, VoteCommand
from maci.crypto.eddsa import verify_signature
from maci.errors import BalanceExceeded
from maci.input_hash import pack_process_vals, process_messages_input_hash
from maci.state import commitment

logger = logging.getLogger(__name__)


def remaining_balance(params, balance, current_votes, new_votes):
    """옵션 하나의 표를 current_votes → new_votes 로 바꾼 뒤의 잔액.

    이차 투표면 표의 제곱을 비용으로 친다. 잔액이 모자라면 BalanceExceeded.
    """
    if params.is_quadratic:
        balance = balance + current_votes * current_votes - new_votes * new_votes
    else:
        balance = balance + current_votes - new_votes
    if balance < 0:
        raise BalanceExceeded(f"잔액이 부족합니다: {balance}")
    return balance


def check_command(coordinator, cmd):
    """무효 사유 문자열, 유효하면 None."""
    params = coordinator.parameters
    if cmd is None:
        return "empty command"
    if not isinstance(cmd, VoteCommand):
        raise TypeError(f"투표 체인에 다른 종류의 명령이 있습니다: {type(cmd).__name__}")
    if cmd.state_idx >= coordinator.num_sign_ups:
        return "state leaf index overflow"
    if cmd.vo_idx >= params.max_vote_options:
        return "vote option index overflow"

    leaf = coordinator.state_leaf(cmd.state_idx)
    if coordinator.active_state_tree.leaf(cmd.state_idx) != 0:
        return "inactive"
    if coordinator.is_deactivated(leaf):
        return "deactivated"
    if leaf.nonce + 1 != cmd.nonce:
        return "nonce error"
    if not verify_signature(cmd.msg_hash, cmd.signature, leaf.pub_key):
        return "signature error"

    try:
        remaining_balance(params, leaf.balance, leaf.vo_tree.leaf(cmd.vo_idx), cmd.new_votes)
    except BalanceExceeded:
        return "insufficient balance"
    return None


def apply_command(coordinator, leaf, cmd):
    """유효한 명령을 상태 리프에 반영한다."""
    leaf.balance = remaining_balance(coordinator.parameters, leaf.balance,
                                     leaf.vo_tree.leaf(cmd.vo_idx), cmd.new_votes)
    leaf.pub_key = cmd.new_pub_key
    leaf.vo_tree.update_leaf(cmd.vo_idx, cmd.new_votes)
    leaf.nonce = cmd.nonce
    leaf.voted = True
    coordinator.state_leaves[cmd.state_idx] = leaf
    coordinator.state_tree.update_leaf(cmd.state_idx, leaf.hash())


def execute(coordinator, new_state_salt):
    params = coordinator.parameters
    batch_size = params.message_batch_size
    chain = coordinator.msg_chain

    batch_start = (coordinator.msg_end_idx - 1) // batch_size * batch_size
    batch_end = min(batch_start + batch_size, coordinator.msg_end_idx)
    logger.info("메시지 처리 [%d, %d)", batch_start, batch_end)

    messages = chain.messages(batch_start, batch_end)
    commands = coordinator.commands[batch_start:batch_end]
    while len(messages) < batch_size:
        messages.append(Message.empty())
        commands.append(None)

    current_state_root = coordinator.state_tree.root
    current_state_leaves = [None] * batch_size
    current_state_leaves_path = [None] * batch_size
    current_vote_weights = [None] * batch_size
    current_vote_weights_path = [None] * batch_size
    active_state_leaves = [None] * batch_size
    active_state_leaves_path = [None] * batch_size
    errors = [None] * batch_size

    for i in range(batch_size - 1, -1, -1):
        cmd = commands[i]
        error = check_command(coordinator, cmd)

        state_idx, vo_idx = coordinator.dummy_state_idx, 0
        if error is None:
            state_idx, vo_idx = cmd.state_idx, cmd.vo_idx

        leaf = coordinator.state_leaf(state_idx)
        current_state_leaves[i] = leaf.as_circuit_input()
        current_state_leaves_path[i] = coordinator.state_tree.path_element_of(state_idx)
        current_vote_weights[i] = leaf.vo_tree.leaf(vo_idx)
        current_vote_weights_path[i] = leaf.vo_tree.path_element_of(vo_idx)
        active_state_leaves[i] = coordinator.active_state_tree.leaf(state_idx)
        active_state_leaves_path[i] = coordinator.active_state_tree.path_element_of(state_idx)

        if error is None:
            apply_command(coordinator, leaf, cmd)

        errors[i] = error
        logger.debug("- 메시지 <%d> %s", i, error or "✓")

    new_state_root = coordinator.state_tree.root
    new_state_commitment = commitment(new_state_root, new_state_salt)

    packed_vals = pack_process_vals(params.max_vote_options, coordinator.num_sign_ups,
                                    params.is_quadratic)
    batch_start_hash, batch_end_hash = chain.boundary(batch_start, batch_end)
    deactivate_commitment = coordinator.deactivate_commitment

    input_hash = process_messages_input_hash(
        packed_vals,
        coordinator.coord_pub_key_hash,
        batch_start_hash,
        batch_end_hash,
        coordinator.state_commitment,
        new_state_commitment,
        deactivate_commitment,
    )

    circuit_input = {
        "inputHash": input_hash,
        "packedVals": packed_vals,
        "batchStartHash": batch_start_hash,
        "batchEndHash": batch_end_hash,
        "msgs": [m.ciphertext for m in messages],
        "coordPrivKey": coordinator.keypair.formatted_priv_key,
        "coordPubKey": list(coordinator.keypair.pub_key),
        "encPubKeys": [list(m.enc_pub_key) for m in messages],
        "currentStateRoot": current_state_root,
        "currentStateLeaves": current_state_leaves,
        "currentStateLeavesPathElements": current_state_leaves_path,
        "currentStateCommitment": coordinator.state_commitment,
        "currentStateSalt": coordinator.state_salt,
        "newStateCommitment": new_state_commitment,
        "newStateSalt": new_state_salt,
        "currentVoteWeights": current_vote_weights,
        "currentVoteWeightsPathElements": current_vote_weights_path,
        "activeStateRoot": coordinator.active_state_tree.root,
        "deactivateRoot": coordinator.deactivate_tree.root,
        "deactivateCommitment": deactivate_commitment,
        "activeStateLeaves": active_state_leaves,
        "activeStateLeavesPathElements": active_state_leaves_path,
    }

    coordinator.msg_end_idx = batch_start
    coordinator.state_commitment = new_state_commitment
    coordinator.state_salt = new_state_salt
    logger.info("새 상태 루트: %s", new_state_root)

    if batch_start == 0:
        coordinator.end_processing_period()

    return input_hash, new_state_commitment, circuit_input, errors

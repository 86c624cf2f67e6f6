"""
집계(tally) 배치 접기
======================

상태 리프를 5^intStateTreeDepth 개씩 묶어 옵션별 결과에 더한다.

  results[j] += v · (v + SCALE)  =  v · SCALE + v²      (투표한 리프만)

  새 집계 커밋먼트 = H₂(결과 트리 루트, 솔트)
  packedVals      = batchNum + numSignUps << 32

마지막 배치 뒤 코디네이터는 ENDED 상태가 된다.
"""

import logging

from maci.input_hash import pack_tally_vals, tally_input_hash
from maci.state import commitment, encode_result

logger = logging.getLogger(__name__)


def execute(coordinator, tally_salt):
    params = coordinator.parameters
    batch_size = params.tally_batch_size
    batch_start = coordinator.batch_num * batch_size
    batch_end = batch_start + batch_size
    logger.info("집계 [%d, %d)", batch_start, batch_end)

    # 배치 첫 리프의 경로 중 배치 서브트리 위쪽 부분
    state_path_elements = coordinator.state_tree.path_element_of(batch_start)[params.int_state_tree_depth:]

    results = coordinator.tally_results
    current_results = results.leaves()
    state_leaves = []
    votes = []

    for i in range(batch_size):
        leaf = coordinator.state_leaf(batch_start + i)
        state_leaves.append(leaf.as_circuit_input())
        votes.append(leaf.vo_tree.leaves())
        if not leaf.voted:
            continue
        for j in range(leaf.vo_tree.capacity):
            v = leaf.vo_tree.leaf(j)
            if v:
                results.update_leaf(j, results.leaf(j) + encode_result(v, v * v))

    new_tally_commitment = commitment(results.root, tally_salt)
    packed_vals = pack_tally_vals(coordinator.batch_num, coordinator.num_sign_ups)
    input_hash = tally_input_hash(
        packed_vals,
        coordinator.state_commitment,
        coordinator.tally_commitment,
        new_tally_commitment,
    )

    circuit_input = {
        "inputHash": input_hash,
        "stateRoot": coordinator.state_tree.root,
        "stateSalt": coordinator.state_salt,
        "packedVals": packed_vals,
        "stateCommitment": coordinator.state_commitment,
        "currentTallyCommitment": coordinator.tally_commitment,
        "newTallyCommitment": new_tally_commitment,
        "stateLeaf": state_leaves,
        "statePathElements": state_path_elements,
        "votes": votes,
        "currentResults": current_results,
        "currentResultsRootSalt": coordinator.tally_salt,
        "newResultsRootSalt": tally_salt,
    }

    coordinator.batch_num += 1
    coordinator.tally_commitment = new_tally_commitment
    coordinator.tally_salt = tally_salt

    if batch_end >= coordinator.num_sign_ups:
        coordinator.end_tallying_period()

    return input_hash, new_tally_commitment, circuit_input, [None] * batch_size

"""
투표자 측 헬퍼: 재활성화(add new key) 입력 생성
================================================

비활성화된 투표자는 새 키로 다시 가입한다. 이때 옛 키와 새 키를 연결하지
않기 위해, 코디네이터가 공개한 비활성화 레코드 중 자기 것을 찾아
재무작위화한 뒤 그 (d1, d2)를 새 상태 리프에 싣는다.

  sharedKeyHash = H(ECDH(oldPriv, coordPub))
  record        = deactivates[i]  (record[4] == sharedKeyHash 인 첫 항목)
  (d1, d2)      = rerandomize(coordPub, record.c1, record.c2, r)
  nullifier     = H(oldFormattedPriv, NULLIFIER_SALT)

  inputHash = sha256(deactivateRoot, H(coordPub), nullifier, d1.x, d1.y, d2.x, d2.y) mod p

같은 옛 키로는 같은 널리파이어만 나오므로 재활성화는 한 번뿐이다.
"""

import logging

from maci.coordinator.deactivate import DEACTIVATE_RANDOM_SALT, gen_static_random_key
from maci.crypto.elgamal import encrypt_odevity, gen_random_babyjub_value, rerandomize
from maci.crypto.poseidon import poseidon
from maci.input_hash import add_key_input_hash
from maci.state import hash_deactivate_leaf, new_deactivate_tree

logger = logging.getLogger(__name__)

# 'NULLIFIER' 를 정수로 읽은 값
NULLIFIER_SALT = 1444992409218394441042


def gen_nullifier(old_keypair):
    return poseidon([old_keypair.formatted_priv_key, NULLIFIER_SALT])


def build_deactivate_tree(deactivates, state_tree_depth):
    """레코드 목록 → 비활성화 트리 (차수 5, 깊이 state_tree_depth + 2)."""
    tree = new_deactivate_tree(state_tree_depth)
    tree.init_leaves([hash_deactivate_leaf(record) for record in deactivates])
    return tree


def find_deactivate_index(old_keypair, coord_pub_key, deactivates):
    """자기 레코드의 인덱스, 없으면 -1."""
    shared_key_hash = poseidon(old_keypair.gen_ecdh_shared_key(coord_pub_key))
    for i, record in enumerate(deactivates):
        if int(record[4]) == shared_key_hash:
            return i
    return -1


def gen_add_key_input(old_keypair, coord_pub_key, deactivates, state_tree_depth,
                      random_val=None):
    """add_new_key 증명에 필요한 입력을 만든다.

    Args:
        old_keypair: 비활성화된 옛 Keypair
        coord_pub_key: 코디네이터 공개키
        deactivates: 코디네이터가 공개한 비활성화 레코드 목록
        state_tree_depth: 라운드의 상태 트리 깊이
        random_val: 재무작위화 난수 (기본값: 무작위)

    Returns:
        dict 또는 None (일치하는 레코드가 없을 때)
    """
    deactivates = [[int(v) for v in record] for record in deactivates]
    index = find_deactivate_index(old_keypair, coord_pub_key, deactivates)
    if index < 0:
        logger.info("일치하는 비활성화 레코드가 없습니다")
        return None

    if random_val is None:
        random_val = gen_random_babyjub_value()
    record = deactivates[index]
    c1 = (record[0], record[1])
    c2 = (record[2], record[3])
    rerandomized = rerandomize(coord_pub_key, c1, c2, random_val)
    d = rerandomized.as_list()

    nullifier = gen_nullifier(old_keypair)
    tree = build_deactivate_tree(deactivates, state_tree_depth)
    coord_pub_key_hash = poseidon([int(coord_pub_key[0]), int(coord_pub_key[1])])

    return {
        "input_hash": add_key_input_hash(tree.root, coord_pub_key_hash, nullifier, d),
        "coord_pub_key": [int(coord_pub_key[0]), int(coord_pub_key[1])],
        "deactivate_root": tree.root,
        "deactivate_index": index,
        "deactivate_leaf": hash_deactivate_leaf(record),
        "c1": list(c1),
        "c2": list(c2),
        "random_val": random_val,
        "d": d,
        "d1": list(rerandomized.c1),
        "d2": list(rerandomized.c2),
        "path_elements": tree.path_element_of(index),
        "nullifier": nullifier,
        "old_private_key": old_keypair.formatted_priv_key,
    }


def gen_pre_deactivate_tree(coordinator_keypair, voter_pub_keys, state_tree_depth):
    """라운드 생성 전에 미리 등록할 투표자들의 비활성화 트리를 만든다.

    모든 레코드는 유효한(짝수) 플래그를 담으므로, 각 투표자는
    gen_add_key_input 으로 pre_add_new_key 입력을 만들 수 있다.

    Returns:
        (레코드 목록, 트리 루트)
    """
    records = []
    for i, pub_key in enumerate(voter_pub_keys):
        flag = encrypt_odevity(
            False,
            coordinator_keypair.pub_key,
            gen_static_random_key(coordinator_keypair.priv_key, DEACTIVATE_RANDOM_SALT, i + 1),
        )
        shared_key = coordinator_keypair.gen_ecdh_shared_key(pub_key)
        records.append(flag.as_list() + [poseidon(shared_key)])
    tree = build_deactivate_tree(records, state_tree_depth)
    logger.info("사전 비활성화 트리: 레코드 %d개, 루트 %s", len(records), tree.root)
    return records, tree.root

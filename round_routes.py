"""
라운드 Flask Blueprint: 원장(ledger) 측 JSON 엔드포인트
==========================================================

  POST /maci/rounds                                     라운드 생성
  GET  /maci/rounds/<id>                                상태 조회
  POST /maci/rounds/<id>/sign-up
  POST /maci/rounds/<id>/messages                       message 또는 messages
  POST /maci/rounds/<id>/deactivate-messages
  POST /maci/rounds/<id>/deactivate-messages/process
  POST /maci/rounds/<id>/add-new-key                    pre=true 면 사전 트리 기준
  POST /maci/rounds/<id>/processing/start
  POST /maci/rounds/<id>/processing/batch
  POST /maci/rounds/<id>/processing/stop
  POST /maci/rounds/<id>/tally/batch
  POST /maci/rounds/<id>/tally/stop

라운드 객체는 메모리 레지스트리에 두고, 상태가 바뀔 때마다 공개 요약을
TinyDB에 "maci.round.<id>" 키로 저장한다. 저장된 요약은 공개 기록이며
라운드를 되살리지는 않는다. 재시작 뒤에도 GET으로 읽을 수 있지만
상태를 바꾸는 요청은 404가 된다.

상태를 바꾸는 요청은 라운드 잠금을 잡은 채로 연산과 저장을 끝낸다.
"""

import functools
import logging
import threading
import time
import uuid

from flask import Blueprint, jsonify, request
from tinydb import Query

from maci.errors import MaciError, InvalidProof
from maci.round import Round
from maci.verifier import AcceptAllVerifier, Groth16Verifier

from round_serializers import (
    serialize_int, deserialize_int, deserialize_int_list,
    deserialize_point, deserialize_proof, deserialize_verifying_key,
    deserialize_message, deserialize_parameters, deserialize_voting_time,
    serialize_round,
)

logger = logging.getLogger(__name__)

round_bp = Blueprint('round', __name__, url_prefix='/maci')

DATA = Query()

# DB와 시계는 app.py에서 주입
DB = None
CLOCK = time.time
ROUNDS = {}
DB_LOCK = threading.Lock()


def init_round_bp(db, clock=time.time):
    """app.py에서 DB(와 테스트용 시계)를 주입받는다."""
    global DB, CLOCK
    DB = db
    CLOCK = clock
    ROUNDS.clear()


# ─── DB 헬퍼 ───

def db_get(key):
    """DB에서 키로 데이터를 조회한다."""
    with DB_LOCK:
        result = DB.search(DATA.type == key)
    if not result:
        return None
    return result[0].get("data")


def db_set(key, data):
    """DB에 키로 데이터를 저장한다."""
    with DB_LOCK:
        DB.upsert({"type": key, "data": data}, DATA.type == key)


def round_key(round_id):
    return f"maci.round.{round_id}"


def save_round(round_id):
    snapshot = serialize_round(ROUNDS[round_id])
    db_set(round_key(round_id), snapshot)
    return snapshot


def get_round(round_id):
    round_ = ROUNDS.get(round_id)
    if round_ is None:
        raise LookupError(f"라운드가 없습니다: {round_id}")
    return round_


def with_round(view):
    """뷰를 라운드 잠금 안에서 실행한다. 연산과 스냅샷 저장이 한 단위가 된다."""
    @functools.wraps(view)
    def wrapper(round_id):
        round_ = get_round(round_id)
        with round_.lock:
            return view(round_id, round_)
    return wrapper


def request_json():
    data = request.get_json(silent=True)
    if data is None:
        raise ValueError("JSON 본문이 필요합니다")
    return data


def build_verifier(data):
    """{"type": "accept_all"} 또는 {"type": "groth16", "vkeys": {step: vk}}."""
    data = data or {"type": "accept_all"}
    kind = data.get("type")
    if kind == "accept_all":
        return AcceptAllVerifier()
    if kind == "groth16":
        vkeys = {step: deserialize_verifying_key(vk) for step, vk in data["vkeys"].items()}
        return Groth16Verifier(vkeys)
    raise ValueError(f"알 수 없는 검증기 종류: {kind}")


# ─── 에러 처리 ───

@round_bp.errorhandler(LookupError)
def handle_not_found(e):
    return jsonify({"error": type(e).__name__, "message": str(e)}), 404


@round_bp.errorhandler(InvalidProof)
def handle_invalid_proof(e):
    return jsonify({"error": "InvalidProof", "message": str(e), "step": e.step}), 400


@round_bp.errorhandler(MaciError)
def handle_maci_error(e):
    return jsonify({"error": type(e).__name__, "message": str(e)}), 400


@round_bp.errorhandler(ValueError)
def handle_value_error(e):
    return jsonify({"error": "ValueError", "message": str(e)}), 400


@round_bp.errorhandler(KeyError)
def handle_key_error(e):
    return jsonify({"error": "KeyError", "message": f"필수 필드가 없습니다: {e}"}), 400


# ──────────────────────────────────────────────────────────────
# 라운드 생성 / 조회
# ──────────────────────────────────────────────────────────────

@round_bp.route("/rounds", methods=["POST"])
def create_round():
    """새 라운드를 만든다."""
    data = request_json()
    pre_root = data.get("pre_deactivate_root")
    pre_hash = data.get("pre_deactivate_coordinator_hash")
    round_ = Round(
        deserialize_parameters(data.get("parameters")),
        deserialize_point(data["coordinator_pub_key"]),
        deserialize_voting_time(data["voting_time"]),
        build_verifier(data.get("verifier")),
        clock=CLOCK,
        pre_deactivate_root=None if pre_root is None else deserialize_int(pre_root),
        pre_deactivate_coordinator_hash=None if pre_hash is None else deserialize_int(pre_hash),
    )
    round_id = uuid.uuid4().hex
    ROUNDS[round_id] = round_
    logger.info("라운드 생성: %s", round_id)
    return jsonify({"round_id": round_id, "round": save_round(round_id)}), 201


@round_bp.route("/rounds/<round_id>")
def round_status(round_id):
    """메모리에 있는 라운드는 현재 상태를, 없으면 마지막으로 저장된 스냅샷을 돌려준다.

    조회는 DB에 쓰지 않는다. 재시작 뒤에는 스냅샷만 남으므로 live=false 이며
    상태를 바꾸는 요청은 404가 된다.
    """
    round_ = ROUNDS.get(round_id)
    if round_ is not None:
        with round_.lock:
            snapshot = serialize_round(round_)
        return jsonify({"round_id": round_id, "live": True, "round": snapshot})

    stored = db_get(round_key(round_id))
    if stored is None:
        raise LookupError(f"라운드가 없습니다: {round_id}")
    return jsonify({"round_id": round_id, "live": False, "round": stored})


# ──────────────────────────────────────────────────────────────
# 투표 기간
# ──────────────────────────────────────────────────────────────

@round_bp.route("/rounds/<round_id>/sign-up", methods=["POST"])
@with_round
def sign_up(round_id, round_):
    data = request_json()
    state_idx = round_.sign_up(deserialize_point(data["pub_key"]))
    return jsonify({"state_idx": state_idx, "round": save_round(round_id)})


@round_bp.route("/rounds/<round_id>/messages", methods=["POST"])
@with_round
def publish_messages(round_id, round_):
    """{"message": ...} 하나 또는 {"messages": [...]} 여러 개를 게시한다."""
    data = request_json()
    if "messages" in data:
        indices = round_.publish_message_batch([deserialize_message(m) for m in data["messages"]])
    else:
        indices = [round_.publish_message(deserialize_message(data["message"]))]
    return jsonify({"indices": indices, "round": save_round(round_id)})


@round_bp.route("/rounds/<round_id>/deactivate-messages", methods=["POST"])
@with_round
def publish_deactivate_message(round_id, round_):
    data = request_json()
    index = round_.publish_deactivate_message(deserialize_message(data["message"]))
    return jsonify({"index": index, "round": save_round(round_id)})


@round_bp.route("/rounds/<round_id>/deactivate-messages/process", methods=["POST"])
@with_round
def process_deactivate_message(round_id, round_):
    data = request_json()
    processed = round_.process_deactivate_message(
        int(data["size"]),
        deserialize_int(data["new_deactivate_commitment"]),
        deserialize_int(data["new_deactivate_root"]),
        deserialize_proof(data.get("proof")),
        batch_start_hash=data.get("batch_start_hash"),
        batch_end_hash=data.get("batch_end_hash"),
    )
    return jsonify({"processed": processed, "round": save_round(round_id)})


@round_bp.route("/rounds/<round_id>/add-new-key", methods=["POST"])
@with_round
def add_new_key(round_id, round_):
    data = request_json()
    add = round_.pre_add_new_key if data.get("pre") else round_.add_new_key
    state_idx = add(
        deserialize_point(data["pub_key"]),
        deserialize_int(data["nullifier"]),
        deserialize_int_list(data["d"]),
        deserialize_proof(data.get("proof")),
    )
    return jsonify({"state_idx": state_idx, "round": save_round(round_id)})


# ──────────────────────────────────────────────────────────────
# 처리 / 집계 기간
# ──────────────────────────────────────────────────────────────

@round_bp.route("/rounds/<round_id>/processing/start", methods=["POST"])
@with_round
def start_processing(round_id, round_):
    round_.start_process_period()
    return jsonify({"round": save_round(round_id)})


@round_bp.route("/rounds/<round_id>/processing/batch", methods=["POST"])
@with_round
def process_message_batch(round_id, round_):
    data = request_json()
    start, end = round_.process_message(
        deserialize_int(data["new_state_commitment"]),
        deserialize_proof(data.get("proof")),
        batch_start_hash=data.get("batch_start_hash"),
        batch_end_hash=data.get("batch_end_hash"),
    )
    return jsonify({"batch": [start, end], "round": save_round(round_id)})


@round_bp.route("/rounds/<round_id>/processing/stop", methods=["POST"])
@with_round
def stop_processing(round_id, round_):
    round_.stop_processing_period()
    return jsonify({"round": save_round(round_id)})


@round_bp.route("/rounds/<round_id>/tally/batch", methods=["POST"])
@with_round
def process_tally(round_id, round_):
    data = request_json()
    batch_num = round_.process_tally(
        deserialize_int(data["new_tally_commitment"]),
        deserialize_proof(data.get("proof")),
    )
    return jsonify({"batch_num": batch_num, "round": save_round(round_id)})


@round_bp.route("/rounds/<round_id>/tally/stop", methods=["POST"])
@with_round
def stop_tallying(round_id, round_):
    data = request_json()
    results = round_.stop_tallying_period(deserialize_int_list(data["results"]),
                                          deserialize_int(data.get("salt", 0)))
    decoded = [[serialize_int(v), serialize_int(s)] for v, s in round_.decoded_results()]
    return jsonify({"results": [serialize_int(r) for r in results],
                    "decoded": decoded,
                    "round": save_round(round_id)})

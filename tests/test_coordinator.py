"""
코디네이터 배치 접기 테스트
============================

테스트 범위:
  - 명령 검사 순서와 no-op 사유
  - 선형/이차 잔액 계산
  - 체인 끝에서부터의 배치, 빈 메시지 패딩
  - 비활성화 배치: 유효/무효 레코드, 활성 상태 트리
  - 집계 결과 인코딩
"""

import pytest

from maci.command import Message, gen_message, batch_gen_message, gen_deactivate_message
from maci.config import RoundParameters, CircuitType
from maci.coordinator import Coordinator, CoordinatorStatus
from maci.coordinator.process import remaining_balance
from maci.crypto.elgamal import decrypt
from maci.crypto.keys import Keypair
from maci.errors import BalanceExceeded
from maci.state import decode_result, commitment

from conftest import VOICE_CREDITS


def vote(coordinator, voter, state_idx, nonce, vo_idx, new_votes, signer=None):
    message = gen_message(state_idx, signer or voter, coordinator.keypair.pub_key,
                          nonce=nonce, vo_idx=vo_idx, new_votes=new_votes)
    coordinator.push_message(message)
    return message


def setup_voters(coordinator, voters, n=2):
    for voter in voters[:n]:
        coordinator.sign_up(voter.pub_key, VOICE_CREDITS)


class TestFilling:
    def test_sign_up_indices(self, coordinator, voters):
        assert coordinator.sign_up(voters[0].pub_key, VOICE_CREDITS) == 0
        assert coordinator.sign_up(voters[1].pub_key, VOICE_CREDITS) == 1
        assert coordinator.num_sign_ups == 2
        assert coordinator.state_leaf(1).balance == VOICE_CREDITS

    def test_unknown_leaf_is_empty(self, coordinator):
        assert coordinator.state_leaf(7).pub_key == (0, 0)

    def test_push_decrypts(self, coordinator, voters):
        setup_voters(coordinator, voters)
        vote(coordinator, voters[0], 0, 1, 2, 3)
        assert coordinator.commands[0].new_votes == 3

    def test_invalid_parameters_type(self, coordinator_keypair):
        with pytest.raises(TypeError):
            Coordinator(None, coordinator_keypair)

    def test_no_messages_goes_to_tallying(self, coordinator, voters):
        setup_voters(coordinator, voters)
        coordinator.end_vote_period()
        assert coordinator.status == CoordinatorStatus.TALLYING

    def test_process_requires_processing(self, coordinator):
        with pytest.raises(ValueError):
            coordinator.process_messages()


class TestProcessMessages:
    def test_valid_vote(self, coordinator, voters):
        setup_voters(coordinator, voters)
        vote(coordinator, voters[0], 0, 1, 2, 30)
        coordinator.end_vote_period()
        result = coordinator.process_messages(new_state_salt=5)

        leaf = coordinator.state_leaf(0)
        assert result.errors[0] is None
        assert result.errors[1:] == ["empty command"] * 4
        assert result.accepted_count == 1
        assert leaf.balance == VOICE_CREDITS - 30
        assert leaf.nonce == 1
        assert leaf.vo_tree.leaf(2) == 30
        assert result.new_commitment == commitment(coordinator.state_tree.root, 5)
        assert coordinator.status == CoordinatorStatus.TALLYING

    @pytest.mark.parametrize("state_idx,nonce,vo_idx,new_votes,reason", [
        (5, 1, 0, 1, "state leaf index overflow"),
        (0, 1, 5, 1, "vote option index overflow"),
        (0, 2, 0, 1, "nonce error"),
        (0, 1, 0, VOICE_CREDITS + 1, "insufficient balance"),
    ])
    def test_invalid_reasons(self, coordinator, voters, state_idx, nonce, vo_idx, new_votes, reason):
        setup_voters(coordinator, voters)
        vote(coordinator, voters[0], state_idx, nonce, vo_idx, new_votes)
        coordinator.end_vote_period()
        root = coordinator.state_tree.root
        result = coordinator.process_messages()
        assert result.errors[0] == reason
        assert coordinator.state_tree.root == root

    def test_signature_error(self, coordinator, voters):
        setup_voters(coordinator, voters)
        vote(coordinator, voters[0], 0, 1, 0, 1, signer=voters[1])
        coordinator.end_vote_period()
        assert coordinator.process_messages().errors[0] == "signature error"

    def test_undecryptable_is_empty(self, coordinator, voters):
        setup_voters(coordinator, voters)
        coordinator.push_message(Message([1] * 7, Keypair(77).pub_key))
        coordinator.end_vote_period()
        assert coordinator.process_messages().errors[0] == "empty command"

    def test_changing_vote_refunds(self, coordinator, voters):
        """같은 옵션에 다시 투표하면 이전 표가 환불된다."""
        setup_voters(coordinator, voters)
        for m in batch_gen_message(0, voters[0], coordinator.keypair.pub_key, [(1, 40), (1, 10)]):
            coordinator.push_message(m)
        coordinator.end_vote_period()
        result = coordinator.process_messages()
        assert result.accepted_count == 2
        leaf = coordinator.state_leaf(0)
        assert leaf.vo_tree.leaf(1) == 10
        assert leaf.balance == VOICE_CREDITS - 10
        assert leaf.pub_key == (0, 0)

    def test_reverse_batches(self, coordinator, voters):
        setup_voters(coordinator, voters)
        for i in range(7):
            coordinator.push_message(Message([i + 1] * 7, Keypair(300 + i).pub_key))
        coordinator.end_vote_period()
        first = coordinator.process_messages()
        assert first.circuit_input["batchStartHash"] == coordinator.msg_chain.hashes[5]
        assert first.circuit_input["batchEndHash"] == coordinator.msg_chain.hashes[7]
        assert coordinator.status == CoordinatorStatus.PROCESSING
        second = coordinator.process_messages()
        assert second.circuit_input["batchStartHash"] == 0
        assert coordinator.status == CoordinatorStatus.TALLYING


class TestBalance:
    def test_linear(self):
        params = RoundParameters()
        assert remaining_balance(params, 100, 0, 60) == 40
        assert remaining_balance(params, 40, 60, 100) == 0
        with pytest.raises(BalanceExceeded):
            remaining_balance(params, 40, 0, 41)

    def test_quadratic(self):
        params = RoundParameters(circuit_type=CircuitType.QUADRATIC)
        assert remaining_balance(params, 100, 0, 10) == 0
        assert remaining_balance(params, 0, 10, 6) == 64
        with pytest.raises(BalanceExceeded):
            remaining_balance(params, 100, 0, 11)

    def test_quadratic_round(self, coordinator_keypair, voters):
        coordinator = Coordinator(RoundParameters(circuit_type=CircuitType.QUADRATIC), coordinator_keypair)
        setup_voters(coordinator, voters)
        vote(coordinator, voters[0], 0, 1, 0, 10)
        vote(coordinator, voters[1], 1, 1, 0, 11)
        coordinator.end_vote_period()
        result = coordinator.process_messages()
        assert result.errors[:2] == [None, "insufficient balance"]
        assert coordinator.state_leaf(0).balance == 0


class TestDeactivate:
    def test_valid_deactivation(self, coordinator, voters):
        setup_voters(coordinator, voters)
        coordinator.push_deactivate_message(
            gen_deactivate_message(1, voters[1], coordinator.keypair.pub_key))
        result = coordinator.process_deactivate_messages(5, 2)

        assert result.errors[0] is None
        assert coordinator.active_state_tree.leaf(1) == 1
        assert coordinator.active_state_tree.leaf(0) == 0
        records = coordinator.fetch_deactivates()
        assert len(records) == 1
        c1, c2 = records[0][0:2], records[0][2:4]
        assert decrypt(coordinator.keypair.formatted_priv_key, c1, c2) % 2 == 0
        assert coordinator.deactivate_tree.root == result.circuit_input["newDeactivateRoot"]
        assert coordinator.processed_dmsg_count == 1

    def test_invalid_deactivation_records_odd_flag(self, coordinator, voters):
        """서명이 틀린 메시지도 비활성화 트리에 (홀수) 레코드를 남긴다."""
        setup_voters(coordinator, voters)
        coordinator.push_deactivate_message(
            gen_deactivate_message(0, voters[1], coordinator.keypair.pub_key))
        result = coordinator.process_deactivate_messages(5, 2)

        assert result.errors[0] == "signature error"
        assert coordinator.active_state_tree.leaf(0) == 0
        records = coordinator.fetch_deactivates()
        assert len(records) == 1
        assert decrypt(coordinator.keypair.formatted_priv_key, records[0][0:2], records[0][2:4]) % 2 == 1

    def test_index_beyond_snapshot(self, coordinator, voters):
        """게시 시점 이후에 가입한 인덱스는 무효다."""
        setup_voters(coordinator, voters)
        coordinator.push_deactivate_message(
            gen_deactivate_message(1, voters[1], coordinator.keypair.pub_key))
        result = coordinator.process_deactivate_messages(5, 1)
        assert result.errors[0] == "state leaf index overflow"

    def test_nothing_to_process(self, coordinator):
        with pytest.raises(ValueError):
            coordinator.process_deactivate_messages(5, 0)

    def test_deactivated_voter_cannot_vote(self, coordinator, voters):
        setup_voters(coordinator, voters)
        coordinator.push_deactivate_message(
            gen_deactivate_message(0, voters[0], coordinator.keypair.pub_key))
        coordinator.process_deactivate_messages(5, 2)
        vote(coordinator, voters[0], 0, 1, 0, 5)
        coordinator.end_vote_period()
        assert coordinator.process_messages().errors[0] == "inactive"

    def test_circuit_input_shape(self, coordinator, voters):
        setup_voters(coordinator, voters)
        coordinator.push_deactivate_message(
            gen_deactivate_message(0, voters[0], coordinator.keypair.pub_key))
        result = coordinator.process_deactivate_messages(5, 2)
        ci = result.circuit_input
        assert len(ci["msgs"]) == 5
        assert ci["newActiveState"] == [1, 2, 3, 4, 5]
        assert ci["deactivateIndex0"] == 0
        assert ci["inputHash"] == result.input_hash


class TestTally:
    def test_results(self, coordinator, voters):
        setup_voters(coordinator, voters, n=3)
        vote(coordinator, voters[0], 0, 1, 0, 4)
        vote(coordinator, voters[1], 1, 1, 0, 3)
        vote(coordinator, voters[2], 2, 1, 2, 9)
        coordinator.end_vote_period()
        coordinator.process_messages()
        result = coordinator.process_tally(tally_salt=8)

        decoded = [decode_result(r) for r in coordinator.results()]
        assert decoded[0] == (7, 25)
        assert decoded[2] == (9, 81)
        assert decoded[1] == (0, 0)
        assert result.new_commitment == commitment(coordinator.tally_results.root, 8)
        assert coordinator.status == CoordinatorStatus.ENDED

    def test_tally_requires_tallying(self, coordinator):
        with pytest.raises(ValueError):
            coordinator.process_tally()

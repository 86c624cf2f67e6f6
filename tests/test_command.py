"""
명령 프로토콜 테스트
=====================

테스트 범위:
  - packed 필드 패킹/언패킹과 범위 검사
  - gen_message → decrypt_message (서명 포함)
  - batch_gen_message 의 역순/nonce/마지막 키 (0,0)
  - 복호화 실패는 예외가 아니라 None
"""

import pytest

from maci.command import (
    UINT32, UINT96, ZERO_PUB_KEY,
    Message, VoteCommand, DeactivateCommand,
    pack_element, unpack_element,
    gen_message, batch_gen_message, gen_deactivate_message, decrypt_message,
)
from maci.crypto.eddsa import verify_signature
from maci.crypto.keys import Keypair


class TestPacking:
    def test_layout(self):
        packed = pack_element(1, 2, 3, 4, 5)
        assert packed == 1 + (2 << 32) + (3 << 64) + (4 << 96) + (5 << 192)

    def test_unpack(self):
        packed = pack_element(7, 0, 4, UINT96 - 1, 99)
        assert unpack_element(packed) == {
            "nonce": 7, "state_idx": 0, "vo_idx": 4, "new_votes": UINT96 - 1, "salt": 99,
        }

    @pytest.mark.parametrize("args", [
        (UINT32, 0, 0, 0),
        (0, -1, 0, 0),
        (0, 0, UINT32, 0),
        (0, 0, 0, UINT96),
    ])
    def test_out_of_range(self, args):
        with pytest.raises(ValueError):
            pack_element(*args)


class TestMessage:
    def test_length_checked(self):
        with pytest.raises(ValueError):
            Message([0] * 6, (0, 0))

    def test_empty(self):
        assert Message.empty().is_empty()
        assert Message.empty() == Message([0] * 7, (0, 0))


class TestGenAndDecrypt:
    def test_decrypts_to_signed_command(self, coordinator_keypair, voters):
        voter = voters[0]
        message = gen_message(3, voter, coordinator_keypair.pub_key,
                              nonce=1, vo_idx=2, new_votes=9, salt=12345)
        cmd = decrypt_message(message, coordinator_keypair)
        assert isinstance(cmd, VoteCommand)
        assert (cmd.state_idx, cmd.nonce, cmd.vo_idx, cmd.new_votes, cmd.salt) == (3, 1, 2, 9, 12345)
        assert cmd.new_pub_key == voter.pub_key
        assert verify_signature(cmd.msg_hash, cmd.signature, voter.pub_key)

    def test_command_class_selected(self, coordinator_keypair, voters):
        message = gen_deactivate_message(0, voters[0], coordinator_keypair.pub_key)
        cmd = decrypt_message(message, coordinator_keypair, DeactivateCommand)
        assert isinstance(cmd, DeactivateCommand)
        assert cmd.new_pub_key == ZERO_PUB_KEY
        assert (cmd.nonce, cmd.vo_idx, cmd.new_votes) == (1, 0, 0)

    def test_unknown_command_class(self, coordinator_keypair):
        with pytest.raises(ValueError):
            decrypt_message(Message.empty(), coordinator_keypair, object)

    def test_wrong_coordinator_gives_none(self, coordinator_keypair, voters):
        message = gen_message(0, voters[0], coordinator_keypair.pub_key, 1, 0, 1)
        assert decrypt_message(message, Keypair(999)) is None

    def test_tampered_gives_none(self, coordinator_keypair, voters):
        message = gen_message(0, voters[0], coordinator_keypair.pub_key, 1, 0, 1)
        ct = list(message.ciphertext)
        ct[0] += 1
        assert decrypt_message(Message(ct, message.enc_pub_key), coordinator_keypair) is None

    def test_empty_message_gives_none(self, coordinator_keypair):
        assert decrypt_message(Message.empty(), coordinator_keypair) is None

    def test_fresh_ephemeral_key_per_message(self, coordinator_keypair, voters):
        m1 = gen_message(0, voters[0], coordinator_keypair.pub_key, 1, 0, 1)
        m2 = gen_message(0, voters[0], coordinator_keypair.pub_key, 1, 0, 1)
        assert m1.enc_pub_key != m2.enc_pub_key


class TestBatchGen:
    def test_reverse_order_and_nonces(self, coordinator_keypair, voters):
        """메시지는 명령 N, ..., 1 순서로 나온다."""
        plan = [(0, 1), (1, 2), (2, 3)]
        messages = batch_gen_message(4, voters[1], coordinator_keypair.pub_key, plan)
        cmds = [decrypt_message(m, coordinator_keypair) for m in messages]
        assert [c.nonce for c in cmds] == [3, 2, 1]
        assert [(c.vo_idx, c.new_votes) for c in cmds] == [(2, 3), (1, 2), (0, 1)]
        assert all(c.state_idx == 4 for c in cmds)

    def test_last_command_zeroes_key(self, coordinator_keypair, voters):
        plan = [(0, 1), (1, 2)]
        messages = batch_gen_message(0, voters[1], coordinator_keypair.pub_key, plan)
        cmds = [decrypt_message(m, coordinator_keypair) for m in messages]
        assert cmds[0].new_pub_key == ZERO_PUB_KEY
        assert cmds[1].new_pub_key == voters[1].pub_key

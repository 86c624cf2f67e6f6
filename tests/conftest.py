import sys
import os
import pytest

# 프로젝트 루트를 sys.path에 추가
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from maci.config import RoundParameters, VotingTime
from maci.coordinator import Coordinator
from maci.crypto.keys import Keypair
from maci.round import Round


# ── 테스트 상수 ──
COORDINATOR_PRIV_KEY = 20231114
VOTER_PRIV_KEYS = [1111, 2222, 3333, 4444, 5555]

VOTING_START = 1000
VOTING_END = 2000
VOICE_CREDITS = 100


class FakeClock:
    """테스트가 시간을 직접 옮기는 시계."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class RecordingVerifier:
    """호출을 기록하고 미리 정한 결과를 돌려주는 검증기."""

    def __init__(self, accept=True):
        self.accept = accept
        self.calls = []

    def verify(self, step, proof, input_hash):
        self.calls.append((step, proof, input_hash))
        return self.accept

    def last_input_hash(self, step):
        for s, _, h in reversed(self.calls):
            if s == step:
                return h
        return None


class MirroredRound:
    """원장(Round)과 코디네이터를 같은 순서로 함께 움직이는 테스트 하니스.

    원장 쪽 증명은 RecordingVerifier가 받아 주므로, 테스트는 두 쪽이 계산한
    input_hash가 같은지를 확인할 수 있다.
    """

    def __init__(self, round_, coordinator, clock, verifier):
        self.round = round_
        self.coordinator = coordinator
        self.clock = clock
        self.verifier = verifier

    def sign_up(self, keypair):
        idx = self.round.sign_up(keypair.pub_key)
        assert self.coordinator.sign_up(keypair.pub_key, VOICE_CREDITS) == idx
        return idx

    def publish(self, messages):
        self.round.publish_message_batch(messages)
        for message in messages:
            self.coordinator.push_message(message)

    def publish_deactivate(self, message):
        self.round.publish_deactivate_message(message)
        self.coordinator.push_deactivate_message(message)

    def process_deactivates(self, size=None):
        if size is None:
            size = self.round.parameters.message_batch_size
        start = self.round.processed_dmsg_count
        end = min(start + size, self.round.dmsg_chain_length)
        result = self.coordinator.process_deactivate_messages(
            size, self.round.dmsg_num_sign_ups(end))
        self.round.process_deactivate_message(
            size, result.new_commitment, result.circuit_input["newDeactivateRoot"], "proof")
        assert self.verifier.last_input_hash("deactivate") == result.input_hash
        return result

    def add_new_key(self, new_keypair, add_key_input):
        idx = self.round.add_new_key(new_keypair.pub_key, add_key_input["nullifier"],
                                     add_key_input["d"], "proof")
        assert self.verifier.last_input_hash("add_new_key") == add_key_input["input_hash"]
        assert self.coordinator.sign_up(new_keypair.pub_key, VOICE_CREDITS,
                                        add_key_input["d"]) == idx
        return idx

    def end_voting(self):
        self.clock.now = VOTING_END + 1
        self.round.start_process_period()
        self.coordinator.end_vote_period()
        assert self.round.current_state_commitment == self.coordinator.state_commitment

    def process_all(self):
        results = []
        while self.round.processed_msg_count < self.round.msg_chain_length:
            result = self.coordinator.process_messages()
            self.round.process_message(result.new_commitment, "proof")
            assert self.verifier.last_input_hash("process") == result.input_hash
            results.append(result)
        self.round.stop_processing_period()
        return results

    def tally_all(self):
        while self.round.processed_user_count < self.round.num_sign_ups:
            result = self.coordinator.process_tally()
            self.round.process_tally(result.new_commitment, "proof")
            assert self.verifier.last_input_hash("tally") == result.input_hash
        return self.round.stop_tallying_period(self.coordinator.results(),
                                               self.coordinator.tally_salt)


# ─────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def coordinator_keypair():
    return Keypair(COORDINATOR_PRIV_KEY)


@pytest.fixture(scope="session")
def voters():
    """고정 개인키 투표자 5명."""
    return [Keypair(k) for k in VOTER_PRIV_KEYS]


@pytest.fixture
def params():
    return RoundParameters(voice_credit_amount=VOICE_CREDITS)


@pytest.fixture
def clock():
    return FakeClock(VOTING_START)


@pytest.fixture
def verifier():
    return RecordingVerifier()


@pytest.fixture
def voting_time():
    return VotingTime(VOTING_START, VOTING_END)


@pytest.fixture
def round_(params, coordinator_keypair, voting_time, verifier, clock):
    return Round(params, coordinator_keypair.pub_key, voting_time, verifier, clock=clock)


@pytest.fixture
def coordinator(params, coordinator_keypair):
    return Coordinator(params, coordinator_keypair)


@pytest.fixture
def mirrored(round_, coordinator, clock, verifier):
    return MirroredRound(round_, coordinator, clock, verifier)

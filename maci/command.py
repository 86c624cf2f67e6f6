"""
명령(Command) 프로토콜
=======================

**패킹** (필드 원소 하나):

  packed = nonce | stateIdx << 32 | voIdx << 64 | newVotes << 96 | salt << 192
           (32)    (32)             (32)           (96)             (56)

**서명과 암호화**:
  msgHash   = H(packed, newPubKey.x, newPubKey.y)
  plaintext = [packed, npk.x, npk.y, R8.x, R8.y, S]       ← 현재 키로 서명
  message   = PoseidonEncrypt(plaintext, ECDH(ephemeral, coordPub), nonce=0)

임시(ephemeral) 공개키는 메시지와 함께 체인에 올라가며, 코디네이터가
공유키를 다시 유도하는 데만 쓰인다.

**명령 종류** (닫힌 태그 유니온):
  VoteCommand        투표 체인의 명령
  DeactivateCommand  비활성화 체인의 명령 (newPubKey = (0, 0))

계획(plan)의 마지막 명령은 newPubKey를 (0, 0)으로 만들어 이후 명령을
받지 않는다.
"""

import secrets

from maci.crypto.field import to_field
from maci.crypto.poseidon import poseidon
from maci.crypto.keys import Keypair
from maci.crypto.eddsa import Signature, sign_message
from maci.crypto.cipher import poseidon_encrypt, poseidon_decrypt


UINT32 = 1 << 32
UINT96 = 1 << 96
SALT_BITS = 56

COMMAND_LENGTH = 6
MESSAGE_LENGTH = 7

ZERO_PUB_KEY = (0, 0)


# ─────────────────────────────────────────────────────────────────────
# 패킹
# ─────────────────────────────────────────────────────────────────────

def pack_element(nonce, state_idx, vo_idx, new_votes, salt=0):
    for name, value, bound in (("nonce", nonce, UINT32), ("state_idx", state_idx, UINT32),
                               ("vo_idx", vo_idx, UINT32), ("new_votes", new_votes, UINT96),
                               ("salt", salt, 1 << SALT_BITS)):
        if not 0 <= int(value) < bound:
            raise ValueError(f"{name} 값이 범위를 벗어났습니다: {value}")
    return (int(nonce)
            + (int(state_idx) << 32)
            + (int(vo_idx) << 64)
            + (int(new_votes) << 96)
            + (int(salt) << 192))


def unpack_element(packed):
    """packed → {nonce, state_idx, vo_idx, new_votes, salt}."""
    packed = int(packed)
    return {
        "nonce": packed % UINT32,
        "state_idx": (packed >> 32) % UINT32,
        "vo_idx": (packed >> 64) % UINT32,
        "new_votes": (packed >> 96) % UINT96,
        "salt": packed >> 192,
    }


def gen_command_salt():
    return secrets.randbits(SALT_BITS)


# ─────────────────────────────────────────────────────────────────────
# 메시지 / 명령
# ─────────────────────────────────────────────────────────────────────

class Message:
    """암호문 7개 + 임시 공개키."""

    def __init__(self, ciphertext, enc_pub_key):
        if len(ciphertext) != MESSAGE_LENGTH:
            raise ValueError(f"암호문은 {MESSAGE_LENGTH}개 원소여야 합니다: {len(ciphertext)}")
        self.ciphertext = [to_field(c) for c in ciphertext]
        self.enc_pub_key = (int(enc_pub_key[0]), int(enc_pub_key[1]))

    @classmethod
    def empty(cls):
        """배치 패딩용 빈 메시지. 복호화되지 않으므로 명령은 None이 된다."""
        return cls([0] * MESSAGE_LENGTH, (0, 0))

    def is_empty(self):
        return self.ciphertext[0] == 0

    def __eq__(self, other):
        return (isinstance(other, Message)
                and self.ciphertext == other.ciphertext
                and self.enc_pub_key == other.enc_pub_key)

    def __repr__(self):
        return f"Message(ciphertext[0]={self.ciphertext[0]}, enc_pub_key={self.enc_pub_key})"


class Command:
    """복호화된 명령. 직접 만들지 않고 VoteCommand/DeactivateCommand를 쓴다."""

    def __init__(self, nonce, state_idx, vo_idx, new_votes, new_pub_key, signature,
                 salt=0, packed=None):
        self.nonce = int(nonce)
        self.state_idx = int(state_idx)
        self.vo_idx = int(vo_idx)
        self.new_votes = int(new_votes)
        self.salt = int(salt)
        self.new_pub_key = (int(new_pub_key[0]), int(new_pub_key[1]))
        self.signature = signature
        # 복호화된 명령은 서명된 packed 값을 그대로 보존한다
        if packed is None:
            packed = pack_element(nonce, state_idx, vo_idx, new_votes, salt)
        self.packed = to_field(packed)

    @property
    def msg_hash(self):
        return poseidon([self.packed, self.new_pub_key[0], self.new_pub_key[1]])

    def to_plaintext(self):
        return [self.packed, self.new_pub_key[0], self.new_pub_key[1],
                self.signature.R8[0], self.signature.R8[1], self.signature.S]

    def __repr__(self):
        return (f"{type(self).__name__}(nonce={self.nonce}, state_idx={self.state_idx}, "
                f"vo_idx={self.vo_idx}, new_votes={self.new_votes})")


class VoteCommand(Command):
    pass


class DeactivateCommand(Command):
    pass


def command_from_plaintext(plaintext, command_cls):
    if len(plaintext) != COMMAND_LENGTH:
        raise ValueError(f"명령 평문은 {COMMAND_LENGTH}개 원소여야 합니다: {len(plaintext)}")
    fields = unpack_element(plaintext[0])
    return command_cls(
        nonce=fields["nonce"],
        state_idx=fields["state_idx"],
        vo_idx=fields["vo_idx"],
        new_votes=fields["new_votes"],
        salt=fields["salt"],
        packed=plaintext[0],
        new_pub_key=(plaintext[1], plaintext[2]),
        signature=Signature((plaintext[3], plaintext[4]), plaintext[5]),
    )


# ─────────────────────────────────────────────────────────────────────
# 생성 / 복호화
# ─────────────────────────────────────────────────────────────────────

def gen_message(state_idx, signer, coord_pub_key, nonce, vo_idx, new_votes,
                new_pub_key=None, enc_keypair=None, salt=None):
    """서명된 명령 하나를 코디네이터에게 암호화한다.

    Args:
        state_idx: 투표자 상태 리프 인덱스
        signer: 현재 키의 Keypair
        coord_pub_key: 코디네이터 공개키
        nonce, vo_idx, new_votes: 명령 내용
        new_pub_key: 교체할 공개키 (기본값: signer의 공개키 유지)
        enc_keypair: 임시 키 (기본값: 새로 생성)
        salt: 56비트 솔트 (기본값: 무작위)

    Returns:
        Message
    """
    if enc_keypair is None:
        enc_keypair = Keypair()
    if salt is None:
        salt = gen_command_salt()
    if new_pub_key is None:
        new_pub_key = signer.pub_key

    packed = pack_element(nonce, state_idx, vo_idx, new_votes, salt)
    msg_hash = poseidon([packed, new_pub_key[0], new_pub_key[1]])
    signature = sign_message(signer.priv_key, msg_hash)

    plaintext = [packed, new_pub_key[0], new_pub_key[1],
                 signature.R8[0], signature.R8[1], signature.S]
    shared_key = enc_keypair.gen_ecdh_shared_key(coord_pub_key)
    ciphertext = poseidon_encrypt(plaintext, shared_key, 0)
    return Message(ciphertext, enc_keypair.pub_key)


def batch_gen_message(state_idx, signer, coord_pub_key, plan):
    """투표 계획 [(vo_idx, new_votes), ...]을 메시지 목록으로 만든다.

    명령 i는 nonce i + 1을 갖는다. 메시지는 역순(명령 N, ..., 명령 1)으로
    만들어지므로, 체인을 거꾸로 접는 코디네이터는 nonce 순서대로 보게 된다.
    마지막 명령(nonce N)은 공개키를 (0, 0)으로 바꾼다.
    """
    messages = []
    for i in range(len(plan) - 1, -1, -1):
        vo_idx, new_votes = plan[i]
        is_last_cmd = i == len(plan) - 1
        messages.append(gen_message(
            state_idx, signer, coord_pub_key,
            nonce=i + 1,
            vo_idx=vo_idx,
            new_votes=new_votes,
            new_pub_key=ZERO_PUB_KEY if is_last_cmd else signer.pub_key,
        ))
    return messages


def gen_deactivate_message(state_idx, signer, coord_pub_key):
    """비활성화 메시지: 계획 [(0, 0)] 과 같다."""
    return batch_gen_message(state_idx, signer, coord_pub_key, [(0, 0)])[0]


def decrypt_message(message, coordinator, command_cls=VoteCommand):
    """메시지를 명령으로 복호화한다. 실패하면 None.

    Args:
        message: Message
        coordinator: 코디네이터 Keypair
        command_cls: VoteCommand 또는 DeactivateCommand
    """
    if command_cls not in (VoteCommand, DeactivateCommand):
        raise ValueError(f"알 수 없는 명령 종류: {command_cls}")
    try:
        shared_key = coordinator.gen_ecdh_shared_key(message.enc_pub_key)
        plaintext = poseidon_decrypt(message.ciphertext, shared_key, 0, COMMAND_LENGTH)
        return command_from_plaintext(plaintext, command_cls)
    except ValueError:
        return None

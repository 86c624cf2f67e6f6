"""
재무작위화 가능한 ElGamal 테스트
==================================

테스트 범위:
  - 일반 암호화/복호화 (x_increment), 재무작위화 후 평문 보존
  - 홀짝 플래그 암호화와 재무작위화 후 홀짝 보존
  - 가입 시점 (0,0) 암호문이 짝수(활성)로 복호화되는지
"""

import pytest

from maci.crypto.elgamal import (
    ElGamalCiphertext, encrypt, encrypt_odevity, decrypt, rerandomize,
    gen_random_babyjub_value,
)
from maci.crypto.babyjub import SUB_ORDER
from maci.crypto.field import SNARK_FIELD_SIZE
from maci.crypto.keys import Keypair


# ─────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="module")
def keypair():
    return Keypair(55555)


class TestEncrypt:
    def test_round_trip(self, keypair):
        ct = encrypt(123456, keypair.pub_key, 99)
        assert decrypt(keypair.formatted_priv_key, ct.c1, ct.c2, ct.x_increment) == 123456

    @pytest.mark.parametrize("plaintext", [0, 1, 2 ** 200, SNARK_FIELD_SIZE - 1])
    @pytest.mark.parametrize("r1, r2", [(99, 77), (5, 2 ** 100)])
    def test_rerandomize_keeps_plaintext(self, keypair, plaintext, r1, r2):
        """재무작위화한 암호문도 원래 x_increment로 같은 평문이 나온다."""
        ct = encrypt(plaintext, keypair.pub_key, r1)
        re = rerandomize(keypair.pub_key, ct.c1, ct.c2, r2)
        assert (re.c1, re.c2) != (ct.c1, ct.c2)
        assert decrypt(keypair.formatted_priv_key, re.c1, re.c2, ct.x_increment) == plaintext

    def test_random_value_range(self):
        value = gen_random_babyjub_value()
        assert 0 < value < SUB_ORDER

    def test_as_list(self):
        ct = ElGamalCiphertext((1, 2), (3, 4))
        assert ct.as_list() == [1, 2, 3, 4]


class TestOdevity:
    @pytest.mark.parametrize("is_odd", [True, False])
    def test_parity_preserved(self, keypair, is_odd):
        ct = encrypt_odevity(is_odd, keypair.pub_key, 31)
        assert decrypt(keypair.formatted_priv_key, ct.c1, ct.c2) % 2 == int(is_odd)

    @pytest.mark.parametrize("is_odd", [True, False])
    def test_rerandomize_preserves_parity(self, keypair, is_odd):
        ct = encrypt_odevity(is_odd, keypair.pub_key, 31)
        re = rerandomize(keypair.pub_key, ct.c1, ct.c2, 77)
        assert re != ct
        assert decrypt(keypair.formatted_priv_key, re.c1, re.c2) % 2 == int(is_odd)

    def test_deterministic_with_fixed_random(self, keypair):
        assert encrypt_odevity(False, keypair.pub_key, 8) == encrypt_odevity(False, keypair.pub_key, 8)

    def test_zero_ciphertext_decrypts_even(self, keypair):
        """가입 시점의 d1 = d2 = (0, 0)은 활성(짝수)이다."""
        assert decrypt(keypair.formatted_priv_key, (0, 0), (0, 0)) % 2 == 0

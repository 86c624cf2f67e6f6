"""
키 유도 / ECDH 테스트
"""

import pytest

from maci.crypto.babyjub import BASE8, SUB_ORDER, in_subgroup, mul_point_escalar
from maci.crypto.field import SNARK_FIELD_SIZE
from maci.crypto.keys import (
    Keypair, gen_keypair, gen_priv_key, gen_random_salt,
    format_priv_key_for_babyjub, gen_pub_key, gen_ecdh_shared_key,
    pack_pub_key, unpack_pub_key,
)


class TestKeyDerivation:
    def test_formatted_key_is_deterministic(self):
        assert format_priv_key_for_babyjub(12345) == format_priv_key_for_babyjub(12345)

    def test_formatted_key_below_subgroup_order(self):
        assert 0 <= format_priv_key_for_babyjub(987654321) < SUB_ORDER

    def test_pub_key_in_subgroup(self):
        pub = gen_pub_key(12345)
        assert in_subgroup(pub)
        assert pub == mul_point_escalar(BASE8, format_priv_key_for_babyjub(12345))

    def test_random_values_in_field(self):
        assert 0 <= gen_random_salt() < SNARK_FIELD_SIZE
        assert 0 <= gen_priv_key() < SNARK_FIELD_SIZE

    def test_keypair_fields(self):
        kp = Keypair(777)
        assert kp.pub_key == gen_pub_key(777)
        assert kp.formatted_priv_key == format_priv_key_for_babyjub(777)

    def test_keypair_equality(self):
        assert gen_keypair(5) == Keypair(5)
        assert Keypair(5) != Keypair(6)

    def test_random_keypairs_differ(self):
        assert Keypair().pub_key != Keypair().pub_key


class TestEcdh:
    def test_shared_key_symmetric(self):
        """shared(a, B) == shared(b, A)"""
        a, b = Keypair(101), Keypair(202)
        assert gen_ecdh_shared_key(a.priv_key, b.pub_key) == gen_ecdh_shared_key(b.priv_key, a.pub_key)

    def test_method_matches_function(self):
        a, b = Keypair(101), Keypair(202)
        assert a.gen_ecdh_shared_key(b.pub_key) == gen_ecdh_shared_key(a.priv_key, b.pub_key)


class TestPubKeyPacking:
    def test_round_trip(self):
        pub = Keypair(31337).pub_key
        assert unpack_pub_key(pack_pub_key(pub)) == pub

    def test_invalid_packed_key(self):
        with pytest.raises(ValueError):
            unpack_pub_key(SNARK_FIELD_SIZE)

"""
공개 입력 해시 패킹 테스트
"""

import hashlib

import pytest

from maci.crypto.field import SNARK_FIELD_SIZE
from maci.input_hash import (
    compute_input_hash, pack_process_vals, pack_tally_vals,
    process_messages_input_hash, tally_input_hash,
    deactivate_input_hash, add_key_input_hash,
)


def sha256_ints(values):
    data = b"".join(int(v).to_bytes(32, "big") for v in values)
    return int.from_bytes(hashlib.sha256(data).digest(), "big") % SNARK_FIELD_SIZE


class TestInputHash:
    def test_matches_manual_sha256(self):
        assert compute_input_hash([1, 2, 3]) == sha256_ints([1, 2, 3])

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            compute_input_hash([1 << 256])
        with pytest.raises(ValueError):
            compute_input_hash([-1])

    def test_process_vals(self):
        assert pack_process_vals(5, 3) == 5 + (3 << 32)
        assert pack_process_vals(5, 3, is_quadratic=True) == 5 + (3 << 32) + (1 << 64)

    def test_tally_vals(self):
        assert pack_tally_vals(2, 7) == 2 + (7 << 32)

    def test_field_order(self):
        assert process_messages_input_hash(1, 2, 3, 4, 5, 6, 7) == sha256_ints([1, 2, 3, 4, 5, 6, 7])
        assert tally_input_hash(1, 2, 3, 4) == sha256_ints([1, 2, 3, 4])
        assert deactivate_input_hash(1, 2, 3, 4, 5, 6, 7) == sha256_ints([1, 2, 3, 4, 5, 6, 7])
        assert add_key_input_hash(1, 2, 3, [4, 5, 6, 7]) == sha256_ints([1, 2, 3, 4, 5, 6, 7])

    def test_add_key_d_length(self):
        with pytest.raises(ValueError):
            add_key_input_hash(1, 2, 3, [4, 5, 6])

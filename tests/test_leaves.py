from __future__ import annotations

import pytest

from tapvault.errors import InputValidationError
from tapvault.hashing import tagged_hash
from tapvault.leaves import (
    OP_CHECKLOCKTIMEVERIFY,
    OP_CHECKSIG,
    OP_CHECKSIGADD,
    OP_DROP,
    OP_NUMEQUAL,
    ScriptLeaf,
    cltv_script,
    decode_cltv_height,
    encode_script_number,
    leaf_hash,
    push_number,
    threshold_script,
)

KEYS = [bytes([i]) * 32 for i in (1, 2, 3)]


def test_threshold_script_layout() -> None:
    script = threshold_script(KEYS, 2)

    expected = (
        b"\x20" + KEYS[0] + bytes([OP_CHECKSIG])
        + b"\x20" + KEYS[1] + bytes([OP_CHECKSIGADD])
        + b"\x20" + KEYS[2] + bytes([OP_CHECKSIGADD])
        + b"\x52" + bytes([OP_NUMEQUAL])
    )
    assert script == expected


def test_threshold_out_of_range_is_rejected() -> None:
    with pytest.raises(InputValidationError):
        threshold_script(KEYS, 4)
    with pytest.raises(InputValidationError):
        threshold_script([b"\x02" * 33], 1)


def test_cltv_script_layout_and_height_roundtrip() -> None:
    script = cltv_script(102_000, KEYS[0])

    assert script[:4] == b"\x03" + encode_script_number(102_000)
    assert script[4:6] == bytes([OP_CHECKLOCKTIMEVERIFY, OP_DROP])
    assert script[6:] == b"\x20" + KEYS[0] + bytes([OP_CHECKSIG])
    assert decode_cltv_height(script) == 102_000


def test_script_numbers_are_minimal() -> None:
    assert push_number(0) == b"\x00"
    assert push_number(16) == b"\x60"
    assert encode_script_number(0x80) == b"\x80\x00"
    assert encode_script_number(-1) == b"\x81"
    assert decode_cltv_height(cltv_script(7, KEYS[0])) == 7


def test_cltv_rejects_timestamp_locktimes() -> None:
    with pytest.raises(InputValidationError):
        cltv_script(500_000_000, KEYS[0])


def test_leaf_hash_commits_version_and_length() -> None:
    script = b"\x51"
    assert leaf_hash(script) == tagged_hash("TapLeaf", b"\xc0\x01\x51")
    assert leaf_hash(ScriptLeaf(script)) == leaf_hash(script)
    assert leaf_hash(ScriptLeaf(script, 0xC2)) != leaf_hash(script)


def test_identical_scripts_are_equal_leaves() -> None:
    assert ScriptLeaf(b"\xac") == ScriptLeaf(bytearray(b"\xac"))
    with pytest.raises(InputValidationError):
        ScriptLeaf(b"\xac", leaf_version=0xC1)


def test_bip341_single_leaf_hash() -> None:
    script = bytes.fromhex(
        "20d85a959b0290bf19bb89ed43c916be835475d013da4b362117393e25a48229b8ac"
    )
    assert leaf_hash(script).hex() == (
        "5b75adecf53548f3ec6ad7d78383bf84cc57b55a3127c72b9a2481752dd88b21"
    )


@pytest.mark.parametrize(
    "script",
    [
        bytes([0x57, OP_CHECKSIG]),
        bytes([0x00, OP_CHECKSIG]),
        b"\x03\x70\x8e\x01" + bytes([OP_DROP, OP_CHECKLOCKTIMEVERIFY]),
    ],
)
def test_decode_requires_cltv_drop_after_height(script: bytes) -> None:
    with pytest.raises(InputValidationError):
        decode_cltv_height(script)


def test_decode_small_heights() -> None:
    suffix = bytes([OP_CHECKLOCKTIMEVERIFY, OP_DROP]) + b"\x20" + KEYS[0] + bytes([OP_CHECKSIG])
    assert decode_cltv_height(b"\x00" + suffix) == 0
    assert decode_cltv_height(b"\x57" + suffix) == 7
    assert decode_cltv_height(cltv_script(16, KEYS[0])) == 16

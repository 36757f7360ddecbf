"""Script leaves, their committed hashes and the two leaf templates.

A leaf is committed as ``TapLeaf(leaf_version || compact_size(len) || script)``.
The compact size prefix must match the transaction serializer byte for byte,
otherwise the commitment checked by a verifier differs from the one built here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .errors import InputValidationError
from .hashing import TAG_TAPLEAF, ser_compact_size, tagged_hash

logger = logging.getLogger(__name__)

TAPSCRIPT_LEAF_VERSION = 0xC0
MAX_SCRIPT_ELEMENT_SIZE = 520
LOCKTIME_THRESHOLD = 500_000_000

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_1NEGATE = 0x4F
OP_1 = 0x51
OP_DROP = 0x75
OP_NUMEQUAL = 0x9C
OP_CHECKSIG = 0xAC
OP_CHECKLOCKTIMEVERIFY = 0xB1
OP_CHECKSIGADD = 0xBA


@dataclass(frozen=True)
class ScriptLeaf:
    """An immutable tapscript leaf. Two leaves with equal bytes are equal."""

    script: bytes
    leaf_version: int = TAPSCRIPT_LEAF_VERSION

    def __post_init__(self) -> None:
        if not isinstance(self.script, (bytes, bytearray)):
            raise InputValidationError("Leaf script must be bytes")
        if self.leaf_version & 1 or not 0 <= self.leaf_version <= 0xFE:
            raise InputValidationError(
                f"Leaf version must be an even byte, got {self.leaf_version:#x}"
            )
        object.__setattr__(self, "script", bytes(self.script))


def leaf_hash(leaf: ScriptLeaf | bytes) -> bytes:
    """Compute the TapLeaf hash for *leaf* (raw bytes use the tapscript version)."""

    if not isinstance(leaf, ScriptLeaf):
        leaf = ScriptLeaf(leaf)
    return tagged_hash(
        TAG_TAPLEAF,
        bytes([leaf.leaf_version]) + ser_compact_size(len(leaf.script)) + leaf.script,
    )


def push_data(data: bytes) -> bytes:
    """Encode *data* as the smallest script push that carries it."""

    length = len(data)
    if length > MAX_SCRIPT_ELEMENT_SIZE:
        raise ValueError(f"Script element of {length} bytes exceeds {MAX_SCRIPT_ELEMENT_SIZE}")
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data


def encode_script_number(value: int) -> bytes:
    """Minimal little-endian sign-magnitude encoding used by script numbers."""

    if value == 0:
        return b""
    negative = value < 0
    magnitude = abs(value)
    out = bytearray()
    while magnitude:
        out.append(magnitude & 0xFF)
        magnitude >>= 8
    if out[-1] & 0x80:
        out.append(0x80 if negative else 0x00)
    elif negative:
        out[-1] |= 0x80
    return bytes(out)


def push_number(value: int) -> bytes:
    """Push *value* using ``OP_0``/``OP_1NEGATE``/``OP_1..OP_16`` where possible."""

    if value == 0:
        return bytes([OP_0])
    if value == -1:
        return bytes([OP_1NEGATE])
    if 1 <= value <= 16:
        return bytes([OP_1 + value - 1])
    return push_data(encode_script_number(value))


def _check_x_only(keys: Sequence[bytes]) -> None:
    for index, key in enumerate(keys):
        if len(key) != 32:
            raise InputValidationError(f"Leaf key #{index} must be x-only (32 bytes), got {len(key)}")


def threshold_script(x_only_keys: Sequence[bytes], threshold: int) -> bytes:
    """Build ``<k0> CHECKSIG <k1> CHECKSIGADD ... <threshold> NUMEQUAL``.

    Key 0 is checked first, so its signature must sit on top of the stack when
    the script starts executing.
    """

    if not x_only_keys:
        raise InputValidationError("Threshold leaf requires at least one key")
    _check_x_only(x_only_keys)
    if not 1 <= threshold <= len(x_only_keys):
        raise InputValidationError(
            f"Threshold {threshold} is outside 1..{len(x_only_keys)}"
        )
    script = bytearray(push_data(x_only_keys[0]))
    script.append(OP_CHECKSIG)
    for key in x_only_keys[1:]:
        script += push_data(key)
        script.append(OP_CHECKSIGADD)
    script += push_number(threshold)
    script.append(OP_NUMEQUAL)
    return bytes(script)


def cltv_script(lock_height: int, x_only_key: bytes) -> bytes:
    """Build ``<lock_height> CHECKLOCKTIMEVERIFY DROP <key> CHECKSIG``."""

    if not 0 <= lock_height < LOCKTIME_THRESHOLD:
        raise InputValidationError(
            f"Lock height must be a block height below {LOCKTIME_THRESHOLD}, got {lock_height}"
        )
    _check_x_only([x_only_key])
    return (
        push_number(lock_height)
        + bytes([OP_CHECKLOCKTIMEVERIFY, OP_DROP])
        + push_data(x_only_key)
        + bytes([OP_CHECKSIG])
    )


def decode_cltv_height(script: bytes) -> int:
    """Read the lock height back out of a script built by :func:`cltv_script`."""

    if not script:
        raise InputValidationError("Empty script has no lock height")
    opcode = script[0]
    if opcode == OP_0:
        value, push_len = 0, 1
    elif OP_1 <= opcode <= OP_1 + 15:
        value, push_len = opcode - OP_1 + 1, 1
    elif 1 <= opcode <= 5 and len(script) >= 1 + opcode:
        raw = script[1 : 1 + opcode]
        if raw[-1] & 0x80:
            raise InputValidationError("Lock height must not be negative")
        value, push_len = int.from_bytes(raw, "little"), 1 + opcode
    else:
        raise InputValidationError("Script does not start with a lock height push")
    if script[push_len : push_len + 2] != bytes([OP_CHECKLOCKTIMEVERIFY, OP_DROP]):
        raise InputValidationError("Script is not a CHECKLOCKTIMEVERIFY leaf")
    return value

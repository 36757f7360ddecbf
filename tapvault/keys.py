"""Public key representations accepted by the commitment pipeline.

A key arrives either as a 33-byte SEC1 compressed point, whose prefix byte
fixes the parity of its Y coordinate, or as a 32-byte x-only key whose parity
is unknown. The two shapes are kept distinct so the one place that needs a
definite parity (the control block header) can ask for it explicitly through
:func:`to_compressed`.
"""

from __future__ import annotations

import binascii
from dataclasses import dataclass
from typing import Union

from .errors import InputValidationError

EVEN_PREFIX = 0x02
ODD_PREFIX = 0x03


@dataclass(frozen=True)
class CompressedKey:
    """33-byte compressed public key (``0x02``/``0x03`` prefix + x)."""

    data: bytes

    def __post_init__(self) -> None:
        if len(self.data) != 33:
            raise InputValidationError(
                f"Compressed public key must be 33 bytes, got {len(self.data)}"
            )
        if self.data[0] not in (EVEN_PREFIX, ODD_PREFIX):
            raise InputValidationError(
                "Invalid compressed pubkey prefix (must be 0x02 or 0x03)"
            )

    @property
    def x_only(self) -> bytes:
        return self.data[1:]

    @property
    def parity(self) -> int:
        return 1 if self.data[0] == ODD_PREFIX else 0


@dataclass(frozen=True)
class XOnlyKey:
    """32-byte x-only public key with no parity information."""

    data: bytes

    def __post_init__(self) -> None:
        if len(self.data) != 32:
            raise InputValidationError(f"X-only public key must be 32 bytes, got {len(self.data)}")

    @property
    def x_only(self) -> bytes:
        return self.data


PublicKey = Union[CompressedKey, XOnlyKey]


def parse_public_key(raw: bytes | PublicKey) -> PublicKey:
    """Classify raw key bytes as compressed (33 bytes) or x-only (32 bytes)."""

    if isinstance(raw, (CompressedKey, XOnlyKey)):
        return raw
    if not isinstance(raw, (bytes, bytearray)):
        raise InputValidationError(f"Public key must be bytes, got {type(raw).__name__}")
    raw = bytes(raw)
    if len(raw) == 33:
        return CompressedKey(raw)
    if len(raw) == 32:
        return XOnlyKey(raw)
    raise InputValidationError(f"Invalid pubkey length (must be 32 or 33 bytes), got {len(raw)}")


def parse_public_key_hex(value: str) -> PublicKey:
    """Parse a hex-encoded public key into its typed representation."""

    if not isinstance(value, str):
        raise InputValidationError("Pubkey must be a hex string")
    try:
        raw = binascii.unhexlify(value.strip())
    except (binascii.Error, ValueError) as exc:
        raise InputValidationError("Pubkey must be a valid hex string") from exc
    return parse_public_key(raw)


def to_compressed(key: bytes | PublicKey, parity: int | None = None) -> CompressedKey:
    """Resolve *key* to a compressed key with a definite parity bit.

    Compressed keys are returned unchanged; passing a conflicting *parity* for
    one is an error. X-only keys take *parity* when supplied and default to
    even (``0x02``) otherwise, which is the BIP340 convention for lifting an
    x coordinate.
    """

    parsed = parse_public_key(key)
    if parity not in (None, 0, 1):
        raise InputValidationError(f"Parity must be 0 or 1, got {parity}")
    if isinstance(parsed, CompressedKey):
        if parity is not None and parity != parsed.parity:
            raise InputValidationError("Supplied parity conflicts with the compressed key prefix")
        return parsed
    prefix = ODD_PREFIX if parity == 1 else EVEN_PREFIX
    return CompressedKey(bytes([prefix]) + parsed.data)

"""BIP340-style tagged hashing and the compact size integer encoding."""

from __future__ import annotations

import hashlib

TAG_TAPLEAF = "TapLeaf"
TAG_TAPBRANCH = "TapBranch"
TAG_TAPTWEAK = "TapTweak"


def tagged_hash(tag: str, data: bytes) -> bytes:
    """Compute ``SHA256(SHA256(tag) || SHA256(tag) || data)``.

    Tagged hashing domain-separates the different hash uses of Taproot so a
    leaf hash can never be confused with a branch or tweak hash.

    Args:
        tag: Domain separation tag (e.g. ``"TapLeaf"``, ``"TapTweak"``)
        data: Message to hash

    Returns:
        32-byte digest
    """
    tag_hash = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_hash + tag_hash + data).digest()


def ser_compact_size(n: int) -> bytes:
    """Serialize an integer as a Bitcoin compact size."""
    if n < 0:
        raise ValueError(f"Compact size cannot encode a negative value: {n}")
    if n < 253:
        return bytes([n])
    elif n <= 0xFFFF:
        return b'\xfd' + n.to_bytes(2, 'little')
    elif n <= 0xFFFFFFFF:
        return b'\xfe' + n.to_bytes(4, 'little')
    else:
        return b'\xff' + n.to_bytes(8, 'little')

"""Merkle commitment over an ordered list of script leaves.

Adjacent hashes are paired level by level. When a level has an odd number of
nodes the trailing node is carried up unchanged rather than duplicated. For the
two-leaf trees built by :mod:`tapvault.commitment` this matches BIP341 exactly;
for larger trees it is only one of several valid shapes, so callers that need a
specific shape must build it themselves from :func:`branch_hash`.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from .errors import InputValidationError
from .hashing import TAG_TAPBRANCH, tagged_hash
from .leaves import ScriptLeaf, leaf_hash

logger = logging.getLogger(__name__)


def branch_hash(left: bytes, right: bytes) -> bytes:
    """Compute the TapBranch hash of two children, smaller child first."""

    if len(left) != 32 or len(right) != 32:
        raise InputValidationError("Branch children must be 32-byte hashes")
    if right < left:
        left, right = right, left
    return tagged_hash(TAG_TAPBRANCH, left + right)


def merkle_levels(hashes: Sequence[bytes]) -> List[List[bytes]]:
    """Return every level of the tree, leaves first and the root level last."""

    if not hashes:
        raise InputValidationError("Cannot build a merkle tree without leaves")
    levels = [list(hashes)]
    current = levels[0]
    while len(current) > 1:
        nxt = []
        for i in range(0, len(current), 2):
            if i + 1 == len(current):
                nxt.append(current[i])
            else:
                nxt.append(branch_hash(current[i], current[i + 1]))
        levels.append(nxt)
        current = nxt
    return levels


def merkle_root_from_hashes(hashes: Sequence[bytes]) -> bytes:
    """Reduce leaf hashes to a root. A single hash yields an empty root."""

    if len(hashes) == 1:
        return b""
    return merkle_levels(hashes)[-1][0]


def merkle_root(leaves: Sequence[ScriptLeaf | bytes]) -> bytes:
    """Compute the merkle root committed to by the taproot output key.

    Args:
        leaves: Ordered script leaves (raw bytes use the tapscript leaf version)

    Returns:
        32-byte root, or ``b""`` when the tree has exactly one leaf

    Raises:
        InputValidationError: If *leaves* is empty
    """

    if not leaves:
        raise InputValidationError("Script tree must contain at least one leaf")
    hashes = [leaf_hash(leaf) for leaf in leaves]
    for index, value in enumerate(hashes):
        logger.debug("Leaf %d hash %s", index, value.hex())
    return merkle_root_from_hashes(hashes)

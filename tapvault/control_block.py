"""Control blocks proving that a leaf belongs to the committed script tree.

Layout: ``(leaf_version | parity) || internal_x || sibling_1 .. sibling_m``
with siblings ordered from the leaf towards the root.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from .errors import InputValidationError, TaprootError
from .keys import CompressedKey, PublicKey, to_compressed
from .leaves import TAPSCRIPT_LEAF_VERSION, ScriptLeaf, leaf_hash
from .merkle import branch_hash, merkle_levels
from .tweak import tweak_public

logger = logging.getLogger(__name__)

CONTROL_BLOCK_BASE_SIZE = 33
CONTROL_NODE_SIZE = 32
CONTROL_MAX_NODE_COUNT = 128


def build_control_block(
    internal_key: CompressedKey | PublicKey | bytes,
    leaves: Sequence[ScriptLeaf | bytes],
    target_index: int,
) -> bytes:
    """Derive the control block for the leaf at *target_index*.

    The tree is walked with the same pairing as :func:`tapvault.merkle.merkle_root`.
    At each level the sibling of the target's node is recorded; a node carried
    up unpaired records nothing for that level.

    Args:
        internal_key: Internal key; x-only input is lifted to even parity
        leaves: Ordered script leaves, exactly as committed
        target_index: Index of the leaf being spent

    Returns:
        ``33 + 32*m`` bytes where ``m`` is the number of recorded siblings
    """

    key = to_compressed(internal_key)
    if not leaves:
        raise InputValidationError("Script tree must contain at least one leaf")
    if not 0 <= target_index < len(leaves):
        raise InputValidationError(
            f"Leaf index {target_index} out of range for {len(leaves)} leaves"
        )
    leaf_objs = [leaf if isinstance(leaf, ScriptLeaf) else ScriptLeaf(leaf) for leaf in leaves]
    header = bytes([leaf_objs[target_index].leaf_version | key.parity])

    path = []
    idx = target_index
    for level in merkle_levels([leaf_hash(leaf) for leaf in leaf_objs])[:-1]:
        sibling = idx + 1 if idx % 2 == 0 else idx - 1
        if sibling < len(level):
            path.append(level[sibling])
        idx //= 2
    logger.debug("Control block for leaf %d has depth %d", target_index, len(path))
    return header + key.x_only + b"".join(path)


@dataclass(frozen=True)
class ControlBlock:
    leaf_version: int
    parity: int
    internal_x: bytes
    path: Tuple[bytes, ...]

    @classmethod
    def parse(cls, data: bytes) -> "ControlBlock":
        """Split a serialized control block into its fields."""

        size = len(data)
        if size < CONTROL_BLOCK_BASE_SIZE or (size - CONTROL_BLOCK_BASE_SIZE) % CONTROL_NODE_SIZE:
            raise InputValidationError(f"Invalid control block length {size}")
        depth = (size - CONTROL_BLOCK_BASE_SIZE) // CONTROL_NODE_SIZE
        if depth > CONTROL_MAX_NODE_COUNT:
            raise InputValidationError(
                f"Control block path of {depth} nodes exceeds {CONTROL_MAX_NODE_COUNT}"
            )
        path = tuple(
            data[CONTROL_BLOCK_BASE_SIZE + i * CONTROL_NODE_SIZE :][:CONTROL_NODE_SIZE]
            for i in range(depth)
        )
        return cls(
            leaf_version=data[0] & 0xFE,
            parity=data[0] & 1,
            internal_x=data[1:33],
            path=path,
        )

    @property
    def depth(self) -> int:
        return len(self.path)

    def serialize(self) -> bytes:
        return bytes([self.leaf_version | self.parity]) + self.internal_x + b"".join(self.path)


def root_from_control_block(control_block: bytes | ControlBlock, script: bytes) -> bytes:
    """Recompute the merkle root implied by *control_block* for *script*."""

    cb = control_block if isinstance(control_block, ControlBlock) else ControlBlock.parse(control_block)
    node = leaf_hash(ScriptLeaf(script, cb.leaf_version))
    for sibling in cb.path:
        node = branch_hash(node, sibling)
    return node


def verify_control_block(
    control_block: bytes,
    script: bytes,
    output_key: bytes,
    merkle_root: bytes | None = None,
) -> bool:
    """Check that *control_block* proves *script* is committed in *output_key*.

    When *merkle_root* is given the recomputed root must equal it as well.
    A control block with an empty path proves a single-leaf tree, whose
    committed root is empty. The header parity describes the internal key,
    so only the x coordinate of the output key is compared.
    """

    cb = ControlBlock.parse(control_block)
    if cb.leaf_version != TAPSCRIPT_LEAF_VERSION:
        logger.debug("Unexpected leaf version %#x", cb.leaf_version)
    root = root_from_control_block(cb, script) if cb.path else b""
    if merkle_root is not None and root != merkle_root:
        return False
    try:
        expected_x, _ = tweak_public(cb.internal_x, root)
    except TaprootError as exc:
        logger.warning("Control block verification failed: %s", exc)
        return False
    return expected_x == output_key

"""Commitment pipeline producing the :class:`TaprootInfo` aggregate.

Three public keys become a two-leaf script tree:

* leaf 0: ``<x0> CHECKSIG <x1> CHECKSIGADD <x2> CHECKSIGADD <k> NUMEQUAL``
* leaf 1: ``<lock_height> CHECKLOCKTIMEVERIFY DROP <x0> CHECKSIG``

The internal key is tweaked with the tree's merkle root to give the output key
and address. The aggregate carries public data only; private keys are passed
to the spend planner per request and never stored here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

from .address import encode_taproot_address, network_hrp, output_script
from .control_block import build_control_block
from .errors import InputValidationError
from .keys import CompressedKey, PublicKey, parse_public_key, parse_public_key_hex, to_compressed
from .leaves import ScriptLeaf, cltv_script, leaf_hash, threshold_script
from .merkle import merkle_root
from .tweak import tweak_public

logger = logging.getLogger(__name__)

THRESHOLD_LEAF_INDEX = 0
TIMELOCK_LEAF_INDEX = 1
DEFAULT_LOCK_DELTA = 2000
DEFAULT_THRESHOLD = 2
REQUIRED_KEY_COUNT = 3


@dataclass(frozen=True)
class TaprootInfo:
    """Immutable description of one taproot output and its script tree."""

    internal_key: CompressedKey
    leaves: Tuple[ScriptLeaf, ...]
    leaf_keys: Tuple[bytes, ...]
    threshold: int
    lock_height: int
    merkle_root: bytes
    output_key: bytes
    output_parity: int
    network: str = "testnet"

    @property
    def internal_x(self) -> bytes:
        return self.internal_key.x_only

    @property
    def threshold_leaf(self) -> ScriptLeaf:
        return self.leaves[THRESHOLD_LEAF_INDEX]

    @property
    def timelock_leaf(self) -> ScriptLeaf:
        return self.leaves[TIMELOCK_LEAF_INDEX]

    @property
    def script_pubkey(self) -> bytes:
        return output_script(self.output_key)

    @property
    def address(self) -> str:
        return encode_taproot_address(self.output_key, self.network)

    def control_block(self, leaf_index: int) -> bytes:
        return build_control_block(self.internal_key, self.leaves, leaf_index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "network": self.network,
            "internal_key": self.internal_key.data.hex(),
            "internal_x": self.internal_x.hex(),
            "output_key": self.output_key.hex(),
            "output_parity": self.output_parity,
            "script_pubkey": self.script_pubkey.hex(),
            "merkle_root": self.merkle_root.hex(),
            "lock_height": self.lock_height,
            "threshold": self.threshold,
            "leaves": [
                {
                    "index": index,
                    "script": leaf.script.hex(),
                    "leaf_version": leaf.leaf_version,
                    "leaf_hash": leaf_hash(leaf).hex(),
                    "control_block": self.control_block(index).hex(),
                }
                for index, leaf in enumerate(self.leaves)
            ],
        }


def _parse_key(raw: bytes | str | PublicKey) -> PublicKey:
    if isinstance(raw, str):
        return parse_public_key_hex(raw)
    return parse_public_key(raw)


def create_taproot_info(
    pubkeys: Sequence[bytes | str | PublicKey],
    current_height: int,
    *,
    network: str = "testnet",
    lock_delta: int = DEFAULT_LOCK_DELTA,
    threshold: int = DEFAULT_THRESHOLD,
    internal_key: bytes | str | PublicKey | None = None,
    internal_parity: int | None = None,
) -> TaprootInfo:
    """Build the threshold/timelock script tree and its output key.

    Args:
        pubkeys: Exactly three keys, compressed (33 bytes) or x-only (32 bytes),
            as bytes or hex
        current_height: Chain height the lock is measured from
        network: ``mainnet``, ``testnet``, ``signet`` or ``regtest``
        lock_delta: Blocks added to *current_height* for the timelock leaf
        threshold: Signatures required by the threshold leaf
        internal_key: Internal key; defaults to the first of *pubkeys*
        internal_parity: Parity for an x-only internal key (default even)

    Raises:
        InputValidationError: On a wrong key count, malformed key or bad height
    """

    if len(pubkeys) != REQUIRED_KEY_COUNT:
        raise InputValidationError(
            f"Exactly {REQUIRED_KEY_COUNT} public keys are required, got {len(pubkeys)}"
        )
    if current_height < 0 or lock_delta < 0:
        raise InputValidationError("Chain height and lock delta must be non-negative")
    network_hrp(network)

    keys = [_parse_key(key) for key in pubkeys]
    leaf_keys = tuple(key.x_only for key in keys)
    internal = to_compressed(
        _parse_key(internal_key) if internal_key is not None else keys[0],
        internal_parity,
    )
    lock_height = current_height + lock_delta

    leaves = (
        ScriptLeaf(threshold_script(leaf_keys, threshold)),
        ScriptLeaf(cltv_script(lock_height, leaf_keys[0])),
    )
    root = merkle_root(leaves)
    output_key, parity = tweak_public(internal.x_only, root)

    info = TaprootInfo(
        internal_key=internal,
        leaves=leaves,
        leaf_keys=leaf_keys,
        threshold=threshold,
        lock_height=lock_height,
        merkle_root=root,
        output_key=output_key,
        output_parity=parity,
        network=network,
    )
    logger.info(
        "Created taproot output %s (lock height %d, merkle root %s)",
        info.address,
        lock_height,
        root.hex(),
    )
    return info

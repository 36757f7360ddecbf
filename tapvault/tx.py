"""Transaction skeleton handed to the external transaction codec.

Serialization and the BIP341 signature digest are not implemented here; a
:class:`TransactionCodec` supplies them. The planner only needs to read and
adjust locktime and sequence fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Protocol, Sequence, Tuple

SEQUENCE_FINAL = 0xFFFFFFFF
SEQUENCE_LOCKTIME_ENABLED = SEQUENCE_FINAL - 1
SIGHASH_DEFAULT = 0x00


@dataclass(frozen=True)
class TxInput:
    txid: str
    vout: int
    sequence: int = SEQUENCE_FINAL


@dataclass(frozen=True)
class TxOutput:
    value: int
    script_pubkey: bytes


@dataclass(frozen=True)
class TxSkeleton:
    """Unsigned transaction fields the spend planner needs to see."""

    inputs: Tuple[TxInput, ...]
    outputs: Tuple[TxOutput, ...] = field(default_factory=tuple)
    locktime: int = 0
    version: int = 2

    def with_locktime(self, locktime: int) -> "TxSkeleton":
        return replace(self, locktime=locktime)

    def with_sequence(self, input_index: int, sequence: int) -> "TxSkeleton":
        inputs = list(self.inputs)
        inputs[input_index] = replace(inputs[input_index], sequence=sequence)
        return replace(self, inputs=tuple(inputs))


class TransactionCodec(Protocol):
    def compute_sighash(
        self,
        tx: TxSkeleton,
        input_index: int,
        leaf_scripts: Sequence[bytes],
        spent_values: Sequence[int],
        sighash_type: int = SIGHASH_DEFAULT,
    ) -> bytes:
        """Return the 32-byte digest to sign.

        An empty *leaf_scripts* requests the key-path digest; a single leaf
        script requests the script-path digest for that leaf.
        """
        ...

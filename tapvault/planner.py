"""Spend planning for the three ways a :class:`TaprootInfo` output can be spent.

Each request moves ``REQUESTED -> VALIDATED -> WITNESS_BUILT`` or stops at
``REJECTED``. Library errors raised while planning are turned into a
:class:`Rejected` result so a batch of requests keeps going after one fails.

Threshold signatures are supplied in key order: slot ``i`` holds the signature
for ``leaf_keys[i]`` or ``None`` for a key that does not sign. The leaf checks
key 0 first and ``OP_CHECKSIG`` consumes the top stack element, so slots are
emitted in reverse order: ``[slot2, slot1, slot0, leaf_script, control_block]``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from .commitment import THRESHOLD_LEAF_INDEX, TIMELOCK_LEAF_INDEX, TaprootInfo
from .ecc import ECEngine, Secp256k1Engine
from .errors import (
    ErrorKind,
    InputValidationError,
    PreconditionFailure,
    SigningFailure,
    TaprootError,
)
from .leaves import LOCKTIME_THRESHOLD
from .tweak import scoped_tweaked_key
from .tx import (
    SEQUENCE_FINAL,
    SEQUENCE_LOCKTIME_ENABLED,
    SIGHASH_DEFAULT,
    TransactionCodec,
    TxSkeleton,
)

logger = logging.getLogger(__name__)

SCHNORR_SIGNATURE_SIZE = 64


class PlanState(str, Enum):
    REQUESTED = "requested"
    VALIDATED = "validated"
    WITNESS_BUILT = "witness_built"
    REJECTED = "rejected"


class SpendKind(str, Enum):
    THRESHOLD = "script_path_threshold"
    TIMELOCK = "script_path_timelock"
    KEY_PATH = "key_path"


@dataclass(frozen=True)
class ThresholdSpendRequest:
    """Script-path spend of the k-of-n leaf with externally produced signatures.

    Every signature is checked against the key in its slot, so the digest the
    signers signed is required: pass it as *sighash*, or pass *tx* and let the
    planner's codec compute the script-path digest for the threshold leaf.
    """

    signatures: Tuple[Optional[bytes], ...]
    sighash: Optional[bytes] = None
    tx: Optional[TxSkeleton] = None
    input_index: int = 0
    spent_values: Tuple[int, ...] = ()
    sighash_type: int = SIGHASH_DEFAULT


@dataclass(frozen=True)
class TimelockSpendRequest:
    """Script-path spend of the CLTV leaf.

    Supply either *signature* or *private_key*. A finished signature is only
    accepted for a transaction that already carries a height locktime of at
    least the lock height and a non-final sequence on the spending input. With
    *private_key* the planner sets those fields itself, asks the codec for the
    digest and signs it.
    """

    tx: TxSkeleton
    current_height: int
    input_index: int = 0
    signature: Optional[bytes] = None
    private_key: Optional[bytes] = field(default=None, repr=False)
    spent_values: Tuple[int, ...] = ()
    sighash_type: int = SIGHASH_DEFAULT


@dataclass(frozen=True)
class KeyPathSpendRequest:
    tx: TxSkeleton
    internal_private_key: bytes = field(repr=False)
    input_index: int = 0
    spent_values: Tuple[int, ...] = ()
    sighash_type: int = SIGHASH_DEFAULT


SpendRequest = Union[ThresholdSpendRequest, TimelockSpendRequest, KeyPathSpendRequest]


@dataclass(frozen=True)
class WitnessDescriptor:
    """Ordered witness stack for one input, bottom element first."""

    stack: Tuple[bytes, ...]

    def __len__(self) -> int:
        return len(self.stack)

    def hex(self) -> List[str]:
        return [item.hex() for item in self.stack]


@dataclass(frozen=True)
class WitnessBuilt:
    kind: SpendKind
    witness: WitnessDescriptor
    tx: Optional[TxSkeleton] = None
    state: PlanState = PlanState.WITNESS_BUILT

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    kind: Optional[SpendKind]
    failed_in: PlanState
    error_kind: ErrorKind
    reason: str
    state: PlanState = PlanState.REJECTED

    @property
    def ok(self) -> bool:
        return False


PlanResult = Union[WitnessBuilt, Rejected]


def _kind_of(request: SpendRequest) -> SpendKind:
    if isinstance(request, ThresholdSpendRequest):
        return SpendKind.THRESHOLD
    if isinstance(request, TimelockSpendRequest):
        return SpendKind.TIMELOCK
    if isinstance(request, KeyPathSpendRequest):
        return SpendKind.KEY_PATH
    raise InputValidationError(f"Unsupported spend request {type(request).__name__}")


def _check_signature(signature: bytes, label: str) -> None:
    if len(signature) != SCHNORR_SIGNATURE_SIZE:
        raise PreconditionFailure(
            f"{label} must be a {SCHNORR_SIGNATURE_SIZE}-byte Schnorr signature, got {len(signature)} bytes"
        )


class SpendPlanner:
    """Validate spend requests against a :class:`TaprootInfo` and build witnesses.

    The planner holds no per-request state; one instance can plan any number
    of requests for the same output, including concurrently.
    """

    def __init__(
        self,
        info: TaprootInfo,
        *,
        engine: ECEngine | None = None,
        codec: TransactionCodec | None = None,
    ) -> None:
        self.info = info
        self.engine = engine or Secp256k1Engine()
        self.codec = codec

    def plan(self, request: SpendRequest) -> PlanResult:
        """Plan a single request, returning a result rather than raising."""

        state = PlanState.REQUESTED
        try:
            kind = _kind_of(request)
        except InputValidationError as exc:
            logger.warning("Rejected spend request: %s", exc)
            return Rejected(None, state, exc.kind, str(exc))
        try:
            if kind is SpendKind.THRESHOLD:
                slots = self._validate_threshold(request)
                state = PlanState.VALIDATED
                result = self._build_threshold(slots)
            elif kind is SpendKind.TIMELOCK:
                tx = self._validate_timelock(request)
                state = PlanState.VALIDATED
                result = self._build_timelock(request, tx)
            else:
                self._validate_key_path(request)
                state = PlanState.VALIDATED
                result = self._build_key_path(request)
        except TaprootError as exc:
            logger.warning("Rejected %s spend in state %s: %s", kind.value, state.value, exc)
            return Rejected(kind, state, exc.kind, str(exc))
        logger.info("Built %s witness with %d stack items", kind.value, len(result.witness))
        return result

    def plan_many(self, requests: Sequence[SpendRequest]) -> List[PlanResult]:
        """Plan every request; a rejection does not stop the remaining ones."""

        return [self.plan(request) for request in requests]

    # Threshold leaf ------------------------------------------------------

    def _validate_threshold(self, request: ThresholdSpendRequest) -> List[bytes]:
        keys = self.info.leaf_keys
        if len(request.signatures) != len(keys):
            raise PreconditionFailure(
                f"Threshold spend needs one slot per key ({len(keys)}), got {len(request.signatures)}"
            )
        slots = [sig or b"" for sig in request.signatures]
        present = [index for index, sig in enumerate(slots) if sig]
        if len(present) != self.info.threshold:
            raise PreconditionFailure(
                f"Threshold leaf requires exactly {self.info.threshold} signatures, got {len(present)}"
            )
        for index in present:
            _check_signature(slots[index], f"Signature for key #{index}")

        digest = self._threshold_digest(request)
        for index in present:
            if self.engine.schnorr_verify(digest, slots[index], keys[index]):
                continue
            for other, key in enumerate(keys):
                if other != index and self.engine.schnorr_verify(digest, slots[index], key):
                    raise PreconditionFailure(
                        f"Signature in slot #{index} belongs to key #{other}; "
                        "signatures must be supplied in key order"
                    )
            raise PreconditionFailure(f"Signature in slot #{index} does not verify")
        return slots

    def _threshold_digest(self, request: ThresholdSpendRequest) -> bytes:
        if request.sighash is not None:
            if len(request.sighash) != 32:
                raise InputValidationError(
                    f"Sighash must be 32 bytes, got {len(request.sighash)}"
                )
            return request.sighash
        if request.tx is None or self.codec is None:
            raise PreconditionFailure(
                "Checking threshold signature order needs a sighash, "
                "or a transaction and a transaction codec"
            )
        if not 0 <= request.input_index < len(request.tx.inputs):
            raise InputValidationError(f"Input index {request.input_index} out of range")
        return self.codec.compute_sighash(
            request.tx,
            request.input_index,
            [self.info.leaves[THRESHOLD_LEAF_INDEX].script],
            request.spent_values,
            request.sighash_type,
        )

    def _build_threshold(self, slots: List[bytes]) -> WitnessBuilt:
        leaf = self.info.leaves[THRESHOLD_LEAF_INDEX]
        stack = tuple(reversed(slots)) + (
            leaf.script,
            self.info.control_block(THRESHOLD_LEAF_INDEX),
        )
        return WitnessBuilt(SpendKind.THRESHOLD, WitnessDescriptor(stack))

    # Timelock leaf -------------------------------------------------------

    def _validate_timelock(self, request: TimelockSpendRequest) -> TxSkeleton:
        lock_height = self.info.lock_height
        if request.current_height < lock_height:
            raise PreconditionFailure(
                f"Lock height {lock_height} not reached (current height {request.current_height})"
            )
        if not 0 <= request.input_index < len(request.tx.inputs):
            raise InputValidationError(f"Input index {request.input_index} out of range")
        if (request.signature is None) == (request.private_key is None):
            raise PreconditionFailure(
                "Timelock leaf requires exactly one signature or one signing key"
            )
        tx = request.tx
        if tx.locktime >= LOCKTIME_THRESHOLD:
            raise PreconditionFailure(
                f"Locktime {tx.locktime} is a timestamp; the timelock leaf needs a block height"
            )
        sequence = tx.inputs[request.input_index].sequence

        if request.signature is not None:
            _check_signature(request.signature, "Timelock signature")
            # the signature already commits to these fields
            if tx.locktime < lock_height:
                raise PreconditionFailure(
                    f"Transaction locktime {tx.locktime} is below lock height {lock_height}"
                )
            if sequence >= SEQUENCE_FINAL:
                raise PreconditionFailure(
                    f"Input #{request.input_index} has a final sequence, which disables locktime"
                )
            return tx

        if self.codec is None:
            raise PreconditionFailure("Signing the timelock leaf requires a transaction codec")
        if tx.locktime < lock_height:
            tx = tx.with_locktime(lock_height)
        if sequence >= SEQUENCE_FINAL:
            tx = tx.with_sequence(request.input_index, SEQUENCE_LOCKTIME_ENABLED)
        return tx

    def _build_timelock(self, request: TimelockSpendRequest, tx: TxSkeleton) -> WitnessBuilt:
        leaf = self.info.leaves[TIMELOCK_LEAF_INDEX]
        signature = request.signature
        if signature is None:
            digest = self.codec.compute_sighash(
                tx, request.input_index, [leaf.script], request.spent_values, request.sighash_type
            )
            signature = self._sign(digest, request.private_key)
        stack = (signature, leaf.script, self.info.control_block(TIMELOCK_LEAF_INDEX))
        return WitnessBuilt(SpendKind.TIMELOCK, WitnessDescriptor(stack), tx=tx)

    # Key path ------------------------------------------------------------

    def _validate_key_path(self, request: KeyPathSpendRequest) -> None:
        if self.codec is None:
            raise PreconditionFailure("Key-path spend requires a transaction codec")
        if not 0 <= request.input_index < len(request.tx.inputs):
            raise InputValidationError(f"Input index {request.input_index} out of range")
        if len(request.internal_private_key) != 32:
            raise InputValidationError("Internal private key must be 32 bytes")

    def _build_key_path(self, request: KeyPathSpendRequest) -> WitnessBuilt:
        # empty leaf list selects the key-path digest
        digest = self.codec.compute_sighash(
            request.tx, request.input_index, [], request.spent_values, request.sighash_type
        )
        with scoped_tweaked_key(
            request.internal_private_key,
            self.info.internal_x,
            self.info.merkle_root,
            self.engine,
        ) as material:
            signature = self._sign(digest, bytes(material.private_key))
        return WitnessBuilt(SpendKind.KEY_PATH, WitnessDescriptor((signature,)), tx=request.tx)

    def _sign(self, digest: bytes, private_key: bytes) -> bytes:
        try:
            signature = self.engine.schnorr_sign(digest, private_key)
        except ValueError as exc:
            raise SigningFailure(f"Schnorr signing failed: {exc}") from exc
        if len(signature) != SCHNORR_SIGNATURE_SIZE:
            raise SigningFailure(f"Signer returned {len(signature)} bytes instead of 64")
        return signature

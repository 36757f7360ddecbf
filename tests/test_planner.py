from __future__ import annotations

import hashlib

import pytest

from tapvault.commitment import create_taproot_info
from tapvault.ecc import InvalidScalar, Secp256k1Engine
from tapvault.errors import ErrorKind
from tapvault.planner import (
    KeyPathSpendRequest,
    PlanState,
    Rejected,
    SpendKind,
    SpendPlanner,
    ThresholdSpendRequest,
    TimelockSpendRequest,
    WitnessBuilt,
)
from tapvault.tx import SEQUENCE_FINAL, SEQUENCE_LOCKTIME_ENABLED, TxInput, TxOutput, TxSkeleton

ENGINE = Secp256k1Engine()
PRIVATE_KEYS = [i.to_bytes(32, "big") for i in (1, 2, 3)]
PUBKEYS = [ENGINE.point_from_scalar(key) for key in PRIVATE_KEYS]
HEIGHT = 800_000
DIGEST = hashlib.sha256(b"spend").digest()


class StubCodec:
    def __init__(self) -> None:
        self.calls = []

    def compute_sighash(self, tx, input_index, leaf_scripts, spent_values, sighash_type=0):
        self.calls.append((tx, input_index, list(leaf_scripts), list(spent_values), sighash_type))
        return DIGEST


def _tx() -> TxSkeleton:
    return TxSkeleton(
        inputs=(TxInput("aa" * 32, 0),),
        outputs=(TxOutput(90_000, b"\x51\x20" + b"\x00" * 32),),
    )


def _planner(codec: StubCodec | None = None, engine=None) -> SpendPlanner:
    info = create_taproot_info(PUBKEYS, HEIGHT, lock_delta=100)
    return SpendPlanner(info, engine=engine, codec=codec)


def _sign(index: int) -> bytes:
    return ENGINE.schnorr_sign(DIGEST, PRIVATE_KEYS[index])


def test_threshold_two_of_three_builds_reversed_witness() -> None:
    planner = _planner()
    sig0, sig2 = _sign(0), _sign(2)

    result = planner.plan(ThresholdSpendRequest((sig0, None, sig2), sighash=DIGEST))

    assert isinstance(result, WitnessBuilt)
    assert result.state is PlanState.WITNESS_BUILT
    stack = result.witness.stack
    assert stack[:3] == (sig2, b"", sig0)
    assert stack[3] == planner.info.threshold_leaf.script
    assert stack[4] == planner.info.control_block(0)
    assert len(stack[4]) == 65


@pytest.mark.parametrize(
    "slots",
    [
        (0, None, None),
        (None, None, None),
        (0, 1, 2),
    ],
)
def test_threshold_requires_exact_signature_count(slots) -> None:
    signatures = tuple(None if slot is None else _sign(slot) for slot in slots)

    result = _planner().plan(ThresholdSpendRequest(signatures, sighash=DIGEST))

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.PRECONDITION
    assert result.failed_in is PlanState.REQUESTED


def test_threshold_detects_swapped_signatures() -> None:
    result = _planner().plan(
        ThresholdSpendRequest((_sign(1), _sign(0), None), sighash=DIGEST)
    )

    assert isinstance(result, Rejected)
    assert "key order" in result.reason


def test_threshold_rejects_malformed_signature() -> None:
    result = _planner().plan(
        ThresholdSpendRequest((b"\x01" * 63, _sign(1), None), sighash=DIGEST)
    )

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.PRECONDITION


def test_threshold_without_digest_is_rejected() -> None:
    result = _planner().plan(ThresholdSpendRequest((_sign(1), _sign(0), None)))

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.PRECONDITION
    assert "sighash" in result.reason


def test_threshold_tx_without_codec_is_rejected() -> None:
    result = _planner().plan(ThresholdSpendRequest((_sign(0), _sign(1), None), tx=_tx()))

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.PRECONDITION


def test_threshold_digest_from_codec() -> None:
    codec = StubCodec()
    planner = _planner(codec)

    result = planner.plan(
        ThresholdSpendRequest((None, _sign(1), _sign(2)), tx=_tx(), spent_values=(100_000,))
    )

    assert isinstance(result, WitnessBuilt)
    tx, input_index, leaf_scripts, spent_values, _ = codec.calls[0]
    assert tx == _tx()
    assert input_index == 0
    assert leaf_scripts == [planner.info.threshold_leaf.script]
    assert spent_values == [100_000]


def test_threshold_swapped_signatures_caught_through_codec() -> None:
    result = _planner(StubCodec()).plan(
        ThresholdSpendRequest((_sign(1), _sign(0), None), tx=_tx())
    )

    assert isinstance(result, Rejected)
    assert "key order" in result.reason


def test_timelock_before_lock_height_is_rejected() -> None:
    planner = _planner()
    lock_height = planner.info.lock_height

    result = planner.plan(
        TimelockSpendRequest(_tx(), current_height=lock_height - 1, signature=b"\x01" * 64)
    )

    assert isinstance(result, Rejected)
    assert result.kind is SpendKind.TIMELOCK
    assert result.error_kind is ErrorKind.PRECONDITION


def test_timelock_sets_locktime_and_sequence() -> None:
    codec = StubCodec()
    planner = _planner(codec)
    lock_height = planner.info.lock_height

    result = planner.plan(
        TimelockSpendRequest(
            _tx(), current_height=lock_height, private_key=PRIVATE_KEYS[0], spent_values=(100_000,)
        )
    )

    assert isinstance(result, WitnessBuilt)
    assert result.tx.locktime == lock_height
    assert result.tx.inputs[0].sequence == SEQUENCE_LOCKTIME_ENABLED
    assert result.tx.inputs[0].sequence < SEQUENCE_FINAL
    signature, script, control_block = result.witness.stack
    assert script == planner.info.timelock_leaf.script
    assert control_block == planner.info.control_block(1)
    assert ENGINE.schnorr_verify(DIGEST, signature, planner.info.leaf_keys[0])
    tx, _, leaf_scripts, spent_values, _ = codec.calls[0]
    assert tx == result.tx
    assert leaf_scripts == [script]
    assert spent_values == [100_000]


def test_timelock_signature_route_keeps_transaction() -> None:
    planner = _planner()
    lock_height = planner.info.lock_height
    tx = _tx().with_locktime(lock_height).with_sequence(0, SEQUENCE_LOCKTIME_ENABLED)
    signature = _sign(0)

    result = planner.plan(
        TimelockSpendRequest(tx, current_height=lock_height, signature=signature)
    )

    assert isinstance(result, WitnessBuilt)
    assert result.tx == tx
    assert result.witness.stack[0] == signature


def test_timelock_signature_route_rejects_low_locktime() -> None:
    planner = _planner()
    lock_height = planner.info.lock_height
    tx = _tx().with_locktime(lock_height - 1).with_sequence(0, SEQUENCE_LOCKTIME_ENABLED)

    result = planner.plan(
        TimelockSpendRequest(tx, current_height=lock_height, signature=_sign(0))
    )

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.PRECONDITION
    assert "below lock height" in result.reason


def test_timelock_signature_route_rejects_final_sequence() -> None:
    planner = _planner()
    lock_height = planner.info.lock_height
    tx = _tx().with_locktime(lock_height)
    assert tx.inputs[0].sequence == SEQUENCE_FINAL

    result = planner.plan(
        TimelockSpendRequest(tx, current_height=lock_height, signature=_sign(0))
    )

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.PRECONDITION
    assert "final sequence" in result.reason


@pytest.mark.parametrize("use_signature", [True, False])
def test_timelock_rejects_timestamp_locktime(use_signature: bool) -> None:
    planner = _planner(StubCodec())
    lock_height = planner.info.lock_height
    tx = _tx().with_locktime(600_000_000).with_sequence(0, SEQUENCE_LOCKTIME_ENABLED)
    if use_signature:
        request = TimelockSpendRequest(tx, current_height=lock_height, signature=_sign(0))
    else:
        request = TimelockSpendRequest(tx, current_height=lock_height, private_key=PRIVATE_KEYS[0])

    result = planner.plan(request)

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.PRECONDITION
    assert "timestamp" in result.reason


def test_timelock_needs_exactly_one_signature_source() -> None:
    planner = _planner(StubCodec())
    request = TimelockSpendRequest(_tx(), current_height=HEIGHT + 500)

    result = planner.plan(request)

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.PRECONDITION


def test_key_path_signs_for_output_key() -> None:
    codec = StubCodec()
    planner = _planner(codec)

    result = planner.plan(KeyPathSpendRequest(_tx(), PRIVATE_KEYS[0], spent_values=(100_000,)))

    assert isinstance(result, WitnessBuilt)
    assert len(result.witness) == 1
    (signature,) = result.witness.stack
    assert len(signature) == 64
    assert ENGINE.schnorr_verify(DIGEST, signature, planner.info.output_key)
    assert codec.calls[0][2] == []


def test_key_path_without_codec_is_rejected() -> None:
    result = _planner().plan(KeyPathSpendRequest(_tx(), PRIVATE_KEYS[0]))

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.PRECONDITION


class BrokenEngine(Secp256k1Engine):
    def scalar_add(self, a: bytes, b: bytes) -> bytes:
        raise InvalidScalar("Scalar sum is zero")


def test_crypto_failure_is_distinguished() -> None:
    planner = _planner(StubCodec(), engine=BrokenEngine())

    result = planner.plan(KeyPathSpendRequest(_tx(), PRIVATE_KEYS[0]))

    assert isinstance(result, Rejected)
    assert result.error_kind is ErrorKind.CRYPTO
    assert result.failed_in is PlanState.VALIDATED


def test_batch_continues_after_rejection() -> None:
    planner = _planner(StubCodec())
    requests = [
        ThresholdSpendRequest((_sign(0), None, None), sighash=DIGEST),
        ThresholdSpendRequest((_sign(0), _sign(1), None), sighash=DIGEST),
        KeyPathSpendRequest(_tx(), PRIVATE_KEYS[0]),
        "not a request",
    ]

    results = planner.plan_many(requests)

    assert [result.ok for result in results] == [False, True, True, False]
    assert results[3].kind is None

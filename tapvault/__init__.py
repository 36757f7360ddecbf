"""Taproot output with a threshold leaf and a timelock leaf."""

from .commitment import TaprootInfo, create_taproot_info
from .control_block import ControlBlock, build_control_block, verify_control_block
from .errors import (
    CryptoFailure,
    ErrorKind,
    InputValidationError,
    InvalidTweak,
    PreconditionFailure,
    SigningFailure,
    TaprootError,
)
from .hashing import tagged_hash
from .keys import CompressedKey, XOnlyKey, parse_public_key, to_compressed
from .leaves import ScriptLeaf, leaf_hash
from .merkle import branch_hash, merkle_root
from .planner import (
    KeyPathSpendRequest,
    PlanState,
    Rejected,
    SpendKind,
    SpendPlanner,
    ThresholdSpendRequest,
    TimelockSpendRequest,
    WitnessBuilt,
    WitnessDescriptor,
)
from .tweak import TweakedKeyMaterial, tap_tweak, tweak_private, tweak_public

__all__ = [
    "TaprootInfo",
    "create_taproot_info",
    "ControlBlock",
    "build_control_block",
    "verify_control_block",
    "CryptoFailure",
    "ErrorKind",
    "InputValidationError",
    "InvalidTweak",
    "PreconditionFailure",
    "SigningFailure",
    "TaprootError",
    "tagged_hash",
    "CompressedKey",
    "XOnlyKey",
    "parse_public_key",
    "to_compressed",
    "ScriptLeaf",
    "leaf_hash",
    "branch_hash",
    "merkle_root",
    "KeyPathSpendRequest",
    "PlanState",
    "Rejected",
    "SpendKind",
    "SpendPlanner",
    "ThresholdSpendRequest",
    "TimelockSpendRequest",
    "WitnessBuilt",
    "WitnessDescriptor",
    "TweakedKeyMaterial",
    "tap_tweak",
    "tweak_private",
    "tweak_public",
]

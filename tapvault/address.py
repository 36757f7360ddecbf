"""Segwit v1 (bech32m) addresses and scriptPubKeys for taproot outputs."""

from __future__ import annotations

from typing import Dict

from bech32 import decode as _bech32_decode
from bech32 import encode as _bech32_encode

from .errors import InputValidationError

NETWORK_HRPS: Dict[str, str] = {
    "mainnet": "bc",
    "testnet": "tb",
    "signet": "tb",
    "regtest": "bcrt",
}

OP_1 = 0x51
TAPROOT_WITNESS_VERSION = 1


def network_hrp(network: str) -> str:
    try:
        return NETWORK_HRPS[network]
    except KeyError as exc:
        raise InputValidationError(
            f"Unknown network {network!r}; expected one of {', '.join(sorted(NETWORK_HRPS))}"
        ) from exc


def output_script(output_key: bytes) -> bytes:
    """Build the P2TR scriptPubKey ``OP_1 <32-byte output key>``."""

    if len(output_key) != 32:
        raise InputValidationError(f"Output key must be 32 bytes, got {len(output_key)}")
    return bytes([OP_1, 0x20]) + output_key


def encode_taproot_address(output_key: bytes, network: str = "testnet") -> str:
    """Encode an x-only output key as a bech32m address for *network*."""

    if len(output_key) != 32:
        raise InputValidationError(f"Output key must be 32 bytes, got {len(output_key)}")
    address = _bech32_encode(network_hrp(network), TAPROOT_WITNESS_VERSION, list(output_key))
    if address is None:
        raise InputValidationError("Bech32m encoding failed")
    return address


def decode_taproot_address(address: str, network: str = "testnet") -> bytes:
    """Return the 32-byte output key carried by a taproot *address*."""

    version, program = _bech32_decode(network_hrp(network), address)
    if version is None or program is None:
        raise InputValidationError(f"Invalid bech32m address for {network}: {address}")
    if version != TAPROOT_WITNESS_VERSION or len(program) != 32:
        raise InputValidationError(
            f"Expected witness v1 + 32-byte program, got v{version} + {len(program)} bytes"
        )
    return bytes(program)

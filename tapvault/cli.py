"""Command-line interface for building and inspecting tapvault outputs."""

from __future__ import annotations

import argparse
import binascii
import json
import logging
import sys
from typing import Any, Sequence

from .commitment import create_taproot_info
from .config import ConfigurationError, load_config, set_default_config_path
from .control_block import ControlBlock, verify_control_block
from .errors import TaprootError
from .rpc_client import NodeRPCClient, RPCError, RPCTransportError
from .tweak import tap_tweak, tweak_public

logger = logging.getLogger(__name__)

COMPACT_JSON_SEPARATORS = (",", ":")


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _parse_hex(raw: str, *, name: str) -> bytes:
    try:
        return binascii.unhexlify(raw.strip())
    except (binascii.Error, ValueError) as exc:
        raise CLIError(f"{name} must be a hex string") from exc


def _add_tree_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--pubkey",
        dest="pubkeys",
        action="append",
        required=True,
        help="Hex public key (33-byte compressed or 32-byte x-only); pass exactly three",
    )
    height = parser.add_mutually_exclusive_group(required=True)
    height.add_argument("--height", type=int, help="Current chain height")
    height.add_argument(
        "--from-node",
        action="store_true",
        help="Read the current chain height from the configured node",
    )
    parser.add_argument("--internal-key", help="Hex internal key (defaults to the first pubkey)")
    parser.add_argument("--network", help="mainnet, testnet, signet or regtest")
    parser.add_argument("--lock-delta", type=int, help="Blocks until the timelock leaf opens")
    parser.add_argument("--threshold", type=int, help="Signatures required by the threshold leaf")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Taproot threshold/timelock vault tooling")
    parser.add_argument("--config", help="Path to a tapvault YAML config file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser(
        "create", help="Build the script tree and print the output description as JSON"
    )
    _add_tree_arguments(create_parser)
    create_parser.add_argument("--compact", action="store_true", help="Print compact JSON")

    cb_parser = subparsers.add_parser(
        "control-block", help="Print the control block for one leaf"
    )
    _add_tree_arguments(cb_parser)
    cb_parser.add_argument("--leaf", type=int, default=0, help="Leaf index (0 threshold, 1 timelock)")

    verify_parser = subparsers.add_parser(
        "verify-control-block",
        help="Check that a control block commits a leaf script to an output key",
    )
    verify_parser.add_argument("--control-block", required=True, help="Hex control block")
    verify_parser.add_argument("--script", required=True, help="Hex leaf script")
    verify_parser.add_argument("--output-key", required=True, help="Hex 32-byte output key")

    tweak_parser = subparsers.add_parser(
        "tweak", help="Print the tweaked output key for an internal key and merkle root"
    )
    tweak_parser.add_argument("--internal-key", required=True, help="Hex 32-byte x-only key")
    tweak_parser.add_argument("--merkle-root", default="", help="Hex merkle root (empty for none)")
    return parser


def _build_info(args: argparse.Namespace) -> Any:
    config = load_config(
        overrides={
            "network": args.network,
            "lock_delta_blocks": args.lock_delta,
            "threshold": args.threshold,
        }
    )
    if args.from_node:
        height = NodeRPCClient(config.rpc).get_best_height()
        logger.info("Using chain height %d from node", height)
    else:
        height = args.height
    return create_taproot_info(
        args.pubkeys,
        height,
        network=config.network,
        lock_delta=config.lock_delta_blocks,
        threshold=config.threshold,
        internal_key=args.internal_key,
    )


def cmd_create(args: argparse.Namespace) -> None:
    info = _build_info(args)
    if args.compact:
        print(json.dumps(info.to_dict(), separators=COMPACT_JSON_SEPARATORS))
    else:
        print(json.dumps(info.to_dict(), indent=2))


def cmd_control_block(args: argparse.Namespace) -> None:
    info = _build_info(args)
    if not 0 <= args.leaf < len(info.leaves):
        raise CLIError(f"--leaf must be between 0 and {len(info.leaves) - 1}")
    print(info.control_block(args.leaf).hex())


def cmd_verify_control_block(args: argparse.Namespace) -> None:
    control_block = _parse_hex(args.control_block, name="--control-block")
    script = _parse_hex(args.script, name="--script")
    output_key = _parse_hex(args.output_key, name="--output-key")
    parsed = ControlBlock.parse(control_block)
    valid = verify_control_block(control_block, script, output_key)
    print(
        json.dumps(
            {
                "valid": valid,
                "depth": parsed.depth,
                "internal_x": parsed.internal_x.hex(),
                "leaf_version": parsed.leaf_version,
            },
            indent=2,
        )
    )
    if not valid:
        raise CLIError("control block does not commit the script to the output key")


def cmd_tweak(args: argparse.Namespace) -> None:
    internal_x = _parse_hex(args.internal_key, name="--internal-key")
    merkle_root = _parse_hex(args.merkle_root, name="--merkle-root")
    output_key, parity = tweak_public(internal_x, merkle_root)
    print(
        json.dumps(
            {
                "tweak": tap_tweak(internal_x, merkle_root).hex(),
                "output_key": output_key.hex(),
                "parity": parity,
            },
            indent=2,
        )
    )


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    if args.config:
        set_default_config_path(args.config)
    try:
        if args.command == "create":
            cmd_create(args)
        elif args.command == "control-block":
            cmd_control_block(args)
        elif args.command == "verify-control-block":
            cmd_verify_control_block(args)
        elif args.command == "tweak":
            cmd_tweak(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (CLIError, ConfigurationError, RPCError, RPCTransportError, TaprootError) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])

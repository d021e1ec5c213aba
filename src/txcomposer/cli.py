"""
Command-line interface for txcomposer.

Provides commands for inspecting the chain, generating keys and pushing transactions.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from txcomposer import __version__
from txcomposer.chain.http import HttpChainAdapter
from txcomposer.config import ComposerConfig, NetworkType, set_config
from txcomposer.core.composer import ComposeResult, Composer
from txcomposer.errors import ComposerError
from txcomposer.tx.keys import generate_key


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def _add_chain_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--network",
        choices=[n.value for n in NetworkType],
        default=NetworkType.TESTNET.value,
        help="Chain network (default: testnet)",
    )
    parser.add_argument(
        "--endpoint",
        help="Chain API URL (overrides --network)",
    )


def _add_signing_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--key",
        action="append",
        default=[],
        help="Private key (hex); may be repeated",
    )
    parser.add_argument(
        "--no-broadcast",
        action="store_true",
        help="Print the signed transaction instead of pushing it",
    )
    parser.add_argument(
        "--no-sign",
        action="store_true",
        help="Skip signing",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="txcomposer",
        description="Compose, sign and push chain transactions",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Info command
    info_parser = subparsers.add_parser("info", help="Show chain head information")
    _add_chain_arguments(info_parser)

    # Keygen command
    keygen_parser = subparsers.add_parser("keygen", help="Generate a new key pair")
    keygen_parser.add_argument(
        "--prefix",
        default="EOS",
        help="Public key prefix (default: EOS)",
    )

    # Transfer command
    transfer_parser = subparsers.add_parser("transfer", help="Transfer tokens")
    transfer_parser.add_argument("sender", help="Account sending the tokens")
    transfer_parser.add_argument("recipient", help="Account receiving the tokens")
    transfer_parser.add_argument("amount", type=int, help="Amount to transfer")
    transfer_parser.add_argument("memo", nargs="?", default="", help="Transfer memo")
    _add_chain_arguments(transfer_parser)
    _add_signing_arguments(transfer_parser)

    # Push command
    push_parser = subparsers.add_parser(
        "push",
        help="Push a transaction from a JSON file with scope and messages",
    )
    push_parser.add_argument("file", help="Path to the transaction JSON file")
    _add_chain_arguments(push_parser)
    _add_signing_arguments(push_parser)

    return parser


def build_config(args: argparse.Namespace) -> ComposerConfig:
    """Create a configuration from parsed arguments."""
    settings = {
        "network": NetworkType(args.network),
        "log_level": args.log_level,
        "log_json": args.log_json,
    }
    if args.endpoint:
        settings["http_endpoint"] = args.endpoint
    if getattr(args, "key", None):
        settings["private_keys"] = args.key

    config = ComposerConfig(**settings)
    set_config(config)
    return config


def _print_result(result: ComposeResult) -> None:
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))


async def show_info(args: argparse.Namespace) -> None:
    """Print chain head information."""
    config = build_config(args)

    async with HttpChainAdapter(config) as chain:
        info = await chain.get_info()

    print(f"Endpoint:        {config.chain_url}")
    print(f"Head block:      {info.head_block_num}")
    print(f"Head block id:   {info.head_block_id}")
    print(f"Head block time: {info.head_block_time}")
    print(f"Irreversible:    {info.last_irreversible_block_num}")
    if info.head_block_producer:
        print(f"Producer:        {info.head_block_producer}")


def show_keygen(args: argparse.Namespace) -> None:
    """Print a freshly generated key pair."""
    pair = generate_key(args.prefix)
    print(json.dumps({"private_key": pair.private_key, "public_key": pair.public_key}, indent=2))
    print()
    print("IMPORTANT: store the private key securely, it is not saved anywhere.")


async def run_transfer(args: argparse.Namespace) -> None:
    """Compose and push a transfer."""
    config = build_config(args)

    async with Composer(config=config) as composer:
        result = await composer.transfer(
            args.sender,
            args.recipient,
            args.amount,
            args.memo,
            broadcast=not args.no_broadcast,
            sign=not args.no_sign,
        )

    _print_result(result)


async def run_push(args: argparse.Namespace) -> None:
    """Compose and push a transaction read from a file."""
    config = build_config(args)

    path = Path(args.file)
    if not path.exists():
        raise FileNotFoundError(f"Transaction file not found: {args.file}")

    with path.open(encoding="utf-8") as f:
        structured = json.load(f)

    async with Composer(config=config) as composer:
        result = await composer.transaction(
            structured,
            broadcast=not args.no_broadcast,
            sign=not args.no_sign,
        )

    _print_result(result)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level, args.log_json)

    try:
        if args.command == "info":
            asyncio.run(show_info(args))
        elif args.command == "keygen":
            show_keygen(args)
        elif args.command == "transfer":
            asyncio.run(run_transfer(args))
        elif args.command == "push":
            asyncio.run(run_push(args))
    except (ComposerError, FileNotFoundError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

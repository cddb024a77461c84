"""
Symmetric Encryption command line tool.

Usage:
    symmetric-encryption generate-rsa-key [--bits 2048]
    symmetric-encryption generate-keys --config config.json --env production [--force]
    symmetric-encryption encrypt --config config.json --env production [-i IN] [-o OUT]
    symmetric-encryption decrypt --config config.json --env production [-i IN] [-o OUT]

Or run directly:
    python -m symmetric_encryption.cli

Without --input / --output the data flows from stdin to stdout.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from typing import BinaryIO, List, Optional

from .errors import SymmetricEncryptionError
from .keys import DEFAULT_RSA_KEY_SIZE, generate_rsa_private_key
from .logging_config import configure_logging
from .registry import ProcessRegistry, generate_symmetric_key_files

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 64 * 1024


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        required=True,
        help="Path to the JSON configuration file",
    )
    parser.add_argument(
        "--env",
        dest="environment",
        required=True,
        help="Environment to load from the configuration",
    )


def _add_stream_arguments(parser: argparse.ArgumentParser) -> None:
    _add_config_arguments(parser)
    parser.add_argument(
        "-i",
        "--input",
        default=None,
        help="Input file (default: stdin)",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output file (default: stdout)",
    )
    parser.add_argument(
        "--no-header",
        dest="header",
        action="store_false",
        help="Do not write or detect the stream header",
    )
    parser.add_argument(
        "--compress",
        action="store_true",
        help="Compress before encrypting (implied by a header when decrypting)",
    )
    parser.add_argument(
        "--cipher",
        dest="cipher_name",
        default=None,
        help="Cipher name to use (default: the configured default cipher)",
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="symmetric-encryption",
        description="Encrypt and decrypt data with RSA-protected symmetric keys.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    rsa_parser = commands.add_parser("generate-rsa-key", help="Print a new RSA private key")
    rsa_parser.add_argument(
        "--bits",
        type=int,
        default=DEFAULT_RSA_KEY_SIZE,
        help=f"RSA key size (default: {DEFAULT_RSA_KEY_SIZE})",
    )

    keys_parser = commands.add_parser("generate-keys", help="Generate wrapped key files")
    _add_config_arguments(keys_parser)
    keys_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing key files (orphans data encrypted with them)",
    )

    _add_stream_arguments(commands.add_parser("encrypt", help="Encrypt a stream"))
    _add_stream_arguments(commands.add_parser("decrypt", help="Decrypt a stream"))
    return parser


def _open_input(path: Optional[str]) -> BinaryIO:
    return open(path, "rb") if path else sys.stdin.buffer


def _open_output(path: Optional[str]) -> BinaryIO:
    return open(path, "wb") if path else sys.stdout.buffer


def _encrypt(registry: ProcessRegistry, args: argparse.Namespace) -> None:
    source = _open_input(args.input)
    try:
        target = args.output if args.output else sys.stdout.buffer
        with registry.writer(
            target, cipher_name=args.cipher_name, header=args.header, compress=args.compress
        ) as writer:
            shutil.copyfileobj(source, writer, COPY_BUFFER_SIZE)
        logger.debug("Encrypted %d bytes", writer.size)
    finally:
        if args.input:
            source.close()


def _decrypt(registry: ProcessRegistry, args: argparse.Namespace) -> None:
    sink = _open_output(args.output)
    try:
        source = args.input if args.input else sys.stdin.buffer
        with registry.reader(
            source, cipher_name=args.cipher_name, header=args.header, compress=args.compress
        ) as reader:
            shutil.copyfileobj(reader, sink, COPY_BUFFER_SIZE)
        sink.flush()
    finally:
        if args.output:
            sink.close()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the symmetric-encryption command."""
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        if args.command == "generate-rsa-key":
            print(generate_rsa_private_key(args.bits), end="")
        elif args.command == "generate-keys":
            written = generate_symmetric_key_files(args.config, args.environment, force=args.force)
            for path in written:
                print(f"Wrote {path}")
        else:
            registry = ProcessRegistry()
            registry.load(args.config, args.environment)
            if args.command == "encrypt":
                _encrypt(registry, args)
            else:
                _decrypt(registry, args)
    except SymmetricEncryptionError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Logging setup for the command line tool."""

import logging
import sys


def configure_logging(level: int = logging.INFO) -> None:
    # Log to stderr; stdout carries encrypted/decrypted data.
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

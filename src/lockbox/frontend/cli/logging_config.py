"""Lightweight logging setup for the command-line tool."""

import logging
import sys


def configure_logging(level: int = logging.WARNING) -> None:
    # root logger, stderr only
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

"""Logging configuration for the explorer scripts."""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure standard logging to stdout with a consistent format."""

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

"""Process-wide logging setup."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send all log records to stdout at the given level.

    Called once at startup; replaces any handlers installed earlier.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    # httpx logs every outbound request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)

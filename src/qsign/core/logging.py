"""Process-wide logging setup."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for a qsign process.

    Args:
        level: Logging level name; unknown names fall back to INFO.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs every request line at INFO, including QTSP URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)

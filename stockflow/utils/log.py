"""Logging bootstrap for the headless sync daemon.

Library modules only ever call ``logging.getLogger(__name__)``; the process
entry point calls :func:`configure_logging` once.
"""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger (no-op for handlers if already configured)."""

    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    logging.basicConfig(level=numeric, format=_FORMAT)
    logging.getLogger().setLevel(numeric)

    # httpx logs every probe request at INFO
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))
    logging.getLogger("apscheduler").setLevel(max(numeric, logging.WARNING))


__all__ = ["configure_logging"]

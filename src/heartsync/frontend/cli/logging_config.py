"""Lightweight logging setup for the TUI and scripts."""

import logging
import os
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int = logging.INFO, log_file: str | None = None, stream=None) -> None:
    """
    Configure the root logger once.

    The TUI owns the terminal, so when ``log_file`` (or ``HEARTSYNC_LOG``) is
    set records go to that file instead of stderr.
    """
    log_file = log_file or os.getenv("HEARTSYNC_LOG")
    if log_file:
        handler: logging.Handler = logging.FileHandler(os.path.expanduser(log_file), encoding="utf-8")
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        handlers=[handler],
    )

"""Logging helpers.

The core never decides where log lines go. It emits events through
:func:`emit`, which tags every record with an ``event`` name and the event's
fields, and leaves handlers to the process shell (:func:`configure_logging`).
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

__all__ = ["LIFECYCLE_LOGGER", "configure_logging", "emit"]

LOG_FORMAT = "[%(asctime)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
SYSLOG_FORMAT = "ebridge[%(process)d]: %(message)s"

# Start/stop lines go here so they can be routed to syslog on their own.
LIFECYCLE_LOGGER = "ebridge.lifecycle"


def emit(logger: logging.Logger, event: str, msg: str, *args: Any, level: int = logging.INFO, **fields: Any) -> None:
    """Log ``msg`` with ``event`` and ``fields`` attached as record attributes."""
    logger.log(level, msg, *args, extra={"event": event, **fields})


def configure_logging(
    log_file: Path | None = None,
    *,
    console: bool = True,
    syslog: bool = False,
    verbose: bool = False,
) -> None:
    root = logging.getLogger("ebridge")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    if console:
        stream = logging.StreamHandler(sys.stdout)
        stream.setFormatter(formatter)
        root.addHandler(stream)
    if log_file is not None:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    lifecycle = logging.getLogger(LIFECYCLE_LOGGER)
    for handler in list(lifecycle.handlers):
        lifecycle.removeHandler(handler)
        handler.close()
    if syslog:
        sys_handler = logging.handlers.SysLogHandler(
            address="/dev/log", facility=logging.handlers.SysLogHandler.LOG_DAEMON
        )
        sys_handler.setFormatter(logging.Formatter(SYSLOG_FORMAT))
        lifecycle.addHandler(sys_handler)

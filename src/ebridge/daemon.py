"""Process detachment and PID file handling for ``ebridge -d``."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from .log import LIFECYCLE_LOGGER

__all__ = ["daemonize", "remove_pid_file", "write_pid_file"]

# PID file trouble is reported next to the start/stop lines
logger = logging.getLogger(LIFECYCLE_LOGGER)


def daemonize() -> None:
    """Detach from the controlling terminal (double fork) and point stdio at ``/dev/null``.

    Must be called before the event loop is created. Only the grandchild returns.
    """
    if os.fork() > 0:
        os._exit(0)
    os.setsid()
    if os.fork() > 0:
        os._exit(0)
    os.umask(0)
    os.chdir("/")

    sys.stdout.flush()
    sys.stderr.flush()
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    if devnull > 2:
        os.close(devnull)


def write_pid_file(path: Path) -> bool:
    """Write the current PID to ``path``. Failure is logged, not fatal."""
    pid = os.getpid()
    try:
        path.write_text(f"{pid}\n", encoding="ascii")
    except OSError as exc:
        logger.error("Failed to write PID file %s: %s", path, exc.strerror or exc)
        return False
    logger.info("PID file written %s (pid %d)", path, pid)
    return True


def remove_pid_file(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove PID file %s: %s", path, exc.strerror or exc)

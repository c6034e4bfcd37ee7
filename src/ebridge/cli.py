from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from .bridge import Bridge
from .config import DEFAULT_CLIENT_PORT, DEFAULT_HOST, DEFAULT_MAIN_PORT, BridgeConfig
from .daemon import daemonize, remove_pid_file, write_pid_file
from .exceptions import SetupError
from .log import LIFECYCLE_LOGGER, configure_logging, emit

__all__ = ["build_parser", "main", "parse_config"]

EXIT_OK = 0
EXIT_SETUP = 1
EXIT_INTERRUPTED = 130

BEHAVIOR = """\
behavior:
  Waits for main connection first, then accepts client.
  Client cannot connect before main is connected.
  Main is disconnected if client disconnects or if
  it receives data with unconnected client.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ebridge",
        description="EBlink TCP Bridge - exclusive one-to-one relay between a main and a client port.",
        epilog=BEHAVIOR,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-m", "--main-port", type=int, default=DEFAULT_MAIN_PORT, help=f"main port (default {DEFAULT_MAIN_PORT})"
    )
    parser.add_argument(
        "-c",
        "--client-port",
        type=int,
        default=DEFAULT_CLIENT_PORT,
        help=f"client port (default {DEFAULT_CLIENT_PORT})",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help=f"address to listen on (default {DEFAULT_HOST})")
    parser.add_argument("-l", "--log-file", metavar="FILE", help="append log lines to FILE")
    parser.add_argument("-p", "--pid-file", metavar="FILE", help="write the process id to FILE")
    parser.add_argument("-d", "--daemon", action="store_true", help="run as daemon")
    parser.add_argument("--syslog", action="store_true", help="also send start/stop messages to syslog")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def parse_config(argv: Sequence[str] | None = None) -> BridgeConfig:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return BridgeConfig.model_validate(vars(args))
    except ValidationError as exc:
        problems = "; ".join(_format_error(err) for err in exc.errors())
        parser.error(problems)


def _format_error(err: Any) -> str:
    location = ".".join(str(part) for part in err.get("loc", ()) if part != "")
    message = err.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


async def _serve(config: BridgeConfig) -> int:
    lifecycle = logging.getLogger(LIFECYCLE_LOGGER)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _on_signal(signum: int) -> None:
        emit(lifecycle, "stopping", "Daemon stopping (signal %d)", signum, signal=signum)
        stop.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, _on_signal, signum)

    bridge = Bridge(config)
    try:
        await bridge.start()
    except SetupError:
        return EXIT_SETUP
    await bridge.serve_forever(stop)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    config = parse_config(argv)
    try:
        configure_logging(
            config.log_file,
            console=not config.daemon,
            syslog=config.syslog,
            verbose=config.verbose,
        )
    except OSError as exc:
        print(f"ebridge: cannot open log file {config.log_file}: {exc.strerror or exc}", file=sys.stderr)
        return EXIT_SETUP

    if config.daemon:
        daemonize()

    lifecycle = logging.getLogger(LIFECYCLE_LOGGER)
    emit(
        lifecycle,
        "starting",
        "Starting ebridge (main=%d, client=%d)%s",
        config.main_port,
        config.client_port,
        " [daemon]" if config.daemon else "",
        main_port=config.main_port,
        client_port=config.client_port,
    )
    pid_written = config.pid_file is not None and write_pid_file(config.pid_file)
    try:
        rc = asyncio.run(_serve(config))
    except KeyboardInterrupt:
        rc = EXIT_INTERRUPTED
    finally:
        if pid_written and config.pid_file is not None:
            remove_pid_file(config.pid_file)
    emit(lifecycle, "stopped", "ebridge stopped (exit %d)", rc, exit_code=rc)
    return rc

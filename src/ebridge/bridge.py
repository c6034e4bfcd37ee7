from __future__ import annotations

import asyncio
import logging

from .config import BridgeConfig
from .endpoint import Role
from .gate import AdmissionGate, PairingState
from .listener import Listener

__all__ = ["Bridge", "run_bridge"]


class Bridge:
    """Main and client listeners wired to a single :class:`AdmissionGate`."""

    def __init__(self, config: BridgeConfig | None = None, *, logger: logging.Logger | None = None) -> None:
        self.config = config or BridgeConfig()
        self._log = logger or logging.getLogger(__name__)
        self.gate = AdmissionGate(
            chunk_size=self.config.chunk_size, poll_interval=self.config.poll_interval, logger=logger
        )
        host = self.config.host or None
        self._main = Listener(
            Role.MAIN, self.gate, host, self.config.main_port, backlog=self.config.backlog, logger=logger
        )
        self._client = Listener(
            Role.CLIENT, self.gate, host, self.config.client_port, backlog=self.config.backlog, logger=logger
        )
        self._closed = False

    @property
    def main_port(self) -> int:
        return self._main.port

    @property
    def client_port(self) -> int:
        return self._client.port

    @property
    def state(self) -> PairingState:
        return self.gate.state

    async def start(self) -> None:
        """Bind both listeners, main first.

        Raises :class:`~ebridge.exceptions.SetupError` if either port cannot be
        bound; nothing is left listening in that case.
        """
        await self._main.start()
        try:
            await self._client.start()
        except BaseException:
            self._main.close()
            await self._main.wait_closed()
            raise
        self._log.info("Waiting for main connection first...")

    async def serve_forever(self, stop: asyncio.Event | None = None) -> None:
        """Run until ``stop`` is set (or forever), then close."""
        stop = stop or asyncio.Event()
        try:
            await stop.wait()
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._main.close()
        self._client.close()
        await self.gate.aclose()
        await asyncio.gather(self._main.wait_closed(), self._client.wait_closed())

    async def __aenter__(self) -> Bridge:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


async def run_bridge(
    config: BridgeConfig | None = None,
    stop: asyncio.Event | None = None,
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Start a bridge and serve until ``stop`` is set.

    Args:
        config: Listening ports and relay settings, defaults to :class:`BridgeConfig`.
        stop: Event that ends the bridge when set; without one it runs until cancelled.
        logger: Logger that receives the bridge's events.
    """
    bridge = Bridge(config, logger=logger)
    await bridge.start()
    await bridge.serve_forever(stop)

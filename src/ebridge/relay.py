from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable

from .config import DEFAULT_CHUNK_SIZE, DEFAULT_POLL_INTERVAL
from .endpoint import Endpoint, Role

__all__ = ["RelaySession", "TeardownHandler", "TerminalReason"]

logger = logging.getLogger(__name__)


class TerminalReason(enum.Enum):
    MAIN_CLOSED = "main closed"
    CLIENT_CLOSED = "client closed"
    MAIN_ERROR = "main error"
    CLIENT_ERROR = "client error"
    SHUTDOWN = "shutdown"


_CLOSED = {Role.MAIN: TerminalReason.MAIN_CLOSED, Role.CLIENT: TerminalReason.CLIENT_CLOSED}
_ERROR = {Role.MAIN: TerminalReason.MAIN_ERROR, Role.CLIENT: TerminalReason.CLIENT_ERROR}

TeardownHandler = Callable[[TerminalReason, "RelaySession"], None]


class RelaySession:
    """Copies bytes between one main and one client endpoint until either side ends.

    Each direction runs in its own task, so a consumer that stops reading only
    stalls the direction that feeds it. Everything read is written out in full:
    the transport keeps whatever the socket did not take yet and ``drain()``
    holds the next read back until it has been flushed.
    While a direction waits on its destination it is not reading its source,
    so the source is checked for a hangup every ``poll_interval`` instead.

    The first direction to see end-of-stream or a socket error decides the
    :class:`TerminalReason`; the other direction is cancelled and
    ``on_teardown`` is called exactly once.
    """

    def __init__(
        self,
        main: Endpoint,
        client: Endpoint,
        *,
        on_teardown: TeardownHandler | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        if main.role is not Role.MAIN or client.role is not Role.CLIENT:
            raise ValueError("RelaySession needs one main and one client endpoint")
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self.main = main
        self.client = client
        self.reason: TerminalReason | None = None
        self.bytes_main_to_client = 0
        self.bytes_client_to_main = 0
        self._chunk_size = chunk_size
        self._poll_interval = poll_interval
        self._on_teardown = on_teardown

    @property
    def finished(self) -> bool:
        return self.reason is not None

    async def run(self) -> TerminalReason:
        main_to_client = asyncio.create_task(self._pump(self.main, self.client), name="ebridge-main->client")
        client_to_main = asyncio.create_task(self._pump(self.client, self.main), name="ebridge-client->main")
        reason = TerminalReason.SHUTDOWN
        try:
            done, _ = await asyncio.wait({main_to_client, client_to_main}, return_when=asyncio.FIRST_COMPLETED)
            # main->client wins a tie so a main that sends and hangs up reads as MAIN_CLOSED
            reason = main_to_client.result() if main_to_client in done else client_to_main.result()
        finally:
            for task in (main_to_client, client_to_main):
                task.cancel()
            await asyncio.gather(main_to_client, client_to_main, return_exceptions=True)
            self._finish(reason)
        return reason

    async def _pump(self, source: Endpoint, dest: Endpoint) -> TerminalReason:
        while True:
            try:
                data = await source.reader.read(self._chunk_size)
            except OSError as exc:
                logger.debug("[%s] read failed: %s", source.role.value, exc)
                return _ERROR[source.role]
            if not data:
                return _CLOSED[source.role]
            dest.writer.write(data)
            try:
                hangup = await self._drain(source, dest)
            except OSError as exc:
                logger.debug("[%s] write failed: %s", dest.role.value, exc)
                return _ERROR[dest.role]
            if hangup is not None:
                return hangup
            if source.role is Role.MAIN:
                self.bytes_main_to_client += len(data)
            else:
                self.bytes_client_to_main += len(data)

    async def _drain(self, source: Endpoint, dest: Endpoint) -> TerminalReason | None:
        transport = dest.writer.transport
        queued = transport.get_write_buffer_size()
        drain = asyncio.create_task(dest.writer.drain())
        try:
            while True:
                done, _ = await asyncio.wait({drain}, timeout=self._poll_interval)
                if done:
                    drain.result()
                    return None
                hangup = source.hangup()
                left = transport.get_write_buffer_size()
                if hangup == "reset":
                    logger.debug("[%s] reset while %s was backed up", source.role.value, dest.role.value)
                    return _ERROR[source.role]
                # a slow destination may still take the tail; a stuck one never will
                if hangup == "closed" and left >= queued:
                    logger.debug("[%s] closed while %s was stuck", source.role.value, dest.role.value)
                    return _CLOSED[source.role]
                queued = left
        finally:
            drain.cancel()

    def _finish(self, reason: TerminalReason) -> None:
        if self.reason is not None:
            return
        self.reason = reason
        if self._on_teardown is not None:
            self._on_teardown(reason, self)
        else:
            self.main.close(linger=self._poll_interval)
            self.client.close(linger=self._poll_interval)
